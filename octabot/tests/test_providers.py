import asyncio

from octabot.providers import create_gateway
from octabot.providers.gateway import AzureServiceGateway
from octabot.providers.registry import analyze_url, deployment_url, read_url


class DummySettings:
    azure_openai_api_key = "k" * 16
    azure_openai_base_url = "https://example.openai.azure.com"
    chat_deployment = "gpt-4o"
    chat_api_version = "2024-08-01-preview"
    image_deployment = "dall-e-3"
    image_api_version = "2024-02-01"
    vision_api_key = "v" * 16
    vision_endpoint = "https://example.cognitiveservices.azure.com"
    vision_poll_interval = 0.0
    vision_max_poll_attempts = 3
    http_timeout = 1.0


def test_create_gateway_default(monkeypatch):
    monkeypatch.setattr("octabot.providers.settings", DummySettings())
    gateway = create_gateway()
    assert isinstance(gateway, AzureServiceGateway)


def test_registry_urls():
    cfg = DummySettings()
    assert deployment_url(cfg, "chat") == (
        "https://example.openai.azure.com/openai/deployments/gpt-4o/chat/completions?api-version=2024-08-01-preview"
    )
    assert deployment_url(cfg, "image") == (
        "https://example.openai.azure.com/openai/deployments/dall-e-3/images/generations?api-version=2024-02-01"
    )
    assert analyze_url(cfg).endswith("/vision/v3.2/analyze?visualFeatures=Description")
    assert read_url(cfg).endswith("/vision/v3.2/read/analyze")


def test_gateway_delegates_to_clients():
    class OpenAI:
        async def chat_complete(self, text, caption=None, extracted=None):
            return f"chat:{text}:{caption}:{extracted}"

        async def generate_image(self, prompt):
            return f"img:{prompt}"

    class Vision:
        async def analyze_image(self, data):
            return "caption"

        async def extract_text(self, data, token=None):
            return "text"

    gateway = AzureServiceGateway(DummySettings(), openai_client=OpenAI(), vision_client=Vision())

    async def run():
        return (
            await gateway.chat_complete("hi", "c", None),
            await gateway.generate_image("p"),
            await gateway.analyze_image(b""),
            await gateway.extract_text(b""),
        )

    assert asyncio.run(run()) == ("chat:hi:c:None", "img:p", "caption", "text")
