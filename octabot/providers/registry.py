"""服务端点配置。

本模块将“部署名 / API 版本”与最终请求 URL 解耦：上层只调用
chat_completions_url(settings) 之类的函数，具体路径格式集中在这里，
便于后续切换部署或升级 API 版本。"""

from dataclasses import dataclass
from typing import Mapping


@dataclass
class DeploymentConfig:
    """Azure OpenAI 上某个部署的配置。"""

    logical_name: str
    route: str


@dataclass
class ChatDefaults:
    """对话补全的固定采样参数。"""

    temperature: float = 0.7
    top_p: float = 0.95
    max_tokens: int = 3000


@dataclass
class ImageDefaults:
    """图片生成的固定参数。"""

    count: int = 1
    size: str = "1024x1024"


CHAT_DEPLOYMENT = DeploymentConfig(logical_name="chat", route="chat/completions")
IMAGE_DEPLOYMENT = DeploymentConfig(logical_name="image", route="images/generations")

DEPLOYMENTS: Mapping[str, DeploymentConfig] = {
    "chat": CHAT_DEPLOYMENT,
    "image": IMAGE_DEPLOYMENT,
}

CHAT_DEFAULTS = ChatDefaults()
IMAGE_DEFAULTS = ImageDefaults()

# Azure AI Vision v3.2
VISION_API_PATH = "vision/v3.2"
CAPTION_FEATURES = "Description"


def deployment_url(cfg, logical_name: str) -> str:
    """拼出 Azure OpenAI 部署的完整 URL。"""

    deployment = DEPLOYMENTS[logical_name]
    if logical_name == "chat":
        name, version = cfg.chat_deployment, cfg.chat_api_version
    else:
        name, version = cfg.image_deployment, cfg.image_api_version
    return (
        f"{cfg.azure_openai_base_url}/openai/deployments/{name}/"
        f"{deployment.route}?api-version={version}"
    )


def analyze_url(cfg) -> str:
    return f"{cfg.vision_endpoint}/{VISION_API_PATH}/analyze?visualFeatures={CAPTION_FEATURES}"


def read_url(cfg) -> str:
    return f"{cfg.vision_endpoint}/{VISION_API_PATH}/read/analyze"
