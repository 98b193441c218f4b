import asyncio

import httpx
import pytest

from octabot.domain.exceptions import (
    MalformedResponseError,
    OperationCancelled,
    TransportError,
    UpstreamError,
)
from octabot.preprocessing.cancellation import CancellationToken
from octabot.providers.vision_client import AzureVisionClient


OPERATION_URL = "https://example.cognitiveservices.azure.com/vision/v3.2/read/analyzeResults/op-1"


class SettingsStub:
    vision_api_key = "v" * 16
    vision_endpoint = "https://example.cognitiveservices.azure.com"
    vision_poll_interval = 0.0
    vision_max_poll_attempts = 5
    http_timeout = 1.0


class Resp:
    def __init__(self, status_code=200, payload=None, headers=None):
        self.status_code = status_code
        self._payload = payload
        self.headers = headers or {}

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


def _fake_client(monkeypatch, post_response=None, poll_responses=(), post_error=None):
    calls = []
    polls = list(poll_responses)

    class Client:
        def __init__(self, *a, **kw):
            pass

        async def __aenter__(self):
            return self

        async def __aexit__(self, *a):
            return False

        async def post(self, url, **kw):
            calls.append(("POST", url, kw))
            if post_error is not None:
                raise post_error
            return post_response

        async def get(self, url, **kw):
            calls.append(("GET", url, kw))
            return polls.pop(0)

    monkeypatch.setattr("httpx.AsyncClient", Client)
    return calls


def _submitted():
    return Resp(202, None, {"Operation-Location": OPERATION_URL})


def _succeeded():
    return Resp(200, {
        "status": "succeeded",
        "analyzeResult": {
            "readResults": [
                {"page": 1, "lines": [{"text": "first line"}, {"text": "second line"}]},
                {"page": 2, "lines": [{"text": "third line  "}]},
            ]
        },
    })


def test_analyze_image_caption(monkeypatch):
    calls = _fake_client(monkeypatch, Resp(200, {
        "description": {"captions": [{"text": "a cat on a sofa", "confidence": 0.91}]}
    }))
    result = asyncio.run(AzureVisionClient(SettingsStub()).analyze_image(b"img"))
    assert result.caption == "a cat on a sofa"
    assert result.confidence == 0.91
    method, url, kw = calls[0]
    assert url.endswith("/vision/v3.2/analyze?visualFeatures=Description")
    assert kw["content"] == b"img"
    assert kw["headers"]["Ocp-Apim-Subscription-Key"] == SettingsStub.vision_api_key


def test_analyze_image_empty_captions_is_malformed(monkeypatch):
    _fake_client(monkeypatch, Resp(200, {"description": {"captions": []}}))
    with pytest.raises(MalformedResponseError):
        asyncio.run(AzureVisionClient(SettingsStub()).analyze_image(b"img"))


def test_analyze_image_missing_description_is_malformed(monkeypatch):
    _fake_client(monkeypatch, Resp(200, {"tags": []}))
    with pytest.raises(MalformedResponseError):
        asyncio.run(AzureVisionClient(SettingsStub()).analyze_image(b"img"))


def test_extract_text_polls_until_succeeded(monkeypatch):
    calls = _fake_client(
        monkeypatch,
        _submitted(),
        [Resp(200, {"status": "notStarted"}), Resp(200, {"status": "running"}), _succeeded()],
    )
    result = asyncio.run(AzureVisionClient(SettingsStub()).extract_text(b"img"))
    assert result.text == "first line\nsecond line\nthird line"
    assert result.lines == ("first line", "second line", "third line  ")
    assert [c[0] for c in calls] == ["POST", "GET", "GET", "GET"]
    assert all(c[1] == OPERATION_URL for c in calls[1:])


def test_extract_text_failed_job_is_upstream(monkeypatch):
    _fake_client(monkeypatch, _submitted(), [Resp(200, {"status": "running"}), Resp(200, {"status": "failed"})])
    with pytest.raises(UpstreamError) as info:
        asyncio.run(AzureVisionClient(SettingsStub()).extract_text(b"img"))
    assert info.value.code == "READ_FAILED"


def test_extract_text_stops_at_max_attempts(monkeypatch):
    calls = _fake_client(monkeypatch, _submitted(), [Resp(200, {"status": "running"}) for _ in range(5)])
    with pytest.raises(UpstreamError) as info:
        asyncio.run(AzureVisionClient(SettingsStub()).extract_text(b"img"))
    assert info.value.code == "READ_TIMEOUT"
    assert len([c for c in calls if c[0] == "GET"]) == 5


def test_extract_text_missing_operation_location(monkeypatch):
    _fake_client(monkeypatch, Resp(202, None, {}))
    with pytest.raises(MalformedResponseError):
        asyncio.run(AzureVisionClient(SettingsStub()).extract_text(b"img"))


def test_extract_text_unknown_status_is_malformed(monkeypatch):
    _fake_client(monkeypatch, _submitted(), [Resp(200, {"status": "exploded"})])
    with pytest.raises(MalformedResponseError):
        asyncio.run(AzureVisionClient(SettingsStub()).extract_text(b"img"))


def test_extract_text_transport_error(monkeypatch):
    _fake_client(monkeypatch, post_error=httpx.ConnectTimeout("timeout"))
    with pytest.raises(TransportError):
        asyncio.run(AzureVisionClient(SettingsStub()).extract_text(b"img"))


def test_extract_text_cancelled(monkeypatch):
    _fake_client(monkeypatch, _submitted(), [Resp(200, {"status": "running"})])
    token = CancellationToken()
    token.cancel("removed")
    with pytest.raises(OperationCancelled):
        asyncio.run(AzureVisionClient(SettingsStub()).extract_text(b"img", token))


def test_extract_text_cancelled_while_waiting(monkeypatch):
    class SlowSettings(SettingsStub):
        vision_poll_interval = 30.0

    _fake_client(monkeypatch, _submitted(), [Resp(200, {"status": "running"}) for _ in range(5)])

    async def run():
        token = CancellationToken()
        task = asyncio.ensure_future(AzureVisionClient(SlowSettings()).extract_text(b"img", token))
        await asyncio.sleep(0.01)
        token.cancel("removed")
        return await asyncio.wait_for(task, timeout=1.0)

    with pytest.raises(OperationCancelled):
        asyncio.run(run())


@pytest.mark.parametrize("payload", [
    {"description": {"captions": ["a cat"]}},
    {"description": [{"captions": [{"text": "a cat"}]}]},
    {"description": {"captions": {"text": "a cat"}}},
    [{"description": {}}],
])
def test_analyze_image_unexpected_shapes_are_malformed(monkeypatch, payload):
    _fake_client(monkeypatch, Resp(200, payload))
    with pytest.raises(MalformedResponseError):
        asyncio.run(AzureVisionClient(SettingsStub()).analyze_image(b"img"))


@pytest.mark.parametrize("analyze_result", [
    {"readResults": [{"lines": ["first line"]}]},
    {"readResults": ["page"]},
    {"readResults": {"lines": []}},
    [{"readResults": []}],
])
def test_extract_text_unexpected_shapes_are_malformed(monkeypatch, analyze_result):
    _fake_client(monkeypatch, _submitted(), [Resp(200, {"status": "succeeded", "analyzeResult": analyze_result})])
    with pytest.raises(MalformedResponseError):
        asyncio.run(AzureVisionClient(SettingsStub()).extract_text(b"img"))


def test_extract_text_waits_configured_interval_between_polls(monkeypatch):
    class PacedSettings(SettingsStub):
        vision_poll_interval = 2.5

    waits = []

    async def record_wait(seconds, token):
        waits.append(seconds)

    _fake_client(
        monkeypatch,
        _submitted(),
        [Resp(200, {"status": "notStarted"}), Resp(200, {"status": "running"}), _succeeded()],
    )
    monkeypatch.setattr(AzureVisionClient, "_wait", staticmethod(record_wait))
    asyncio.run(AzureVisionClient(PacedSettings()).extract_text(b"img"))
    assert waits == [2.5, 2.5]


def test_extract_text_sleeps_on_token_between_polls(monkeypatch):
    class PacedSettings(SettingsStub):
        vision_poll_interval = 0.75

    sleeps = []

    async def record_sleep(self, seconds):
        sleeps.append(seconds)

    _fake_client(monkeypatch, _submitted(), [Resp(200, {"status": "running"}), _succeeded()])
    monkeypatch.setattr(CancellationToken, "sleep", record_sleep)

    async def run():
        return await AzureVisionClient(PacedSettings()).extract_text(b"img", CancellationToken())

    result = asyncio.run(run())
    assert sleeps == [0.75]
    assert result.lines[0] == "first line"
