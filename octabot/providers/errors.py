"""HTTP 响应到 ServiceError 的统一映射。"""

from typing import Any

import httpx

from octabot.domain.exceptions import (
    MalformedResponseError,
    RateLimitError,
    TransportError,
    UpstreamError,
)


NO_RESPONSE_MESSAGE = (
    "No response received from the server. Please check your internet connection and try again."
)


def transport_error(service: str, err: httpx.RequestError) -> TransportError:
    return TransportError(
        code="NETWORK_ERROR",
        message=NO_RESPONSE_MESSAGE,
        service=service,
        detail=str(err) or type(err).__name__,
    )


def error_detail(resp: httpx.Response) -> str:
    """提取服务端错误描述，兼容 OpenAI 与 Vision 两种错误体。"""

    try:
        data = resp.json()
    except ValueError:
        return "Unknown error"
    if isinstance(data, dict):
        err = data.get("error")
        if isinstance(err, dict) and err.get("message"):
            return str(err["message"])
        if data.get("message"):
            return str(data["message"])
    return "Unknown error"


def check_status(resp: httpx.Response, service: str) -> None:
    """非 2xx 状态一律抛出 UpstreamError（429 为 RateLimitError）。"""

    if resp.status_code < 400:
        return
    detail = error_detail(resp)
    message = f"Server error: {resp.status_code} - {detail}"
    if resp.status_code == 429:
        raise RateLimitError(code="RATE_LIMIT", message=message, http_status=429, service=service)
    raise UpstreamError(code="API_ERROR", message=message, http_status=resp.status_code, service=service)


def parse_json(resp: httpx.Response, service: str) -> Any:
    try:
        return resp.json()
    except ValueError as e:
        raise MalformedResponseError(
            code="MALFORMED_RESPONSE",
            message="The server returned a response that could not be read.",
            service=service,
            detail=str(e),
        )


def malformed(service: str, detail: str) -> MalformedResponseError:
    return MalformedResponseError(
        code="MALFORMED_RESPONSE",
        message="The server returned an unexpected response.",
        service=service,
        detail=detail,
    )
