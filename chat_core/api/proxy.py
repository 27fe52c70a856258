"""/api/proxy 服务端处理函数（与 Web 框架无关）。

把 ProxyClient 发来的 {"type", "payload"} 请求转交给 GeminiClient：
- chat / summarize / summarize-follow-up 返回 UTF-8 文本流；
- generate-title 返回 {"text": ...}；
- 失败返回 {"error": ..., "code": ...} 与对应状态码。
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterator, Optional, Union

from chat_core.config.settings import settings
from chat_core.domain.exceptions import BusinessError, ConfigurationError
from chat_core.domain.models import HistoryItem, Part, SamplingConfig
from chat_core.infrastructure.logging.logger import log_event
from chat_core.providers.base import GatewayClient
from chat_core.providers.gemini_client import GeminiClient
from chat_core.providers.registry import DEFAULT_CHAT_MODEL, TITLE_MODEL


@dataclass
class ProxyResponse:
    status: int
    json: Optional[Dict[str, Any]] = None
    stream: Optional[Iterator[bytes]] = None

    @property
    def content_type(self) -> str:
        if self.stream is not None:
            return "text/plain; charset=utf-8"
        return "application/json"


def _error(status: int, message: str, code: Optional[str] = None) -> ProxyResponse:
    body: Dict[str, Any] = {"error": message}
    if code:
        body["code"] = code
    return ProxyResponse(status=status, json=body)


def _unwrap_message(message: str) -> str:
    """上游错误信息可能是 JSON 字符串，取其中的 error.message。"""

    try:
        parsed = json.loads(message)
    except (TypeError, ValueError):
        return message
    if isinstance(parsed, dict):
        err = parsed.get("error")
        if isinstance(err, dict) and err.get("message"):
            return str(err["message"])
    return message


def _primed_stream(deltas: Iterator[str]) -> Iterator[bytes]:
    """先取出第一个增量，让连接阶段的错误在返回响应前暴露出来。"""

    iterator = iter(deltas)
    first = next(iterator, None)

    def _gen() -> Iterator[bytes]:
        if first is not None:
            yield first.encode("utf-8")
        for text in iterator:
            if text:
                yield text.encode("utf-8")

    return _gen()


def handle_proxy_request(
    method: str,
    body: Union[bytes, str, Dict[str, Any], None],
    client: Optional[GatewayClient] = None,
) -> ProxyResponse:
    if method.upper() != "POST":
        return _error(405, "Method not allowed")

    client = client or GeminiClient(settings)
    try:
        client.validate_configuration()
    except ConfigurationError as e:
        return _error(500, "API key not configured on the server", e.code)

    try:
        data = json.loads(body) if isinstance(body, (bytes, str)) else (body or {})
        if not isinstance(data, dict):
            return _error(400, "Invalid proxy type")
        req_type = data.get("type")
        payload = data.get("payload") or {}

        if req_type == "chat":
            history = [HistoryItem.from_payload(h) for h in payload.get("history") or []]
            message = payload.get("message") or {}
            parts = [Part.from_payload(p) for p in message.get("parts") or []]
            model = payload.get("model") or DEFAULT_CHAT_MODEL
            sampling = SamplingConfig.from_payload(payload.get("config") or {})
            stream = _primed_stream(client.stream_turn(history, parts, model, sampling))
            return ProxyResponse(status=200, stream=stream)

        if req_type == "generate-title":
            text = client.complete(
                payload.get("titlePrompt") or "",
                TITLE_MODEL,
                SamplingConfig(temperature=0.3, max_output_tokens=60),
            )
            return ProxyResponse(status=200, json={"text": text})

        if req_type in ("summarize", "summarize-follow-up"):
            model = payload.get("model") or DEFAULT_CHAT_MODEL
            stream = _primed_stream(client.stream_prompt(payload.get("prompt") or "", model))
            return ProxyResponse(status=200, stream=stream)

        return _error(400, "Invalid proxy type")
    except json.JSONDecodeError:
        return _error(400, "Invalid JSON body", "INVALID_BODY")
    except BusinessError as e:
        log_event(logging.ERROR, "Error in /api/proxy", {}, code=e.code, error=e.message)
        status = e.http_status if e.http_status and e.http_status >= 400 else 500
        return _error(status, _unwrap_message(e.message), e.code)
    except Exception as e:
        log_event(logging.ERROR, "Error in /api/proxy", {}, error=str(e))
        return _error(500, _unwrap_message(str(e)) or "An internal server error occurred")
