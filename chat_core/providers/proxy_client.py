"""代理 Gateway（客户端组件）。

按 /api/proxy 的线协议发送请求：
- 请求体: {"type": "chat" | "generate-title" | "summarize", "payload": {...}}
- chat / summarize 响应: 按顺序拼接的 UTF-8 原始文本流（不是分块 JSON）
- generate-title 响应: {"text": "..."}；失败时非 200 状态码 + {"error": "..."}

API 密钥只存在于服务端，客户端不需要任何凭据。
"""

from typing import Any, Dict, Iterator, List, Optional

import httpx

from chat_core.config.settings import settings
from chat_core.domain.exceptions import ApiError, ConfigurationError, NetworkError
from chat_core.domain.models import HistoryItem, Part, SamplingConfig
from chat_core.providers.registry import supports_thinking


class ProxyClient:
    """通过代理端点访问后端的 Gateway 实现。"""

    name = "proxy"

    def __init__(self, cfg=settings, url: Optional[str] = None):
        self._settings = cfg
        self._url = url or getattr(cfg, "proxy_url", None)

    def validate_configuration(self) -> None:
        if not self._url:
            raise ConfigurationError(code="MISSING_PROXY_URL", message="Proxy URL not configured")

    def stream_turn(
        self,
        prior_history: List[HistoryItem],
        message_parts: List[Part],
        model: str,
        sampling: SamplingConfig,
    ) -> Iterator[str]:
        body = {
            "type": "chat",
            "payload": {
                "history": [item.to_payload() for item in prior_history],
                "message": {"parts": [p.to_payload() for p in message_parts]},
                "model": model,
                "config": sampling.to_payload(include_thinking=supports_thinking(model)),
            },
        }
        return self._stream(body)

    def stream_prompt(
        self,
        prompt: str,
        model: str,
        sampling: Optional[SamplingConfig] = None,
    ) -> Iterator[str]:
        return self._stream({"type": "summarize", "payload": {"prompt": prompt, "model": model}})

    def complete(self, prompt: str, model: str, sampling: SamplingConfig) -> str:
        self.validate_configuration()
        body = {"type": "generate-title", "payload": {"titlePrompt": prompt, "model": model}}
        try:
            with httpx.Client(timeout=self._settings.http_timeout, trust_env=False) as client:
                resp = client.post(self._url, json=body)
        except httpx.TimeoutException as e:
            raise NetworkError(code="TIMEOUT", message=f"Request timed out: {e}")
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e))
        if resp.status_code >= 400:
            self._raise_for_error(resp)
        data = resp.json()
        text = data.get("text") if isinstance(data, dict) else None
        return text if isinstance(text, str) else ""

    # ---- 辅助方法 ----

    def _stream(self, body: Dict[str, Any]) -> Iterator[str]:
        self.validate_configuration()
        try:
            with httpx.Client(timeout=self._settings.http_timeout, trust_env=False) as client:
                with client.stream("POST", self._url, json=body) as resp:
                    if resp.status_code >= 400:
                        resp.read()
                        self._raise_for_error(resp)
                    # iter_text 使用增量解码，跨块的多字节字符不会被截断
                    for text in resp.iter_text():
                        if text:
                            yield text
        except httpx.TimeoutException as e:
            raise NetworkError(code="TIMEOUT", message=f"Request timed out: {e}")
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e))

    @staticmethod
    def _raise_for_error(resp: Any) -> None:
        message = f"API request failed with status {resp.status_code}"
        code = "API_ERROR"
        try:
            data = resp.json()
        except ValueError:
            data = None
        if isinstance(data, dict):
            message = data.get("error") or message
            code = data.get("code") or code
        if code == "MISSING_API_KEY":
            raise ConfigurationError(code=code, message=message, http_status=resp.status_code)
        raise ApiError(code=code, message=message, http_status=resp.status_code)
