"""Gemini Provider 适配器（服务端组件）。

直接调用 Generative Language REST API：
- 流式: POST {base_url}/models/{model}:streamGenerateContent?alt=sse
- 非流式: POST {base_url}/models/{model}:generateContent
- 认证: x-goog-api-key: <api_key>

本实现只依赖公共字段：contents/systemInstruction/generationConfig，
响应只读取 candidates[0].content.parts[].text 与 promptFeedback.blockReason。
"""

import json
from typing import Any, Dict, Iterator, List, Optional

import httpx

from chat_core.config.settings import settings
from chat_core.domain.exceptions import ApiError, ConfigurationError, NetworkError
from chat_core.domain.models import HistoryItem, Part, SamplingConfig
from chat_core.providers.registry import GEMINI_CONFIG, supports_thinking


class GeminiClient:
    """Gemini Provider 客户端实现。"""

    name = "gemini"

    def __init__(self, cfg=settings):
        self._settings = cfg

    def validate_configuration(self) -> None:
        if not getattr(self._settings, "gemini_api_key", None):
            raise ConfigurationError(message="API key not configured on the server")

    # ---- 流式 ----

    def stream_turn(
        self,
        prior_history: List[HistoryItem],
        message_parts: List[Part],
        model: str,
        sampling: SamplingConfig,
    ) -> Iterator[str]:
        contents = [item.to_payload() for item in prior_history]
        contents.append(HistoryItem(role="user", parts=list(message_parts)).to_payload())
        payload = self._build_payload(contents, model, sampling)
        return self._stream(model, payload)

    def stream_prompt(
        self,
        prompt: str,
        model: str,
        sampling: Optional[SamplingConfig] = None,
    ) -> Iterator[str]:
        contents = [{"role": "user", "parts": [{"text": prompt}]}]
        payload = self._build_payload(contents, model, sampling or SamplingConfig())
        return self._stream(model, payload)

    def _stream(self, model: str, payload: Dict[str, Any]) -> Iterator[str]:
        self.validate_configuration()
        try:
            with httpx.Client(timeout=self._settings.http_timeout, trust_env=False) as client:
                with client.stream(
                    "POST",
                    f"{self._base_url()}/models/{model}:streamGenerateContent",
                    params={"alt": "sse"},
                    json=payload,
                    headers=self._headers(),
                ) as resp:
                    if resp.status_code >= 400:
                        resp.read()
                        raise ApiError(
                            code="API_ERROR",
                            message=self._error_message(resp),
                            http_status=resp.status_code,
                        )
                    for line in resp.iter_lines():
                        if not line:
                            continue
                        data_str = line
                        if data_str.startswith("data:"):
                            data_str = data_str[5:].strip()
                        else:
                            data_str = data_str.strip()
                        if not data_str or data_str == "[DONE]":
                            continue
                        try:
                            chunk = json.loads(data_str)
                        except json.JSONDecodeError:
                            continue
                        text = self._extract_text(chunk)
                        if text:
                            yield text
        except httpx.TimeoutException as e:
            raise NetworkError(code="TIMEOUT", message=f"Request timed out: {e}")
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e))

    # ---- 非流式 ----

    def complete(self, prompt: str, model: str, sampling: SamplingConfig) -> str:
        self.validate_configuration()
        contents = [{"role": "user", "parts": [{"text": prompt}]}]
        payload = self._build_payload(contents, model, sampling)
        try:
            with httpx.Client(timeout=self._settings.http_timeout, trust_env=False) as client:
                resp = client.post(
                    f"{self._base_url()}/models/{model}:generateContent",
                    json=payload,
                    headers=self._headers(),
                )
        except httpx.TimeoutException as e:
            raise NetworkError(code="TIMEOUT", message=f"Request timed out: {e}")
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e))
        if resp.status_code >= 400:
            raise ApiError(code="API_ERROR", message=self._error_message(resp), http_status=resp.status_code)
        return self._extract_text(resp.json())

    # ---- 辅助方法 ----

    def _base_url(self) -> str:
        return getattr(self._settings, "gemini_base_url", None) or GEMINI_CONFIG.base_url

    def _headers(self) -> Dict[str, str]:
        return {
            "x-goog-api-key": self._settings.gemini_api_key,
            "Content-Type": "application/json",
        }

    @staticmethod
    def _build_payload(contents: List[Dict[str, Any]], model: str, sampling: SamplingConfig) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"contents": contents}
        if sampling.system_instruction:
            payload["systemInstruction"] = {"parts": [{"text": sampling.system_instruction}]}
        generation: Dict[str, Any] = {}
        if sampling.temperature is not None:
            generation["temperature"] = sampling.temperature
        if sampling.max_output_tokens is not None:
            generation["maxOutputTokens"] = sampling.max_output_tokens
        # 不支持思考预算的模型必须省略该参数
        if supports_thinking(model):
            generation["thinkingConfig"] = {"thinkingBudget": sampling.thinking_budget}
        if generation:
            payload["generationConfig"] = generation
        return payload

    @staticmethod
    def _extract_text(data: Dict[str, Any]) -> str:
        feedback = data.get("promptFeedback") or {}
        if feedback.get("blockReason"):
            raise ApiError(
                code="SAFETY_BLOCKED",
                message=f"Request blocked: {feedback['blockReason']}",
                http_status=400,
            )
        candidates = data.get("candidates") or []
        if not candidates:
            return ""
        first = candidates[0]
        if first.get("finishReason") == "SAFETY":
            raise ApiError(code="SAFETY_BLOCKED", message="Response blocked by safety filters", http_status=400)
        parts = (first.get("content") or {}).get("parts") or []
        return "".join(p.get("text") or "" for p in parts if not p.get("thought"))

    @staticmethod
    def _error_message(resp: Any) -> str:
        try:
            data = resp.json()
        except ValueError:
            return resp.text
        err = data.get("error") if isinstance(data, dict) else None
        if isinstance(err, dict) and err.get("message"):
            return str(err["message"])
        if isinstance(err, str):
            return err
        return resp.text
