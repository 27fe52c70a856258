"""统一的消息与请求数据模型。

本模块定义了聊天核心在各层之间共享的标准数据结构：

- Message: 会话中的一条消息（用户或助手），UI 层只读。
- HistoryItem / Part: 发送给后端的历史记录线格式（role 为 user/model）。
- SamplingConfig: 一次调用的采样参数（系统指令、思考预算等）。
- Preferences: 本地持久化的偏好设置。

所有 Gateway 实现（如 GeminiClient、ProxyClient）都只依赖这些模型，
并负责在各自的 JSON 与这些模型之间做转换。
"""

from dataclasses import dataclass, replace
from typing import Any, Dict, List, Literal, Optional


# 消息发送方
Sender = Literal["user", "assistant"]

# 后端历史记录中的角色（Gemini 使用 "model" 表示助手）
HistoryRole = Literal["user", "model"]


@dataclass
class ThinkingMeta:
    """助手消息上的思考预算信息，仅在模型支持时附带。"""

    enabled: bool
    budget: int
    model_used: str

    def to_dict(self) -> Dict[str, Any]:
        return {"enabled": self.enabled, "budget": self.budget, "modelUsed": self.model_used}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ThinkingMeta":
        return cls(
            enabled=bool(data.get("enabled")),
            budget=int(data.get("budget", 0)),
            model_used=str(data.get("modelUsed") or data.get("model_used") or ""),
        )


@dataclass
class Message:
    """一条对话消息。

    - id: 会话内唯一且创建后不变。
    - streaming: 正在接收流式内容。
    - error: 该轮对话失败，text 为面向用户的错误说明。
    """

    id: str
    text: str
    sender: Sender
    streaming: bool = False
    error: bool = False
    thinking_meta: Optional[ThinkingMeta] = None

    def copy(self, **changes: Any) -> "Message":
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "id": self.id,
            "text": self.text,
            "sender": self.sender,
            "isStreaming": self.streaming,
            "isError": self.error,
        }
        if self.thinking_meta is not None:
            payload["thinkingDetails"] = self.thinking_meta.to_dict()
        return payload

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        sender = data.get("sender") or "assistant"
        if sender == "ai":
            sender = "assistant"
        meta_raw = data.get("thinkingDetails")
        return cls(
            id=str(data["id"]),
            text=data.get("text") or "",
            sender=sender,
            streaming=bool(data.get("isStreaming", False)),
            error=bool(data.get("isError", False)),
            thinking_meta=ThinkingMeta.from_dict(meta_raw) if isinstance(meta_raw, dict) else None,
        )


@dataclass
class InlineData:
    data: str
    mime_type: str


@dataclass
class Part:
    """消息片段：纯文本或内联二进制数据（base64）。"""

    text: Optional[str] = None
    inline_data: Optional[InlineData] = None

    def to_payload(self) -> Dict[str, Any]:
        if self.inline_data is not None:
            return {"inlineData": {"data": self.inline_data.data, "mimeType": self.inline_data.mime_type}}
        return {"text": self.text or ""}

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "Part":
        inline = data.get("inlineData")
        if isinstance(inline, dict):
            return cls(inline_data=InlineData(data=inline.get("data", ""), mime_type=inline.get("mimeType", "")))
        return cls(text=data.get("text") or "")


@dataclass
class HistoryItem:
    """发送给后端的一条历史记录。"""

    role: HistoryRole
    parts: List[Part]

    def to_payload(self) -> Dict[str, Any]:
        return {"role": self.role, "parts": [p.to_payload() for p in self.parts]}

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "HistoryItem":
        return cls(role=data.get("role", "user"), parts=[Part.from_payload(p) for p in data.get("parts") or []])

    @property
    def text(self) -> str:
        return "".join(p.text or "" for p in self.parts)


@dataclass
class SamplingConfig:
    """一次调用的采样参数。

    thinking_budget 为 0 表示关闭；是否下发由 Gateway 按模型能力决定，
    取值范围 0-5 由调用方负责截断。
    """

    thinking_budget: int = 0
    temperature: Optional[float] = None
    max_output_tokens: Optional[int] = None
    system_instruction: Optional[str] = None

    def to_payload(self, include_thinking: bool = True) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        if self.system_instruction:
            payload["systemInstruction"] = self.system_instruction
        if self.temperature is not None:
            payload["temperature"] = self.temperature
        if self.max_output_tokens is not None:
            payload["maxOutputTokens"] = self.max_output_tokens
        if include_thinking:
            payload["thinkingConfig"] = {"thinkingBudget": self.thinking_budget}
        return payload

    @classmethod
    def from_payload(cls, data: Optional[Dict[str, Any]]) -> "SamplingConfig":
        data = data or {}
        thinking = data.get("thinkingConfig") or {}
        return cls(
            thinking_budget=int(thinking.get("thinkingBudget", 0)),
            temperature=data.get("temperature"),
            max_output_tokens=data.get("maxOutputTokens"),
            system_instruction=data.get("systemInstruction"),
        )


@dataclass
class Preferences:
    """持久化的偏好设置，各项独立加载，缺失时使用默认值。"""

    base_theme: str = "dark"
    accent_theme: str = "default"
    custom_css: str = ""
    target_language: str = "none"
    thinking_budget: int = 0
    model: str = "gemini-2.5-flash"
