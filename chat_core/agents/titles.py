"""会话标题生成。

generate_title 从不抛出：任何失败（网络、API、空结果）都退回到
由第一条用户消息前几个词组成的兜底标题。
"""

import logging
from typing import List

from chat_core.domain.conversation import is_welcome_message
from chat_core.domain.models import Message, SamplingConfig
from chat_core.infrastructure.logging.logger import log_event
from chat_core.prompts import load_prompt
from chat_core.providers.base import GatewayClient
from chat_core.providers.registry import TITLE_MODEL


FALLBACK_TITLE = "Chat Conversation"
TITLE_MAX_WORDS = 7
FALLBACK_WORDS = 4
DEFAULT_CONTEXT_CHARS = 1500

# 这些助手消息只是界面上的占位提示，不代表对话内容
_TRANSIENT_PREFIXES = (
    "AI is viewing the image",
    "NeuraMorphosis AI is thinking deeply...",
)


def fallback_title(messages: List[Message]) -> str:
    """取第一条用户消息的前 4 个词，被截断时追加省略号。"""

    first_user = next((m for m in messages if m.sender == "user" and m.text.strip()), None)
    if first_user is None:
        return FALLBACK_TITLE
    words = first_user.text.strip().split(" ")
    title = " ".join(words[:FALLBACK_WORDS])
    if len(words) > FALLBACK_WORDS:
        title += "..."
    return title


def build_title_context(messages: List[Message], max_chars: int = DEFAULT_CONTEXT_CHARS) -> str:
    lines: List[str] = []
    for msg in messages:
        if msg.error or not msg.text.strip():
            continue
        if msg.sender == "user":
            lines.append(f"user: {msg.text}")
            continue
        if is_welcome_message(msg) or msg.text.startswith(_TRANSIENT_PREFIXES):
            continue
        lines.append(f"model: {msg.text}")
    context = "\n".join(lines)
    if len(context) > max_chars:
        context = "..." + context[-max_chars:]
    return context


def clean_title(raw: str) -> str:
    title = raw.strip()
    if title[:1] in ("'", '"'):
        title = title[1:]
    if title[-1:] in ("'", '"'):
        title = title[:-1]
    if title.lower().startswith("title:"):
        title = title[len("title:"):].strip()
    words = title.split(" ")
    if len(words) > TITLE_MAX_WORDS:
        title = " ".join(words[:TITLE_MAX_WORDS]) + "..."
    return title.strip()


def generate_title(
    gateway: GatewayClient,
    messages: List[Message],
    model: str = TITLE_MODEL,
    max_context_chars: int = DEFAULT_CONTEXT_CHARS,
) -> str:
    """用后端生成 3-7 个词的标题，失败时返回兜底标题。"""

    context = build_title_context(messages, max_context_chars)
    if not context:
        return fallback_title(messages)

    prompt = load_prompt("title").format(conversation=context)
    try:
        raw = gateway.complete(prompt, model, SamplingConfig(temperature=0.3, max_output_tokens=60))
    except Exception as e:
        # 标题生成的错误对用户完全不可见
        log_event(logging.WARNING, "Title generation failed, using fallback", {}, error=str(e))
        return fallback_title(messages)

    title = clean_title(raw or "")
    if not title:
        log_event(logging.WARNING, "Empty title after cleaning, using fallback", {}, raw=raw)
        return fallback_title(messages)
    return title
