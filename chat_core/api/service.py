"""对外 API 服务模块。

提供简化的函数接口供上层应用调用。
"""

from typing import Any, Dict, Optional

from chat_core.agents.chat_engine import ChatEngine
from chat_core.agents.title_scheduler import TitleScheduler
from chat_core.config.settings import settings
from chat_core.domain.conversation import ConversationStore
from chat_core.infrastructure.logging.logger import logger
from chat_core.infrastructure.storage.json_store import JsonPreferenceStore
from chat_core.providers import create_provider


_engine: Optional[ChatEngine] = None


def get_default_engine() -> ChatEngine:
    """获取默认的 ChatEngine 实例（单例）。

    首次调用时加载持久化状态并检查一次配置；配置错误写入 engine.error，不抛出。
    """
    global _engine
    if _engine is None:
        prefs_store = JsonPreferenceStore(root=settings.storage_root)
        store = ConversationStore(persistence=prefs_store)
        gateway = create_provider()
        titles = TitleScheduler(
            store,
            gateway,
            delay=settings.title_debounce_seconds,
            max_context_chars=settings.title_context_chars,
        )
        engine = ChatEngine(
            store=store,
            gateway=gateway,
            preferences_store=prefs_store,
            title_scheduler=titles,
            title_update_threshold=settings.title_update_threshold,
            default_model=settings.default_model,
        )
        engine.start()
        engine.check_configuration()
        _engine = engine
    return _engine


def _message_dict(m) -> Dict[str, Any]:
    return {
        "id": m.id,
        "sender": m.sender,
        "text": m.text,
        "is_error": m.error,
        "is_streaming": m.streaming,
    }


def send_message(text: str, conversation_id: Optional[str] = None) -> Dict[str, Any]:
    """发送一条消息并等待本轮结束。

    Args:
        text: 用户输入内容
        conversation_id: 会话ID（可选，不提供则使用当前活动会话）

    Returns:
        包含会话ID、助手消息与横幅错误的字典；空操作时 assistant_message 为 None
    """
    try:
        engine = get_default_engine()
        if conversation_id and conversation_id != engine.store.active_id:
            engine.switch_chat(conversation_id)
        reply = engine.send_message(text)
        return {
            "conversation_id": engine.store.active_id,
            "assistant_message": _message_dict(reply) if reply else None,
            "error": engine.error,
        }
    except Exception as e:
        logger.error(f"Chat failed: {e}", extra={"extra": {
            "conversation_id": conversation_id,
            "error": str(e),
        }})
        raise


def list_conversations() -> list[Dict[str, Any]]:
    """列出所有会话，最新的在前。

    Returns:
        会话列表，每项包含 id, title, created_at, message_count
    """
    engine = get_default_engine()
    return [
        {
            "id": c.id,
            "title": c.title,
            "created_at": c.created_at.isoformat(),
            "message_count": len(c.messages),
            "active": c.id == engine.store.active_id,
        }
        for c in engine.store.list()
    ]


def get_conversation_messages(conversation_id: str) -> list[Dict[str, Any]]:
    """获取会话的所有消息。"""
    engine = get_default_engine()
    return [_message_dict(m) for m in engine.store.messages_snapshot(conversation_id)]
