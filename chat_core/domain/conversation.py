"""会话模型与内存中的会话存储。

ConversationStore 是消息状态的唯一所有者：所有追加/定稿/删除都通过它完成，
每次变更后整体刷写到持久化适配器。UI 层只读取快照。
"""

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol
from uuid import uuid4

from .exceptions import BusinessError, ValidationError
from .models import HistoryItem, Message, Part, ThinkingMeta


WELCOME_TEXT_BASE = "Hello! I'm NeuraMorphosis AI."
PLACEHOLDER_TITLE = "New Chat"


@dataclass
class Conversation:
    id: str
    title: str
    created_at: datetime
    messages: List[Message] = field(default_factory=list)
    # 距上次标题更新累计的助手消息数
    title_dirty_counter: int = 0

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "createdAt": self.created_at.astimezone(timezone.utc).isoformat().replace("+00:00", "Z"),
            "messages": [m.to_dict() for m in self.messages],
            "aiMessagesSinceLastTitleUpdate": self.title_dirty_counter,
        }

    @classmethod
    def from_record(cls, data: Dict[str, Any]) -> "Conversation":
        created_raw = str(data.get("createdAt") or "")
        try:
            created_at = datetime.fromisoformat(created_raw.replace("Z", "+00:00"))
        except ValueError:
            created_at = datetime.now(timezone.utc)
        return cls(
            id=str(data["id"]),
            title=data.get("title") or PLACEHOLDER_TITLE,
            created_at=created_at,
            messages=[Message.from_dict(m) for m in data.get("messages") or []],
            title_dirty_counter=int(data.get("aiMessagesSinceLastTitleUpdate") or 0),
        )


class ChatPersistence(Protocol):
    """ConversationStore 依赖的持久化接口（见 JsonPreferenceStore）。"""

    def save_chats(self, chats: List[Dict[str, Any]]) -> None:
        ...

    def load_chats(self) -> List[Dict[str, Any]]:
        ...

    def save_active_chat_id(self, chat_id: Optional[str]) -> None:
        ...

    def load_active_chat_id(self) -> Optional[str]:
        ...


def is_welcome_message(message: Message) -> bool:
    return message.sender == "assistant" and message.text.startswith(WELCOME_TEXT_BASE)


def is_effectively_new(conversation: Optional[Conversation]) -> bool:
    """最多一条消息且该消息是欢迎语时，视为全新会话（显示落地页）。"""

    if conversation is None:
        return True
    msgs = conversation.messages
    return len(msgs) <= 1 and (not msgs or is_welcome_message(msgs[0]))


def map_messages_to_history(messages: List[Message]) -> List[HistoryItem]:
    """把本地消息映射为后端历史记录。

    欢迎语、空文本、出错以及仍在流式中的消息都不会进入历史。
    """

    history: List[HistoryItem] = []
    for msg in messages:
        if is_welcome_message(msg) or msg.error or msg.streaming:
            continue
        if not msg.text.strip():
            continue
        history.append(
            HistoryItem(
                role="user" if msg.sender == "user" else "model",
                parts=[Part(text=msg.text)],
            )
        )
    return history


def _new_id(prefix: str) -> str:
    return f"{prefix}-{uuid4().hex}"


class ConversationStore:
    """所有会话的内存模型，变更后刷写到持久化适配器。

    - 会话按最近创建在前排序。
    - 每个会话同一时刻最多一条 streaming=True 的助手消息。
    - 持久化失败由适配器记录日志并吞掉，内存状态始终是权威。
    """

    def __init__(self, persistence: Optional[ChatPersistence] = None):
        self._persistence = persistence
        self._lock = threading.RLock()
        self._chats: List[Conversation] = []
        self._active_id: Optional[str] = None

    # ---- 读取 ----

    @property
    def active_id(self) -> Optional[str]:
        return self._active_id

    @property
    def active(self) -> Optional[Conversation]:
        with self._lock:
            return self._find(self._active_id) if self._active_id else None

    def get(self, conversation_id: str) -> Conversation:
        with self._lock:
            conv = self._find(conversation_id)
            if conv is None:
                raise BusinessError(code="CONVERSATION_NOT_FOUND", message=conversation_id, http_status=404)
            return conv

    def exists(self, conversation_id: str) -> bool:
        with self._lock:
            return self._find(conversation_id) is not None

    def list(self) -> List[Conversation]:
        with self._lock:
            return list(self._chats)

    def messages_snapshot(self, conversation_id: str) -> List[Message]:
        with self._lock:
            return [m.copy() for m in self.get(conversation_id).messages]

    # ---- 会话级操作 ----

    def load(self) -> Optional[str]:
        """从持久化层恢复会话列表，返回记录的活动会话 ID（可能已失效）。"""

        if self._persistence is None:
            return None
        records = self._persistence.load_chats()
        chats: List[Conversation] = []
        for rec in records:
            try:
                conv = Conversation.from_record(rec)
            except (KeyError, TypeError, ValueError):
                continue
            # 上次进程在流式途中退出时留下的标记，重启后没有轮次再去定稿
            for m in conv.messages:
                m.streaming = False
            chats.append(conv)
        with self._lock:
            self._chats = chats
            active = self._persistence.load_active_chat_id()
            self._active_id = active if active and self._find(active) else None
            return active

    def create_conversation(self, welcome_text: str) -> Conversation:
        now = datetime.now(timezone.utc)
        welcome = Message(id=_new_id("ai-welcome"), text=welcome_text, sender="assistant")
        conv = Conversation(
            id=_new_id("chat"),
            title=PLACEHOLDER_TITLE,
            created_at=now,
            messages=[welcome],
        )
        with self._lock:
            self._chats.insert(0, conv)
            self._active_id = conv.id
            self._flush()
        return conv

    def switch_active(self, conversation_id: str) -> Conversation:
        with self._lock:
            conv = self.get(conversation_id)
            self._active_id = conv.id
            self._flush()
            return conv

    def delete_conversation(self, conversation_id: str) -> None:
        with self._lock:
            conv = self.get(conversation_id)
            self._chats.remove(conv)
            if self._active_id == conversation_id:
                self._active_id = None
            self._flush()

    def set_title(self, conversation_id: str, title: str, reset_counter: bool = True) -> None:
        with self._lock:
            conv = self.get(conversation_id)
            conv.title = title
            if reset_counter:
                conv.title_dirty_counter = 0
            self._flush()

    def increment_title_counter(self, conversation_id: str) -> int:
        with self._lock:
            conv = self.get(conversation_id)
            conv.title_dirty_counter += 1
            self._flush()
            return conv.title_dirty_counter

    # ---- 消息级操作 ----

    def append_user_message(self, conversation_id: str, text: str) -> Message:
        with self._lock:
            conv = self.get(conversation_id)
            if is_effectively_new(conv):
                # 第一条用户消息替换掉欢迎语
                conv.messages = []
            msg = Message(id=_new_id("user"), text=text, sender="user")
            conv.messages.append(msg)
            self._flush()
            return msg.copy()

    def append_assistant_placeholder(
        self,
        conversation_id: str,
        thinking_meta: Optional[ThinkingMeta] = None,
    ) -> Message:
        with self._lock:
            conv = self.get(conversation_id)
            if any(m.streaming for m in conv.messages):
                raise ValidationError(
                    code="TURN_IN_FLIGHT",
                    message="Another assistant message is still streaming",
                    conversation_id=conversation_id,
                )
            msg = Message(
                id=_new_id("ai"),
                text="",
                sender="assistant",
                streaming=True,
                thinking_meta=thinking_meta,
            )
            conv.messages.append(msg)
            self._flush()
            return msg.copy()

    def update_assistant_message(self, conversation_id: str, message_id: str, text: str) -> Message:
        """流式过程中的增量更新，只改内存，不刷写。"""

        with self._lock:
            msg = self._find_message(conversation_id, message_id)
            msg.text = text
            msg.streaming = True
            return msg.copy()

    def finalize_assistant_message(
        self,
        conversation_id: str,
        message_id: str,
        text: str,
        error: bool = False,
    ) -> Message:
        with self._lock:
            msg = self._find_message(conversation_id, message_id)
            msg.text = text
            msg.streaming = False
            msg.error = error
            self._flush()
            return msg.copy()

    # ---- 内部 ----

    def _find(self, conversation_id: Optional[str]) -> Optional[Conversation]:
        for conv in self._chats:
            if conv.id == conversation_id:
                return conv
        return None

    def _find_message(self, conversation_id: str, message_id: str) -> Message:
        for msg in self.get(conversation_id).messages:
            if msg.id == message_id:
                return msg
        raise BusinessError(code="MESSAGE_NOT_FOUND", message=message_id, http_status=404)

    def _flush(self) -> None:
        if self._persistence is None:
            return
        self._persistence.save_chats([c.to_record() for c in self._chats])
        self._persistence.save_active_chat_id(self._active_id)
