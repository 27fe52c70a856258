"""聊天引擎核心模块。

一轮对话的数据单向流动：
用户输入 → ConversationStore（追加）→ SessionManager（确保上下文）→
Gateway（打开流）→ StreamReconciler（折叠增量）→ ConversationStore（定稿）→ 持久化。
TitleScheduler 在轮次之外观察会话变化。

同一时刻只允许一轮对话在途（loading 标志）；切换/新建/删除会话会作废在途轮次，
之后到达的增量被静默丢弃。
"""

import logging
import time
from dataclasses import dataclass
from typing import Iterator, List, Literal, Optional
from uuid import uuid4

from chat_core.agents.reconciler import StreamReconciler
from chat_core.agents.session_manager import SessionManager
from chat_core.agents.title_scheduler import TitleScheduler
from chat_core.domain.conversation import (
    PLACEHOLDER_TITLE,
    Conversation,
    ConversationStore,
    is_effectively_new,
)
from chat_core.domain.exceptions import (
    BusinessError,
    ConfigurationError,
    EmptyResponseError,
    ValidationError,
)
from chat_core.domain.models import Message, Part, Preferences, ThinkingMeta
from chat_core.infrastructure.logging.logger import log_event
from chat_core.infrastructure.storage.json_store import JsonPreferenceStore
from chat_core.prompts import load_prompt
from chat_core.providers.base import GatewayClient
from chat_core.providers.registry import (
    AVAILABLE_CHAT_MODELS,
    DEFAULT_CHAT_MODEL,
    SUPPORTED_LANGUAGES,
    clamp_thinking_budget,
    get_friendly_model_name,
    supports_thinking,
)


DEFAULT_ERROR_TEXT = "Failed to get response from AI."
TITLE_LOADING_TEXT = "Generating title..."


@dataclass
class TurnEvent:
    """ChatEngine 产生的流式事件。

    kind:
        - "user": 用户消息已追加。
        - "delta": 助手消息内容增量（message.text 为当前完整文本）。
        - "final": 本轮正常结束。
        - "empty": 流结束但没有内容，engine.error 带提示。
        - "error": 本轮失败，message.error 为 True。
    """

    kind: Literal["user", "delta", "final", "empty", "error"]
    conversation_id: str
    message: Message
    error: Optional[str] = None


@dataclass
class _Turn:
    conversation_id: str
    trace_id: str
    assistant_id: Optional[str] = None
    abandoned: bool = False


def create_welcome_text(model: str) -> str:
    return load_prompt("welcome").format(friendly_name=get_friendly_model_name(model)).rstrip("\n")


class ChatEngine:
    def __init__(
        self,
        store: ConversationStore,
        gateway: GatewayClient,
        preferences_store: Optional[JsonPreferenceStore] = None,
        session_manager: Optional[SessionManager] = None,
        title_scheduler: Optional[TitleScheduler] = None,
        title_update_threshold: int = 3,
        default_model: str = DEFAULT_CHAT_MODEL,
    ):
        self._store = store
        self._gateway = gateway
        self._prefs_store = preferences_store
        self._sessions = session_manager or SessionManager()
        self._titles = title_scheduler
        self._title_threshold = title_update_threshold
        self._turn: Optional[_Turn] = None
        # 配置的默认模型不在可选列表里时退回内置默认
        self._default_model = default_model if default_model in AVAILABLE_CHAT_MODELS else DEFAULT_CHAT_MODEL
        self.preferences = Preferences(model=self._default_model)
        self.loading = False
        # 横幅级错误/提示文本
        self.error: Optional[str] = None

    # ---- 状态 ----

    @property
    def store(self) -> ConversationStore:
        return self._store

    @property
    def sessions(self) -> SessionManager:
        return self._sessions

    @property
    def model(self) -> str:
        return self.preferences.model

    @property
    def thinking_budget(self) -> int:
        return self.preferences.thinking_budget

    def messages(self) -> List[Message]:
        conv = self._store.active
        return self._store.messages_snapshot(conv.id) if conv else []

    @property
    def show_landing(self) -> bool:
        return is_effectively_new(self._store.active) and not self.loading

    def start(self) -> Conversation:
        """加载持久化的偏好与会话；记录的活动会话无效时新建一个。"""

        if self._prefs_store is not None:
            prefs = self._prefs_store.load_preferences(Preferences(model=self._default_model))
            if prefs.model not in AVAILABLE_CHAT_MODELS:
                prefs.model = self._default_model
            prefs.thinking_budget = clamp_thinking_budget(prefs.thinking_budget)
            self.preferences = prefs
        self._store.load()
        active = self._store.active
        if active is None:
            return self.start_new_chat()
        return active

    def check_configuration(self) -> bool:
        """启动时检查一次配置；缺少凭据时写入横幅错误而不是抛出。"""

        try:
            self._gateway.validate_configuration()
        except ConfigurationError as e:
            self.error = f"Configuration error: {e.message}"
            log_event(logging.ERROR, "Gateway not configured", {}, code=e.code, error=e.message)
            return False
        return True

    def current_title(self) -> str:
        conv = self._store.active
        friendly = get_friendly_model_name(self.model)
        placeholder = conv is None or not conv.title or conv.title == PLACEHOLDER_TITLE
        if placeholder and self._titles is not None and self._titles.title_loading:
            return TITLE_LOADING_TEXT
        if placeholder:
            return f"Chat with {friendly}"
        return conv.title

    # ---- 会话操作 ----

    def start_new_chat(self) -> Conversation:
        self._abandon_turn()
        conv = self._store.create_conversation(create_welcome_text(self.model))
        self._sessions.reset()
        self.error = None
        log_event(logging.INFO, "Created new conversation", {"conversation_id": conv.id})
        return conv

    def switch_chat(self, conversation_id: str) -> Conversation:
        if not self._store.exists(conversation_id):
            raise ValidationError(code="CONVERSATION_NOT_FOUND", message=conversation_id, http_status=404)
        self._abandon_turn()
        conv = self._store.switch_active(conversation_id)
        self._sessions.reset()
        self.error = None
        return conv

    def delete_chat(self, conversation_id: str) -> None:
        if not self._store.exists(conversation_id):
            raise ValidationError(code="CONVERSATION_NOT_FOUND", message=conversation_id, http_status=404)
        was_active = self._store.active_id == conversation_id
        if was_active or (self._turn is not None and self._turn.conversation_id == conversation_id):
            self._abandon_turn()
        self._store.delete_conversation(conversation_id)
        self._sessions.reset()
        log_event(logging.INFO, "Deleted conversation", {"conversation_id": conversation_id})
        if was_active:
            remaining = self._store.list()
            if remaining:
                self.switch_chat(remaining[0].id)
            else:
                self.start_new_chat()

    # ---- 偏好设置 ----

    def set_model(self, model: str) -> None:
        if model not in AVAILABLE_CHAT_MODELS:
            raise ValidationError(code="UNKNOWN_MODEL", message=f"Unknown model: {model}")
        self.preferences.model = model
        if self._prefs_store is not None:
            self._prefs_store.save_chat_model(model)
        self._refresh_session()

    def set_thinking_budget(self, budget: int) -> int:
        value = clamp_thinking_budget(budget)
        self.preferences.thinking_budget = value
        if self._prefs_store is not None:
            self._prefs_store.save_thinking_budget(value)
        self._refresh_session()
        return value

    def set_base_theme(self, theme: str) -> None:
        self.preferences.base_theme = theme
        if self._prefs_store is not None:
            self._prefs_store.save_base_theme(theme)

    def set_accent_theme(self, theme: str) -> None:
        self.preferences.accent_theme = theme
        if self._prefs_store is not None:
            self._prefs_store.save_accent_theme(theme)

    def set_custom_css(self, css: str) -> None:
        self.preferences.custom_css = css
        if self._prefs_store is not None:
            self._prefs_store.save_custom_css(css)

    def set_target_language(self, code: str) -> None:
        if code not in SUPPORTED_LANGUAGES:
            raise ValidationError(code="UNKNOWN_LANGUAGE", message=f"Unsupported language: {code}")
        self.preferences.target_language = code
        if self._prefs_store is not None:
            self._prefs_store.save_target_language(code)

    # ---- 对话轮次 ----

    def send_message(self, text: str) -> Optional[Message]:
        """发送一条消息并等待本轮结束，返回助手消息；空操作时返回 None。"""

        last: Optional[Message] = None
        for event in self.send_message_stream(text):
            if event.kind in ("final", "empty", "error"):
                last = event.message
        return last

    def send_message_stream(self, text: str) -> Iterator[TurnEvent]:
        """执行一轮流式对话，逐步产出 TurnEvent。

        输入为空或已有在途轮次时是空操作。
        """

        if not text.strip() or self.loading:
            return

        conv = self._store.active or self.start_new_chat()
        turn = _Turn(conversation_id=conv.id, trace_id=f"tr-{uuid4().hex}")
        self.error = None
        self.loading = True
        self._turn = turn
        try:
            yield from self._run_turn(conv, turn, text)
        finally:
            # 调用方提前关闭生成器或轮次异常退出时，loading 不能一直挂着
            if self._turn is turn:
                self._abandon_turn()

    # ---- 内部 ----

    def _run_turn(self, conv: Conversation, turn: _Turn, text: str) -> Iterator[TurnEvent]:
        start_time = time.time()
        log_ctx = {"trace_id": turn.trace_id, "conversation_id": conv.id}
        is_new = is_effectively_new(conv)
        # 在追加用户消息之前确保上下文，缓存的历史不包含本轮输入
        session = self._sessions.ensure_session(conv, self.model, self.thinking_budget)
        user_msg = self._store.append_user_message(conv.id, text)
        log_event(logging.INFO, "Stored user message", log_ctx, message_id=user_msg.id)
        if is_new and self._titles is not None:
            self._titles.schedule(conv.id, is_new=True)
        yield TurnEvent(kind="user", conversation_id=conv.id, message=user_msg)
        if self._is_stale(turn):
            return

        thinking_meta = None
        if supports_thinking(session.model):
            thinking_meta = ThinkingMeta(
                enabled=session.thinking_budget > 0,
                budget=session.thinking_budget,
                model_used=session.model,
            )
        try:
            placeholder = self._store.append_assistant_placeholder(conv.id, thinking_meta)
        except BusinessError as e:
            self.error = f"Error: {e.message}"
            self._end_turn(turn)
            log_event(logging.ERROR, "Could not open assistant message", log_ctx, code=e.code, error=e.message)
            yield TurnEvent(kind="error", conversation_id=conv.id, message=user_msg, error=self.error)
            return
        turn.assistant_id = placeholder.id

        user_parts = [Part(text=text)]
        reconciler = StreamReconciler()
        stream = None
        log_event(
            logging.INFO,
            "Calling gateway (stream)",
            log_ctx,
            provider=getattr(self._gateway, "name", ""),
            model=session.model,
            history_items=len(session.server_history),
        )
        try:
            stream = self._gateway.stream_turn(
                list(session.server_history),
                user_parts,
                session.model,
                session.sampling,
            )
            for delta in stream:
                if self._is_stale(turn):
                    log_event(logging.INFO, "Dropped chunks of abandoned turn", log_ctx)
                    return
                for update in reconciler.feed(delta):
                    msg = self._store.update_assistant_message(conv.id, placeholder.id, update.text)
                    yield TurnEvent(kind="delta", conversation_id=conv.id, message=msg)
        except Exception as e:
            if self._is_stale(turn):
                return
            message = getattr(e, "message", None) or str(e) or DEFAULT_ERROR_TEXT
            error_text = f"Error: {message}"
            failed = reconciler.fail(error_text)
            msg = self._store.finalize_assistant_message(conv.id, placeholder.id, failed.text, error=True)
            self.error = error_text
            self._end_turn(turn)
            self._sessions.reset()
            log_event(
                logging.ERROR,
                "Chat stream failed",
                log_ctx,
                error=message,
                code=e.code if isinstance(e, BusinessError) else type(e).__name__,
            )
            yield TurnEvent(kind="error", conversation_id=conv.id, message=msg, error=error_text)
            return
        finally:
            close = getattr(stream, "close", None)
            if close is not None:
                close()

        if self._is_stale(turn):
            return
        final = reconciler.finish()
        msg = self._store.finalize_assistant_message(conv.id, placeholder.id, final.text)
        self._end_turn(turn)

        if final.empty:
            note = EmptyResponseError().message
            self.error = note
            self._sessions.reset()
            log_event(logging.WARNING, "Empty response", log_ctx)
            yield TurnEvent(kind="empty", conversation_id=conv.id, message=msg, error=note)
            return

        if self._sessions.live is session:
            session.commit_turn(user_parts, final.text)
        else:
            # 在途期间上下文被替换过，下一轮从存储重建
            self._sessions.reset()

        count = self._store.increment_title_counter(conv.id)
        if (
            self._titles is not None
            and count >= self._title_threshold
            and self._store.get(conv.id).title != PLACEHOLDER_TITLE
        ):
            self._titles.schedule(conv.id)

        log_event(
            logging.INFO,
            "Completed chat turn",
            log_ctx,
            elapsed_seconds=round(time.time() - start_time, 2),
            assistant_message_id=msg.id,
        )
        yield TurnEvent(kind="final", conversation_id=conv.id, message=msg)

    def _refresh_session(self) -> None:
        conv = self._store.active
        if conv is not None:
            self._sessions.ensure_session(conv, self.model, self.thinking_budget)

    def _is_stale(self, turn: _Turn) -> bool:
        return (
            turn.abandoned
            or self._turn is not turn
            or self._store.active_id != turn.conversation_id
        )

    def _end_turn(self, turn: _Turn) -> None:
        if self._turn is turn:
            self._turn = None
            self.loading = False

    def _abandon_turn(self) -> None:
        """作废在途轮次：占位消息按当前内容定稿，之后的增量全部丢弃。"""

        turn = self._turn
        self._turn = None
        self.loading = False
        if turn is None:
            return
        turn.abandoned = True
        if turn.assistant_id and self._store.exists(turn.conversation_id):
            for msg in self._store.messages_snapshot(turn.conversation_id):
                if msg.id == turn.assistant_id and msg.streaming:
                    self._store.finalize_assistant_message(turn.conversation_id, msg.id, msg.text)
        log_event(logging.INFO, "Abandoned in-flight turn", {"trace_id": turn.trace_id, "conversation_id": turn.conversation_id})
