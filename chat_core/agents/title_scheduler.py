"""防抖的后台标题生成任务。

整个进程只有一个待执行任务：每次 schedule() 都整体替换（last-write-wins）
之前的任务并重新计时；计时到期后检查任务是否已过期，再调用 generate_title。
"""

import logging
import threading
from dataclasses import dataclass
from typing import Callable, List, Optional

from chat_core.agents.titles import DEFAULT_CONTEXT_CHARS, generate_title
from chat_core.domain.conversation import PLACEHOLDER_TITLE, ConversationStore
from chat_core.domain.models import Message
from chat_core.infrastructure.logging.logger import log_event
from chat_core.providers.base import GatewayClient
from chat_core.providers.registry import TITLE_MODEL


@dataclass
class TitleJob:
    conversation_id: str
    is_new: bool
    messages: List[Message]


TimerFactory = Callable[[float, Callable[[], None]], "threading.Timer"]


class TitleScheduler:
    def __init__(
        self,
        store: ConversationStore,
        gateway: GatewayClient,
        delay: float = 2.0,
        timer_factory: Optional[TimerFactory] = None,
        model: str = TITLE_MODEL,
        max_context_chars: int = DEFAULT_CONTEXT_CHARS,
    ):
        self._store = store
        self._gateway = gateway
        self._delay = delay
        self._timer_factory = timer_factory or threading.Timer
        self._model = model
        self._max_context_chars = max_context_chars
        self._lock = threading.Lock()
        self._job: Optional[TitleJob] = None
        self._timer = None
        self.title_loading = False

    @property
    def pending(self) -> Optional[TitleJob]:
        return self._job

    def schedule(self, conversation_id: str, is_new: bool = False) -> bool:
        """用当前消息快照替换待执行任务并重新计时，返回是否已排队。"""

        if not self._store.exists(conversation_id):
            return False
        snapshot = self._store.messages_snapshot(conversation_id)
        if not snapshot and not is_new:
            return False

        with self._lock:
            self._job = TitleJob(conversation_id=conversation_id, is_new=is_new, messages=snapshot)
            if self._timer is not None:
                self._timer.cancel()
            timer = self._timer_factory(self._delay, self._fire)
            timer.daemon = True
            self._timer = timer
        timer.start()
        return True

    def cancel(self) -> None:
        with self._lock:
            self._job = None
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    def run_pending(self) -> None:
        """立即执行待执行任务（测试或退出前冲刷用）。"""

        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
        self._fire()

    def _fire(self) -> None:
        with self._lock:
            job = self._job
            self._job = None
            self._timer = None
        if job is None:
            return

        log_ctx = {"conversation_id": job.conversation_id}
        if not self._store.exists(job.conversation_id):
            log_event(logging.INFO, "Skipping title update for deleted chat", log_ctx)
            return
        if job.conversation_id != self._store.active_id and not job.is_new:
            log_event(logging.INFO, "Skipping stale title update", log_ctx)
            return

        has_user_text = any(m.sender == "user" and m.text.strip() for m in job.messages)
        if not has_user_text:
            # 只有新会话回到占位标题，已有会话保留原标题
            if job.is_new:
                self._store.set_title(job.conversation_id, PLACEHOLDER_TITLE, reset_counter=False)
            return

        self.title_loading = True
        try:
            title = generate_title(self._gateway, job.messages, self._model, self._max_context_chars)
            if self._store.exists(job.conversation_id):
                self._store.set_title(job.conversation_id, title, reset_counter=True)
                log_event(logging.INFO, "Title updated", log_ctx, title=title)
        finally:
            self.title_loading = False
