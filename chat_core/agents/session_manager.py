"""会话上下文管理。

后端对每次调用是无状态的（每轮都重发历史），所以这里的“会话”只是客户端缓存的
(模型, 思考预算, 系统指令, 历史) 四元组，而不是服务端句柄。重建很便宜，
正确性（不带着过期的系统指令或错误的模型）比避免重建更重要。

状态机（按会话）：Uninitialized → Active → (参数变化) → Active'；
新建会话、切换会话、删除会话时 reset() 回到 Uninitialized。
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from chat_core.domain.conversation import Conversation, map_messages_to_history
from chat_core.domain.models import HistoryItem, Part, SamplingConfig
from chat_core.infrastructure.logging.logger import log_event
from chat_core.providers.registry import build_system_instruction


@dataclass
class SessionContext:
    """某个会话当前有效的上下文。"""

    conversation_id: str
    model: str
    thinking_budget: int
    system_instruction: str
    server_history: List[HistoryItem] = field(default_factory=list)

    @property
    def sampling(self) -> SamplingConfig:
        return SamplingConfig(
            thinking_budget=self.thinking_budget,
            system_instruction=self.system_instruction,
        )

    def commit_turn(self, user_parts: List[Part], reply_text: str) -> None:
        """一轮成功结束后，把这轮对话追加到缓存的历史。"""

        self.server_history.append(HistoryItem(role="user", parts=list(user_parts)))
        if reply_text.strip():
            self.server_history.append(HistoryItem(role="model", parts=[Part(text=reply_text)]))


class SessionManager:
    """持有按会话 ID 索引的上下文映射，同一时刻最多一个有效上下文。

    每个进程实例化一次，由 ChatEngine 持有并显式传递。
    """

    def __init__(self):
        self._contexts: Dict[str, SessionContext] = {}
        self._live_id: Optional[str] = None
        self._lock = threading.Lock()
        self.rebuild_count = 0

    @property
    def live(self) -> Optional[SessionContext]:
        with self._lock:
            return self._contexts.get(self._live_id) if self._live_id else None

    def ensure_session(self, conversation: Conversation, model: str, thinking_budget: int) -> SessionContext:
        """确保给定会话有一个与 (model, thinking_budget) 匹配的有效上下文。

        参数未变时是空操作；否则从 conversation.messages 重建，
        并整体替换（而不是合并）之前的上下文。
        """

        with self._lock:
            current = self._contexts.get(self._live_id) if self._live_id else None
            if (
                current is not None
                and current.conversation_id == conversation.id
                and current.model == model
                and current.thinking_budget == thinking_budget
            ):
                return current

            ctx = SessionContext(
                conversation_id=conversation.id,
                model=model,
                thinking_budget=thinking_budget,
                system_instruction=build_system_instruction(model),
                server_history=map_messages_to_history(conversation.messages),
            )
            self._contexts = {conversation.id: ctx}
            self._live_id = conversation.id
            self.rebuild_count += 1
        log_event(
            logging.INFO,
            "Session context rebuilt",
            {"conversation_id": conversation.id},
            model=model,
            thinking_budget=thinking_budget,
            history_items=len(ctx.server_history),
        )
        return ctx

    def reset(self) -> None:
        """无条件丢弃当前上下文，下次 ensure_session 从头重建。"""

        with self._lock:
            self._contexts.clear()
            self._live_id = None
