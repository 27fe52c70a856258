"""流式增量到消息状态的折叠。

StreamReconciler 把一串文本增量折叠成一条不断增长的消息，并支持一个带内控制串：
摘要追问场景下，模型先输出 REPLACE_SUMMARY_COMMAND，之后的内容是替换摘要的新文本。

控制串可能被切在两个增量之间，因此 NORMAL 模式下会暂扣主输出末尾最多
len(marker) - 1 个字符（仅当这段尾巴恰好是控制串的前缀时），等下一个增量到来再判断。
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Literal, Optional


REPLACE_SUMMARY_COMMAND = "[replace_summary_with_new_text]"


class StreamMode(str, Enum):
    NORMAL = "normal"
    REPLACING = "replacing"


UpdateKind = Literal["primary", "replacement", "replacement_started", "final", "error"]


@dataclass
class ReconcileUpdate:
    """一次状态更新。

    - primary: 主输出（聊天消息 / 追问回答）的完整当前文本。
    - replacement: 替换目标（摘要）的完整当前文本。
    - replacement_started: 检测到控制串，只发一次。
    - final: 流结束；empty 表示 NORMAL 模式下没有任何内容。
    - error: 流失败；text 为保留部分内容后的最终文本。
    """

    kind: UpdateKind
    text: str
    streaming: bool
    error: bool = False
    empty: bool = False


class StreamReconciler:
    def __init__(self, marker: Optional[str] = None):
        self._marker = marker or ""
        self.mode = StreamMode.NORMAL
        self.accumulated = ""
        self.replacement = ""
        self._held = ""
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def lookback(self) -> int:
        return max(len(self._marker) - 1, 0)

    def feed(self, delta: str) -> List[ReconcileUpdate]:
        if self._closed or not delta:
            return []
        if self.mode is StreamMode.REPLACING:
            replaced = self._append_replacement(delta)
            return [replaced] if self.replacement else []
        if not self._marker:
            self.accumulated += delta
            return [self._primary()]

        window = self._held + delta
        idx = window.find(self._marker)
        if idx >= 0:
            # 控制串之前（含窗口里暂扣的部分）全部丢弃
            self._held = ""
            self.mode = StreamMode.REPLACING
            updates = [ReconcileUpdate(kind="replacement_started", text="", streaming=True)]
            rest = window[idx + len(self._marker):]
            if rest:
                replaced = self._append_replacement(rest)
                if self.replacement:
                    updates.append(replaced)
            return updates

        keep = self._partial_marker_suffix(window)
        emit = window[: len(window) - keep] if keep else window
        self._held = window[len(window) - keep:] if keep else ""
        if not emit:
            return []
        self.accumulated += emit
        return [self._primary()]

    def finish(self) -> ReconcileUpdate:
        """流正常结束：冲刷暂扣的尾巴，发出唯一一次 streaming=False 的终态更新。"""

        if self._closed:
            raise RuntimeError("reconciler already closed")
        self._closed = True
        if self._held:
            self.accumulated += self._held
            self._held = ""
        if self.mode is StreamMode.REPLACING:
            return ReconcileUpdate(kind="final", text=self.replacement, streaming=False)
        return ReconcileUpdate(
            kind="final",
            text=self.accumulated,
            streaming=False,
            empty=self.accumulated == "",
        )

    def fail(self, error_text: str) -> ReconcileUpdate:
        """流失败：已经发出的部分内容保留，不回滚。"""

        if self._closed:
            raise RuntimeError("reconciler already closed")
        self._closed = True
        if self._held:
            self.accumulated += self._held
            self._held = ""
        partial = self.replacement if self.mode is StreamMode.REPLACING else self.accumulated
        text = f"{partial}\n\n{error_text}" if partial else error_text
        return ReconcileUpdate(kind="error", text=text, streaming=False, error=True)

    # ---- 内部 ----

    def _primary(self) -> ReconcileUpdate:
        return ReconcileUpdate(kind="primary", text=self.accumulated, streaming=True)

    def _append_replacement(self, text: str) -> ReconcileUpdate:
        if not self.replacement:
            # 控制串后通常跟着换行，替换文本开头的空白不保留
            text = text.lstrip()
        self.replacement += text
        return ReconcileUpdate(kind="replacement", text=self.replacement, streaming=True)

    def _partial_marker_suffix(self, window: str) -> int:
        """window 末尾最长的、恰好是控制串真前缀的后缀长度。"""

        longest = min(self.lookback, len(window))
        for size in range(longest, 0, -1):
            if self._marker.startswith(window[-size:]):
                return size
        return 0
