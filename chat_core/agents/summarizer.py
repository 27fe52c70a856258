"""文本摘要与追问。

SummarizationSession 先把原文流式摘要成 display_text；之后用户可以追问。
追问时模型若要改写摘要，会先输出 REPLACE_SUMMARY_COMMAND，之后的内容替换 display_text；
否则直接回答，回答写入 follow_up_response。
"""

import logging
from typing import Iterator, Optional

from chat_core.agents.reconciler import REPLACE_SUMMARY_COMMAND, ReconcileUpdate, StreamReconciler
from chat_core.domain.exceptions import ValidationError
from chat_core.infrastructure.logging.logger import log_event
from chat_core.prompts import load_prompt
from chat_core.providers.base import GatewayClient
from chat_core.providers.registry import DEFAULT_CHAT_MODEL


class SummarizationSession:
    def __init__(self, gateway: GatewayClient, original_text: str, model: str = DEFAULT_CHAT_MODEL):
        if not original_text.strip():
            raise ValidationError(code="EMPTY_TEXT", message="Cannot summarize empty text.")
        self._gateway = gateway
        self.original_text = original_text
        self.model = model
        self.display_text = original_text
        self.summarizing = False
        self.complete = False
        self.summary_error: Optional[str] = None

        self.follow_up_response = ""
        self.follow_up_error: Optional[str] = None
        self.asking_follow_up = False
        self.replaced = False

    def summarize(self) -> Iterator[str]:
        """流式生成摘要，每次产出当前完整的摘要文本。"""

        if self.summarizing:
            return
        self.summarizing = True
        self.summary_error = None
        self.complete = False
        prompt = load_prompt("summarize").format(original_text=self.original_text)
        reconciler = StreamReconciler()
        try:
            for delta in self._gateway.stream_prompt(prompt, self.model):
                for update in reconciler.feed(delta):
                    self.display_text = update.text
                    yield self.display_text
            final = reconciler.finish()
            if final.empty:
                self.display_text = ""
                self.summary_error = "AI returned an empty summary."
        except Exception as e:
            message = getattr(e, "message", None) or str(e) or "Unknown error"
            self.summary_error = f"Summarization failed: {message}"
            log_event(logging.ERROR, "Summarization failed", {}, error=message)
        finally:
            self.summarizing = False
            self.complete = True

    def ask_follow_up(self, question: str) -> Iterator[ReconcileUpdate]:
        """追问：产出折叠后的更新，replacement 类更新会改写 display_text。"""

        if not question.strip() or not self.display_text.strip() or not self.complete:
            self.follow_up_error = (
                "Cannot ask follow-up: question is empty, or no summary context available."
            )
            return
        self.asking_follow_up = True
        self.follow_up_error = None
        self.follow_up_response = ""
        self.replaced = False

        prompt = load_prompt("follow_up").format(
            command=REPLACE_SUMMARY_COMMAND,
            summary=self.display_text,
            question=question,
        )
        reconciler = StreamReconciler(marker=REPLACE_SUMMARY_COMMAND)
        try:
            for delta in self._gateway.stream_prompt(prompt, self.model):
                for update in reconciler.feed(delta):
                    self._apply(update)
                    yield update
            final = reconciler.finish()
            if self.replaced:
                self.display_text = final.text
            else:
                self.follow_up_response = final.text
            yield final
        except Exception as e:
            message = getattr(e, "message", None) or str(e) or "Unknown error"
            self.follow_up_error = f"Follow-up failed: {message}"
            log_event(logging.ERROR, "Follow-up failed", {}, error=message)
        finally:
            self.asking_follow_up = False

    def export_text(self) -> str:
        if not self.complete or not self.display_text.strip():
            raise ValidationError(
                code="NOTHING_TO_EXPORT",
                message="Nothing to export. The summary is empty or not yet generated.",
            )
        return self.display_text

    def _apply(self, update: ReconcileUpdate) -> None:
        if update.kind == "replacement_started":
            self.replaced = True
            self.display_text = ""
        elif update.kind == "replacement":
            self.display_text = update.text
        elif update.kind == "primary":
            self.follow_up_response = update.text
