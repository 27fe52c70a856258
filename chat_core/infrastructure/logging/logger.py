"""JSON Lines 日志。

每条记录一行 JSON：固定字段 ts/level/name/msg，加上 log_event 传入的结构化上下文
（trace_id、conversation_id 等）。开启 log_redact_content 时，消息正文和
对话内容字段会被截断，避免把用户输入完整写进日志文件。
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from chat_core.config.settings import settings


REDACT_LIMIT = 64
# 可能携带对话原文的字段
CONTENT_FIELDS = ("text", "prompt", "reply", "title")


def _clip(value: Any) -> Any:
    if isinstance(value, str) and len(value) > REDACT_LIMIT:
        return value[:REDACT_LIMIT]
    return value


class JsonLineFormatter(logging.Formatter):
    def __init__(self, redact: bool = False):
        super().__init__()
        self.redact = redact

    def format(self, record: logging.LogRecord) -> str:
        msg = record.getMessage() or ""
        payload: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "name": record.name,
            "msg": _clip(msg) if self.redact else msg,
        }
        extra = getattr(record, "extra", None)
        if isinstance(extra, dict):
            for key, value in extra.items():
                payload[key] = _clip(value) if self.redact and key in CONTENT_FIELDS else value
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def setup_logger(
    name: str = "chat_core",
    log_dir: Optional[Path] = None,
    redact: Optional[bool] = None,
) -> logging.Logger:
    logger = logging.getLogger(name)
    logger.setLevel(logging.INFO)
    if logger.handlers:
        return logger
    target = Path(log_dir or settings.log_dir)
    target.mkdir(parents=True, exist_ok=True)
    fh = logging.FileHandler(target / "chat.log", encoding="utf-8")
    fh.setLevel(logging.INFO)
    fh.setFormatter(JsonLineFormatter(settings.log_redact_content if redact is None else redact))
    logger.addHandler(fh)
    return logger


logger = setup_logger()


def log_event(level: int, message: str, log_ctx: dict, **fields) -> None:
    """带结构化上下文写一条日志。"""

    payload = dict(log_ctx)
    payload.update(fields)
    logger.log(level, message, extra={"extra": payload})
