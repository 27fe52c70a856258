import json
import logging
import tempfile
from pathlib import Path

from chat_core.infrastructure.logging.logger import JsonLineFormatter, setup_logger


def _record(msg, extra=None):
    record = logging.LogRecord("chat_core", logging.INFO, __file__, 1, msg, None, None)
    if extra is not None:
        record.extra = extra
    return record


def test_formatter_merges_context_fields():
    line = JsonLineFormatter().format(_record("Completed chat turn", {"trace_id": "tr-1", "elapsed_seconds": 0.5}))
    payload = json.loads(line)
    assert payload["msg"] == "Completed chat turn"
    assert payload["level"] == "INFO"
    assert payload["trace_id"] == "tr-1"
    assert payload["elapsed_seconds"] == 0.5
    assert payload["ts"].endswith("Z")


def test_formatter_redacts_content_fields():
    long_text = "x" * 200
    line = JsonLineFormatter(redact=True).format(
        _record(long_text, {"text": long_text, "conversation_id": "chat-" + "1" * 80})
    )
    payload = json.loads(line)
    assert len(payload["msg"]) == 64
    assert len(payload["text"]) == 64
    # 标识字段不截断
    assert payload["conversation_id"] == "chat-" + "1" * 80


def test_setup_logger_writes_json_lines():
    with tempfile.TemporaryDirectory() as d:
        logger = setup_logger("chat_core.test_logger", log_dir=Path(d), redact=False)
        try:
            logger.info("Stored user message", extra={"extra": {"message_id": "user-1"}})
            lines = (Path(d) / "chat.log").read_text(encoding="utf-8").splitlines()
        finally:
            for handler in list(logger.handlers):
                handler.close()
                logger.removeHandler(handler)
        assert json.loads(lines[-1])["message_id"] == "user-1"
