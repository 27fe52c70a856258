from chat_core.agents.titles import (
    FALLBACK_TITLE,
    build_title_context,
    clean_title,
    fallback_title,
    generate_title,
)
from chat_core.domain.exceptions import NetworkError
from chat_core.domain.models import Message


class FailingGateway:
    name = "fake"

    def complete(self, prompt, model, sampling):
        raise NetworkError(code="NETWORK_ERROR", message="offline")


class EchoGateway:
    name = "fake"

    def __init__(self, reply):
        self.reply = reply
        self.calls = []

    def complete(self, prompt, model, sampling):
        self.calls.append((prompt, model, sampling))
        return self.reply


def _messages(*texts):
    msgs = []
    for i, text in enumerate(texts):
        sender = "user" if i % 2 == 0 else "assistant"
        msgs.append(Message(id=f"m{i}", text=text, sender=sender))
    return msgs


def test_fallback_title_on_gateway_failure():
    title = generate_title(FailingGateway(), _messages("Plan my trip to Rome"))
    assert title == "Plan my trip to..."


def test_fallback_title_short_message():
    assert fallback_title(_messages("Hi there")) == "Hi there"
    assert fallback_title([]) == FALLBACK_TITLE


def test_clean_title_strips_quotes_and_prefix():
    assert clean_title('"Title: Roman Holiday Planning"') == "Roman Holiday Planning"
    assert clean_title("one two three four five six seven eight nine") == (
        "one two three four five six seven..."
    )


def test_generate_title_uses_cleaned_reply():
    gw = EchoGateway("'Exploring Ancient Rome'")
    title = generate_title(gw, _messages("Plan my trip to Rome", "Sure, here is a plan."))
    assert title == "Exploring Ancient Rome"
    prompt, model, sampling = gw.calls[0]
    assert "user: Plan my trip to Rome" in prompt
    assert "model: Sure, here is a plan." in prompt
    assert model == "gemini-2.5-flash"
    assert sampling.temperature == 0.3
    assert sampling.max_output_tokens == 60


def test_generate_title_empty_reply_falls_back():
    title = generate_title(EchoGateway('""'), _messages("Plan my trip to Rome"))
    assert title == "Plan my trip to..."


def test_title_context_keeps_tail():
    msgs = _messages("a" * 50, "b" * 50, "c" * 50)
    msgs.append(Message(id="err", text="Error: boom", sender="assistant", error=True))
    context = build_title_context(msgs, max_chars=60)
    assert context.startswith("...")
    assert len(context) == 63
    assert context.endswith("c" * 50)
    assert "Error" not in context
