import json

from chat_core.api.proxy import handle_proxy_request
from chat_core.domain.exceptions import ApiError, ConfigurationError


class FakeGemini:
    name = "gemini"

    def __init__(self, deltas=None, error=None, configured=True):
        self.deltas = deltas or []
        self.error = error
        self.configured = configured
        self.calls = []

    def validate_configuration(self):
        if not self.configured:
            raise ConfigurationError(message="API key not configured on the server")

    def stream_turn(self, prior_history, message_parts, model, sampling):
        self.calls.append(("chat", prior_history, message_parts, model, sampling))
        return self._gen()

    def stream_prompt(self, prompt, model, sampling=None):
        self.calls.append(("prompt", prompt, model))
        return self._gen()

    def complete(self, prompt, model, sampling):
        self.calls.append(("complete", prompt, model, sampling))
        if self.error:
            raise self.error
        return "Roman Holiday"

    def _gen(self):
        if self.error:
            raise self.error
        yield from self.deltas


def test_proxy_rejects_non_post():
    resp = handle_proxy_request("GET", None, client=FakeGemini())
    assert resp.status == 405
    assert resp.json == {"error": "Method not allowed"}


def test_proxy_missing_api_key():
    resp = handle_proxy_request("POST", b"{}", client=FakeGemini(configured=False))
    assert resp.status == 500
    assert resp.json["error"] == "API key not configured on the server"
    assert resp.json["code"] == "MISSING_API_KEY"


def test_proxy_chat_streams_text():
    client = FakeGemini(deltas=["Hel", "lo"])
    body = {
        "type": "chat",
        "payload": {
            "history": [{"role": "user", "parts": [{"text": "hi"}]}, {"role": "model", "parts": [{"text": "yo"}]}],
            "message": {"parts": [{"text": "next"}]},
            "model": "gemini-2.5-flash",
            "config": {"systemInstruction": "sys", "thinkingConfig": {"thinkingBudget": 2}},
        },
    }
    resp = handle_proxy_request("POST", json.dumps(body), client=client)
    assert resp.status == 200
    assert resp.content_type.startswith("text/plain")
    assert b"".join(resp.stream).decode("utf-8") == "Hello"
    _, history, parts, model, sampling = client.calls[0]
    assert [h.role for h in history] == ["user", "model"]
    assert parts[0].text == "next"
    assert sampling.thinking_budget == 2
    assert sampling.system_instruction == "sys"


def test_proxy_generate_title_uses_fixed_model():
    client = FakeGemini()
    body = {"type": "generate-title", "payload": {"titlePrompt": "conversation"}}
    resp = handle_proxy_request("POST", body, client=client)
    assert resp.status == 200
    assert resp.json == {"text": "Roman Holiday"}
    _, prompt, model, sampling = client.calls[0]
    assert prompt == "conversation"
    assert model == "gemini-2.5-flash"
    assert sampling.temperature == 0.3
    assert sampling.max_output_tokens == 60


def test_proxy_summarize_follow_up():
    client = FakeGemini(deltas=["sum"])
    body = {"type": "summarize-follow-up", "payload": {"prompt": "p", "model": "gemini-2.5-pro"}}
    resp = handle_proxy_request("POST", body, client=client)
    assert list(resp.stream) == [b"sum"]
    assert client.calls[0] == ("prompt", "p", "gemini-2.5-pro")


def test_proxy_invalid_type():
    resp = handle_proxy_request("POST", {"type": "translate", "payload": {}}, client=FakeGemini())
    assert resp.status == 400
    assert resp.json == {"error": "Invalid proxy type"}


def test_proxy_unwraps_json_error_message():
    nested = json.dumps({"error": {"code": 400, "message": "API key not valid"}})
    client = FakeGemini(error=ApiError(code="API_ERROR", message=nested, http_status=400))
    resp = handle_proxy_request("POST", {"type": "generate-title", "payload": {"titlePrompt": "x"}}, client=client)
    assert resp.status == 400
    assert resp.json["error"] == "API key not valid"


def test_proxy_stream_error_before_first_chunk():
    client = FakeGemini(error=ApiError(code="SAFETY_BLOCKED", message="blocked"))
    body = {"type": "summarize", "payload": {"prompt": "p", "model": "gemini-2.5-flash"}}
    resp = handle_proxy_request("POST", body, client=client)
    assert resp.status == 400
    assert resp.json == {"error": "blocked", "code": "SAFETY_BLOCKED"}
