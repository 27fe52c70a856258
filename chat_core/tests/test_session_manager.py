from chat_core.agents.session_manager import SessionManager
from chat_core.domain.conversation import WELCOME_TEXT_BASE, ConversationStore
from chat_core.domain.models import Part


def _store_with_exchange():
    store = ConversationStore()
    conv = store.create_conversation(WELCOME_TEXT_BASE)
    store.append_user_message(conv.id, "hi")
    placeholder = store.append_assistant_placeholder(conv.id)
    store.finalize_assistant_message(conv.id, placeholder.id, "hello")
    return store, store.get(conv.id)


def test_ensure_session_is_idempotent():
    _, conv = _store_with_exchange()
    sm = SessionManager()
    first = sm.ensure_session(conv, "gemini-2.5-flash", 0)
    second = sm.ensure_session(conv, "gemini-2.5-flash", 0)
    assert first is second
    assert sm.rebuild_count == 1
    assert [h.role for h in first.server_history] == ["user", "model"]


def test_ensure_session_rebuilds_on_model_or_budget_change():
    _, conv = _store_with_exchange()
    sm = SessionManager()
    sm.ensure_session(conv, "gemini-2.5-flash", 0)
    ctx = sm.ensure_session(conv, "gemini-2.5-pro", 0)
    assert sm.rebuild_count == 2
    assert "Pro (Advanced & Powerful)" in ctx.system_instruction
    sm.ensure_session(conv, "gemini-2.5-pro", 2)
    assert sm.rebuild_count == 3
    assert sm.live.thinking_budget == 2


def test_switching_conversation_replaces_context():
    store, conv = _store_with_exchange()
    other = store.create_conversation(WELCOME_TEXT_BASE)
    sm = SessionManager()
    sm.ensure_session(conv, "gemini-2.5-flash", 0)
    ctx = sm.ensure_session(other, "gemini-2.5-flash", 0)
    assert sm.live is ctx
    assert ctx.conversation_id == other.id
    # 只有欢迎语的新会话历史为空
    assert ctx.server_history == []


def test_reset_forces_rebuild():
    _, conv = _store_with_exchange()
    sm = SessionManager()
    sm.ensure_session(conv, "gemini-2.5-flash", 0)
    sm.reset()
    assert sm.live is None
    sm.ensure_session(conv, "gemini-2.5-flash", 0)
    assert sm.rebuild_count == 2


def test_commit_turn_extends_history():
    _, conv = _store_with_exchange()
    sm = SessionManager()
    ctx = sm.ensure_session(conv, "gemini-2.5-flash", 1)
    ctx.commit_turn([Part(text="next")], "answer")
    assert [h.text for h in ctx.server_history] == ["hi", "hello", "next", "answer"]
    sampling = ctx.sampling
    assert sampling.thinking_budget == 1
    assert sampling.system_instruction == ctx.system_instruction
