import tempfile
from pathlib import Path

from chat_core.domain.conversation import WELCOME_TEXT_BASE, ConversationStore
from chat_core.domain.models import Preferences
from chat_core.infrastructure.storage.json_store import ALL_CHATS_KEY, JsonPreferenceStore


def test_json_store_preferences_defaults():
    with tempfile.TemporaryDirectory() as d:
        store = JsonPreferenceStore(root=Path(d) / ".storage")
        prefs = store.load_preferences()
        assert prefs == Preferences()


def test_json_store_preferences_round_trip():
    with tempfile.TemporaryDirectory() as d:
        root = Path(d) / ".storage"
        store = JsonPreferenceStore(root=root)
        store.save_preferences(
            Preferences(
                base_theme="light",
                accent_theme="ocean",
                custom_css="body { color: red; }",
                target_language="fr",
                thinking_budget=3,
                model="gemini-2.5-pro",
            )
        )
        prefs = JsonPreferenceStore(root=root).load_preferences()
        assert prefs.base_theme == "light"
        assert prefs.accent_theme == "ocean"
        assert prefs.custom_css == "body { color: red; }"
        assert prefs.target_language == "fr"
        assert prefs.thinking_budget == 3
        assert prefs.model == "gemini-2.5-pro"


def test_json_store_corrupt_file_falls_back():
    with tempfile.TemporaryDirectory() as d:
        root = Path(d) / ".storage"
        store = JsonPreferenceStore(root=root)
        (root / "state" / f"{ALL_CHATS_KEY}.json").write_text("{not json", encoding="utf-8")
        assert store.load_chats() == []


def test_json_store_active_chat_id_removed():
    with tempfile.TemporaryDirectory() as d:
        store = JsonPreferenceStore(root=Path(d) / ".storage")
        store.save_active_chat_id("chat-1")
        assert store.load_active_chat_id() == "chat-1"
        store.save_active_chat_id(None)
        assert store.load_active_chat_id() is None


def test_json_store_backs_conversation_store():
    with tempfile.TemporaryDirectory() as d:
        root = Path(d) / ".storage"
        convs = ConversationStore(persistence=JsonPreferenceStore(root=root))
        conv = convs.create_conversation(WELCOME_TEXT_BASE)
        convs.append_user_message(conv.id, "hello there")

        restored = ConversationStore(persistence=JsonPreferenceStore(root=root))
        assert restored.load() == conv.id
        assert restored.active_id == conv.id
        msgs = restored.messages_snapshot(conv.id)
        assert [m.text for m in msgs] == ["hello there"]
