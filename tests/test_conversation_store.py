"""
Unit tests for the sqlite conversation store. Each test gets its own database file.
"""

from assistant_gateway.core.conversation_store import ConversationStore


class TestConversations:
    def test_create_and_get(self, store: ConversationStore) -> None:
        ref = store.create_conversation(user_id="u1", agent_id="asst_a", title="Hello")
        loaded = store.get_conversation(ref.id)
        assert loaded == ref
        assert loaded.agent_id == "asst_a"

    def test_get_unknown_returns_none(self, store: ConversationStore) -> None:
        assert store.get_conversation("nope") is None
        assert store.get_conversation("") is None

    def test_bind_agent_only_when_unbound(self, store: ConversationStore) -> None:
        unbound = store.create_conversation(agent_id=None)
        store.bind_agent(unbound.id, "asst_a")
        store.bind_agent(unbound.id, "asst_b")
        assert store.get_conversation(unbound.id).agent_id == "asst_a"

    def test_ensure_registers_caller_id_once(self, store: ConversationStore) -> None:
        first = store.ensure_conversation("c1", user_id="u1")
        second = store.ensure_conversation("c1", user_id="someone-else")
        assert first.id == second.id == "c1"
        assert second.user_id == "u1"
        assert second.title == "New Chat"

    def test_rename(self, store: ConversationStore) -> None:
        ref = store.create_conversation()
        store.rename(ref.id, "Launch plan")
        assert store.get_conversation(ref.id).title == "Launch plan"

    def test_relative_path_resolves_under_project_root(self) -> None:
        s = ConversationStore("data/somewhere.db")
        assert s.db_path.is_absolute()
        assert s.db_path.parts[-2:] == ("data", "somewhere.db")


class TestSaveTurn:
    def test_same_triple_twice_stores_one_turn(self, store: ConversationStore) -> None:
        ref = store.create_conversation()
        first = store.save_turn(ref.id, "user", "Hello")
        second = store.save_turn(ref.id, "user", "Hello")
        assert first == second
        assert len(store.list_turns(ref.id)) == 1

    def test_different_role_or_conversation_is_a_new_turn(self, store: ConversationStore) -> None:
        a = store.create_conversation()
        b = store.create_conversation()
        store.save_turn(a.id, "user", "Hello")
        store.save_turn(a.id, "assistant", "Hello")
        store.save_turn(b.id, "user", "Hello")
        assert len(store.list_turns(a.id)) == 2
        assert len(store.list_turns(b.id)) == 1

    def test_turns_are_listed_oldest_first(self, store: ConversationStore) -> None:
        ref = store.create_conversation()
        for text in ("one", "two", "three"):
            store.save_turn(ref.id, "user", text)
        assert [t.content for t in store.list_turns(ref.id)] == ["one", "two", "three"]

    def test_client_ref_resolves_to_durable_id(self, store: ConversationStore) -> None:
        ref = store.create_conversation()
        durable = store.save_turn(ref.id, "assistant", "Answer", client_ref="temp-assistant-1")
        assert store.resolve_client_ref("temp-assistant-1") == durable
        assert store.resolve_client_ref("temp-unknown") is None
        assert store.resolve_client_ref("") is None

    def test_repeat_save_records_new_client_ref(self, store: ConversationStore) -> None:
        ref = store.create_conversation()
        durable = store.save_turn(ref.id, "assistant", "Answer", client_ref="temp-1")
        assert store.save_turn(ref.id, "assistant", "Answer", client_ref="temp-2") == durable
        assert store.resolve_client_ref("temp-2") == durable
