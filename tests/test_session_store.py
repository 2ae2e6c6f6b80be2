import unittest

from life_manager.models import Message, Role
from life_manager.session_store import InMemoryMessageStore, SessionStore


class SessionStoreTests(unittest.TestCase):
    def test_get_creates_session_once(self) -> None:
        store = SessionStore()
        first = store.get("s1")
        self.assertIs(first, store.get("s1"))
        self.assertIn("s1", store)
        self.assertEqual(1, len(store))

    def test_lock_is_per_session(self) -> None:
        store = SessionStore()
        self.assertIs(store.lock("a"), store.lock("a"))
        self.assertIsNot(store.lock("a"), store.lock("b"))

    def test_history_is_restored_from_message_store(self) -> None:
        messages = InMemoryMessageStore()
        messages.append(Message(Role.USER, "hi", "s1"))
        messages.append(Message(Role.ASSISTANT, "hello", "s1"))

        session = SessionStore(messages).get("s1")

        self.assertEqual(["hi", "hello"], [m.content for m in session.history])

    def test_append_writes_through(self) -> None:
        store = SessionStore()
        session = store.get("s1")
        store.append(session, Message(Role.USER, "hi", "s1"))
        self.assertEqual(1, len(session.history))
        self.assertEqual(1, len(store.messages.load_messages("s1")))
        self.assertEqual(1, store.messages.get_session("s1")["userMessages"])

    def test_clear_resets_history_and_thread_mapping(self) -> None:
        store = SessionStore()
        session = store.get("s1")
        store.append(session, Message(Role.USER, "hi", "s1"))
        session.thread_id, session.thread_run_id = "thread_1", "run_1"

        store.clear(session)

        self.assertEqual([], session.history)
        self.assertIsNone(session.thread_id)
        self.assertIsNone(session.thread_run_id)
        self.assertIsNone(store.messages.get_session("s1"))


if __name__ == "__main__":
    unittest.main()
