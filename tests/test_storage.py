import tempfile
import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path

from mentionloop.interactions.models import (
    AgentIdentity,
    ConversationContext,
    Interaction,
    MemoryRecord,
    string_to_uuid,
)
from mentionloop.interactions.storage import MemoryStore


TS = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _item(mid, conv="c1", handle="alice"):
    return Interaction(
        id=str(mid),
        author_id=f"uid-{handle}",
        author_handle=handle,
        author_display_name=handle.title(),
        text=f"post {mid}",
        conversation_id=conv,
        created_at=TS + timedelta(seconds=int(mid)),
    )


class MemoryStoreTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.store = MemoryStore(Path(self._tmp.name) / "db" / "memory.sqlite3")
        self.agent = AgentIdentity(handle="bot", display_name="Bot", bio="Helpful.")

    def tearDown(self):
        self._tmp.cleanup()

    def _remember(self, item):
        user_id = string_to_uuid(item.author_id)
        room_id = string_to_uuid(item.conversation_id)
        self.store.ensure_room(room_id)
        self.store.ensure_user(user_id, item.author_handle, item.author_display_name, "platform")
        self.store.ensure_participant(user_id, room_id)
        return self.store.create_memory(MemoryRecord.from_interaction(item))

    def test_create_memory_is_idempotent(self):
        self.assertTrue(self._remember(_item(1)))
        self.assertFalse(self._remember(_item(1)))
        self.assertEqual(len(self.store.recent_memories(string_to_uuid("c1"))), 1)

    def test_ensure_calls_are_repeatable(self):
        room_id = string_to_uuid("c1")
        for _ in range(2):
            self.store.ensure_room(room_id)
            self.store.ensure_user("u1", "alice", "Alice", "platform")
            self.store.ensure_participant("u1", room_id)

    def test_memory_round_trips_through_sqlite(self):
        self._remember(_item(3))
        memory = self.store.get_memory_by_id(string_to_uuid("3"))
        self.assertEqual(memory.source_id, "3")
        self.assertEqual(memory.text, "post 3")
        self.assertEqual(memory.created_at, TS + timedelta(seconds=3))

    def test_recent_memories_are_chronological_and_limited(self):
        for mid in (1, 2, 3, 4):
            self._remember(_item(mid))
        recent = self.store.recent_memories(string_to_uuid("c1"), limit=2)
        self.assertEqual([m.source_id for m in recent], ["3", "4"])

    def test_compose_state_formats_recent_posts(self):
        self._remember(_item(1))
        ctx = ConversationContext(interactions=(_item(2),))
        state = self.store.compose_state(self.agent, ctx, string_to_uuid("c1"), extra_key="x")
        self.assertIn("@alice: post 1", state["recentPosts"])
        self.assertEqual(state["roomId"], string_to_uuid("c1"))
        self.assertEqual(state["extra_key"], "x")
        self.assertIn("ID: 2", state["currentPost"])

    def test_update_recent_message_state_sees_new_memories(self):
        room_id = string_to_uuid("c1")
        ctx = ConversationContext(interactions=(_item(2),))
        state = self.store.compose_state(self.agent, ctx, room_id)
        self.assertEqual(state["recentPosts"], "")
        self._remember(_item(2))
        updated = self.store.update_recent_message_state(state)
        self.assertIn("post 2", updated["recentPosts"])
        self.assertEqual(state["recentPosts"], "")

    def test_recent_interactions_exclude_current_room(self):
        for item in (_item(1, conv="c1"), _item(2, conv="c2")):
            self._remember(item)
            self.store.ensure_participant(self.agent.agent_id, string_to_uuid(item.conversation_id))
        others = self.store.recent_interactions(self.agent.agent_id, exclude_room_id=string_to_uuid("c1"))
        self.assertEqual([m.source_id for m in others], ["2"])

    def test_hook_failures_do_not_propagate(self):
        seen = []
        self.store.register_evaluator(lambda message, state: 1 / 0)
        self.store.register_evaluator(lambda message, state: "ok")
        self.store.register_action_handler(lambda message, responses, state: seen.append(len(responses)))
        memory = MemoryRecord.from_interaction(_item(1))

        with self.assertLogs("mentionloop.interactions", level="WARNING"):
            results = self.store.evaluate(memory, {})
        self.store.process_actions(memory, [memory], {})

        self.assertEqual(results, ["ok"])
        self.assertEqual(seen, [1])


if __name__ == "__main__":
    unittest.main()
