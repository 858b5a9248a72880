import json
import logging
import os
import tempfile
import unittest
from dataclasses import replace
from pathlib import Path
from unittest.mock import patch

from mentionloop.interactions.artifacts import (
    append_action_journal,
    journal_action_handler,
    write_debug_file,
    write_generation_transcript,
)
from mentionloop.interactions.config import DEFAULT_BIO, load_config
from mentionloop.interactions.driver import load_identity
from mentionloop.interactions.logging_utils import LOGGER_NAME, setup_logging
from mentionloop.interactions.models import MemoryRecord


class _Profile:
    def __init__(self, profile=None, error=None):
        self.profile = profile or {}
        self.error = error

    def get_me(self):
        if self.error:
            raise self.error
        return self.profile


@patch.dict(os.environ, {}, clear=True)
class ArtifactTests(unittest.TestCase):
    def test_transcript_lands_under_replies(self):
        with tempfile.TemporaryDirectory() as td:
            path = write_generation_transcript(Path(td), "42", "ctx", "alice", "@bot hi", "hello")
            self.assertEqual(path, Path(td) / "replies" / "reply_generation_42.txt")
            body = path.read_text(encoding="utf-8")
            self.assertIn("Selected Post: 42 - alice: @bot hi", body)
            self.assertIn("Agent's Output:\nhello", body)

    def test_debug_write_failure_is_swallowed(self):
        with tempfile.TemporaryDirectory() as td:
            blocker = Path(td) / "blocker"
            blocker.write_text("file", encoding="utf-8")
            with self.assertLogs("mentionloop.interactions", level="WARNING"):
                self.assertIsNone(write_debug_file(blocker, "ctx", "x"))

    def test_journal_handler_writes_one_row_per_unit(self):
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "journal.jsonl"
            mention = MemoryRecord(id="m", user_id="u", room_id="r", text="@bot hi", source_id="5")
            responses = [
                MemoryRecord(
                    id=f"p{i}",
                    user_id="a",
                    room_id="r",
                    text=f"part {i}",
                    source_id=str(100 + i),
                    kind="response",
                    content={"chunk_index": i, "chunk_total": 2},
                )
                for i in range(2)
            ]
            journal_action_handler(path)(mention, responses, {})

            rows = [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]
            self.assertEqual([r["posted_id"] for r in rows], ["100", "101"])
            self.assertTrue(all(r["action_type"] == "reply" and r["target_id"] == "5" for r in rows))
            self.assertEqual(rows[1]["meta"]["chunk_index"], 1)

    def test_append_action_journal_clips_content(self):
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "j" / "journal.jsonl"
            append_action_journal(path, action_type="Reply", target_id="1", posted_id="2", content="x" * 6000)
            row = json.loads(path.read_text(encoding="utf-8"))
            self.assertEqual(row["action_type"], "reply")
            self.assertEqual(len(row["content"]), 5000)
            self.assertNotIn("meta", row)


@patch.dict(os.environ, {}, clear=True)
class IdentityTests(unittest.TestCase):
    def test_character_file_supplies_persona(self):
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "character.json"
            path.write_text(
                json.dumps({"name": "Helper", "bio": ["Knows APIs.", "Likes tea."], "lore": "Built in a lab."}),
                encoding="utf-8",
            )
            cfg = replace(load_config(), agent_handle="helper", agent_user_id="uid-1", character_path=path)
            identity = load_identity(cfg, _Profile(error=AssertionError("should not be called")))

        self.assertEqual(identity.display_name, "Helper")
        self.assertEqual(identity.bio, "Knows APIs. Likes tea.")
        self.assertEqual(identity.lore, ["Built in a lab."])

    def test_profile_fills_missing_handle_and_id(self):
        cfg = replace(load_config(), character_path=None)
        identity = load_identity(cfg, _Profile({"user": {"username": "@bot", "id": 9}}))
        self.assertEqual(identity.handle, "bot")
        self.assertEqual(identity.user_id, "9")
        self.assertEqual(identity.bio, DEFAULT_BIO)

    def test_unknown_handle_is_an_error(self):
        cfg = replace(load_config(), character_path=None)
        with self.assertRaises(ValueError):
            load_identity(cfg, _Profile(error=RuntimeError("offline")))


@patch.dict(os.environ, {"NO_COLOR": "1"}, clear=True)
class LoggingSetupTests(unittest.TestCase):
    def tearDown(self):
        logger = logging.getLogger(LOGGER_NAME)
        for handler in list(logger.handlers):
            handler.close()
        logger.handlers.clear()
        logger.propagate = True
        logger.setLevel(logging.NOTSET)

    def test_setup_logging_writes_to_file(self):
        with tempfile.TemporaryDirectory() as td:
            log_path = Path(td) / "logs" / "loop.log"
            cfg = replace(load_config(), log_level="DEBUG", log_path=log_path)
            logger = setup_logging(cfg)
            logger.debug("Sleeping seconds=%s task=%s", 1, "interactions")
            for handler in logger.handlers:
                handler.flush()
            self.assertIn("Sleeping seconds=1 task=interactions", log_path.read_text(encoding="utf-8"))


if __name__ == "__main__":
    unittest.main()
