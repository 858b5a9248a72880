import os
import unittest
from pathlib import Path
from unittest.mock import patch

from mentionloop.interactions.config import load_config


class ConfigLoadTests(unittest.TestCase):
    def test_load_config_returns_config(self) -> None:
        cfg = load_config()
        self.assertIsNotNone(cfg)

    @patch.dict(os.environ, {}, clear=True)
    def test_defaults(self) -> None:
        cfg = load_config()
        self.assertEqual(cfg.search_limit, 20)
        self.assertEqual((cfg.poll_min_seconds, cfg.poll_max_seconds), (600, 900))
        self.assertEqual(cfg.max_reply_length, 280)
        self.assertFalse(cfg.dry_run)
        self.assertEqual(cfg.max_ticks, 0)
        self.assertIsNone(cfg.log_path)
        self.assertIsNone(cfg.openai_api_key)
        self.assertEqual(cfg.log_level, "INFO")

    @patch.dict(
        os.environ,
        {
            "MENTIONLOOP_AGENT_HANDLE": "@bot",
            "MENTIONLOOP_POLL_MIN_SECONDS": "20",
            "MENTIONLOOP_POLL_MAX_SECONDS": "10",
            "MENTIONLOOP_DRY_RUN": "yes",
            "MENTIONLOOP_CURSOR_PATH": "/tmp/cursor.txt",
            "MENTIONLOOP_LOG_LEVEL": "debug",
        },
        clear=True,
    )
    def test_env_overrides(self) -> None:
        cfg = load_config()
        self.assertEqual(cfg.agent_handle, "bot")
        self.assertEqual(cfg.agent_name, "bot")
        self.assertEqual((cfg.poll_min_seconds, cfg.poll_max_seconds), (10, 20))
        self.assertTrue(cfg.dry_run)
        self.assertEqual(cfg.cursor_path, Path("/tmp/cursor.txt"))
        self.assertEqual(cfg.log_level, "DEBUG")


if __name__ == "__main__":
    unittest.main()
