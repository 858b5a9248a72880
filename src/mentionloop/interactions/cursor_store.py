from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional


logger = logging.getLogger("mentionloop.interactions")


class CursorStore:
    """Last processed interaction id, kept as a single text value on disk."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> Optional[str]:
        if not self.path.exists():
            logger.warning("Cursor file not found path=%s; processing everything fetched", self.path)
            return None
        try:
            value = self.path.read_text(encoding="utf-8").strip()
        except OSError as e:
            logger.error("Error loading cursor path=%s error=%s", self.path, e)
            return None
        return value or None

    def save(self, cursor: Optional[str]) -> bool:
        if cursor is None:
            return True
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(str(cursor), encoding="utf-8")
            os.replace(tmp_path, self.path)
        except OSError as e:
            logger.error("Error saving cursor=%s path=%s error=%s", cursor, self.path, e)
            return False
        return True

    def reset(self) -> bool:
        try:
            self.path.unlink()
        except FileNotFoundError:
            return True
        except OSError as e:
            logger.error("Error removing cursor path=%s error=%s", self.path, e)
            return False
        return True
