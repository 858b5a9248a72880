from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

from .models import MemoryRecord


logger = logging.getLogger("mentionloop.interactions")


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def timestamp_slug() -> str:
    return _utc_now_iso().replace(":", "-")


def _clip_text(value: Any, limit: int) -> str:
    text = str(value or "").strip()
    if len(text) <= limit:
        return text
    return text[:limit].rstrip()


def write_debug_file(debug_dir: Path, name: str, content: str) -> Optional[Path]:
    """Best effort: returns the written path, or None when the write failed."""
    path = Path(debug_dir) / f"{name}.txt"
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    except OSError as e:
        logger.warning("Debug artifact write failed path=%s error=%s", path, e)
        return None
    return path


def write_generation_transcript(
    debug_dir: Path,
    interaction_id: str,
    context: str,
    author_handle: str,
    interaction_text: str,
    output: str,
) -> Optional[Path]:
    info = (
        f"Context:\n\n{context}\n\n"
        f"Selected Post: {interaction_id} - {author_handle}: {interaction_text}\n"
        f"Agent's Output:\n{output}"
    )
    return write_debug_file(Path(debug_dir) / "replies", f"reply_generation_{interaction_id}", info)


def append_action_journal(
    path: Path,
    *,
    action_type: str,
    target_id: str,
    posted_id: str,
    content: str,
    in_reply_to: Optional[str] = None,
    url: Optional[str] = None,
    meta: Optional[Dict[str, Any]] = None,
) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    row: Dict[str, Any] = {
        "ts": _utc_now_iso(),
        "action_type": action_type.strip().lower(),
        "target_id": str(target_id).strip(),
        "posted_id": str(posted_id).strip(),
        "content": _clip_text(content, 5000),
    }
    if in_reply_to:
        row["in_reply_to"] = str(in_reply_to).strip()
    if url:
        row["url"] = str(url).strip()
    if isinstance(meta, dict) and meta:
        row["meta"] = meta
    with path.open("a", encoding="utf-8") as f:
        f.write(json.dumps(row, ensure_ascii=True) + "\n")


def journal_action_handler(path: Path):
    """Build a ``process_actions`` hook that journals every posted reply unit."""

    def _handler(message: MemoryRecord, responses: Sequence[MemoryRecord], state: Dict[str, Any]) -> None:
        for response in responses:
            try:
                append_action_journal(
                    path,
                    action_type="reply",
                    target_id=message.source_id,
                    posted_id=response.source_id,
                    content=response.text,
                    in_reply_to=response.in_reply_to,
                    url=response.url,
                    meta={
                        "chunk_index": response.content.get("chunk_index"),
                        "chunk_total": response.content.get("chunk_total"),
                        "room_id": message.room_id,
                    },
                )
            except OSError as e:
                logger.warning("Action journal write failed path=%s error=%s", path, e)

    return _handler
