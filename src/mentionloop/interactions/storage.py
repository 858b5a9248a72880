from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

from .errors import PersistenceError
from .models import AgentIdentity, ConversationContext, MemoryRecord


logger = logging.getLogger("mentionloop.interactions")

Evaluator = Callable[[MemoryRecord, Dict[str, Any]], Any]
ActionHandler = Callable[[MemoryRecord, Sequence[MemoryRecord], Dict[str, Any]], Any]

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS rooms (
        id TEXT PRIMARY KEY,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS accounts (
        id TEXT PRIMARY KEY,
        handle TEXT NOT NULL,
        display_name TEXT NOT NULL,
        source TEXT NOT NULL,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS participants (
        user_id TEXT NOT NULL,
        room_id TEXT NOT NULL,
        PRIMARY KEY (user_id, room_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS memories (
        id TEXT PRIMARY KEY,
        kind TEXT NOT NULL,
        source_id TEXT NOT NULL,
        user_id TEXT NOT NULL,
        room_id TEXT NOT NULL,
        text TEXT NOT NULL,
        url TEXT,
        in_reply_to TEXT,
        reply_root TEXT,
        content TEXT NOT NULL,
        created_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_memories_room_ts ON memories(room_id, created_at)",
    "CREATE INDEX IF NOT EXISTS idx_memories_reply_root ON memories(reply_root)",
)


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _connect(path: Path) -> sqlite3.Connection:
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(path)
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA synchronous=NORMAL")
    return conn


def _row_to_memory(row: Sequence[Any]) -> MemoryRecord:
    try:
        content = json.loads(row[9] or "{}")
    except ValueError:
        content = {}
    return MemoryRecord(
        id=row[0],
        kind=row[1],
        source_id=row[2],
        user_id=row[3],
        room_id=row[4],
        text=row[5],
        url=row[6],
        in_reply_to=row[7],
        content=content if isinstance(content, dict) else {},
        created_at=datetime.fromisoformat(row[10]),
    )


_MEMORY_COLUMNS = "id, kind, source_id, user_id, room_id, text, url, in_reply_to, reply_root, content, created_at"


class MemoryStore:
    """sqlite-backed rooms, accounts and memory records for the agent."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._evaluators: List[Evaluator] = []
        self._action_handlers: List[ActionHandler] = []
        try:
            with _connect(self.path) as conn:
                for statement in _SCHEMA:
                    conn.execute(statement)
                conn.commit()
        except sqlite3.Error as e:
            raise PersistenceError(f"Memory store init failed path={self.path}: {e}") from e

    def _execute(self, sql: str, params: Sequence[Any] = ()) -> List[Sequence[Any]]:
        try:
            with _connect(self.path) as conn:
                rows = conn.execute(sql, tuple(params)).fetchall()
                conn.commit()
            return rows
        except sqlite3.Error as e:
            raise PersistenceError(f"Memory store query failed: {e}") from e

    def ensure_room(self, room_id: str) -> None:
        self._execute("INSERT OR IGNORE INTO rooms (id, created_at) VALUES (?, ?)", (room_id, _utc_now_iso()))

    def ensure_user(self, user_id: str, handle: str, display_name: str, source: str) -> None:
        self._execute(
            "INSERT OR IGNORE INTO accounts (id, handle, display_name, source, created_at) VALUES (?, ?, ?, ?, ?)",
            (user_id, handle, display_name or handle, source, _utc_now_iso()),
        )

    def ensure_participant(self, user_id: str, room_id: str) -> None:
        self._execute("INSERT OR IGNORE INTO participants (user_id, room_id) VALUES (?, ?)", (user_id, room_id))

    def get_memory_by_id(self, memory_id: str) -> Optional[MemoryRecord]:
        rows = self._execute(f"SELECT {_MEMORY_COLUMNS} FROM memories WHERE id = ?", (memory_id,))
        return _row_to_memory(rows[0]) if rows else None

    def create_memory(self, memory: MemoryRecord) -> bool:
        """Insert ``memory`` unless a record with the same id exists. Returns True when inserted."""
        if self.get_memory_by_id(memory.id) is not None:
            return False
        self._execute(
            f"INSERT OR IGNORE INTO memories ({_MEMORY_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                memory.id,
                memory.kind,
                memory.source_id,
                memory.user_id,
                memory.room_id,
                memory.text,
                memory.url,
                memory.in_reply_to,
                memory.content.get("reply_root"),
                json.dumps(memory.content, ensure_ascii=True, sort_keys=True),
                memory.created_at.isoformat(),
            ),
        )
        return True

    def responses_to(self, source_id: str) -> List[MemoryRecord]:
        rows = self._execute(
            f"SELECT {_MEMORY_COLUMNS} FROM memories WHERE kind = 'response' AND reply_root = ? ORDER BY created_at",
            (source_id,),
        )
        memories = [_row_to_memory(row) for row in rows]
        memories.sort(key=lambda m: int(m.content.get("chunk_index") or 0))
        return memories

    def recent_memories(self, room_id: str, limit: int = 10) -> List[MemoryRecord]:
        rows = self._execute(
            f"SELECT {_MEMORY_COLUMNS} FROM memories WHERE room_id = ? ORDER BY created_at DESC LIMIT ?",
            (room_id, limit),
        )
        return list(reversed([_row_to_memory(row) for row in rows]))

    def recent_interactions(
        self,
        agent_user_id: str,
        exclude_room_id: Optional[str] = None,
        limit: int = 10,
    ) -> List[MemoryRecord]:
        rows = self._execute(
            f"""
            SELECT {_MEMORY_COLUMNS} FROM memories
            WHERE room_id IN (SELECT room_id FROM participants WHERE user_id = ?)
              AND room_id != ?
            ORDER BY created_at DESC LIMIT ?
            """,
            (agent_user_id, exclude_room_id or "", limit),
        )
        return list(reversed([_row_to_memory(row) for row in rows]))

    def _handles(self, user_ids: Sequence[str]) -> Dict[str, str]:
        ids = sorted(set(user_ids))
        if not ids:
            return {}
        placeholders = ", ".join("?" for _ in ids)
        rows = self._execute(f"SELECT id, handle FROM accounts WHERE id IN ({placeholders})", ids)
        return {row[0]: row[1] for row in rows}

    def format_memories(self, memories: Sequence[MemoryRecord]) -> str:
        handles = self._handles([m.user_id for m in memories])
        lines = []
        for memory in memories:
            handle = handles.get(memory.user_id, "unknown")
            lines.append(f"@{handle}: {memory.text}")
        return "\n".join(lines)

    def compose_state(
        self,
        identity: AgentIdentity,
        context: ConversationContext,
        room_id: str,
        **extra: Any,
    ) -> Dict[str, Any]:
        recent_posts = self.format_memories(self.recent_memories(room_id))
        recent_interactions = self.format_memories(
            self.recent_interactions(identity.agent_id, exclude_room_id=room_id)
        )
        state: Dict[str, Any] = {
            "agentName": identity.display_name,
            "agentHandle": identity.handle,
            "bio": identity.bio,
            "lore": identity.lore,
            "characterPostExamples": identity.post_examples,
            "postDirections": identity.post_directions,
            "roomId": room_id,
            "recentPosts": f"Recent posts in this conversation:\n{recent_posts}" if recent_posts else "",
            "recentPostInteractions": recent_interactions,
            "conversationThread": context.format(),
            "currentPost": context.current.format(),
        }
        state.update(extra)
        return state

    def update_recent_message_state(self, state: Dict[str, Any]) -> Dict[str, Any]:
        room_id = state.get("roomId")
        if not room_id:
            return state
        recent_posts = self.format_memories(self.recent_memories(room_id))
        updated = dict(state)
        updated["recentPosts"] = f"Recent posts in this conversation:\n{recent_posts}" if recent_posts else ""
        return updated

    def register_evaluator(self, evaluator: Evaluator) -> None:
        self._evaluators.append(evaluator)

    def register_action_handler(self, handler: ActionHandler) -> None:
        self._action_handlers.append(handler)

    def evaluate(self, message: MemoryRecord, state: Dict[str, Any]) -> List[Any]:
        results: List[Any] = []
        for evaluator in self._evaluators:
            try:
                results.append(evaluator(message, state))
            except Exception as e:
                logger.warning("Evaluator failed memory_id=%s error=%s", message.id, e)
        return results

    def process_actions(
        self,
        message: MemoryRecord,
        responses: Sequence[MemoryRecord],
        state: Dict[str, Any],
    ) -> None:
        for handler in self._action_handlers:
            try:
                handler(message, responses, state)
            except Exception as e:
                logger.warning("Action handler failed memory_id=%s error=%s", message.id, e)
