from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple


_UUID_NAMESPACE = uuid.UUID("6ba7b811-9dad-11d1-80b4-00c04fd430c8")


def string_to_uuid(value: Any) -> str:
    """Map a platform id (or handle) to a stable store id."""
    return str(uuid.uuid5(_UUID_NAMESPACE, str(value)))


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Decision(enum.Enum):
    RESPOND = "RESPOND"
    IGNORE = "IGNORE"
    STOP = "STOP"


class SearchMode(enum.Enum):
    LATEST = "latest"
    TOP = "top"


def _id_key(value: str) -> Tuple[int, Any]:
    text = str(value).strip()
    if text.isdigit():
        # Snowflake-style ids grow in length over time; compare numerically.
        return (0, int(text))
    return (1, text)


def compare_ids(a: str, b: str) -> int:
    """Return -1, 0 or 1 as interaction id ``a`` is older, equal or newer than ``b``."""
    ka, kb = _id_key(a), _id_key(b)
    if ka[0] != kb[0]:
        ka, kb = (0, str(a)), (0, str(b))
    if ka[1] < kb[1]:
        return -1
    if ka[1] > kb[1]:
        return 1
    return 0


def id_newer_than(candidate: str, cursor: Optional[str]) -> bool:
    if cursor is None or not str(cursor).strip():
        return True
    return compare_ids(candidate, cursor) > 0


def advance_cursor(cursor: Optional[str], interaction_id: str) -> str:
    """Cursors only move forward."""
    if cursor is None or compare_ids(interaction_id, cursor) > 0:
        return interaction_id
    return cursor


@dataclass(frozen=True)
class Interaction:
    id: str
    author_id: str
    author_handle: str
    author_display_name: str
    text: str
    conversation_id: str
    created_at: datetime
    parent_id: Optional[str] = None
    url: Optional[str] = None

    def format(self) -> str:
        return (
            f"  ID: {self.id}\n"
            f"  From: {self.author_display_name} (@{self.author_handle})\n"
            f"  Text: {self.text}"
        )


@dataclass(frozen=True)
class ConversationContext:
    interactions: Tuple[Interaction, ...]

    def __post_init__(self) -> None:
        if not self.interactions:
            raise ValueError("A conversation needs at least one interaction.")

    def __len__(self) -> int:
        return len(self.interactions)

    def __iter__(self):
        return iter(self.interactions)

    @property
    def current(self) -> Interaction:
        return self.interactions[-1]

    @property
    def root(self) -> Interaction:
        return self.interactions[0]

    @property
    def ancestors(self) -> Tuple[Interaction, ...]:
        return self.interactions[:-1]

    def format(self) -> str:
        lines: List[str] = []
        for item in self.interactions:
            lines.append(f"@{item.author_handle} ({item.author_display_name}): {item.text}")
        return "\n".join(lines)


@dataclass(frozen=True)
class ResponseUnit:
    index: int
    text: str
    interaction: Interaction
    in_reply_to: str
    reply_root: str
    total: int

    @property
    def id(self) -> str:
        return self.interaction.id


@dataclass
class MemoryRecord:
    id: str
    user_id: str
    room_id: str
    text: str
    source_id: str
    kind: str = "interaction"
    url: Optional[str] = None
    in_reply_to: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)
    content: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_interaction(cls, interaction: Interaction) -> "MemoryRecord":
        return cls(
            id=string_to_uuid(interaction.id),
            user_id=string_to_uuid(interaction.author_id),
            room_id=string_to_uuid(interaction.conversation_id),
            text=interaction.text,
            source_id=interaction.id,
            kind="interaction",
            url=interaction.url,
            in_reply_to=string_to_uuid(interaction.parent_id) if interaction.parent_id else None,
            created_at=interaction.created_at,
        )

    @classmethod
    def from_response_unit(cls, unit: ResponseUnit, agent_id: str, room_id: str) -> "MemoryRecord":
        return cls(
            id=string_to_uuid(unit.interaction.id),
            user_id=agent_id,
            room_id=room_id,
            text=unit.text,
            source_id=unit.interaction.id,
            kind="response",
            url=unit.interaction.url,
            in_reply_to=string_to_uuid(unit.in_reply_to),
            created_at=unit.interaction.created_at,
            content={
                "reply_root": unit.reply_root,
                "chunk_index": unit.index,
                "chunk_total": unit.total,
            },
        )


@dataclass
class AgentIdentity:
    handle: str
    display_name: str
    user_id: Optional[str] = None
    bio: str = ""
    lore: List[str] = field(default_factory=list)
    post_examples: List[str] = field(default_factory=list)
    post_directions: List[str] = field(default_factory=list)

    @property
    def agent_id(self) -> str:
        return string_to_uuid(self.handle.lower())

    def is_author_of(self, interaction: Interaction) -> bool:
        if self.user_id and interaction.author_id == self.user_id:
            return True
        return interaction.author_handle.strip().lstrip("@").lower() == self.handle.strip().lstrip("@").lower()


def unique_by_id(interactions: Sequence[Interaction]) -> List[Interaction]:
    out: List[Interaction] = []
    seen: Dict[str, bool] = {}
    for item in interactions:
        if item.id in seen:
            continue
        seen[item.id] = True
        out.append(item)
    return out
