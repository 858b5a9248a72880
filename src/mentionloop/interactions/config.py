from dataclasses import dataclass
from pathlib import Path
from typing import Optional
import os


DEFAULT_BIO = (
    "An autonomous agent that answers people who mention it. "
    "Curious, direct, and brief. Never gives financial advice."
)


@dataclass
class Config:
    agent_handle: str
    agent_name: str
    agent_user_id: Optional[str]
    character_path: Optional[Path]
    search_limit: int
    poll_min_seconds: int
    poll_max_seconds: int
    cursor_path: Path
    db_path: Path
    debug_dir: Path
    action_journal_path: Path
    max_reply_length: int
    thread_max_depth: int
    chunk_delay_seconds: float
    dry_run: bool
    max_ticks: int
    openai_api_key: Optional[str]
    openai_base_url: str
    openai_model: str
    openai_temperature: float
    decision_temperature: float
    log_level: str
    log_path: Optional[Path]


def _env_flag(env_key: str, default: str = "0") -> bool:
    return os.getenv(env_key, default).strip().lower() in {"1", "true", "yes"}


def _env_path(env_key: str, default: str) -> Optional[Path]:
    value = os.getenv(env_key, default).strip()
    return Path(value) if value else None


def load_config() -> Config:
    agent_handle = os.getenv("MENTIONLOOP_AGENT_HANDLE", "").strip().lstrip("@")
    agent_name = os.getenv("MENTIONLOOP_AGENT_NAME", "").strip() or agent_handle or "agent"
    agent_user_id = os.getenv("MENTIONLOOP_AGENT_USER_ID", "").strip() or None
    character_path = _env_path("MENTIONLOOP_CHARACTER_PATH", "character.json")

    search_limit = int(os.getenv("MENTIONLOOP_SEARCH_LIMIT", "20"))
    poll_min_seconds = int(os.getenv("MENTIONLOOP_POLL_MIN_SECONDS", "600"))
    poll_max_seconds = int(os.getenv("MENTIONLOOP_POLL_MAX_SECONDS", "900"))
    if poll_max_seconds < poll_min_seconds:
        poll_min_seconds, poll_max_seconds = poll_max_seconds, poll_min_seconds

    cursor_path = Path(os.getenv("MENTIONLOOP_CURSOR_PATH", "memory/last-interaction-id.txt"))
    db_path = Path(os.getenv("MENTIONLOOP_DB_PATH", "memory/mentionloop.sqlite3"))
    debug_dir = Path(os.getenv("MENTIONLOOP_DEBUG_DIR", "memory/debug"))
    action_journal_path = Path(
        os.getenv("MENTIONLOOP_ACTION_JOURNAL_PATH", "memory/action-journal.jsonl")
    )

    max_reply_length = int(os.getenv("MENTIONLOOP_MAX_REPLY_LENGTH", "280"))
    thread_max_depth = int(os.getenv("MENTIONLOOP_THREAD_MAX_DEPTH", "10"))
    chunk_delay_seconds = float(os.getenv("MENTIONLOOP_CHUNK_DELAY_SECONDS", "2"))
    dry_run = _env_flag("MENTIONLOOP_DRY_RUN")
    max_ticks = int(os.getenv("MENTIONLOOP_MAX_TICKS", "0"))

    openai_api_key = os.getenv("OPENAI_API_KEY")
    openai_base_url = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1").rstrip("/")
    openai_model = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
    openai_temperature = float(os.getenv("OPENAI_TEMPERATURE", "0.7"))
    decision_temperature = float(os.getenv("MENTIONLOOP_DECISION_TEMPERATURE", "0.0"))

    log_level = os.getenv("MENTIONLOOP_LOG_LEVEL", "INFO").strip().upper()
    log_path = _env_path("MENTIONLOOP_LOG_PATH", "")

    return Config(
        agent_handle=agent_handle,
        agent_name=agent_name,
        agent_user_id=agent_user_id,
        character_path=character_path,
        search_limit=search_limit,
        poll_min_seconds=max(0, poll_min_seconds),
        poll_max_seconds=max(0, poll_max_seconds),
        cursor_path=cursor_path,
        db_path=db_path,
        debug_dir=debug_dir,
        action_journal_path=action_journal_path,
        max_reply_length=max(1, max_reply_length),
        thread_max_depth=max(0, thread_max_depth),
        chunk_delay_seconds=max(0.0, chunk_delay_seconds),
        dry_run=dry_run,
        max_ticks=max(0, max_ticks),
        openai_api_key=openai_api_key,
        openai_base_url=openai_base_url,
        openai_model=openai_model,
        openai_temperature=openai_temperature,
        decision_temperature=decision_temperature,
        log_level=log_level,
        log_path=log_path,
    )
