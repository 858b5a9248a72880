from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..platform_client import PlatformClient
from .artifacts import journal_action_handler, timestamp_slug, write_debug_file, write_generation_transcript
from .completion import CompletionClient, ModelConfig
from .config import DEFAULT_BIO, Config, load_config
from .cursor_store import CursorStore
from .decision import DecisionGate
from .dispatcher import Dispatcher
from .errors import DispatchError, InteractionError
from .fetcher import fetch_interactions, mention_query
from .generation import ResponseGenerator
from .logging_utils import setup_logging
from .models import (
    AgentIdentity,
    Decision,
    Interaction,
    MemoryRecord,
    SearchMode,
    advance_cursor,
    id_newer_than,
    string_to_uuid,
)
from .scheduler import RecurringTask
from .storage import MemoryStore
from .thread import build_thread


logger = logging.getLogger("mentionloop.interactions")

SOURCE = "platform"


class InteractionLoop:
    """One polling pass over the agent's mentions per ``tick``.

    The cursor is passed in and returned; the loop keeps no cursor of its own.
    Candidates are handled oldest first and the cursor is persisted after each
    one, so a crash re-handles at most the unfinished part of a batch.
    """

    def __init__(
        self,
        platform,
        store: MemoryStore,
        cursor_store: CursorStore,
        gate: DecisionGate,
        generator: ResponseGenerator,
        dispatcher: Dispatcher,
        identity: AgentIdentity,
        search_limit: int = 20,
        thread_max_depth: int = 10,
        debug_dir: Optional[Path] = None,
    ):
        self.platform = platform
        self.store = store
        self.cursor_store = cursor_store
        self.gate = gate
        self.generator = generator
        self.dispatcher = dispatcher
        self.identity = identity
        self.search_limit = search_limit
        self.thread_max_depth = thread_max_depth
        self.debug_dir = Path(debug_dir) if debug_dir else None
        self.ticks = 0

    def tick(self, cursor: Optional[str]) -> Optional[str]:
        self.ticks += 1
        logger.info("Checking interactions tick=%s cursor=%s", self.ticks, cursor)
        try:
            candidates = fetch_interactions(
                self.platform,
                mention_query(self.identity.handle),
                self.search_limit,
                SearchMode.LATEST,
            )
        except InteractionError as e:
            logger.error("Fetch failed tick=%s error=%s", self.ticks, e)
            return cursor

        handled = 0
        for interaction in candidates:
            if not id_newer_than(interaction.id, cursor):
                continue
            try:
                outcome = self.process(interaction)
            except InteractionError as e:
                logger.error(
                    "Candidate failed candidate_id=%s error=%s; deferring rest of batch",
                    interaction.id,
                    e,
                )
                break
            except Exception as e:
                logger.exception(
                    "Candidate crashed candidate_id=%s error=%s; deferring rest of batch",
                    interaction.id,
                    e,
                )
                break
            handled += 1
            cursor = advance_cursor(cursor, interaction.id)
            self.cursor_store.save(cursor)
            logger.debug("Candidate done candidate_id=%s outcome=%s", interaction.id, outcome)

        self.cursor_store.save(cursor)
        logger.info(
            "Finished checking interactions tick=%s fetched=%s handled=%s cursor=%s",
            self.ticks,
            len(candidates),
            handled,
            cursor,
        )
        return cursor

    def _ensure_participants(self, interaction: Interaction, room_id: str) -> None:
        agent_id = self.identity.agent_id
        author_id = string_to_uuid(interaction.author_id)
        self.store.ensure_room(room_id)
        self.store.ensure_user(agent_id, self.identity.handle, self.identity.display_name, SOURCE)
        self.store.ensure_user(author_id, interaction.author_handle, interaction.author_display_name, SOURCE)
        self.store.ensure_participant(author_id, room_id)
        self.store.ensure_participant(agent_id, room_id)

    def _memory_for(self, interaction: Interaction) -> MemoryRecord:
        memory = MemoryRecord.from_interaction(interaction)
        if self.identity.is_author_of(interaction):
            memory.user_id = self.identity.agent_id
        return memory

    def _record_ancestors(self, ancestors) -> None:
        for ancestor in ancestors:
            if not self.identity.is_author_of(ancestor):
                self.store.ensure_user(
                    string_to_uuid(ancestor.author_id),
                    ancestor.author_handle,
                    ancestor.author_display_name,
                    SOURCE,
                )
            self.store.create_memory(self._memory_for(ancestor))

    def process(self, interaction: Interaction) -> str:
        """Run the full pipeline for one mention and return a short outcome label."""
        if self.identity.is_author_of(interaction):
            logger.info("skip candidate_id=%s reason=self_authored", interaction.id)
            return "self"

        room_id = string_to_uuid(interaction.conversation_id)
        self._ensure_participants(interaction, room_id)
        context = build_thread(interaction, self.platform, self.thread_max_depth)

        memory = self._memory_for(interaction)
        if self.store.get_memory_by_id(memory.id) is not None:
            logger.info("skip candidate_id=%s reason=already_recorded", interaction.id)
            return "exists"
        sent = self.store.responses_to(interaction.id)
        if sent:
            total = sent[-1].content.get("chunk_total") or len(sent)
            logger.warning(
                "skip candidate_id=%s reason=reply_chain_already_started units=%s/%s",
                interaction.id,
                len(sent),
                total,
            )
            self.store.create_memory(memory)
            return "partial_chain"

        self._record_ancestors(context.ancestors)

        if not interaction.text.strip():
            logger.info("skip candidate_id=%s reason=no_text", interaction.id)
            self.store.create_memory(memory)
            return "empty"

        state = self.store.compose_state(self.identity, context, room_id)
        decision = self.gate.decide(context, self.identity, state)
        logger.info(
            "Decision candidate_id=%s author=@%s thread_len=%s decision=%s",
            interaction.id,
            interaction.author_handle,
            len(context),
            decision.value,
        )
        if decision is not Decision.RESPOND:
            self.store.create_memory(memory)
            return decision.value.lower()

        reply_text = self.generator.generate(context, self.identity, state)
        self._write_debug_logs()
        if not reply_text:
            logger.info("skip candidate_id=%s reason=empty_reply", interaction.id)
            self.store.create_memory(memory)
            return "no_reply"

        outcome = "responded"
        try:
            units = self.dispatcher.dispatch(reply_text, interaction, room_id, self.identity)
        except DispatchError as e:
            if not e.partial:
                raise
            logger.warning(
                "Partial reply candidate_id=%s posted=%s delivered=%s error=%s",
                interaction.id,
                len(e.units),
                e.delivered,
                e,
            )
            units = e.units
            outcome = "partial_dispatch"
        if not units and outcome == "responded":
            outcome = "dry_run" if self.dispatcher.dry_run else "no_reply"

        if self.debug_dir:
            write_generation_transcript(
                self.debug_dir,
                interaction.id,
                self.generator.last_context,
                interaction.author_handle,
                interaction.text,
                reply_text,
            )
        self.store.create_memory(memory)

        if units:
            responses = [MemoryRecord.from_response_unit(unit, self.identity.agent_id, room_id) for unit in units]
            state = self.store.update_recent_message_state(state)
            self.store.evaluate(memory, state)
            self.store.process_actions(memory, responses, state)
            logger.info(
                "Dispatched reply candidate_id=%s units=%s posted_ids=%s",
                interaction.id,
                len(units),
                ",".join(unit.id for unit in units),
            )
        return outcome

    def _write_debug_logs(self) -> None:
        if not self.debug_dir:
            return
        stamp = timestamp_slug()
        prefix = f"{self.identity.handle}_{stamp}_interactions"
        write_debug_file(self.debug_dir, f"{prefix}_context", self.generator.last_context)
        write_debug_file(self.debug_dir, f"{prefix}_response", json.dumps({"text": self.generator.last_response}))


def _as_list(value: Any) -> List[str]:
    if isinstance(value, list):
        return [str(item) for item in value if str(item).strip()]
    if isinstance(value, str) and value.strip():
        return [value.strip()]
    return []


def _profile_field(profile: Dict[str, Any], *keys: str) -> Optional[str]:
    containers = [profile]
    for key in ("user", "data", "profile"):
        if isinstance(profile.get(key), dict):
            containers.append(profile[key])
    for container in containers:
        for key in keys:
            value = container.get(key)
            if value:
                return str(value)
    return None


def load_identity(cfg: Config, platform=None) -> AgentIdentity:
    character: Dict[str, Any] = {}
    if cfg.character_path and cfg.character_path.exists():
        try:
            with cfg.character_path.open("r", encoding="utf-8") as f:
                loaded = json.load(f)
            if isinstance(loaded, dict):
                character = loaded
        except (OSError, ValueError) as e:
            logger.warning("Character file unreadable path=%s error=%s", cfg.character_path, e)

    handle = cfg.agent_handle
    user_id = cfg.agent_user_id
    if platform is not None and (not handle or not user_id):
        try:
            profile = platform.get_me()
        except Exception as e:
            logger.warning("Could not resolve agent profile error=%s", e)
            profile = {}
        handle = handle or (_profile_field(profile, "handle", "username") or "").lstrip("@")
        user_id = user_id or _profile_field(profile, "id", "user_id")
    if not handle:
        raise ValueError("Agent handle unknown. Set MENTIONLOOP_AGENT_HANDLE.")

    bio = " ".join(_as_list(character.get("bio"))) or DEFAULT_BIO
    return AgentIdentity(
        handle=handle,
        display_name=str(character.get("name") or cfg.agent_name or handle),
        user_id=user_id,
        bio=bio,
        lore=_as_list(character.get("lore")),
        post_examples=_as_list(character.get("postExamples")),
        post_directions=_as_list(character.get("postDirections") or character.get("style")),
    )


def build_loop(cfg: Config, platform=None) -> InteractionLoop:
    platform = platform or PlatformClient()
    identity = load_identity(cfg, platform)
    store = MemoryStore(cfg.db_path)
    store.register_action_handler(journal_action_handler(cfg.action_journal_path))
    completion = CompletionClient(api_key=cfg.openai_api_key, base_url=cfg.openai_base_url)
    gate = DecisionGate(completion, ModelConfig(model=cfg.openai_model, temperature=cfg.decision_temperature))
    generator = ResponseGenerator(completion, ModelConfig(model=cfg.openai_model, temperature=cfg.openai_temperature))
    dispatcher = Dispatcher(
        platform,
        store,
        max_length=cfg.max_reply_length,
        chunk_delay_seconds=cfg.chunk_delay_seconds,
        dry_run=cfg.dry_run,
    )
    return InteractionLoop(
        platform=platform,
        store=store,
        cursor_store=CursorStore(cfg.cursor_path),
        gate=gate,
        generator=generator,
        dispatcher=dispatcher,
        identity=identity,
        search_limit=cfg.search_limit,
        thread_max_depth=cfg.thread_max_depth,
        debug_dir=cfg.debug_dir,
    )


def run_loop() -> None:
    cfg = load_config()
    logger = setup_logging(cfg)
    loop = build_loop(cfg)
    logger.info(
        "Interaction loop starting agent=@%s user_id=%s search_limit=%s poll_bounds=%s-%s dry_run=%s "
        "max_reply_length=%s cursor_path=%s db_path=%s",
        loop.identity.handle,
        loop.identity.user_id,
        cfg.search_limit,
        cfg.poll_min_seconds,
        cfg.poll_max_seconds,
        cfg.dry_run,
        cfg.max_reply_length,
        cfg.cursor_path,
        cfg.db_path,
    )
    cursor = loop.cursor_store.load()
    task = RecurringTask(
        loop.tick,
        min_delay=cfg.poll_min_seconds,
        max_delay=cfg.poll_max_seconds,
        name="interactions",
    )
    task.run(cursor, max_runs=cfg.max_ticks or None)


if __name__ == "__main__":
    run_loop()
