from __future__ import annotations

import logging
import re
import time
from typing import Callable, List

from ..platform_client import PlatformResponseError
from .errors import DispatchError
from .models import AgentIdentity, Interaction, MemoryRecord, ResponseUnit


PARAGRAPH_PATTERN = re.compile(r"\n\s*\n")
SENTENCE_PATTERN = re.compile(r"(?<=[.!?])\s+")

logger = logging.getLogger("mentionloop.interactions")


def _pack(pieces: List[str], sep: str, max_length: int) -> List[str]:
    out: List[str] = []
    current = ""
    for piece in pieces:
        if not current:
            current = piece
        elif len(current) + len(sep) + len(piece) <= max_length:
            current = f"{current}{sep}{piece}"
        else:
            out.append(current)
            current = piece
    if current:
        out.append(current)
    return out


def _split_words(sentence: str, max_length: int) -> List[str]:
    pieces: List[str] = []
    for word in sentence.split():
        while len(word) > max_length:
            pieces.append(word[:max_length])
            word = word[max_length:]
        if word:
            pieces.append(word)
    return pieces


def _split_paragraph(paragraph: str, max_length: int) -> List[str]:
    if len(paragraph) <= max_length:
        return [paragraph]
    pieces: List[str] = []
    for sentence in SENTENCE_PATTERN.split(paragraph):
        sentence = " ".join(sentence.split())
        if not sentence:
            continue
        if len(sentence) <= max_length:
            pieces.append(sentence)
        else:
            pieces.extend(_split_words(sentence, max_length))
    return _pack(pieces, " ", max_length)


def split_into_chunks(text: str, max_length: int) -> List[str]:
    """Split reply text into post-sized chunks at paragraph, then sentence, then word boundaries."""
    if max_length < 1:
        raise ValueError("max_length must be positive")
    pieces: List[str] = []
    for paragraph in PARAGRAPH_PATTERN.split(str(text or "").strip()):
        paragraph = paragraph.strip()
        if paragraph:
            pieces.extend(_split_paragraph(paragraph, max_length))
    return _pack(pieces, "\n\n", max_length)


class Dispatcher:
    def __init__(
        self,
        platform,
        store,
        max_length: int = 280,
        chunk_delay_seconds: float = 0.0,
        dry_run: bool = False,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.platform = platform
        self.store = store
        self.max_length = max_length
        self.chunk_delay_seconds = chunk_delay_seconds
        self.dry_run = dry_run
        self.sleep = sleep

    def dispatch(
        self,
        reply_text: str,
        mention: Interaction,
        room_id: str,
        agent: AgentIdentity,
    ) -> List[ResponseUnit]:
        chunks = split_into_chunks(reply_text, self.max_length)
        if not chunks:
            return []
        if self.dry_run:
            logger.info("Dry run, not posting reply to=%s chunks=%s text=%r", mention.id, len(chunks), reply_text)
            return []

        units: List[ResponseUnit] = []
        previous_id = mention.id
        for index, chunk in enumerate(chunks):
            if index and self.chunk_delay_seconds > 0:
                self.sleep(self.chunk_delay_seconds)
            try:
                posted = self.platform.post(chunk, in_reply_to=previous_id)
            except PlatformResponseError as e:
                # Live on the platform but unlinkable: stop the chain, never resend.
                raise DispatchError(
                    f"Chunk {index + 1}/{len(chunks)} in reply to {previous_id} was posted "
                    f"but could not be read back: {e}",
                    units=units,
                    delivered=True,
                ) from e
            except Exception as e:
                raise DispatchError(
                    f"Posting chunk {index + 1}/{len(chunks)} in reply to {previous_id} failed: {e}",
                    units=units,
                ) from e
            unit = ResponseUnit(
                index=index,
                text=chunk,
                interaction=posted,
                in_reply_to=previous_id,
                reply_root=mention.id,
                total=len(chunks),
            )
            units.append(unit)
            try:
                self.store.create_memory(MemoryRecord.from_response_unit(unit, agent.agent_id, room_id))
            except Exception as e:
                raise DispatchError(
                    f"Recording chunk {index + 1}/{len(chunks)} posted_id={posted.id} failed: {e}",
                    units=units,
                ) from e
            logger.debug("Posted chunk %s/%s posted_id=%s in_reply_to=%s", index + 1, len(chunks), posted.id, previous_id)
            previous_id = posted.id
        return units
