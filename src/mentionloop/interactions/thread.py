from __future__ import annotations

import logging
from typing import List, Set

from .models import ConversationContext, Interaction


logger = logging.getLogger("mentionloop.interactions")


def build_thread(interaction: Interaction, platform, max_depth: int = 10) -> ConversationContext:
    """Walk ``parent_id`` links back from ``interaction``; return the chain root first.

    Missing, deleted or unreachable ancestors truncate the chain.
    """
    chain: List[Interaction] = [interaction]
    visited: Set[str] = {interaction.id}
    current = interaction
    while current.parent_id and len(chain) <= max_depth:
        parent_id = current.parent_id
        if parent_id in visited:
            logger.debug("Thread cycle at interaction_id=%s parent_id=%s", current.id, parent_id)
            break
        try:
            parent = platform.get_by_id(parent_id)
        except Exception as e:
            logger.debug("Thread ancestor fetch failed parent_id=%s error=%s", parent_id, e)
            break
        if parent is None:
            logger.debug("Thread ancestor missing parent_id=%s", parent_id)
            break
        visited.add(parent.id)
        chain.append(parent)
        current = parent
    chain.reverse()
    return ConversationContext(interactions=tuple(chain))
