from __future__ import annotations

import functools
from typing import List

from .errors import FetchError
from .models import Interaction, SearchMode, compare_ids, unique_by_id


def mention_query(handle: str) -> str:
    return f"@{handle.strip().lstrip('@')}"


def fetch_interactions(platform, query: str, limit: int, mode: SearchMode = SearchMode.LATEST) -> List[Interaction]:
    """Fetch candidate mentions, unique by id, oldest first."""
    try:
        candidates = platform.search(query, limit, mode)
    except Exception as e:
        raise FetchError(f"Mention search failed query={query!r}: {e}") from e
    unique = unique_by_id(candidates)
    unique.sort(key=functools.cmp_to_key(lambda a, b: compare_ids(a.id, b.id)))
    return unique
