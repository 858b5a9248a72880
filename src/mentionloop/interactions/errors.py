from __future__ import annotations

from typing import List, Optional


class InteractionError(Exception):
    pass


class FetchError(InteractionError):
    """Mentions could not be fetched; the tick is deferred."""


class DecisionError(InteractionError):
    """The completion backend failed while deciding whether to respond."""


class DispatchError(InteractionError):
    """A reply chunk could not be posted.

    ``units`` holds the chunks that were already posted and recorded before
    the failure. They are never rolled back. ``delivered`` is set when the
    failing chunk itself reached the platform but its result was unreadable.
    """

    def __init__(self, message: str, units: Optional[List] = None, delivered: bool = False):
        super().__init__(message)
        self.units = list(units or [])
        self.delivered = delivered

    @property
    def partial(self) -> bool:
        return bool(self.units) or self.delivered


class PersistenceError(InteractionError):
    pass
