"""
Cache event notification.

Listeners are plain callables invoked synchronously, in subscription
order, with a CacheEvent describing what left the cache.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Tuple

from geocache.envelope import Envelope

logger = logging.getLogger(__name__)


class CacheEventType(Enum):
    """Kinds of cache content changes."""

    EVICTED = "evicted"
    REMOVED = "removed"
    CLEARED = "cleared"


@dataclass(frozen=True)
class CacheEvent:
    """
    A change to the cache contents.

    Attributes:
        type: What happened
        type_name: Feature type served by the cache
        feature_ids: Identifiers of the features that left the cache
        envelope: Area affected, None when not spatially bounded
    """

    type: CacheEventType
    type_name: str
    feature_ids: Tuple[str, ...] = field(default_factory=tuple)
    envelope: Optional[Envelope] = None

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "type_name": self.type_name,
            "feature_ids": list(self.feature_ids),
            "envelope": self.envelope.to_list() if self.envelope else None,
        }


CacheListener = Callable[[CacheEvent], None]


class CacheListeners:
    """Ordered set of cache listeners."""

    def __init__(self):
        self._listeners: List[CacheListener] = []

    def subscribe(self, listener: CacheListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: CacheListener) -> bool:
        """Returns False if the listener was not subscribed."""
        try:
            self._listeners.remove(listener)
        except ValueError:
            return False
        return True

    def notify(self, event: CacheEvent) -> None:
        """Deliver an event to every listener. Listener errors propagate."""
        for listener in list(self._listeners):
            listener(event)

    def __len__(self) -> int:
        return len(self._listeners)
