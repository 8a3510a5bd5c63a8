"""
Internal Feature Storage.

Bounded in-memory table mapping feature identifiers to features, with:
- A replacement step triggered at capacity, before inserting
- Optional overflow chaining to a secondary store (consulted on a local
  miss, promoted from on a hit)
- Per-entry access metadata (hits, creation and last access time)

The default replacement step moves a uniformly random entry to the
overflow store. Owners that keep other structures in sync with the store
(the feature index, the region tracker) install their own eviction
callback instead.
"""

import logging
import random
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Union

from geocache.exceptions import CacheFullError
from geocache.features import Feature

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    """
    A stored feature and its access metadata.

    Attributes:
        feature: Cached feature
        created_at: Insertion timestamp
        accessed_at: Last access timestamp
        hits: Number of reads through get()
    """

    feature: Feature
    created_at: datetime
    accessed_at: datetime
    hits: int = 0

    def touch(self) -> None:
        """Record an access."""
        self.accessed_at = datetime.now(timezone.utc)
        self.hits += 1


class InternalStore:
    """
    Bounded feature table with pluggable eviction and overflow.

    Never holds more than capacity entries once put() returns.
    """

    def __init__(
        self,
        capacity: int,
        overflow: Optional["InternalStore"] = None,
        eviction_callback: Optional[Callable[["InternalStore"], None]] = None,
        rng: Optional[random.Random] = None,
    ):
        """
        Initialize internal store.

        Args:
            capacity: Maximum number of features
            overflow: Secondary store for evicted features
            eviction_callback: Called with this store when it is full, must
                remove at least one entry
            rng: Random source for the default eviction
        """
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")

        self._capacity = capacity
        self.overflow = overflow
        self.eviction_callback = eviction_callback
        self._rng = rng or random.Random()
        self._entries: Dict[str, CacheEntry] = {}

    @property
    def capacity(self) -> int:
        return self._capacity

    def put(self, feature: Feature) -> bool:
        """
        Store a feature.

        Re-putting a known identifier is a no-op; remove it first to replace.

        Returns:
            True if the feature was inserted

        Raises:
            CacheFullError: If eviction did not free any room
        """
        if feature.fid in self._entries:
            return False

        if len(self._entries) >= self._capacity:
            self._evict()
            if len(self._entries) >= self._capacity:
                raise CacheFullError(
                    "Cannot evict entries to make room",
                    {"capacity": self._capacity, "fid": feature.fid},
                )

        now = datetime.now(timezone.utc)
        self._entries[feature.fid] = CacheEntry(
            feature=feature, created_at=now, accessed_at=now
        )
        return True

    def get(self, fid: str) -> Optional[Feature]:
        """
        Get a feature, falling back to the overflow store.

        A feature found in the overflow store is promoted into this one.

        Returns:
            Feature if found, None otherwise
        """
        entry = self._entries.get(fid)
        if entry is not None:
            entry.touch()
            return entry.feature

        if self.overflow is None:
            return None

        feature = self.overflow.get(fid)
        if feature is None:
            return None

        # Left in the overflow store if the local put fails
        self.put(feature)
        self.overflow.remove(fid)
        logger.debug(f"Promoted {fid} from overflow store")
        return feature

    def peek(self, fid: str) -> Optional[Feature]:
        """Local lookup without touching metadata or the overflow store."""
        entry = self._entries.get(fid)
        return entry.feature if entry is not None else None

    def entry(self, fid: str) -> Optional[CacheEntry]:
        return self._entries.get(fid)

    def remove(self, fid: str) -> Optional[Feature]:
        """Remove a feature locally. The overflow store is left alone."""
        entry = self._entries.pop(fid, None)
        return entry.feature if entry is not None else None

    def contains(self, item: Union[str, Feature]) -> bool:
        """Membership test by identifier."""
        fid = item.fid if isinstance(item, Feature) else item
        return fid in self._entries

    __contains__ = contains

    def get_all(self) -> List[Feature]:
        """Snapshot of every stored feature."""
        return [entry.feature for entry in self._entries.values()]

    def ids(self) -> List[str]:
        return list(self._entries)

    def clear(self) -> int:
        """Remove every entry. Returns the number removed."""
        count = len(self._entries)
        self._entries.clear()
        return count

    def __len__(self) -> int:
        return len(self._entries)

    def _evict(self) -> None:
        if self.eviction_callback is not None:
            self.eviction_callback(self)
        else:
            self._evict_random()

    def _evict_random(self) -> None:
        """Move a random entry to the overflow store."""
        if not self._entries:
            return

        victim = self._rng.choice(list(self._entries))
        feature = self.remove(victim)
        if self.overflow is not None:
            self.overflow.put(feature)
        logger.debug(f"Evicted {victim} from internal store")
