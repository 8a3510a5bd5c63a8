"""
Eviction Strategies.

Decides which cached features to drop when the internal store is full.

LRU eviction works at R-tree leaf granularity: per-node access metadata is
kept up to date through the tree's node commands, and eviction walks from
the root towards the least recently read subtree, then drops every feature
of the leaf it lands on. Because a whole leaf goes at once, the region
tracker is told to forget every region overlapping the leaf's envelope.

Random eviction drops a single uniformly chosen feature.
"""

import logging
import random
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional

from geocache.envelope import Envelope
from geocache.index import FeatureIndex
from geocache.rtree import Node, QueryStrategy, RTree
from geocache.tracker import RegionTracker

logger = logging.getLogger(__name__)


class EvictionPolicy(Enum):
    """Cache replacement policies."""

    LRU = "lru"
    RANDOM = "random"


@dataclass
class NodeCacheEntry:
    """
    Access metadata for one R-tree node.

    Attributes:
        node_id: Node identifier in the tree
        created_at: When the node was first seen
        last_access: Last time a query read the node
        hits: Number of reads
    """

    node_id: int
    created_at: float
    last_access: float
    hits: int = 0

    def hit(self, now: float) -> None:
        self.hits += 1
        self.last_access = now


class NodeAccessTracker:
    """
    Per-node access metadata fed by R-tree node commands.

    Writes start tracking a node, reads during queries record a hit,
    deletes forget it.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: Dict[int, NodeCacheEntry] = {}

    def attach(self, tree: RTree) -> None:
        """Register the node commands on a tree."""
        tree.add_read_node_command(self.on_read)
        tree.add_write_node_command(self.on_write)
        tree.add_delete_node_command(self.on_delete)

    def now(self) -> float:
        return self._clock()

    def on_read(self, node: Node) -> None:
        now = self._clock()
        entry = self._entries.get(node.identifier)
        if entry is None:
            entry = NodeCacheEntry(node.identifier, created_at=now, last_access=now)
            self._entries[node.identifier] = entry
        entry.hit(now)

    def on_write(self, node: Node) -> None:
        if node.identifier not in self._entries:
            now = self._clock()
            self._entries[node.identifier] = NodeCacheEntry(
                node.identifier, created_at=now, last_access=now
            )

    def on_delete(self, node: Node) -> None:
        self._entries.pop(node.identifier, None)

    def get(self, node_id: int) -> Optional[NodeCacheEntry]:
        return self._entries.get(node_id)

    def __contains__(self, node_id: int) -> bool:
        return node_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)


class EvictionStrategy(ABC):
    """
    Frees room in a feature index.

    After each evict() call, last_evicted and last_area describe what was
    dropped.
    """

    def __init__(self, index: FeatureIndex, tracker: RegionTracker):
        self.index = index
        self.tracker = tracker
        self.last_evicted: List[str] = []
        self.last_area: Optional[Envelope] = None

    @abstractmethod
    def evict(self) -> int:
        """
        Remove features from the index and store.

        Returns:
            Number of features evicted
        """
        pass


class _OldestLeafStrategy(QueryStrategy):
    """Descends towards the least recently read child until a leaf is reached."""

    def __init__(self, access: NodeAccessTracker):
        self._access = access
        self.leaf: Optional[Node] = None

    def next_node(self, tree: RTree, node: Node) -> Optional[int]:
        if node.is_leaf:
            self.leaf = node
            return None

        # Unseen nodes count as just read
        first = self._access.get(node.child_identifier(0))
        oldest_time = first.last_access if first is not None else self._access.now()
        oldest = 0

        for i in range(1, node.children_count):
            entry = self._access.get(node.child_identifier(i))
            if entry is not None and entry.last_access < oldest_time:
                oldest_time = entry.last_access
                oldest = i

        return node.child_identifier(oldest)


class LRUEvictionStrategy(EvictionStrategy):
    """Evicts every feature of the least recently read R-tree leaf."""

    def __init__(
        self,
        index: FeatureIndex,
        tracker: RegionTracker,
        access: Optional[NodeAccessTracker] = None,
    ):
        super().__init__(index, tracker)
        self.access = access or NodeAccessTracker()
        self.access.attach(index.tree)

    def evict(self) -> int:
        self.last_evicted, self.last_area = [], None
        walk = _OldestLeafStrategy(self.access)
        self.index.tree.query_strategy(walk)

        leaf = walk.leaf
        if leaf is None or leaf.children_count == 0:
            return 0

        # Read before deleting: removals condense the tree
        fids = self.index.tree.read_leaf(leaf)
        area = leaf.mbr

        for fid in fids:
            self.index.remove(fid)
        revoked = self.tracker.unregister(area)
        self.last_evicted, self.last_area = list(fids), area

        logger.debug(
            f"Evicted leaf {leaf.identifier}: {len(fids)} features, "
            f"{revoked} regions revoked"
        )
        return len(fids)


class RandomEvictionStrategy(EvictionStrategy):
    """Evicts one uniformly random feature."""

    def __init__(
        self,
        index: FeatureIndex,
        tracker: RegionTracker,
        rng: Optional[random.Random] = None,
    ):
        super().__init__(index, tracker)
        self._rng = rng or random.Random()

    def evict(self) -> int:
        self.last_evicted, self.last_area = [], None
        fids = self.index.store.ids()
        if not fids:
            return 0

        victim = self._rng.choice(fids)
        envelope = self.index.envelope_of(victim)
        self.index.remove(victim)
        if envelope is not None:
            self.tracker.unregister(envelope)
        self.last_evicted, self.last_area = [victim], envelope

        logger.debug(f"Evicted {victim}")
        return 1


def create_strategy(
    policy: EvictionPolicy,
    index: FeatureIndex,
    tracker: RegionTracker,
    rng: Optional[random.Random] = None,
) -> EvictionStrategy:
    """Build the eviction strategy for a policy."""
    if policy == EvictionPolicy.LRU:
        return LRUEvictionStrategy(index, tracker)
    if policy == EvictionPolicy.RANDOM:
        return RandomEvictionStrategy(index, tracker, rng)
    raise ValueError(f"Unknown eviction policy: {policy}")
