"""
Region Tracker.

Remembers the rectangular regions whose features are known to be fully
present in the cache, and answers "which part of this bounding-box query
is not covered yet?".

Only bounding-box predicates are tracked. The uncovered remainder of a
query is computed with polygon difference and then widened back to its
bounding envelope, so the answer may over-approximate what is missing
(forcing a redundant re-fetch) but never under-approximates it.
"""

import logging
from typing import Dict, List, Union

from geocache.envelope import Envelope
from geocache.filters import EXCLUDE, BBoxFilter, Filter
from geocache.rtree import RTree

logger = logging.getLogger(__name__)


class RegionTracker:
    """
    Tracks the extents of satisfied bounding-box queries.

    Registered envelopes are kept in an R-tree keyed by an integer derived
    from the envelope, with a side table mapping keys back to envelopes.
    """

    def __init__(self, leaf_capacity: int = 8, index_capacity: int = 8):
        """
        Initialize region tracker.

        Args:
            leaf_capacity: R-tree leaf capacity
            index_capacity: R-tree index node capacity
        """
        self._index = RTree(leaf_capacity=leaf_capacity, index_capacity=index_capacity)
        self._regions: Dict[int, Envelope] = {}

    def match(self, f: Filter) -> Filter:
        """
        Reduce a filter to the part not covered by registered regions.

        Args:
            f: Filter to match

        Returns:
            f itself if it is not a bounding-box predicate or nothing
            registered overlaps it; EXCLUDE if it is fully covered;
            otherwise a new BBoxFilter over the envelope of the
            uncovered remainder
        """
        if not isinstance(f, BBoxFilter):
            return f

        query = f.envelope
        hits = [entry.envelope for entry in self._index.query_intersecting(query)]
        if not hits:
            logger.debug(f"Tracker miss for {query.to_list()}")
            return f

        if any(hit.contains(query) for hit in hits):
            logger.debug(f"Tracker hit for {query.to_list()}")
            return EXCLUDE

        if query.area == 0:
            # Degenerate rectangles have no area to subtract from
            return f

        remaining = query.to_polygon()
        for hit in hits:
            if hit.area == 0:
                continue
            hit_polygon = hit.to_polygon()
            if hit_polygon.covers(remaining):
                return EXCLUDE
            remaining = remaining.difference(hit_polygon)
            if remaining.is_empty:
                logger.debug(f"Tracker hit for {query.to_list()} (combined regions)")
                return EXCLUDE

        residual = Envelope.from_bounds(remaining.bounds)
        logger.debug(
            f"Tracker partial hit for {query.to_list()}, "
            f"missing {residual.to_list()}"
        )
        return f.with_envelope(residual)

    def register(self, f: Filter) -> bool:
        """
        Record a bounding-box query as fully satisfied.

        Returns:
            True if a new region was registered
        """
        if not isinstance(f, BBoxFilter):
            return False

        envelope = f.envelope
        key = hash(envelope)
        while key in self._regions:
            if self._regions[key] == envelope:
                return False
            key += 1

        self._index.insert_data(key, envelope, key)
        self._regions[key] = envelope
        logger.debug(f"Registered region {envelope.to_list()} as {key}")
        return True

    def unregister(self, target: Union[Filter, Envelope]) -> int:
        """
        Revoke every registered region overlapping an envelope.

        Args:
            target: Envelope, or bounding-box filter whose envelope is used

        Returns:
            Number of regions removed
        """
        if isinstance(target, BBoxFilter):
            envelope = target.envelope
        elif isinstance(target, Envelope):
            envelope = target
        else:
            return 0

        entries = self._index.query_intersecting(envelope)
        for entry in entries:
            self._index.delete_data(entry.envelope, entry.identifier)
            self._regions.pop(entry.identifier, None)

        if entries:
            logger.debug(
                f"Unregistered {len(entries)} regions overlapping {envelope.to_list()}"
            )
        return len(entries)

    def is_covered(self, envelope: Envelope) -> bool:
        """Check if an envelope lies entirely within registered regions."""
        return self.match(BBoxFilter(envelope)) is EXCLUDE

    @property
    def regions(self) -> List[Envelope]:
        """Snapshot of the registered envelopes."""
        return list(self._regions.values())

    def clear(self) -> None:
        """Forget every registered region."""
        self._index.clear()
        self._regions.clear()

    def __len__(self) -> int:
        return len(self._regions)
