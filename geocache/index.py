"""
Feature Spatial Index.

Indexes cached features by their envelope for fast overlap queries. The
index owns the pairing between the internal store and the R-tree: a
feature is added to both or to neither, and removed from both together.
"""

import logging
import random
from typing import Dict, List, Optional, Tuple, Union

from geocache.envelope import Envelope
from geocache.exceptions import SpatialIndexError, UnsupportedOperationError
from geocache.features import Feature, FeatureCollection, FeatureType, Query
from geocache.filters import INCLUDE, BBoxFilter, Filter, split_filter
from geocache.rtree import RTree
from geocache.storage import InternalStore

logger = logging.getLogger(__name__)


class FeatureIndex:
    """
    Spatial index over the features of an internal store.

    The R-tree holds (envelope -> data id) entries whose payload is the
    feature identifier; the recorded envelope of every indexed feature is
    kept so it can be deleted even if the caller no longer has it.
    """

    def __init__(
        self,
        store: InternalStore,
        feature_type: Optional[FeatureType] = None,
        leaf_capacity: int = 10,
        index_capacity: int = 10,
        fill_factor: float = 0.4,
        rng: Optional[random.Random] = None,
    ):
        """
        Initialize feature index.

        Args:
            store: Internal store holding the features
            feature_type: Schema of the indexed features
            leaf_capacity: R-tree leaf capacity
            index_capacity: R-tree index node capacity
            fill_factor: R-tree minimum node fill
            rng: Random source for the default eviction
        """
        self.store = store
        self.feature_type = feature_type
        self.tree = RTree(
            leaf_capacity=leaf_capacity,
            index_capacity=index_capacity,
            fill_factor=fill_factor,
        )
        self._records: Dict[str, Tuple[int, Envelope]] = {}
        self._next_data_id = 0
        self._rng = rng or random.Random()
        if store.eviction_callback is None:
            store.eviction_callback = self._evict_random

    def add(self, feature: Feature) -> bool:
        """
        Index and store a feature.

        The store may evict other features to make room before the new
        one goes into the tree.

        Returns:
            False if a feature with the same identifier is already present
        """
        if feature.fid in self._records or self.store.contains(feature.fid):
            return False

        self.store.put(feature)

        data_id = self._next_data_id
        self._next_data_id += 1
        self.tree.insert_data(feature.fid, feature.envelope, data_id)
        self._records[feature.fid] = (data_id, feature.envelope)
        return True

    def remove(self, fid: str) -> Optional[Feature]:
        """
        Remove a feature from the tree and the store.

        Returns:
            The removed feature, None if it was not indexed

        Raises:
            SpatialIndexError: If the tree lost the feature's entry
        """
        record = self._records.pop(fid, None)
        if record is None:
            return None

        data_id, envelope = record
        if not self.tree.delete_data(envelope, data_id):
            raise SpatialIndexError(
                f"Feature {fid} missing from spatial index",
                {"envelope": envelope.to_list()},
            )
        return self.store.remove(fid)

    def get(self, fid: str) -> Optional[Feature]:
        return self.store.peek(fid)

    def envelope_of(self, fid: str) -> Optional[Envelope]:
        """Envelope the feature was indexed with."""
        record = self._records.get(fid)
        return record[1] if record is not None else None

    def contains(self, fid: str) -> bool:
        return fid in self._records

    __contains__ = contains

    def get_candidates(self, f: Filter) -> List[Feature]:
        """
        Features that may match a filter.

        A top-level bounding-box predicate narrows the candidates to the
        features whose envelope overlaps it. Without one every stored
        feature is a candidate.
        """
        spatial, _ = split_filter(f)
        if isinstance(spatial, BBoxFilter):
            fids = [entry.data for entry in self.tree.query_intersecting(spatial.envelope)]
            return [feature for feature in map(self.store.peek, fids) if feature is not None]
        return self.store.get_all()

    def get_features(self, query: Union[Query, Filter, None] = None) -> FeatureCollection:
        """Cached features matching a query or filter."""
        f = _filter_of(query)
        return FeatureCollection(
            (feature for feature in self.get_candidates(f) if f.evaluate(feature)),
            self.feature_type,
        )

    def get_view(self, query: Union[Query, Filter, None] = None) -> "IndexView":
        """Read-only live view scoped to a fixed query."""
        return IndexView(self, query if isinstance(query, Query) else Query(filter=_filter_of(query)))

    def clear(self) -> None:
        """Empty the tree and the store."""
        self.tree.clear()
        self._records.clear()
        self.store.clear()

    def __len__(self) -> int:
        return len(self._records)

    def _evict_random(self, store: InternalStore) -> None:
        """Default replacement: drop a random indexed feature into the overflow store."""
        if not self._records:
            return
        victim = self._rng.choice(list(self._records))
        feature = self.remove(victim)
        if store.overflow is not None and feature is not None:
            store.overflow.put(feature)
        logger.debug(f"Evicted {victim} from feature index")


class IndexView:
    """
    Read-only feature source over a feature index.

    Every call delegates to the index, so later additions and removals are
    visible through the view.
    """

    def __init__(self, index: FeatureIndex, query: Query):
        self._index = index
        self.query = query

    def get_schema(self) -> Optional[FeatureType]:
        return self._index.feature_type

    def get_features(self, f: Filter = INCLUDE) -> FeatureCollection:
        """Features of the view, optionally narrowed by another filter."""
        features = self._index.get_features(self.query.filter)
        return features if f is INCLUDE else features.filter(f)

    def get_count(self, query: Optional[Query] = None) -> int:
        f = query.filter if query is not None else INCLUDE
        return len(self.get_features(f))

    def get_bounds(self, query: Optional[Query] = None) -> Optional[Envelope]:
        f = query.filter if query is not None else INCLUDE
        return self.get_features(f).bounds

    def add_features(self, collection) -> None:
        raise UnsupportedOperationError("add_features")

    def remove_features(self, f: Filter) -> None:
        raise UnsupportedOperationError("remove_features")

    def modify_features(self, names, values, f: Filter) -> None:
        raise UnsupportedOperationError("modify_features")

    def set_features(self, reader) -> None:
        raise UnsupportedOperationError("set_features")


def _filter_of(query: Union[Query, Filter, None]) -> Filter:
    if query is None:
        return INCLUDE
    if isinstance(query, Query):
        return query.filter
    return query
