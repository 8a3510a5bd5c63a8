"""
Feature Cache Engine.

Serves feature queries for one feature type of a backing store, answering
from memory whatever previously satisfied bounding-box queries already
cover and fetching only the uncovered remainder from the store.

Query flow:
1. Split the filter into a bounding-box part and the other restrictions
2. Ask the region tracker which part of the bounding box is missing
3. Read the covered part from the feature index
4. Fetch the missing part from the store, cache it and register it
5. Return the union of both, de-duplicated by feature identifier

Example:
    store = MemoryFeatureStore([roads])
    cache = FeatureCache(store, roads, capacity=500)
    features = cache.get_features(BBoxFilter(Envelope(0, 0, 10, 10)))
"""

import dataclasses
import logging
import random
import threading
from contextlib import nullcontext
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple, Union

from geocache.config import CacheConfig
from geocache.envelope import Envelope
from geocache.events import CacheEvent, CacheEventType, CacheListener, CacheListeners
from geocache.eviction import EvictionStrategy, create_strategy
from geocache.exceptions import (
    SchemaMismatchError,
    StoreReadError,
    TypeMismatchError,
    UnsupportedOperationError,
)
from geocache.features import Feature, FeatureCollection, FeatureType, Query
from geocache.filters import EXCLUDE, INCLUDE, FidFilter, Filter, and_, split_filter
from geocache.index import FeatureIndex
from geocache.storage import InternalStore
from geocache.store import FeatureSource, FeatureStore
from geocache.tracker import RegionTracker

logger = logging.getLogger(__name__)


@dataclass
class CacheStatistics:
    """Statistics about cache usage."""

    size: int = 0
    capacity: int = 0
    cache_reads: int = 0
    store_reads: int = 0
    store_queries: int = 0
    evictions: int = 0
    tracked_regions: int = 0

    @property
    def hit_rate(self) -> float:
        """Share of returned features that were served from memory."""
        total = self.cache_reads + self.store_reads
        if total == 0:
            return 0.0
        return self.cache_reads / total

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "size": self.size,
            "capacity": self.capacity,
            "cache_reads": self.cache_reads,
            "store_reads": self.store_reads,
            "store_queries": self.store_queries,
            "evictions": self.evictions,
            "tracked_regions": self.tracked_regions,
            "hit_rate": self.hit_rate,
        }


class FeatureCache:
    """
    Read-through spatial cache for one feature type.

    The internal store, feature index and region tracker are updated
    together: an evicted or removed feature takes every tracked region
    overlapping it along, so the tracker never claims an area whose
    features are no longer all cached.
    """

    def __init__(
        self,
        store: FeatureStore,
        feature_type: FeatureType,
        capacity: Optional[int] = None,
        config: Optional[CacheConfig] = None,
        thread_safe: Optional[bool] = None,
    ):
        """
        Initialize feature cache.

        Args:
            store: Backing feature store
            feature_type: Feature type to cache, must match the store schema
            capacity: Maximum number of cached features (overrides config)
            config: Cache configuration
            thread_safe: Serialize operations with a lock (overrides config)

        Raises:
            SchemaMismatchError: If the store does not serve feature_type
        """
        config = config or CacheConfig()
        if capacity is not None:
            config = dataclasses.replace(config, capacity=capacity)
        if thread_safe is not None:
            config = dataclasses.replace(config, thread_safe=thread_safe)
        self.config = config

        try:
            store_type = store.get_schema(feature_type.name)
        except KeyError as e:
            raise SchemaMismatchError(feature_type.name) from e
        if store_type != feature_type:
            raise SchemaMismatchError(feature_type.name, "differs from the store schema")

        self._data_store = store
        self._source: FeatureSource = store.get_feature_source(feature_type.name)
        self._type = feature_type

        rng = random.Random(config.random_seed)
        self._store = InternalStore(
            config.capacity,
            eviction_callback=self._on_store_full,
            rng=rng,
        )
        self._index = FeatureIndex(
            self._store,
            feature_type,
            leaf_capacity=config.effective_leaf_capacity,
            index_capacity=config.index_capacity,
            fill_factor=config.fill_factor,
            rng=rng,
        )
        self._tracker = RegionTracker()
        self._strategy: EvictionStrategy = create_strategy(
            config.eviction_policy, self._index, self._tracker, rng
        )
        self._listeners = CacheListeners()
        self._lock = threading.RLock() if config.thread_safe else nullcontext()

        self._cache_reads = 0
        self._store_reads = 0
        self._store_queries = 0
        self._evictions = 0

        logger.info(
            f"Feature cache for '{feature_type.name}' initialized: "
            f"capacity={config.capacity}, policy={config.eviction_policy.value}"
        )

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def capacity(self) -> int:
        return self.config.capacity

    @property
    def feature_type(self) -> FeatureType:
        return self._type

    @property
    def data_store(self) -> FeatureStore:
        return self._data_store

    @property
    def store(self) -> InternalStore:
        return self._store

    @property
    def index(self) -> FeatureIndex:
        return self._index

    @property
    def tracker(self) -> RegionTracker:
        return self._tracker

    @property
    def strategy(self) -> EvictionStrategy:
        return self._strategy

    @property
    def cache_reads(self) -> int:
        """Features returned from memory."""
        return self._cache_reads

    @property
    def store_reads(self) -> int:
        """Features fetched from the backing store."""
        return self._store_reads

    @property
    def store_queries(self) -> int:
        """Round trips to the backing store."""
        return self._store_queries

    @property
    def evictions(self) -> int:
        """Features dropped to make room."""
        return self._evictions

    def size(self) -> int:
        return len(self._store)

    def __len__(self) -> int:
        return len(self._store)

    def get_schema(self) -> FeatureType:
        return self._type

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def split_filter(self, f: Filter) -> Tuple[Filter, Filter, Filter]:
        """
        Split a filter against the tracked regions.

        Returns:
            (spatial_cached, spatial_missing, other): the bounding-box part
            to read from memory (EXCLUDE if nothing is cached), the part
            to fetch from the store (EXCLUDE if fully cached) and the
            remaining restrictions
        """
        spatial, other = split_filter(f)
        missing = self._tracker.match(spatial)
        # An unchanged filter object means nothing is covered
        cached = EXCLUDE if missing is spatial else spatial
        return cached, missing, other

    def get_features(self, query: Union[Query, Filter, None] = None) -> FeatureCollection:
        """
        Get features matching a query, reading through to the store.

        Args:
            query: Query, filter, or None for every feature

        Returns:
            De-duplicated collection of matching features

        Raises:
            TypeMismatchError: If the query names another feature type
            StoreReadError: If the backing store cannot be read
        """
        f = self._filter_of(query)

        with self._lock:
            cached, missing, other = self.split_filter(f)

            from_cache = self._load_from_cache(cached, other)
            self._cache_reads += len(from_cache)

            if missing is EXCLUDE:
                logger.debug(f"Served {len(from_cache)} features from cache")
                return from_cache

            from_store = self._load_from_store(and_(missing, other))
            self._store_queries += 1
            self._store_reads += len(from_store)

            # A restricted fetch does not bring in every feature of the area
            self.put_all(from_store, missing if other is INCLUDE else None)

            from_cache.add_all(from_store)
            logger.debug(
                f"Served {len(from_cache)} features, "
                f"{len(from_store)} fetched from store"
            )
            return from_cache

    def get(self, fid: str) -> Optional[Feature]:
        """Get a feature by identifier, fetching it from the store on a miss."""
        with self._lock:
            feature = self._store.get(fid)
            if feature is not None:
                return feature

            fetched = self.get_features(FidFilter(fid))
            return fetched.get(fid)

    def peek(self, fid: str) -> Optional[Feature]:
        """Cached feature by identifier, never touching the store."""
        return self._store.peek(fid)

    def get_bounds(self, query: Optional[Query] = None) -> Optional[Envelope]:
        """Envelope of the matching features, as reported by the store."""
        return self._source.get_bounds(query)

    def get_count(self, query: Optional[Query] = None) -> int:
        """Number of matching features, as reported by the store."""
        return self._source.get_count(query)

    # ------------------------------------------------------------------
    # Content management
    # ------------------------------------------------------------------

    def put(self, feature: Feature) -> bool:
        """
        Cache a single feature.

        No region is registered. Putting a known identifier is a no-op.

        Returns:
            True if the feature was added
        """
        with self._lock:
            return self._index.add(feature)

    def put_all(
        self,
        collection: FeatureCollection,
        registered_filter: Optional[Filter] = None,
    ) -> bool:
        """
        Cache a batch of features fetched for a filter.

        The filter's region is registered before the features are added,
        so evictions triggered by the insertion revoke it again. Batches
        larger than the capacity are neither cached nor registered.

        Args:
            collection: Features to cache
            registered_filter: Filter the batch completely satisfies

        Returns:
            False if the batch was skipped
        """
        with self._lock:
            if len(collection) > self.capacity:
                logger.warning(
                    f"Not caching {len(collection)} features: "
                    f"batch exceeds capacity {self.capacity}"
                )
                return False

            if registered_filter is not None:
                self._tracker.register(registered_filter)

            for feature in collection:
                self._index.add(feature)

            if len(self._store) >= self.capacity:
                self._evict()
            return True

    def remove(self, fid: str) -> Optional[Feature]:
        """
        Drop a feature from the cache.

        Every tracked region overlapping the feature is revoked.

        Returns:
            The removed feature, None if it was not cached
        """
        with self._lock:
            envelope = self._index.envelope_of(fid)
            feature = self._index.remove(fid)
            if feature is None:
                return None

            self._tracker.unregister(envelope)
            self._listeners.notify(
                CacheEvent(CacheEventType.REMOVED, self._type.name, (fid,), envelope)
            )
            return feature

    def evict(self) -> int:
        """
        Run the eviction strategy once.

        Returns:
            Number of features evicted
        """
        with self._lock:
            return self._evict()

    def clear(self) -> None:
        """Empty the internal store, the feature index and the region tracker."""
        with self._lock:
            fids = tuple(self._store.ids())
            self._index.clear()
            self._tracker.clear()
            self._listeners.notify(CacheEvent(CacheEventType.CLEARED, self._type.name, fids))
            logger.info(f"Cleared {len(fids)} cached '{self._type.name}' features")

    def get_statistics(self) -> CacheStatistics:
        """Get a snapshot of cache statistics."""
        with self._lock:
            return CacheStatistics(
                size=len(self._store),
                capacity=self.capacity,
                cache_reads=self._cache_reads,
                store_reads=self._store_reads,
                store_queries=self._store_queries,
                evictions=self._evictions,
                tracked_regions=len(self._tracker),
            )

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_listener(self, listener: CacheListener) -> None:
        self._listeners.subscribe(listener)

    def remove_listener(self, listener: CacheListener) -> bool:
        return self._listeners.unsubscribe(listener)

    # ------------------------------------------------------------------
    # Write path (unsupported)
    # ------------------------------------------------------------------

    def add_features(self, collection) -> None:
        raise UnsupportedOperationError("add_features")

    def modify_features(self, names, values, f: Filter) -> None:
        raise UnsupportedOperationError("modify_features")

    def remove_features(self, f: Filter) -> None:
        raise UnsupportedOperationError("remove_features")

    def set_features(self, reader) -> None:
        raise UnsupportedOperationError("set_features")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _filter_of(self, query: Union[Query, Filter, None]) -> Filter:
        if query is None:
            return INCLUDE
        if isinstance(query, Query):
            if query.type_name is not None and query.type_name != self._type.name:
                raise TypeMismatchError(self._type.name, query.type_name)
            return query.filter
        return query

    def _load_from_cache(self, cached: Filter, other: Filter) -> FeatureCollection:
        if cached is EXCLUDE:
            return FeatureCollection(feature_type=self._type)
        return self._index.get_features(and_(cached, other))

    def _load_from_store(self, f: Filter) -> FeatureCollection:
        try:
            return self._source.get_features(f)
        except OSError as e:
            logger.error(f"Store read failed for '{self._type.name}': {e}")
            raise StoreReadError(self._type.name, e) from e

    def _on_store_full(self, store: InternalStore) -> None:
        self._evict()

    def _evict(self) -> int:
        count = self._strategy.evict()
        if count:
            self._evictions += count
            self._listeners.notify(
                CacheEvent(
                    CacheEventType.EVICTED,
                    self._type.name,
                    tuple(self._strategy.last_evicted),
                    self._strategy.last_area,
                )
            )
        return count
