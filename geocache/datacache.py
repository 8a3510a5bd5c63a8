"""
Multi-type Data Cache.

DataCache wraps a whole feature store, keeping one FeatureCache per
feature type, and is itself usable as a FeatureStore. CacheRegistry maps
application-chosen connection keys to data caches so that several parts
of an application can share the cache of one store.
"""

import logging
import threading
from typing import Any, Callable, Dict, List, Optional, Union

from geocache.config import CacheConfig
from geocache.engine import CacheStatistics, FeatureCache
from geocache.exceptions import SchemaMismatchError, UnsupportedOperationError
from geocache.features import FeatureCollection, FeatureType, Query
from geocache.filters import INCLUDE, Filter, and_
from geocache.index import IndexView
from geocache.store import FeatureSource, FeatureStore

logger = logging.getLogger(__name__)


class CachedFeatureSource(FeatureSource):
    """
    Feature source reading through a feature cache.

    The cache layer is read-only, writes go to the backing store.
    """

    def __init__(self, engine: FeatureCache):
        self._engine = engine

    def get_schema(self) -> FeatureType:
        return self._engine.get_schema()

    def get_features(self, filter: Filter = INCLUDE) -> FeatureCollection:
        return self._engine.get_features(filter)

    def add_features(self, collection) -> None:
        raise UnsupportedOperationError("add_features")

    def remove_features(self, f: Filter) -> None:
        raise UnsupportedOperationError("remove_features")

    def modify_features(self, names, values, f: Filter) -> None:
        raise UnsupportedOperationError("modify_features")

    def set_features(self, reader) -> None:
        raise UnsupportedOperationError("set_features")


class CachedFeatureView(CachedFeatureSource):
    """
    Read-through view restricted to one query.

    Handed out for queries whose results the cache could not keep, every
    read goes through the cache and on to the store as needed.
    """

    def __init__(self, engine: FeatureCache, query: Query):
        super().__init__(engine)
        self.query = query

    def get_features(self, filter: Filter = INCLUDE) -> FeatureCollection:
        return self._engine.get_features(and_(self.query.filter, filter))


class DataCache(FeatureStore):
    """
    Caching facade over every feature type of a store.

    Engines are created for the types present at construction and for
    types created through create_schema().
    """

    def __init__(
        self,
        store: FeatureStore,
        config: Optional[CacheConfig] = None,
        thread_safe: Optional[bool] = None,
    ):
        """
        Initialize data cache.

        Args:
            store: Backing feature store
            config: Configuration shared by every per-type cache
            thread_safe: Serialize operations with a lock (overrides config)
        """
        self.source = store
        self.config = config or CacheConfig()
        self._thread_safe = self.config.thread_safe if thread_safe is None else thread_safe
        self._lock = threading.RLock()
        self._engines: Dict[str, FeatureCache] = {}

        for type_name in store.get_type_names():
            self._engines[type_name] = self._create_engine(store.get_schema(type_name))

        logger.info(f"Data cache initialized for {len(self._engines)} feature types")

    def get_type_names(self) -> List[str]:
        with self._lock:
            return list(self._engines)

    def get_schema(self, type_name: str) -> FeatureType:
        return self.get_engine(type_name).get_schema()

    def get_engine(self, type_name: str) -> FeatureCache:
        """
        Get the feature cache of a type.

        Raises:
            SchemaMismatchError: If the type is unknown
        """
        with self._lock:
            engine = self._engines.get(type_name)
        if engine is None:
            raise SchemaMismatchError(type_name, "not found in data cache")
        return engine

    def get_feature_source(self, type_name: str) -> FeatureSource:
        return CachedFeatureSource(self.get_engine(type_name))

    def get_features(self, query: Query) -> FeatureCollection:
        """
        Read features of the query's type through its cache.

        Raises:
            ValueError: If the query has no type name
        """
        return self.get_engine(self._type_name_of(query)).get_features(query)

    def get_view(self, query: Query) -> Union[IndexView, CachedFeatureView]:
        """
        Warm the cache for a query and return a view over it.

        When every result stayed cached the view is a live IndexView that
        reads the cached features only, so later evictions are visible
        through it. Results the cache could not keep (a batch larger than
        the capacity, or one evicted right after insertion) get a
        read-through CachedFeatureView instead.
        """
        engine = self.get_engine(self._type_name_of(query))
        result = engine.get_features(query)
        if all(engine.peek(fid) is not None for fid in result.ids()):
            return engine.index.get_view(query)

        logger.debug(f"{len(result)} features not kept in cache, returning read-through view")
        return CachedFeatureView(engine, query)

    def create_schema(self, feature_type: FeatureType) -> None:
        """Create a type in the backing store and start caching it."""
        with self._lock:
            self.source.create_schema(feature_type)
            self._engines[feature_type.name] = self._create_engine(feature_type)
        logger.info(f"Created cached feature type {feature_type.name}")

    def update_schema(self, feature_type: FeatureType) -> None:
        """
        Replace a type in the backing store and rebuild its cache.

        Features cached under the old schema are dropped.

        Raises:
            SchemaMismatchError: If the type is unknown
        """
        with self._lock:
            old = self.get_engine(feature_type.name)
            self.source.update_schema(feature_type)
            old.clear()
            self._engines[feature_type.name] = self._create_engine(feature_type)
        logger.info(f"Updated cached feature type {feature_type.name}")

    def clear(self) -> None:
        """Clear every per-type cache."""
        with self._lock:
            for engine in self._engines.values():
                engine.clear()

    def get_statistics(self) -> Dict[str, CacheStatistics]:
        """Statistics per feature type."""
        with self._lock:
            return {name: engine.get_statistics() for name, engine in self._engines.items()}

    def _create_engine(self, feature_type: FeatureType) -> FeatureCache:
        return FeatureCache(
            self.source,
            feature_type,
            config=self.config,
            thread_safe=self._thread_safe,
        )

    @staticmethod
    def _type_name_of(query: Query) -> str:
        if query.type_name is None:
            raise ValueError("Query must name a feature type")
        return query.type_name


class CacheRegistry:
    """
    Application-owned registry of data caches keyed by connection.

    Thread-safe.
    """

    def __init__(self, config: Optional[CacheConfig] = None):
        self.config = config
        self._lock = threading.RLock()
        self._caches: Dict[Any, DataCache] = {}

    def get_or_create(
        self,
        key: Any,
        store: Union[FeatureStore, Callable[[], FeatureStore]],
    ) -> DataCache:
        """
        Get the data cache registered under key, creating it if needed.

        Args:
            key: Connection key
            store: Backing store, or a factory called only on creation
        """
        with self._lock:
            cache = self._caches.get(key)
            if cache is None:
                if not isinstance(store, FeatureStore):
                    store = store()
                cache = DataCache(store, self.config)
                self._caches[key] = cache
                logger.debug(f"Registered data cache for {key!r}")
            return cache

    def get(self, key: Any) -> Optional[DataCache]:
        with self._lock:
            return self._caches.get(key)

    def remove(self, key: Any) -> Optional[DataCache]:
        """Unregister a data cache. The cache itself is left intact."""
        with self._lock:
            return self._caches.pop(key, None)

    def clear(self) -> None:
        """Clear and unregister every data cache."""
        with self._lock:
            for cache in self._caches.values():
                cache.clear()
            self._caches.clear()

    def keys(self) -> List[Any]:
        with self._lock:
            return list(self._caches)

    def __contains__(self, key: Any) -> bool:
        with self._lock:
            return key in self._caches

    def __len__(self) -> int:
        with self._lock:
            return len(self._caches)
