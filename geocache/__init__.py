"""
Spatial Feature Cache.

Read-through cache between a client and an expensive geospatial feature
store. Results of bounding-box queries are kept in memory together with
the regions they cover, so later overlapping queries are served from
memory and only the uncovered remainder is fetched from the store.

Components:
- Internal store: bounded feature table with overflow chaining
- Region tracker: rectangles whose features are known to be cached
- Feature index: R-tree over the cached features
- Eviction: LRU (per R-tree leaf) or random replacement
- Engine: the query flow tying the above together

Example usage:
    from geocache import (
        BBoxFilter,
        CacheConfig,
        Envelope,
        FeatureCache,
        MemoryFeatureStore,
    )

    store = MemoryFeatureStore([roads])
    store.add_features("roads", features)

    cache = FeatureCache(store, roads, config=CacheConfig(capacity=5000))

    # First query goes to the store
    cache.get_features(BBoxFilter(Envelope(0, 0, 10, 10)))

    # Overlapping query only fetches [10, 0, 15, 10]
    cache.get_features(BBoxFilter(Envelope(5, 0, 15, 10)))

    print(cache.get_statistics().to_dict())
"""

from geocache.config import CacheConfig, load_config
from geocache.datacache import (
    CachedFeatureSource,
    CachedFeatureView,
    CacheRegistry,
    DataCache,
)
from geocache.engine import CacheStatistics, FeatureCache
from geocache.envelope import Envelope
from geocache.events import CacheEvent, CacheEventType, CacheListeners
from geocache.eviction import (
    EvictionPolicy,
    EvictionStrategy,
    LRUEvictionStrategy,
    NodeAccessTracker,
    NodeCacheEntry,
    RandomEvictionStrategy,
    create_strategy,
)
from geocache.exceptions import (
    CacheFullError,
    FeatureCacheError,
    SchemaMismatchError,
    SpatialIndexError,
    StoreReadError,
    TypeMismatchError,
    UnsupportedOperationError,
)
from geocache.features import Feature, FeatureCollection, FeatureType, Query
from geocache.filters import (
    EXCLUDE,
    INCLUDE,
    And,
    AttributeFilter,
    BBoxFilter,
    FidFilter,
    Filter,
    Not,
    Or,
    PredicateFilter,
    and_,
    or_,
    split_filter,
)
from geocache.index import FeatureIndex, IndexView
from geocache.rtree import RTree
from geocache.storage import CacheEntry, InternalStore
from geocache.store import (
    FeatureSource,
    FeatureStore,
    MemoryFeatureSource,
    MemoryFeatureStore,
)
from geocache.tracker import RegionTracker

__version__ = "0.1.0"

__all__ = [
    # Configuration
    "CacheConfig",
    "load_config",
    # Engine
    "FeatureCache",
    "CacheStatistics",
    "DataCache",
    "CachedFeatureSource",
    "CachedFeatureView",
    "CacheRegistry",
    # Events
    "CacheEvent",
    "CacheEventType",
    "CacheListeners",
    # Eviction
    "EvictionPolicy",
    "EvictionStrategy",
    "LRUEvictionStrategy",
    "RandomEvictionStrategy",
    "NodeAccessTracker",
    "NodeCacheEntry",
    "create_strategy",
    # Exceptions
    "FeatureCacheError",
    "SchemaMismatchError",
    "TypeMismatchError",
    "UnsupportedOperationError",
    "StoreReadError",
    "SpatialIndexError",
    "CacheFullError",
    # Model
    "Envelope",
    "Feature",
    "FeatureCollection",
    "FeatureType",
    "Query",
    # Filters
    "Filter",
    "INCLUDE",
    "EXCLUDE",
    "BBoxFilter",
    "FidFilter",
    "AttributeFilter",
    "PredicateFilter",
    "And",
    "Or",
    "Not",
    "and_",
    "or_",
    "split_filter",
    # Components
    "InternalStore",
    "CacheEntry",
    "RegionTracker",
    "FeatureIndex",
    "IndexView",
    "RTree",
    # Backing stores
    "FeatureSource",
    "FeatureStore",
    "MemoryFeatureSource",
    "MemoryFeatureStore",
    "__version__",
]
