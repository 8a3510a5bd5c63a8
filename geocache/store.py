"""
Backing Feature Store Interface.

The cache consumes the backing store through a narrow interface: schema
lookup, type listing and "fetch features matching a filter". Concrete
database drivers live outside this package; MemoryFeatureStore is a
dictionary-backed implementation for testing and small datasets.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional, Union

from geocache.envelope import Envelope
from geocache.features import Feature, FeatureCollection, FeatureType, Query
from geocache.filters import INCLUDE, Filter

logger = logging.getLogger(__name__)


class FeatureSource(ABC):
    """Read access to the features of one type."""

    @abstractmethod
    def get_schema(self) -> FeatureType:
        """Return the feature type served by this source."""
        pass

    @abstractmethod
    def get_features(self, filter: Filter = INCLUDE) -> FeatureCollection:
        """
        Fetch features matching a filter.

        Args:
            filter: Feature predicate

        Returns:
            FeatureCollection of matching features

        Raises:
            IOError: If the underlying storage cannot be read
        """
        pass

    def get_bounds(self, query: Optional[Query] = None) -> Optional[Envelope]:
        """Envelope of the features matching a query."""
        f = query.filter if query is not None else INCLUDE
        return self.get_features(f).bounds

    def get_count(self, query: Optional[Query] = None) -> int:
        """Number of features matching a query."""
        f = query.filter if query is not None else INCLUDE
        return len(self.get_features(f))


class FeatureStore(ABC):
    """
    Abstract base class for backing feature stores.

    Provides a consistent interface for the stores the cache sits in
    front of.
    """

    @abstractmethod
    def get_type_names(self) -> List[str]:
        """Return the names of all feature types in the store."""
        pass

    @abstractmethod
    def get_schema(self, type_name: str) -> FeatureType:
        """
        Look up a feature type.

        Raises:
            KeyError: If the store has no such type
        """
        pass

    @abstractmethod
    def get_feature_source(self, type_name: str) -> FeatureSource:
        """
        Return read access to one feature type.

        Raises:
            KeyError: If the store has no such type
        """
        pass

    def create_schema(self, feature_type: FeatureType) -> None:
        """Create a new feature type."""
        raise NotImplementedError(f"{type(self).__name__} cannot create schemas")

    def update_schema(self, feature_type: FeatureType) -> None:
        """
        Replace an existing feature type, keeping its features.

        Raises:
            KeyError: If the store has no such type
        """
        raise NotImplementedError(f"{type(self).__name__} cannot update schemas")


class MemoryFeatureSource(FeatureSource):
    """Feature source over an in-memory dictionary."""

    def __init__(self, store: "MemoryFeatureStore", type_name: str):
        self._store = store
        self._type_name = type_name

    def get_schema(self) -> FeatureType:
        return self._store.get_schema(self._type_name)

    def get_features(self, filter: Filter = INCLUDE) -> FeatureCollection:
        features = self._store._features[self._type_name].values()
        return FeatureCollection(
            (f for f in features if filter.evaluate(f)),
            self.get_schema(),
        )


class MemoryFeatureStore(FeatureStore):
    """
    In-memory feature store for testing and small datasets.

    Stores features in a dictionary per type, keyed by identifier.
    """

    def __init__(self, feature_types: Iterable[FeatureType] = ()):
        """
        Initialize memory feature store.

        Args:
            feature_types: Types to create up front
        """
        self._schemas: Dict[str, FeatureType] = {}
        self._features: Dict[str, Dict[str, Feature]] = {}
        for feature_type in feature_types:
            self.create_schema(feature_type)

    def get_type_names(self) -> List[str]:
        return list(self._schemas)

    def get_schema(self, type_name: str) -> FeatureType:
        if type_name not in self._schemas:
            raise KeyError(f"Unknown feature type: {type_name}")
        return self._schemas[type_name]

    def get_feature_source(self, type_name: str) -> FeatureSource:
        self.get_schema(type_name)
        return MemoryFeatureSource(self, type_name)

    def create_schema(self, feature_type: FeatureType) -> None:
        if feature_type.name in self._schemas:
            raise ValueError(f"Feature type already exists: {feature_type.name}")
        self._schemas[feature_type.name] = feature_type
        self._features[feature_type.name] = {}
        logger.debug(f"Created feature type {feature_type.name}")

    def update_schema(self, feature_type: FeatureType) -> None:
        self.get_schema(feature_type.name)
        self._schemas[feature_type.name] = feature_type
        logger.debug(f"Updated feature type {feature_type.name}")

    def add_features(
        self,
        type_name: Union[str, FeatureType],
        features: Iterable[Feature],
    ) -> int:
        """
        Add or replace features of a type.

        Returns:
            Number of features written
        """
        if isinstance(type_name, FeatureType):
            type_name = type_name.name
        self.get_schema(type_name)

        count = 0
        for feature in features:
            self._features[type_name][feature.fid] = feature
            count += 1
        return count

    def remove_feature(self, type_name: str, fid: str) -> bool:
        """Delete one feature. Returns False if it did not exist."""
        return self._features[type_name].pop(fid, None) is not None
