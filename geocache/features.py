"""
Feature model for the cache.

Features are opaque records for the cache: only the identifier and the
envelope are interpreted. Attributes and geometry are carried through
untouched.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple, Union

from geocache.envelope import Envelope
from geocache.filters import INCLUDE, Filter


@dataclass(frozen=True)
class FeatureType:
    """
    Schema of a feature type.

    Attributes:
        name: Type name, unique within a store
        attributes: Attribute names
        geometry_name: Name of the geometry property
        srs: Spatial reference identifier
    """

    name: str
    attributes: Tuple[str, ...] = ()
    geometry_name: str = "geometry"
    srs: Optional[str] = None


@dataclass
class Feature:
    """
    A geographic feature.

    Attributes:
        fid: Unique feature identifier
        envelope: Bounding rectangle of the geometry
        attributes: Attribute values by name
        geometry: Optional geometry object (e.g. shapely)
    """

    fid: str
    envelope: Envelope
    attributes: Dict[str, Any] = field(default_factory=dict)
    geometry: Any = None

    def get(self, name: str, default: Any = None) -> Any:
        """Get an attribute value."""
        return self.attributes.get(name, default)

    @classmethod
    def from_geometry(
        cls,
        fid: str,
        geometry: Any,
        attributes: Optional[Dict[str, Any]] = None,
    ) -> "Feature":
        """Create from a shapely geometry, deriving the envelope from its bounds."""
        return cls(
            fid=fid,
            envelope=Envelope.from_bounds(geometry.bounds),
            attributes=attributes or {},
            geometry=geometry,
        )


@dataclass
class Query:
    """
    Feature query.

    Attributes:
        type_name: Feature type to query (None = the cache's own type)
        filter: Feature predicate
        property_names: Requested attributes (not interpreted by the cache)
        max_features: Result limit (not interpreted by the cache)
    """

    type_name: Optional[str] = None
    filter: Filter = INCLUDE
    property_names: Optional[Tuple[str, ...]] = None
    max_features: Optional[int] = None


class FeatureCollection:
    """
    Ordered collection of features, unique by identifier.

    Adding a feature whose identifier is already present is a no-op.
    """

    def __init__(
        self,
        features: Iterable[Feature] = (),
        feature_type: Optional[FeatureType] = None,
    ):
        self.feature_type = feature_type
        self._features: Dict[str, Feature] = {}
        self.add_all(features)

    def add(self, feature: Feature) -> bool:
        """Add a feature. Returns False if its id was already present."""
        if feature.fid in self._features:
            return False
        self._features[feature.fid] = feature
        return True

    def add_all(self, features: Iterable[Feature]) -> int:
        """Add several features. Returns the number actually added."""
        return sum(1 for feature in features if self.add(feature))

    def get(self, fid: str) -> Optional[Feature]:
        return self._features.get(fid)

    def ids(self) -> List[str]:
        return list(self._features)

    def filter(self, f: Filter) -> "FeatureCollection":
        """Sub-collection of the features accepted by a filter."""
        return FeatureCollection(
            (feature for feature in self._features.values() if f.evaluate(feature)),
            self.feature_type,
        )

    @property
    def bounds(self) -> Optional[Envelope]:
        """Envelope covering every feature, None when empty."""
        return Envelope.covering([f.envelope for f in self._features.values()])

    def __iter__(self) -> Iterator[Feature]:
        return iter(list(self._features.values()))

    def __len__(self) -> int:
        return len(self._features)

    def __contains__(self, item: Union[str, Feature]) -> bool:
        fid = item.fid if isinstance(item, Feature) else item
        return fid in self._features

    def __repr__(self) -> str:
        type_name = self.feature_type.name if self.feature_type else None
        return f"FeatureCollection(type={type_name}, size={len(self)})"
