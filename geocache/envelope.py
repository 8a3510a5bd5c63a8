"""
Envelope value type.

Axis-aligned bounding rectangles used both to bound individual features
and to describe the extent of previously satisfied queries. Envelopes are
immutable: union and intersection return new instances.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from shapely.geometry import Polygon, box


@dataclass(frozen=True)
class Envelope:
    """
    Planar bounding rectangle.

    Attributes:
        min_x: Minimum x (west)
        min_y: Minimum y (south)
        max_x: Maximum x (east)
        max_y: Maximum y (north)
    """

    min_x: float
    min_y: float
    max_x: float
    max_y: float

    def __post_init__(self):
        """Validate coordinates."""
        if self.min_x > self.max_x:
            raise ValueError(f"min_x ({self.min_x}) must be <= max_x ({self.max_x})")
        if self.min_y > self.max_y:
            raise ValueError(f"min_y ({self.min_y}) must be <= max_y ({self.max_y})")

    @property
    def width(self) -> float:
        return self.max_x - self.min_x

    @property
    def height(self) -> float:
        return self.max_y - self.min_y

    @property
    def area(self) -> float:
        return self.width * self.height

    @property
    def center(self) -> Tuple[float, float]:
        """Get center point (x, y)."""
        return ((self.min_x + self.max_x) / 2, (self.min_y + self.max_y) / 2)

    def intersects(self, other: "Envelope") -> bool:
        """Check if this envelope intersects another (touching counts)."""
        return not (
            self.max_x < other.min_x
            or self.min_x > other.max_x
            or self.max_y < other.min_y
            or self.min_y > other.max_y
        )

    def contains(self, other: "Envelope") -> bool:
        """Check if this envelope fully contains another."""
        return (
            other.min_x >= self.min_x
            and other.max_x <= self.max_x
            and other.min_y >= self.min_y
            and other.max_y <= self.max_y
        )

    def union(self, other: "Envelope") -> "Envelope":
        """Smallest envelope covering both."""
        return Envelope(
            min(self.min_x, other.min_x),
            min(self.min_y, other.min_y),
            max(self.max_x, other.max_x),
            max(self.max_y, other.max_y),
        )

    def intersection(self, other: "Envelope") -> Optional["Envelope"]:
        """Common part of both envelopes, or None if they are disjoint."""
        if not self.intersects(other):
            return None
        return Envelope(
            max(self.min_x, other.min_x),
            max(self.min_y, other.min_y),
            min(self.max_x, other.max_x),
            min(self.max_y, other.max_y),
        )

    def enlargement(self, other: "Envelope") -> float:
        """Area growth needed to include another envelope."""
        return self.union(other).area - self.area

    def to_polygon(self) -> Polygon:
        """Rectangle geometry for polygon algebra."""
        return box(self.min_x, self.min_y, self.max_x, self.max_y)

    def to_list(self) -> List[float]:
        """Convert to [min_x, min_y, max_x, max_y] list."""
        return [self.min_x, self.min_y, self.max_x, self.max_y]

    @classmethod
    def from_list(cls, coords: Sequence[float]) -> "Envelope":
        """Create from [min_x, min_y, max_x, max_y] list."""
        if len(coords) != 4:
            raise ValueError(f"Expected 4 coordinates, got {len(coords)}")
        return cls(
            min_x=float(coords[0]),
            min_y=float(coords[1]),
            max_x=float(coords[2]),
            max_y=float(coords[3]),
        )

    @classmethod
    def from_bounds(cls, bounds: Sequence[float]) -> "Envelope":
        """Create from shapely-style (minx, miny, maxx, maxy) bounds."""
        return cls.from_list(bounds)

    @classmethod
    def covering(cls, envelopes: Sequence["Envelope"]) -> Optional["Envelope"]:
        """Union of several envelopes, None for an empty sequence."""
        result = None
        for envelope in envelopes:
            result = envelope if result is None else result.union(envelope)
        return result
