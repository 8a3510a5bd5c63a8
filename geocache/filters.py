"""
Feature Filters.

Filters form a small tagged union. Exactly one shape is recognized
structurally by the cache: the bounding-box predicate (BBoxFilter). Every
other filter is an opaque restriction evaluated feature by feature and
never spatially indexed.

Example:
    bbox = BBoxFilter(Envelope(0, 0, 10, 10))
    only_roads = AttributeFilter("kind", "==", "road")
    spatial, other = split_filter(and_(bbox, only_roads))
"""

import operator
from dataclasses import dataclass, field
from typing import Any, Callable, FrozenSet, Iterable, Optional, Tuple

from geocache.envelope import Envelope


class Filter:
    """Base class for feature predicates."""

    def evaluate(self, feature: Any) -> bool:
        raise NotImplementedError


class _Include(Filter):
    """Accepts every feature."""

    def evaluate(self, feature: Any) -> bool:
        return True

    def __repr__(self) -> str:
        return "INCLUDE"


class _Exclude(Filter):
    """Rejects every feature; also marks 'nothing to do' for the cache."""

    def evaluate(self, feature: Any) -> bool:
        return False

    def __repr__(self) -> str:
        return "EXCLUDE"


INCLUDE = _Include()
EXCLUDE = _Exclude()


@dataclass(frozen=True)
class BBoxFilter(Filter):
    """
    Bounding-box predicate: the feature envelope intersects the box.

    Attributes:
        envelope: Query rectangle
        property_name: Geometry property the predicate applies to
        srs: Spatial reference identifier, informational only
    """

    envelope: Envelope
    property_name: str = "geometry"
    srs: Optional[str] = None

    def evaluate(self, feature: Any) -> bool:
        return feature.envelope.intersects(self.envelope)

    def with_envelope(self, envelope: Envelope) -> "BBoxFilter":
        """Same predicate over another rectangle."""
        return BBoxFilter(envelope, self.property_name, self.srs)


@dataclass(frozen=True)
class FidFilter(Filter):
    """Identifier equality: the feature id is one of fids."""

    fids: FrozenSet[str]

    def __init__(self, fids: Iterable[str]):
        if isinstance(fids, str):
            fids = [fids]
        object.__setattr__(self, "fids", frozenset(fids))

    def evaluate(self, feature: Any) -> bool:
        return feature.fid in self.fids


_OPERATORS = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "in": lambda value, choices: value in choices,
}


@dataclass(frozen=True)
class AttributeFilter(Filter):
    """
    Comparison against a feature attribute.

    Attributes:
        name: Attribute name
        op: One of ==, !=, <, <=, >, >=, in
        value: Right-hand operand
    """

    name: str
    op: str
    value: Any

    def __post_init__(self):
        if self.op not in _OPERATORS:
            raise ValueError(f"Unsupported operator: {self.op}")

    def evaluate(self, feature: Any) -> bool:
        if self.name not in feature.attributes:
            return False
        try:
            return bool(_OPERATORS[self.op](feature.attributes[self.name], self.value))
        except TypeError:
            return False


@dataclass(frozen=True)
class PredicateFilter(Filter):
    """Arbitrary callable predicate."""

    func: Callable[[Any], bool] = field(compare=False)
    description: str = "predicate"

    def evaluate(self, feature: Any) -> bool:
        return bool(self.func(feature))


@dataclass(frozen=True)
class And(Filter):
    children: Tuple[Filter, ...]

    def evaluate(self, feature: Any) -> bool:
        return all(child.evaluate(feature) for child in self.children)


@dataclass(frozen=True)
class Or(Filter):
    children: Tuple[Filter, ...]

    def evaluate(self, feature: Any) -> bool:
        return any(child.evaluate(feature) for child in self.children)


@dataclass(frozen=True)
class Not(Filter):
    child: Filter

    def evaluate(self, feature: Any) -> bool:
        return not self.child.evaluate(feature)


def and_(*filters: Filter) -> Filter:
    """
    Conjunction with INCLUDE/EXCLUDE absorbed.

    Returns:
        EXCLUDE if any operand is EXCLUDE, INCLUDE if all are INCLUDE,
        the single remaining operand, or an And of the rest.
    """
    children = []
    for f in filters:
        if f is EXCLUDE:
            return EXCLUDE
        if f is INCLUDE:
            continue
        if isinstance(f, And):
            children.extend(f.children)
        else:
            children.append(f)

    if not children:
        return INCLUDE
    if len(children) == 1:
        return children[0]
    return And(tuple(children))


def or_(*filters: Filter) -> Filter:
    """Disjunction with INCLUDE/EXCLUDE absorbed."""
    children = []
    for f in filters:
        if f is INCLUDE:
            return INCLUDE
        if f is EXCLUDE:
            continue
        children.append(f)

    if not children:
        return EXCLUDE
    if len(children) == 1:
        return children[0]
    return Or(tuple(children))


def split_filter(f: Filter) -> Tuple[Filter, Filter]:
    """
    Separate the bounding-box predicate from the other restrictions.

    Only the top level is inspected: a BBoxFilter, or the first BBoxFilter
    among the direct children of an And. Nested spatial predicates stay
    in the other restrictions.

    Returns:
        (spatial, other) where spatial is a BBoxFilter or INCLUDE
    """
    if isinstance(f, BBoxFilter):
        return f, INCLUDE

    if isinstance(f, And):
        for i, child in enumerate(f.children):
            if isinstance(child, BBoxFilter):
                rest = f.children[:i] + f.children[i + 1:]
                return child, and_(*rest)

    return INCLUDE, f
