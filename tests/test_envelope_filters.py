"""
Tests for the envelope value type, the filter model and the feature model.
"""

import pytest
from shapely.geometry import LineString, Point

from geocache.envelope import Envelope
from geocache.features import Feature, FeatureCollection, FeatureType, Query
from geocache.filters import (
    EXCLUDE,
    INCLUDE,
    And,
    AttributeFilter,
    BBoxFilter,
    FidFilter,
    Not,
    Or,
    PredicateFilter,
    and_,
    or_,
    split_filter,
)

from conftest import make_point


# ==============================================================================
# Envelope Tests
# ==============================================================================


class TestEnvelope:
    """Tests for Envelope."""

    def test_valid_envelope(self):
        """Test valid envelope."""
        env = Envelope(0, 0, 10, 5)
        assert env.width == 10
        assert env.height == 5
        assert env.area == 50
        assert env.center == (5, 2.5)

    def test_invalid_x(self):
        """Test invalid min_x > max_x."""
        with pytest.raises(ValueError, match="min_x"):
            Envelope(10, 0, 0, 5)

    def test_invalid_y(self):
        """Test invalid min_y > max_y."""
        with pytest.raises(ValueError, match="min_y"):
            Envelope(0, 5, 10, 0)

    def test_degenerate_is_valid(self):
        """Test degenerate envelopes are valid."""
        point = Envelope(3, 3, 3, 3)
        assert point.area == 0

    def test_immutable(self):
        """Test envelopes cannot be modified."""
        env = Envelope(0, 0, 1, 1)
        with pytest.raises(AttributeError):
            env.min_x = 5

    def test_intersects(self):
        """Test intersection check."""
        a = Envelope(0, 0, 10, 10)
        assert a.intersects(Envelope(5, 5, 15, 15))
        assert not a.intersects(Envelope(11, 0, 20, 10))

    def test_touching_intersects(self):
        """Test touching envelopes intersect."""
        a = Envelope(0, 0, 10, 10)
        assert a.intersects(Envelope(10, 0, 20, 10))
        assert a.intersects(Envelope(10, 10, 10, 10))

    def test_contains(self):
        """Test containment check."""
        a = Envelope(0, 0, 10, 10)
        assert a.contains(Envelope(2, 2, 8, 8))
        assert a.contains(a)
        assert not a.contains(Envelope(5, 5, 15, 15))

    def test_union(self):
        """Test union of envelopes."""
        assert Envelope(0, 0, 1, 1).union(Envelope(2, -1, 3, 0)) == Envelope(0, -1, 3, 1)

    def test_intersection(self):
        """Test intersection of envelopes."""
        a = Envelope(0, 0, 10, 10)
        assert a.intersection(Envelope(5, 5, 15, 15)) == Envelope(5, 5, 10, 10)
        assert a.intersection(Envelope(20, 20, 30, 30)) is None

    def test_enlargement(self):
        """Test enlargement needed to cover another envelope."""
        assert Envelope(0, 0, 1, 1).enlargement(Envelope(0, 0, 2, 1)) == 1
        assert Envelope(0, 0, 2, 2).enlargement(Envelope(0, 0, 1, 1)) == 0

    def test_to_polygon(self):
        """Test conversion to a shapely polygon."""
        polygon = Envelope(0, 0, 2, 3).to_polygon()
        assert polygon.area == 6
        assert polygon.bounds == (0, 0, 2, 3)

    def test_list_round_trip(self):
        """Test list conversion round trip."""
        env = Envelope(-1.5, 2, 3, 4.25)
        assert Envelope.from_list(env.to_list()) == env

    def test_from_list_wrong_length(self):
        """Test from_list with the wrong number of values."""
        with pytest.raises(ValueError, match="Expected 4"):
            Envelope.from_list([0, 0, 1])

    def test_covering(self):
        """Test the envelope covering several envelopes."""
        envs = [Envelope(0, 0, 1, 1), Envelope(5, 5, 6, 7), Envelope(-2, 3, -1, 4)]
        assert Envelope.covering(envs) == Envelope(-2, 0, 6, 7)
        assert Envelope.covering([]) is None

    def test_hashable(self):
        """Test envelopes can be used as keys."""
        assert len({Envelope(0, 0, 1, 1), Envelope(0.0, 0.0, 1.0, 1.0)}) == 1


# ==============================================================================
# Filter Tests
# ==============================================================================


class TestFilters:
    """Tests for the filter model."""

    @pytest.fixture
    def feature(self):
        return make_point("roads.1", 5, 5, lanes=2, name="main")

    def test_include_exclude(self, feature):
        """Test INCLUDE and EXCLUDE."""
        assert INCLUDE.evaluate(feature)
        assert not EXCLUDE.evaluate(feature)

    def test_bbox(self, feature):
        """Test bounding-box filter evaluation."""
        assert BBoxFilter(Envelope(0, 0, 10, 10)).evaluate(feature)
        assert BBoxFilter(Envelope(5, 5, 6, 6)).evaluate(feature)
        assert not BBoxFilter(Envelope(6, 6, 10, 10)).evaluate(feature)

    def test_bbox_with_envelope_keeps_property(self):
        """Test with_envelope keeps property name and srs."""
        f = BBoxFilter(Envelope(0, 0, 1, 1), property_name="the_geom", srs="EPSG:3857")
        g = f.with_envelope(Envelope(2, 2, 3, 3))
        assert g.property_name == "the_geom"
        assert g.srs == "EPSG:3857"
        assert g.envelope == Envelope(2, 2, 3, 3)

    def test_fid(self, feature):
        """Test identifier filter evaluation."""
        assert FidFilter("roads.1").evaluate(feature)
        assert FidFilter(["roads.2", "roads.1"]).evaluate(feature)
        assert not FidFilter(["roads.2"]).evaluate(feature)

    def test_fid_equality(self):
        """Test identifier filter equality."""
        assert FidFilter(["a", "b"]) == FidFilter(["b", "a"])

    @pytest.mark.parametrize(
        "op,value,expected",
        [
            ("==", 2, True),
            ("!=", 2, False),
            ("<", 3, True),
            ("<=", 1, False),
            (">", 1, True),
            (">=", 3, False),
            ("in", (1, 2), True),
        ],
    )
    def test_attribute(self, feature, op, value, expected):
        """Test attribute filter evaluation."""
        assert AttributeFilter("lanes", op, value).evaluate(feature) is expected

    def test_attribute_missing(self, feature):
        """Test attribute filter on a missing attribute."""
        assert not AttributeFilter("speed", "==", 50).evaluate(feature)

    def test_attribute_incomparable(self, feature):
        """Test attribute filter on incomparable values."""
        assert not AttributeFilter("name", "<", 5).evaluate(feature)

    def test_attribute_bad_operator(self):
        """Test attribute filter with an unknown operator."""
        with pytest.raises(ValueError, match="Unsupported operator"):
            AttributeFilter("lanes", "~", 1)

    def test_predicate(self, feature):
        """Test predicate filter evaluation."""
        f = PredicateFilter(lambda feat: feat.fid.startswith("roads"), "is road")
        assert f.evaluate(feature)

    def test_logical(self, feature):
        """Test And, Or and Not evaluation."""
        yes = AttributeFilter("lanes", "==", 2)
        no = AttributeFilter("lanes", "==", 3)
        assert And((yes, yes)).evaluate(feature)
        assert not And((yes, no)).evaluate(feature)
        assert Or((no, yes)).evaluate(feature)
        assert Not(no).evaluate(feature)

    def test_and_simplification(self):
        """Test and_ absorbs INCLUDE and EXCLUDE."""
        f = AttributeFilter("lanes", "==", 2)
        assert and_() is INCLUDE
        assert and_(INCLUDE, INCLUDE) is INCLUDE
        assert and_(f, INCLUDE) is f
        assert and_(f, EXCLUDE) is EXCLUDE

    def test_and_flattens(self):
        """Test and_ flattens nested conjunctions."""
        a, b, c = (AttributeFilter("lanes", "==", v) for v in (1, 2, 3))
        assert and_(And((a, b)), c) == And((a, b, c))

    def test_or_simplification(self):
        """Test or_ absorbs INCLUDE and EXCLUDE."""
        f = AttributeFilter("lanes", "==", 2)
        assert or_() is EXCLUDE
        assert or_(f, EXCLUDE) is f
        assert or_(f, INCLUDE) is INCLUDE


class TestSplitFilter:
    """Tests for separating the bounding-box predicate."""

    def test_bbox_alone(self):
        """Test splitting a lone bounding box."""
        bbox = BBoxFilter(Envelope(0, 0, 1, 1))
        assert split_filter(bbox) == (bbox, INCLUDE)

    def test_bbox_in_and(self):
        """Test splitting a bounding box inside a conjunction."""
        bbox = BBoxFilter(Envelope(0, 0, 1, 1))
        attr = AttributeFilter("lanes", ">", 1)
        spatial, other = split_filter(And((attr, bbox)))
        assert spatial is bbox
        assert other is attr

    def test_first_bbox_wins(self):
        """Test the first bounding box is the spatial part."""
        first = BBoxFilter(Envelope(0, 0, 1, 1))
        second = BBoxFilter(Envelope(5, 5, 6, 6))
        spatial, other = split_filter(And((first, second)))
        assert spatial is first
        assert other is second

    def test_no_bbox(self):
        """Test splitting a filter without a bounding box."""
        attr = AttributeFilter("lanes", ">", 1)
        assert split_filter(attr) == (INCLUDE, attr)
        assert split_filter(INCLUDE) == (INCLUDE, INCLUDE)

    def test_nested_bbox_not_recognized(self):
        """Test a bounding box under Or is not recognized."""
        nested = Or((BBoxFilter(Envelope(0, 0, 1, 1)), AttributeFilter("lanes", "==", 1)))
        spatial, other = split_filter(nested)
        assert spatial is INCLUDE
        assert other is nested


# ==============================================================================
# Feature Model Tests
# ==============================================================================


class TestFeature:
    """Tests for Feature and FeatureType."""

    def test_from_geometry(self):
        """Test a feature built from a shapely geometry."""
        line = LineString([(0, 0), (4, 2)])
        feature = Feature.from_geometry("roads.9", line, {"lanes": 1})
        assert feature.envelope == Envelope(0, 0, 4, 2)
        assert feature.geometry is line
        assert feature.get("lanes") == 1
        assert feature.get("missing", "x") == "x"

    def test_from_point(self):
        """Test a point feature."""
        feature = Feature.from_geometry("p", Point(3, 4))
        assert feature.envelope == Envelope(3, 4, 3, 4)

    def test_feature_type_equality(self):
        """Test feature type equality."""
        a = FeatureType("roads", ("name",), srs="EPSG:4326")
        assert a == FeatureType("roads", ("name",), srs="EPSG:4326")
        assert a != FeatureType("roads", ("name", "lanes"), srs="EPSG:4326")

    def test_query_defaults(self):
        """Test query defaults."""
        query = Query()
        assert query.type_name is None
        assert query.filter is INCLUDE


class TestFeatureCollection:
    """Tests for FeatureCollection."""

    def test_dedupes_by_fid(self):
        """Test collections de-duplicate by identifier."""
        a = make_point("a", 0, 0)
        collection = FeatureCollection([a, make_point("a", 9, 9), make_point("b", 1, 1)])
        assert len(collection) == 2
        assert collection.get("a") is a
        assert collection.ids() == ["a", "b"]

    def test_add(self):
        """Test adding to a collection."""
        collection = FeatureCollection()
        assert collection.add(make_point("a", 0, 0))
        assert not collection.add(make_point("a", 1, 1))
        assert collection.add_all([make_point("a", 0, 0), make_point("b", 0, 0)]) == 1

    def test_contains(self):
        """Test collection membership."""
        a = make_point("a", 0, 0)
        collection = FeatureCollection([a])
        assert "a" in collection
        assert a in collection
        assert "b" not in collection

    def test_filter(self):
        """Test filtering a collection."""
        collection = FeatureCollection(
            [make_point("a", 0, 0, lanes=1), make_point("b", 1, 1, lanes=2)]
        )
        assert collection.filter(AttributeFilter("lanes", "==", 2)).ids() == ["b"]

    def test_bounds(self):
        """Test collection bounds."""
        collection = FeatureCollection([make_point("a", 0, 1), make_point("b", 4, 3)])
        assert collection.bounds == Envelope(0, 1, 4, 3)
        assert FeatureCollection().bounds is None

    def test_iteration_is_snapshot(self):
        """Test iteration works on a snapshot."""
        collection = FeatureCollection([make_point("a", 0, 0)])
        for _ in collection:
            collection.add(make_point("b", 0, 0))
        assert len(collection) == 2
