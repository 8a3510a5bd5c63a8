"""
Tests for the region tracker.
"""

import pytest

from geocache.envelope import Envelope
from geocache.filters import EXCLUDE, INCLUDE, AttributeFilter, BBoxFilter
from geocache.tracker import RegionTracker


def bbox(*coords, **kwargs):
    return BBoxFilter(Envelope(*coords), **kwargs)


@pytest.fixture
def tracker():
    return RegionTracker()


class TestRegionTrackerMatch:
    """Tests for matching queries against registered regions."""

    def test_non_bbox_returned_unchanged(self, tracker):
        """Test non bounding-box filters are returned unchanged."""
        attr = AttributeFilter("lanes", "==", 1)
        tracker.register(bbox(0, 0, 10, 10))
        assert tracker.match(attr) is attr
        assert tracker.match(INCLUDE) is INCLUDE

    def test_miss_returns_same_object(self, tracker):
        """Test a miss returns the same filter object."""
        query = bbox(0, 0, 10, 10)
        assert tracker.match(query) is query

        tracker.register(bbox(20, 20, 30, 30))
        assert tracker.match(query) is query

    def test_full_hit(self, tracker):
        """Test a fully covered query."""
        tracker.register(bbox(0, 0, 10, 10))
        assert tracker.match(bbox(2, 2, 8, 8)) is EXCLUDE
        assert tracker.match(bbox(0, 0, 10, 10)) is EXCLUDE

    def test_partial_hit_residual(self, tracker):
        """Test the residual of a partial hit."""
        tracker.register(bbox(0, 0, 10, 10))
        missing = tracker.match(bbox(5, 0, 15, 10))
        assert isinstance(missing, BBoxFilter)
        assert missing.envelope == Envelope(10, 0, 15, 10)

    def test_residual_keeps_property_and_srs(self, tracker):
        """Test the residual keeps property name and srs."""
        tracker.register(bbox(0, 0, 10, 10))
        missing = tracker.match(bbox(5, 0, 15, 10, property_name="the_geom", srs="EPSG:4326"))
        assert missing.property_name == "the_geom"
        assert missing.srs == "EPSG:4326"

    def test_l_shaped_residual_widened_to_envelope(self, tracker):
        """Test an L-shaped residual widens to the query envelope."""
        tracker.register(bbox(0, 0, 10, 10))
        query = bbox(5, 5, 15, 15)
        missing = tracker.match(query)
        # The uncovered L shape spans the whole query envelope
        assert missing is not query
        assert missing.envelope == Envelope(5, 5, 15, 15)

    def test_covered_by_union_of_regions(self, tracker):
        """Test coverage by the union of two regions."""
        tracker.register(bbox(0, 0, 10, 10))
        tracker.register(bbox(10, 0, 20, 10))
        assert tracker.match(bbox(5, 2, 15, 8)) is EXCLUDE

    def test_two_regions_shrink_residual(self, tracker):
        """Test two regions shrink the residual."""
        tracker.register(bbox(0, 0, 10, 10))
        tracker.register(bbox(10, 0, 20, 10))
        missing = tracker.match(bbox(5, 0, 25, 10))
        assert missing.envelope == Envelope(20, 0, 25, 10)

    def test_degenerate_query(self, tracker):
        """Test zero-area queries."""
        tracker.register(bbox(0, 0, 10, 10))
        assert tracker.match(bbox(3, 3, 3, 3)) is EXCLUDE
        line = bbox(5, 5, 15, 5)
        assert tracker.match(line) is line

    def test_is_covered(self, tracker):
        """Test is_covered."""
        tracker.register(bbox(0, 0, 10, 10))
        assert tracker.is_covered(Envelope(1, 1, 2, 2))
        assert not tracker.is_covered(Envelope(9, 9, 11, 11))


class TestRegionTrackerRegistration:
    """Tests for registering and revoking regions."""

    def test_register(self, tracker):
        """Test registering a region."""
        assert tracker.register(bbox(0, 0, 1, 1))
        assert len(tracker) == 1
        assert tracker.regions == [Envelope(0, 0, 1, 1)]

    def test_register_duplicate(self, tracker):
        """Test registering a region twice."""
        tracker.register(bbox(0, 0, 1, 1))
        assert not tracker.register(bbox(0, 0, 1, 1))
        assert len(tracker) == 1

    def test_register_non_bbox(self, tracker):
        """Test registering a non bounding-box filter."""
        assert not tracker.register(INCLUDE)
        assert not tracker.register(EXCLUDE)
        assert len(tracker) == 0

    def test_register_many(self, tracker):
        """Test registering many regions."""
        for i in range(50):
            assert tracker.register(bbox(i, 0, i + 1, 1))
        assert len(tracker) == 50
        assert tracker.match(bbox(0, 0, 50, 1)) is EXCLUDE

    def test_unregister_overlapping(self, tracker):
        """Test unregistering overlapping regions."""
        tracker.register(bbox(0, 0, 10, 10))
        tracker.register(bbox(20, 0, 30, 10))
        tracker.register(bbox(40, 0, 50, 10))

        assert tracker.unregister(Envelope(9, 5, 21, 6)) == 2
        assert tracker.regions == [Envelope(40, 0, 50, 10)]

        query = bbox(0, 0, 10, 10)
        assert tracker.match(query) is query

    def test_unregister_by_filter(self, tracker):
        """Test unregistering by filter."""
        tracker.register(bbox(0, 0, 10, 10))
        assert tracker.unregister(bbox(5, 5, 6, 6)) == 1
        assert len(tracker) == 0

    def test_unregister_nothing(self, tracker):
        """Test unregistering where nothing overlaps."""
        tracker.register(bbox(0, 0, 10, 10))
        assert tracker.unregister(Envelope(20, 20, 30, 30)) == 0
        assert tracker.unregister(INCLUDE) == 0
        assert len(tracker) == 1

    def test_reregister_after_unregister(self, tracker):
        """Test registering again after unregistering."""
        tracker.register(bbox(0, 0, 10, 10))
        tracker.unregister(Envelope(0, 0, 10, 10))
        assert tracker.register(bbox(0, 0, 10, 10))
        assert tracker.match(bbox(1, 1, 2, 2)) is EXCLUDE

    def test_clear(self, tracker):
        """Test clearing the tracker."""
        tracker.register(bbox(0, 0, 10, 10))
        tracker.clear()
        assert len(tracker) == 0
        query = bbox(1, 1, 2, 2)
        assert tracker.match(query) is query
