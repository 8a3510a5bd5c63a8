"""
Pytest configuration and fixtures for geocache tests.

Markers:
    @pytest.mark.slow - Tests that take longer to run
    @pytest.mark.cli - Command line tests

Usage:
    pytest -m "not slow"         # Skip slow tests
    pytest -m cli                # Run only CLI tests
"""

import pytest
import sys
from pathlib import Path
from typing import List

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from geocache.envelope import Envelope
from geocache.features import Feature, FeatureCollection, FeatureType
from geocache.filters import INCLUDE, Filter
from geocache.store import FeatureSource, MemoryFeatureSource, MemoryFeatureStore


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "slow: Slow-running tests")
    config.addinivalue_line("markers", "cli: Command line tests")


def pytest_collection_modifyitems(config, items):
    """Auto-apply markers based on test file names and test names."""
    for item in items:
        if "cli" in item.fspath.basename:
            item.add_marker(pytest.mark.cli)

        test_name = item.name.lower()
        if "large" in test_name or "stress" in test_name:
            item.add_marker(pytest.mark.slow)


# Grid of point features at cell centres (i + 0.5, j + 0.5), i, j in [0, GRID_SIZE)
GRID_SIZE = 20


def make_point(fid: str, x: float, y: float, **attributes) -> Feature:
    """Point feature with a degenerate envelope."""
    return Feature(fid=fid, envelope=Envelope(x, y, x, y), attributes=attributes)


def grid_features(feature_type: FeatureType, size: int = GRID_SIZE) -> List[Feature]:
    return [
        make_point(
            f"{feature_type.name}.{i}_{j}",
            i + 0.5,
            j + 0.5,
            lanes=(i + j) % 4 + 1,
            name=f"road {i}/{j}",
        )
        for i in range(size)
        for j in range(size)
    ]


def ids_within(features, envelope: Envelope) -> set:
    """Identifiers of the features whose envelope intersects envelope."""
    return {f.fid for f in features if f.envelope.intersects(envelope)}


class RecordingSource(MemoryFeatureSource):
    """Memory source that records every filter it is asked for."""

    def get_features(self, filter: Filter = INCLUDE) -> FeatureCollection:
        self._store.requests.append(filter)
        if self._store.fail:
            raise OSError("backing store unavailable")
        return super().get_features(filter)


class RecordingStore(MemoryFeatureStore):
    """
    Memory store recording the filters sent to it.

    Set fail = True to make every read raise OSError.
    """

    def __init__(self, feature_types=()):
        super().__init__(feature_types)
        self.requests: List[Filter] = []
        self.fail = False

    def get_feature_source(self, type_name: str) -> FeatureSource:
        self.get_schema(type_name)
        return RecordingSource(self, type_name)


@pytest.fixture
def roads_type():
    """Provide the feature type used throughout the tests."""
    return FeatureType(name="roads", attributes=("name", "lanes"), srs="EPSG:4326")


@pytest.fixture
def rivers_type():
    """Provide a second feature type for multi-type stores."""
    return FeatureType(name="rivers", attributes=("name",))


@pytest.fixture
def grid(roads_type):
    """Provide the grid features."""
    return grid_features(roads_type)


@pytest.fixture
def grid_store(roads_type, grid):
    """Provide a memory store holding the grid."""
    store = MemoryFeatureStore([roads_type])
    store.add_features(roads_type, grid)
    return store


@pytest.fixture
def recording_store(roads_type, grid):
    """Provide a recording store holding the grid."""
    store = RecordingStore([roads_type])
    store.add_features(roads_type, grid)
    return store
