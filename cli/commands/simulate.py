"""
Simulate Command - Exercise a feature cache with a panning viewport.

Builds an in-memory store of random point features, runs a sequence of
overlapping viewport queries through a FeatureCache and reports how much
of the traffic the cache absorbed.

Usage:
    geocache simulate --features 10000 --capacity 2000 --queries 50
"""

import dataclasses
import json
import logging
import time
from typing import Any, Dict, Optional

import click
import numpy as np

from geocache.engine import FeatureCache
from geocache.envelope import Envelope
from geocache.eviction import EvictionPolicy
from geocache.features import Feature, FeatureType
from geocache.filters import BBoxFilter
from geocache.store import MemoryFeatureStore

logger = logging.getLogger("geocache.simulate")

# Side length of the square world the points are scattered in
WORLD_SIZE = 100.0

POINTS = FeatureType(name="points", attributes=("value",))


def build_store(n_features: int, rng: np.random.Generator) -> MemoryFeatureStore:
    """Scatter point features uniformly over the world."""
    coords = rng.uniform(0.0, WORLD_SIZE, size=(n_features, 2))
    values = rng.normal(size=n_features)

    store = MemoryFeatureStore([POINTS])
    store.add_features(
        POINTS,
        (
            Feature(
                fid=f"points.{i}",
                envelope=Envelope(x, y, x, y),
                attributes={"value": float(v)},
            )
            for i, ((x, y), v) in enumerate(zip(coords.tolist(), values.tolist()))
        ),
    )
    return store


def viewports(n_queries: int, size: float, rng: np.random.Generator):
    """Yield envelopes of a viewport drifting across the world."""
    limit = WORLD_SIZE - size
    position = rng.uniform(0.0, limit, size=2)
    for _ in range(n_queries):
        x, y = position.tolist()
        yield Envelope(x, y, x + size, y + size)
        position = np.clip(position + rng.normal(0.0, size / 4, size=2), 0.0, limit)


@click.command("simulate")
@click.option(
    "--features",
    "-n",
    "n_features",
    type=click.IntRange(min=1),
    default=5000,
    show_default=True,
    help="Number of point features in the synthetic store.",
)
@click.option(
    "--queries",
    "n_queries",
    type=click.IntRange(min=1),
    default=100,
    show_default=True,
    help="Number of viewport queries to run.",
)
@click.option(
    "--capacity",
    type=click.IntRange(min=1),
    default=None,
    help="Cache capacity in features (default: from configuration).",
)
@click.option(
    "--policy",
    type=click.Choice([p.value for p in EvictionPolicy], case_sensitive=False),
    default=None,
    help="Eviction policy (default: from configuration).",
)
@click.option(
    "--viewport",
    type=click.FloatRange(min=0.0, max=WORLD_SIZE, min_open=True),
    default=10.0,
    show_default=True,
    help="Side length of the square viewport.",
)
@click.option(
    "--seed",
    type=int,
    default=None,
    help="Random seed for data, viewport path and eviction.",
)
@click.option(
    "--format",
    "-f",
    "output_format",
    type=click.Choice(["text", "json"], case_sensitive=False),
    default="text",
    help="Output format (default: text).",
)
@click.pass_obj
def simulate(
    ctx,
    n_features: int,
    n_queries: int,
    capacity: Optional[int],
    policy: Optional[str],
    viewport: float,
    seed: Optional[int],
    output_format: str,
):
    """
    Run panning viewport queries through a feature cache.

    Every answer is checked against a direct store query, so the
    simulation also verifies that the cache never loses features.

    \b
    Examples:
        # Default run
        geocache simulate

        # Small cache, random eviction, reproducible
        geocache simulate --capacity 500 --policy random --seed 7
    """
    config = ctx.config
    overrides: Dict[str, Any] = {}
    if capacity is not None:
        overrides["capacity"] = capacity
    if policy is not None:
        overrides["eviction_policy"] = EvictionPolicy(policy.lower())
    if seed is not None:
        overrides["random_seed"] = seed
    config = dataclasses.replace(config, **overrides)

    rng = np.random.default_rng(config.random_seed)
    store = build_store(n_features, rng)
    source = store.get_feature_source(POINTS.name)
    cache = FeatureCache(store, POINTS, config=config)

    logger.info(
        f"Simulating {n_queries} queries over {n_features} features "
        f"(capacity={config.capacity}, policy={config.eviction_policy.value})"
    )

    mismatches = 0
    returned = 0
    started = time.perf_counter()
    for envelope in viewports(n_queries, viewport, rng):
        bbox = BBoxFilter(envelope)
        result = cache.get_features(bbox)
        returned += len(result)
        if set(result.ids()) != set(source.get_features(bbox).ids()):
            mismatches += 1
            logger.warning(f"Cache answer differs from store for {envelope.to_list()}")
    elapsed = time.perf_counter() - started

    report = {
        "features": n_features,
        "queries": n_queries,
        "viewport": viewport,
        "returned": returned,
        "mismatches": mismatches,
        "elapsed_seconds": round(elapsed, 4),
        "statistics": cache.get_statistics().to_dict(),
        "config": config.to_dict(),
    }

    if output_format == "json":
        click.echo(json.dumps(report, indent=2))
    else:
        output_text_report(report)

    if mismatches:
        raise SystemExit(1)


def output_text_report(report: Dict[str, Any]) -> None:
    """Print the simulation report as text."""
    stats = report["statistics"]
    config = report["config"]

    click.echo(f"\n{'=' * 50}")
    click.echo("  Cache Simulation")
    click.echo(f"{'=' * 50}")

    click.echo(f"\n  Features: {report['features']}")
    click.echo(f"  Queries: {report['queries']} ({report['viewport']} wide viewport)")
    click.echo(f"  Capacity: {config['capacity']}")
    click.echo(f"  Eviction policy: {config['eviction_policy']}")

    click.echo("\n  Results:")
    click.echo(f"    Features returned: {report['returned']}")
    click.echo(f"    From cache: {stats['cache_reads']}")
    click.echo(f"    From store: {stats['store_reads']} in {stats['store_queries']} queries")
    click.echo(f"    Hit rate: {stats['hit_rate']:.1%}")
    click.echo(f"    Evictions: {stats['evictions']}")
    click.echo(f"    Cached features: {stats['size']}")
    click.echo(f"    Tracked regions: {stats['tracked_regions']}")
    click.echo(f"    Mismatches: {report['mismatches']}")
    click.echo(f"    Elapsed: {report['elapsed_seconds']}s")
    click.echo()
