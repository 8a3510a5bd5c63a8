"""
geocache CLI - Main Entry Point

Command-line interface for inspecting and exercising the spatial feature
cache. Built with Click for robust argument parsing and help generation.
"""

import sys
import logging
from pathlib import Path
from typing import Optional

import click

import geocache
from geocache.config import CacheConfig, load_config

# Configure logging for CLI
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("geocache")


class GeocacheContext:
    """Context object for passing global options to subcommands."""

    def __init__(
        self,
        verbose: bool = False,
        quiet: bool = False,
        config_path: Optional[Path] = None,
    ):
        self.verbose = verbose
        self.quiet = quiet
        self.config_path = config_path
        self._config: Optional[CacheConfig] = None

        # Configure logging based on verbosity
        if quiet:
            logger.setLevel(logging.WARNING)
        elif verbose:
            logger.setLevel(logging.DEBUG)
        else:
            logger.setLevel(logging.INFO)

    @property
    def config(self) -> CacheConfig:
        """Lazy load cache configuration."""
        if self._config is None:
            self._config = load_config(
                str(self.config_path) if self.config_path else None
            )
            if self.verbose:
                logger.debug(f"Effective configuration: {self._config.to_dict()}")
        return self._config


# Custom Click group with enhanced help formatting
class GeocacheGroup(click.Group):
    """Custom Click group with improved help formatting."""

    def format_help(self, ctx, formatter):
        """Format help with custom banner and examples."""
        formatter.write_paragraph()
        formatter.write_text("geocache - Spatial Feature Cache")
        formatter.write_paragraph()

        super().format_help(ctx, formatter)

        formatter.write_paragraph()
        formatter.write_text("Examples:")
        formatter.indent()

        examples = [
            "# Show versions and effective configuration",
            "geocache info",
            "",
            "# Pan a viewport over 10000 random points with a 2000 feature cache",
            "geocache simulate --features 10000 --capacity 2000 --queries 50",
            "",
            "# Compare eviction policies, JSON output",
            "geocache simulate --policy random --format json",
        ]

        for line in examples:
            formatter.write_text(line)

        formatter.dedent()


pass_context = click.make_pass_decorator(GeocacheContext, ensure=True)


@click.group(cls=GeocacheGroup)
@click.option(
    "-v",
    "--verbose",
    is_flag=True,
    default=False,
    help="Enable verbose output (debug logging).",
)
@click.option(
    "-q",
    "--quiet",
    is_flag=True,
    default=False,
    help="Quiet mode (only warnings and errors).",
)
@click.option(
    "-c",
    "--config",
    "config_path",
    type=click.Path(exists=True, path_type=Path),
    help="Path to configuration file.",
)
@click.version_option(
    version=geocache.__version__,
    prog_name="geocache",
    message="%(prog)s version %(version)s - Spatial Feature Cache",
)
@click.pass_context
def app(ctx, verbose: bool, quiet: bool, config_path: Optional[Path]):
    """
    geocache - Spatial Feature Cache

    Serves repeated and overlapping bounding-box queries from memory,
    fetching only uncovered regions from the backing feature store.
    """
    # Handle mutually exclusive verbose/quiet
    if verbose and quiet:
        raise click.UsageError("Cannot use both --verbose and --quiet")

    ctx.obj = GeocacheContext(
        verbose=verbose,
        quiet=quiet,
        config_path=config_path,
    )


def register_commands():
    """Register all subcommands."""
    from cli.commands import simulate

    app.add_command(simulate.simulate)


@app.command("info")
@pass_context
def info(ctx):
    """Display system information and configuration."""
    import platform
    import importlib.metadata

    click.echo("\n=== geocache System Info ===\n")

    click.echo(f"geocache: {geocache.__version__}")
    click.echo(f"Python: {platform.python_version()}")
    click.echo(f"Platform: {platform.system()} {platform.release()}")

    # Package versions
    click.echo("\n--- Package Versions ---")
    packages = ["shapely", "numpy", "click", "PyYAML"]
    for pkg in packages:
        try:
            version = importlib.metadata.version(pkg)
            click.echo(f"  {pkg}: {version}")
        except importlib.metadata.PackageNotFoundError:
            click.echo(f"  {pkg}: not installed")

    # Configuration
    click.echo("\n--- Configuration ---")
    config = ctx.config
    click.echo(f"  Capacity: {config.capacity}")
    click.echo(f"  Eviction policy: {config.eviction_policy.value}")
    click.echo(f"  Leaf capacity: {config.effective_leaf_capacity}")
    click.echo(f"  Index capacity: {config.index_capacity}")
    click.echo(f"  Fill factor: {config.fill_factor}")
    click.echo(f"  Random seed: {config.random_seed}")
    click.echo(f"  Thread safe: {config.thread_safe}")

    click.echo()


register_commands()


def main():
    """Main entry point for the CLI."""
    try:
        app()
    except Exception as e:
        logger.error(f"Error: {e}")
        if "--verbose" in sys.argv or "-v" in sys.argv:
            import traceback

            traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
