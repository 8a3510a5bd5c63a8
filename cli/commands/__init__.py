"""
geocache CLI Commands

This package contains the CLI subcommands for the geocache tool.

Commands:
    simulate - Run panning viewport queries through a cache over synthetic data
"""

from cli.commands import simulate

__all__ = ["simulate"]
