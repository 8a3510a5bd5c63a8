"""
geocache CLI Package

Command-line interface for the spatial feature cache.

Usage:
    geocache info
    geocache simulate --features 10000 --capacity 2000 --queries 50
"""

__version__ = "0.1.0"

from cli.main import app

__all__ = ["app", "__version__"]
