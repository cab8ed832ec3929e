"""Command line interface for data-alchemist."""

from .__main__ import main

__all__ = ["main"]
