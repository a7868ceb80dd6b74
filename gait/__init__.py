"""Commit feed and diff-state engine for the Gait repository browser."""

__version__ = "0.1.0"
