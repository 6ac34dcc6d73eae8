# utils/__init__.py
"""General utility functions for the story workflow gateway."""

from __future__ import annotations

from .logging import setup_logging, truncate_for_log

__all__ = ["setup_logging", "truncate_for_log"]
