"""Invoice, customer and revenue dashboard backed by a hosted database."""

from __future__ import annotations

from typing import Any

from .config import Settings, load_settings
from .utils import format_currency


def create_app(*args: Any, **kwargs: Any):
    """Factory function that returns the dashboard application."""

    from .application import create_app as _create_app

    return _create_app(*args, **kwargs)


__all__ = [
    "Settings",
    "create_app",
    "format_currency",
    "load_settings",
]
