"""Installable entry package for the My Lists add-on server."""

from __future__ import annotations

__version__ = "1.0.0"


def __getattr__(name: str):
    if name in {"app", "create_app"}:
        from app import main

        return getattr(main, name)
    raise AttributeError(f"module 'mylists' has no attribute {name}")
