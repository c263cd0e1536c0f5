"""Deck generation agent package."""

from __future__ import annotations

from importlib import import_module
from typing import Any


def get_blueprint() -> Any:
    """Import lazily to avoid circular deps when Flask app boots."""
    routes = import_module("src.agents.deck_agent.routes")
    return routes.deck_bp


__all__ = ["get_blueprint"]
