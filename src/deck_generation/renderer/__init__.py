"""python-pptx renderer for planned slide decks."""

from .context import RenderContext
from .deck import plan_deck, render_deck

__all__ = ["RenderContext", "plan_deck", "render_deck"]
