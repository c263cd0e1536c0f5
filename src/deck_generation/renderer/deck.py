"""Render a validated SlideSpec into PPTX bytes."""

from __future__ import annotations

import io
import logging
from typing import Any, List, Optional

from pptx import Presentation
from pptx.util import Inches

from ..layout_engine import build_layout_plans
from ..layout_validator import apply_layout_fallback
from ..models import PlannedSlide, Slide, SlideSpec, spec_to_dict
from .components import choose_renderer
from .context import RenderContext

logger = logging.getLogger(__name__)

BLANK_LAYOUT_INDEX = 6


def coerce_spec(spec: Any) -> SlideSpec:
    if isinstance(spec, SlideSpec):
        return spec
    return SlideSpec.model_validate(spec_to_dict(spec) or {})


def plan_deck(spec: SlideSpec, ctx: RenderContext) -> List[PlannedSlide]:
    """Resolve images, lay out every slide and run the layout self-check."""

    slides: List[Slide] = []
    for slide in spec.slides:
        images = ctx.resolve_slide_images(slide)
        slides.append(slide.model_copy(update={"images": images}))

    planned = build_layout_plans(slides, ctx.theme)
    if ctx.self_check:
        planned = apply_layout_fallback(planned, ctx.theme, max_passes=3)
    return planned


def render_deck(spec: Any, render_context: Optional[RenderContext] = None) -> bytes:
    model = coerce_spec(spec)
    ctx = render_context or RenderContext.for_spec(model)
    theme = ctx.theme

    planned = plan_deck(model, ctx)

    prs = Presentation()
    prs.slide_width = Inches(theme.page_width)
    prs.slide_height = Inches(theme.page_height)
    props = prs.core_properties
    props.title = model.presentationTitle or "Generated Presentation"
    props.author = ctx.company or ctx.author
    props.subject = ctx.subject or props.title

    blank = prs.slide_layouts[BLANK_LAYOUT_INDEX]
    for item in planned:
        slide = prs.slides.add_slide(blank)
        renderer = choose_renderer(item)
        logger.debug("Rendering slide %d with %s (%s)", item.index, renderer.__name__, item.layout)
        renderer(slide, item, ctx)

    buffer = io.BytesIO()
    prs.save(buffer)
    logger.info(
        "Rendered %d slides (%d source slides, theme=%s, images cached=%d)",
        len(planned),
        len(model.slides),
        theme.name,
        len(ctx.image_cache),
    )
    return buffer.getvalue()


__all__ = ["coerce_spec", "plan_deck", "render_deck"]
