"""Constraint-based layout engine.

Each slide is planned on the theme's grid in a fixed degradation order:

1. shrink the body font down to the minimum readable size,
2. switch to the next layout of the archetype's fallback chain,
3. split the slide into chunks of bullets (``X`` / ``X (cont.)``).

Planning is pure: :func:`plan_slide` maps ``(slide, theme, forced_layout)`` to
a :class:`LayoutPlan` and :func:`build_layout_plans` rebuilds the whole deck
from scratch whenever a caller forces different layouts.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from .models import (
    ALLOWED_LAYOUT_HINTS,
    AgendaItemBoxes,
    Box,
    Bullet,
    CardBox,
    LayoutPlan,
    LayoutSlide,
    PlannedSlide,
    Slide,
    TimelineStepBoxes,
    parse_slide,
)
from .text_utils import is_http_url, safe_string
from .theme import Theme

logger = logging.getLogger(__name__)

MIN_BODY_PT = 14
MAX_BODY_PT = 20
AGENDA_PAGE_SIZE = 8
BODY_FIT_TOLERANCE = 0.12
BOUNDS_TOLERANCE = 0.001

# Alternatives tried, in order, when the preferred layout does not fit.
LAYOUT_FALLBACKS: Dict[str, List[str]] = {
    "split-image": ["image-top", "text"],
    "cards": ["text"],
    "profile": ["split-image", "text"],
    "big-number": ["cards", "text"],
    "timeline": ["text"],
    "text": ["cards"],
}

# Items a layout draws; bullets beyond these would be dropped by the renderer.
LAYOUT_ITEM_LIMITS: Dict[str, int] = {
    "cards": 6,
    "timeline": 6,
    "profile": 6,
    "split-image": 6,
    "big-number": 4,
    "text": 6,
}
TEXT_COLUMN_ITEMS = 5

TYPE_LAYOUT_HINTS = {
    "agenda": "agenda",
    "cards": "cards",
    "profile": "profile",
    "split-image": "split-image",
    "timeline": "timeline",
    "quote": "quote",
    "bigNumber": "big-number",
    "summary": "summary",
}

SlideInput = Union[Slide, LayoutSlide, Mapping[str, Any]]


# ---------------------------------------------------------------------------
# Text metrics


def estimate_chars_per_line(width_in: float, font_size_pt: float) -> int:
    avg_char_in = (font_size_pt * 0.55) / 72
    return max(10, int(math.floor(width_in / avg_char_in)))


def wrap_line_by_chars(text: str, max_chars_per_line: int) -> str:
    value = safe_string(text)
    if not value or len(value) <= max_chars_per_line:
        return value
    lines: List[str] = []
    current = ""
    for word in re.split(r"\s+", value):
        candidate = f"{current} {word}" if current else word
        if len(candidate) > max_chars_per_line:
            if current:
                lines.append(current)
            current = word
        else:
            current = candidate
    if current:
        lines.append(current)
    return "\n".join(lines)


def estimate_lines(text: str, width_in: float, font_size_pt: float) -> int:
    wrapped = wrap_line_by_chars(text, estimate_chars_per_line(width_in, font_size_pt))
    return len([line for line in wrapped.split("\n") if line])


def estimate_text_height(
    text_or_lines: Union[str, Sequence[str]],
    font_size_pt: float,
    width_in: float,
    line_height: float = 1.32,
    para_gap: float = 0.05,
) -> float:
    if isinstance(text_or_lines, str):
        lines = estimate_lines(text_or_lines, width_in, font_size_pt)
    else:
        lines = sum(estimate_lines(line, width_in, font_size_pt) for line in text_or_lines)
    return lines * (font_size_pt * line_height / 72) + max(0, lines - 1) * para_gap


# ---------------------------------------------------------------------------
# Slide preparation


def _bullet_text(item: Any) -> str:
    if isinstance(item, str):
        return safe_string(item)
    if hasattr(item, "text"):
        return safe_string(item.text)
    if isinstance(item, Mapping):
        return safe_string(item.get("text") or item.get("value") or item.get("label"))
    return ""


def _clamp_int(value: Any, low: int, high: int, default: int) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        number = 0
    return max(low, min(high, number or default))


def _layout_hint_for(slide: Slide, slide_type: str, has_images: bool, bullet_count: int) -> str:
    requested = safe_string(slide.layoutHint) or safe_string(slide.visual.layoutHint if slide.visual else "")
    if requested in ALLOWED_LAYOUT_HINTS:
        return requested
    if slide_type == "title":
        return "hero-cover" if has_images else "text"
    if slide_type in TYPE_LAYOUT_HINTS:
        return TYPE_LAYOUT_HINTS[slide_type]
    if has_images:
        return "split-image"
    if bullet_count >= 6:
        return "cards"
    return "text"


def _typed_slide(raw: Mapping[str, Any]) -> Slide:
    """Validate mapping input as a slide variant; a missing ``type`` is inferred from the content."""

    data = dict(raw or {})
    if safe_string(data.get("type")):
        return parse_slide(data)
    base = Slide.model_validate(data)
    first_number = base.emphasis.numbers[0].value if base.emphasis.numbers else ""
    number = safe_string(base.number) or safe_string(first_number)
    if number:
        slide_type = "bigNumber"
    elif any(is_http_url(url) for url in base.images):
        slide_type = "split-image"
    elif len([b for b in base.bullets if _bullet_text(b)]) >= 6:
        slide_type = "cards"
    else:
        slide_type = "text"
    return parse_slide({**base.model_dump(), "type": slide_type, "number": number})


def prepare_slide(slide: SlideInput) -> LayoutSlide:
    """Resolve type, layout hint, bullet text, images and clamped constraints."""

    if isinstance(slide, LayoutSlide):
        return slide
    model = slide if isinstance(slide, Slide) else _typed_slide(slide)

    bullet_text = [text for text in (_bullet_text(b) for b in model.bullets) if text]
    images = [url for url in model.images if is_http_url(url)]
    slide_type = safe_string(model.type, "text")

    constraints = model.constraints.model_copy(
        update={
            "maxBulletsPerSlide": _clamp_int(model.constraints.maxBulletsPerSlide, 3, 8, 6),
            "maxCharsPerBullet": _clamp_int(model.constraints.maxCharsPerBullet, 24, 120, 40),
        }
    )
    normalized = model.model_copy(
        update={
            "type": slide_type,
            "title": safe_string(model.title, "Untitled Slide"),
            "keyMessage": safe_string(model.keyMessage, "Not provided."),
            "subtitle": safe_string(model.subtitle),
            "density": model.density if model.density in ("low", "medium", "high") else "medium",
            "tone": safe_string(model.tone, "business"),
            "constraints": constraints,
        }
    )
    return LayoutSlide(
        slide=normalized,
        type=slide_type,
        layout_hint=_layout_hint_for(normalized, slide_type, bool(images), len(bullet_text)),
        bullet_text=bullet_text,
        images=images,
    )


def _chunk_slide(slide: LayoutSlide, chunk: List[str], offset: int, index: int, keep_media: bool, hint: str) -> LayoutSlide:
    bullets = []
    for local_index, text in enumerate(chunk):
        source = slide.slide.bullets[offset + local_index] if offset + local_index < len(slide.slide.bullets) else None
        if source is not None:
            bullets.append(source.model_copy(update={"text": text}))
        else:
            bullets.append(Bullet(text=text))
    title = slide.slide.title if index == 0 else f"{slide.slide.title} (cont.)"
    return LayoutSlide(
        slide=slide.slide.model_copy(update={"title": title, "bullets": bullets}),
        type=slide.type,
        layout_hint=hint,
        bullet_text=list(chunk),
        images=list(slide.images) if keep_media else [],
    )


def paginate_agenda(slide: LayoutSlide) -> List[LayoutSlide]:
    """Agenda slides hold at most eight items per page."""

    if slide.type != "agenda" or len(slide.bullet_text) <= AGENDA_PAGE_SIZE:
        return [slide]
    pages = []
    for page, offset in enumerate(range(0, len(slide.bullet_text), AGENDA_PAGE_SIZE)):
        chunk = slide.bullet_text[offset : offset + AGENDA_PAGE_SIZE]
        pages.append(_chunk_slide(slide, chunk, offset, page, keep_media=False, hint="agenda"))
    return pages


def split_slide_by_bullets(slide: LayoutSlide) -> List[LayoutSlide]:
    texts = list(slide.bullet_text)
    if len(texts) <= 1:
        return [slide]
    max_items = max(3, min(6, slide.slide.constraints.maxBulletsPerSlide or 6))
    offsets = list(range(0, len(texts), max_items))
    if len(offsets) <= 1:
        max_chars = slide.slide.constraints.maxCharsPerBullet or 40
        wrapped = [wrap_line_by_chars(line, max_chars) for line in texts]
        return [
            LayoutSlide(
                slide=slide.slide,
                type=slide.type,
                layout_hint=slide.layout_hint,
                bullet_text=wrapped,
                images=list(slide.images),
            )
        ]
    chunks = []
    for index, offset in enumerate(offsets):
        hint = slide.layout_hint if index == 0 else "text"
        chunks.append(
            _chunk_slide(slide, texts[offset : offset + max_items], offset, index, keep_media=index == 0, hint=hint)
        )
    return chunks


# ---------------------------------------------------------------------------
# Grid and per-archetype planners


@dataclass(frozen=True)
class Grid:
    page_width: float
    page_height: float
    safe: Box
    col_width: float
    gutter: float

    def col_x(self, start: int) -> float:
        return self.safe.x + (start - 1) * (self.col_width + self.gutter)

    def span_w(self, span: int) -> float:
        return self.col_width * span + self.gutter * (span - 1)

    @property
    def bottom(self) -> float:
        return self.safe.y + self.safe.h


def make_grid(theme: Theme) -> Grid:
    safe_x = theme.grid["safeMarginX"]
    safe_y = theme.grid["safeMarginY"]
    safe_w = theme.page_width - safe_x * 2
    safe_h = theme.page_height - safe_y * 2
    cols = int(theme.grid["columns"])
    gutter = theme.grid["gutter"]
    return Grid(
        page_width=theme.page_width,
        page_height=theme.page_height,
        safe=Box(safe_x, safe_y, safe_w, safe_h),
        col_width=(safe_w - gutter * (cols - 1)) / cols,
        gutter=gutter,
    )


def type_sizes(slide: LayoutSlide, theme: Theme) -> Dict[str, int]:
    density = slide.slide.density
    body = theme.scale["body"]
    if density == "high":
        body -= 1
    if density == "low":
        body += 1
    return {
        "title": theme.scale["h1"] if density == "low" else theme.scale["h2"],
        "keyMessage": theme.scale["keyMessage"],
        "body": max(MIN_BODY_PT, min(MAX_BODY_PT, body)),
        "number": theme.scale["number"],
        "subtitle": max(24, theme.scale["h2"]),
        "bodySmall": theme.scale.get("bodySmall", 11),
        "caption": theme.scale.get("caption", 10),
    }


@dataclass(frozen=True)
class Header:
    title: Box
    key_message: Box
    content_top: float

    def boxes(self) -> Dict[str, Any]:
        return {"title": self.title, "keyMessage": self.key_message}


def header_boxes(grid: Grid, theme: Theme, title_size: int) -> Header:
    title_height = 1.02 if title_size >= 38 else 0.84
    gap = theme.spacing["sectionGap"]
    title = Box(grid.safe.x, grid.safe.y, grid.safe.w, title_height)
    key_message = Box(grid.safe.x, title.y + title.h + gap, grid.safe.w, 0.56)
    return Header(title, key_message, key_message.y + key_message.h + gap)


def plan_hero(slide: LayoutSlide, grid: Grid, theme: Theme, sizes: Dict[str, int]) -> LayoutPlan:
    inset = 0.66
    width = theme.page_width - inset * 2
    height = theme.page_height
    return LayoutPlan(
        layout="hero-cover",
        boxes={
            "image": Box(0, 0, theme.page_width, height),
            "title": Box(inset, height - 2.25, width, 1.0),
            "keyMessage": Box(inset, height - 1.22, width, 0.6),
            "subtitle": Box(inset, height - 0.66, width, 0.34),
        },
        sizes={**sizes, "title": max(48, theme.scale["h0"]), "subtitle": max(24, sizes.get("subtitle") or 24)},
        fallback=["text"],
    )


def plan_agenda(slide: LayoutSlide, grid: Grid, theme: Theme, sizes: Dict[str, int]) -> LayoutPlan:
    title_size = max(36, theme.scale["agendaTitle"])
    header = header_boxes(grid, theme, title_size)
    items = slide.bullet_text
    columns = 2
    rows = max(1, math.ceil(len(items) / columns))
    gap_x, gap_y = 0.22, 0.16
    card_h = max(0.76, (grid.bottom - header.content_top - gap_y * (rows - 1)) / rows)
    card_w = (grid.safe.w - gap_x) / 2

    agenda_items = []
    for idx, text in enumerate(items):
        x = grid.safe.x + (idx % columns) * (card_w + gap_x)
        y = header.content_top + (idx // columns) * (card_h + gap_y)
        agenda_items.append(
            AgendaItemBoxes(
                card=Box(x, y, card_w, card_h),
                badge=Box(x + 0.12, y + 0.2, 0.36, 0.28),
                text_box=Box(x + 0.56, y + 0.12, card_w - 0.68, card_h - 0.2),
                icon_box=Box(x + card_w - 0.46, y + 0.18, 0.24, 0.24),
                index=idx + 1,
                text=text,
            )
        )
    return LayoutPlan(
        layout="agenda",
        boxes={**header.boxes(), "agendaItems": agenda_items},
        sizes={**sizes, "title": title_size, "body": max(20, theme.scale["agendaItem"])},
        fallback=["text"],
    )


def plan_split_image(slide: LayoutSlide, grid: Grid, theme: Theme, sizes: Dict[str, int]) -> LayoutPlan:
    header = header_boxes(grid, theme, sizes["title"])
    words = len(" ".join(slide.bullet_text).split())
    density = slide.slide.density
    ratio = 0.45
    if words > 88 or density == "high":
        ratio = 0.4
    if words < 34 or density == "low":
        ratio = 0.5

    content_h = grid.bottom - header.content_top
    image_w = grid.safe.w * ratio
    body_w = grid.safe.w - image_w - 0.2
    placement = slide.slide.imagePlan.placement if slide.slide.imagePlan else ""
    image_left = slide.layout_hint == "image-left" or placement == "left"

    image_x = grid.safe.x if image_left else grid.safe.x + body_w + 0.2
    image = Box(image_x, header.content_top, image_w, content_h)
    body_x = image.x + image.w + 0.2 if image_left else grid.safe.x
    body = Box(body_x, header.content_top, body_w, content_h)
    return LayoutPlan(
        layout="split-image",
        boxes={**header.boxes(), "image": image, "body": body},
        sizes=dict(sizes),
        fallback=["image-top", "text"],
    )


def plan_image_top(slide: LayoutSlide, grid: Grid, theme: Theme, sizes: Dict[str, int]) -> LayoutPlan:
    header = header_boxes(grid, theme, sizes["title"])
    image_h = 2.0 if slide.slide.density == "high" else 2.35
    body_y = header.content_top + image_h + theme.spacing["blockGap"]
    return LayoutPlan(
        layout="split-image",
        boxes={
            **header.boxes(),
            "image": Box(grid.safe.x, header.content_top, grid.safe.w, image_h),
            "body": Box(grid.safe.x, body_y, grid.safe.w, grid.bottom - body_y),
        },
        sizes=dict(sizes),
        fallback=["text"],
    )


def plan_cards(slide: LayoutSlide, grid: Grid, theme: Theme, sizes: Dict[str, int]) -> LayoutPlan:
    header = header_boxes(grid, theme, sizes["title"])
    items = slide.bullet_text[:6]
    columns = 2 if len(items) <= 4 else 3
    rows = max(1, math.ceil(len(items) / columns))
    gap = 0.18
    card_w = (grid.safe.w - gap * (columns - 1)) / columns
    card_h = max(1.2, (grid.bottom - header.content_top - gap * (rows - 1)) / rows)

    cards = []
    for idx, text in enumerate(items):
        x = grid.safe.x + (idx % columns) * (card_w + gap)
        y = header.content_top + (idx // columns) * (card_h + gap)
        cards.append(CardBox(box=Box(x, y, card_w, card_h), icon_box=Box(x + 0.18, y + 0.16, 0.24, 0.24), text=text))
    return LayoutPlan(layout="cards", boxes={**header.boxes(), "cards": cards}, sizes=dict(sizes), fallback=["text"])


def plan_profile(slide: LayoutSlide, grid: Grid, theme: Theme, sizes: Dict[str, int]) -> LayoutPlan:
    header = header_boxes(grid, theme, sizes["title"])
    content_h = grid.bottom - header.content_top
    image_w = 3.9
    return LayoutPlan(
        layout="profile",
        boxes={
            **header.boxes(),
            "profileImage": Box(grid.safe.x, header.content_top, image_w, content_h),
            "profileBody": Box(grid.safe.x + image_w + 0.24, header.content_top, grid.safe.w - image_w - 0.24, content_h),
        },
        sizes=dict(sizes),
        fallback=["split-image", "text"],
    )


def plan_big_number(slide: LayoutSlide, grid: Grid, theme: Theme, sizes: Dict[str, int]) -> LayoutPlan:
    header = header_boxes(grid, theme, sizes["title"])
    top = header.content_top
    return LayoutPlan(
        layout="big-number",
        boxes={
            **header.boxes(),
            "number": Box(grid.safe.x, top + 0.15, grid.safe.w, 1.68),
            "caption": Box(grid.safe.x + 0.7, top + 1.88, grid.safe.w - 1.4, 0.96),
            "body": Box(grid.safe.x, top + 2.92, grid.safe.w, grid.bottom - (top + 2.92)),
        },
        sizes=dict(sizes),
        fallback=["cards", "text"],
    )


def plan_timeline(slide: LayoutSlide, grid: Grid, theme: Theme, sizes: Dict[str, int]) -> LayoutPlan:
    header = header_boxes(grid, theme, sizes["title"])
    items = slide.bullet_text[:6]
    gap = 0.15
    row_h = max(0.5, (grid.bottom - header.content_top - gap * max(0, len(items) - 1)) / max(1, len(items)))
    steps = []
    for idx, text in enumerate(items):
        y = header.content_top + idx * (row_h + gap)
        steps.append(
            TimelineStepBoxes(
                dot=Box(grid.safe.x + 0.12, y + row_h * 0.5 - 0.06, 0.12, 0.12),
                badge=Box(grid.safe.x + 0.26, y, 0.24, row_h),
                text_box=Box(grid.safe.x + 0.56, y, grid.safe.w - 0.56, row_h),
                text=text,
            )
        )
    return LayoutPlan(layout="timeline", boxes={**header.boxes(), "timelineSteps": steps}, sizes=dict(sizes), fallback=["text"])


def plan_quote(slide: LayoutSlide, grid: Grid, theme: Theme, sizes: Dict[str, int]) -> LayoutPlan:
    header = header_boxes(grid, theme, sizes["title"])
    top = header.content_top
    return LayoutPlan(
        layout="quote",
        boxes={**header.boxes(), "quote": Box(grid.safe.x + 0.65, top + 0.34, grid.safe.w - 1.3, grid.bottom - (top + 0.4))},
        sizes=dict(sizes),
        fallback=["text"],
    )


def plan_text(slide: LayoutSlide, grid: Grid, theme: Theme, sizes: Dict[str, int]) -> LayoutPlan:
    header = header_boxes(grid, theme, sizes["title"])
    body = Box(grid.safe.x, header.content_top, grid.safe.w, grid.bottom - header.content_top)
    if not (slide.slide.density == "high" or len(slide.bullet_text) > 5):
        return LayoutPlan(layout="text", boxes={**header.boxes(), "body": body}, sizes=dict(sizes), fallback=[])
    gap = 0.24
    col_w = (body.w - gap) / 2
    columns = [Box(body.x, body.y, col_w, body.h), Box(body.x + col_w + gap, body.y, col_w, body.h)]
    return LayoutPlan(
        layout="text",
        boxes={**header.boxes(), "body": body, "bodyColumns": columns},
        sizes=dict(sizes),
        fallback=["cards"],
    )


PLANNERS = {
    "hero-cover": plan_hero,
    "agenda": plan_agenda,
    "split-image": plan_split_image,
    "image-left": plan_split_image,
    "image-right": plan_split_image,
    "image-top": plan_image_top,
    "cards": plan_cards,
    "profile": plan_profile,
    "big-number": plan_big_number,
    "timeline": plan_timeline,
    "quote": plan_quote,
    "summary": plan_text,
    "text": plan_text,
}


def plan_for_layout(slide: LayoutSlide, grid: Grid, theme: Theme, sizes: Dict[str, int], layout: str) -> LayoutPlan:
    return PLANNERS.get(layout, plan_text)(slide, grid, theme, sizes)


# ---------------------------------------------------------------------------
# Fit checks


def plan_in_bounds(plan: LayoutPlan, theme: Theme) -> bool:
    return all(box.fits(theme.page_width, theme.page_height, BOUNDS_TOLERANCE) for box in plan.iter_boxes())


def title_fits(slide: LayoutSlide, plan: LayoutPlan, theme: Theme) -> bool:
    box = plan.boxes.get("title")
    if box is None:
        return True
    return estimate_lines(slide.slide.title, box.w, plan.sizes["title"]) <= theme.max_title_lines


def layout_item_limit(plan: LayoutPlan) -> Optional[int]:
    if plan.layout == "text" and plan.boxes.get("bodyColumns"):
        return TEXT_COLUMN_ITEMS * 2
    return LAYOUT_ITEM_LIMITS.get(plan.layout)


def card_text_box(box: Box) -> Box:
    """Text area of a card, below its icon badge."""
    return Box(box.x + 0.14, box.y + 0.54, box.w - 0.28, box.h - 0.66)


def _text_fits(texts: Sequence[str], box: Box, size: int) -> bool:
    if not texts:
        return True
    return estimate_text_height(texts, size, box.w, para_gap=0.06) <= box.h + BODY_FIT_TOLERANCE


def body_fits(slide: LayoutSlide, plan: LayoutPlan) -> bool:
    """True when the layout draws every bullet and each text box holds its share.

    Cards and timeline steps are measured one item per box; two-column text is
    split at the midpoint the way the text renderer splits it.
    """

    texts = [text for text in slide.bullet_text if text]
    limit = layout_item_limit(plan)
    if limit is not None and len(texts) > limit:
        return False
    size = plan.sizes.get("body") or MIN_BODY_PT

    if plan.layout == "cards":
        return all(_text_fits([card.text], card_text_box(card.box), size) for card in plan.boxes.get("cards") or [])
    if plan.layout == "timeline":
        return all(_text_fits([step.text], step.text_box, size) for step in plan.boxes.get("timelineSteps") or [])

    columns = plan.boxes.get("bodyColumns") or []
    if len(columns) == 2:
        midpoint = int(math.ceil(len(texts) / 2))
        return _text_fits(texts[:midpoint], columns[0], size) and _text_fits(texts[midpoint:], columns[1], size)

    profile = plan.boxes.get("profileBody")
    if profile is not None:
        return _text_fits(texts, profile.inset(0.16, 0.16), size)
    box = plan.boxes.get("body")
    if box is None:
        return True
    return _text_fits(texts, box, size)


def plan_slide(slide: SlideInput, theme: Theme, forced_layout: Optional[str] = None) -> LayoutPlan:
    """Choose the first layout and body size that fit; flag a split otherwise.

    A forced layout is tried on its own (plus the always-available text plan);
    the archetype's fallback chain only applies to the slide's own hint.
    """

    prepared = prepare_slide(slide)
    grid = make_grid(theme)
    base_sizes = type_sizes(prepared, theme)
    preferred = forced_layout or prepared.layout_hint
    candidates = [preferred]
    if not forced_layout:
        candidates.extend(LAYOUT_FALLBACKS.get(preferred, []))
    candidates.append("text")
    layouts = list(dict.fromkeys(candidates))

    for layout in layouts:
        for body_size in range(base_sizes["body"], MIN_BODY_PT - 1, -1):
            sizes = {**base_sizes, "body": body_size}
            plan = plan_for_layout(prepared, grid, theme, sizes, layout)
            if plan_in_bounds(plan, theme) and title_fits(prepared, plan, theme) and body_fits(prepared, plan):
                plan.chosen_layout = layout
                return plan

    plan = plan_for_layout(prepared, grid, theme, {**base_sizes, "body": MIN_BODY_PT}, "text")
    plan.chosen_layout = "text"
    plan.requires_split = True
    return plan


def build_layout_plans(
    slides: Sequence[SlideInput],
    theme: Theme,
    forced_layouts: Optional[Mapping[int, str]] = None,
) -> List[PlannedSlide]:
    """Plan every slide; ``forced_layouts`` is keyed by planned (output) index."""

    forced = dict(forced_layouts or {})
    prepared: List[LayoutSlide] = []
    for slide in slides or []:
        prepared.extend(paginate_agenda(prepare_slide(slide)))

    planned: List[PlannedSlide] = []
    for slide in prepared:
        forced_layout = safe_string(forced.get(len(planned)))
        plan = plan_slide(slide, theme, forced_layout or None)
        if plan.requires_split:
            chunks = split_slide_by_bullets(slide)
            if len(chunks) > 1:
                logger.debug("Splitting slide %r into %d chunks", slide.slide.title, len(chunks))
                for chunk in chunks:
                    planned.append(_planned(len(planned), chunk, plan_slide(chunk, theme, forced_layout or None)))
                continue
            # Too few bullets to split: keep the wrapped text on the minimum-size text plan.
            slide = chunks[0]
            plan = plan_slide(slide, theme, forced_layout or None)
            if plan.requires_split and not body_fits(slide, plan):
                plan.body_overflow = True
                logger.warning(
                    "Slide %r overflows at %dpt and has too few bullets to split", slide.slide.title, MIN_BODY_PT
                )
        planned.append(_planned(len(planned), slide, plan))
    return planned


def _planned(index: int, slide: LayoutSlide, plan: LayoutPlan) -> PlannedSlide:
    return PlannedSlide(index=index, slide=replace(slide, planned_index=index), plan=plan)


def estimate_overflow_risk(planned: PlannedSlide) -> bool:
    if planned is None or planned.plan is None:
        return False
    return not body_fits(planned.slide, planned.plan)


__all__ = [
    "Grid",
    "LAYOUT_FALLBACKS",
    "LAYOUT_ITEM_LIMITS",
    "body_fits",
    "build_layout_plans",
    "card_text_box",
    "estimate_chars_per_line",
    "estimate_lines",
    "estimate_overflow_risk",
    "estimate_text_height",
    "make_grid",
    "paginate_agenda",
    "plan_slide",
    "prepare_slide",
    "split_slide_by_bullets",
    "wrap_line_by_chars",
]
