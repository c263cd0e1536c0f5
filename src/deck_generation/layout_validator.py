"""Post-layout checks and the deterministic fallback driver."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Sequence

from .layout_engine import build_layout_plans, estimate_chars_per_line, estimate_overflow_risk
from .models import PlannedSlide, ValidationIssue
from .theme import Theme

logger = logging.getLogger(__name__)

LAYOUT_FALLBACK_CHAINS: Dict[str, List[str]] = {
    "split-image": ["image-top", "text"],
    "image-top": ["text"],
    "profile": ["split-image", "image-top", "text"],
    "big-number": ["cards", "text"],
    "timeline": ["text"],
    "quote": ["text"],
    "cards": ["text"],
    "text": ["cards", "text"],
    "summary": ["text"],
    "agenda": ["text"],
    "hero-cover": ["text"],
}


@dataclass
class LayoutCheck:
    ok: bool
    issues: List[ValidationIssue] = field(default_factory=list)

    def failing_indexes(self) -> List[int]:
        return sorted({issue.slide_index for issue in self.issues if issue.slide_index >= 0})


def estimate_title_lines(title: str, width: float, size: float) -> int:
    chars_per_line = estimate_chars_per_line(width, size)
    words = (title or "").split()
    if not words:
        return 0
    lines, current = 1, 0
    for word in words:
        if current == 0:
            current = len(word)
        elif current + 1 + len(word) > chars_per_line:
            lines += 1
            current = len(word)
        else:
            current += 1 + len(word)
    return lines


def validate_layout(planned: Sequence[PlannedSlide], theme: Theme) -> LayoutCheck:
    issues: List[ValidationIssue] = []
    for item in planned:
        index = item.index
        for box in item.plan.iter_boxes():
            if not box.fits(theme.page_width, theme.page_height):
                issues.append(ValidationIssue(index, "OUT_OF_BOUNDS", f"Slide {index} has an element outside page bounds."))

        title_box = item.plan.boxes.get("title")
        if title_box is not None:
            size = item.plan.sizes.get("title") or theme.scale["h2"]
            if estimate_title_lines(item.slide.slide.title, title_box.w, size) > theme.max_title_lines:
                issues.append(ValidationIssue(index, "TITLE_OVER_2_LINES", f"Slide {index} title exceeds two lines."))

        if estimate_overflow_risk(item):
            detail = "overflows at the minimum size" if item.plan.body_overflow else "is likely overflowing"
            issues.append(ValidationIssue(index, "BODY_OVERFLOW", f"Slide {index} body text {detail}."))
    return LayoutCheck(ok=not issues, issues=issues)


def pick_fallback_layout(layout: str, issue_code: str) -> str:
    key = layout or "text"
    if issue_code == "BODY_OVERFLOW" and key == "text":
        return "cards"
    chain = LAYOUT_FALLBACK_CHAINS.get(key) or ["text"]
    return chain[0]


def apply_layout_fallback(planned: Sequence[PlannedSlide], theme: Theme, *, max_passes: int = 3) -> List[PlannedSlide]:
    """Re-plan failing slides with their next fallback layout, up to ``max_passes`` times.

    Slides still failing afterwards are forced onto the text layout, whose boxes
    always lie inside the safe area.
    """

    current = list(planned)
    for attempt in range(max_passes):
        check = validate_layout(current, theme)
        if check.ok:
            return current

        forced: Dict[int, str] = {}
        for issue in check.issues:
            index = issue.slide_index
            if index < 0 or index >= len(current):
                continue
            if issue.code == "BODY_OVERFLOW" and current[index].plan.body_overflow:
                continue
            layout = current[index].layout
            fallback = pick_fallback_layout(layout, issue.code)
            if fallback and fallback != layout:
                forced[index] = fallback
        if not forced:
            break
        logger.debug("Layout pass %d forcing %s", attempt + 1, forced)
        current = build_layout_plans([item.slide for item in current], theme, forced_layouts=forced)

    check = validate_layout(current, theme)
    overflowing = sorted({i.slide_index for i in check.issues if i.code == "BODY_OVERFLOW"})
    if overflowing:
        logger.warning("Body text still overflows on slides %s", overflowing)
    out_of_bounds = {i.slide_index for i in check.issues if i.code == "OUT_OF_BOUNDS"}
    if out_of_bounds:
        logger.warning("Forcing text layout on slides %s after %d passes", sorted(out_of_bounds), max_passes)
        current = build_layout_plans(
            [item.slide for item in current],
            theme,
            forced_layouts={index: "text" for index in out_of_bounds},
        )
    return current


__all__ = [
    "LAYOUT_FALLBACK_CHAINS",
    "LayoutCheck",
    "apply_layout_fallback",
    "estimate_title_lines",
    "validate_layout",
]
