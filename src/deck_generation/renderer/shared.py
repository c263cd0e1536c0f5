"""Drawing primitives shared by the per-archetype slide renderers."""

from __future__ import annotations

from typing import Any, List, Optional, Sequence

from lxml import etree
from pptx.dml.color import RGBColor
from pptx.enum.shapes import MSO_SHAPE
from pptx.enum.text import MSO_ANCHOR, MSO_AUTO_SIZE, PP_ALIGN
from pptx.oxml.ns import qn
from pptx.util import Inches, Pt

from ..icons import resolve_icon_shape
from ..layout_engine import estimate_lines
from ..models import Box, Slide
from ..text_utils import safe_string
from ..theme import Theme

MIN_TITLE_PT = 18
TITLE_ICON_SIZE = 0.26


def rgb(hex_color: str) -> RGBColor:
    return RGBColor.from_string((hex_color or "000000").lstrip("#").upper())


def set_fill(shape, color: str, transparency: int = 0) -> None:
    """Solid fill; ``transparency`` is a percentage (0 opaque, 100 invisible)."""

    shape.fill.solid()
    shape.fill.fore_color.rgb = rgb(color)
    if transparency <= 0:
        return
    sp_pr = shape._element.find(qn("p:spPr"))
    solid = sp_pr.find(qn("a:solidFill")) if sp_pr is not None else None
    srgb = solid.find(qn("a:srgbClr")) if solid is not None else None
    if srgb is not None:
        alpha = etree.SubElement(srgb, qn("a:alpha"))
        alpha.set("val", str(int((100 - min(100, transparency)) * 1000)))


def set_line(shape, color: Optional[str] = None, width_pt: float = 0.75) -> None:
    if color is None:
        shape.line.fill.background()
        return
    shape.line.color.rgb = rgb(color)
    shape.line.width = Pt(width_pt)


def add_shape(
    slide,
    box: Box,
    color: str,
    *,
    kind=MSO_SHAPE.RECTANGLE,
    transparency: int = 0,
    line_color: Optional[str] = None,
):
    shape = slide.shapes.add_shape(kind, Inches(box.x), Inches(box.y), Inches(box.w), Inches(box.h))
    set_fill(shape, color, transparency)
    set_line(shape, line_color)
    shape.shadow.inherit = False
    return shape


def add_text(
    slide,
    box: Box,
    text: str,
    *,
    font: str,
    size: float,
    color: str,
    bold: bool = False,
    italic: bool = False,
    align: PP_ALIGN = PP_ALIGN.LEFT,
    anchor: MSO_ANCHOR = MSO_ANCHOR.MIDDLE,
    shrink: bool = True,
):
    shape = slide.shapes.add_textbox(Inches(box.x), Inches(box.y), Inches(box.w), Inches(box.h))
    frame = shape.text_frame
    frame.word_wrap = True
    frame.vertical_anchor = anchor
    if shrink:
        frame.auto_size = MSO_AUTO_SIZE.TEXT_TO_FIT_SHAPE
    paragraph = frame.paragraphs[0]
    paragraph.alignment = align
    run = paragraph.add_run()
    run.text = text
    run.font.name = font
    run.font.size = Pt(size)
    run.font.bold = bold
    run.font.italic = italic
    run.font.color.rgb = rgb(color)
    return shape


def bullet_texts(items: Sequence[Any]) -> List[str]:
    out: List[str] = []
    for item in items or []:
        if isinstance(item, str):
            text = safe_string(item)
        elif hasattr(item, "text"):
            text = safe_string(item.text)
        elif isinstance(item, dict):
            text = safe_string(item.get("text") or item.get("value") or item.get("label"))
        else:
            text = ""
        if text:
            out.append(text)
    return out


def draw_bullet_list(
    slide,
    items: Sequence[Any],
    box: Optional[Box],
    theme: Theme,
    *,
    font_size: Optional[float] = None,
    max_items: int = 8,
    color: Optional[str] = None,
) -> None:
    if box is None:
        return
    rows = bullet_texts(items)[:max_items]
    if not rows:
        return
    shape = slide.shapes.add_textbox(Inches(box.x), Inches(box.y), Inches(box.w), Inches(box.h))
    frame = shape.text_frame
    frame.word_wrap = True
    frame.vertical_anchor = MSO_ANCHOR.TOP
    frame.auto_size = MSO_AUTO_SIZE.TEXT_TO_FIT_SHAPE
    for index, line in enumerate(rows):
        paragraph = frame.paragraphs[0] if index == 0 else frame.add_paragraph()
        paragraph.space_after = Pt(theme.spacing.get("bulletParaSpacePt", 8))
        run = paragraph.add_run()
        run.text = f"• {line}"
        run.font.name = theme.fonts["body"]
        run.font.size = Pt(font_size or theme.scale["body"])
        run.font.color.rgb = rgb(color or theme.colors["text"])


def draw_base_background(
    slide,
    theme: Theme,
    *,
    mode: Optional[str] = None,
    show_accent_line: bool = True,
    accent_line_color: Optional[str] = None,
) -> None:
    colors = theme.colors
    width, height = theme.page_width, theme.page_height
    background_mode = safe_string(mode or theme.background.get("mode"), "flat")
    background_alt = colors.get("backgroundAlt") or colors["surfaceAlt"]

    fill = slide.background.fill
    fill.solid()
    fill.fore_color.rgb = rgb(colors["background"])

    if background_mode == "gradient-soft":
        add_shape(slide, Box(0, 0, width, height * 0.62), background_alt, transparency=58)
        add_shape(slide, Box(width * 0.32, height * 0.2, width * 0.68, height * 0.8), colors["accentSoft"], transparency=82)
    elif background_mode == "split-panel":
        ratio = max(0.16, min(0.45, float(theme.background.get("panelWidthRatio") or 0.25)))
        add_shape(slide, Box(width * (1 - ratio), 0, width * ratio, height), background_alt, transparency=35)
    elif background_mode == "dark-section":
        add_shape(slide, Box(0, height * 0.62, width, height * 0.38), background_alt, transparency=65)

    if show_accent_line:
        line_height = float(theme.background.get("accentLineHeight") or 0.08)
        add_shape(slide, Box(0, 0, width, line_height), accent_line_color or colors["accent"])


def draw_icon(slide, box: Box, name: str, color: str):
    return add_shape(slide, box, color, kind=resolve_icon_shape(name))


def fit_title_size(title: str, width: float, requested: float, max_lines: int) -> float:
    size = requested
    while size > MIN_TITLE_PT and estimate_lines(title, width, size) > max_lines:
        size -= 1
    return size


def draw_title_and_key_message(
    slide,
    plan,
    data: Slide,
    theme: Theme,
    *,
    title_size: Optional[float] = None,
    key_size: Optional[float] = None,
    title_color: Optional[str] = None,
    key_color: Optional[str] = None,
) -> None:
    title_box = plan.boxes.get("title")
    key_box = plan.boxes.get("keyMessage")
    if title_box is None or key_box is None:
        return

    title = safe_string(data.title, "Untitled Slide")
    requested = title_size or plan.sizes.get("title") or theme.scale["h2"]
    add_text(
        slide,
        title_box,
        title,
        font=theme.fonts["title"],
        size=fit_title_size(title, title_box.w, requested, theme.max_title_lines),
        color=title_color or theme.colors["title"],
        bold=True,
    )

    title_icon = next((icon for icon in data.icons if icon.placement == "title"), None)
    if title_icon is not None and title_box.w >= 3.2:
        icon_x = title_box.x + title_box.w - TITLE_ICON_SIZE - 0.02
        icon_y = title_box.y + 0.08
        badge = Box(icon_x - 0.05, icon_y - 0.04, TITLE_ICON_SIZE + 0.1, TITLE_ICON_SIZE + 0.08)
        add_shape(slide, badge, theme.colors["accentSoft"], kind=MSO_SHAPE.ROUNDED_RECTANGLE)
        draw_icon(slide, Box(icon_x, icon_y, TITLE_ICON_SIZE, TITLE_ICON_SIZE), title_icon.name, theme.colors["accent"])

    key_text = safe_string(data.keyMessage)
    if key_text:
        add_shape(slide, key_box, theme.colors["accentSoft"], kind=MSO_SHAPE.ROUNDED_RECTANGLE)
        add_text(
            slide,
            key_box.inset(0.12, 0.04),
            key_text,
            font=theme.fonts["body"],
            size=key_size or plan.sizes.get("keyMessage") or theme.scale["keyMessage"],
            color=key_color or theme.colors["accent"],
            bold=True,
        )


def draw_card(slide, box: Box, theme: Theme, *, card_color: Optional[str] = None, border_color: Optional[str] = None):
    return add_shape(
        slide,
        box,
        card_color or theme.colors["surface"],
        kind=MSO_SHAPE.ROUNDED_RECTANGLE,
        line_color=border_color or theme.colors["cardStroke"],
    )


def collect_source_keys(data: Slide) -> List[str]:
    keys: List[str] = []
    for bullet in data.bullets:
        for key in bullet.sourceKeys:
            key = safe_string(key)
            if key and key not in keys:
                keys.append(key)
    return keys


def speaker_notes_text(data: Slide) -> str:
    explicit = safe_string(data.speakerNotes)
    if explicit:
        return explicit
    keys = collect_source_keys(data)
    return f"Data source: {', '.join(keys)}" if keys else ""


def add_speaker_notes(slide, data: Slide, enabled: bool = True) -> None:
    if not enabled:
        return
    text = speaker_notes_text(data)
    if text:
        slide.notes_slide.notes_text_frame.text = text


__all__ = [
    "add_shape",
    "add_speaker_notes",
    "add_text",
    "bullet_texts",
    "collect_source_keys",
    "draw_base_background",
    "draw_bullet_list",
    "draw_card",
    "draw_icon",
    "draw_title_and_key_message",
    "fit_title_size",
    "rgb",
    "set_fill",
    "speaker_notes_text",
]
