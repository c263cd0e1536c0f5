"""One drawing routine per slide archetype."""

from __future__ import annotations

import math
from typing import Callable, Dict

from pptx.enum.shapes import MSO_CONNECTOR, MSO_SHAPE
from pptx.enum.text import MSO_ANCHOR, PP_ALIGN
from pptx.util import Inches, Pt

from ..layout_engine import card_text_box
from ..models import Box, PlannedSlide
from ..text_utils import safe_string
from .context import RenderContext
from .shared import (
    add_shape,
    add_speaker_notes,
    add_text,
    bullet_texts,
    draw_base_background,
    draw_bullet_list,
    draw_card,
    draw_icon,
    draw_title_and_key_message,
    rgb,
)

AGENDA_ICON_CYCLE = ("layout-grid", "presentation", "target", "briefcase", "timeline", "shield-check")
CARD_ICON_CYCLE = ("briefcase", "layout-grid", "chart-bar", "users", "target", "checkcircle")

Renderer = Callable[[object, PlannedSlide, RenderContext], None]


def _icon_for(planned: PlannedSlide, index: int, cycle) -> str:
    icons = planned.slide.slide.icons
    if index < len(icons):
        return icons[index].name
    if icons:
        return icons[0].name
    return cycle[index % len(cycle)]


def _first_image(planned: PlannedSlide):
    return planned.slide.images[0] if planned.slide.images else None


def render_hero(slide, planned: PlannedSlide, ctx: RenderContext) -> None:
    theme, data, plan = ctx.theme, planned.slide.slide, planned.plan
    draw_base_background(slide, theme)

    image_box = plan.boxes.get("image")
    if image_box is not None:
        image_plan = data.imagePlan
        ctx.place_image(
            slide,
            _first_image(planned),
            image_box,
            fallback=ctx.placeholder("hero"),
            overlay=(image_plan.overlay if image_plan else None) or "dark-55",
            focal_point=(image_plan.focalPoint if image_plan else None) or "center",
        )

    dark = theme.name == "dark-hero"
    title_color = theme.colors["title"] if dark else "FFFFFF"
    key_color = theme.colors["accent"] if dark else "FFFFFF"
    fonts = theme.fonts

    if plan.boxes.get("title") is not None:
        add_text(
            slide,
            plan.boxes["title"],
            safe_string(data.title),
            font=fonts["title"],
            size=max(theme.scale["h0"], 42),
            color=title_color,
            bold=True,
        )
    if plan.boxes.get("keyMessage") is not None:
        add_text(
            slide,
            plan.boxes["keyMessage"],
            safe_string(data.keyMessage),
            font=fonts["body"],
            size=theme.scale["keyMessage"],
            color=key_color,
            bold=True,
        )
    if plan.boxes.get("subtitle") is not None and safe_string(data.subtitle):
        add_text(
            slide,
            plan.boxes["subtitle"],
            safe_string(data.subtitle),
            font=fonts["body"],
            size=theme.scale["bodySmall"],
            color=title_color,
        )
    add_speaker_notes(slide, data, ctx.show_source_in_notes)


def render_agenda(slide, planned: PlannedSlide, ctx: RenderContext) -> None:
    theme, data, plan = ctx.theme, planned.slide.slide, planned.plan
    draw_base_background(slide, theme)
    draw_title_and_key_message(
        slide, plan, data, theme, title_size=max(theme.scale["agendaTitle"], 40), key_size=theme.scale["keyMessage"]
    )

    for index, item in enumerate(plan.boxes.get("agendaItems") or []):
        draw_card(slide, item.card, theme)
        add_shape(slide, item.badge, theme.colors["accent"], kind=MSO_SHAPE.ROUNDED_RECTANGLE)
        add_text(
            slide,
            item.badge,
            str(item.index),
            font=theme.fonts["body"],
            size=max(theme.scale["bodySmall"], 11),
            color="FFFFFF",
            bold=True,
            align=PP_ALIGN.CENTER,
        )
        add_text(
            slide,
            item.text_box,
            safe_string(item.text),
            font=theme.fonts["body"],
            size=max(theme.scale["agendaItem"], 20),
            color=theme.colors["text"],
        )
        draw_icon(slide, item.icon_box, _icon_for(planned, index, AGENDA_ICON_CYCLE), theme.colors["accent"])
    add_speaker_notes(slide, data, ctx.show_source_in_notes)


def render_cards(slide, planned: PlannedSlide, ctx: RenderContext) -> None:
    theme, data, plan = ctx.theme, planned.slide.slide, planned.plan
    draw_base_background(slide, theme)
    draw_title_and_key_message(slide, plan, data, theme)

    texts = bullet_texts(data.bullets)
    for index, card in enumerate(plan.boxes.get("cards") or []):
        box = card.box
        draw_card(slide, box, theme)
        add_shape(slide, Box(box.x + 0.14, box.y + 0.12, 0.34, 0.34), theme.colors["accentSoft"], kind=MSO_SHAPE.ROUNDED_RECTANGLE)
        draw_icon(slide, Box(box.x + 0.19, box.y + 0.17, 0.24, 0.24), _icon_for(planned, index, CARD_ICON_CYCLE), theme.colors["accent"])
        add_text(
            slide,
            Box(box.x + box.w - 0.42, box.y + 0.15, 0.26, 0.2),
            str(index + 1),
            font=theme.fonts["body"],
            size=theme.scale["caption"],
            color=theme.colors["muted"],
            bold=True,
            align=PP_ALIGN.RIGHT,
            shrink=False,
        )
        body = safe_string(card.text) or (texts[index] if index < len(texts) else "Unknown")
        add_text(
            slide,
            card_text_box(box),
            body,
            font=theme.fonts["body"],
            size=planned.plan.sizes.get("body") or theme.scale["body"],
            color=theme.colors["text"],
            anchor=MSO_ANCHOR.TOP,
        )
    add_speaker_notes(slide, data, ctx.show_source_in_notes)


def render_profile(slide, planned: PlannedSlide, ctx: RenderContext) -> None:
    theme, data, plan = ctx.theme, planned.slide.slide, planned.plan
    draw_base_background(slide, theme)
    draw_title_and_key_message(slide, plan, data, theme)

    image_box = plan.boxes.get("profileImage")
    if image_box is not None:
        ctx.place_image(slide, _first_image(planned), image_box, fallback=ctx.placeholder("profile"))

    body = plan.boxes.get("profileBody")
    if body is not None:
        draw_card(slide, body, theme)
        draw_bullet_list(slide, data.bullets, body.inset(0.16, 0.16), theme, max_items=6, font_size=plan.sizes.get("body"))
    add_speaker_notes(slide, data, ctx.show_source_in_notes)


def render_split_image(slide, planned: PlannedSlide, ctx: RenderContext) -> None:
    theme, data, plan = ctx.theme, planned.slide.slide, planned.plan
    draw_base_background(slide, theme)
    draw_title_and_key_message(slide, plan, data, theme)

    image_box = plan.boxes.get("image")
    if image_box is not None:
        focal = data.imagePlan.focalPoint if data.imagePlan else "center"
        ctx.place_image(slide, _first_image(planned), image_box, fallback=ctx.placeholder("split"), focal_point=focal)
    draw_bullet_list(slide, data.bullets, plan.boxes.get("body"), theme, max_items=6, font_size=plan.sizes.get("body"))
    add_speaker_notes(slide, data, ctx.show_source_in_notes)


def render_big_number(slide, planned: PlannedSlide, ctx: RenderContext) -> None:
    theme, data, plan = ctx.theme, planned.slide.slide, planned.plan
    draw_base_background(slide, theme)
    draw_title_and_key_message(slide, plan, data, theme)

    if plan.boxes.get("number") is not None:
        first = data.emphasis.numbers[0].value if data.emphasis.numbers else ""
        add_text(
            slide,
            plan.boxes["number"],
            safe_string(data.number) or safe_string(first) or "Unknown",
            font=theme.fonts["title"],
            size=plan.sizes.get("number") or theme.scale["number"],
            color=theme.colors["accent"],
            bold=True,
            align=PP_ALIGN.CENTER,
        )
    if plan.boxes.get("caption") is not None:
        add_text(
            slide,
            plan.boxes["caption"],
            safe_string(data.caption) or safe_string(data.keyMessage),
            font=theme.fonts["body"],
            size=theme.scale["keyMessage"],
            color=theme.colors["text"],
            align=PP_ALIGN.CENTER,
        )
    draw_bullet_list(slide, data.bullets, plan.boxes.get("body"), theme, max_items=4, font_size=theme.scale["bodySmall"])
    add_speaker_notes(slide, data, ctx.show_source_in_notes)


def render_timeline(slide, planned: PlannedSlide, ctx: RenderContext) -> None:
    theme, data, plan = ctx.theme, planned.slide.slide, planned.plan
    draw_base_background(slide, theme)
    draw_title_and_key_message(slide, plan, data, theme)

    steps = plan.boxes.get("timelineSteps") or []
    if steps:
        line_x = steps[0].dot.x + steps[0].dot.w / 2
        top = steps[0].dot.y
        bottom = max(top + 0.2, steps[-1].dot.y + steps[-1].dot.h)
        connector = slide.shapes.add_connector(
            MSO_CONNECTOR.STRAIGHT, Inches(line_x), Inches(top), Inches(line_x), Inches(bottom)
        )
        connector.line.color.rgb = rgb(theme.colors["accent"])
        connector.line.width = Pt(1.2)

    texts = bullet_texts(data.bullets)
    for index, step in enumerate(steps):
        add_shape(slide, step.dot, theme.colors["accent"], kind=MSO_SHAPE.OVAL)
        add_text(
            slide,
            step.badge,
            str(index + 1),
            font=theme.fonts["body"],
            size=theme.scale["caption"],
            color=theme.colors["muted"],
            bold=True,
            align=PP_ALIGN.CENTER,
            shrink=False,
        )
        add_text(
            slide,
            step.text_box,
            safe_string(step.text) or (texts[index] if index < len(texts) else ""),
            font=theme.fonts["body"],
            size=plan.sizes.get("body") or theme.scale["body"],
            color=theme.colors["text"],
        )
    add_speaker_notes(slide, data, ctx.show_source_in_notes)


def render_quote(slide, planned: PlannedSlide, ctx: RenderContext) -> None:
    theme, data, plan = ctx.theme, planned.slide.slide, planned.plan
    draw_base_background(slide, theme)
    draw_title_and_key_message(slide, plan, data, theme)

    box = plan.boxes.get("quote") or plan.boxes.get("body")
    if box is not None:
        add_shape(
            slide,
            box,
            theme.colors["surfaceAlt"],
            kind=MSO_SHAPE.ROUNDED_RECTANGLE,
            line_color=theme.colors["cardStroke"],
        )
        add_text(
            slide,
            box.inset(0.3, 0.25),
            f"“{safe_string(data.keyMessage)}”",
            font=theme.fonts["body"],
            size=max(theme.scale["h2"] - 2, 20),
            color=theme.colors["title"],
            italic=True,
            align=PP_ALIGN.CENTER,
        )
    add_speaker_notes(slide, data, ctx.show_source_in_notes)


def render_text(slide, planned: PlannedSlide, ctx: RenderContext) -> None:
    theme, data, plan = ctx.theme, planned.slide.slide, planned.plan
    draw_base_background(slide, theme)
    draw_title_and_key_message(slide, plan, data, theme)

    body_size = plan.sizes.get("body") or theme.scale["body"]
    columns = plan.boxes.get("bodyColumns") or []
    items = planned.slide.bullet_text or bullet_texts(data.bullets)
    if len(columns) == 2:
        midpoint = int(math.ceil(len(items) / 2))
        draw_bullet_list(slide, items[:midpoint], columns[0], theme, max_items=5, font_size=body_size)
        draw_bullet_list(slide, items[midpoint:], columns[1], theme, max_items=5, font_size=body_size)
    else:
        draw_bullet_list(slide, items, plan.boxes.get("body"), theme, max_items=6, font_size=body_size)
    add_speaker_notes(slide, data, ctx.show_source_in_notes)


RENDERERS: Dict[str, Renderer] = {
    "hero-cover": render_hero,
    "agenda": render_agenda,
    "cards": render_cards,
    "profile": render_profile,
    "split-image": render_split_image,
    "image-left": render_split_image,
    "image-right": render_split_image,
    "image-top": render_split_image,
    "big-number": render_big_number,
    "timeline": render_timeline,
    "quote": render_quote,
}


def choose_renderer(planned: PlannedSlide) -> Renderer:
    layout = planned.layout
    if layout in RENDERERS:
        return RENDERERS[layout]
    if planned.slide.type == "bigNumber" and "number" in planned.plan.boxes:
        return render_big_number
    return render_text


__all__ = [
    "RENDERERS",
    "choose_renderer",
    "render_agenda",
    "render_big_number",
    "render_cards",
    "render_hero",
    "render_profile",
    "render_quote",
    "render_split_image",
    "render_text",
    "render_timeline",
]
