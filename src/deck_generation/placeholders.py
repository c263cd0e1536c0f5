"""Built-in placeholder images used when no source image can be fetched."""

from __future__ import annotations

import io
from functools import lru_cache
from typing import Tuple

from PIL import Image, ImageDraw, ImageFont

Color = Tuple[int, int, int]


def hex_to_rgb(value: str) -> Color:
    text = (value or "").lstrip("#")
    if len(text) != 6:
        return (226, 232, 240)
    return (int(text[0:2], 16), int(text[2:4], 16), int(text[4:6], 16))


def _mix(a: Color, b: Color, t: float) -> Color:
    return tuple(int(round(a[i] + (b[i] - a[i]) * t)) for i in range(3))  # type: ignore[return-value]


def _to_png(image: Image.Image) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


@lru_cache(maxsize=32)
def gradient_placeholder(
    color1: str = "E2E8F0",
    color2: str = "CBD5E1",
    color3: str = "DBEAFE",
    width: int = 640,
    height: int = 360,
) -> bytes:
    """Three-stop diagonal gradient with a faint white grid, as PNG bytes."""

    c1, c2, c3 = hex_to_rgb(color1), hex_to_rgb(color2), hex_to_rgb(color3)
    image = Image.new("RGB", (width, height), c1)
    draw = ImageDraw.Draw(image)
    # Draw anti-diagonals so every point on a line shares one gradient position.
    span = width + height
    for offset in range(span):
        t = offset / max(1, span - 1)
        color = _mix(c1, c2, t / 0.52) if t <= 0.52 else _mix(c2, c3, (t - 0.52) / 0.48)
        draw.line([(offset, 0), (offset - height, height)], fill=color, width=2)

    overlay = Image.new("RGBA", (width, height), (0, 0, 0, 0))
    grid = ImageDraw.Draw(overlay)
    step = max(20, width // 16)
    for x in range(step // 2, width, step):
        grid.line([(x, 0), (x, height)], fill=(255, 255, 255, 46))
    for y in range(step // 2, height, step):
        grid.line([(0, y), (width, y)], fill=(255, 255, 255, 46))
    return _to_png(Image.alpha_composite(image.convert("RGBA"), overlay).convert("RGB"))


@lru_cache(maxsize=32)
def icon_placeholder(
    background: str = "E2E8F0",
    foreground: str = "475569",
    label: str = "Source image not provided",
    width: int = 640,
    height: int = 360,
) -> bytes:
    """Flat panel with a picture glyph and a caption, as PNG bytes."""

    bg, fg = hex_to_rgb(background), hex_to_rgb(foreground)
    image = Image.new("RGB", (width, height), bg)
    draw = ImageDraw.Draw(image)
    glyph = _mix(bg, fg, 0.65)
    stroke = max(2, width // 160)

    left, top = int(width * 0.34), int(height * 0.27)
    right, bottom = int(width * 0.66), int(height * 0.57)
    draw.rounded_rectangle([left, top, right, bottom], radius=max(4, width // 50), outline=glyph, width=stroke)
    points = [
        (width * 0.37, height * 0.50),
        (width * 0.46, height * 0.40),
        (width * 0.54, height * 0.48),
        (width * 0.60, height * 0.36),
        (width * 0.64, height * 0.50),
    ]
    draw.line(points, fill=glyph, width=stroke, joint="curve")

    font = ImageFont.load_default()
    text = label.replace("<", "").replace(">", "")
    text_box = draw.textbbox((0, 0), text, font=font)
    text_w = text_box[2] - text_box[0]
    draw.text(((width - text_w) / 2, height * 0.72), text, fill=fg, font=font)
    return _to_png(image)


__all__ = ["gradient_placeholder", "hex_to_rgb", "icon_placeholder"]
