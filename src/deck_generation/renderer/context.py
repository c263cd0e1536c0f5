"""Per-render state: theme, image cache and image placement helpers."""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass, field
from typing import List, Optional

import requests
from PIL import Image
from pptx.enum.shapes import MSO_SHAPE
from pptx.util import Inches

from ..image_cache import DEFAULT_TIMEOUT_MS, MIN_TIMEOUT_MS, FetchedImage, ImageCache
from ..models import Box, Slide, SlideSpec
from ..placeholders import gradient_placeholder, icon_placeholder
from ..text_utils import dedupe, is_http_url, safe_string
from ..theme import Theme, resolve_theme
from .shared import add_shape

logger = logging.getLogger(__name__)

OVERLAY_TRANSPARENCY = {"dark-55": 45, "dark-40": 60, "light-20": 80}


@dataclass
class RenderContext:
    theme: Theme
    image_cache: ImageCache
    image_fetch_timeout_ms: int = DEFAULT_TIMEOUT_MS
    max_images_per_slide: int = 2
    self_check: bool = True
    show_source_in_notes: bool = True
    author: str = "Deck Agents"
    company: str = ""
    subject: str = ""
    warnings: List[str] = field(default_factory=list)

    @classmethod
    def for_spec(
        cls,
        spec: SlideSpec,
        *,
        theme_name: Optional[str] = None,
        style_hint: Optional[str] = None,
        tone: Optional[str] = None,
        image_fetch_timeout_ms: Optional[int] = None,
        max_images_per_slide: int = 2,
        self_check: bool = True,
        show_source_in_notes: bool = True,
        session: Optional[requests.Session] = None,
    ) -> "RenderContext":
        first_tone = spec.slides[0].tone if spec.slides else None
        theme = resolve_theme(
            theme_name or spec.themeName,
            style_hint or spec.styleHint or "corporate",
            tone or first_tone or "business",
        )
        timeout_ms = max(MIN_TIMEOUT_MS, int(image_fetch_timeout_ms or DEFAULT_TIMEOUT_MS))
        return cls(
            theme=theme,
            image_cache=ImageCache(timeout_ms, session=session),
            image_fetch_timeout_ms=timeout_ms,
            max_images_per_slide=max(1, min(2, int(max_images_per_slide or 2))),
            self_check=self_check,
            show_source_in_notes=show_source_in_notes,
            subject=spec.presentationTitle,
        )

    # -- images --------------------------------------------------------------

    def candidate_images(self, slide: Slide) -> List[str]:
        urls = list(slide.images)
        if slide.imagePlan and slide.imagePlan.imageUrl:
            urls.append(slide.imagePlan.imageUrl)
        if slide.visual and slide.visual.imageUrl:
            urls.append(slide.visual.imageUrl)
        return [url for url in dedupe(safe_string(u) for u in urls) if is_http_url(url)]

    def resolve_slide_images(self, slide: Slide) -> List[str]:
        """Fetched URLs only, limited to ``max_images_per_slide``."""

        resolved: List[str] = []
        for url in self.candidate_images(slide):
            if len(resolved) >= self.max_images_per_slide:
                break
            if self.image_cache.get(url) is not None:
                resolved.append(url)
        return resolved

    def fetched(self, url: Optional[str]) -> Optional[FetchedImage]:
        return self.image_cache.get(url) if url else None

    def placeholder(self, kind: str) -> bytes:
        colors = self.theme.colors
        if kind == "hero":
            return gradient_placeholder(colors["surfaceAlt"], colors["accentSoft"], colors["background"])
        return icon_placeholder(colors["surfaceAlt"], colors["muted"], "Source image unavailable")

    def place_image(
        self,
        slide,
        url: Optional[str],
        box: Box,
        *,
        fallback: Optional[bytes] = None,
        overlay: Optional[str] = None,
        focal_point: str = "center",
    ) -> None:
        image = self.fetched(url)
        data = image.data if image is not None else fallback
        if data is None:
            add_shape(
                slide,
                box,
                self.theme.colors["surfaceAlt"],
                kind=MSO_SHAPE.ROUNDED_RECTANGLE,
                line_color=self.theme.colors["cardStroke"],
            )
            return
        picture = slide.shapes.add_picture(
            io.BytesIO(data), Inches(box.x), Inches(box.y), Inches(box.w), Inches(box.h)
        )
        crop_to_cover(picture, data, box, focal_point)
        transparency = OVERLAY_TRANSPARENCY.get(safe_string(overlay))
        if transparency is not None:
            add_shape(slide, box, self.theme.colors["darkOverlay"], transparency=transparency)


def crop_to_cover(picture, data: bytes, box: Box, focal_point: str = "center") -> None:
    """Crop ``picture`` so the image fills ``box`` without distortion."""

    try:
        with Image.open(io.BytesIO(data)) as image:
            width, height = image.size
    except OSError:
        return
    if not width or not height or not box.w or not box.h:
        return
    image_ratio = width / height
    box_ratio = box.w / box.h
    if abs(image_ratio - box_ratio) < 1e-3:
        return
    if image_ratio > box_ratio:
        excess = 1 - box_ratio / image_ratio
        left = {"left": 0.0, "right": excess}.get(focal_point, excess / 2)
        picture.crop_left, picture.crop_right = left, excess - left
    else:
        excess = 1 - image_ratio / box_ratio
        top = {"top": 0.0}.get(focal_point, excess / 2)
        picture.crop_top, picture.crop_bottom = top, excess - top


__all__ = ["OVERLAY_TRANSPARENCY", "RenderContext", "crop_to_cover"]
