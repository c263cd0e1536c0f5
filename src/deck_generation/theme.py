"""Visual theme tokens: canvas, grid, font scale, colors and layout rules."""

from __future__ import annotations

import copy
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

BASE_THEME: Dict[str, Any] = {
    "name": "corporate",
    "page": {"width": 13.333, "height": 7.5},
    "grid": {"columns": 12, "gutter": 0.16, "safeMarginX": 0.58, "safeMarginY": 0.34},
    "fonts": {"title": "Calibri", "body": "Calibri", "mono": "Consolas"},
    "scale": {
        "h0": 44,
        "h1": 34,
        "h2": 26,
        "keyMessage": 17,
        "body": 13,
        "bodySmall": 11,
        "caption": 10,
        "number": 56,
        "agendaTitle": 42,
        "agendaItem": 21,
    },
    "colors": {
        "background": "F8FAFC",
        "backgroundAlt": "EFF4FF",
        "surface": "FFFFFF",
        "surfaceAlt": "F1F5F9",
        "title": "0F172A",
        "text": "334155",
        "muted": "64748B",
        "accent": "2563EB",
        "accentSoft": "DBEAFE",
        "danger": "B91C1C",
        "cardStroke": "E2E8F0",
        "darkOverlay": "0F172A",
        "divider": "CBD5E1",
    },
    "spacing": {"sectionGap": 0.2, "blockGap": 0.16, "cardGap": 0.14, "bulletParaSpacePt": 8, "lineHeightPt": 1.2},
    "radius": {"card": 0.08, "image": 0.08, "badge": 0.06},
    "shadow": {
        "card": {"color": "000000", "opacity": 0.09, "blur": 3, "offset": 1, "angle": 45},
        "image": {"color": "000000", "opacity": 0.12, "blur": 6, "offset": 2, "angle": 45},
    },
    "rules": {"maxTitleLines": 2, "maxBulletsPerSlide": 6, "maxCharsPerBullet": 40},
    "background": {"mode": "gradient-soft", "accentLineHeight": 0.08, "panelWidthRatio": 0.28},
}

PRESETS: Dict[str, Dict[str, Any]] = {
    "corporate": {
        "name": "corporate",
        "colors": {
            "background": "F8FAFC",
            "backgroundAlt": "E7EEF9",
            "surface": "FFFFFF",
            "surfaceAlt": "EEF2FF",
            "title": "0F172A",
            "text": "334155",
            "muted": "64748B",
            "accent": "1D4ED8",
            "accentSoft": "DBEAFE",
            "cardStroke": "E2E8F0",
            "darkOverlay": "0B1220",
            "divider": "CBD5E1",
        },
        "background": {"mode": "split-panel", "accentLineHeight": 0.08, "panelWidthRatio": 0.25},
    },
    "medical-clean": {
        "name": "medical-clean",
        "colors": {
            "background": "F5F8FC",
            "backgroundAlt": "E9F4FF",
            "surface": "FFFFFF",
            "surfaceAlt": "EAF3FF",
            "title": "0D1B2A",
            "text": "1F3B57",
            "muted": "4E6E8F",
            "accent": "0EA5E9",
            "accentSoft": "DFF3FF",
            "cardStroke": "CFE6F8",
            "darkOverlay": "0B1D2D",
            "divider": "BFD8EB",
        },
        "background": {"mode": "gradient-soft", "accentLineHeight": 0.08, "panelWidthRatio": 0.22},
    },
    "dark-hero": {
        "name": "dark-hero",
        "colors": {
            "background": "0F172A",
            "backgroundAlt": "1E293B",
            "surface": "111827",
            "surfaceAlt": "1F2937",
            "title": "F8FAFC",
            "text": "E2E8F0",
            "muted": "94A3B8",
            "accent": "38BDF8",
            "accentSoft": "0B253D",
            "cardStroke": "334155",
            "darkOverlay": "020617",
            "divider": "475569",
        },
        "background": {"mode": "dark-section", "accentLineHeight": 0.08, "panelWidthRatio": 0.3},
    },
}

# Older theme names map onto a preset plus optional overrides.
PRESET_ALIASES: Dict[str, tuple] = {
    "businessMinimal": ("corporate", {}),
    "techBlue": ("medical-clean", {}),
    "pitchContrast": (
        "dark-hero",
        {"scale": {"h0": 50, "h1": 38, "h2": 28, "keyMessage": 18, "agendaTitle": 46, "agendaItem": 22, "number": 62}},
    ),
}


def deep_merge(base: Dict[str, Any], patch: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    output = copy.deepcopy(base)
    for key, value in (patch or {}).items():
        if isinstance(value, dict):
            output[key] = deep_merge(output.get(key) or {}, value)
        else:
            output[key] = copy.deepcopy(value)
    return output


@dataclass(frozen=True)
class Theme:
    name: str
    page_width: float
    page_height: float
    grid: Dict[str, float]
    fonts: Dict[str, str]
    scale: Dict[str, int]
    colors: Dict[str, str]
    spacing: Dict[str, float]
    radius: Dict[str, float]
    shadow: Dict[str, Dict[str, Any]]
    rules: Dict[str, int]
    background: Dict[str, Any] = field(default_factory=dict)

    @property
    def max_title_lines(self) -> int:
        return int(self.rules.get("maxTitleLines", 2))

    @classmethod
    def from_tokens(cls, tokens: Dict[str, Any]) -> "Theme":
        return cls(
            name=tokens["name"],
            page_width=float(tokens["page"]["width"]),
            page_height=float(tokens["page"]["height"]),
            grid=dict(tokens["grid"]),
            fonts=dict(tokens["fonts"]),
            scale=dict(tokens["scale"]),
            colors=dict(tokens["colors"]),
            spacing=dict(tokens["spacing"]),
            radius=dict(tokens["radius"]),
            shadow=copy.deepcopy(tokens["shadow"]),
            rules=dict(tokens["rules"]),
            background=dict(tokens.get("background") or {}),
        )


def infer_preset(theme_name: Optional[str] = None, style_hint: Optional[str] = None, tone: Optional[str] = None) -> str:
    requested = (theme_name or "").strip()
    if requested in PRESETS or requested in PRESET_ALIASES:
        return requested
    hint = f"{style_hint or ''} {tone or ''}".lower()
    if re.search(r"medical|hospital|clinic|clinical", hint):
        return "medical-clean"
    if re.search(r"pitch|roadshow|investor|hero|dark", hint):
        return "dark-hero"
    return "corporate"


def resolve_theme(theme_name: Optional[str] = None, style_hint: Optional[str] = None, tone: Optional[str] = None) -> Theme:
    preset = infer_preset(theme_name, style_hint, tone)
    overrides: Dict[str, Any] = {}
    if preset in PRESET_ALIASES:
        preset, overrides = PRESET_ALIASES[preset]
    tokens = deep_merge(deep_merge(BASE_THEME, PRESETS[preset]), overrides)
    return Theme.from_tokens(tokens)


def theme_presets() -> List[str]:
    return list(PRESETS) + list(PRESET_ALIASES)


__all__ = ["BASE_THEME", "PRESETS", "Theme", "deep_merge", "infer_preset", "resolve_theme", "theme_presets"]
