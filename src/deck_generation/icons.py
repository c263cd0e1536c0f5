"""Closed icon catalog and the deterministic keyword-based icon picker.

Icons are drawn as native python-pptx autoshapes so a rendered deck never
depends on a remote icon service.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Sequence

from pptx.enum.shapes import MSO_SHAPE

from .models import spec_to_dict
from .text_utils import safe_string

DEFAULT_ICON = "layout-grid"

ICON_SHAPES: Dict[str, Any] = {
    "building": MSO_SHAPE.CUBE,
    "briefcase": MSO_SHAPE.FLOWCHART_PREDEFINED_PROCESS,
    "users": MSO_SHAPE.SMILEY_FACE,
    "award": MSO_SHAPE.STAR_7_POINT,
    "shield": MSO_SHAPE.PLAQUE,
    "shield-check": MSO_SHAPE.PLAQUE,
    "chart-bar": MSO_SHAPE.UP_ARROW,
    "chart-line": MSO_SHAPE.RIGHT_ARROW,
    "calendar": MSO_SHAPE.FLOWCHART_CARD,
    "clock": MSO_SHAPE.BLOCK_ARC,
    "mail": MSO_SHAPE.FOLDED_CORNER,
    "phone": MSO_SHAPE.ROUND_2_SAME_RECTANGLE,
    "map-pin": MSO_SHAPE.TEAR,
    "globe": MSO_SHAPE.OVAL,
    "target": MSO_SHAPE.DONUT,
    "layers": MSO_SHAPE.FLOWCHART_MULTIDOCUMENT,
    "settings": MSO_SHAPE.GEAR_6,
    "handshake": MSO_SHAPE.CHEVRON,
    "clipboard": MSO_SHAPE.FLOWCHART_DOCUMENT,
    "clipboard-check": MSO_SHAPE.FLOWCHART_DOCUMENT,
    "stethoscope": MSO_SHAPE.HEART,
    "hospital": MSO_SHAPE.CROSS,
    "pill": MSO_SHAPE.FLOWCHART_TERMINATOR,
    "activity": MSO_SHAPE.LIGHTNING_BOLT,
    "file-text": MSO_SHAPE.FLOWCHART_DOCUMENT,
    "bar-chart-3": MSO_SHAPE.UP_ARROW,
    "presentation": MSO_SHAPE.FRAME,
    "layout-grid": MSO_SHAPE.ROUNDED_RECTANGLE,
    "user-check": MSO_SHAPE.SMILEY_FACE,
    "network": MSO_SHAPE.HEXAGON,
    "sparkles": MSO_SHAPE.STAR_4_POINT,
    "timeline": MSO_SHAPE.PENTAGON,
    "flag": MSO_SHAPE.WAVE,
    "check": MSO_SHAPE.FLOWCHART_CONNECTOR,
    "alert-triangle": MSO_SHAPE.ISOSCELES_TRIANGLE,
    "star": MSO_SHAPE.STAR_5_POINT,
    "book": MSO_SHAPE.FLOWCHART_MULTIDOCUMENT,
    "wallet": MSO_SHAPE.ROUNDED_RECTANGLE,
    "truck": MSO_SHAPE.NOTCHED_RIGHT_ARROW,
    "wrench": MSO_SHAPE.DIAGONAL_STRIPE,
    "leaf": MSO_SHAPE.MOON,
    "cpu-chip": MSO_SHAPE.OCTAGON,
    "microscope": MSO_SHAPE.CAN,
    "checkcircle": MSO_SHAPE.FLOWCHART_CONNECTOR,
}

ICON_ALIASES: Dict[str, str] = {
    "company": "building",
    "office": "building",
    "architecture": "building",
    "interior": "layout-grid",
    "design": "layout-grid",
    "services": "briefcase",
    "service": "briefcase",
    "capability": "chart-bar",
    "capabilities": "chart-bar",
    "analytics": "bar-chart-3",
    "growth": "chart-line",
    "performance": "chart-line",
    "team": "users",
    "leadership": "user-check",
    "people": "users",
    "clients": "handshake",
    "customer": "handshake",
    "compliance": "shield-check",
    "safety": "shield",
    "quality": "checkcircle",
    "governance": "clipboard-check",
    "audit": "clipboard-check",
    "legal": "shield",
    "insurance": "shield",
    "procurement": "wallet",
    "operations": "settings",
    "engineering": "wrench",
    "construction": "truck",
    "sustainability": "leaf",
    "energy": "leaf",
    "region": "globe",
    "location": "map-pin",
    "contact": "mail",
    "email": "mail",
    "phonecall": "phone",
    "website": "globe",
    "projects": "presentation",
    "portfolio": "presentation",
    "awards": "award",
    "recognition": "award",
    "timelinephase": "timeline",
    "roadmap": "timeline",
    "schedule": "calendar",
    "meeting": "calendar",
    "note": "file-text",
    "report": "file-text",
    "summary": "book",
    "risk": "alert-triangle",
    "warning": "alert-triangle",
    "success": "check",
    "innovation": "sparkles",
    "healthcare": "stethoscope",
    "medicine": "pill",
    "diagnostics": "activity",
    "laboratory": "microscope",
    "finance": "wallet",
    "revenue": "chart-bar",
    "profitability": "chart-line",
    "strategy": "flag",
    "milestone": "timeline",
}

# First match wins, so more specific topics come first.
ICON_KEYWORDS: List[tuple] = [
    ("building", ("company", "overview", "office", "hq", "facility", "建筑", "公司")),
    ("briefcase", ("service", "offering", "scope", "proposal", "服务")),
    ("design", ("design", "expertise", "style", "layout", "space", "设计")),
    ("globe", ("region", "regional", "country", "asia", "global", "市场", "地区")),
    ("presentation", ("project", "case", "portfolio", "selected", "案例", "项目")),
    ("award", ("award", "recognition", "accolade", "honor", "奖项", "荣誉")),
    ("users", ("team", "leadership", "people", "staff", "组织", "团队")),
    ("capability", ("capability", "capacity", "performance", "delivery", "能力")),
    ("shield-check", ("compliance", "quality", "safety", "insurance", "合规", "质量")),
    ("mail", ("contact", "email", "mail", "phone", "address", "联系")),
    ("healthcare", ("medical", "clinical", "hospital", "health", "医疗", "医院")),
    ("timeline", ("timeline", "roadmap", "phase", "milestone", "流程", "里程碑")),
    ("analytics", ("chart", "metric", "analysis", "kpi", "trend", "dashboard")),
    ("strategy", ("strategy", "plan", "objective", "goal", "vision")),
    ("sustainability", ("sustainable", "esg", "carbon", "green", "energy")),
    ("risk", ("risk", "warning", "issue", "alert")),
    ("finance", ("finance", "cost", "budget", "expense", "margin", "revenue")),
]


def icon_names() -> List[str]:
    return list(ICON_SHAPES) + list(ICON_ALIASES)


def is_known_icon(name: str) -> bool:
    return name in ICON_SHAPES or name in ICON_ALIASES


def resolve_icon_shape(name: str):
    """Autoshape for ``name``; unknown names render as the default icon."""

    key = safe_string(name)
    key = ICON_ALIASES.get(key, key)
    return ICON_SHAPES.get(key, ICON_SHAPES[DEFAULT_ICON])


def _slide_text(slide: Mapping[str, Any]) -> str:
    bullets = slide.get("bullets") if isinstance(slide.get("bullets"), list) else []
    texts = []
    for item in bullets:
        if isinstance(item, str):
            texts.append(item)
        elif isinstance(item, Mapping):
            texts.append(safe_string(item.get("text")))
    return f"{safe_string(slide.get('title'))} {safe_string(slide.get('keyMessage'))} {' '.join(texts)}".lower()


def find_icon_by_text(text: str) -> str:
    for icon, words in ICON_KEYWORDS:
        if any(word.lower() in text for word in words):
            return icon
    return DEFAULT_ICON


def _default_placement(slide_type: str) -> str:
    if slide_type == "agenda":
        return "bullet"
    if slide_type in ("title", "section"):
        return "title"
    return "card"


def pick_icons(slides: Sequence[Any], max_icons_per_slide: int = 3) -> List[Dict[str, Any]]:
    """Return copies of ``slides`` with a valid ``icons`` list on every slide.

    Slides that already carry catalog icons keep them (capped); otherwise one
    icon is picked by keyword match over title, key message and bullets.
    """

    cap = max(1, min(6, int(max_icons_per_slide or 3)))
    out: List[Dict[str, Any]] = []
    for raw in slides or []:
        slide = dict(spec_to_dict(raw) or {})
        existing = []
        for item in slide.get("icons") or []:
            if not isinstance(item, Mapping):
                continue
            name = safe_string(item.get("name"))
            if not name or not is_known_icon(name):
                continue
            existing.append({"name": name, "placement": safe_string(item.get("placement"), "card")})
        if existing:
            slide["icons"] = existing[:cap]
        else:
            slide["icons"] = [
                {
                    "name": find_icon_by_text(_slide_text(slide)),
                    "placement": _default_placement(safe_string(slide.get("type"))),
                }
            ]
        out.append(slide)
    return out


__all__ = [
    "DEFAULT_ICON",
    "ICON_ALIASES",
    "ICON_KEYWORDS",
    "ICON_SHAPES",
    "find_icon_by_text",
    "icon_names",
    "is_known_icon",
    "pick_icons",
    "resolve_icon_shape",
]
