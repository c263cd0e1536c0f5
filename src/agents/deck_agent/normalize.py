"""Coerce model output into valid, source-traceable slides.

Every generation stage returns loosely-shaped JSON. The helpers here map it
back onto the slide contract: unknown enumerations fall back to defaults,
source keys are restricted to paths present in the fact index, images to the
source image allow-list, and bullet copy is trimmed to presentation length.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Set

from src.deck_generation.fact_index import FactIndex
from src.deck_generation.fact_pack import DraftSection, FactPack
from src.deck_generation.models import (
    ALLOWED_DENSITY,
    ALLOWED_LAYOUT_HINTS,
    ALLOWED_SLIDE_TYPES,
    ALLOWED_TONES,
    INSIGHT_PREFIXES,
    Slide,
    parse_slide,
    spec_to_dict,
)
from src.deck_generation.text_utils import first_sentence, is_http_url, normalize_space, safe_string, to_list

DEFAULT_MAX_BULLETS = 6
DEFAULT_MAX_BULLET_CHARS = 40
MAX_EMPHASIS_PHRASES = 8
MAX_EMPHASIS_NUMBERS = 6
MAX_SLIDE_IMAGES = 2

_LEAD_IN_RES = (
    re.compile(r"^According to[^,]*,\s*", re.IGNORECASE),
    re.compile(r"^Based on data[^,]*,\s*", re.IGNORECASE),
    re.compile(r"^Based on[^,]*,\s*", re.IGNORECASE),
    re.compile(r"^Highlight\s+", re.IGNORECASE),
)
_COLON_RE = re.compile(r"\s*:\s*")
_INSIGHT_RE = re.compile(r"^(Suggestion:|Potential implication:)", re.IGNORECASE)

_TYPE_LAYOUTS = {
    "agenda": "agenda",
    "cards": "cards",
    "profile": "profile",
    "split-image": "split-image",
    "bigNumber": "big-number",
    "timeline": "timeline",
    "quote": "quote",
    "summary": "summary",
}


@dataclass
class NormalizeContext:
    """What a slide is normalized against."""

    fact_index: FactIndex
    style_hint: str = "corporate"
    allowed_images: Optional[Set[str]] = None
    default_source_keys: List[str] = field(default_factory=list)

    @classmethod
    def from_pack(cls, pack: FactPack, fact_index: FactIndex, style_hint: str) -> "NormalizeContext":
        return cls(
            fact_index=fact_index,
            style_hint=style_hint,
            allowed_images=set(pack.allowed_image_urls),
            default_source_keys=default_source_keys(fact_index),
        )


def parse_style_hint(prompt: str) -> str:
    text = safe_string(prompt).lower()
    if re.search(r"medical|hospital|clinic|health", text):
        return "medical clean"
    if re.search(r"pitch|roadshow|investor", text):
        return "pitch"
    if re.search(r"tech|technology|ai|saas", text):
        return "corporate tech"
    return "corporate"


def default_source_keys(fact_index: FactIndex, limit: int = 3) -> List[str]:
    return fact_index.leaf_paths()[:limit]


def coerce_single_sentence(text: Any) -> str:
    """First sentence of ``text``; dots inside URLs, abbreviations and decimals are not boundaries."""

    return first_sentence(normalize_space(text))


def _key_strings(keys: Any) -> List[str]:
    return [safe_string(str(key)) for key in to_list(keys) if isinstance(key, (str, int)) and not isinstance(key, bool)]


def resolve_source_keys(keys: Any, fact_index: FactIndex) -> List[str]:
    """Canonical paths of the entries in ``keys`` that resolve in ``fact_index``."""

    out: List[str] = []
    for key in _key_strings(keys):
        canonical = fact_index.canonical(key)
        if canonical and canonical not in out:
            out.append(canonical)
    return out


def normalize_source_keys(keys: Any, fact_index: FactIndex, fallback: Sequence[str] = ()) -> List[str]:
    """Canonicalize ``keys`` against ``fact_index``.

    Paths that do not resolve are kept verbatim for the fact validator to
    report. ``fallback`` is only used when no key was supplied at all.
    """

    out: List[str] = []
    for key in _key_strings(keys):
        value = fact_index.canonical(key) or key
        if value and value not in out:
            out.append(value)
    return out or resolve_source_keys(list(fallback or []), fact_index)


def ensure_insight_prefix(text: str) -> str:
    value = safe_string(text)
    if not value or _INSIGHT_RE.match(value):
        return value
    return f"{INSIGHT_PREFIXES[0]} {value}"


def normalize_bullet_text(text: Any, max_chars: int = DEFAULT_MAX_BULLET_CHARS) -> str:
    cleaned = normalize_space(text)
    cleaned = _COLON_RE.sub(" ", cleaned)
    for pattern in _LEAD_IN_RES:
        cleaned = pattern.sub("", cleaned)
    cleaned = cleaned.strip()
    if not cleaned or len(cleaned) <= max_chars:
        return cleaned

    sliced = cleaned[: max_chars + 1]
    cut = max(sliced.rfind(","), sliced.rfind(";"), sliced.rfind(" "))
    if cut >= int(max_chars * 0.65):
        return f"{sliced[:cut].strip()}."
    return f"{cleaned[:max_chars].strip()}..."


def normalize_bullet(item: Any, fallback_keys: Sequence[str], fact_index: FactIndex) -> Optional[Dict[str, Any]]:
    if isinstance(item, str):
        text = normalize_bullet_text(item)
        if not text:
            return None
        return {"text": text, "sourceKeys": normalize_source_keys([], fact_index, fallback_keys), "kind": "fact"}
    if not isinstance(item, dict):
        return None

    kind = "insight" if safe_string(item.get("kind")).lower() == "insight" else "fact"
    raw_text = safe_string(str(item.get("text") or item.get("value") or item.get("label") or ""))
    prefix = ""
    if kind == "insight":
        # The colon rewrite below would otherwise eat an existing prefix.
        match = _INSIGHT_RE.match(raw_text)
        if match:
            prefix = match.group(1)
            raw_text = raw_text[match.end():]
    text = normalize_bullet_text(raw_text)
    if not text:
        return None
    if kind == "insight":
        text = f"{prefix} {text}" if prefix else ensure_insight_prefix(text)
    return {
        "text": text,
        "sourceKeys": normalize_source_keys(item.get("sourceKeys"), fact_index, fallback_keys),
        "kind": kind,
    }


def normalize_emphasis(emphasis: Any, fact_index: FactIndex, fallback_keys: Sequence[str]) -> Dict[str, List[Dict[str, Any]]]:
    source = emphasis if isinstance(emphasis, dict) else {}

    phrases: List[Dict[str, Any]] = []
    for item in to_list(source.get("phrases")):
        if isinstance(item, str) and safe_string(item):
            phrases.append({"text": safe_string(item), "sourceKeys": normalize_source_keys([], fact_index, fallback_keys)})
        elif isinstance(item, dict) and safe_string(item.get("text")):
            phrases.append(
                {
                    "text": safe_string(item.get("text")),
                    "sourceKeys": normalize_source_keys(item.get("sourceKeys"), fact_index, fallback_keys),
                }
            )

    numbers: List[Dict[str, Any]] = []
    for item in to_list(source.get("numbers")):
        if not isinstance(item, dict):
            continue
        value = safe_string(str(item.get("value")) if isinstance(item.get("value"), (int, float)) else item.get("value"))
        label = safe_string(item.get("label"))
        if not value or not label:
            continue
        numbers.append(
            {
                "value": value,
                "label": label,
                "sourceKeys": normalize_source_keys(item.get("sourceKeys"), fact_index, fallback_keys),
            }
        )

    return {"phrases": phrases[:MAX_EMPHASIS_PHRASES], "numbers": numbers[:MAX_EMPHASIS_NUMBERS]}


def normalize_images(slide: Dict[str, Any], allowed: Optional[Set[str]]) -> List[str]:
    candidates: List[Any] = list(to_list(slide.get("images")))
    for holder in ("visual", "imagePlan"):
        nested = slide.get(holder)
        if isinstance(nested, dict):
            candidates.append(nested.get("imageUrl"))

    out: List[str] = []
    for value in candidates:
        url = safe_string(value)
        if not is_http_url(url):
            continue
        if allowed is not None and url not in allowed:
            continue
        if url not in out:
            out.append(url)
    return out[:MAX_SLIDE_IMAGES]


def pick_layout_hint(slide: Dict[str, Any], has_image: bool) -> str:
    visual = slide.get("visual") if isinstance(slide.get("visual"), dict) else {}
    requested = safe_string(slide.get("layoutHint") or visual.get("layoutHint"))
    if requested in ALLOWED_LAYOUT_HINTS:
        return requested
    slide_type = safe_string(slide.get("type"))
    if slide_type == "title":
        return "hero-cover" if has_image else "text"
    if slide_type in _TYPE_LAYOUTS:
        return _TYPE_LAYOUTS[slide_type]
    return "split-image" if has_image else "text"


def pick_tone(slide: Dict[str, Any], style_hint: str) -> str:
    requested = safe_string(slide.get("tone")).lower()
    if requested in ALLOWED_TONES:
        return requested
    hint = safe_string(style_hint).lower()
    if re.search(r"medical|clinical|hospital", hint):
        return "clinical"
    if re.search(r"pitch|roadshow|investor", hint):
        return "pitch"
    if re.search(r"report|analysis", hint):
        return "report"
    return "business"


def pick_density(requested: Any, bullet_count: int) -> str:
    value = safe_string(requested).lower()
    if value in ALLOWED_DENSITY:
        return value
    if bullet_count >= 6:
        return "high"
    if bullet_count <= 2:
        return "low"
    return "medium"


def normalize_slide_type(requested: Any, bullet_count: int, number_count: int) -> str:
    value = safe_string(requested)
    if value in ALLOWED_SLIDE_TYPES:
        return value
    if number_count > 0 and bullet_count <= 2:
        return "bigNumber"
    if bullet_count >= 6:
        return "cards"
    return "text"


def _clamp_int(value: Any, low: int, high: int, default: int) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        number = 0
    return max(low, min(high, number or default))


def _section_fallback_keys(section: Optional[DraftSection], ctx: NormalizeContext) -> List[str]:
    keys: List[str] = []
    for bullet in (section.bullets if section else []):
        for key in bullet.get("sourceKeys") or []:
            canonical = ctx.fact_index.canonical(key)
            if canonical and canonical not in keys:
                keys.append(canonical)
    keys = keys[:3]
    if not keys:
        keys = list(ctx.default_source_keys[:3])
    return keys


def normalize_slide(raw: Any, section: Optional[DraftSection], ctx: NormalizeContext) -> Slide:
    """Map one loosely-shaped slide onto the contract, filling gaps from its draft section."""

    slide = spec_to_dict(raw)
    slide = dict(slide) if isinstance(slide, dict) else {}
    fallback_title = section.title if section else "Untitled Section"
    fallback_key_message = (section.key_message if section else "") or "Not provided."
    fallback_keys = _section_fallback_keys(section, ctx)

    images = normalize_images(slide, ctx.allowed_images)

    raw_bullets = to_list(slide.get("bullets"))
    if not raw_bullets and section and section.bullets:
        raw_bullets = [
            {"text": bullet["text"], "sourceKeys": bullet.get("sourceKeys") or fallback_keys, "kind": "fact"}
            for bullet in section.bullets
        ]
    bullets = [b for b in (normalize_bullet(item, fallback_keys, ctx.fact_index) for item in raw_bullets) if b]
    bullets = bullets[:DEFAULT_MAX_BULLETS]

    key_message = coerce_single_sentence(safe_string(slide.get("keyMessage"), fallback_key_message))
    key_message = key_message or fallback_key_message
    key_keys = normalize_source_keys(
        slide.get("keyMessageSourceKeys"), ctx.fact_index, fallback_keys or ctx.default_source_keys
    )

    emphasis = normalize_emphasis(slide.get("emphasis"), ctx.fact_index, key_keys)
    if not emphasis["phrases"] and key_message:
        emphasis["phrases"].append({"text": key_message, "sourceKeys": key_keys})

    slide_type = normalize_slide_type(slide.get("type"), len(bullets), len(emphasis["numbers"]))
    layout_hint = pick_layout_hint(slide, bool(images))
    plan = slide.get("imagePlan") if isinstance(slide.get("imagePlan"), dict) else {}
    constraints = slide.get("constraints") if isinstance(slide.get("constraints"), dict) else {}
    medical = bool(re.search(r"medical", ctx.style_hint or "", re.IGNORECASE))

    out: Dict[str, Any] = {
        "type": slide_type,
        "title": safe_string(slide.get("title"), fallback_title),
        "keyMessage": key_message,
        "keyMessageSourceKeys": key_keys,
        "density": pick_density(slide.get("density"), len(bullets)),
        "tone": pick_tone(slide, ctx.style_hint),
        "layoutHint": layout_hint,
        "bullets": bullets,
        "emphasis": emphasis,
        "imagePlan": {
            "mode": safe_string(plan.get("mode"), "inline" if images else "none"),
            "style": safe_string(plan.get("style"), "medical" if medical else "corporate"),
            "placement": safe_string(plan.get("placement"), "right" if images else ""),
            "overlay": safe_string(plan.get("overlay"), "dark-40" if images else "null"),
            "focalPoint": safe_string(plan.get("focalPoint"), "center"),
        },
        "icons": [
            {"name": safe_string(item.get("name")), "placement": safe_string(item.get("placement"), "card")}
            for item in to_list(slide.get("icons"))
            if isinstance(item, dict) and safe_string(item.get("name"))
        ][:6],
        "constraints": {
            "maxBulletsPerSlide": _clamp_int(constraints.get("maxBulletsPerSlide"), 3, 8, DEFAULT_MAX_BULLETS),
            "maxCharsPerBullet": _clamp_int(constraints.get("maxCharsPerBullet"), 24, 120, DEFAULT_MAX_BULLET_CHARS),
        },
        "images": images,
        "visual": {"layoutHint": layout_hint, "imageUrl": images[0] if images else None},
    }

    if slide_type in ("title", "section") and safe_string(slide.get("subtitle")):
        out["subtitle"] = safe_string(slide.get("subtitle"))
    if slide_type == "bigNumber":
        first_number = emphasis["numbers"][0]["value"] if emphasis["numbers"] else ""
        out["number"] = safe_string(str(slide.get("number") or "") or first_number, "Not provided")
        out["caption"] = safe_string(slide.get("caption"), key_message)

    return parse_slide(out)


def default_section_slides(sections: Sequence[DraftSection], ctx: NormalizeContext) -> List[Slide]:
    """Deterministic content slides built straight from the draft sections."""

    slides: List[Slide] = []
    medical = bool(re.search(r"medical", ctx.style_hint or "", re.IGNORECASE))
    for section in sections:
        has_images = bool(section.images)
        raw = {
            "type": "split-image" if has_images else "text",
            "title": section.title,
            "keyMessage": section.key_message,
            "bullets": section.bullets[:5],
            "images": section.images[:2],
            "layoutHint": "split-image" if has_images else "text",
            "density": "high" if len(section.bullets) >= 6 else "medium",
            "tone": "clinical" if medical else "business",
        }
        slides.append(normalize_slide(raw, section, ctx))
    return slides


def normalize_model_slides(raw_slides: Sequence[Any], sections: Sequence[DraftSection], ctx: NormalizeContext) -> List[Slide]:
    """One slide per section, in section order; missing model slides fall back to the draft."""

    return [
        normalize_slide(raw_slides[index] if index < len(raw_slides) else {}, section, ctx)
        for index, section in enumerate(sections)
    ]


def apply_patches(
    slides: Sequence[Slide],
    patches: Sequence[Any],
    sections: Sequence[DraftSection],
    ctx: NormalizeContext,
) -> List[Slide]:
    """Replace slides by index; out-of-range or malformed patches are ignored."""

    out = list(slides)
    for patch in patches or []:
        index = getattr(patch, "index", None) if not isinstance(patch, dict) else patch.get("index")
        if not isinstance(index, int) or isinstance(index, bool) or index < 0 or index >= len(out):
            continue
        body = getattr(patch, "slide", None) if not isinstance(patch, dict) else patch.get("slide")
        section = sections[index] if index < len(sections) else (sections[0] if sections else None)
        out[index] = normalize_slide(body or {}, section, ctx)
    return out


__all__ = [
    "DEFAULT_MAX_BULLETS",
    "DEFAULT_MAX_BULLET_CHARS",
    "NormalizeContext",
    "apply_patches",
    "coerce_single_sentence",
    "default_section_slides",
    "default_source_keys",
    "ensure_insight_prefix",
    "normalize_bullet",
    "normalize_bullet_text",
    "normalize_emphasis",
    "normalize_model_slides",
    "normalize_slide",
    "normalize_source_keys",
    "parse_style_hint",
    "resolve_source_keys",
    "pick_layout_hint",
]
