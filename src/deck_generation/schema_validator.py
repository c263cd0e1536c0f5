"""Structural and readability checks for a slide spec.

Works on the JSON shape of a SlideSpec so that malformed model output (wrong
types, unknown enum values) is reported as issues instead of raising.
"""

from __future__ import annotations

import re
from typing import Any, Dict, Iterable, List, Optional, Set

from .models import (
    ALLOWED_BULLET_KINDS,
    ALLOWED_DENSITY,
    ALLOWED_FOCAL_POINTS,
    ALLOWED_IMAGE_MODES,
    ALLOWED_IMAGE_OVERLAYS,
    ALLOWED_IMAGE_PLACEMENTS,
    ALLOWED_IMAGE_STYLES,
    ALLOWED_LAYOUT_HINTS,
    ALLOWED_SLIDE_TYPES,
    ALLOWED_TONES,
    SpecLike,
    ValidationIssue,
    ValidationResult,
    spec_to_dict,
)
from .text_utils import cjk_count, is_http_url, looks_multi_sentence, safe_string, word_count

COMMON_VERBS = frozenset(
    {
        "accelerate", "align", "build", "connect", "coordinate", "clarify", "close",
        "consolidate", "define", "demonstrate", "deliver", "design", "drive", "elevate",
        "enable", "establish", "expand", "improve", "increase", "launch", "lead",
        "maintain", "manage", "optimize", "present", "prioritize", "provide", "reduce",
        "scale", "secure", "simplify", "standardize", "strengthen", "streamline", "show",
        "summarize", "support", "use", "validate",
    }
)

BULLET_REQUIRED_TYPES = frozenset({"text", "summary", "cards", "profile", "split-image", "timeline"})
INSIGHT_PREFIX_RE = re.compile(r"^(Suggestion:|Potential implication:)", re.IGNORECASE)

MAX_BULLETS_BEFORE_SPLIT = 10
MAX_BULLET_CHARS = 280
MAX_KEY_MESSAGE_CHARS = 220
MAX_SLIDE_TEXT_CHARS = 1500


def looks_json_style_text(text: Any) -> bool:
    """Detect strings that read like raw ``key: value`` or JSON notation."""

    value = safe_string(text)
    if not value:
        return False
    if re.match(r"^[\[{]", value):
        return True
    if re.search(r'"\s*:\s*', value):
        return True
    return bool(re.search(r'\b[A-Za-z0-9_]+\s*:\s*[\[{"\d]', value))


def title_too_long(text: str) -> bool:
    if cjk_count(text) > 18:
        return True
    if word_count(text) > 16:
        return True
    return len(safe_string(text)) > 110


def bullet_too_long(text: str) -> bool:
    if cjk_count(text) > 45:
        return True
    if word_count(text) > 26:
        return True
    return len(safe_string(text)) > 200


def first_word(text: str) -> str:
    match = re.match(r"^[a-z]+", safe_string(text).lower())
    return match.group(0) if match else ""


def starts_with_likely_verb(text: str) -> bool:
    word = first_word(text)
    if not word:
        return False
    if word in COMMON_VERBS:
        return True
    return word.endswith(("ize", "ise", "ate", "fy"))


def has_parallel_structure(lines: Iterable[str]) -> bool:
    starters = [w for w in (first_word(line) for line in lines) if w][:6]
    if len(starters) < 3:
        return True
    return len(set(starters)) <= min(3, len(starters))


def _bullet_items(slide: Dict[str, Any]) -> List[Dict[str, Any]]:
    bullets = slide.get("bullets")
    if not isinstance(bullets, list):
        return []
    items = []
    for item in bullets:
        if isinstance(item, str):
            items.append({"text": safe_string(item), "sourceKeys": [], "kind": "fact"})
        elif isinstance(item, dict):
            keys = item.get("sourceKeys") if isinstance(item.get("sourceKeys"), list) else []
            items.append(
                {
                    "text": safe_string(item.get("text")),
                    "sourceKeys": [safe_string(k) for k in keys if safe_string(k)],
                    "kind": item.get("kind") if item.get("kind") in ALLOWED_BULLET_KINDS else "fact",
                }
            )
        else:
            items.append({"text": "", "sourceKeys": [], "kind": "fact"})
    return items


def slide_text(slide: Dict[str, Any]) -> str:
    parts = [
        safe_string(slide.get(name))
        for name in ("title", "keyMessage", "subtitle", "caption", "number")
        if safe_string(slide.get(name))
    ]
    parts.extend(item["text"] for item in _bullet_items(slide) if item["text"])
    return " ".join(parts)


class _SlideChecker:
    """Collects issues for one slide."""

    def __init__(self, index: int, issues: List[ValidationIssue]):
        self.index = index
        self.issues = issues

    def add(self, code: str, message: str, path: Optional[str] = None) -> None:
        self.issues.append(ValidationIssue(self.index, code, message, path))


def _check_images(
    check: _SlideChecker,
    urls: Any,
    allowed: Optional[Set[str]],
    max_images: int,
) -> None:
    if not isinstance(urls, list):
        check.add("IMAGE_URL_INVALID", "images must be an array of URL strings.")
        return
    if len(urls) > max_images:
        check.add("IMAGE_COUNT_EXCEEDED", f"images length must be <= {max_images}.")
    for image_index, url in enumerate(urls):
        normalized = safe_string(url)
        if not is_http_url(normalized):
            check.add("IMAGE_URL_INVALID", f"images[{image_index}] must be valid http/https URL.")
            continue
        if allowed is not None and normalized not in allowed:
            check.add("IMAGE_NOT_FROM_SOURCE", f"images[{image_index}] is not in source image URL set.")


def _check_image_plan(check: _SlideChecker, plan: Any) -> None:
    if plan is None:
        return
    if not isinstance(plan, dict):
        check.add("IMAGE_PLAN_INVALID", "imagePlan must be object when provided.")
        return
    enumerations = (
        ("mode", ALLOWED_IMAGE_MODES),
        ("style", ALLOWED_IMAGE_STYLES),
        ("placement", ALLOWED_IMAGE_PLACEMENTS),
        ("focalPoint", ALLOWED_FOCAL_POINTS),
    )
    for name, allowed in enumerations:
        value = plan.get(name)
        if value and value not in allowed:
            check.add("IMAGE_PLAN_INVALID", f"imagePlan.{name} must be one of: {', '.join(allowed)}")
    if "overlay" in plan and plan["overlay"] not in ALLOWED_IMAGE_OVERLAYS:
        options = ", ".join(str(v) for v in ALLOWED_IMAGE_OVERLAYS)
        check.add("IMAGE_PLAN_INVALID", f"imagePlan.overlay must be one of: {options}")


def _check_emphasis(check: _SlideChecker, emphasis: Any, strict: bool) -> None:
    if not emphasis:
        return
    if not isinstance(emphasis, dict):
        check.add("EMPHASIS_INVALID", "emphasis must be an object when provided.")
        return
    if emphasis.get("phrases") and not isinstance(emphasis.get("phrases"), list):
        check.add("EMPHASIS_INVALID", "emphasis.phrases must be an array.")
    numbers = emphasis.get("numbers")
    if numbers and not isinstance(numbers, list):
        check.add("EMPHASIS_INVALID", "emphasis.numbers must be an array.")
        return
    for number_index, item in enumerate(numbers or []):
        if not isinstance(item, dict):
            check.add("EMPHASIS_INVALID", f"emphasis.numbers[{number_index}] must be object.")
            continue
        if not safe_string(item.get("value")) or not safe_string(item.get("label")):
            check.add("EMPHASIS_INVALID", f"emphasis.numbers[{number_index}] requires value and label.")
        keys = item.get("sourceKeys") if isinstance(item.get("sourceKeys"), list) else []
        if strict and not [k for k in keys if safe_string(k)]:
            check.add(
                "MISSING_SOURCE_KEYS",
                f"emphasis.numbers[{number_index}] must include sourceKeys in strict mode.",
            )


def _check_bullets(
    check: _SlideChecker,
    slide: Dict[str, Any],
    *,
    strict: bool,
    enforce_ppt_copy_rules: bool,
    min_bullets: int,
) -> None:
    slide_type = slide.get("type")
    if slide_type not in BULLET_REQUIRED_TYPES:
        return

    bullets = _bullet_items(slide)
    if not bullets:
        check.add("MISSING_BULLETS", "bullets must be non-empty array.")
        return
    if len(bullets) < min_bullets:
        check.add("CONTENT_TOO_THIN", f"bullets should be >= {min_bullets}.")
    if len(bullets) > MAX_BULLETS_BEFORE_SPLIT:
        check.add("TOO_MANY_BULLETS", "bullets should be <= 10 before renderer splitting.")

    verb_leads = 0
    for bullet_index, bullet in enumerate(bullets):
        text = bullet["text"]
        if not text:
            check.add("EMPTY_BULLET", f"bullet[{bullet_index}] text is required.")
            continue
        if strict and not bullet["sourceKeys"]:
            check.add("MISSING_SOURCE_KEYS", f"bullet[{bullet_index}] requires sourceKeys in strict mode.")
        if bullet["kind"] == "insight" and not INSIGHT_PREFIX_RE.match(text):
            check.add(
                "INSIGHT_PREFIX_REQUIRED",
                f"bullet[{bullet_index}] with kind=insight must start with Suggestion: or Potential implication:.",
            )
        if len(text) > MAX_BULLET_CHARS:
            check.add("BULLET_TOO_LONG", f"bullet[{bullet_index}] exceeds {MAX_BULLET_CHARS} chars.")
        if enforce_ppt_copy_rules and bullet_too_long(text):
            check.add("BULLET_PPT_TOO_LONG", f"bullet[{bullet_index}] is too long for PPT readability.")
        if looks_json_style_text(text):
            check.add("RAW_JSON_STYLE_TEXT", f"bullet[{bullet_index}] looks like raw JSON/key-value text.")
        if starts_with_likely_verb(text):
            verb_leads += 1

    if enforce_ppt_copy_rules:
        min_verb_lead = max(1, len(bullets) // 2)
        if verb_leads < min_verb_lead:
            check.add("BULLET_NOT_VERB_LEAD", f"At least {min_verb_lead} bullets should start with an action verb.")
        if not has_parallel_structure(b["text"] for b in bullets):
            check.add("BULLET_NOT_PARALLEL", "Bullets should keep parallel structure.")


def validate_slide_spec(
    spec: SpecLike,
    *,
    allowed_image_urls: Optional[Iterable[str]] = None,
    enforce_ppt_copy_rules: bool = True,
    max_images_per_slide: int = 2,
    strict: bool = True,
    min_bullets_per_page: int = 2,
) -> ValidationResult:
    """Check shape, enumerations, single-sentence key messages and copy rules.

    ``allowed_image_urls`` of ``None`` disables the image allow-list check.
    """

    data = spec_to_dict(spec)
    if not isinstance(data, dict):
        return ValidationResult(False, [ValidationIssue(-1, "INVALID_ROOT", "slideSpec must be an object.")])
    slides = data.get("slides")
    if not isinstance(slides, list) or not slides:
        return ValidationResult(False, [ValidationIssue(-1, "NO_SLIDES", "slideSpec.slides must be non-empty.")])

    min_bullets = max(1, int(min_bullets_per_page or 2))
    max_images = max(1, min(3, int(max_images_per_slide or 2)))
    allowed: Optional[Set[str]] = None
    if allowed_image_urls is not None:
        allowed = {safe_string(u) for u in allowed_image_urls if safe_string(u)}

    issues: List[ValidationIssue] = []
    for index, slide in enumerate(slides):
        check = _SlideChecker(index, issues)
        if not isinstance(slide, dict):
            check.add("INVALID_SLIDE", "Slide must be object.")
            continue

        if slide.get("type") not in ALLOWED_SLIDE_TYPES:
            check.add("INVALID_TYPE", f"slide.type must be one of: {', '.join(ALLOWED_SLIDE_TYPES)}")
        title = safe_string(slide.get("title"))
        key_message = safe_string(slide.get("keyMessage"))
        if not title:
            check.add("MISSING_TITLE", "title is required.")
        if not key_message:
            check.add("MISSING_KEY_MESSAGE", "keyMessage is required.")
        if title_too_long(title):
            check.add("TITLE_PPT_TOO_LONG", "title is too long for PPT readability.")
        if len(key_message) > MAX_KEY_MESSAGE_CHARS:
            check.add("KEY_MESSAGE_TOO_LONG", f"keyMessage exceeds {MAX_KEY_MESSAGE_CHARS} chars.")
        if looks_multi_sentence(key_message):
            check.add("MULTIPLE_KEY_MESSAGE", "keyMessage should stay a single sentence.")

        key_sources = slide.get("keyMessageSourceKeys")
        key_sources = [k for k in key_sources if safe_string(k)] if isinstance(key_sources, list) else []
        if strict and not key_sources:
            check.add("KEY_MESSAGE_SOURCE_MISSING", "keyMessageSourceKeys is required in strict mode.")

        if slide.get("density") and slide.get("density") not in ALLOWED_DENSITY:
            check.add("DENSITY_INVALID", f"density must be one of: {', '.join(ALLOWED_DENSITY)}")
        if slide.get("tone") and slide.get("tone") not in ALLOWED_TONES:
            check.add("TONE_INVALID", f"tone must be one of: {', '.join(ALLOWED_TONES)}")
        if slide.get("layoutHint") and slide.get("layoutHint") not in ALLOWED_LAYOUT_HINTS:
            check.add("LAYOUT_HINT_INVALID", f"layoutHint must be one of: {', '.join(ALLOWED_LAYOUT_HINTS)}")

        visual = slide.get("visual")
        if visual is not None and not isinstance(visual, dict):
            check.add("VISUAL_INVALID", "visual must be object when provided.")
            visual = None
        visual = visual or {}
        visual_hint = safe_string(visual.get("layoutHint"))
        if visual_hint and visual_hint not in ALLOWED_LAYOUT_HINTS:
            check.add(
                "LAYOUT_HINT_INVALID",
                f"visual.layoutHint must be one of: {', '.join(ALLOWED_LAYOUT_HINTS)}",
            )
        visual_image = safe_string(visual.get("imageUrl"))
        if visual_image:
            if not is_http_url(visual_image):
                check.add("IMAGE_URL_INVALID", "visual.imageUrl must be valid http/https URL.")
            elif allowed is not None and visual_image not in allowed:
                check.add("IMAGE_NOT_FROM_SOURCE", "visual.imageUrl is not from source image URL set.")

        if "images" in slide:
            _check_images(check, slide.get("images"), allowed, max_images)
        _check_image_plan(check, slide.get("imagePlan"))
        _check_emphasis(check, slide.get("emphasis"), strict)
        _check_bullets(
            check,
            slide,
            strict=strict,
            enforce_ppt_copy_rules=enforce_ppt_copy_rules,
            min_bullets=min_bullets,
        )

        if slide.get("type") == "bigNumber":
            if not safe_string(slide.get("number")):
                check.add("MISSING_NUMBER", "bigNumber requires number.")
            if not safe_string(slide.get("caption")):
                check.add("MISSING_CAPTION", "bigNumber requires caption.")

        all_text = slide_text(slide)
        if len(all_text) > MAX_SLIDE_TEXT_CHARS:
            check.add("SLIDE_TEXT_OVERLOAD", "Slide total text exceeds readability threshold.")
        if looks_json_style_text(all_text):
            check.add("RAW_JSON_STYLE_TEXT", "Slide text resembles raw JSON notation.")

    return ValidationResult.from_issues(issues)


__all__ = [
    "COMMON_VERBS",
    "has_parallel_structure",
    "looks_json_style_text",
    "starts_with_likely_verb",
    "validate_slide_spec",
]
