"""Source-traceability checks.

Every ``sourceKeys`` entry must resolve in the :class:`FactIndex`, and every
meaningful numeric token (three or more digits, or a percentage) in a key
message, bullet or emphasized number must appear in the text of one of the
facts that element cites.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Sequence

from .fact_index import FactIndex, normalize_path
from .models import INSIGHT_PREFIXES, SpecLike, ValidationIssue, ValidationResult, spec_to_dict
from .text_utils import meaningful_numeric_tokens, safe_string

logger = logging.getLogger(__name__)

INSIGHT_PREFIX_RE = re.compile(r"^(%s)" % "|".join(re.escape(p) for p in INSIGHT_PREFIXES), re.IGNORECASE)


def normalize_source_keys(keys: Any) -> List[str]:
    if not isinstance(keys, list):
        return []
    return [path for path in (normalize_path(k) for k in keys if isinstance(k, str)) if path]


def numbers_backed_by_source(text: str, source_keys: Sequence[str], fact_index: FactIndex) -> bool:
    tokens = meaningful_numeric_tokens(text)
    if not tokens:
        return True
    if not source_keys:
        return False
    backing = fact_index.text_for(source_keys).replace(",", "")
    return all(token in backing for token in tokens)


def _bullets(slide: Dict[str, Any]) -> List[Dict[str, Any]]:
    out = []
    for item in slide.get("bullets") or []:
        if isinstance(item, str):
            out.append({"text": safe_string(item), "kind": "fact", "sourceKeys": []})
        elif isinstance(item, dict):
            kind = safe_string(item.get("kind") or "fact").lower()
            out.append(
                {
                    "text": safe_string(item.get("text")),
                    "kind": "insight" if kind == "insight" else "fact",
                    "sourceKeys": normalize_source_keys(item.get("sourceKeys")),
                }
            )
    return [item for item in out if item["text"]]


def validate_facts(
    spec: SpecLike,
    fact_index: FactIndex,
    *,
    strict: bool = True,
    enforce_insight_prefix: bool = True,
) -> ValidationResult:
    """Resolve every source reference of ``spec`` against ``fact_index``."""

    data = spec_to_dict(spec)
    slides = data.get("slides") if isinstance(data, dict) else None
    issues: List[ValidationIssue] = []

    for slide_index, slide in enumerate(slides if isinstance(slides, list) else []):
        if not isinstance(slide, dict):
            continue
        agenda_like = safe_string(slide.get("type")) == "agenda"
        key_message = safe_string(slide.get("keyMessage"))
        key_sources = normalize_source_keys(slide.get("keyMessageSourceKeys"))

        if strict and key_message and not key_sources:
            issues.append(
                ValidationIssue(slide_index, "KEY_MESSAGE_SOURCE_MISSING", "keyMessageSourceKeys is required in strict mode.")
            )
        for key in key_sources:
            if key not in fact_index:
                issues.append(
                    ValidationIssue(
                        slide_index,
                        "SOURCE_PATH_NOT_FOUND",
                        f"keyMessageSourceKeys path not found: {key}",
                        key,
                    )
                )
        if strict and not agenda_like and key_message and not numbers_backed_by_source(key_message, key_sources, fact_index):
            issues.append(
                ValidationIssue(
                    slide_index,
                    "NUMBER_NOT_IN_SOURCE",
                    "Numeric token in keyMessage is not backed by keyMessageSourceKeys values.",
                )
            )

        for bullet_index, bullet in enumerate(_bullets(slide)):
            keys = bullet["sourceKeys"]
            if strict and not keys:
                issues.append(
                    ValidationIssue(slide_index, "MISSING_SOURCE_KEYS", f"bullet[{bullet_index}] is missing sourceKeys.")
                )
            for key in keys:
                if key not in fact_index:
                    issues.append(
                        ValidationIssue(
                            slide_index,
                            "SOURCE_PATH_NOT_FOUND",
                            f"bullet[{bullet_index}] source path not found: {key}",
                            key,
                        )
                    )
            if strict and not agenda_like and not numbers_backed_by_source(bullet["text"], keys, fact_index):
                issues.append(
                    ValidationIssue(
                        slide_index,
                        "NUMBER_NOT_IN_SOURCE",
                        f"bullet[{bullet_index}] has numeric token not backed by source keys.",
                    )
                )
            if bullet["kind"] == "insight":
                if strict and not keys:
                    issues.append(
                        ValidationIssue(
                            slide_index,
                            "INSIGHT_UNSUPPORTED",
                            f"insight bullet[{bullet_index}] must include sourceKeys.",
                        )
                    )
                if enforce_insight_prefix and not INSIGHT_PREFIX_RE.match(bullet["text"]):
                    issues.append(
                        ValidationIssue(
                            slide_index,
                            "INSIGHT_PREFIX_REQUIRED",
                            f'insight bullet[{bullet_index}] must start with "Suggestion:" or "Potential implication:".',
                        )
                    )

        emphasis = slide.get("emphasis") if isinstance(slide.get("emphasis"), dict) else {}
        numbers = emphasis.get("numbers") if isinstance(emphasis.get("numbers"), list) else []
        for number_index, item in enumerate(numbers):
            if not isinstance(item, dict):
                continue
            keys = normalize_source_keys(item.get("sourceKeys"))
            if strict and not keys:
                issues.append(
                    ValidationIssue(
                        slide_index,
                        "MISSING_SOURCE_KEYS",
                        f"emphasis.numbers[{number_index}] is missing sourceKeys.",
                    )
                )
            for key in keys:
                if key not in fact_index:
                    issues.append(
                        ValidationIssue(
                            slide_index,
                            "SOURCE_PATH_NOT_FOUND",
                            f"emphasis.numbers[{number_index}] source path not found: {key}",
                            key,
                        )
                    )
            value = safe_string(item.get("value"))
            if strict and value and not numbers_backed_by_source(value, keys, fact_index):
                issues.append(
                    ValidationIssue(
                        slide_index,
                        "NUMBER_NOT_IN_SOURCE",
                        f"emphasis.numbers[{number_index}] value is not backed by source keys.",
                    )
                )

    if issues:
        logger.debug("Fact validation found %d issues", len(issues))
    return ValidationResult.from_issues(issues)


__all__ = ["normalize_source_keys", "numbers_backed_by_source", "validate_facts"]
