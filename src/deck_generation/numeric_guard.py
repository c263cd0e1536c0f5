"""Deck-wide sweep for numbers that do not occur anywhere in the source."""

from __future__ import annotations

from typing import Iterable, List

from .fact_pack import collect_numbers_from_slides
from .models import SpecLike, ValidationIssue, ValidationResult, spec_to_dict
from .text_utils import is_meaningful_number


def guard_numbers(spec: SpecLike, source_numbers: Iterable[str]) -> ValidationResult:
    """Flag every meaningful numeric token of ``spec`` missing from ``source_numbers``.

    Tokens come from the shared tokenizer with URLs stripped first, so version
    numbers or ids inside links never count as generated numbers.
    """

    data = spec_to_dict(spec)
    slides = data.get("slides") if isinstance(data, dict) else None
    allowed = {str(n).replace(",", "") for n in source_numbers or []}
    issues: List[ValidationIssue] = []

    for slide_index, slide in enumerate(slides if isinstance(slides, list) else []):
        for token in collect_numbers_from_slides([slide]):
            if not is_meaningful_number(token) or token in allowed:
                continue
            issues.append(
                ValidationIssue(
                    slide_index,
                    "NUMBER_NOT_IN_SOURCE",
                    f"Number {token} does not appear in the source data.",
                )
            )
    return ValidationResult.from_issues(issues)


__all__ = ["guard_numbers"]
