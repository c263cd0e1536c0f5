"""Composition of the schema, fact and numeric validators."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from .fact_index import FactIndex
from .fact_validator import validate_facts
from .models import SpecLike, ValidationIssue, ValidationResult
from .numeric_guard import guard_numbers
from .schema_validator import validate_slide_spec


def merge_results(*results: ValidationResult) -> ValidationResult:
    issues: List[ValidationIssue] = []
    for result in results:
        if result is not None:
            issues.extend(result.issues)
    return ValidationResult.from_issues(issues)


@dataclass
class ValidationReport:
    """Per-validator results plus their merge."""

    schema: ValidationResult
    facts: ValidationResult
    numbers: ValidationResult
    merged: ValidationResult = field(init=False)

    def __post_init__(self) -> None:
        self.merged = merge_results(self.schema, self.facts, self.numbers)

    @property
    def ok(self) -> bool:
        return self.merged.ok

    def to_dict(self, limit: int = 30) -> Dict[str, Any]:
        def part(result: ValidationResult) -> Dict[str, Any]:
            return {"ok": result.ok, "issues": [issue.to_dict() for issue in result.issues[:limit]]}

        return {"schema": part(self.schema), "facts": part(self.facts), "numbers": part(self.numbers)}


def validate_all(
    spec: SpecLike,
    fact_index: FactIndex,
    source_numbers: Iterable[str],
    *,
    allowed_image_urls: Optional[Iterable[str]] = None,
    enforce_ppt_copy_rules: bool = True,
    max_images_per_slide: int = 2,
    min_bullets_per_page: int = 1,
) -> ValidationReport:
    """Run all three validators; the numeric guard is skipped without source numbers."""

    numbers = list(source_numbers or [])
    schema = validate_slide_spec(
        spec,
        allowed_image_urls=allowed_image_urls,
        enforce_ppt_copy_rules=enforce_ppt_copy_rules,
        max_images_per_slide=max_images_per_slide,
        min_bullets_per_page=min_bullets_per_page,
    )
    facts = validate_facts(spec, fact_index, strict=True)
    guard = guard_numbers(spec, numbers) if numbers else ValidationResult(True, [])
    return ValidationReport(schema=schema, facts=facts, numbers=guard)


__all__ = ["ValidationReport", "merge_results", "validate_all"]
