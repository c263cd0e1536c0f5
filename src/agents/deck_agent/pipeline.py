"""Five-stage deck generation pipeline.

The deterministic fact pack is always built first and is the fallback for
every model-backed stage: Planner -> Storyboard -> Copy-Polish -> Icon
Assignment -> Critic/Fact-Repair. Each stage is entered only while the time
budget allows it; a failed or skipped stage keeps the previous content and is
recorded as ``fallback_used`` / ``not_attempted``. Only a deck that still fails
validation after the safety reduction pass raises.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence

from pydantic import ValidationError

from src.deck_generation.fact_index import FactIndex, build_fact_index
from src.deck_generation.fact_pack import DraftSection, FactPack, build_fact_pack
from src.deck_generation.icons import pick_icons
from src.deck_generation.models import Bullet, Slide, SlideSpec, ValidationIssue, parse_slide
from src.deck_generation.text_utils import safe_string
from src.deck_generation.validation import ValidationReport, validate_all

from .budget import TimeBudget
from .copy_polish import DEFAULT_STYLE, polish_slides
from .llm_client import LLMError, chat_json
from .models import PatchResponse, PlannerResponse, SlidesResponse
from .normalize import (
    DEFAULT_MAX_BULLETS,
    NormalizeContext,
    apply_patches,
    coerce_single_sentence,
    default_section_slides,
    normalize_bullet,
    normalize_model_slides,
    parse_style_hint,
    resolve_source_keys,
)
from .prompts import (
    build_critic_messages,
    build_fact_repair_messages,
    build_planner_messages,
    build_storyboard_messages,
)

logger = logging.getLogger(__name__)

ChatFn = Callable[..., Dict[str, Any]]
ProgressFn = Callable[[int, str], None]

MAX_CRITIC_ROUNDS = 2
MAX_CRITIC_ISSUES = 24
AGENDA_PAGE_SIZE = 8
PROMPT_FACT_LIMIT = 180
AUTO_REDUCED_NOTE = "auto-reduced to fit constraints"
FACT_RELATED_CODES = frozenset(
    {
        "KEY_MESSAGE_SOURCE_MISSING",
        "MISSING_SOURCE_KEYS",
        "SOURCE_PATH_NOT_FOUND",
        "NUMBER_NOT_IN_SOURCE",
        "INSIGHT_PREFIX_REQUIRED",
        "INSIGHT_UNSUPPORTED",
    }
)

_STAGE_ERRORS = (LLMError, ValidationError)


class StageState(str, Enum):
    NOT_ATTEMPTED = "not_attempted"
    SUCCEEDED = "succeeded"
    FALLBACK_USED = "fallback_used"


class SlideSpecValidationError(RuntimeError):
    """The deck still fails validation after repair and safety reduction."""

    def __init__(self, message: str, issues: Optional[List[ValidationIssue]] = None):
        super().__init__(message)
        self.issues = list(issues or [])


@dataclass
class AgentResult:
    slide_spec: SlideSpec
    sections_plan: List[Dict[str, Any]]
    validation_report: Dict[str, Any]
    stages: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sectionsPlan": self.sections_plan,
            "validationReport": self.validation_report,
            "slideSpec": self.slide_spec.model_dump(mode="json"),
            "stages": dict(self.stages),
        }


def get_agent_budget_ms() -> int:
    return int(os.environ.get("AGENT_BUDGET_MS", "26000"))


def top_issue_codes(issues: Sequence[ValidationIssue], limit: int = 8) -> str:
    return ", ".join(f"{issue.code}@{issue.slide_index}" for issue in list(issues)[:limit])


def needs_fact_repair(issues: Sequence[ValidationIssue]) -> bool:
    return any(issue.code in FACT_RELATED_CODES for issue in issues)


def _compact_json(value: Any, max_chars: int = 24000) -> str:
    text = json.dumps(value, ensure_ascii=False, default=str)
    return text if len(text) <= max_chars else f"{text[:max_chars]}..."


def _dump(slides: Sequence[Slide]) -> List[Dict[str, Any]]:
    return [slide.model_dump(mode="json") for slide in slides]


def _with_icons(slides: Sequence[Slide]) -> List[Slide]:
    return [parse_slide(item) for item in pick_icons(slides)]


# ---------------------------------------------------------------------------
# Planner sections


def default_planner_sections(pack: FactPack, fact_index: FactIndex) -> List[Dict[str, Any]]:
    sections = []
    for section in pack.sections:
        required = [fact_index.canonical(fact.get("sourcePath")) for fact in section.section_facts]
        sections.append(
            {
                "title": section.title,
                "goal": section.key_message,
                "keyMessage": section.key_message,
                "requiredFields": [path for path in required if path],
                "missingFields": [],
            }
        )
    return sections


def merge_planner_sections(response: PlannerResponse, pack: FactPack, fact_index: FactIndex) -> List[Dict[str, Any]]:
    """Overlay planner goals onto the drafted sections, matched by title (case-insensitive)."""

    if not response.sections:
        return default_planner_sections(pack, fact_index)
    by_title = {item.title.lower(): item for item in response.sections if item.title}

    merged = []
    for section in pack.sections:
        matched = by_title.get(section.title.lower())
        required = [fact_index.canonical(path) for path in (matched.requiredFields if matched else [])]
        merged.append(
            {
                "title": section.title,
                "goal": (matched.goal if matched else "") or section.key_message,
                "keyMessage": coerce_single_sentence((matched.keyMessage if matched else "") or section.key_message),
                "requiredFields": [path for path in required if path],
                "missingFields": list(matched.missingFields) if matched else [],
            }
        )
    return merged


# ---------------------------------------------------------------------------
# Speaker notes, safety reduction and framing slides


def compose_speaker_notes(slide: Slide, show_source: bool, auto_reduced: bool) -> str:
    lines: List[str] = []
    if show_source:
        keys: List[str] = []
        candidates = list(slide.keyMessageSourceKeys)
        for bullet in slide.bullets:
            candidates.extend(bullet.sourceKeys)
        for number in slide.emphasis.numbers:
            candidates.extend(number.sourceKeys)
        for key in candidates:
            if key and key not in keys:
                keys.append(key)
        if keys:
            lines.append(f"Data source: {', '.join(keys)}")
    if auto_reduced:
        lines.append(AUTO_REDUCED_NOTE)
    return "\n".join(lines)


def reduce_slides_for_safety(slides: Sequence[Slide], ctx: NormalizeContext, show_source: bool) -> List[Slide]:
    """Drop every bullet and emphasis number that cannot be tied to a source path."""

    reduced: List[Slide] = []
    for slide in slides:
        key_keys = resolve_source_keys(slide.keyMessageSourceKeys, ctx.fact_index) or list(ctx.default_source_keys)
        bullets = []
        for bullet in slide.bullets:
            keys = resolve_source_keys(bullet.sourceKeys, ctx.fact_index)
            if not keys:
                continue
            normalized = normalize_bullet(dict(bullet.model_dump(mode="json"), sourceKeys=keys), key_keys, ctx.fact_index)
            if normalized:
                bullets.append(normalized)
        numbers = [
            number.model_copy(update={"sourceKeys": resolve_source_keys(number.sourceKeys, ctx.fact_index)})
            for number in slide.emphasis.numbers
            if resolve_source_keys(number.sourceKeys, ctx.fact_index)
        ]
        safe = slide.model_copy(
            update={
                "keyMessageSourceKeys": key_keys,
                "emphasis": slide.emphasis.model_copy(update={"numbers": numbers}),
                "keyMessage": coerce_single_sentence(safe_string(slide.keyMessage, "Not provided.")),
                "bullets": [Bullet.model_validate(b) for b in bullets[:DEFAULT_MAX_BULLETS]],
            }
        )
        reduced.append(safe.model_copy(update={"speakerNotes": compose_speaker_notes(safe, show_source, True)}))
    return reduced


def build_cover_slide(pack: FactPack, style_hint: str, default_keys: Sequence[str]) -> Slide:
    has_image = bool(pack.cover_images)
    medical = "medical" in (style_hint or "").lower()
    return parse_slide(
        {
            "type": "title",
            "title": safe_string(pack.presentation_title, "Business Presentation"),
            "subtitle": "Generated from source-backed records",
            "keyMessage": "Use validated facts to support strategic decision-making.",
            "keyMessageSourceKeys": list(default_keys),
            "density": "low",
            "tone": "clinical" if medical else "business",
            "layoutHint": "hero-cover" if has_image else "text",
            "imagePlan": {
                "mode": "bg" if has_image else "none",
                "style": "medical" if medical else "corporate",
                "placement": "full-bleed" if has_image else "",
                "overlay": "dark-55" if has_image else "null",
                "focalPoint": "center",
            },
            "images": pack.cover_images[:1] if has_image else [],
            "icons": [{"name": "presentation", "placement": "title"}],
            "constraints": {"maxBulletsPerSlide": 4, "maxCharsPerBullet": 50},
        }
    )


def build_agenda_slides(content: Sequence[Slide], default_keys: Sequence[str]) -> List[Slide]:
    """Numbered table of contents, paginated at eight entries."""

    entries = [
        {
            "text": f"{index}. {safe_string(slide.title, 'Untitled')}",
            "sourceKeys": list(slide.keyMessageSourceKeys) or list(default_keys),
            "kind": "fact",
        }
        for index, slide in enumerate(content, start=1)
    ]
    chunks = [entries[i : i + AGENDA_PAGE_SIZE] for i in range(0, len(entries), AGENDA_PAGE_SIZE)] or [[]]

    return [
        parse_slide(
            {
                "type": "agenda",
                "title": "Agenda" if page == 0 else "Agenda (cont.)",
                "keyMessage": "Navigate the storyline from baseline facts to execution priorities.",
                "keyMessageSourceKeys": list(default_keys),
                "density": "high" if len(chunk) > 6 else "medium",
                "tone": "business",
                "layoutHint": "agenda",
                "bullets": chunk,
                "imagePlan": {"mode": "none", "style": "corporate", "placement": "", "overlay": "null", "focalPoint": "center"},
                "images": [],
                "icons": [{"name": "layout-grid", "placement": "title"}],
                "constraints": {"maxBulletsPerSlide": 8, "maxCharsPerBullet": 60},
            }
        )
        for page, chunk in enumerate(chunks)
    ]


# ---------------------------------------------------------------------------
# Pipeline


class _Run:
    """State for one pipeline run."""

    def __init__(
        self,
        prompt: str,
        input_json: Any,
        chat: ChatFn,
        budget: TimeBudget,
        on_progress: Optional[ProgressFn],
        show_source_in_notes: bool,
        polish_style: str,
    ):
        self.prompt = prompt or ""
        self.input_json = input_json
        self.chat = chat
        self.budget = budget
        self.on_progress = on_progress
        self.show_source = show_source_in_notes
        self.polish_style = polish_style
        self.style_hint = parse_style_hint(self.prompt)
        self.stages: Dict[str, str] = {
            name: StageState.NOT_ATTEMPTED.value
            for name in ("planner", "storyboard", "copy_polish", "icons", "critic")
        }

    def progress(self, value: int, stage: str) -> None:
        logger.debug("Pipeline progress %d (%s)", value, stage)
        if self.on_progress is not None:
            self.on_progress(value, stage)

    def mark(self, stage: str, state: StageState) -> None:
        self.stages[stage] = state.value

    def validate(self, slides: Sequence[Slide], *, copy_rules: bool) -> ValidationReport:
        spec = SlideSpec(presentationTitle=self.pack.presentation_title, slides=list(slides))
        return validate_all(
            spec,
            self.fact_index,
            self.pack.source_numbers,
            allowed_image_urls=self.pack.allowed_image_urls,
            enforce_ppt_copy_rules=copy_rules,
            max_images_per_slide=2,
            min_bullets_per_page=1,
        )

    def prepare(self) -> None:
        self.progress(8, "fact-pack")
        self.pack = build_fact_pack(self.input_json, self.prompt, max_images_per_slide=2, skip_missing_sections=True)
        self.fact_index = build_fact_index(self.input_json)
        self.prompt_facts = self.fact_index.compact_entries(PROMPT_FACT_LIMIT, 180)
        self.ctx = NormalizeContext.from_pack(self.pack, self.fact_index, self.style_hint)
        self.sections: List[DraftSection] = list(self.pack.sections)
        self.prompt_sections = [section.to_prompt_dict() for section in self.sections]

    def run_planner(self) -> List[Dict[str, Any]]:
        planned = default_planner_sections(self.pack, self.fact_index)
        self.progress(18, "planner")
        if not self.budget.can_spend(4500, 4500):
            return planned
        timeout_ms = self.budget.stage_timeout_ms(5500, 2500, 3500)
        if timeout_ms <= 0:
            return planned
        try:
            raw = self.chat(
                build_planner_messages(
                    user_prompt=self.prompt,
                    style_hint=self.style_hint,
                    fact_index=self.prompt_facts,
                    fixed_outline=self.pack.fixed_outline,
                ),
                temperature=0.05,
                timeout_s=timeout_ms / 1000.0,
            )
            planned = merge_planner_sections(PlannerResponse.model_validate(raw or {}), self.pack, self.fact_index)
            self.mark("planner", StageState.SUCCEEDED)
        except _STAGE_ERRORS as exc:
            logger.warning("Stage planner fell back to the draft outline: %s", exc)
            self.mark("planner", StageState.FALLBACK_USED)
        return planned

    def run_storyboard(self, planned: List[Dict[str, Any]]) -> List[Slide]:
        slides = default_section_slides(self.sections, self.ctx)
        self.progress(30, "storyboard")
        if not self.budget.can_spend(5000, 3500):
            return slides
        timeout_ms = self.budget.stage_timeout_ms(6000, 2500, 2500)
        if timeout_ms <= 0:
            return slides
        try:
            raw = self.chat(
                build_storyboard_messages(
                    user_prompt=self.prompt,
                    style_hint=self.style_hint,
                    planner_output={"sections": planned},
                    sections=self.prompt_sections,
                ),
                temperature=0.1,
                timeout_s=timeout_ms / 1000.0,
            )
            raw_slides = SlidesResponse.model_validate(raw or {}).slides
            normalized = normalize_model_slides(raw_slides, self.sections, self.ctx) if raw_slides else []
        except _STAGE_ERRORS as exc:
            logger.warning("Stage storyboard fell back to draft slides: %s", exc)
            self.mark("storyboard", StageState.FALLBACK_USED)
            return slides
        if not normalized:
            logger.warning("Stage storyboard returned no slides; keeping draft slides")
            self.mark("storyboard", StageState.FALLBACK_USED)
            return slides
        self.mark("storyboard", StageState.SUCCEEDED)
        return normalized

    def run_copy_polish(self, slides: List[Slide]) -> List[Slide]:
        self.copy_polish_meta: Dict[str, Any] = {"ok": True, "retried": False, "attempts": 0, "error": ""}
        self.progress(42, "copy-polish")
        if not self.budget.can_spend(7000, 3000):
            return slides
        timeout_ms = self.budget.stage_timeout_ms(4500, 2000, 2000)
        if timeout_ms <= 0:
            return slides
        result = polish_slides(
            _dump(slides),
            input_json={"facts": self.prompt_facts, "fixedOutline": list(self.pack.fixed_outline)},
            user_prompt=self.prompt,
            style=self.polish_style,
            timeout_ms=timeout_ms,
            chat=self.chat,
        )
        self.copy_polish_meta = result.meta()
        if result.ok and result.slides:
            try:
                polished = normalize_model_slides(result.slides, self.sections, self.ctx)
            except _STAGE_ERRORS as exc:
                logger.warning("Stage copy_polish output could not be normalized: %s", exc)
            else:
                self.mark("copy_polish", StageState.SUCCEEDED)
                return polished
        logger.warning("Stage copy_polish kept pre-polish slides: %s", result.error)
        self.mark("copy_polish", StageState.FALLBACK_USED)
        return slides

    def run_critic(self, slides: List[Slide]) -> List[Slide]:
        self.progress(58, "critic")
        report = self.validate(slides, copy_rules=True)

        for round_index in range(MAX_CRITIC_ROUNDS):
            issues = report.merged.issues
            if not issues or not self.budget.can_spend(3200, 2500):
                break
            timeout_ms = self.budget.stage_timeout_ms(3800, 1800, 2000)
            if timeout_ms <= 0:
                break

            builder = build_fact_repair_messages if needs_fact_repair(issues) else build_critic_messages
            try:
                raw = self.chat(
                    builder(
                        user_prompt=self.prompt,
                        style_hint=self.style_hint,
                        slides=_dump(slides),
                        issues=[issue.to_dict() for issue in issues[:MAX_CRITIC_ISSUES]],
                        fact_index=self.prompt_facts,
                    ),
                    temperature=0.05,
                    timeout_s=timeout_ms / 1000.0,
                )
                patches = PatchResponse.model_validate(raw or {}).patches
                patched = _with_icons(apply_patches(slides, patches, self.sections, self.ctx))
            except _STAGE_ERRORS as exc:
                logger.warning("Stage critic round %d failed: %s", round_index + 1, exc)
                self.mark("critic", StageState.FALLBACK_USED)
                break

            slides = patched
            report = self.validate(slides, copy_rules=True)
            self.mark("critic", StageState.SUCCEEDED)
            logger.info("Critic round %d applied %d patches; %d issues remain", round_index + 1, len(patches), len(report.merged.issues))

        if not report.ok:
            logger.warning("Safety reduction after %d issues (%s)", len(report.merged.issues), top_issue_codes(report.merged.issues))
            slides = _with_icons(reduce_slides_for_safety(slides, self.ctx, self.show_source))
            report = self.validate(slides, copy_rules=True)

        if not report.ok:
            issues = report.merged.issues
            raise SlideSpecValidationError(
                f"slideSpec validation failed after critic: {top_issue_codes(issues)}", issues
            )
        return slides

    def finalize(self, content: List[Slide], planned: List[Dict[str, Any]]) -> AgentResult:
        keys = self.ctx.default_source_keys
        framed = [build_cover_slide(self.pack, self.style_hint, keys), *build_agenda_slides(content, keys), *content]
        full: List[Slide] = []
        for slide in framed:
            reduced = AUTO_REDUCED_NOTE in (slide.speakerNotes or "")
            slide = slide.model_copy(update={"keyMessage": coerce_single_sentence(slide.keyMessage)})
            full.append(slide.model_copy(update={"speakerNotes": compose_speaker_notes(slide, self.show_source, reduced)}))

        report = self.validate(full, copy_rules=False)
        if not report.ok:
            issues = report.merged.issues
            raise SlideSpecValidationError(f"final slideSpec validation failed: {top_issue_codes(issues)}", issues)
        self.progress(76, "render-ready")

        meta = {
            "fixedOutline": list(self.pack.fixed_outline),
            "finalOutline": [slide.title for slide in full],
            "skippedSections": list(self.pack.skipped_sections),
            "imageAssignments": [
                {
                    "title": slide.title,
                    "images": list(slide.images),
                    "layoutHint": slide.layoutHint or "text",
                    "density": slide.density or "medium",
                }
                for slide in full
            ],
            "copyPolish": self.copy_polish_meta,
            "stages": dict(self.stages),
            "prompts": {
                "planner": _compact_json(
                    build_planner_messages(
                        user_prompt=self.prompt,
                        style_hint=self.style_hint,
                        fact_index=self.prompt_facts,
                        fixed_outline=self.pack.fixed_outline,
                    )
                ),
                "storyboard": _compact_json(
                    build_storyboard_messages(
                        user_prompt=self.prompt,
                        style_hint=self.style_hint,
                        planner_output={"sections": planned},
                        sections=self.prompt_sections,
                    )
                ),
            },
        }
        spec = SlideSpec(
            presentationTitle=self.pack.presentation_title,
            styleHint=self.style_hint,
            slides=full,
            meta=meta,
        )
        return AgentResult(
            slide_spec=spec,
            sections_plan=planned,
            validation_report=report.to_dict(limit=30),
            stages=dict(self.stages),
        )


def run_deck_agent(
    prompt: str,
    input_json: Any,
    *,
    chat: Optional[ChatFn] = None,
    budget_ms: Optional[int] = None,
    on_progress: Optional[ProgressFn] = None,
    show_source_in_notes: bool = True,
    polish_style: str = DEFAULT_STYLE,
) -> AgentResult:
    """Turn ``input_json`` into a validated SlideSpec.

    ``chat`` is the JSON chat collaborator (defaults to the configured OpenAI
    compatible endpoint). Raises :class:`SlideSpecValidationError` only when the
    deck cannot be made valid.
    """

    run = _Run(
        prompt,
        input_json,
        chat or chat_json,
        TimeBudget(budget_ms if budget_ms is not None else get_agent_budget_ms()),
        on_progress,
        show_source_in_notes,
        polish_style,
    )
    run.prepare()
    planned = run.run_planner()
    slides = run.run_storyboard(planned)
    slides = run.run_copy_polish(slides)

    slides = _with_icons(slides)
    run.mark("icons", StageState.SUCCEEDED)

    slides = run.run_critic(slides)
    result = run.finalize(slides, planned)
    logger.info(
        "Deck agent produced %d slides (stages=%s, elapsed=%dms)",
        len(result.slide_spec.slides),
        result.stages,
        run.budget.elapsed_ms(),
    )
    return result


__all__ = [
    "AgentResult",
    "FACT_RELATED_CODES",
    "SlideSpecValidationError",
    "StageState",
    "build_agenda_slides",
    "build_cover_slide",
    "compose_speaker_notes",
    "merge_planner_sections",
    "reduce_slides_for_safety",
    "run_deck_agent",
]
