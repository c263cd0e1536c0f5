"""Prompt builders for the deck generation stages.

Each builder returns the ``[system, user]`` message pair sent to the chat
endpoint. All stages share the same hard rules: JSON only, no invented facts,
and source keys on every claim.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Sequence

HARD_RULES = """Hard rules:
1) Output must be valid JSON object only. No markdown.
2) Never invent facts, numbers, institutions, awards, dates, or clients.
3) If data is missing, write "Not provided" or omit safely.
4) Every conclusion, bullet, and numeric emphasis must include sourceKeys.
5) insight bullets must be prefixed with "Suggestion:" or "Potential implication:"."""

SLIDE_SCHEMA = (
    '{"type":"title|section|summary|agenda|cards|profile|split-image|bigNumber|timeline|quote|text",'
    '"title":"string","keyMessage":"string","keyMessageSourceKeys":["string"],'
    '"density":"low|medium|high","tone":"clinical|business|pitch|report",'
    '"layoutHint":"agenda|hero-cover|split-image|cards|profile|big-number|timeline|text|summary|quote|'
    'image-left|image-right|image-top|full-bleed-image",'
    '"bullets":[{"text":"string","sourceKeys":["string"],"kind":"fact|insight"}],'
    '"emphasis":{"numbers":[{"value":"string","label":"string","sourceKeys":["string"]}],'
    '"phrases":[{"text":"string","sourceKeys":["string"]}]},'
    '"imagePlan":{"mode":"none|bg|inline|both","style":"clean|modern|medical|corporate",'
    '"placement":"full-bleed|left|right|top","overlay":"dark-40|dark-55|light-20|null",'
    '"focalPoint":"center|top|left|right"},'
    '"icons":[{"name":"string","placement":"card|title|bullet"}],'
    '"constraints":{"maxBulletsPerSlide":6,"maxCharsPerBullet":40}}'
)

PLANNER_SCHEMA = (
    '{"sections":[{"title":"string","goal":"string","keyMessage":"string",'
    '"requiredFields":["string"],"missingFields":["string"]}],"globalMissingFields":["string"]}'
)
PATCH_SCHEMA = '{"patches":[{"index":0,"slide":slide}]}'


def as_json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, default=str)


def _messages(system_lines: Sequence[str], user_lines: Sequence[str]) -> List[Dict[str, str]]:
    system = "\n".join([*system_lines, HARD_RULES])
    return [
        {"role": "system", "content": system},
        {"role": "user", "content": "\n".join(user_lines)},
    ]


def build_planner_messages(
    *, user_prompt: str, style_hint: str, fact_index: Dict[str, str], fixed_outline: Sequence[str]
) -> List[Dict[str, str]]:
    return _messages(
        ["You are Planner for a high-accuracy PPT agent.", "You build section goals from source data only."],
        [
            "Task: generate section plan by fixed outline.",
            "Output schema:",
            PLANNER_SCHEMA,
            "",
            "Style hint:",
            style_hint or "corporate",
            "",
            "User prompt:",
            user_prompt or "",
            "",
            "Fixed outline:",
            as_json(list(fixed_outline or [])),
            "",
            "Fact index (path->value):",
            as_json(fact_index or {}),
        ],
    )


def build_storyboard_messages(
    *, user_prompt: str, style_hint: str, planner_output: Dict[str, Any], sections: Sequence[Dict[str, Any]]
) -> List[Dict[str, str]]:
    return _messages(
        ["You are Storyboard planner for PPT pages.", "You decide page sequence and initial content objects."],
        [
            "Task: generate initial slideSpec slides in section order.",
            "Each slide must follow schema:",
            SLIDE_SCHEMA,
            'Output schema: {"slides":[slide]}',
            "",
            "Write concise presentation language, not report language.",
            "",
            "Style hint:",
            style_hint or "corporate",
            "",
            "User prompt:",
            user_prompt or "",
            "",
            "Planner output:",
            as_json(planner_output or {}),
            "",
            "Section draft:",
            as_json(list(sections or [])),
        ],
    )


def build_copy_polish_messages(
    *, slide_spec: Dict[str, Any], input_json: Any, user_prompt: str, style: Optional[str] = None
) -> List[Dict[str, str]]:
    return _messages(
        ["You are CopyPolish engine for enterprise PPT.", "Rewrite wording to be presentation-ready, short, and parallel."],
        [
            "Task: polish slide copy while keeping structure and sourceKeys.",
            "Do not change slide count.",
            "Do not introduce unsupported facts.",
            'Ban phrases: "According to", "Based on data", "Highlight".',
            "Constraints:",
            "- title <= 14 English words (or <=18 Chinese chars)",
            "- keyMessage <= 18 English words (or <=24 Chinese chars)",
            "- bullets 3-5 ideal, <=6 max",
            "- each bullet <=16 English words (or <=24 Chinese chars)",
            "- insight bullets must start with Suggestion: or Potential implication:",
            "",
            "Style:",
            style or "clinical-professional",
            "",
            "User prompt:",
            user_prompt or "",
            "",
            "Input JSON:",
            as_json(input_json or {}),
            "",
            "Current slideSpec:",
            as_json(slide_spec or {}),
            "",
            'Output schema: {"slides":[slide]} where slide follows:',
            SLIDE_SCHEMA,
        ],
    )


def build_critic_messages(
    *,
    user_prompt: str,
    style_hint: str,
    slides: Sequence[Dict[str, Any]],
    issues: Sequence[Dict[str, Any]],
    fact_index: Dict[str, str],
) -> List[Dict[str, str]]:
    return _messages(
        ["You are Critic revise engine.", "Patch only invalid slides and keep valid slides unchanged."],
        [
            "Task: return minimal JSON patch set for failed slides only.",
            f"Output schema: {PATCH_SCHEMA}",
            "slide schema:",
            SLIDE_SCHEMA,
            "",
            "Style hint:",
            style_hint or "corporate",
            "",
            "User prompt:",
            user_prompt or "",
            "",
            "Current slides:",
            as_json(list(slides or [])),
            "",
            "Validation issues:",
            as_json(list(issues or [])),
            "",
            "Fact index:",
            as_json(fact_index or {}),
        ],
    )


def build_fact_repair_messages(
    *,
    user_prompt: str,
    slides: Sequence[Dict[str, Any]],
    issues: Sequence[Dict[str, Any]],
    fact_index: Dict[str, str],
    style_hint: str = "",
) -> List[Dict[str, str]]:
    return _messages(
        ["You are Fact repair engine for strict mode.", "Fix only source-traceability and factual issues."],
        [
            "Task: repair only factual/source issues.",
            "When unsupported content appears, delete it instead of inventing support.",
            "Keep slide count unchanged.",
            f"Output schema: {PATCH_SCHEMA}",
            "slide schema:",
            SLIDE_SCHEMA,
            "",
            "User prompt:",
            user_prompt or "",
            "",
            "Slides:",
            as_json(list(slides or [])),
            "",
            "Fact-related issues:",
            as_json(list(issues or [])),
            "",
            "Fact index:",
            as_json(fact_index or {}),
        ],
    )


__all__ = [
    "HARD_RULES",
    "SLIDE_SCHEMA",
    "build_copy_polish_messages",
    "build_critic_messages",
    "build_fact_repair_messages",
    "build_planner_messages",
    "build_storyboard_messages",
]
