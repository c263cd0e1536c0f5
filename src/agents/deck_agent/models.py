"""Pydantic models for the JSON returned by each generation stage."""

from __future__ import annotations

from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, Field, field_validator


class _StageResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")


def _dicts(value: Any) -> List[Dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


class PlannedSection(_StageResponse):
    title: str = ""
    goal: str = ""
    keyMessage: str = ""
    requiredFields: List[str] = Field(default_factory=list)
    missingFields: List[str] = Field(default_factory=list)

    @field_validator("title", "goal", "keyMessage", mode="before")
    @classmethod
    def _text(cls, value: Any) -> str:
        return value.strip() if isinstance(value, str) else ""

    @field_validator("requiredFields", "missingFields", mode="before")
    @classmethod
    def _strings(cls, value: Any) -> List[str]:
        if not isinstance(value, list):
            return []
        return [item.strip() for item in value if isinstance(item, str) and item.strip()]


class PlannerResponse(_StageResponse):
    """Planner output: one goal per outline section."""

    sections: List[PlannedSection] = Field(default_factory=list)
    globalMissingFields: List[str] = Field(default_factory=list)

    @field_validator("sections", mode="before")
    @classmethod
    def _coerce_sections(cls, value: Any) -> List[Dict[str, Any]]:
        return _dicts(value)

    @field_validator("globalMissingFields", mode="before")
    @classmethod
    def _coerce_missing(cls, value: Any) -> List[str]:
        if not isinstance(value, list):
            return []
        return [item for item in value if isinstance(item, str)]


class SlidesResponse(_StageResponse):
    """Storyboard and copy-polish output. Slides stay raw until normalized."""

    slides: List[Dict[str, Any]] = Field(default_factory=list)

    @field_validator("slides", mode="before")
    @classmethod
    def _coerce_slides(cls, value: Any) -> List[Dict[str, Any]]:
        return _dicts(value)


class SlidePatch(_StageResponse):
    index: int = -1
    slide: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("index", mode="before")
    @classmethod
    def _coerce_index(cls, value: Any) -> int:
        if isinstance(value, bool) or not isinstance(value, int):
            return -1
        return value

    @field_validator("slide", mode="before")
    @classmethod
    def _coerce_slide(cls, value: Any) -> Dict[str, Any]:
        return value if isinstance(value, dict) else {}


class PatchResponse(_StageResponse):
    """Critic and fact-repair output: replacement slides keyed by index."""

    patches: List[SlidePatch] = Field(default_factory=list)

    @field_validator("patches", mode="before")
    @classmethod
    def _coerce_patches(cls, value: Any) -> List[Dict[str, Any]]:
        return _dicts(value)


__all__ = ["PatchResponse", "PlannedSection", "PlannerResponse", "SlidePatch", "SlidesResponse"]
