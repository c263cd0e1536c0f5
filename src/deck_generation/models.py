"""Data structures shared across the deck generation pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Annotated, Any, Dict, Iterable, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator, model_validator

ALLOWED_SLIDE_TYPES = (
    "title",
    "section",
    "summary",
    "agenda",
    "cards",
    "profile",
    "split-image",
    "bigNumber",
    "timeline",
    "quote",
    "text",
)

ALLOWED_LAYOUT_HINTS = (
    "agenda",
    "hero-cover",
    "split-image",
    "cards",
    "profile",
    "big-number",
    "timeline",
    "text",
    "summary",
    "quote",
    "image-left",
    "image-right",
    "image-top",
    "full-bleed-image",
)

ALLOWED_DENSITY = ("low", "medium", "high")
ALLOWED_TONES = ("clinical", "business", "pitch", "report", "consulting", "product", "education")
ALLOWED_BULLET_KINDS = ("fact", "insight")
ALLOWED_IMAGE_MODES = ("none", "bg", "inline", "both")
ALLOWED_IMAGE_STYLES = ("clean", "modern", "medical", "corporate")
ALLOWED_IMAGE_PLACEMENTS = ("full-bleed", "left", "right", "top")
ALLOWED_IMAGE_OVERLAYS = ("dark-40", "dark-55", "light-20", "null", None)
ALLOWED_FOCAL_POINTS = ("center", "top", "left", "right")

INSIGHT_PREFIXES = ("Suggestion:", "Potential implication:")


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# Fact index


@dataclass(frozen=True)
class FactNode:
    """One value addressable by its normalized source path."""

    key: str
    value: Any
    source_path: str
    text: str
    tokens: tuple[str, ...] = ()
    raw_type: str = "string"


# ---------------------------------------------------------------------------
# Slide content (mirrors the JSON contract used by the generation stages)


class _SlideModel(BaseModel):
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return {key: value for key, value in data.items() if value is not None}
        return data


def _key_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(item).strip() for item in value if isinstance(item, (str, int)) and str(item).strip()]


class _SourcedModel(_SlideModel):
    sourceKeys: List[str] = Field(default_factory=list)

    @field_validator("sourceKeys", mode="before")
    @classmethod
    def _coerce_keys(cls, value: Any) -> List[str]:
        return _key_list(value)


class Bullet(_SourcedModel):
    text: str = ""
    kind: str = "fact"


class EmphasisNumber(_SourcedModel):
    value: str = ""
    label: str = ""


class EmphasisPhrase(_SourcedModel):
    text: str = ""


class Emphasis(_SlideModel):
    phrases: List[EmphasisPhrase] = Field(default_factory=list)
    numbers: List[EmphasisNumber] = Field(default_factory=list)

    @field_validator("phrases", mode="before")
    @classmethod
    def _coerce_phrases(cls, value: Any) -> List[Any]:
        if not isinstance(value, list):
            return []
        out: List[Any] = []
        for item in value:
            if isinstance(item, str) and item.strip():
                out.append({"text": item})
            elif isinstance(item, dict):
                out.append(item)
        return out

    @field_validator("numbers", mode="before")
    @classmethod
    def _coerce_numbers(cls, value: Any) -> List[Any]:
        if not isinstance(value, list):
            return []
        return [item for item in value if isinstance(item, dict)]


class ImagePlan(_SlideModel):
    mode: str = "none"
    imageUrl: Optional[str] = None
    style: str = "clean"
    placement: str = "right"
    overlay: Optional[str] = None
    focalPoint: str = "center"


class IconRef(_SlideModel):
    name: str
    placement: str = "card"


class SlideConstraints(_SlideModel):
    maxBulletsPerSlide: int = 6
    maxCharsPerBullet: int = 40


class Visual(_SlideModel):
    layoutHint: Optional[str] = None
    imageUrl: Optional[str] = None


class Slide(_SlideModel):
    """Fields shared by every slide archetype.

    Concrete slides are one of the ``type``-tagged subclasses below; build them
    with :func:`parse_slide` or through :class:`SlideSpec`.
    """

    type: str = "text"
    title: str = ""
    subtitle: str = ""
    keyMessage: str = ""
    keyMessageSourceKeys: List[str] = Field(default_factory=list)
    density: str = "medium"
    tone: str = "business"
    layoutHint: Optional[str] = None
    bullets: List[Bullet] = Field(default_factory=list)
    emphasis: Emphasis = Field(default_factory=Emphasis)
    imagePlan: Optional[ImagePlan] = None
    icons: List[IconRef] = Field(default_factory=list)
    images: List[str] = Field(default_factory=list)
    constraints: SlideConstraints = Field(default_factory=SlideConstraints)
    visual: Optional[Visual] = None
    number: str = ""
    caption: str = ""
    speakerNotes: str = ""

    @field_validator("bullets", mode="before")
    @classmethod
    def _coerce_bullets(cls, value: Any) -> List[Any]:
        if not isinstance(value, list):
            return []
        out: List[Any] = []
        for item in value:
            if isinstance(item, str):
                out.append({"text": item})
            elif isinstance(item, dict):
                out.append(item)
        return out

    @field_validator("keyMessageSourceKeys", mode="before")
    @classmethod
    def _coerce_key_message_keys(cls, value: Any) -> List[str]:
        return _key_list(value)

    @field_validator("icons", mode="before")
    @classmethod
    def _coerce_icons(cls, value: Any) -> List[Any]:
        if not isinstance(value, list):
            return []
        return [item for item in value if isinstance(item, dict) and item.get("name")]

    @field_validator("images", mode="before")
    @classmethod
    def _coerce_strings(cls, value: Any) -> List[str]:
        if not isinstance(value, list):
            return []
        return [item.strip() for item in value if isinstance(item, str) and item.strip()]

    def bullet_texts(self) -> List[str]:
        return [b.text.strip() for b in self.bullets if b.text and b.text.strip()]

    def source_keys(self) -> List[str]:
        seen: List[str] = []
        for bullet in self.bullets:
            for key in bullet.sourceKeys:
                if key and key not in seen:
                    seen.append(key)
        return seen


class TitleSlide(Slide):
    type: Literal["title"] = "title"


class SectionSlide(Slide):
    type: Literal["section"] = "section"


class SummarySlide(Slide):
    type: Literal["summary"] = "summary"


class AgendaSlide(Slide):
    type: Literal["agenda"] = "agenda"


class CardsSlide(Slide):
    type: Literal["cards"] = "cards"


class ProfileSlide(Slide):
    type: Literal["profile"] = "profile"


class SplitImageSlide(Slide):
    type: Literal["split-image"] = "split-image"


class BigNumberSlide(Slide):
    type: Literal["bigNumber"] = "bigNumber"
    number: str = Field(min_length=1)


class TimelineSlide(Slide):
    type: Literal["timeline"] = "timeline"


class QuoteSlide(Slide):
    type: Literal["quote"] = "quote"


class TextSlide(Slide):
    type: Literal["text"] = "text"


AnySlide = Annotated[
    Union[
        TitleSlide,
        SectionSlide,
        SummarySlide,
        AgendaSlide,
        CardsSlide,
        ProfileSlide,
        SplitImageSlide,
        BigNumberSlide,
        TimelineSlide,
        QuoteSlide,
        TextSlide,
    ],
    Field(discriminator="type"),
]

_SLIDE_ADAPTER: TypeAdapter = TypeAdapter(AnySlide)


def _tagged(value: Any) -> Any:
    """Raw slide data with ``type`` defaulted to ``text``; untyped base slides are dumped."""

    if isinstance(value, Slide) and type(value) is Slide:
        value = value.model_dump()
    if isinstance(value, dict) and not value.get("type"):
        return {**value, "type": "text"}
    return value


def parse_slide(data: Any) -> Slide:
    """Validate ``data`` into the slide variant its ``type`` names.

    Raises pydantic's ``ValidationError`` for an unknown type or a variant
    missing its required fields (``bigNumber`` without ``number``).
    """

    return _SLIDE_ADAPTER.validate_python(_tagged(data))


class SlideSpec(_SlideModel):
    presentationTitle: str = "Generated Presentation"
    styleHint: str = "corporate"
    themeName: Optional[str] = None
    slides: List[AnySlide] = Field(default_factory=list)
    meta: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("slides", mode="before")
    @classmethod
    def _tag_slides(cls, value: Any) -> Any:
        if not isinstance(value, list):
            return value
        return [_tagged(item) for item in value]


SpecLike = Union[SlideSpec, Dict[str, Any]]


def spec_to_dict(spec: Any) -> Any:
    """Dump a model to its JSON shape; pass raw values through untouched."""

    if isinstance(spec, BaseModel):
        return spec.model_dump(mode="json")
    return spec


# ---------------------------------------------------------------------------
# Validation


@dataclass(frozen=True)
class ValidationIssue:
    slide_index: int
    code: str
    message: str
    path: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload = {"slideIndex": self.slide_index, "code": self.code, "message": self.message}
        if self.path:
            payload["path"] = self.path
        return payload


@dataclass
class ValidationResult:
    ok: bool
    issues: List[ValidationIssue] = field(default_factory=list)

    @classmethod
    def from_issues(cls, issues: Iterable[ValidationIssue]) -> "ValidationResult":
        collected = list(issues)
        return cls(ok=not collected, issues=collected)

    def codes(self) -> List[str]:
        return [issue.code for issue in self.issues]


# ---------------------------------------------------------------------------
# Layout


@dataclass(frozen=True)
class Box:
    x: float
    y: float
    w: float
    h: float

    def fits(self, page_width: float, page_height: float, tolerance: float = 0.001) -> bool:
        if self.w < 0 or self.h < 0:
            return False
        if self.x < -tolerance or self.y < -tolerance:
            return False
        if self.x + self.w > page_width + tolerance:
            return False
        return self.y + self.h <= page_height + tolerance

    def inset(self, dx: float, dy: float) -> "Box":
        return Box(self.x + dx, self.y + dy, self.w - 2 * dx, self.h - 2 * dy)


@dataclass(frozen=True)
class AgendaItemBoxes:
    card: Box
    badge: Box
    text_box: Box
    icon_box: Box
    index: int
    text: str


@dataclass(frozen=True)
class CardBox:
    box: Box
    icon_box: Box
    text: str


@dataclass(frozen=True)
class TimelineStepBoxes:
    dot: Box
    badge: Box
    text_box: Box
    text: str


@dataclass
class LayoutPlan:
    layout: str
    boxes: Dict[str, Any]
    sizes: Dict[str, int]
    fallback: List[str] = field(default_factory=list)
    chosen_layout: str = ""
    requires_split: bool = False
    body_overflow: bool = False

    def iter_boxes(self) -> List[Box]:
        """Every geometric box in the plan, nested item boxes included."""

        out: List[Box] = []
        for value in self.boxes.values():
            items = value if isinstance(value, list) else [value]
            for item in items:
                if isinstance(item, Box):
                    out.append(item)
                elif isinstance(item, AgendaItemBoxes):
                    out.extend([item.card, item.badge, item.text_box, item.icon_box])
                elif isinstance(item, CardBox):
                    out.extend([item.box, item.icon_box])
                elif isinstance(item, TimelineStepBoxes):
                    out.extend([item.dot, item.badge, item.text_box])
        return out


@dataclass
class LayoutSlide:
    """A slide prepared for layout: resolved type, hint, bullet text and images."""

    slide: Slide
    type: str
    layout_hint: str
    bullet_text: List[str]
    images: List[str]
    planned_index: int = 0


@dataclass
class PlannedSlide:
    index: int
    slide: LayoutSlide
    plan: LayoutPlan

    @property
    def layout(self) -> str:
        return self.plan.chosen_layout or self.plan.layout


__all__ = [
    "ALLOWED_BULLET_KINDS",
    "ALLOWED_DENSITY",
    "ALLOWED_FOCAL_POINTS",
    "ALLOWED_IMAGE_MODES",
    "ALLOWED_IMAGE_OVERLAYS",
    "ALLOWED_IMAGE_PLACEMENTS",
    "ALLOWED_IMAGE_STYLES",
    "ALLOWED_LAYOUT_HINTS",
    "ALLOWED_SLIDE_TYPES",
    "ALLOWED_TONES",
    "AgendaItemBoxes",
    "AgendaSlide",
    "AnySlide",
    "BigNumberSlide",
    "Box",
    "Bullet",
    "CardBox",
    "CardsSlide",
    "Emphasis",
    "EmphasisNumber",
    "EmphasisPhrase",
    "FactNode",
    "INSIGHT_PREFIXES",
    "IconRef",
    "ImagePlan",
    "JobStatus",
    "LayoutPlan",
    "LayoutSlide",
    "PlannedSlide",
    "ProfileSlide",
    "QuoteSlide",
    "SectionSlide",
    "Slide",
    "SlideConstraints",
    "SlideSpec",
    "SpecLike",
    "SplitImageSlide",
    "SummarySlide",
    "TextSlide",
    "TimelineSlide",
    "TimelineStepBoxes",
    "TitleSlide",
    "ValidationIssue",
    "ValidationResult",
    "Visual",
    "parse_slide",
    "spec_to_dict",
]
