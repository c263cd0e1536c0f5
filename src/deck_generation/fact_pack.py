"""Deterministic outline drafter.

Buckets the facts of a source JSON document into a fixed outline using
bilingual keyword scoring and drafts fact-backed bullets for each section.
Nothing here calls a model, so the draft is always available as the fallback
content of the generation pipeline.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple
from urllib.parse import urlparse

from .fact_index import label_for_segments, normalize_path
from .text_utils import (
    contains_cjk,
    dedupe,
    extract_numeric_tokens,
    is_http_url,
    normalize_space,
    strip_urls,
    to_english_safe_text,
)

logger = logging.getLogger(__name__)

FIXED_OUTLINE: Tuple[str, ...] = (
    "Company Overview",
    "Our Services",
    "Design Expertise",
    "Regional Experience & Clients",
    "Selected Projects",
    "Awards & Recognition",
    "Team & Leadership",
    "Design & Build Capability",
    "Compliance & Quality",
    "Contact",
)

SECTION_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    "Company Overview": (
        "company", "profile", "overview", "founded", "established", "headquarter",
        "business", "capital", "employee", "office",
        "公司", "成立", "概覽", "概况", "辦公",
    ),
    "Our Services": (
        "service", "offering", "scope", "solution", "design & build",
        "服務", "服务", "方案", "能力",
    ),
    "Design Expertise": (
        "design", "style", "software", "bim", "expertise",
        "設計", "设计", "風格", "风格",
    ),
    "Regional Experience & Clients": (
        "regional", "region", "country", "city", "client", "market", "asia",
        "地區", "地区", "客戶", "客户",
    ),
    "Selected Projects": (
        "project", "case", "portfolio", "highlight", "area", "sqft", "sqm",
        "項目", "项目", "案例",
    ),
    "Awards & Recognition": (
        "award", "recognition", "accolade", "certification",
        "奖", "獎", "榮譽", "荣誉",
    ),
    "Team & Leadership": (
        "team", "leadership", "manager", "designer", "organization", "personnel",
        "團隊", "团队", "人員", "人员",
    ),
    "Design & Build Capability": (
        "d&b", "design & build", "capacity", "concurrent", "delivery", "construction",
        "施工", "承接",
    ),
    "Compliance & Quality": (
        "compliance", "quality", "safety", "insurance", "iso", "incident", "litigation",
        "governance",
        "合規", "合规", "質量", "质量", "保險", "保险",
    ),
    "Contact": (
        "contact", "email", "phone", "tel", "website", "address", "linkedin",
        "聯絡", "联系", "電郵", "电话",
    ),
}

COMPANY_NAME_KEY = "Company English Name / 公司英文名"
IMAGE_SECTIONS = ("Selected Projects", "Team & Leadership")
TEAM_SECTION_IMAGE_CAP = 1
MAX_BUCKET_FACTS = 36
MAX_DRAFT_BULLETS = 6

IMAGE_EXT_RE = re.compile(r"\.(png|jpg|jpeg|webp|gif|bmp|svg)$", re.IGNORECASE)
IMAGE_PATH_RE = re.compile(r"(image|photo|picture|logo|gallery|圖|图|照片|相片)", re.IGNORECASE)
LOGO_PATH_RE = re.compile(r"(logo|brand|identity|商標|标识)", re.IGNORECASE)
LINK_FIELD_RE = re.compile(r"(website|web|linkedin|url|contact)", re.IGNORECASE)
MISSING_VALUE_RE = re.compile(
    r"^(?:n/?a|na|none|null|nil|unknown|not provided|not available|tbd|pending|missing|unavailable|--?)$",
    re.IGNORECASE,
)
NEGATIVE_TEXT_RE = re.compile(
    r"(lawsuit|litigation|dispute|penalty|fine|incident|accident|injury|fatal|complaint|delay|overdue|"
    r"defect|failure|breach|non[-\s]?compliance|risk|issue|problem|weakness|shortage|debt|loss|bankrupt|negative)",
    re.IGNORECASE,
)
NEGATIVE_FIELD_RE = re.compile(
    r"(risk|issue|problem|incident|accident|complaint|litigation|lawsuit|penalty|delay|defect|breach|"
    r"non[-\s]?compliance|loss|debt)",
    re.IGNORECASE,
)
ZERO_RE = re.compile(r"^0+(?:\.0+)?%?$")
COUNT_FIELD_RE = re.compile(
    r"(project|client|award|team|employee|office|service|capability|experience|year|revenue|turnover|headcount)",
    re.IGNORECASE,
)
RANKING_BONUS_RE = re.compile(
    r"(award|recognition|project|service|capability|client|team|leadership|quality|compliance|contact|"
    r"email|phone|website|address|founded|established)",
    re.IGNORECASE,
)
COMPANY_NAME_FIELD_RE = re.compile(
    r"(company.*name|legal.*name|supplier.*name|vendor.*name|firm.*name|business.*name|studio.*name|"
    r"organization|organisation)",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class DraftFact:
    """A displayable leaf of the source document.

    ``source_path`` is the fact index path of the leaf; ``classify_text`` keeps
    the raw (possibly CJK) key path so bilingual keywords can match.
    """

    key: str
    value: str
    source_path: str
    text: str
    classify_text: str
    raw_type: str
    raw_value: Any


@dataclass(frozen=True)
class ImageNode:
    url: str
    source_path: str


@dataclass
class DraftSection:
    title: str
    key_message: str
    key_message_source_keys: List[str]
    bullets: List[Dict[str, Any]]
    section_facts: List[Dict[str, Any]] = field(default_factory=list)
    images: List[str] = field(default_factory=list)

    @property
    def goal(self) -> str:
        return self.key_message

    def bullet_texts(self) -> List[str]:
        return [bullet["text"] for bullet in self.bullets]

    def to_prompt_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "keyMessage": self.key_message,
            "bulletObjects": self.bullets[:MAX_DRAFT_BULLETS],
            "sectionFacts": self.section_facts[:8],
            "images": self.images[:2],
        }


@dataclass
class FactPack:
    presentation_title: str
    sections: List[DraftSection]
    skipped_sections: List[Dict[str, str]]
    allowed_image_urls: List[str]
    cover_images: List[str]
    source_numbers: List[str]
    facts: List[DraftFact] = field(default_factory=list)
    fixed_outline: Tuple[str, ...] = FIXED_OUTLINE

    def final_outline(self) -> List[str]:
        return [self.presentation_title, "Agenda"] + [section.title for section in self.sections]

    def image_assignments(self) -> List[Dict[str, Any]]:
        assignments = [
            {"title": self.presentation_title, "images": list(self.cover_images)},
            {"title": "Agenda", "images": []},
        ]
        assignments.extend({"title": s.title, "images": list(s.images)} for s in self.sections)
        return assignments

    def outline_preview(self) -> Dict[str, Any]:
        return {
            "fixedOutline": list(self.fixed_outline),
            "finalOutline": self.final_outline(),
            "skippedSections": list(self.skipped_sections),
            "imageAssignments": self.image_assignments(),
        }


# ---------------------------------------------------------------------------
# Collection


def _is_missing_like(text: str) -> bool:
    normalized = normalize_space(to_english_safe_text(text)).lower()
    if not normalized:
        return True
    if MISSING_VALUE_RE.match(normalized):
        return True
    return bool(re.match(r"^(?:no|none|without|not\s+available|not\s+provided|not\s+applicable)$", normalized))


def is_likely_image_url(value: Any, path_text: str = "") -> bool:
    if not is_http_url(value):
        return False
    try:
        pathname = urlparse(value.strip()).path or ""
    except ValueError:
        return False
    if IMAGE_EXT_RE.search(pathname):
        return True
    return bool(IMAGE_PATH_RE.search(path_text or ""))


def _display_path(segments: Sequence[str]) -> str:
    return " > ".join(str(s) for s in segments if str(s))


def _collect_facts(value: Any, segments: Tuple[str, ...], out: List[DraftFact]) -> None:
    if value is None:
        return
    if isinstance(value, (str, int, float, bool)):
        raw = normalize_space(value)
        raw_path = _display_path(segments)
        safe_path = normalize_space(to_english_safe_text(raw_path))
        if not raw or (isinstance(value, bool) and value is False):
            return
        if isinstance(value, str) and is_http_url(raw):
            if is_likely_image_url(raw, raw_path):
                return
            if not LINK_FIELD_RE.search(safe_path):
                return
        display = normalize_space(to_english_safe_text(raw)) if isinstance(value, str) else raw
        if not display:
            return
        if isinstance(value, bool):
            display = "Yes"
        key = label_for_segments(segments)
        out.append(
            DraftFact(
                key=key,
                value=display,
                source_path=normalize_path(list(segments)),
                text=f"{key}: {display}",
                classify_text=f"{key} {display} {raw_path}",
                raw_type="boolean" if isinstance(value, bool) else type(value).__name__,
                raw_value=value,
            )
        )
        return
    if isinstance(value, list):
        for idx, item in enumerate(value):
            _collect_facts(item, segments + (str(idx),), out)
        return
    if isinstance(value, dict):
        for key, item in value.items():
            _collect_facts(item, segments + (str(key),), out)


def _collect_images(value: Any, segments: Tuple[str, ...], out: List[ImageNode]) -> None:
    if value is None:
        return
    if isinstance(value, str):
        path_text = _display_path(segments)
        if is_likely_image_url(value, path_text):
            out.append(ImageNode(url=value.strip(), source_path=path_text))
        return
    if isinstance(value, list):
        for idx, item in enumerate(value):
            _collect_images(item, segments + (str(idx),), out)
        return
    if isinstance(value, dict):
        for key, item in value.items():
            _collect_images(item, segments + (str(key),), out)


def find_first_value_by_key(data: Any, target_key: str) -> str:
    """Depth-first search for the first string/number stored under ``target_key``."""

    if isinstance(data, dict):
        for key, value in data.items():
            if key == target_key and isinstance(value, (str, int, float)) and not isinstance(value, bool):
                safe = normalize_space(to_english_safe_text(value))
                if safe:
                    return safe
        for value in data.values():
            found = find_first_value_by_key(value, target_key)
            if found:
                return found
    elif isinstance(data, list):
        for item in data:
            found = find_first_value_by_key(item, target_key)
            if found:
                return found
    return ""


# ---------------------------------------------------------------------------
# Classification and ranking


def score_by_keywords(text: str, keywords: Sequence[str]) -> int:
    lowered = (text or "").lower()
    score = 0
    for keyword in keywords:
        if not keyword:
            continue
        if contains_cjk(keyword):
            if keyword in (text or ""):
                score += 2
        elif keyword.lower() in lowered:
            score += 1
    return score


def pick_outline_section(text: str) -> str:
    best = ""
    best_score = 0
    for section in FIXED_OUTLINE:
        score = score_by_keywords(text, SECTION_KEYWORDS.get(section, ()))
        if score > best_score:
            best, best_score = section, score
    return best


def is_undesirable_fact(fact: DraftFact) -> bool:
    """Facts the deck never foregrounds: empty, negative or zero-count values."""

    key_text = normalize_space(f"{fact.key} {fact.source_path}".lower())
    value_text = normalize_space(fact.value)
    lower_value = value_text.lower()

    if not value_text or _is_missing_like(value_text):
        return True
    if fact.raw_type == "boolean" and fact.raw_value is not True:
        return True
    if NEGATIVE_FIELD_RE.search(key_text):
        return True
    if NEGATIVE_TEXT_RE.search(f"{key_text} {lower_value}"):
        return True
    if ZERO_RE.match(lower_value) and COUNT_FIELD_RE.search(key_text):
        return True
    return bool(re.match(r"^(?:no|none|without|not\s+)", lower_value))


def score_fact_for_section(fact: DraftFact, section: str) -> int:
    haystack = f"{fact.key} {fact.source_path} {fact.value}"
    score = score_by_keywords(fact.classify_text, SECTION_KEYWORDS.get(section, ()))
    if re.search(r"\d", fact.value):
        score += 2
    if is_http_url(fact.value):
        score -= 3
    if len(fact.value) > 130:
        score -= 1
    if RANKING_BONUS_RE.search(haystack):
        score += 2
    return score


def build_section_buckets(facts: Sequence[DraftFact]) -> Dict[str, List[DraftFact]]:
    buckets: Dict[str, List[DraftFact]] = {section: [] for section in FIXED_OUTLINE}
    for fact in facts:
        if is_undesirable_fact(fact):
            continue
        section = pick_outline_section(f"{fact.classify_text} {fact.text}") or "Company Overview"
        buckets[section].append(fact)
    for section in FIXED_OUTLINE:
        ranked = sorted(buckets[section], key=lambda f: score_fact_for_section(f, section), reverse=True)
        buckets[section] = ranked[:MAX_BUCKET_FACTS]
    return buckets


def build_image_buckets(images: Sequence[ImageNode]) -> Dict[str, List[ImageNode]]:
    buckets: Dict[str, List[ImageNode]] = {section: [] for section in FIXED_OUTLINE}
    for image in images:
        section = pick_outline_section(image.source_path)
        if section:
            buckets[section].append(image)
    return buckets


def score_image_for_section(image: ImageNode, section: str) -> int:
    path_text = image.source_path.lower()
    score = 0
    if section == "Selected Projects":
        if re.search(r"(project|case|portfolio|site|施工|项目|案例)", path_text):
            score += 4
        if re.search(r"(interior|office|hotel|retail|workplace)", path_text):
            score += 2
    if section == "Team & Leadership":
        if re.search(r"(team|leadership|people|staff|member|headshot|portrait|人員|团队|成员)", path_text):
            score += 3
    if LOGO_PATH_RE.search(path_text):
        score -= 3
    if re.search(r"(svg|logo)", image.url.lower()):
        score -= 2
    return score


# ---------------------------------------------------------------------------
# Drafting


def fact_to_bullet(fact: DraftFact) -> Dict[str, Any]:
    key = normalize_space(fact.key).lower()
    if is_http_url(fact.value):
        text = f"Use the provided image asset to support {key} communication."
    else:
        text = f"Present {key} as {fact.value}."
    return {"text": normalize_space(text), "sourceKeys": [fact.source_path], "kind": "fact"}


def section_key_message(title: str, facts: Sequence[DraftFact]) -> str:
    if not facts:
        return f"{title} demonstrates clear execution capability."
    first = facts[0]
    # Colons would read as raw key-value text on the slide.
    value = re.sub(r"\s*:\s*", " ", first.value)
    return normalize_space(f"{title} is supported by {first.key.lower()} ({value}).")


def build_section_draft(title: str, facts: Sequence[DraftFact]) -> Optional[DraftSection]:
    bullets = [fact_to_bullet(fact) for fact in facts[:MAX_DRAFT_BULLETS]]
    if not bullets:
        return None
    key_sources = dedupe(key for bullet in bullets for key in bullet["sourceKeys"])[:3]
    return DraftSection(
        title=title,
        key_message=section_key_message(title, facts),
        key_message_source_keys=key_sources,
        bullets=bullets,
        section_facts=[
            {"key": f.key, "value": f.value, "sourcePath": f.source_path, "text": f.text}
            for f in facts[:30]
        ],
    )


def assign_images(
    sections: Sequence[DraftSection],
    image_buckets: Dict[str, List[ImageNode]],
    max_images_per_slide: int,
) -> None:
    used: set = set()
    for section in sections:
        if section.title not in IMAGE_SECTIONS:
            section.images = []
            continue
        nodes: List[ImageNode] = []
        seen_urls: set = set()
        for node in image_buckets.get(section.title, []):
            if node.url not in seen_urls:
                seen_urls.add(node.url)
                nodes.append(node)
        ranked = sorted(nodes, key=lambda n: score_image_for_section(n, section.title), reverse=True)
        cap = max_images_per_slide
        if section.title == "Team & Leadership":
            cap = min(TEAM_SECTION_IMAGE_CAP, max_images_per_slide)
        picked: List[str] = []
        for node in ranked:
            if len(picked) >= cap:
                break
            if node.url in used:
                continue
            picked.append(node.url)
            used.add(node.url)
        section.images = picked


def pick_cover_images(images: Sequence[ImageNode], sections: Sequence[DraftSection]) -> List[str]:
    used = {url for section in sections for url in section.images}
    for image in images:
        is_logo = LOGO_PATH_RE.search(image.source_path.lower()) or "logo" in image.url.lower()
        if is_logo and image.url not in used:
            return [image.url]
    return []


def is_plausible_company_name(text: str) -> bool:
    safe = normalize_space(to_english_safe_text(text))
    if len(safe) < 2 or len(safe) > 100:
        return False
    if not re.search(r"[A-Za-z]", safe):
        return False
    return not re.match(r"^(company|profile|overview|not provided|unknown|n/a)$", safe, re.IGNORECASE)


def pick_presentation_title(input_json: Any, facts: Sequence[DraftFact]) -> str:
    exact = find_first_value_by_key(input_json, COMPANY_NAME_KEY)
    if is_plausible_company_name(exact):
        return exact

    candidates = []
    for fact in facts:
        if not COMPANY_NAME_FIELD_RE.search(f"{fact.key} {fact.source_path}"):
            continue
        value = normalize_space(to_english_safe_text(fact.value))
        if not is_plausible_company_name(value):
            continue
        score = 3 if re.search(r"(english|legal|company)", fact.source_path, re.IGNORECASE) else 1
        candidates.append((score, value))
    if candidates:
        # Stable sort keeps document order among equal scores.
        return sorted(candidates, key=lambda item: item[0], reverse=True)[0][1]
    return "Company"


def build_fact_pack(
    input_json: Any,
    prompt: str = "",
    *,
    max_images_per_slide: int = 2,
    skip_missing_sections: bool = True,
) -> FactPack:
    """Draft the fixed outline from ``input_json``.

    The result is a pure function of the input: identical documents produce
    identical bucketing and bullet order.
    """

    safe_max_images = max(1, min(2, int(max_images_per_slide or 2)))

    collected: List[DraftFact] = []
    _collect_facts(input_json, (), collected)
    facts: List[DraftFact] = []
    seen = set()
    for fact in collected:
        marker = (fact.source_path, fact.value)
        if marker in seen:
            continue
        seen.add(marker)
        facts.append(fact)

    raw_images: List[ImageNode] = []
    _collect_images(input_json, (), raw_images)
    images: List[ImageNode] = []
    seen_urls = set()
    for image in raw_images:
        if image.url not in seen_urls:
            seen_urls.add(image.url)
            images.append(image)

    buckets = build_section_buckets(facts)
    image_buckets = build_image_buckets(images)

    included: List[DraftSection] = []
    skipped: List[Dict[str, str]] = []
    for title in FIXED_OUTLINE:
        draft = build_section_draft(title, buckets[title])
        if draft is None:
            skipped.append({"title": title, "reason": "No source-backed facts were found."})
            continue
        included.append(draft)

    sections = list(included)
    if not skip_missing_sections:
        for item in skipped:
            sections.append(
                DraftSection(
                    title=item["title"],
                    key_message=item["reason"],
                    key_message_source_keys=[],
                    bullets=[{"text": item["reason"], "sourceKeys": [], "kind": "insight"}],
                )
            )

    if not sections:
        message = "Please enrich source JSON fields to generate detailed section pages."
        sections.append(
            DraftSection(
                title="Company Overview",
                key_message="Source JSON is available but lacks structured business facts for fixed sections.",
                key_message_source_keys=[],
                bullets=[{"text": message, "sourceKeys": [], "kind": "insight"}],
            )
        )

    assign_images(sections, image_buckets, safe_max_images)
    source_numbers = dedupe(token for fact in facts for token in extract_numeric_tokens(fact.value))

    pack = FactPack(
        presentation_title=pick_presentation_title(input_json, facts),
        sections=sections,
        skipped_sections=skipped,
        allowed_image_urls=[image.url for image in images],
        cover_images=pick_cover_images(images, sections),
        source_numbers=source_numbers,
        facts=facts,
    )
    logger.info(
        "Drafted %d sections (%d skipped) from %d facts and %d images",
        len(pack.sections),
        len(skipped),
        len(facts),
        len(images),
    )
    return pack


def collect_numbers_from_slides(slides: Sequence[Any]) -> List[str]:
    """Numeric tokens of every visible text field of ``slides`` (URLs removed first)."""

    parts: List[str] = []
    for slide in slides or []:
        if hasattr(slide, "model_dump"):
            slide = slide.model_dump(mode="json")
        if not isinstance(slide, dict):
            continue
        for name in ("title", "keyMessage", "subtitle", "caption", "number"):
            value = slide.get(name)
            if isinstance(value, (str, int, float)) and not isinstance(value, bool):
                parts.append(str(value))
        for bullet in slide.get("bullets") or []:
            if isinstance(bullet, str):
                parts.append(bullet)
            elif isinstance(bullet, dict) and isinstance(bullet.get("text"), str):
                parts.append(bullet["text"])
        for column in ("left", "right"):
            parts.extend(item for item in slide.get(column) or [] if isinstance(item, str))
    text = strip_urls(" ".join(part for part in parts if part))
    return dedupe(extract_numeric_tokens(text))


__all__ = [
    "COMPANY_NAME_KEY",
    "DraftFact",
    "DraftSection",
    "FIXED_OUTLINE",
    "FactPack",
    "SECTION_KEYWORDS",
    "build_fact_pack",
    "collect_numbers_from_slides",
    "is_undesirable_fact",
    "pick_outline_section",
    "score_by_keywords",
]
