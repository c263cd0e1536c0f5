"""Build the remote generation-service request from the deterministic fact pack."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from .fact_pack import FIXED_OUTLINE, DraftSection, FactPack, build_fact_pack
from .remote_client import RemoteConfig
from .text_utils import normalize_space, to_english_safe_text

MISSING_RE = re.compile(
    r"^(?:n/?a|na|none|null|nil|unknown|not provided|not available|tbd|pending|missing|unavailable|--?)$",
    re.IGNORECASE,
)
MAX_FACT_VALUE_CHARS = 150
MAX_BULLETS_PER_CARD = 5
FACTS_PER_CARD = 4
MAX_CARDS_PER_SECTION = 6
NARRATIVE_VERBS = ("Strengthen", "Expand", "Accelerate", "Consolidate", "Improve")

CONTACT_FIELDS = {
    "contact_name": (
        ("Contact person / 聯絡人", "Contact Person / 联系人"),
        ("contact.name", "contact.person", "contactPerson", "representative", "salesContact"),
    ),
    "email": (("Email / 電郵", "Email / 邮箱"), ("contact.email", "email")),
    "phone": (
        ("Contact Number / 聯繫電話", "Contact Number / 联系电话"),
        ("contact.phone", "phone", "tel"),
    ),
    "website": (
        ("Or enter company website / 或輸入公司網站", "Company Website / 公司網站"),
        ("contact.website", "website", "web"),
    ),
    "address": (("Office Address / 辦公地址", "Address / 地址"), ("contact.address", "address")),
}


def cover_ai_background_enabled() -> bool:
    return os.environ.get("REMOTE_GEN_COVER_AI_BACKGROUND", "true").strip().lower() != "false"


def normalize_line(value: Any) -> str:
    if not isinstance(value, (str, int, float)) or isinstance(value, bool):
        return ""
    return normalize_space(to_english_safe_text(value))


def sanitize_fact_value(value: Any) -> str:
    text = normalize_line(value)
    if not text or MISSING_RE.match(text):
        return ""
    return f"{text[:MAX_FACT_VALUE_CHARS]}..." if len(text) > MAX_FACT_VALUE_CHARS else text


def trim_sentence(text: str, max_chars: int = 180) -> str:
    normalized = normalize_line(text)
    if len(normalized) <= max_chars:
        return normalized
    sliced = normalized[:max_chars]
    cut = sliced.rfind(" ")
    return f"{(sliced[:cut] if cut > 60 else sliced).strip()}..."


def fact_to_narrative_line(fact: Dict[str, Any], index: int = 0) -> str:
    key = normalize_line(fact.get("key")) or "Data point"
    value = sanitize_fact_value(fact.get("value"))
    if not value:
        return ""
    verb = NARRATIVE_VERBS[index % len(NARRATIVE_VERBS)]
    return f"- {trim_sentence(f'{verb} execution with {key.lower()} at {value}.', 170)}"


def fact_to_evidence_line(fact: Dict[str, Any]) -> str:
    key = normalize_line(fact.get("key")) or "Data point"
    value = sanitize_fact_value(fact.get("value"))
    if not value:
        return ""
    return f"- {trim_sentence(f'{key}: {value}', 160)}"


def chunk_section_facts(facts: Sequence[Dict[str, Any]], chunk_size: int = FACTS_PER_CARD, max_chunks: int = 5) -> List[List[Dict[str, Any]]]:
    chunks: List[List[Dict[str, Any]]] = []
    for offset in range(0, len(facts or []), chunk_size):
        chunks.append(list(facts[offset : offset + chunk_size]))
        if len(chunks) >= max_chunks:
            break
    return chunks


def pick_field(data: Any, paths: Sequence[str]) -> str:
    for path in paths:
        cursor = data
        for key in path.split("."):
            if not isinstance(cursor, dict) or key not in cursor:
                cursor = None
                break
            cursor = cursor[key]
        text = normalize_line(cursor)
        if text:
            return text
    return ""


def find_first_value_by_exact_keys(data: Any, keys: Sequence[str]) -> str:
    wanted = {key for key in keys if key}
    stack = [data]
    while stack:
        node = stack.pop()
        if isinstance(node, list):
            stack.extend(reversed(node))
            continue
        if not isinstance(node, dict):
            continue
        for key, value in node.items():
            if key in wanted:
                text = normalize_line(value)
                if text:
                    return text
            if isinstance(value, (dict, list)):
                stack.append(value)
    return ""


def build_cover_info(input_json: Any) -> Dict[str, str]:
    return {
        name: find_first_value_by_exact_keys(input_json, exact) or pick_field(input_json, paths)
        for name, (exact, paths) in CONTACT_FIELDS.items()
    }


def build_cover_card(title: str, cover_logo: str, cover_info: Dict[str, str], ai_background: bool) -> str:
    lines = [f"# {normalize_line(title) or 'Company'}"]
    if ai_background:
        lines += ["## Visual Direction", "- Create one abstract white background image for this cover only."]

    labels = (
        ("contact_name", "Contact Person"),
        ("email", "Email"),
        ("phone", "Phone"),
        ("website", "Website"),
        ("address", "Address"),
    )
    contact = [f"- {label}: {cover_info[name]}" for name, label in labels if cover_info.get(name)]
    if contact:
        lines.append("## Contact")
        lines.extend(contact)
    if cover_logo:
        lines += ["## Company Logo (place at top-right)", cover_logo]
    return "\n".join(lines)


def build_agenda_card(section_titles: Sequence[str]) -> str:
    return "\n".join(["# Table of Contents"] + [f"{i}. {title}" for i, title in enumerate(section_titles, start=1)])


def card_title(section: DraftSection, chunk_index: int) -> str:
    base = normalize_line(section.title) or "Section"
    return f"{base} (Continued {chunk_index + 1})" if chunk_index > 0 else base


def build_section_card(section: DraftSection, chunk: Sequence[Dict[str, Any]], chunk_index: int = 0) -> str:
    base = normalize_line(section.title) or "Section"
    if chunk_index > 0:
        key_message = trim_sentence(f"Additional source-backed highlights for {base}.", 120)
    else:
        key_message = trim_sentence(
            normalize_line(section.key_message) or f"{base} supports business delivery outcomes.", 130
        )
    narrative = [line for line in (fact_to_narrative_line(f, i) for i, f in enumerate(chunk[:MAX_BULLETS_PER_CARD])) if line]
    evidence = [line for line in (fact_to_evidence_line(f) for f in chunk[:3]) if line]

    lines = [f"# {card_title(section, chunk_index)}", "## Key Message", key_message, "## Highlights", *narrative]
    if evidence:
        lines.append("## Key Facts")
        lines.extend(evidence)

    images = section.images[:2] if chunk_index == 0 else []
    lines += ["## Image Rule", "- Do not generate AI images for this card."]
    if images:
        lines += ["- Use only the source URLs below if an image is needed.", "## Visual References", *images]
    else:
        lines.append("- No source image is provided for this card; keep this card without images.")
    return "\n".join(lines)


def build_additional_instructions(
    prompt: str,
    skipped_sections: Sequence[Dict[str, str]],
    image_assignments: Sequence[Dict[str, Any]],
) -> str:
    lines = [
        "Generate a professional English business presentation.",
        "Do not invent any facts, numbers, dates, clients, awards, institutions, or certifications.",
        "If source data is missing, skip the unsupported point. Do not fabricate.",
        "Use only positive and capability-forward facts from the input. Omit risks, incidents, disputes, and missing capability statements.",
        "Keep the first card as cover and second card as agenda. Both pages are mandatory.",
        f"Use section order exactly as: {' | '.join(FIXED_OUTLINE)}",
        "Use only image URLs present in inputText for non-cover pages. Do not add any extra non-cover images.",
        "Only the cover page may use one AI-generated abstract white background.",
        "Place images mainly in project pages or where imagery clearly supports the content.",
        "Avoid repeating the same image across many pages.",
        "If logo URL exists, place company logo at top-right of the cover.",
        "Team/personnel images are optional; use only when layout fit is good.",
        "Cover page must use the real company name from source data, not generic placeholders.",
        "Make wording presentation-ready and richer, connecting facts into coherent business statements.",
        "Do not output raw JSON-style key-value formatting.",
        "All output text must be in English only.",
        "Prevent crowded slides: keep each content card concise, with at most 5 bullets.",
        "For content-heavy sections, add continuation cards instead of overloading one card.",
        "Use clean hierarchy: title, key message, highlights, key facts.",
    ]
    clean_prompt = normalize_line(prompt)
    if clean_prompt:
        lines.append(f"User emphasis: {clean_prompt}")
    skipped = [normalize_line(item.get("title")) for item in skipped_sections or []]
    if any(skipped):
        lines.append(f"Skipped sections due to missing facts: {', '.join(t for t in skipped if t)}")
    if image_assignments:
        summary = "; ".join(f"{item['title']} -> {len(item.get('images') or [])} images" for item in image_assignments)
        lines.append(f"Image assignment reference: {summary}")
    return "\n".join(lines)


@dataclass
class GenerationPayload:
    request: Dict[str, Any]
    meta: Dict[str, Any]


def build_generation_payload(
    prompt: str,
    input_json: Any,
    config: RemoteConfig,
    *,
    compact_mode: bool = False,
    fact_pack: Optional[FactPack] = None,
) -> GenerationPayload:
    """Cover card, agenda card and chunked section cards joined by ``---`` breaks."""

    pack = fact_pack or build_fact_pack(input_json, prompt, max_images_per_slide=2, skip_missing_sections=True)
    ai_background = cover_ai_background_enabled()
    cover_logo = pack.cover_images[0] if pack.cover_images else ""

    section_cards: List[Dict[str, Any]] = []
    for section in pack.sections:
        chunks = chunk_section_facts(section.section_facts, FACTS_PER_CARD, 2 if compact_mode else MAX_CARDS_PER_SECTION)
        for index, chunk in enumerate(chunks):
            section_cards.append(
                {
                    "title": card_title(section, index),
                    "text": build_section_card(section, chunk, index),
                    "images": section.images[:2] if index == 0 else [],
                }
            )
    section_titles = [normalize_line(s.title) for s in pack.sections if normalize_line(s.title)]

    cards = [
        build_cover_card(pack.presentation_title, cover_logo, build_cover_info(input_json), ai_background),
        build_agenda_card(section_titles),
        *[card["text"] for card in section_cards],
    ]
    image_assignments = [
        {"title": pack.presentation_title, "images": [cover_logo] if cover_logo else []},
        {"title": "Agenda", "images": []},
        *[{"title": card["title"], "images": card["images"]} for card in section_cards],
    ]

    image_options: Dict[str, Any] = {"source": "aiGenerated" if ai_background else "noImages"}
    if ai_background:
        image_options["style"] = "minimal, white, clean, abstract gradient background"

    request: Dict[str, Any] = {
        "inputText": "\n---\n".join(cards),
        "textMode": config.text_mode or "preserve",
        "format": "presentation",
        "cardSplit": "inputTextBreaks",
        "exportAs": config.export_as or "pptx",
        "cardOptions": {"dimensions": "16x9"},
        "textOptions": {
            "language": "en",
            "amount": "medium" if compact_mode else "detailed",
            "tone": "professional, concise, business",
            "audience": "business stakeholders and decision makers",
        },
        "imageOptions": image_options,
        "additionalInstructions": build_additional_instructions(prompt, pack.skipped_sections, image_assignments),
    }
    if config.theme_id:
        request["themeId"] = config.theme_id
    if config.folder_ids:
        request["folderIds"] = list(config.folder_ids[:10])

    meta = {
        "provider": "remote",
        "compactMode": compact_mode,
        "fixedOutline": list(FIXED_OUTLINE),
        "finalOutline": [pack.presentation_title, "Agenda", *section_titles],
        "skippedSections": list(pack.skipped_sections),
        "imageAssignments": image_assignments,
        "sourceImageCount": len(pack.allowed_image_urls),
        "cardsPlanned": max(1, min(75, len(cards))),
        "mode": "generate",
    }
    return GenerationPayload(request=request, meta=meta)


__all__ = [
    "GenerationPayload",
    "build_additional_instructions",
    "build_agenda_card",
    "build_cover_card",
    "build_cover_info",
    "build_generation_payload",
    "build_section_card",
    "chunk_section_facts",
    "fact_to_evidence_line",
    "fact_to_narrative_line",
    "sanitize_fact_value",
    "trim_sentence",
]
