"""Small text helpers shared by the fact index, validators and pipeline stages."""

from __future__ import annotations

import re
from typing import Any, Iterable, List

CJK_RE = re.compile(r"[\u3400-\u9FFF]")
CJK_PUNCT_RE = re.compile(r"[，。；：、（）【】《》“”‘’「」『』]")
URL_RE = re.compile(r"https?://\S+", re.IGNORECASE)
HTTP_URL_PREFIX_RE = re.compile(r"^https?://", re.IGNORECASE)

# One tokenizer for every numeric check (fact index, fact validator, numeric guard).
NUMERIC_TOKEN_RE = re.compile(r"-?\d+(?:[.,]\d+)?%?")

_ABBREVIATIONS = [
    (re.compile(r"\be\.g\.", re.IGNORECASE), " e<ABBR_DOT>g<ABBR_DOT> "),
    (re.compile(r"\bi\.e\.", re.IGNORECASE), " i<ABBR_DOT>e<ABBR_DOT> "),
    (re.compile(r"\betc\.", re.IGNORECASE), " etc<ABBR_DOT> "),
    (re.compile(r"\bvs\.", re.IGNORECASE), " vs<ABBR_DOT> "),
    (re.compile(r"\bU\.S\."), " U<ABBR_DOT>S<ABBR_DOT> "),
    (re.compile(r"\bU\.K\."), " U<ABBR_DOT>K<ABBR_DOT> "),
    (re.compile(r"\bU\.N\."), " U<ABBR_DOT>N<ABBR_DOT> "),
]
_ACRONYM_CHAIN_RE = re.compile(r"(?:\b[A-Za-z]\.){2,}")
_DECIMAL_RE = re.compile(r"(\d)\.(\d)")
_SENTENCE_END_RE = re.compile(r"[.!?。！？]+(?=(?:\s|$|[\"'”’)\]]))")


def safe_string(value: Any, fallback: str = "") -> str:
    text = value.strip() if isinstance(value, str) else ""
    return text or fallback


def to_list(value: Any) -> List[Any]:
    """``value`` if it is a list, otherwise an empty list."""
    return value if isinstance(value, list) else []


def normalize_space(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        text = "true" if value else "false"
    else:
        text = str(value)
    return re.sub(r"\s+", " ", text).strip()


def to_english_safe_text(value: Any) -> str:
    """Drop CJK characters and full-width punctuation, collapsing whitespace."""

    text = CJK_RE.sub(" ", str(value or ""))
    text = CJK_PUNCT_RE.sub(" ", text)
    return re.sub(r"\s+", " ", text).strip()


def contains_cjk(text: str) -> bool:
    return bool(CJK_RE.search(text or ""))


def cjk_count(text: str) -> int:
    return len(CJK_RE.findall(text or ""))


def word_count(text: str) -> int:
    return len([w for w in re.split(r"\s+", (text or "").strip()) if w])


def is_http_url(value: Any) -> bool:
    return isinstance(value, str) and bool(HTTP_URL_PREFIX_RE.match(value.strip()))


def strip_urls(text: str) -> str:
    return URL_RE.sub(" ", text or "")


def extract_numeric_tokens(text: Any) -> List[str]:
    """Return numeric tokens with thousands separators removed."""

    return [token.replace(",", "") for token in NUMERIC_TOKEN_RE.findall(str(text or ""))]


def is_meaningful_number(token: str) -> bool:
    digits = re.sub(r"[^\d]", "", token)
    return "%" in token or len(digits) >= 3


def meaningful_numeric_tokens(text: Any) -> List[str]:
    return [token for token in extract_numeric_tokens(text) if is_meaningful_number(token)]


def dedupe(values: Iterable[str]) -> List[str]:
    seen = set()
    out: List[str] = []
    for value in values:
        if value in seen:
            continue
        seen.add(value)
        out.append(value)
    return out


def protect_sentence_text(text: str) -> str:
    """Mask URLs, abbreviations, acronym chains and decimals so their dots are not sentence ends."""

    value = safe_string(text)
    if not value:
        return ""
    value = URL_RE.sub(" URLTOKEN ", value)
    for pattern, replacement in _ABBREVIATIONS:
        value = pattern.sub(replacement, value)
    value = _ACRONYM_CHAIN_RE.sub(lambda m: m.group(0).replace(".", "<ABBR_DOT>"), value)
    value = _DECIMAL_RE.sub(r"\1<DEC_DOT>\2", value)
    return value


def count_sentence_boundaries(text: str) -> int:
    normalized = protect_sentence_text(text)
    if not normalized:
        return 0
    return len(_SENTENCE_END_RE.findall(normalized))


def looks_multi_sentence(text: str) -> bool:
    if not safe_string(text):
        return True
    return count_sentence_boundaries(text) > 1


def first_sentence(text: str) -> str:
    """Return the first sentence of ``text``, honouring the same protected ranges."""

    value = safe_string(text)
    if not value:
        return ""
    # Same-length masks keep match offsets valid for the original text.
    masked = list(value)
    for match in URL_RE.finditer(value):
        for idx in range(match.start(), match.end()):
            masked[idx] = "_"
    masked_text = "".join(masked)
    for pattern, _ in _ABBREVIATIONS:
        masked_text = pattern.sub(lambda m: m.group(0).replace(".", "_"), masked_text)
    masked_text = _ACRONYM_CHAIN_RE.sub(lambda m: m.group(0).replace(".", "_"), masked_text)
    masked_text = _DECIMAL_RE.sub(lambda m: m.group(0).replace(".", "_"), masked_text)
    match = _SENTENCE_END_RE.search(masked_text)
    if not match:
        return value
    return value[: match.end()].strip()


def truncate_words(text: str, max_chars: int, suffix: str = "...") -> str:
    value = normalize_space(text)
    if len(value) <= max_chars:
        return value
    sliced = value[:max_chars]
    cut = sliced.rfind(" ")
    head = sliced[:cut] if cut > 60 else sliced
    return f"{head.strip()}{suffix}"


__all__ = [
    "CJK_RE",
    "URL_RE",
    "contains_cjk",
    "cjk_count",
    "count_sentence_boundaries",
    "dedupe",
    "extract_numeric_tokens",
    "first_sentence",
    "is_http_url",
    "is_meaningful_number",
    "looks_multi_sentence",
    "meaningful_numeric_tokens",
    "normalize_space",
    "protect_sentence_text",
    "safe_string",
    "strip_urls",
    "to_english_safe_text",
    "to_list",
    "truncate_words",
    "word_count",
]
