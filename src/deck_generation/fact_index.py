"""Path-keyed index over an arbitrary source JSON document.

Every other stage refers to facts only through the paths registered here:
draft bullets carry them as ``sourceKeys``, the prompts expose them as the
allowed vocabulary and the fact validator resolves them back to values.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from .models import FactNode
from .text_utils import extract_numeric_tokens, normalize_space, to_english_safe_text

logger = logging.getLogger(__name__)

PATH_SPLIT_RE = re.compile(r"[>.]")
_INDEX_SEGMENT_RE = re.compile(r"^\d+$")


def normalize_path_segment(segment: Any) -> str:
    text = str(segment if segment is not None else "")
    text = re.sub(r"[_-]+", " ", text)
    text = re.sub(r"\s*/\s*", " / ", text)
    return normalize_space(text)


def normalize_path(path: Any) -> str:
    """Normalize a dotted or ``>``-separated path to the index's canonical form."""

    if isinstance(path, (list, tuple)):
        raw = ".".join(str(part) for part in path)
    elif isinstance(path, str):
        raw = path.strip()
    else:
        return ""
    segments = [normalize_path_segment(part) for part in PATH_SPLIT_RE.split(raw)]
    return ".".join(segment for segment in segments if segment)


def english_path(path: Any) -> str:
    """Same as :func:`normalize_path` with CJK characters removed from each segment."""

    normalized = normalize_path(path)
    if not normalized:
        return ""
    segments = []
    for segment in normalized.split("."):
        cleaned = to_english_safe_text(segment)
        cleaned = re.sub(r"^/\s*|\s*/$", "", cleaned).strip()
        if cleaned:
            segments.append(cleaned)
    return ".".join(segments)


def label_for_segments(segments: Sequence[str]) -> str:
    """Human label of a path: the last non-index segment, English only."""

    for segment in reversed(list(segments)):
        text = str(segment)
        if _INDEX_SEGMENT_RE.match(text):
            continue
        label = english_path(text).replace(".", " ")
        if label:
            return label
    return "Data Point"


def _raw_type(value: Any) -> str:
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        return "object"
    return "null"


def _text_of(value: Any) -> str:
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value, ensure_ascii=False)
    except (TypeError, ValueError):
        return str(value)


class FactIndex(Mapping[str, FactNode]):
    """Immutable mapping of normalized path -> :class:`FactNode`.

    Lookups normalize the requested path first, so ``"Company_Profile > Founded"``
    and ``"Company Profile.Founded"`` resolve to the same node.
    """

    def __init__(self, nodes: Dict[str, FactNode], aliases: Optional[Dict[str, str]] = None):
        self._nodes = dict(nodes)
        self._aliases = dict(aliases or {})

    def _resolve(self, path: Any) -> Optional[str]:
        normalized = normalize_path(path)
        if not normalized:
            return None
        if normalized in self._nodes:
            return normalized
        return self._aliases.get(normalized)

    def __getitem__(self, path: str) -> FactNode:
        resolved = self._resolve(path)
        if resolved is None:
            raise KeyError(path)
        return self._nodes[resolved]

    def __contains__(self, path: object) -> bool:
        return self._resolve(path) is not None

    def __iter__(self) -> Iterator[str]:
        return iter(self._nodes)

    def __len__(self) -> int:
        return len(self._nodes)

    def canonical(self, path: Any) -> Optional[str]:
        """Return the registered path ``path`` resolves to, or ``None``."""

        return self._resolve(path)

    def paths(self) -> List[str]:
        return list(self._nodes)

    def leaf_paths(self) -> List[str]:
        return [path for path, node in self._nodes.items() if node.raw_type not in ("object", "array")]

    def text_for(self, paths: Sequence[str]) -> str:
        """Concatenated text of the nodes ``paths`` resolve to; unknown paths are skipped."""

        texts: List[str] = []
        for path in paths or []:
            resolved = self._resolve(path)
            if resolved is None:
                continue
            node = self._nodes[resolved]
            texts.append(node.text or _text_of(node.value))
        return " ".join(texts)

    def compact_entries(self, limit: int = 180, max_value_chars: int = 180) -> Dict[str, str]:
        """The ``path -> text`` vocabulary handed to the generation prompts."""

        out: Dict[str, str] = {}
        for path, node in self._nodes.items():
            if len(out) >= limit:
                break
            text = normalize_space(node.text)
            if not text:
                continue
            if len(text) > max_value_chars:
                text = f"{text[:max_value_chars]}..."
            out[path] = text
        return out


def build_fact_index(data: Any) -> FactIndex:
    """Flatten ``data`` into a :class:`FactIndex`.

    Scalars become one node each. Arrays are registered as a whole and then
    element by element under their index. Objects are registered as a whole
    and walked property by property; an English-only alias is added for paths
    whose keys carry CJK text. The first node registered for a path wins.
    """

    nodes: Dict[str, FactNode] = {}
    aliases: Dict[str, str] = {}

    def write(segments: Tuple[str, ...], value: Any) -> None:
        path = normalize_path(list(segments))
        if not path or path in nodes:
            return
        text = _text_of(value)
        nodes[path] = FactNode(
            key=label_for_segments(segments),
            value=value,
            source_path=path,
            text=text,
            tokens=tuple(extract_numeric_tokens(text)),
            raw_type=_raw_type(value),
        )
        alias = english_path(path)
        if alias and alias != path and alias not in nodes and alias not in aliases:
            aliases[alias] = path

    def walk(node: Any, segments: Tuple[str, ...]) -> None:
        if node is None:
            return
        if isinstance(node, (str, int, float, bool)):
            write(segments, node)
            return
        if isinstance(node, list):
            write(segments, node)
            for idx, item in enumerate(node):
                walk(item, segments + (str(idx),))
            return
        if isinstance(node, dict):
            write(segments, node)
            for key, value in node.items():
                walk(value, segments + (str(key),))

    walk(data if data is not None else {}, ())
    # An alias never shadows a real path.
    aliases = {alias: target for alias, target in aliases.items() if alias not in nodes}
    logger.debug("Built fact index with %d paths and %d aliases", len(nodes), len(aliases))
    return FactIndex(nodes, aliases)


__all__ = [
    "FactIndex",
    "build_fact_index",
    "english_path",
    "label_for_segments",
    "normalize_path",
    "normalize_path_segment",
]
