"""Copy-polish stage: rewrite slide wording without touching structure or sources."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from pydantic import ValidationError

from .llm_client import LLMError, LLMResponseError, chat_json
from .models import SlidesResponse
from .prompts import build_copy_polish_messages

logger = logging.getLogger(__name__)

ChatFn = Callable[..., Dict[str, Any]]

DEFAULT_STYLE = "clinical-professional"
FIRST_TEMPERATURE = 0.28
RETRY_TEMPERATURE = 0.2


@dataclass
class PolishResult:
    ok: bool
    retried: bool
    slides: List[Dict[str, Any]]
    error: str = ""
    attempts: int = 0

    def meta(self) -> Dict[str, Any]:
        return {"ok": self.ok, "retried": self.retried, "attempts": self.attempts, "error": self.error}


def _attempt(
    chat: ChatFn,
    slides: Sequence[Dict[str, Any]],
    *,
    input_json: Any,
    user_prompt: str,
    style: str,
    temperature: float,
    timeout_ms: int,
) -> List[Dict[str, Any]]:
    messages = build_copy_polish_messages(
        slide_spec={"slides": list(slides)},
        input_json=input_json,
        user_prompt=user_prompt,
        style=style,
    )
    raw = chat(messages, temperature=temperature, timeout_s=timeout_ms / 1000.0)
    return SlidesResponse.model_validate(raw or {}).slides


def polish_slides(
    slides: Sequence[Dict[str, Any]],
    *,
    input_json: Any = None,
    user_prompt: str = "",
    style: str = DEFAULT_STYLE,
    timeout_ms: int = 12000,
    chat: Optional[ChatFn] = None,
) -> PolishResult:
    """Polish ``slides``; on failure the input slides come back unchanged with ``ok=False``.

    One retry is made at a lower temperature with a strict-JSON style marker
    when the first answer is empty or unparseable. A failed request is not
    retried.
    """

    chat = chat or chat_json
    fallback = [dict(slide) for slide in slides]

    try:
        polished = _attempt(
            chat,
            slides,
            input_json=input_json,
            user_prompt=user_prompt,
            style=style,
            temperature=FIRST_TEMPERATURE,
            timeout_ms=timeout_ms,
        )
        if polished:
            return PolishResult(ok=True, retried=False, slides=polished, attempts=1)
        logger.warning("Copy polish returned no slides; retrying with strict JSON")
    except (LLMResponseError, ValidationError) as exc:
        logger.warning("Copy polish first answer unusable: %s", exc)
    except LLMError as exc:
        logger.warning("Copy polish request failed; keeping draft copy: %s", exc)
        return PolishResult(ok=False, retried=False, slides=fallback, error=str(exc) or "copy polish failed", attempts=1)

    try:
        polished = _attempt(
            chat,
            slides,
            input_json=input_json,
            user_prompt=user_prompt,
            style=f"{style} strict-json-retry",
            temperature=RETRY_TEMPERATURE,
            timeout_ms=timeout_ms,
        )
    except (LLMError, ValidationError) as exc:
        logger.warning("Copy polish retry failed: %s", exc)
        return PolishResult(ok=False, retried=True, slides=fallback, error=str(exc) or "copy polish failed", attempts=2)

    if polished:
        return PolishResult(ok=True, retried=True, slides=polished, attempts=2)
    return PolishResult(
        ok=False,
        retried=True,
        slides=fallback,
        error="copy polish returned empty JSON slides",
        attempts=2,
    )


__all__ = ["DEFAULT_STYLE", "PolishResult", "polish_slides"]
