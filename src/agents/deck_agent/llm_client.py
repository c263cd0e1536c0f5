"""OpenAI-compatible chat client returning parsed JSON objects.

Env:
  - LLM_BASE_URL (default https://api.deepseek.com/v1)
  - LLM_API_KEY
  - LLM_MODEL (default deepseek-chat)
"""

from __future__ import annotations

import json
import logging
import os
from functools import lru_cache
from typing import Any, Dict, List, Optional

from openai import OpenAI

logger = logging.getLogger(__name__)

_DEFAULT_BASE_URL = "https://api.deepseek.com/v1"
_DEFAULT_MODEL = "deepseek-chat"


class LLMError(RuntimeError):
    """Raised when the chat endpoint fails or returns something other than a JSON object."""


class LLMResponseError(LLMError):
    """The endpoint answered, but the content was empty or not a JSON object."""


def get_llm_model() -> str:
    return (os.environ.get("LLM_MODEL") or _DEFAULT_MODEL).strip()


@lru_cache(maxsize=None)
def _build_openai_client() -> OpenAI:
    api_key = (os.environ.get("LLM_API_KEY") or "").strip()
    if not api_key:
        raise LLMError("LLM_API_KEY must be set to call the chat model.")
    base_url = (os.environ.get("LLM_BASE_URL") or _DEFAULT_BASE_URL).strip()
    return OpenAI(api_key=api_key, base_url=base_url, max_retries=0)


def _extract_json_payload(text: str) -> str:
    """Strip Markdown fences from model output to leave raw JSON."""

    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = cleaned[3:]
        if cleaned.lower().startswith("json"):
            cleaned = cleaned[4:]
        cleaned = cleaned.rsplit("```", 1)[0]
    return cleaned.strip()


def chat_json(
    messages: List[Dict[str, str]],
    *,
    temperature: float = 0.2,
    timeout_s: float = 30.0,
    model: Optional[str] = None,
) -> Dict[str, Any]:
    client = _build_openai_client()
    chosen_model = model or get_llm_model()
    try:
        response = client.chat.completions.create(
            model=chosen_model,
            messages=messages,
            temperature=temperature,
            response_format={"type": "json_object"},
            timeout=timeout_s,
        )
    except Exception as exc:  # network dependent
        logger.exception("Chat completion failed (model=%s)", chosen_model)
        raise LLMError(f"LLM request failed: {exc}") from exc

    content = response.choices[0].message.content if response.choices else None
    if not content or not isinstance(content, str):
        raise LLMResponseError("LLM response missing message content")
    try:
        data = json.loads(_extract_json_payload(content))
    except json.JSONDecodeError as exc:
        logger.error("LLM response not valid JSON: %s", exc)
        raise LLMResponseError("LLM response not valid JSON output") from exc
    if not isinstance(data, dict):
        raise LLMResponseError("LLM response is not a JSON object")
    return data


__all__ = ["LLMError", "LLMResponseError", "chat_json", "get_llm_model"]
