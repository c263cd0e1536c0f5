"""HTTP client for the remote deck generation service.

Env:
  - REMOTE_GEN_BASE_URL: primary API root (default https://public-api.gamma.app/v1.0)
  - REMOTE_GEN_BASE_URLS (optional): comma-separated fallback roots
  - REMOTE_GEN_API_KEY: API key sent as ``X-API-KEY``
  - REMOTE_GEN_TEXT_MODE / REMOTE_GEN_EXPORT_AS / REMOTE_GEN_THEME_ID / REMOTE_GEN_FOLDER_IDS
"""

from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Dict, List, Optional
from urllib.parse import quote, urlsplit, urlunsplit

import requests

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://public-api.gamma.app/v1.0"

COMPLETED_STATES = {"completed", "done", "success", "succeeded", "ready"}
FAILED_STATES = {"failed", "error", "cancelled", "canceled", "timeout"}
RUNNING_STATES = {"processing", "running", "in_progress", "rendering", "exporting", "generating"}
PENDING_STATES = {"pending", "queued", "created", "waiting"}


class RemoteGenerationError(RuntimeError):
    """Raised when the remote generation service cannot be reached or rejects a call."""


def _clean(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def normalize_base_url(base_url: str) -> str:
    raw = _clean(base_url)
    if not raw:
        return ""
    parts = urlsplit(raw)
    if not parts.scheme or not parts.netloc:
        return raw.rstrip("/")
    path = parts.path if parts.path not in ("", "/") else "/v1.0"
    return urlunsplit((parts.scheme, parts.netloc, path, parts.query, "")).rstrip("/")


def parse_base_urls(primary: str, extra: str = "") -> List[str]:
    candidates = [primary] + [item for item in _clean(extra).split(",")]
    out: List[str] = []
    for candidate in candidates:
        url = normalize_base_url(candidate)
        if url and url not in out:
            out.append(url)
    return out


@dataclass(frozen=True)
class RemoteConfig:
    base_urls: List[str]
    api_key: str
    text_mode: str = "preserve"
    export_as: str = "pptx"
    theme_id: str = ""
    folder_ids: List[str] = field(default_factory=list)
    create_timeout_ms: int = 25000

    @property
    def base_url(self) -> str:
        return self.base_urls[0]


def get_remote_config() -> RemoteConfig:
    base_url = os.environ.get("REMOTE_GEN_BASE_URL", DEFAULT_BASE_URL)
    api_key = _clean(os.environ.get("REMOTE_GEN_API_KEY"))
    if not api_key:
        raise RemoteGenerationError("REMOTE_GEN_API_KEY is not set")
    base_urls = parse_base_urls(base_url, os.environ.get("REMOTE_GEN_BASE_URLS", ""))
    folder_ids = [item.strip() for item in os.environ.get("REMOTE_GEN_FOLDER_IDS", "").split(",") if item.strip()]
    return RemoteConfig(
        base_urls=base_urls or [DEFAULT_BASE_URL],
        api_key=api_key,
        text_mode=_clean(os.environ.get("REMOTE_GEN_TEXT_MODE")) or "preserve",
        export_as=_clean(os.environ.get("REMOTE_GEN_EXPORT_AS")) or "pptx",
        theme_id=_clean(os.environ.get("REMOTE_GEN_THEME_ID")),
        folder_ids=folder_ids,
        create_timeout_ms=int(os.environ.get("REMOTE_GEN_CREATE_TIMEOUT_MS", "25000")),
    )


@lru_cache(maxsize=1)
def get_http_session() -> requests.Session:
    session = requests.Session()
    session.headers.update({"Content-Type": "application/json", "accept": "application/json"})
    return session


def mask_api_key(value: str) -> str:
    key = _clean(value)
    if not key:
        return ""
    if len(key) <= 12:
        return f"{key[:3]}***"
    return f"{key[:9]}****{key[-2:]}"


# ---------------------------------------------------------------------------
# Response field extraction (the service nests fields under data/result)


def get_path(obj: Any, path: str) -> Any:
    cursor = obj
    for key in path.split("."):
        if not isinstance(cursor, dict):
            return None
        cursor = cursor.get(key)
    return cursor


def first_non_empty(raw: Any, *paths: str) -> str:
    for path in paths:
        text = _clean(get_path(raw, path))
        if text:
            return text
    return ""


def extract_generation_id(raw: Any) -> str:
    return first_non_empty(raw, "id", "generationId", "data.id", "data.generationId", "result.id", "result.generationId")


def normalize_status(raw: Any) -> str:
    source = first_non_empty(
        raw, "status", "state", "data.status", "data.state", "result.status", "result.state"
    ).lower()
    if not source:
        return "pending"
    if source in COMPLETED_STATES:
        return "completed"
    if source in FAILED_STATES:
        return "failed"
    if source in RUNNING_STATES:
        return "running"
    if source in PENDING_STATES:
        return "pending"
    return "running"


def extract_export_url(raw: Any) -> str:
    return first_non_empty(
        raw,
        "pptxUrl",
        "downloadUrl",
        "exportedFileUrl",
        "fileUrl",
        "exportUrl",
        "data.pptxUrl",
        "data.downloadUrl",
        "data.exportedFileUrl",
        "data.fileUrl",
        "data.exportUrl",
        "exports.pptx",
        "exports.pptx.url",
        "data.exports.pptx",
        "data.exports.pptx.url",
        "result.exports.pptx.url",
        "files.pptx.url",
        "data.files.pptx.url",
        "exportedFiles.pptx",
        "data.exportedFiles.pptx",
    )


def extract_view_url(raw: Any) -> str:
    return first_non_empty(raw, "url", "gammaUrl", "data.url", "data.gammaUrl", "result.url")


def extract_provider_error(raw: Any) -> str:
    return first_non_empty(raw, "error.message", "error", "message", "msg", "data.error", "data.message")


def map_provider_progress(status: str, current: int = 0, elapsed_seconds: float = 0) -> int:
    """Synthesized progress that never moves backwards while a job is in flight."""

    now = max(0, int(current or 0))
    elapsed = max(0.0, float(elapsed_seconds or 0))
    if status == "pending":
        return max(now, min(62, 35 + int(elapsed // 8)))
    if status == "running":
        return max(now, min(92, 65 + int(elapsed // 6)))
    if status == "completed":
        return max(now, 90)
    if status == "failed":
        return now
    return max(now, min(62, 35 + int(elapsed // 10)))


# ---------------------------------------------------------------------------
# Transport


def _request(
    method: str,
    path: str,
    *,
    body: Optional[Dict[str, Any]] = None,
    timeout_ms: int = 25000,
    retries: int = 1,
    retry_delay_ms: int = 450,
    config: Optional[RemoteConfig] = None,
) -> Dict[str, Any]:
    cfg = config or get_remote_config()
    session = get_http_session()
    suffix = path if path.startswith("/") else f"/{path}"
    last_error: Optional[Exception] = None

    for attempt in range(retries + 1):
        for base_url in cfg.base_urls:
            url = f"{base_url.rstrip('/')}{suffix}"
            try:
                response = session.request(
                    method,
                    url,
                    json=body,
                    headers={"X-API-KEY": cfg.api_key},
                    timeout=timeout_ms / 1000.0,
                )
            except requests.Timeout:
                last_error = RemoteGenerationError(
                    f"Remote API {method} {path} timed out after {timeout_ms}ms (base={base_url})"
                )
                continue
            except requests.RequestException as exc:
                last_error = RemoteGenerationError(f"Remote API {method} {path} network error: {exc} (base={base_url})")
                continue

            try:
                payload = response.json()
            except ValueError:
                payload = None
            if not response.ok:
                detail = extract_provider_error(payload) if isinstance(payload, dict) else ""
                last_error = RemoteGenerationError(
                    f"Remote API {method} {path} failed ({response.status_code}): {detail or response.text[:300]}"
                )
                continue
            return payload if isinstance(payload, dict) else {}
        if attempt < retries:
            time.sleep(retry_delay_ms * (attempt + 1) / 1000.0)

    logger.warning("Remote API %s %s exhausted retries: %s", method, path, last_error)
    raise last_error or RemoteGenerationError("Remote request failed")


def create_generation(payload: Dict[str, Any], *, timeout_ms: Optional[int] = None, retries: int = 1) -> Dict[str, Any]:
    cfg = get_remote_config()
    return _request(
        "POST",
        "/generations",
        body=payload,
        timeout_ms=max(8000, int(timeout_ms or cfg.create_timeout_ms)),
        retries=max(0, min(2, retries)),
        config=cfg,
    )


def get_generation(generation_id: str, *, timeout_ms: int = 18000, retries: int = 1) -> Dict[str, Any]:
    generation = _clean(generation_id)
    if not generation:
        raise RemoteGenerationError("Missing generation id")
    return _request(
        "GET",
        f"/generations/{quote(generation, safe='')}",
        timeout_ms=max(8000, int(timeout_ms)),
        retries=max(0, min(2, retries)),
        retry_delay_ms=350,
    )


def download_export(url: str, *, timeout_ms: int = 30000) -> bytes:
    try:
        response = get_http_session().get(url, timeout=timeout_ms / 1000.0, headers={"accept": "*/*"})
    except requests.RequestException as exc:
        raise RemoteGenerationError(f"Export download failed: {exc}") from exc
    if not response.ok:
        raise RemoteGenerationError(f"Export download failed ({response.status_code})")
    return response.content


def client_debug() -> Dict[str, str]:
    cfg = get_remote_config()
    return {"baseUrl": cfg.base_url, "apiKeyMasked": mask_api_key(cfg.api_key)}


__all__ = [
    "RemoteConfig",
    "RemoteGenerationError",
    "client_debug",
    "create_generation",
    "download_export",
    "extract_export_url",
    "extract_generation_id",
    "extract_provider_error",
    "extract_view_url",
    "get_generation",
    "get_remote_config",
    "map_provider_progress",
    "normalize_base_url",
    "normalize_status",
    "parse_base_urls",
]
