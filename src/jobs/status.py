"""Synchronize running remote jobs with the generation service.

Status requests double as the polling loop: each call for a running remote
job asks the service for the generation state, advances the synthesized
progress, and on completion downloads the export into deck storage.
"""

from __future__ import annotations

import logging
import os
import re
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from src.db import deck_storage, jobs_dal
from src.deck_generation.payload_builder import build_generation_payload
from src.deck_generation.remote_client import (
    RemoteGenerationError,
    create_generation,
    download_export,
    extract_export_url,
    extract_generation_id,
    extract_provider_error,
    extract_view_url,
    get_generation,
    get_remote_config,
    map_provider_progress,
    normalize_status,
)

logger = logging.getLogger(__name__)

TRANSIENT_ERROR_RE = re.compile(r"aborted|timed out|timeout|network|econn|enotfound|socket|connection", re.IGNORECASE)


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, str(default)))
    except ValueError:
        return default


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_iso(value: Any) -> Optional[datetime]:
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def seconds_since(value: Any) -> int:
    moment = _parse_iso(value)
    if moment is None:
        return 0
    return max(0, int((_now() - moment).total_seconds()))


def job_meta(job: Dict[str, Any]) -> Dict[str, Any]:
    spec = job.get("slide_spec") or {}
    meta = spec.get("meta") if isinstance(spec, dict) else None
    return dict(meta) if isinstance(meta, dict) else {}


def _with_meta(job: Dict[str, Any], meta: Dict[str, Any]) -> Dict[str, Any]:
    spec = dict(job.get("slide_spec") or {})
    spec["meta"] = meta
    return spec


def _retry_pending(job: Dict[str, Any], meta: Dict[str, Any], remote: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Re-submit a generation stuck in the provider queue, in compact mode."""

    retry_after = max(90, _env_int("REMOTE_GEN_PENDING_RETRY_AFTER_SEC", 180))
    max_retry = max(0, min(2, _env_int("REMOTE_GEN_PENDING_MAX_RETRY", 1)))
    pending_seconds = seconds_since(remote.get("queuePendingSince"))
    retry_count = int(remote.get("queueRetryCount") or 0)
    if pending_seconds < retry_after or retry_count >= max_retry:
        return None

    config = get_remote_config()
    payload = build_generation_payload(job.get("prompt") or "", job.get("input_json") or {}, config, compact_mode=True)
    response = create_generation(payload.request, timeout_ms=config.create_timeout_ms, retries=1)
    generation_id = extract_generation_id(response)
    if not generation_id:
        raise RemoteGenerationError("Retry create succeeded but generationId is missing")

    retried = {
        **meta,
        **payload.meta,
        "remote": {
            "generationId": generation_id,
            "providerStatus": normalize_status(response),
            "viewUrl": extract_view_url(response),
            "queuePendingSince": _now().isoformat(),
            "queueRetryCount": retry_count + 1,
            "previousGenerationId": remote.get("generationId"),
            "retryReason": f"pending>{retry_after}s",
            "pollFailures": 0,
        },
    }
    logger.info("Job %s re-submitted as generation %s after %ds pending", job["id"], generation_id, pending_seconds)
    return jobs_dal.update_job(job["id"], {"progress": 22, "slide_spec": _with_meta(job, retried)})


def _sync_remote(job: Dict[str, Any]) -> Dict[str, Any]:
    meta = job_meta(job)
    remote = dict(meta.get("remote") or {})
    generation_id = remote.get("generationId") or ""

    if not generation_id:
        stale = seconds_since(job.get("updated_at") or job.get("created_at"))
        limit = max(60, _env_int("REMOTE_GEN_NO_ID_TIMEOUT_SEC", 120))
        if stale >= limit:
            return jobs_dal.fail_job(job["id"], f"Job stuck before generation id assignment for {stale}s. Please retry.")
        return job

    raw = get_generation(generation_id, timeout_ms=max(12000, _env_int("REMOTE_GEN_STATUS_TIMEOUT_MS", 30000)))
    status = normalize_status(raw)
    remote.update(
        {
            "providerStatus": status,
            "viewUrl": extract_view_url(raw) or remote.get("viewUrl", ""),
            "exportUrl": extract_export_url(raw),
            "error": extract_provider_error(raw),
            "pollFailures": 0,
        }
    )
    remote.setdefault("queuePendingSince", _now().isoformat())
    meta["remote"] = remote

    if status == "failed":
        return jobs_dal.fail_job(job["id"], remote["error"] or "Remote generation failed")

    if status == "completed":
        if not remote["exportUrl"]:
            jobs_dal.update_job(job["id"], {"slide_spec": _with_meta(job, meta)})
            return jobs_dal.fail_job(job["id"], "Remote generation completed but export url missing")
        jobs_dal.update_job(job["id"], {"progress": 90, "slide_spec": _with_meta(job, meta)})
        data = download_export(remote["exportUrl"], timeout_ms=max(10000, _env_int("REMOTE_GEN_DOWNLOAD_TIMEOUT_MS", 35000)))
        file_path = deck_storage.save_deck(job["id"], data)
        logger.info("Job %s downloaded remote export (%d bytes)", job["id"], len(data))
        return jobs_dal.complete_job(job["id"], _with_meta(job, meta), file_path)

    if status == "pending":
        try:
            retried = _retry_pending(job, meta, remote)
        except RemoteGenerationError as exc:
            logger.warning("Job %s pending retry failed: %s", job["id"], exc)
            remote["retryError"] = str(exc)
            retried = None
        if retried is not None:
            return retried

    elapsed = seconds_since(job.get("created_at"))
    progress = map_provider_progress(status, int(job.get("progress") or 0), elapsed)
    return jobs_dal.update_job(job["id"], {"progress": progress, "slide_spec": _with_meta(job, meta)})


def _record_poll_failure(job: Dict[str, Any], message: str) -> Dict[str, Any]:
    meta = job_meta(job)
    remote = dict(meta.get("remote") or {})
    failures = int(remote.get("pollFailures") or 0) + 1
    if TRANSIENT_ERROR_RE.search(message):
        max_failures = max(6, _env_int("REMOTE_GEN_MAX_TRANSIENT_POLL_FAILURES", 10))
    else:
        max_failures = max(2, _env_int("REMOTE_GEN_MAX_POLL_FAILURES", 3))
    remote.update({"pollFailures": failures, "pollError": message, "pollErrorAt": _now().isoformat()})
    meta["remote"] = remote

    if failures >= max_failures:
        jobs_dal.update_job(job["id"], {"slide_spec": _with_meta(job, meta)})
        return jobs_dal.fail_job(job["id"], f"Remote polling failed repeatedly: {message}")
    return jobs_dal.update_job(
        job["id"], {"slide_spec": _with_meta(job, meta), "progress": max(20, int(job.get("progress") or 0))}
    )


def is_remote_job(job: Dict[str, Any]) -> bool:
    return isinstance(job_meta(job).get("remote"), dict)


def refresh_job_status(job: Dict[str, Any]) -> Dict[str, Any]:
    """Return the job, first advancing it when it is a running remote generation."""

    if job.get("status") != "running" or not is_remote_job(job):
        return job
    try:
        return _sync_remote(job)
    except RemoteGenerationError as exc:
        logger.warning("Polling job %s failed: %s", job["id"], exc)
        return _record_poll_failure(job, str(exc))


def debug_info(job: Dict[str, Any]) -> Dict[str, Any]:
    meta = job_meta(job)
    spec = job.get("slide_spec") or {}
    slides = spec.get("slides") if isinstance(spec, dict) and isinstance(spec.get("slides"), list) else []
    return {
        "fixedOutline": meta.get("fixedOutline") or [],
        "finalOutline": meta.get("finalOutline") or [s.get("title") for s in slides if isinstance(s, dict) and s.get("title")],
        "skippedSections": meta.get("skippedSections") or [],
        "imageAssignments": meta.get("imageAssignments") or [],
        "remote": meta.get("remote"),
    }


__all__ = ["debug_info", "is_remote_job", "refresh_job_status", "seconds_since"]
