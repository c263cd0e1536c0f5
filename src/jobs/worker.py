"""Process one claimed job, either locally or through the remote generation service."""

from __future__ import annotations

import logging
import os
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from src.agents.deck_agent.pipeline import run_deck_agent
from src.db import deck_storage, jobs_dal
from src.deck_generation.payload_builder import build_generation_payload
from src.deck_generation.remote_client import (
    create_generation,
    extract_generation_id,
    extract_view_url,
    get_remote_config,
    normalize_status,
)
from src.deck_generation.renderer import render_deck

logger = logging.getLogger(__name__)

HARD_TIMEOUT_MS = 55000


class WorkerTimeoutError(RuntimeError):
    pass


def get_generation_mode() -> str:
    mode = (os.environ.get("DECK_GENERATION_MODE") or "local").strip().lower()
    return mode if mode in ("local", "remote") else "local"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class _Deadline:
    def __init__(self, hard_timeout_ms: int):
        self.hard_timeout_ms = hard_timeout_ms
        self._started = time.monotonic()

    def check(self) -> None:
        if (time.monotonic() - self._started) * 1000 > self.hard_timeout_ms:
            raise WorkerTimeoutError(f"Worker timeout reached ({self.hard_timeout_ms}ms)")


def remote_meta(create_response: Dict[str, Any], generation_id: str, **extra: Any) -> Dict[str, Any]:
    meta = {
        "generationId": generation_id,
        "providerStatus": normalize_status(create_response) if generation_id else "creating",
        "viewUrl": extract_view_url(create_response),
        "queuePendingSince": _now_iso(),
        "queueRetryCount": 0,
        "pollFailures": 0,
    }
    meta.update(extra)
    return meta


def _process_local(job: Dict[str, Any], deadline: _Deadline, chat: Optional[Callable[..., Dict[str, Any]]]) -> None:
    job_id = job["id"]

    def on_progress(value: int, stage: str) -> None:
        jobs_dal.update_job(job_id, {"progress": value})

    deadline.check()
    result = run_deck_agent(job.get("prompt") or "", job.get("input_json") or {}, chat=chat, on_progress=on_progress)
    deadline.check()

    data = render_deck(result.slide_spec)
    jobs_dal.update_job(job_id, {"progress": 90})
    deadline.check()

    file_path = deck_storage.save_deck(job_id, data)
    slide_spec = result.slide_spec.model_dump(mode="json")
    slide_spec["meta"]["validationReport"] = result.validation_report
    slide_spec["meta"]["sectionsPlan"] = result.sections_plan
    jobs_dal.complete_job(job_id, slide_spec, file_path)
    logger.info("Job %s rendered locally (%d bytes)", job_id, len(data))


def _process_remote(job: Dict[str, Any], deadline: _Deadline) -> str:
    job_id = job["id"]
    deadline.check()
    jobs_dal.update_job(
        job_id,
        {"progress": 10, "error": None, "slide_spec": {"meta": {"provider": "remote", "remote": remote_meta({}, "")}}},
    )

    config = get_remote_config()
    payload = build_generation_payload(job.get("prompt") or "", job.get("input_json") or {}, config)
    deadline.check()

    response = create_generation(payload.request, timeout_ms=config.create_timeout_ms, retries=1)
    generation_id = extract_generation_id(response)
    if not generation_id:
        raise RuntimeError("Remote create succeeded but generationId is missing in response")
    deadline.check()

    request_snapshot = dict(payload.request)
    request_snapshot["inputText"] = f"[redacted length={len(payload.request.get('inputText') or '')}]"
    jobs_dal.update_job(
        job_id,
        {
            "progress": 15,
            "error": None,
            "slide_spec": {
                "meta": {**payload.meta, "remote": remote_meta(response, generation_id)},
                "remoteRequest": request_snapshot,
            },
        },
    )
    logger.info("Job %s submitted remotely as generation %s", job_id, generation_id)
    return generation_id


def process_one_job(
    job: Dict[str, Any],
    *,
    mode: Optional[str] = None,
    hard_timeout_ms: int = HARD_TIMEOUT_MS,
    chat: Optional[Callable[..., Dict[str, Any]]] = None,
) -> Dict[str, Any]:
    """Run a claimed job. Any failure marks the job failed and is reported, not raised."""

    job_id = job["id"]
    mode = mode or get_generation_mode()
    deadline = _Deadline(hard_timeout_ms)
    try:
        if mode == "remote":
            generation_id = _process_remote(job, deadline)
            return {"ok": True, "processedJobId": job_id, "generationId": generation_id}
        _process_local(job, deadline, chat)
        return {"ok": True, "processedJobId": job_id}
    except Exception as exc:
        logger.exception("Job %s failed in %s mode", job_id, mode)
        message = str(exc) or exc.__class__.__name__
        try:
            jobs_dal.fail_job(job_id, message)
        except jobs_dal.InvalidTransitionError:
            logger.warning("Job %s already terminal; failure not recorded", job_id)
        return {"ok": False, "processedJobId": job_id, "error": message}


__all__ = ["HARD_TIMEOUT_MS", "WorkerTimeoutError", "get_generation_mode", "process_one_job"]
