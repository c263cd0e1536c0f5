"""Persistence helpers for deck generation jobs.

A job moves ``pending -> running -> done``. ``failed`` is reachable from any
non-terminal state, and ``done``/``failed`` never change again. Workers claim
jobs with a conditional ``pending -> running`` update so only one of them ever
writes a given job afterwards.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pymongo import ASCENDING, ReturnDocument

from src.deck_generation.models import JobStatus

from .mongo import get_db, get_jobs_collection_name

logger = logging.getLogger(__name__)


_ORDER = {JobStatus.PENDING: 0, JobStatus.RUNNING: 1, JobStatus.DONE: 2, JobStatus.FAILED: 2}
TERMINAL_STATUSES = frozenset({JobStatus.DONE, JobStatus.FAILED})


class JobNotFoundError(LookupError):
    pass


class InvalidTransitionError(ValueError):
    pass


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def get_jobs_coll():
    return get_db()[get_jobs_collection_name()]


def check_transition(current: str, target: str) -> None:
    """Raise InvalidTransitionError unless ``current -> target`` moves forward."""
    try:
        src = JobStatus(current)
        dst = JobStatus(target)
    except ValueError as e:
        raise InvalidTransitionError(str(e))
    if src == dst and src not in TERMINAL_STATUSES:
        return
    if src in TERMINAL_STATUSES:
        raise InvalidTransitionError(f"Job is already {src.value}; cannot move to {dst.value}")
    if dst == JobStatus.FAILED:
        return
    if _ORDER[dst] <= _ORDER[src]:
        raise InvalidTransitionError(f"Cannot move job from {src.value} back to {dst.value}")


def _public(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not doc:
        return None
    out = dict(doc)
    out["id"] = str(out.pop("_id"))
    return out


def create_job(prompt: str, input_json: Any, coll=None) -> Dict[str, Any]:
    if not isinstance(input_json, (dict, list)):
        raise ValueError("input_json must be a JSON object or array")
    coll = coll if coll is not None else get_jobs_coll()
    now = _now_iso()
    doc = {
        "_id": uuid.uuid4().hex,
        "status": JobStatus.PENDING.value,
        "progress": 0,
        "prompt": prompt or "",
        "input_json": input_json,
        "slide_spec": None,
        "file_path": None,
        "error": None,
        "created_at": now,
        "updated_at": now,
    }
    coll.insert_one(doc)
    logger.info("Created job %s", doc["_id"])
    return _public(doc)


def get_job(job_id: str, coll=None) -> Dict[str, Any]:
    coll = coll if coll is not None else get_jobs_coll()
    doc = coll.find_one({"_id": job_id})
    if not doc:
        raise JobNotFoundError(f"Job {job_id} not found")
    return _public(doc)


def update_job(job_id: str, patch: Dict[str, Any], coll=None) -> Dict[str, Any]:
    """Apply ``patch`` to the job; a ``status`` in the patch must move forward.

    ``progress`` never decreases while the job is in flight.
    """
    coll = coll if coll is not None else get_jobs_coll()
    current = get_job(job_id, coll=coll)
    changes = {k: v for k, v in (patch or {}).items() if k not in ("_id", "id", "created_at")}

    target = changes.get("status")
    if target is not None:
        target = JobStatus(target).value if not isinstance(target, JobStatus) else target.value
        check_transition(current["status"], target)
        changes["status"] = target
    elif current["status"] in (JobStatus.DONE.value, JobStatus.FAILED.value) and changes:
        raise InvalidTransitionError(f"Job {job_id} is already {current['status']}")

    if "progress" in changes:
        progress = max(0, min(100, int(changes["progress"] or 0)))
        if changes.get("status") not in (JobStatus.DONE.value, JobStatus.FAILED.value):
            progress = max(progress, int(current.get("progress") or 0))
        changes["progress"] = progress

    changes["updated_at"] = _now_iso()
    doc = coll.find_one_and_update(
        {"_id": job_id, "status": current["status"]},
        {"$set": changes},
        return_document=ReturnDocument.AFTER,
    )
    if not doc:
        # Another writer changed the status between the read and the write.
        latest = get_job(job_id, coll=coll)
        raise InvalidTransitionError(f"Job {job_id} changed to {latest['status']} concurrently")
    return _public(doc)


def claim_next_pending_job(coll=None) -> Optional[Dict[str, Any]]:
    """Atomically move the oldest pending job to running; None if the queue is empty."""
    coll = coll if coll is not None else get_jobs_coll()
    doc = coll.find_one_and_update(
        {"status": JobStatus.PENDING.value},
        {"$set": {"status": JobStatus.RUNNING.value, "progress": 5, "updated_at": _now_iso()}},
        sort=[("created_at", ASCENDING)],
        return_document=ReturnDocument.AFTER,
    )
    if doc:
        logger.info("Claimed job %s", doc["_id"])
    return _public(doc)


def fail_job(job_id: str, message: str, coll=None) -> Dict[str, Any]:
    """Mark the job failed, keeping the progress it had reached."""
    logger.warning("Job %s failed: %s", job_id, message)
    return update_job(
        job_id,
        {"status": JobStatus.FAILED.value, "error": message or "Unknown error"},
        coll=coll,
    )


def complete_job(job_id: str, slide_spec: Optional[Dict[str, Any]], file_path: str, coll=None) -> Dict[str, Any]:
    return update_job(
        job_id,
        {
            "status": JobStatus.DONE.value,
            "progress": 100,
            "slide_spec": slide_spec,
            "file_path": file_path,
            "error": None,
        },
        coll=coll,
    )
