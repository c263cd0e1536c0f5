"""Flask blueprint exposing deck generation jobs over JSON."""

from __future__ import annotations

import hmac
import logging
import os
from io import BytesIO
from typing import Any, Dict

from flask import Blueprint, current_app, jsonify, request, send_file, url_for

from src.db import deck_storage, jobs_dal
from src.jobs.status import debug_info, refresh_job_status
from src.jobs.worker import process_one_job

logger = logging.getLogger(__name__)

deck_bp = Blueprint("deck", __name__, url_prefix="/api/deck")


def _error(message: str, status: int):
    return jsonify({"error": message}), status


def _worker_authorized() -> bool:
    secret = os.environ.get("WORKER_SECRET", "")
    if not secret:
        # Without a configured secret the worker endpoint is only open for local development.
        return bool(current_app.debug or current_app.testing)
    header = request.headers.get("Authorization", "")
    return hmac.compare_digest(header, f"Bearer {secret}")


def _status_body(job: Dict[str, Any]) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "jobId": job["id"],
        "status": job["status"],
        "progress": job.get("progress") or 0,
        "error": job.get("error"),
        "debug": debug_info(job),
    }
    if job["status"] == "done" and job.get("file_path"):
        body["downloadUrl"] = url_for("deck.download", job_id=job["id"])
    return body


@deck_bp.route("/generate", methods=["POST"])
def generate():
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return _error("Request body must be a JSON object", 400)
    data_json = payload.get("dataJson")
    if not isinstance(data_json, (dict, list)):
        return _error("dataJson must be a JSON object or array", 400)
    prompt = payload.get("prompt") or ""
    if not isinstance(prompt, str):
        return _error("prompt must be a string", 400)

    try:
        job = jobs_dal.create_job(prompt, data_json)
    except Exception as e:
        logger.exception("Could not create deck job")
        return _error(f"Could not create job: {e}", 500)
    return jsonify({"jobId": job["id"]})


@deck_bp.route("/status", methods=["GET"])
def status():
    job_id = (request.args.get("jobId") or "").strip()
    if not job_id:
        return _error("jobId is required", 400)
    try:
        job = jobs_dal.get_job(job_id)
        job = refresh_job_status(job)
    except jobs_dal.JobNotFoundError:
        return _error("Job not found", 404)
    except jobs_dal.InvalidTransitionError:
        # A concurrent poller already moved the job on; report what is stored.
        job = jobs_dal.get_job(job_id)
    except Exception as e:
        logger.exception("Status lookup failed for job %s", job_id)
        return _error(str(e), 500)
    return jsonify(_status_body(job))


@deck_bp.route("/worker", methods=["POST"])
def worker():
    if not _worker_authorized():
        return _error("Unauthorized", 401)
    try:
        job = jobs_dal.claim_next_pending_job()
        if job is None:
            return jsonify({"ok": True, "processedJobId": None, "error": None})
        result = process_one_job(job)
    except Exception as e:
        logger.exception("Worker run failed")
        return jsonify({"ok": False, "processedJobId": None, "error": str(e)}), 500
    result.setdefault("error", None)
    return jsonify(result)


@deck_bp.route("/download/<job_id>", methods=["GET"])
def download(job_id: str):
    try:
        job = jobs_dal.get_job(job_id)
    except jobs_dal.JobNotFoundError:
        return _error("Job not found", 404)
    if job["status"] != "done" or not job.get("file_path"):
        return _error("Deck is not ready", 404)

    data = deck_storage.load_deck(job["file_path"])
    if data is None:
        return _error("Deck file missing", 404)
    return send_file(
        BytesIO(data),
        mimetype=deck_storage.PPTX_CONTENT_TYPE,
        as_attachment=True,
        download_name=f"deck-{job_id}.pptx",
    )


__all__ = ["deck_bp"]
