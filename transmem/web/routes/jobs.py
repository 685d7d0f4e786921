"""Job store API routes."""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify

from transmem.logger import get_logger

jobs_bp = Blueprint("jobs", __name__)
logger = get_logger(__name__)


@jobs_bp.get("/<source_lang>/<target_lang>")
def list_jobs(source_lang: str, target_lang: str):
    """Jobs of a language pair with their external status."""
    engine = current_app.config["ENGINE"]
    jobs = [
        {"job_guid": job_guid, "status": status}
        for job_guid, status in engine.tm_manager.get_job_status_by_lang_pair(source_lang, target_lang)
    ]
    return jsonify({"source_lang": source_lang, "target_lang": target_lang, "jobs": jobs})


@jobs_bp.get("/<job_guid>")
def get_job(job_guid: str):
    engine = current_app.config["ENGINE"]
    job = engine.tm_manager.get_job(job_guid)
    if job is None:
        logger.warning("Job %s not found", job_guid)
        return jsonify({"error": f"Job {job_guid} not found"}), 404
    request_job = engine.tm_manager.get_job_request(job_guid)
    return jsonify({
        "job": job.to_dict(),
        "request": request_job.to_dict() if request_job else None,
    })
