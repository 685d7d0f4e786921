"""
Job store and translation memory registry.

Jobs are persisted individually keyed by job guid and addressable by their
external status (``req``, ``pending``, ``done``). Writing a job and updating
the memory of its language pair happen in a single transaction.
"""

import itertools
import threading
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from transmem.core import database as db
from transmem.core.models import Job, JobStatus, TranslationUnit, external_status
from transmem.core.tm import TranslationMemory
from transmem.logger import get_logger

logger = get_logger(__name__)


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def is_newer(a: Optional[str], b: Optional[str]) -> bool:
    """True if ISO timestamp ``a`` is later than ``b`` (a missing timestamp is the oldest)."""
    parsed_a, parsed_b = _parse_timestamp(a), _parse_timestamp(b)
    if parsed_a is None:
        return False
    if parsed_b is None:
        return True
    return parsed_a > parsed_b


class TMManager:
    """Entry point to the local cache: one memory per language pair plus the job store."""

    def __init__(self, context):
        self.context = context
        self._tms: Dict[Tuple[str, str], TranslationMemory] = {}
        self._lock = threading.Lock()
        self._regression_counter = itertools.count()

    def get_tm(self, source_lang: str, target_lang: str) -> TranslationMemory:
        key = (source_lang, target_lang)
        with self._lock:
            if key not in self._tms:
                self._tms[key] = TranslationMemory(self.context, source_lang, target_lang)
            return self._tms[key]

    # ============================================================
    # Job Store Operations
    # ============================================================

    def create_job_manifest(self) -> str:
        """Reserve a new job guid."""
        if self.context.regression:
            while True:
                job_guid = f"xxx{next(self._regression_counter)}xxx"
                if db.get_job(self.context.db_file, job_guid) is None:
                    return job_guid
        return uuid.uuid4().hex

    def write_job(self, job: Job, request: Optional[Job] = None):
        """Persist a job (and its request) and commit its units to memory."""
        if request is None and job.job_guid:
            request = self.get_job_request(job.job_guid)
        self.get_tm(job.source_lang, job.target_lang).commit_job(job, request)
        logger.info(f"Stored job {job.job_guid} {job.source_lang} -> {job.target_lang} "
                    f"({job.translation_provider}) status={job.status.value}")

    def get_job(self, job_guid: str) -> Optional[Job]:
        """Get a job with its translated units (or request units for a blocked job)."""
        row = db.get_job(self.context.db_file, job_guid)
        if row is None:
            return None
        status = JobStatus(row["status"])
        if status == JobStatus.BLOCKED:
            request = db.get_job_request(self.context.db_file, job_guid) or {}
            tus = [TranslationUnit.from_dict(tu) for tu in request.get("tus", [])]
        else:
            tus = [TranslationUnit.from_dict(tu) for tu in db.get_job_tus(self.context.db_file, job_guid)]
        return Job(
            job_guid=row["job_guid"],
            source_lang=row["source_lang"],
            target_lang=row["target_lang"],
            status=status,
            translation_provider=row["translation_provider"],
            tus=tuple(tus),
            inflight=tuple(row["inflight"]),
            original_job_guid=row["original_job_guid"],
            updated_at=row["updated_at"],
            job_props=row["job_props"],
        )

    def get_job_request(self, job_guid: str) -> Optional[Job]:
        request = db.get_job_request(self.context.db_file, job_guid)
        return Job.from_dict(request) if request else None

    def get_job_status_by_lang_pair(self, source_lang: str, target_lang: str) -> List[Tuple[str, str]]:
        """[(job_guid, external status)] for a language pair."""
        return [
            (row["job_guid"], external_status(row["status"]))
            for row in db.get_jobs_by_lang_pair(self.context.db_file, source_lang, target_lang)
        ]

    def get_available_lang_pairs(self) -> List[Tuple[str, str]]:
        return db.get_available_lang_pairs(self.context.db_file)

    def delete_job(self, job_guid: str) -> bool:
        row = db.get_job(self.context.db_file, job_guid)
        if row is None:
            return False
        self.get_tm(row["source_lang"], row["target_lang"]).delete_job(job_guid)
        return True

    # ============================================================
    # Sync Support
    # ============================================================

    def get_local_jobs(self, source_lang: str, target_lang: str) -> Dict[str, Dict[str, Any]]:
        """Jobs of a pair that can be exchanged with a TM store (pending or done)."""
        return {
            row["job_guid"]: row
            for row in db.get_jobs_by_lang_pair(self.context.db_file, source_lang, target_lang)
            if row["status"] in (JobStatus.PENDING.value, JobStatus.DONE.value)
        }

    def get_job_deltas(self, source_lang: str, target_lang: str, toc: Dict[str, Any]) -> List[Dict[str, Any]]:
        """
        Compare a TM store table of contents with the local jobs.

        Returns one delta per job that differs:
            {"block_id", "remote_job_guid", "remote_updated_at", "local_updated_at"} for
            remote jobs missing or different locally, and {"local_job_guid",
            "local_updated_at"} for local jobs the store does not know.
        """
        local_jobs = self.get_local_jobs(source_lang, target_lang)
        deltas = []
        remote_guids = set()
        for block_id, block in sorted((toc.get("blocks") or {}).items()):
            for job_guid, updated_at in block.get("jobs", []):
                remote_guids.add(job_guid)
                local = local_jobs.get(job_guid)
                local_updated_at = local["updated_at"] if local else None
                if local is None or local_updated_at != updated_at:
                    deltas.append({
                        "block_id": block_id,
                        "remote_job_guid": job_guid,
                        "remote_updated_at": updated_at,
                        "local_job_guid": job_guid if local else None,
                        "local_updated_at": local_updated_at,
                    })
        for job_guid in sorted(set(local_jobs) - remote_guids):
            deltas.append({
                "local_job_guid": job_guid,
                "local_updated_at": local_jobs[job_guid]["updated_at"],
            })
        return deltas
