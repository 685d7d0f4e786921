"""
Translation memory for one language pair.

The memory keeps, for every guid, the best translation unit seen so far:
an incoming unit replaces the current one only if its quality is strictly
higher, or equal with a newer timestamp. Entries are also indexed by their
structural (ordinal) source so that repetitions can be found.
"""

from dataclasses import replace
from typing import Any, Dict, Iterable, List, Optional, Sequence

from transmem.core import database as db
from transmem.core.identity import flatten_normalized_source_to_ordinal
from transmem.core.models import Job, JobStatus, TranslationUnit
from transmem.exceptions import ConsistencyError
from transmem.logger import get_logger
from transmem.normalization.parts import Part, parts_from_json

logger = get_logger(__name__)


def _flat_src(tu: Dict[str, Any]) -> Optional[str]:
    nsrc = tu.get("nsrc")
    if nsrc is None:
        return None
    return flatten_normalized_source_to_ordinal(parts_from_json(nsrc))


def should_replace(existing: Optional[Dict[str, Any]], incoming: Dict[str, Any]) -> bool:
    """Quality/recency rule deciding whether ``incoming`` becomes the current entry."""
    if existing is None:
        return True
    if existing.get("inflight"):
        return not incoming.get("inflight")
    if incoming.get("inflight"):
        return False
    existing_q, incoming_q = existing.get("q") or 0, incoming.get("q") or 0
    if incoming_q != existing_q:
        return incoming_q > existing_q
    return (incoming.get("ts") or 0) > (existing.get("ts") or 0)


class TranslationMemory:
    """Memory of one (source_lang, target_lang) pair, backed by the local sqlite cache."""

    def __init__(self, context, source_lang: str, target_lang: str):
        self.context = context
        self.source_lang = source_lang
        self.target_lang = target_lang

    def __repr__(self):
        return f"TranslationMemory({self.source_lang} -> {self.target_lang})"

    @property
    def db_file(self):
        return self.context.db_file

    @property
    def guids(self) -> List[str]:
        return db.get_tm_guids(self.db_file, self.source_lang, self.target_lang)

    def get_entry_by_guid(self, guid: str) -> Optional[TranslationUnit]:
        entry = db.get_tm_entry(self.db_file, self.source_lang, self.target_lang, guid)
        return TranslationUnit.from_dict(entry) if entry else None

    def get_all_entries_by_src(self, nsrc: Sequence[Part]) -> List[TranslationUnit]:
        """All current entries whose source has the same structure as ``nsrc``."""
        flat = flatten_normalized_source_to_ordinal(nsrc)
        entries = db.get_tm_entries_by_flat_src(self.db_file, self.source_lang, self.target_lang, flat)
        return [TranslationUnit.from_dict(e) for e in entries]

    def get_all_entries(self) -> List[TranslationUnit]:
        return [TranslationUnit.from_dict(e) for e in db.get_tm_entries(self.db_file, self.source_lang, self.target_lang)]

    def get_quality_histogram(self) -> Dict[int, int]:
        return db.get_tm_quality_histogram(self.db_file, self.source_lang, self.target_lang)

    # ============================================================
    # Commit
    # ============================================================

    def commit_job(self, job: Job, request: Optional[Job] = None):
        """
        Persist a job and apply its units to the memory in one transaction.

        Translated units are merged with the source fields of the matching
        request unit. Guids still in flight get a zero-quality marker entry
        unless they already have an entry.

        Raises:
            ConsistencyError: If the job belongs to another pair or was already done
        """
        if (job.source_lang, job.target_lang) != (self.source_lang, self.target_lang):
            raise ConsistencyError(
                f"Job {job.job_guid} is {job.source_lang} -> {job.target_lang}, not {self!r}",
                code="wrong_lang_pair",
            )
        if job.status not in (JobStatus.BLOCKED, JobStatus.PENDING, JobStatus.DONE):
            raise ConsistencyError(f"Cannot store job {job.job_guid} with status {job.status.value}",
                                   code="unstorable_status")

        requested = {tu.guid: tu for tu in request.tus} if request else {}
        translations: List[Dict[str, Any]] = []
        markers: List[Dict[str, Any]] = []
        if job.status != JobStatus.BLOCKED:
            for tu in job.tus:
                base = requested.get(tu.guid) or tu
                merged = base.as_source().merged_with(tu.as_target())
                merged = replace(merged, job_guid=job.job_guid,
                                 translation_provider=tu.translation_provider or job.translation_provider)
                translations.append(merged.to_dict())
            for guid in job.inflight:
                base = requested.get(guid) or TranslationUnit(guid=guid)
                marker = replace(base.as_source(), q=0, ts=0, inflight=True, job_guid=job.job_guid,
                                 translation_provider=job.translation_provider)
                markers.append(marker.to_dict())

        with db.get_connection(self.db_file) as conn:
            cursor = conn.cursor()
            existing_job = db.get_job_status_row(cursor, job.job_guid)
            if existing_job and existing_job["status"] == JobStatus.DONE.value:
                raise ConsistencyError(f"Job {job.job_guid} is done and cannot be rewritten",
                                       code="job_done", details={"job_guid": job.job_guid})

            db.upsert_job(cursor, {
                "job_guid": job.job_guid,
                "source_lang": job.source_lang,
                "target_lang": job.target_lang,
                "translation_provider": job.translation_provider,
                "status": job.status.value,
                "updated_at": job.updated_at,
                "original_job_guid": job.original_job_guid,
                "inflight": list(job.inflight),
                "job_props": job.job_props,
            })
            if job.status == JobStatus.BLOCKED:
                db.upsert_job_request(cursor, job.job_guid, job.to_dict())
            elif request is not None:
                db.upsert_job_request(cursor, job.job_guid, request.to_dict())

            previous_guids = db.replace_job_tus(cursor, job.job_guid, translations + markers)

            replaced = 0
            for tu in translations:
                current = db.get_tm_entry_row(cursor, self.source_lang, self.target_lang, tu["guid"])
                if should_replace(current, tu):
                    db.put_tm_entry(cursor, self.source_lang, self.target_lang, tu, _flat_src(tu))
                    replaced += 1
            for marker in markers:
                if db.get_tm_entry_row(cursor, self.source_lang, self.target_lang, marker["guid"]) is None:
                    db.put_tm_entry(cursor, self.source_lang, self.target_lang, marker, _flat_src(marker))

            current_guids = {tu["guid"] for tu in translations + markers}
            self._rebuild_entries(cursor, job.job_guid, set(previous_guids) - current_guids)

        logger.debug(f"Committed job {job.job_guid} ({job.status.value}) to {self!r}: "
                     f"{len(translations)} translations, {replaced} entries updated, {len(markers)} in flight")

    def delete_job(self, job_guid: str):
        """Remove a job and fall back to the best remaining unit for each of its guids."""
        with db.get_connection(self.db_file) as conn:
            cursor = conn.cursor()
            previous_guids = db.delete_job_rows(cursor, job_guid)
            self._rebuild_entries(cursor, job_guid, set(previous_guids))
        logger.info(f"Deleted job {job_guid} from {self!r}")

    def _rebuild_entries(self, cursor, job_guid: str, guids: Iterable[str]):
        """Recompute the entries that pointed at units no longer held by ``job_guid``."""
        for guid in sorted(guids):
            current = db.get_tm_entry_row(cursor, self.source_lang, self.target_lang, guid)
            if current is not None and current["job_guid"] != job_guid:
                continue
            best = db.get_best_job_tu(cursor, self.source_lang, self.target_lang, guid)
            if best is None:
                if current is not None:
                    db.delete_tm_entry(cursor, self.source_lang, self.target_lang, guid)
            elif current is None or current["job_guid"] != best.get("job_guid") or current["q"] != best.get("q"):
                db.put_tm_entry(cursor, self.source_lang, self.target_lang, best, _flat_src(best))
