"""
TM store synchronization module.

This module keeps the local cache consistent with remote TM stores:
- Sync down: fetch remote blocks holding jobs missing or older locally
- Sync up: write local jobs missing or older remotely
- Both directions compute their plan from persisted state only, so a failed
  run simply leaves a smaller diff for the next one
"""

from collections import defaultdict
from typing import Any, Dict, Iterable, List, Optional, Tuple

from transmem.core import database as db
from transmem.core.identity import generate_guid
from transmem.core.models import Job, JobStatus, TranslationUnit
from transmem.core.tm_manager import TMManager, is_newer
from transmem.exceptions import ConfigurationError
from transmem.logger import get_logger

logger = get_logger(__name__)


class SyncDownPlan:
    """Container for sync down planning results."""

    def __init__(self, source_lang: str, target_lang: str):
        self.source_lang = source_lang
        self.target_lang = target_lang
        self.blocks_to_store: List[str] = []
        self.jobs_to_delete: List[str] = []

    @property
    def is_empty(self) -> bool:
        return not self.blocks_to_store and not self.jobs_to_delete

    def __str__(self):
        return (f"SyncDownPlan({self.source_lang}->{self.target_lang}, "
                f"blocks_to_store={len(self.blocks_to_store)}, "
                f"jobs_to_delete={len(self.jobs_to_delete)})")


class SyncUpPlan:
    """Container for sync up planning results."""

    def __init__(self, source_lang: str, target_lang: str):
        self.source_lang = source_lang
        self.target_lang = target_lang
        self.blocks_to_update: List[Tuple[str, List[str]]] = []  # (block_id, job guids to replace)
        self.jobs_to_update: List[str] = []  # job guids unknown to the store

    @property
    def is_empty(self) -> bool:
        return not self.blocks_to_update and not self.jobs_to_update

    def __str__(self):
        return (f"SyncUpPlan({self.source_lang}->{self.target_lang}, "
                f"blocks_to_update={len(self.blocks_to_update)}, "
                f"jobs_to_update={len(self.jobs_to_update)})")


def ensure_readable(store):
    """Reject write-only stores before anything is read from them."""
    if store.access == "writeonly":
        raise ConfigurationError(f"Cannot sync down from write-only TM store {store.id}",
                                 code="store_writeonly", details={"store": store.id})


def ensure_writable(store):
    """Reject read-only stores, dry runs included."""
    if store.access == "readonly":
        raise ConfigurationError(f"Cannot sync up to read-only TM store {store.id}",
                                 code="store_readonly", details={"store": store.id})


# ============================================================
# Sync Down
# ============================================================

def prepare_sync_down(tmm: TMManager, store, source_lang: str, target_lang: str) -> SyncDownPlan:
    """
    Work out which remote blocks to fetch and which local jobs the store lacks.

    A block is fetched when at least one of its jobs is missing locally or
    newer remotely.
    """
    ensure_readable(store)
    toc = store.get_toc(source_lang, target_lang)
    plan = SyncDownPlan(source_lang, target_lang)
    blocks = set()
    for delta in tmm.get_job_deltas(source_lang, target_lang, toc):
        if "block_id" in delta:
            if delta["local_job_guid"] is None or is_newer(delta["remote_updated_at"], delta["local_updated_at"]):
                blocks.add(delta["block_id"])
        else:
            plan.jobs_to_delete.append(delta["local_job_guid"])
    plan.blocks_to_store = sorted(blocks)
    logger.info(f"Prepared sync down from {store.id}: {plan}")
    return plan


def job_from_block_entry(job_props: Dict[str, Any], tus: Iterable[Dict[str, Any]]) -> Tuple[Job, Optional[Job]]:
    """Rebuild a job (and the request of its in-flight units) from a block entry."""
    translations, inflight_tus = [], []
    for tu in tus:
        unit = TranslationUnit.from_dict(tu)
        (inflight_tus if unit.inflight else translations).append(unit)

    job = Job.from_dict({**job_props, "tus": []}).with_tus(translations)
    request = None
    if inflight_tus:
        request = Job(
            job_guid=job.job_guid,
            source_lang=job.source_lang,
            target_lang=job.target_lang,
            status=JobStatus.CREATED,
            translation_provider=job.translation_provider,
            tus=tuple(tu.as_source() for tu in inflight_tus),
        )
    return job, request


def sync_down(tmm: TMManager, store, plan: SyncDownPlan, delete: bool = False) -> Dict[str, int]:
    """
    Apply a sync down plan.

    Jobs the store does not know are only removed when ``delete`` is set.
    """
    stats = {"blocks": 0, "jobs_stored": 0, "jobs_skipped": 0, "jobs_deleted": 0}
    source_lang, target_lang = plan.source_lang, plan.target_lang

    if plan.blocks_to_store:
        local_jobs = tmm.get_local_jobs(source_lang, target_lang)
        for job_props, tus in store.get_tm_blocks(source_lang, target_lang, plan.blocks_to_store):
            job, request = job_from_block_entry(job_props, tus)
            local = local_jobs.get(job.job_guid)
            if local and not is_newer(job.updated_at, local["updated_at"]):
                stats["jobs_skipped"] += 1
                continue
            if local and local["status"] == JobStatus.DONE.value:
                # A done job is replaced as a whole by its newer remote version
                tmm.delete_job(job.job_guid)
            tmm.write_job(job, request)
            stats["jobs_stored"] += 1
        stats["blocks"] = len(plan.blocks_to_store)

    if plan.jobs_to_delete:
        if delete:
            for job_guid in plan.jobs_to_delete:
                tmm.delete_job(job_guid)
                stats["jobs_deleted"] += 1
        else:
            logger.warning(f"{len(plan.jobs_to_delete)} local jobs are not in the TM store, "
                           f"use delete to remove them: {', '.join(plan.jobs_to_delete)}")

    logger.info(f"Sync down {source_lang}->{target_lang} from {store.id}: {stats}")
    return stats


# ============================================================
# Sync Up
# ============================================================

def prepare_sync_up(tmm: TMManager, store, source_lang: str, target_lang: str,
                    newer_only: bool = False) -> SyncUpPlan:
    """
    Work out which local jobs need to reach the store.

    Jobs the store lacks become ``jobs_to_update``; blocks holding an older
    version of a local job become ``blocks_to_update``. With ``newer_only``
    new jobs are only pushed if updated after the newest job in the store.
    """
    ensure_writable(store)
    toc = store.get_toc(source_lang, target_lang)
    plan = SyncUpPlan(source_lang, target_lang)
    by_block: Dict[str, List[str]] = defaultdict(list)
    local_jobs = tmm.get_local_jobs(source_lang, target_lang)

    for delta in tmm.get_job_deltas(source_lang, target_lang, toc):
        if "block_id" in delta:
            if delta["local_job_guid"] and is_newer(delta["local_updated_at"], delta["remote_updated_at"]):
                by_block[delta["block_id"]].append(delta["local_job_guid"])
        else:
            plan.jobs_to_update.append(delta["local_job_guid"])

    if newer_only:
        high_water_mark = None
        for block in (toc.get("blocks") or {}).values():
            for _, updated_at in block.get("jobs", []):
                if is_newer(updated_at, high_water_mark):
                    high_water_mark = updated_at
        plan.jobs_to_update = [
            job_guid for job_guid in plan.jobs_to_update
            if is_newer(local_jobs[job_guid]["updated_at"], high_water_mark)
        ]

    plan.blocks_to_update = sorted((block_id, sorted(guids)) for block_id, guids in by_block.items())
    logger.info(f"Prepared sync up to {store.id}: {plan}")
    return plan


def export_job(tmm: TMManager, job_guid: str) -> Tuple[Dict[str, Any], List[Dict[str, Any]]]:
    """(job_props, tus) for a local job, in-flight markers included."""
    job = tmm.get_job(job_guid)
    job_props = job.to_dict()
    job_props.pop("tus", None)
    return job_props, db.get_job_tus(tmm.context.db_file, job_guid, include_inflight=True)


def _new_block_id(job_guids: Iterable[str]) -> str:
    return generate_guid("|".join(sorted(job_guids)))[:20]


def sync_up(tmm: TMManager, store, plan: SyncUpPlan) -> Dict[str, int]:
    """
    Apply a sync up plan.

    Raises:
        ConfigurationError: If the store is read only
    """
    ensure_writable(store)
    stats = {"blocks_updated": 0, "blocks_created": 0, "jobs_written": 0}
    source_lang, target_lang = plan.source_lang, plan.target_lang

    with store.get_writer(source_lang, target_lang) as writer:
        for block_id, job_guids in plan.blocks_to_update:
            entries = {
                job_props["job_guid"]: (job_props, tus)
                for job_props, tus in store.get_tm_blocks(source_lang, target_lang, [block_id])
            }
            for job_guid in job_guids:
                entries[job_guid] = export_job(tmm, job_guid)
            writer.write_block(block_id, list(entries.values()))
            stats["blocks_updated"] += 1
            stats["jobs_written"] += len(job_guids)

        for block_id, job_guids in partition_jobs(tmm, store.partitioning, plan.jobs_to_update):
            writer.write_block(block_id, [export_job(tmm, job_guid) for job_guid in job_guids])
            stats["blocks_created"] += 1
            stats["jobs_written"] += len(job_guids)

    logger.info(f"Sync up {source_lang}->{target_lang} to {store.id}: {stats}")
    return stats


def partition_jobs(tmm: TMManager, partitioning: str, job_guids: List[str]) -> List[Tuple[str, List[str]]]:
    """Group new jobs into blocks: one per job, one per provider or one for the whole pair."""
    if not job_guids:
        return []
    if partitioning == "job":
        return [(job_guid, [job_guid]) for job_guid in job_guids]
    if partitioning == "provider":
        groups: Dict[str, List[str]] = defaultdict(list)
        for job_guid in job_guids:
            row = db.get_job(tmm.context.db_file, job_guid)
            groups[row["translation_provider"] or "default"].append(job_guid)
        return [(_new_block_id(guids), guids) for _, guids in sorted(groups.items())]
    if partitioning == "language":
        return [(_new_block_id(job_guids), list(job_guids))]
    raise ConfigurationError(f"Unknown TM store partitioning: {partitioning}", code="bad_partitioning")
