"""
File bridge provider.

Asynchronous provider exchanging files with an external translation process:
requests are written to ``<bridge_dir>/outbox/<target_lang>/<job_guid>.json``
and translations are picked up from ``<bridge_dir>/inbox/<target_lang>/<job_guid>.json``,
which holds ``{"translations": {guid: text}}`` with v1 placeholders.
Translations may arrive a few at a time. The exchange stays keyed by the guid
of the job that was sent, kept in ``job_props["bridge_job_guid"]``, so the
pending job left over by a partial pull keeps reading the same inbox.
"""

import json
from dataclasses import replace
from pathlib import Path
from typing import Optional, Union

from transmem.core.models import Job
from transmem.logger import get_logger
from transmem.normalization import (
    extract_normalized_parts_v1,
    flatten_normalized_source_v1,
    source_and_target_are_compatible,
)
from transmem.providers.base import TranslationProvider

logger = get_logger(__name__)


class FileBridgeProvider(TranslationProvider):

    def __init__(self, context, id: str = "Bridge", bridge_dir: Union[str, Path] = "bridge",
                 quality: int = 60, **kwargs):
        super().__init__(context, id, quality=quality, **kwargs)
        self.bridge_dir = context.resolve_path(bridge_dir)

    def info(self):
        return {**super().info(), "bridge_dir": str(self.bridge_dir)}

    @staticmethod
    def exchange_guid(job: Job) -> str:
        return job.job_props.get("bridge_job_guid") or job.job_guid

    def outbox_path(self, job: Job) -> Path:
        return self.bridge_dir / "outbox" / job.target_lang / f"{self.exchange_guid(job)}.json"

    def inbox_path(self, job: Job) -> Path:
        return self.bridge_dir / "inbox" / job.target_lang / f"{self.exchange_guid(job)}.json"

    def request_translations(self, job: Job) -> Job:
        request = {
            "job_guid": job.job_guid,
            "source_lang": job.source_lang,
            "target_lang": job.target_lang,
            "tus": [
                {"guid": tu.guid, "rid": tu.rid, "sid": tu.sid,
                 "src": flatten_normalized_source_v1(tu.nsrc or [])[0], "notes": tu.notes}
                for tu in job.tus
            ],
        }
        path = self.outbox_path(job)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(request, f, ensure_ascii=False, indent=2)
        logger.info(f"{self.id}: wrote {len(job.tus)} units of job {job.job_guid} to {path}")
        response = self.make_response(job, [], inflight=job.guids)
        return replace(response, job_props={**response.job_props, "bridge_job_guid": job.job_guid})

    def fetch_translations(self, pending_job: Job, job_request: Job) -> Optional[Job]:
        path = self.inbox_path(pending_job)
        if not path.exists():
            logger.info(f"{self.id}: waiting for job {pending_job.job_guid} to complete on path {path}")
            return None
        with open(path, 'r', encoding='utf-8') as f:
            translations = json.load(f).get("translations", {})

        requested = {tu.guid: tu for tu in job_request.tus}
        ts = 1 if self.context.regression else self.context.now_ms()
        tus, inflight = [], []
        for guid in pending_job.inflight:
            text = translations.get(guid)
            tu = requested.get(guid)
            if text is None or tu is None:
                inflight.append(guid)
                continue
            ph_map = flatten_normalized_source_v1(tu.nsrc or [])[1]
            try:
                ntgt = extract_normalized_parts_v1(text, ph_map)
            except KeyError as e:
                logger.warning(f"{self.id}: unknown placeholder {e} in translation of {guid}, keeping it in flight")
                inflight.append(guid)
                continue
            if not source_and_target_are_compatible(tu.nsrc, ntgt):
                logger.warning(f"{self.id}: translation of {guid} does not match its source, keeping it in flight")
                inflight.append(guid)
                continue
            tus.append(replace(tu.as_source(), ntgt=tuple(ntgt), q=self.quality, ts=ts))

        if not tus:
            return None
        logger.info(f"{self.id}: job {pending_job.job_guid} has {len(tus)} new translations, {len(inflight)} in flight")
        return self.make_response(pending_job, tus, inflight=inflight)
