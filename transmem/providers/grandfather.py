"""
Grandfather provider.

Translations already deployed in the translated resources but missing from
the memory are assumed to be in sync with the source and are imported at
the configured quality, stamped with the time the deployed resource was
last modified.
"""

from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from transmem.core.models import Job, Segment, TranslationUnit
from transmem.logger import get_logger
from transmem.normalization import source_and_target_are_compatible
from transmem.providers.base import LeverageProvider

logger = get_logger(__name__)


class GrandfatherProvider(LeverageProvider):

    def __init__(self, context, id: str = "Grandfather", tm_manager=None, resource_manager=None,
                 quality: int = 70, **kwargs):
        super().__init__(context, id, tm_manager=tm_manager, quality=quality, **kwargs)
        self.resource_manager = resource_manager

    def _load_translated_resource(self, rid: str, target_lang: str) -> Tuple[Dict[str, Segment], int]:
        """Deployed segments by sid and the timestamp their translations get."""
        try:
            resource = self.resource_manager.get_existing_translated_resource(rid, target_lang)
        except (OSError, ValueError) as e:
            logger.info(f"Couldn't fetch translated resource {rid} for {target_lang}: {e}")
            return {}, 1
        return {seg.sid: seg for seg in resource["segments"]}, self._resource_ts(resource.get("modified"))

    def _resource_ts(self, modified: Optional[str]) -> int:
        if self.context.regression:
            return 1
        if not modified:
            return self.context.now_ms()
        return int(datetime.fromisoformat(modified).timestamp() * 1000)

    def translate_tus(self, job: Job) -> List[Tuple[TranslationUnit, TranslationUnit]]:
        tm = self.tm_manager.get_tm(job.source_lang, job.target_lang)
        cache: Dict[str, Tuple[Dict[str, Segment], int]] = {}
        results = []
        for tu in job.tus:
            existing = tm.get_entry_by_guid(tu.guid)
            if existing is not None and not existing.inflight and tu.ntgt is None:
                continue
            if tu.rid not in cache:
                cache[tu.rid] = self._load_translated_resource(tu.rid, job.target_lang)
            segments, ts = cache[tu.rid]
            previous = segments.get(tu.sid)
            if previous is None:
                continue
            if not source_and_target_are_compatible(tu.nsrc, previous.nstr):
                logger.debug(f"Deployed translation of {tu.rid}:{tu.sid} does not match its source, skipping")
                continue
            results.append((tu, replace(tu.as_source(), ntgt=tuple(previous.nstr), q=self.quality, ts=ts)))
        logger.info(f"Grandfathering {job.target_lang}: {len(results)} of {len(job.tus)} units found in deployed resources")
        return results
