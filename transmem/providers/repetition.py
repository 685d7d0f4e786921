"""
Repetition provider.

Reuses translations of identical strings: with the same id in another
resource (qualified match) or with a different id (unqualified match). The
reused translation gets the original quality minus the matching penalty.
"""

from dataclasses import replace
from typing import List, Optional, Tuple

from transmem.core.models import Job, TranslationUnit
from transmem.exceptions import IncompatibleTranslationError
from transmem.logger import get_logger
from transmem.normalization import normalized_strings_are_equal, source_and_target_are_compatible
from transmem.providers.base import LeverageProvider

logger = get_logger(__name__)


class RepetitionProvider(LeverageProvider):

    def __init__(self, context, id: str = "Repetition", tm_manager=None,
                 qualified_penalty: int = 1, unqualified_penalty: int = 9, **kwargs):
        super().__init__(context, id, tm_manager=tm_manager, **kwargs)
        self.qualified_penalty = qualified_penalty
        self.unqualified_penalty = unqualified_penalty

    def info(self):
        return {**super().info(),
                "qualified_penalty": self.qualified_penalty,
                "unqualified_penalty": self.unqualified_penalty}

    def adjusted_quality(self, tu: TranslationUnit, candidate: TranslationUnit) -> int:
        penalty = self.qualified_penalty if tu.sid == candidate.sid else self.unqualified_penalty
        return max(0, (candidate.q or 0) - penalty)

    def best_candidate(self, tu: TranslationUnit, candidates: List[TranslationUnit]) -> Optional[Tuple[TranslationUnit, int]]:
        """
        Pick the candidate with the highest adjusted quality, then the newest,
        then the lowest guid.
        """
        best, best_key = None, None
        for candidate in candidates:
            if candidate.inflight or candidate.ntgt is None:
                continue
            try:
                ensure_compatible(tu, candidate)
            except IncompatibleTranslationError as e:
                logger.warning(f"Skipping repetition candidate: {e}")
                continue
            q = self.adjusted_quality(tu, candidate)
            key = (q, candidate.ts or 0, _reverse(candidate.guid))
            if best_key is None or key > best_key:
                best, best_key = candidate, key
        return (best, best_key[0]) if best else None

    def translate_tus(self, job: Job) -> List[Tuple[TranslationUnit, TranslationUnit]]:
        tm = self.tm_manager.get_tm(job.source_lang, job.target_lang)
        results = []
        for tu in job.tus:
            if tu.nsrc is None:
                continue
            found = self.best_candidate(tu, tm.get_all_entries_by_src(tu.nsrc))
            if found is None:
                continue
            candidate, q = found
            existing = tm.get_entry_by_guid(tu.guid)
            if existing is not None and not existing.inflight and \
                    normalized_strings_are_equal(existing.ntgt, candidate.ntgt):
                logger.debug(f"Not leveraging {candidate.guid} for {tu.guid}: memory already has the same translation")
                continue
            if self.context.regression:
                ts = ((existing.ts or 0) if existing else 0) + 1
            else:
                ts = self.context.now_ms()
            leveraged = replace(tu.as_source(), ntgt=candidate.ntgt, q=q, ts=ts)
            logger.debug(f"Leveraged {candidate.guid} for {tu.guid} (q={q})")
            results.append((tu, leveraged))
        return results


def ensure_compatible(tu: TranslationUnit, candidate: TranslationUnit):
    """Raise IncompatibleTranslationError if the candidate target does not fit the source of ``tu``."""
    if not source_and_target_are_compatible(tu.nsrc, candidate.ntgt):
        raise IncompatibleTranslationError(
            f"Translation of {candidate.guid} is not compatible with source of {tu.guid}",
            code="incompatible", details={"guid": tu.guid, "candidate": candidate.guid},
        )


def _reverse(guid: str) -> Tuple[int, ...]:
    # Larger key for a smaller guid, so max() prefers the lowest guid
    return tuple(-ord(c) for c in guid) + (0,)
