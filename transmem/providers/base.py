"""
Translation provider contract.

A provider receives a job in status ``created`` and answers with a job in
status ``done`` (everything translated), ``pending`` (translations will come
later, listed in ``inflight``) or with no units at all when it has nothing
to offer.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional, Tuple

from transmem.core.models import Job, JobStatus, TranslationUnit, transition
from transmem.exceptions import ProviderError
from transmem.normalization import normalized_strings_are_equal
from transmem.logger import get_logger

logger = get_logger(__name__)


class TranslationProvider(ABC):
    """
    Base class of every provider.

    Attributes:
        id: Name used to pick the provider (case insensitive)
        pairs: ``{source_lang: [target_lang, ...]}`` or None for any pair
        quota: Maximum number of units per job, None for no limit
        minimum_job_size: Jobs with fewer units are not sent
        cost_per_word: Optional cost estimate
        quality: Quality assigned to the translations it returns
    """

    def __init__(self, context, id: str, pairs: Optional[Dict[str, List[str]]] = None,
                 quota: Optional[int] = None, minimum_job_size: int = 0,
                 cost_per_word: Optional[float] = None, quality: Optional[int] = None):
        self.context = context
        self.id = id
        self.pairs = pairs
        self.quota = quota
        self.minimum_job_size = minimum_job_size or 0
        self.cost_per_word = cost_per_word
        self.quality = quality

    def __repr__(self):
        return f"{type(self).__name__}({self.id})"

    def supports_pair(self, source_lang: str, target_lang: str) -> bool:
        if self.pairs is None:
            return True
        return target_lang in (self.pairs.get(source_lang) or [])

    def info(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": type(self).__name__,
            "pairs": self.pairs,
            "quota": self.quota,
            "minimum_job_size": self.minimum_job_size,
            "cost_per_word": self.cost_per_word,
            "quality": self.quality,
        }

    @abstractmethod
    def request_translations(self, job: Job) -> Job:
        """Translate the units of a job in status ``created``."""

    def fetch_translations(self, pending_job: Job, job_request: Job) -> Optional[Job]:
        """Collect the translations of a pending job; None if nothing changed."""
        raise ProviderError(f"{self.id} is a synchronous provider and has no pending jobs",
                            code="fetch_unsupported", details={"provider": self.id})

    def refresh_translations(self, job: Job) -> Job:
        """Re-translate a job whose units carry their current translation."""
        raise ProviderError(f"{self.id} does not support refreshing translations",
                            code="refresh_unsupported", details={"provider": self.id})

    # ============================================================
    # Helpers for subclasses
    # ============================================================

    def make_response(self, job: Job, tus: Iterable[TranslationUnit],
                      inflight: Iterable[str] = ()) -> Job:
        """Response to ``job``: done, or pending if some guids stay in flight."""
        inflight = tuple(inflight)
        status = JobStatus.PENDING if inflight else JobStatus.DONE
        return transition(job, status, tus=tuple(tus), inflight=inflight, translation_provider=self.id)


class LeverageProvider(TranslationProvider):
    """
    Provider producing translations from what is already known locally.

    Subclasses implement ``translate_tu``; refreshing only reports units whose
    new translation differs from the current one.
    """

    def __init__(self, context, id: str, tm_manager=None, **kwargs):
        super().__init__(context, id, **kwargs)
        self.tm_manager = tm_manager

    @abstractmethod
    def translate_tus(self, job: Job) -> List[Tuple[TranslationUnit, TranslationUnit]]:
        """[(request tu, translated tu)] for the units the provider can translate."""

    def request_translations(self, job: Job) -> Job:
        tus = [translated for _, translated in self.translate_tus(job)]
        logger.info(f"{self.id} leveraged {len(tus)} of {len(job.tus)} units "
                    f"({job.source_lang} -> {job.target_lang})")
        return self.make_response(job, tus)

    def refresh_translations(self, job: Job) -> Job:
        tus = [
            translated for request_tu, translated in self.translate_tus(job)
            if not normalized_strings_are_equal(request_tu.ntgt, translated.ntgt)
        ]
        logger.info(f"{self.id} refreshed {len(tus)} of {len(job.tus)} units")
        return self.make_response(job, tus)
