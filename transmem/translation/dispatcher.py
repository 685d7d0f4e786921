"""
Dispatcher Module

Coordinates the translation workflow for every target language:
- Find the units that need a translation (or pick them by guid)
- Select a provider and send them, or block the job if over quota
- Pull pending jobs from asynchronous providers, splitting partial results
- Commit every outcome to the job store and the memory
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from transmem.core.identity import flatten_normalized_source_to_ordinal
from transmem.core.models import Job, JobStatus, TranslationUnit, transition
from transmem.exceptions import ConfigurationError, ConsistencyError, ProviderError
from transmem.logger import get_logger
from transmem.normalization import count_words, plain_text, source_and_target_are_compatible
from transmem.providers.base import TranslationProvider
from transmem.resources.manager import make_tu
from transmem.translation.stats import ProjectLeverage

logger = get_logger(__name__)

TuFilter = Callable[[TranslationUnit], bool]


class Dispatcher:
    """
    Moves translation units between sources, providers and the memory.

    Language pairs are independent and may run concurrently
    (``config["parallelism"]``); work within a pair is sequential.
    """

    def __init__(self, context, tm_manager, resource_manager, providers: Sequence[TranslationProvider]):
        self.context = context
        self.tm_manager = tm_manager
        self.resource_manager = resource_manager
        self.providers: List[TranslationProvider] = list(providers)

    @property
    def source_lang(self) -> str:
        return self.context.source_lang

    def get_target_langs(self, target_langs: Optional[Sequence[str]] = None) -> List[str]:
        configured = self.context.target_langs
        if not target_langs:
            return configured
        invalid = [lang for lang in target_langs if lang not in configured]
        if invalid:
            raise ConfigurationError(f"Invalid languages: {', '.join(invalid)}",
                                     code="invalid_languages", details={"languages": invalid})
        return list(target_langs)

    def get_provider(self, source_lang: str, target_lang: str,
                     provider_name: Optional[str] = None) -> TranslationProvider:
        """
        Find a provider by name (case insensitive) or the first one covering the pair.

        Raises:
            ConfigurationError: If no provider matches
        """
        if provider_name:
            for provider in self.providers:
                if provider.id.lower() == provider_name.lower():
                    return provider
            raise ConfigurationError(f"No {provider_name} translation provider configured",
                                     code="provider_not_found", details={"provider": provider_name})
        for provider in self.providers:
            if provider.supports_pair(source_lang, target_lang):
                return provider
        raise ConfigurationError(f"No translation provider configured for {source_lang} -> {target_lang}",
                                 code="provider_not_found",
                                 details={"source_lang": source_lang, "target_lang": target_lang})

    def _map_langs(self, fn, target_langs: List[str]) -> List[Any]:
        """Run ``fn(target_lang)`` for every language, concurrently if configured."""
        parallelism = int(self.context.config.get("parallelism") or 1)
        if parallelism > 1 and len(target_langs) > 1:
            with ThreadPoolExecutor(max_workers=min(parallelism, len(target_langs))) as executor:
                return list(executor.map(fn, target_langs))
        return [fn(target_lang) for target_lang in target_langs]

    # ============================================================
    # Job preparation
    # ============================================================

    def _prepare(self, target_lang: str, minimum_quality: Optional[int] = None,
                 leverage: bool = False) -> Tuple[Job, Dict[str, Any]]:
        if minimum_quality is None:
            minimum_quality = self.context.config.get("minimum_quality")
        if minimum_quality is None:
            raise ConfigurationError("You must specify a minimum quality in your config", code="minimum_quality")

        tm = self.tm_manager.get_tm(self.source_lang, target_lang)
        prj_leverage: Dict[str, ProjectLeverage] = {}
        repetitions = set()
        tus = []
        num_sources = 0

        for res in self.resource_manager.get_all_resources():
            num_sources += 1
            leverage_details = prj_leverage.setdefault(res.get("prj") or "default", ProjectLeverage())
            if target_lang == self.source_lang:
                continue
            for seg in res["segments"]:
                entry = tm.get_entry_by_guid(seg.guid)
                tu = make_tu(res, seg)
                text = plain_text(seg.nstr)
                words = count_words(seg.nstr)
                compatible = entry is not None and source_and_target_are_compatible(tu.nsrc, entry.ntgt)

                if entry is None or (not entry.inflight and (not compatible or (entry.q or 0) < minimum_quality)):
                    flat = flatten_normalized_source_to_ordinal(seg.nstr)
                    # The same source already translated or queued makes this an internal repetition
                    if any(e.guid != seg.guid and (e.q or 0) >= minimum_quality and not e.inflight
                           for e in tm.get_all_entries_by_src(seg.nstr)):
                        repetitions.add(flat)
                    if flat in repetitions:
                        leverage_details.internal_repetitions += 1
                        leverage_details.internal_repetition_words += words
                        if not leverage:
                            tus.append(tu)
                    else:
                        repetitions.add(flat)
                        tus.append(tu)
                        leverage_details.untranslated += 1
                        leverage_details.untranslated_chars += len(text)
                        leverage_details.untranslated_words += words
                elif entry.inflight:
                    leverage_details.pending += 1
                    leverage_details.pending_words += words
                else:
                    leverage_details.add_translated(entry.q or 0, words)

        job = Job(source_lang=self.source_lang, target_lang=target_lang, tus=tuple(tus))
        estimate = {
            "tm_size": len(tm.guids),
            "minimum_quality": minimum_quality,
            "prj_leverage": {prj: stats.to_dict() for prj, stats in sorted(prj_leverage.items())},
            "num_sources": num_sources,
        }
        return job, estimate

    def prepare_translation_job(self, target_lang: str, minimum_quality: Optional[int] = None,
                                leverage: bool = False) -> Job:
        """
        Job body with every unit lacking a usable translation.

        A unit is included when the memory has no entry for it, or the entry is
        not in flight and is either incompatible with the source or below the
        minimum quality. With ``leverage`` set, repetitions of a source already
        included or translated are left out so that a leverage provider can
        fill them afterwards.
        """
        return self._prepare(target_lang, minimum_quality, leverage)[0]

    def estimate(self, target_lang: str) -> Dict[str, Any]:
        """Leverage statistics of a language, per project."""
        return self._prepare(target_lang)[1]

    def prepare_filter_based_job(self, target_lang: str, tm_based: bool = False,
                                 guid_list: Optional[Sequence[str]] = None) -> Job:
        """
        Job body with the units named by ``guid_list``.

        Without a list, every guid of the memory (``tm_based``) or of the
        sources is used. Units carry both their source and their current
        translation so that filters and refreshes have everything at hand.
        """
        tm = self.tm_manager.get_tm(self.source_lang, target_lang)
        source_lookup = self.resource_manager.get_source_tus()
        if guid_list is None:
            guid_list = tm.guids if tm_based else list(source_lookup)

        tus = []
        for guid in guid_list:
            source_tu = source_lookup.get(guid)
            entry = tm.get_entry_by_guid(guid)
            if source_tu and entry:
                tus.append(source_tu.merged_with(entry))
            elif source_tu or entry:
                tus.append(source_tu or entry)
            else:
                logger.warning(f"Guid {guid} not found in sources nor in memory of {target_lang}")
        return Job(source_lang=self.source_lang, target_lang=target_lang, tus=tuple(tus))

    # ============================================================
    # Job processing
    # ============================================================

    def process_job(self, response: Optional[Job], request: Optional[Job] = None) -> Job:
        """
        Persist the outcome of a provider call.

        - request and an empty response: the job is cancelled, nothing is written
        - request in status ``created`` with no response: cancelled as well
        - otherwise both are stamped with ``updated_at`` and written

        Returns:
            The job as written (or the cancelled job)
        """
        if request is not None and response is not None and not response.tus and not response.inflight:
            logger.info(f"Job {request.job_guid} got nothing from {response.translation_provider}, cancelling it")
            return transition(request, JobStatus.CANCELLED)
        if request is not None and response is None and request.status == JobStatus.CREATED:
            return transition(request, JobStatus.CANCELLED)

        updated_at = self.context.updated_at()
        if response is None:
            request = replace(request, updated_at=updated_at)
            self.tm_manager.write_job(request, request)
            return request

        response = replace(response, updated_at=updated_at)
        if request is not None:
            accepted = set(response.guids) | set(response.inflight)
            request = replace(request, updated_at=updated_at,
                              tus=tuple(tu for tu in request.tus if tu.guid in accepted))
        self.tm_manager.write_job(response, request)
        return response

    # ============================================================
    # Push
    # ============================================================

    def push(self, target_langs: Optional[Sequence[str]] = None, provider_name: Optional[str] = None,
             guid_list: Optional[Sequence[str]] = None, tu_filter: Optional[TuFilter] = None,
             refresh: bool = False, leverage: bool = False, dry_run: bool = False,
             tm_based: bool = False) -> List[Dict[str, Any]]:
        """
        Create and send a job for every target language.

        Returns:
            One status dict per language that had something to send
        """
        target_langs = self.get_target_langs(target_langs)

        def push_lang(target_lang):
            return self._push_lang(target_lang, provider_name, guid_list, tu_filter,
                                   refresh, leverage, dry_run, tm_based)

        return [status for status in self._map_langs(push_lang, target_langs) if status is not None]

    def _push_lang(self, target_lang: str, provider_name: Optional[str], guid_list: Optional[Sequence[str]],
                   tu_filter: Optional[TuFilter], refresh: bool, leverage: bool, dry_run: bool,
                   tm_based: bool) -> Optional[Dict[str, Any]]:
        blocked = [job_guid for job_guid, status in
                   self.tm_manager.get_job_status_by_lang_pair(self.source_lang, target_lang) if status == "req"]
        if blocked:
            raise ConsistencyError(
                f"Can't push a job for language {target_lang} if there are blocked jobs outstanding",
                code="blocked_jobs", details={"target_lang": target_lang, "jobs": blocked},
            )

        if guid_list is not None or tm_based or refresh:
            body = self.prepare_filter_based_job(target_lang, tm_based=tm_based, guid_list=guid_list)
        else:
            body = self.prepare_translation_job(target_lang, leverage=leverage)
        if tu_filter is not None:
            body = body.with_tus(tu for tu in body.tus if tu_filter(tu))
        if not body.tus:
            logger.info(f"Nothing to push for {self.source_lang} -> {target_lang}")
            return None

        lang_status: Dict[str, Any] = {"source_lang": self.source_lang, "target_lang": target_lang}
        if dry_run:
            lang_status["tus"] = [tu.to_dict() for tu in body.tus]
            return lang_status

        provider = self.get_provider(self.source_lang, target_lang, provider_name)
        lang_status["provider"] = provider.id
        if len(body.tus) < provider.minimum_job_size and not refresh:
            logger.info(f"{len(body.tus)} units for {target_lang} are below the minimum job size "
                        f"of {provider.id} ({provider.minimum_job_size})")
            lang_status.update(min_job_size=provider.minimum_job_size, num=len(body.tus))
            return lang_status

        request = replace(body, job_guid=self.tm_manager.create_job_manifest(), translation_provider=provider.id)
        lang_status["job_guid"] = request.job_guid
        response = None
        if provider.quota is None or len(request.tus) <= provider.quota or refresh:
            try:
                if refresh:
                    response = provider.refresh_translations(request)
                else:
                    response = provider.request_translations(request)
            except ProviderError:
                logger.exception(f"{provider.id} failed on job {request.job_guid} ({target_lang})")
                raise
        else:
            logger.info(f"Job {request.job_guid} has {len(request.tus)} units, over the quota "
                        f"of {provider.id} ({provider.quota}): blocking it")
            request = transition(request, JobStatus.BLOCKED)

        outcome = self.process_job(response, request)
        lang_status["status"] = outcome.status.value
        if response is not None:
            lang_status["num"] = len(response.tus) or len(response.inflight)
        else:
            lang_status["num"] = len(request.tus)
        return lang_status

    def job_push(self, job_guid: str) -> Dict[str, Any]:
        """
        Send a blocked job to its provider, ignoring the quota.

        A job the provider has nothing for is removed so that it no longer
        blocks the language pair.
        """
        job = self.tm_manager.get_job(job_guid)
        request = self.tm_manager.get_job_request(job_guid)
        if job is None or request is None:
            raise ConsistencyError(f"Job {job_guid} not found", code="job_not_found", details={"job_guid": job_guid})
        if job.status != JobStatus.BLOCKED:
            raise ConsistencyError(f"Only blocked jobs can be pushed, job {job_guid} is {job.status.value}",
                                   code="job_not_blocked", details={"job_guid": job_guid})

        provider = self.get_provider(job.source_lang, job.target_lang, request.translation_provider)
        request = replace(request, status=JobStatus.BLOCKED, translation_provider=provider.id)
        try:
            response = provider.request_translations(request)
        except ProviderError:
            logger.exception(f"{provider.id} failed on blocked job {job_guid}")
            raise

        outcome = self.process_job(response, request)
        if outcome.status == JobStatus.CANCELLED:
            self.tm_manager.delete_job(job_guid)
        return {
            "job_guid": job_guid,
            "provider": provider.id,
            "status": outcome.status.value,
            "num": len(response.tus) or len(response.inflight),
        }

    def job_delete(self, job_guid: str):
        """Delete a blocked job; jobs that reached a provider are kept."""
        job = self.tm_manager.get_job(job_guid)
        if job is None:
            raise ConsistencyError(f"Job {job_guid} not found", code="job_not_found", details={"job_guid": job_guid})
        if job.status != JobStatus.BLOCKED:
            raise ConsistencyError(f"Can only delete blocked jobs, job {job_guid} is {job.status.value}",
                                   code="job_not_blocked", details={"job_guid": job_guid})
        self.tm_manager.delete_job(job_guid)

    # ============================================================
    # Pull
    # ============================================================

    def pull(self, target_langs: Optional[Sequence[str]] = None, partial: bool = False) -> Dict[str, int]:
        """
        Fetch translations of every pending job.

        With ``partial`` set, a job that is only partly translated is split:
        the translated units close the job and the rest move to a new pending
        job linked to the first one through ``original_job_guid``.
        """
        target_langs = self.get_target_langs(target_langs)
        stats = {"num_pending_jobs": 0, "translated_strings": 0, "done_jobs": 0, "new_pending_jobs": 0}
        for lang_stats in self._map_langs(lambda lang: self._pull_lang(lang, partial), target_langs):
            for key, value in lang_stats.items():
                stats[key] += value
        logger.info(f"Pull completed: {stats}")
        return stats

    def _pull_lang(self, target_lang: str, partial: bool) -> Dict[str, int]:
        stats = {"num_pending_jobs": 0, "translated_strings": 0, "done_jobs": 0, "new_pending_jobs": 0}
        pending_jobs = [job_guid for job_guid, status in
                        self.tm_manager.get_job_status_by_lang_pair(self.source_lang, target_lang)
                        if status == "pending"]
        stats["num_pending_jobs"] = len(pending_jobs)

        for job_guid in pending_jobs:
            pending_job = self.tm_manager.get_job(job_guid)
            request = self.tm_manager.get_job_request(job_guid)
            logger.info(f"Pulling job {job_guid}...")
            provider = self.get_provider(pending_job.source_lang, pending_job.target_lang,
                                         pending_job.translation_provider)
            try:
                response = provider.fetch_translations(pending_job, request)
            except ProviderError:
                logger.exception(f"{provider.id} failed to fetch job {job_guid}")
                raise
            if response is None:
                continue

            if response.status == JobStatus.DONE:
                self.process_job(response)
                stats["translated_strings"] += len(response.tus)
                stats["done_jobs"] += 1
            elif response.status == JobStatus.PENDING:
                logger.info(f"Got {len(response.tus)} translations for job {job_guid} "
                            f"but there are still {len(response.inflight)} in flight")
                if partial and response.tus:
                    self._split_partial(response, request)
                    stats["translated_strings"] += len(response.tus)
                    stats["new_pending_jobs"] += 1
        return stats

    def _split_partial(self, response: Job, request: Job):
        inflight = set(response.inflight)
        self.process_job(transition(response, JobStatus.DONE, inflight=()))

        new_guid = self.tm_manager.create_job_manifest()
        new_request = replace(request, job_guid=new_guid, status=JobStatus.CREATED,
                              tus=tuple(tu for tu in request.tus if tu.guid in inflight))
        new_response = replace(response, job_guid=new_guid, status=JobStatus.PENDING, tus=(),
                               inflight=tuple(response.inflight),
                               original_job_guid=response.original_job_guid or response.job_guid)
        self.process_job(new_response, new_request)
        logger.info(f"Split job {response.job_guid}: {len(response.tus)} done, "
                    f"{len(inflight)} moved to {new_guid}")

    # ============================================================
    # Status
    # ============================================================

    def status(self) -> Dict[str, Any]:
        """Job counts, memory size and leverage estimate of every configured language."""
        result: Dict[str, Any] = {"source_lang": self.source_lang, "lang_pairs": {}}

        def lang_status(target_lang):
            tm = self.tm_manager.get_tm(self.source_lang, target_lang)
            jobs: Dict[str, int] = {}
            for _, status in self.tm_manager.get_job_status_by_lang_pair(self.source_lang, target_lang):
                jobs[status] = jobs.get(status, 0) + 1
            return {
                "jobs": jobs,
                "tm_size": len(tm.guids),
                "quality": tm.get_quality_histogram(),
                "estimate": self.estimate(target_lang),
            }

        target_langs = self.get_target_langs()
        for target_lang, lang_result in zip(target_langs, self._map_langs(lang_status, target_langs)):
            result["lang_pairs"][target_lang] = lang_result
        return result
