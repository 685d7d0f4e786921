"""
Translation Engine Module

Builds every component from an EngineContext and exposes the operations of
the engine in one place:
- snap / push / job push / pull / status through the dispatcher
- translated resource generation
- sync up and sync down with the configured TM stores
- memory quality analysis
"""

import re
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from transmem.config import PROVIDER_DEFAULTS, PROVIDER_NAME_PATTERN, PROVIDER_TYPES, EngineContext
from transmem.core import sync, validation
from transmem.core.tm_manager import TMManager
from transmem.exceptions import ConfigurationError
from transmem.logger import get_logger
from transmem.normalization import android_message_normalizer, json_message_normalizer
from transmem.providers.base import TranslationProvider
from transmem.providers.bridge import FileBridgeProvider
from transmem.providers.grandfather import GrandfatherProvider
from transmem.providers.http import HttpTranslationProvider
from transmem.providers.repetition import RepetitionProvider
from transmem.providers.variant import VariantGenerator
from transmem.resources.channels import FsChannel
from transmem.resources.filters import JsonResourceFilter
from transmem.resources.formats import FormatHandler
from transmem.resources.manager import ResourceManager
from transmem.stores.fs_delegate import FsStoreDelegate
from transmem.stores.jsonl_tm_store import JsonlTmStore, TmStore
from transmem.translation.dispatcher import Dispatcher

logger = get_logger(__name__)

NORMALIZERS = {
    "json": json_message_normalizer,
    "android": android_message_normalizer,
}


class TranslationEngine:
    """
    Owns the components of one working directory.

    Args:
        context: Run context (base directory, database, configuration)
        providers: Providers to use instead of the configured ones
        transport: httpx transport handed to network providers
    """

    def __init__(self, context: EngineContext, providers: Optional[Sequence[TranslationProvider]] = None,
                 transport=None):
        self.context = context
        config = context.config
        self.tm_manager = TMManager(context)

        channel_config = config.get("channel", {})
        self.channel = FsChannel(
            id=channel_config.get("id", "default"),
            source_dir=context.resolve_path(channel_config.get("source_dir", "resources/en")),
            target_dir=str(context.resolve_path(channel_config.get("target_dir", "resources/{target_lang}"))),
            source_glob=channel_config.get("source_glob", "**/*.json"),
            prj=channel_config.get("prj"),
        )
        normalizer_name = channel_config.get("normalizer", "json")
        if normalizer_name not in NORMALIZERS:
            raise ConfigurationError(f"Unknown normalizer: {normalizer_name}", code="unknown_normalizer",
                                     details={"normalizer": normalizer_name})
        self.format_handler = FormatHandler("json", JsonResourceFilter(), NORMALIZERS[normalizer_name]())
        self.resource_manager = ResourceManager(context, self.channel, self.format_handler,
                                                use_snap=config.get("snap", {}).get("enabled", True))

        if providers is None:
            providers = [self.build_provider(definition, transport) for definition in config.get("providers", [])]
        self.providers: List[TranslationProvider] = list(providers)
        self.dispatcher = Dispatcher(context, self.tm_manager, self.resource_manager, self.providers)

        self.tm_stores: Dict[str, TmStore] = {
            store_id: self.build_tm_store(store_id, definition)
            for store_id, definition in (config.get("tm_stores") or {}).items()
        }
        logger.info(f"Engine ready: {len(self.providers)} providers, {len(self.tm_stores)} TM stores")

    @classmethod
    def create(cls, base_dir: Union[str, Path], config: Optional[Dict[str, Any]] = None,
               regression: bool = False, **kwargs) -> "TranslationEngine":
        return cls(EngineContext.create(base_dir, config, regression=regression), **kwargs)

    # ============================================================
    # Component factories
    # ============================================================

    def build_provider(self, definition: Dict[str, Any], transport=None) -> TranslationProvider:
        """
        Instantiate a provider from its configuration entry.

        Raises:
            ConfigurationError: If the id or type is invalid
        """
        params = dict(definition)
        provider_id = params.pop("id", None)
        provider_type = params.pop("type", None)
        if not provider_id or not re.match(PROVIDER_NAME_PATTERN, provider_id):
            raise ConfigurationError(f"Invalid provider id: {provider_id!r}", code="invalid_provider_id",
                                     details={"provider": provider_id})
        if provider_type not in PROVIDER_TYPES:
            raise ConfigurationError(f"Unknown type {provider_type!r} for provider {provider_id}",
                                     code="unknown_provider_type",
                                     details={"provider": provider_id, "type": provider_type})

        if provider_type == "http":
            params = {**PROVIDER_DEFAULTS, **params}
            return HttpTranslationProvider(self.context, provider_id, transport=transport, **params)
        if provider_type == "bridge":
            return FileBridgeProvider(self.context, provider_id, **params)
        if provider_type == "repetition":
            return RepetitionProvider(self.context, provider_id, tm_manager=self.tm_manager, **params)
        if provider_type == "grandfather":
            return GrandfatherProvider(self.context, provider_id, tm_manager=self.tm_manager,
                                       resource_manager=self.resource_manager, **params)
        return VariantGenerator(self.context, provider_id, tm_manager=self.tm_manager, **params)

    def build_tm_store(self, store_id: str, definition: Dict[str, Any]) -> TmStore:
        store_type = definition.get("type", "jsonl")
        if store_type != "jsonl":
            raise ConfigurationError(f"Unknown type {store_type!r} for TM store {store_id}",
                                     code="unknown_store_type", details={"store": store_id})
        delegate = FsStoreDelegate(self.context.resolve_path(definition.get("base_dir", f"tm_stores/{store_id}")))
        return JsonlTmStore(
            store_id,
            delegate,
            access=definition.get("access", "readwrite"),
            partitioning=definition.get("partitioning", "language"),
        )

    def add_provider(self, provider: TranslationProvider):
        """Register a provider built outside the configuration."""
        self.providers.append(provider)
        self.dispatcher.providers.append(provider)

    def get_tm_store(self, store_id: str) -> TmStore:
        store = self.tm_stores.get(store_id)
        if store is None:
            raise ConfigurationError(f"Unknown TM store: {store_id}", code="unknown_store",
                                     details={"store": store_id})
        return store

    # ============================================================
    # Operations
    # ============================================================

    def snap(self) -> Dict[str, int]:
        return self.resource_manager.snap()

    def push(self, **kwargs) -> List[Dict[str, Any]]:
        return self.dispatcher.push(**kwargs)

    def job_push(self, job_guid: str) -> Dict[str, Any]:
        return self.dispatcher.job_push(job_guid)

    def job_delete(self, job_guid: str):
        self.dispatcher.job_delete(job_guid)

    def pull(self, **kwargs) -> Dict[str, int]:
        return self.dispatcher.pull(**kwargs)

    def status(self) -> Dict[str, Any]:
        return self.dispatcher.status()

    def generate(self, target_langs: Optional[Sequence[str]] = None) -> Dict[str, Dict[str, int]]:
        """Write translated resources for every target language."""
        return {
            target_lang: self.resource_manager.generate_translated_resources(
                self.tm_manager.get_tm(self.context.source_lang, target_lang))
            for target_lang in self.dispatcher.get_target_langs(target_langs)
        }

    def analyze(self, target_lang: str) -> Dict[str, Any]:
        """Quality report and completeness of one target language."""
        tm = self.tm_manager.get_tm(self.context.source_lang, target_lang)
        minimum_quality = self.context.config.get("minimum_quality")
        stats = validation.get_translation_stats(tm, self.resource_manager.get_source_tus(), minimum_quality or 0)
        return {
            "issues": validation.analyze_tm(tm, minimum_quality),
            "stats": asdict(stats),
        }

    def _sync_target_langs(self, pairs, target_langs: Optional[Sequence[str]]) -> List[str]:
        if target_langs:
            return list(target_langs)
        return [target_lang for source_lang, target_lang in pairs if source_lang == self.context.source_lang]

    def sync_down(self, store_id: str, target_langs: Optional[Sequence[str]] = None,
                  dry_run: bool = False, delete: bool = False) -> Dict[str, Any]:
        """
        Bring the jobs of a TM store into the local cache.

        Without ``target_langs`` every language the store holds for the
        source language is synced, configured or not.
        """
        store = self.get_tm_store(store_id)
        sync.ensure_readable(store)
        result = {}
        for target_lang in self._sync_target_langs(store.get_available_lang_pairs(), target_langs):
            plan = sync.prepare_sync_down(self.tm_manager, store, self.context.source_lang, target_lang)
            if dry_run:
                result[target_lang] = {"blocks_to_store": plan.blocks_to_store,
                                       "jobs_to_delete": plan.jobs_to_delete}
            else:
                result[target_lang] = sync.sync_down(self.tm_manager, store, plan, delete=delete)
        return result

    def sync_up(self, store_id: str, target_langs: Optional[Sequence[str]] = None,
                dry_run: bool = False, newer_only: bool = False) -> Dict[str, Any]:
        """Publish the local jobs missing or outdated in a TM store, for every language with local jobs."""
        store = self.get_tm_store(store_id)
        sync.ensure_writable(store)
        result = {}
        for target_lang in self._sync_target_langs(self.tm_manager.get_available_lang_pairs(), target_langs):
            plan = sync.prepare_sync_up(self.tm_manager, store, self.context.source_lang, target_lang,
                                        newer_only=newer_only)
            if dry_run:
                result[target_lang] = {"blocks_to_update": plan.blocks_to_update,
                                       "jobs_to_update": plan.jobs_to_update}
            else:
                result[target_lang] = sync.sync_up(self.tm_manager, store, plan)
        return result
