"""
Pytest configuration and fixtures for transmem.

This module provides:
- Engines built on a temporary directory in regression mode
- Source resource writers
- Test providers registered next to the configured ones
"""

import json
from dataclasses import replace
from pathlib import Path
from typing import Callable, Dict

import pytest

from transmem.core.models import Job
from transmem.engine import TranslationEngine
from transmem.providers.base import TranslationProvider


class FixedQualityProvider(TranslationProvider):
    """Synchronous provider upper-casing the literal text of every unit."""

    def __init__(self, context, id: str = "Fixed", quality: int = 80, **kwargs):
        super().__init__(context, id, quality=quality, **kwargs)
        self.requests = []

    def request_translations(self, job: Job) -> Job:
        self.requests.append(job)
        tus = [
            replace(tu.as_source(),
                    ntgt=tuple(p.upper() if isinstance(p, str) else p for p in tu.nsrc),
                    q=self.quality, ts=1)
            for tu in job.tus
        ]
        return self.make_response(job, tus)


class EmptyProvider(TranslationProvider):
    """Provider that never has anything to offer."""

    def request_translations(self, job: Job) -> Job:
        return self.make_response(job, [])


def write_resources(base_dir: Path, files: Dict[str, Dict], lang: str = "en"):
    lang_dir = base_dir / "resources" / lang
    lang_dir.mkdir(parents=True, exist_ok=True)
    for name, content in files.items():
        (lang_dir / name).write_text(json.dumps(content, ensure_ascii=False), encoding="utf-8")


def make_config(store_dir: Path, **overrides):
    config = {
        "source_lang": "en",
        "target_langs": ["fr"],
        "minimum_quality": 50,
        "channel": {
            "source_dir": "resources/en",
            "target_dir": "resources/{target_lang}",
        },
        "providers": [
            {"id": "Repetition", "type": "repetition"},
            {"id": "Grandfather", "type": "grandfather", "quality": 70},
            {"id": "Bridge", "type": "bridge", "bridge_dir": "bridge"},
        ],
        "tm_stores": {
            "shared": {"base_dir": str(store_dir), "partitioning": "provider"},
        },
    }
    config.update(overrides)
    return config


@pytest.fixture
def store_dir(tmp_path: Path) -> Path:
    return tmp_path / "store"


@pytest.fixture
def make_engine(tmp_path: Path, store_dir: Path) -> Callable[..., TranslationEngine]:
    """Factory building an engine in its own working directory.

    Args (of the returned callable):
        name: Working directory name under tmp_path
        resources: Source files to write, ``{file name: json content}``
        config overrides as keyword arguments
    """
    def factory(name: str = "work", resources: Dict[str, Dict] = None, **overrides) -> TranslationEngine:
        base_dir = tmp_path / name
        base_dir.mkdir(parents=True, exist_ok=True)
        if resources:
            write_resources(base_dir, resources)
        return TranslationEngine.create(base_dir, make_config(store_dir, **overrides), regression=True)

    return factory


@pytest.fixture
def engine(make_engine) -> TranslationEngine:
    return make_engine(resources={
        "app.json": {
            "greeting": "Hello",
            "title": "Welcome {name}",
            "@title": {"description": "Page title"},
        },
    })


@pytest.fixture
def add_fixed_provider() -> Callable[..., FixedQualityProvider]:
    def factory(engine: TranslationEngine, id: str = "Fixed", quality: int = 80, **kwargs) -> FixedQualityProvider:
        provider = FixedQualityProvider(engine.context, id, quality=quality, **kwargs)
        engine.add_provider(provider)
        return provider

    return factory


@pytest.fixture
def add_empty_provider() -> Callable[..., EmptyProvider]:
    def factory(engine: TranslationEngine, id: str = "Empty") -> EmptyProvider:
        provider = EmptyProvider(engine.context, id)
        engine.add_provider(provider)
        return provider

    return factory
