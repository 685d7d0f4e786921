"""
JSONL TM store.

Jobs are grouped in blocks, one JSONL file per block and one job per line.
A table of contents per language pair lists, for every block, the jobs it
holds and their ``updated_at`` so that sync can be planned without reading
the blocks themselves.

Layout:
    TOC-sl=<src>-tl=<tgt>.json
    blocks/sl=<src>/tl=<tgt>/tp=<provider>/block_<id>.jsonl
"""

import json
import re
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from transmem.exceptions import ConfigurationError
from transmem.logger import get_logger

logger = get_logger(__name__)

TOC_VERSION = 1
STORE_ACCESS_MODES = ("readwrite", "readonly", "writeonly")
STORE_PARTITIONING_MODES = ("job", "provider", "language")
TOC_NAME_PATTERN = re.compile(r"^TOC-sl=(?P<source_lang>.+?)-tl=(?P<target_lang>.+)\.json$")

BlockEntry = Tuple[Dict[str, Any], List[Dict[str, Any]]]


class TmStore(ABC):
    """Remote archive of jobs, exchanged block by block."""

    def __init__(self, id: str, access: str = "readwrite", partitioning: str = "language"):
        if access not in STORE_ACCESS_MODES:
            raise ConfigurationError(f"Unknown access mode for TM store {id}: {access}", code="bad_store_access")
        if partitioning not in STORE_PARTITIONING_MODES:
            raise ConfigurationError(f"Unknown partitioning for TM store {id}: {partitioning}",
                                     code="bad_partitioning")
        self.id = id
        self.access = access
        self.partitioning = partitioning

    @abstractmethod
    def get_available_lang_pairs(self) -> List[Tuple[str, str]]:
        """Language pairs the store holds jobs for."""

    @abstractmethod
    def get_toc(self, source_lang: str, target_lang: str) -> Dict[str, Any]:
        """Table of contents of a language pair."""

    @abstractmethod
    def get_tm_blocks(self, source_lang: str, target_lang: str,
                      block_ids: Sequence[str]) -> Iterator[BlockEntry]:
        """Yield ``(job_props, tus)`` for every job in the given blocks."""

    @abstractmethod
    def get_writer(self, source_lang: str, target_lang: str):
        """Context manager exposing ``write_block(block_id, entries)``."""


class JsonlTmStore(TmStore):
    """TM store keeping JSONL blocks through a file delegate."""

    def __init__(self, id: str, delegate, access: str = "readwrite", partitioning: str = "language"):
        super().__init__(id, access, partitioning)
        self.delegate = delegate

    def __repr__(self):
        return f"JsonlTmStore({self.id}, {self.delegate!r}, access={self.access}, partitioning={self.partitioning})"

    @staticmethod
    def toc_name(source_lang: str, target_lang: str) -> str:
        return f"TOC-sl={source_lang}-tl={target_lang}.json"

    def block_name(self, source_lang: str, target_lang: str, block_id: str,
                   translation_provider: Optional[str] = None) -> str:
        path = f"blocks/sl={source_lang}/tl={target_lang}"
        if self.partitioning != "language":
            path += f"/tp={translation_provider or 'default'}"
        return f"{path}/block_{block_id}.jsonl"

    def get_available_lang_pairs(self) -> List[Tuple[str, str]]:
        pairs = []
        for name in self.delegate.list_files():
            match = TOC_NAME_PATTERN.match(name)
            if match:
                pairs.append((match.group("source_lang"), match.group("target_lang")))
        return sorted(pairs)

    def get_toc(self, source_lang: str, target_lang: str) -> Dict[str, Any]:
        """
        Read the table of contents of a pair.

        Blocks whose file is gone from storage are dropped from the result.
        """
        toc = {"v": TOC_VERSION, "source_lang": source_lang, "target_lang": target_lang, "blocks": {}}
        name = self.toc_name(source_lang, target_lang)
        if not self.delegate.exists(name):
            return toc
        try:
            stored = json.loads(self.delegate.get_file(name))
        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse TOC {name} of store {self.id}: {e}")
            raise
        if stored.get("v") != TOC_VERSION:
            raise ConfigurationError(f"Unsupported TOC version in store {self.id}: {stored.get('v')}",
                                     code="bad_toc_version", details={"toc": name})
        for block_id, block in (stored.get("blocks") or {}).items():
            if self.delegate.exists(block["block_name"]):
                toc["blocks"][block_id] = block
            else:
                logger.warning(f"Block {block_id} listed in {name} is missing from store {self.id}, ignoring it")
        return toc

    def get_tm_blocks(self, source_lang: str, target_lang: str,
                      block_ids: Sequence[str]) -> Iterator[BlockEntry]:
        toc = self.get_toc(source_lang, target_lang)
        for block_id in block_ids:
            block = toc["blocks"].get(block_id)
            if block is None:
                logger.warning(f"Block {block_id} not found in store {self.id}")
                continue
            content = self.delegate.get_file(block["block_name"])
            for line in content.splitlines():
                if line.strip():
                    entry = json.loads(line)
                    yield entry["job_props"], entry.get("tus", [])

    def get_writer(self, source_lang: str, target_lang: str) -> "JsonlTmStoreWriter":
        if self.access == "readonly":
            raise ConfigurationError(f"Cannot write to read-only TM store {self.id}",
                                     code="store_readonly", details={"store": self.id})
        return JsonlTmStoreWriter(self, source_lang, target_lang)


class JsonlTmStoreWriter:
    """
    Writes blocks of one language pair; the TOC is saved when the context exits cleanly.
    """

    def __init__(self, store: JsonlTmStore, source_lang: str, target_lang: str):
        self.store = store
        self.source_lang = source_lang
        self.target_lang = target_lang
        self.toc: Optional[Dict[str, Any]] = None

    def __enter__(self):
        self.toc = self.store.get_toc(self.source_lang, self.target_lang)
        return self

    def __exit__(self, exc_type, exc, tb):
        if exc_type is None:
            self.store.delegate.save_file(
                self.store.toc_name(self.source_lang, self.target_lang),
                json.dumps(self.toc, ensure_ascii=False, indent=2, sort_keys=True),
            )
        return False

    def write_block(self, block_id: str, entries: List[BlockEntry]):
        """Write (or overwrite) a block with the given ``(job_props, tus)`` entries."""
        existing = self.toc["blocks"].get(block_id)
        if existing:
            block_name = existing["block_name"]
        else:
            provider = entries[0][0].get("translation_provider") if entries else None
            block_name = self.store.block_name(self.source_lang, self.target_lang, block_id, provider)

        lines = [json.dumps({"job_props": job_props, "tus": tus}, ensure_ascii=False)
                 for job_props, tus in entries]
        self.store.delegate.save_file(block_name, "\n".join(lines) + "\n")

        jobs = sorted([job_props["job_guid"], job_props.get("updated_at")] for job_props, _ in entries)
        self.toc["blocks"][block_id] = {
            "block_name": block_name,
            "modified": max((updated_at or "" for _, updated_at in jobs), default=""),
            "jobs": jobs,
        }
        logger.debug(f"Wrote block {block_id} with {len(entries)} jobs to store {self.store.id}")
