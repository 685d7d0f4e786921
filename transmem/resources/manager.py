"""
Resource manager.

Reads source resources through a channel and a format handler and exposes
them as a restartable lazy sequence. Once a snapshot has been taken, sources
are read from the ``source_snap`` table instead of the channel so that pushes
work on a frozen view of the content.
"""

from typing import Any, Dict, Iterator, List, Optional

from transmem.core import database as db
from transmem.core.identity import make_segment_guid
from transmem.core.models import Segment, TranslationUnit
from transmem.logger import get_logger
from transmem.normalization import parts_from_json, parts_to_json

logger = get_logger(__name__)


def segment_to_dict(seg: Segment) -> Dict[str, Any]:
    data = {"sid": seg.sid, "nstr": parts_to_json(seg.nstr), "guid": seg.guid, "gstr": seg.gstr}
    for key in ("notes", "plural_form", "seq"):
        value = getattr(seg, key)
        if value is not None:
            data[key] = value
    return data


def segment_from_dict(data: Dict[str, Any]) -> Segment:
    return Segment(
        sid=data["sid"],
        nstr=tuple(parts_from_json(data["nstr"])),
        guid=data["guid"],
        gstr=data["gstr"],
        notes=data.get("notes"),
        plural_form=data.get("plural_form"),
        seq=data.get("seq"),
    )


def make_tu(resource: Dict[str, Any], seg: Segment) -> TranslationUnit:
    """Source translation unit of a segment."""
    return TranslationUnit(
        guid=seg.guid,
        rid=resource["id"],
        sid=seg.sid,
        nsrc=seg.nstr,
        prj=resource.get("prj"),
        notes=seg.notes,
        plural_form=seg.plural_form,
        seq=seg.seq,
    )


class ResourceSequence:
    """Iterable over parsed resources; every iteration starts a fresh generator."""

    def __init__(self, factory):
        self._factory = factory

    def __iter__(self) -> Iterator[Dict[str, Any]]:
        return self._factory()


class ResourceManager:

    def __init__(self, context, channel, format_handler, use_snap: bool = True):
        self.context = context
        self.channel = channel
        self.format_handler = format_handler
        self.use_snap = use_snap

    def _parse(self, stats: Dict[str, Any]) -> Dict[str, Any]:
        raw = self.channel.fetch_resource(stats["id"])
        return {**stats, "segments": self.format_handler.get_segments(stats["id"], raw)}

    def _iter_channel(self) -> Iterator[Dict[str, Any]]:
        for stats in self.channel.get_resource_stats():
            yield self._parse(stats)

    def _iter_snap(self) -> Iterator[Dict[str, Any]]:
        for res in db.get_source_snap(self.context.db_file, self.channel.id):
            yield {**res, "segments": [segment_from_dict(s) for s in res["segments"]]}

    def has_snap(self) -> bool:
        return db.has_source_snap(self.context.db_file, self.channel.id)

    def get_all_resources(self) -> ResourceSequence:
        """Parsed resources ``{"id", "prj", "modified", "segments"}``, from the snapshot if there is one."""
        if self.use_snap and self.has_snap():
            return ResourceSequence(self._iter_snap)
        return ResourceSequence(self._iter_channel)

    def snap(self) -> Dict[str, int]:
        """Copy every parsed source resource of the channel into the snapshot store."""
        resources = []
        segments = 0
        for res in self._iter_channel():
            resources.append({**res, "segments": [segment_to_dict(s) for s in res["segments"]]})
            segments += len(res["segments"])
        db.replace_source_snap(self.context.db_file, self.channel.id, resources)
        logger.info(f"Snapped {len(resources)} resources ({segments} segments) of channel {self.channel.id}")
        return {"resources": len(resources), "segments": segments}

    def get_source_tus(self) -> Dict[str, TranslationUnit]:
        """guid -> source translation unit for every segment, in resource order."""
        return {
            seg.guid: make_tu(res, seg)
            for res in self.get_all_resources()
            for seg in res["segments"]
        }

    def get_existing_translated_resource(self, rid: str, target_lang: str) -> Dict[str, Any]:
        """
        The deployed translation of a resource, as ``{"id", "modified", "segments"}``.

        Raises:
            FileNotFoundError: If the resource has no translation yet
            ValueError: If the translated resource cannot be parsed
        """
        raw = self.channel.fetch_translated_resource(target_lang, rid)
        return {
            "id": rid,
            "modified": self.channel.get_translated_resource_modified(target_lang, rid),
            "segments": self.format_handler.get_segments(rid, raw),
        }

    def generate_translated_resources(self, tm, minimum_quality: Optional[int] = None) -> Dict[str, int]:
        """
        Write the translated resources of a language from the memory.

        Strings without an entry of sufficient quality are left out.
        """
        if minimum_quality is None:
            minimum_quality = self.context.config.get("minimum_quality", 0)
        stats = {"resources": 0, "translated": 0, "missing": 0}

        for res_stats in self.channel.get_resource_stats():
            rid = res_stats["id"]
            raw = self.channel.fetch_resource(rid)

            def translator(sid: str, text: str) -> Optional[str]:
                nstr = self.format_handler.normalizer.decode(text)
                entry = tm.get_entry_by_guid(make_segment_guid(rid, sid, nstr))
                if entry is None or entry.inflight or entry.ntgt is None or (entry.q or 0) < minimum_quality:
                    stats["missing"] += 1
                    return None
                stats["translated"] += 1
                return self.format_handler.normalizer.encode(entry.ntgt)

            self.channel.commit_translated_resource(tm.target_lang, rid, self.format_handler.translate(raw, translator))
            stats["resources"] += 1

        logger.info(f"Generated {stats['resources']} resources for {tm.target_lang}: "
                    f"{stats['translated']} strings translated, {stats['missing']} missing")
        return stats
