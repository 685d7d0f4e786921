"""
Format handlers: a resource filter plus the normalizer of its message format.
"""

from typing import List, Optional

from transmem.core.identity import flatten_normalized_source_to_ordinal, make_segment_guid
from transmem.core.models import Segment
from transmem.normalization import MessageFormatNormalizer, extract_structured_notes
from transmem.resources.filters import ResourceFilter, Translator


class FormatHandler:
    """Turns raw resources into segments and renders translated resources."""

    def __init__(self, id: str, resource_filter: ResourceFilter,
                 normalizer: Optional[MessageFormatNormalizer] = None):
        self.id = id
        self.resource_filter = resource_filter
        self.normalizer = normalizer or MessageFormatNormalizer()

    def __repr__(self):
        return f"FormatHandler({self.id})"

    def get_segments(self, rid: str, raw: str) -> List[Segment]:
        segments = []
        for seq, seg in enumerate(self.resource_filter.parse_resource(raw)["segments"]):
            nstr = tuple(self.normalizer.decode(seg["str"]))
            notes = seg.get("notes")
            segments.append(Segment(
                sid=seg["sid"],
                nstr=nstr,
                guid=make_segment_guid(rid, seg["sid"], nstr),
                gstr=flatten_normalized_source_to_ordinal(nstr),
                notes=extract_structured_notes(notes) if isinstance(notes, str) else notes,
                plural_form=seg.get("plural_form"),
                seq=seq,
            ))
        return segments

    def translate(self, raw: str, translator: Translator) -> Optional[str]:
        return self.resource_filter.translate_resource(raw, translator)
