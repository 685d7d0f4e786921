"""
Translation memory quality checks.

Reports the entries of a memory that should not be deployed as they are:
targets with unbalanced paired placeholders, targets whose placeholders no
longer match their source, and guids still waiting for a provider.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from transmem.core.models import TranslationUnit
from transmem.logger import get_logger
from transmem.normalization import is_balanced, source_and_target_are_compatible

logger = get_logger(__name__)

UNBALANCED = "unbalanced_tags"
INCOMPATIBLE = "incompatible_placeholders"
INFLIGHT = "inflight"
LOW_QUALITY = "low_quality"


@dataclass
class TranslationStats:
    """Completeness of one target language against the current sources."""
    target_lang: str
    total_strings: int
    translated_count: int
    missing_count: int
    completeness_percent: float
    is_complete: bool

    def __str__(self):
        status = "Complete" if self.is_complete else f"Missing {self.missing_count} entries"
        return (f"{self.target_lang}: {self.translated_count}/{self.total_strings} "
                f"({self.completeness_percent:.1f}%) {status}")


def analyze_entry(tu: TranslationUnit, minimum_quality: Optional[int] = None) -> List[str]:
    """
    Issues found in a single memory entry.

    Example:
        >>> analyze_entry(TranslationUnit(guid="g", nsrc=("Hi",), ntgt=("Salut",), q=20), 50)
        ['low_quality']
    """
    if tu.inflight:
        return [INFLIGHT]
    issues = []
    if tu.ntgt is not None:
        if not is_balanced(tu.ntgt):
            issues.append(UNBALANCED)
        if tu.nsrc is not None and not source_and_target_are_compatible(tu.nsrc, tu.ntgt):
            issues.append(INCOMPATIBLE)
    if minimum_quality is not None and (tu.q or 0) < minimum_quality:
        issues.append(LOW_QUALITY)
    return issues


def analyze_tm(tm, minimum_quality: Optional[int] = None) -> List[Dict[str, Any]]:
    """
    Check every entry of a memory.

    Returns:
        One record per entry with issues: {guid, rid, sid, q, issues}
    """
    report = []
    for tu in tm.get_all_entries():
        issues = analyze_entry(tu, minimum_quality)
        if issues:
            report.append({"guid": tu.guid, "rid": tu.rid, "sid": tu.sid, "q": tu.q, "issues": issues})
    if report:
        logger.warning(f"Found {len(report)} entries with issues in {tm!r}")
    else:
        logger.info(f"No issues found in {tm!r}")
    return report


def get_translation_stats(tm, source_guids, minimum_quality: int = 0) -> TranslationStats:
    """Count the source guids that have a usable translation in ``tm``."""
    source_guids = set(source_guids)
    translated_count = 0
    for guid in source_guids:
        entry = tm.get_entry_by_guid(guid)
        if entry is not None and entry.ntgt is not None and not analyze_entry(entry, minimum_quality):
            translated_count += 1

    total_strings = len(source_guids)
    missing_count = total_strings - translated_count
    return TranslationStats(
        target_lang=tm.target_lang,
        total_strings=total_strings,
        translated_count=translated_count,
        missing_count=missing_count,
        completeness_percent=(translated_count / total_strings * 100) if total_strings > 0 else 0,
        is_complete=missing_count == 0,
    )
