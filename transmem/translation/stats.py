"""
Leverage Statistics Data Class

Counters collected while preparing a translation job, per project.
"""

from dataclasses import dataclass, field, asdict
from typing import Any, Dict


@dataclass
class ProjectLeverage:
    """Leverage counters for the resources of one project."""
    translated: int = 0
    translated_words: int = 0
    translated_by_q: Dict[int, int] = field(default_factory=dict)
    untranslated: int = 0
    untranslated_chars: int = 0
    untranslated_words: int = 0
    pending: int = 0
    pending_words: int = 0
    internal_repetitions: int = 0          # Same source already queued or translated
    internal_repetition_words: int = 0

    def add_translated(self, q: int, words: int):
        self.translated += 1
        self.translated_words += words
        self.translated_by_q[q] = self.translated_by_q.get(q, 0) + 1

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
