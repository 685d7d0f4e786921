"""
Variant generator.

Derives a language variant (e.g. en-GB from en-US) by substituting words
through a dictionary, starting from the source or from the translation of a
base language.
"""

import re
from dataclasses import replace
from typing import Dict, List, Optional, Set, Tuple

from transmem.core.models import Job, TranslationUnit
from transmem.logger import get_logger
from transmem.providers.base import LeverageProvider

logger = get_logger(__name__)

WORD_PATTERN = re.compile(r"[^\W\d_]+")


class VariantGenerator(LeverageProvider):

    def __init__(self, context, id: str = "Variant", tm_manager=None, dictionary: Optional[Dict[str, str]] = None,
                 quality: int = 80, base_lang: Optional[str] = None, **kwargs):
        super().__init__(context, id, tm_manager=tm_manager, quality=quality, **kwargs)
        # Keys are expected in lowercase
        self.dictionary = {k.lower(): v for k, v in (dictionary or {}).items()}
        self.base_lang = base_lang

    def _translate_word(self, word: str, replaced: Set[str]) -> str:
        key = word.lower()
        variant = self.dictionary.get(key)
        if not variant:
            return word
        replaced.add(variant)
        if word[0] != key[0]:
            variant = variant[:1].upper() + variant[1:]
        return variant

    def translate_text(self, text: str, replaced: Set[str]) -> str:
        return WORD_PATTERN.sub(lambda m: self._translate_word(m.group(0), replaced), text)

    def translate_tus(self, job: Job) -> List[Tuple[TranslationUnit, TranslationUnit]]:
        base_tm = self.tm_manager.get_tm(job.source_lang, self.base_lang) if self.base_lang else None
        ts = 1 if self.context.regression else self.context.now_ms()
        replaced: Set[str] = set()
        results = []
        for tu in job.tus:
            if base_tm is not None:
                base_tu = base_tm.get_entry_by_guid(tu.guid)
                base = base_tu.ntgt if base_tu else None
            else:
                base = tu.nsrc
            if not base:
                continue
            changed = False
            ntgt = []
            for part in base:
                if isinstance(part, str):
                    translated = self.translate_text(part, replaced)
                    changed = changed or translated != part
                    ntgt.append(translated)
                else:
                    ntgt.append(part)
            if changed:
                results.append((tu, replace(tu.as_source(), ntgt=tuple(ntgt), q=self.quality, ts=ts)))
        logger.debug(f"Replaced words for variant {job.target_lang}: {', '.join(sorted(replaced))}")
        return results
