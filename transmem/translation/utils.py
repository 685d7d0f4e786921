"""
Translation utility functions for chunking provider requests and extracting
JSON from model responses.
"""

import json
from typing import Any, Dict, List, Optional, Sequence, Tuple

from transmem.core.models import TranslationUnit
from transmem.normalization import count_words


def chunk_tus(tus: Sequence[TranslationUnit], max_words: int) -> List[List[Tuple[int, TranslationUnit]]]:
    """
    Split translation units into chunks based on the word count of their source.

    Each item keeps its position in ``tus`` so that results can be merged back
    in order. A unit longer than ``max_words`` gets a chunk of its own.

    Example:
        >>> [len(c) for c in chunk_tus(tus, max_words=300)]
        [12, 9]
    """
    chunks = []
    current_chunk: List[Tuple[int, TranslationUnit]] = []
    current_size = 0

    for idx, tu in enumerate(tus):
        size = count_words(tu.nsrc or [])
        # Start a new chunk if this one would go over the limit
        if current_size + size > max_words and current_chunk:
            chunks.append(current_chunk)
            current_chunk = [(idx, tu)]
            current_size = size
        else:
            current_chunk.append((idx, tu))
            current_size += size

    if current_chunk:
        chunks.append(current_chunk)
    return chunks


def _strip_code_fence(text: str) -> str:
    lines = text.split('\n')
    if lines[0].startswith('```'):
        lines = lines[1:]
    if lines and lines[-1].strip() == '```':
        lines = lines[:-1]
    return '\n'.join(lines).strip()


def match_json_array(text: str) -> Optional[str]:
    """
    Extract JSON array from mixed text using bracket matching.

    Brackets inside JSON strings are ignored.
    """
    if not text:
        return None

    depth = 0
    start = -1
    in_string = False
    escape_next = False

    for i, char in enumerate(text):
        if escape_next:
            escape_next = False
            continue
        if char == '\\':
            escape_next = True
            continue
        if char == '"' and start >= 0:
            in_string = not in_string
            continue
        if in_string:
            continue
        if char == '[':
            if depth == 0:
                start = i
            depth += 1
        elif char == ']' and depth:
            depth -= 1
            if depth == 0:
                return text[start:i + 1]
    return None


def _loads(text: str, expected_type: type) -> Optional[Any]:
    try:
        result = json.loads(text)
    except json.JSONDecodeError:
        return None
    return result if isinstance(result, expected_type) else None


def safe_parse_json_array(text: str) -> Optional[List[Any]]:
    """
    Safely parse a JSON array from potentially malformed text.

    Tries, in order: direct parse, parse without markdown code fences,
    extraction by bracket matching.
    """
    if not text:
        return None
    text = text.strip()

    result = _loads(text, list)
    if result is None and text.startswith('```'):
        result = _loads(_strip_code_fence(text), list)
    if result is None:
        extracted = match_json_array(text)
        if extracted:
            result = _loads(extracted, list)
    return result


def parse_translations_response(text: str) -> Optional[List[str]]:
    """
    Parse a model response holding translations.

    Handles a bare array and an object with a ``translations`` key.
    """
    if not text:
        return None

    result = safe_parse_json_array(text)
    if result is not None:
        return [item if isinstance(item, str) else str(item) for item in result]

    stripped = text.strip()
    obj: Optional[Dict[str, Any]] = _loads(stripped, dict) or _loads(_strip_code_fence(stripped), dict)
    if obj is not None and isinstance(obj.get('translations'), list):
        translations = obj['translations']
        if translations and isinstance(translations[0], dict):
            return [t.get('text', '') for t in translations]
        return translations
    return None
