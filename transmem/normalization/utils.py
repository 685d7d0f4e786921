"""
Normalized string helpers shared by providers, leverage and analyzers.
"""

import re
from dataclasses import replace
from typing import Any, Dict, List, Optional, Sequence, Tuple

from transmem.normalization.parts import Part, Placeholder, plain_text

_V1_PH_PATTERN = re.compile(r"\{\{(?P<ph>(?P<idx>[a-y]|z\d+)_(?P<t>x|bx|ex)_(?P<name>[0-9A-Za-z_]*))\}\}")
_PH_NAME_PATTERN = re.compile(r"[0-9A-Za-z_]+")
_WORD_PATTERN = re.compile(r"[^\W\d_]+(?:['’][^\W\d_]+)*|\d+")
_CJK_PATTERN = re.compile(r"[぀-ヿ㐀-䶿一-鿿가-힯]")


def _v1_prefix(idx: int) -> str:
    return chr(96 + idx) if idx < 26 else f"z{idx}"


def flatten_normalized_source_v1(nsrc: Sequence[Part]) -> Tuple[str, Dict[str, Placeholder]]:
    """
    Render a normalized string with ``{{a_x_name}}`` style placeholders.

    Each mangled name is made of a positional index (``a`` to ``y``, then
    ``z26``, ``z27``...), the placeholder type and a readable contraction of
    the raw value. Returns the flat text and the map needed to get back the
    placeholders with ``extract_normalized_parts_v1``.
    """
    flat = []
    ph_map: Dict[str, Placeholder] = {}
    ph_idx = 0
    for part in nsrc:
        if isinstance(part, str):
            flat.append(part)
            continue
        ph_idx += 1
        name_match = _PH_NAME_PATTERN.search(part.v or "")
        mangled = f"{_v1_prefix(ph_idx)}_{part.t}_{name_match.group(0) if name_match else ''}"
        flat.append(f"{{{{{mangled}}}}}")
        ph_map[mangled] = replace(part, v1=mangled)
    return "".join(flat), ph_map


def extract_normalized_parts_v1(text: str, ph_map: Dict[str, Placeholder]) -> List[Part]:
    """
    Inverse of ``flatten_normalized_source_v1`` for a translated string.

    Raises:
        KeyError: If the text contains a placeholder missing from ``ph_map``
    """
    parts: List[Part] = []
    pos = 0
    for match in _V1_PH_PATTERN.finditer(text):
        if match.start() > pos:
            parts.append(text[pos:match.start()])
        parts.append(ph_map[match.group("ph")])
        pos = match.end()
    if pos < len(text):
        parts.append(text[pos:])
    return parts


def _minify_v1(v1: Optional[str]) -> Optional[str]:
    """Keep only index and type of a mangled placeholder name."""
    if not v1:
        return None
    return "_".join(v1.split("_")[:2])


def ph_matcher_maker(nsrc: Sequence[Part]):
    """
    Return a function telling whether a target placeholder belongs to ``nsrc``.

    A placeholder matches on its minified v1 name (index and type) or, when it
    carries no v1 name, on its raw value.
    """
    ph_map = flatten_normalized_source_v1(nsrc)[1]
    v1_map = {_minify_v1(k): v for k, v in ph_map.items()}
    values = {v.v for v in ph_map.values()}

    def match_ph(part: Placeholder) -> Optional[Placeholder]:
        found = v1_map.get(_minify_v1(part.v1))
        if found is not None:
            return found
        return part if part.v in values else None

    return match_ph


def source_and_target_are_compatible(nsrc: Optional[Sequence[Part]], ntgt: Optional[Sequence[Part]]) -> bool:
    """Every target placeholder must match one in the source and the counts must be equal."""
    if nsrc is None or ntgt is None:
        return False
    match_ph = ph_matcher_maker(nsrc)
    target_count = 0
    for part in ntgt:
        if isinstance(part, Placeholder):
            target_count += 1
            if match_ph(part) is None:
                return False
    source_count = sum(1 for part in nsrc if isinstance(part, Placeholder))
    return source_count == target_count


def normalized_strings_are_equal(a: Optional[Sequence[Part]], b: Optional[Sequence[Part]]) -> bool:
    """Compare two normalized strings, treating placeholders with the same v1 index and type as equal."""
    if a is None or b is None:
        return a is b
    return _mini_flatten(a) == _mini_flatten(b)


def _mini_flatten(nstr: Sequence[Part]) -> str:
    flat = []
    for part in nstr:
        flat.append(part if isinstance(part, str) else f"{{{{{_minify_v1(part.v1) if part.v1 else part.v}}}}}")
    return "".join(flat)


def count_words(nstr: Sequence[Part]) -> int:
    """
    Count words in the literal text of a normalized string.

    CJK ideographs and kana count as one word each.
    """
    text = plain_text(nstr)
    if not text:
        return 0
    cjk = len(_CJK_PATTERN.findall(text))
    rest = _CJK_PATTERN.sub(" ", text)
    return cjk + len(_WORD_PATTERN.findall(rest))


# ============================================================
# Structured notes
# ============================================================

_PH_NOTE = re.compile(r"PH\((?P<ph>[^)|]+)(?:\|(?P<sample>[^)|]*))?(?:\|(?P<desc>[^)]*))?\)")
_MAXWIDTH_NOTE = re.compile(r"MAXWIDTH\((?P<width>\d+)\)")
_SCREENSHOT_NOTE = re.compile(r"SCREENSHOT\((?P<url>[^)]+)\)")
_TAG_NOTE = re.compile(r"TAG\((?P<tags>[^)]+)\)")


def extract_structured_notes(notes: Optional[str]) -> Dict[str, Any]:
    """
    Pull structured annotations out of free-form developer notes.

    Supported annotations: ``PH(value|sample|description)``, ``MAXWIDTH(n)``,
    ``SCREENSHOT(url)`` and ``TAG(a, b)``. Whatever is left becomes ``desc``.

    Example:
        >>> extract_structured_notes("Greeting PH({name}|Joe|user name) MAXWIDTH(20)")
        {'ph': {'{name}': {'sample': 'Joe', 'desc': 'user name'}}, 'max_width': 20, 'desc': 'Greeting'}
    """
    if not notes:
        return {}
    result: Dict[str, Any] = {}

    placeholders = {}
    for match in _PH_NOTE.finditer(notes):
        entry = {}
        if match.group("sample"):
            entry["sample"] = match.group("sample")
        if match.group("desc"):
            entry["desc"] = match.group("desc")
        placeholders[match.group("ph")] = entry
    if placeholders:
        result["ph"] = placeholders

    width = _MAXWIDTH_NOTE.search(notes)
    if width:
        result["max_width"] = int(width.group("width"))
    screenshot = _SCREENSHOT_NOTE.search(notes)
    if screenshot:
        result["screenshot"] = screenshot.group("url")
    tags = _TAG_NOTE.search(notes)
    if tags:
        result["tags"] = [t.strip() for t in tags.group("tags").split(",") if t.strip()]

    desc = notes
    for pattern in (_PH_NOTE, _MAXWIDTH_NOTE, _SCREENSHOT_NOTE, _TAG_NOTE):
        desc = pattern.sub("", desc)
    desc = " ".join(desc.split())
    if desc:
        result["desc"] = desc
    return result
