"""
Regex-based decoder/encoder factories.

Decoders turn literal text into placeholders (or into unescaped literal text),
encoders do the opposite when a normalized string is rendered back for a
specific format. Decoders are generally more involved than encoders since
inputs can express the same thing in many ways while output picks one.
"""

import re
from typing import Callable, Dict, List, Optional, Sequence, Union

from transmem.normalization.parts import (
    DecodingPart,
    Part,
    Placeholder,
    Text,
    is_text,
    text_value,
)

Decoder = Callable[[List[DecodingPart]], List[DecodingPart]]
Encoder = Callable[..., str]


def decoder_maker(flag: str, regex: Union[str, re.Pattern],
                  part_decoder: Callable[[Dict[str, Optional[str]]], object]) -> Decoder:
    """
    Create a decoder that scans literal text with ``regex``.

    Args:
        flag: Name of the decoder, recorded on the literal text it produces
        regex: Pattern with named groups
        part_decoder: Receives the named groups of a match and returns a str
            (literal text), a Placeholder or a list of parts

    Returns:
        A function mapping a list of parts to a new list of parts
    """
    pattern = re.compile(regex) if isinstance(regex, str) else regex

    def decoder(parts: List[DecodingPart]) -> List[DecodingPart]:
        decoded: List[DecodingPart] = []
        for part in parts:
            if not is_text(part):
                decoded.append(part)
                continue
            value = text_value(part)
            pos = 0
            for match in pattern.finditer(value):
                if match.start() > pos:
                    decoded.append(Text(value[pos:match.start()]))
                result = part_decoder(match.groupdict())
                if isinstance(result, str):
                    decoded.append(Text(result, flag))
                elif isinstance(result, list):
                    decoded.extend(result)
                else:
                    decoded.append(result)
                pos = match.end()
            if pos < len(value):
                decoded.append(Text(value[pos:]))
        return decoded

    decoder.__name__ = flag
    return decoder


def encoder_maker(name: str, regex: Union[str, re.Pattern],
                  match_map: Union[Dict[str, str], Callable[..., str]]) -> Encoder:
    """
    Create an encoder replacing every ``regex`` match in a string.

    ``match_map`` is either a dict from the first non-empty capture to its
    replacement, or a callable ``(match, flags, *captures) -> str``.
    """
    pattern = re.compile(regex) if isinstance(regex, str) else regex

    def encoder(value, flags: Optional[dict] = None) -> str:
        flags = flags or {}
        value = value if isinstance(value, str) else value.v

        def replace(match: re.Match) -> str:
            captures = match.groups()
            if callable(match_map):
                return match_map(match.group(0), flags, *captures)
            to_replace = next((c for c in captures if c is not None), match.group(0))
            return match.group(0).replace(to_replace, match_map.get(to_replace, to_replace), 1)

        return pattern.sub(replace, value)

    encoder.__name__ = name
    return encoder


def consolidate_decoded_parts(parts: Sequence[DecodingPart], flags: dict,
                              convert_to_string: bool = False) -> List[DecodingPart]:
    """Merge adjacent literal parts and record in ``flags`` the decoders that fired."""
    consolidated: List[DecodingPart] = []
    accumulated = ""
    for part in parts:
        if is_text(part):
            accumulated += text_value(part)
            if isinstance(part, Text) and part.flag:
                flags[part.flag] = True
        else:
            if accumulated:
                consolidated.append(accumulated if convert_to_string else Text(accumulated))
                accumulated = ""
            consolidated.append(part)
    if accumulated:
        consolidated.append(accumulated if convert_to_string else Text(accumulated))
    return consolidated


def decode_normalized_string(nstr: Sequence[DecodingPart], decoders: Optional[Sequence[Decoder]],
                             flags: Optional[dict] = None) -> List[Part]:
    """Run a decoder chain over a normalized string."""
    flags = {} if flags is None else flags
    parts = list(nstr)
    for decoder in decoders or ():
        parts = consolidate_decoded_parts(decoder(parts), flags)
    return consolidate_decoded_parts(parts, flags, convert_to_string=True)


def get_normalized_string(text: str, decoders: Optional[Sequence[Decoder]],
                          flags: Optional[dict] = None) -> List[Part]:
    if not decoders:
        return [text] if text else []
    return decode_normalized_string([Text(text)], decoders, flags)
