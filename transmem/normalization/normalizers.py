"""
Stock decoders, encoders and the message format normalizer.

Decoders:
- doublePercentDecoder: ``%%`` -> ``%``
- bracePHDecoder: ``{name}`` placeholders
- printfPHDecoder: printf style ``%s``, ``%1$d``, ``%.2f``...
- xmlEntityDecoder / xmlTagDecoder: XML and HTML entities and tags
- androidEscapesDecoder: Android string resource escapes
- protected terms: words that must be kept verbatim in translations

Encoders are the partial inverse and can be gated by the flags collected
while decoding.
"""

import re
from typing import Dict, List, Optional, Sequence, Tuple, Union

from transmem.normalization.parts import Part, Placeholder, Text
from transmem.normalization.regex import (
    Decoder,
    Encoder,
    decoder_maker,
    encoder_maker,
    get_normalized_string,
)


# ============================================================
# Decoders
# ============================================================

def named_decoder(name: str, decoder: Decoder) -> Decoder:
    """Rename a decoder, including the flag it puts on the text it produces."""
    original = decoder.__name__

    def renamed(parts):
        return [
            Text(p.v, name) if isinstance(p, Text) and p.flag == original else p
            for p in decoder(parts)
        ]

    renamed.__name__ = name
    return renamed


double_percent_decoder = decoder_maker(
    "doublePercentDecoder",
    r"(?P<percent>%%)",
    lambda groups: "%",
)

brace_ph_decoder = decoder_maker(
    "bracePHDecoder",
    r"(?P<x>\{[^}]+\})",
    lambda groups: Placeholder(t="x", v=groups["x"]),
)

double_brace_ph_decoder = decoder_maker(
    "doubleBracePHDecoder",
    r"(?P<x>\{\{[^}]+\}\})",
    lambda groups: Placeholder(t="x", v=groups["x"]),
)

printf_ph_decoder = decoder_maker(
    "printfPHDecoder",
    r"(?P<tag>%(?:\d\$)?[0#+-]?[0-9*]*\.?\d*[hl]{0,2}[jztL]?[diuoxXeEfgGaAcpsSn])",
    lambda groups: Placeholder(t="x", v=groups["tag"]),
)

NAMED_ENTITIES = {
    "&nbsp;": "\u00a0",
    "&amp;": "&",
    "&apos;": "'",
    "&quot;": '"',
    "&lt;": "<",
    "&gt;": ">",
}


def _decode_entity(groups) -> str:
    if groups.get("named"):
        return NAMED_ENTITIES.get(groups["named"], groups["named"])
    if groups.get("hex"):
        return chr(int(groups["hex"], 16))
    return chr(int(groups["numeric"], 10))


xml_entity_decoder = decoder_maker(
    "xmlEntityDecoder",
    r"(?P<node>&#x(?P<hex>[0-9a-fA-F]+);|(?P<named>&[^#;\s]+;)|&#(?P<numeric>\d+);)",
    _decode_entity,
)


def _decode_tag(groups) -> Placeholder:
    if groups.get("bx"):
        t = "bx"
    elif groups.get("ex"):
        t = "ex"
    else:
        t = "x"
    return Placeholder(t=t, v=groups["tag"])


xml_tag_decoder = decoder_maker(
    "xmlTagDecoder",
    r"(?P<tag>(?P<x><[^>]+/>)|(?P<bx><[^/!][^>]*>)|(?P<ex></[^>]+>))",
    _decode_tag,
)

ANDROID_CONTROL_CHARS = {"n": "\n", "t": "\t"}


def _decode_android_escape(groups) -> str:
    if groups.get("char"):
        return groups["char"]
    if groups.get("control"):
        return ANDROID_CONTROL_CHARS.get(groups["control"], f"\\{groups['control']}")
    return chr(int(groups["code"], 16))


android_escapes_decoder = decoder_maker(
    "androidEscapesDecoder",
    r"(?P<node>\\(?P<char>[@?\\'\"])|\\(?P<control>[nt])|\\u(?P<code>[0-9A-Fa-f]{4}))",
    _decode_android_escape,
)


def protected_terms_decoder(terms: Sequence[str], name: str = "protectedTermsDecoder") -> Decoder:
    """
    Turn terms that must not be translated into placeholders.

    Longer terms win over shorter overlapping ones, matching is on whole words.
    """
    cleaned = sorted({t for t in terms if t}, key=len, reverse=True)
    if not cleaned:
        raise ValueError("protected_terms_decoder needs at least one term")
    alternatives = "|".join(re.escape(t) for t in cleaned)
    return decoder_maker(
        name,
        rf"\b(?P<term>{alternatives})\b",
        lambda groups: Placeholder(t="x", v=groups["term"], s=groups["term"]),
    )


def keyword_translator_maker(name: str, keyword_map: Dict[str, Union[str, Dict[str, str]]]) -> Tuple[Decoder, Encoder]:
    """
    Build a decoder/encoder pair for keywords that get a fixed translation.

    The decoder protects each keyword as ``name:keyword``; the encoder renders
    it back with the translation for the target language (or project), or the
    keyword itself when none is configured.
    """
    if not keyword_map:
        raise ValueError("keyword_translator_maker needs a keyword map")
    alternatives = "|".join(re.escape(k) for k in keyword_map)
    decoder = decoder_maker(
        name,
        rf"(?P<kw>{alternatives})",
        lambda groups: Placeholder(t="x", v=f"{name}:{groups['kw']}", s=groups["kw"]),
    )

    def translate(match, flags, kw):
        tx = keyword_map.get(kw)
        if isinstance(tx, dict):
            return tx.get(flags.get("target_lang")) or tx.get(flags.get("prj")) or kw
        return kw

    encoder = encoder_maker(name, rf"^(?:{re.escape(name)}:(?P<kw>.+))$", translate)
    return decoder, encoder


# ============================================================
# Encoders
# ============================================================

def gated_encoder(encoder: Encoder, *flag_names: str) -> Encoder:
    """Only run ``encoder`` when one of the flags is set (``!flag`` negates)."""
    def gated(value, flags: Optional[dict] = None) -> str:
        flags = flags or {}
        run = False
        for flag in flag_names:
            if flag.startswith("!"):
                run = run or not flags.get(flag[1:])
            else:
                run = run or bool(flags.get(flag))
        if run:
            return encoder(value, flags)
        return value if isinstance(value, str) else value.v

    gated.__name__ = f"gatedEncoder_{'_'.join(flag_names)}"
    return gated


double_percent_encoder = encoder_maker("doublePercentEncoder", r"(?P<pct>%)", {"%": "%%"})

xml_entity_encoder = encoder_maker(
    "xmlEntityEncoder",
    r"(&)|(<)|(\u00a0)",
    {"&": "&amp;", "<": "&lt;", "\u00a0": "&#160;"},
)


def android_escapes_encoder(value: str, flags: Optional[dict] = None) -> str:
    flags = flags or {}
    escaped = re.sub(r"[@\\'\"]", lambda m: "\\" + m.group(0), value)
    escaped = escaped.replace("\t", "\\t").replace("\n", "\\n")
    escaped = re.sub(r"(?<!%)%(?!%)", r"\\u0025", escaped)
    if flags.get("is_first") and escaped.startswith(" "):
        escaped = "\\u0020" + escaped[1:]
    if flags.get("is_last") and escaped.endswith(" "):
        escaped = escaped[:-1] + "\\u0020"
    return escaped


# ============================================================
# Message format normalizer
# ============================================================

class MessageFormatNormalizer:
    """
    Bidirectional codec for one message format.

    ``decode`` turns raw text into a normalized string, ``encode`` renders a
    normalized string back, passing literal text through the text encoders
    and placeholders through the code encoders.
    """

    def __init__(self, decoders: Optional[Sequence[Decoder]] = None,
                 text_encoders: Optional[Sequence[Encoder]] = None,
                 code_encoders: Optional[Sequence[Encoder]] = None,
                 join_part=None):
        self.decoders = list(decoders or [])
        self.text_encoders = list(text_encoders or [])
        self.code_encoders = list(code_encoders or [])
        self.join_part = join_part or "".join

    def decode(self, text: str, flags: Optional[dict] = None) -> List[Part]:
        return get_normalized_string(text, self.decoders, flags)

    def encode(self, nstr: Sequence[Part], flags: Optional[dict] = None) -> str:
        flags = dict(flags or {})
        rendered = []
        last = len(nstr) - 1
        for idx, part in enumerate(nstr):
            part_flags = {**flags, "is_first": idx == 0, "is_last": idx == last}
            if isinstance(part, str):
                value = part
                for encoder in self.text_encoders:
                    value = encoder(value, part_flags)
            else:
                value = part.v
                for encoder in self.code_encoders:
                    value = encoder(value, part_flags)
            rendered.append(value)
        return self.join_part(rendered)


def json_message_normalizer() -> MessageFormatNormalizer:
    """Normalizer for i18next-style JSON resources: ``{var}`` and ``{{var}}`` placeholders, HTML tags."""
    return MessageFormatNormalizer(
        decoders=[xml_tag_decoder, double_brace_ph_decoder, brace_ph_decoder, printf_ph_decoder],
    )


def android_message_normalizer() -> MessageFormatNormalizer:
    return MessageFormatNormalizer(
        decoders=[xml_entity_decoder, xml_tag_decoder, android_escapes_decoder, printf_ph_decoder],
        text_encoders=[android_escapes_encoder, gated_encoder(xml_entity_encoder, "xmlEntityDecoder")],
    )
