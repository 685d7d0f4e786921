"""
Normalizer/Codec

Converts raw message text into normalized strings (literal text plus typed
placeholders) and back.
"""

from .parts import Placeholder, Part, is_balanced, plain_text, parts_from_json, parts_to_json
from .regex import (
    decoder_maker,
    encoder_maker,
    consolidate_decoded_parts,
    decode_normalized_string,
    get_normalized_string,
)
from .normalizers import (
    MessageFormatNormalizer,
    named_decoder,
    gated_encoder,
    keyword_translator_maker,
    protected_terms_decoder,
    json_message_normalizer,
    android_message_normalizer,
)
from .utils import (
    flatten_normalized_source_v1,
    extract_normalized_parts_v1,
    source_and_target_are_compatible,
    normalized_strings_are_equal,
    extract_structured_notes,
    count_words,
)

__all__ = [
    "Placeholder",
    "Part",
    "is_balanced",
    "plain_text",
    "parts_from_json",
    "parts_to_json",
    "decoder_maker",
    "encoder_maker",
    "consolidate_decoded_parts",
    "decode_normalized_string",
    "get_normalized_string",
    "MessageFormatNormalizer",
    "named_decoder",
    "gated_encoder",
    "keyword_translator_maker",
    "protected_terms_decoder",
    "json_message_normalizer",
    "android_message_normalizer",
    "flatten_normalized_source_v1",
    "extract_normalized_parts_v1",
    "source_and_target_are_compatible",
    "normalized_strings_are_equal",
    "extract_structured_notes",
    "count_words",
]
