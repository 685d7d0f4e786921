"""Content identifiers for translation units."""

import base64
import hashlib
from typing import Sequence

from transmem.normalization.parts import Part


def generate_guid(text: str) -> str:
    """Return the url-safe base64 SHA-256 digest of ``text`` (43 chars, no padding)."""
    digest = hashlib.sha256(text.encode('utf-8')).digest()
    return base64.urlsafe_b64encode(digest).decode('ascii')[:43]


def flatten_normalized_source_to_ordinal(nsrc: Sequence[Part]) -> str:
    """
    Render a normalized string keeping only its structure.

    Literal text is kept verbatim and each placeholder becomes ``{{<type><n>}}``
    where ``n`` is its 1-based position among placeholders, so that changes to
    a placeholder's value or sample do not change the result.

    Example:
        >>> flatten_normalized_source_to_ordinal(["Hi ", Placeholder("x", "{name}"), "!"])
        'Hi {{x1}}!'
    """
    flat = []
    ph_idx = 0
    for part in nsrc:
        if isinstance(part, str):
            flat.append(part)
        else:
            ph_idx += 1
            flat.append(f"{{{{{part.t}{ph_idx}}}}}")
    return "".join(flat)


def make_segment_guid(rid: str, sid: str, nsrc: Sequence[Part]) -> str:
    """Guid of a segment: hash of resource id, segment id and structural source."""
    return generate_guid(f"{rid}|{sid}|{flatten_normalized_source_to_ordinal(nsrc)}")
