"""
Normalized string parts.

A normalized string is a list whose items are either plain ``str`` (literal
text) or ``Placeholder`` values. While a decoder chain runs, literal text may
also appear as ``Text`` so that the decoder that produced it can be recorded.
"""

from dataclasses import dataclass, asdict
from typing import Any, Dict, Iterable, List, Optional, Union

PLACEHOLDER_TYPES = ("x", "bx", "ex")


@dataclass(frozen=True)
class Placeholder:
    """Placeholder or tag marker.

    ``t`` is ``x`` for a self-contained placeholder, ``bx``/``ex`` for the
    open/close markers of a nested construct. ``v`` is the raw value,
    ``s`` an optional sample and ``v1`` the mangled name assigned when a
    string is flattened for a provider.
    """
    t: str
    v: str
    s: Optional[str] = None
    v1: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass(frozen=True)
class Text:
    """Literal text produced while decoding, tagged with the decoder flag."""
    v: str
    flag: Optional[str] = None


Part = Union[str, Placeholder]
DecodingPart = Union[str, Text, Placeholder]


def is_text(part) -> bool:
    return isinstance(part, (str, Text))


def text_value(part) -> str:
    return part if isinstance(part, str) else part.v


def part_from_json(value: Any) -> Part:
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        return Placeholder(
            t=value.get("t", "x"),
            v=value.get("v", ""),
            s=value.get("s"),
            v1=value.get("v1"),
        )
    raise ValueError(f"Invalid normalized string part: {value!r}")


def parts_from_json(values: Optional[Iterable[Any]]) -> Optional[List[Part]]:
    if values is None:
        return None
    if isinstance(values, str):
        return [values]
    return [part_from_json(v) for v in values]


def parts_to_json(parts: Optional[Iterable[Part]]) -> Optional[List[Any]]:
    if parts is None:
        return None
    return [p if isinstance(p, str) else p.to_dict() for p in parts]


def plain_text(parts: Iterable[Part]) -> str:
    """Concatenate only the literal text of a normalized string."""
    return "".join(p for p in parts if isinstance(p, str))


def is_balanced(parts: Iterable[Part]) -> bool:
    """Check that bx/ex markers nest properly and close to depth zero."""
    depth = 0
    for part in parts:
        if isinstance(part, Placeholder):
            if part.t == "bx":
                depth += 1
            elif part.t == "ex":
                depth -= 1
                if depth < 0:
                    return False
    return depth == 0
