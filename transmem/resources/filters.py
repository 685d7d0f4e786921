"""
Resource filters.

A filter turns the raw content of a resource into segments
``{"sid", "str", "notes"?}`` and renders a translated resource back from
the same raw content and a translator callback.
"""

import json
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Tuple

from transmem.logger import get_logger

logger = get_logger(__name__)

# (sid, source string) -> translated string, or None to leave the string out
Translator = Callable[[str, str], Optional[str]]


class ResourceFilter(ABC):

    @abstractmethod
    def parse_resource(self, raw: str) -> Dict[str, List[Dict[str, Any]]]:
        """Return ``{"segments": [{"sid", "str", "notes"?}, ...]}``."""

    @abstractmethod
    def translate_resource(self, raw: str, translator: Translator) -> Optional[str]:
        """Render the translated resource, or None if nothing was translated."""


def flatten_json(obj: Any, path: str = "", pairs: List[Tuple[str, Any]] = None) -> List[Tuple[str, Any]]:
    """
    Flatten nested JSON into key-value pairs.

    Arrays are flattened with their index as key.

    Example:
        >>> flatten_json({"home": {"title": "Hello", "tabs": ["One", "Two"]}})
        [("home.title", "Hello"), ("home.tabs.0", "One"), ("home.tabs.1", "Two")]
    """
    if pairs is None:
        pairs = []

    if isinstance(obj, dict):
        for key, value in obj.items():
            flatten_json(value, f"{path}.{key}" if path else key, pairs)
    elif isinstance(obj, list):
        for i, value in enumerate(obj):
            flatten_json(value, f"{path}.{i}" if path else str(i), pairs)
    elif path:
        pairs.append((path, obj))

    return pairs


def _replace_strings(obj: Any, path: str, translations: Dict[str, str]) -> Any:
    """Copy of ``obj`` with translated strings; untranslated strings are dropped."""
    if isinstance(obj, dict):
        result = {}
        for key, value in obj.items():
            new_value = _replace_strings(value, f"{path}.{key}" if path else key, translations)
            if new_value is not None:
                result[key] = new_value
        return result or None
    if isinstance(obj, list):
        items = [_replace_strings(v, f"{path}.{i}" if path else str(i), translations) for i, v in enumerate(obj)]
        return items if any(item is not None for item in items) else None
    if isinstance(obj, str):
        return translations.get(path)
    return obj


class JsonResourceFilter(ResourceFilter):
    """
    Filter for nested JSON string files (i18next style).

    Keys starting with ``@`` annotate the key of the same name: ARB-style
    ``"@title": {"description": "..."}`` becomes the notes of ``title``.
    Only non-empty strings are translatable.
    """

    def _load(self, raw: str) -> Dict[str, Any]:
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise ValueError(f"JSON resource must contain an object, got {type(data).__name__}")
        return data

    def parse_resource(self, raw: str) -> Dict[str, List[Dict[str, Any]]]:
        data = self._load(raw)
        annotations = {}
        for key_path, value in flatten_json(data):
            parts = key_path.split(".")
            if parts[-1] == "description" and len(parts) > 1 and parts[-2].startswith("@"):
                annotations[".".join(parts[:-2] + [parts[-2][1:]])] = value

        segments = []
        for key_path, value in flatten_json(data):
            if any(part.startswith("@") for part in key_path.split(".")):
                continue
            if not isinstance(value, str) or not value.strip():
                continue
            segment = {"sid": key_path, "str": value}
            if key_path in annotations:
                segment["notes"] = annotations[key_path]
            segments.append(segment)
        logger.debug(f"Parsed {len(segments)} segments")
        return {"segments": segments}

    def translate_resource(self, raw: str, translator: Translator) -> Optional[str]:
        data = self._load(raw)
        translations = {}
        for segment in self.parse_resource(raw)["segments"]:
            translated = translator(segment["sid"], segment["str"])
            if translated is not None:
                translations[segment["sid"]] = translated
        if not translations:
            return None
        data = {k: v for k, v in data.items() if not k.startswith("@")}
        return json.dumps(_replace_strings(data, "", translations) or {}, ensure_ascii=False, indent=2) + "\n"
