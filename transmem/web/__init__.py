"""Read-only web interface over a translation engine."""

from flask import Flask


def create_app(base_dir) -> Flask:
    """Application factory: build an engine rooted at ``base_dir`` and serve it."""
    from transmem.engine import TranslationEngine
    from .app import build_app  # Import here to avoid circular imports

    return build_app(TranslationEngine.create(base_dir))


__all__ = ["create_app"]
