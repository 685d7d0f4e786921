"""Engine status API routes."""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify

from transmem.logger import get_logger

status_bp = Blueprint("status", __name__)
logger = get_logger(__name__)


@status_bp.get("")
def get_status():
    """Job counts, memory sizes and leverage of every configured language."""
    engine = current_app.config["ENGINE"]
    return jsonify(engine.status())


@status_bp.get("/providers")
def list_providers():
    engine = current_app.config["ENGINE"]
    return jsonify({"providers": [provider.info() for provider in engine.providers]})


@status_bp.get("/<target_lang>/analysis")
def get_analysis(target_lang: str):
    """Quality issues and completeness of one target language."""
    engine = current_app.config["ENGINE"]
    if target_lang not in engine.context.target_langs:
        logger.warning("Analysis requested for unknown language %s", target_lang)
        return jsonify({"error": f"Unknown target language: {target_lang}"}), 404
    return jsonify(engine.analyze(target_lang))
