"""Translation memory API routes."""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from transmem.logger import get_logger

tm_bp = Blueprint("tm", __name__)
logger = get_logger(__name__)

DEFAULT_PAGE_SIZE = 100
MAX_PAGE_SIZE = 1000


@tm_bp.get("/pairs")
def list_pairs():
    engine = current_app.config["ENGINE"]
    pairs = [{"source_lang": src, "target_lang": tgt} for src, tgt in engine.tm_manager.get_available_lang_pairs()]
    return jsonify({"pairs": pairs})


@tm_bp.get("/<source_lang>/<target_lang>")
def list_entries(source_lang: str, target_lang: str):
    """Current memory entries of a pair, paginated with ``offset`` and ``limit``."""
    try:
        offset = max(0, int(request.args.get("offset", 0)))
        limit = min(MAX_PAGE_SIZE, max(1, int(request.args.get("limit", DEFAULT_PAGE_SIZE))))
    except ValueError:
        return jsonify({"error": "offset and limit must be integers"}), 400

    engine = current_app.config["ENGINE"]
    entries = engine.tm_manager.get_tm(source_lang, target_lang).get_all_entries()
    return jsonify({
        "source_lang": source_lang,
        "target_lang": target_lang,
        "total": len(entries),
        "offset": offset,
        "entries": [tu.to_dict() for tu in entries[offset:offset + limit]],
    })


@tm_bp.get("/<source_lang>/<target_lang>/<guid>")
def get_entry(source_lang: str, target_lang: str, guid: str):
    engine = current_app.config["ENGINE"]
    entry = engine.tm_manager.get_tm(source_lang, target_lang).get_entry_by_guid(guid)
    if entry is None:
        return jsonify({"error": f"No entry for {guid}"}), 404
    return jsonify(entry.to_dict())
