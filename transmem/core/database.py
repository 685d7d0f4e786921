"""
Database CRUD Operations Module

This module handles all database CRUD operations for:
- Jobs (status index, job requests and job translation units)
- Translation memory entries
- Source snapshots
- App Config

Functions taking a ``cursor`` run inside a transaction opened by the caller,
the others open their own connection.

For schema management and migrations, see core/schema.py
"""

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Optional, List, Dict, Any, Iterator, Tuple, Union

DbPath = Union[str, Path]


@contextmanager
def get_connection(db_file: DbPath) -> Iterator[sqlite3.Connection]:
    """Get a database connection; commits on success, rolls back on error, always closes."""
    conn = sqlite3.connect(str(db_file), timeout=30)
    conn.row_factory = sqlite3.Row
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


# ============================================================
# Job CRUD Operations
# ============================================================

def upsert_job(cursor: sqlite3.Cursor, job_row: Dict[str, Any]):
    """Insert or replace a job status index entry."""
    cursor.execute("""
        INSERT OR REPLACE INTO jobs (
            job_guid, source_lang, target_lang, translation_provider, status,
            updated_at, original_job_guid, inflight, job_props
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
    """, (
        job_row["job_guid"],
        job_row["source_lang"],
        job_row["target_lang"],
        job_row.get("translation_provider"),
        job_row["status"],
        job_row.get("updated_at"),
        job_row.get("original_job_guid"),
        json.dumps(job_row.get("inflight") or [], ensure_ascii=False),
        json.dumps(job_row.get("job_props") or {}, ensure_ascii=False),
    ))


def upsert_job_request(cursor: sqlite3.Cursor, job_guid: str, request: Dict[str, Any]):
    cursor.execute("""
        INSERT OR REPLACE INTO job_requests (job_guid, request, created_at)
        VALUES (?, ?, ?)
    """, (job_guid, json.dumps(request, ensure_ascii=False), datetime.now().isoformat()))


def replace_job_tus(cursor: sqlite3.Cursor, job_guid: str, tu_rows: List[Dict[str, Any]]) -> List[str]:
    """
    Replace the translation units stored for a job.

    Returns:
        The guids the job held before the replacement
    """
    cursor.execute("SELECT guid FROM job_tus WHERE job_guid = ?", (job_guid,))
    previous = [row[0] for row in cursor.fetchall()]
    cursor.execute("DELETE FROM job_tus WHERE job_guid = ?", (job_guid,))
    cursor.executemany("""
        INSERT INTO job_tus (job_guid, tu_order, guid, q, ts, inflight, tu)
        VALUES (?, ?, ?, ?, ?, ?, ?)
    """, [
        (job_guid, order, row["guid"], row.get("q"), row.get("ts"),
         1 if row.get("inflight") else 0, json.dumps(row, ensure_ascii=False))
        for order, row in enumerate(tu_rows)
    ])
    return previous


def delete_job_rows(cursor: sqlite3.Cursor, job_guid: str) -> List[str]:
    """Delete a job, its request and its units; returns the guids it held."""
    cursor.execute("SELECT guid FROM job_tus WHERE job_guid = ?", (job_guid,))
    previous = [row[0] for row in cursor.fetchall()]
    cursor.execute("DELETE FROM job_tus WHERE job_guid = ?", (job_guid,))
    cursor.execute("DELETE FROM job_requests WHERE job_guid = ?", (job_guid,))
    cursor.execute("DELETE FROM jobs WHERE job_guid = ?", (job_guid,))
    return previous


def get_job_status_row(cursor: sqlite3.Cursor, job_guid: str) -> Optional[Dict[str, Any]]:
    cursor.execute("SELECT * FROM jobs WHERE job_guid = ?", (job_guid,))
    row = cursor.fetchone()
    return _job_row_to_dict(row) if row else None


def _job_row_to_dict(row: sqlite3.Row) -> Dict[str, Any]:
    data = dict(row)
    data["inflight"] = json.loads(data.get("inflight") or "[]")
    data["job_props"] = json.loads(data.get("job_props") or "{}")
    return data


def get_job(db_file: DbPath, job_guid: str) -> Optional[Dict[str, Any]]:
    """Get a job status index entry."""
    with get_connection(db_file) as conn:
        return get_job_status_row(conn.cursor(), job_guid)


def get_job_tus(db_file: DbPath, job_guid: str, include_inflight: bool = False) -> List[Dict[str, Any]]:
    """Get the translation units of a job in their original order."""
    with get_connection(db_file) as conn:
        cursor = conn.cursor()
        query = "SELECT tu FROM job_tus WHERE job_guid = ?"
        if not include_inflight:
            query += " AND inflight = 0"
        cursor.execute(query + " ORDER BY tu_order", (job_guid,))
        return [json.loads(row[0]) for row in cursor.fetchall()]


def get_job_request(db_file: DbPath, job_guid: str) -> Optional[Dict[str, Any]]:
    with get_connection(db_file) as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT request FROM job_requests WHERE job_guid = ?", (job_guid,))
        row = cursor.fetchone()
        return json.loads(row[0]) if row else None


def get_jobs_by_lang_pair(db_file: DbPath, source_lang: str, target_lang: str) -> List[Dict[str, Any]]:
    """Get the job status index of a language pair with the number of units of each job."""
    with get_connection(db_file) as conn:
        cursor = conn.cursor()
        cursor.execute("""
            SELECT j.*, COUNT(jt.id) AS units
            FROM jobs j
            LEFT JOIN job_tus jt ON jt.job_guid = j.job_guid AND jt.inflight = 0
            WHERE j.source_lang = ? AND j.target_lang = ?
            GROUP BY j.job_guid
            ORDER BY j.updated_at, j.job_guid
        """, (source_lang, target_lang))
        return [_job_row_to_dict(row) for row in cursor.fetchall()]


def get_available_lang_pairs(db_file: DbPath) -> List[Tuple[str, str]]:
    with get_connection(db_file) as conn:
        cursor = conn.cursor()
        cursor.execute("""
            SELECT DISTINCT source_lang, target_lang FROM jobs
            ORDER BY source_lang, target_lang
        """)
        return [(row[0], row[1]) for row in cursor.fetchall()]


def get_best_job_tu(cursor: sqlite3.Cursor, source_lang: str, target_lang: str,
                    guid: str) -> Optional[Dict[str, Any]]:
    """Best stored unit for a guid across all jobs of a pair (translations before in-flight markers)."""
    cursor.execute("""
        SELECT jt.job_guid, jt.tu
        FROM job_tus jt
        JOIN jobs j ON j.job_guid = jt.job_guid
        WHERE j.source_lang = ? AND j.target_lang = ? AND jt.guid = ?
        ORDER BY jt.inflight ASC, jt.q DESC, jt.ts DESC, jt.id ASC
        LIMIT 1
    """, (source_lang, target_lang, guid))
    row = cursor.fetchone()
    return json.loads(row["tu"]) if row else None


# ============================================================
# Translation Memory Entry Operations
# ============================================================

def get_tm_entry_row(cursor: sqlite3.Cursor, source_lang: str, target_lang: str,
                     guid: str) -> Optional[Dict[str, Any]]:
    cursor.execute("""
        SELECT * FROM tm_entries WHERE source_lang = ? AND target_lang = ? AND guid = ?
    """, (source_lang, target_lang, guid))
    row = cursor.fetchone()
    return dict(row) if row else None


def put_tm_entry(cursor: sqlite3.Cursor, source_lang: str, target_lang: str,
                 tu: Dict[str, Any], flat_src: Optional[str]):
    cursor.execute("""
        INSERT OR REPLACE INTO tm_entries (
            source_lang, target_lang, guid, job_guid, flat_src, q, ts, inflight, tu
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
    """, (
        source_lang,
        target_lang,
        tu["guid"],
        tu.get("job_guid"),
        flat_src,
        tu.get("q"),
        tu.get("ts"),
        1 if tu.get("inflight") else 0,
        json.dumps(tu, ensure_ascii=False),
    ))


def delete_tm_entry(cursor: sqlite3.Cursor, source_lang: str, target_lang: str, guid: str):
    cursor.execute("""
        DELETE FROM tm_entries WHERE source_lang = ? AND target_lang = ? AND guid = ?
    """, (source_lang, target_lang, guid))


def get_tm_entry(db_file: DbPath, source_lang: str, target_lang: str, guid: str) -> Optional[Dict[str, Any]]:
    with get_connection(db_file) as conn:
        row = get_tm_entry_row(conn.cursor(), source_lang, target_lang, guid)
        return json.loads(row["tu"]) if row else None


def get_tm_entries_by_flat_src(db_file: DbPath, source_lang: str, target_lang: str,
                               flat_src: str) -> List[Dict[str, Any]]:
    with get_connection(db_file) as conn:
        cursor = conn.cursor()
        cursor.execute("""
            SELECT tu FROM tm_entries
            WHERE source_lang = ? AND target_lang = ? AND flat_src = ?
            ORDER BY guid
        """, (source_lang, target_lang, flat_src))
        return [json.loads(row[0]) for row in cursor.fetchall()]


def get_tm_guids(db_file: DbPath, source_lang: str, target_lang: str) -> List[str]:
    with get_connection(db_file) as conn:
        cursor = conn.cursor()
        cursor.execute("""
            SELECT guid FROM tm_entries WHERE source_lang = ? AND target_lang = ? ORDER BY guid
        """, (source_lang, target_lang))
        return [row[0] for row in cursor.fetchall()]


def get_tm_entries(db_file: DbPath, source_lang: str, target_lang: str) -> List[Dict[str, Any]]:
    with get_connection(db_file) as conn:
        cursor = conn.cursor()
        cursor.execute("""
            SELECT tu FROM tm_entries WHERE source_lang = ? AND target_lang = ? ORDER BY guid
        """, (source_lang, target_lang))
        return [json.loads(row[0]) for row in cursor.fetchall()]


def get_tm_quality_histogram(db_file: DbPath, source_lang: str, target_lang: str) -> Dict[int, int]:
    """Number of translated entries for each quality value."""
    with get_connection(db_file) as conn:
        cursor = conn.cursor()
        cursor.execute("""
            SELECT q, COUNT(*) FROM tm_entries
            WHERE source_lang = ? AND target_lang = ? AND inflight = 0
            GROUP BY q ORDER BY q
        """, (source_lang, target_lang))
        return {row[0]: row[1] for row in cursor.fetchall()}


# ============================================================
# Source Snapshot Operations
# ============================================================

def replace_source_snap(db_file: DbPath, channel: str, resources: List[Dict[str, Any]]):
    """Replace the snapshot of a channel with a new set of parsed resources."""
    with get_connection(db_file) as conn:
        cursor = conn.cursor()
        cursor.execute("DELETE FROM source_snap WHERE channel = ?", (channel,))
        cursor.executemany("""
            INSERT INTO source_snap (channel, rid, prj, modified, resource, snapped_at)
            VALUES (?, ?, ?, ?, ?, ?)
        """, [
            (channel, res["id"], res.get("prj"), res.get("modified"),
             json.dumps(res, ensure_ascii=False), datetime.now().isoformat())
            for res in resources
        ])


def has_source_snap(db_file: DbPath, channel: str) -> bool:
    with get_connection(db_file) as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT 1 FROM source_snap WHERE channel = ? LIMIT 1", (channel,))
        return cursor.fetchone() is not None


def get_source_snap(db_file: DbPath, channel: str) -> List[Dict[str, Any]]:
    with get_connection(db_file) as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT resource FROM source_snap WHERE channel = ? ORDER BY rid", (channel,))
        return [json.loads(row[0]) for row in cursor.fetchall()]


# ============================================================
# App Config Operations
# ============================================================

def get_app_config(db_file: DbPath, key: str) -> Optional[str]:
    """Get a configuration value by key."""
    with get_connection(db_file) as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT value FROM app_config WHERE key = ?", (key,))
        row = cursor.fetchone()
        return row[0] if row else None


def set_app_config(db_file: DbPath, key: str, value: str):
    """Set a configuration value."""
    with get_connection(db_file) as conn:
        cursor = conn.cursor()
        cursor.execute("""
            INSERT OR REPLACE INTO app_config (key, value, updated_at)
            VALUES (?, ?, ?)
        """, (key, value, datetime.now().isoformat()))
