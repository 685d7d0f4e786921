"""
Database Schema Management Module

This module handles database initialization, schema validation, and migrations.
For CRUD operations, see core/database.py
"""

import sqlite3
from pathlib import Path
from typing import Union

# Import database module so connections are always opened the same way
import transmem.core.database as db
from transmem.logger import get_logger

logger = get_logger(__name__)

DB_VERSION = 2  # Increment when schema changes (added job_props to jobs in v2)


def get_db_version(db_file: Union[str, Path]) -> int:
    """Get current database version."""
    try:
        with db.get_connection(db_file) as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT version FROM db_version LIMIT 1")
            row = cursor.fetchone()
            return row[0] if row else 0
    except sqlite3.OperationalError:
        return 0


def set_db_version(db_file: Union[str, Path], version: int):
    """Set database version."""
    with db.get_connection(db_file) as conn:
        cursor = conn.cursor()
        cursor.execute("CREATE TABLE IF NOT EXISTS db_version (version INTEGER)")
        cursor.execute("DELETE FROM db_version")
        cursor.execute("INSERT INTO db_version (version) VALUES (?)", (version,))


def initialize_database(db_file: Union[str, Path]):
    """Initializes the database and creates the tables."""
    db_file = Path(db_file)
    if db_file.exists():
        current_version = get_db_version(db_file)
        if current_version < DB_VERSION:
            migrate_database(db_file, current_version, DB_VERSION)
        return

    db_file.parent.mkdir(parents=True, exist_ok=True)
    with db.get_connection(db_file) as conn:
        cursor = conn.cursor()

        # Job status index, one row per job
        cursor.execute("""
        CREATE TABLE jobs (
            job_guid TEXT PRIMARY KEY,
            source_lang TEXT NOT NULL,
            target_lang TEXT NOT NULL,
            translation_provider TEXT,
            status TEXT NOT NULL,
            updated_at TEXT,
            original_job_guid TEXT,
            inflight TEXT,
            job_props TEXT
        )
        """)

        # Request bodies of jobs that went through a provider or are blocked
        cursor.execute("""
        CREATE TABLE job_requests (
            job_guid TEXT PRIMARY KEY,
            request TEXT NOT NULL,
            created_at TEXT
        )
        """)

        # Translation units of each job (translations and in-flight markers)
        cursor.execute("""
        CREATE TABLE job_tus (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            job_guid TEXT NOT NULL,
            tu_order INTEGER NOT NULL,
            guid TEXT NOT NULL,
            q INTEGER,
            ts INTEGER,
            inflight INTEGER DEFAULT 0,
            tu TEXT NOT NULL
        )
        """)

        # Best unit for each guid of a language pair
        cursor.execute("""
        CREATE TABLE tm_entries (
            source_lang TEXT NOT NULL,
            target_lang TEXT NOT NULL,
            guid TEXT NOT NULL,
            job_guid TEXT,
            flat_src TEXT,
            q INTEGER,
            ts INTEGER,
            inflight INTEGER DEFAULT 0,
            tu TEXT NOT NULL,
            PRIMARY KEY (source_lang, target_lang, guid)
        )
        """)

        cursor.execute("""
        CREATE TABLE source_snap (
            channel TEXT NOT NULL,
            rid TEXT NOT NULL,
            prj TEXT,
            modified TEXT,
            resource TEXT NOT NULL,
            snapped_at TEXT,
            PRIMARY KEY (channel, rid)
        )
        """)

        cursor.execute("""
        CREATE TABLE app_config (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at TEXT
        )
        """)

        create_indexes(cursor)

    set_db_version(db_file, DB_VERSION)
    logger.info(f"Created database {db_file} (version {DB_VERSION})")


def create_indexes(cursor: sqlite3.Cursor):
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_jobs_pair ON jobs(source_lang, target_lang, status)")
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_job_tus_job ON job_tus(job_guid)")
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_job_tus_guid ON job_tus(guid)")
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_tm_flat_src ON tm_entries(source_lang, target_lang, flat_src)")


def migrate_database(db_file: Union[str, Path], from_version: int, to_version: int):
    """Migrate database from one version to another."""
    logger.info(f"Migrating database from version {from_version} to {to_version}")

    with db.get_connection(db_file) as conn:
        cursor = conn.cursor()
        cursor.execute("PRAGMA table_info(jobs)")
        existing_cols = {row[1] for row in cursor.fetchall()}

        if existing_cols and "job_props" not in existing_cols:
            logger.info("Adding job_props column to jobs table")
            cursor.execute("ALTER TABLE jobs ADD COLUMN job_props TEXT")

        create_indexes(cursor)

    set_db_version(db_file, to_version)
    logger.info("Database migration completed successfully")
