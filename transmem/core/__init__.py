"""
Core module - Local cache, memory and synchronization

This module provides:
- database: sqlite access helpers
- schema: Database initialization and migrations
- identity: Content identifiers
- models: Records and the job state machine
- tm / tm_manager: Translation memory and job store
- sync: TM store synchronization
- validation: Memory quality checks
"""

from transmem.core.schema import (
    DB_VERSION,
    get_db_version,
    set_db_version,
    initialize_database,
    migrate_database,
)
from transmem.core.identity import (
    generate_guid,
    flatten_normalized_source_to_ordinal,
    make_segment_guid,
)
from transmem.core.models import (
    Segment,
    TranslationUnit,
    Job,
    JobStatus,
    transition,
    external_status,
)
from transmem.core.tm import TranslationMemory
from transmem.core.tm_manager import TMManager
