"""
Translation module - Job dispatching

This module provides:
- Dispatcher: push / pull / job processing for every target language
- ProjectLeverage: Leverage statistics dataclass
- Chunking and response parsing utilities
"""

from transmem.translation.stats import ProjectLeverage
from transmem.translation.dispatcher import Dispatcher
from transmem.translation.utils import chunk_tus, parse_translations_response
