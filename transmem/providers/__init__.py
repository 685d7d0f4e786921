"""
Providers Module

Translation providers: leverage providers working from the local memory and
sources, plus the network and file bridge bindings.
"""

from transmem.providers.base import TranslationProvider, LeverageProvider
from transmem.providers.repetition import RepetitionProvider
from transmem.providers.grandfather import GrandfatherProvider
from transmem.providers.variant import VariantGenerator
from transmem.providers.http import HttpTranslationProvider
from transmem.providers.bridge import FileBridgeProvider

__all__ = [
    'TranslationProvider',
    'LeverageProvider',
    'RepetitionProvider',
    'GrandfatherProvider',
    'VariantGenerator',
    'HttpTranslationProvider',
    'FileBridgeProvider',
]
