"""
Engine Exceptions

This module contains the exception classes shared by every component.
Separated to avoid circular imports between the TM, providers and dispatcher.
"""


class TransMemError(Exception):
    """Base engine error with optional code and details."""

    def __init__(self, message: str, code: str = None, details: dict = None):
        super().__init__(message)
        self.code = code
        self.details = details or {}


class ConfigurationError(TransMemError):
    """Missing provider for a language pair, store opened with the wrong access, etc."""


class ConsistencyError(TransMemError):
    """Operation would interleave with outstanding job state."""


class InvalidTransitionError(ConsistencyError):
    """Job status change not allowed by the state machine."""


class ProviderError(TransMemError):
    """Translation provider failure (network, vendor, unsupported operation)."""


class IncompatibleTranslationError(TransMemError):
    """Source and target placeholders do not correspond."""
