from __future__ import annotations


class NameNormalizerError(Exception):
    """Base class for errors raised by the name normalizer."""


class InvalidInputError(NameNormalizerError, ValueError):
    """Raised for unusable caller input: empty names, unreadable imports or record files."""


class PersistenceError(NameNormalizerError):
    """Raised by storage backends when a read or write cannot be completed."""


class AnalysisCancelled(NameNormalizerError):
    """Raised between chunks when the host asks a library analysis to stop."""
