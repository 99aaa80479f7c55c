"""Exceptions raised by the fingerprinting pipeline.

A recognition that runs correctly but finds no confident candidate is not an
error: it returns ``None`` instead of a ``MatchResult``.
"""


class SongprintError(Exception):
    """Base class for all pipeline errors."""


class DecodeError(SongprintError):
    """Audio could not be read or decoded."""


class InsufficientSignal(SongprintError):
    """Too few samples, peaks or landmarks to form a meaningful fingerprint."""


class StorageError(SongprintError):
    """The fingerprint store failed to insert or look up rows.

    Inserts are idempotent, so an ingestion that failed this way can be
    retried in full.
    """
