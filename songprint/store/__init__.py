"""Fingerprint storage backends."""

from .base import FingerprintStore
from .memory import MemoryFingerprintStore
from .sqlite import SQLiteFingerprintStore

__all__ = ['FingerprintStore', 'MemoryFingerprintStore', 'SQLiteFingerprintStore']
