"""
songprint - landmark audio fingerprinting and song recognition

The pipeline follows the classic constellation approach:
1. Short-time magnitude spectrogram of mono audio
2. Band-relative spectral peaks ("constellation")
3. Landmark hashes from anchor/target peak pairs
4. Offset-histogram voting against a fingerprint store
"""

from .config import DEFAULT_CONFIG, FingerprintConfig
from .errors import DecodeError, InsufficientSignal, SongprintError, StorageError
from .hashing import decode_landmark, encode_landmark, hash_peaks
from .matching import Matcher, OffsetHistogram
from .peaks import extract_peaks
from .recognizer import LandmarkRecognizer, fingerprint_samples
from .spectrogram import Spectrogram, StreamingSpectrogramBuilder, build_spectrogram
from .store import FingerprintStore, MemoryFingerprintStore, SQLiteFingerprintStore
from .types import CandidateScore, Landmark, MatchResult, Peak, Song, StoredFingerprint

__all__ = [
    'DEFAULT_CONFIG', 'FingerprintConfig',
    'SongprintError', 'DecodeError', 'InsufficientSignal', 'StorageError',
    'Spectrogram', 'StreamingSpectrogramBuilder', 'build_spectrogram',
    'extract_peaks', 'encode_landmark', 'decode_landmark', 'hash_peaks',
    'Matcher', 'OffsetHistogram', 'LandmarkRecognizer', 'fingerprint_samples',
    'FingerprintStore', 'MemoryFingerprintStore', 'SQLiteFingerprintStore',
    'Peak', 'Landmark', 'StoredFingerprint', 'Song', 'CandidateScore', 'MatchResult',
]
