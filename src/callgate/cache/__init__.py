"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Module: cache/__init__.py.
"""

from .base import CacheEntry, CacheStats, ResponseCacheBackend
from .inmemory import ResponseCache
from .keys import content_key, payload_bytes

__all__ = [
    "CacheEntry",
    "CacheStats",
    "ResponseCacheBackend",
    "ResponseCache",
    "content_key",
    "payload_bytes",
]
