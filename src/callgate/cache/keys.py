"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Module: cache/keys.py.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any

from ..errors import InvalidRequestError


def payload_bytes(payload: Any) -> bytes:
    """
    Canonical byte form of a request payload.

    Raises:
        InvalidRequestError: when the payload has no canonical JSON form
            (mixed-type mapping keys, circular references).
    """
    if isinstance(payload, bytes):
        return payload
    if isinstance(payload, str):
        return payload.encode("utf-8")
    try:
        normalized = json.dumps(payload, ensure_ascii=True, sort_keys=True, default=str)
    except (TypeError, ValueError, RecursionError) as exc:
        raise InvalidRequestError(
            f"Payload cannot be canonicalized: {type(exc).__name__}: {exc}",
            cause=exc,
        ) from exc
    return normalized.encode("utf-8")


def content_key(payload: Any, classification: str) -> str:
    """Build deterministic cache key for payload content + classification tag."""
    if not isinstance(classification, str):
        raise InvalidRequestError(
            f"classification must be a string, got {type(classification).__name__}"
        )
    tag = classification.encode("utf-8")
    digest = hashlib.sha256()
    # Length prefix keeps ("a:b", "c") and ("a", "b:c") apart.
    digest.update(str(len(tag)).encode("ascii"))
    digest.update(b":")
    digest.update(tag)
    digest.update(payload_bytes(payload))
    return digest.hexdigest()
