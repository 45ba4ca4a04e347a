"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Helpers that turn raw provider responses into validated values.
"""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ValidationError

from .errors import ParseFailureError
from .types import ResponseParser

_FENCED_JSON = re.compile(r"```(?:json)?\s*\n?(.*?)\n?```", re.DOTALL)


def _text_of(raw: Any) -> str:
    if isinstance(raw, bytes):
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ParseFailureError("Response is not valid UTF-8", cause=exc) from exc
    if isinstance(raw, str):
        return raw
    text = getattr(raw, "text", None)
    if isinstance(text, str):
        return text
    raise ParseFailureError(f"Unsupported response type: {type(raw).__name__}")


def parse_json_response(
    raw: Any,
    *,
    response_model: type[BaseModel] | None = None,
) -> Any:
    """
    Decode a JSON document from a provider response.

    Text inside a fenced ```json block is preferred when present. Mappings are
    accepted as already-decoded documents. With ``response_model`` the
    document is validated and the model instance is returned.

    Raises:
        ParseFailureError: when the response cannot be decoded or validated.
    """
    if isinstance(raw, Mapping):
        document: Any = dict(raw)
    else:
        text = _text_of(raw).strip()
        match = _FENCED_JSON.search(text)
        if match:
            text = match.group(1).strip()
        if not text:
            raise ParseFailureError("Empty response body")
        try:
            document = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ParseFailureError(f"Response is not valid JSON: {exc.msg}", cause=exc) from exc

    if response_model is None:
        return document
    try:
        return response_model.model_validate(document)
    except ValidationError as exc:
        raise ParseFailureError(
            f"Response does not match {response_model.__name__}: {exc.error_count()} validation error(s)",
            cause=exc,
        ) from exc


def json_response_parser(response_model: type[BaseModel] | None = None) -> ResponseParser:
    """Build a coordinator parser that decodes (and optionally validates) JSON."""

    def _parse(raw: Any) -> Any:
        return parse_json_response(raw, response_model=response_model)

    return _parse
