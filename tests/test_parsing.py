from __future__ import annotations

import asyncio

import pytest
from pydantic import BaseModel

from callgate import (
    AnalysisRequest,
    BatchCoordinator,
    ParseFailureError,
    RateLimiter,
    json_response_parser,
    parse_json_response,
)


class Verdict(BaseModel):
    label: str
    confidence: float


def test_parses_plain_and_fenced_json():
    assert parse_json_response('{"label": "ok"}') == {"label": "ok"}
    fenced = 'Here you go:\n```json\n{"label": "ok", "confidence": 0.5}\n```\nthanks'
    assert parse_json_response(fenced) == {"label": "ok", "confidence": 0.5}
    assert parse_json_response(b'[1, 2]') == [1, 2]


def test_validates_against_response_model():
    verdict = parse_json_response({"label": "spam", "confidence": 0.9}, response_model=Verdict)
    assert verdict == Verdict(label="spam", confidence=0.9)


@pytest.mark.parametrize("raw", ["", "not json", b"\xff\xfe", 42])
def test_undecodable_responses_raise_parse_failure(raw):
    with pytest.raises(ParseFailureError):
        parse_json_response(raw)


def test_model_mismatch_raises_parse_failure():
    with pytest.raises(ParseFailureError) as exc_info:
        parse_json_response('{"label": "spam"}', response_model=Verdict)
    assert exc_info.value.kind == "PARSE_ERROR"
    assert "Verdict" in exc_info.value.message


def test_json_parser_plugs_into_coordinator():
    async def provider(payload, classification: str) -> str:
        if payload == "garbled":
            return "{oops"
        return '{"label": "%s", "confidence": 1.0}' % classification

    async def scenario() -> None:
        coordinator = BatchCoordinator(
            provider,
            rate_limiter=RateLimiter(),
            parser=json_response_parser(Verdict),
        )
        result = await coordinator.run_batch(
            [
                AnalysisRequest(id="a", payload="fine", classification="ham"),
                AnalysisRequest(id="b", payload="garbled", classification="ham"),
            ]
        )
        rows = {row.request_id: row for row in result.results}
        assert rows["a"].outcome.value == Verdict(label="ham", confidence=1.0)
        assert rows["b"].outcome.kind == "PARSE_ERROR"

    asyncio.run(scenario())
