"""
basic_batch.py: minimal callgate batch example.

Runs a small batch against a fake provider that returns JSON, validates the
responses with a pydantic model and prints the summary.

Usage:
    PYTHONPATH=src python examples/basic_batch.py
"""

import asyncio
import json
import logging

from pydantic import BaseModel

from callgate import AnalysisRequest, CoordinatorBuilder, CoordinatorSettings


class Verdict(BaseModel):
    label: str
    confidence: float


async def fake_provider(payload, classification: str) -> str:
    await asyncio.sleep(0.05)
    if "broken" in str(payload):
        return "not json at all"
    return json.dumps({"label": classification, "confidence": 0.9})


async def main() -> None:
    coordinator = (
        CoordinatorBuilder()
        .settings(CoordinatorSettings(retry_base_delay_s=0.1))
        .with_caller(fake_provider)
        .with_response_model(Verdict)
        .build()
    )
    requests = [
        AnalysisRequest(id="a", payload="first document", classification="invoice"),
        AnalysisRequest(id="b", payload="second document", classification="receipt"),
        AnalysisRequest(id="c", payload="first document", classification="invoice"),
        AnalysisRequest(id="d", payload="broken document", classification="invoice"),
    ]

    result = await coordinator.run_batch(requests)
    for row in result.sorted_results():
        if row.ok:
            print(f"{row.request_id}: {row.outcome.value!r} cached={row.cached} coalesced={row.coalesced}")
        else:
            print(f"{row.request_id}: {row.outcome.message}")
    print(result.summary)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main())
