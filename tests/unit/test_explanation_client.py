"""Unit tests for the explanation service client retry behaviour"""

import asyncio
import json
import httpx
import pytest
from allocation_planner.domain.explanations import attach_explanations, bucket_facts
from allocation_planner.domain.models import BucketType, IncomeStability
from allocation_planner.domain.planner import propose_plan
from allocation_planner.infrastructure.clients.explanations import ExplanationClient

SERVICE_URL = "http://explain.test/v1/explain"


@pytest.fixture
def plan(make_snapshot):
    return propose_plan(make_snapshot(), IncomeStability.STABLE).plan


def _client(handler, max_retries: int = 3) -> ExplanationClient:
    return ExplanationClient(
        service_url=SERVICE_URL,
        timeout=1.0,
        max_retries=max_retries,
        backoff_base=0,
        transport=httpx.MockTransport(handler),
    )


def test_facts_carry_plan_numbers_only(plan):
    facts = bucket_facts(plan, plan.bucket(BucketType.EMERGENCY_FUND))

    assert facts["bucket_type"] == "emergency_fund"
    assert facts["allocated_cents"] == 62500
    assert facts["shortfall_cents"] == 500000
    assert all(isinstance(value, (int, float, str)) for value in facts.values())


def test_explain_plan_one_text_per_bucket(plan):
    def handler(request: httpx.Request) -> httpx.Response:
        facts = json.loads(request.content)["facts"]
        return httpx.Response(200, json={"explanation": f"About {facts['bucket_type']}"})

    texts = asyncio.run(_client(handler).explain_plan(plan))

    assert texts[BucketType.INVESTMENTS] == "About investments"
    assert set(texts) == {bucket.type for bucket in plan.buckets}

    explained = attach_explanations(plan, texts)
    assert explained.bucket(BucketType.DISCRETIONARY).explanation == "About discretionary"
    assert explained.amount(BucketType.DISCRETIONARY) == plan.amount(BucketType.DISCRETIONARY)


def test_retries_then_succeeds(plan):
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if len(calls) < 3:
            return httpx.Response(503)
        return httpx.Response(200, json={"explanation": "Third time lucky"})

    client = _client(handler)

    async def run():
        async with httpx.AsyncClient(transport=client.transport) as http:
            return await client.generate_explanation(http, {"bucket_type": "investments"})

    assert asyncio.run(run()) == "Third time lucky"
    assert len(calls) == 3


def test_exhausted_retries_leave_explanation_empty(plan):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500)

    texts = asyncio.run(_client(handler, max_retries=2).explain_plan(plan))

    assert all(text == "" for text in texts.values())
    assert attach_explanations(plan, texts) == plan


def test_disabled_without_service_url(plan):
    client = ExplanationClient(service_url="")
    assert not client.enabled
    assert asyncio.run(client.explain_plan(plan)) == {}


@pytest.mark.parametrize("payload", [["not", "an", "object"], "plain text", 42])
def test_non_object_payload_leaves_explanation_empty(plan, payload):
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json=payload)

    texts = asyncio.run(_client(handler).explain_plan(plan))

    assert set(texts) == {bucket.type for bucket in plan.buckets}
    assert all(text == "" for text in texts.values())
    # 200 responses are not retried
    assert len(calls) == len(plan.buckets)


def test_zero_retries_is_respected(plan):
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json={"explanation": "unused"})

    client = ExplanationClient(service_url=SERVICE_URL, timeout=1.0, max_retries=0, transport=httpx.MockTransport(handler))

    assert client.max_retries == 0
    assert asyncio.run(client.explain_plan(plan)) == {bucket.type: "" for bucket in plan.buckets}
    assert calls == []
