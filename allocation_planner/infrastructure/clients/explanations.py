"""Explanation service client with exponential backoff retry logic"""

import asyncio
import logging
import httpx
from typing import Dict, Mapping
from allocation_planner.config import settings
from allocation_planner.domain.explanations import Fact, bucket_facts
from allocation_planner.domain.models import AllocationPlan, BucketType
from allocation_planner.infrastructure.observability.metrics import (
    explanation_failure_counter,
    explanation_latency_histogram,
)


class ExplanationClient:
    """Client for the natural-language explanation service"""

    def __init__(
        self,
        service_url: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        backoff_base: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.service_url = service_url if service_url is not None else settings.explanation_service_url
        self.timeout = timeout if timeout is not None else settings.explanation_timeout_seconds
        self.max_retries = max_retries if max_retries is not None else settings.explanation_max_retries
        self.backoff_base = backoff_base if backoff_base is not None else settings.explanation_backoff_base
        self.transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self.service_url)

    async def generate_explanation(self, client: httpx.AsyncClient, facts: Mapping[str, Fact]) -> str:
        """
        Ask the service to explain one bucket.

        Retry strategy:
        - Exponential backoff: base, 2x base, 4x base ...
        - Retries on 5xx errors and network failures
        - After the last attempt the explanation is empty; allocation never waits on it
        """
        attempt = 0
        while attempt < self.max_retries:
            try:
                with explanation_latency_histogram.time():
                    response = await client.post(
                        self.service_url,
                        json={"facts": dict(facts)},
                        timeout=self.timeout,
                    )
                    response.raise_for_status()
                    payload = response.json()

                if not isinstance(payload, dict):
                    explanation_failure_counter.inc()
                    logging.warning(
                        f"Explanation service returned {type(payload).__name__}, expected an object",
                        extra={"bucket_type": facts.get("bucket_type")},
                    )
                    return ""
                return str(payload.get("explanation") or "")

            except (httpx.HTTPStatusError, httpx.RequestError, ValueError) as e:
                attempt += 1
                explanation_failure_counter.inc()

                if attempt >= self.max_retries:
                    logging.warning(
                        f"Explanation unavailable after {attempt} attempts: {e}",
                        extra={"bucket_type": facts.get("bucket_type")},
                    )
                    return ""

                backoff = self.backoff_base * (2 ** (attempt - 1))
                await asyncio.sleep(backoff)

        return ""

    async def explain_plan(self, plan: AllocationPlan) -> Dict[BucketType, str]:
        """One explanation per bucket, requested concurrently; empty when the service is off"""
        if not self.enabled:
            return {}

        async with httpx.AsyncClient(transport=self.transport) as client:
            results = await asyncio.gather(
                *(self.generate_explanation(client, bucket_facts(plan, bucket)) for bucket in plan.buckets),
                return_exceptions=True,
            )

        texts = {}
        for bucket, result in zip(plan.buckets, results):
            if isinstance(result, Exception):
                explanation_failure_counter.inc()
                logging.warning(
                    f"Explanation failed: {result}",
                    extra={"bucket_type": bucket.type.value},
                )
                result = ""
            elif isinstance(result, BaseException):
                raise result
            texts[bucket.type] = result
        return texts
