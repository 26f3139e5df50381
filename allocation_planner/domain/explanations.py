"""Numeric fact sheets for the explanation service and attaching its output"""

from dataclasses import replace
from typing import Dict, Mapping, Union

from allocation_planner.domain.models import AllocationBucket, AllocationPlan, BucketType, PresetTier

Fact = Union[int, float, str]


def bucket_facts(plan: AllocationPlan, bucket: AllocationBucket) -> Dict[str, Fact]:
    """Plan values only; no transactions, merchants or account identifiers"""
    facts: Dict[str, Fact] = {
        "bucket_type": bucket.type.value,
        "allocated_cents": bucket.allocated_cents,
        "percentage": round(plan.percentage_of_income(bucket), 1),
        "monthly_income_cents": plan.income_cents,
        "disposable_income_cents": plan.disposable_income_cents,
        "income_stability": plan.income_stability.value,
    }

    if bucket.preset_options is not None:
        for tier in PresetTier:
            facts[f"{tier.value}_preset_cents"] = bucket.preset_options.value(tier).amount_cents

    if bucket.type == BucketType.EMERGENCY_FUND:
        facts["recommended_months"] = plan.recommended_emergency_months
        if bucket.target_amount_cents is not None:
            facts["target_amount_cents"] = bucket.target_amount_cents
        if bucket.shortfall_cents is not None:
            facts["shortfall_cents"] = bucket.shortfall_cents
        if bucket.months_to_target is not None:
            facts["months_to_target"] = bucket.months_to_target

    if bucket.growth_projection is not None:
        projection = bucket.growth_projection
        facts["starting_balance_cents"] = projection.starting_balance_cents
        facts["annual_return"] = projection.annual_return
        for years, balance in projection.recommended.balances_cents:
            facts[f"projected_{years}y_cents"] = balance

    if bucket.payoff_timeline is not None:
        timeline = bucket.payoff_timeline
        facts["total_debt_cents"] = timeline.total_debt_cents
        facts["average_apr"] = round(timeline.average_apr, 4)
        facts["payoff_months"] = timeline.recommended.months
        facts["interest_saved_cents"] = timeline.recommended.interest_saved_cents

    return facts


def attach_explanations(plan: AllocationPlan, texts: Mapping[BucketType, str]) -> AllocationPlan:
    """Store generated text on each bucket; missing or empty text leaves the bucket alone"""
    buckets = tuple(
        replace(bucket, explanation=texts[bucket.type]) if texts.get(bucket.type) else bucket
        for bucket in plan.buckets
    )
    return replace(plan, buckets=buckets)
