"""Rebalancing engine - absorbs a single bucket edit across the rest of the plan"""

from dataclasses import replace
from typing import Dict, List, Optional, Tuple

from allocation_planner.domain.exceptions import BucketNotFoundError
from allocation_planner.domain.models import (
    AllocationBucket,
    AllocationPlan,
    BucketAdjustment,
    BucketType,
    EditResult,
    EditStatus,
    PresetTier,
)
from allocation_planner.domain.policy import DEFAULT_POLICY, REBALANCE_PRIORITY, AllocationPolicy

_TIER_ORDER = (PresetTier.RECOMMENDED, PresetTier.LOW, PresetTier.HIGH)


def months_to_target(shortfall_cents: Optional[int], allocated_cents: int) -> Optional[int]:
    """Whole months of contributions to close the shortfall; None when it never closes"""
    if shortfall_cents is None:
        return None
    if shortfall_cents <= 0:
        return 0
    if allocated_cents <= 0:
        return None
    return -(-shortfall_cents // allocated_cents)


def matching_tier(bucket: AllocationBucket, amount_cents: int) -> Optional[PresetTier]:
    """Keep the selected tier while it still matches; otherwise the first preset equal to the amount"""
    presets = bucket.preset_options
    if presets is None:
        return None
    if bucket.selected_tier is not None and presets.value(bucket.selected_tier).amount_cents == amount_cents:
        return bucket.selected_tier
    return next((tier for tier in _TIER_ORDER if presets.value(tier).amount_cents == amount_cents), None)


def refresh_bucket(bucket: AllocationBucket, amount_cents: int) -> AllocationBucket:
    """New bucket value with derived fields recomputed for the amount"""
    updated = replace(bucket, allocated_cents=amount_cents, selected_tier=matching_tier(bucket, amount_cents))
    if bucket.type == BucketType.EMERGENCY_FUND:
        updated = replace(updated, months_to_target=months_to_target(bucket.shortfall_cents, amount_cents))
    return updated


def _absorb(
    plan: AllocationPlan,
    edited: AllocationBucket,
    compensation_cents: int,
    policy: AllocationPolicy,
) -> Tuple[Dict[str, int], int]:
    """
    Walk the other buckets in priority order, first bucket takes as much as it can.

    `compensation_cents` is what the others must change by in total (negative =
    take from them). Returns the new amounts and whatever could not be absorbed.
    """
    disposable = plan.disposable_income_cents
    remaining = compensation_cents
    new_amounts: Dict[str, int] = {}

    for bucket_type in REBALANCE_PRIORITY:
        if remaining == 0:
            break
        if bucket_type == edited.type:
            continue
        other = plan.bucket(bucket_type)
        if other is None:
            continue

        if remaining < 0:
            room = max(0, other.allocated_cents - policy.floor_cents(bucket_type, disposable))
            moved = -min(room, -remaining)
        else:
            room = max(0, policy.ceiling_cents(bucket_type, disposable) - other.allocated_cents)
            moved = min(room, remaining)

        if moved:
            new_amounts[other.id] = other.allocated_cents + moved
            remaining -= moved

    return new_amounts, remaining


def apply_edit(
    plan: AllocationPlan,
    bucket_id: str,
    new_amount_cents: int,
    policy: AllocationPolicy = DEFAULT_POLICY,
) -> EditResult:
    """
    Set one bucket to a new amount and rebalance the others.

    - Essential is never modifiable: REJECTED, plan unchanged
    - Requests outside the bucket's own floor/ceiling are clamped to it
    - Whatever the other buckets cannot absorb is given back by the edited
      bucket, so the flexible total never changes; reported as CLAMPED
    """
    bucket = plan.bucket_by_id(bucket_id)
    if bucket is None:
        raise BucketNotFoundError(f"Bucket {bucket_id} not found in plan")

    if not bucket.is_modifiable or bucket.type == BucketType.ESSENTIAL:
        return EditResult(
            status=EditStatus.REJECTED,
            plan=plan,
            requested_cents=new_amount_cents,
            applied_cents=bucket.allocated_cents,
            reason="Essential spending is fixed by your actual expenses and cannot be edited",
        )

    disposable = plan.disposable_income_cents
    floor = policy.floor_cents(bucket.type, disposable)
    ceiling = max(floor, policy.ceiling_cents(bucket.type, disposable))
    target = min(max(new_amount_cents, floor), ceiling)

    new_amounts, unabsorbed = _absorb(plan, bucket, bucket.allocated_cents - target, policy)
    applied = target + unabsorbed
    new_amounts[bucket.id] = applied

    buckets = tuple(
        refresh_bucket(b, new_amounts[b.id]) if b.id in new_amounts else b for b in plan.buckets
    )
    updated_plan = replace(plan, buckets=buckets)

    adjustments: List[BucketAdjustment] = []
    for other in plan.buckets:
        if other.id == bucket.id or other.id not in new_amounts:
            continue
        change = new_amounts[other.id] - other.allocated_cents
        if abs(change) >= policy.min_reportable_change_cents:
            adjustments.append(
                BucketAdjustment(
                    bucket_id=other.id,
                    bucket_type=other.type,
                    old_cents=other.allocated_cents,
                    new_cents=new_amounts[other.id],
                )
            )

    clamped = applied != new_amount_cents
    reason = ""
    if clamped:
        reason = (
            f"Requested {new_amount_cents / 100:.2f} but only {applied / 100:.2f} could be applied "
            "without breaking the other buckets' limits"
        )

    return EditResult(
        status=EditStatus.CLAMPED if clamped else EditStatus.APPLIED,
        plan=updated_plan,
        adjustments=tuple(adjustments),
        requested_cents=new_amount_cents,
        applied_cents=applied,
        reason=reason,
    )
