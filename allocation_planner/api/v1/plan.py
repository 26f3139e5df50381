"""Allocation plan endpoints: propose, read, edit, presets, emergency duration, reset, links"""

import time
import logging
from typing import List, Sequence, Tuple
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from allocation_planner.api.v1.schemas import (
    AdjustmentSchema,
    BucketSchema,
    DebtPayoffTimelineSchema,
    DurationOptionSchema,
    EditRequest,
    EditResponse,
    EmergencyDurationRequest,
    InvestmentProjectionSchema,
    LinksRequest,
    LinksResponse,
    PlanRequest,
    PlanResponse,
    PresetOptionsSchema,
    PresetRequest,
    WarningSchema,
)
from allocation_planner.api.dependencies import get_explanation_client, get_plan_lock, get_policy, get_request_id
from allocation_planner.infrastructure.database.session import get_db
from allocation_planner.infrastructure.database.models import AllocationPlanRecord
from allocation_planner.infrastructure.database.repositories import (
    PlanRepository,
    PreferenceRepository,
    SnapshotRepository,
)
from allocation_planner.infrastructure.clients.explanations import ExplanationClient
from allocation_planner.domain.accounts import linked_balance_cents, validate_links, with_links
from allocation_planner.domain.advisor import budget_warnings
from allocation_planner.domain.exceptions import (
    AccountLinkError,
    BucketNotFoundError,
    PlanNotFoundError,
    SnapshotNotFoundError,
)
from allocation_planner.domain.explanations import attach_explanations
from allocation_planner.domain.models import (
    Account,
    AllocationPlan,
    BucketType,
    EditResult,
    EditStatus,
)
from allocation_planner.domain.planner import (
    apply_preferences,
    propose_plan,
    reset_plan,
    select_emergency_duration,
    select_preset,
)
from allocation_planner.domain.policy import AllocationPolicy
from allocation_planner.domain.rebalancing import apply_edit
from allocation_planner.infrastructure.observability.metrics import record_edit, record_plan_outcome
from allocation_planner.infrastructure.observability.logging import log_edit, log_plan_outcome

router = APIRouter()


def _nested(schema, value):
    return schema.model_validate(value, from_attributes=True) if value is not None else None


def build_plan_response(
    user_id: str,
    plan: AllocationPlan,
    accounts: Sequence[Account],
    policy: AllocationPolicy,
) -> PlanResponse:
    """Plan plus everything derived on read: percentages, linked balances, warnings"""
    buckets = [
        BucketSchema(
            id=bucket.id,
            type=bucket.type,
            allocated_cents=bucket.allocated_cents,
            percentage=round(plan.percentage_of_income(bucket), 2),
            is_modifiable=bucket.is_modifiable,
            preset_options=_nested(PresetOptionsSchema, bucket.preset_options),
            selected_tier=bucket.selected_tier,
            linked_account_ids=sorted(bucket.linked_account_ids),
            linked_balance_cents=linked_balance_cents(bucket.type, bucket.linked_account_ids, accounts),
            explanation=bucket.explanation,
            target_amount_cents=bucket.target_amount_cents,
            shortfall_cents=bucket.shortfall_cents,
            months_to_target=bucket.months_to_target,
            selected_duration_months=bucket.selected_duration_months,
            duration_options=[_nested(DurationOptionSchema, option) for option in bucket.duration_options],
            growth_projection=_nested(InvestmentProjectionSchema, bucket.growth_projection),
            payoff_timeline=_nested(DebtPayoffTimelineSchema, bucket.payoff_timeline),
        )
        for bucket in plan.buckets
    ]

    return PlanResponse(
        user_id=user_id,
        income_cents=plan.income_cents,
        disposable_income_cents=plan.disposable_income_cents,
        income_stability=plan.income_stability,
        recommended_emergency_months=plan.recommended_emergency_months,
        buckets=buckets,
        warnings=[_nested(WarningSchema, warning) for warning in budget_warnings(plan, policy)],
    )


def _edit_response(
    user_id: str, result: EditResult, accounts: Sequence[Account], policy: AllocationPolicy
) -> EditResponse:
    return EditResponse(
        status=result.status,
        requested_cents=result.requested_cents,
        applied_cents=result.applied_cents,
        reason=result.reason,
        adjustments=[_nested(AdjustmentSchema, adjustment) for adjustment in result.adjustments],
        plan=build_plan_response(user_id, result.plan, accounts, policy),
    )


def _load_plan(db: Session, user_id: str) -> Tuple[AllocationPlanRecord, AllocationPlan, List[Account]]:
    """Current plan with the accounts of the snapshot it was built from"""
    record = PlanRepository(db).get_record(user_id)
    if record is None:
        raise PlanNotFoundError(f"No allocation plan for user {user_id}")
    _, accounts, _ = SnapshotRepository.to_domain(record.snapshot)
    return record, PlanRepository.to_domain(record), accounts


def _save_edit(db: Session, user_id: str, record: AllocationPlanRecord, result: EditResult, edited_type: BucketType) -> None:
    """Persist an applied or clamped edit and the tier of every bucket it moved"""
    if result.status == EditStatus.REJECTED:
        return
    PlanRepository(db).update_plan(record, result.plan)
    preferences = PreferenceRepository(db)
    for bucket_type in [edited_type] + [a.bucket_type for a in result.adjustments]:
        preferences.set_tier(user_id, bucket_type, result.plan.bucket(bucket_type).selected_tier)
    db.commit()


@router.post("/plan", response_model=PlanResponse)
async def create_plan(
    request_body: PlanRequest,
    request: Request,
    db: Session = Depends(get_db),
    explanation_client: ExplanationClient = Depends(get_explanation_client),
    policy: AllocationPolicy = Depends(get_policy),
):
    """
    Propose an allocation plan from the latest snapshot.

    Flow:
    1. Load the latest snapshot (404 when the user was never analyzed)
    2. Validate and split disposable income across the buckets
    3. Re-apply stored links, tiers and emergency duration
    4. Attach explanations when the service is configured
    5. Persist as the user's current plan
    """
    start_time = time.time()
    request_id = get_request_id(request)
    user_id = request_body.user_id

    snapshot_record = SnapshotRepository(db).get_latest(user_id)
    if snapshot_record is None:
        raise HTTPException(status_code=404, detail="No financial analysis for user")
    snapshot, accounts, detected_stability = SnapshotRepository.to_domain(snapshot_record)

    result = propose_plan(snapshot, request_body.income_stability or detected_stability, policy)
    if not result.ok:
        failure = result.failure
        outcomes = [reason.value for reason in failure.reasons]
        record_plan_outcome(outcomes)
        log_plan_outcome(request_id, user_id, outcomes, 0, (time.time() - start_time) * 1000)
        raise HTTPException(
            status_code=422,
            detail={
                "message": failure.message,
                "reasons": outcomes,
                "disposable_income_cents": failure.disposable_income_cents,
                "overall_confidence": failure.overall_confidence,
            },
        )

    plan = apply_preferences(result.plan, PreferenceRepository(db).get_preferences(user_id), policy)
    plan = attach_explanations(plan, await explanation_client.explain_plan(plan))

    try:
        async with get_plan_lock(user_id):
            PlanRepository(db).save_plan(user_id, snapshot_record.id, plan)
            db.commit()
    except Exception as e:
        db.rollback()
        logging.error(f"Failed to save plan: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Internal server error")

    record_plan_outcome(["generated"])
    log_plan_outcome(request_id, user_id, ["generated"], len(plan.buckets), (time.time() - start_time) * 1000)

    return build_plan_response(user_id, plan, accounts, policy)


@router.get("/plan/{user_id}", response_model=PlanResponse)
def get_plan(user_id: str, db: Session = Depends(get_db), policy: AllocationPolicy = Depends(get_policy)):
    """Current plan with derived percentages, linked balances and budget warnings"""
    try:
        _, plan, accounts = _load_plan(db, user_id)
    except PlanNotFoundError:
        raise HTTPException(status_code=404, detail="Plan not found")

    return build_plan_response(user_id, plan, accounts, policy)


@router.post("/plan/{user_id}/edit", response_model=EditResponse)
async def edit_bucket(
    user_id: str,
    request_body: EditRequest,
    request: Request,
    db: Session = Depends(get_db),
    policy: AllocationPolicy = Depends(get_policy),
):
    """
    Set one bucket to a new amount; the others absorb the difference.

    Rejected edits (Essential) return the unchanged plan with status "rejected".
    """
    request_id = get_request_id(request)

    try:
        async with get_plan_lock(user_id):
            record, plan, accounts = _load_plan(db, user_id)
            result = apply_edit(plan, request_body.bucket_id, request_body.new_amount_cents, policy)
            edited_type = plan.bucket_by_id(request_body.bucket_id).type
            _save_edit(db, user_id, record, result, edited_type)

    except (PlanNotFoundError, BucketNotFoundError) as e:
        db.rollback()
        raise HTTPException(status_code=404, detail=str(e))

    record_edit(result.status.value)
    log_edit(
        request_id,
        user_id,
        edited_type.value,
        result.status.value,
        result.requested_cents,
        result.applied_cents,
        len(result.adjustments),
    )

    return _edit_response(user_id, result, accounts, policy)


@router.post("/plan/{user_id}/preset", response_model=EditResponse)
async def choose_preset(
    user_id: str,
    request_body: PresetRequest,
    request: Request,
    db: Session = Depends(get_db),
    policy: AllocationPolicy = Depends(get_policy),
):
    """Move a bucket to its Low / Recommended / High amount"""
    request_id = get_request_id(request)

    try:
        async with get_plan_lock(user_id):
            record, plan, accounts = _load_plan(db, user_id)
            result = select_preset(plan, request_body.bucket_type, request_body.tier, policy)
            _save_edit(db, user_id, record, result, request_body.bucket_type)

    except (PlanNotFoundError, BucketNotFoundError) as e:
        db.rollback()
        raise HTTPException(status_code=404, detail=str(e))

    record_edit(result.status.value)
    log_edit(
        request_id,
        user_id,
        request_body.bucket_type.value,
        result.status.value,
        result.requested_cents,
        result.applied_cents,
        len(result.adjustments),
    )

    return _edit_response(user_id, result, accounts, policy)


@router.post("/plan/{user_id}/emergency-duration", response_model=PlanResponse)
async def choose_emergency_duration(
    user_id: str,
    request_body: EmergencyDurationRequest,
    db: Session = Depends(get_db),
    policy: AllocationPolicy = Depends(get_policy),
):
    """Switch the emergency-fund target between its 3/6/12-month options"""
    try:
        async with get_plan_lock(user_id):
            record, plan, accounts = _load_plan(db, user_id)
            plan = select_emergency_duration(plan, request_body.months)
            PlanRepository(db).update_plan(record, plan)
            PreferenceRepository(db).set_emergency_months(user_id, request_body.months)
            db.commit()

    except (PlanNotFoundError, BucketNotFoundError) as e:
        db.rollback()
        raise HTTPException(status_code=404, detail=str(e))

    except ValueError as e:
        db.rollback()
        raise HTTPException(status_code=422, detail=str(e))

    return build_plan_response(user_id, plan, accounts, policy)


@router.post("/plan/{user_id}/reset", response_model=PlanResponse)
async def reset_to_recommended(
    user_id: str,
    db: Session = Depends(get_db),
    policy: AllocationPolicy = Depends(get_policy),
):
    """Every flexible bucket back to its recommended amount; links and duration are kept"""
    try:
        async with get_plan_lock(user_id):
            record, plan, accounts = _load_plan(db, user_id)
            plan = reset_plan(plan)
            PlanRepository(db).update_plan(record, plan)
            preferences = PreferenceRepository(db)
            for bucket in plan.buckets:
                if bucket.preset_options is not None:
                    preferences.set_tier(user_id, bucket.type, None)
            db.commit()

    except PlanNotFoundError as e:
        db.rollback()
        raise HTTPException(status_code=404, detail=str(e))

    return build_plan_response(user_id, plan, accounts, policy)


@router.put("/plan/{user_id}/links", response_model=LinksResponse)
async def link_accounts(
    user_id: str,
    request_body: LinksRequest,
    db: Session = Depends(get_db),
):
    """
    Link accounts to a bucket.

    Links are stored by bucket type so they survive plan regeneration; the
    current plan, if any, is updated in place.
    """
    snapshot_record = SnapshotRepository(db).get_latest(user_id)

    try:
        if snapshot_record is None:
            raise SnapshotNotFoundError(f"No financial analysis for user {user_id}")
        _, accounts, _ = SnapshotRepository.to_domain(snapshot_record)
        validate_links(request_body.bucket_type, request_body.account_ids, accounts)

        async with get_plan_lock(user_id):
            PreferenceRepository(db).set_links(user_id, request_body.bucket_type, request_body.account_ids)
            plan_repo = PlanRepository(db)
            record = plan_repo.get_record(user_id)
            if record is not None:
                plan = with_links(PlanRepository.to_domain(record), request_body.bucket_type, request_body.account_ids)
                plan_repo.update_plan(record, plan)
            db.commit()

    except SnapshotNotFoundError as e:
        db.rollback()
        raise HTTPException(status_code=404, detail=str(e))

    except AccountLinkError as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(e))

    account_ids = sorted(set(request_body.account_ids))
    return LinksResponse(
        user_id=user_id,
        bucket_type=request_body.bucket_type,
        account_ids=account_ids,
        linked_balance_cents=linked_balance_cents(request_body.bucket_type, account_ids, accounts),
    )
