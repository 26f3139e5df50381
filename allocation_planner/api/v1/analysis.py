"""POST /v1/analysis - Classify transactions and build the financial snapshot"""

import time
import logging
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from allocation_planner.api.v1.schemas import (
    AnalysisMetadataSchema,
    AnalysisRequest,
    FinancialPositionSchema,
    MonthlyFlowSchema,
    ReviewItemSchema,
    SnapshotResponse,
)
from allocation_planner.api.dependencies import get_bank_client, get_policy, get_request_id
from allocation_planner.infrastructure.database.session import get_db
from allocation_planner.infrastructure.database.repositories import SnapshotRepository
from allocation_planner.infrastructure.clients.bank import BankClient, parse_provider_payload
from allocation_planner.domain.aggregation import (
    build_snapshot,
    classify_income_stability,
    emergency_fund_months,
    validate_for_allocation,
)
from allocation_planner.domain.exceptions import BankAPIError
from allocation_planner.domain.policy import AllocationPolicy
from allocation_planner.infrastructure.observability.metrics import record_snapshot, bank_fetch_failures_counter
from allocation_planner.infrastructure.observability.logging import log_snapshot

router = APIRouter()


@router.post("/analysis", response_model=SnapshotResponse)
async def create_analysis(
    request_body: AnalysisRequest,
    request: Request,
    db: Session = Depends(get_db),
    bank_client: BankClient = Depends(get_bank_client),
    policy: AllocationPolicy = Depends(get_policy),
):
    """
    Turn raw banking data into a financial snapshot.

    Flow:
    1. Use the inline provider payload, or fetch accounts + transactions
    2. Classify every settled transaction in the trailing window
    3. Aggregate monthly flow and point-in-time position
    4. Detect income stability unless the caller supplied it
    5. Persist the snapshot for planning
    """
    start_time = time.time()
    request_id = get_request_id(request)

    try:
        # 1. Provider data
        if request_body.accounts is not None or request_body.transactions is not None:
            data = parse_provider_payload(request_body.accounts or [], request_body.transactions or [])
        else:
            data = await bank_client.get_financial_data(request_body.user_id)

        # 2-3. Classification and aggregation
        snapshot = build_snapshot(
            data.transactions,
            data.accounts,
            as_of=request_body.as_of,
            overrides=request_body.overrides,
            rejected_records=data.rejected_records,
            policy=policy,
        )

        # 4. Income stability
        stability = request_body.income_stability or classify_income_stability(
            data.transactions,
            data.accounts,
            as_of=request_body.as_of,
            months=policy.analysis_window_months,
        )

        # 5. Persist
        record = SnapshotRepository(db).save_snapshot(
            user_id=request_body.user_id,
            snapshot=snapshot,
            accounts=list(data.accounts),
            stability=stability,
        )
        db.commit()

        metadata = snapshot.metadata
        duration_ms = (time.time() - start_time) * 1000
        record_snapshot(metadata.transactions_needing_review)
        log_snapshot(
            request_id,
            request_body.user_id,
            metadata.transactions_analyzed,
            metadata.months_analyzed,
            metadata.overall_confidence,
            metadata.transactions_needing_review,
            metadata.rejected_records,
            duration_ms,
        )

        failure = validate_for_allocation(snapshot, policy)
        return SnapshotResponse(
            snapshot_id=str(record.id),
            user_id=request_body.user_id,
            income_stability=stability,
            emergency_fund_months=round(
                emergency_fund_months(snapshot.position, snapshot.monthly_flow.essential_expenses.total), 2
            ),
            monthly_flow=MonthlyFlowSchema.model_validate(snapshot.monthly_flow, from_attributes=True),
            position=FinancialPositionSchema.model_validate(snapshot.position, from_attributes=True),
            metadata=AnalysisMetadataSchema.model_validate(metadata, from_attributes=True),
            review_items=[ReviewItemSchema.model_validate(item, from_attributes=True) for item in snapshot.review_items],
            is_valid_for_allocation=failure is None,
            validation_failures=list(failure.reasons) if failure else [],
        )

    except BankAPIError as e:
        bank_fetch_failures_counter.inc()
        db.rollback()
        logging.error(f"Bank API error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=503, detail="Bank service unavailable")

    except Exception as e:
        db.rollback()
        logging.error(f"Unexpected error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Internal server error")
