"""Pydantic schemas for API request/response validation"""

from pydantic import BaseModel, ConfigDict, Field
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

from allocation_planner.domain.models import (
    BucketType,
    DebtType,
    EditStatus,
    FailureReason,
    IncomeStability,
    PresetTier,
    Severity,
    TransactionClass,
    WarningCode,
)


class AnalysisRequest(BaseModel):
    """Request body for POST /v1/analysis

    Without accounts/transactions the data is fetched from the banking provider.
    """

    user_id: str = Field(..., min_length=1, description="User identifier")
    accounts: Optional[List[Dict[str, Any]]] = Field(None, description="Provider-format accounts")
    transactions: Optional[List[Dict[str, Any]]] = Field(None, description="Provider-format transactions")
    overrides: Dict[str, TransactionClass] = Field(
        default_factory=dict, description="User re-classifications keyed by transaction id"
    )
    as_of: Optional[date] = Field(None, description="End of the analysis window")
    income_stability: Optional[IncomeStability] = Field(None, description="Skip stability detection")


class ExpenseBreakdownSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    housing: int
    food: int
    transportation: int
    utilities: int
    insurance: int
    subscriptions: int
    healthcare: int
    other: int
    total: int
    confidence: float


class MonthlyFlowSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    income_cents: int
    essential_expenses: ExpenseBreakdownSchema
    debt_minimums_cents: int
    disposable_income_cents: int


class DebtAccountSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    type: DebtType
    balance_cents: int
    apr: float
    minimum_payment_cents: int
    apr_estimated: bool
    minimum_payment_estimated: bool


class FinancialPositionSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    emergency_cash_cents: int
    debt_balances: List[DebtAccountSchema]
    investment_balances_cents: int
    monthly_investment_contributions_cents: int
    total_debt_cents: int
    weighted_average_apr: float
    net_worth_cents: int


class AnalysisMetadataSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    months_analyzed: int
    transactions_analyzed: int
    overall_confidence: float
    analysis_start_date: Optional[date] = None
    analysis_end_date: Optional[date] = None
    accounts_connected: int
    rejected_records: int
    pending_excluded: int
    transactions_needing_review: int
    estimated_fields: List[str]


class ReviewItemSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    transaction_id: str
    account_id: str
    amount_cents: int
    date: date
    reason: str


class SnapshotResponse(BaseModel):
    """Response for POST /v1/analysis"""

    snapshot_id: str
    user_id: str
    income_stability: IncomeStability
    emergency_fund_months: float
    monthly_flow: MonthlyFlowSchema
    position: FinancialPositionSchema
    metadata: AnalysisMetadataSchema
    review_items: List[ReviewItemSchema]
    is_valid_for_allocation: bool
    validation_failures: List[FailureReason] = []


class PlanRequest(BaseModel):
    """Request body for POST /v1/plan"""

    user_id: str = Field(..., min_length=1, description="User identifier")
    income_stability: Optional[IncomeStability] = Field(None, description="Override detected stability")


class PresetValueSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    amount_cents: int
    percentage: float


class PresetOptionsSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    low: PresetValueSchema
    recommended: PresetValueSchema
    high: PresetValueSchema


class DurationOptionSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    months: int
    target_amount_cents: int
    shortfall_cents: int
    monthly_contribution: PresetOptionsSchema
    is_recommended: bool
    is_goal_met: bool


class ProjectionTimelineSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    monthly_contribution_cents: int
    balances_cents: List[Tuple[int, int]]


class InvestmentProjectionSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    starting_balance_cents: int
    annual_return: float
    low: ProjectionTimelineSchema
    recommended: ProjectionTimelineSchema
    high: ProjectionTimelineSchema


class PayoffEstimateSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    monthly_payment_cents: int
    months: int
    interest_paid_cents: int
    interest_saved_cents: int
    pays_off: bool


class DebtPayoffTimelineSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total_debt_cents: int
    average_apr: float
    minimum_only: PayoffEstimateSchema
    low: PayoffEstimateSchema
    recommended: PayoffEstimateSchema
    high: PayoffEstimateSchema
    is_estimated: bool


class BucketSchema(BaseModel):
    """Single bucket; percentage and linked balance are derived on read"""

    id: str
    type: BucketType
    allocated_cents: int
    percentage: float
    is_modifiable: bool
    preset_options: Optional[PresetOptionsSchema] = None
    selected_tier: Optional[PresetTier] = None
    linked_account_ids: List[str] = []
    linked_balance_cents: int = 0
    explanation: str = ""
    target_amount_cents: Optional[int] = None
    shortfall_cents: Optional[int] = None
    months_to_target: Optional[int] = None
    selected_duration_months: Optional[int] = None
    duration_options: List[DurationOptionSchema] = []
    growth_projection: Optional[InvestmentProjectionSchema] = None
    payoff_timeline: Optional[DebtPayoffTimelineSchema] = None


class WarningSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    code: WarningCode
    severity: Severity
    message: str
    percentage: float


class PlanResponse(BaseModel):
    """Response for plan reads and plan-changing requests"""

    user_id: str
    income_cents: int
    disposable_income_cents: int
    income_stability: IncomeStability
    recommended_emergency_months: int
    buckets: List[BucketSchema]
    warnings: List[WarningSchema]


class EditRequest(BaseModel):
    """Request body for POST /v1/plan/{user_id}/edit"""

    bucket_id: str = Field(..., min_length=1)
    new_amount_cents: int = Field(..., description="Requested monthly amount in cents")


class PresetRequest(BaseModel):
    """Request body for POST /v1/plan/{user_id}/preset"""

    bucket_type: BucketType
    tier: PresetTier


class AdjustmentSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    bucket_id: str
    bucket_type: BucketType
    old_cents: int
    new_cents: int
    delta_cents: int


class EditResponse(BaseModel):
    """Outcome of an edit or preset selection, with the resulting plan"""

    status: EditStatus
    requested_cents: int
    applied_cents: int
    reason: str = ""
    adjustments: List[AdjustmentSchema]
    plan: PlanResponse


class EmergencyDurationRequest(BaseModel):
    """Request body for POST /v1/plan/{user_id}/emergency-duration"""

    months: int = Field(..., gt=0)


class LinksRequest(BaseModel):
    """Request body for PUT /v1/plan/{user_id}/links"""

    bucket_type: BucketType
    account_ids: List[str]


class LinksResponse(BaseModel):
    user_id: str
    bucket_type: BucketType
    account_ids: List[str]
    linked_balance_cents: int


class LinkSuggestionSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    account_id: str
    bucket_type: BucketType
    confidence: str
    reason: str


class LinkSuggestionsResponse(BaseModel):
    """Response for GET /v1/accounts/{user_id}/link-suggestions"""

    user_id: str
    suggestions: List[LinkSuggestionSchema]
