"""Domain models - pure Python dataclasses representing business entities

Sign convention: transaction amounts are outflow-positive (money leaving the
account is positive, money arriving is negative). All money is integer cents.
"""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Dict, FrozenSet, Mapping, Optional, Tuple


class AccountType(str, Enum):
    """Provider account types"""

    DEPOSITORY = "depository"
    CREDIT = "credit"
    LOAN = "loan"
    INVESTMENT = "investment"
    BROKERAGE = "brokerage"
    OTHER = "other"


class TransactionClass(str, Enum):
    """What a transaction means for the plan"""

    INCOME = "income"
    ESSENTIAL_EXPENSE = "essential_expense"
    DISCRETIONARY_EXPENSE = "discretionary_expense"
    INVESTMENT_CONTRIBUTION = "investment_contribution"
    INTERNAL_TRANSFER = "internal_transfer"
    DEBT_PAYMENT = "debt_payment"
    EXCLUDED = "excluded"  # inflow with no income signal


class TransferStatus(str, Enum):
    EXTERNAL = "external"
    INTERNAL = "internal"
    NEEDS_REVIEW = "needs_review"


class CategoryTag(str, Enum):
    """Closed vocabulary derived from provider category labels and merchant text"""

    INCOME_WAGES = "income_wages"
    INCOME_INTEREST = "income_interest"
    INCOME_DIVIDENDS = "income_dividends"
    INCOME_TAX_REFUND = "income_tax_refund"
    INCOME_UNEMPLOYMENT = "income_unemployment"
    INCOME_BENEFITS = "income_benefits"
    TRANSFER_ACCOUNT = "transfer_account"
    TRANSFER_INVESTMENT = "transfer_investment"
    TRANSFER_SAVINGS = "transfer_savings"
    TRANSFER_OTHER = "transfer_other"
    PEER_TO_PEER = "peer_to_peer"
    ATM = "atm"
    LOAN_PAYMENT = "loan_payment"
    CREDIT_CARD_PAYMENT = "credit_card_payment"
    RENT = "rent"
    MORTGAGE = "mortgage"
    UTILITIES = "utilities"
    INSURANCE = "insurance"
    GROCERIES = "groceries"
    MEDICAL = "medical"
    CHILDCARE = "childcare"
    EDUCATION = "education"
    BANK_FEES = "bank_fees"
    TRANSPORTATION = "transportation"
    SUBSCRIPTION = "subscription"
    DINING = "dining"
    SHOPPING = "shopping"
    ENTERTAINMENT = "entertainment"
    TRAVEL = "travel"
    UNKNOWN = "unknown"


class ExpenseCategory(str, Enum):
    """The eight fixed essential-expense categories"""

    HOUSING = "housing"
    FOOD = "food"
    TRANSPORTATION = "transportation"
    UTILITIES = "utilities"
    INSURANCE = "insurance"
    SUBSCRIPTIONS = "subscriptions"
    HEALTHCARE = "healthcare"
    OTHER = "other"


class DebtType(str, Enum):
    CREDIT_CARD = "credit_card"
    STUDENT_LOAN = "student_loan"
    AUTO_LOAN = "auto_loan"
    PERSONAL_LOAN = "personal_loan"
    MORTGAGE = "mortgage"
    OTHER = "other"


class IncomeStability(str, Enum):
    STABLE = "stable"
    VARIABLE = "variable"
    INCONSISTENT = "inconsistent"


class BucketType(str, Enum):
    ESSENTIAL = "essential"
    DISCRETIONARY = "discretionary"
    EMERGENCY_FUND = "emergency_fund"
    INVESTMENTS = "investments"
    DEBT_PAYDOWN = "debt_paydown"


class PresetTier(str, Enum):
    LOW = "low"
    RECOMMENDED = "recommended"
    HIGH = "high"


class FailureReason(str, Enum):
    NEGATIVE_DISPOSABLE_INCOME = "negative_disposable_income"
    LOW_CONFIDENCE = "low_confidence"


class EditStatus(str, Enum):
    APPLIED = "applied"
    CLAMPED = "clamped"
    REJECTED = "rejected"


class Severity(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    INFO = "info"


class WarningCode(str, Enum):
    ESSENTIAL_SPENDING_HIGH = "essential_spending_high"
    DISCRETIONARY_LOW = "discretionary_low"
    EMERGENCY_FUND_LOW = "emergency_fund_low"
    DISCRETIONARY_HIGH = "discretionary_high"
    DISCRETIONARY_LIMIT = "discretionary_limit"


# --- Provider inputs -----------------------------------------------------------


@dataclass(frozen=True)
class Transaction:
    """Bank transaction from the banking provider"""

    id: str
    account_id: str
    amount_cents: int  # positive = outflow, negative = inflow
    date: date
    name: str
    merchant_name: str | None = None
    category_labels: Tuple[str, ...] = ()  # most-specific first
    category_confidence: float | None = None
    pending: bool = False

    @property
    def is_inflow(self) -> bool:
        return self.amount_cents < 0

    @property
    def is_outflow(self) -> bool:
        return self.amount_cents > 0

    @property
    def text(self) -> str:
        """Lower-cased merchant + description used by text heuristics"""
        return f"{self.merchant_name or ''} {self.name or ''}".lower()


@dataclass(frozen=True)
class Account:
    """Bank account from the banking provider"""

    id: str
    type: AccountType
    current_balance_cents: int
    name: str = ""
    subtype: str | None = None
    available_balance_cents: int | None = None
    minimum_payment_cents: int | None = None  # credit/loan only
    apr: float | None = None  # credit/loan only, 0.18 == 18%
    institution_id: str | None = None

    @property
    def is_depository(self) -> bool:
        return self.type == AccountType.DEPOSITORY

    @property
    def is_debt(self) -> bool:
        return self.type in (AccountType.CREDIT, AccountType.LOAN)

    @property
    def is_investment(self) -> bool:
        return self.type in (AccountType.INVESTMENT, AccountType.BROKERAGE)

    @property
    def is_mortgage(self) -> bool:
        return "mortgage" in (self.subtype or "").lower()


# --- Classification ------------------------------------------------------------


@dataclass(frozen=True)
class Classification:
    """Classifier verdict for a single transaction"""

    kind: TransactionClass
    tag: CategoryTag
    confidence: float
    category: ExpenseCategory | None = None
    needs_review: bool = False


@dataclass(frozen=True)
class ReviewItem:
    """A transfer the engine could not place as internal or external"""

    transaction_id: str
    account_id: str
    amount_cents: int
    date: date
    reason: str


# --- Snapshot ------------------------------------------------------------------


@dataclass(frozen=True)
class ExpenseBreakdown:
    """Monthly average essential expenses by category"""

    housing: int = 0
    food: int = 0
    transportation: int = 0
    utilities: int = 0
    insurance: int = 0
    subscriptions: int = 0
    healthcare: int = 0
    other: int = 0
    confidence: float = 0.0

    @property
    def total(self) -> int:
        return (
            self.housing
            + self.food
            + self.transportation
            + self.utilities
            + self.insurance
            + self.subscriptions
            + self.healthcare
            + self.other
        )

    def as_dict(self) -> Dict[ExpenseCategory, int]:
        return {category: getattr(self, category.value) for category in ExpenseCategory}


@dataclass(frozen=True)
class MonthlyFlow:
    """Average monthly cash flow over the analysis window"""

    income_cents: int = 0
    essential_expenses: ExpenseBreakdown = field(default_factory=ExpenseBreakdown)
    debt_minimums_cents: int = 0

    @property
    def disposable_income_cents(self) -> int:
        # May be negative: a budget-health failure, not an error
        return self.income_cents - self.essential_expenses.total - self.debt_minimums_cents


@dataclass(frozen=True)
class DebtAccount:
    """Credit or loan account with payoff terms"""

    id: str
    name: str
    type: DebtType
    balance_cents: int
    apr: float
    minimum_payment_cents: int
    apr_estimated: bool = False
    minimum_payment_estimated: bool = False

    @property
    def monthly_interest_cost_cents(self) -> int:
        return round(self.balance_cents * self.apr / 12)


@dataclass(frozen=True)
class FinancialPosition:
    """Point-in-time balances"""

    emergency_cash_cents: int = 0
    debt_balances: Tuple[DebtAccount, ...] = ()
    investment_balances_cents: int = 0
    monthly_investment_contributions_cents: int = 0

    @property
    def total_debt_cents(self) -> int:
        return sum(debt.balance_cents for debt in self.debt_balances)

    @property
    def total_minimum_payments_cents(self) -> int:
        return sum(debt.minimum_payment_cents for debt in self.debt_balances)

    @property
    def weighted_average_apr(self) -> float:
        total = self.total_debt_cents
        if total <= 0:
            return 0.0
        return sum(debt.balance_cents * debt.apr for debt in self.debt_balances) / total

    @property
    def net_worth_cents(self) -> int:
        return self.emergency_cash_cents + self.investment_balances_cents - self.total_debt_cents


@dataclass(frozen=True)
class AnalysisMetadata:
    """How the snapshot was produced"""

    months_analyzed: int = 1
    transactions_analyzed: int = 0
    overall_confidence: float = 0.0
    analysis_start_date: date | None = None
    analysis_end_date: date | None = None
    accounts_connected: int = 0
    rejected_records: int = 0
    pending_excluded: int = 0
    transactions_needing_review: int = 0
    estimated_fields: Tuple[str, ...] = ()


@dataclass(frozen=True)
class FinancialSnapshot:
    """Monthly flow + position + metadata, the input to the planner"""

    monthly_flow: MonthlyFlow
    position: FinancialPosition
    metadata: AnalysisMetadata
    review_items: Tuple[ReviewItem, ...] = ()

    @property
    def disposable_income_cents(self) -> int:
        return self.monthly_flow.disposable_income_cents


@dataclass(frozen=True)
class ValidationFailure:
    """Snapshot cannot be turned into a plan"""

    reasons: Tuple[FailureReason, ...]
    disposable_income_cents: int
    overall_confidence: float

    @property
    def message(self) -> str:
        parts = []
        if FailureReason.NEGATIVE_DISPOSABLE_INCOME in self.reasons:
            parts.append(
                f"disposable income is not positive ({self.disposable_income_cents / 100:.2f})"
            )
        if FailureReason.LOW_CONFIDENCE in self.reasons:
            parts.append(f"analysis confidence {self.overall_confidence:.2f} is below threshold")
        return "; ".join(parts)


# --- Allocation plan -----------------------------------------------------------


@dataclass(frozen=True)
class PresetValue:
    amount_cents: int
    percentage: float


@dataclass(frozen=True)
class PresetOptions:
    """Low / Recommended / High suggested amounts"""

    low: PresetValue
    recommended: PresetValue
    high: PresetValue

    def value(self, tier: PresetTier) -> PresetValue:
        return {
            PresetTier.LOW: self.low,
            PresetTier.RECOMMENDED: self.recommended,
            PresetTier.HIGH: self.high,
        }[tier]


@dataclass(frozen=True)
class EmergencyFundDurationOption:
    """Target for a 3/6/12-month emergency fund and contributions to close it"""

    months: int
    target_amount_cents: int
    shortfall_cents: int
    monthly_contribution: PresetOptions
    is_recommended: bool = False

    @property
    def is_goal_met(self) -> bool:
        return self.shortfall_cents <= 0

    def months_to_goal(self, tier: PresetTier) -> Optional[int]:
        contribution = self.monthly_contribution.value(tier).amount_cents
        if contribution <= 0 or self.shortfall_cents <= 0:
            return None
        return -(-self.shortfall_cents // contribution)


@dataclass(frozen=True)
class ProjectionTimeline:
    monthly_contribution_cents: int
    balances_cents: Tuple[Tuple[int, int], ...]  # (years, projected balance)

    def balance_at(self, years: int) -> Optional[int]:
        return dict(self.balances_cents).get(years)


@dataclass(frozen=True)
class InvestmentProjection:
    """Projected balances for each preset tier"""

    starting_balance_cents: int
    annual_return: float
    low: ProjectionTimeline
    recommended: ProjectionTimeline
    high: ProjectionTimeline


@dataclass(frozen=True)
class PayoffEstimate:
    monthly_payment_cents: int
    months: int
    interest_paid_cents: int
    interest_saved_cents: int
    pays_off: bool = True


@dataclass(frozen=True)
class DebtPayoffTimeline:
    """Payoff estimate for each debt preset tier"""

    total_debt_cents: int
    average_apr: float
    minimum_only: PayoffEstimate
    low: PayoffEstimate
    recommended: PayoffEstimate
    high: PayoffEstimate
    is_estimated: bool = False


@dataclass(frozen=True)
class AllocationBucket:
    """One slice of the plan"""

    id: str
    type: BucketType
    allocated_cents: int
    is_modifiable: bool = True
    preset_options: PresetOptions | None = None
    selected_tier: PresetTier | None = None
    linked_account_ids: FrozenSet[str] = frozenset()
    explanation: str = ""
    # Emergency fund only
    target_amount_cents: int | None = None
    shortfall_cents: int | None = None
    months_to_target: int | None = None
    selected_duration_months: int | None = None
    duration_options: Tuple[EmergencyFundDurationOption, ...] = ()
    # Investments only
    growth_projection: InvestmentProjection | None = None
    # Debt paydown only
    payoff_timeline: DebtPayoffTimeline | None = None


@dataclass(frozen=True)
class AllocationPlan:
    """The full bucket set.

    Flexible buckets sum exactly to disposable income; the Essential bucket sits
    outside that pool, so the whole set sums to income.
    """

    buckets: Tuple[AllocationBucket, ...]
    income_cents: int
    disposable_income_cents: int
    income_stability: IncomeStability
    recommended_emergency_months: int

    def bucket(self, bucket_type: BucketType) -> Optional[AllocationBucket]:
        return next((b for b in self.buckets if b.type == bucket_type), None)

    def bucket_by_id(self, bucket_id: str) -> Optional[AllocationBucket]:
        return next((b for b in self.buckets if b.id == bucket_id), None)

    def amount(self, bucket_type: BucketType) -> int:
        bucket = self.bucket(bucket_type)
        return bucket.allocated_cents if bucket else 0

    @property
    def flexible_total_cents(self) -> int:
        return sum(b.allocated_cents for b in self.buckets if b.type != BucketType.ESSENTIAL)

    @property
    def total_cents(self) -> int:
        return sum(b.allocated_cents for b in self.buckets)

    @property
    def is_balanced(self) -> bool:
        return self.flexible_total_cents == self.disposable_income_cents

    def percentage_of_income(self, bucket: AllocationBucket) -> float:
        """Derived on read; Essential is measured against income, the rest against disposable income"""
        base = self.income_cents if bucket.type == BucketType.ESSENTIAL else self.disposable_income_cents
        if base <= 0:
            return 0.0
        return bucket.allocated_cents / base * 100


@dataclass(frozen=True)
class PlanResult:
    """Planner output: a plan, or the reason one could not be produced"""

    plan: AllocationPlan | None = None
    failure: ValidationFailure | None = None

    @property
    def ok(self) -> bool:
        return self.plan is not None


@dataclass(frozen=True)
class BucketAdjustment:
    bucket_id: str
    bucket_type: BucketType
    old_cents: int
    new_cents: int

    @property
    def delta_cents(self) -> int:
        return self.new_cents - self.old_cents


@dataclass(frozen=True)
class EditResult:
    """Outcome of a single user edit"""

    status: EditStatus
    plan: AllocationPlan
    adjustments: Tuple[BucketAdjustment, ...] = ()
    requested_cents: int = 0
    applied_cents: int = 0
    reason: str = ""

    @property
    def buckets(self) -> Tuple[AllocationBucket, ...]:
        return self.plan.buckets


@dataclass(frozen=True)
class BucketPreferences:
    """User choices that survive plan regeneration, keyed by bucket type"""

    links: Mapping[BucketType, FrozenSet[str]] = field(default_factory=dict)
    tiers: Mapping[BucketType, PresetTier] = field(default_factory=dict)
    emergency_months: int | None = None


@dataclass(frozen=True)
class BudgetWarning:
    code: WarningCode
    severity: Severity
    message: str
    percentage: float


@dataclass(frozen=True)
class LinkSuggestion:
    account_id: str
    bucket_type: BucketType
    confidence: str  # high | medium | low
    reason: str
