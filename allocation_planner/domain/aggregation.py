"""Flow and position aggregation - turns transactions + accounts into a FinancialSnapshot"""

from datetime import date
from statistics import pstdev
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from allocation_planner.domain.classifier import (
    REVIEW_CONFIDENCE,
    ClassificationContext,
    classify,
    is_recurring,
)
from allocation_planner.domain.models import (
    Account,
    AccountType,
    AnalysisMetadata,
    Classification,
    DebtAccount,
    DebtType,
    ExpenseBreakdown,
    ExpenseCategory,
    FailureReason,
    FinancialPosition,
    FinancialSnapshot,
    IncomeStability,
    MonthlyFlow,
    ReviewItem,
    Transaction,
    TransactionClass,
    ValidationFailure,
)
from allocation_planner.domain.policy import DEFAULT_POLICY, AllocationPolicy
from allocation_planner.utils.date_utils import subtract_months, whole_months_between

Classified = List[Tuple[Transaction, Classification]]

# Classes that move money the plan cares about; internal transfers and excluded inflows do not
_COUNTED_CLASSES = frozenset(
    {
        TransactionClass.INCOME,
        TransactionClass.ESSENTIAL_EXPENSE,
        TransactionClass.DISCRETIONARY_EXPENSE,
        TransactionClass.DEBT_PAYMENT,
        TransactionClass.INVESTMENT_CONTRIBUTION,
    }
)

STABLE_VARIATION = 0.15
VARIABLE_VARIATION = 0.30
MIN_STABILITY_MONTHS = 3


def is_well_formed(transaction: Transaction) -> bool:
    """Record-level sanity check; failures are counted, never summed as zero"""
    return (
        isinstance(transaction.id, str)
        and bool(transaction.id)
        and isinstance(transaction.account_id, str)
        and isinstance(transaction.amount_cents, int)
        and not isinstance(transaction.amount_cents, bool)
        and isinstance(transaction.date, date)
    )


def restrict_to_window(
    transactions: Iterable[Transaction],
    as_of: Optional[date] = None,
    months: int = DEFAULT_POLICY.analysis_window_months,
) -> Tuple[List[Transaction], int, int]:
    """Trailing window ending at `as_of`, pending dropped.

    Returns (window, pending_excluded, rejected). `as_of` defaults to the latest
    settled transaction date so the result depends only on the input.
    """
    well_formed = []
    rejected = 0
    for transaction in transactions:
        if is_well_formed(transaction):
            well_formed.append(transaction)
        else:
            rejected += 1

    settled = [t for t in well_formed if not t.pending]
    pending_excluded = len(well_formed) - len(settled)
    if not settled:
        return [], pending_excluded, rejected

    end = as_of or max(t.date for t in settled)
    start = subtract_months(end, months)
    window = [t for t in settled if start < t.date <= end]
    window.sort(key=lambda t: (t.date, t.id))
    return window, pending_excluded, rejected


def months_analyzed(transactions: Sequence[Transaction]) -> int:
    """Completed months between earliest and latest transaction, never below 1"""
    if not transactions:
        return 1
    dates = [t.date for t in transactions]
    return max(1, whole_months_between(min(dates), max(dates)))


def classify_transactions(
    transactions: Sequence[Transaction],
    accounts: Sequence[Account] = (),
    overrides: Optional[Mapping[str, TransactionClass]] = None,
) -> Classified:
    context = ClassificationContext(transactions, accounts)
    overrides = overrides or {}
    return [(t, classify(t, context, overrides.get(t.id))) for t in transactions]


# --- Debt accounts ---------------------------------------------------------------


def debt_type_for(account: Account) -> DebtType:
    subtype = (account.subtype or "").lower()
    if "mortgage" in subtype:
        return DebtType.MORTGAGE
    if "student" in subtype:
        return DebtType.STUDENT_LOAN
    if "auto" in subtype:
        return DebtType.AUTO_LOAN
    if "personal" in subtype:
        return DebtType.PERSONAL_LOAN
    if "credit" in subtype or account.type == AccountType.CREDIT:
        return DebtType.CREDIT_CARD
    return DebtType.OTHER


def estimate_minimum_payment(
    balance_cents: int, debt_type: DebtType, policy: AllocationPolicy = DEFAULT_POLICY
) -> int:
    """Deterministic stand-in for a provider minimum payment"""
    if balance_cents <= 0:
        return 0
    if debt_type == DebtType.CREDIT_CARD:
        estimate = max(
            round(balance_cents * policy.credit_card_minimum_rate),
            policy.credit_card_minimum_floor_cents,
        )
        return min(estimate, balance_cents)
    return round(balance_cents * policy.loan_minimum_rate)


def estimate_apr(debt_type: DebtType, policy: AllocationPolicy = DEFAULT_POLICY) -> float:
    return policy.estimated_aprs.get(debt_type, policy.estimated_aprs[DebtType.OTHER])


def debt_accounts(
    accounts: Iterable[Account], policy: AllocationPolicy = DEFAULT_POLICY
) -> Tuple[Tuple[DebtAccount, ...], Tuple[str, ...]]:
    """One DebtAccount per credit/loan account, plus the estimated-value tags"""
    debts = []
    estimated: List[str] = []

    for account in sorted(accounts, key=lambda a: a.id):
        if not account.is_debt:
            continue

        debt_type = debt_type_for(account)
        balance = abs(account.current_balance_cents)

        minimum_estimated = account.minimum_payment_cents is None
        minimum = (
            estimate_minimum_payment(balance, debt_type, policy)
            if minimum_estimated
            else max(0, account.minimum_payment_cents)
        )
        apr_estimated = account.apr is None
        apr = estimate_apr(debt_type, policy) if apr_estimated else max(0.0, account.apr)

        if minimum_estimated:
            estimated.append(f"minimum_payment:{account.id}")
        if apr_estimated:
            estimated.append(f"apr:{account.id}")

        debts.append(
            DebtAccount(
                id=account.id,
                name=account.name,
                type=debt_type,
                balance_cents=balance,
                apr=apr,
                minimum_payment_cents=minimum,
                apr_estimated=apr_estimated,
                minimum_payment_estimated=minimum_estimated,
            )
        )

    return tuple(debts), tuple(estimated)


# --- Monthly flow ----------------------------------------------------------------


def _monthly(total_cents: int, months: int) -> int:
    return round(total_cents / months)


def _weighted_confidence(pairs: Iterable[Tuple[int, float]]) -> float:
    weight = 0
    total = 0.0
    for amount, confidence in pairs:
        weight += abs(amount)
        total += abs(amount) * confidence
    return total / weight if weight else 0.0


def _breakdown_category(transaction: Transaction, classification: Classification) -> Optional[ExpenseCategory]:
    if classification.category is not None:
        return classification.category
    # Unmatched essentials only count when they look recurring
    return ExpenseCategory.OTHER if is_recurring(transaction) else None


def _expense_breakdown(classified: Classified, months: int) -> ExpenseBreakdown:
    totals: Dict[ExpenseCategory, int] = {category: 0 for category in ExpenseCategory}
    weights = []

    for transaction, classification in classified:
        if classification.kind != TransactionClass.ESSENTIAL_EXPENSE:
            continue
        category = _breakdown_category(transaction, classification)
        if category is None:
            continue
        totals[category] += transaction.amount_cents
        weights.append((transaction.amount_cents, classification.confidence))

    return ExpenseBreakdown(
        **{category.value: max(0, _monthly(cents, months)) for category, cents in totals.items()},
        confidence=_weighted_confidence(weights),
    )


def _flow_from(
    classified: Classified, debts: Sequence[DebtAccount], months: int
) -> MonthlyFlow:
    income = sum(
        -t.amount_cents for t, c in classified if c.kind == TransactionClass.INCOME and t.is_inflow
    )
    return MonthlyFlow(
        income_cents=max(0, _monthly(income, months)),
        essential_expenses=_expense_breakdown(classified, months),
        debt_minimums_cents=sum(debt.minimum_payment_cents for debt in debts),
    )


def calculate_monthly_flow(
    transactions: Sequence[Transaction],
    accounts: Sequence[Account],
    overrides: Optional[Mapping[str, TransactionClass]] = None,
    policy: AllocationPolicy = DEFAULT_POLICY,
) -> MonthlyFlow:
    """Average monthly income, essential breakdown and debt minimums over the given transactions"""
    classified = classify_transactions(transactions, accounts, overrides)
    debts, _ = debt_accounts(accounts, policy)
    return _flow_from(classified, debts, months_analyzed(transactions))


# --- Financial position ------------------------------------------------------------


def _is_certificate_of_deposit(account: Account) -> bool:
    return (account.subtype or "").lower() in ("cd", "certificate of deposit")


def _contribution_total(classified: Classified, context: ClassificationContext) -> int:
    contributions = {
        t.id for t, c in classified if c.kind == TransactionClass.INVESTMENT_CONTRIBUTION
    }
    total = 0
    for transaction, classification in classified:
        if classification.kind != TransactionClass.INVESTMENT_CONTRIBUTION:
            continue
        if transaction.is_inflow:
            # Receiving leg of a contribution already counted on the sending side
            counterpart = context.counterpart(transaction)
            if counterpart is not None and counterpart.id in contributions:
                continue
        total += abs(transaction.amount_cents)
    return total


def _position_from(
    classified: Classified,
    accounts: Sequence[Account],
    debts: Tuple[DebtAccount, ...],
    months: int,
) -> FinancialPosition:
    emergency_cash = sum(
        max(0, account.available_balance_cents if account.available_balance_cents is not None else account.current_balance_cents)
        for account in accounts
        if account.is_depository and not _is_certificate_of_deposit(account)
    )
    investments = sum(account.current_balance_cents for account in accounts if account.is_investment)
    context = ClassificationContext([t for t, _ in classified], accounts)

    return FinancialPosition(
        emergency_cash_cents=emergency_cash,
        debt_balances=debts,
        investment_balances_cents=investments,
        monthly_investment_contributions_cents=_monthly(_contribution_total(classified, context), months),
    )


def calculate_financial_position(
    transactions: Sequence[Transaction],
    accounts: Sequence[Account],
    overrides: Optional[Mapping[str, TransactionClass]] = None,
    policy: AllocationPolicy = DEFAULT_POLICY,
) -> FinancialPosition:
    """Balances from accounts, contributions from transactions"""
    classified = classify_transactions(transactions, accounts, overrides)
    debts, _ = debt_accounts(accounts, policy)
    return _position_from(classified, accounts, debts, months_analyzed(transactions))


# --- Snapshot ----------------------------------------------------------------------


def _review_items(classified: Classified) -> Tuple[ReviewItem, ...]:
    return tuple(
        ReviewItem(
            transaction_id=t.id,
            account_id=t.account_id,
            amount_cents=t.amount_cents,
            date=t.date,
            reason="transfer could not be matched to an account at the same institution",
        )
        for t, c in classified
        if c.needs_review
    )


def _overall_confidence(classified: Classified) -> float:
    pairs = []
    for transaction, classification in classified:
        if classification.needs_review:
            pairs.append((transaction.amount_cents, REVIEW_CONFIDENCE))
        elif classification.kind in _COUNTED_CLASSES:
            pairs.append((transaction.amount_cents, classification.confidence))
    return _weighted_confidence(pairs)


def build_snapshot(
    transactions: Iterable[Transaction],
    accounts: Sequence[Account],
    as_of: Optional[date] = None,
    overrides: Optional[Mapping[str, TransactionClass]] = None,
    rejected_records: int = 0,
    policy: AllocationPolicy = DEFAULT_POLICY,
) -> FinancialSnapshot:
    """
    Full aggregation pass.

    - Trailing window, pending dropped, malformed records counted as rejected
    - Monthly averages divide by months analyzed (floored at 1)
    - Debt minimums/APRs estimated where the provider left them out, and tagged
    """
    window, pending_excluded, rejected = restrict_to_window(
        transactions, as_of, policy.analysis_window_months
    )
    months = months_analyzed(window)
    classified = classify_transactions(window, accounts, overrides)
    debts, estimated = debt_accounts(accounts, policy)
    review_items = _review_items(classified)

    metadata = AnalysisMetadata(
        months_analyzed=months,
        transactions_analyzed=len(window),
        overall_confidence=_overall_confidence(classified),
        analysis_start_date=window[0].date if window else None,
        analysis_end_date=window[-1].date if window else None,
        accounts_connected=len(accounts),
        rejected_records=rejected_records + rejected,
        pending_excluded=pending_excluded,
        transactions_needing_review=len(review_items),
        estimated_fields=estimated,
    )

    return FinancialSnapshot(
        monthly_flow=_flow_from(classified, debts, months),
        position=_position_from(classified, accounts, debts, months),
        metadata=metadata,
        review_items=review_items,
    )


def validate_for_allocation(
    snapshot: FinancialSnapshot, policy: AllocationPolicy = DEFAULT_POLICY
) -> Optional[ValidationFailure]:
    """None when the snapshot can be planned, otherwise every failed condition"""
    reasons = []
    if snapshot.disposable_income_cents <= 0:
        reasons.append(FailureReason.NEGATIVE_DISPOSABLE_INCOME)
    if snapshot.metadata.overall_confidence < policy.min_allocation_confidence:
        reasons.append(FailureReason.LOW_CONFIDENCE)

    if not reasons:
        return None
    return ValidationFailure(
        reasons=tuple(reasons),
        disposable_income_cents=snapshot.disposable_income_cents,
        overall_confidence=snapshot.metadata.overall_confidence,
    )


def is_valid_for_allocation(
    snapshot: FinancialSnapshot, policy: AllocationPolicy = DEFAULT_POLICY
) -> bool:
    return validate_for_allocation(snapshot, policy) is None


# --- Derived health figures ---------------------------------------------------------


def emergency_fund_months(position: FinancialPosition, essential_total_cents: int) -> float:
    """Months of essential spending the liquid cash already covers"""
    if essential_total_cents <= 0:
        return 0.0
    return position.emergency_cash_cents / essential_total_cents


def classify_income_stability(
    transactions: Sequence[Transaction],
    accounts: Sequence[Account] = (),
    as_of: Optional[date] = None,
    months: int = DEFAULT_POLICY.analysis_window_months,
) -> IncomeStability:
    """Coefficient of variation of monthly income over trailing rolling months"""
    window, _, _ = restrict_to_window(transactions, as_of, months)
    if not window:
        return IncomeStability.INCONSISTENT

    end = as_of or window[-1].date
    covered = min(months, whole_months_between(window[0].date, end))
    if covered < MIN_STABILITY_MONTHS:
        return IncomeStability.INCONSISTENT

    income = [
        (t.date, -t.amount_cents)
        for t, c in classify_transactions(window, accounts)
        if c.kind == TransactionClass.INCOME
    ]
    monthly = []
    for offset in range(covered):
        period_end = subtract_months(end, offset)
        period_start = subtract_months(end, offset + 1)
        monthly.append(sum(amount for day, amount in income if period_start < day <= period_end))

    average = sum(monthly) / len(monthly)
    if average <= 0:
        return IncomeStability.INCONSISTENT

    variation = pstdev(monthly) / average
    if variation < STABLE_VARIATION:
        return IncomeStability.STABLE
    if variation < VARIABLE_VARIATION:
        return IncomeStability.VARIABLE
    return IncomeStability.INCONSISTENT
