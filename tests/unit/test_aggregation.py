"""Unit tests for flow/position aggregation and snapshot building"""

from datetime import date
from allocation_planner.domain.models import (
    Account,
    AccountType,
    DebtType,
    FailureReason,
    IncomeStability,
    TransactionClass,
)
from allocation_planner.domain.aggregation import (
    build_snapshot,
    classify_income_stability,
    debt_accounts,
    estimate_minimum_payment,
    months_analyzed,
    restrict_to_window,
    validate_for_allocation,
)


def test_household_monthly_flow(household_transactions, household_accounts):
    snapshot = build_snapshot(household_transactions, household_accounts)
    flow = snapshot.monthly_flow

    assert snapshot.metadata.months_analyzed == 5
    assert flow.income_cents == 500000
    assert flow.essential_expenses.housing == 180000
    assert flow.essential_expenses.food == 40000
    assert flow.essential_expenses.total == 220000
    assert flow.debt_minimums_cents == 0
    assert flow.disposable_income_cents == 280000


def test_household_position(household_transactions, household_accounts):
    position = build_snapshot(household_transactions, household_accounts).position

    assert position.emergency_cash_cents == 1250000
    assert position.investment_balances_cents == 2000000
    assert position.monthly_investment_contributions_cents == 50000
    assert position.total_debt_cents == 0


def test_household_metadata(household_transactions, household_accounts):
    metadata = build_snapshot(household_transactions, household_accounts).metadata

    assert metadata.transactions_analyzed == 21
    assert metadata.accounts_connected == 3
    assert metadata.analysis_start_date == date(2024, 1, 15)
    assert metadata.analysis_end_date == date(2024, 6, 15)
    assert metadata.overall_confidence > 0.85
    assert metadata.transactions_needing_review == 0


def test_snapshot_is_deterministic(household_transactions, household_accounts):
    first = build_snapshot(household_transactions, household_accounts)
    second = build_snapshot(list(reversed(household_transactions)), household_accounts)
    assert first == second


def test_pending_and_out_of_window_are_dropped(make_txn, household_transactions, household_accounts):
    extra = [
        make_txn("pending", 99900, date(2024, 6, 14), "Best Buy", pending=True),
        make_txn("ancient", 99900, date(2023, 6, 1), "Best Buy"),
    ]
    window, pending, rejected = restrict_to_window(household_transactions + extra, months=6)

    assert pending == 1
    assert rejected == 0
    assert all(t.id not in ("pending", "ancient") for t in window)

    snapshot = build_snapshot(household_transactions + extra, household_accounts)
    assert snapshot.metadata.pending_excluded == 1
    assert snapshot.monthly_flow.income_cents == 500000


def test_months_analyzed_never_below_one(make_txn):
    assert months_analyzed([]) == 1
    assert months_analyzed([make_txn("1", 100, date(2024, 3, 1)), make_txn("2", 100, date(2024, 3, 20))]) == 1


def test_unmatched_transfer_becomes_review_item(make_txn, household_transactions):
    accounts = [
        Account(id="chk", type=AccountType.DEPOSITORY, subtype="checking", current_balance_cents=0, institution_id="ins_1"),
        Account(id="sav", type=AccountType.DEPOSITORY, subtype="savings", current_balance_cents=0, institution_id="ins_2"),
    ]
    transfers = [
        make_txn("t_out", 20000, date(2024, 3, 1), "Online Transfer to Savings", ("TRANSFER_OUT_SAVINGS",)),
        make_txn("t_in", -20000, date(2024, 3, 2), "Online Transfer from Checking", ("TRANSFER_IN_SAVINGS",), account_id="sav"),
    ]
    snapshot = build_snapshot(household_transactions + transfers, accounts)

    assert snapshot.metadata.transactions_needing_review == 2
    assert {item.transaction_id for item in snapshot.review_items} == {"t_out", "t_in"}
    # Neither leg counts as income or spending
    assert snapshot.monthly_flow.income_cents == 500000
    assert snapshot.monthly_flow.essential_expenses.total == 220000


def test_override_reclassifies(household_transactions, household_accounts):
    snapshot = build_snapshot(
        household_transactions,
        household_accounts,
        overrides={"coffee": TransactionClass.ESSENTIAL_EXPENSE},
    )
    assert snapshot.monthly_flow.essential_expenses.other == 100  # $5 over five months


def test_debt_estimates_are_tagged():
    card = Account(id="cc", type=AccountType.CREDIT, subtype="credit card", name="Visa", current_balance_cents=300000)
    debts, estimated = debt_accounts([card])

    assert debts[0].type == DebtType.CREDIT_CARD
    assert debts[0].minimum_payment_cents == 7500
    assert debts[0].apr == 0.18
    assert debts[0].minimum_payment_estimated and debts[0].apr_estimated
    assert estimated == ("minimum_payment:cc", "apr:cc")


def test_provider_debt_terms_are_used():
    loan = Account(
        id="sl",
        type=AccountType.LOAN,
        subtype="student",
        current_balance_cents=2000000,
        minimum_payment_cents=25000,
        apr=0.05,
    )
    debts, estimated = debt_accounts([loan])
    assert debts[0].type == DebtType.STUDENT_LOAN
    assert debts[0].minimum_payment_cents == 25000
    assert estimated == ()


def test_credit_card_minimum_floor_and_cap():
    assert estimate_minimum_payment(50000, DebtType.CREDIT_CARD) == 2500
    assert estimate_minimum_payment(1000, DebtType.CREDIT_CARD) == 1000
    assert estimate_minimum_payment(0, DebtType.CREDIT_CARD) == 0


def test_emergency_cash_ignores_overdrawn_and_cd():
    accounts = [
        Account(id="a", type=AccountType.DEPOSITORY, subtype="checking", current_balance_cents=-5000),
        Account(id="b", type=AccountType.DEPOSITORY, subtype="cd", current_balance_cents=900000),
        Account(id="c", type=AccountType.DEPOSITORY, subtype="savings", current_balance_cents=300000),
    ]
    assert build_snapshot([], accounts).position.emergency_cash_cents == 300000


def test_validation_failures(make_txn):
    rent_only = [make_txn("rent", 180000, date(2024, 3, 1), "Landlord", ("RENT_AND_UTILITIES_RENT",))]
    failure = validate_for_allocation(build_snapshot(rent_only, []))

    assert failure is not None
    assert FailureReason.NEGATIVE_DISPOSABLE_INCOME in failure.reasons


def test_household_is_valid_for_allocation(household_transactions, household_accounts):
    assert validate_for_allocation(build_snapshot(household_transactions, household_accounts)) is None


def _payroll(make_txn, amounts):
    return [
        make_txn(f"pay_{month}", -amount, date(2024, month, 1), "ACME PAYROLL", ("INCOME_WAGES",))
        for month, amount in enumerate(amounts, start=1)
    ]


def test_income_stability_stable(make_txn):
    transactions = _payroll(make_txn, [500000] * 6)
    assert classify_income_stability(transactions, as_of=date(2024, 6, 1)) == IncomeStability.STABLE


def test_income_stability_variable(make_txn):
    transactions = _payroll(make_txn, [500000, 300000, 500000, 300000, 500000, 300000])
    assert classify_income_stability(transactions, as_of=date(2024, 6, 1)) == IncomeStability.VARIABLE


def test_income_stability_short_history_is_inconsistent(make_txn):
    transactions = _payroll(make_txn, [500000, 500000])
    assert classify_income_stability(transactions) == IncomeStability.INCONSISTENT
