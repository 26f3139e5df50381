"""Unit tests for transaction classification"""

import pytest
from datetime import date
from allocation_planner.domain.models import (
    Account,
    AccountType,
    CategoryTag,
    ExpenseCategory,
    TransactionClass,
    TransferStatus,
)
from allocation_planner.domain.classifier import (
    ClassificationContext,
    classify,
    expense_confidence,
    is_actual_income,
    is_investment_contribution,
    tag_transaction,
    transfer_status,
)

DAY = date(2024, 3, 1)


def _accounts(savings_institution: str) -> list[Account]:
    return [
        Account(id="chk", type=AccountType.DEPOSITORY, subtype="checking", current_balance_cents=0, institution_id="ins_1"),
        Account(
            id="sav",
            type=AccountType.DEPOSITORY,
            subtype="savings",
            current_balance_cents=0,
            institution_id=savings_institution,
        ),
    ]


def test_detailed_label_wins_over_primary(make_txn):
    """RENT_AND_UTILITIES_RENT is rent, not utilities"""
    txn = make_txn("1", 180000, DAY, "Landlord", ("RENT_AND_UTILITIES_RENT", "RENT_AND_UTILITIES"))
    assert tag_transaction(txn) == CategoryTag.RENT

    utilities = make_txn("2", 9000, DAY, "City Power", ("RENT_AND_UTILITIES_GAS_AND_ELECTRICITY",))
    assert tag_transaction(utilities) == CategoryTag.UTILITIES


def test_merchant_text_used_without_labels(make_txn):
    txn = make_txn("1", 6000, DAY, "SAFEWAY #1234")
    assert tag_transaction(txn) == CategoryTag.GROCERIES
    assert classify(txn).category == ExpenseCategory.FOOD


def test_payroll_is_income(make_txn):
    txn = make_txn("1", -500000, DAY, "ACME CORP PAYROLL", ("INCOME_WAGES",))
    result = classify(txn)
    assert result.kind == TransactionClass.INCOME
    assert result.confidence == 0.9


def test_unexplained_inflow_is_excluded(make_txn):
    """Refunds are not income"""
    txn = make_txn("1", -2500, DAY, "Amazon refund")
    assert not is_actual_income(txn)
    assert classify(txn).kind == TransactionClass.EXCLUDED


def test_p2p_is_external_with_capped_confidence(make_txn):
    txn = make_txn("1", 4000, DAY, "Venmo payment", ("TRANSFER_OUT_ACCOUNT_TRANSFER",), confidence=0.95)
    assert transfer_status(txn) == TransferStatus.EXTERNAL
    result = classify(txn)
    assert result.kind == TransactionClass.DISCRETIONARY_EXPENSE
    assert result.confidence <= 0.6


def test_p2p_inflow_is_not_income(make_txn):
    txn = make_txn("1", -4000, DAY, "Zelle from Sam")
    assert not is_actual_income(txn)


def test_rent_confidence_is_floored(make_txn):
    txn = make_txn("1", 180000, DAY, "Landlord", ("RENT_AND_UTILITIES_RENT",), confidence=0.4)
    assert expense_confidence(txn) == 0.9


def test_brokerage_transfer_is_contribution(make_txn):
    txn = make_txn("1", 50000, DAY, "Fidelity contribution")
    assert is_investment_contribution(txn)
    assert classify(txn).kind == TransactionClass.INVESTMENT_CONTRIBUTION


@pytest.mark.parametrize(
    "name, labels",
    [
        ("Fidelity dividend deposit", ()),
        ("Vanguard 401k employer contribution", ()),
        ("Schwab interest transfer", ()),
        ("Vanguard dividend", ("TRANSFER_IN_INVESTMENT_AND_RETIREMENT_FUNDS",)),
    ],
)
def test_inflow_matching_income_and_brokerage_is_never_income(make_txn, name, labels):
    txn = make_txn("1", -20000, DAY, name, labels)

    assert is_investment_contribution(txn)
    assert not is_actual_income(txn)
    assert classify(txn).kind == TransactionClass.INVESTMENT_CONTRIBUTION


def test_explicit_account_transfer_is_internal(make_txn):
    txn = make_txn("1", 20000, DAY, "Move money", ("TRANSFER_OUT_ACCOUNT_TRANSFER",))
    assert classify(txn).kind == TransactionClass.INTERNAL_TRANSFER


def test_paired_transfer_same_institution_is_internal(make_txn):
    out_leg = make_txn("out", 20000, DAY, "Online Transfer to Savings", ("TRANSFER_OUT_SAVINGS",))
    in_leg = make_txn("in", -20000, date(2024, 3, 2), "Online Transfer from Checking", ("TRANSFER_IN_SAVINGS",), account_id="sav")
    context = ClassificationContext([out_leg, in_leg], _accounts("ins_1"))

    assert context.counterpart(out_leg) == in_leg
    assert classify(out_leg, context).kind == TransactionClass.INTERNAL_TRANSFER
    assert classify(in_leg, context).kind == TransactionClass.INTERNAL_TRANSFER


def test_paired_transfer_across_institutions_needs_review(make_txn):
    out_leg = make_txn("out", 20000, DAY, "Online Transfer to Savings", ("TRANSFER_OUT_SAVINGS",))
    in_leg = make_txn("in", -20000, date(2024, 3, 2), "Online Transfer from Checking", ("TRANSFER_IN_SAVINGS",), account_id="sav")
    context = ClassificationContext([out_leg, in_leg], _accounts("ins_9"))

    result = classify(out_leg, context)
    assert result.needs_review
    assert result.kind == TransactionClass.EXCLUDED
    assert result.confidence == 0.3


def test_counterpart_outside_window_is_ignored(make_txn):
    out_leg = make_txn("out", 20000, DAY, "Transfer")
    in_leg = make_txn("in", -20000, date(2024, 3, 10), "Transfer", account_id="sav")
    context = ClassificationContext([out_leg, in_leg], _accounts("ins_1"))
    assert context.counterpart(out_leg) is None
    assert transfer_status(out_leg, context) == TransferStatus.NEEDS_REVIEW


def test_mortgage_payment_is_debt_with_mortgage_account(make_txn):
    txn = make_txn("1", 210000, DAY, "Wells Fargo Mortgage", ("LOAN_PAYMENTS_MORTGAGE_PAYMENT",))
    mortgage = Account(id="mtg", type=AccountType.LOAN, subtype="mortgage", current_balance_cents=30000000)

    assert classify(txn).kind == TransactionClass.ESSENTIAL_EXPENSE
    assert classify(txn, ClassificationContext([txn], [mortgage])).kind == TransactionClass.DEBT_PAYMENT


def test_credit_card_payment_is_debt_payment(make_txn):
    txn = make_txn("1", 30000, DAY, "Chase card payment", ("LOAN_PAYMENTS_CREDIT_CARD_PAYMENT",))
    assert classify(txn).kind == TransactionClass.DEBT_PAYMENT


def test_override_wins(make_txn):
    txn = make_txn("1", 12000, DAY, "Gym")
    result = classify(txn, override=TransactionClass.ESSENTIAL_EXPENSE)
    assert result.kind == TransactionClass.ESSENTIAL_EXPENSE
    assert result.confidence == 1.0
    assert result.category == ExpenseCategory.OTHER


def test_no_signal_outflow_defaults_to_discretionary(make_txn):
    txn = make_txn("1", 1500, DAY, "XYZ 123")
    result = classify(txn)
    assert result.kind == TransactionClass.DISCRETIONARY_EXPENSE
    assert result.tag == CategoryTag.UNKNOWN
