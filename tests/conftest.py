"""Pytest fixtures for testing"""

import pytest
from datetime import date
from typing import Callable, Generator
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from allocation_planner.api.main import create_app
from allocation_planner.infrastructure.database.models import Base
from allocation_planner.infrastructure.database.session import get_db
from allocation_planner.domain.models import (
    Account,
    AccountType,
    AnalysisMetadata,
    DebtAccount,
    DebtType,
    ExpenseBreakdown,
    FinancialPosition,
    FinancialSnapshot,
    MonthlyFlow,
    Transaction,
)


# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db: Session) -> TestClient:
    """Create FastAPI test client with test database"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    return TestClient(app)


@pytest.fixture
def make_txn() -> Callable[..., Transaction]:
    """Transaction factory; amounts are outflow-positive cents"""

    def factory(
        id: str,
        amount_cents: int,
        day: date,
        name: str = "",
        labels: tuple = (),
        account_id: str = "chk",
        merchant_name: str | None = None,
        confidence: float | None = None,
        pending: bool = False,
    ) -> Transaction:
        return Transaction(
            id=id,
            account_id=account_id,
            amount_cents=amount_cents,
            date=day,
            name=name,
            merchant_name=merchant_name,
            category_labels=labels,
            category_confidence=confidence,
            pending=pending,
        )

    return factory


@pytest.fixture
def household_accounts() -> list[Account]:
    """Checking + savings at one bank, a brokerage elsewhere"""
    return [
        Account(
            id="chk",
            type=AccountType.DEPOSITORY,
            subtype="checking",
            name="Everyday Checking",
            current_balance_cents=250000,
            institution_id="ins_1",
        ),
        Account(
            id="sav",
            type=AccountType.DEPOSITORY,
            subtype="savings",
            name="Emergency Savings",
            current_balance_cents=1000000,
            institution_id="ins_1",
        ),
        Account(
            id="brk",
            type=AccountType.INVESTMENT,
            subtype="brokerage",
            name="Vanguard Brokerage",
            current_balance_cents=2000000,
            institution_id="ins_2",
        ),
    ]


@pytest.fixture
def household_transactions(make_txn) -> list[Transaction]:
    """
    Five months of: $5,000 payroll, $1,800 rent, $400 groceries, $500 to Vanguard.

    A single coffee on 2024-06-15 closes the range, so exactly five whole
    months are analyzed.
    """
    transactions = []
    for month in range(1, 6):
        transactions.append(
            make_txn(f"pay_{month}", -500000, date(2024, month, 15), "ACME CORP PAYROLL", ("INCOME_WAGES", "INCOME"))
        )
        transactions.append(
            make_txn(
                f"rent_{month}",
                180000,
                date(2024, month, 16),
                "Sunset Apartments",
                ("RENT_AND_UTILITIES_RENT", "RENT_AND_UTILITIES"),
            )
        )
        transactions.append(
            make_txn(
                f"groc_{month}",
                40000,
                date(2024, month, 20),
                "Whole Foods Market",
                ("FOOD_AND_DRINK_GROCERIES", "FOOD_AND_DRINK"),
            )
        )
        transactions.append(
            make_txn(
                f"inv_{month}",
                50000,
                date(2024, month, 16),
                "Vanguard Buy Investment",
                ("TRANSFER_OUT_INVESTMENT_AND_RETIREMENT_FUNDS", "TRANSFER_OUT"),
                merchant_name="Vanguard",
            )
        )
    transactions.append(
        make_txn("coffee", 500, date(2024, 6, 15), "Starbucks", ("FOOD_AND_DRINK_COFFEE", "FOOD_AND_DRINK"))
    )
    return transactions


@pytest.fixture
def make_snapshot() -> Callable[..., FinancialSnapshot]:
    """Snapshot factory for planner tests; essentials are all housing"""

    def factory(
        income_cents: int = 500000,
        essential_cents: int = 250000,
        emergency_cash_cents: int = 1000000,
        debts: tuple = (),
        investment_balance_cents: int = 0,
        confidence: float = 0.9,
    ) -> FinancialSnapshot:
        return FinancialSnapshot(
            monthly_flow=MonthlyFlow(
                income_cents=income_cents,
                essential_expenses=ExpenseBreakdown(housing=essential_cents, confidence=confidence),
                debt_minimums_cents=sum(debt.minimum_payment_cents for debt in debts),
            ),
            position=FinancialPosition(
                emergency_cash_cents=emergency_cash_cents,
                debt_balances=debts,
                investment_balances_cents=investment_balance_cents,
            ),
            metadata=AnalysisMetadata(months_analyzed=6, transactions_analyzed=100, overall_confidence=confidence),
        )

    return factory


@pytest.fixture
def credit_card_debt() -> DebtAccount:
    return DebtAccount(
        id="cc",
        name="Visa",
        type=DebtType.CREDIT_CARD,
        balance_cents=500000,
        apr=0.2,
        minimum_payment_cents=15000,
    )
