"""Banking provider HTTP client for fetching accounts and transaction history"""

import httpx
from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Dict, List, Tuple
from allocation_planner.domain.models import Account, AccountType, Transaction
from allocation_planner.domain.exceptions import BankAPIError, InvalidTransactionDataError
from allocation_planner.config import settings

# Provider confidence levels mapped onto 0..1
CONFIDENCE_LEVELS = {
    "VERY_HIGH": 0.95,
    "HIGH": 0.85,
    "MEDIUM": 0.65,
    "LOW": 0.4,
}


@dataclass(frozen=True)
class ProviderData:
    """Accounts and transactions for one user, plus records that failed to parse"""

    accounts: List[Account] = field(default_factory=list)
    transactions: List[Transaction] = field(default_factory=list)
    rejected_records: int = 0


def to_cents(amount: Any) -> int:
    """Provider dollars to integer cents, half-up"""
    if isinstance(amount, bool) or not isinstance(amount, (int, float, str)):
        raise TypeError(f"amount must be numeric, got {type(amount).__name__}")
    try:
        cents = (Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise ValueError(f"amount is not a number: {amount!r}")
    if not cents.is_finite():
        raise ValueError(f"amount is not finite: {amount!r}")
    return int(cents)


def _optional_cents(amount: Any) -> int | None:
    return None if amount is None else to_cents(amount)


def _confidence(txn: Dict[str, Any]) -> float | None:
    pfc = txn.get("personal_finance_category") or {}
    level = pfc.get("confidence_level")
    if isinstance(level, str):
        return CONFIDENCE_LEVELS.get(level.upper())
    value = txn.get("category_confidence")
    return float(value) if value is not None else None


def _labels(txn: Dict[str, Any]) -> Tuple[str, ...]:
    # Most-specific first: detailed, primary, then the legacy hierarchy reversed
    pfc = txn.get("personal_finance_category") or {}
    labels = [pfc.get("detailed"), pfc.get("primary")]
    labels.extend(reversed(txn.get("category") or []))
    return tuple(label for label in labels if isinstance(label, str) and label)


def parse_account(raw: Dict[str, Any]) -> Account:
    balances = raw.get("balances") or {}
    liability = raw.get("liability") or {}
    apr = liability.get("apr", raw.get("apr"))
    return Account(
        id=raw["account_id"],
        type=AccountType(raw["type"]),
        subtype=raw.get("subtype"),
        name=raw.get("name") or "",
        current_balance_cents=to_cents(balances.get("current", 0) or 0),
        available_balance_cents=_optional_cents(balances.get("available")),
        minimum_payment_cents=_optional_cents(liability.get("minimum_payment", raw.get("minimum_payment"))),
        apr=float(apr) / 100 if apr is not None else None,
        institution_id=raw.get("institution_id"),
    )


def parse_transaction(raw: Dict[str, Any]) -> Transaction:
    return Transaction(
        id=raw["transaction_id"],
        account_id=raw["account_id"],
        amount_cents=to_cents(raw["amount"]),
        date=date.fromisoformat(raw["date"]),
        name=raw.get("name") or "",
        merchant_name=raw.get("merchant_name"),
        category_labels=_labels(raw),
        category_confidence=_confidence(raw),
        pending=bool(raw.get("pending", False)),
    )


def parse_provider_payload(accounts: Any, transactions: Any) -> ProviderData:
    """
    Parse provider records; bad records are counted, not fatal.

    Raises:
        InvalidTransactionDataError: When the payload as a whole is not a list of records
    """
    if not isinstance(accounts, list) or not isinstance(transactions, list):
        raise InvalidTransactionDataError("Provider payload must contain account and transaction lists")

    rejected = 0
    parsed_accounts = []
    for raw in accounts:
        try:
            parsed_accounts.append(parse_account(raw))
        except (KeyError, ValueError, TypeError, AttributeError):
            rejected += 1

    parsed_transactions = []
    for raw in transactions:
        try:
            parsed_transactions.append(parse_transaction(raw))
        except (KeyError, ValueError, TypeError, AttributeError):
            rejected += 1

    return ProviderData(
        accounts=parsed_accounts,
        transactions=parsed_transactions,
        rejected_records=rejected,
    )


class BankClient:
    """Client for the external banking data provider"""

    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        self.base_url = base_url or settings.bank_api_base
        self.timeout = timeout or settings.http_timeout_seconds

    async def get_financial_data(self, user_id: str) -> ProviderData:
        """
        Fetch connected accounts and transaction history for a user.

        Raises:
            BankAPIError: On timeout, HTTP errors, or a malformed payload
        """
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            try:
                accounts_response = await client.get(
                    f"{self.base_url}/bank/accounts",
                    params={"user_id": user_id},
                )
                accounts_response.raise_for_status()

                transactions_response = await client.get(
                    f"{self.base_url}/bank/transactions",
                    params={"user_id": user_id},
                )
                transactions_response.raise_for_status()

                return parse_provider_payload(
                    accounts_response.json().get("accounts"),
                    transactions_response.json().get("transactions"),
                )

            except httpx.TimeoutException as e:
                raise BankAPIError(f"Bank API timeout after {self.timeout}s") from e
            except httpx.HTTPStatusError as e:
                raise BankAPIError(f"Bank API error: {e.response.status_code}") from e
            except httpx.RequestError as e:
                raise BankAPIError(f"Bank API unreachable: {e}") from e
            except (ValueError, AttributeError) as e:
                raise InvalidTransactionDataError(f"Invalid data from bank: {e}") from e
