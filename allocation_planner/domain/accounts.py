"""Account-to-bucket linking rules and suggestions"""

from dataclasses import replace
from typing import Iterable, List, Optional, Sequence, Tuple

from allocation_planner.domain.exceptions import AccountLinkError
from allocation_planner.domain.models import Account, AccountType, AllocationPlan, BucketType, LinkSuggestion

EMERGENCY_KEYWORDS = ("emergency", "safety", "rainy day", "e-fund", "efund")
DISCRETIONARY_KEYWORDS = ("fun", "spending", "discretionary", "entertainment", "personal")

_INELIGIBLE_REASONS = {
    BucketType.ESSENTIAL: "Only checking accounts can be linked to Essential Spending",
    BucketType.EMERGENCY_FUND: "Only savings and checking accounts can be linked to Emergency Fund",
    BucketType.DISCRETIONARY: "Only deposit accounts can be linked to Discretionary Spending",
    BucketType.INVESTMENTS: "Only investment accounts can be linked to Investments",
    BucketType.DEBT_PAYDOWN: "Only credit cards and non-mortgage loans can be linked to Debt Paydown",
}


def _subtype(account: Account) -> str:
    return (account.subtype or "").lower()


def _is_checking(account: Account) -> bool:
    return account.is_depository and _subtype(account) == "checking"


def _is_savings(account: Account) -> bool:
    return account.is_depository and _subtype(account) == "savings"


def is_eligible(bucket_type: BucketType, account: Account) -> bool:
    if bucket_type == BucketType.ESSENTIAL:
        return _is_checking(account)
    if bucket_type == BucketType.EMERGENCY_FUND:
        return _is_checking(account) or _is_savings(account)
    if bucket_type == BucketType.DISCRETIONARY:
        return account.is_depository
    if bucket_type == BucketType.INVESTMENTS:
        return account.is_investment
    return account.is_debt and not account.is_mortgage


def eligible_accounts(bucket_type: BucketType, accounts: Iterable[Account]) -> List[Account]:
    return [account for account in accounts if is_eligible(bucket_type, account)]


def can_link(
    account_id: str, bucket_type: BucketType, accounts: Sequence[Account]
) -> Tuple[bool, Optional[str]]:
    """(allowed, reason when not)"""
    account = next((a for a in accounts if a.id == account_id), None)
    if account is None:
        return False, "Account not found"
    if is_eligible(bucket_type, account):
        return True, None
    return False, _INELIGIBLE_REASONS[bucket_type]


def _has_keyword(name: str, keywords: Tuple[str, ...]) -> bool:
    return any(keyword in name for keyword in keywords)


def suggest_bucket_links(accounts: Sequence[Account]) -> List[LinkSuggestion]:
    """
    Name and subtype heuristics, one suggestion per account at most.

    - First savings account goes to Emergency Fund (high confidence with an
      emergency keyword in its name)
    - First checking account goes to Essential; later checking accounts go to
      Discretionary
    - Credit cards and non-mortgage loans go to Debt Paydown
    - Investment accounts go to Investments
    """
    suggestions: List[LinkSuggestion] = []
    has_emergency = False
    has_essential = False
    has_discretionary = False

    for account in accounts:
        name = account.name.lower()

        if not has_emergency and _is_savings(account):
            if _has_keyword(name, EMERGENCY_KEYWORDS):
                suggestions.append(
                    LinkSuggestion(account.id, BucketType.EMERGENCY_FUND, "high", "Savings account named for emergencies")
                )
                has_emergency = True
                continue
            if "savings" in name or "hysa" in name:
                suggestions.append(
                    LinkSuggestion(
                        account.id,
                        BucketType.EMERGENCY_FUND,
                        "medium",
                        "Savings account typically used for an emergency fund",
                    )
                )
                has_emergency = True
                continue

        if _is_checking(account):
            if not has_essential:
                suggestions.append(
                    LinkSuggestion(
                        account.id, BucketType.ESSENTIAL, "high", "Primary checking account for bills and essentials"
                    )
                )
                has_essential = True
                continue
            if _has_keyword(name, DISCRETIONARY_KEYWORDS):
                suggestions.append(
                    LinkSuggestion(
                        account.id, BucketType.DISCRETIONARY, "high", "Account name suggests discretionary spending"
                    )
                )
                continue
            if not has_discretionary:
                suggestions.append(
                    LinkSuggestion(
                        account.id,
                        BucketType.DISCRETIONARY,
                        "medium",
                        "Secondary checking account typically used for discretionary spending",
                    )
                )
                has_discretionary = True
                continue

        if account.is_debt and not account.is_mortgage:
            kind = "Credit card" if account.type == AccountType.CREDIT else "Loan"
            suggestions.append(
                LinkSuggestion(account.id, BucketType.DEBT_PAYDOWN, "high", f"{kind} account for debt paydown tracking")
            )
            continue

        if account.is_investment:
            suggestions.append(
                LinkSuggestion(account.id, BucketType.INVESTMENTS, "high", "Investment or retirement account")
            )

    return suggestions


def linked_balance_cents(
    bucket_type: BucketType, account_ids: Iterable[str], accounts: Sequence[Account]
) -> int:
    """Display-only balance of the linked accounts; debt uses absolute balances"""
    wanted = set(account_ids)
    linked = [account for account in accounts if account.id in wanted]
    if bucket_type == BucketType.DEBT_PAYDOWN:
        return sum(abs(account.current_balance_cents) for account in linked if account.is_debt)
    return sum(account.current_balance_cents for account in linked)


def validate_links(bucket_type: BucketType, account_ids: Iterable[str], accounts: Sequence[Account]) -> None:
    """Raise AccountLinkError for the first account that cannot back the bucket"""
    for account_id in account_ids:
        allowed, reason = can_link(account_id, bucket_type, accounts)
        if not allowed:
            raise AccountLinkError(f"{account_id}: {reason}")


def with_links(plan: AllocationPlan, bucket_type: BucketType, account_ids: Iterable[str]) -> AllocationPlan:
    """Replace the linked accounts of one bucket; amounts are untouched"""
    linked = frozenset(account_ids)
    buckets = tuple(
        replace(bucket, linked_account_ids=linked) if bucket.type == bucket_type else bucket
        for bucket in plan.buckets
    )
    return replace(plan, buckets=buckets)
