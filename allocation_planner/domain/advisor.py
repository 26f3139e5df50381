"""Budget-health checks over the current bucket set"""

from typing import List, Optional

from allocation_planner.domain.models import (
    AllocationPlan,
    BucketType,
    BudgetWarning,
    Severity,
    WarningCode,
)
from allocation_planner.domain.policy import DEFAULT_POLICY, AllocationPolicy


def share_of_income(plan: AllocationPlan, bucket_type: BucketType) -> float:
    """Bucket amount as a percent of monthly income"""
    if plan.income_cents <= 0:
        return 0.0
    return plan.amount(bucket_type) / plan.income_cents * 100


def check_essential_spending(
    plan: AllocationPlan, policy: AllocationPolicy = DEFAULT_POLICY
) -> Optional[BudgetWarning]:
    pct = share_of_income(plan, BucketType.ESSENTIAL)
    if pct <= policy.essential_high_pct:
        return None
    return BudgetWarning(
        code=WarningCode.ESSENTIAL_SPENDING_HIGH,
        severity=Severity.HIGH,
        message=(
            f"Essential spending takes {pct:.0f}% of your income, leaving little room "
            "for savings or surprises."
        ),
        percentage=pct,
    )


def check_discretionary_low(
    plan: AllocationPlan, policy: AllocationPolicy = DEFAULT_POLICY
) -> Optional[BudgetWarning]:
    pct = share_of_income(plan, BucketType.DISCRETIONARY)
    if pct >= policy.discretionary_low_pct:
        return None
    return BudgetWarning(
        code=WarningCode.DISCRETIONARY_LOW,
        severity=Severity.INFO,
        message=f"Only {pct:.0f}% of your income is left for discretionary spending.",
        percentage=pct,
    )


def check_emergency_fund(
    plan: AllocationPlan, policy: AllocationPolicy = DEFAULT_POLICY
) -> Optional[BudgetWarning]:
    pct = share_of_income(plan, BucketType.EMERGENCY_FUND)
    if pct >= policy.emergency_low_pct:
        return None
    return BudgetWarning(
        code=WarningCode.EMERGENCY_FUND_LOW,
        severity=Severity.HIGH,
        message=f"Your emergency fund gets {pct:.0f}% of income; aim for at least {policy.emergency_low_pct:.0f}%.",
        percentage=pct,
    )


def check_discretionary_high(
    plan: AllocationPlan, policy: AllocationPolicy = DEFAULT_POLICY
) -> Optional[BudgetWarning]:
    pct = share_of_income(plan, BucketType.DISCRETIONARY)
    if pct >= policy.discretionary_limit_pct:
        return BudgetWarning(
            code=WarningCode.DISCRETIONARY_LIMIT,
            severity=Severity.HIGH,
            message=(
                f"Discretionary spending is {pct:.0f}% of income, above the "
                f"{policy.discretionary_limit_pct:.0f}% limit."
            ),
            percentage=pct,
        )
    if pct >= policy.discretionary_warning_pct:
        return BudgetWarning(
            code=WarningCode.DISCRETIONARY_HIGH,
            severity=Severity.MEDIUM,
            message=f"Discretionary spending is {pct:.0f}% of income; consider saving more of it.",
            percentage=pct,
        )
    return None


_CHECKS = (
    check_essential_spending,
    check_discretionary_low,
    check_emergency_fund,
    check_discretionary_high,
)


def budget_warnings(plan: AllocationPlan, policy: AllocationPolicy = DEFAULT_POLICY) -> List[BudgetWarning]:
    """Every warning that applies; ordering for display is the caller's call"""
    warnings = []
    for check in _CHECKS:
        warning = check(plan, policy)
        if warning is not None:
            warnings.append(warning)
    return warnings
