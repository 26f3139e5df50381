"""Bucket planner - proposes the initial allocation plan from a financial snapshot"""

from dataclasses import replace
from typing import Dict, List, Optional, Tuple

from allocation_planner.domain.aggregation import emergency_fund_months, validate_for_allocation
from allocation_planner.domain.exceptions import BucketNotFoundError
from allocation_planner.domain.models import (
    AllocationBucket,
    AllocationPlan,
    BucketPreferences,
    BucketType,
    DebtPayoffTimeline,
    EditResult,
    EditStatus,
    EmergencyFundDurationOption,
    FinancialPosition,
    FinancialSnapshot,
    IncomeStability,
    InvestmentProjection,
    PayoffEstimate,
    PlanResult,
    PresetOptions,
    PresetTier,
    PresetValue,
    ProjectionTimeline,
)
from allocation_planner.domain.policy import DEFAULT_POLICY, REBALANCE_PRIORITY, AllocationPolicy
from allocation_planner.domain.rebalancing import apply_edit, months_to_target, refresh_bucket

# Without stability data the planner assumes variable income
DEFAULT_STABILITY = IncomeStability.VARIABLE


def bucket_id(bucket_type: BucketType) -> str:
    return f"bucket-{bucket_type.value}"


def percent_of(amount_cents: int, pct: float) -> int:
    return round(amount_cents * pct / 100)


def preset_options(base_cents: int, low_pct: float, recommended_pct: float, high_pct: float) -> PresetOptions:
    """Low / Recommended / High as fixed percentages of `base_cents`"""
    return PresetOptions(
        low=PresetValue(percent_of(base_cents, low_pct), low_pct),
        recommended=PresetValue(percent_of(base_cents, recommended_pct), recommended_pct),
        high=PresetValue(percent_of(base_cents, high_pct), high_pct),
    )


def _share(amount_cents: int, base_cents: int) -> float:
    return amount_cents / base_cents * 100 if base_cents > 0 else 0.0


# --- Targets -----------------------------------------------------------------------


def includes_debt_bucket(position: FinancialPosition, policy: AllocationPolicy = DEFAULT_POLICY) -> bool:
    return position.total_debt_cents > policy.debt_bucket_threshold_cents


def recommended_emergency_months(
    stability: IncomeStability, policy: AllocationPolicy = DEFAULT_POLICY
) -> int:
    return policy.emergency_months_by_stability[stability]


def target_percentages(
    snapshot: FinancialSnapshot,
    stability: IncomeStability,
    policy: AllocationPolicy = DEFAULT_POLICY,
) -> Dict[BucketType, float]:
    """
    Percent of disposable income per flexible bucket.

    Starts from the stability row of the target table, then:
    - no debt bucket: its share goes to Investments
    - emergency coverage already at the recommended months: Emergency Fund
      drops to the maintenance share, the rest goes to Investments
    - coverage under the critical months: shift points from Discretionary to
      the Emergency Fund, never below Discretionary's low preset
    """
    targets = dict(policy.target_percentages[stability])

    if not includes_debt_bucket(snapshot.position, policy):
        targets[BucketType.INVESTMENTS] += targets.pop(BucketType.DEBT_PAYDOWN, 0.0)

    essential_total = snapshot.monthly_flow.essential_expenses.total
    coverage = emergency_fund_months(snapshot.position, essential_total)
    recommended_months = recommended_emergency_months(stability, policy)
    emergency = targets[BucketType.EMERGENCY_FUND]

    if essential_total <= 0 or coverage >= recommended_months:
        maintenance = min(emergency, policy.emergency_maintenance_pct)
        targets[BucketType.INVESTMENTS] += emergency - maintenance
        targets[BucketType.EMERGENCY_FUND] = maintenance
    elif coverage < policy.emergency_critical_months:
        discretionary_low = policy.preset_bounds[BucketType.DISCRETIONARY][0]
        shift = max(0.0, min(policy.emergency_boost_pct, targets[BucketType.DISCRETIONARY] - discretionary_low))
        targets[BucketType.DISCRETIONARY] -= shift
        targets[BucketType.EMERGENCY_FUND] += shift

    return targets


def allocate_amounts(disposable_cents: int, targets: Dict[BucketType, float]) -> Dict[BucketType, int]:
    """Round each target; the Emergency Fund takes the integer remainder so the sum is exact"""
    amounts: Dict[BucketType, int] = {}
    for bucket_type in (BucketType.DISCRETIONARY, BucketType.INVESTMENTS, BucketType.DEBT_PAYDOWN):
        if bucket_type in targets:
            amounts[bucket_type] = percent_of(disposable_cents, targets[bucket_type])
    amounts[BucketType.EMERGENCY_FUND] = disposable_cents - sum(amounts.values())
    return amounts


# --- Emergency fund ----------------------------------------------------------------


def emergency_duration_options(
    essential_total_cents: int,
    emergency_cash_cents: int,
    recommended_months: int,
    disposable_cents: int,
    policy: AllocationPolicy = DEFAULT_POLICY,
) -> Tuple[EmergencyFundDurationOption, ...]:
    """3/6/12-month targets, each with contributions closing the shortfall over the standard horizons"""
    durations = sorted(policy.emergency_duration_options)
    recommended = next((m for m in durations if m >= recommended_months), durations[-1])

    options = []
    for months in durations:
        target = essential_total_cents * months
        shortfall = max(0, target - emergency_cash_cents)
        contributions = [round(shortfall / horizon) for horizon in policy.emergency_horizons]
        options.append(
            EmergencyFundDurationOption(
                months=months,
                target_amount_cents=target,
                shortfall_cents=shortfall,
                monthly_contribution=PresetOptions(
                    *(PresetValue(amount, _share(amount, disposable_cents)) for amount in contributions)
                ),
                is_recommended=months == recommended,
            )
        )
    return tuple(options)


# --- Investments -------------------------------------------------------------------


def project_balance(
    starting_cents: int, monthly_contribution_cents: int, years: int, annual_return: float
) -> int:
    """Future value with monthly compounding: P(1+r)^n + PMT * ((1+r)^n - 1) / r"""
    months = years * 12
    rate = annual_return / 12
    if rate == 0:
        return starting_cents + monthly_contribution_cents * months
    growth = (1 + rate) ** months
    return round(starting_cents * growth + monthly_contribution_cents * (growth - 1) / rate)


def investment_projection(
    starting_cents: int, presets: PresetOptions, policy: AllocationPolicy = DEFAULT_POLICY
) -> InvestmentProjection:
    def timeline(tier: PresetTier) -> ProjectionTimeline:
        contribution = presets.value(tier).amount_cents
        return ProjectionTimeline(
            monthly_contribution_cents=contribution,
            balances_cents=tuple(
                (years, project_balance(starting_cents, contribution, years, policy.investment_annual_return))
                for years in policy.projection_years
            ),
        )

    return InvestmentProjection(
        starting_balance_cents=starting_cents,
        annual_return=policy.investment_annual_return,
        low=timeline(PresetTier.LOW),
        recommended=timeline(PresetTier.RECOMMENDED),
        high=timeline(PresetTier.HIGH),
    )


# --- Debt paydown --------------------------------------------------------------------


def amortize(
    balance_cents: int, monthly_payment_cents: int, apr: float, max_months: int
) -> Tuple[int, int, bool]:
    """Months to payoff, interest paid, and whether the balance clears within the cap"""
    if balance_cents <= 0:
        return 0, 0, True

    rate = apr / 12
    balance = float(balance_cents)
    interest = 0.0
    months = 0
    while balance > 0 and months < max_months:
        charge = balance * rate
        interest += charge
        balance = balance + charge - monthly_payment_cents
        months += 1

    return months, round(interest), balance <= 0


def debt_payoff_timeline(
    position: FinancialPosition, presets: PresetOptions, policy: AllocationPolicy = DEFAULT_POLICY
) -> DebtPayoffTimeline:
    """Each tier pays the account minimums plus the tier amount, at the weighted APR"""
    total = position.total_debt_cents
    apr = position.weighted_average_apr
    minimums = position.total_minimum_payments_cents

    min_months, min_interest, min_pays_off = amortize(total, minimums, apr, policy.max_payoff_months)
    minimum_only = PayoffEstimate(
        monthly_payment_cents=minimums,
        months=min_months,
        interest_paid_cents=min_interest,
        interest_saved_cents=0,
        pays_off=min_pays_off,
    )

    def estimate(tier: PresetTier) -> PayoffEstimate:
        payment = minimums + presets.value(tier).amount_cents
        months, interest, pays_off = amortize(total, payment, apr, policy.max_payoff_months)
        return PayoffEstimate(
            monthly_payment_cents=payment,
            months=months,
            interest_paid_cents=interest,
            interest_saved_cents=max(0, min_interest - interest),
            pays_off=pays_off,
        )

    is_estimated = any(
        debt.apr_estimated or debt.minimum_payment_estimated for debt in position.debt_balances
    )
    return DebtPayoffTimeline(
        total_debt_cents=total,
        average_apr=apr,
        minimum_only=minimum_only,
        low=estimate(PresetTier.LOW),
        recommended=estimate(PresetTier.RECOMMENDED),
        high=estimate(PresetTier.HIGH),
        is_estimated=is_estimated,
    )


# --- Plan ----------------------------------------------------------------------------


def _flexible_presets(
    bucket_type: BucketType,
    disposable_cents: int,
    target_pct: float,
    allocated_cents: int,
    policy: AllocationPolicy,
) -> PresetOptions:
    if bucket_type == BucketType.DEBT_PAYDOWN:
        low_pct, _, high_pct = policy.debt_preset_percentages
    else:
        low_pct, high_pct = policy.preset_bounds[bucket_type]
    presets = preset_options(disposable_cents, min(low_pct, target_pct), target_pct, max(high_pct, target_pct))
    # Recommended is what was actually allocated, remainder included
    return replace(presets, recommended=PresetValue(allocated_cents, target_pct))


def propose_plan(
    snapshot: FinancialSnapshot,
    stability: Optional[IncomeStability] = None,
    policy: AllocationPolicy = DEFAULT_POLICY,
) -> PlanResult:
    """
    Initial allocation plan, or the validation failure that prevents one.

    Essential is fixed at essential expenses + debt minimums. The flexible
    buckets split disposable income by the target table and sum to it exactly.
    """
    failure = validate_for_allocation(snapshot, policy)
    if failure is not None:
        return PlanResult(failure=failure)

    stability = stability or DEFAULT_STABILITY
    flow = snapshot.monthly_flow
    position = snapshot.position
    disposable = snapshot.disposable_income_cents
    essential_total = flow.essential_expenses.total

    targets = target_percentages(snapshot, stability, policy)
    amounts = allocate_amounts(disposable, targets)
    months = recommended_emergency_months(stability, policy)

    buckets: List[AllocationBucket] = [
        AllocationBucket(
            id=bucket_id(BucketType.ESSENTIAL),
            type=BucketType.ESSENTIAL,
            allocated_cents=essential_total + flow.debt_minimums_cents,
            is_modifiable=False,
        )
    ]

    presets = {
        bucket_type: _flexible_presets(bucket_type, disposable, targets[bucket_type], amount, policy)
        for bucket_type, amount in amounts.items()
    }

    buckets.append(
        AllocationBucket(
            id=bucket_id(BucketType.DISCRETIONARY),
            type=BucketType.DISCRETIONARY,
            allocated_cents=amounts[BucketType.DISCRETIONARY],
            preset_options=presets[BucketType.DISCRETIONARY],
            selected_tier=PresetTier.RECOMMENDED,
        )
    )

    emergency_target = essential_total * months
    shortfall = max(0, emergency_target - position.emergency_cash_cents)
    buckets.append(
        AllocationBucket(
            id=bucket_id(BucketType.EMERGENCY_FUND),
            type=BucketType.EMERGENCY_FUND,
            allocated_cents=amounts[BucketType.EMERGENCY_FUND],
            preset_options=presets[BucketType.EMERGENCY_FUND],
            selected_tier=PresetTier.RECOMMENDED,
            target_amount_cents=emergency_target,
            shortfall_cents=shortfall,
            months_to_target=months_to_target(shortfall, amounts[BucketType.EMERGENCY_FUND]),
            duration_options=emergency_duration_options(
                essential_total, position.emergency_cash_cents, months, disposable, policy
            ),
        )
    )

    buckets.append(
        AllocationBucket(
            id=bucket_id(BucketType.INVESTMENTS),
            type=BucketType.INVESTMENTS,
            allocated_cents=amounts[BucketType.INVESTMENTS],
            preset_options=presets[BucketType.INVESTMENTS],
            selected_tier=PresetTier.RECOMMENDED,
            growth_projection=investment_projection(
                position.investment_balances_cents, presets[BucketType.INVESTMENTS], policy
            ),
        )
    )

    if BucketType.DEBT_PAYDOWN in amounts:
        buckets.append(
            AllocationBucket(
                id=bucket_id(BucketType.DEBT_PAYDOWN),
                type=BucketType.DEBT_PAYDOWN,
                allocated_cents=amounts[BucketType.DEBT_PAYDOWN],
                preset_options=presets[BucketType.DEBT_PAYDOWN],
                selected_tier=PresetTier.RECOMMENDED,
                payoff_timeline=debt_payoff_timeline(position, presets[BucketType.DEBT_PAYDOWN], policy),
            )
        )

    plan = AllocationPlan(
        buckets=tuple(buckets),
        income_cents=flow.income_cents,
        disposable_income_cents=disposable,
        income_stability=stability,
        recommended_emergency_months=months,
    )
    return PlanResult(plan=plan)


# --- User choices --------------------------------------------------------------------


def _require_bucket(plan: AllocationPlan, bucket_type: BucketType) -> AllocationBucket:
    bucket = plan.bucket(bucket_type)
    if bucket is None:
        raise BucketNotFoundError(f"Plan has no {bucket_type.value} bucket")
    return bucket


def select_preset(
    plan: AllocationPlan,
    bucket_type: BucketType,
    tier: PresetTier,
    policy: AllocationPolicy = DEFAULT_POLICY,
) -> EditResult:
    """Move a bucket to one of its preset amounts through the rebalancing engine"""
    bucket = _require_bucket(plan, bucket_type)
    if bucket.preset_options is None:
        return apply_edit(plan, bucket.id, bucket.allocated_cents, policy)

    amount = bucket.preset_options.value(tier).amount_cents
    result = apply_edit(plan, bucket.id, amount, policy)
    if result.status == EditStatus.REJECTED:
        return result

    edited = result.plan.bucket_by_id(bucket.id)
    if edited.allocated_cents != amount:
        return result
    buckets = tuple(replace(b, selected_tier=tier) if b.id == bucket.id else b for b in result.plan.buckets)
    return replace(result, plan=replace(result.plan, buckets=buckets))


def select_emergency_duration(plan: AllocationPlan, months: int) -> AllocationPlan:
    """Switch the emergency-fund target to one of its duration options; amounts are unchanged"""
    bucket = _require_bucket(plan, BucketType.EMERGENCY_FUND)
    option = next((o for o in bucket.duration_options if o.months == months), None)
    if option is None:
        raise ValueError(f"No {months}-month emergency fund option")

    updated = replace(
        bucket,
        selected_duration_months=months,
        target_amount_cents=option.target_amount_cents,
        shortfall_cents=option.shortfall_cents,
        months_to_target=months_to_target(option.shortfall_cents, bucket.allocated_cents),
    )
    return replace(plan, buckets=tuple(updated if b.id == bucket.id else b for b in plan.buckets))


def reset_plan(plan: AllocationPlan) -> AllocationPlan:
    """Every flexible bucket back to its recommended amount; links and durations are kept"""
    buckets = []
    for bucket in plan.buckets:
        if bucket.preset_options is None:
            buckets.append(bucket)
            continue
        recommended = bucket.preset_options.recommended.amount_cents
        buckets.append(replace(refresh_bucket(bucket, recommended), selected_tier=PresetTier.RECOMMENDED))
    return replace(plan, buckets=tuple(buckets))


def apply_preferences(
    plan: AllocationPlan,
    preferences: BucketPreferences,
    policy: AllocationPolicy = DEFAULT_POLICY,
) -> AllocationPlan:
    """Re-associate stored choices with a regenerated plan by bucket type"""
    buckets = tuple(
        replace(bucket, linked_account_ids=frozenset(preferences.links[bucket.type]))
        if bucket.type in preferences.links
        else bucket
        for bucket in plan.buckets
    )
    plan = replace(plan, buckets=buckets)

    emergency = plan.bucket(BucketType.EMERGENCY_FUND)
    if preferences.emergency_months is not None and emergency is not None:
        if any(o.months == preferences.emergency_months for o in emergency.duration_options):
            plan = select_emergency_duration(plan, preferences.emergency_months)

    for bucket_type in REBALANCE_PRIORITY:
        tier = preferences.tiers.get(bucket_type)
        if tier is None or tier == PresetTier.RECOMMENDED or plan.bucket(bucket_type) is None:
            continue
        plan = select_preset(plan, bucket_type, tier, policy).plan

    return plan
