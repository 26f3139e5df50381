"""Product policy constants for planning, rebalancing and budget-health checks"""

from dataclasses import dataclass, field
from typing import Dict, Mapping, Tuple

from allocation_planner.domain.models import BucketType, DebtType, IncomeStability

# Walk order when absorbing an edit; the emergency fund is reduced last
REBALANCE_PRIORITY: Tuple[BucketType, ...] = (
    BucketType.DISCRETIONARY,
    BucketType.INVESTMENTS,
    BucketType.DEBT_PAYDOWN,
    BucketType.EMERGENCY_FUND,
)


def _default_targets() -> Dict[IncomeStability, Dict[BucketType, float]]:
    # Percent of disposable income; each row sums to 100
    return {
        IncomeStability.STABLE: {
            BucketType.DISCRETIONARY: 30.0,
            BucketType.INVESTMENTS: 30.0,
            BucketType.DEBT_PAYDOWN: 15.0,
            BucketType.EMERGENCY_FUND: 25.0,
        },
        IncomeStability.VARIABLE: {
            BucketType.DISCRETIONARY: 25.0,
            BucketType.INVESTMENTS: 20.0,
            BucketType.DEBT_PAYDOWN: 15.0,
            BucketType.EMERGENCY_FUND: 40.0,
        },
        IncomeStability.INCONSISTENT: {
            BucketType.DISCRETIONARY: 20.0,
            BucketType.INVESTMENTS: 15.0,
            BucketType.DEBT_PAYDOWN: 15.0,
            BucketType.EMERGENCY_FUND: 50.0,
        },
    }


def _default_preset_bounds() -> Dict[BucketType, Tuple[float, float]]:
    # (low %, high %) of disposable income; recommended comes from the target table
    return {
        BucketType.DISCRETIONARY: (10.0, 35.0),
        BucketType.INVESTMENTS: (5.0, 40.0),
        BucketType.EMERGENCY_FUND: (5.0, 60.0),
    }


def _default_estimated_aprs() -> Dict[DebtType, float]:
    return {
        DebtType.CREDIT_CARD: 0.18,
        DebtType.STUDENT_LOAN: 0.055,
        DebtType.AUTO_LOAN: 0.07,
        DebtType.PERSONAL_LOAN: 0.11,
        DebtType.MORTGAGE: 0.065,
        DebtType.OTHER: 0.10,
    }


@dataclass(frozen=True)
class AllocationPolicy:
    """Tunable constants. Formula shapes are fixed, values are not."""

    # Aggregation
    analysis_window_months: int = 6
    min_allocation_confidence: float = 0.5
    credit_card_minimum_rate: float = 0.025
    credit_card_minimum_floor_cents: int = 2_500  # $25
    loan_minimum_rate: float = 0.02
    estimated_aprs: Mapping[DebtType, float] = field(default_factory=_default_estimated_aprs)

    # Planner
    target_percentages: Mapping[IncomeStability, Mapping[BucketType, float]] = field(
        default_factory=_default_targets
    )
    preset_bounds: Mapping[BucketType, Tuple[float, float]] = field(
        default_factory=_default_preset_bounds
    )
    debt_bucket_threshold_cents: int = 100_000  # $1,000
    debt_preset_percentages: Tuple[float, float, float] = (10.0, 15.0, 20.0)
    emergency_months_by_stability: Mapping[IncomeStability, int] = field(
        default_factory=lambda: {
            IncomeStability.STABLE: 6,
            IncomeStability.VARIABLE: 9,
            IncomeStability.INCONSISTENT: 12,
        }
    )
    emergency_duration_options: Tuple[int, ...] = (3, 6, 12)
    # Months to close the shortfall at Low / Recommended / High
    emergency_horizons: Tuple[int, int, int] = (36, 12, 6)
    emergency_maintenance_pct: float = 5.0
    emergency_critical_months: float = 3.0
    emergency_boost_pct: float = 10.0
    investment_annual_return: float = 0.07
    projection_years: Tuple[int, ...] = (10, 20, 30)
    max_payoff_months: int = 600

    # Rebalancing: percent of disposable income, absent = 0 floor / no ceiling
    floor_percentages: Mapping[BucketType, float] = field(default_factory=dict)
    ceiling_percentages: Mapping[BucketType, float] = field(default_factory=dict)
    min_reportable_change_cents: int = 1

    # Budget-health advisor, percent of monthly income
    essential_high_pct: float = 80.0
    discretionary_low_pct: float = 5.0
    emergency_low_pct: float = 3.0
    discretionary_warning_pct: float = 35.0
    discretionary_limit_pct: float = 50.0

    def floor_cents(self, bucket_type: BucketType, disposable_cents: int) -> int:
        pct = self.floor_percentages.get(bucket_type, 0.0)
        return max(0, round(disposable_cents * pct / 100))

    def ceiling_cents(self, bucket_type: BucketType, disposable_cents: int) -> int:
        pct = self.ceiling_percentages.get(bucket_type)
        if pct is None:
            return max(0, disposable_cents)
        return max(0, round(disposable_cents * pct / 100))


DEFAULT_POLICY = AllocationPolicy()
