"""Data access layer for snapshots, plans and bucket preferences"""

import uuid
from typing import Dict, List, Optional, Tuple
from pydantic import TypeAdapter
from sqlalchemy.orm import Session
from allocation_planner.infrastructure.database.models import (
    AllocationPlanRecord,
    BucketPreference,
    FinancialSnapshotRecord,
)
from allocation_planner.domain.models import (
    Account,
    AllocationPlan,
    BucketPreferences,
    BucketType,
    FinancialSnapshot,
    IncomeStability,
    PresetTier,
)

snapshot_adapter = TypeAdapter(FinancialSnapshot)
plan_adapter = TypeAdapter(AllocationPlan)
accounts_adapter = TypeAdapter(List[Account])


class SnapshotRepository:
    """Repository for financial snapshots"""

    def __init__(self, db: Session):
        self.db = db

    def save_snapshot(
        self,
        user_id: str,
        snapshot: FinancialSnapshot,
        accounts: List[Account],
        stability: IncomeStability,
    ) -> FinancialSnapshotRecord:
        """Persist snapshot; earlier snapshots stay for history"""
        record = FinancialSnapshotRecord(
            user_id=user_id,
            payload=snapshot_adapter.dump_python(snapshot, mode="json"),
            accounts=accounts_adapter.dump_python(accounts, mode="json"),
            income_stability=stability.value,
            disposable_income_cents=snapshot.disposable_income_cents,
            overall_confidence=snapshot.metadata.overall_confidence,
            months_analyzed=snapshot.metadata.months_analyzed,
        )
        self.db.add(record)
        self.db.flush()  # Get ID without committing
        return record

    def get_latest(self, user_id: str) -> Optional[FinancialSnapshotRecord]:
        return (
            self.db.query(FinancialSnapshotRecord)
            .filter(FinancialSnapshotRecord.user_id == user_id)
            .order_by(FinancialSnapshotRecord.created_at.desc(), FinancialSnapshotRecord.id.desc())
            .first()
        )

    @staticmethod
    def to_domain(record: FinancialSnapshotRecord) -> Tuple[FinancialSnapshot, List[Account], IncomeStability]:
        return (
            snapshot_adapter.validate_python(record.payload),
            accounts_adapter.validate_python(record.accounts),
            IncomeStability(record.income_stability),
        )


class PlanRepository:
    """Repository for the current allocation plan"""

    def __init__(self, db: Session):
        self.db = db

    def save_plan(self, user_id: str, snapshot_id: uuid.UUID, plan: AllocationPlan) -> AllocationPlanRecord:
        """Create or replace the user's plan"""
        record = self.get_record(user_id)
        payload = plan_adapter.dump_python(plan, mode="json")
        if record is None:
            record = AllocationPlanRecord(user_id=user_id, snapshot_id=snapshot_id, payload=payload)
            self.db.add(record)
        else:
            record.snapshot_id = snapshot_id
            record.payload = payload
        self.db.flush()
        return record

    def update_plan(self, record: AllocationPlanRecord, plan: AllocationPlan) -> AllocationPlanRecord:
        record.payload = plan_adapter.dump_python(plan, mode="json")
        self.db.flush()
        return record

    def get_record(self, user_id: str) -> Optional[AllocationPlanRecord]:
        return (
            self.db.query(AllocationPlanRecord)
            .filter(AllocationPlanRecord.user_id == user_id)
            .first()
        )

    @staticmethod
    def to_domain(record: AllocationPlanRecord) -> AllocationPlan:
        return plan_adapter.validate_python(record.payload)


class PreferenceRepository:
    """Repository for per-bucket-type user preferences"""

    def __init__(self, db: Session):
        self.db = db

    def _get_or_create(self, user_id: str, bucket_type: BucketType) -> BucketPreference:
        record = (
            self.db.query(BucketPreference)
            .filter(BucketPreference.user_id == user_id, BucketPreference.bucket_type == bucket_type.value)
            .first()
        )
        if record is None:
            record = BucketPreference(user_id=user_id, bucket_type=bucket_type.value, linked_account_ids=[])
            self.db.add(record)
        return record

    def set_links(self, user_id: str, bucket_type: BucketType, account_ids: List[str]) -> BucketPreference:
        record = self._get_or_create(user_id, bucket_type)
        record.linked_account_ids = sorted(set(account_ids))
        self.db.flush()
        return record

    def set_tier(self, user_id: str, bucket_type: BucketType, tier: Optional[PresetTier]) -> BucketPreference:
        record = self._get_or_create(user_id, bucket_type)
        record.selected_tier = tier.value if tier else None
        self.db.flush()
        return record

    def set_emergency_months(self, user_id: str, months: Optional[int]) -> BucketPreference:
        record = self._get_or_create(user_id, BucketType.EMERGENCY_FUND)
        record.emergency_months = months
        self.db.flush()
        return record

    def get_preferences(self, user_id: str) -> BucketPreferences:
        """All stored choices for the user, keyed by bucket type"""
        records = self.db.query(BucketPreference).filter(BucketPreference.user_id == user_id).all()

        links: Dict[BucketType, frozenset] = {}
        tiers: Dict[BucketType, PresetTier] = {}
        emergency_months = None
        for record in records:
            bucket_type = BucketType(record.bucket_type)
            if record.linked_account_ids:
                links[bucket_type] = frozenset(record.linked_account_ids)
            if record.selected_tier:
                tiers[bucket_type] = PresetTier(record.selected_tier)
            if bucket_type == BucketType.EMERGENCY_FUND:
                emergency_months = record.emergency_months

        return BucketPreferences(links=links, tiers=tiers, emergency_months=emergency_months)
