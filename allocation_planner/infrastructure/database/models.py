"""SQLAlchemy ORM models for snapshots, plans and bucket preferences"""

import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, BigInteger, Float, DateTime, Integer, ForeignKey, Text, JSON, UniqueConstraint, Uuid
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


def _utcnow() -> datetime:
    # Sub-second resolution; latest-snapshot lookups order by it
    return datetime.now(timezone.utc)


class FinancialSnapshotRecord(Base):
    """Computed financial snapshot; the latest one per user feeds planning"""

    __tablename__ = "financial_snapshot"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Text, nullable=False, index=True)
    payload = Column(JSON, nullable=False)
    accounts = Column(JSON, nullable=False)
    income_stability = Column(Text, nullable=False)
    disposable_income_cents = Column(BigInteger, nullable=False)
    overall_confidence = Column(Float, nullable=False)
    months_analyzed = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    plans = relationship("AllocationPlanRecord", back_populates="snapshot", cascade="all, delete-orphan")


class AllocationPlanRecord(Base):
    """Current allocation plan for a user"""

    __tablename__ = "allocation_plan"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    snapshot_id = Column(Uuid(as_uuid=True), ForeignKey("financial_snapshot.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Text, nullable=False, unique=True, index=True)
    payload = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    snapshot = relationship("FinancialSnapshotRecord", back_populates="plans")


class BucketPreference(Base):
    """User choices per bucket type that survive plan regeneration"""

    __tablename__ = "bucket_preference"
    __table_args__ = (UniqueConstraint("user_id", "bucket_type", name="uq_bucket_preference_user_type"),)

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Text, nullable=False, index=True)
    bucket_type = Column(Text, nullable=False)
    linked_account_ids = Column(JSON, nullable=False, default=list)
    selected_tier = Column(Text, nullable=True)
    emergency_months = Column(Integer, nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())
