"""ORM entities for quarterly execution records."""

from __future__ import annotations

import enum
import uuid
from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import JSON, DateTime, ForeignKey, Index, Integer, Numeric, String, UniqueConstraint
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from budget_execution.db.base import Base

JSONPayload = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    return datetime.now(UTC)


class Quarter(str, enum.Enum):
    Q1 = "Q1"
    Q2 = "Q2"
    Q3 = "Q3"
    Q4 = "Q4"

    @property
    def column(self) -> str:
        """Activity attribute holding this quarter's value (q1..q4)."""
        return self.value.lower()

    @property
    def ordinal(self) -> int:
        return int(self.value[1])


QUARTERS: tuple[Quarter, ...] = (Quarter.Q1, Quarter.Q2, Quarter.Q3, Quarter.Q4)


class Section(str, enum.Enum):
    RECEIPTS = "A"
    EXPENDITURES = "B"
    SURPLUS = "C"
    FINANCIAL_ASSETS = "D"
    FINANCIAL_LIABILITIES = "E"
    NET_FINANCIAL_ASSETS = "F"
    CLOSING_BALANCE = "G"


class ExecutionEntry(Base):
    __tablename__ = "execution_entries"
    __table_args__ = (
        UniqueConstraint(
            "project_id",
            "facility_id",
            "reporting_period_id",
            "quarter",
            name="uq_execution_entries_project_facility_period_quarter",
        ),
        Index("ix_execution_entries_project_facility_period", "project_id", "facility_id", "reporting_period_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    project_id: Mapped[int] = mapped_column(Integer, nullable=False)
    facility_id: Mapped[int] = mapped_column(Integer, nullable=False)
    reporting_period_id: Mapped[int] = mapped_column(Integer, nullable=False)
    quarter: Mapped[Quarter] = mapped_column(
        SQLEnum(
            Quarter,
            name="execution_quarter",
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
        ),
        nullable=False,
    )
    project_type: Mapped[str] = mapped_column(String(32), nullable=False)
    facility_type: Mapped[str] = mapped_column(String(64), nullable=False)
    rollups: Mapped[dict] = mapped_column(JSONPayload, nullable=False, default=dict)
    computed_values: Mapped[dict | None] = mapped_column(JSONPayload, nullable=True)
    validation_state: Mapped[dict | None] = mapped_column(JSONPayload, nullable=True)
    vat_receivables: Mapped[dict | None] = mapped_column(JSONPayload, nullable=True)
    metadata_payload: Mapped[dict] = mapped_column("metadata", JSONPayload, nullable=False, default=dict)
    version_id: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    activities: Mapped[list[ExecutionActivity]] = relationship(
        back_populates="entry",
        cascade="all, delete-orphan",
        order_by="ExecutionActivity.code",
    )

    __mapper_args__ = {"version_id_col": version_id}


class ExecutionActivity(Base):
    __tablename__ = "execution_activities"
    __table_args__ = (
        UniqueConstraint("entry_id", "code", name="uq_execution_activities_entry_code"),
        Index("ix_execution_activities_entry_id", "entry_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    entry_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("execution_entries.id", ondelete="CASCADE"), nullable=False
    )
    code: Mapped[str] = mapped_column(String(128), nullable=False)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    section: Mapped[str | None] = mapped_column(String(1), nullable=True)
    sub_section: Mapped[str | None] = mapped_column(String(16), nullable=True)
    # NULL means "not reported", distinct from an explicit zero.
    q1: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    q2: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    q3: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    q4: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    cumulative_balance: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    opening_balance: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    comment: Mapped[str | None] = mapped_column(String(2000), nullable=True)

    entry: Mapped[ExecutionEntry] = relationship(back_populates="activities")
