"""Repository helpers for quarterly execution entries (the Execution Store)."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from budget_execution.models.entities import QUARTERS, ExecutionActivity, ExecutionEntry, Quarter, Section
from budget_execution.services.execution_types import Activity, ExecutionKey
from budget_execution.services.quarters import subsequent_quarters
from budget_execution.services.recalculation import RecalculationResult


class ExecutionRepository:
    """Persistence operations used by the execution and cascade services."""

    def __init__(self, db: Session) -> None:
        self.db = db

    # ---------- Entries ----------
    def get(self, execution_id: UUID) -> ExecutionEntry | None:
        return self.db.scalar(
            select(ExecutionEntry)
            .options(selectinload(ExecutionEntry.activities))
            .where(ExecutionEntry.id == execution_id)
        )

    def find_by_key(self, key: ExecutionKey, quarter: Quarter) -> ExecutionEntry | None:
        return self.db.scalar(
            select(ExecutionEntry)
            .options(selectinload(ExecutionEntry.activities))
            .where(
                ExecutionEntry.project_id == key.project_id,
                ExecutionEntry.facility_id == key.facility_id,
                ExecutionEntry.reporting_period_id == key.reporting_period_id,
                ExecutionEntry.quarter == quarter,
            )
        )

    def find_subsequent_quarters(self, key: ExecutionKey, after_quarter: Quarter) -> list[ExecutionEntry]:
        later = subsequent_quarters(after_quarter)
        if not later:
            return []
        entries = self.db.scalars(
            select(ExecutionEntry)
            .options(selectinload(ExecutionEntry.activities))
            .where(
                ExecutionEntry.project_id == key.project_id,
                ExecutionEntry.facility_id == key.facility_id,
                ExecutionEntry.reporting_period_id == key.reporting_period_id,
                ExecutionEntry.quarter.in_(later),
            )
        ).all()
        return sorted(entries, key=lambda entry: entry.quarter.ordinal)

    def find_preceding(self, key: ExecutionKey, before_quarter: Quarter) -> ExecutionEntry | None:
        """Nearest earlier quarter of the same fiscal year that is on file."""
        earlier = [quarter for quarter in QUARTERS if quarter.ordinal < before_quarter.ordinal]
        if not earlier:
            return None
        entries = self.db.scalars(
            select(ExecutionEntry)
            .options(selectinload(ExecutionEntry.activities))
            .where(
                ExecutionEntry.project_id == key.project_id,
                ExecutionEntry.facility_id == key.facility_id,
                ExecutionEntry.reporting_period_id == key.reporting_period_id,
                ExecutionEntry.quarter.in_(earlier),
            )
        ).all()
        if not entries:
            return None
        return max(entries, key=lambda entry: entry.quarter.ordinal)

    def find_previous_fiscal_year_q4(
        self,
        key: ExecutionKey,
        previous_reporting_period_id: int | None,
    ) -> ExecutionEntry | None:
        if previous_reporting_period_id is None:
            return None
        return self.find_by_key(
            ExecutionKey(
                project_id=key.project_id,
                facility_id=key.facility_id,
                reporting_period_id=previous_reporting_period_id,
            ),
            Quarter.Q4,
        )

    def lock_period(self, key: ExecutionKey) -> list[ExecutionEntry]:
        """Row-lock every entry of (project, facility, period) until the transaction ends."""
        return self.db.scalars(
            select(ExecutionEntry)
            .where(
                ExecutionEntry.project_id == key.project_id,
                ExecutionEntry.facility_id == key.facility_id,
                ExecutionEntry.reporting_period_id == key.reporting_period_id,
            )
            .order_by(ExecutionEntry.quarter.asc())
            .with_for_update()
            .execution_options(populate_existing=True)
        ).all()

    def add(self, entry: ExecutionEntry) -> ExecutionEntry:
        self.db.add(entry)
        self.db.flush()
        return entry

    def save(self, entry: ExecutionEntry) -> ExecutionEntry:
        self.db.flush()
        return entry


def entry_key(entry: ExecutionEntry) -> ExecutionKey:
    return ExecutionKey(
        project_id=entry.project_id,
        facility_id=entry.facility_id,
        reporting_period_id=entry.reporting_period_id,
    )


def load_activities(entry: ExecutionEntry) -> dict[str, Activity]:
    return {
        row.code: Activity(
            code=row.code,
            name=row.name,
            q1=row.q1,
            q2=row.q2,
            q3=row.q3,
            q4=row.q4,
            section=Section(row.section) if row.section else None,
            sub_section=row.sub_section,
            cumulative_balance=row.cumulative_balance,
            opening_balance=row.opening_balance,
            comment=row.comment,
        )
        for row in entry.activities
    }


def replace_activities(entry: ExecutionEntry, activities: dict[str, Activity]) -> None:
    """Write an activity set onto the entry's rows: update in place, add new codes, drop missing ones."""

    rows = {row.code: row for row in entry.activities}
    for code, activity in activities.items():
        row = rows.pop(code, None)
        if row is None:
            row = ExecutionActivity(code=code)
            entry.activities.append(row)
        row.name = activity.name
        row.section = activity.section.value if activity.section is not None else None
        row.sub_section = activity.sub_section
        row.q1 = activity.q1
        row.q2 = activity.q2
        row.q3 = activity.q3
        row.q4 = activity.q4
        row.cumulative_balance = activity.cumulative_balance
        row.opening_balance = activity.opening_balance
        row.comment = activity.comment
    for row in rows.values():
        entry.activities.remove(row)


def write_result(entry: ExecutionEntry, result: RecalculationResult, *, now: datetime) -> None:
    """Store a recalculated activity set and its derived values on the entry."""

    replace_activities(entry, result.activities)
    entry.rollups = result.rollups.to_payload()
    entry.computed_values = result.balances.to_payload()
    entry.validation_state = {"is_balanced": result.is_balanced, "last_validated": now.isoformat()}
    entry.metadata_payload = {
        **(entry.metadata_payload or {}),
        "last_quarter_reported": result.last_quarter_reported.value,
    }
    entry.updated_at = now
