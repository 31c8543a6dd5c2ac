"""Application service for quarterly execution create, update and read flows."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from uuid import UUID

from fastapi import HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from budget_execution.core.config import get_settings
from budget_execution.core.errors import (
    ExecutionConflictError,
    ExecutionNotFoundError,
    InvalidQuarterDataError,
)
from budget_execution.core.logging import LogContext, get_logger
from budget_execution.models.entities import ExecutionEntry, Quarter
from budget_execution.repositories.execution_repository import (
    ExecutionRepository,
    entry_key,
    load_activities,
    write_result,
)
from budget_execution.services.activity_catalog import (
    ActivityCatalog,
    StaticActivityCatalog,
    display_sorted,
    hydrate_labels,
)
from budget_execution.services.balances import ensure_balanced
from budget_execution.services.cascade_service import CascadeService
from budget_execution.services.closing_balances import build_previous_quarter_balances
from budget_execution.services.execution_types import Activity, CascadeImpact, Rollups
from budget_execution.services.quarters import build_quarter_sequence
from budget_execution.services.recalculation import RecalculationResult, recalculate_execution_data
from budget_execution.services.rollups import merge_quarter_data

logger = get_logger("services.execution")


@dataclass(slots=True)
class ActivityInput:
    code: str
    name: str | None = None
    q1: Decimal | None = None
    q2: Decimal | None = None
    q3: Decimal | None = None
    q4: Decimal | None = None
    comment: str | None = None


@dataclass(slots=True)
class ExecutionCreateData:
    project_id: int
    facility_id: int
    reporting_period_id: int
    quarter: Quarter
    project_type: str
    facility_type: str
    activities: list[ActivityInput]
    vat_receivables: dict[str, dict[str, object]] | None = None
    previous_reporting_period_id: int | None = None


@dataclass(slots=True)
class ExecutionUpdateData:
    activities: list[ActivityInput]
    quarter: Quarter | None = None
    vat_receivables: dict[str, dict[str, object]] | None = None
    expected_version: int | None = None


@dataclass(slots=True)
class ExecutionOutcome:
    entry: ExecutionEntry
    cascade_impact: CascadeImpact = field(default_factory=CascadeImpact)


def _now() -> datetime:
    return datetime.now(UTC)


class ExecutionService:
    """Runs the balance pipeline on every write and rejects statements that do not balance."""

    def __init__(self, db: Session, catalog: ActivityCatalog | None = None) -> None:
        self.db = db
        self.repo = ExecutionRepository(db)
        self.settings = get_settings()
        self.catalog = catalog or StaticActivityCatalog()

    @staticmethod
    def serialize_entry(entry: ExecutionEntry) -> dict[str, object]:
        metadata = entry.metadata_payload or {}
        return {
            "id": str(entry.id),
            "project_id": entry.project_id,
            "facility_id": entry.facility_id,
            "reporting_period_id": entry.reporting_period_id,
            "quarter": entry.quarter.value,
            "project_type": entry.project_type,
            "facility_type": entry.facility_type,
            "version": entry.version_id,
            "metadata": dict(metadata),
            "validation_state": entry.validation_state,
            "vat_receivables": entry.vat_receivables,
            "created_at": entry.created_at.isoformat() if entry.created_at else None,
            "updated_at": entry.updated_at.isoformat() if entry.updated_at else None,
        }

    def _inbound_activities(self, inputs: list[ActivityInput]) -> dict[str, Activity]:
        if not inputs:
            raise InvalidQuarterDataError("At least one activity is required.")

        activities: dict[str, Activity] = {}
        for item in inputs:
            code = item.code.strip()
            if not code:
                raise InvalidQuarterDataError("Activity code must not be blank.")
            if code in activities:
                raise InvalidQuarterDataError("Duplicate activity code in payload.", activity_code=code)
            activities[code] = Activity(
                code=code,
                name=item.name.strip() if item.name else None,
                q1=item.q1,
                q2=item.q2,
                q3=item.q3,
                q4=item.q4,
                comment=item.comment,
            )
        return activities

    def _recalculate(self, activities: dict[str, Activity], entry_like: ExecutionEntry) -> RecalculationResult:
        hydrate_labels(activities, self.catalog.lookup(entry_like.project_type, entry_like.facility_type))
        result = recalculate_execution_data(activities, tolerance=self.settings.balance_tolerance)
        # Structural guard on what is about to be stored.
        Rollups.from_payload(result.rollups.to_payload())
        ensure_balanced(
            result.balances,
            tolerance=self.settings.balance_tolerance,
            facility_type=entry_like.facility_type,
            project_type=entry_like.project_type,
        )
        return result

    def create_execution(self, *, data: ExecutionCreateData) -> ExecutionOutcome:
        with LogContext.bind(
            project_id=data.project_id,
            facility_id=data.facility_id,
            reporting_period_id=data.reporting_period_id,
            quarter=data.quarter,
        ):
            activities = self._inbound_activities(data.activities)
            now = _now()
            entry = ExecutionEntry(
                project_id=data.project_id,
                facility_id=data.facility_id,
                reporting_period_id=data.reporting_period_id,
                quarter=data.quarter,
                project_type=data.project_type.strip(),
                facility_type=data.facility_type.strip(),
                vat_receivables=data.vat_receivables,
                metadata_payload={
                    "last_reported_at": now.isoformat(),
                    "previous_reporting_period_id": data.previous_reporting_period_id,
                },
                created_at=now,
                updated_at=now,
            )

            existing = self.repo.find_by_key(entry_key(entry), data.quarter)
            if existing is not None:
                raise ExecutionConflictError(
                    "Execution already exists for this project, facility, reporting period and quarter.",
                    execution_id=str(existing.id),
                )

            result = self._recalculate(activities, entry)
            write_result(entry, result, now=now)

            try:
                self.repo.add(entry)
                self.db.commit()
            except IntegrityError as exc:
                self.db.rollback()
                raise ExecutionConflictError(
                    "Execution already exists for this project, facility, reporting period and quarter.",
                ) from exc

            self.db.refresh(entry)
            logger.info("execution_created", extra={"execution_id": entry.id, "is_balanced": result.is_balanced})
            return ExecutionOutcome(entry=entry)

    def get_execution(self, execution_id: UUID) -> ExecutionOutcome:
        entry = self.repo.get(execution_id)
        if entry is None:
            raise ExecutionNotFoundError(execution_id)
        return ExecutionOutcome(entry=entry)

    def update_execution(self, *, execution_id: UUID, data: ExecutionUpdateData) -> ExecutionOutcome:
        entry = self.repo.get(execution_id)
        if entry is None:
            raise ExecutionNotFoundError(execution_id)

        quarter = data.quarter or entry.quarter
        with LogContext.bind(
            execution_id=entry.id,
            project_id=entry.project_id,
            facility_id=entry.facility_id,
            reporting_period_id=entry.reporting_period_id,
            quarter=quarter,
        ):
            try:
                if quarter.ordinal > entry.quarter.ordinal:
                    raise InvalidQuarterDataError(
                        "Cannot report a quarter later than the execution's own quarter.",
                        quarter=quarter.value,
                        execution_quarter=entry.quarter.value,
                    )

                self.repo.lock_period(entry_key(entry))
                if data.expected_version is not None and data.expected_version != entry.version_id:
                    raise ExecutionConflictError(
                        "Execution was modified by another request.",
                        code="CONCURRENT_MODIFICATION",
                        expected_version=data.expected_version,
                        current_version=entry.version_id,
                    )

                incoming = self._inbound_activities(data.activities)
                merged = merge_quarter_data(load_activities(entry), incoming, quarter)
                result = self._recalculate(merged, entry)

                now = _now()
                write_result(entry, result, now=now)
                if data.vat_receivables is not None:
                    entry.vat_receivables = data.vat_receivables
                entry.metadata_payload = {**(entry.metadata_payload or {}), "last_reported_at": now.isoformat()}
                self.repo.save(entry)

                impact = CascadeService(self.db).run(entry)
                self.db.commit()
            except HTTPException:
                self.db.rollback()
                raise
            except StaleDataError as exc:
                self.db.rollback()
                raise ExecutionConflictError(
                    "Execution was modified by another request.",
                    code="CONCURRENT_MODIFICATION",
                ) from exc

            self.db.refresh(entry)
            logger.info(
                "execution_updated",
                extra={"cascade_status": impact.status.value, "version": entry.version_id},
            )
            return ExecutionOutcome(entry=entry, cascade_impact=impact)

    def build_document(self, outcome: ExecutionOutcome) -> dict[str, object]:
        """Outbound document: entry, activities, rollups, balances, cascade impact and quarter context."""

        entry = outcome.entry
        key = entry_key(entry)
        previous_period_id = (entry.metadata_payload or {}).get("previous_reporting_period_id")

        cross_year_q4 = None
        if entry.quarter is Quarter.Q1:
            cross_year_q4 = self.repo.find_previous_fiscal_year_q4(key, previous_period_id)
        sequence = build_quarter_sequence(entry.quarter, cross_year_previous_exists=cross_year_q4 is not None)

        previous_entry = cross_year_q4
        if sequence.previous is not None and not sequence.is_cross_fiscal_year_rollover:
            previous_entry = self.repo.find_by_key(key, sequence.previous)
        previous_balances = build_previous_quarter_balances(
            previous_entry.id if previous_entry is not None else None,
            load_activities(previous_entry) if previous_entry is not None else None,
            sequence.previous,
            previous_entry.vat_receivables if previous_entry is not None else None,
        )

        activities = load_activities(entry)
        catalog_items = self.catalog.lookup(entry.project_type, entry.facility_type)
        hydrate_labels(activities, catalog_items)
        balances = entry.computed_values or {}

        return {
            "execution": self.serialize_entry(entry),
            "activities": [activity.to_payload() for activity in display_sorted(activities, catalog_items)],
            "rollups": Rollups.from_payload(entry.rollups).to_payload(),
            "balances": balances,
            "is_balanced": bool(balances.get("is_balanced", False)),
            "cascade_impact": outcome.cascade_impact.to_payload(),
            "quarter_sequence": sequence.to_payload(),
            "previous_quarter_balances": previous_balances,
        }
