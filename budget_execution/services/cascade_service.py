"""Forward propagation of a quarter's closing balances into later recorded quarters."""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from budget_execution.core.config import get_settings
from budget_execution.core.errors import CascadeRecalculationError, ExecutionNotFoundError
from budget_execution.core.logging import LogContext, get_logger
from budget_execution.models.entities import QUARTERS, ExecutionEntry, Section
from budget_execution.repositories.execution_repository import (
    ExecutionRepository,
    entry_key,
    load_activities,
    write_result,
)
from budget_execution.services.activity_codes import classify
from budget_execution.services.closing_balances import ClosingBalances, extract_closing_balances
from budget_execution.services.execution_types import Activity, CascadeImpact, CascadeStatus
from budget_execution.services.recalculation import RecalculationResult, recalculate_execution_data

logger = get_logger("services.cascade")

CASCADE_SOURCE = "cascade"


def carry_forward(
    source_activities: dict[str, Activity],
    source_quarter_ordinal: int,
    target_activities: dict[str, Activity],
) -> dict[str, Activity]:
    """Copy the source's reported columns (up to its own quarter) into the target's activity set."""

    columns = QUARTERS[:source_quarter_ordinal]
    for code, source in source_activities.items():
        target = target_activities.get(code)
        if target is None:
            target = Activity(code=code, name=source.name, comment=source.comment)
            target_activities[code] = target
        for quarter in columns:
            target.set_value(quarter, source.value(quarter))
    return target_activities


def apply_opening_balances(activities: dict[str, Activity], closing: ClosingBalances) -> dict[str, Activity]:
    """Opening balance of every D and E activity is the predecessor's closing figure, if it had one."""

    for code, activity in activities.items():
        section = activity.section or classify(code).section
        if section is Section.FINANCIAL_ASSETS:
            activity.opening_balance = closing.financial_assets.get(code)
        elif section is Section.FINANCIAL_LIABILITIES:
            activity.opening_balance = closing.financial_liabilities.get(code)
    return activities


class CascadeService:
    """Recalculates quarters recorded after an edited one.

    Consecutive later quarters starting at Q+1 (up to ``cascade_sync_depth`` of them) are recalculated in the
    caller's transaction. The chain stops at the first gap in the quarter sequence or the first failure; the
    remaining quarters are flagged ``recalculation_pending`` and queued for a deferred worker, which calls
    :meth:`recalculate_pending`. A quarter that fails is flagged with ``recalculation_error`` but not queued.
    A failed recalculation never undoes the triggering write.
    """

    def __init__(self, db: Session, *, sync_depth: int | None = None, tolerance: Decimal | None = None) -> None:
        self.db = db
        self.repo = ExecutionRepository(db)
        self.settings = get_settings()
        self.sync_depth = sync_depth if sync_depth is not None else self.settings.cascade_sync_depth
        self.tolerance = tolerance if tolerance is not None else self.settings.balance_tolerance

    def run(self, entry: ExecutionEntry) -> CascadeImpact:
        """Propagate ``entry``'s closing balances forward. Does not commit."""

        impact = CascadeImpact()
        subsequent = self.repo.find_subsequent_quarters(entry_key(entry), entry.quarter)
        if not subsequent:
            logger.info("cascade_completed", extra={"status": impact.status.value, "trigger": entry.quarter.value})
            return impact

        now = datetime.now(UTC)
        impact.affected_quarters = [target.quarter for target in subsequent]
        logger.info(
            "cascade_started",
            extra={
                "trigger": entry.quarter.value,
                "affected_quarters": [quarter.value for quarter in impact.affected_quarters],
                "sync_depth": self.sync_depth,
            },
        )

        source = entry
        source_activities = load_activities(entry)
        chain_broken = False
        failed = False
        for position, target in enumerate(subsequent):
            adjacent = target.quarter.ordinal == source.quarter.ordinal + 1
            if chain_broken or not adjacent or position >= self.sync_depth:
                chain_broken = True
                self._mark_pending(target, trigger=entry, now=now)
                impact.queued_for_recalculation.append(target.quarter)
                continue

            with LogContext.bind(execution_id=target.id, quarter=target.quarter):
                try:
                    result = self._recalculate_from(source, source_activities, target, trigger=entry, now=now)
                except CascadeRecalculationError as exc:
                    logger.error(
                        "cascade_quarter_failed",
                        exc_info=True,
                        extra={"trigger": entry.quarter.value, "target": target.quarter.value},
                    )
                    chain_broken = True
                    failed = True
                    self._mark_pending(target, trigger=entry, now=now, error=str(exc))
                    continue

                logger.info(
                    "cascade_quarter_recalculated",
                    extra={
                        "trigger": entry.quarter.value,
                        "target": target.quarter.value,
                        "net_financial_assets": result.balances.net_financial_assets.cumulative_balance,
                    },
                )
            impact.immediately_recalculated.append(target.quarter)
            source = target
            source_activities = result.activities

        incomplete = failed or bool(impact.queued_for_recalculation)
        impact.status = CascadeStatus.PARTIAL_COMPLETE if incomplete else CascadeStatus.COMPLETE
        entry.metadata_payload = {
            **(entry.metadata_payload or {}),
            "affected_quarters": [quarter.value for quarter in impact.affected_quarters],
            "last_cascade_update": now.isoformat(),
        }
        self.repo.save(entry)

        logger.info(
            "cascade_completed",
            extra={
                "status": impact.status.value,
                "trigger": entry.quarter.value,
                "immediately_recalculated": [quarter.value for quarter in impact.immediately_recalculated],
                "queued_for_recalculation": [quarter.value for quarter in impact.queued_for_recalculation],
            },
        )
        return impact

    def recalculate_pending(self, execution_id: UUID) -> ExecutionEntry:
        """Recalculate one flagged entry from its nearest earlier quarter and clear the flag. Commits."""

        entry = self.repo.get(execution_id)
        if entry is None:
            raise ExecutionNotFoundError(execution_id)

        with LogContext.bind(execution_id=entry.id, quarter=entry.quarter):
            predecessor = self.repo.find_preceding(entry_key(entry), entry.quarter)
            now = datetime.now(UTC)
            try:
                if predecessor is None:
                    result = recalculate_execution_data(load_activities(entry), tolerance=self.tolerance)
                    self._store(entry, result, trigger=None, now=now)
                else:
                    self._recalculate_from(
                        predecessor,
                        load_activities(predecessor),
                        entry,
                        trigger=predecessor,
                        now=now,
                    )
                self.db.commit()
            except CascadeRecalculationError:
                self.db.rollback()
                logger.error("cascade_quarter_failed", exc_info=True, extra={"target": entry.quarter.value})
                raise

            logger.info("cascade_quarter_recalculated", extra={"target": entry.quarter.value, "deferred": True})

        self.db.refresh(entry)
        return entry

    def _recalculate_from(
        self,
        source: ExecutionEntry,
        source_activities: dict[str, Activity],
        target: ExecutionEntry,
        *,
        trigger: ExecutionEntry,
        now: datetime,
    ) -> RecalculationResult:
        try:
            activities = carry_forward(source_activities, source.quarter.ordinal, load_activities(target))
            closing = extract_closing_balances(source_activities, source.quarter, source.vat_receivables)
            apply_opening_balances(activities, closing)
            result = recalculate_execution_data(activities, tolerance=self.tolerance)
        except ArithmeticError as exc:
            raise CascadeRecalculationError(target.quarter.value, str(exc)) from exc

        if not result.is_balanced:
            raise CascadeRecalculationError(
                target.quarter.value,
                (
                    f"F ({result.balances.net_financial_assets.cumulative_balance}) != "
                    f"G ({result.balances.closing_balance.cumulative_balance})"
                ),
            )

        try:
            with self.db.begin_nested():
                self._store(target, result, trigger=trigger, now=now)
        except SQLAlchemyError as exc:
            raise CascadeRecalculationError(target.quarter.value, str(exc)) from exc
        return result

    def _store(
        self,
        target: ExecutionEntry,
        result: RecalculationResult,
        *,
        trigger: ExecutionEntry | None,
        now: datetime,
    ) -> None:
        write_result(target, result, now=now)
        metadata = {
            key: value
            for key, value in (target.metadata_payload or {}).items()
            if key not in {"recalculation_pending", "pending_since", "recalculation_error"}
        }
        metadata.update(
            {
                "last_recalculated": now.isoformat(),
                "recalculation_source": CASCADE_SOURCE,
                "recalculation_trigger": trigger.quarter.value if trigger is not None else None,
            }
        )
        target.metadata_payload = metadata
        self.repo.save(target)

    def _mark_pending(
        self,
        target: ExecutionEntry,
        *,
        trigger: ExecutionEntry,
        now: datetime,
        error: str | None = None,
    ) -> None:
        metadata = {
            **(target.metadata_payload or {}),
            "recalculation_pending": True,
            "recalculation_trigger": trigger.quarter.value,
            "pending_since": now.isoformat(),
        }
        if error is not None:
            metadata["recalculation_error"] = error
        target.metadata_payload = metadata
        target.updated_at = now
        self.repo.save(target)
