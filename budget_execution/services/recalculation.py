"""Full balance pipeline over one activity set: classify, accumulate, roll up, assemble."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from budget_execution.core.logging import get_logger
from budget_execution.models.entities import QUARTERS, Quarter
from budget_execution.services.balances import DEFAULT_TOLERANCE, assemble
from budget_execution.services.cumulative_balance import STOCK_SECTIONS, apply_cumulative_balances
from budget_execution.services.execution_types import Activity, Balances, Rollups
from budget_execution.services.rollups import aggregate, detect_last_quarter_reported

logger = get_logger("services.recalculation")


@dataclass(slots=True)
class RecalculationResult:
    activities: dict[str, Activity]
    rollups: Rollups
    balances: Balances
    last_quarter_reported: Quarter

    @property
    def is_balanced(self) -> bool:
        return self.balances.is_balanced


def recalculate_execution_data(
    activities: dict[str, Activity],
    *,
    tolerance: Decimal = DEFAULT_TOLERANCE,
) -> RecalculationResult:
    """Recompute every derived value from the raw quarter figures. Pure apart from logging."""

    apply_cumulative_balances(activities)
    rollups = aggregate(activities)
    balances = assemble(rollups, tolerance=tolerance)
    result = RecalculationResult(
        activities=activities,
        rollups=rollups,
        balances=balances,
        last_quarter_reported=detect_last_quarter_reported(activities),
    )
    validate_recalculation(result)
    return result


def validate_recalculation(result: RecalculationResult) -> list[str]:
    """Sanity checks on a recalculated set. Problems are logged and returned, never raised."""

    problems: list[str] = []
    for code, activity in result.activities.items():
        if activity.section is None or activity.cumulative_balance is not None:
            continue
        effective = (activity.sub_section or activity.section.value).upper()
        has_data = any(value is not None for value in activity.quarter_values())
        if effective not in STOCK_SECTIONS or has_data:
            problems.append(f"{code}: missing cumulative balance")

    if result.activities and not result.rollups.by_section:
        problems.append("rollups by section are empty")
    if result.last_quarter_reported not in QUARTERS:
        problems.append(f"invalid last quarter reported: {result.last_quarter_reported}")

    for problem in problems:
        logger.warning("recalculation_check_failed", extra={"problem": problem})
    return problems
