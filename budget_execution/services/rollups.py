"""Section and sub-section rollups of an execution record."""

from __future__ import annotations

from dataclasses import replace

from budget_execution.core.logging import get_logger
from budget_execution.models.entities import QUARTERS, Quarter, Section
from budget_execution.services.cumulative_balance import is_surplus_deficit_of_period, sum_quarters
from budget_execution.services.execution_types import Activity, QuarterlyTotal, Rollups

logger = get_logger("services.rollups")


def aggregate(activities: dict[str, Activity]) -> Rollups:
    """Fold classified activities into per-section and per-sub-section quarterly totals.

    Quarter fields add raw values (missing as zero) while ``total`` adds each member's cumulative balance,
    so stock sections contribute their latest quarter rather than a sum. Activities must already carry their
    classification and cumulative balance.
    """

    rollups = Rollups()
    for code, activity in activities.items():
        if activity.section is None:
            continue
        if activity.section is Section.CLOSING_BALANCE and is_surplus_deficit_of_period(activity.name):
            logger.debug("surplus_of_period_excluded_from_rollup", extra={"activity_code": code})
            continue

        contribution = activity.cumulative_balance
        if contribution is None:
            contribution = sum_quarters(*activity.quarter_values())

        rollups.by_section.setdefault(activity.section, QuarterlyTotal()).add(activity, contribution)
        if activity.sub_section:
            rollups.by_sub_section.setdefault(activity.sub_section, QuarterlyTotal()).add(activity, contribution)

    logger.debug(
        "rollups_computed",
        extra={
            "section_totals": {section.value: str(total.total) for section, total in rollups.by_section.items()},
            "sub_section_count": len(rollups.by_sub_section),
        },
    )
    return rollups


def merge_quarter_data(
    existing: dict[str, Activity],
    incoming: dict[str, Activity],
    quarter: Quarter,
) -> dict[str, Activity]:
    """Merge one quarter's submitted values into an activity set, leaving other quarters untouched."""

    merged = {code: replace(activity) for code, activity in existing.items()}
    for code, new_activity in incoming.items():
        current = merged.get(code)
        if current is None:
            current = Activity(code=code, name=new_activity.name, comment=new_activity.comment)
            merged[code] = current
        else:
            if new_activity.name:
                current.name = new_activity.name
            if new_activity.comment is not None:
                current.comment = new_activity.comment
        current.set_value(quarter, new_activity.value(quarter))
    return merged


def detect_last_quarter_reported(activities: dict[str, Activity]) -> Quarter:
    """Latest quarter in which any activity holds a value (explicit zero included); Q1 when none do."""

    for quarter in reversed(QUARTERS):
        if any(activity.value(quarter) is not None for activity in activities.values()):
            return quarter
    return Quarter.Q1
