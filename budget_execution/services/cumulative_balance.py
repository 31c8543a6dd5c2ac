"""Cumulative balance of a single activity.

Flow sections (A, B, C) add up across quarters. Stock sections (D, E, F) carry the latest reported quarter.
Section G mixes a carried-forward equity balance (Accumulated Surplus/Deficit, fixed at its Q1 value) with
period movements that add up like flows.
"""

from __future__ import annotations

from decimal import Decimal

from budget_execution.core.logging import get_logger
from budget_execution.models.entities import Section
from budget_execution.services.activity_codes import classify
from budget_execution.services.execution_types import ZERO, Activity

logger = get_logger("services.cumulative_balance")

FLOW_SECTIONS = frozenset({Section.RECEIPTS.value, Section.EXPENDITURES.value, Section.SURPLUS.value})
STOCK_SECTIONS = frozenset(
    {
        Section.FINANCIAL_ASSETS.value,
        Section.FINANCIAL_LIABILITIES.value,
        Section.NET_FINANCIAL_ASSETS.value,
    }
)

QuarterValue = Decimal | None


def sum_quarters(q1: QuarterValue, q2: QuarterValue, q3: QuarterValue, q4: QuarterValue) -> Decimal:
    return (q1 or ZERO) + (q2 or ZERO) + (q3 or ZERO) + (q4 or ZERO)


def latest_quarter_value(q1: QuarterValue, q2: QuarterValue, q3: QuarterValue, q4: QuarterValue) -> QuarterValue:
    """Latest reported value scanning Q4 to Q1. An explicit zero is data; None is not."""
    for value in (q4, q3, q2, q1):
        if value is not None:
            return value
    return None


def is_accumulated_surplus(code: str | None, name: str | None) -> bool:
    name_lower = (name or "").lower()
    code_lower = (code or "").lower()
    return ("accumulated" in name_lower or "accumulated" in code_lower) and (
        "surplus" in name_lower or "deficit" in name_lower
    )


def is_surplus_deficit_of_period(name: str | None) -> bool:
    """The computed A - B line; reintroduced at assembly time, so it never enters the G rollup."""
    name_lower = (name or "").lower()
    return (
        "surplus" in name_lower
        and "deficit" in name_lower
        and "period" in name_lower
        and "accumulated" not in name_lower
    )


def _section_letter(section: Section | str | None) -> str:
    if isinstance(section, Section):
        return section.value
    return section or ""


def cumulative_balance(
    q1: QuarterValue,
    q2: QuarterValue,
    q3: QuarterValue,
    q4: QuarterValue,
    section: Section | str | None,
    sub_section: str | None,
    code: str | None = None,
    name: str | None = None,
) -> QuarterValue:
    """Cumulative value of one activity; None means a stock item with no data yet."""

    effective = (sub_section or _section_letter(section)).strip().upper()

    if effective in FLOW_SECTIONS:
        return sum_quarters(q1, q2, q3, q4)

    if effective in STOCK_SECTIONS:
        return latest_quarter_value(q1, q2, q3, q4)

    if effective == Section.CLOSING_BALANCE.value:
        if is_accumulated_surplus(code, name):
            # Written identically into every reported quarter upstream.
            return q1 if q1 is not None else ZERO
        # Prior Year Adjustments (G-01), Surplus/Deficit of the Period and any other G line are flows.
        return sum_quarters(q1, q2, q3, q4)

    # Unclassified sections aggregate as flows.
    return sum_quarters(q1, q2, q3, q4)


def apply_cumulative_balances(activities: dict[str, Activity]) -> dict[str, Activity]:
    """Classify every activity and recompute its cumulative balance in place."""

    for code, activity in activities.items():
        classification = classify(code)
        if not classification.is_classified:
            logger.warning("activity_unclassified", extra={"activity_code": code})
        activity.section = classification.section
        activity.sub_section = classification.sub_section
        activity.cumulative_balance = cumulative_balance(
            activity.q1,
            activity.q2,
            activity.q3,
            activity.q4,
            activity.section,
            activity.sub_section,
            code,
            activity.name,
        )
    return activities
