"""Financial statement balances and the F = G accounting identity."""

from __future__ import annotations

import logging
from decimal import Decimal

from budget_execution.core.errors import BalanceMismatchError
from budget_execution.core.logging import get_logger
from budget_execution.models.entities import Section
from budget_execution.services.execution_types import ZERO, BalanceLine, Balances, QuarterlyTotal, Rollups

logger = get_logger("services.balances")

DEFAULT_TOLERANCE = Decimal("0.01")

_AVAILABILITY_SECTIONS = (
    Section.RECEIPTS,
    Section.EXPENDITURES,
    Section.FINANCIAL_ASSETS,
    Section.FINANCIAL_LIABILITIES,
    Section.CLOSING_BALANCE,
)
_IDENTITY_SECTIONS = (Section.FINANCIAL_ASSETS, Section.FINANCIAL_LIABILITIES, Section.CLOSING_BALANCE)


def latest_nonzero_quarter_total(total: QuarterlyTotal) -> Decimal:
    """Section-level reverse scan: the latest non-zero quarter, else Q1."""
    for value in (total.q4, total.q3, total.q2):
        if value != ZERO:
            return value
    return total.q1


def _line(total: QuarterlyTotal, cumulative: Decimal) -> BalanceLine:
    return BalanceLine(q1=total.q1, q2=total.q2, q3=total.q3, q4=total.q4, cumulative_balance=cumulative)


def _has_data(total: QuarterlyTotal) -> bool:
    return any(value != ZERO for value in (total.q1, total.q2, total.q3, total.q4, total.total))


def assemble(rollups: Rollups, *, tolerance: Decimal = DEFAULT_TOLERANCE) -> Balances:
    """Build the named statement lines from rollups and check Net Financial Assets = Closing Balance.

    Never raises on an imbalance; the caller decides whether to reject the write.
    """

    receipts_total = rollups.section(Section.RECEIPTS)
    expenditures_total = rollups.section(Section.EXPENDITURES)
    assets_total = rollups.section(Section.FINANCIAL_ASSETS)
    liabilities_total = rollups.section(Section.FINANCIAL_LIABILITIES)
    equity_total = rollups.section(Section.CLOSING_BALANCE)

    receipts = _line(receipts_total, receipts_total.total)
    expenditures = _line(expenditures_total, expenditures_total.total)
    surplus = BalanceLine(
        q1=receipts_total.q1 - expenditures_total.q1,
        q2=receipts_total.q2 - expenditures_total.q2,
        q3=receipts_total.q3 - expenditures_total.q3,
        q4=receipts_total.q4 - expenditures_total.q4,
        cumulative_balance=receipts_total.total - expenditures_total.total,
    )

    financial_assets = _line(assets_total, latest_nonzero_quarter_total(assets_total))
    financial_liabilities = _line(liabilities_total, latest_nonzero_quarter_total(liabilities_total))

    net_by_quarter = [
        (assets_total.q1 - liabilities_total.q1, assets_total.q1, liabilities_total.q1),
        (assets_total.q2 - liabilities_total.q2, assets_total.q2, liabilities_total.q2),
        (assets_total.q3 - liabilities_total.q3, assets_total.q3, liabilities_total.q3),
        (assets_total.q4 - liabilities_total.q4, assets_total.q4, liabilities_total.q4),
    ]
    net_cumulative = net_by_quarter[0][0]
    for net, assets, liabilities in reversed(net_by_quarter[1:]):
        if net != ZERO or assets != ZERO or liabilities != ZERO:
            net_cumulative = net
            break
    net_financial_assets = BalanceLine(
        q1=net_by_quarter[0][0],
        q2=net_by_quarter[1][0],
        q3=net_by_quarter[2][0],
        q4=net_by_quarter[3][0],
        cumulative_balance=net_cumulative,
    )

    # The G rollup excludes Surplus/Deficit of the Period; it is added back here exactly once.
    closing_balance = BalanceLine(
        q1=equity_total.q1 + surplus.q1,
        q2=equity_total.q2 + surplus.q2,
        q3=equity_total.q3 + surplus.q3,
        q4=equity_total.q4 + surplus.q4,
        cumulative_balance=equity_total.total + surplus.cumulative_balance,
    )

    difference = abs(net_financial_assets.cumulative_balance - closing_balance.cumulative_balance)
    is_balanced = difference < tolerance

    present = set(rollups.by_section)
    balances = Balances(
        receipts=receipts,
        expenditures=expenditures,
        surplus=surplus,
        financial_assets=financial_assets,
        financial_liabilities=financial_liabilities,
        net_financial_assets=net_financial_assets,
        closing_balance=closing_balance,
        is_balanced=is_balanced,
        difference=difference,
        can_validate_balance=any(section in present for section in _IDENTITY_SECTIONS),
        sections_available={
            section.value: section in present and _has_data(rollups.section(section))
            for section in _AVAILABILITY_SECTIONS
        },
        sections_in_rollups=sorted(section.value for section in present),
    )

    logger.log(
        logging.DEBUG if is_balanced else logging.WARNING,
        "balance_identity_checked",
        extra={
            "net_financial_assets": net_financial_assets.cumulative_balance,
            "closing_balance": closing_balance.cumulative_balance,
            "difference": difference,
            "is_balanced": is_balanced,
        },
    )
    return balances


def ensure_balanced(
    balances: Balances,
    *,
    tolerance: Decimal = DEFAULT_TOLERANCE,
    facility_type: str | None = None,
    project_type: str | None = None,
) -> None:
    """Reject a write whose statement violates F = G. Applies to every facility type and quarter."""

    if balances.is_balanced:
        return
    raise BalanceMismatchError(
        net_financial_assets=balances.net_financial_assets.cumulative_balance,
        closing_balance=balances.closing_balance.cumulative_balance,
        difference=balances.difference,
        tolerance=tolerance,
        facility_type=facility_type,
        project_type=project_type,
    )
