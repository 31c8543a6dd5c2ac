"""Closing balances a quarter hands forward to the next one."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from uuid import UUID

from budget_execution.models.entities import Quarter, Section
from budget_execution.services.activity_codes import classify
from budget_execution.services.execution_types import ZERO, Activity, _q2

_WHITESPACE = re.compile(r"\s+")


@dataclass(slots=True)
class ClosingBalances:
    """Non-zero closing figures per D and E activity code plus net VAT receivable per category."""

    financial_assets: dict[str, Decimal] = field(default_factory=dict)
    financial_liabilities: dict[str, Decimal] = field(default_factory=dict)
    vat: dict[str, Decimal] = field(default_factory=dict)

    def to_payload(self) -> dict[str, dict[str, str]]:
        return {
            "D": {code: str(_q2(value)) for code, value in self.financial_assets.items()},
            "E": {code: str(_q2(value)) for code, value in self.financial_liabilities.items()},
            "VAT": {category: str(_q2(value)) for category, value in self.vat.items()},
        }


@dataclass(slots=True)
class BalanceTotals:
    financial_assets: Decimal
    financial_liabilities: Decimal
    net_financial_assets: Decimal

    def to_payload(self) -> dict[str, str]:
        return {
            "financial_assets": str(_q2(self.financial_assets)),
            "financial_liabilities": str(_q2(self.financial_liabilities)),
            "net_financial_assets": str(_q2(self.net_financial_assets)),
        }


def vat_asset_key(category: str) -> str:
    return "VAT_" + _WHITESPACE.sub("_", category.strip()).upper()


def _decimal(value: object) -> Decimal:
    if value is None or value == "":
        return ZERO
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return ZERO


def extract_closing_balances(
    activities: dict[str, Activity],
    quarter: Quarter,
    vat_receivables: dict[str, dict[str, object]] | None = None,
) -> ClosingBalances:
    """Read a quarter's own column for every D and E activity, skipping zeros and gaps.

    Net VAT receivable (amount minus cleared) is kept only when positive, and is also carried as a
    financial asset under ``VAT_<CATEGORY>``.
    """

    balances = ClosingBalances()
    for code, activity in activities.items():
        section = activity.section or classify(code).section
        value = activity.value(quarter) or ZERO
        if value == ZERO:
            continue
        if section is Section.FINANCIAL_ASSETS:
            balances.financial_assets[code] = value
        elif section is Section.FINANCIAL_LIABILITIES:
            balances.financial_liabilities[code] = value

    for category, data in (vat_receivables or {}).items():
        if not isinstance(data, dict):
            continue
        amount = _decimal(data.get(quarter.column))
        cleared = _decimal(data.get(f"{quarter.column}_cleared"))
        net_receivable = amount - cleared
        if net_receivable > ZERO:
            balances.vat[category] = net_receivable
            balances.financial_assets[vat_asset_key(category)] = net_receivable

    return balances


def calculate_balance_totals(balances: ClosingBalances) -> BalanceTotals:
    financial_assets = sum(balances.financial_assets.values(), ZERO)
    financial_liabilities = sum(balances.financial_liabilities.values(), ZERO)
    return BalanceTotals(
        financial_assets=financial_assets,
        financial_liabilities=financial_liabilities,
        net_financial_assets=financial_assets - financial_liabilities,
    )


def build_previous_quarter_balances(
    previous_execution_id: UUID | None,
    previous_activities: dict[str, Activity] | None,
    previous_quarter: Quarter | None,
    vat_receivables: dict[str, dict[str, object]] | None = None,
) -> dict[str, object]:
    """Opening context shown alongside a quarter: the preceding quarter's closing figures, if any."""

    if previous_execution_id is None or previous_activities is None or previous_quarter is None:
        return {
            "exists": False,
            "quarter": None,
            "execution_id": None,
            "closing_balances": None,
            "totals": None,
        }

    closing = extract_closing_balances(previous_activities, previous_quarter, vat_receivables)
    return {
        "exists": True,
        "quarter": previous_quarter.value,
        "execution_id": str(previous_execution_id),
        "closing_balances": closing.to_payload(),
        "totals": calculate_balance_totals(closing).to_payload(),
    }
