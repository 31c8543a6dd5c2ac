"""Value types shared by the balance pipeline and the cascade engine."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from decimal import Decimal

from budget_execution.core.errors import MissingRollupStructureError
from budget_execution.models.entities import Quarter, Section

ZERO = Decimal("0.00")
Q2 = Decimal("0.01")


def _q2(value: Decimal) -> Decimal:
    return value.quantize(Q2)


def _str_or_none(value: Decimal | None) -> str | None:
    return str(_q2(value)) if value is not None else None


@dataclass(slots=True)
class Activity:
    """One budget line of an execution record."""

    code: str
    name: str | None = None
    q1: Decimal | None = None
    q2: Decimal | None = None
    q3: Decimal | None = None
    q4: Decimal | None = None
    section: Section | None = None
    sub_section: str | None = None
    cumulative_balance: Decimal | None = None
    opening_balance: Decimal | None = None
    comment: str | None = None

    def value(self, quarter: Quarter) -> Decimal | None:
        return getattr(self, quarter.column)

    def set_value(self, quarter: Quarter, value: Decimal | None) -> None:
        setattr(self, quarter.column, value)

    def quarter_values(self) -> tuple[Decimal | None, Decimal | None, Decimal | None, Decimal | None]:
        return self.q1, self.q2, self.q3, self.q4

    def to_payload(self) -> dict[str, object]:
        return {
            "code": self.code,
            "name": self.name,
            "section": self.section.value if self.section is not None else None,
            "sub_section": self.sub_section,
            "q1": _str_or_none(self.q1),
            "q2": _str_or_none(self.q2),
            "q3": _str_or_none(self.q3),
            "q4": _str_or_none(self.q4),
            "cumulative_balance": _str_or_none(self.cumulative_balance),
            "opening_balance": _str_or_none(self.opening_balance),
            "comment": self.comment,
        }


@dataclass(slots=True)
class QuarterlyTotal:
    """Per-quarter sums of a section or sub-section plus the sum of member cumulative balances."""

    q1: Decimal = ZERO
    q2: Decimal = ZERO
    q3: Decimal = ZERO
    q4: Decimal = ZERO
    total: Decimal = ZERO

    def value(self, quarter: Quarter) -> Decimal:
        return getattr(self, quarter.column)

    def add(self, activity: Activity, contribution: Decimal) -> None:
        self.q1 += activity.q1 or ZERO
        self.q2 += activity.q2 or ZERO
        self.q3 += activity.q3 or ZERO
        self.q4 += activity.q4 or ZERO
        self.total += contribution

    def to_payload(self) -> dict[str, str]:
        return {
            "q1": str(_q2(self.q1)),
            "q2": str(_q2(self.q2)),
            "q3": str(_q2(self.q3)),
            "q4": str(_q2(self.q4)),
            "total": str(_q2(self.total)),
        }

    @classmethod
    def from_payload(cls, payload: dict[str, object]) -> QuarterlyTotal:
        return cls(
            q1=Decimal(str(payload.get("q1", "0"))),
            q2=Decimal(str(payload.get("q2", "0"))),
            q3=Decimal(str(payload.get("q3", "0"))),
            q4=Decimal(str(payload.get("q4", "0"))),
            total=Decimal(str(payload.get("total", "0"))),
        )


@dataclass(slots=True)
class Rollups:
    by_section: dict[Section, QuarterlyTotal] = field(default_factory=dict)
    by_sub_section: dict[str, QuarterlyTotal] = field(default_factory=dict)

    def section(self, section: Section) -> QuarterlyTotal:
        """Rollup for a section, zeros when the section has no activities."""
        return self.by_section.get(section) or QuarterlyTotal()

    def to_payload(self) -> dict[str, dict[str, dict[str, str]]]:
        return {
            "by_section": {
                section.value: total.to_payload()
                for section, total in sorted(self.by_section.items(), key=lambda item: item[0].value)
            },
            "by_sub_section": {
                code: total.to_payload() for code, total in sorted(self.by_sub_section.items())
            },
        }

    @classmethod
    def from_payload(cls, payload: dict[str, object] | None) -> Rollups:
        payload = payload or {}
        missing = [key for key in ("by_section", "by_sub_section") if not isinstance(payload.get(key), dict)]
        if missing:
            raise MissingRollupStructureError(missing)
        by_section = payload["by_section"]
        by_sub_section = payload["by_sub_section"]
        return cls(
            by_section={Section(key): QuarterlyTotal.from_payload(value) for key, value in by_section.items()},
            by_sub_section={key: QuarterlyTotal.from_payload(value) for key, value in by_sub_section.items()},
        )


@dataclass(slots=True)
class BalanceLine:
    q1: Decimal = ZERO
    q2: Decimal = ZERO
    q3: Decimal = ZERO
    q4: Decimal = ZERO
    cumulative_balance: Decimal = ZERO

    def to_payload(self) -> dict[str, str]:
        return {
            "q1": str(_q2(self.q1)),
            "q2": str(_q2(self.q2)),
            "q3": str(_q2(self.q3)),
            "q4": str(_q2(self.q4)),
            "cumulative_balance": str(_q2(self.cumulative_balance)),
        }


@dataclass(slots=True)
class Balances:
    """Named financial statement lines derived from rollups."""

    receipts: BalanceLine
    expenditures: BalanceLine
    surplus: BalanceLine
    financial_assets: BalanceLine
    financial_liabilities: BalanceLine
    net_financial_assets: BalanceLine
    closing_balance: BalanceLine
    is_balanced: bool
    difference: Decimal
    can_validate_balance: bool = False
    sections_available: dict[str, bool] = field(default_factory=dict)
    sections_in_rollups: list[str] = field(default_factory=list)

    def to_payload(self) -> dict[str, object]:
        return {
            "receipts": self.receipts.to_payload(),
            "expenditures": self.expenditures.to_payload(),
            "surplus": self.surplus.to_payload(),
            "financial_assets": self.financial_assets.to_payload(),
            "financial_liabilities": self.financial_liabilities.to_payload(),
            "net_financial_assets": self.net_financial_assets.to_payload(),
            "closing_balance": self.closing_balance.to_payload(),
            "is_balanced": self.is_balanced,
            "difference": str(_q2(self.difference)),
            "metadata": {
                "can_validate_balance": self.can_validate_balance,
                "sections_available": dict(self.sections_available),
                "sections_in_rollups": list(self.sections_in_rollups),
            },
        }


class CascadeStatus(str, enum.Enum):
    NONE = "none"
    PARTIAL_COMPLETE = "partial_complete"
    COMPLETE = "complete"


@dataclass(slots=True)
class CascadeImpact:
    affected_quarters: list[Quarter] = field(default_factory=list)
    immediately_recalculated: list[Quarter] = field(default_factory=list)
    queued_for_recalculation: list[Quarter] = field(default_factory=list)
    status: CascadeStatus = CascadeStatus.NONE

    def to_payload(self) -> dict[str, object]:
        return {
            "affected_quarters": [quarter.value for quarter in self.affected_quarters],
            "immediately_recalculated": [quarter.value for quarter in self.immediately_recalculated],
            "queued_for_recalculation": [quarter.value for quarter in self.queued_for_recalculation],
            "status": self.status.value,
        }


@dataclass(frozen=True, slots=True)
class ExecutionKey:
    """Identity of a facility's execution history within one reporting period."""

    project_id: int
    facility_id: int
    reporting_period_id: int

