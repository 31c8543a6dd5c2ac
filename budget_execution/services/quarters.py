"""Quarter ordering within a fiscal year, with the Q4 to Q1 rollover."""

from __future__ import annotations

from dataclasses import dataclass

from budget_execution.models.entities import QUARTERS, Quarter


def previous_quarter(quarter: Quarter) -> Quarter | None:
    """Previous quarter in the same fiscal year. Q1 has none."""
    if quarter is Quarter.Q1:
        return None
    return QUARTERS[quarter.ordinal - 2]


def next_quarter(quarter: Quarter) -> Quarter | None:
    """Next quarter in the same fiscal year. Q4 has none."""
    if quarter is Quarter.Q4:
        return None
    return QUARTERS[quarter.ordinal]


def subsequent_quarters(quarter: Quarter) -> tuple[Quarter, ...]:
    return QUARTERS[quarter.ordinal :]


@dataclass(frozen=True, slots=True)
class QuarterSequence:
    current: Quarter
    previous: Quarter | None
    next: Quarter | None
    is_cross_fiscal_year_rollover: bool

    @property
    def has_previous(self) -> bool:
        return self.previous is not None

    @property
    def has_next(self) -> bool:
        return self.next is not None

    @property
    def is_first_quarter(self) -> bool:
        return self.current is Quarter.Q1

    def to_payload(self) -> dict[str, object]:
        return {
            "current": self.current.value,
            "previous": self.previous.value if self.previous is not None else None,
            "next": self.next.value if self.next is not None else None,
            "has_previous": self.has_previous,
            "has_next": self.has_next,
            "is_first_quarter": self.is_first_quarter,
            "is_cross_fiscal_year_rollover": self.is_cross_fiscal_year_rollover,
        }


def build_quarter_sequence(current: Quarter, cross_year_previous_exists: bool = False) -> QuarterSequence:
    """Q1 points back to the prior fiscal year's Q4 only when that execution is on file."""

    previous = previous_quarter(current)
    rollover = False
    if current is Quarter.Q1 and cross_year_previous_exists:
        previous = Quarter.Q4
        rollover = True
    return QuarterSequence(
        current=current,
        previous=previous,
        next=next_quarter(current),
        is_cross_fiscal_year_rollover=rollover,
    )
