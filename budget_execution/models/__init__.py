"""ORM model package."""

from budget_execution.models.entities import (
    QUARTERS,
    ExecutionActivity,
    ExecutionEntry,
    Quarter,
    Section,
)

__all__ = [
    "QUARTERS",
    "ExecutionActivity",
    "ExecutionEntry",
    "Quarter",
    "Section",
]
