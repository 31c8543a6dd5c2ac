"""Activity Catalog collaborator: human-readable labels and display order per activity code."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from budget_execution.services.execution_types import Activity


@dataclass(frozen=True, slots=True)
class CatalogItem:
    code: str
    name: str
    display_order: int


class ActivityCatalog(Protocol):
    def lookup(self, project_type: str, facility_type: str) -> list[CatalogItem]: ...


class StaticActivityCatalog:
    """In-memory catalog keyed by (project type, facility type), matched case-insensitively."""

    def __init__(self, items: dict[tuple[str, str], list[CatalogItem]] | None = None) -> None:
        self._items = {
            (project_type.upper(), facility_type.upper()): list(entries)
            for (project_type, facility_type), entries in (items or {}).items()
        }

    def lookup(self, project_type: str, facility_type: str) -> list[CatalogItem]:
        return list(self._items.get((project_type.upper(), facility_type.upper()), []))


def hydrate_labels(activities: dict[str, Activity], catalog_items: list[CatalogItem]) -> None:
    """Fill missing activity names from the catalog.

    Runs before calculation: Section G names decide between accumulated surplus (stock) and period
    movements (flow).
    """
    names = {item.code: item.name for item in catalog_items}
    for code, activity in activities.items():
        if not activity.name and code in names:
            activity.name = names[code]


def display_sorted(activities: dict[str, Activity], catalog_items: list[CatalogItem]) -> list[Activity]:
    """Catalog display order first, uncatalogued codes after, code as the tie-breaker."""
    order = {item.code: item.display_order for item in catalog_items}
    return sorted(
        activities.values(),
        key=lambda activity: (activity.code not in order, order.get(activity.code, 0), activity.code),
    )
