"""Activity code parsing.

Execution activity codes are underscore-separated tokens::

    code        := project "_" "EXEC" "_" facility_type "_" section ["_" sub_section] "_" sequence
    project     := token ("_" token)*          e.g. HIV, MAL, TB
    facility_type := token ("_" token)*        e.g. HOSPITAL, HEALTH_CENTER
    section     := one letter A..G
    sub_section := token containing "-"        e.g. B-04, G-01
    sequence    := token ("_" token)*          e.g. 1, VAT_COMMUNICATION_ALL

The section is the first single-letter A..G token after the ``EXEC`` marker. A bare numeric token after the
section is the item sequence, never a sub-section.

Examples::

    HIV_EXEC_HOSPITAL_B_B-04_1       -> section B, sub-section B-04
    HIV_EXEC_HEALTH_CENTER_D_1       -> section D, no sub-section
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from budget_execution.models.entities import Section

EXECUTION_MARKER = "EXEC"

_SECTION_TOKEN = re.compile(r"^[A-G]$")


@dataclass(frozen=True, slots=True)
class ActivityCode:
    raw: str
    project: str
    module: str
    facility_type: str
    section: Section
    sub_section: str | None
    sequence: str


@dataclass(frozen=True, slots=True)
class Classification:
    section: Section | None = None
    sub_section: str | None = None

    @property
    def is_classified(self) -> bool:
        return self.section is not None


UNCLASSIFIED = Classification()


def parse_activity_code(code: str) -> ActivityCode | None:
    """Parse a code into its parts, or None when it does not follow the execution grammar."""

    parts = code.split("_")
    try:
        marker_index = parts.index(EXECUTION_MARKER)
    except ValueError:
        return None

    section_index = next(
        (index for index in range(marker_index + 1, len(parts)) if _SECTION_TOKEN.match(parts[index])),
        None,
    )
    if section_index is None:
        return None

    candidate = parts[section_index + 1] if section_index + 1 < len(parts) else None
    sub_section = candidate if candidate is not None and "-" in candidate else None
    sequence_start = section_index + (2 if sub_section is not None else 1)

    return ActivityCode(
        raw=code,
        project="_".join(parts[:marker_index]),
        module=EXECUTION_MARKER,
        facility_type="_".join(parts[marker_index + 1 : section_index]),
        section=Section(parts[section_index]),
        sub_section=sub_section,
        sequence="_".join(parts[sequence_start:]),
    )


def classify(code: str) -> Classification:
    parsed = parse_activity_code(code)
    if parsed is None:
        return UNCLASSIFIED
    return Classification(section=parsed.section, sub_section=parsed.sub_section)
