from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

from prison_scheduler.domain import StaffMember

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EligibilityRule:
    """Who may work a location.

    A staff member qualifies when their department is one of ``departments``
    or their position contains one of ``position_keywords`` (case-insensitive).
    A rule with neither set admits everyone. ``strict`` rules never fall back
    to unqualified staff.
    """

    departments: frozenset[str] = frozenset()
    position_keywords: tuple[str, ...] = ()
    strict: bool = False

    @property
    def unrestricted(self) -> bool:
        return not self.departments and not self.position_keywords

    def admits(self, staff: StaffMember) -> bool:
        if self.unrestricted:
            return True
        if staff.department and staff.department in self.departments:
            return True
        position = (staff.position or "").lower()
        return any(keyword in position for keyword in self.position_keywords)


ANY_STAFF = EligibilityRule()
MEDICAL_ONLY = EligibilityRule(departments=frozenset({"Medical"}), strict=True)
CONTROL_ROOM_OFFICERS = EligibilityRule(position_keywords=("prison control room officer",), strict=True)
ADMINISTRATION = EligibilityRule(departments=frozenset({"Administration"}), position_keywords=("admin", "clerk"))
BLOCK_SECURITY = EligibilityRule(
    departments=frozenset({"Security", "Rehabilitation"}),
    position_keywords=("security", "officer"),
)


def filter_eligible(pool: Iterable[StaffMember], rule: EligibilityRule, location: str = "") -> list[StaffMember]:
    staff = list(pool)
    eligible = [s for s in staff if rule.admits(s)]
    if len(eligible) < len(staff):
        logger.debug("%s: %d of %d staff eligible", location or "location", len(eligible), len(staff))
    return eligible


_DEPARTMENT_KEYWORDS = (
    ("Security", ("security", "officer", "guard")),
    ("Medical", ("medical", "nurse", "doctor", "health")),
    ("Administration", ("admin", "clerk", "administrative")),
    ("Control", ("control", "operator")),
)


def department_from_position(position: str | None) -> str:
    lowered = (position or "").lower()
    for department, keywords in _DEPARTMENT_KEYWORDS:
        if any(k in lowered for k in keywords):
            return department
    return "General"
