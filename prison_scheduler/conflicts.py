from __future__ import annotations

import logging
from datetime import date
from typing import Iterable

from prison_scheduler.domain import LeaveInterval, ScheduleAssignment, Shift, ShiftWindow, StaffMember, opposite_shift

logger = logging.getLogger(__name__)


def busy_staff_ids(
    day: date,
    shift: Shift,
    location: str,
    window: ShiftWindow,
    existing: Iterable[ScheduleAssignment],
    leave: Iterable[LeaveInterval],
) -> set[int]:
    """Ids that cannot take ``location`` on ``day``/``shift``."""
    busy: set[int] = set()
    other = opposite_shift(shift)
    for assignment in existing:
        if assignment.date != day:
            continue
        if assignment.shift == shift and assignment.window.overlaps(window):
            busy.update(assignment.assigned_staff_ids)
        elif assignment.shift == other:
            busy.update(assignment.assigned_staff_ids)
        # A day-shift officer may not repeat the same post overnight.
        if shift == "night" and assignment.shift == "day" and assignment.location == location:
            busy.update(assignment.assigned_staff_ids)
    on_leave = {interval.staff_id for interval in leave if interval.covers(day)}
    if on_leave:
        logger.debug("Excluding %d staff on approved leave for %s", len(on_leave), day.isoformat())
    return busy | on_leave


def exclude_conflicts(
    pool: Iterable[StaffMember],
    day: date,
    shift: Shift,
    location: str,
    window: ShiftWindow,
    existing: Iterable[ScheduleAssignment],
    leave: Iterable[LeaveInterval],
) -> list[StaffMember]:
    excluded = busy_staff_ids(day, shift, location, window, existing, leave)
    return [s for s in pool if s.id not in excluded]
