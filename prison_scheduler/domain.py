from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Literal

Shift = Literal["day", "night"]
SHIFTS: tuple[Shift, ...] = ("day", "night")

STAFF_ROLE = "staff"
APPROVED = "Approved"
LEAVE_STATUSES = ("Pending", "Approved", "Rejected", "Cancelled")
LEAVE_TYPES = ("Annual Leave", "Sick Leave", "Emergency Leave", "Personal Leave", "Maternity Leave")

SCHEDULE_TYPES = ("Security", "Medical", "Rehabilitation", "Work", "Visitation", "Maintenance", "Education", "Recreation")
PRIORITIES = ("High", "Medium", "Low")
SCHEDULE_STATUSES = ("Scheduled", "In Progress", "Completed", "Cancelled", "Postponed")


def opposite_shift(shift: Shift) -> Shift:
    return "night" if shift == "day" else "day"


def _time_to_minutes(value: str) -> int:
    hh, mm = value.split(":")
    return int(hh) * 60 + int(mm)


@dataclass(frozen=True)
class ShiftWindow:
    start: str
    end: str

    def minutes(self) -> tuple[int, int]:
        """Return (start, end) in minutes, with windows crossing midnight ending past 24:00."""
        start = _time_to_minutes(self.start)
        end = _time_to_minutes(self.end)
        if end <= start:
            end += 24 * 60
        return start, end

    def overlaps(self, other: ShiftWindow) -> bool:
        a_start, a_end = self.minutes()
        b_start, b_end = other.minutes()
        # Compare on a wrapping clock so early-morning times line up with overnight windows.
        for offset in (-24 * 60, 0, 24 * 60):
            if a_start < b_end + offset and b_start + offset < a_end:
                return True
        return False


DAY_WINDOW = ShiftWindow("09:00", "21:00")
NIGHT_WINDOW = ShiftWindow("21:00", "09:00")
VISITING_WINDOW = ShiftWindow("09:00", "17:00")
SHIFT_WINDOWS: dict[str, ShiftWindow] = {"day": DAY_WINDOW, "night": NIGHT_WINDOW}


@dataclass(frozen=True)
class StaffMember:
    id: int
    name: str
    email: str
    role: str = STAFF_ROLE
    department: str | None = None
    position: str | None = None
    is_active: bool = True


@dataclass(frozen=True)
class LeaveInterval:
    staff_id: int
    start_date: date
    end_date: date
    status: str = APPROVED

    def covers(self, day: date) -> bool:
        return self.status == APPROVED and self.start_date <= day <= self.end_date


@dataclass
class ScheduleAssignment:
    location: str
    shift: Shift
    date: date
    start_time: str
    end_time: str
    assigned_staff_ids: list[int]
    title: str
    type: str = "Security"
    priority: str = "Medium"
    status: str = "Scheduled"
    is_auto_scheduled: bool = True
    description: str | None = None
    notes: str | None = None
    created_by: str | None = None
    needs_attention: bool = False
    id: int | None = None
    staff_names: list[str] = field(default_factory=list)

    @property
    def window(self) -> ShiftWindow:
        return ShiftWindow(self.start_time, self.end_time)


IssueType = Literal[
    "no_eligible_staff",
    "no_available_staff",
    "capacity_reached",
    "persistence_failure",
    "reconciliation_dead_end",
]


@dataclass
class ScheduleIssue:
    date: date
    type: IssueType
    detail: str
    shift: Shift | None = None
    location: str | None = None
