from datetime import date

from prison_scheduler.conflicts import busy_staff_ids, exclude_conflicts
from prison_scheduler.domain import DAY_WINDOW, NIGHT_WINDOW, VISITING_WINDOW, LeaveInterval, ScheduleAssignment, ShiftWindow, StaffMember

DAY = date(2026, 3, 2)


def _assignment(location, shift, staff_ids, start="09:00", end="21:00", day=DAY) -> ScheduleAssignment:
    return ScheduleAssignment(
        location=location,
        shift=shift,
        date=day,
        start_time=start,
        end_time=end,
        assigned_staff_ids=staff_ids,
        title=location,
    )


def test_day_and_night_windows_do_not_overlap():
    assert not DAY_WINDOW.overlaps(NIGHT_WINDOW)
    assert not NIGHT_WINDOW.overlaps(DAY_WINDOW)
    assert VISITING_WINDOW.overlaps(DAY_WINDOW)


def test_early_morning_window_overlaps_night():
    assert ShiftWindow("06:00", "10:00").overlaps(NIGHT_WINDOW)
    assert not ShiftWindow("06:00", "08:00").overlaps(DAY_WINDOW)


def test_same_shift_overlap_and_opposite_shift_are_busy():
    existing = [
        _assignment("Library", "day", [1], "09:00", "17:00"),
        _assignment("Main Gate", "night", [2], "21:00", "09:00"),
        _assignment("Workshop", "day", [3], "06:00", "08:00"),
    ]
    busy = busy_staff_ids(DAY, "day", "Kitchen", DAY_WINDOW, existing, [])
    assert busy == {1, 2}


def test_other_dates_are_ignored():
    existing = [_assignment("Library", "day", [1], day=date(2026, 3, 1))]
    assert busy_staff_ids(DAY, "day", "Kitchen", DAY_WINDOW, existing, []) == set()


def test_only_approved_leave_covering_the_date_excludes():
    leave = [
        LeaveInterval(staff_id=1, start_date=date(2026, 3, 1), end_date=date(2026, 3, 3)),
        LeaveInterval(staff_id=2, start_date=date(2026, 3, 1), end_date=date(2026, 3, 3), status="Pending"),
        LeaveInterval(staff_id=3, start_date=date(2026, 3, 3), end_date=date(2026, 3, 5)),
    ]
    assert busy_staff_ids(DAY, "night", "Main Gate", NIGHT_WINDOW, [], leave) == {1}


def test_exclude_conflicts_keeps_free_staff_in_order():
    pool = [StaffMember(id=i, name=f"S{i}", email=f"s{i}@prison.test") for i in (4, 1, 3, 2)]
    existing = [_assignment("Main Gate", "day", [1])]
    leave = [LeaveInterval(staff_id=2, start_date=DAY, end_date=DAY)]
    free = exclude_conflicts(pool, DAY, "day", "Kitchen", DAY_WINDOW, existing, leave)
    assert [s.id for s in free] == [4, 3]
