from __future__ import annotations

from datetime import date
from typing import Collection, Iterable

from prison_scheduler.domain import StaffMember


def hash_string_to_int(text: str) -> int:
    """32-bit ``h * 31 + c`` string hash over UTF-16 code units, absolute value."""
    value = 0
    raw = text.encode("utf-16-le")
    for i in range(0, len(raw), 2):
        unit = raw[i] | (raw[i + 1] << 8)
        value = ((value << 5) - value + unit) & 0xFFFFFFFF
    if value >= 0x80000000:
        value -= 0x100000000
    return abs(value)


def rotation_seed(day: date, location: str) -> int:
    return hash_string_to_int(f"{day.isoformat()}|{location}")


def select_with_rotation(
    eligible_pool: Iterable[StaffMember],
    required_count: int,
    day: date,
    location: str,
    used_staff_ids: Collection[int],
    previous_day_staff_ids: Collection[int] = (),
) -> list[StaffMember]:
    """Pick up to ``required_count`` staff, rotating the start point by (date, location).

    Staff already placed in this run are never picked. Staff who covered the
    same location the day before are skipped when anyone else is left.
    """
    unused = [s for s in eligible_pool if s.id not in used_staff_ids]
    if required_count < 1 or not unused:
        return []

    pool = unused
    if previous_day_staff_ids:
        rested = [s for s in unused if s.id not in previous_day_staff_ids]
        if rested:
            pool = rested

    start = rotation_seed(day, location) % len(pool)
    selected: list[StaffMember] = []
    seen: set[int] = set()
    for i in range(len(pool)):
        if len(selected) >= required_count:
            break
        candidate = pool[(start + i) % len(pool)]
        if candidate.id in seen:
            continue
        seen.add(candidate.id)
        selected.append(candidate)

    return selected
