from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date

from prison_scheduler.conflicts import exclude_conflicts
from prison_scheduler.domain import ScheduleAssignment, ScheduleIssue, StaffMember
from prison_scheduler.eligibility import filter_eligible
from prison_scheduler.locations import SchedulerConfig
from prison_scheduler.store import ScheduleStore

logger = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    date: date
    trimmed: list[ScheduleAssignment] = field(default_factory=list)
    replaced: list[ScheduleAssignment] = field(default_factory=list)
    needs_attention: list[ScheduleAssignment] = field(default_factory=list)
    issues: list[ScheduleIssue] = field(default_factory=list)

    @property
    def changed(self) -> int:
        return len(self.trimmed) + len(self.replaced) + len(self.needs_attention)


def _find_night_replacement(
    store: ScheduleStore,
    day: date,
    location: str,
    day_staff_ids: set[int],
    config: SchedulerConfig,
) -> StaffMember | None:
    pool = exclude_conflicts(
        store.list_active_staff(),
        day,
        "night",
        location,
        config.shift_windows["night"],
        store.find_assignments(day),
        store.list_approved_leave(day, day),
    )
    clean = [s for s in pool if s.id not in day_staff_ids]
    if not clean:
        return None
    suitable = filter_eligible(clean, config.rule_for(location).eligibility, location)
    return (suitable or clean)[0]


def reconcile_cross_shift(store: ScheduleStore, day: date, config: SchedulerConfig | None = None) -> ReconcileResult:
    """Make sure nobody on the day shift also appears on a night post.

    Manual and auto-generated night posts are treated alike: each keeps
    whoever is left once day staff are removed. A post left empty gets one
    replacement, preferring someone qualified for it; failing
    that it is saved empty and flagged ``needs_attention``. Running this again
    without other changes does nothing.
    """
    config = config or SchedulerConfig.from_env()
    result = ReconcileResult(date=day)

    day_staff_ids = {sid for a in store.find_assignments(day, "day") for sid in a.assigned_staff_ids}
    if not day_staff_ids:
        return result

    for assignment in store.find_assignments(day, "night"):
        before = assignment.assigned_staff_ids
        kept = [sid for sid in before if sid not in day_staff_ids]
        if len(kept) == len(before):
            continue

        if kept:
            logger.info("Removed %d day-shift officer(s) from night %s", len(before) - len(kept), assignment.location)
            result.trimmed.append(store.update_assigned_staff(assignment.id, kept))
            continue

        replacement = _find_night_replacement(store, day, assignment.location, day_staff_ids, config)
        if replacement is None:
            logger.warning("No night replacement for %s on %s; left empty for manual attention", assignment.location, day.isoformat())
            result.needs_attention.append(store.update_assigned_staff(assignment.id, [], needs_attention=True))
            result.issues.append(
                ScheduleIssue(day, "reconciliation_dead_end", f"No night replacement for {assignment.location}", "night", assignment.location)
            )
            continue

        logger.info("Replaced night staff at %s with %s", assignment.location, replacement.name)
        result.replaced.append(store.update_assigned_staff(assignment.id, [replacement.id]))

    return result
