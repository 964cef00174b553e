from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Collection, Iterable, MutableSet

from prison_scheduler.conflicts import exclude_conflicts
from prison_scheduler.domain import ScheduleAssignment, ScheduleIssue, Shift, StaffMember
from prison_scheduler.eligibility import filter_eligible
from prison_scheduler.locations import PlanSlot, SchedulerConfig
from prison_scheduler.reconcile import ReconcileResult, reconcile_cross_shift
from prison_scheduler.rotation import select_with_rotation
from prison_scheduler.store import PersistenceError, ScheduleStore

logger = logging.getLogger(__name__)


@dataclass
class GenerationResult:
    date: date
    shift: Shift
    assignments: list[ScheduleAssignment] = field(default_factory=list)
    issues: list[ScheduleIssue] = field(default_factory=list)
    deleted: int = 0


@dataclass
class DailyResult:
    day: GenerationResult
    night: GenerationResult
    reconciliation: ReconcileResult

    @property
    def assignments(self) -> list[ScheduleAssignment]:
        return self.day.assignments + self.night.assignments


def build_assignment(
    day: date,
    shift: Shift,
    location: str,
    staff: list[StaffMember],
    config: SchedulerConfig,
    created_by: str | None = None,
) -> ScheduleAssignment:
    window = config.window_for(location, shift)
    names = [s.name for s in staff]
    return ScheduleAssignment(
        location=location,
        shift=shift,
        date=day,
        start_time=window.start,
        end_time=window.end,
        assigned_staff_ids=[s.id for s in staff],
        staff_names=names,
        title=location,
        type=config.rule_for(location).schedule_type,
        priority="Medium",
        status="Scheduled",
        is_auto_scheduled=True,
        description=f"Auto-scheduled {shift} shift for {location} - Assigned {len(staff)} staff",
        notes=f"Auto-generated schedule for {shift} shift. Staff: {', '.join(names)}",
        created_by=created_by,
    )


def schedule_location(
    day: date,
    shift: Shift,
    location: str,
    available_staff: Iterable[StaffMember],
    used_staff_ids: MutableSet[int],
    config: SchedulerConfig,
    required_count: int | None = None,
    previous_day_staff_ids: Collection[int] = (),
    created_by: str | None = None,
) -> ScheduleAssignment | None:
    """Staff one location, or return None when it has to stay empty this run.

    ``available_staff`` must already be conflict-free for the date and shift.
    Every selected id is added to ``used_staff_ids``.
    """
    rule = config.rule_for(location)
    count = required_count if required_count is not None else rule.required_count
    unused = [s for s in available_staff if s.id not in used_staff_ids]

    suitable = filter_eligible(unused, rule.eligibility, location)
    if not suitable:
        if rule.strict:
            logger.warning("No eligible staff for %s (%s shift, %s); strict location skipped", location, shift, day.isoformat())
            return None
        logger.info("No eligible staff for %s (%s shift, %s); falling back to any available staff", location, shift, day.isoformat())
        suitable = unused
    if not suitable:
        logger.warning("No available staff for %s (%s shift, %s); location skipped", location, shift, day.isoformat())
        return None

    selected = select_with_rotation(suitable, count, day, location, used_staff_ids, previous_day_staff_ids)
    if not selected:
        logger.warning("No staff selected for %s (%s shift, %s); location skipped", location, shift, day.isoformat())
        return None

    used_staff_ids.update(s.id for s in selected)
    logger.debug("%s %s shift: selected %s", location, shift, ", ".join(s.name for s in selected))
    return build_assignment(day, shift, location, selected, config, created_by)


def _skip_issue(day: date, shift: Shift, location: str, strict: bool) -> ScheduleIssue:
    if strict:
        return ScheduleIssue(day, "no_eligible_staff", f"No qualified staff for {location}", shift, location)
    return ScheduleIssue(day, "no_available_staff", f"No available staff for {location}", shift, location)


def generate_auto_schedule(
    store: ScheduleStore,
    day: date,
    shift: Shift,
    created_by: str | None = None,
    config: SchedulerConfig | None = None,
) -> GenerationResult:
    """Replace the auto-generated assignments for one date and shift.

    Manual assignments are left alone and count as existing bookings. Store
    errors other than a single failed save propagate; by then the previous
    auto assignments for this date and shift are already gone.
    """
    config = config or SchedulerConfig.from_env()
    result = GenerationResult(date=day, shift=shift)
    result.deleted = store.delete_assignments(day, shift, auto_only=True)

    roster = store.list_active_staff()
    staff_by_id = {s.id: s for s in roster}
    leave = store.list_approved_leave(day, day)
    existing = store.find_assignments(day)
    previous_by_location: dict[str, set[int]] = defaultdict(set)
    for assignment in store.find_assignments(day - timedelta(days=1)):
        previous_by_location[assignment.location].update(assignment.assigned_staff_ids)

    shift_window = config.shift_windows[shift]
    plan = config.plan_for(shift)
    cap = config.max_schedules_per_shift
    used_staff_ids: set[int] = set()
    drafts: list[ScheduleAssignment] = []
    placed: dict[str, ScheduleAssignment] = {}

    for index, slot in enumerate(plan):
        if len(drafts) >= cap:
            remaining = [s.location for s in plan[index:]]
            logger.info("Reached max schedules for %s shift (cap=%d); skipping %s", shift, cap, ", ".join(remaining))
            result.issues.append(
                ScheduleIssue(day, "capacity_reached", f"Cap of {cap} reached; skipped {', '.join(remaining)}", shift)
            )
            break

        draft = _plan_slot(day, shift, slot, roster, staff_by_id, existing, leave, previous_by_location,
                           used_staff_ids, placed, shift_window, config, created_by)
        if draft is None:
            result.issues.append(_skip_issue(day, shift, slot.location, config.rule_for(slot.location).strict))
            continue
        drafts.append(draft)
        placed[slot.location] = draft

    for draft in drafts:
        if not draft.assigned_staff_ids:
            logger.error("Refusing to save %s with no staff", draft.location)
            continue
        try:
            saved = store.save_assignment(draft)
        except PersistenceError as exc:
            logger.warning("Could not save schedule for %s: %s", draft.location, exc)
            result.issues.append(ScheduleIssue(day, "persistence_failure", str(exc), shift, draft.location))
            continue
        result.assignments.append(saved)

    logger.info(
        "Created %d auto-schedule(s) for %s %s shift (%d issue(s))",
        len(result.assignments), day.isoformat(), shift, len(result.issues),
    )
    return result


def _plan_slot(day, shift, slot: PlanSlot, roster, staff_by_id, existing, leave, previous_by_location,
               used_staff_ids, placed, shift_window, config, created_by):
    if slot.shares_staff_with:
        source = placed.get(slot.shares_staff_with)
        if source is None:
            logger.warning("%s shares staff with %s, which was not staffed", slot.location, slot.shares_staff_with)
            return None
        staff = [staff_by_id[sid] for sid in source.assigned_staff_ids]
        return build_assignment(day, shift, slot.location, staff, config, created_by)

    available = exclude_conflicts(roster, day, shift, slot.location, shift_window, existing, leave)
    return schedule_location(
        day,
        shift,
        slot.location,
        available,
        used_staff_ids,
        config,
        required_count=config.required_count(slot),
        previous_day_staff_ids=previous_by_location.get(slot.location, ()),
        created_by=created_by,
    )


def generate_both_shifts(
    store: ScheduleStore,
    day: date,
    created_by: str | None = None,
    config: SchedulerConfig | None = None,
) -> DailyResult:
    config = config or SchedulerConfig.from_env()
    # Clear the old night first so the day run does not rotate around stale night picks.
    store.delete_assignments(day, "night", auto_only=True)
    day_result = generate_auto_schedule(store, day, "day", created_by, config)
    night_result = generate_auto_schedule(store, day, "night", created_by, config)
    reconciliation = reconcile_cross_shift(store, day, config)
    if reconciliation.changed:
        night_result.assignments = [a for a in store.find_assignments(day, "night") if a.is_auto_scheduled]
    logger.info(
        "Generated %d day and %d night schedule(s) for %s",
        len(day_result.assignments), len(night_result.assignments), day.isoformat(),
    )
    return DailyResult(day=day_result, night=night_result, reconciliation=reconciliation)
