from __future__ import annotations

import os
from dataclasses import dataclass, field

from prison_scheduler.domain import SHIFT_WINDOWS, VISITING_WINDOW, Shift, ShiftWindow
from prison_scheduler.eligibility import (
    ADMINISTRATION,
    ANY_STAFF,
    BLOCK_SECURITY,
    CONTROL_ROOM_OFFICERS,
    MEDICAL_ONLY,
    EligibilityRule,
)

BLOCK_PREFIXES = ("Block A", "Block B")
DEFAULT_MAX_SCHEDULES_PER_SHIFT = 12


@dataclass(frozen=True)
class LocationRule:
    name: str
    eligibility: EligibilityRule = ANY_STAFF
    required_count: int = 1
    schedule_type: str = "Security"
    window_override: ShiftWindow | None = None

    @property
    def strict(self) -> bool:
        return self.eligibility.strict


@dataclass(frozen=True)
class PlanSlot:
    """One location visited by a shift run.

    ``required_count`` overrides the location's default head count.
    ``shares_staff_with`` names an earlier slot whose selected staff also
    cover this one (e.g. a block's dining room reuses the cell officers).
    """

    location: str
    required_count: int | None = None
    shares_staff_with: str | None = None


def _block_rules(block: str) -> list[LocationRule]:
    return [
        LocationRule(f"{block} - Cells", BLOCK_SECURITY, required_count=2),
        LocationRule(f"{block} - Dining Room", BLOCK_SECURITY, required_count=2),
        LocationRule(f"{block} - Yard", BLOCK_SECURITY),
        LocationRule(f"{block} - Common Area", BLOCK_SECURITY),
    ]


LOCATION_RULES: dict[str, LocationRule] = {
    rule.name: rule
    for rule in [
        LocationRule("Main Gate"),
        LocationRule("Control Room", CONTROL_ROOM_OFFICERS),
        LocationRule("Medical Room", MEDICAL_ONLY, schedule_type="Medical"),
        LocationRule("Kitchen", schedule_type="Work"),
        LocationRule("Visitor Area", window_override=VISITING_WINDOW),
        LocationRule("Library"),
        LocationRule("Admin Office", ADMINISTRATION),
        LocationRule("Staff Room"),
        LocationRule("Workshop", schedule_type="Work"),
        LocationRule("Isolation"),
        *_block_rules("Block A"),
        *_block_rules("Block B"),
    ]
}

# Strict posts go first, then the paired block posts, then posts any officer can fill.
DAY_PLAN: tuple[PlanSlot, ...] = (
    PlanSlot("Control Room"),
    PlanSlot("Medical Room"),
    PlanSlot("Block A - Cells"),
    PlanSlot("Block A - Dining Room", shares_staff_with="Block A - Cells"),
    PlanSlot("Block B - Cells"),
    PlanSlot("Block B - Dining Room", shares_staff_with="Block B - Cells"),
    PlanSlot("Main Gate"),
    PlanSlot("Admin Office"),
    PlanSlot("Kitchen"),
    PlanSlot("Visitor Area"),
    PlanSlot("Staff Room"),
)

NIGHT_PLAN: tuple[PlanSlot, ...] = (
    PlanSlot("Control Room"),
    PlanSlot("Medical Room"),
    PlanSlot("Block A - Cells", required_count=1),
    PlanSlot("Block B - Cells", required_count=1),
    PlanSlot("Main Gate"),
)


class ConfigError(ValueError):
    """A scheduler setting read from the environment is unusable."""


def max_schedules_from_env() -> int:
    raw = os.getenv("MAX_SCHEDULES_PER_SHIFT", "")
    if not raw.strip():
        return DEFAULT_MAX_SCHEDULES_PER_SHIFT
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"MAX_SCHEDULES_PER_SHIFT must be a whole number, got {raw!r}") from None
    if value < 1:
        raise ConfigError("MAX_SCHEDULES_PER_SHIFT must be at least 1")
    return value



@dataclass(frozen=True)
class SchedulerConfig:
    locations: dict[str, LocationRule] = field(default_factory=lambda: dict(LOCATION_RULES))
    plans: dict[str, tuple[PlanSlot, ...]] = field(default_factory=lambda: {"day": DAY_PLAN, "night": NIGHT_PLAN})
    shift_windows: dict[str, ShiftWindow] = field(default_factory=lambda: dict(SHIFT_WINDOWS))
    max_schedules_per_shift: int = DEFAULT_MAX_SCHEDULES_PER_SHIFT

    @classmethod
    def from_env(cls) -> SchedulerConfig:
        return cls(max_schedules_per_shift=max_schedules_from_env())

    def rule_for(self, location: str) -> LocationRule:
        rule = self.locations.get(location)
        if rule is not None:
            return rule
        if location.startswith(BLOCK_PREFIXES):
            return LocationRule(location, BLOCK_SECURITY)
        return LocationRule(location)

    def plan_for(self, shift: Shift) -> tuple[PlanSlot, ...]:
        return self.plans[shift]

    def window_for(self, location: str, shift: Shift) -> ShiftWindow:
        rule = self.rule_for(location)
        return rule.window_override or self.shift_windows[shift]

    def required_count(self, slot: PlanSlot) -> int:
        if slot.required_count is not None:
            return slot.required_count
        return self.rule_for(slot.location).required_count
