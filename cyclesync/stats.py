"""Cycle statistics learned from logged period starts."""

from dataclasses import dataclass, field
from datetime import date

MIN_VALID_GAP = 18
MAX_VALID_GAP = 45
TRACKED_CYCLES = 6
REGULARITY_SPREAD = 7


@dataclass
class CycleStats:
    average_cycle_length: int
    average_period_length: int
    total_cycles_tracked: int
    cycle_regularity: str  # regular | irregular | unknown
    last_six_cycles: list[int] = field(default_factory=list)


def _is_valid_gap(gap: int) -> bool:
    return MIN_VALID_GAP <= gap <= MAX_VALID_GAP


def cycle_gaps(period_starts: list[date]) -> list[int]:
    """Return plausible cycle lengths between consecutive starts, oldest first."""
    starts = sorted(set(period_starts))
    gaps = [(later - earlier).days for earlier, later in zip(starts, starts[1:])]
    return [g for g in gaps if _is_valid_gap(g)]


def calculate_cycle_stats(
    period_logs: list[dict],
    default_cycle_length: int = 28,
    default_period_length: int = 5,
) -> CycleStats:
    """Summarise period logs (dicts with ``start_date`` and ``period_length``).

    Falls back to the profile defaults when there is not enough history.
    """
    starts = [date.fromisoformat(log["start_date"]) for log in period_logs]
    gaps = cycle_gaps(starts)
    last_six = gaps[-TRACKED_CYCLES:]

    if last_six:
        average_cycle = round(sum(last_six) / len(last_six))
    else:
        average_cycle = default_cycle_length

    lengths = [log["period_length"] for log in period_logs if log.get("period_length")]
    if lengths:
        average_period = round(sum(lengths) / len(lengths))
    else:
        average_period = default_period_length

    if len(last_six) < 3:
        regularity = "unknown"
    elif max(last_six) - min(last_six) <= REGULARITY_SPREAD:
        regularity = "regular"
    else:
        regularity = "irregular"

    return CycleStats(
        average_cycle_length=average_cycle,
        average_period_length=average_period,
        total_cycles_tracked=len(gaps),
        cycle_regularity=regularity,
        last_six_cycles=last_six,
    )


def learn_cycle_length(previous_start: date, new_start: date, current_length: int) -> int | None:
    """Blend an observed cycle into the stored length, or None if it looks off."""
    gap = (new_start - previous_start).days
    if gap <= 0 or not _is_valid_gap(gap):
        return None
    return round(gap * 0.7 + current_length * 0.3)
