from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum

# Luteal phase is fixed at ~14 days before the end of the cycle.
LUTEAL_LENGTH = 14


class Phase(str, Enum):
    MENSTRUAL = "menstrual"
    FOLLICULAR = "follicular"
    OVULATION = "ovulation"
    LUTEAL = "luteal"


class PredictedMood(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    PMS = "pms"


@dataclass(frozen=True)
class CycleProfile:
    """Cycle parameters of one user. Callers validate before building one."""

    last_period_date: date
    cycle_length: int = 28
    period_length: int = 5

    @property
    def ovulation_day(self) -> int:
        return self.cycle_length - LUTEAL_LENGTH


@dataclass(frozen=True)
class CycleDay:
    date: date
    phase: Phase
    is_period_day: bool
    is_ovulation_day: bool
    fertility_score: int
    predicted_mood: PredictedMood


@dataclass(frozen=True)
class PeriodPrediction:
    next_period_date: date
    next_ovulation_date: date
    fertile_window_start: date
    fertile_window_end: date
    cycle_day: int
    phase: Phase
    days_until_period: int


def calculate_cycle_day(last_period_date: date, target_date: date) -> int:
    """Return the raw 1-based day offset. Not wrapped: may be zero or negative."""
    return (target_date - last_period_date).days + 1


def wrap_cycle_day(days_since_last_period: int, cycle_length: int) -> int:
    """Fold a day offset into a cycle day in [1, cycle_length].

    Negative offsets wrap backward through whole cycles, so the day before the
    last period is the final day of the previous cycle.
    """
    return days_since_last_period % cycle_length + 1


def calculate_phase(cycle_day: int, cycle_length: int, period_length: int) -> Phase:
    """Partition the cycle into four contiguous bands.

    Menstrual wins when it overlaps the ovulation band, which leaves the
    follicular band empty for long periods in short cycles.
    """
    if cycle_day <= period_length:
        return Phase.MENSTRUAL

    ovulation_day = cycle_length - LUTEAL_LENGTH
    if cycle_day <= ovulation_day - 2:
        return Phase.FOLLICULAR
    if cycle_day <= ovulation_day + 2:
        return Phase.OVULATION
    return Phase.LUTEAL


def calculate_fertility_score(cycle_day: int, cycle_length: int) -> int:
    """Step function of the distance to ovulation day, 0-100."""
    distance = abs(cycle_day - (cycle_length - LUTEAL_LENGTH))

    if distance == 0:
        return 100
    if distance == 1:
        return 90
    if distance == 2:
        return 75
    if distance == 3:
        return 50
    if distance <= 5:
        return 25
    return 0


def predict_mood(phase: Phase, cycle_day: int, cycle_length: int) -> PredictedMood:
    if phase is Phase.MENSTRUAL:
        return PredictedMood.LOW if cycle_day <= 2 else PredictedMood.MEDIUM
    if phase in (Phase.FOLLICULAR, Phase.OVULATION):
        return PredictedMood.HIGH
    # luteal
    if cycle_length - cycle_day <= 5:
        return PredictedMood.PMS
    return PredictedMood.MEDIUM


def build_cycle_day(profile: CycleProfile, target_date: date) -> CycleDay:
    days_since = (target_date - profile.last_period_date).days
    cycle_day = wrap_cycle_day(days_since, profile.cycle_length)
    phase = calculate_phase(cycle_day, profile.cycle_length, profile.period_length)
    ovulation_day = profile.ovulation_day

    return CycleDay(
        date=target_date,
        phase=phase,
        is_period_day=cycle_day <= profile.period_length,
        is_ovulation_day=ovulation_day - 1 <= cycle_day <= ovulation_day + 1,
        fertility_score=calculate_fertility_score(cycle_day, profile.cycle_length),
        predicted_mood=predict_mood(phase, cycle_day, profile.cycle_length),
    )


def generate_cycle_calendar(profile: CycleProfile, start_date: date, end_date: date) -> list[CycleDay]:
    """Return one CycleDay per date in [start_date, end_date], ascending."""
    days = []
    current = start_date
    while current <= end_date:
        days.append(build_cycle_day(profile, current))
        current += timedelta(days=1)
    return days


def calculate_ovulation_date(last_period_date: date, cycle_length: int) -> date:
    return last_period_date + timedelta(days=cycle_length - LUTEAL_LENGTH - 1)


def calculate_fertile_window(ovulation_date: date) -> tuple[date, date]:
    """Five days before ovulation through the day after."""
    return ovulation_date - timedelta(days=5), ovulation_date + timedelta(days=1)


def get_current_cycle_start(last_period_date: date, today: date, cycle_length: int = 28) -> date:
    """Get the start date of the cycle containing today."""
    delta = (today - last_period_date).days
    cycles_passed = delta // cycle_length
    return last_period_date + timedelta(days=cycles_passed * cycle_length)


def calculate_next_period(profile: CycleProfile, today: date | None = None) -> PeriodPrediction:
    """Forecast the next period, ovulation and fertile window from today."""
    today = today or date.today()
    cycle_day = wrap_cycle_day((today - profile.last_period_date).days, profile.cycle_length)
    days_until_period = profile.cycle_length - cycle_day + 1

    cycle_start = get_current_cycle_start(profile.last_period_date, today, profile.cycle_length)
    ovulation = calculate_ovulation_date(cycle_start, profile.cycle_length)
    if ovulation < today:
        ovulation += timedelta(days=profile.cycle_length)
    fertile_start, fertile_end = calculate_fertile_window(ovulation)

    return PeriodPrediction(
        next_period_date=today + timedelta(days=days_until_period),
        next_ovulation_date=ovulation,
        fertile_window_start=fertile_start,
        fertile_window_end=fertile_end,
        cycle_day=cycle_day,
        phase=calculate_phase(cycle_day, profile.cycle_length, profile.period_length),
        days_until_period=days_until_period,
    )


def days_until(target: date, today: date | None = None) -> int:
    today = today or date.today()
    return (target - today).days


PHASE_LABELS = {
    Phase.MENSTRUAL: "\U0001fa78 Period",
    Phase.FOLLICULAR: "\U0001f331 Follicular",
    Phase.OVULATION: "✨ Ovulation",
    Phase.LUTEAL: "\U0001f319 Luteal",
}

PHASE_COLORS = {
    Phase.MENSTRUAL: "#FF6B8A",
    Phase.FOLLICULAR: "#A8E6CF",
    Phase.OVULATION: "#FF9F7A",
    Phase.LUTEAL: "#C4A3FF",
}

PHASE_DESCRIPTIONS = {
    Phase.MENSTRUAL: "Your period is here. Rest up and be gentle with yourself \U0001f49b",
    Phase.FOLLICULAR: "Estrogen is rising and energy is coming back \U0001f338",
    Phase.OVULATION: "Peak energy and peak fertility, you're glowing ✨",
    Phase.LUTEAL: "Progesterone is up. Slowing down a little is totally fine \U0001f319",
}

MOOD_LABELS = {
    PredictedMood.HIGH: "\U0001f60a High energy",
    PredictedMood.MEDIUM: "\U0001f642 Balanced",
    PredictedMood.LOW: "\U0001f614 Low energy",
    PredictedMood.PMS: "⚡ PMS likely",
}


def get_phase_detail(phase: Phase, cycle_length: int = 28, period_length: int = 5) -> str:
    """Return phase detail text with the day ranges for this cycle."""
    ovulation_day = cycle_length - LUTEAL_LENGTH
    follicular_end = ovulation_day - 2
    ovulation_start = max(ovulation_day - 1, period_length + 1)
    luteal_start = max(ovulation_day + 3, period_length + 1)

    if phase is Phase.MENSTRUAL:
        return (
            f"\U0001fa78 *Period Phase (Day 1-{period_length})*\n\n"
            "Your body is shedding the uterine lining.\n"
            "Cramps, back pain and fatigue are common.\n\n"
            "\U0001f49b Tips:\n"
            "- Get plenty of rest\n"
            "- Warm drinks and a heating pad\n"
            "- Iron-rich foods\n"
            "- Light exercise like walking"
        )
    if phase is Phase.FOLLICULAR:
        if follicular_end <= period_length:
            days = "short this cycle"
        else:
            days = f"Day {period_length + 1}-{follicular_end}"
        return (
            f"\U0001f331 *Follicular Phase ({days})*\n\n"
            "Estrogen is rising, energy and focus come back.\n\n"
            "\U0001f49b Tips:\n"
            "- Great time to start new projects\n"
            "- High-energy workouts\n"
            "- Protein-rich meals"
        )
    if phase is Phase.OVULATION:
        return (
            f"✨ *Ovulation Phase (Day {ovulation_start}-{ovulation_day + 2})*\n\n"
            "Fertility peaks around day "
            f"{ovulation_day}. Confidence and social drive are high.\n\n"
            "\U0001f49b Tips:\n"
            "- Make the most of your energy\n"
            "- Intense workouts are fine\n"
            "- Stay hydrated"
        )
    return (
        f"\U0001f319 *Luteal Phase (Day {luteal_start}-{cycle_length})*\n\n"
        "Progesterone rises and energy may dip. PMS can show up in the last "
        "few days.\n\n"
        "\U0001f49b Tips:\n"
        "- High-fiber foods\n"
        "- Magnesium and vitamin B6\n"
        "- Gentle exercise like yoga"
    )
