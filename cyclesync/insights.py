from datetime import date
from enum import Enum

from cyclesync.cycle import CycleDay, Phase, PredictedMood


class TrackingGoal(str, Enum):
    CYCLE_TRACKING = "cycle_tracking"
    PREGNANCY_PLANNING = "pregnancy_planning"


class FertilityLevel(str, Enum):
    PEAK = "peak"
    HIGH = "high"
    MODERATE = "moderate"
    LOW = "low"


GOAL_LABELS = {
    TrackingGoal.CYCLE_TRACKING: "\U0001f4c5 Cycle tracking",
    TrackingGoal.PREGNANCY_PLANNING: "\U0001f476 Pregnancy planning",
}

FERTILITY_LEVEL_LABELS = {
    FertilityLevel.PEAK: "\U0001f534 Peak",
    FertilityLevel.HIGH: "\U0001f7e0 High",
    FertilityLevel.MODERATE: "\U0001f7e1 Moderate",
    FertilityLevel.LOW: "\U0001f7e2 Low",
}

GENERAL_TIPS = [
    "Track your mood and symptoms for better cycle understanding",
    "Maintain a healthy diet rich in vitamins and minerals",
    "Stay hydrated and get adequate sleep",
    "Exercise regularly but avoid overexertion during your period",
]

CONCEPTION_TIPS = {
    FertilityLevel.PEAK: [
        "This is your most fertile time! Consider intimate moments today",
        "Eat antioxidant-rich foods like berries and leafy greens",
        "Stay hydrated and maintain a healthy BMI",
        "Avoid excessive stress and get quality sleep",
    ],
    FertilityLevel.HIGH: [
        "Your fertile window is open, a great time for conception",
        "Take folic acid supplements if trying to conceive",
        "Limit caffeine and alcohol consumption",
        "Consider ovulation predictor kits for precise timing",
    ],
    FertilityLevel.MODERATE: [
        "Fertility is moderate, still a good time to try",
        "Focus on a balanced diet with protein and healthy fats",
        "Light exercise like yoga can help with circulation",
        "Track cervical mucus changes for better timing",
    ],
    FertilityLevel.LOW: [
        "Low fertility period, focus on overall health",
        "Take prenatal vitamins if planning pregnancy",
        "Plan something romantic for your upcoming fertile window",
        "Use this time to reduce stress and practice self-care",
    ],
}

CARE_SUGGESTIONS = [
    "Buy their favorite chocolates \U0001f36b",
    "Prepare a warm heating pad \U0001f525",
    "Get their favorite comfort snacks \U0001f37f",
    "Plan a cozy movie night \U0001f3ac",
    "Surprise them with flowers \U0001f338",
    "Make their favorite tea ☕",
    "Give them extra hugs today \U0001f917",
    "Order their favorite takeout \U0001f355",
    "Run a warm bath for them \U0001f6c1",
    "Be extra patient and understanding \U0001f49d",
    "Bring home their favorite ice cream \U0001f366",
    "Let them choose tonight's activities \U0001f3af",
]

PARTNER_MOOD_HINTS = {
    Phase.MENSTRUAL: "They might be experiencing discomfort",
    Phase.FOLLICULAR: "They're likely feeling energetic",
    Phase.OVULATION: "They're probably feeling confident",
    Phase.LUTEAL: "They might need extra support",
}

CALENDAR_LEGEND = (
    "\U0001fa78 period  ✨ ovulation  \U0001f33c fertile (planning)  "
    "\U0001f7e2 fertile  \U0001f331 follicular  \U0001f538 ovulation phase  "
    "\U0001f319 luteal  ⚡ PMS"
)


def fertility_level(days_to_ovulation: int) -> FertilityLevel:
    if -1 <= days_to_ovulation <= 0:
        return FertilityLevel.PEAK
    if -2 <= days_to_ovulation <= 2:
        return FertilityLevel.HIGH
    if -3 <= days_to_ovulation <= 5:
        return FertilityLevel.MODERATE
    return FertilityLevel.LOW


def fertility_tips(goal: TrackingGoal, level: FertilityLevel) -> list[str]:
    if goal is not TrackingGoal.PREGNANCY_PLANNING:
        return list(GENERAL_TIPS)
    return list(CONCEPTION_TIPS[level])


def partner_mood_hint(phase: Phase, predicted_mood: PredictedMood) -> str:
    if predicted_mood is PredictedMood.PMS:
        return "They might be feeling emotional"
    return PARTNER_MOOD_HINTS[phase]


def care_suggestion(today: date) -> str:
    """Pick a care suggestion that changes once a day."""
    return CARE_SUGGESTIONS[today.toordinal() % len(CARE_SUGGESTIONS)]


def calendar_marker(day: CycleDay, goal: TrackingGoal) -> str:
    """Marker for one calendar cell: period, then ovulation, then fertility, then phase."""
    if day.is_period_day:
        return "\U0001fa78"
    if day.is_ovulation_day:
        return "✨"
    if day.fertility_score > 50:
        if goal is TrackingGoal.PREGNANCY_PLANNING:
            return "\U0001f33c"
        return "\U0001f7e2"
    if day.predicted_mood is PredictedMood.PMS:
        return "⚡"
    if day.phase is Phase.FOLLICULAR:
        return "\U0001f331"
    if day.phase is Phase.OVULATION:
        return "\U0001f538"
    return "\U0001f319"
