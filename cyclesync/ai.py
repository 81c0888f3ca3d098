import anthropic

from config.settings import ANTHROPIC_API_KEY, REMINDER_MODEL, TIP_MODEL

client = anthropic.AsyncAnthropic(api_key=ANTHROPIC_API_KEY, max_retries=3)

SYSTEM_PROMPT = """You're CycleSync, a warm and knowledgeable companion for menstrual and fertility health.
Keep it casual and conversational, not clinical.
Be supportive with a light touch of humor, never corny.
Give practical, short tips, not long medical explanations.
Use 1-2 emojis per response, placed naturally.
If something sounds serious, gently recommend seeing a doctor.
Keep your response to 3-4 sentences max."""

GOAL_CONTEXT = {
    "cycle_tracking": "She tracks her cycle to understand her body.",
    "pregnancy_planning": "She is trying to conceive, so fertility timing matters to her.",
}

REMINDER_PROMPTS = {
    "period": "Her period is expected in {days} days. Write a short, caring heads-up with one practical way to prepare.",
    "fertile": "Her fertile window opens in {days} days. Write a short, upbeat heads-up that fits her goal.",
}


def _format_mood_context(recent_entries: list[dict] | None) -> str:
    if not recent_entries:
        return ""
    lines = []
    for entry in recent_entries[:3]:
        parts = [f"mood {entry['mood']}"]
        if entry.get("symptoms"):
            parts.append("symptoms: " + ", ".join(entry["symptoms"]))
        if entry.get("cramps_level"):
            parts.append(f"cramps {entry['cramps_level']}/10")
        if entry.get("notes"):
            parts.append(entry["notes"])
        lines.append(f"- {entry['date']}: " + "; ".join(parts))
    return "\n\nRecent mood log:\n" + "\n".join(lines)


def _extract_text(response) -> str:
    if response.content:
        return response.content[0].text
    return "I'm having a moment, try again in a sec!"


async def generate_tip(
    phase: str,
    cycle_day: int,
    tracking_goal: str = "cycle_tracking",
    recent_entries: list[dict] | None = None,
    age: int | None = None,
) -> str:
    """Generate a personal tip for the current cycle day."""
    mood_context = _format_mood_context(recent_entries)
    age_context = f" She is {age} years old." if age else ""
    goal_context = GOAL_CONTEXT.get(tracking_goal, "")

    user_msg = f"""It's day {cycle_day} of the menstrual cycle and the current phase is "{phase}".{age_context} {goal_context}{mood_context}

Give a short, encouraging tip for today."""

    response = await client.messages.create(
        model=TIP_MODEL,
        max_tokens=300,
        system=SYSTEM_PROMPT,
        messages=[{"role": "user", "content": user_msg}],
    )
    return _extract_text(response)


async def generate_reminder(kind: str, days_ahead: int, tracking_goal: str = "cycle_tracking") -> str:
    """Generate the body of a proactive reminder (period or fertile window)."""
    prompt = REMINDER_PROMPTS[kind].format(days=days_ahead)
    goal_context = GOAL_CONTEXT.get(tracking_goal, "")

    response = await client.messages.create(
        model=REMINDER_MODEL,
        max_tokens=200,
        system=SYSTEM_PROMPT,
        messages=[{"role": "user", "content": f"{goal_context}\n\n{prompt}"}],
    )
    return _extract_text(response)
