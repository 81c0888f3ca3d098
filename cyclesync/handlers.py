import asyncio
import calendar
import functools
import logging
import re
import secrets
import string
import time
from collections import defaultdict
from datetime import date, datetime

from telegram import Update, InlineKeyboardButton, InlineKeyboardMarkup
from telegram.ext import ContextTypes

from config.settings import VERSION
from cyclesync import mailer
from cyclesync.ai import generate_tip
from cyclesync.cycle import (
    CycleProfile,
    build_cycle_day,
    calculate_next_period,
    days_until,
    generate_cycle_calendar,
    get_phase_detail,
    MOOD_LABELS,
    PHASE_DESCRIPTIONS,
    PHASE_LABELS,
)
from cyclesync.db import Database
from cyclesync.insights import (
    CALENDAR_LEGEND,
    FERTILITY_LEVEL_LABELS,
    GOAL_LABELS,
    TrackingGoal,
    calendar_marker,
    care_suggestion,
    fertility_level,
    fertility_tips,
    partner_mood_hint,
)
from cyclesync.stats import calculate_cycle_stats, learn_cycle_length

MIN_CYCLE_LENGTH = 21
MAX_CYCLE_LENGTH = 45
MIN_PERIOD_LENGTH = 1
MAX_PERIOD_LENGTH = 10
MAX_NOTE_LENGTH = 500
AI_RATE_LIMIT = 5
AI_RATE_WINDOW = 60.0
_ai_call_timestamps: dict[int, list[float]] = defaultdict(list)

MOODS = {
    "excellent": "\U0001f60a",
    "good": "\U0001f642",
    "okay": "\U0001f610",
    "low": "\U0001f614",
    "terrible": "\U0001f622",
}

SYMPTOMS = [
    "Cramps",
    "Headache",
    "Bloating",
    "Breast tenderness",
    "Mood swings",
    "Acne",
    "Fatigue",
    "Food cravings",
    "Back pain",
    "Nausea",
    "Irritability",
    "Anxiety",
]

PROTECTION_METHODS = {
    "none": "No protection",
    "condom": "Condom",
    "withdrawal": "Withdrawal",
    "other": "Other",
}

PARTNER_CODE_ALPHABET = string.ascii_uppercase + string.digits
PARTNER_CODE_LENGTH = 6
EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
TIME_RE = re.compile(r"^\d{1,2}:\d{2}$")

logger = logging.getLogger(__name__)


def _check_ai_rate_limit(chat_id: int) -> bool:
    """Return True if the user is within rate limits."""
    now = time.monotonic()
    timestamps = _ai_call_timestamps[chat_id]
    _ai_call_timestamps[chat_id] = [t for t in timestamps if now - t < AI_RATE_WINDOW]
    if len(_ai_call_timestamps[chat_id]) >= AI_RATE_LIMIT:
        return False
    _ai_call_timestamps[chat_id].append(now)
    return True


def _escape_markdown(text: str) -> str:
    """Escape Markdown V1 special characters in user-generated text."""
    for char in ('*', '_', '`', '['):
        text = text.replace(char, '\\' + char)
    return text


MAIN_KEYBOARD = InlineKeyboardMarkup([
    [
        InlineKeyboardButton("📊 Today", callback_data="status"),
        InlineKeyboardButton("📅 Calendar", callback_data="calendar"),
    ],
    [
        InlineKeyboardButton("🩸 Period Started!", callback_data="period"),
        InlineKeyboardButton("🔮 Next Dates", callback_data="next"),
    ],
    [
        InlineKeyboardButton("🌀 Phase Details", callback_data="phase"),
        InlineKeyboardButton("🌼 Fertility Insights", callback_data="insights"),
    ],
    [
        InlineKeyboardButton("📋 Mood History", callback_data="history"),
        InlineKeyboardButton("💡 Tip", callback_data="tip"),
    ],
    [
        InlineKeyboardButton("⚙️ Settings", callback_data="settings"),
    ],
])

BACK_KEYBOARD = InlineKeyboardMarkup([
    [InlineKeyboardButton("🔙 Back to Menu", callback_data="menu")],
])

PERIOD_CONFIRM_KEYBOARD = InlineKeyboardMarkup([
    [
        InlineKeyboardButton("✅ Yes, Today!", callback_data="period_confirm"),
        InlineKeyboardButton("🔙 Cancel", callback_data="menu"),
    ],
])

SETUP_HINT = (
    "Use: `/setup <cycle_length> <period_length> <last_period_date> [goal]`\n"
    "Example: `/setup 28 5 2026-02-15`\n"
    "Goal is `cycle_tracking` (default) or `pregnancy_planning`."
)


# ── Auth decorators (3 tiers) ──────────────────────────────────────

def whitelisted(func):
    """Decorator: any whitelisted (active) user."""
    @functools.wraps(func)
    async def wrapper(update: Update, context: ContextTypes.DEFAULT_TYPE):
        chat_id = update.effective_chat.id
        db = get_db(context)
        if not db.is_user_authorized(chat_id):
            if update.message:
                await update.message.reply_text("Sorry, this bot is invite-only 💔")
            return
        return await func(update, context)
    return wrapper


def authorized(func):
    """Decorator: whitelisted + has completed onboarding (has a profile)."""
    @functools.wraps(func)
    async def wrapper(update: Update, context: ContextTypes.DEFAULT_TYPE):
        chat_id = update.effective_chat.id
        db = get_db(context)
        if not db.is_user_authorized(chat_id):
            if update.message:
                await update.message.reply_text("Sorry, this bot is invite-only 💔")
            return
        if not db.user_has_config(chat_id):
            if update.message:
                await update.message.reply_text(
                    f"Let's set up your cycle first!\n{SETUP_HINT}",
                    parse_mode="Markdown",
                )
            return
        return await func(update, context)
    return wrapper


def authorized_callback(func):
    """Decorator for callback query handlers: whitelisted + onboarding done."""
    @functools.wraps(func)
    async def wrapper(update: Update, context: ContextTypes.DEFAULT_TYPE):
        chat_id = update.effective_chat.id
        db = get_db(context)
        if not db.is_user_authorized(chat_id):
            await update.callback_query.answer("Not authorized")
            return
        if not db.user_has_config(chat_id):
            await update.callback_query.answer("Please run /setup first")
            return
        return await func(update, context)
    return wrapper


def admin_only(func):
    """Decorator: admin-only commands."""
    @functools.wraps(func)
    async def wrapper(update: Update, context: ContextTypes.DEFAULT_TYPE):
        chat_id = update.effective_chat.id
        db = get_db(context)
        if not db.is_admin(chat_id):
            if update.message:
                await update.message.reply_text("This command is admin-only 🔒")
            return
        return await func(update, context)
    return wrapper


# ── Helpers ─────────────────────────────────────────────────────────

def get_db(context: ContextTypes.DEFAULT_TYPE) -> Database:
    return context.bot_data["db"]


def validate_cycle_values(cycle_length: int, period_length: int) -> str | None:
    """Return an error message for an invalid combination, None when fine."""
    if not MIN_CYCLE_LENGTH <= cycle_length <= MAX_CYCLE_LENGTH:
        return f"Cycle length should be between {MIN_CYCLE_LENGTH} and {MAX_CYCLE_LENGTH} days."
    if not MIN_PERIOD_LENGTH <= period_length <= MAX_PERIOD_LENGTH:
        return f"Period length should be between {MIN_PERIOD_LENGTH} and {MAX_PERIOD_LENGTH} days."
    if period_length >= cycle_length:
        return "Period length has to be shorter than the cycle length."
    return None


def parse_tracking_goal(value: str) -> TrackingGoal | None:
    try:
        return TrackingGoal(value.lower())
    except ValueError:
        return None


def parse_level(value: str) -> int:
    level = int(value)
    if not 0 <= level <= 10:
        raise ValueError("Levels go from 0 to 10.")
    return level


def parse_symptoms(value: str) -> list[str]:
    lookup = {s.lower(): s for s in SYMPTOMS}
    symptoms = []
    for raw in value.split(","):
        name = raw.strip().replace("_", " ").lower()
        if not name:
            continue
        if name not in lookup:
            raise ValueError(f"Unknown symptom: {raw.strip()}")
        symptoms.append(lookup[name])
    return symptoms


def parse_mood_args(args: list[str]) -> dict:
    """Parse `/mood <mood> [cramps=N] [energy=N] [symptoms=a,b] [note...]`.

    Raises ValueError with a user-facing message on bad input.
    """
    if not args:
        raise ValueError("Tell me your mood first.")
    mood = args[0].lower()
    if mood not in MOODS:
        raise ValueError("Mood must be one of: " + ", ".join(MOODS))

    entry = {"mood": mood, "symptoms": [], "cramps_level": 0, "energy_level": 5}
    note_words = []
    for token in args[1:]:
        key, sep, value = token.partition("=")
        key = key.lower()
        if sep and key in ("cramps", "pain"):
            try:
                entry["cramps_level"] = parse_level(value)
            except ValueError:
                raise ValueError("Cramps level must be a number from 0 to 10.") from None
        elif sep and key == "energy":
            try:
                entry["energy_level"] = parse_level(value)
            except ValueError:
                raise ValueError("Energy level must be a number from 0 to 10.") from None
        elif sep and key == "symptoms":
            entry["symptoms"] = parse_symptoms(value)
        else:
            note_words.append(token)
    entry["notes"] = " ".join(note_words)[:MAX_NOTE_LENGTH]
    return entry


def new_partner_code() -> str:
    return "".join(secrets.choice(PARTNER_CODE_ALPHABET) for _ in range(PARTNER_CODE_LENGTH))


def render_calendar(profile: CycleProfile, goal: TrackingGoal, year: int, month: int, today: date) -> str:
    """Month view: one line per week, each day as number + marker."""
    first = date(year, month, 1)
    last = date(year, month, calendar.monthrange(year, month)[1])
    days = generate_cycle_calendar(profile, first, last)

    lines = [f"📅 *{first:%B %Y}*\n"]
    week = []
    for day in days:
        label = f"*{day.date.day}*" if day.date == today else str(day.date.day)
        week.append(f"{label}{calendar_marker(day, goal)}")
        if day.date.weekday() == 6:
            lines.append(" ".join(week))
            week = []
    if week:
        lines.append(" ".join(week))

    lines.append(f"\n{CALENDAR_LEGEND}")
    return "\n".join(lines)


def _profile_and_goal(db: Database, chat_id: int) -> tuple[CycleProfile, TrackingGoal]:
    config = db.get_user_config(chat_id)
    return db.get_profile(chat_id), TrackingGoal(config["tracking_goal"])


def _status_text(db: Database, chat_id: int) -> str:
    profile, goal = _profile_and_goal(db, chat_id)
    today = date.today()
    prediction = calculate_next_period(profile, today)
    day = build_cycle_day(profile, today)

    text = (
        f"📊 *Today*\n\n"
        f"📅 Cycle day: *{prediction.cycle_day}* of {profile.cycle_length}\n"
        f"Phase: *{PHASE_LABELS[day.phase]}*\n"
        f"Predicted mood: {MOOD_LABELS[day.predicted_mood]}\n"
        f"Fertility score: *{day.fertility_score}*/100\n"
        f"🩸 Next period in *{prediction.days_until_period}* days\n\n"
        f"{PHASE_DESCRIPTIONS[day.phase]}"
    )
    if goal is TrackingGoal.PREGNANCY_PLANNING and day.fertility_score > 50:
        text += "\n\n🌼 High fertility today."
    return text


def _next_text(db: Database, chat_id: int) -> str:
    profile = db.get_profile(chat_id)
    today = date.today()
    p = calculate_next_period(profile, today)
    return (
        f"🔮 *Upcoming Dates*\n\n"
        f"🩸 Next period: *{p.next_period_date}* ({p.days_until_period} days)\n"
        f"✨ Next ovulation: *{p.next_ovulation_date}* ({days_until(p.next_ovulation_date, today)} days)\n"
        f"🌼 Fertile window: *{p.fertile_window_start}* to *{p.fertile_window_end}*"
    )


def _phase_text(db: Database, chat_id: int) -> str:
    profile = db.get_profile(chat_id)
    prediction = calculate_next_period(profile)
    return get_phase_detail(prediction.phase, profile.cycle_length, profile.period_length)


def _insights_text(db: Database, chat_id: int) -> str:
    profile, goal = _profile_and_goal(db, chat_id)
    today = date.today()
    prediction = calculate_next_period(profile, today)
    level = fertility_level(profile.ovulation_day - prediction.cycle_day)
    score = build_cycle_day(profile, today).fertility_score

    lines = [
        "🌼 *Fertility Insights*\n",
        f"Goal: {GOAL_LABELS[goal]}",
        f"Fertility level: *{FERTILITY_LEVEL_LABELS[level]}* (score {score}/100)",
        f"Fertile window: {prediction.fertile_window_start} to {prediction.fertile_window_end}",
        f"Ovulation: {prediction.next_ovulation_date}\n",
        "💛 Tips:",
    ]
    lines.extend(f"- {tip}" for tip in fertility_tips(goal, level))
    lines.append("\n_Based on general cycle patterns, not medical advice._")
    return "\n".join(lines)


def _format_mood_entry(entry: dict) -> str:
    emoji = MOODS.get(entry["mood"], "")
    line = f"📅 {entry['date']} {emoji} {entry['mood']}"
    details = []
    if entry["cramps_level"]:
        details.append(f"cramps {entry['cramps_level']}/10")
    details.append(f"energy {entry['energy_level']}/10")
    if entry["symptoms"]:
        details.append(", ".join(entry["symptoms"]))
    line += "\n   " + " · ".join(details)
    if entry["notes"]:
        line += f"\n   📝 {_escape_markdown(entry['notes'])}"
    return line


def _history_text(db: Database, chat_id: int) -> str:
    entries = db.get_recent_mood_entries(chat_id, 10)
    if not entries:
        return "📋 No mood entries yet.\nUse /mood to add one!"
    lines = ["📋 *Recent Mood Entries:*\n"]
    lines.extend(_format_mood_entry(e) for e in entries)
    return "\n".join(lines)


def _settings_text(config: dict) -> str:
    goal = TrackingGoal(config["tracking_goal"])
    email = config["email"] or "not set"
    reminders = "on" if config["email_reminders"] else "off"
    return (
        f"⚙️ *Settings*\n\n"
        f"📏 Cycle length: *{config['cycle_length']}* days\n"
        f"🩸 Period length: *{config['period_length']}* days\n"
        f"📅 Last period start: *{config['last_period_date']}*\n"
        f"🎯 Goal: {GOAL_LABELS[goal]}\n"
        f"📧 Email: {_escape_markdown(email)} (reminders {reminders})\n\n"
        f"Change with `/settings cycle 30`, `/settings period 6`,\n"
        f"`/settings goal pregnancy_planning`, `/settings age 29`.\n"
        f"Change the period date with `/adjust 2026-02-25`."
    )


def _record_period(db: Database, chat_id: int, period_date: date, period_length: int | None = None) -> str:
    """Store a period start, learn the cycle length and return a summary line.

    A start older than the current one only goes into the history.
    """
    config = db.get_user_config(chat_id)
    last_period = date.fromisoformat(config["last_period_date"])
    if period_date < last_period:
        db.add_period_log(chat_id, period_date.isoformat(), period_length)
        return f"📚 Added to your history. Predictions still count from *{last_period}*"

    actual_gap = (period_date - last_period).days
    effective_period_length = period_length or config["period_length"]
    new_cycle_length = learn_cycle_length(last_period, period_date, config["cycle_length"])
    if new_cycle_length is not None and validate_cycle_values(new_cycle_length, effective_period_length) is None:
        db.update_user_cycle_length(chat_id, new_cycle_length)
        length_msg = f"📏 Cycle length updated to *{new_cycle_length}* days (this one was {actual_gap} days)"
    elif actual_gap > 0:
        length_msg = f"This cycle was {actual_gap} days, a bit unusual, so I kept the length as is"
    else:
        length_msg = "Cycle length unchanged"

    if period_length:
        db.update_user_period_length(chat_id, period_length)
    db.update_user_last_period_date(chat_id, period_date.isoformat())
    db.add_period_log(chat_id, period_date.isoformat(), period_length)
    return length_msg


# ── Admin commands ──────────────────────────────────────────────────

@admin_only
async def adduser_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    if not context.args:
        await update.message.reply_text(
            "Usage: `/adduser <telegram_user_id>`",
            parse_mode="Markdown",
        )
        return
    try:
        new_user_id = int(context.args[0])
    except ValueError:
        await update.message.reply_text("That doesn't look like a valid user ID.")
        return

    db = get_db(context)
    db.add_user(new_user_id, added_by=update.effective_chat.id)
    await update.message.reply_text(f"✅ User `{new_user_id}` has been whitelisted!", parse_mode="Markdown")


@admin_only
async def removeuser_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    if not context.args:
        await update.message.reply_text(
            "Usage: `/removeuser <telegram_user_id>`",
            parse_mode="Markdown",
        )
        return
    try:
        target_id = int(context.args[0])
    except ValueError:
        await update.message.reply_text("That doesn't look like a valid user ID.")
        return

    db = get_db(context)
    if db.is_admin(target_id):
        await update.message.reply_text("Can't remove an admin 🔒")
        return
    db.remove_user(target_id)
    await update.message.reply_text(f"✅ User `{target_id}` has been removed.", parse_mode="Markdown")


@admin_only
async def users_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    db = get_db(context)
    users = db.get_all_whitelisted_users()
    if not users:
        await update.message.reply_text("No users in the whitelist.")
        return

    lines = ["👥 *Whitelisted Users:*\n"]
    for u in users:
        status = "✅" if u["is_active"] else "❌"
        role = " (admin)" if u["is_admin"] else ""
        lines.append(f"{status} `{u['chat_id']}`{role}")

    await update.message.reply_text("\n".join(lines), parse_mode="Markdown")


# ── Onboarding ──────────────────────────────────────────────────────

@whitelisted
async def setup_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    if not context.args or len(context.args) < 3:
        await update.message.reply_text(
            f"Let's set up your cycle!\n{SETUP_HINT}",
            parse_mode="Markdown",
        )
        return

    try:
        cycle_length = int(context.args[0])
        period_length = int(context.args[1])
    except ValueError:
        await update.message.reply_text("Cycle and period length must be numbers.")
        return

    error = validate_cycle_values(cycle_length, period_length)
    if error:
        await update.message.reply_text(error)
        return

    try:
        last_period = date.fromisoformat(context.args[2])
    except ValueError:
        await update.message.reply_text(
            "Wrong date format. Use YYYY-MM-DD, like `2026-02-15`",
            parse_mode="Markdown",
        )
        return

    if last_period > date.today():
        await update.message.reply_text("That date is in the future! Use a past or today's date.")
        return

    goal = TrackingGoal.CYCLE_TRACKING
    if len(context.args) > 3:
        goal = parse_tracking_goal(context.args[3])
        if goal is None:
            await update.message.reply_text("Goal must be `cycle_tracking` or `pregnancy_planning`.", parse_mode="Markdown")
            return

    chat_id = update.effective_chat.id
    db = get_db(context)
    db.upsert_user_config(chat_id, cycle_length, last_period.isoformat(), period_length, goal.value)
    db.add_period_log(chat_id, last_period.isoformat(), period_length)

    prediction = calculate_next_period(db.get_profile(chat_id))
    await update.message.reply_text(
        f"✅ All set!\n\n"
        f"📏 Cycle length: *{cycle_length}* days\n"
        f"🩸 Period length: *{period_length}* days\n"
        f"📅 Last period: *{last_period}*\n"
        f"🎯 Goal: {GOAL_LABELS[goal]}\n"
        f"📅 Today is day *{prediction.cycle_day}* — {PHASE_LABELS[prediction.phase]}\n\n"
        f"Use /start to see the main menu 💛",
        parse_mode="Markdown",
    )


@whitelisted
async def start_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    chat_id = update.effective_chat.id
    db = get_db(context)

    if not db.user_has_config(chat_id):
        await update.message.reply_text(
            "Hey there! 🌸\n\n"
            "I'm *CycleSync*, your cycle companion.\n"
            "Let's get you set up first!\n\n"
            f"{SETUP_HINT}",
            parse_mode="Markdown",
        )
        return

    text = (
        f"Hey there! 🌸\n\n"
        f"I'm *CycleSync*, your cycle companion.\n\n"
        f"{_status_text(db, chat_id)}\n\n"
        f"Pick something below, or use commands anytime!"
    )
    await update.message.reply_text(text, parse_mode="Markdown", reply_markup=MAIN_KEYBOARD)


# ── Inline menu ─────────────────────────────────────────────────────

@authorized_callback
async def button_handler(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handle all inline keyboard button presses."""
    query = update.callback_query
    await query.answer()
    data = query.data
    chat_id = query.message.chat_id
    db = get_db(context)

    if data == "menu":
        text = f"🌸 *CycleSync — Main Menu*\n\n{_status_text(db, chat_id)}\n\nWhat would you like to do?"
        await query.edit_message_text(text, parse_mode="Markdown", reply_markup=MAIN_KEYBOARD)
    elif data == "status":
        await query.edit_message_text(_status_text(db, chat_id), parse_mode="Markdown", reply_markup=BACK_KEYBOARD)
    elif data == "calendar":
        profile, goal = _profile_and_goal(db, chat_id)
        today = date.today()
        text = render_calendar(profile, goal, today.year, today.month, today)
        await query.edit_message_text(text, parse_mode="Markdown", reply_markup=BACK_KEYBOARD)
    elif data == "next":
        await query.edit_message_text(_next_text(db, chat_id), parse_mode="Markdown", reply_markup=BACK_KEYBOARD)
    elif data == "phase":
        await query.edit_message_text(_phase_text(db, chat_id), parse_mode="Markdown", reply_markup=BACK_KEYBOARD)
    elif data == "insights":
        await query.edit_message_text(_insights_text(db, chat_id), parse_mode="Markdown", reply_markup=BACK_KEYBOARD)
    elif data == "history":
        await query.edit_message_text(_history_text(db, chat_id), parse_mode="Markdown", reply_markup=BACK_KEYBOARD)
    elif data == "settings":
        text = _settings_text(db.get_user_config(chat_id))
        await query.edit_message_text(text, parse_mode="Markdown", reply_markup=BACK_KEYBOARD)
    elif data == "tip":
        await _show_tip(query, db, chat_id)
    elif data == "period":
        text = (
            "🩸 *Period started today?*\n\n"
            "I'll reset your cycle and update your cycle length.\n"
            "If it started on a different day, use:\n`/period 2026-02-25`"
        )
        await query.edit_message_text(text, parse_mode="Markdown", reply_markup=PERIOD_CONFIRM_KEYBOARD)
    elif data == "period_confirm":
        period_date = date.today()
        length_msg = _record_period(db, chat_id, period_date)
        text = (
            f"✅ Got it! New period started on *{period_date}*.\n\n"
            f"{length_msg}\n\n"
            f"Take it easy these next few days 💛"
        )
        await query.edit_message_text(text, parse_mode="Markdown", reply_markup=BACK_KEYBOARD)


async def _show_tip(query, db: Database, chat_id: int):
    if not _check_ai_rate_limit(chat_id):
        await query.edit_message_text(
            "Easy there, let me catch my breath! Try again in a minute 💛",
            reply_markup=BACK_KEYBOARD,
        )
        return
    await query.edit_message_text("Thinking of something good for you... 🤔")
    try:
        tip = await _generate_user_tip(db, chat_id)
        await query.edit_message_text(f"💡 *Tip for You:*\n\n{tip}", parse_mode="Markdown", reply_markup=BACK_KEYBOARD)
    except Exception as e:
        logger.error(f"AI tip generation failed: {e}")
        await query.edit_message_text("Oops, my brain froze 😅 Try again in a sec!", reply_markup=BACK_KEYBOARD)


async def _generate_user_tip(db: Database, chat_id: int) -> str:
    config = db.get_user_config(chat_id)
    prediction = calculate_next_period(db.get_profile(chat_id))
    return await generate_tip(
        prediction.phase.value,
        prediction.cycle_day,
        tracking_goal=config["tracking_goal"],
        recent_entries=db.get_recent_mood_entries(chat_id, 3),
        age=config["age"],
    )


# ── Cycle views ─────────────────────────────────────────────────────

@authorized
async def status_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    text = _status_text(get_db(context), update.effective_chat.id)
    await update.message.reply_text(text, parse_mode="Markdown", reply_markup=MAIN_KEYBOARD)


@authorized
async def calendar_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    today = date.today()
    year, month = today.year, today.month
    if context.args:
        try:
            month_start = datetime.strptime(context.args[0], "%Y-%m")
        except ValueError:
            await update.message.reply_text("Use a month like `/calendar 2026-03`", parse_mode="Markdown")
            return
        year, month = month_start.year, month_start.month

    db = get_db(context)
    profile, goal = _profile_and_goal(db, update.effective_chat.id)
    text = render_calendar(profile, goal, year, month, today)
    await update.message.reply_text(text, parse_mode="Markdown")


@authorized
async def next_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    text = _next_text(get_db(context), update.effective_chat.id)
    await update.message.reply_text(text, parse_mode="Markdown", reply_markup=MAIN_KEYBOARD)


@authorized
async def phase_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    text = _phase_text(get_db(context), update.effective_chat.id)
    await update.message.reply_text(text, parse_mode="Markdown", reply_markup=MAIN_KEYBOARD)


@authorized
async def insights_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    text = _insights_text(get_db(context), update.effective_chat.id)
    await update.message.reply_text(text, parse_mode="Markdown", reply_markup=MAIN_KEYBOARD)


@authorized
async def stats_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    chat_id = update.effective_chat.id
    db = get_db(context)
    config = db.get_user_config(chat_id)
    stats = calculate_cycle_stats(
        db.get_period_history(chat_id),
        default_cycle_length=config["cycle_length"],
        default_period_length=config["period_length"],
    )
    recent = ", ".join(str(n) for n in stats.last_six_cycles) or "not enough data yet"
    text = (
        f"📈 *Cycle Stats*\n\n"
        f"Average cycle: *{stats.average_cycle_length}* days\n"
        f"Average period: *{stats.average_period_length}* days\n"
        f"Cycles tracked: *{stats.total_cycles_tracked}*\n"
        f"Regularity: *{stats.cycle_regularity}*\n"
        f"Last cycles: {recent}"
    )
    await update.message.reply_text(text, parse_mode="Markdown")


@authorized
async def tip_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    chat_id = update.effective_chat.id
    if not _check_ai_rate_limit(chat_id):
        await update.message.reply_text("Easy there, let me catch my breath! Try again in a minute 💛")
        return

    await update.message.reply_text("Thinking... 🤔")
    try:
        tip = await _generate_user_tip(get_db(context), chat_id)
        await update.message.reply_text(f"💡 *Tip for You:*\n\n{tip}", parse_mode="Markdown", reply_markup=MAIN_KEYBOARD)
    except Exception as e:
        logger.error(f"AI tip generation failed: {e}")
        await update.message.reply_text("Oops, my brain froze 😅 Try again in a sec!")


# ── Logging ─────────────────────────────────────────────────────────

@authorized
async def period_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Record that a period has started. Resets the cycle and learns its length."""
    chat_id = update.effective_chat.id
    db = get_db(context)
    period_date = date.today()
    period_length = None

    if context.args:
        try:
            period_date = date.fromisoformat(context.args[0])
        except ValueError:
            await update.message.reply_text(
                "Wrong date format. Use this:\n"
                "`/period 2026-02-25`\n\n"
                "Or just type `/period` to log today 💛",
                parse_mode="Markdown",
            )
            return
        if period_date > date.today():
            await update.message.reply_text("That date is in the future! Use a past or today's date.")
            return

    if len(context.args) > 1:
        config = db.get_user_config(chat_id)
        try:
            period_length = int(context.args[1])
        except ValueError:
            await update.message.reply_text("Period length must be a number.")
            return
        error = validate_cycle_values(config["cycle_length"], period_length)
        if error:
            await update.message.reply_text(error)
            return

    last_period = date.fromisoformat(db.get_user_config(chat_id)["last_period_date"])
    length_msg = _record_period(db, chat_id, period_date, period_length)
    if period_date < last_period:
        text = f"✅ Got it! Logged a past period on *{period_date}*.\n\n{length_msg}"
    else:
        text = (
            f"✅ Got it! New period started on *{period_date}*.\n\n"
            f"{length_msg}\n\n"
            f"Take it easy these next few days 💛"
        )
    await update.message.reply_text(text, parse_mode="Markdown", reply_markup=MAIN_KEYBOARD)


@authorized
async def mood_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    if not context.args:
        await update.message.reply_text(
            "📝 How are you feeling?\n"
            "`/mood <excellent|good|okay|low|terrible> [cramps=0-10] [energy=0-10] "
            "[symptoms=cramps,bloating] [note]`\n\n"
            "Symptoms: " + ", ".join(SYMPTOMS),
            parse_mode="Markdown",
        )
        return

    try:
        entry = parse_mood_args(context.args)
    except ValueError as e:
        await update.message.reply_text(str(e))
        return

    chat_id = update.effective_chat.id
    db = get_db(context)
    phase = calculate_next_period(db.get_profile(chat_id)).phase
    db.add_mood_entry(chat_id, phase=phase.value, **entry)

    await update.message.reply_text(
        f"✅ Logged!\n{MOODS[entry['mood']]} {entry['mood']} — 🌀 {PHASE_LABELS[phase]}",
        reply_markup=MAIN_KEYBOARD,
    )


@authorized
async def history_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    text = _history_text(get_db(context), update.effective_chat.id)
    await update.message.reply_text(text, parse_mode="Markdown", reply_markup=MAIN_KEYBOARD)


@authorized
async def intimacy_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Log intimacy: `/intimacy [YYYY-MM-DD] [HH:MM] [protection] [note]`."""
    chat_id = update.effective_chat.id
    db = get_db(context)
    args = list(context.args or [])

    if not args:
        entries = db.get_intercourse_entries(chat_id)
        if not entries:
            await update.message.reply_text(
                "💞 Nothing logged yet.\n"
                "`/intimacy [YYYY-MM-DD] [HH:MM] [none|condom|withdrawal|other] [note]`",
                parse_mode="Markdown",
            )
            return
        lines = ["💞 *Recent Entries:*\n"]
        for e in entries:
            when = f"{e['date']} {e['time']}" if e["time"] else e["date"]
            note = f" — {_escape_markdown(e['notes'])}" if e["notes"] else ""
            lines.append(f"#{e['id']} {when} · {PROTECTION_METHODS.get(e['protection'], e['protection'])}{note}")
        lines.append("\nDelete one with `/intimacy delete <id>`")
        await update.message.reply_text("\n".join(lines), parse_mode="Markdown")
        return

    if args[0].lower() == "delete":
        try:
            entry_id = int(args[1])
        except (IndexError, ValueError):
            await update.message.reply_text("Usage: `/intimacy delete <id>`", parse_mode="Markdown")
            return
        if db.delete_intercourse_entry(chat_id, entry_id):
            await update.message.reply_text(f"🗑 Entry #{entry_id} deleted.")
        else:
            await update.message.reply_text("I couldn't find that entry.")
        return

    entry_date = date.today()
    try:
        entry_date = date.fromisoformat(args[0])
        args.pop(0)
    except ValueError:
        pass
    if entry_date > date.today():
        await update.message.reply_text("That date is in the future! Use a past or today's date.")
        return

    entry_time = None
    if args and TIME_RE.match(args[0]):
        entry_time = args.pop(0)

    protection = "none"
    if args and args[0].lower() in PROTECTION_METHODS:
        protection = args.pop(0).lower()

    notes = " ".join(args)[:MAX_NOTE_LENGTH]
    entry_id = db.add_intercourse_entry(chat_id, entry_date, protection, entry_time, notes)

    score = build_cycle_day(db.get_profile(chat_id), entry_date).fertility_score
    await update.message.reply_text(
        f"✅ Logged #{entry_id} on {entry_date} ({PROTECTION_METHODS[protection]}).\n"
        f"Fertility score that day: {score}/100"
    )


# ── Profile settings ────────────────────────────────────────────────

@authorized
async def adjust_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    if not context.args:
        await update.message.reply_text(
            "📅 Enter the start date of your last period:\n"
            "`/adjust 2026-02-25`",
            parse_mode="Markdown",
        )
        return

    try:
        new_date = date.fromisoformat(context.args[0])
    except ValueError:
        await update.message.reply_text(
            "Wrong date format. Example: `/adjust 2026-02-25`",
            parse_mode="Markdown",
        )
        return

    if new_date > date.today():
        await update.message.reply_text("That date is in the future! Use a past or today's date.")
        return

    db = get_db(context)
    db.update_user_last_period_date(update.effective_chat.id, new_date.isoformat())
    await update.message.reply_text(
        f"✅ Period start date changed to *{new_date}*!",
        parse_mode="Markdown",
        reply_markup=MAIN_KEYBOARD,
    )


@authorized
async def settings_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    chat_id = update.effective_chat.id
    db = get_db(context)
    config = db.get_user_config(chat_id)

    if not context.args:
        await update.message.reply_text(_settings_text(config), parse_mode="Markdown", reply_markup=MAIN_KEYBOARD)
        return

    args = list(context.args)
    if args[0].isdigit():
        args.insert(0, "cycle")
    if len(args) < 2:
        await update.message.reply_text("Usage: `/settings <cycle|period|goal|age|weight> <value>`", parse_mode="Markdown")
        return
    field, value = args[0].lower(), args[1]

    if field in ("cycle", "period"):
        try:
            number = int(value)
        except ValueError:
            await update.message.reply_text("Enter a number. Example: `/settings cycle 30`", parse_mode="Markdown")
            return
        cycle_length = number if field == "cycle" else config["cycle_length"]
        period_length = number if field == "period" else config["period_length"]
        error = validate_cycle_values(cycle_length, period_length)
        if error:
            await update.message.reply_text(error)
            return
        if field == "cycle":
            db.update_user_cycle_length(chat_id, number)
            reply = f"✅ Cycle length changed to *{number}* days!"
        else:
            db.update_user_period_length(chat_id, number)
            reply = f"✅ Period length changed to *{number}* days!"
    elif field == "goal":
        goal = parse_tracking_goal(value)
        if goal is None:
            await update.message.reply_text("Goal must be `cycle_tracking` or `pregnancy_planning`.", parse_mode="Markdown")
            return
        db.update_user_tracking_goal(chat_id, goal.value)
        reply = f"✅ Goal changed to {GOAL_LABELS[goal]}!"
    elif field == "age":
        try:
            age = int(value)
        except ValueError:
            age = 0
        if not 10 <= age <= 60:
            await update.message.reply_text("Age should be a number between 10 and 60.")
            return
        db.update_user_age(chat_id, age)
        reply = f"✅ Age set to *{age}*."
    elif field == "weight":
        try:
            weight = float(value)
        except ValueError:
            weight = 0
        if not 25 <= weight <= 300:
            await update.message.reply_text("Weight should be in kg, between 25 and 300.")
            return
        db.update_user_weight(chat_id, weight)
        reply = f"✅ Weight set to *{weight:g}* kg."
    else:
        await update.message.reply_text("Usage: `/settings <cycle|period|goal|age|weight> <value>`", parse_mode="Markdown")
        return

    await update.message.reply_text(reply, parse_mode="Markdown", reply_markup=MAIN_KEYBOARD)


@authorized
async def email_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Manage email reminders: `/email [address|on|off]`."""
    chat_id = update.effective_chat.id
    db = get_db(context)
    config = db.get_user_config(chat_id)

    if not context.args:
        email = config["email"] or "not set"
        status = "on" if config["email_reminders"] else "off"
        await update.message.reply_text(
            f"📧 Email: {_escape_markdown(email)}\nReminders: *{status}*\n\n"
            "Set an address with `/email you@example.com`, then `/email on`.",
            parse_mode="Markdown",
        )
        return

    value = context.args[0]
    if value.lower() == "off":
        db.set_email_reminders(chat_id, False)
        await update.message.reply_text("🔕 Email reminders turned off.")
        return

    if value.lower() == "on":
        if not config["email"]:
            await update.message.reply_text("Set your email first: `/email you@example.com`", parse_mode="Markdown")
            return
        db.set_email_reminders(chat_id, True)
        reply = "🔔 Email reminders turned on!"
        if mailer.is_configured():
            subject, body = mailer.welcome_email()
            try:
                await asyncio.to_thread(mailer.send_email, config["email"], subject, body)
            except mailer.MailerError as e:
                logger.error(f"Welcome email for {chat_id} failed: {e}")
                reply += "\nI couldn't send the welcome email though, please check the address."
        await update.message.reply_text(reply)
        return

    if not EMAIL_RE.match(value):
        await update.message.reply_text("That doesn't look like a valid email address.")
        return
    db.update_user_email(chat_id, value)
    await update.message.reply_text(
        f"✅ Email saved: {_escape_markdown(value)}\nTurn reminders on with `/email on`.",
        parse_mode="Markdown",
    )


# ── Partner linking ─────────────────────────────────────────────────

@whitelisted
async def partner_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """`/partner [invite [email]|join CODE|remove|notify on|off]`."""
    chat_id = update.effective_chat.id
    db = get_db(context)
    args = context.args or []
    action = args[0].lower() if args else ""

    if action == "invite":
        if not db.user_has_config(chat_id):
            await update.message.reply_text(f"Set up your cycle before inviting a partner.\n{SETUP_HINT}", parse_mode="Markdown")
            return
        code = new_partner_code()
        db.create_partner_invite(chat_id, code)
        reply = (
            f"💌 Your partner code: `{code}`\n\n"
            f"Your partner sends `/partner join {code}` to this bot to connect."
        )
        if len(args) > 1:
            reply += "\n" + await _email_partner_invite(chat_id, args[1], code)
        await update.message.reply_text(reply, parse_mode="Markdown")
        return

    if action == "join":
        if len(args) < 2:
            await update.message.reply_text("Usage: `/partner join <CODE>`", parse_mode="Markdown")
            return
        connection = db.accept_partner_invite(args[1].upper(), chat_id)
        if not connection:
            await update.message.reply_text("That code isn't valid or was already used.")
            return
        await update.message.reply_text("✅ You're connected! Use /partnerview to see how they're doing 💜")
        try:
            await context.bot.send_message(
                chat_id=connection["owner_chat_id"],
                text="💜 Your partner just connected to your cycle.",
            )
        except Exception as e:
            logger.error(f"Could not notify {connection['owner_chat_id']} about partner link: {e}")
        return

    if action == "remove":
        removed = db.remove_partner_connections(chat_id)
        if removed:
            await update.message.reply_text("💔 Partner connection removed.")
        else:
            await update.message.reply_text("You don't have any partner connections.")
        return

    if action == "notify":
        if len(args) < 2 or args[1].lower() not in ("on", "off"):
            await update.message.reply_text("Usage: `/partner notify on|off`", parse_mode="Markdown")
            return
        enabled = args[1].lower() == "on"
        if not db.set_partner_notifications(chat_id, enabled):
            await update.message.reply_text("You're not linked to anyone yet.")
            return
        await update.message.reply_text(f"🔔 Partner notifications turned {'on' if enabled else 'off'}.")
        return

    connections = db.get_partner_connections(chat_id)
    if not connections:
        await update.message.reply_text(
            "💞 No partner connections yet.\n"
            "Invite with `/partner invite [email]` or join with `/partner join <CODE>`.",
            parse_mode="Markdown",
        )
        return
    lines = ["💞 *Partner Connections:*\n"]
    for c in connections:
        if c["owner_chat_id"] == chat_id:
            who = f"Your code `{c['code']}`"
        else:
            who = "You follow a partner's cycle"
        notify = "🔔" if c["notifications_enabled"] else "🔕"
        lines.append(f"{who} · {c['status']} {notify}")
    await update.message.reply_text("\n".join(lines), parse_mode="Markdown")


async def _email_partner_invite(chat_id: int, address: str, code: str) -> str:
    if not EMAIL_RE.match(address):
        return "That email doesn't look valid, so I didn't send an invite."
    if not mailer.is_configured():
        return "Email isn't set up on this bot, share the code directly."
    subject, body = mailer.partner_invite(code)
    try:
        await asyncio.to_thread(mailer.send_email, address, subject, body)
    except mailer.MailerError as e:
        logger.error(f"Partner invite email for {chat_id} failed: {e}")
        return "I couldn't send the invite email, share the code directly."
    return f"📧 Invite sent to {_escape_markdown(address)}."


@whitelisted
async def partnerview_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Summary of every linked partner's cycle, as seen by the supporting partner."""
    db = get_db(context)
    owners = db.get_linked_owners(update.effective_chat.id)
    if not owners:
        await update.message.reply_text(
            "You're not linked to anyone yet. Ask your partner for a code and use `/partner join <CODE>`.",
            parse_mode="Markdown",
        )
        return

    today = date.today()
    sections = ["💜 *Partner Dashboard*"]
    for owner_id in owners:
        profile = db.get_profile(owner_id)
        if profile is None:
            continue
        prediction = calculate_next_period(profile, today)
        day = build_cycle_day(profile, today)
        section = (
            f"\n📅 Cycle day *{prediction.cycle_day}* — {PHASE_LABELS[day.phase]}\n"
            f"🧠 {partner_mood_hint(day.phase, day.predicted_mood)}\n"
            f"🩸 Next period in *{prediction.days_until_period}* days ({prediction.next_period_date})"
        )
        if day.is_period_day:
            section += "\n⚠️ Their period is on right now, extra comfort helps."
        elif prediction.days_until_period <= 2:
            section += "\n⚠️ Their period is coming very soon."
        sections.append(section)

    if len(sections) == 1:
        await update.message.reply_text("Your partner hasn't finished setting up yet.")
        return
    sections.append(f"\n💡 Today's idea: {care_suggestion(today)}")
    await update.message.reply_text("\n".join(sections), parse_mode="Markdown")


# ── About ───────────────────────────────────────────────────────────

@whitelisted
async def about_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    await update.message.reply_text(
        f"🌸 *CycleSync* v{VERSION}\n\n"
        "Cycle tracking, fertility insights, mood logging and partner sync.\n"
        "Predictions are based on general cycle patterns and are not medical advice.",
        parse_mode="Markdown",
    )
