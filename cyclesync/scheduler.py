import asyncio
import logging
from datetime import date

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from telegram.ext import Application

from config.settings import REMINDER_HOUR, REMINDER_LEAD_DAYS, TIMEZONE
from cyclesync import mailer
from cyclesync.ai import generate_reminder
from cyclesync.cycle import PeriodPrediction, calculate_next_period
from cyclesync.db import Database

logger = logging.getLogger(__name__)


def due_reminders(prediction: PeriodPrediction, today: date, lead_days: int) -> list[tuple[str, date]]:
    """Return (kind, target_date) pairs that should be announced today."""
    due = []
    if prediction.days_until_period == lead_days:
        due.append(("period", prediction.next_period_date))
    if (prediction.fertile_window_start - today).days == lead_days:
        due.append(("fertile", prediction.fertile_window_start))
    return due


def _telegram_text(kind: str, prediction: PeriodPrediction, blurb: str) -> str:
    if kind == "period":
        header = f"\U0001fa78 Heads up: your period is due in {prediction.days_until_period} days ({prediction.next_period_date})."
    else:
        header = (
            f"\U0001f33c Your fertile window opens soon: "
            f"{prediction.fertile_window_start} to {prediction.fertile_window_end}."
        )
    return f"{header}\n\n{blurb}"


def _email_content(kind: str, prediction: PeriodPrediction, blurb: str) -> tuple[str, str]:
    if kind == "period":
        return mailer.period_reminder(prediction.days_until_period, prediction.next_period_date, blurb)
    return mailer.fertile_window_reminder(prediction.fertile_window_start, prediction.fertile_window_end, blurb)


async def _deliver(app: Application, db: Database, config: dict, kind: str, prediction: PeriodPrediction):
    chat_id = config["chat_id"]
    blurb = await generate_reminder(kind, REMINDER_LEAD_DAYS, config["tracking_goal"])
    await app.bot.send_message(chat_id=chat_id, text=_telegram_text(kind, prediction, blurb))

    if config["email_reminders"] and config["email"]:
        subject, body = _email_content(kind, prediction, blurb)
        try:
            await asyncio.to_thread(mailer.send_email, config["email"], subject, body)
        except mailer.MailerError as e:
            logger.error(f"Email reminder for {chat_id} failed: {e}")

    if kind == "period":
        for partner_id in db.get_notified_partners(chat_id):
            await app.bot.send_message(
                chat_id=partner_id,
                text=(
                    f"\U0001f49c Partner heads-up: their period is expected in "
                    f"{prediction.days_until_period} days. A little extra care goes a long way."
                ),
            )


async def send_daily_reminders(app: Application):
    """Send period and fertile-window reminders to every active user with a profile."""
    db: Database = app.bot_data["db"]
    today = date.today()

    for user in db.get_all_active_users():
        chat_id = user["chat_id"]
        config = db.get_user_config(chat_id)
        if not config:
            continue

        prediction = calculate_next_period(db.get_profile(chat_id), today)
        due = due_reminders(prediction, today, REMINDER_LEAD_DAYS)
        if not due:
            logger.info(f"User {chat_id}: day {prediction.cycle_day}, phase {prediction.phase.value}, no reminder needed.")
            continue

        for kind, target_date in due:
            if db.was_reminder_sent(chat_id, kind, target_date):
                continue
            try:
                await _deliver(app, db, config, kind, prediction)
                db.record_reminder(chat_id, kind, target_date)
                logger.info(f"Sent {kind} reminder to {chat_id} for {target_date}")
            except Exception as e:
                logger.error(f"Failed to send {kind} reminder to {chat_id}: {e}")


def setup_scheduler(app: Application) -> AsyncIOScheduler:
    """Set up APScheduler for daily reminders."""
    scheduler = AsyncIOScheduler(timezone=TIMEZONE)
    scheduler.add_job(
        send_daily_reminders,
        trigger="cron",
        hour=REMINDER_HOUR,
        minute=0,
        args=[app],
        id="daily_reminder",
        replace_existing=True,
    )
    return scheduler
