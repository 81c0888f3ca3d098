import logging
from logging.handlers import RotatingFileHandler

from telegram import BotCommand, BotCommandScopeChat
from telegram.ext import (
    ApplicationBuilder,
    CallbackQueryHandler,
    CommandHandler,
)

from config.settings import (
    TELEGRAM_BOT_TOKEN,
    ADMIN_CHAT_ID,
    DB_PATH,
    LOGS_DIR,
)
from cyclesync.db import Database
from cyclesync.handlers import (
    start_command,
    setup_command,
    status_command,
    calendar_command,
    next_command,
    phase_command,
    insights_command,
    stats_command,
    tip_command,
    period_command,
    mood_command,
    history_command,
    intimacy_command,
    adjust_command,
    settings_command,
    email_command,
    partner_command,
    partnerview_command,
    about_command,
    button_handler,
    adduser_command,
    removeuser_command,
    users_command,
)
from cyclesync.scheduler import setup_scheduler

logger = logging.getLogger(__name__)

USER_COMMANDS = [
    ("start", "Welcome & main menu", start_command),
    ("setup", "Set up your cycle info", setup_command),
    ("status", "Today's cycle day, phase & fertility", status_command),
    ("calendar", "Month calendar", calendar_command),
    ("next", "Next period, ovulation & fertile window", next_command),
    ("phase", "Detailed phase info", phase_command),
    ("insights", "Fertility insights", insights_command),
    ("stats", "Cycle statistics", stats_command),
    ("tip", "AI-generated tip", tip_command),
    ("period", "Log period start", period_command),
    ("mood", "Log mood & symptoms", mood_command),
    ("history", "Recent mood entries", history_command),
    ("intimacy", "Intimacy log", intimacy_command),
    ("adjust", "Update last period date", adjust_command),
    ("settings", "View/update your profile", settings_command),
    ("email", "Email reminder preferences", email_command),
    ("partner", "Link a partner", partner_command),
    ("partnerview", "Partner dashboard", partnerview_command),
    ("about", "About this bot", about_command),
]

ADMIN_COMMANDS = [
    ("adduser", "Whitelist a user", adduser_command),
    ("removeuser", "Remove a user", removeuser_command),
    ("users", "List whitelisted users", users_command),
]


def configure_logging():
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            RotatingFileHandler(
                LOGS_DIR / "cyclesync.log",
                maxBytes=10 * 1024 * 1024,
                backupCount=5,
            ),
            logging.StreamHandler(),
        ],
    )
    # httpx logs every Telegram poll at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


async def post_init(application):
    """Register bot command menus on startup.

    Default menu shows regular commands only.
    Admin gets an additional scoped menu with admin commands.
    """
    user_commands = [BotCommand(name, description) for name, description, _ in USER_COMMANDS]
    admin_commands = user_commands + [BotCommand(name, description) for name, description, _ in ADMIN_COMMANDS]

    await application.bot.set_my_commands(user_commands)
    await application.bot.set_my_commands(
        admin_commands,
        scope=BotCommandScopeChat(chat_id=ADMIN_CHAT_ID),
    )

    scheduler = setup_scheduler(application)
    scheduler.start()
    application.bot_data["scheduler"] = scheduler
    logger.info("Scheduler started.")


async def post_shutdown(application):
    scheduler = application.bot_data.get("scheduler")
    if scheduler:
        scheduler.shutdown(wait=False)


def build_app(db: Database):
    app = (
        ApplicationBuilder()
        .token(TELEGRAM_BOT_TOKEN)
        .post_init(post_init)
        .post_shutdown(post_shutdown)
        .build()
    )
    app.bot_data["db"] = db

    for name, _, handler in USER_COMMANDS + ADMIN_COMMANDS:
        app.add_handler(CommandHandler(name, handler))
    app.add_handler(CallbackQueryHandler(button_handler))
    return app


def create_app() -> None:
    """Create and run the bot application."""
    configure_logging()
    logger.info("Starting CycleSync bot...")

    db = Database(DB_PATH)
    db.bootstrap_admin(ADMIN_CHAT_ID)
    logger.info(f"Admin {ADMIN_CHAT_ID} bootstrapped")

    app = build_app(db)

    logger.info("Bot is running. Press Ctrl+C to stop.")
    app.run_polling(drop_pending_updates=True)


if __name__ == "__main__":
    create_app()
