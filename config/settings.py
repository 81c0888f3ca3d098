import os
from pathlib import Path
from zoneinfo import ZoneInfo

from dotenv import load_dotenv

load_dotenv()

VERSION = "1.2.0"

BASE_DIR = Path(__file__).resolve().parent.parent
DATA_DIR = BASE_DIR / "data"
LOGS_DIR = BASE_DIR / "logs"

DATA_DIR.mkdir(exist_ok=True)
LOGS_DIR.mkdir(exist_ok=True)

TELEGRAM_BOT_TOKEN = os.environ["TELEGRAM_BOT_TOKEN"]
ANTHROPIC_API_KEY = os.environ["ANTHROPIC_API_KEY"]
ADMIN_CHAT_ID = int(os.environ["ADMIN_CHAT_ID"])

TIP_MODEL = os.getenv("TIP_MODEL", "claude-sonnet-4-6")
REMINDER_MODEL = os.getenv("REMINDER_MODEL", "claude-haiku-4-5-20251001")

DEFAULT_CYCLE_LENGTH = int(os.getenv("DEFAULT_CYCLE_LENGTH", "28"))
DEFAULT_PERIOD_LENGTH = int(os.getenv("DEFAULT_PERIOD_LENGTH", "5"))

REMINDER_HOUR = int(os.getenv("REMINDER_HOUR", "9"))
REMINDER_LEAD_DAYS = int(os.getenv("REMINDER_LEAD_DAYS", "2"))
TIMEZONE = ZoneInfo(os.getenv("TIMEZONE", "UTC"))

SMTP_HOST = os.getenv("SMTP_HOST", "")
SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
SMTP_USERNAME = os.getenv("SMTP_USERNAME", "")
SMTP_PASSWORD = os.getenv("SMTP_PASSWORD", "")
EMAIL_FROM = os.getenv("EMAIL_FROM", "CycleSync <notifications@cyclesync.app>")

DB_PATH = DATA_DIR / "cyclesync.db"
