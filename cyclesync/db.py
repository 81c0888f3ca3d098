import json
import sqlite3
from datetime import date
from pathlib import Path

from cyclesync.cycle import CycleProfile


class Database:
    def __init__(self, db_path: Path):
        self.db_path = db_path
        self._conn = sqlite3.connect(db_path, check_same_thread=False, timeout=10)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys = ON")
        self._conn.execute("PRAGMA busy_timeout=5000")
        self._init_db()

    def _get_conn(self) -> sqlite3.Connection:
        return self._conn

    def _init_db(self):
        with self._get_conn() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    chat_id INTEGER PRIMARY KEY,
                    added_by INTEGER,
                    is_admin INTEGER NOT NULL DEFAULT 0,
                    is_active INTEGER NOT NULL DEFAULT 1,
                    created_at TEXT NOT NULL DEFAULT (datetime('now'))
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS profiles (
                    chat_id INTEGER PRIMARY KEY,
                    cycle_length INTEGER NOT NULL DEFAULT 28,
                    period_length INTEGER NOT NULL DEFAULT 5,
                    last_period_date TEXT NOT NULL,
                    tracking_goal TEXT NOT NULL DEFAULT 'cycle_tracking'
                        CHECK (tracking_goal IN ('cycle_tracking', 'pregnancy_planning')),
                    age INTEGER,
                    weight REAL,
                    email TEXT,
                    email_reminders INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL DEFAULT (datetime('now')),
                    updated_at TEXT NOT NULL DEFAULT (datetime('now')),
                    FOREIGN KEY (chat_id) REFERENCES users(chat_id)
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS period_logs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    chat_id INTEGER NOT NULL,
                    start_date TEXT NOT NULL,
                    period_length INTEGER,
                    created_at TEXT NOT NULL DEFAULT (datetime('now')),
                    UNIQUE (chat_id, start_date),
                    FOREIGN KEY (chat_id) REFERENCES users(chat_id)
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS mood_entries (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    chat_id INTEGER NOT NULL,
                    date TEXT NOT NULL,
                    mood TEXT NOT NULL,
                    symptoms TEXT NOT NULL DEFAULT '[]',
                    cramps_level INTEGER NOT NULL DEFAULT 0,
                    energy_level INTEGER NOT NULL DEFAULT 5,
                    notes TEXT NOT NULL DEFAULT '',
                    phase TEXT,
                    created_at TEXT NOT NULL DEFAULT (datetime('now')),
                    FOREIGN KEY (chat_id) REFERENCES users(chat_id)
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS intercourse_entries (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    chat_id INTEGER NOT NULL,
                    date TEXT NOT NULL,
                    time TEXT,
                    protection TEXT NOT NULL DEFAULT 'none',
                    notes TEXT NOT NULL DEFAULT '',
                    created_at TEXT NOT NULL DEFAULT (datetime('now')),
                    FOREIGN KEY (chat_id) REFERENCES users(chat_id)
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS partner_connections (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    owner_chat_id INTEGER NOT NULL,
                    partner_chat_id INTEGER,
                    code TEXT NOT NULL UNIQUE,
                    status TEXT NOT NULL DEFAULT 'pending'
                        CHECK (status IN ('pending', 'accepted')),
                    relationship_type TEXT NOT NULL DEFAULT 'partner',
                    notifications_enabled INTEGER NOT NULL DEFAULT 1,
                    created_at TEXT NOT NULL DEFAULT (datetime('now')),
                    FOREIGN KEY (owner_chat_id) REFERENCES users(chat_id)
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS reminder_log (
                    chat_id INTEGER NOT NULL,
                    kind TEXT NOT NULL,
                    target_date TEXT NOT NULL,
                    sent_at TEXT NOT NULL DEFAULT (datetime('now')),
                    PRIMARY KEY (chat_id, kind, target_date)
                )
            """)

            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_mood_entries_chat
                ON mood_entries(chat_id, created_at DESC)
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_period_logs_chat
                ON period_logs(chat_id, start_date DESC)
            """)

    # ── Admin bootstrap ─────────────────────────────────────────────

    def bootstrap_admin(self, admin_id: int):
        """Ensure the admin exists and is active."""
        with self._get_conn() as conn:
            conn.execute("""
                INSERT INTO users (chat_id, is_admin) VALUES (?, 1)
                ON CONFLICT(chat_id) DO UPDATE SET is_admin = 1, is_active = 1
            """, (admin_id,))

    # ── User management ─────────────────────────────────────────────

    def add_user(self, chat_id: int, added_by: int):
        with self._get_conn() as conn:
            conn.execute("""
                INSERT INTO users (chat_id, added_by) VALUES (?, ?)
                ON CONFLICT(chat_id) DO UPDATE SET is_active = 1, added_by = excluded.added_by
            """, (chat_id, added_by))

    def remove_user(self, chat_id: int):
        with self._get_conn() as conn:
            conn.execute("UPDATE users SET is_active = 0 WHERE chat_id = ?", (chat_id,))

    def is_user_authorized(self, chat_id: int) -> bool:
        with self._get_conn() as conn:
            row = conn.execute(
                "SELECT 1 FROM users WHERE chat_id = ? AND is_active = 1", (chat_id,)
            ).fetchone()
            return row is not None

    def is_admin(self, chat_id: int) -> bool:
        with self._get_conn() as conn:
            row = conn.execute(
                "SELECT 1 FROM users WHERE chat_id = ? AND is_admin = 1 AND is_active = 1", (chat_id,)
            ).fetchone()
            return row is not None

    def get_all_active_users(self) -> list[dict]:
        with self._get_conn() as conn:
            rows = conn.execute(
                "SELECT chat_id, is_admin FROM users WHERE is_active = 1"
            ).fetchall()
            return [dict(r) for r in rows]

    def get_all_whitelisted_users(self) -> list[dict]:
        with self._get_conn() as conn:
            rows = conn.execute(
                "SELECT chat_id, is_admin, is_active, created_at FROM users ORDER BY created_at"
            ).fetchall()
            return [dict(r) for r in rows]

    # ── Profiles ────────────────────────────────────────────────────

    def get_user_config(self, chat_id: int) -> dict | None:
        with self._get_conn() as conn:
            row = conn.execute(
                "SELECT * FROM profiles WHERE chat_id = ?", (chat_id,)
            ).fetchone()
            return dict(row) if row else None

    def user_has_config(self, chat_id: int) -> bool:
        return self.get_user_config(chat_id) is not None

    def get_profile(self, chat_id: int) -> CycleProfile | None:
        """Return the predictor input for a user, or None before onboarding."""
        config = self.get_user_config(chat_id)
        if not config:
            return None
        return CycleProfile(
            last_period_date=date.fromisoformat(config["last_period_date"]),
            cycle_length=config["cycle_length"],
            period_length=config["period_length"],
        )

    def upsert_user_config(
        self,
        chat_id: int,
        cycle_length: int,
        last_period_date: str,
        period_length: int = 5,
        tracking_goal: str = "cycle_tracking",
        age: int | None = None,
        weight: float | None = None,
    ):
        with self._get_conn() as conn:
            conn.execute("""
                INSERT INTO profiles
                    (chat_id, cycle_length, period_length, last_period_date, tracking_goal, age, weight)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(chat_id) DO UPDATE SET
                    cycle_length = excluded.cycle_length,
                    period_length = excluded.period_length,
                    last_period_date = excluded.last_period_date,
                    tracking_goal = excluded.tracking_goal,
                    age = COALESCE(excluded.age, profiles.age),
                    weight = COALESCE(excluded.weight, profiles.weight),
                    updated_at = datetime('now')
            """, (chat_id, cycle_length, period_length, last_period_date, tracking_goal, age, weight))

    def _update_profile_field(self, chat_id: int, column: str, value):
        with self._get_conn() as conn:
            conn.execute(
                f"UPDATE profiles SET {column} = ?, updated_at = datetime('now') WHERE chat_id = ?",
                (value, chat_id),
            )

    def update_user_cycle_length(self, chat_id: int, cycle_length: int):
        self._update_profile_field(chat_id, "cycle_length", cycle_length)

    def update_user_period_length(self, chat_id: int, period_length: int):
        self._update_profile_field(chat_id, "period_length", period_length)

    def update_user_last_period_date(self, chat_id: int, last_period_date: str):
        self._update_profile_field(chat_id, "last_period_date", last_period_date)

    def update_user_tracking_goal(self, chat_id: int, tracking_goal: str):
        self._update_profile_field(chat_id, "tracking_goal", tracking_goal)

    def update_user_age(self, chat_id: int, age: int):
        self._update_profile_field(chat_id, "age", age)

    def update_user_weight(self, chat_id: int, weight: float):
        self._update_profile_field(chat_id, "weight", weight)

    def update_user_email(self, chat_id: int, email: str | None):
        self._update_profile_field(chat_id, "email", email)

    def set_email_reminders(self, chat_id: int, enabled: bool):
        self._update_profile_field(chat_id, "email_reminders", int(enabled))

    # ── Period logs ─────────────────────────────────────────────────

    def add_period_log(self, chat_id: int, start_date: str, period_length: int | None = None):
        with self._get_conn() as conn:
            conn.execute("""
                INSERT INTO period_logs (chat_id, start_date, period_length) VALUES (?, ?, ?)
                ON CONFLICT(chat_id, start_date) DO UPDATE SET
                    period_length = COALESCE(excluded.period_length, period_logs.period_length)
            """, (chat_id, start_date, period_length))

    def get_period_history(self, chat_id: int, limit: int = 12) -> list[dict]:
        """Most recent period starts first."""
        with self._get_conn() as conn:
            rows = conn.execute(
                "SELECT start_date, period_length FROM period_logs WHERE chat_id = ? ORDER BY start_date DESC LIMIT ?",
                (chat_id, limit),
            ).fetchall()
            return [dict(r) for r in rows]

    # ── Mood entries ────────────────────────────────────────────────

    def add_mood_entry(
        self,
        chat_id: int,
        mood: str,
        phase: str,
        symptoms: list[str] | None = None,
        cramps_level: int = 0,
        energy_level: int = 5,
        notes: str = "",
        entry_date: date | None = None,
    ):
        entry_date = entry_date or date.today()
        with self._get_conn() as conn:
            conn.execute(
                """INSERT INTO mood_entries
                       (chat_id, date, mood, symptoms, cramps_level, energy_level, notes, phase)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    chat_id,
                    entry_date.isoformat(),
                    mood,
                    json.dumps(symptoms or []),
                    cramps_level,
                    energy_level,
                    notes,
                    phase,
                ),
            )

    @staticmethod
    def _mood_row(row: sqlite3.Row) -> dict:
        entry = dict(row)
        entry["symptoms"] = json.loads(entry["symptoms"])
        return entry

    def get_recent_mood_entries(self, chat_id: int, limit: int = 10) -> list[dict]:
        with self._get_conn() as conn:
            rows = conn.execute(
                """SELECT date, mood, symptoms, cramps_level, energy_level, notes, phase, created_at
                   FROM mood_entries WHERE chat_id = ? ORDER BY created_at DESC, id DESC LIMIT ?""",
                (chat_id, limit),
            ).fetchall()
            return [self._mood_row(r) for r in rows]

    # ── Intercourse log ─────────────────────────────────────────────

    def add_intercourse_entry(
        self,
        chat_id: int,
        entry_date: date,
        protection: str = "none",
        entry_time: str | None = None,
        notes: str = "",
    ) -> int:
        with self._get_conn() as conn:
            cursor = conn.execute(
                "INSERT INTO intercourse_entries (chat_id, date, time, protection, notes) VALUES (?, ?, ?, ?, ?)",
                (chat_id, entry_date.isoformat(), entry_time, protection, notes),
            )
            return cursor.lastrowid

    def get_intercourse_entries(self, chat_id: int, limit: int = 10) -> list[dict]:
        with self._get_conn() as conn:
            rows = conn.execute(
                "SELECT id, date, time, protection, notes FROM intercourse_entries WHERE chat_id = ? ORDER BY date DESC, id DESC LIMIT ?",
                (chat_id, limit),
            ).fetchall()
            return [dict(r) for r in rows]

    def delete_intercourse_entry(self, chat_id: int, entry_id: int) -> bool:
        with self._get_conn() as conn:
            cursor = conn.execute(
                "DELETE FROM intercourse_entries WHERE id = ? AND chat_id = ?",
                (entry_id, chat_id),
            )
            return cursor.rowcount > 0

    # ── Partner connections ─────────────────────────────────────────

    def create_partner_invite(self, owner_chat_id: int, code: str, relationship_type: str = "partner"):
        """Replace any pending invite of this owner with a fresh code."""
        with self._get_conn() as conn:
            conn.execute(
                "DELETE FROM partner_connections WHERE owner_chat_id = ? AND status = 'pending'",
                (owner_chat_id,),
            )
            conn.execute(
                "INSERT INTO partner_connections (owner_chat_id, code, relationship_type) VALUES (?, ?, ?)",
                (owner_chat_id, code, relationship_type),
            )

    def accept_partner_invite(self, code: str, partner_chat_id: int) -> dict | None:
        """Link a partner through a pending code. Returns the connection or None."""
        with self._get_conn() as conn:
            row = conn.execute(
                "SELECT * FROM partner_connections WHERE code = ? AND status = 'pending'",
                (code,),
            ).fetchone()
            if not row or row["owner_chat_id"] == partner_chat_id:
                return None
            conn.execute(
                "UPDATE partner_connections SET status = 'accepted', partner_chat_id = ? WHERE id = ?",
                (partner_chat_id, row["id"]),
            )
            connection = dict(row)
            connection.update(status="accepted", partner_chat_id=partner_chat_id)
            return connection

    def get_partner_connections(self, chat_id: int) -> list[dict]:
        """Connections where the user is either the owner or the partner."""
        with self._get_conn() as conn:
            rows = conn.execute(
                """SELECT * FROM partner_connections
                   WHERE owner_chat_id = ? OR partner_chat_id = ?
                   ORDER BY created_at DESC, id DESC""",
                (chat_id, chat_id),
            ).fetchall()
            return [dict(r) for r in rows]

    def get_linked_owners(self, partner_chat_id: int) -> list[int]:
        with self._get_conn() as conn:
            rows = conn.execute(
                "SELECT owner_chat_id FROM partner_connections WHERE partner_chat_id = ? AND status = 'accepted'",
                (partner_chat_id,),
            ).fetchall()
            return [r["owner_chat_id"] for r in rows]

    def get_notified_partners(self, owner_chat_id: int) -> list[int]:
        with self._get_conn() as conn:
            rows = conn.execute(
                """SELECT partner_chat_id FROM partner_connections
                   WHERE owner_chat_id = ? AND status = 'accepted' AND notifications_enabled = 1""",
                (owner_chat_id,),
            ).fetchall()
            return [r["partner_chat_id"] for r in rows]

    def set_partner_notifications(self, partner_chat_id: int, enabled: bool) -> int:
        with self._get_conn() as conn:
            cursor = conn.execute(
                "UPDATE partner_connections SET notifications_enabled = ? WHERE partner_chat_id = ? AND status = 'accepted'",
                (int(enabled), partner_chat_id),
            )
            return cursor.rowcount

    def remove_partner_connections(self, chat_id: int) -> int:
        """Unlink every connection the user is part of, on either side."""
        with self._get_conn() as conn:
            cursor = conn.execute(
                "DELETE FROM partner_connections WHERE owner_chat_id = ? OR partner_chat_id = ?",
                (chat_id, chat_id),
            )
            return cursor.rowcount

    # ── Reminder log ────────────────────────────────────────────────

    def was_reminder_sent(self, chat_id: int, kind: str, target_date: date) -> bool:
        with self._get_conn() as conn:
            row = conn.execute(
                "SELECT 1 FROM reminder_log WHERE chat_id = ? AND kind = ? AND target_date = ?",
                (chat_id, kind, target_date.isoformat()),
            ).fetchone()
            return row is not None

    def record_reminder(self, chat_id: int, kind: str, target_date: date):
        with self._get_conn() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO reminder_log (chat_id, kind, target_date) VALUES (?, ?, ?)",
                (chat_id, kind, target_date.isoformat()),
            )
