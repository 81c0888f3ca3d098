import time
from datetime import date
from unittest.mock import AsyncMock, patch

import pytest

from config.settings import VERSION
from cyclesync import mailer
from cyclesync.handlers import (
    about_command,
    adduser_command,
    adjust_command,
    button_handler,
    calendar_command,
    email_command,
    history_command,
    insights_command,
    intimacy_command,
    mood_command,
    next_command,
    partner_command,
    partnerview_command,
    period_command,
    phase_command,
    removeuser_command,
    settings_command,
    setup_command,
    start_command,
    stats_command,
    status_command,
    tip_command,
    users_command,
    _ai_call_timestamps,
    AI_RATE_LIMIT,
    MAIN_KEYBOARD,
)

TODAY = date(2026, 2, 21)


def _make_fake_date(today_val):
    """Create a date subclass with a controlled today() (C type can't be patched directly)."""
    class FakeDate(date):
        @classmethod
        def today(cls):
            return today_val
    return FakeDate


@pytest.fixture(autouse=True)
def frozen_today():
    """Pin today to 2026-02-21: user 1000 is on day 21, user 2000 on day 17."""
    fake = _make_fake_date(TODAY)
    with patch("cyclesync.handlers.date", fake), patch("cyclesync.cycle.date", fake):
        yield


@pytest.fixture(autouse=True)
def reset_rate_limit():
    _ai_call_timestamps.clear()


@pytest.fixture
def user_db(mock_context):
    return mock_context.bot_data["db"]


def _reply(update) -> str:
    return update.message.reply_text.call_args[0][0]


def _edited(update) -> str:
    return update.callback_query.edit_message_text.call_args[0][0]


# ── /setup ───────────────────────────────────────────────────────

class TestSetupCommand:
    async def test_no_args(self, make_update, mock_context):
        update = make_update(chat_id=1000)
        mock_context.args = []
        await setup_command(update, mock_context)
        assert "/setup" in _reply(update)

    async def test_invalid_numbers(self, make_update, mock_context):
        update = make_update(chat_id=1000)
        mock_context.args = ["abc", "5", "2026-02-15"]
        await setup_command(update, mock_context)
        assert "numbers" in _reply(update)

    async def test_cycle_out_of_range(self, make_update, mock_context):
        update = make_update(chat_id=1000)
        mock_context.args = ["10", "5", "2026-02-15"]
        await setup_command(update, mock_context)
        assert "between" in _reply(update).lower()

    async def test_period_out_of_range(self, make_update, mock_context):
        update = make_update(chat_id=1000)
        mock_context.args = ["28", "14", "2026-02-15"]
        await setup_command(update, mock_context)
        assert "Period length" in _reply(update)

    async def test_invalid_date(self, make_update, mock_context):
        update = make_update(chat_id=1000)
        mock_context.args = ["28", "5", "not-a-date"]
        await setup_command(update, mock_context)
        assert "format" in _reply(update).lower()

    async def test_future_date(self, make_update, mock_context):
        update = make_update(chat_id=1000)
        mock_context.args = ["28", "5", "2026-03-01"]
        await setup_command(update, mock_context)
        assert "future" in _reply(update).lower()

    async def test_invalid_goal(self, make_update, mock_context):
        update = make_update(chat_id=1000)
        mock_context.args = ["28", "5", "2026-02-15", "weight_loss"]
        await setup_command(update, mock_context)
        assert "Goal must be" in _reply(update)

    async def test_success_for_new_user(self, make_update, mock_context, user_db):
        user_db.add_user(3000, added_by=1000)
        update = make_update(chat_id=3000)
        mock_context.args = ["28", "5", "2026-02-15", "pregnancy_planning"]
        await setup_command(update, mock_context)

        reply = _reply(update)
        assert "All set" in reply
        assert "day *7*" in reply
        config = user_db.get_user_config(3000)
        assert config["cycle_length"] == 28
        assert config["tracking_goal"] == "pregnancy_planning"
        assert user_db.get_period_history(3000) == [{"start_date": "2026-02-15", "period_length": 5}]

    async def test_blocks_strangers(self, make_update, mock_context, user_db):
        update = make_update(chat_id=9999)
        mock_context.args = ["28", "5", "2026-02-15"]
        await setup_command(update, mock_context)
        assert "invite-only" in _reply(update)
        assert not user_db.user_has_config(9999)


# ── /start ───────────────────────────────────────────────────────

class TestStartCommand:
    async def test_without_config_shows_setup(self, make_update, mock_context, user_db):
        user_db.add_user(3000, added_by=1000)
        update = make_update(chat_id=3000)
        await start_command(update, mock_context)
        assert "/setup" in _reply(update)

    async def test_with_config_shows_menu(self, make_update, mock_context):
        update = make_update(chat_id=1000)
        await start_command(update, mock_context)
        assert "CycleSync" in _reply(update)
        assert update.message.reply_text.call_args.kwargs["reply_markup"] is MAIN_KEYBOARD


# ── Views ────────────────────────────────────────────────────────

class TestStatusCommand:
    async def test_today(self, make_update, mock_context):
        update = make_update(chat_id=1000)
        await status_command(update, mock_context)
        reply = _reply(update)
        assert "Cycle day: *21* of 28" in reply
        assert "Luteal" in reply
        assert "Next period in *8* days" in reply

    async def test_high_fertility_note_for_planning(self, make_update, mock_context):
        update = make_update(chat_id=2000)
        await status_command(update, mock_context)
        reply = _reply(update)
        assert "Fertility score: *90*/100" in reply
        assert "High fertility today" in reply


class TestCalendarCommand:
    async def test_current_month(self, make_update, mock_context):
        update = make_update(chat_id=1000)
        await calendar_command(update, mock_context)
        reply = _reply(update)
        assert "February 2026" in reply
        assert "*21*" in reply

    async def test_other_month(self, make_update, mock_context):
        update = make_update(chat_id=1000)
        mock_context.args = ["2026-03"]
        await calendar_command(update, mock_context)
        assert "March 2026" in _reply(update)

    async def test_bad_month(self, make_update, mock_context):
        update = make_update(chat_id=1000)
        mock_context.args = ["march"]
        await calendar_command(update, mock_context)
        assert "Use a month" in _reply(update)


class TestNextCommand:
    async def test_upcoming_dates(self, make_update, mock_context):
        update = make_update(chat_id=1000)
        await next_command(update, mock_context)
        reply = _reply(update)
        assert "*2026-03-01* (8 days)" in reply
        assert "*2026-03-14* (21 days)" in reply
        assert "*2026-03-09* to *2026-03-15*" in reply


class TestPhaseCommand:
    async def test_luteal_detail(self, make_update, mock_context):
        update = make_update(chat_id=1000)
        await phase_command(update, mock_context)
        assert "Luteal Phase (Day 17-28)" in _reply(update)


class TestInsightsCommand:
    async def test_general_tips_for_cycle_tracking(self, make_update, mock_context):
        update = make_update(chat_id=1000)
        await insights_command(update, mock_context)
        reply = _reply(update)
        assert "Cycle tracking" in reply
        assert "Track your mood and symptoms" in reply

    async def test_conception_tips_just_after_ovulation(self, make_update, mock_context):
        # user 2000: day 17 of a 30-day cycle, ovulation was day 16
        update = make_update(chat_id=2000)
        await insights_command(update, mock_context)
        reply = _reply(update)
        assert "Pregnancy planning" in reply
        assert "Peak" in reply
        assert "most fertile time" in reply


class TestStatsCommand:
    async def test_not_enough_data(self, make_update, mock_context):
        update = make_update(chat_id=1000)
        await stats_command(update, mock_context)
        reply = _reply(update)
        assert "Average cycle: *28*" in reply
        assert "not enough data yet" in reply

    async def test_with_history(self, make_update, mock_context, user_db):
        user_db.add_period_log(1000, "2025-12-04", 5)
        user_db.add_period_log(1000, "2026-01-03", 5)
        user_db.add_period_log(1000, "2026-02-01", 4)
        update = make_update(chat_id=1000)
        await stats_command(update, mock_context)
        reply = _reply(update)
        assert "Average cycle: *30*" in reply
        assert "Cycles tracked: *2*" in reply
        assert "Last cycles: 30, 29" in reply


class TestTipCommand:
    async def test_sends_tip(self, make_update, mock_context):
        update = make_update(chat_id=1000)
        with patch("cyclesync.handlers.generate_tip", new_callable=AsyncMock) as mock_ai:
            mock_ai.return_value = "Go for a walk!"
            await tip_command(update, mock_context)
        assert "Go for a walk!" in _reply(update)
        args, kwargs = mock_ai.call_args
        assert args == ("luteal", 21)
        assert kwargs["tracking_goal"] == "cycle_tracking"

    async def test_ai_failure(self, make_update, mock_context):
        update = make_update(chat_id=1000)
        with patch("cyclesync.handlers.generate_tip", new_callable=AsyncMock) as mock_ai:
            mock_ai.side_effect = Exception("API error")
            await tip_command(update, mock_context)
        assert "brain froze" in _reply(update)

    async def test_rate_limited(self, make_update, mock_context):
        for _ in range(AI_RATE_LIMIT):
            _ai_call_timestamps[1000].append(time.monotonic())
        update = make_update(chat_id=1000)
        with patch("cyclesync.handlers.generate_tip", new_callable=AsyncMock) as mock_ai:
            await tip_command(update, mock_context)
        mock_ai.assert_not_called()
        assert "breath" in _reply(update).lower()


# ── Inline menu ──────────────────────────────────────────────────

class TestButtonHandler:
    async def test_status(self, make_update, mock_context):
        update = make_update(chat_id=1000)
        update.callback_query.data = "status"
        await button_handler(update, mock_context)
        update.callback_query.answer.assert_called_once()
        assert "Cycle day: *21*" in _edited(update)

    async def test_calendar(self, make_update, mock_context):
        update = make_update(chat_id=1000)
        update.callback_query.data = "calendar"
        await button_handler(update, mock_context)
        assert "February 2026" in _edited(update)

    async def test_settings(self, make_update, mock_context):
        update = make_update(chat_id=2000)
        update.callback_query.data = "settings"
        await button_handler(update, mock_context)
        assert "Cycle length: *30*" in _edited(update)

    async def test_period_confirm(self, make_update, mock_context, user_db):
        update = make_update(chat_id=1000)
        update.callback_query.data = "period_confirm"
        await button_handler(update, mock_context)
        assert "Got it" in _edited(update)
        assert user_db.get_user_config(1000)["last_period_date"] == "2026-02-21"

    async def test_tip(self, make_update, mock_context):
        update = make_update(chat_id=1000)
        update.callback_query.data = "tip"
        with patch("cyclesync.handlers.generate_tip", new_callable=AsyncMock) as mock_ai:
            mock_ai.return_value = "Stretch a little."
            await button_handler(update, mock_context)
        assert "Stretch a little." in _edited(update)


# ── /period ──────────────────────────────────────────────────────

class TestPeriodCommand:
    async def test_no_args_logs_today(self, make_update, mock_context, user_db):
        update = make_update(chat_id=1000)
        mock_context.args = []
        await period_command(update, mock_context)
        assert "Got it" in _reply(update)
        assert user_db.get_user_config(1000)["last_period_date"] == "2026-02-21"

    async def test_cycle_length_learning(self, make_update, mock_context, user_db):
        user_db.update_user_last_period_date(1000, "2026-01-27")
        update = make_update(chat_id=1000)
        mock_context.args = ["2026-02-21"]
        await period_command(update, mock_context)
        assert "updated" in _reply(update).lower()
        # 25-day gap blended with 28
        assert user_db.get_user_config(1000)["cycle_length"] == 26

    async def test_with_period_length(self, make_update, mock_context, user_db):
        update = make_update(chat_id=1000)
        mock_context.args = ["2026-02-20", "6"]
        await period_command(update, mock_context)
        assert user_db.get_user_config(1000)["period_length"] == 6
        assert user_db.get_period_history(1000)[0] == {"start_date": "2026-02-20", "period_length": 6}

    async def test_bad_period_length(self, make_update, mock_context, user_db):
        update = make_update(chat_id=1000)
        mock_context.args = ["2026-02-20", "12"]
        await period_command(update, mock_context)
        assert "between 1 and 10" in _reply(update)
        assert user_db.get_user_config(1000)["last_period_date"] == "2026-02-01"

    async def test_future_date(self, make_update, mock_context):
        update = make_update(chat_id=1000)
        mock_context.args = ["2026-02-27"]
        await period_command(update, mock_context)
        assert "future" in _reply(update)

    async def test_bad_date(self, make_update, mock_context):
        update = make_update(chat_id=1000)
        mock_context.args = ["yesterday"]
        await period_command(update, mock_context)
        assert "Wrong date format" in _reply(update)

    async def test_past_date_goes_to_history_only(self, make_update, mock_context, user_db):
        update = make_update(chat_id=1000)
        mock_context.args = ["2026-01-04"]
        await period_command(update, mock_context)
        reply = _reply(update)
        assert "past period" in reply
        assert "Added to your history" in reply
        config = user_db.get_user_config(1000)
        assert config["last_period_date"] == "2026-02-01"
        assert config["cycle_length"] == 28
        starts = [p["start_date"] for p in user_db.get_period_history(1000)]
        assert "2026-01-04" in starts

    async def test_short_gap_keeps_length_in_range(self, make_update, mock_context, user_db):
        user_db.update_user_cycle_length(1000, 21)
        update = make_update(chat_id=1000)
        mock_context.args = ["2026-02-19"]
        await period_command(update, mock_context)
        assert "unusual" in _reply(update)
        assert user_db.get_user_config(1000)["cycle_length"] == 21
        assert user_db.get_user_config(1000)["last_period_date"] == "2026-02-19"

        update = make_update(chat_id=1000)
        mock_context.args = ["period", "6"]
        await settings_command(update, mock_context)
        assert user_db.get_user_config(1000)["period_length"] == 6


# ── /mood and /history ───────────────────────────────────────────

class TestMoodCommand:
    async def test_no_args_shows_usage(self, make_update, mock_context):
        update = make_update(chat_id=1000)
        await mood_command(update, mock_context)
        assert "How are you feeling" in _reply(update)

    async def test_logs_entry(self, make_update, mock_context, user_db):
        update = make_update(chat_id=1000)
        mock_context.args = ["low", "cramps=6", "symptoms=cramps,fatigue", "long", "day"]
        await mood_command(update, mock_context)
        assert "Logged" in _reply(update)

        entry = user_db.get_recent_mood_entries(1000)[0]
        assert entry["mood"] == "low"
        assert entry["cramps_level"] == 6
        assert entry["symptoms"] == ["Cramps", "Fatigue"]
        assert entry["notes"] == "long day"
        assert entry["phase"] == "luteal"

    async def test_invalid_mood(self, make_update, mock_context, user_db):
        update = make_update(chat_id=1000)
        mock_context.args = ["hangry"]
        await mood_command(update, mock_context)
        assert "Mood must be one of" in _reply(update)
        assert user_db.get_recent_mood_entries(1000) == []


class TestHistoryCommand:
    async def test_empty(self, make_update, mock_context):
        update = make_update(chat_id=1000)
        await history_command(update, mock_context)
        assert "No mood entries yet" in _reply(update)

    async def test_lists_entries(self, make_update, mock_context, user_db):
        user_db.add_mood_entry(1000, "good", "luteal", cramps_level=2, notes="*fine*")
        update = make_update(chat_id=1000)
        await history_command(update, mock_context)
        reply = _reply(update)
        assert "Recent Mood Entries" in reply
        assert "cramps 2/10" in reply
        assert "\\*fine\\*" in reply


# ── /intimacy ────────────────────────────────────────────────────

class TestIntimacyCommand:
    async def test_empty_list(self, make_update, mock_context):
        update = make_update(chat_id=1000)
        await intimacy_command(update, mock_context)
        assert "Nothing logged yet" in _reply(update)

    async def test_log_full_entry(self, make_update, mock_context, user_db):
        update = make_update(chat_id=1000)
        mock_context.args = ["2026-02-14", "22:30", "condom", "date", "night"]
        await intimacy_command(update, mock_context)
        reply = _reply(update)
        assert "Logged #" in reply
        assert "Fertility score that day: 100/100" in reply

        entry = user_db.get_intercourse_entries(1000)[0]
        assert entry["date"] == "2026-02-14"
        assert entry["time"] == "22:30"
        assert entry["protection"] == "condom"
        assert entry["notes"] == "date night"

    async def test_defaults_to_today(self, make_update, mock_context, user_db):
        update = make_update(chat_id=1000)
        mock_context.args = ["21:00"]
        await intimacy_command(update, mock_context)
        entry = user_db.get_intercourse_entries(1000)[0]
        assert entry["date"] == "2026-02-21"
        assert entry["time"] == "21:00"
        assert entry["protection"] == "none"

    async def test_future_date(self, make_update, mock_context, user_db):
        update = make_update(chat_id=1000)
        mock_context.args = ["2026-03-01"]
        await intimacy_command(update, mock_context)
        assert "future" in _reply(update)
        assert user_db.get_intercourse_entries(1000) == []

    async def test_list_entries(self, make_update, mock_context, user_db):
        entry_id = user_db.add_intercourse_entry(1000, date(2026, 2, 14), "condom", "22:30")
        update = make_update(chat_id=1000)
        await intimacy_command(update, mock_context)
        reply = _reply(update)
        assert f"#{entry_id} 2026-02-14 22:30" in reply
        assert "Condom" in reply

    async def test_delete(self, make_update, mock_context, user_db):
        entry_id = user_db.add_intercourse_entry(1000, date(2026, 2, 14))
        update = make_update(chat_id=1000)
        mock_context.args = ["delete", str(entry_id)]
        await intimacy_command(update, mock_context)
        assert "deleted" in _reply(update)
        assert user_db.get_intercourse_entries(1000) == []

    async def test_delete_missing(self, make_update, mock_context):
        update = make_update(chat_id=1000)
        mock_context.args = ["delete", "999"]
        await intimacy_command(update, mock_context)
        assert "couldn't find" in _reply(update)

    async def test_delete_usage(self, make_update, mock_context):
        update = make_update(chat_id=1000)
        mock_context.args = ["delete"]
        await intimacy_command(update, mock_context)
        assert "Usage" in _reply(update)


# ── /adjust ──────────────────────────────────────────────────────

class TestAdjustCommand:
    async def test_success(self, make_update, mock_context, user_db):
        update = make_update(chat_id=1000)
        mock_context.args = ["2026-02-10"]
        await adjust_command(update, mock_context)
        assert "2026-02-10" in _reply(update)
        assert user_db.get_user_config(1000)["last_period_date"] == "2026-02-10"

    async def test_future(self, make_update, mock_context):
        update = make_update(chat_id=1000)
        mock_context.args = ["2026-02-22"]
        await adjust_command(update, mock_context)
        assert "future" in _reply(update)

    async def test_bad_format(self, make_update, mock_context):
        update = make_update(chat_id=1000)
        mock_context.args = ["10/02/2026"]
        await adjust_command(update, mock_context)
        assert "Wrong date format" in _reply(update)


# ── /settings ────────────────────────────────────────────────────

class TestSettingsCommand:
    async def test_view(self, make_update, mock_context):
        update = make_update(chat_id=1000)
        mock_context.args = []
        await settings_command(update, mock_context)
        reply = _reply(update)
        assert "Cycle length: *28*" in reply
        assert "not set" in reply

    async def test_bare_number_is_cycle(self, make_update, mock_context, user_db):
        update = make_update(chat_id=1000)
        mock_context.args = ["30"]
        await settings_command(update, mock_context)
        assert "30" in _reply(update)
        assert user_db.get_user_config(1000)["cycle_length"] == 30

    async def test_period(self, make_update, mock_context, user_db):
        update = make_update(chat_id=1000)
        mock_context.args = ["period", "6"]
        await settings_command(update, mock_context)
        assert user_db.get_user_config(1000)["period_length"] == 6

    async def test_cycle_out_of_range(self, make_update, mock_context, user_db):
        update = make_update(chat_id=1000)
        mock_context.args = ["cycle", "50"]
        await settings_command(update, mock_context)
        assert "between" in _reply(update)
        assert user_db.get_user_config(1000)["cycle_length"] == 28

    async def test_goal(self, make_update, mock_context, user_db):
        update = make_update(chat_id=1000)
        mock_context.args = ["goal", "pregnancy_planning"]
        await settings_command(update, mock_context)
        assert user_db.get_user_config(1000)["tracking_goal"] == "pregnancy_planning"

    async def test_bad_goal(self, make_update, mock_context):
        update = make_update(chat_id=1000)
        mock_context.args = ["goal", "sleep"]
        await settings_command(update, mock_context)
        assert "Goal must be" in _reply(update)

    async def test_age(self, make_update, mock_context, user_db):
        update = make_update(chat_id=1000)
        mock_context.args = ["age", "29"]
        await settings_command(update, mock_context)
        assert user_db.get_user_config(1000)["age"] == 29

    async def test_bad_age(self, make_update, mock_context, user_db):
        update = make_update(chat_id=1000)
        mock_context.args = ["age", "5"]
        await settings_command(update, mock_context)
        assert "Age should be" in _reply(update)
        assert user_db.get_user_config(1000)["age"] is None

    async def test_weight(self, make_update, mock_context, user_db):
        update = make_update(chat_id=1000)
        mock_context.args = ["weight", "61.5"]
        await settings_command(update, mock_context)
        assert "61.5" in _reply(update)
        assert user_db.get_user_config(1000)["weight"] == 61.5

    async def test_unknown_field(self, make_update, mock_context):
        update = make_update(chat_id=1000)
        mock_context.args = ["colour", "red"]
        await settings_command(update, mock_context)
        assert "Usage" in _reply(update)


# ── /email ───────────────────────────────────────────────────────

class TestEmailCommand:
    async def test_status(self, make_update, mock_context):
        update = make_update(chat_id=1000)
        await email_command(update, mock_context)
        reply = _reply(update)
        assert "not set" in reply
        assert "*off*" in reply

    async def test_save_address(self, make_update, mock_context, user_db):
        update = make_update(chat_id=1000)
        mock_context.args = ["me@example.com"]
        await email_command(update, mock_context)
        assert "saved" in _reply(update)
        assert user_db.get_user_config(1000)["email"] == "me@example.com"

    async def test_invalid_address(self, make_update, mock_context, user_db):
        update = make_update(chat_id=1000)
        mock_context.args = ["not-an-email"]
        await email_command(update, mock_context)
        assert "valid email" in _reply(update)
        assert user_db.get_user_config(1000)["email"] is None

    async def test_on_requires_address(self, make_update, mock_context, user_db):
        update = make_update(chat_id=1000)
        mock_context.args = ["on"]
        await email_command(update, mock_context)
        assert "Set your email first" in _reply(update)
        assert user_db.get_user_config(1000)["email_reminders"] == 0

    async def test_on_sends_welcome(self, make_update, mock_context, user_db):
        user_db.update_user_email(1000, "me@example.com")
        update = make_update(chat_id=1000)
        mock_context.args = ["on"]
        with patch.object(mailer, "is_configured", return_value=True), \
             patch.object(mailer, "send_email") as mock_send:
            await email_command(update, mock_context)
        assert "turned on" in _reply(update)
        assert user_db.get_user_config(1000)["email_reminders"] == 1
        assert mock_send.call_args.args[0] == "me@example.com"
        assert "Welcome" in mock_send.call_args.args[1]

    async def test_on_without_smtp(self, make_update, mock_context, user_db):
        user_db.update_user_email(1000, "me@example.com")
        update = make_update(chat_id=1000)
        mock_context.args = ["on"]
        with patch.object(mailer, "is_configured", return_value=False), \
             patch.object(mailer, "send_email") as mock_send:
            await email_command(update, mock_context)
        mock_send.assert_not_called()
        assert user_db.get_user_config(1000)["email_reminders"] == 1

    async def test_on_welcome_failure(self, make_update, mock_context, user_db):
        user_db.update_user_email(1000, "me@example.com")
        update = make_update(chat_id=1000)
        mock_context.args = ["on"]
        with patch.object(mailer, "is_configured", return_value=True), \
             patch.object(mailer, "send_email", side_effect=mailer.MailerError("smtp down")):
            await email_command(update, mock_context)
        assert "couldn't send" in _reply(update)
        assert user_db.get_user_config(1000)["email_reminders"] == 1

    async def test_off(self, make_update, mock_context, user_db):
        user_db.set_email_reminders(1000, True)
        update = make_update(chat_id=1000)
        mock_context.args = ["off"]
        await email_command(update, mock_context)
        assert user_db.get_user_config(1000)["email_reminders"] == 0


# ── /partner and /partnerview ────────────────────────────────────

class TestPartnerCommand:
    async def test_invite(self, make_update, mock_context, user_db):
        update = make_update(chat_id=1000)
        mock_context.args = ["invite"]
        with patch("cyclesync.handlers.new_partner_code", return_value="ABC123"):
            await partner_command(update, mock_context)
        assert "/partner join ABC123" in _reply(update)
        assert user_db.get_partner_connections(1000)[0]["status"] == "pending"

    async def test_invite_requires_profile(self, make_update, mock_context, user_db):
        user_db.add_user(3000, added_by=1000)
        update = make_update(chat_id=3000)
        mock_context.args = ["invite"]
        await partner_command(update, mock_context)
        assert "Set up your cycle" in _reply(update)
        assert user_db.get_partner_connections(3000) == []

    async def test_invite_by_email(self, make_update, mock_context):
        update = make_update(chat_id=1000)
        mock_context.args = ["invite", "love@example.com"]
        with patch("cyclesync.handlers.new_partner_code", return_value="ABC123"), \
             patch.object(mailer, "is_configured", return_value=True), \
             patch.object(mailer, "send_email") as mock_send:
            await partner_command(update, mock_context)
        assert "Invite sent" in _reply(update)
        to_email, _, body = mock_send.call_args.args
        assert to_email == "love@example.com"
        assert "/partner join ABC123" in body

    async def test_invite_bad_email(self, make_update, mock_context):
        update = make_update(chat_id=1000)
        mock_context.args = ["invite", "nope"]
        with patch.object(mailer, "send_email") as mock_send:
            await partner_command(update, mock_context)
        mock_send.assert_not_called()
        assert "doesn't look valid" in _reply(update)

    async def test_join_notifies_owner(self, make_update, mock_context, user_db):
        user_db.create_partner_invite(1000, "ABC123")
        user_db.add_user(3000, added_by=1000)
        update = make_update(chat_id=3000)
        mock_context.args = ["join", "abc123"]
        await partner_command(update, mock_context)
        assert "see how they're doing" in _reply(update)
        assert user_db.get_linked_owners(3000) == [1000]
        mock_context.bot.send_message.assert_awaited_once()
        assert mock_context.bot.send_message.call_args.kwargs["chat_id"] == 1000

    async def test_join_invalid_code(self, make_update, mock_context):
        update = make_update(chat_id=2000)
        mock_context.args = ["join", "ZZZZZZ"]
        await partner_command(update, mock_context)
        assert "isn't valid" in _reply(update)

    async def test_join_usage(self, make_update, mock_context):
        update = make_update(chat_id=2000)
        mock_context.args = ["join"]
        await partner_command(update, mock_context)
        assert "Usage" in _reply(update)

    async def test_list_and_remove(self, make_update, mock_context, user_db):
        user_db.create_partner_invite(1000, "ABC123")
        user_db.accept_partner_invite("ABC123", 2000)

        update = make_update(chat_id=1000)
        await partner_command(update, mock_context)
        assert "Partner Connections" in _reply(update)

        update = make_update(chat_id=2000)
        mock_context.args = ["remove"]
        await partner_command(update, mock_context)
        assert "removed" in _reply(update)
        assert user_db.get_partner_connections(1000) == []

    async def test_remove_nothing(self, make_update, mock_context):
        update = make_update(chat_id=2000)
        mock_context.args = ["remove"]
        await partner_command(update, mock_context)
        assert "don't have" in _reply(update)

    async def test_notify_off(self, make_update, mock_context, user_db):
        user_db.create_partner_invite(1000, "ABC123")
        user_db.accept_partner_invite("ABC123", 2000)
        update = make_update(chat_id=2000)
        mock_context.args = ["notify", "off"]
        await partner_command(update, mock_context)
        assert "turned off" in _reply(update)
        assert user_db.get_notified_partners(1000) == []

    async def test_notify_without_link(self, make_update, mock_context):
        update = make_update(chat_id=2000)
        mock_context.args = ["notify", "on"]
        await partner_command(update, mock_context)
        assert "not linked" in _reply(update)

    async def test_no_connections(self, make_update, mock_context):
        update = make_update(chat_id=2000)
        await partner_command(update, mock_context)
        assert "No partner connections" in _reply(update)


class TestPartnerviewCommand:
    async def test_not_linked(self, make_update, mock_context):
        update = make_update(chat_id=2000)
        await partnerview_command(update, mock_context)
        assert "not linked" in _reply(update)

    async def test_dashboard(self, make_update, mock_context, user_db):
        user_db.create_partner_invite(1000, "ABC123")
        user_db.accept_partner_invite("ABC123", 2000)
        update = make_update(chat_id=2000)
        await partnerview_command(update, mock_context)
        reply = _reply(update)
        assert "Cycle day *21*" in reply
        assert "They might need extra support" in reply
        assert "Next period in *8* days (2026-03-01)" in reply
        assert "Today's idea" in reply

    async def test_period_warning(self, make_update, mock_context, user_db):
        user_db.update_user_last_period_date(1000, "2026-02-20")
        user_db.create_partner_invite(1000, "ABC123")
        user_db.accept_partner_invite("ABC123", 2000)
        update = make_update(chat_id=2000)
        await partnerview_command(update, mock_context)
        assert "Their period is on right now" in _reply(update)


# ── Admin commands ───────────────────────────────────────────────

class TestAdduserCommand:
    async def test_no_args(self, make_update, mock_context):
        update = make_update(chat_id=1000)
        mock_context.args = []
        await adduser_command(update, mock_context)
        assert "Usage" in _reply(update)

    async def test_invalid_id(self, make_update, mock_context):
        update = make_update(chat_id=1000)
        mock_context.args = ["bob"]
        await adduser_command(update, mock_context)
        assert "valid user ID" in _reply(update)

    async def test_success(self, make_update, mock_context, user_db):
        update = make_update(chat_id=1000)
        mock_context.args = ["5000"]
        await adduser_command(update, mock_context)
        assert "whitelisted" in _reply(update).lower()
        assert user_db.is_user_authorized(5000)


class TestRemoveuserCommand:
    async def test_cannot_remove_admin(self, make_update, mock_context):
        update = make_update(chat_id=1000)
        mock_context.args = ["1000"]
        await removeuser_command(update, mock_context)
        assert "admin" in _reply(update).lower()

    async def test_success(self, make_update, mock_context, user_db):
        update = make_update(chat_id=1000)
        mock_context.args = ["2000"]
        await removeuser_command(update, mock_context)
        assert "removed" in _reply(update)
        assert not user_db.is_user_authorized(2000)


class TestUsersCommand:
    async def test_lists_users(self, make_update, mock_context):
        update = make_update(chat_id=1000)
        await users_command(update, mock_context)
        reply = _reply(update)
        assert "`1000` (admin)" in reply
        assert "`2000`" in reply


# ── /about ───────────────────────────────────────────────────────

class TestAboutCommand:
    async def test_shows_version(self, make_update, mock_context):
        update = make_update(chat_id=1000)
        await about_command(update, mock_context)
        assert VERSION in _reply(update)
