"""
Standup Bot: Telegram Bot.

Telegram is the user interface and the delivery channel. Reminders go out
as direct messages, updates are collected through the /standup
conversation and posted to each daily's channel, and managers get their
digests as direct messages.

Admin commands from non-admins are answered with a refusal. Reports are
limited to the daily's managers and admins.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta, timezone
from datetime import time as dt_time
from functools import wraps
from typing import TYPE_CHECKING, Any, Callable, Coroutine

from telegram import InlineKeyboardButton, InlineKeyboardMarkup, Update
from telegram.ext import (
    Application,
    ApplicationBuilder,
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
    ConversationHandler,
    MessageHandler,
    filters,
)

from standup.config import ConfigError, StandupConfig, load_standup_config, settings
from standup.core.bottlenecks import DEFAULT_SNOOZE_DAYS, get_bottlenecks, snooze
from standup.core.carry_chain import Disposition
from standup.core.digest import DIGEST_PERIODS, DigestService, format_digest
from standup.core.localtime import TimezoneResolver, parse_hhmm, utc_now, weekday_code
from standup.core.prompt_scheduler import PromptScheduler
from standup.core.retention import purge_expired
from standup.core.scheduled_poster import ScheduledPoster
from standup.core.standup_service import StandupDraft, StandupMode, StandupService, parse_lines
from standup.data.db import (
    OOODB,
    ParticipantDB,
    PromptDB,
    SubmissionDB,
    TimezoneCacheDB,
    UserDB,
    WorkItemDB,
)

if TYPE_CHECKING:
    from standup.config import Daily
    from standup.ports.notification_port import NotificationPort

logger = logging.getLogger(__name__)

_NONE_ANSWER = "-"
_KEEP_ANSWER = "."

# Disposition marks shown on the carry-over keyboard
_MARKS = {
    Disposition.CONTINUE: "[>]",
    Disposition.DONE: "[x]",
    Disposition.DROP: "[-]",
}
_CYCLE = {
    Disposition.CONTINUE: Disposition.DONE,
    Disposition.DONE: Disposition.DROP,
    Disposition.DROP: Disposition.CONTINUE,
}


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


@dataclass
class StandupComponents:
    """Everything a handler or job needs, stored in ``bot_data``."""

    config: StandupConfig
    notifier: NotificationPort
    user_db: UserDB
    participant_db: ParticipantDB
    prompt_db: PromptDB
    submission_db: SubmissionDB
    work_item_db: WorkItemDB
    ooo_db: OOODB
    timezone_cache: TimezoneCacheDB
    timezones: TimezoneResolver
    service: StandupService
    scheduler: PromptScheduler
    poster: ScheduledPoster
    digests: DigestService


def build_components(
    config: StandupConfig,
    notifier: NotificationPort,
    db_path: str | None = None,
) -> StandupComponents:
    """Create the stores and engines over one SQLite file."""
    from standup.adapters.profile_timezone import ProfileTimezoneDirectory

    user_db = UserDB(db_path)
    participant_db = ParticipantDB(db_path)
    prompt_db = PromptDB(db_path)
    submission_db = SubmissionDB(db_path)
    work_item_db = WorkItemDB(db_path)
    ooo_db = OOODB(db_path)
    timezone_cache = TimezoneCacheDB(db_path)

    timezones = TimezoneResolver(
        ProfileTimezoneDirectory(user_db, settings.TIMEZONE), timezone_cache,
    )
    service = StandupService(submission_db, prompt_db, work_item_db, user_db, notifier)

    return StandupComponents(
        config=config,
        notifier=notifier,
        user_db=user_db,
        participant_db=participant_db,
        prompt_db=prompt_db,
        submission_db=submission_db,
        work_item_db=work_item_db,
        ooo_db=ooo_db,
        timezone_cache=timezone_cache,
        timezones=timezones,
        service=service,
        scheduler=PromptScheduler(
            config, participant_db, prompt_db, ooo_db, timezones, notifier,
        ),
        poster=ScheduledPoster(
            config, submission_db, participant_db, ooo_db, timezones, service,
        ),
        digests=DigestService(
            config, submission_db, work_item_db, participant_db, user_db, ooo_db,
        ),
    )


def _components(context: ContextTypes.DEFAULT_TYPE) -> StandupComponents:
    return context.bot_data["standup"]


async def _local_today(components: StandupComponents, user_id: int) -> date:
    """The user's local date, or the UTC date when the zone is unknown."""
    now = utc_now()
    try:
        local = await components.timezones.local_time(user_id, now)
    except Exception as exc:
        logger.warning("Timezone lookup failed for %d, using UTC: %s", user_id, exc)
        local = None
    return local.date if local is not None else now.date()


def _display_name(update: Update) -> str:
    user = update.effective_user
    if user.username:
        return f"@{user.username}"
    return user.full_name or str(user.id)


# ---------------------------------------------------------------------------
# Decorators
# ---------------------------------------------------------------------------


def registered(
    func: Callable[..., Coroutine[Any, Any, Any]],
) -> Callable[..., Coroutine[Any, Any, Any]]:
    """Keep the caller's profile (display name) current before handling."""

    @wraps(func)
    async def wrapper(update: Update, context: ContextTypes.DEFAULT_TYPE) -> Any:
        user = update.effective_user
        if user is None:
            return None
        _components(context).user_db.upsert_user(user.id, _display_name(update))
        return await func(update, context)

    return wrapper


def admin_only(
    func: Callable[..., Coroutine[Any, Any, None]],
) -> Callable[..., Coroutine[Any, Any, None]]:
    """Refuse the command unless the caller is a configured admin."""

    @wraps(func)
    async def wrapper(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        user = update.effective_user
        if user is None or not _components(context).config.is_admin(user.id):
            uid = user.id if user else "unknown"
            logger.warning("Admin command refused for user_id=%s", uid)
            await update.message.reply_text("Only admins can do that.")
            return
        return await func(update, context)

    return wrapper


def _can_view_reports(config: StandupConfig, daily: Daily, user_id: int) -> bool:
    return user_id in daily.managers or config.is_admin(user_id)


async def _resolve_daily(
    update: Update, context: ContextTypes.DEFAULT_TYPE, usage: str,
) -> Daily | None:
    """First argument as a configured daily; replies and returns None otherwise."""
    if not context.args:
        await update.message.reply_text(f"Usage: {usage}")
        return None
    name = context.args[0]
    daily = _components(context).config.get_daily(name)
    if daily is None:
        await update.message.reply_text(f'Daily "{name}" not found. Use /list to see dailies.')
        return None
    return daily


# ---------------------------------------------------------------------------
# General commands
# ---------------------------------------------------------------------------

_HELP_TEXT = (
    "Standup commands:\n"
    "/standup <daily> - fill in your standup\n"
    "/status - whether your updates for today and tomorrow are in\n"
    "/list [daily] - dailies, or the participants of one\n"
    "/timezone <Area/City> - set your timezone\n"
    "/ooo <daily> <YYYY-MM-DD> <YYYY-MM-DD> - out of office\n"
    "/back <daily> - end your out-of-office early\n"
    "\n"
    "Managers:\n"
    "/digest <daily> [daily|weekly|4-week]\n"
    "/bottlenecks <daily>\n"
    "/snooze <item_id> [days]\n"
    "\n"
    "Admins:\n"
    "/add <user_id> <daily> [HH:MM]\n"
    "/remove <user_id> <daily>\n"
    "/remind - send every pending reminder now"
)


@registered
async def cmd_start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /start."""
    await update.message.reply_text(
        f"Hi {update.effective_user.first_name}! I collect daily standups.\n"
        f"Your Telegram id is {update.effective_user.id}; an admin adds you to a daily "
        "with it.\n\n" + _HELP_TEXT
    )


@registered
async def cmd_help(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /help."""
    await update.message.reply_text(_HELP_TEXT)


@registered
async def cmd_timezone(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /timezone [Area/City] - show or set the caller's zone."""
    from standup.adapters.profile_timezone import is_valid_timezone

    components = _components(context)
    user_id = update.effective_user.id

    if not context.args:
        profile = components.user_db.get_user(user_id)
        current = profile.timezone if profile and profile.timezone else None
        if current:
            await update.message.reply_text(f"Your timezone is {current}.")
        else:
            await update.message.reply_text(
                f"No timezone set; using {settings.TIMEZONE}.\n"
                "Usage: /timezone <Area/City>, e.g. /timezone Asia/Jerusalem"
            )
        return

    tz_name = context.args[0]
    if not is_valid_timezone(tz_name):
        await update.message.reply_text(
            f"Unknown timezone '{tz_name}'. Use an IANA name like Europe/London."
        )
        return

    components.user_db.set_timezone(user_id, tz_name)
    components.timezone_cache.invalidate(user_id)
    await update.message.reply_text(f"Timezone set to {tz_name}.")


@registered
async def cmd_list(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /list [daily]."""
    components = _components(context)
    config = components.config

    if not context.args:
        mine = {p.daily_name for p in components.participant_db.get_user_dailies(
            update.effective_user.id,
        )}
        if not config.dailies:
            await update.message.reply_text("No dailies are configured.")
            return
        lines = ["Dailies:"]
        for daily in config.dailies:
            count = len(components.participant_db.get_participants(daily.name))
            marker = " (you)" if daily.name in mine else ""
            lines.append(f"- {daily.name}: {count} participants, schedule {daily.schedule}{marker}")
        await update.message.reply_text("\n".join(lines))
        return

    daily = await _resolve_daily(update, context, "/list [daily]")
    if daily is None:
        return

    participants = components.participant_db.get_participants(daily.name)
    if not participants:
        await update.message.reply_text(f"No participants in {daily.name} yet.")
        return

    names = components.user_db.display_names()
    lines = [f"Participants in {daily.name}:"]
    for p in participants:
        schedule = config.get_schedule(p.schedule_name)
        at = p.time_override or (schedule.default_time if schedule else "?")
        lines.append(f"- {names.get(p.user_id, p.user_id)} at {at}")
    await update.message.reply_text("\n".join(lines))


@registered
async def cmd_status(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /status - today's and tomorrow's update for each of your dailies."""
    components = _components(context)
    user_id = update.effective_user.id
    memberships = components.participant_db.get_user_dailies(user_id)
    if not memberships:
        await update.message.reply_text("You are not in any daily yet.")
        return

    today = await _local_today(components, user_id)
    tomorrow = today + timedelta(days=1)
    lines = [f"Your standups ({today}):"]
    for p in memberships:
        todays = components.submission_db.get_submission(user_id, p.daily_name, today.isoformat())
        if todays is None:
            today_state = "not submitted yet"
        elif todays.posted:
            today_state = "posted"
        else:
            today_state = "submitted, waiting to be posted"
        scheduled = components.submission_db.get_submission(
            user_id, p.daily_name, tomorrow.isoformat(),
        )
        tomorrow_state = "scheduled" if scheduled is not None else "not scheduled"
        away = components.ooo_db.get_active_ooo(user_id, p.daily_name, today)
        suffix = " (out of office)" if away is not None else ""
        lines.append(f"- {p.daily_name}{suffix}: today {today_state}, tomorrow {tomorrow_state}")
    await update.message.reply_text("\n".join(lines))


# ---------------------------------------------------------------------------
# Admin commands
# ---------------------------------------------------------------------------


@registered
@admin_only
async def cmd_add(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /add <user_id> <daily> [HH:MM]."""
    components = _components(context)
    args = context.args or []
    if len(args) < 2:
        await update.message.reply_text("Usage: /add <user_id> <daily> [HH:MM]")
        return

    try:
        user_id = int(args[0])
    except ValueError:
        await update.message.reply_text("The user id must be a number (see /start).")
        return

    daily = components.config.get_daily(args[1])
    if daily is None:
        await update.message.reply_text(f'Daily "{args[1]}" not found.')
        return

    time_override = None
    if len(args) > 2:
        try:
            parse_hhmm(args[2])
        except ValueError:
            await update.message.reply_text("Time must be HH:MM, e.g. 09:30.")
            return
        time_override = args[2]

    components.participant_db.add_participant(user_id, daily.name, daily.schedule, time_override)
    schedule = components.config.get_schedule(daily.schedule)
    at = time_override or (schedule.default_time if schedule else "?")
    await update.message.reply_text(f"Added {user_id} to {daily.name} at {at}.")


@registered
@admin_only
async def cmd_remove(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /remove <user_id> <daily>."""
    components = _components(context)
    args = context.args or []
    if len(args) < 2:
        await update.message.reply_text("Usage: /remove <user_id> <daily>")
        return

    try:
        user_id = int(args[0])
    except ValueError:
        await update.message.reply_text("The user id must be a number.")
        return

    if components.participant_db.remove_participant(user_id, args[1]):
        await update.message.reply_text(f"Removed {user_id} from {args[1]}.")
    else:
        await update.message.reply_text(f"{user_id} is not in {args[1]}.")


@registered
@admin_only
async def cmd_remind(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /remind - a forced reminder sweep for manual testing."""
    stats = await _components(context).scheduler.run_sweep(force=True)
    await update.message.reply_text(
        f"Reminders: {stats.prompted} sent, {stats.skipped} skipped, {stats.errors} errors."
    )


# ---------------------------------------------------------------------------
# Out of office
# ---------------------------------------------------------------------------


@registered
async def cmd_ooo(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /ooo <daily> <start> <end>."""
    usage = "/ooo <daily> <YYYY-MM-DD> <YYYY-MM-DD>"
    daily = await _resolve_daily(update, context, usage)
    if daily is None:
        return
    if len(context.args) < 3:
        await update.message.reply_text(f"Usage: {usage}")
        return

    try:
        start = date.fromisoformat(context.args[1])
        end = date.fromisoformat(context.args[2])
    except ValueError:
        await update.message.reply_text("Dates must be YYYY-MM-DD.")
        return

    try:
        _components(context).ooo_db.add_ooo(
            update.effective_user.id, daily.name, start.isoformat(), end.isoformat(),
        )
    except ValueError:
        await update.message.reply_text("The end date must not be before the start date.")
        return

    await update.message.reply_text(
        f"Out of office for {daily.name} from {start} to {end}. No reminders until then."
    )


@registered
async def cmd_back(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /back <daily> - clear current and future out-of-office ranges."""
    daily = await _resolve_daily(update, context, "/back <daily>")
    if daily is None:
        return

    components = _components(context)
    user_id = update.effective_user.id
    today = await _local_today(components, user_id)
    cleared = components.ooo_db.clear_ooo(user_id, daily.name, today)
    if cleared:
        await update.message.reply_text(f"Welcome back! Reminders for {daily.name} resume.")
    else:
        await update.message.reply_text(f"You had no out-of-office set for {daily.name}.")


# ---------------------------------------------------------------------------
# Manager reports
# ---------------------------------------------------------------------------


@registered
async def cmd_digest(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /digest <daily> [daily|weekly|4-week]."""
    daily = await _resolve_daily(update, context, "/digest <daily> [daily|weekly|4-week]")
    if daily is None:
        return

    components = _components(context)
    user_id = update.effective_user.id
    if not _can_view_reports(components.config, daily, user_id):
        await update.message.reply_text("Only managers of this daily can see its digest.")
        return

    period = context.args[1] if len(context.args) > 1 else "weekly"
    if period not in DIGEST_PERIODS:
        await update.message.reply_text(f"Period must be one of: {', '.join(DIGEST_PERIODS)}")
        return

    today = await _local_today(components, user_id)
    try:
        report = components.digests.build_digest(daily, period, today)
    except Exception as exc:
        logger.error("/digest error for '%s': %s", daily.name, exc)
        await update.message.reply_text("Failed to build the digest. Please try again.")
        return
    await update.message.reply_text(format_digest(report, today))


@registered
async def cmd_bottlenecks(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /bottlenecks <daily>."""
    daily = await _resolve_daily(update, context, "/bottlenecks <daily>")
    if daily is None:
        return

    components = _components(context)
    user_id = update.effective_user.id
    if not _can_view_reports(components.config, daily, user_id):
        await update.message.reply_text("Only managers of this daily can see its bottlenecks.")
        return

    today = await _local_today(components, user_id)
    items = get_bottlenecks(
        components.work_item_db, daily.name, daily.bottleneck_threshold, today,
    )
    if not items:
        await update.message.reply_text(f"No bottlenecks in {daily.name}.")
        return

    names = components.user_db.display_names()
    lines = [f"Bottlenecks in {daily.name} (carried {daily.bottleneck_threshold}+ times):"]
    for item in items:
        lines.append(
            f"#{item.id} {item.text} - {names.get(item.user_id, item.user_id)}, "
            f"carried {item.carry_count}x, {item.age_days(today)}d old"
        )
    lines.append("")
    lines.append("Hide one for a while with /snooze <item_id> [days].")
    await update.message.reply_text("\n".join(lines))


@registered
async def cmd_snooze(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /snooze <item_id> [days]."""
    components = _components(context)
    args = context.args or []
    if not args:
        await update.message.reply_text("Usage: /snooze <item_id> [days]")
        return

    try:
        item_id = int(args[0])
        days = int(args[1]) if len(args) > 1 else DEFAULT_SNOOZE_DAYS
    except ValueError:
        await update.message.reply_text("Item id and days must be numbers.")
        return

    item = components.work_item_db.get_item(item_id)
    daily = components.config.get_daily(item.daily_name) if item else None
    if item is None or daily is None:
        await update.message.reply_text(f"Item #{item_id} not found.")
        return

    user_id = update.effective_user.id
    if not _can_view_reports(components.config, daily, user_id):
        await update.message.reply_text("Only managers of this daily can snooze its items.")
        return

    if not item.is_open:
        await update.message.reply_text(f"Item #{item_id} is already closed.")
        return

    today = await _local_today(components, user_id)
    try:
        snooze(components.work_item_db, item_id, today, days)
    except ValueError:
        await update.message.reply_text("Days must be at least 1.")
        return
    await update.message.reply_text(f"Item #{item_id} snoozed for {days} days.")


# ---------------------------------------------------------------------------
# /standup conversation
# ---------------------------------------------------------------------------

# ConversationHandler states for /standup
(
    STANDUP_ITEMS,
    STANDUP_PLANS,
    STANDUP_UNPLANNED,
    STANDUP_BLOCKERS,
    STANDUP_QUESTIONS,
) = range(5)


def _items_keyboard(draft: StandupDraft) -> InlineKeyboardMarkup:
    rows = []
    for index, text in enumerate(draft.prefilled):
        disposition = Disposition.parse(draft.selections.get(index))
        rows.append([InlineKeyboardButton(
            f"{_MARKS[disposition]} {text}", callback_data=f"standup:item:{index}",
        )])
    rows.append([InlineKeyboardButton("Next", callback_data="standup:next")])
    return InlineKeyboardMarkup(rows)


def _answer_or_none(text: str) -> str:
    text = text.strip()
    return "" if text == _NONE_ANSWER else text


def _is_keep(text: str) -> bool:
    return text.strip() == _KEEP_ANSWER


def _with_current(prompt: str, current: str) -> str:
    """Show the stored answer when editing a scheduled update."""
    if not current:
        return prompt
    return f"{prompt}\nCurrently:\n{current}\nSend '{_KEEP_ANSWER}' to keep it."


def _plans_prompt(draft: StandupDraft) -> str:
    if draft.prefilled:
        prompt = "Anything new you plan to work on? One item per line, or '-' for nothing."
    else:
        prompt = "What do you plan to work on? One item per line, or '-' for nothing."
    return _with_current(prompt, "\n".join(draft.today_plans))


def _clear_standup_data(context: ContextTypes.DEFAULT_TYPE) -> None:
    """Remove all standup-related keys from user_data."""
    for key in ("standup_draft", "standup_question"):
        context.user_data.pop(key, None)


@registered
async def cmd_standup(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Handle /standup <daily> - open the form."""
    daily = await _resolve_daily(update, context, "/standup <daily>")
    if daily is None:
        return ConversationHandler.END

    components = _components(context)
    user_id = update.effective_user.id
    if components.participant_db.get_participant(user_id, daily.name) is None:
        await update.message.reply_text(f"You are not a participant of {daily.name}.")
        return ConversationHandler.END

    today = await _local_today(components, user_id)
    form = components.service.open_form(user_id, daily.name, today)
    draft = components.service.start_draft(user_id, form)
    context.user_data["standup_draft"] = draft

    if form.mode is StandupMode.TOMORROW:
        note = f"You already posted today. This update will be posted on {form.target_date}."
        if form.existing is not None:
            note += " You are editing the one you already scheduled."
        await update.message.reply_text(note)

    if not draft.prefilled:
        await update.message.reply_text(_plans_prompt(draft))
        return STANDUP_PLANS

    await update.message.reply_text(
        "Your open items. Tap an item to cycle it:\n"
        "[>] still working on it, [x] done, [-] dropped.\n"
        "Press Next when you are done.",
        reply_markup=_items_keyboard(draft),
    )
    return STANDUP_ITEMS


async def standup_item_tap(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Cycle one carried item's disposition, or move on."""
    query = update.callback_query
    await query.answer()

    draft: StandupDraft | None = context.user_data.get("standup_draft")
    if draft is None:
        await query.edit_message_text("This standup form expired. Start again with /standup.")
        return ConversationHandler.END

    parts = query.data.split(":")
    if parts[1] == "next":
        await query.edit_message_reply_markup(reply_markup=None)
        await query.message.reply_text(_plans_prompt(draft))
        return STANDUP_PLANS

    index = int(parts[2])
    if 0 <= index < len(draft.prefilled):
        current = Disposition.parse(draft.selections.get(index))
        draft.selections[index] = _CYCLE[current].value
    await query.edit_message_reply_markup(reply_markup=_items_keyboard(draft))
    return STANDUP_ITEMS


async def standup_plans(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    draft: StandupDraft = context.user_data["standup_draft"]
    if not _is_keep(update.message.text):
        draft.today_plans = parse_lines(_answer_or_none(update.message.text))
    await update.message.reply_text(_with_current(
        "Anything you did that was not planned? One per line, or '-' for nothing.",
        "\n".join(draft.unplanned),
    ))
    return STANDUP_UNPLANNED


async def standup_unplanned(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    draft: StandupDraft = context.user_data["standup_draft"]
    if not _is_keep(update.message.text):
        draft.unplanned = parse_lines(_answer_or_none(update.message.text))
    await update.message.reply_text(_with_current(
        "Any blockers? Describe them, or '-' for none.", draft.blockers,
    ))
    return STANDUP_BLOCKERS


async def standup_blockers(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    draft: StandupDraft = context.user_data["standup_draft"]
    if not _is_keep(update.message.text):
        draft.blockers = _answer_or_none(update.message.text)

    daily = _components(context).config.get_daily(draft.daily_name)
    if daily is not None and daily.questions:
        context.user_data["standup_question"] = 0
        await update.message.reply_text(_question_prompt(daily, 0, draft))
        return STANDUP_QUESTIONS

    return await _finish_standup(update, context)


def _question_prompt(daily: Daily, index: int, draft: StandupDraft) -> str:
    question = daily.questions[index]
    prompt = question.text if question.required else f"{question.text} ('-' to skip)"
    return _with_current(prompt, draft.custom_answers.get(question.text, ""))


async def standup_question(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    draft: StandupDraft = context.user_data["standup_draft"]
    daily = _components(context).config.get_daily(draft.daily_name)
    if daily is None:
        return await _finish_standup(update, context)

    index = context.user_data.get("standup_question", 0)
    question = daily.questions[index]
    current = draft.custom_answers.get(question.text, "")
    if _is_keep(update.message.text) and current:
        answer = current
    else:
        answer = _answer_or_none(update.message.text)
    if question.required and not answer:
        await update.message.reply_text("This question needs an answer.")
        return STANDUP_QUESTIONS

    if answer:
        draft.custom_answers[question.text] = answer
    else:
        draft.custom_answers.pop(question.text, None)

    index += 1
    if index < len(daily.questions):
        context.user_data["standup_question"] = index
        await update.message.reply_text(_question_prompt(daily, index, draft))
        return STANDUP_QUESTIONS

    return await _finish_standup(update, context)


async def _finish_standup(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    components = _components(context)
    draft: StandupDraft = context.user_data["standup_draft"]
    daily = components.config.get_daily(draft.daily_name)
    if daily is None:
        await update.message.reply_text(f'Daily "{draft.daily_name}" no longer exists.')
        _clear_standup_data(context)
        return ConversationHandler.END

    try:
        submission = await components.service.submit(draft, daily)
    except Exception as exc:
        logger.error("Failed to save standup for %d '%s': %s", draft.user_id, daily.name, exc)
        await update.message.reply_text("Sorry, couldn't save your standup. Please try again.")
        _clear_standup_data(context)
        return ConversationHandler.END

    if draft.mode is StandupMode.TOMORROW:
        await update.message.reply_text(
            f"Saved. It will be posted to {daily.name} on {submission.date}."
        )
    elif submission.posted:
        await update.message.reply_text(f"Posted to {daily.name}. Thanks!")
    else:
        await update.message.reply_text(
            "Saved, but posting to the channel failed. I will retry shortly."
        )

    _clear_standup_data(context)
    return ConversationHandler.END


async def standup_cancel(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Cancel the standup form."""
    _clear_standup_data(context)
    await update.message.reply_text("Standup cancelled.")
    return ConversationHandler.END


# ---------------------------------------------------------------------------
# Jobs
# ---------------------------------------------------------------------------


async def _reminder_job(context: ContextTypes.DEFAULT_TYPE) -> None:
    await _components(context).scheduler.run_sweep()


async def _scheduled_post_job(context: ContextTypes.DEFAULT_TYPE) -> None:
    await _components(context).poster.run_sweep()


async def _retention_job(context: ContextTypes.DEFAULT_TYPE) -> None:
    components = _components(context)
    try:
        purge_expired(
            components.prompt_db, components.submission_db,
            utc_now().date(), settings.RETENTION_DAYS,
        )
    except Exception as exc:
        logger.error("Retention purge failed: %s", exc)


async def send_manager_digests(components: StandupComponents, today: date) -> int:
    """Send the daily digest (and the weekly one on its day) to every manager.

    Returns the number of messages sent. Failures are logged per daily.
    """
    weekday = weekday_code(today)
    sent = 0
    for daily in components.config.dailies:
        if not daily.managers:
            continue
        periods = ["daily"]
        if weekday == daily.weekly_digest_day:
            periods.append("weekly")
        for period in periods:
            try:
                text = format_digest(
                    components.digests.build_digest(daily, period, today), today,
                )
            except Exception as exc:
                logger.error("Failed to build %s digest for '%s': %s", period, daily.name, exc)
                continue
            for manager_id in daily.managers:
                try:
                    await components.notifier.send_message(manager_id, text)
                    sent += 1
                except Exception as exc:
                    logger.error(
                        "Failed to send %s digest for '%s' to %d: %s",
                        period, daily.name, manager_id, exc,
                    )
    logger.info("Manager digests sent: %d", sent)
    return sent


async def _digest_job(context: ContextTypes.DEFAULT_TYPE) -> None:
    await send_manager_digests(_components(context), utc_now().date())


def _setup_jobs(app: Application) -> None:
    """Register the sweeps and the daily maintenance jobs."""
    interval = settings.SWEEP_INTERVAL_MINUTES * 60

    app.job_queue.run_repeating(_reminder_job, interval=interval, first=10, name="reminder_sweep")
    app.job_queue.run_repeating(
        _scheduled_post_job, interval=interval, first=20, name="scheduled_post_sweep",
    )
    app.job_queue.run_daily(
        _retention_job,
        time=dt_time(hour=3, minute=0, tzinfo=timezone.utc),
        name="retention",
    )
    app.job_queue.run_daily(
        _digest_job,
        time=dt_time(hour=settings.DIGEST_HOUR, minute=0, tzinfo=timezone.utc),
        name="manager_digest",
    )

    logger.info(
        "Jobs scheduled: sweeps every %d min, digest at %02d:00 UTC",
        settings.SWEEP_INTERVAL_MINUTES, settings.DIGEST_HOUR,
    )


# ---------------------------------------------------------------------------
# App builder
# ---------------------------------------------------------------------------


def build_app(
    config: StandupConfig,
    notifier: NotificationPort | None = None,
    db_path: str | None = None,
) -> Application:
    """Build and configure the Telegram Application with all handlers.

    Args:
        config: Validated dailies/schedules document.
        notifier: Notification port implementation. Defaults to TelegramNotifier
                  (created from the bot instance after app is built).
        db_path: SQLite file. Defaults to settings.DATABASE_PATH.
    """
    app = ApplicationBuilder().token(settings.TELEGRAM_BOT_TOKEN).build()

    if notifier is None:
        from standup.adapters.telegram_notifier import TelegramNotifier
        notifier = TelegramNotifier(app.bot)

    app.bot_data["standup"] = build_components(config, notifier, db_path)

    # Commands
    app.add_handler(CommandHandler("start", cmd_start))
    app.add_handler(CommandHandler("help", cmd_help))
    app.add_handler(CommandHandler("timezone", cmd_timezone))
    app.add_handler(CommandHandler("status", cmd_status))
    app.add_handler(CommandHandler("list", cmd_list))
    app.add_handler(CommandHandler("add", cmd_add))
    app.add_handler(CommandHandler("remove", cmd_remove))
    app.add_handler(CommandHandler("remind", cmd_remind))
    app.add_handler(CommandHandler("ooo", cmd_ooo))
    app.add_handler(CommandHandler("back", cmd_back))
    app.add_handler(CommandHandler("digest", cmd_digest))
    app.add_handler(CommandHandler("bottlenecks", cmd_bottlenecks))
    app.add_handler(CommandHandler("snooze", cmd_snooze))

    # /standup conversation handler
    _text = filters.TEXT & ~filters.COMMAND
    standup_conv = ConversationHandler(
        entry_points=[CommandHandler("standup", cmd_standup)],
        states={
            STANDUP_ITEMS: [CallbackQueryHandler(standup_item_tap, pattern=r"^standup:")],
            STANDUP_PLANS: [MessageHandler(_text, standup_plans)],
            STANDUP_UNPLANNED: [MessageHandler(_text, standup_unplanned)],
            STANDUP_BLOCKERS: [MessageHandler(_text, standup_blockers)],
            STANDUP_QUESTIONS: [MessageHandler(_text, standup_question)],
        },
        fallbacks=[CommandHandler("cancel", standup_cancel)],
    )
    app.add_handler(standup_conv)

    _setup_jobs(app)

    logger.info("Telegram bot application built with %d handlers", len(app.handlers[0]))
    return app


def main() -> None:
    """Entry point: load the dailies config, build the app and start polling."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    try:
        config = load_standup_config()
    except ConfigError as exc:
        logger.error("Invalid standup config: %s", exc)
        raise SystemExit(1) from exc

    logger.info(
        "Starting Standup Bot with %d dailies and %d schedules...",
        len(config.dailies), len(config.schedules),
    )
    app = build_app(config)
    app.run_polling()


if __name__ == "__main__":
    main()
