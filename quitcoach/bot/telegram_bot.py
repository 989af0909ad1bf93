"""
QuitCoach — Telegram Bot.

The host for the coaching core: logs cigarettes, shows progress, lets the
user tune quiet hours and limits, and runs the JITAI evaluation on a
repeating job.

Security-first: unauthorized users are silently ignored.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from functools import wraps
from typing import TYPE_CHECKING, Any, Callable, Coroutine
from zoneinfo import ZoneInfo

from pydantic import ValidationError
from telegram import Update
from telegram.ext import Application, ApplicationBuilder, CommandHandler, ContextTypes

from quitcoach.config import settings

if TYPE_CHECKING:
    from quitcoach.core.planner import JITAIPlanner
    from quitcoach.data.db import EventDB, ProfileDB
    from quitcoach.ports.notification_port import NotificationPort

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Security: silent-ignore decorator
# ---------------------------------------------------------------------------


def authorized_only(
    func: Callable[..., Coroutine[Any, Any, None]],
) -> Callable[..., Coroutine[Any, Any, None]]:
    """Decorator that silently ignores messages from unauthorized users."""

    @wraps(func)
    async def wrapper(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        user = update.effective_user
        if user is None or user.id not in settings.ALLOWED_USER_IDS:
            uid = user.id if user else "unknown"
            logger.warning("Unauthorized access attempt from user_id=%s", uid)
            return  # Silent ignore
        return await func(update, context)

    return wrapper


def _now() -> datetime:
    return datetime.now(ZoneInfo(settings.TIMEZONE))


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------


def _parse_smoke_args(args: list[str]) -> tuple[list[str], str | None]:
    """Split /smoke arguments into tags and an optional note.

    "/smoke coffee #stress -- after lunch" -> (["coffee", "stress"], "after lunch")
    """
    if "--" in args:
        split = args.index("--")
        tag_args, note_args = args[:split], args[split + 1:]
    else:
        tag_args, note_args = args, []

    tags = []
    for raw in tag_args:
        name = raw.lstrip("#").strip().lower()
        if name and name not in tags:
            tags.append(name)
    note = " ".join(note_args).strip() or None
    return tags, note


def _parse_quiet_args(args: list[str]) -> dict | None:
    """Parse "/quiet 22 6" or "/quiet off" into planner config changes."""
    if len(args) == 1 and args[0].lower() == "off":
        return {"quiet_hours_enabled": False}
    if len(args) != 2:
        return None
    try:
        start, end = (int(a.split(":")[0]) for a in args)
    except ValueError:
        return None
    return {
        "quiet_hours_enabled": True,
        "quiet_hours_start": start,
        "quiet_hours_end": end,
    }


def _parse_quit_date(args: list[str]) -> date | None | bool:
    """Return a date, None for "off", or False when the input is invalid."""
    if len(args) != 1:
        return False
    if args[0].lower() == "off":
        return None
    try:
        return date.fromisoformat(args[0])
    except ValueError:
        return False


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


@authorized_only
async def cmd_start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /start — welcome message."""
    await update.message.reply_text(
        "Welcome to *QuitCoach*!\n\n"
        "Log every cigarette with /smoke and I'll check in when cravings are likely.\n"
        "• /stats shows your streak and today's target\n"
        "• /coach asks for a tip right now\n\n"
        "Type /help for the full command list.",
        parse_mode="Markdown",
    )


@authorized_only
async def cmd_help(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /help — list available commands."""
    await update.message.reply_text(
        "*Available commands:*\n"
        "/smoke [tags] [-- note] — Log a cigarette\n"
        "/undo — Delete the last logged cigarette\n"
        "/stats — Today's count, streak and averages\n"
        "/coach — Get a coaching tip now\n"
        "/tip — Show the last coaching tip\n"
        "/tags — List your trigger tags\n"
        "/quiet <start> <end> | off — Set quiet hours\n"
        "/limit <n> — Max nudges per day\n"
        "/nudges on | off — Pause or resume scheduled nudges\n"
        "/quitdate <YYYY-MM-DD> | off — Set your quit date\n"
        "/help — Show this message",
        parse_mode="Markdown",
    )


@authorized_only
async def cmd_smoke(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /smoke — log a cigarette with optional tags and note."""
    event_db: EventDB = context.bot_data["event_db"]
    tags, note = _parse_smoke_args(list(context.args or []))

    try:
        event = event_db.add_event(timestamp=_now(), note=note, tag_names=tags)
        today_count = event_db.count_events(
            _now().replace(hour=0, minute=0, second=0, microsecond=0)
        )
    except Exception as exc:
        logger.error("/smoke error: %s", exc)
        await update.message.reply_text("Couldn't log that cigarette. Please try again.")
        return

    tag_text = f" ({', '.join(t.name for t in event.tags)})" if event.tags else ""
    await update.message.reply_text(f"Logged{tag_text}. That's {today_count} today.")


@authorized_only
async def cmd_undo(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /undo — delete the most recent cigarette."""
    event_db: EventDB = context.bot_data["event_db"]

    try:
        removed = event_db.delete_last_event()
    except Exception as exc:
        logger.error("/undo error: %s", exc)
        await update.message.reply_text("Couldn't undo. Please try again.")
        return

    if removed is None:
        await update.message.reply_text("Nothing to undo.")
        return
    local_ts = removed.timestamp.astimezone(ZoneInfo(settings.TIMEZONE))
    await update.message.reply_text(f"Removed the cigarette logged at {local_ts:%H:%M}.")


@authorized_only
async def cmd_stats(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /stats — show today's count, streak, averages and target."""
    from quitcoach.core.features import FeatureStore

    event_db: EventDB = context.bot_data["event_db"]
    profile_db: ProfileDB = context.bot_data["profile_db"]
    now = _now()

    try:
        events = event_db.list_events(since=now - timedelta(days=366))
        profile = profile_db.get_active_profile()
    except Exception as exc:
        logger.error("/stats error: %s", exc)
        await update.message.reply_text("Couldn't load your stats. Please try again.")
        return

    features = FeatureStore().collect(events, profile, now)
    lines = [
        "*Your progress:*\n",
        f"Today: {features.events_today}",
        f"Smoke-free streak: {features.current_streak_days} days",
        f"30-day average: {features.avg_per_day_30d:.1f}/day",
    ]
    if features.today_target is not None:
        lines.append(f"Today's target: {features.today_target}")
    if features.has_quit_plan:
        days = features.days_relative_to_quit_date
        if days < 0:
            lines.append(f"Quit date in {-days} days")
        else:
            lines.append(f"{days} days since your quit date")
    await update.message.reply_text("\n".join(lines), parse_mode="Markdown")


@authorized_only
async def cmd_coach(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /coach — forced evaluation ("check now")."""
    planner: JITAIPlanner = context.bot_data["planner"]

    action = await planner.evaluate_and_notify(force_evaluation=True)
    if not action.is_nudge:
        await update.message.reply_text(
            "No craving signals right now. Keep doing what you're doing!"
        )


@authorized_only
async def cmd_tip(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /tip — show the last published coaching tip."""
    publisher = context.bot_data.get("tip_publisher")
    latest = publisher.read_latest_tip() if publisher is not None else None
    if not latest:
        await update.message.reply_text("No tips yet. Try /coach.")
        return
    await update.message.reply_text(latest["message"])


@authorized_only
async def cmd_tags(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /tags — list trigger tags."""
    event_db: EventDB = context.bot_data["event_db"]

    try:
        tags = event_db.list_tags()
    except Exception as exc:
        logger.error("/tags error: %s", exc)
        await update.message.reply_text("Couldn't load tags. Please try again.")
        return

    if not tags:
        await update.message.reply_text("No tags yet. Add some with /smoke coffee stress")
        return
    await update.message.reply_text("Tags: " + ", ".join(t.name for t in tags))


@authorized_only
async def cmd_quiet(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /quiet <start> <end> | off."""
    planner: JITAIPlanner = context.bot_data["planner"]
    changes = _parse_quiet_args(list(context.args or []))
    if changes is None:
        await update.message.reply_text("Usage: /quiet 22 6  or  /quiet off")
        return

    try:
        cfg = planner.update_config(**changes)
    except ValidationError as exc:
        logger.info("/quiet rejected: %s", exc)
        await update.message.reply_text(
            "Invalid quiet hours. Use two different hours between 0 and 23."
        )
        return

    if not cfg.quiet_hours_enabled:
        await update.message.reply_text("Quiet hours turned off.")
    else:
        await update.message.reply_text(
            f"Quiet hours set: {cfg.quiet_hours_start:02d}:00 – {cfg.quiet_hours_end:02d}:59."
        )


@authorized_only
async def cmd_limit(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /limit <n> — max nudges per day."""
    planner: JITAIPlanner = context.bot_data["planner"]
    args = context.args or []

    try:
        limit = int(args[0])
        cfg = planner.update_config(max_notifications_per_day=limit)
    except (IndexError, ValueError):
        # ValidationError is a ValueError
        await update.message.reply_text("Usage: /limit <1-10>")
        return

    await update.message.reply_text(
        f"I'll send at most {cfg.max_notifications_per_day} nudges a day."
    )


@authorized_only
async def cmd_nudges(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /nudges on | off — pause or resume scheduled nudges."""
    planner: JITAIPlanner = context.bot_data["planner"]
    args = [a.lower() for a in (context.args or [])]

    if args == ["on"]:
        planner.update_config(enabled=True)
        await update.message.reply_text("Nudges resumed.")
    elif args == ["off"]:
        planner.update_config(enabled=False)
        await update.message.reply_text("Nudges paused. /coach still works whenever you need it.")
    else:
        state = "on" if planner.config.enabled else "off"
        await update.message.reply_text(f"Nudges are {state}. Usage: /nudges on  or  /nudges off")


@authorized_only
async def cmd_quitdate(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /quitdate <YYYY-MM-DD> | off.

    Setting a date starts a reduction plan: the baseline is frozen from the
    last 30 days (unless already set) and a curve is picked from it.
    """
    from quitcoach.core.quit_plan import dependency_level, recommended_curve

    event_db: EventDB = context.bot_data["event_db"]
    profile_db: ProfileDB = context.bot_data["profile_db"]
    parsed = _parse_quit_date(list(context.args or []))
    if parsed is False:
        await update.message.reply_text("Usage: /quitdate 2026-12-31  or  /quitdate off")
        return

    if parsed is None:
        try:
            profile_db.update_profile(quit_date=None)
        except Exception as exc:
            logger.error("/quitdate error: %s", exc)
            await update.message.reply_text("Couldn't save your quit date. Please try again.")
            return
        await update.message.reply_text("Quit date cleared.")
        return

    now = _now()
    if parsed <= now.date():
        await update.message.reply_text("Pick a quit date in the future.")
        return

    try:
        profile = profile_db.get_or_create()
        baseline = profile.daily_average or (
            event_db.count_events(now - timedelta(days=30)) / 30.0
        )
        curve = recommended_curve(
            dependency_level(baseline), (parsed - now.date()).days
        )
        profile_db.update_profile(
            quit_date=parsed,
            daily_average=round(baseline, 1),
            reduction_curve=curve,
            created_at=now,
        )
    except Exception as exc:
        logger.error("/quitdate error: %s", exc)
        await update.message.reply_text("Couldn't save your quit date. Please try again.")
        return

    await update.message.reply_text(
        f"Quit date set to {parsed.isoformat()} ({curve.value} reduction). You've got this."
    )


# ---------------------------------------------------------------------------
# App builder
# ---------------------------------------------------------------------------


def build_app(
    event_db: EventDB | None = None,
    profile_db: ProfileDB | None = None,
    notifier: NotificationPort | None = None,
) -> Application:
    """Build and configure the Telegram Application with all handlers.

    Args:
        event_db: Event store. Defaults to EventDB at settings.DATABASE_PATH.
        profile_db: Profile store. Defaults to ProfileDB at the same path.
        notifier: Notification port implementation. Defaults to TelegramNotifier
                  (created from the bot instance after app is built).
    """
    from quitcoach.adapters.json_tip_publisher import JsonTipPublisher
    from quitcoach.adapters.sqlite_sources import SQLiteEventSource, SQLiteProfileSource
    from quitcoach.core.planner import JITAIPlanner, PlannerConfig
    from quitcoach.data.db import EventDB, ProfileDB

    app = ApplicationBuilder().token(settings.TELEGRAM_BOT_TOKEN).build()

    if event_db is None:
        event_db = EventDB()
    if profile_db is None:
        profile_db = ProfileDB()
    if notifier is None:
        from quitcoach.adapters.telegram_notifier import TelegramNotifier
        notifier = TelegramNotifier(app.bot, settings.ALLOWED_USER_IDS)

    tip_publisher = JsonTipPublisher(settings.TIP_FILE_PATH)
    planner = JITAIPlanner(
        events=SQLiteEventSource(event_db),
        profiles=SQLiteProfileSource(profile_db),
        notifier=notifier,
        tip_publisher=tip_publisher,
        config=PlannerConfig(
            enabled=settings.COACHING_ENABLED,
            max_notifications_per_day=settings.MAX_NOTIFICATIONS_PER_DAY,
            quiet_hours_enabled=settings.QUIET_HOURS_ENABLED,
            quiet_hours_start=settings.QUIET_HOURS_START,
            quiet_hours_end=settings.QUIET_HOURS_END,
            min_interval_minutes=settings.MIN_INTERVAL_MINUTES,
        ),
        tz=ZoneInfo(settings.TIMEZONE),
    )

    app.bot_data["event_db"] = event_db
    app.bot_data["profile_db"] = profile_db
    app.bot_data["notifier"] = notifier
    app.bot_data["tip_publisher"] = tip_publisher
    app.bot_data["planner"] = planner

    app.add_handler(CommandHandler("start", cmd_start))
    app.add_handler(CommandHandler("help", cmd_help))
    app.add_handler(CommandHandler("smoke", cmd_smoke))
    app.add_handler(CommandHandler("undo", cmd_undo))
    app.add_handler(CommandHandler("stats", cmd_stats))
    app.add_handler(CommandHandler("coach", cmd_coach))
    app.add_handler(CommandHandler("tip", cmd_tip))
    app.add_handler(CommandHandler("tags", cmd_tags))
    app.add_handler(CommandHandler("quiet", cmd_quiet))
    app.add_handler(CommandHandler("limit", cmd_limit))
    app.add_handler(CommandHandler("nudges", cmd_nudges))
    app.add_handler(CommandHandler("quitdate", cmd_quitdate))

    _setup_coach_job(app, planner)

    logger.info("Telegram bot application built with %d handlers", len(app.handlers[0]))
    return app


def _setup_coach_job(app: Application, planner: JITAIPlanner) -> None:
    """Register the repeating JITAI evaluation job."""
    interval = timedelta(minutes=settings.EVALUATION_INTERVAL_MINUTES)

    async def _coach_job_callback(context: ContextTypes.DEFAULT_TYPE) -> None:
        try:
            await planner.evaluate_and_notify()
        except Exception as exc:
            logger.error("Coach evaluation failed: %s", exc)

    app.job_queue.run_repeating(
        _coach_job_callback,
        interval=interval,
        first=60,
        name="jitai_coach",
    )

    logger.info(
        "Coach evaluation scheduled every %d minutes",
        settings.EVALUATION_INTERVAL_MINUTES,
    )


def main() -> None:
    """Entry point: build the app and start polling."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logger.info("Starting QuitCoach bot...")
    app = build_app()
    app.run_polling()


if __name__ == "__main__":
    main()
