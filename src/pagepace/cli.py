"""Command-line interface for PagePace.

Built with Typer for commands and Rich for output.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from .config import get_config
from .db import get_db
from .db.schemas import (
    BookCreate,
    BookStatus,
    NotificationSettingsUpdate,
    PushSubscriptionCreate,
    parse_time_of_day,
)
from .errors import AlreadyFinalized, NoActiveSession, PagePaceError, PartiallyCommitted
from .reading import (
    Clock,
    ManualClock,
    ReadingSessionService,
    ReadingTimer,
    SystemClock,
    TimerStateStore,
    format_elapsed,
)

# Create the main app
app = typer.Typer(
    name="pagepace",
    help="Time your reading sessions and keep your streak going.",
    no_args_is_help=True,
)

# Create sub-apps for command groups
book_app = typer.Typer(help="Manage books on your shelf.")
app.add_typer(book_app, name="book")
session_app = typer.Typer(help="Start, pause and stop reading sessions.")
app.add_typer(session_app, name="session")
reminders_app = typer.Typer(help="Daily reading reminders.")
app.add_typer(reminders_app, name="reminders")

# Rich console for pretty output
console = Console()

DEFAULT_USER = "local"


# ============================================================================
# Helper Functions
# ============================================================================


def print_error(message: str) -> None:
    """Print an error message."""
    console.print(f"[bold red]Error:[/bold red] {message}")


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[bold green]Success:[/bold green] {message}")


def print_warning(message: str) -> None:
    """Print a warning message."""
    console.print(f"[bold yellow]Warning:[/bold yellow] {message}")


def print_info(message: str) -> None:
    """Print an info message."""
    console.print(f"[dim]{message}[/dim]")


def setup_logging(level: str) -> None:
    """Route log records through Rich at the given level."""
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
        force=True,
    )


def parse_at(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 ``--at`` value; naive values are taken as UTC."""
    if value is None:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        raise typer.BadParameter(f"Expected an ISO-8601 date and time, got {value!r}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def get_clock(at: Optional[str]) -> Clock:
    """Clock pinned to ``--at`` if given, else the system clock."""
    instant = parse_at(at)
    return ManualClock(instant) if instant else SystemClock()


def get_session_service(at: Optional[str] = None) -> ReadingSessionService:
    """Build the session service from configuration."""
    config = get_config()
    clock = get_clock(at)
    timer = ReadingTimer(TimerStateStore(config.state_dir), clock)
    return ReadingSessionService(get_db(str(config.db_path)), timer, clock=clock)


AT_OPTION = typer.Option(
    None, "--at", help="Act as if it were this ISO-8601 time (e.g. 2026-01-05T20:04:00)"
)
USER_OPTION = typer.Option(DEFAULT_USER, "--user", "-u", help="User ID")


@app.callback()
def main_callback(
    log_level: Optional[str] = typer.Option(
        None, "--log-level", help="Log level (default: PAGEPACE_LOG_LEVEL)"
    ),
) -> None:
    """PagePace reading timer."""
    setup_logging((log_level or get_config().log_level).upper())


# ============================================================================
# Setup Commands
# ============================================================================


@app.command()
def init() -> None:
    """Create the database and timer directory."""
    config = get_config()
    errors = config.validate()
    for error in errors:
        print_warning(error)

    db = get_db(str(config.db_path))
    db.create_tables()
    config.state_dir.mkdir(parents=True, exist_ok=True)

    print_success(f"Database ready at {config.db_path}")
    print_info(f"Timer checkpoints in {config.state_dir}")
    if errors:
        raise typer.Exit(1)


@app.command()
def version() -> None:
    """Show version information."""
    from . import __version__

    console.print(f"pagepace version {__version__}")


# ============================================================================
# Book Commands
# ============================================================================


@book_app.command("add")
def book_add(
    title: str = typer.Argument(..., help="Book title"),
    author: Optional[str] = typer.Option(None, "--author", "-a", help="Author"),
    pages: Optional[int] = typer.Option(None, "--pages", "-p", help="Page count"),
    user: str = USER_OPTION,
) -> None:
    """Add a book and put it on your shelf."""
    config = get_config()
    db = get_db(str(config.db_path))

    try:
        data = BookCreate(title=title, author=author, page_count=pages)
    except ValueError as e:
        print_error(str(e))
        raise typer.Exit(1)

    book = db.create_book(data)
    db.add_to_shelf(user, str(book.id))
    print_success(f"Added: {book.title}")
    console.print(f"Book ID: [cyan]{book.id}[/cyan]")


@book_app.command("list")
def book_list(
    status: Optional[BookStatus] = typer.Option(None, "--status", "-s", help="Filter by status"),
    user: str = USER_OPTION,
) -> None:
    """List the books on your shelf."""
    config = get_config()
    db = get_db(str(config.db_path))
    entries = db.get_user_books(user, status)

    if not entries:
        console.print("[dim]No books on your shelf.[/dim]")
        return

    table = Table(title="Shelf", show_header=True, header_style="bold magenta")
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Title", style="cyan", max_width=40)
    table.add_column("Status", style="yellow")
    table.add_column("Progress", justify="center")

    for entry in entries:
        book = db.get_book(str(entry.book_id))
        if book is None:
            continue
        progress = (
            f"{entry.current_page}/{book.page_count}" if book.page_count else str(entry.current_page)
        )
        table.add_row(str(book.id), book.title, entry.status.value, progress)

    console.print(table)


# ============================================================================
# Session Commands
# ============================================================================


@session_app.command("start")
def session_start(
    book_id: str = typer.Argument(..., help="Book ID"),
    user: str = USER_OPTION,
    at: Optional[str] = AT_OPTION,
) -> None:
    """Start a timed reading session."""
    service = get_session_service(at)
    try:
        state = service.start_session(user, book_id)
    except (PagePaceError, ValueError) as e:
        print_error(str(e))
        raise typer.Exit(1)

    print_success(f"Session started at page {state.start_page}")
    console.print(f"Session ID: [cyan]{state.session_id}[/cyan]")


@session_app.command("pause")
def session_pause(at: Optional[str] = AT_OPTION) -> None:
    """Pause the active session."""
    service = get_session_service(at)
    try:
        state = service.pause_session()
    except PagePaceError as e:
        print_error(str(e))
        raise typer.Exit(1)

    console.print(f"[yellow]Paused[/yellow] at {format_elapsed(state.last_elapsed_ms // 1000)}")


@session_app.command("resume")
def session_resume(at: Optional[str] = AT_OPTION) -> None:
    """Resume the paused session."""
    service = get_session_service(at)
    try:
        service.resume_session()
    except PagePaceError as e:
        print_error(str(e))
        raise typer.Exit(1)

    console.print(f"[green]Reading[/green] {format_elapsed(service.timer.elapsed_seconds())}")


@session_app.command("status")
def session_status(at: Optional[str] = AT_OPTION) -> None:
    """Show the active session."""
    service = get_session_service(at)
    status = service.status()
    if status is None:
        console.print("[dim]No active reading session.[/dim]")
        return

    state_label = "[yellow]Paused[/yellow]" if status.is_paused else "[green]Reading[/green]"
    console.print(
        Panel(
            f"[bold]{status.book_title or status.book_id}[/bold]\n"
            f"{state_label}  {status.elapsed_display}\n"
            f"[dim]Started at page {status.start_page}[/dim]",
            title="Reading Session",
        )
    )


@session_app.command("stop")
def session_stop(
    end_page: str = typer.Argument(..., help="Page you stopped at"),
    at: Optional[str] = AT_OPTION,
) -> None:
    """Stop the active session and record it."""
    service = get_session_service(at)
    try:
        result = service.stop_session(end_page)
    except PartiallyCommitted as e:
        print_warning(str(e))
        try:
            result = service.finalizer.complete_partial(e)
        except PagePaceError as retry_error:
            print_error(f"Book progress still not saved: {retry_error}")
            raise typer.Exit(1)
    except NoActiveSession as e:
        print_error(str(e))
        raise typer.Exit(1)
    except AlreadyFinalized as e:
        print_error(str(e))
        print_info("Run `pagepace session abandon` to clear the stale timer.")
        raise typer.Exit(1)
    except PagePaceError as e:
        print_error(str(e))
        print_info("The session is still running.")
        raise typer.Exit(1)

    session = result.session
    print_success(
        f"Read {session.pages_read} pages in {format_elapsed(session.duration_seconds or 0)}"
    )
    if result.book_completed:
        console.print("[bold magenta]Book completed![/bold magenta]")


@session_app.command("abandon")
def session_abandon(at: Optional[str] = AT_OPTION) -> None:
    """Discard the active session without recording it."""
    service = get_session_service(at)
    if service.abandon_session():
        print_success("Session abandoned")
    else:
        console.print("[dim]No active reading session.[/dim]")


# ============================================================================
# Statistics
# ============================================================================


@app.command()
def stats(
    user: str = USER_OPTION,
    at: Optional[str] = AT_OPTION,
) -> None:
    """Show reading statistics."""
    from .stats import StatsService

    config = get_config()
    service = StatsService(get_db(str(config.db_path)), clock=get_clock(at))
    dashboard = service.dashboard(user)
    reading = dashboard.reading

    table = Table(title="Reading Stats", show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green", justify="right")

    table.add_row("Current streak", f"{reading.current_streak} days")
    table.add_row("Longest streak", f"{reading.longest_streak} days")
    table.add_row("Sessions", str(reading.total_sessions))
    table.add_row("Pages read", str(reading.total_pages))
    table.add_row("Minutes read", str(reading.total_minutes))
    table.add_row("Average session", f"{reading.average_session_minutes} min")
    table.add_row("Books", str(dashboard.total_books))
    table.add_row("Completed", str(dashboard.books_completed))

    console.print(table)


# ============================================================================
# Reminder Commands
# ============================================================================


@reminders_app.command("set")
def reminders_set(
    time_of_day: Optional[str] = typer.Option(None, "--time", "-t", help="Reminder time (HH:MM)"),
    enable: Optional[bool] = typer.Option(None, "--enable/--disable", help="Turn reminders on or off"),
    goal: Optional[bool] = typer.Option(None, "--goal/--no-goal", help="Goal notifications"),
    streak: Optional[bool] = typer.Option(None, "--streak/--no-streak", help="Streak notifications"),
    completion: Optional[bool] = typer.Option(
        None, "--completion/--no-completion", help="Book completion notifications"
    ),
    user: str = USER_OPTION,
) -> None:
    """Set your daily reminder and notification preferences."""
    config = get_config()
    db = get_db(str(config.db_path))

    try:
        update = NotificationSettingsUpdate(
            daily_reminder_enabled=enable,
            reminder_time=parse_time_of_day(time_of_day) if time_of_day else None,
            goal_notifications=goal,
            streak_notifications=streak,
            completion_notifications=completion,
        )
    except ValueError as e:
        print_error(str(e))
        raise typer.Exit(1)

    preference = db.update_notification_settings(user, update)
    state = "on" if preference.enabled else "off"
    print_success(f"Daily reminder {state} at {preference.time_of_day.strftime('%H:%M')}")

    for label, value in (("Goal", goal), ("Streak", streak), ("Completion", completion)):
        if value is not None:
            print_info(f"{label} notifications {'on' if value else 'off'}")


@reminders_app.command("subscribe")
def reminders_subscribe(
    endpoint: str = typer.Argument(..., help="Push service endpoint URL"),
    p256dh: str = typer.Option(..., "--p256dh", help="Client public key"),
    auth: str = typer.Option(..., "--auth", help="Client auth secret"),
    user: str = USER_OPTION,
) -> None:
    """Register a push subscription."""
    config = get_config()
    db = get_db(str(config.db_path))

    try:
        data = PushSubscriptionCreate(user_id=user, endpoint=endpoint, p256dh=p256dh, auth=auth)
    except ValueError as e:
        print_error(str(e))
        raise typer.Exit(1)

    sub = db.add_push_subscription(data)
    print_success(f"Subscribed {sub.endpoint}")


@reminders_app.command("due")
def reminders_due(at: Optional[str] = AT_OPTION) -> None:
    """List users whose reminder is due now."""
    from .reminders import select_due_users

    config = get_config()
    db = get_db(str(config.db_path))
    now = get_clock(at).now()

    due = select_due_users(now, db.get_reminder_preferences(), config.reminder_window_minutes)
    if not due:
        console.print("[dim]No reminders due.[/dim]")
        return
    for user_id in due:
        console.print(user_id)


@reminders_app.command("run")
def reminders_run(at: Optional[str] = AT_OPTION) -> None:
    """Send reminders to every user whose reminder is due."""
    from .reminders import ReminderDispatcher, WebPushTransport

    config = get_config()
    if not config.has_vapid_keys():
        print_error("VAPID keys not configured (set VAPID_PUBLIC_KEY and VAPID_PRIVATE_KEY)")
        raise typer.Exit(1)

    transport = WebPushTransport(
        vapid_public_key=config.vapid_public_key,
        timeout=config.push_timeout,
    )
    dispatcher = ReminderDispatcher(
        get_db(str(config.db_path)), transport, config.reminder_window_minutes
    )
    report = dispatcher.run(get_clock(at).now())

    console.print(
        f"Users due: [cyan]{len(report.matched_users)}[/cyan]  "
        f"Sent: [green]{report.sent_count}[/green]  "
        f"Failed: [red]{report.failed_count}[/red]"
    )
    for target, reason in report.failures:
        print_warning(f"{target}: {reason}")


# ============================================================================
# Main Entry Point
# ============================================================================


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
