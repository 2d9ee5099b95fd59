"""Console shell for an interactive tracking session."""

import logging
from typing import TYPE_CHECKING, Callable, Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from redtimer.cli.notifier import Notifier
from redtimer.core.counter import format_duration
from redtimer.core.models import Activity, Issue, IssueStatus
from redtimer.core.shell import ExitChoice, MessageType, ShellAdapter

if TYPE_CHECKING:
    from redtimer.core.session import Session

logger = logging.getLogger(__name__)

STYLES = {
    MessageType.INFO: ("green", "✓"),
    MessageType.WARNING: ("yellow", "!"),
    MessageType.CRITICAL: ("red", "✗"),
}

HELP = """[bold]Commands[/bold]
  [cyan]load ID[/cyan] or [cyan]ID[/cyan]   Load issue (saves running time first)
  [cyan]start[/cyan] / [cyan]stop[/cyan]     Start or stop the timer
  [cyan]toggle[/cyan]           Start if stopped, stop if running
  [cyan]show[/cyan]             Show the current issue and counter
  [cyan]recent [N][/cyan]       List recent issues, or load entry N
  [cyan]activity [N][/cyan]     List activities, or select entry N
  [cyan]status [N][/cyan]       List issue statuses, or set entry N on the issue
  [cyan]refresh[/cyan]          Reload activities and statuses
  [cyan]reconnect[/cyan]        Reconnect to Redmine
  [cyan]quit[/cyan]             Exit (asks what to do with running time)"""

EXIT_QUESTION = "Save tracked time, discard it, or abort exiting?"


class ConsoleShell(ShellAdapter):
    """Render session output with rich and read the exit choice with click."""

    def __init__(
        self,
        console: Console,
        notifier: Optional[Notifier] = None,
        on_quit: Optional[Callable[[], None]] = None,
        ask: Optional[Callable[[str], str]] = None,
    ):
        """Initialize console shell.

        Args:
            console: Rich console for output
            notifier: Desktop notifier (optional)
            on_quit: Called when the session asks the application to quit
            ask: Reads one answer line for a question (default: click.prompt).
                Raises EOFError when no answer can be read.
        """
        self.console = console
        self.notifier = notifier
        self.on_quit = on_quit
        self.ask = ask
        self.session: Optional["Session"] = None

        self.seconds = 0
        self.running = False
        self.activities: list[Activity] = []
        self.issue_statuses: list[IssueStatus] = []
        self.recent_issues: list[Issue] = []
        self.saved_entries = 0
        self.quit_requested = False

    def message(self, text: str, severity: MessageType = MessageType.INFO, timeout: int = 5000) -> None:
        style, symbol = STYLES[severity]
        self.console.print(f"[{style}]{symbol}[/{style}] {text}")
        if self.notifier:
            self.notifier.notify(text, severity, timeout)

    def refresh_counter_display(self, seconds: int) -> None:
        self.seconds = seconds

    def refresh_entity_lists(
        self,
        activities: list[Activity],
        issue_statuses: list[IssueStatus],
        recent_issues: list[Issue],
    ) -> None:
        self.activities = activities
        self.issue_statuses = issue_statuses
        self.recent_issues = recent_issues

    def refresh_issue(self, issue: Issue) -> None:
        self.console.print(self._issue_panel(issue))

    def timer_state_changed(self, running: bool) -> None:
        self.running = running
        if running:
            self.console.print(f"[green]▶[/green]  Tracking {self._issue_label()}")
        else:
            self.console.print(f"[yellow]⏹[/yellow]  Timer stopped at {format_duration(self.seconds)}")

    def time_entry_saved(self) -> None:
        self.saved_entries += 1

    def prompt_exit_choice(self) -> ExitChoice:
        self.console.print(
            f"[yellow]Timer is running[/yellow] ({format_duration(self.seconds)} on {self._issue_label()})"
        )
        if self.ask is not None:
            return self._ask_exit_choice(self.ask)
        try:
            answer = click.prompt(
                EXIT_QUESTION,
                type=click.Choice([c.value for c in ExitChoice]),
                default=ExitChoice.SAVE.value,
            )
        except click.exceptions.Abort:
            # No answer possible (closed stdin): keep the tracked time
            return ExitChoice.SAVE
        return ExitChoice(answer)

    def _ask_exit_choice(self, ask: Callable[[str], str]) -> ExitChoice:
        choices = [c.value for c in ExitChoice]
        question = f"{EXIT_QUESTION} [{'/'.join(choices)}] ({ExitChoice.SAVE.value}):"
        while True:
            try:
                answer = ask(question).strip().lower()
            except EOFError:
                return ExitChoice.SAVE
            if not answer:
                return ExitChoice.SAVE
            if answer in choices:
                return ExitChoice(answer)
            self.console.print(f"[yellow]![/yellow] Please answer one of: {', '.join(choices)}")

    def quit(self) -> None:
        self.quit_requested = True
        if self.on_quit:
            self.on_quit()

    # ------------------------------------------------------------------
    # Rendering helpers
    # ------------------------------------------------------------------

    def prompt(self) -> str:
        """Build the input prompt, e.g. '#42 00:05:12 ▶ > '."""
        if self.session is None or self.session.issue is None:
            return "no issue > "
        marker = "▶" if self.running else "⏹"
        return f"#{self.session.issue.id} {format_duration(self.seconds)} {marker} > "

    def _issue_label(self) -> str:
        if self.session is None or self.session.issue is None:
            return "no issue"
        return self.session.issue.label

    def _issue_panel(self, issue: Issue) -> Panel:
        content = f"[bold]{issue.label}[/bold]\n"
        if issue.project_name:
            content += f"\n[dim]Project:[/dim] {issue.project_name}"
        if issue.tracker_name:
            content += f"\n[dim]Tracker:[/dim] {issue.tracker_name}"
        content += f"\n[dim]Status:[/dim] {issue.status_name or issue.status_id}"
        if issue.assigned_to_name:
            content += f"\n[dim]Assignee:[/dim] {issue.assigned_to_name}"
        content += f"\n[dim]Done:[/dim] {issue.done_ratio}%"
        content += f"\n[dim]Spent:[/dim] {issue.spent_hours:.2f}h"
        return Panel(content, title="Issue", border_style="cyan")

    def show_status(self) -> None:
        """Print the current issue and counter."""
        if self.session is None or self.session.issue is None:
            self.console.print("[yellow]No issue loaded[/yellow]")
            self.console.print("\nLoad one with: [cyan]load 42[/cyan]")
            return
        self.console.print(self._issue_panel(self.session.issue))
        state = "[green]running[/green]" if self.running else "[yellow]stopped[/yellow]"
        self.console.print(f"Counter: {format_duration(self.seconds)} ({state})")
        activity = self.session.activities.get(self.session.activity_id)
        self.console.print(f"Activity: {activity.name if activity else '-'}")

    def show_table(self, title: str, rows: list[tuple[int, str]], selected_id: Optional[int]) -> None:
        """Print a numbered list of entities.

        Args:
            title: Table title
            rows: (id, name) pairs in display order
            selected_id: Identifier to highlight
        """
        table = Table(title=title)
        table.add_column("#", style="dim", justify="right")
        table.add_column("ID", style="cyan", justify="right")
        table.add_column("Name", style="white")
        for position, (entity_id, name) in enumerate(rows, start=1):
            marker = " [green]●[/green]" if entity_id == selected_id else ""
            table.add_row(str(position), str(entity_id), f"{name}{marker}")
        self.console.print(table)


class CommandInterpreter:
    """Translate typed commands into session calls."""

    def __init__(self, session: "Session", shell: ConsoleShell):
        self.session = session
        self.shell = shell

    def execute(self, line: str) -> None:
        """Execute one command line on the control thread.

        Args:
            line: Command as typed by the user
        """
        parts = line.strip().split()
        if not parts:
            return

        command, args = parts[0].lower(), parts[1:]
        logger.debug(f"Command: {line.strip()}")

        if command.lstrip("#").isdigit():
            self.session.load_issue_from_text(command)
        elif command in ("load", "issue"):
            if not args:
                self.shell.message("Usage: load ISSUE_ID", MessageType.WARNING)
                return
            self.session.load_issue_from_text(args[0])
        elif command == "start":
            self.session.start()
        elif command == "stop":
            self.session.stop()
        elif command == "toggle":
            self.session.start_stop()
        elif command == "show":
            self.shell.show_status()
        elif command == "recent":
            self._recent(args)
        elif command == "activity":
            self._activity(args)
        elif command == "status":
            self._status(args)
        elif command == "refresh":
            self.session.refresh_gui()
        elif command == "reconnect":
            self.session.reconnect()
        elif command in ("quit", "exit"):
            self.session.exit()
        elif command == "help":
            self.shell.console.print(HELP)
        else:
            self.shell.message(f"Unknown command: {command} (try 'help')", MessageType.WARNING)

    def _position(self, args: list[str]) -> Optional[int]:
        """Parse a 1-based list position into a 0-based index.

        Returns:
            None without argument, -1 for invalid input, the index otherwise
        """
        if not args:
            return None
        try:
            position = int(args[0])
        except ValueError:
            position = 0
        if position < 1:
            self.shell.message(f"Not a list position: {args[0]}", MessageType.WARNING)
            return -1
        return position - 1

    def _recent(self, args: list[str]) -> None:
        index = self._position(args)
        if index is None:
            rows = [(issue.id, issue.subject) for issue in self.session.recent_issues]
            self.shell.show_table("Recent Issues", rows, self.session.issue_id)
        elif index >= 0:
            self.session.load_issue_from_list(index)

    def _activity(self, args: list[str]) -> None:
        index = self._position(args)
        if index is None:
            rows = [(a.id, a.name) for a in self.session.activities]
            self.shell.show_table("Activities", rows, self.session.activity_id)
        elif index >= 0:
            self.session.activity_selected(index)

    def _status(self, args: list[str]) -> None:
        index = self._position(args)
        if index is None:
            rows = [(s.id, s.name) for s in self.session.issue_statuses]
            self.shell.show_table("Issue Statuses", rows, self.session.issue_status_id)
        elif index >= 0:
            status_id = self.session.issue_status_selected(index)
            if status_id is not None:
                self.session.update_issue_status(status_id)
