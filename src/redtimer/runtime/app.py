"""Application wiring for an interactive tracking session."""

import logging
import queue
import signal
import threading
from pathlib import Path
from typing import Any, Optional

from rich.console import Console

from redtimer.cli.console import CommandInterpreter, ConsoleShell
from redtimer.cli.notifier import Notifier
from redtimer.core.config import ConfigManager
from redtimer.core.session import Session
from redtimer.redmine.client import RedmineClient
from redtimer.runtime.event_loop import EventLoop

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Application setup error."""

    pass


def setup_logging(config: ConfigManager) -> Path:
    """Send log records to the configured log file.

    Args:
        config: Configuration manager

    Returns:
        Path of the log file
    """
    log_file = Path(config.get("advanced.log_file", "~/.redtimer/redtimer.log")).expanduser()
    log_file.parent.mkdir(parents=True, exist_ok=True)
    log_level = getattr(logging, config.get("advanced.log_level", "INFO"))

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(log_level)
    formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)
    return log_file


class RedTimerApp:
    """Interactive console application around one session.

    The session and every Redmine completion run on the event loop's
    thread. A helper thread owns stdin: it reads typed commands and hands
    them over one at a time, and it also reads the answer when the session
    asks a question, for example the exit choice after Ctrl+C.
    """

    def __init__(self, config: ConfigManager, console: Optional[Console] = None):
        """Initialize application.

        Args:
            config: Configuration manager
            console: Rich console (default: new console on stdout)

        Raises:
            AppError: If the Redmine connection is not configured
        """
        if not config.is_connection_configured:
            raise AppError(
                "Redmine URL and API key are not configured. "
                "Run 'redtimer config set redmine.url URL' and "
                "'redtimer config set redmine.api_key KEY'."
            )

        self.config = config
        self.console = console or Console()
        self.loop = EventLoop()
        self.client = RedmineClient(
            url=config.get("redmine.url"),
            api_key=config.get("redmine.api_key"),
            dispatch=self.loop.call_soon,
            verify_ssl=config.get("redmine.verify_ssl", True),
            timeout=config.get("redmine.timeout", 10),
            workers=config.get("redmine.workers", 2),
        )
        notifier = Notifier(
            enabled=bool(config.get("notifications.enabled", False)),
            backend=config.get("notifications.backend", "auto"),
        )
        # Answers read by the helper thread; None when stdin is closed
        self._answers: "queue.Queue[Optional[str]]" = queue.Queue()
        # Questions for the helper thread; None when a command has finished
        self._wake: "queue.Queue[Optional[str]]" = queue.Queue()
        self._asking = threading.Event()
        self._stdin_closed = threading.Event()

        self.shell = ConsoleShell(self.console, notifier, on_quit=self.loop.stop, ask=self._ask)
        self.session = Session(
            self.client,
            self.shell,
            self.loop,
            recent_capacity=config.get("session.recent_issues", 10),
            message_timeout=config.get("session.message_timeout", 5000),
        )
        self.shell.session = self.session
        self.interpreter = CommandInterpreter(self.session, self.shell)
        self._reader: Optional[threading.Thread] = None

    def run(self, issue_id: Optional[int] = None, start_timer: Optional[bool] = None) -> None:
        """Run the session until the user exits.

        Args:
            issue_id: Issue to load at startup (optional)
            start_timer: Start the timer after loading (default: from config)
        """
        if start_timer is None:
            start_timer = bool(self.config.get("session.start_on_load", True))

        logger.info(f"Starting session against {self.client.base_url}")
        self._setup_signal_handlers()

        self.loop.call_soon(self.session.refresh_gui)
        if issue_id is not None:
            self.loop.call_soon(self.session.load_issue, issue_id, start_timer)

        self._reader = threading.Thread(target=self._read_commands, daemon=True)
        self._reader.start()

        try:
            self.loop.run()
        finally:
            self.client.close()
            logger.info("Session ended")

    def _setup_signal_handlers(self) -> None:
        """Route Ctrl+C through session.exit() so running time is not lost."""
        if threading.current_thread() is threading.main_thread():
            signal.signal(signal.SIGINT, self._signal_handler)

    def _signal_handler(self, signum: int, frame: Any) -> None:
        logger.info(f"Received signal {signum}")
        self.loop.call_soon(self.session.exit)

    def _ask(self, question: str) -> str:
        """Read one answer line through the helper thread.

        Runs on the control thread. The helper thread is either blocked in a
        read at the command prompt, in which case the next line becomes the
        answer, or waiting for the current command, in which case it is woken
        up to read the answer.

        Raises:
            EOFError: If stdin is closed
        """
        if self._stdin_closed.is_set():
            raise EOFError
        self.console.print(f"\n{question} ", end="")
        self._asking.set()
        if self._stdin_closed.is_set():
            self._asking.clear()
            raise EOFError
        self._wake.put(question)
        try:
            answer = self._answers.get()
        finally:
            self._asking.clear()
        if answer is None:
            raise EOFError
        return answer

    def _read_commands(self) -> None:
        """Read command lines and run each on the control thread."""
        while not self.shell.quit_requested:
            line = self._read_line(self.shell.prompt())
            if self._asking.is_set():
                self._answers.put(line)
                if line is None:
                    return
                continue
            if line is None:
                self.loop.call_soon(self.session.exit)
                return
            self._run_command(line)
            if self._stdin_closed.is_set():
                return

    def _run_command(self, line: str) -> None:
        self.loop.call_soon(self._execute, line)
        while True:
            question = self._wake.get()
            if question is None:
                return
            if not self._asking.is_set():
                # Answered at the command prompt already
                continue
            self._answers.put(self._read_line(""))

    def _read_line(self, prompt: str) -> Optional[str]:
        try:
            return self.console.input(prompt)
        except EOFError:
            self._stdin_closed.set()
            return None

    def _execute(self, line: str) -> None:
        try:
            self.interpreter.execute(line)
        finally:
            self._wake.put(None)
