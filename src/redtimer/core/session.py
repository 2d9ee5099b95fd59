"""Time tracking session state machine."""

import functools
import logging
from enum import Enum
from typing import Any, Callable, Optional, TypeVar

from redtimer.core.caches import EntityCache, RecentIssues
from redtimer.core.client import Callback, RemoteTrackerClient
from redtimer.core.counter import ElapsedCounter, Scheduler, format_duration
from redtimer.core.errors import LocalPreconditionError, NotFoundError, TrackerError
from redtimer.core.models import NULL_ID, Activity, Issue, IssueStatus, TimeEntry
from redtimer.core.shell import ExitChoice, MessageType, ShellAdapter

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


class SessionState(Enum):
    """Externally visible session state."""

    NO_ISSUE = "no_issue"
    STOPPED = "stopped"
    RUNNING = "running"


def _reports_precondition(method: F) -> F:
    """Turn a LocalPreconditionError raised by a session method into a message."""

    @functools.wraps(method)
    def wrapper(self: "Session", *args: Any, **kwargs: Any) -> Any:
        try:
            return method(self, *args, **kwargs)
        except LocalPreconditionError as e:
            self._report(e)
            return None

    return wrapper  # type: ignore[return-value]


class Session:
    """Track time on one remote issue at a time.

    The session owns the counter, the current issue, the selected activity
    and issue status, and the entity caches. All methods and all completion
    callbacks are expected to run on the same control thread.

    Every remote request is stamped with the current generation. A
    reconnect moves to a new generation, and completions of requests issued
    before it are dropped.
    """

    def __init__(
        self,
        client: RemoteTrackerClient,
        shell: ShellAdapter,
        scheduler: Scheduler,
        recent_capacity: int = RecentIssues.DEFAULT_CAPACITY,
        message_timeout: int = 5000,
    ):
        """Initialize session.

        Args:
            client: Remote tracker client
            shell: Shell receiving session output
            scheduler: Scheduler driving the counter tick
            recent_capacity: Size of the recent issues list
            message_timeout: Display duration of messages in milliseconds
        """
        self.client = client
        self.shell = shell
        self.message_timeout = message_timeout

        self.counter = ElapsedCounter(scheduler, on_tick=self.shell.refresh_counter_display)
        self.activities: EntityCache[Activity] = EntityCache()
        self.issue_statuses: EntityCache[IssueStatus] = EntityCache()
        self.recent_issues = RecentIssues(recent_capacity)

        self.issue: Optional[Issue] = None
        self.activity_id = NULL_ID
        self.issue_status_id = NULL_ID

        self._generation = 0
        self._issue_request = 0
        self._saving = False
        self._resume_after_save = False
        self._after_save: list[Callable[[], None]] = []

    @property
    def state(self) -> SessionState:
        """Current session state."""
        if self.issue is None:
            return SessionState.NO_ISSUE
        if self.counter.is_running:
            return SessionState.RUNNING
        return SessionState.STOPPED

    @property
    def is_running(self) -> bool:
        """Check if the timer is running."""
        return self.counter.is_running

    @property
    def is_saving(self) -> bool:
        """Check if a time entry save is in flight."""
        return self._saving

    # ------------------------------------------------------------------
    # Issues
    # ------------------------------------------------------------------

    @_reports_precondition
    def load_issue(
        self,
        issue_id: int,
        start_timer_after: bool = True,
        save_current_first: bool = True,
    ) -> None:
        """Load an issue from the remote tracker.

        If the timer is running and save_current_first is set, the tracked
        time is saved on the current issue before the new issue is fetched.
        If the save fails the new issue is not loaded. Without
        save_current_first the running time carries over to the new issue.
        While a time entry is being saved, the load waits for that save and
        is dropped if it fails.

        Args:
            issue_id: Issue identifier
            start_timer_after: Start the timer once the issue is loaded
            save_current_first: Save running time on the current issue first
        """
        if isinstance(issue_id, bool) or not isinstance(issue_id, int) or issue_id < 1:
            raise LocalPreconditionError(f"Invalid issue number: {issue_id!r}")

        if self._saving:
            logger.info(f"Loading #{issue_id} once the pending save on #{self.issue_id} completes")
            self._after_save.append(
                lambda: self.load_issue(issue_id, start_timer_after, save_current_first)
            )
            return

        if save_current_first and self.counter.is_running:
            logger.info(f"Saving time on #{self.issue_id} before loading #{issue_id}")
            self.stop(
                stop_timer_after_saving=True,
                on_saved=lambda: self._fetch_issue(issue_id, start_timer_after),
            )
            return

        self._fetch_issue(issue_id, start_timer_after)

    @_reports_precondition
    def load_issue_from_list(self, index: int) -> None:
        """Load the recent issue at the given list position.

        Args:
            index: Position in the recent issues list
        """
        if not 0 <= index < len(self.recent_issues):
            raise LocalPreconditionError(f"No recent issue at position {index}")
        self.load_issue(self.recent_issues[index].id)

    @_reports_precondition
    def load_issue_from_text(self, text: str) -> None:
        """Load an issue typed by the user, e.g. '42' or '#42'.

        Args:
            text: Issue number as entered
        """
        cleaned = text.strip().lstrip("#").strip()
        try:
            issue_id = int(cleaned)
        except ValueError:
            raise LocalPreconditionError(f"Invalid issue number: {text.strip()!r}")
        self.load_issue(issue_id)

    @property
    def issue_id(self) -> int:
        """Identifier of the current issue, or NULL_ID."""
        return self.issue.id if self.issue else NULL_ID

    def _fetch_issue(self, issue_id: int, start_timer_after: bool) -> None:
        self._issue_request += 1
        request = self._issue_request

        def done(issue: Optional[Issue], error: Optional[TrackerError]) -> None:
            if request != self._issue_request:
                logger.debug(f"Ignoring superseded load of issue #{issue_id}")
                return
            if error is not None or issue is None:
                self._report(error, f"Could not load issue #{issue_id}")
                return

            self.issue = issue
            self.issue_status_id = issue.status_id
            self.recent_issues.add(issue)
            logger.info(f"Loaded issue {issue.label}")

            self.shell.refresh_issue(issue)
            self._refresh_entity_lists()
            self.load_latest_activity()
            self.load_issue_statuses()

            if start_timer_after and not self.counter.is_running:
                self.start()

        self.client.fetch_issue(issue_id, self._guard(done))

    # ------------------------------------------------------------------
    # Timer
    # ------------------------------------------------------------------

    @_reports_precondition
    def start(self) -> None:
        """Start time tracking on the current issue.

        If the timer is already running, the tracked time is saved first and
        counting continues with the time accumulated since.
        """
        self._require_issue("Please select an issue first")

        if self.counter.is_running:
            self.stop(stop_timer_after_saving=False)
            return

        self.counter.start_timer()
        self.shell.timer_state_changed(True)
        logger.info(f"Started tracking on #{self.issue_id}")

    def start_stop(self) -> None:
        """Stop the timer if it is running, start it otherwise."""
        if self.counter.is_running:
            self.stop()
        else:
            self.start()

    @_reports_precondition
    def stop(
        self,
        reset_timer_on_error: bool = False,
        stop_timer_after_saving: bool = True,
        on_saved: Optional[Callable[[], None]] = None,
    ) -> None:
        """Stop time tracking and save the tracked time.

        On failure the counter is kept and the timer is restored to its
        previous state, so that calling stop() again saves the same time.

        Args:
            reset_timer_on_error: Reset the counter even if saving fails
            stop_timer_after_saving: Halt the timer, otherwise only flush the
                tracked time and keep counting
            on_saved: Called after the time has been saved (or when there was
                nothing to save)
        """
        issue = self._require_issue("Please select an issue first")
        if self._saving:
            raise LocalPreconditionError("A time entry is still being saved, please wait")

        was_running = self.counter.is_running
        if stop_timer_after_saving and was_running:
            self.counter.stop_timer()
            self.shell.timer_state_changed(False)

        seconds = self.counter.seconds
        if seconds == 0:
            logger.debug("No tracked time to save")
            if on_saved:
                on_saved()
            return

        entry = TimeEntry(issue_id=issue.id, seconds=seconds, activity_id=self.activity_id)
        self._saving = True
        self._resume_after_save = was_running and stop_timer_after_saving

        def done(result: Optional[TimeEntry], error: Optional[TrackerError]) -> None:
            self._saving = False
            self._resume_after_save = False

            if error is not None:
                if reset_timer_on_error:
                    self.counter.stop_timer()
                    self.counter.reset()
                    logger.warning(f"Discarded {seconds}s on #{issue.id} after failed save")
                    if was_running:
                        self.shell.timer_state_changed(False)
                elif was_running and not self.counter.is_running:
                    self.counter.start_timer()
                    self.shell.timer_state_changed(True)
                self._drop_after_save("the save failed")
                self._report(error, f"Could not save time entry on #{issue.id}")
                return

            self.counter.consume(seconds)
            logger.info(f"Saved {seconds}s on #{issue.id} (activity {entry.activity_id})")
            self.shell.time_entry_saved()
            self.shell.message(
                f"Saved {format_duration(seconds)} on {issue.label}",
                MessageType.INFO,
                self.message_timeout,
            )
            self.refresh_gui()
            if on_saved:
                on_saved()
            self._run_after_save()

        self.client.create_or_update_time_entry(entry, self._guard(done))

    # ------------------------------------------------------------------
    # Activities and issue statuses
    # ------------------------------------------------------------------

    def load_activities(self, on_loaded: Optional[Callable[[], None]] = None) -> None:
        """Refresh the activity cache.

        The current selection is kept if it still exists, otherwise the
        default activity is selected. On failure the old cache is kept.

        Args:
            on_loaded: Called after a successful refresh
        """

        def done(activities: Optional[list[Activity]], error: Optional[TrackerError]) -> None:
            if error is not None or activities is None:
                self._report(error, "Could not load activities")
                return

            self.activities.replace(activities)
            if self.activities.get(self.activity_id) is None:
                default = next((a for a in activities if a.is_default), None)
                self.activity_id = default.id if default else NULL_ID
            logger.debug(f"Loaded {len(activities)} activities")

            if on_loaded:
                on_loaded()
            self._refresh_entity_lists()

        self.client.fetch_activities(self._guard(done))

    def load_issue_statuses(self) -> None:
        """Refresh the issue status cache. On failure the old cache is kept."""

        def done(statuses: Optional[list[IssueStatus]], error: Optional[TrackerError]) -> None:
            if error is not None or statuses is None:
                self._report(error, "Could not load issue statuses")
                return

            self.issue_statuses.replace(statuses)
            logger.debug(f"Loaded {len(statuses)} issue statuses")
            self._refresh_entity_lists()

        self.client.fetch_issue_statuses(self._guard(done))

    def load_latest_activity(self) -> None:
        """Pre-select the activity last used on the current issue.

        The activity list is refreshed in any case; the latest activity is
        selected once that refresh completes.
        """
        if self.issue is None:
            self.load_activities()
            return

        issue_id = self.issue.id

        def done(activity: Optional[Activity], error: Optional[TrackerError]) -> None:
            if isinstance(error, NotFoundError):
                logger.debug(f"No previous time entries on #{issue_id}")
            elif error is not None:
                self._report(error, f"Could not load latest activity of #{issue_id}")

            def select() -> None:
                if activity is None or self.issue_id != issue_id:
                    return
                if self.activities.get(activity.id) is not None:
                    self.activity_id = activity.id
                    logger.debug(f"Selected latest activity {activity.name}")

            self.load_activities(on_loaded=select)

        self.client.fetch_latest_activity(issue_id, self._guard(done))

    @_reports_precondition
    def activity_selected(self, index: int) -> None:
        """Select an activity by its position in the activity cache.

        Args:
            index: Position in the cache, -1 to clear the selection
        """
        self.activity_id = self._id_at(self.activities, index, "activity")

    @_reports_precondition
    def issue_status_selected(self, index: int) -> Optional[int]:
        """Select an issue status by its position in the status cache.

        Args:
            index: Position in the cache, -1 to clear the selection

        Returns:
            The selected status id, or None if the position is invalid
        """
        self.issue_status_id = self._id_at(self.issue_statuses, index, "issue status")
        return self.issue_status_id

    @_reports_precondition
    def update_issue_status(self, status_id: int) -> None:
        """Select an issue status and push it to the current issue.

        The local selection is kept whatever the remote outcome.

        Args:
            status_id: Issue status identifier
        """
        issue = self._require_issue("Please select an issue first")
        self.issue_status_id = status_id

        def done(result: Any, error: Optional[TrackerError]) -> None:
            if error is not None:
                self._report(error, f"Could not update status of #{issue.id}")
                return

            status = self.issue_statuses.get(status_id)
            name = status.name if status else str(status_id)
            if self.issue is not None and self.issue.id == issue.id:
                self.issue.status_id = status_id
                self.issue.status_name = name
            logger.info(f"Issue #{issue.id} status set to {name}")
            self.shell.message(
                f"Issue #{issue.id} set to '{name}'", MessageType.INFO, self.message_timeout
            )

        self.client.update_issue_status(issue.id, status_id, self._guard(done))

    # ------------------------------------------------------------------
    # Connection and lifecycle
    # ------------------------------------------------------------------

    def reconnect(self) -> None:
        """Reconnect to the remote tracker.

        Requests issued before the reconnect are abandoned; their late
        completions are ignored. A save abandoned this way keeps its tracked
        time.
        """
        logger.info("Reconnecting to remote tracker")
        self.client.reconnect()
        self._generation += 1

        if self._saving:
            self._saving = False
            if self._resume_after_save and not self.counter.is_running:
                self.counter.start_timer()
                self.shell.timer_state_changed(True)
            self._resume_after_save = False
            self._drop_after_save("the save was abandoned")
            self.shell.message(
                "Pending save abandoned, tracked time was kept",
                MessageType.WARNING,
                self.message_timeout,
            )

        self.refresh_gui()

    def refresh_gui(self) -> None:
        """Refresh activities and issue statuses and redisplay the lists."""
        self.load_activities()
        self.load_issue_statuses()
        self._refresh_entity_lists()

    def exit(self) -> None:
        """Exit the application.

        While time is tracked and not saved, the shell is asked whether to
        abort, save the tracked time first, or discard it. While a time entry
        is being saved, the exit waits for that save and is cancelled if it
        fails.
        """
        if self._saving:
            if self.exit not in self._after_save:
                self._after_save.append(self.exit)
            self.shell.message(
                "Exiting once the pending save completes", MessageType.INFO, self.message_timeout
            )
            return

        if not self.counter.is_running and self.counter.seconds == 0:
            self.shell.quit()
            return

        choice = self.shell.prompt_exit_choice()
        logger.info(f"Exit requested with {self.counter.seconds}s unsaved, choice: {choice.value}")

        if choice == ExitChoice.ABORT:
            return

        if choice == ExitChoice.DISCARD:
            seconds = self.counter.seconds
            if self.counter.is_running:
                self.counter.stop_timer()
                self.shell.timer_state_changed(False)
            self.counter.reset()
            logger.warning(f"Discarded {seconds}s on #{self.issue_id}")
            self._finish_exit()
            return

        self.stop(stop_timer_after_saving=True, on_saved=self._finish_exit)

    def _finish_exit(self) -> None:
        self.issue = None
        self.counter.reset()
        self.shell.quit()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _guard(self, handler: Callback) -> Callback:
        """Bind a completion handler to the current generation."""
        generation = self._generation

        def callback(result: Any, error: Optional[TrackerError]) -> None:
            if generation != self._generation:
                logger.debug(
                    f"Dropping stale completion (generation {generation}, now {self._generation})"
                )
                return
            handler(result, error)

        return callback

    def _run_after_save(self) -> None:
        pending, self._after_save = self._after_save, []
        for operation in pending:
            operation()

    def _drop_after_save(self, reason: str) -> None:
        if self._after_save:
            logger.warning(f"Dropping {len(self._after_save)} operation(s) waiting on a save: {reason}")
        self._after_save = []

    def _require_issue(self, reason: str) -> Issue:
        if self.issue is None:
            raise LocalPreconditionError(reason)
        return self.issue

    def _id_at(self, cache: EntityCache[Any], index: int, kind: str) -> int:
        if index == -1:
            return NULL_ID
        if not 0 <= index < len(cache):
            raise LocalPreconditionError(f"No {kind} at position {index}")
        return int(cache[index].id)

    def _refresh_entity_lists(self) -> None:
        self.shell.refresh_entity_lists(
            self.activities.items(),
            self.issue_statuses.items(),
            self.recent_issues.items(),
        )

    def _report(self, error: Optional[Exception], context: Optional[str] = None) -> None:
        """Surface an error as exactly one message."""
        if error is None:
            error = TrackerError("No result received")

        if isinstance(error, (LocalPreconditionError, NotFoundError)):
            severity = MessageType.WARNING
        else:
            severity = MessageType.CRITICAL

        text = f"{context}: {error}" if context else str(error)
        if severity == MessageType.CRITICAL:
            logger.error(text)
        else:
            logger.warning(text)
        self.shell.message(text, severity, self.message_timeout)
