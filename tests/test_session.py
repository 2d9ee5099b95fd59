"""Tests for the tracking session state machine."""

import pytest
from doubles import (
    ACTIVITIES,
    STATUSES,
    FakeScheduler,
    FakeTrackerClient,
    RecordingShell,
    complete_load,
    complete_refresh,
    make_issue,
)

from redtimer.core.errors import NotFoundError, RemoteConnectionError, RemoteValidationError
from redtimer.core.models import NULL_ID, Activity
from redtimer.core.session import Session, SessionState
from redtimer.core.shell import ExitChoice, MessageType


@pytest.fixture
def running(session: Session, client: FakeTrackerClient) -> Session:
    """Session with issue #42 loaded and the timer running."""
    session.load_issue(42)
    complete_load(client, make_issue(42))
    assert session.is_running
    return session


class TestLoadIssue:
    """Test loading issues."""

    def test_initial_state(self, session: Session) -> None:
        """Test a fresh session has nothing loaded."""
        assert session.state == SessionState.NO_ISSUE
        assert session.issue is None
        assert session.activity_id == NULL_ID
        assert session.counter.seconds == 0

    def test_load_issue_success(
        self, session: Session, client: FakeTrackerClient, shell: RecordingShell
    ) -> None:
        """Test a successful load sets the issue and refreshes the caches."""
        session.load_issue(42, start_timer_after=False)
        assert client.names() == ["fetch_issue"]

        complete_load(client, make_issue(42, status_id=2))

        assert session.issue is not None
        assert session.issue.id == 42
        assert session.issue_status_id == 2
        assert session.recent_issues.ids() == [42]
        assert session.activities.ids() == [8, 9, 10]
        assert session.issue_statuses.ids() == [1, 2, 5]
        assert session.state == SessionState.STOPPED
        assert [issue.id for issue in shell.issues] == [42]
        assert shell.errors() == []

    def test_load_issue_starts_timer(self, session: Session, client: FakeTrackerClient) -> None:
        """Test the timer starts after loading when requested."""
        session.load_issue(42, start_timer_after=True)
        complete_load(client, make_issue(42))

        assert session.state == SessionState.RUNNING

    def test_load_issue_without_network(
        self, session: Session, client: FakeTrackerClient, shell: RecordingShell
    ) -> None:
        """Test a failed fetch leaves the session unchanged and reports once."""
        session.load_issue(42, start_timer_after=True)
        client.fail("fetch_issue", RemoteConnectionError("Network is unreachable"))

        assert session.issue is None
        assert not session.is_running
        assert len(shell.messages) == 1
        text, severity = shell.messages[0]
        assert severity == MessageType.CRITICAL
        assert "Could not load issue #42" in text
        assert "Network is unreachable" in text

    def test_load_unknown_issue_keeps_current(
        self, running: Session, client: FakeTrackerClient, shell: RecordingShell
    ) -> None:
        """Test a not-found issue leaves the current issue in place."""
        running.load_issue(7, save_current_first=False)
        client.fail("fetch_issue", NotFoundError("Not found: issues/7.json"))

        assert running.issue is not None
        assert running.issue.id == 42
        assert running.is_running
        assert shell.messages[-1][1] == MessageType.WARNING

    @pytest.mark.parametrize("issue_id", [0, -3])
    def test_load_invalid_issue_id(
        self, session: Session, client: FakeTrackerClient, shell: RecordingShell, issue_id: int
    ) -> None:
        """Test invalid ids are rejected without a remote call."""
        session.load_issue(issue_id)

        assert client.calls == []
        assert len(shell.errors()) == 1

    def test_load_same_issue_twice_keeps_one_recent_entry(
        self, session: Session, client: FakeTrackerClient
    ) -> None:
        """Test reloading an issue moves it to the front of the recent list."""
        for issue_id in (1, 2, 1):
            session.load_issue(issue_id, start_timer_after=False)
            complete_load(client, make_issue(issue_id))

        assert session.recent_issues.ids() == [1, 2]

    def test_recent_issues_are_capped(self, session: Session, client: FakeTrackerClient) -> None:
        """Test the recent list never exceeds ten issues."""
        for issue_id in range(1, 14):
            session.load_issue(issue_id, start_timer_after=False)
            complete_load(client, make_issue(issue_id))

        assert len(session.recent_issues) == 10
        assert session.recent_issues.ids()[0] == 13
        assert session.recent_issues.ids()[-1] == 4

    def test_superseded_load_is_ignored(self, session: Session, client: FakeTrackerClient) -> None:
        """Test only the newest of two overlapping loads takes effect."""
        session.load_issue(1, start_timer_after=False)
        session.load_issue(2, start_timer_after=False)

        client.complete("fetch_issue", make_issue(1))
        assert session.issue is None

        client.complete("fetch_issue", make_issue(2))
        assert session.issue is not None
        assert session.issue.id == 2
        assert session.recent_issues.ids() == [2]

    def test_load_issue_from_text(self, session: Session, client: FakeTrackerClient) -> None:
        """Test issue numbers typed with or without '#'."""
        session.load_issue_from_text(" #42 ")
        session.load_issue_from_text("17")

        assert client.calls == [("fetch_issue", (42,)), ("fetch_issue", (17,))]

    def test_load_issue_from_invalid_text(
        self, session: Session, client: FakeTrackerClient, shell: RecordingShell
    ) -> None:
        """Test non-numeric input is reported without a remote call."""
        session.load_issue_from_text("abc")

        assert client.calls == []
        assert shell.errors() == ["Invalid issue number: 'abc'"]

    def test_load_issue_from_list(self, session: Session, client: FakeTrackerClient) -> None:
        """Test loading an entry of the recent issue list."""
        for issue_id in (1, 2):
            session.load_issue(issue_id, start_timer_after=False)
            complete_load(client, make_issue(issue_id))

        session.load_issue_from_list(1)

        assert client.calls[-1] == ("fetch_issue", (1,))

    def test_load_issue_from_list_out_of_range(
        self, session: Session, client: FakeTrackerClient, shell: RecordingShell
    ) -> None:
        """Test an invalid list position is reported."""
        session.load_issue_from_list(0)

        assert client.calls == []
        assert shell.errors() == ["No recent issue at position 0"]


class TestSwitchingIssues:
    """Test loading a new issue while the timer runs."""

    def test_save_happens_before_fetch(
        self,
        running: Session,
        client: FakeTrackerClient,
        scheduler: FakeScheduler,
    ) -> None:
        """Test the old issue's time is saved before the new issue is fetched."""
        scheduler.advance(30)
        running.load_issue(43, save_current_first=True)

        assert client.count("create_or_update_time_entry") == 1
        assert ("fetch_issue", (43,)) not in client.calls
        entry = client.pending_call("create_or_update_time_entry").args[0]
        assert entry.issue_id == 42
        assert entry.seconds == 30

        client.complete("create_or_update_time_entry", entry)

        save_index = client.names().index("create_or_update_time_entry")
        fetch_index = client.calls.index(("fetch_issue", (43,)))
        assert save_index < fetch_index

        complete_refresh(client)
        complete_load(client, make_issue(43))

        assert running.issue is not None
        assert running.issue.id == 43
        assert running.counter.seconds == 0
        assert running.is_running
        assert client.count("create_or_update_time_entry") == 1

    def test_failed_save_abandons_load(
        self,
        running: Session,
        client: FakeTrackerClient,
        scheduler: FakeScheduler,
        shell: RecordingShell,
    ) -> None:
        """Test a failed save keeps the old issue and its time."""
        scheduler.advance(30)
        running.load_issue(43, save_current_first=True)
        client.fail("create_or_update_time_entry")

        assert ("fetch_issue", (43,)) not in client.calls
        assert running.issue is not None
        assert running.issue.id == 42
        assert running.counter.seconds == 30
        assert running.is_running
        assert len(shell.errors()) == 1

    def test_without_saving_time_carries_over(
        self,
        running: Session,
        client: FakeTrackerClient,
        scheduler: FakeScheduler,
    ) -> None:
        """Test the running time moves to the new issue when not saved first."""
        scheduler.advance(30)
        running.load_issue(43, save_current_first=False)

        assert client.count("create_or_update_time_entry") == 0
        complete_load(client, make_issue(43))
        scheduler.advance(5)

        assert running.issue is not None
        assert running.issue.id == 43
        assert running.counter.seconds == 35

        running.stop()
        entry = client.pending_call("create_or_update_time_entry").args[0]
        assert entry.issue_id == 43
        assert entry.seconds == 35

    def test_load_while_stopped_does_not_save(
        self, session: Session, client: FakeTrackerClient
    ) -> None:
        """Test nothing is saved when the timer is not running."""
        session.load_issue(1, start_timer_after=False)
        complete_load(client, make_issue(1))

        session.load_issue(2, save_current_first=True)

        assert client.count("create_or_update_time_entry") == 0
        assert client.calls[-1] == ("fetch_issue", (2,))

    def test_load_waits_for_pending_save(
        self,
        running: Session,
        client: FakeTrackerClient,
        scheduler: FakeScheduler,
    ) -> None:
        """Test a load issued after stop() is fetched only once the save succeeded."""
        scheduler.advance(100)
        running.stop()
        running.load_issue(43)

        assert ("fetch_issue", (43,)) not in client.calls

        client.complete("create_or_update_time_entry", None)
        assert client.pending_call("fetch_issue").args == (43,)

        complete_refresh(client)
        complete_load(client, make_issue(43))

        assert running.issue is not None
        assert running.issue.id == 43
        assert running.counter.seconds == 0
        assert client.count("create_or_update_time_entry") == 1

    def test_load_dropped_when_pending_save_fails(
        self,
        running: Session,
        client: FakeTrackerClient,
        scheduler: FakeScheduler,
        shell: RecordingShell,
    ) -> None:
        """Test time of a failed save stays on the old issue."""
        scheduler.advance(100)
        running.stop()
        running.load_issue(43)
        client.fail("create_or_update_time_entry")
        scheduler.advance(5)

        assert ("fetch_issue", (43,)) not in client.calls
        assert running.issue is not None
        assert running.issue.id == 42
        assert running.counter.seconds == 105
        assert len(shell.errors()) == 1

        running.stop()
        entry = client.pending_call("create_or_update_time_entry").args[0]
        assert entry.issue_id == 42
        assert entry.seconds == 105


class TestStartStop:
    """Test starting and stopping the timer."""

    def test_start_without_issue(
        self, session: Session, client: FakeTrackerClient, shell: RecordingShell, scheduler: FakeScheduler
    ) -> None:
        """Test start is rejected without an issue and makes no remote call."""
        session.start()

        assert not session.is_running
        assert scheduler.pending == []
        assert client.calls == []
        assert shell.errors() == ["Please select an issue first"]

    def test_stop_without_issue(
        self, session: Session, client: FakeTrackerClient, shell: RecordingShell
    ) -> None:
        """Test stop is rejected without an issue."""
        session.stop()

        assert client.calls == []
        assert len(shell.errors()) == 1

    def test_stop_saves_and_resets(
        self,
        running: Session,
        client: FakeTrackerClient,
        scheduler: FakeScheduler,
        shell: RecordingShell,
    ) -> None:
        """Test a successful save resets the counter and refreshes the caches."""
        scheduler.advance(125)
        assert running.counter.seconds == 125
        refreshes = len(shell.entity_lists)

        running.stop()
        assert not running.is_running
        entry = client.pending_call("create_or_update_time_entry").args[0]
        assert entry.issue_id == 42
        assert entry.seconds == 125
        assert entry.activity_id == 9

        client.complete("create_or_update_time_entry", entry)

        assert running.counter.seconds == 0
        assert shell.saved == 1
        assert client.has_pending("fetch_activities")
        assert client.has_pending("fetch_issue_statuses")
        assert len(shell.entity_lists) > refreshes
        assert running.state == SessionState.STOPPED

    def test_stop_without_tracked_time(
        self, session: Session, client: FakeTrackerClient, scheduler: FakeScheduler
    ) -> None:
        """Test stopping with an empty counter sends nothing."""
        session.load_issue(42)
        complete_load(client, make_issue(42))

        session.stop()

        assert not session.is_running
        assert client.count("create_or_update_time_entry") == 0

    def test_failed_stop_keeps_time_and_running_flag(
        self,
        running: Session,
        client: FakeTrackerClient,
        scheduler: FakeScheduler,
        shell: RecordingShell,
    ) -> None:
        """Test a failed save can be retried with the same elapsed time."""
        scheduler.advance(60)
        running.stop(reset_timer_on_error=False)
        client.fail("create_or_update_time_entry")

        assert running.counter.seconds == 60
        assert running.is_running
        assert shell.saved == 0
        assert len(shell.errors()) == 1

        running.stop()
        entry = client.pending_call("create_or_update_time_entry").args[0]
        assert entry.seconds == 60

        client.complete("create_or_update_time_entry", entry)
        assert running.counter.seconds == 0
        assert shell.saved == 1

    def test_failed_stop_with_reset(
        self,
        running: Session,
        client: FakeTrackerClient,
        scheduler: FakeScheduler,
        shell: RecordingShell,
    ) -> None:
        """Test reset_timer_on_error drops the time after a failed save."""
        scheduler.advance(60)
        running.stop(reset_timer_on_error=True)
        client.fail("create_or_update_time_entry", RemoteValidationError("Rejected", ["Hours is invalid"]))

        assert running.counter.seconds == 0
        assert not running.is_running
        assert len(shell.errors()) == 1
        assert "Hours is invalid" in shell.errors()[0]

    def test_stop_while_save_in_flight(
        self,
        running: Session,
        client: FakeTrackerClient,
        scheduler: FakeScheduler,
        shell: RecordingShell,
    ) -> None:
        """Test a second stop does not send a second save."""
        scheduler.advance(10)
        running.stop()
        running.stop()

        assert client.count("create_or_update_time_entry") == 1
        assert running.is_saving
        assert len(shell.errors()) == 1

    def test_start_while_running_flushes_time(
        self,
        running: Session,
        client: FakeTrackerClient,
        scheduler: FakeScheduler,
    ) -> None:
        """Test starting again saves the tracked time and keeps counting."""
        scheduler.advance(20)
        running.start()

        entry = client.pending_call("create_or_update_time_entry").args[0]
        assert entry.seconds == 20
        assert running.is_running

        scheduler.advance(5)
        client.complete("create_or_update_time_entry", entry)

        assert running.counter.seconds == 5
        assert running.is_running

    def test_start_stop_cycles(
        self,
        running: Session,
        client: FakeTrackerClient,
        scheduler: FakeScheduler,
        shell: RecordingShell,
    ) -> None:
        """Test each start/stop pair saves exactly once and ends at zero."""
        for cycle in range(3):
            if not running.is_running:
                running.start_stop()
            scheduler.advance(10 + cycle)
            running.start_stop()
            call = client.complete("create_or_update_time_entry", None)
            assert call.args[0].seconds == 10 + cycle
            complete_refresh(client)

        assert running.counter.seconds == 0
        assert client.count("create_or_update_time_entry") == 3
        assert shell.saved == 3
        assert not running.is_running

    def test_counter_ticks_reach_shell(
        self, running: Session, scheduler: FakeScheduler, shell: RecordingShell
    ) -> None:
        """Test every tick refreshes the counter display."""
        scheduler.advance(3)

        assert shell.counter_values[-3:] == [1, 2, 3]


class TestActivitiesAndStatuses:
    """Test activity and issue status handling."""

    def test_latest_activity_is_preselected(self, session: Session, client: FakeTrackerClient) -> None:
        """Test the activity last used on the issue is selected."""
        session.load_issue(42, start_timer_after=False)
        complete_load(client, make_issue(42), latest=Activity(id=10, name="Support"))

        assert session.activity_id == 10

    def test_default_activity_without_history(self, session: Session, client: FakeTrackerClient) -> None:
        """Test the default activity is selected for issues without entries."""
        session.load_issue(42, start_timer_after=False)
        complete_load(client, make_issue(42))

        assert session.activity_id == 9

    def test_failed_activity_refresh_keeps_cache(
        self, session: Session, client: FakeTrackerClient, shell: RecordingShell
    ) -> None:
        """Test a failed refresh keeps the stale activities."""
        session.load_activities()
        client.complete("fetch_activities", list(ACTIVITIES))

        session.load_activities()
        client.fail("fetch_activities")

        assert session.activities.ids() == [8, 9, 10]
        assert len(shell.errors()) == 1

    def test_failed_status_refresh_keeps_cache(
        self, session: Session, client: FakeTrackerClient, shell: RecordingShell
    ) -> None:
        """Test a failed refresh keeps the stale statuses."""
        session.load_issue_statuses()
        client.complete("fetch_issue_statuses", list(STATUSES))

        session.load_issue_statuses()
        client.fail("fetch_issue_statuses")

        assert session.issue_statuses.ids() == [1, 2, 5]
        assert len(shell.errors()) == 1

    def test_activity_selected(self, session: Session, client: FakeTrackerClient, shell: RecordingShell) -> None:
        """Test selecting activities by list position."""
        session.load_activities()
        client.complete("fetch_activities", list(ACTIVITIES))

        session.activity_selected(0)
        assert session.activity_id == 8

        session.activity_selected(5)
        assert session.activity_id == 8
        assert shell.errors() == ["No activity at position 5"]

        session.activity_selected(-1)
        assert session.activity_id == NULL_ID

    def test_issue_status_selected(self, session: Session, client: FakeTrackerClient) -> None:
        """Test selecting issue statuses by list position."""
        session.load_issue_statuses()
        client.complete("fetch_issue_statuses", list(STATUSES))

        assert session.issue_status_selected(2) == 5
        assert session.issue_status_id == 5
        assert client.count("update_issue_status") == 0

        assert session.issue_status_selected(7) is None
        assert session.issue_status_id == 5

    def test_update_issue_status(
        self, running: Session, client: FakeTrackerClient, shell: RecordingShell
    ) -> None:
        """Test pushing a status to the current issue."""
        running.update_issue_status(2)
        assert client.pending_call("update_issue_status").args == (42, 2)

        client.complete("update_issue_status")

        assert running.issue_status_id == 2
        assert running.issue is not None
        assert running.issue.status_name == "In Progress"
        assert shell.messages[-1] == ("Issue #42 set to 'In Progress'", MessageType.INFO)

    def test_update_issue_status_failure_keeps_selection(
        self, running: Session, client: FakeTrackerClient, shell: RecordingShell
    ) -> None:
        """Test the local selection survives a failed update."""
        running.update_issue_status(5)
        client.fail("update_issue_status", RemoteValidationError("Rejected", ["Status is invalid"]))

        assert running.issue_status_id == 5
        assert running.issue is not None
        assert running.issue.status_id == 1
        assert len(shell.errors()) == 1

    def test_update_issue_status_without_issue(
        self, session: Session, client: FakeTrackerClient, shell: RecordingShell
    ) -> None:
        """Test status updates need a loaded issue."""
        session.update_issue_status(2)

        assert client.calls == []
        assert len(shell.errors()) == 1


class TestReconnect:
    """Test reconnecting and stale completions."""

    def test_reconnect_drops_stale_completions(
        self, session: Session, client: FakeTrackerClient, shell: RecordingShell
    ) -> None:
        """Test completions of requests issued before a reconnect are ignored."""
        session.load_issue(42)
        session.reconnect()

        assert client.reconnects == 1
        client.complete("fetch_issue", make_issue(42))

        assert session.issue is None
        assert not session.is_running
        assert shell.issues == []

    def test_reconnect_keeps_issue_and_counter(
        self, running: Session, client: FakeTrackerClient, scheduler: FakeScheduler
    ) -> None:
        """Test reconnecting leaves the session state alone."""
        scheduler.advance(15)
        running.reconnect()

        assert running.issue is not None
        assert running.issue.id == 42
        assert running.counter.seconds == 15
        assert running.is_running
        assert client.has_pending("fetch_activities")

    def test_reconnect_abandons_pending_save(
        self,
        running: Session,
        client: FakeTrackerClient,
        scheduler: FakeScheduler,
        shell: RecordingShell,
    ) -> None:
        """Test an abandoned save keeps its time and allows a new save."""
        scheduler.advance(15)
        running.stop()
        running.reconnect()

        assert not running.is_saving
        assert running.is_running
        assert running.counter.seconds == 15

        client.complete("create_or_update_time_entry", None)
        assert running.counter.seconds == 15
        assert shell.saved == 0

        running.stop()
        assert client.count("create_or_update_time_entry") == 2

    def test_reconnect_drops_load_waiting_on_save(
        self,
        running: Session,
        client: FakeTrackerClient,
        scheduler: FakeScheduler,
    ) -> None:
        """Test a load waiting on an abandoned save is not issued."""
        scheduler.advance(15)
        running.stop()
        running.load_issue(43)
        running.reconnect()

        client.complete("create_or_update_time_entry", None)

        assert ("fetch_issue", (43,)) not in client.calls
        assert running.issue is not None
        assert running.issue.id == 42


class TestExit:
    """Test exiting the application."""

    def test_exit_when_stopped(self, session: Session, shell: RecordingShell) -> None:
        """Test exiting without a running timer quits immediately."""
        session.exit()

        assert shell.prompts == 0
        assert shell.quits == 1

    def test_exit_abort(
        self,
        running: Session,
        client: FakeTrackerClient,
        scheduler: FakeScheduler,
        shell: RecordingShell,
    ) -> None:
        """Test aborting the exit changes nothing."""
        scheduler.advance(40)
        shell.exit_choice = ExitChoice.ABORT

        running.exit()

        assert shell.prompts == 1
        assert shell.quits == 0
        assert running.counter.seconds == 40
        assert running.is_running
        assert client.count("create_or_update_time_entry") == 0

    def test_exit_save(
        self,
        running: Session,
        client: FakeTrackerClient,
        scheduler: FakeScheduler,
        shell: RecordingShell,
    ) -> None:
        """Test save-then-exit quits only after the save succeeded."""
        scheduler.advance(40)
        shell.exit_choice = ExitChoice.SAVE

        running.exit()
        assert shell.quits == 0

        client.complete("create_or_update_time_entry", None)

        assert shell.quits == 1
        assert shell.saved == 1
        assert running.issue is None
        assert running.counter.seconds == 0

    def test_exit_save_failure_cancels_exit(
        self,
        running: Session,
        client: FakeTrackerClient,
        scheduler: FakeScheduler,
        shell: RecordingShell,
    ) -> None:
        """Test a failed save keeps the application and the time."""
        scheduler.advance(40)
        shell.exit_choice = ExitChoice.SAVE

        running.exit()
        client.fail("create_or_update_time_entry")

        assert shell.quits == 0
        assert running.counter.seconds == 40
        assert running.is_running
        assert len(shell.errors()) == 1

    def test_exit_discard(
        self,
        running: Session,
        client: FakeTrackerClient,
        scheduler: FakeScheduler,
        shell: RecordingShell,
    ) -> None:
        """Test discard-then-exit drops the time without a remote call."""
        scheduler.advance(40)
        shell.exit_choice = ExitChoice.DISCARD

        running.exit()

        assert shell.quits == 1
        assert running.counter.seconds == 0
        assert not running.is_running
        assert client.count("create_or_update_time_entry") == 0

    def test_exit_waits_for_pending_save(
        self,
        running: Session,
        client: FakeTrackerClient,
        scheduler: FakeScheduler,
        shell: RecordingShell,
    ) -> None:
        """Test exiting after stop() quits only once the save succeeded."""
        scheduler.advance(100)
        running.stop()

        running.exit()

        assert shell.quits == 0
        assert shell.prompts == 0
        assert ("Exiting once the pending save completes", MessageType.INFO) in shell.messages

        client.complete("create_or_update_time_entry", None)

        assert shell.quits == 1
        assert running.counter.seconds == 0

    def test_exit_cancelled_when_pending_save_fails(
        self,
        running: Session,
        client: FakeTrackerClient,
        scheduler: FakeScheduler,
        shell: RecordingShell,
    ) -> None:
        """Test a failed save keeps the application and the time."""
        scheduler.advance(100)
        running.stop()
        running.exit()
        running.exit()

        client.fail("create_or_update_time_entry")

        assert shell.quits == 0
        assert running.counter.seconds == 100
        assert running.is_running
        assert len(shell.errors()) == 1
