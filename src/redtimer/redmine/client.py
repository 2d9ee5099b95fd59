"""Redmine REST client.

Blocking requests run on a small worker pool; their completions are handed
back to the session's control thread through a dispatch function such as
``EventLoop.call_soon``.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Optional, TypeVar

import requests
from pydantic import BaseModel, ValidationError  # type: ignore[import-untyped]

from redtimer.core.client import Callback, RemoteTrackerClient
from redtimer.core.errors import (
    NotFoundError,
    RemoteConnectionError,
    RemoteValidationError,
    TrackerError,
)
from redtimer.core.models import NULL_ID, Activity, Issue, IssueStatus, TimeEntry
from redtimer.redmine.models import (
    ActivitiesEnvelope,
    ErrorsEnvelope,
    IssueEnvelope,
    IssueStatusesEnvelope,
    TimeEntriesEnvelope,
    TimeEntryEnvelope,
)

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


class RedmineClient(RemoteTrackerClient):
    """Access a Redmine server through its REST API."""

    API_KEY_HEADER = "X-Redmine-API-Key"

    def __init__(
        self,
        url: str,
        api_key: str,
        dispatch: Callable[..., None],
        verify_ssl: bool = True,
        timeout: int = 10,
        workers: int = 2,
    ):
        """Initialize Redmine client.

        Args:
            url: Base URL of the Redmine server
            api_key: Redmine API key
            dispatch: Called as dispatch(callback, result, error) to deliver
                a completion on the control thread
            verify_ssl: Verify the server's SSL certificate
            timeout: Request timeout in seconds
            workers: Number of worker threads for requests
        """
        self.base_url = url.rstrip("/")
        self.api_key = api_key
        self.dispatch = dispatch
        self.verify_ssl = verify_ssl
        self.timeout = timeout
        self._executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="redmine")
        self._lock = threading.Lock()
        self._session = self._create_session()

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.headers.update(
            {
                self.API_KEY_HEADER: self.api_key,
                "Content-Type": "application/json",
                "Accept": "application/json",
            }
        )
        return session

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    # ------------------------------------------------------------------
    # Blocking API
    # ------------------------------------------------------------------

    def request(self, method: str, path: str, **kwargs: Any) -> Any:
        """Send a request and decode the JSON response.

        Args:
            method: HTTP method
            path: Path relative to the base URL
            **kwargs: Extra arguments for requests (params, json)

        Returns:
            Decoded JSON body, or None for empty responses

        Raises:
            RemoteConnectionError: On transport, authentication or server errors
            NotFoundError: On HTTP 404
            RemoteValidationError: On HTTP 422 or an undecodable body
        """
        with self._lock:
            session = self._session

        logger.debug(f"{method} {path}")
        try:
            response = session.request(
                method,
                self._url(path),
                timeout=self.timeout,
                verify=self.verify_ssl,
                **kwargs,
            )
        except requests.exceptions.Timeout:
            raise RemoteConnectionError(f"Connection to {self.base_url} timed out")
        except requests.exceptions.RequestException as e:
            raise RemoteConnectionError(f"Could not connect to {self.base_url}: {e}")

        status = response.status_code
        if status == 401:
            raise RemoteConnectionError("Authentication failed, check the API key")
        if status == 403:
            raise RemoteConnectionError(f"Access denied to {path}")
        if status == 404:
            raise NotFoundError(f"Not found: {path}")
        if status == 422:
            errors: list[str] = []
            try:
                errors = ErrorsEnvelope.model_validate(response.json()).errors
            except (ValueError, ValidationError):
                pass
            raise RemoteValidationError("Rejected by Redmine", errors)
        if status >= 400:
            raise RemoteConnectionError(f"Redmine returned HTTP {status}")

        if status == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            raise RemoteValidationError(f"Invalid JSON response from {path}")

    def _parse(self, model: type[M], data: Any) -> M:
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise RemoteValidationError(f"Unexpected {model.__name__} payload", [str(e)])

    def get_issue(self, issue_id: int) -> Issue:
        """Get an issue."""
        data = self.request("GET", f"issues/{issue_id}.json")
        return self._parse(IssueEnvelope, data).issue.to_issue()

    def get_activities(self) -> list[Activity]:
        """Get active time entry activities."""
        data = self.request("GET", "enumerations/time_entry_activities.json")
        envelope = self._parse(ActivitiesEnvelope, data)
        return [a.to_activity() for a in envelope.time_entry_activities if a.active]

    def get_issue_statuses(self) -> list[IssueStatus]:
        """Get issue statuses."""
        data = self.request("GET", "issue_statuses.json")
        return [s.to_issue_status() for s in self._parse(IssueStatusesEnvelope, data).issue_statuses]

    def get_latest_activity(self, issue_id: int) -> Activity:
        """Get the activity of the newest time entry on an issue.

        Raises:
            NotFoundError: If the issue has no time entries
        """
        data = self.request("GET", "time_entries.json", params={"issue_id": issue_id, "limit": 1})
        entries = self._parse(TimeEntriesEnvelope, data).time_entries
        if not entries:
            raise NotFoundError(f"No time entries on issue #{issue_id}")
        return entries[0].to_activity()

    def save_time_entry(self, entry: TimeEntry) -> TimeEntry:
        """Create a time entry, or update it if it has an id.

        Returns:
            The entry as stored by Redmine
        """
        payload: dict[str, Any] = {"issue_id": entry.issue_id, "hours": entry.hours}
        if entry.activity_id != NULL_ID:
            payload["activity_id"] = entry.activity_id
        if entry.comments:
            payload["comments"] = entry.comments

        if entry.id is None:
            data = self.request("POST", "time_entries.json", json={"time_entry": payload})
            stored = self._parse(TimeEntryEnvelope, data).time_entry.to_time_entry()
            logger.info(f"Created time entry {stored.id} ({entry.hours}h on #{entry.issue_id})")
            return stored

        self.request("PUT", f"time_entries/{entry.id}.json", json={"time_entry": payload})
        logger.info(f"Updated time entry {entry.id} ({entry.hours}h on #{entry.issue_id})")
        return entry

    def set_issue_status(self, issue_id: int, status_id: int) -> None:
        """Set the status of an issue."""
        self.request("PUT", f"issues/{issue_id}.json", json={"issue": {"status_id": status_id}})
        logger.info(f"Set status of #{issue_id} to {status_id}")

    def check_connection(self) -> str:
        """Check URL and credentials.

        Returns:
            Login of the authenticated user

        Raises:
            TrackerError: If the server cannot be used
        """
        data = self.request("GET", "users/current.json")
        try:
            return str(data["user"]["login"])
        except (KeyError, TypeError):
            raise RemoteValidationError("Unexpected response from users/current.json")

    # ------------------------------------------------------------------
    # Asynchronous API
    # ------------------------------------------------------------------

    def _submit(self, work: Callable[[], Any], callback: Callback) -> None:
        def run() -> None:
            result: Any = None
            error: Optional[TrackerError] = None
            try:
                result = work()
            except TrackerError as e:
                error = e
            except Exception as e:
                logger.exception(f"Unexpected error talking to Redmine: {e}")
                error = TrackerError(f"Unexpected error: {e}")
            self.dispatch(callback, result, error)

        self._executor.submit(run)

    def fetch_issue(self, issue_id: int, callback: Callback) -> None:
        self._submit(lambda: self.get_issue(issue_id), callback)

    def fetch_activities(self, callback: Callback) -> None:
        self._submit(self.get_activities, callback)

    def fetch_issue_statuses(self, callback: Callback) -> None:
        self._submit(self.get_issue_statuses, callback)

    def fetch_latest_activity(self, issue_id: int, callback: Callback) -> None:
        self._submit(lambda: self.get_latest_activity(issue_id), callback)

    def create_or_update_time_entry(self, entry: TimeEntry, callback: Callback) -> None:
        self._submit(lambda: self.save_time_entry(entry), callback)

    def update_issue_status(self, issue_id: int, status_id: int, callback: Callback) -> None:
        self._submit(lambda: self.set_issue_status(issue_id, status_id), callback)

    def reconnect(self) -> None:
        """Replace the HTTP session. Requests already in flight are not cancelled."""
        with self._lock:
            old = self._session
            self._session = self._create_session()
        old.close()
        logger.info(f"Reconnected to {self.base_url}")

    def close(self) -> None:
        """Release the worker pool and the HTTP session."""
        self._executor.shutdown(wait=False, cancel_futures=True)
        with self._lock:
            self._session.close()
