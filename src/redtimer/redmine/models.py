"""Pydantic models for Redmine REST payloads.

Redmine wraps every resource in an envelope (``{"issue": {...}}``,
``{"issue_statuses": [...]}``). The models below validate those envelopes
and convert them into the core dataclasses.
"""

from typing import Optional

from pydantic import BaseModel, Field  # type: ignore[import-untyped]

from redtimer.core.models import NULL_ID, Activity, Issue, IssueStatus, TimeEntry

# ============================================================================
# Resource Models
# ============================================================================


class NamedRef(BaseModel):
    """Reference to another resource, e.g. ``{"id": 1, "name": "New"}``."""

    id: int
    name: str = ""


class IssuePayload(BaseModel):
    """Issue as returned by GET /issues/{id}.json."""

    id: int
    subject: str = ""
    description: Optional[str] = None
    status: NamedRef
    tracker: Optional[NamedRef] = None
    project: Optional[NamedRef] = None
    assigned_to: Optional[NamedRef] = None
    done_ratio: int = 0
    spent_hours: float = 0.0

    def to_issue(self) -> Issue:
        """Convert to core Issue."""
        return Issue(
            id=self.id,
            subject=self.subject,
            status_id=self.status.id,
            status_name=self.status.name,
            tracker_name=self.tracker.name if self.tracker else "",
            project_name=self.project.name if self.project else "",
            assigned_to_name=self.assigned_to.name if self.assigned_to else None,
            done_ratio=self.done_ratio,
            spent_hours=self.spent_hours,
            description=self.description,
        )


class ActivityPayload(BaseModel):
    """Entry of /enumerations/time_entry_activities.json."""

    id: int
    name: str
    is_default: bool = False
    active: bool = True

    def to_activity(self) -> Activity:
        """Convert to core Activity."""
        return Activity(id=self.id, name=self.name, is_default=self.is_default)


class IssueStatusPayload(BaseModel):
    """Entry of /issue_statuses.json."""

    id: int
    name: str
    is_closed: bool = False

    def to_issue_status(self) -> IssueStatus:
        """Convert to core IssueStatus."""
        return IssueStatus(id=self.id, name=self.name, is_closed=self.is_closed)


class TimeEntryPayload(BaseModel):
    """Time entry as returned by /time_entries.json."""

    id: int
    hours: float
    issue: Optional[NamedRef] = None
    activity: NamedRef
    comments: Optional[str] = None

    def to_time_entry(self) -> TimeEntry:
        """Convert to core TimeEntry."""
        return TimeEntry(
            id=self.id,
            issue_id=self.issue.id if self.issue else NULL_ID,
            seconds=int(round(self.hours * 3600)),
            activity_id=self.activity.id,
            comments=self.comments or None,
        )

    def to_activity(self) -> Activity:
        """Get the activity the entry was booked under."""
        return Activity(id=self.activity.id, name=self.activity.name)


# ============================================================================
# Envelope Models
# ============================================================================


class IssueEnvelope(BaseModel):
    """Envelope of a single issue."""

    issue: IssuePayload


class ActivitiesEnvelope(BaseModel):
    """Envelope of the activity enumeration."""

    time_entry_activities: list[ActivityPayload] = Field(default_factory=list)


class IssueStatusesEnvelope(BaseModel):
    """Envelope of the issue status list."""

    issue_statuses: list[IssueStatusPayload] = Field(default_factory=list)


class TimeEntryEnvelope(BaseModel):
    """Envelope of a single time entry."""

    time_entry: TimeEntryPayload


class TimeEntriesEnvelope(BaseModel):
    """Envelope of a time entry query."""

    time_entries: list[TimeEntryPayload] = Field(default_factory=list)
    total_count: int = 0


class ErrorsEnvelope(BaseModel):
    """Validation errors returned with HTTP 422."""

    errors: list[str] = Field(default_factory=list)
