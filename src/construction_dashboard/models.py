"""Pydantic data models used across the application.

Objective:
    Centralize all strongly-typed data structures representing:
    - Records persisted by the JSON store (projects, communications,
      stakeholders, email recipients, prospects, dashboard settings)
    - Email engine outputs (buckets, health ratings, generated emails)
    - Delivery and batch results produced by the orchestrator
    - Microsoft 365 request/response payloads

Design notes:
    - Records use Pydantic aliases to match the camelCase JSON stored on disk
      and exchanged with the browser (e.g. ``projectId`` ->
      :attr:`Communication.project_id`).
    - ``populate_by_name=True`` allows constructing models with either alias
      names or pythonic field names.
    - ``extra="allow"`` keeps fields this code does not know about, so a
      record read and written back loses nothing.
    - ``mode="before"`` validators normalize legacy spellings found in older
      data files (``Pending``, ``in-progress``, ``Change Order``) onto one
      canonical enum, and truncate date fields to calendar dates.

High-level structure:
    - Enums: :class:`CommunicationType`, :class:`Priority`,
      :class:`CommunicationStatus`, :class:`ProjectStatus`,
      :class:`HealthRating`, :class:`EmailType`, :class:`DeliveryMethod`
    - Records: :class:`Record` base, :class:`Communication`,
      :class:`Project`, :class:`Stakeholder`, :class:`EmailRecipient`,
      :class:`Prospect`, :class:`DashboardSettings`
    - Snapshot: :class:`StoreSnapshot`
    - Email engine: :class:`CategorizedCommunications`,
      :class:`ProjectHealth`, :class:`GeneratedEmail`,
      :class:`ComposeOptions`, :class:`EmailTemplate`
    - Delivery: :class:`DeliveryResult`, :class:`FailedRecipient`,
      :class:`BatchResult`
    - Dashboard: :class:`DashboardStats`, :class:`Alert`, :class:`Deadline`
    - Microsoft 365: :class:`SendEmailRequest`, :class:`CalendarEventRequest`,
      :class:`OneDriveBackup`, :class:`BackupSummary`

Call tree usage:
    - :class:`construction_dashboard.store.RecordStore`:
        - validates stored dicts into records and builds :class:`StoreSnapshot`
    - :class:`construction_dashboard.emails.EmailContentEngine`:
        - returns :class:`GeneratedEmail`
    - :class:`construction_dashboard.orchestrator.DailyEmailOrchestrator`:
        - returns :class:`DeliveryResult` / :class:`BatchResult`
"""

import re
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .config import DEFAULT_EMAIL_SIGNATURE, DEFAULT_SEND_TIME
from .dates import parse_timestamp, to_calendar_date

_SEND_TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def _squash(value: str) -> str:
    return re.sub(r"[\s_\-]", "", value).lower()


class CommunicationType(str, Enum):
    """Kinds of tracked inter-party communication.

    The Enum values are the user-facing labels written into emails.
    """

    RFI = "RFI"
    SUBMITTAL = "Submittal"
    CHANGE_ORDER = "Change Order"
    LIEN_RELEASE = "Lien Release"
    GENERAL = "General"


class Priority(str, Enum):
    """Communication priority."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class CommunicationStatus(str, Enum):
    """Canonical communication lifecycle status."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class ProjectStatus(str, Enum):
    """Canonical project lifecycle status."""

    PLANNING = "planning"
    ACTIVE = "active"
    COMPLETED = "completed"


class HealthRating(str, Enum):
    """Three-level project health classification."""

    HEALTHY = "Healthy"
    WARNING = "Warning"
    CRITICAL = "Critical"


class EmailType(str, Enum):
    """Discriminator for the composed email variant."""

    DAILY = "daily"
    WEEKLY = "weekly"
    URGENT = "urgent"
    PROJECT_SUMMARY = "project-summary"
    CUSTOM = "custom"


class DeliveryMethod(str, Enum):
    """How a generated email left the system."""

    OUTLOOK = "outlook"
    MAILTO = "mailto"
    MANUAL = "manual"


_TYPE_ALIASES = {_squash(member.value): member.value for member in CommunicationType}
_STATUS_ALIASES = {
    "pending": "pending",
    "open": "pending",
    "inprogress": "in_progress",
    "active": "in_progress",
    "completed": "completed",
    "complete": "completed",
    "done": "completed",
}
_PROJECT_STATUS_ALIASES = {
    "planning": "planning",
    "active": "active",
    "inprogress": "active",
    "completed": "completed",
    "complete": "completed",
}
_PRIORITY_ALIASES = {"low": "low", "medium": "medium", "high": "high", "critical": "high"}
_EMAIL_TYPE_ALIASES = {
    "daily": "daily",
    "weekly": "weekly",
    "urgent": "urgent",
    "project": "project-summary",
    "projectsummary": "project-summary",
    "custom": "custom",
}


def _normalize(value: Any, aliases: dict[str, str]) -> Any:
    """Map a legacy spelling onto its canonical enum value when known."""
    if isinstance(value, str):
        return aliases.get(_squash(value), value)
    return value


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


class Record(BaseModel):
    """Base class for every persisted record.

    Attributes:
        id: Opaque unique id assigned by the store.
        created_at: Creation timestamp.
        updated_at: Last modification timestamp.
    """

    id: str = ""
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")
    updated_at: Optional[datetime] = Field(default=None, alias="updatedAt")

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def _parse_timestamps(cls, value: Any) -> Any:
        value = _blank_to_none(value)
        if isinstance(value, str):
            return parse_timestamp(value)
        return value

    def to_json(self) -> dict[str, Any]:
        """Serialize to the camelCase JSON shape used on disk and over HTTP.

        Returns:
            dict[str, Any]: JSON-compatible dict without unset optional fields.
        """
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Communication(Record):
    """
    A tracked inter-party item (RFI, submittal, change order, lien release,
    general note).

    Attributes:
        project_id: Owning project id.
        stakeholder_id: Party the item is assigned to.
        type: Communication type.
        subject: One-line summary.
        notes: Free-form notes.
        priority: low/medium/high.
        status: pending/in_progress/completed.
        due_date: Optional calendar due date.
        completed_at: When the item was marked completed.
    """

    project_id: str = Field(default="", alias="projectId")
    stakeholder_id: Optional[str] = Field(default=None, alias="stakeholderId")
    type: CommunicationType = CommunicationType.GENERAL
    subject: str = ""
    notes: str = ""
    priority: Priority = Priority.MEDIUM
    status: CommunicationStatus = CommunicationStatus.PENDING
    due_date: Optional[date] = Field(default=None, alias="dueDate")
    completed_at: Optional[datetime] = Field(default=None, alias="completedAt")

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, value: Any) -> Any:
        return _normalize(value, _TYPE_ALIASES)

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, value: Any) -> Any:
        return _normalize(value, _STATUS_ALIASES)

    @field_validator("priority", mode="before")
    @classmethod
    def _normalize_priority(cls, value: Any) -> Any:
        return _normalize(value, _PRIORITY_ALIASES)

    @field_validator("due_date", mode="before")
    @classmethod
    def _truncate_due_date(cls, value: Any) -> Any:
        return to_calendar_date(_blank_to_none(value))

    @field_validator("completed_at", mode="before")
    @classmethod
    def _parse_completed_at(cls, value: Any) -> Any:
        value = _blank_to_none(value)
        if isinstance(value, str):
            return parse_timestamp(value)
        return value

    @field_validator("stakeholder_id", mode="before")
    @classmethod
    def _blank_stakeholder(cls, value: Any) -> Any:
        return _blank_to_none(value)

    @property
    def is_open(self) -> bool:
        """Whether the item still needs work (pending or in progress)."""
        return self.status in (CommunicationStatus.PENDING, CommunicationStatus.IN_PROGRESS)


class Project(Record):
    """
    A construction project. Owns zero or more communications.

    Attributes:
        number: Job number (e.g. ``2025-001``).
        name: Project name.
        client: Client name.
        project_manager_id: Stakeholder id of the PM.
        superintendent_id: Stakeholder id of the superintendent.
        start_date: Start date.
        end_date: Planned end date.
        contract_value: Contract value.
        status: planning/active/completed.
    """

    number: str = ""
    name: str = ""
    client: str = ""
    project_manager_id: Optional[str] = Field(default=None, alias="projectManagerId")
    superintendent_id: Optional[str] = Field(default=None, alias="superintendentId")
    start_date: Optional[date] = Field(default=None, alias="startDate")
    end_date: Optional[date] = Field(default=None, alias="endDate")
    contract_value: float = Field(default=0, alias="contractValue")
    status: ProjectStatus = ProjectStatus.ACTIVE

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, value: Any) -> Any:
        return _normalize(value, _PROJECT_STATUS_ALIASES)

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def _truncate_dates(cls, value: Any) -> Any:
        return to_calendar_date(_blank_to_none(value))

    @field_validator("project_manager_id", "superintendent_id", mode="before")
    @classmethod
    def _blank_ids(cls, value: Any) -> Any:
        return _blank_to_none(value)

    @field_validator("contract_value", mode="before")
    @classmethod
    def _blank_value(cls, value: Any) -> Any:
        return 0 if _blank_to_none(value) is None else value


class Stakeholder(Record):
    """A named contact (PM, superintendent, architect, estimator, ...)."""

    name: str = ""
    role: str = ""
    company: str = ""
    email: str = ""
    phone: str = ""
    receives_emails: bool = Field(default=False, alias="receivesEmails")

    @property
    def has_email(self) -> bool:
        """Whether the stakeholder has a usable email address."""
        return bool(self.email and self.email.strip())


class EmailRecipient(Record):
    """
    Configuration of a status email recipient.

    Attributes:
        stakeholder_id: Stakeholder receiving the email.
        project_ids: Projects whose communications feed the email (ordered,
            duplicates removed).
        send_time: ``HH:MM`` send time.
        frequency: ``daily`` or ``weekly``.
    """

    stakeholder_id: str = Field(default="", alias="stakeholderId")
    project_ids: list[str] = Field(default_factory=list, alias="projectIds")
    send_time: str = Field(default=DEFAULT_SEND_TIME, alias="sendTime")
    frequency: str = "daily"

    @field_validator("project_ids")
    @classmethod
    def _dedupe_project_ids(cls, value: list[str]) -> list[str]:
        return list(dict.fromkeys(value))

    @field_validator("send_time")
    @classmethod
    def _check_send_time(cls, value: str) -> str:
        if not _SEND_TIME_PATTERN.match(value):
            raise ValueError(f"sendTime must be HH:MM, got {value!r}")
        return value


class Prospect(Record):
    """A pre-contract sales opportunity."""

    name: str = ""
    client: str = ""
    estimator_id: Optional[str] = Field(default=None, alias="estimatorId")
    walk_date: Optional[date] = Field(default=None, alias="walkDate")
    proposal_due_date: Optional[date] = Field(default=None, alias="proposalDueDate")
    estimated_value: float = Field(default=0, alias="estimatedValue")
    probability: int = Field(default=0, ge=0, le=100)
    notes: str = ""
    status: str = "active"

    @field_validator("walk_date", "proposal_due_date", mode="before")
    @classmethod
    def _truncate_dates(cls, value: Any) -> Any:
        return to_calendar_date(_blank_to_none(value))

    @field_validator("estimated_value", "probability", mode="before")
    @classmethod
    def _blank_numbers(cls, value: Any) -> Any:
        return 0 if _blank_to_none(value) is None else value


class DashboardSettings(BaseModel):
    """Singleton user-editable settings stored in ``settings.json``."""

    email_signature: str = Field(default=DEFAULT_EMAIL_SIGNATURE, alias="emailSignature")
    send_time: str = Field(default=DEFAULT_SEND_TIME, alias="sendTime")
    auto_send_enabled: bool = Field(default=False, alias="autoSendEnabled")
    company_name: str = Field(default="Your Construction Company", alias="companyName")
    your_name: str = Field(default="Project Engineer", alias="yourName")

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    @field_validator("send_time")
    @classmethod
    def _check_send_time(cls, value: str) -> str:
        if not _SEND_TIME_PATTERN.match(value):
            raise ValueError(f"sendTime must be HH:MM, got {value!r}")
        return value

    def to_json(self) -> dict[str, Any]:
        """Serialize to the camelCase JSON shape."""
        return self.model_dump(mode="json", by_alias=True)


class StoreSnapshot(BaseModel):
    """
    Immutable view of every collection, taken once per email run.

    The email engine only ever reads from a snapshot, so generation is
    side-effect free and consistent across recipients of one batch.
    """

    projects: list[Project] = Field(default_factory=list)
    communications: list[Communication] = Field(default_factory=list)
    stakeholders: list[Stakeholder] = Field(default_factory=list)
    email_recipients: list[EmailRecipient] = Field(default_factory=list)
    prospects: list[Prospect] = Field(default_factory=list)
    settings: DashboardSettings = Field(default_factory=DashboardSettings)

    model_config = ConfigDict(frozen=True)

    def project(self, project_id: Optional[str]) -> Optional[Project]:
        """Look up a project by id."""
        return next((p for p in self.projects if p.id == project_id), None)

    def stakeholder(self, stakeholder_id: Optional[str]) -> Optional[Stakeholder]:
        """Look up a stakeholder by id."""
        return next((s for s in self.stakeholders if s.id == stakeholder_id), None)

    def recipient(self, recipient_id: Optional[str]) -> Optional[EmailRecipient]:
        """Look up an email recipient by id."""
        return next((r for r in self.email_recipients if r.id == recipient_id), None)


class CategorizedCommunications(BaseModel):
    """Communications partitioned into the four email buckets."""

    urgent: list[Communication] = Field(default_factory=list)
    due_soon: list[Communication] = Field(default_factory=list)
    completed_today: list[Communication] = Field(default_factory=list)
    new: list[Communication] = Field(default_factory=list)


class ProjectHealth(BaseModel):
    """Health rating of one project."""

    project_id: str
    project_name: str
    rating: HealthRating
    overdue_count: int = 0
    pending_count: int = 0


class GeneratedEmail(BaseModel):
    """
    A fully assembled email, ready for delivery.

    Attributes:
        to: Recipient email address.
        recipient_name: Display name.
        subject: Subject line.
        body: Plain-text body.
        recipient_id: Email recipient config id (daily emails only).
        stakeholder_id: Stakeholder id of the recipient.
    """

    to: str
    recipient_name: str
    subject: str
    body: str
    recipient_id: Optional[str] = None
    stakeholder_id: Optional[str] = None


class ComposeOptions(BaseModel):
    """
    Filters and toggles of the composed email variant.

    Accepts the camelCase keys sent by the browser (``selectedProjects``,
    ``includeUrgent``) as well as pythonic names.
    """

    email_type: EmailType = Field(default=EmailType.DAILY, alias="emailType")
    date_range: str = Field(default="today", alias="dateRange")
    project_ids: list[str] = Field(default_factory=list, alias="selectedProjects")
    stakeholder_ids: list[str] = Field(default_factory=list, alias="selectedStakeholders")
    include_urgent: bool = Field(default=True, alias="includeUrgent")
    include_due_soon: bool = Field(default=True, alias="includeDueSoon")
    include_completed: bool = Field(default=True, alias="includeCompleted")
    include_new: bool = Field(default=True, alias="includeNew")
    include_project_health: bool = Field(default=False, alias="includeProjectHealth")
    additional_message: str = Field(default="", alias="additionalMessage")
    custom_subject: str = Field(default="", alias="customSubject")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("email_type", mode="before")
    @classmethod
    def _normalize_email_type(cls, value: Any) -> Any:
        return _normalize(value, _EMAIL_TYPE_ALIASES)


class EmailTemplate(BaseModel):
    """Per-recipient template exported for external automation tools."""

    recipient_id: str = Field(alias="recipientId")
    recipient_name: str = Field(alias="recipientName")
    recipient_email: str = Field(alias="recipientEmail")
    send_time: str = Field(alias="sendTime")
    frequency: str
    project_ids: list[str] = Field(alias="projectIds")
    template: str

    model_config = ConfigDict(populate_by_name=True)


class DeliveryResult(BaseModel):
    """
    Outcome of delivering one generated email.

    ``method`` is ``outlook`` when Graph accepted the message, ``mailto`` when
    a compose link was prepared instead, and ``manual`` when the adapter
    raised and the content is returned for manual copy.
    """

    to: str
    recipient_name: str
    subject: str
    method: DeliveryMethod
    recipient_id: Optional[str] = None
    mailto_url: Optional[str] = None
    content: Optional[str] = None
    error: Optional[str] = None


class FailedRecipient(BaseModel):
    """A recipient whose email could not be generated."""

    recipient_id: Optional[str] = None
    stakeholder_id: Optional[str] = None
    error: str


class BatchResult(BaseModel):
    """Result of a batch email run."""

    sent: list[DeliveryResult] = Field(default_factory=list)
    failed: list[FailedRecipient] = Field(default_factory=list)

    @property
    def summary(self) -> dict[str, int]:
        """Counts suitable for CLI/web output."""
        return {
            "total": len(self.sent) + len(self.failed),
            "sent": len(self.sent),
            "failed": len(self.failed),
        }


class DashboardStats(BaseModel):
    """Headline counters shown on the dashboard."""

    active_projects: int = Field(default=0, alias="activeProjects")
    pending_items: int = Field(default=0, alias="pendingItems")
    overdue_items: int = Field(default=0, alias="overdueItems")
    due_this_week: int = Field(default=0, alias="dueThisWeek")

    model_config = ConfigDict(populate_by_name=True)


class Alert(BaseModel):
    """A critical/warning alert shown on the dashboard."""

    type: str
    title: str
    message: str
    days_overdue: Optional[int] = Field(default=None, alias="daysOverdue")
    days_until: Optional[int] = Field(default=None, alias="daysUntil")

    model_config = ConfigDict(populate_by_name=True)


class Deadline(BaseModel):
    """An upcoming communication or proposal deadline."""

    type: str
    title: str
    project: str
    due_date: date = Field(alias="dueDate")
    days_until: int = Field(alias="daysUntil")
    priority: str

    model_config = ConfigDict(populate_by_name=True)


class SendEmailRequest(BaseModel):
    """Payload of ``POST /api/microsoft365/send-email``."""

    subject: str
    content: str
    recipients: list[str]
    recipient_names: dict[str, str] = Field(default_factory=dict, alias="recipientNames")
    priority: str = "normal"
    attachments: list[dict[str, Any]] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)


class CalendarEventRequest(BaseModel):
    """Payload of ``POST /api/microsoft365/calendar-event``."""

    subject: str
    description: str = ""
    start_time: str = Field(alias="startTime")
    end_time: str = Field(alias="endTime")
    location: str = ""
    attendees: list[str] = Field(default_factory=list)
    reminder_minutes: int = Field(default=15, alias="reminderMinutes")

    model_config = ConfigDict(populate_by_name=True)


class OneDriveBackup(BaseModel):
    """A backup folder listed from OneDrive."""

    name: str
    created: Optional[datetime] = None
    modified: Optional[datetime] = None
    web_url: Optional[str] = Field(default=None, alias="webUrl")

    model_config = ConfigDict(populate_by_name=True)


class BackupSummary(BaseModel):
    """Summary uploaded alongside each OneDrive backup."""

    timestamp: datetime
    files: list[str]
    total_files: int = Field(alias="totalFiles")
    backup_path: str = Field(alias="backupPath")

    model_config = ConfigDict(populate_by_name=True)
