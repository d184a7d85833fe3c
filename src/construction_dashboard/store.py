"""JSON file backed record store.

Objective:
    Persist the dashboard collections (projects, communications, prospects,
    stakeholders, email recipients, settings) as one JSON file each, and
    expose the CRUD operations used by the web app, the CLI and the email
    orchestrator.

Responsibilities:
    - Generic CRUD by collection name, with id and timestamp assignment.
    - Explicit integrity operations: project cascade delete and the
      ``receivesEmails`` reset when a stakeholder's last recipient entry is
      removed.
    - Communication helpers (duplicate, complete).
    - Dashboard aggregates (stats, alerts, deadlines).
    - Full backup/restore and typed snapshots for the email engine.
    - Sample data seeding for an empty data directory.

High-level call tree:
    - :class:`RecordStore`
        - :meth:`RecordStore.list` / :meth:`get` / :meth:`create` /
          :meth:`update` / :meth:`delete`
            - :meth:`RecordStore._read` / :meth:`RecordStore._write`
        - :meth:`RecordStore.delete_project_cascade`
        - :meth:`RecordStore.delete_email_recipient`
        - :meth:`RecordStore.snapshot` -> :class:`StoreSnapshot`
        - :meth:`RecordStore.dashboard_stats` / :meth:`critical_alerts` /
          :meth:`upcoming_deadlines` (use :mod:`construction_dashboard.dates`)

Operational notes:
    - Writes replace the whole file through a temp file and ``os.replace``;
      concurrent writers are last-write-wins.
    - A collection file that cannot be parsed raises
      :class:`StoreCorruptedError` on every read-modify-write path instead of
      being overwritten. Read-only paths log and return an empty collection.
    - Records are validated through their Pydantic model on every write so
      stored JSON is always canonical. Unknown fields are kept.
    - Backups are written and restored as raw JSON so a round trip is exact.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Optional, Union

from pydantic import BaseModel

from .config import (
    ALERT_DUE_SOON_DAYS,
    DEADLINE_HORIZON_DAYS,
    DUE_SOON_WINDOW_DAYS,
)
from .dates import days_until_due, is_due_soon, is_overdue
from .errors import StoreCorruptedError, UnknownCollectionError
from .models import (
    Alert,
    Communication,
    CommunicationStatus,
    DashboardSettings,
    DashboardStats,
    Deadline,
    EmailRecipient,
    Project,
    ProjectStatus,
    Prospect,
    Record,
    Stakeholder,
    StoreSnapshot,
)

logger = logging.getLogger(__name__)

# Collection name -> (file name, record model)
COLLECTIONS: dict[str, tuple[str, type[Record]]] = {
    "projects": ("projects.json", Project),
    "communications": ("communications.json", Communication),
    "prospects": ("prospects.json", Prospect),
    "stakeholders": ("stakeholders.json", Stakeholder),
    "emailRecipients": ("email-recipients.json", EmailRecipient),
}

SETTINGS_FILE = "settings.json"

ALERT_LIMIT = 10
DEADLINE_LIMIT = 10


def generate_id() -> str:
    """Return a new opaque record id."""
    return uuid.uuid4().hex


def to_aliases(model: type[BaseModel], values: dict[str, Any]) -> dict[str, Any]:
    """
    Rename pythonic field names in ``values`` to the model's camelCase aliases.

    Stored JSON is keyed by alias, so merging a pythonic key on top of it
    would leave the stale aliased value in place.

    Args:
        model: Pydantic model whose fields define the aliases.
        values: Payload keyed by field name, alias or unknown extra keys.

    Returns:
        dict[str, Any]: Payload keyed by alias where one exists.
    """
    renamed = {}
    for key, value in values.items():
        field = model.model_fields.get(key)
        renamed[field.alias if field is not None and field.alias else key] = value
    return renamed


class RecordStore:
    """
    CRUD access to the JSON collections under ``data_dir``.

    Attributes:
        data_dir: Directory holding the collection files.
        clock: Callable returning "now"; injectable for tests.
    """

    def __init__(
        self,
        data_dir: Union[str, Path],
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        """
        Initialize the store and create the data directory if needed.

        Args:
            data_dir: Directory holding the collection files.
            clock: Callable returning the current local time.
        """
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.clock = clock

    # ------------------------------------------------------------------
    # File helpers
    # ------------------------------------------------------------------

    def _path(self, collection: str) -> Path:
        if collection not in COLLECTIONS:
            raise UnknownCollectionError(collection)
        return self.data_dir / COLLECTIONS[collection][0]

    def _read_file(self, path: Path, default: Any, strict: bool = False) -> Any:
        if not path.exists():
            return default
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            if strict:
                raise StoreCorruptedError(str(path), str(e)) from e
            logger.error(f"Error reading {path}: {e}")
            return default

    def _write_file(self, path: Path, data: Any) -> None:
        # Readers never observe a half-written file.
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            os.replace(tmp_name, path)
        except Exception:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def _read(self, collection: str, strict: bool = False) -> list[dict[str, Any]]:
        data = self._read_file(self._path(collection), [], strict=strict)
        if isinstance(data, list):
            return data
        if strict:
            raise StoreCorruptedError(str(self._path(collection)), "expected a JSON array")
        return []

    def _write(self, collection: str, items: list[dict[str, Any]]) -> None:
        self._write_file(self._path(collection), items)

    def _model(self, collection: str) -> type[Record]:
        if collection not in COLLECTIONS:
            raise UnknownCollectionError(collection)
        return COLLECTIONS[collection][1]

    def _now(self) -> datetime:
        return self.clock().replace(microsecond=0)

    # ------------------------------------------------------------------
    # Generic CRUD
    # ------------------------------------------------------------------

    def list(self, collection: str) -> list[Record]:
        """
        Return every record of a collection.

        Stored items that fail validation are logged and skipped.

        Args:
            collection: Collection name (e.g. ``projects``).

        Returns:
            list[Record]: Typed records in stored order.

        Raises:
            UnknownCollectionError: If the collection name is unknown.
        """
        model = self._model(collection)
        records = []
        for item in self._read(collection):
            try:
                records.append(model.model_validate(item))
            except ValueError as e:
                logger.warning(f"Skipping invalid {collection} record {item.get('id')!r}: {e}")
        return records

    def get(self, collection: str, record_id: str) -> Optional[Record]:
        """Return one record by id, or None when it does not exist."""
        model = self._model(collection)
        for item in self._read(collection):
            if item.get("id") == record_id:
                return model.model_validate(item)
        return None

    def create(self, collection: str, item: dict[str, Any]) -> Record:
        """
        Validate and append a new record.

        ``id`` is assigned when absent; ``createdAt`` and ``updatedAt`` are
        stamped with the current time when absent.

        Args:
            collection: Collection name.
            item: Record payload (camelCase or pythonic keys).

        Returns:
            Record: The stored record.

        Raises:
            UnknownCollectionError: If the collection name is unknown.
            pydantic.ValidationError: If the payload is invalid.
        """
        model = self._model(collection)
        payload = to_aliases(model, item)
        if not payload.get("id"):
            payload["id"] = generate_id()
        if not payload.get("createdAt"):
            payload["createdAt"] = self._now()
        if not payload.get("updatedAt"):
            payload["updatedAt"] = payload["createdAt"]

        record = model.model_validate(payload)
        items = self._read(collection, strict=True)
        items.append(record.to_json())
        self._write(collection, items)
        logger.debug(f"Created {collection} record {record.id}")
        return record

    def update(
        self, collection: str, record_id: str, updates: dict[str, Any]
    ) -> Optional[Record]:
        """
        Merge ``updates`` into an existing record and set ``updatedAt``.

        Args:
            collection: Collection name.
            record_id: Id of the record to update.
            updates: Fields to overwrite (camelCase or pythonic keys).

        Returns:
            Optional[Record]: Updated record, or None when not found.
        """
        model = self._model(collection)
        items = self._read(collection, strict=True)
        for index, item in enumerate(items):
            if item.get("id") != record_id:
                continue
            merged = {
                **item,
                **to_aliases(model, updates),
                "id": record_id,
                "updatedAt": self._now(),
            }
            record = model.model_validate(merged)
            items[index] = record.to_json()
            self._write(collection, items)
            logger.debug(f"Updated {collection} record {record_id}")
            return record
        return None

    def delete(self, collection: str, record_id: str) -> bool:
        """
        Delete a record by id.

        Returns:
            bool: True when a record was removed.
        """
        items = self._read(collection, strict=True)
        remaining = [item for item in items if item.get("id") != record_id]
        if len(remaining) == len(items):
            return False
        self._write(collection, remaining)
        logger.debug(f"Deleted {collection} record {record_id}")
        return True

    # ------------------------------------------------------------------
    # Integrity operations
    # ------------------------------------------------------------------

    def delete_project_cascade(self, project_id: str) -> Optional[int]:
        """
        Delete a project together with all of its communications.

        Args:
            project_id: Project id.

        Returns:
            Optional[int]: Number of communications removed, or None when the
            project does not exist.
        """
        if not self.delete("projects", project_id):
            return None

        communications = self._read("communications", strict=True)
        remaining = [c for c in communications if c.get("projectId") != project_id]
        removed = len(communications) - len(remaining)
        if removed:
            self._write("communications", remaining)

        logger.info(f"Deleted project {project_id} and {removed} communications")
        return removed

    def delete_email_recipient(self, recipient_id: str) -> bool:
        """
        Delete an email recipient entry.

        When it was the stakeholder's last recipient entry, the stakeholder's
        ``receivesEmails`` flag is reset to False.

        Returns:
            bool: True when the recipient existed.
        """
        recipient = self.get("emailRecipients", recipient_id)
        if recipient is None:
            return False

        self.delete("emailRecipients", recipient_id)

        stakeholder_id = recipient.stakeholder_id
        still_listed = any(
            item.get("stakeholderId") == stakeholder_id
            for item in self._read("emailRecipients")
        )
        if not still_listed and self.get("stakeholders", stakeholder_id) is not None:
            self.update("stakeholders", stakeholder_id, {"receivesEmails": False})
            logger.info(f"Stakeholder {stakeholder_id} no longer receives emails")
        return True

    # ------------------------------------------------------------------
    # Communication helpers
    # ------------------------------------------------------------------

    def duplicate_communication(self, communication_id: str) -> Optional[Communication]:
        """
        Copy a communication as a new pending item.

        The copy gets a new id, ``" (Copy)"`` appended to the subject and a
        fresh ``createdAt``; completion and update timestamps are cleared.

        Returns:
            Optional[Communication]: The copy, or None when not found.
        """
        original = next(
            (c for c in self._read("communications") if c.get("id") == communication_id),
            None,
        )
        if original is None:
            return None

        copy = {
            key: value
            for key, value in original.items()
            if key not in ("id", "createdAt", "updatedAt", "completedAt")
        }
        copy["subject"] = f"{original.get('subject', '')} (Copy)"
        copy["status"] = CommunicationStatus.PENDING.value
        return self.create("communications", copy)

    def complete_communication(self, communication_id: str) -> Optional[Communication]:
        """Mark a communication completed and stamp ``completedAt``."""
        return self.update(
            "communications",
            communication_id,
            {"status": CommunicationStatus.COMPLETED.value, "completedAt": self._now()},
        )

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def get_settings(self) -> DashboardSettings:
        """Return the settings singleton, or defaults when missing."""
        data = self._read_file(self.data_dir / SETTINGS_FILE, {})
        if not isinstance(data, dict):
            data = {}
        return DashboardSettings.model_validate(data)

    def save_settings(self, updates: dict[str, Any]) -> DashboardSettings:
        """
        Merge ``updates`` into the stored settings.

        Args:
            updates: Settings fields (camelCase or pythonic keys).

        Returns:
            DashboardSettings: The stored settings.
        """
        path = self.data_dir / SETTINGS_FILE
        stored = self._read_file(path, {}, strict=True)
        if not isinstance(stored, dict):
            raise StoreCorruptedError(str(path), "expected a JSON object")
        current = DashboardSettings.model_validate(stored).to_json()
        settings = DashboardSettings.model_validate(
            {**current, **to_aliases(DashboardSettings, updates)}
        )
        self._write_file(path, settings.to_json())
        return settings

    # ------------------------------------------------------------------
    # Snapshots, backup, restore
    # ------------------------------------------------------------------

    def snapshot(self) -> StoreSnapshot:
        """Take an immutable typed snapshot of every collection."""
        return StoreSnapshot(
            projects=self.list("projects"),
            communications=self.list("communications"),
            stakeholders=self.list("stakeholders"),
            email_recipients=self.list("emailRecipients"),
            prospects=self.list("prospects"),
            settings=self.get_settings(),
        )

    def backup(self) -> dict[str, Any]:
        """
        Export every collection as raw JSON.

        Returns:
            dict[str, Any]: Collections keyed by name, plus ``settings`` and
            ``exportDate``.
        """
        data: dict[str, Any] = {name: self._read(name) for name in COLLECTIONS}
        data["settings"] = self._read_file(self.data_dir / SETTINGS_FILE, {})
        data["exportDate"] = self._now().isoformat()
        return data

    def restore(self, backup: dict[str, Any]) -> list[str]:
        """
        Overwrite every collection present in ``backup``.

        Args:
            backup: Data previously produced by :meth:`backup`.

        Returns:
            list[str]: Names of the restored collections.
        """
        restored = []
        for name in COLLECTIONS:
            if isinstance(backup.get(name), list):
                self._write(name, backup[name])
                restored.append(name)
        if isinstance(backup.get("settings"), dict):
            self._write_file(self.data_dir / SETTINGS_FILE, backup["settings"])
            restored.append("settings")

        logger.info(f"Restored collections: {', '.join(restored) or 'none'}")
        return restored

    # ------------------------------------------------------------------
    # Dashboard aggregates
    # ------------------------------------------------------------------

    def dashboard_stats(self, now: Optional[datetime] = None) -> DashboardStats:
        """
        Compute the dashboard headline counters.

        Args:
            now: Reference time (defaults to the store clock).

        Returns:
            DashboardStats: Active projects, open items, overdue items and
            items due within the next week.
        """
        now = now or self.clock()
        communications = self.list("communications")
        return DashboardStats(
            active_projects=sum(
                1 for p in self.list("projects") if p.status == ProjectStatus.ACTIVE
            ),
            pending_items=sum(1 for c in communications if c.is_open),
            overdue_items=sum(1 for c in communications if is_overdue(c.due_date, now)),
            due_this_week=sum(
                1
                for c in communications
                if is_due_soon(c.due_date, now, DUE_SOON_WINDOW_DAYS)
            ),
        )

    def critical_alerts(self, now: Optional[datetime] = None) -> list[Alert]:
        """
        Build dashboard alerts.

        Open communications that are overdue become ``critical`` alerts, open
        communications due within three days become ``warning`` alerts, and
        active prospects with an overdue proposal become ``critical`` alerts.

        Returns:
            list[Alert]: At most ten alerts.
        """
        now = now or self.clock()
        snapshot = self.snapshot()
        alerts: list[Alert] = []

        for comm in snapshot.communications:
            if not comm.is_open:
                continue
            days = days_until_due(comm.due_date, now)
            if days is None:
                continue
            project = snapshot.project(comm.project_id)
            project_name = project.name if project else "Unknown Project"
            if days < 0:
                alerts.append(
                    Alert(
                        type="critical",
                        title=f"Overdue {comm.type.value}",
                        message=f"{project_name}: {comm.subject}",
                        days_overdue=-days,
                    )
                )
            elif days <= ALERT_DUE_SOON_DAYS:
                alerts.append(
                    Alert(
                        type="warning",
                        title=f"{comm.type.value} Due Soon",
                        message=f"{project_name}: {comm.subject}",
                        days_until=days,
                    )
                )

        for prospect in snapshot.prospects:
            if prospect.status != "active":
                continue
            days = days_until_due(prospect.proposal_due_date, now)
            if days is not None and days < 0:
                alerts.append(
                    Alert(
                        type="critical",
                        title="Overdue Proposal",
                        message=f"{prospect.name} proposal was due",
                        days_overdue=-days,
                    )
                )

        return alerts[:ALERT_LIMIT]

    def upcoming_deadlines(self, now: Optional[datetime] = None) -> list[Deadline]:
        """
        List communication and proposal deadlines within the next 14 days.

        Returns:
            list[Deadline]: At most ten deadlines, soonest first.
        """
        now = now or self.clock()
        snapshot = self.snapshot()
        deadlines: list[Deadline] = []

        for comm in snapshot.communications:
            if not comm.is_open:
                continue
            days = days_until_due(comm.due_date, now)
            if days is None or not 0 <= days <= DEADLINE_HORIZON_DAYS:
                continue
            project = snapshot.project(comm.project_id)
            deadlines.append(
                Deadline(
                    type=comm.type.value,
                    title=comm.subject,
                    project=project.name if project else "Unknown Project",
                    due_date=comm.due_date,
                    days_until=days,
                    priority=comm.priority.value,
                )
            )

        for prospect in snapshot.prospects:
            if prospect.status != "active":
                continue
            days = days_until_due(prospect.proposal_due_date, now)
            if days is None or not 0 <= days <= DEADLINE_HORIZON_DAYS:
                continue
            deadlines.append(
                Deadline(
                    type="Proposal",
                    title=f"{prospect.name} Proposal",
                    project=prospect.client,
                    due_date=prospect.proposal_due_date,
                    days_until=days,
                    priority="high" if days <= 3 else "medium",
                )
            )

        deadlines.sort(key=lambda d: d.days_until)
        return deadlines[:DEADLINE_LIMIT]

    # ------------------------------------------------------------------
    # Sample data
    # ------------------------------------------------------------------

    def is_empty(self) -> bool:
        """Whether no collection file exists yet."""
        return not any((self.data_dir / name).exists() for name, _ in COLLECTIONS.values())

    def initialize_sample_data(self) -> bool:
        """
        Seed an empty data directory with a small sample data set.

        Returns:
            bool: True when sample data was written.
        """
        if not self.is_empty():
            return False

        logger.info("Initializing with sample data...")
        created = self._now().isoformat()

        stakeholders = [
            {
                "id": "stake_1",
                "name": "John Smith",
                "role": "Project Manager",
                "company": "Your Construction Company",
                "email": "john.smith@yourcompany.com",
                "phone": "(555) 123-4567",
                "receivesEmails": True,
                "createdAt": created,
            },
            {
                "id": "stake_2",
                "name": "Mike Johnson",
                "role": "Superintendent",
                "company": "Your Construction Company",
                "email": "mike.johnson@yourcompany.com",
                "phone": "(555) 123-4568",
                "receivesEmails": True,
                "createdAt": created,
            },
            {
                "id": "stake_3",
                "name": "Sarah Wilson",
                "role": "Architect",
                "company": "Design Associates",
                "email": "sarah.wilson@designassoc.com",
                "phone": "(555) 234-5678",
                "receivesEmails": False,
                "createdAt": created,
            },
        ]
        projects = [
            {
                "id": "proj_1",
                "number": "2025-001",
                "name": "Alpha Office Building",
                "client": "Alpha Corp",
                "projectManagerId": "stake_1",
                "superintendentId": "stake_2",
                "startDate": "2025-07-01",
                "endDate": "2025-12-31",
                "contractValue": 750000,
                "status": "active",
                "createdAt": created,
            }
        ]
        communications = [
            {
                "id": "comm_1",
                "projectId": "proj_1",
                "stakeholderId": "stake_3",
                "type": "RFI",
                "subject": "Electrical layout clarification",
                "notes": "Need clarification on electrical outlet placement in conference rooms",
                "priority": "medium",
                "dueDate": "2025-08-05",
                "status": "pending",
                "createdAt": created,
            }
        ]
        prospects = [
            {
                "id": "pros_1",
                "name": "Beta Warehouse Project",
                "client": "Beta Industries",
                "estimatorId": "stake_1",
                "walkDate": "2025-08-15",
                "proposalDueDate": "2025-08-30",
                "estimatedValue": 950000,
                "probability": 70,
                "status": "active",
                "notes": "Strong relationship with client, good chance of winning",
                "createdAt": created,
            }
        ]

        self._write("stakeholders", stakeholders)
        self._write("projects", projects)
        self._write("communications", communications)
        self._write("prospects", prospects)
        self._write("emailRecipients", [])
        self.save_settings(
            {
                "emailSignature": (
                    "Best regards,\nProject Engineering Department\nYour Construction Company"
                ),
                "sendTime": "17:00",
                "autoSendEnabled": False,
                "companyName": "Your Construction Company",
                "yourName": "Project Engineer",
            }
        )
        logger.info("Sample data initialized successfully")
        return True
