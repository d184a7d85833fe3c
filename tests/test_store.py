import json
from datetime import datetime

import pytest

from construction_dashboard.errors import StoreCorruptedError, UnknownCollectionError
from construction_dashboard.models import CommunicationStatus
from construction_dashboard.store import SETTINGS_FILE, RecordStore

NOW = datetime(2026, 10, 14, 9, 0)


@pytest.fixture
def store(tmp_path) -> RecordStore:
    return RecordStore(tmp_path / "data", clock=lambda: NOW)


def _seed(store: RecordStore) -> None:
    store.create("stakeholders", {"id": "s1", "name": "Alice", "email": "a@example.com"})
    store.create("projects", {"id": "p1", "name": "Alpha", "status": "active"})
    store.create("projects", {"id": "p2", "name": "Beta", "status": "planning"})
    store.create(
        "communications",
        {"id": "c1", "projectId": "p1", "type": "RFI", "subject": "Late", "dueDate": "2026-10-12"},
    )
    store.create(
        "communications",
        {"id": "c2", "projectId": "p1", "subject": "Soon", "dueDate": "2026-10-16"},
    )
    store.create(
        "communications",
        {
            "id": "c3",
            "projectId": "p2",
            "subject": "Closed",
            "status": "completed",
            "dueDate": "2026-10-10",
        },
    )


def test_create_assigns_id_and_timestamps(store: RecordStore) -> None:
    """New records get an opaque id and creation and update timestamps."""

    record = store.create("projects", {"name": "Alpha"})

    assert record.id
    assert record.created_at == NOW
    assert record.updated_at == NOW
    assert store.get("projects", record.id).name == "Alpha"
    assert (store.data_dir / "projects.json").exists()


def test_update_merges_and_sets_updated_at(store: RecordStore) -> None:
    """Updates keep untouched fields and stamp updatedAt."""

    store.create("projects", {"id": "p1", "name": "Alpha", "client": "Acme"})

    updated = store.update("projects", "p1", {"name": "Alpha Tower"})

    assert updated.name == "Alpha Tower"
    assert updated.client == "Acme"
    assert updated.updated_at == NOW
    assert store.update("projects", "missing", {"name": "x"}) is None


def test_delete_returns_whether_removed(store: RecordStore) -> None:
    """Deleting a missing record reports False."""

    store.create("prospects", {"id": "x1", "name": "Gamma"})

    assert store.delete("prospects", "x1") is True
    assert store.delete("prospects", "x1") is False
    assert store.list("prospects") == []


def test_unknown_collection_raises(store: RecordStore) -> None:
    """Only the known collections are accepted."""

    with pytest.raises(UnknownCollectionError, match="Invalid data type: widgets"):
        store.list("widgets")


def test_list_skips_invalid_items(store: RecordStore) -> None:
    """Stored items that fail validation are skipped, not fatal."""

    (store.data_dir / "email-recipients.json").write_text(
        '[{"id": "r1", "stakeholderId": "s1", "sendTime": "late"},'
        ' {"id": "r2", "stakeholderId": "s1", "sendTime": "08:00"}]',
        encoding="utf-8",
    )

    assert [r.id for r in store.list("emailRecipients")] == ["r2"]


def test_delete_project_cascades_to_communications(store: RecordStore) -> None:
    """Deleting a project removes all of its communications."""

    _seed(store)

    removed = store.delete_project_cascade("p1")

    assert removed == 2
    assert [c.id for c in store.list("communications")] == ["c3"]
    assert store.delete_project_cascade("p1") is None


def test_delete_last_recipient_resets_receives_emails(store: RecordStore) -> None:
    """receivesEmails is reset only when no recipient entry remains."""

    store.create("stakeholders", {"id": "s1", "name": "Alice", "receivesEmails": True})
    store.create("emailRecipients", {"id": "r1", "stakeholderId": "s1"})
    store.create("emailRecipients", {"id": "r2", "stakeholderId": "s1"})

    assert store.delete_email_recipient("r1") is True
    assert store.get("stakeholders", "s1").receives_emails is True

    assert store.delete_email_recipient("r2") is True
    assert store.get("stakeholders", "s1").receives_emails is False

    assert store.delete_email_recipient("r2") is False


def test_duplicate_communication(store: RecordStore) -> None:
    """Copies get a new id, a suffixed subject and pending status."""

    store.create(
        "communications",
        {
            "id": "c1",
            "projectId": "p1",
            "subject": "Footing depth",
            "status": "completed",
            "completedAt": "2026-10-10T12:00:00",
        },
    )

    copy = store.duplicate_communication("c1")

    assert copy.id != "c1"
    assert copy.subject == "Footing depth (Copy)"
    assert copy.status == CommunicationStatus.PENDING
    assert copy.completed_at is None
    assert copy.created_at == NOW
    assert copy.project_id == "p1"
    assert len(store.list("communications")) == 2
    assert store.duplicate_communication("missing") is None


def test_update_accepts_pythonic_keys(store: RecordStore) -> None:
    """Field names and camelCase aliases both overwrite the stored value."""

    store.create("communications", {"id": "c1", "projectId": "p1", "subject": "RFI 12"})

    updated = store.update("communications", "c1", {"project_id": "p2"})

    assert updated.project_id == "p2"
    assert store.get("communications", "c1").project_id == "p2"
    stored = json.loads((store.data_dir / "communications.json").read_text())
    assert stored[0]["projectId"] == "p2"
    assert "project_id" not in stored[0]


def test_complete_communication(store: RecordStore) -> None:
    """Completing stamps completedAt."""

    store.create("communications", {"id": "c1", "subject": "RFI"})

    record = store.complete_communication("c1")

    assert record.status == CommunicationStatus.COMPLETED
    assert record.completed_at == NOW


def test_settings_default_and_merge(store: RecordStore) -> None:
    """Settings start from defaults and merge updates."""

    assert store.get_settings().send_time == "17:00"

    saved = store.save_settings({"sendTime": "07:15", "autoSendEnabled": True})

    assert saved.send_time == "07:15"
    assert store.get_settings().auto_send_enabled is True
    assert store.get_settings().company_name == "Your Construction Company"


def test_save_settings_accepts_pythonic_keys(store: RecordStore) -> None:
    """Pythonic setting names update the stored camelCase value."""

    store.save_settings({"sendTime": "17:00"})

    saved = store.save_settings({"send_time": "08:00"})

    assert saved.send_time == "08:00"
    assert store.get_settings().send_time == "08:00"


def test_unreadable_collection_is_not_overwritten(store: RecordStore) -> None:
    """A truncated collection file blocks writes instead of losing records."""

    store.create("projects", {"id": "p1", "name": "Alpha"})
    store.create("projects", {"id": "p2", "name": "Beta"})
    path = store.data_dir / "projects.json"
    content = path.read_bytes()
    path.write_bytes(content[: len(content) // 2])
    truncated = path.read_bytes()

    with pytest.raises(StoreCorruptedError):
        store.create("projects", {"id": "p3", "name": "Gamma"})
    with pytest.raises(StoreCorruptedError):
        store.update("projects", "p1", {"name": "Alpha Tower"})
    with pytest.raises(StoreCorruptedError):
        store.delete("projects", "p2")

    assert path.read_bytes() == truncated


def test_unreadable_settings_are_not_overwritten(store: RecordStore) -> None:
    """Saving settings over an unparseable file raises."""

    path = store.data_dir / SETTINGS_FILE
    path.write_text('{"sendTime": "07:')

    with pytest.raises(StoreCorruptedError):
        store.save_settings({"sendTime": "08:00"})

    assert path.read_text() == '{"sendTime": "07:'


def test_writes_leave_no_temp_files(store: RecordStore) -> None:
    """Atomic writes replace the file and clean up after themselves."""

    store.create("projects", {"id": "p1", "name": "Alpha"})
    store.update("projects", "p1", {"name": "Alpha Tower"})
    store.save_settings({"sendTime": "06:00"})

    assert sorted(p.name for p in store.data_dir.iterdir()) == [
        "projects.json",
        SETTINGS_FILE,
    ]


def test_dashboard_stats(store: RecordStore) -> None:
    """Stats count active projects, open, overdue and due-this-week items."""

    _seed(store)

    stats = store.dashboard_stats(NOW)

    assert stats.active_projects == 1
    assert stats.pending_items == 2
    assert stats.overdue_items == 2
    assert stats.due_this_week == 1


def test_critical_alerts(store: RecordStore) -> None:
    """Open overdue items are critical; items due within three days warn."""

    _seed(store)
    store.create(
        "prospects",
        {"id": "x1", "name": "Gamma", "proposalDueDate": "2026-10-13", "status": "active"},
    )

    alerts = store.critical_alerts(NOW)

    assert [(a.type, a.title) for a in alerts] == [
        ("critical", "Overdue RFI"),
        ("warning", "General Due Soon"),
        ("critical", "Overdue Proposal"),
    ]
    assert alerts[0].message == "Alpha: Late"
    assert alerts[0].days_overdue == 2
    assert alerts[1].days_until == 2


def test_upcoming_deadlines(store: RecordStore) -> None:
    """Deadlines within two weeks are sorted soonest first."""

    _seed(store)
    store.create(
        "prospects",
        {
            "id": "x1",
            "name": "Gamma",
            "client": "Gamma Inc",
            "proposalDueDate": "2026-10-15",
            "status": "active",
        },
    )
    store.create(
        "communications",
        {"id": "c4", "projectId": "p1", "subject": "Far", "dueDate": "2026-11-30"},
    )

    deadlines = store.upcoming_deadlines(NOW)

    assert [(d.title, d.days_until) for d in deadlines] == [
        ("Gamma Proposal", 1),
        ("Soon", 2),
    ]
    assert deadlines[0].priority == "high"
    assert deadlines[0].project == "Gamma Inc"


def test_backup_then_restore_reproduces_records(tmp_path, store: RecordStore) -> None:
    """Restoring a backup into an empty store yields identical records."""

    _seed(store)
    store.save_settings({"sendTime": "06:45"})
    backup = store.backup()

    assert backup["exportDate"] == NOW.isoformat()

    other = RecordStore(tmp_path / "restored", clock=lambda: NOW)
    restored = other.restore(backup)

    assert set(restored) == {
        "projects",
        "communications",
        "prospects",
        "stakeholders",
        "emailRecipients",
        "settings",
    }
    for name in ("projects", "communications", "stakeholders"):
        assert [r.to_json() for r in other.list(name)] == [r.to_json() for r in store.list(name)]
    assert other.get_settings() == store.get_settings()


def test_restore_skips_missing_collections(store: RecordStore) -> None:
    """Collections absent from the backup are left untouched."""

    _seed(store)

    restored = store.restore({"projects": []})

    assert restored == ["projects"]
    assert store.list("projects") == []
    assert len(store.list("communications")) == 3


def test_initialize_sample_data_only_when_empty(store: RecordStore) -> None:
    """Sample data seeds an empty directory exactly once."""

    assert store.initialize_sample_data() is True
    assert [p.id for p in store.list("projects")] == ["proj_1"]
    assert len(store.list("stakeholders")) == 3
    assert store.list("emailRecipients") == []
    assert (store.data_dir / SETTINGS_FILE).exists()
    assert store.get_settings().email_signature.endswith("Your Construction Company")

    assert store.initialize_sample_data() is False
