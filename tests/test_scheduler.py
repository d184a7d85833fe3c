from datetime import datetime
from unittest.mock import MagicMock

import pytest

from construction_dashboard.scheduler import BACKUP_JOB_ID, DAILY_EMAIL_JOB_ID, DashboardScheduler
from construction_dashboard.store import RecordStore


@pytest.fixture
def store(tmp_path) -> RecordStore:
    store = RecordStore(tmp_path)
    store.save_settings({"sendTime": "07:30", "autoSendEnabled": True})
    return store


def _scheduler(store: RecordStore, **settings) -> DashboardScheduler:
    values = {"auto_backup": False, "onedrive_sync": False, "backup_interval_hours": 24}
    values.update(settings)
    return DashboardScheduler(
        store,
        orchestrator=MagicMock(),
        microsoft365=MagicMock(),
        settings=MagicMock(**values),
        scheduler=MagicMock(),
    )


def test_runs_batch_at_send_time(store: RecordStore) -> None:
    """The batch runs when the local HH:MM equals the send time."""

    scheduler = _scheduler(store)
    now = datetime(2026, 10, 14, 7, 30, 5)

    result = scheduler.check_send_time(now)

    scheduler.orchestrator.generate_all_daily_emails.assert_called_once_with(now)
    assert result is scheduler.orchestrator.generate_all_daily_emails.return_value


def test_skips_other_minutes(store: RecordStore) -> None:
    """Nothing happens outside the configured minute."""

    scheduler = _scheduler(store)

    assert scheduler.check_send_time(datetime(2026, 10, 14, 7, 31)) is None
    scheduler.orchestrator.generate_all_daily_emails.assert_not_called()


def test_skips_when_auto_send_disabled(store: RecordStore) -> None:
    """Auto send must be enabled in the dashboard settings."""

    store.save_settings({"autoSendEnabled": False})
    scheduler = _scheduler(store)

    assert scheduler.check_send_time(datetime(2026, 10, 14, 7, 30)) is None
    scheduler.orchestrator.generate_all_daily_emails.assert_not_called()


def test_runs_once_per_minute(store: RecordStore) -> None:
    """Two ticks within the same minute run the batch once."""

    scheduler = _scheduler(store)

    scheduler.check_send_time(datetime(2026, 10, 14, 7, 30, 1))
    scheduler.check_send_time(datetime(2026, 10, 14, 7, 30, 59))
    scheduler.check_send_time(datetime(2026, 10, 15, 7, 30, 0))

    assert scheduler.orchestrator.generate_all_daily_emails.call_count == 2


def test_start_registers_jobs(store: RecordStore) -> None:
    """The minute check is always registered; backup only when enabled."""

    scheduler = _scheduler(store)
    scheduler.start()

    ids = [c.kwargs["id"] for c in scheduler.scheduler.add_job.call_args_list]
    assert ids == [DAILY_EMAIL_JOB_ID]
    assert scheduler.scheduler.add_job.call_args.kwargs["max_instances"] == 1
    scheduler.scheduler.start.assert_called_once()

    with_backup = _scheduler(store, auto_backup=True, onedrive_sync=True)
    with_backup.start()

    ids = [c.kwargs["id"] for c in with_backup.scheduler.add_job.call_args_list]
    assert ids == [DAILY_EMAIL_JOB_ID, BACKUP_JOB_ID]
    assert with_backup.scheduler.add_job.call_args.kwargs["hours"] == 24


def test_run_auto_backup(store: RecordStore) -> None:
    """Auto backup uploads the store's data directory."""

    scheduler = _scheduler(store, auto_backup=True, onedrive_sync=True)

    scheduler.run_auto_backup()

    scheduler.microsoft365.backup_to_onedrive.assert_called_once_with(store.data_dir)

    disabled = _scheduler(store)
    assert disabled.run_auto_backup() is None
    disabled.microsoft365.backup_to_onedrive.assert_not_called()
