from datetime import datetime
from unittest.mock import MagicMock

import pytest

from construction_dashboard.errors import ComposeValidationError, ResolutionError, TransportError
from construction_dashboard.models import ComposeOptions, DeliveryMethod, GeneratedEmail
from construction_dashboard.orchestrator import DailyEmailOrchestrator
from construction_dashboard.store import RecordStore

NOW = datetime(2026, 10, 14, 17, 0)


@pytest.fixture
def store(tmp_path) -> RecordStore:
    store = RecordStore(tmp_path, clock=lambda: NOW)
    store.create("projects", {"id": "p1", "name": "Alpha"})
    store.create("stakeholders", {"id": "s1", "name": "Alice", "email": "alice@example.com"})
    store.create("stakeholders", {"id": "s2", "name": "Bob", "email": "bob@example.com"})
    store.create(
        "communications",
        {"id": "c1", "projectId": "p1", "subject": "Footing depth", "dueDate": "2026-10-13"},
    )
    store.create("emailRecipients", {"id": "r1", "stakeholderId": "s1", "projectIds": ["p1"]})
    store.create("emailRecipients", {"id": "r2", "stakeholderId": "ghost", "projectIds": ["p1"]})
    store.create("emailRecipients", {"id": "r3", "stakeholderId": "s2", "projectIds": ["p1"]})
    return store


def _settings() -> MagicMock:
    return MagicMock(due_soon_window_days=7)


def _email() -> GeneratedEmail:
    return GeneratedEmail(
        to="alice@example.com",
        recipient_name="Alice",
        subject="Daily Project Status",
        body="Hi Alice,\n\nAll good.\n",
        recipient_id="r1",
    )


def test_batch_continues_past_unresolvable_recipient(store: RecordStore) -> None:
    """One unresolvable stakeholder fails; the other recipients are delivered."""

    orchestrator = DailyEmailOrchestrator(store, microsoft365=None, settings=_settings())

    result = orchestrator.generate_all_daily_emails(NOW)

    assert result.summary == {"total": 3, "sent": 2, "failed": 1}
    assert [d.to for d in result.sent] == ["alice@example.com", "bob@example.com"]
    assert all(d.method == DeliveryMethod.MAILTO for d in result.sent)
    assert result.failed[0].recipient_id == "r2"
    assert "ghost" in result.failed[0].error


def test_batch_without_recipients_is_empty(tmp_path) -> None:
    """No configured recipients yields an empty batch."""

    orchestrator = DailyEmailOrchestrator(RecordStore(tmp_path), settings=_settings())

    result = orchestrator.generate_all_daily_emails(NOW)

    assert result.sent == []
    assert result.failed == []


def test_deliver_uses_outlook_when_ready(store: RecordStore) -> None:
    """Outlook delivery is used when the adapter is ready and accepts the message."""

    microsoft365 = MagicMock()
    microsoft365.outlook_ready = True
    microsoft365.send_email.return_value = True
    orchestrator = DailyEmailOrchestrator(store, microsoft365, settings=MagicMock())

    result = orchestrator.deliver(_email())

    assert result.method == DeliveryMethod.OUTLOOK
    request = microsoft365.send_email.call_args.args[0]
    assert request.recipients == ["alice@example.com"]
    assert request.content == "Hi Alice,\n\nAll good.\n"


def test_deliver_falls_back_to_mailto_when_rejected(store: RecordStore) -> None:
    """A rejected Outlook send falls back to a mail link."""

    microsoft365 = MagicMock()
    microsoft365.outlook_ready = True
    microsoft365.send_email.return_value = False
    orchestrator = DailyEmailOrchestrator(store, microsoft365, settings=MagicMock())

    result = orchestrator.deliver(_email())

    assert result.method == DeliveryMethod.MAILTO
    assert result.mailto_url.startswith("mailto:alice@example.com?subject=Daily%20Project")


def test_deliver_skips_outlook_when_not_ready(store: RecordStore) -> None:
    """An unauthenticated adapter is never called."""

    microsoft365 = MagicMock()
    microsoft365.outlook_ready = False
    orchestrator = DailyEmailOrchestrator(store, microsoft365, settings=MagicMock())

    result = orchestrator.deliver(_email())

    assert result.method == DeliveryMethod.MAILTO
    microsoft365.send_email.assert_not_called()


def test_deliver_keeps_content_for_manual_copy_on_error(store: RecordStore) -> None:
    """When the adapter raises, the full email is kept for manual copy."""

    microsoft365 = MagicMock()
    microsoft365.outlook_ready = True
    microsoft365.send_email.side_effect = TransportError("unreachable")
    orchestrator = DailyEmailOrchestrator(store, microsoft365, settings=MagicMock())

    result = orchestrator.deliver(_email())

    assert result.method == DeliveryMethod.MANUAL
    assert result.content == (
        "To: alice@example.com\nSubject: Daily Project Status\n\nHi Alice,\n\nAll good.\n"
    )
    assert result.error == "unreachable"


def test_preview_unknown_recipient_raises(store: RecordStore) -> None:
    """Preview of an unknown recipient id raises ResolutionError."""

    orchestrator = DailyEmailOrchestrator(store, settings=_settings())

    with pytest.raises(ResolutionError):
        orchestrator.preview("nope", NOW)

    email = orchestrator.preview("r1", NOW)
    assert "overdue by 1 days" in email.body


def test_send_composed_emails_reports_unaddressed_stakeholders(store: RecordStore) -> None:
    """Selected stakeholders without an email address are reported as failed."""

    orchestrator = DailyEmailOrchestrator(store, settings=_settings())
    options = ComposeOptions(project_ids=["p1"], stakeholder_ids=["s1", "ghost"])

    result = orchestrator.send_composed_emails(options, NOW)

    assert [d.to for d in result.sent] == ["alice@example.com"]
    assert result.failed[0].stakeholder_id == "ghost"
    assert result.failed[0].error == "No email address"


def test_send_composed_emails_validates_selection(store: RecordStore) -> None:
    """Empty selections surface as ComposeValidationError."""

    orchestrator = DailyEmailOrchestrator(store, settings=_settings())

    with pytest.raises(ComposeValidationError):
        orchestrator.send_composed_emails(ComposeOptions(), NOW)
