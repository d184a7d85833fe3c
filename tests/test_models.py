from datetime import date

import pytest
from pydantic import ValidationError

from construction_dashboard.models import (
    BatchResult,
    Communication,
    CommunicationStatus,
    CommunicationType,
    ComposeOptions,
    DeliveryMethod,
    DeliveryResult,
    EmailRecipient,
    EmailType,
    FailedRecipient,
    Priority,
    Project,
    ProjectStatus,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("Pending", CommunicationStatus.PENDING),
        ("in-progress", CommunicationStatus.IN_PROGRESS),
        ("In Progress", CommunicationStatus.IN_PROGRESS),
        ("in_progress", CommunicationStatus.IN_PROGRESS),
        ("Completed", CommunicationStatus.COMPLETED),
    ],
)
def test_communication_status_spellings_are_normalized(raw, expected) -> None:
    """Legacy status spellings map onto the canonical enum."""

    comm = Communication.model_validate({"id": "c1", "status": raw})

    assert comm.status == expected


def test_communication_type_and_priority_normalization() -> None:
    """Types match case-insensitively and critical maps to high."""

    comm = Communication.model_validate(
        {"id": "c1", "type": "change order", "priority": "Critical"}
    )

    assert comm.type == CommunicationType.CHANGE_ORDER
    assert comm.priority == Priority.HIGH


def test_unknown_status_is_rejected() -> None:
    """Statuses with no canonical mapping fail validation."""

    with pytest.raises(ValidationError):
        Communication.model_validate({"id": "c1", "status": "archived"})


def test_due_date_is_truncated_and_blank_is_none() -> None:
    """Due dates keep only their calendar date."""

    assert Communication.model_validate(
        {"dueDate": "2026-10-14T18:30:00"}
    ).due_date == date(2026, 10, 14)
    assert Communication.model_validate({"dueDate": ""}).due_date is None


def test_to_json_uses_camel_case_and_keeps_unknown_fields() -> None:
    """Records round-trip through their on-disk JSON shape."""

    payload = {
        "id": "c1",
        "projectId": "p1",
        "stakeholderId": "s1",
        "type": "RFI",
        "subject": "Footing depth",
        "dueDate": "2026-10-20",
        "customField": "kept",
    }

    data = Communication.model_validate(payload).to_json()

    assert data["projectId"] == "p1"
    assert data["dueDate"] == "2026-10-20"
    assert data["status"] == "pending"
    assert data["customField"] == "kept"
    assert "completedAt" not in data


def test_project_defaults_and_status() -> None:
    """Projects default to active and accept blank contract values."""

    project = Project.model_validate(
        {"id": "p1", "name": "Alpha", "contractValue": "", "status": "In Progress"}
    )

    assert project.status == ProjectStatus.ACTIVE
    assert project.contract_value == 0


def test_email_recipient_dedupes_projects_and_checks_send_time() -> None:
    """Project ids keep their first-seen order; send time must be HH:MM."""

    recipient = EmailRecipient.model_validate(
        {"stakeholderId": "s1", "projectIds": ["p2", "p1", "p2"], "sendTime": "07:30"}
    )

    assert recipient.project_ids == ["p2", "p1"]

    with pytest.raises(ValidationError):
        EmailRecipient.model_validate({"stakeholderId": "s1", "sendTime": "7pm"})


def test_compose_options_accept_browser_keys() -> None:
    """Compose options accept camelCase selections and legacy type names."""

    options = ComposeOptions.model_validate(
        {
            "emailType": "project",
            "selectedProjects": ["p1"],
            "selectedStakeholders": ["s1"],
            "includeNew": False,
        }
    )

    assert options.email_type == EmailType.PROJECT_SUMMARY
    assert options.project_ids == ["p1"]
    assert options.stakeholder_ids == ["s1"]
    assert options.include_new is False
    assert options.include_urgent is True


def test_batch_result_summary() -> None:
    """Summary counts sent and failed recipients."""

    result = BatchResult(
        sent=[
            DeliveryResult(
                to="a@example.com",
                recipient_name="A",
                subject="S",
                method=DeliveryMethod.MAILTO,
            )
        ],
        failed=[FailedRecipient(recipient_id="r2", error="missing")],
    )

    assert result.summary == {"total": 2, "sent": 1, "failed": 1}
