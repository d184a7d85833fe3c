"""Email workflow orchestrator.

Objective:
    Coordinate the end-to-end status email workflow:
    1) Take a snapshot of the record store
    2) Generate every email with the content engine
    3) Deliver each email through Outlook, falling back to a mail-compose
       link, or to manual copy when the adapter fails outright
    4) Return per-recipient results suitable for CLI/web UI

Responsibilities:
    - Compose the core components (store, content engine, Microsoft 365
      adapter).
    - Provide an imperative API that can be called from the CLI, the FastAPI
      webapp, or the scheduler.

High-level call tree:
    - :class:`DailyEmailOrchestrator`
        - :meth:`DailyEmailOrchestrator.generate_all_daily_emails`
            - :meth:`RecordStore.snapshot`
            - for each recipient:
                - :meth:`EmailContentEngine.generate_daily_email`
            - for each generated email:
                - :meth:`DailyEmailOrchestrator.deliver`
                    - :meth:`Microsoft365Service.send_email`
                    - :func:`construction_dashboard.formatting.build_mailto_url`
        - :meth:`DailyEmailOrchestrator.send_composed_emails`
            - :meth:`EmailContentEngine.compose_emails`
        - :meth:`DailyEmailOrchestrator.preview` /
          :meth:`DailyEmailOrchestrator.weekly_summary` /
          :meth:`DailyEmailOrchestrator.send_test_email`

Operational notes:
    - Every email of a batch is fully rendered before the first delivery
      attempt, so no partial email is ever sent.
    - A recipient whose email cannot be generated is reported as failed and
      the batch continues. Delivery itself never fails a recipient: the
      fallbacks always leave the user with something to send.
"""

import logging
from datetime import datetime
from typing import Optional

from .config import Settings, get_settings
from .emails import EmailContentEngine
from .errors import ResolutionError
from .formatting import build_mailto_url, manual_copy_text
from .microsoft365 import Microsoft365Service
from .models import (
    BatchResult,
    ComposeOptions,
    DeliveryMethod,
    DeliveryResult,
    EmailRecipient,
    EmailTemplate,
    FailedRecipient,
    GeneratedEmail,
    SendEmailRequest,
)
from .store import RecordStore

logger = logging.getLogger(__name__)


class DailyEmailOrchestrator:
    """
    Orchestrates status email generation and delivery.

    This class is intentionally "glue" code: it connects the store, the
    content engine and the Microsoft 365 adapter without embedding business
    rules.

    Attributes:
        store: Record store.
        microsoft365: Microsoft 365 adapter (None disables Outlook delivery).
        settings: Application settings.
    """

    def __init__(
        self,
        store: RecordStore,
        microsoft365: Optional[Microsoft365Service] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        """
        Initialize orchestrator with its collaborators.

        Args:
            store: Record store to read from.
            microsoft365: Microsoft 365 adapter.
            settings: Application settings (loads from env if None).
        """
        self.store = store
        self.microsoft365 = microsoft365
        self.settings = settings or get_settings()

    def _engine(self) -> EmailContentEngine:
        return EmailContentEngine(self.store.snapshot(), self.settings)

    def _recipient(self, engine: EmailContentEngine, recipient_id: str) -> EmailRecipient:
        recipient = engine.snapshot.recipient(recipient_id)
        if recipient is None:
            raise ResolutionError("email recipient", recipient_id, "not found")
        return recipient

    def deliver(self, email: GeneratedEmail) -> DeliveryResult:
        """
        Deliver one generated email. Never raises.

        Order of attempts:
            1. Outlook, when the adapter is configured and authenticated.
            2. A ``mailto:`` compose link, when Outlook is unavailable or
               rejected the message.
            3. Manual copy, when the adapter raised; the full content is
               returned in the result.

        Args:
            email: Fully assembled email.

        Returns:
            DeliveryResult: How the email left the system.
        """
        base = {
            "to": email.to,
            "recipient_name": email.recipient_name,
            "subject": email.subject,
            "recipient_id": email.recipient_id,
        }

        if self.microsoft365 is not None and self.microsoft365.outlook_ready:
            request = SendEmailRequest(
                subject=email.subject,
                content=email.body,
                recipients=[email.to],
                recipient_names={email.to: email.recipient_name},
            )
            try:
                sent = self.microsoft365.send_email(request)
            except Exception as e:
                logger.warning(
                    f"Outlook delivery to {email.to} failed; content kept for manual copy: {e}"
                )
                return DeliveryResult(
                    **base,
                    method=DeliveryMethod.MANUAL,
                    content=manual_copy_text(email),
                    error=str(e),
                )
            if sent:
                logger.info(f"Email sent to {email.recipient_name} via Outlook")
                return DeliveryResult(**base, method=DeliveryMethod.OUTLOOK)

        logger.info(f"Email prepared for {email.recipient_name} as mail link")
        return DeliveryResult(
            **base,
            method=DeliveryMethod.MAILTO,
            mailto_url=build_mailto_url(email.to, email.subject, email.body),
        )

    def _deliver_all(
        self, emails: list[GeneratedEmail], failed: list[FailedRecipient]
    ) -> BatchResult:
        sent = [self.deliver(email) for email in emails]
        logger.info(f"Completed: {len(sent)} successful, {len(failed)} failed")
        return BatchResult(sent=sent, failed=failed)

    def generate_all_daily_emails(self, now: Optional[datetime] = None) -> BatchResult:
        """
        Generate and deliver the daily email of every configured recipient.

        Errors are caught per recipient so that a batch run continues with
        the remaining recipients.

        Args:
            now: Reference time (defaults to the current local time).

        Returns:
            BatchResult: Delivered emails and failed recipients.
        """
        now = now or datetime.now()
        engine = self._engine()
        recipients = engine.snapshot.email_recipients

        if not recipients:
            logger.info("No email recipients configured")
            return BatchResult()

        logger.info(f"Generating daily emails for {len(recipients)} recipients")

        emails = []
        failed = []
        for recipient in recipients:
            try:
                emails.append(engine.generate_daily_email(recipient, now))
            except ResolutionError as e:
                logger.warning(f"Skipping recipient {recipient.id}: {e}")
                failed.append(
                    FailedRecipient(
                        recipient_id=recipient.id,
                        stakeholder_id=recipient.stakeholder_id,
                        error=str(e),
                    )
                )
            except Exception as e:
                logger.exception(f"Error generating email for recipient {recipient.id}")
                failed.append(
                    FailedRecipient(
                        recipient_id=recipient.id,
                        stakeholder_id=recipient.stakeholder_id,
                        error=str(e),
                    )
                )

        return self._deliver_all(emails, failed)

    def compose(
        self, options: ComposeOptions, now: Optional[datetime] = None
    ) -> list[GeneratedEmail]:
        """Render composed emails without delivering them."""
        return self._engine().compose_emails(options, now or datetime.now())

    def export_email_templates(self) -> list[EmailTemplate]:
        """Placeholder templates of every recipient, for external automation."""
        return self._engine().export_email_templates()

    def send_composed_emails(
        self, options: ComposeOptions, now: Optional[datetime] = None
    ) -> BatchResult:
        """
        Compose and deliver emails for an explicit selection.

        Stakeholders that cannot receive email are reported as failed.

        Raises:
            ComposeValidationError: If no project or stakeholder is selected.
        """
        emails = self.compose(options, now)

        addressed = {email.stakeholder_id for email in emails}
        failed = [
            FailedRecipient(stakeholder_id=stakeholder_id, error="No email address")
            for stakeholder_id in options.stakeholder_ids
            if stakeholder_id not in addressed
        ]
        return self._deliver_all(emails, failed)

    def preview(self, recipient_id: str, now: Optional[datetime] = None) -> GeneratedEmail:
        """
        Render a recipient's daily email without delivering it.

        Raises:
            ResolutionError: If the recipient or its stakeholder is unknown.
        """
        engine = self._engine()
        recipient = self._recipient(engine, recipient_id)
        return engine.generate_daily_email(recipient, now or datetime.now())

    def weekly_summary(self, recipient_id: str, now: Optional[datetime] = None) -> GeneratedEmail:
        """Render a recipient's weekly summary without delivering it."""
        engine = self._engine()
        recipient = self._recipient(engine, recipient_id)
        return engine.generate_weekly_summary(recipient, now or datetime.now())

    def send_test_email(self, recipient_id: str, now: Optional[datetime] = None) -> DeliveryResult:
        """
        Generate and deliver one recipient's daily email immediately.

        Raises:
            ResolutionError: If the recipient or its stakeholder is unknown.
        """
        email = self.preview(recipient_id, now)
        return self.deliver(email)
