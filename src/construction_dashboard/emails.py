"""Email content engine.

Objective:
    Turn a recipient configuration plus a :class:`StoreSnapshot` into a
    deterministic, human-readable status email.

Core strategy:
    1. Restrict communications to the recipient's projects.
    2. Partition them into urgency buckets with
       :mod:`construction_dashboard.dates` (overdue, due soon, completed
       today, new). Every bucket uses the same calendar-day truncation so an
       item can never be both overdue and due soon.
    3. Derive action items and a per-project health rating.
    4. Assemble the body from labeled sections, each emitted only when
       non-empty, between a greeting and the closing/signature.

Responsibilities:
    - Daily email per recipient (:meth:`EmailContentEngine.generate_daily_email`).
    - Composed emails driven by explicit filters
      (:meth:`EmailContentEngine.compose_emails`).
    - Weekly summary and template export for external automation.

High-level call tree:
    - :class:`EmailContentEngine`
        - :meth:`EmailContentEngine.generate_daily_email`
            - :meth:`EmailContentEngine.resolve_recipient`
            - :meth:`EmailContentEngine.categorize`
            - :meth:`EmailContentEngine.build_action_items`
            - :meth:`EmailContentEngine.assess_project_health`
                - :func:`classify_health`
        - :meth:`EmailContentEngine.compose_emails`
            - :meth:`EmailContentEngine.filter_by_date_range`
                - :func:`construction_dashboard.dates.resolve_date_range`
        - :meth:`EmailContentEngine.generate_weekly_summary`
        - :meth:`EmailContentEngine.export_email_templates`

Operational notes:
    - The engine never mutates the snapshot and performs no I/O, so a batch
      always renders every email before any of them is delivered.
    - Dangling project/stakeholder references render as ``Unknown Project`` /
      ``Unknown Stakeholder``. Only the recipient's own stakeholder is
      required (:class:`construction_dashboard.errors.ResolutionError`).
"""

import logging
from datetime import date, datetime, time, timedelta
from typing import Iterable, Optional

from .config import (
    ACTION_ITEM_DUE_SOON_LIMIT,
    ACTION_ITEM_WINDOW_DAYS,
    DEFAULT_EMAIL_SIGNATURE,
    DUE_SOON_WINDOW_DAYS,
    Settings,
)
from .dates import (
    days_until_due,
    describe_due,
    format_long_date,
    format_short_date,
    is_due_soon,
    is_overdue,
    resolve_date_range,
    same_local_day,
    to_local_naive,
    within_last,
)
from .errors import ComposeValidationError, ResolutionError
from .models import (
    CategorizedCommunications,
    Communication,
    CommunicationStatus,
    ComposeOptions,
    EmailRecipient,
    EmailTemplate,
    EmailType,
    GeneratedEmail,
    HealthRating,
    ProjectHealth,
    Stakeholder,
    StoreSnapshot,
)

logger = logging.getLogger(__name__)

UNKNOWN_PROJECT = "Unknown Project"
UNKNOWN_STAKEHOLDER = "Unknown Stakeholder"

CLOSING_LINE = "Questions or need to discuss anything? Just reply to this email."

URGENT_HEADER = "🔴 URGENT - Requires Immediate Attention:"
DUE_SOON_HEADER = "🟡 DUE SOON:"
COMPLETED_TODAY_HEADER = "🟢 COMPLETED TODAY:"
RECENTLY_COMPLETED_HEADER = "🟢 RECENTLY COMPLETED:"
NEW_HEADER = "🆕 NEW COMMUNICATIONS:"
ACTION_ITEMS_HEADER = "📋 YOUR ACTION ITEMS:"
HEALTH_HEADER = "📊 PROJECT HEALTH SUMMARY:"

HEALTH_ICONS = {
    HealthRating.HEALTHY: "🟢",
    HealthRating.WARNING: "🟡",
    HealthRating.CRITICAL: "🔴",
}

SUBJECT_PREFIXES = {
    EmailType.DAILY: "Daily Update",
    EmailType.WEEKLY: "Weekly Report",
    EmailType.URGENT: "Urgent Items Alert",
    EmailType.PROJECT_SUMMARY: "Project Summary",
}
DEFAULT_SUBJECT_PREFIX = "Project Update"

OPENING_LINES = {
    EmailType.DAILY: "Here's your daily project communication update as of {date}:",
    EmailType.WEEKLY: "Here's your weekly project summary for the week ending {date}:",
    EmailType.URGENT: "URGENT: The following items require immediate attention as of {date}:",
    EmailType.PROJECT_SUMMARY: "Here's a comprehensive project status summary as of {date}:",
}

NEW_ITEM_WINDOW = timedelta(hours=24)
WEEK = timedelta(days=7)

# Placeholder template handed to external automation tools
EMAIL_TEMPLATE = (
    "Hi {name},\n\n"
    "Here's your daily project status update as of {{{{DATE}}}}:\n\n"
    "{{{{URGENT_ITEMS}}}}\n"
    "{{{{DUE_SOON}}}}\n"
    "{{{{COMPLETED_TODAY}}}}\n"
    "{{{{ACTION_ITEMS}}}}\n"
    "{{{{PROJECT_SUMMARY}}}}\n"
    f"{CLOSING_LINE}\n\n"
    "{{{{EMAIL_SIGNATURE}}}}\n"
)


def classify_health(overdue_count: int, pending_count: int) -> HealthRating:
    """
    Classify project health from its overdue and open counts.

    Rules are evaluated in order, first match wins:
        - ``overdue > 2`` or ``pending > 10`` -> Critical
        - ``overdue > 0`` or ``pending > 5`` -> Warning
        - otherwise -> Healthy

    Args:
        overdue_count: Overdue communications of the project.
        pending_count: Pending or in-progress communications of the project.

    Returns:
        HealthRating: Health classification.
    """
    if overdue_count > 2 or pending_count > 10:
        return HealthRating.CRITICAL
    if overdue_count > 0 or pending_count > 5:
        return HealthRating.WARNING
    return HealthRating.HEALTHY


def _last_modified(comm: Communication) -> Optional[datetime]:
    return comm.updated_at or comm.completed_at


def _completion_time(comm: Communication) -> Optional[datetime]:
    return comm.completed_at or comm.updated_at


class EmailContentEngine:
    """
    Builds status emails from an immutable store snapshot.

    Attributes:
        snapshot: Records the engine reads from.
        settings: Application settings (categorization windows).
    """

    def __init__(self, snapshot: StoreSnapshot, settings: Optional[Settings] = None) -> None:
        """
        Initialize the engine.

        Args:
            snapshot: Store snapshot taken for this run.
            settings: Application settings. Defaults apply when None.
        """
        self.snapshot = snapshot
        self.settings = settings
        self.due_soon_window_days = (
            settings.due_soon_window_days if settings is not None else DUE_SOON_WINDOW_DAYS
        )

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def project_name(self, project_id: Optional[str]) -> str:
        project = self.snapshot.project(project_id)
        return project.name if project and project.name else UNKNOWN_PROJECT

    def stakeholder_name(self, stakeholder_id: Optional[str]) -> str:
        stakeholder = self.snapshot.stakeholder(stakeholder_id)
        return stakeholder.name if stakeholder and stakeholder.name else UNKNOWN_STAKEHOLDER

    def resolve_recipient(self, recipient: EmailRecipient) -> Stakeholder:
        """
        Resolve the stakeholder an email is addressed to.

        Args:
            recipient: Recipient configuration.

        Returns:
            Stakeholder: Stakeholder with a usable email address.

        Raises:
            ResolutionError: If the stakeholder is missing or has no email.
        """
        stakeholder = self.snapshot.stakeholder(recipient.stakeholder_id)
        if stakeholder is None:
            raise ResolutionError("stakeholder", recipient.stakeholder_id, "not found")
        if not stakeholder.has_email:
            raise ResolutionError("stakeholder", recipient.stakeholder_id, "no email address")
        return stakeholder

    def communications_for(self, project_ids: Iterable[str]) -> list[Communication]:
        """Return the communications of the given projects, in stored order."""
        wanted = set(project_ids)
        return [c for c in self.snapshot.communications if c.project_id in wanted]

    @property
    def signature(self) -> str:
        return self.snapshot.settings.email_signature or DEFAULT_EMAIL_SIGNATURE

    # ------------------------------------------------------------------
    # Categorization
    # ------------------------------------------------------------------

    def categorize(
        self, communications: list[Communication], now: datetime
    ) -> CategorizedCommunications:
        """
        Partition communications into urgency buckets.

        Buckets:
            - urgent: overdue, most overdue first.
            - due_soon: not overdue and due within the window, soonest first.
            - completed_today: completed and last modified on ``now``'s day.
            - new: created within the last 24 hours.

        Sorting is stable, so ties keep their stored order.

        Args:
            communications: Communications to partition.
            now: Reference time.

        Returns:
            CategorizedCommunications: The four buckets.
        """
        urgent = []
        due_soon = []
        completed_today = []
        new = []

        for comm in communications:
            days = days_until_due(comm.due_date, now)
            if days is not None and days < 0:
                urgent.append(comm)
            elif days is not None and days <= self.due_soon_window_days:
                due_soon.append(comm)

            if comm.status == CommunicationStatus.COMPLETED and same_local_day(
                _last_modified(comm), now
            ):
                completed_today.append(comm)

            if within_last(comm.created_at, now, NEW_ITEM_WINDOW):
                new.append(comm)

        urgent.sort(key=lambda c: days_until_due(c.due_date, now))
        due_soon.sort(key=lambda c: days_until_due(c.due_date, now))

        return CategorizedCommunications(
            urgent=urgent,
            due_soon=due_soon,
            completed_today=completed_today,
            new=new,
        )

    def build_action_items(
        self,
        urgent: list[Communication],
        due_soon: list[Communication],
        recipient_stakeholder: Stakeholder,
        now: datetime,
    ) -> list[str]:
        """
        Derive the recipient's action items.

        Every urgent item yields one line. Of the first three due-soon items,
        those due within two days yield one line each. Urgent lines come first.

        Args:
            urgent: Urgent bucket (already sorted).
            due_soon: Due soon bucket (already sorted).
            recipient_stakeholder: The email's recipient.
            now: Reference time.

        Returns:
            list[str]: Action item lines, unnumbered.
        """
        actions = []

        for item in urgent:
            owner = self.snapshot.stakeholder(item.stakeholder_id)
            if owner is not None and owner.id != recipient_stakeholder.id:
                actions.append(
                    f'Follow up with {owner.name} on overdue {item.type.value}: "{item.subject}"'
                )
            else:
                actions.append(f'Address overdue {item.type.value}: "{item.subject}"')

        for item in due_soon[:ACTION_ITEM_DUE_SOON_LIMIT]:
            days = days_until_due(item.due_date, now)
            if days is None or days > ACTION_ITEM_WINDOW_DAYS:
                continue
            when = "today" if days == 0 else "tomorrow" if days == 1 else "soon"
            actions.append(f'Prepare for {item.type.value} due {when}: "{item.subject}"')

        return actions

    def assess_project_health(
        self,
        project_ids: Iterable[str],
        communications: list[Communication],
        now: datetime,
    ) -> list[ProjectHealth]:
        """
        Rate each project's health from the given communications.

        Args:
            project_ids: Projects to rate, in output order.
            communications: Communications to count.
            now: Reference time.

        Returns:
            list[ProjectHealth]: One entry per project id.
        """
        results = []
        for project_id in project_ids:
            project_comms = [c for c in communications if c.project_id == project_id]
            overdue = sum(1 for c in project_comms if is_overdue(c.due_date, now))
            pending = sum(1 for c in project_comms if c.is_open)
            results.append(
                ProjectHealth(
                    project_id=project_id,
                    project_name=self.project_name(project_id),
                    rating=classify_health(overdue, pending),
                    overdue_count=overdue,
                    pending_count=pending,
                )
            )
        return results

    # ------------------------------------------------------------------
    # Line rendering
    # ------------------------------------------------------------------

    def _item_prefix(self, comm: Communication) -> str:
        return f'• {self.project_name(comm.project_id)}: {comm.type.value} "{comm.subject}"'

    def _urgent_line(self, comm: Communication, now: datetime) -> str:
        days_overdue = abs(days_until_due(comm.due_date, now))
        owner = self.stakeholder_name(comm.stakeholder_id)
        return f"{self._item_prefix(comm)} overdue by {days_overdue} days ({owner})"

    def _due_soon_line(self, comm: Communication, now: datetime) -> str:
        days = days_until_due(comm.due_date, now)
        return f"{self._item_prefix(comm)} due {describe_due(days)}"

    def _completed_line(self, comm: Communication) -> str:
        return f"{self._item_prefix(comm)} completed"

    def _new_line(self, comm: Communication) -> str:
        return f"{self._item_prefix(comm)} from {self.stakeholder_name(comm.stakeholder_id)}"

    def _health_line(self, health: ProjectHealth) -> str:
        icon = HEALTH_ICONS[health.rating]
        if health.rating == HealthRating.HEALTHY:
            detail = f"({health.pending_count} pending items)"
        else:
            detail = f"({health.overdue_count} overdue, {health.pending_count} pending)"
        return f"• {health.project_name}: {icon} {health.rating.value} {detail}"

    @staticmethod
    def _section(header: str, lines: list[str]) -> list[str]:
        if not lines:
            return []
        return [header, *lines, ""]

    def _assemble(self, name: str, opening: str, sections: list[str], closing: str) -> str:
        parts = [f"Hi {name},", "", opening, "", *sections, closing, "", self.signature]
        return "\n".join(parts) + "\n"

    # ------------------------------------------------------------------
    # Daily email
    # ------------------------------------------------------------------

    def generate_daily_email(
        self,
        recipient: EmailRecipient,
        now: datetime,
        subject: Optional[str] = None,
    ) -> GeneratedEmail:
        """
        Generate the daily status email for one recipient.

        Args:
            recipient: Recipient configuration.
            now: Reference time.
            subject: Optional subject override.

        Returns:
            GeneratedEmail: Fully assembled email.

        Raises:
            ResolutionError: If the recipient's stakeholder cannot be resolved
                or has no email address.
        """
        stakeholder = self.resolve_recipient(recipient)
        communications = self.communications_for(recipient.project_ids)
        buckets = self.categorize(communications, now)
        actions = self.build_action_items(buckets.urgent, buckets.due_soon, stakeholder, now)
        health = self.assess_project_health(recipient.project_ids, communications, now)

        sections = [
            *self._section(URGENT_HEADER, [self._urgent_line(c, now) for c in buckets.urgent]),
            *self._section(
                DUE_SOON_HEADER, [self._due_soon_line(c, now) for c in buckets.due_soon]
            ),
            *self._section(
                COMPLETED_TODAY_HEADER,
                [self._completed_line(c) for c in buckets.completed_today],
            ),
            *self._section(
                ACTION_ITEMS_HEADER,
                [f"{index}. {action}" for index, action in enumerate(actions, 1)],
            ),
            *self._section(HEALTH_HEADER, [self._health_line(h) for h in health]),
        ]

        body = self._assemble(
            stakeholder.name,
            f"Here's your daily project status update as of {format_long_date(now)}:",
            sections,
            CLOSING_LINE,
        )

        logger.debug(
            "Generated daily email for %s (urgent=%s, due_soon=%s, completed=%s)",
            stakeholder.name,
            len(buckets.urgent),
            len(buckets.due_soon),
            len(buckets.completed_today),
        )

        return GeneratedEmail(
            to=stakeholder.email,
            recipient_name=stakeholder.name,
            subject=subject
            or f"Daily Project Status - {stakeholder.name} - {format_short_date(now)}",
            body=body,
            recipient_id=recipient.id,
            stakeholder_id=stakeholder.id,
        )

    # ------------------------------------------------------------------
    # Composed emails
    # ------------------------------------------------------------------

    def filter_by_date_range(
        self,
        communications: list[Communication],
        date_range: Optional[str],
        now: datetime,
    ) -> list[Communication]:
        """
        Keep communications dated inside the named range.

        A communication is dated by ``createdAt``, falling back to its due
        date. Unrecognized range names disable filtering.
        """
        window = resolve_date_range(date_range, now)
        if window is None:
            return list(communications)

        start, end = window
        kept = []
        for comm in communications:
            if comm.created_at is not None:
                stamp = to_local_naive(comm.created_at)
            elif comm.due_date is not None:
                stamp = datetime.combine(comm.due_date, time.min)
            else:
                continue
            if start <= stamp < end:
                kept.append(comm)
        return kept

    def _recently_completed(
        self, communications: list[Communication], now: datetime
    ) -> list[Communication]:
        return [
            c
            for c in communications
            if c.status == CommunicationStatus.COMPLETED
            and within_last(_completion_time(c), now, NEW_ITEM_WINDOW)
        ]

    def compose_emails(self, options: ComposeOptions, now: datetime) -> list[GeneratedEmail]:
        """
        Generate one composed email per selected stakeholder.

        The ``urgent`` type only ever emits the urgent section and the
        ``project-summary`` type always emits the health section.

        Args:
            options: Selections and section toggles.
            now: Reference time.

        Returns:
            list[GeneratedEmail]: Emails for resolvable stakeholders with an
            email address. Others are skipped with a warning.

        Raises:
            ComposeValidationError: If no project or no stakeholder is selected.
        """
        if not options.project_ids:
            raise ComposeValidationError("Please select at least one project.")
        if not options.stakeholder_ids:
            raise ComposeValidationError("Please select at least one recipient.")

        communications = self.filter_by_date_range(
            self.communications_for(options.project_ids), options.date_range, now
        )
        buckets = self.categorize(communications, now)
        recently_completed = self._recently_completed(communications, now)

        only_urgent = options.email_type == EmailType.URGENT
        include_health = (
            options.include_project_health or options.email_type == EmailType.PROJECT_SUMMARY
        )

        sections = []
        if options.include_urgent or only_urgent:
            sections += self._section(
                URGENT_HEADER, [self._urgent_line(c, now) for c in buckets.urgent]
            )
        if not only_urgent:
            if options.include_due_soon:
                sections += self._section(
                    DUE_SOON_HEADER, [self._due_soon_line(c, now) for c in buckets.due_soon]
                )
            if options.include_completed:
                sections += self._section(
                    RECENTLY_COMPLETED_HEADER,
                    [self._completed_line(c) for c in recently_completed],
                )
            if options.include_new:
                sections += self._section(NEW_HEADER, [self._new_line(c) for c in buckets.new])
            if include_health:
                health = self.assess_project_health(options.project_ids, communications, now)
                sections += self._section(HEALTH_HEADER, [self._health_line(h) for h in health])

        opening_template = OPENING_LINES.get(options.email_type, OPENING_LINES[EmailType.DAILY])
        opening = opening_template.format(date=format_long_date(now))
        message = options.additional_message.strip()
        if message:
            opening = f"{opening}\n\n{message}"

        emails = []
        for stakeholder_id in options.stakeholder_ids:
            stakeholder = self.snapshot.stakeholder(stakeholder_id)
            if stakeholder is None or not stakeholder.has_email:
                logger.warning(f"Skipping stakeholder {stakeholder_id}: no email address")
                continue

            prefix = SUBJECT_PREFIXES.get(options.email_type, DEFAULT_SUBJECT_PREFIX)
            subject = options.custom_subject.strip() or (
                f"{prefix} - {stakeholder.name} - {format_short_date(now)}"
            )
            emails.append(
                GeneratedEmail(
                    to=stakeholder.email,
                    recipient_name=stakeholder.name,
                    subject=subject,
                    body=self._assemble(stakeholder.name, opening, sections, CLOSING_LINE),
                    stakeholder_id=stakeholder.id,
                )
            )

        logger.info(f"Composed {len(emails)} {options.email_type.value} emails")
        return emails

    # ------------------------------------------------------------------
    # Weekly summary and templates
    # ------------------------------------------------------------------

    def generate_weekly_summary(self, recipient: EmailRecipient, now: datetime) -> GeneratedEmail:
        """
        Generate the end-of-week summary for one recipient.

        Sections: items completed in the last seven days, items created in the
        last seven days that are still open, and items due within the next
        seven days.

        Raises:
            ResolutionError: If the recipient's stakeholder cannot be resolved.
        """
        stakeholder = self.resolve_recipient(recipient)
        communications = self.communications_for(recipient.project_ids)
        week_start: date = (to_local_naive(now) - timedelta(days=6)).date()

        completed = [
            c
            for c in communications
            if c.status == CommunicationStatus.COMPLETED
            and within_last(_completion_time(c), now, WEEK)
        ]
        added = [
            c
            for c in communications
            if c.status != CommunicationStatus.COMPLETED and within_last(c.created_at, now, WEEK)
        ]
        upcoming = sorted(
            (c for c in communications if c.is_open and is_due_soon(c.due_date, now, 7)),
            key=lambda c: c.due_date,
        )

        sections = [
            *self._section(
                "✅ COMPLETED THIS WEEK:", [self._item_prefix(c) for c in completed]
            ),
            *self._section("📝 NEW ITEMS THIS WEEK:", [self._item_prefix(c) for c in added]),
            *self._section(
                "📅 COMING UP NEXT WEEK:",
                [f"{self._item_prefix(c)} due {format_short_date(c.due_date)}" for c in upcoming],
            ),
        ]

        body = self._assemble(
            stakeholder.name,
            f"Here's your weekly project summary for the week of {format_short_date(week_start)}:",
            sections,
            "Have a great weekend!",
        )
        return GeneratedEmail(
            to=stakeholder.email,
            recipient_name=stakeholder.name,
            subject=(
                f"Weekly Project Summary - {stakeholder.name} - "
                f"Week of {format_short_date(week_start)}"
            ),
            body=body,
            recipient_id=recipient.id,
            stakeholder_id=stakeholder.id,
        )

    def export_email_templates(self) -> list[EmailTemplate]:
        """
        Export one placeholder template per configured recipient.

        Templates use ``{{DATE}}``-style placeholders to be filled by an
        external automation tool. Recipients whose stakeholder does not
        resolve get an error template instead of being dropped.
        """
        templates = []
        for recipient in self.snapshot.email_recipients:
            stakeholder = self.snapshot.stakeholder(recipient.stakeholder_id)
            if stakeholder is None:
                template = "Error: Recipient or stakeholder not found."
            else:
                template = EMAIL_TEMPLATE.format(name=stakeholder.name)
            templates.append(
                EmailTemplate(
                    recipient_id=recipient.id,
                    recipient_name=stakeholder.name if stakeholder else "Unknown",
                    recipient_email=stakeholder.email if stakeholder else "",
                    send_time=recipient.send_time,
                    frequency=recipient.frequency,
                    project_ids=recipient.project_ids,
                    template=template,
                )
            )
        return templates
