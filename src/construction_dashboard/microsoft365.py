"""Microsoft 365 integration (OneDrive backups, Outlook mail, calendar).

Objective:
    Provide a thin wrapper around the Microsoft Graph endpoints used by the
    dashboard. This module centralizes HTTP request construction,
    authentication headers, feature flags and Pydantic validation of
    responses.

Responsibilities:
    - Issue authenticated HTTP requests to Graph (via :mod:`requests`).
    - Back up the JSON data files to a timestamped OneDrive folder and list
      previous backups.
    - Send Outlook mail with an HTML body rendered from plain text.
    - Create Outlook calendar events.
    - Report configuration and connection status.

High-level call tree:
    - Public API:
        - :meth:`Microsoft365Service.initialize`
        - :meth:`Microsoft365Service.get_configuration`
        - :meth:`Microsoft365Service.test_connection`
        - :meth:`Microsoft365Service.backup_to_onedrive` -> :class:`BackupSummary`
            - :meth:`Microsoft365Service._ensure_folder`
            - :meth:`Microsoft365Service._upload`
        - :meth:`Microsoft365Service.list_onedrive_backups` -> :class:`OneDriveBackup`
        - :meth:`Microsoft365Service.send_email`
            - :func:`construction_dashboard.formatting.render_outlook_html`
        - :meth:`Microsoft365Service.create_calendar_event`
    - Internal helpers:
        - :meth:`Microsoft365Service._make_request` (auth + error handling)

Graph endpoints used (relative to ``/users/{upn}`` or ``/me``):
    - ``GET /drive/root:/{folder}`` / ``POST /drive/root/children``
    - ``POST /drive/root:/{folder}:/children``
    - ``PUT /drive/root:/{path}:/content``
    - ``GET /drive/root:/{folder}:/children``
    - ``POST /sendMail``
    - ``POST /events``
    - ``GET`` on the user root (connection test)

Error handling:
    - HTTP errors are logged and raised from :meth:`_make_request`.
    - Backup, listing and calendar operations catch errors and return
      ``None``/``[]``.
    - :meth:`send_email` returns ``False`` when Outlook is disabled or Graph
      rejects the message, and raises :class:`TransportError` when Graph
      cannot be reached at all.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import AbstractSet, Any, Optional, Union
from urllib.parse import quote

import requests

from .auth import GraphAuthenticator
from .config import Settings
from .errors import TransportError
from .formatting import render_outlook_html
from .models import BackupSummary, CalendarEventRequest, OneDriveBackup, SendEmailRequest

logger = logging.getLogger(__name__)

HIGH_IMPORTANCE_PRIORITIES = {"critical", "high"}


class Microsoft365Service:
    """
    Client for the Microsoft Graph operations used by the dashboard.

    Attributes:
        settings: Application settings (feature flags, folder name).
        auth: Graph API authenticator.
    """

    GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"

    def __init__(self, settings: Settings, auth: Optional[GraphAuthenticator] = None) -> None:
        """
        Initialize the service.

        Args:
            settings: Application settings.
            auth: Graph API authenticator (created from settings if None).
        """
        self.settings = settings
        self.auth = auth or GraphAuthenticator(settings)

    @property
    def is_authenticated(self) -> bool:
        return bool(self.auth.is_authenticated)

    @property
    def outlook_ready(self) -> bool:
        """Whether mail can be sent through Outlook right now."""
        return self.settings.outlook_integration and self.is_authenticated

    @property
    def onedrive_ready(self) -> bool:
        """Whether OneDrive backups can run right now."""
        return self.settings.onedrive_sync and self.is_authenticated

    @property
    def user_root(self) -> str:
        """Graph path of the mailbox/drive owner."""
        upn = (self.settings.microsoft_sender_upn or "").strip()
        if upn:
            return f"/users/{quote(upn, safe='@')}"
        return "/me"

    def initialize(self) -> bool:
        """
        Authenticate when any Microsoft 365 feature is enabled.

        Returns:
            bool: True when authenticated.
        """
        if not self.settings.microsoft365_enabled:
            logger.info("Microsoft 365 integration disabled in environment variables")
            return False
        if not self.settings.has_graph_credentials:
            logger.warning("Microsoft 365 credentials not configured")
            return False
        return self.auth.authenticate()

    def _make_request(
        self,
        method: str,
        endpoint: str,
        params: Optional[dict] = None,
        json_data: Optional[dict] = None,
        content: Optional[bytes] = None,
        suppress_statuses: Optional[AbstractSet[int]] = None,
    ) -> dict:
        """Make an authenticated request to Microsoft Graph.

        This helper:
        - Adds auth headers (Bearer token).
        - Applies a default timeout.
        - Raises for non-2xx responses.
        - Returns decoded JSON or ``{}`` for empty responses (204, 202).

        Args:
            method: HTTP method (GET, POST, PUT, DELETE).
            endpoint: API endpoint path.
            params: Query parameters.
            json_data: JSON body data.
            content: Raw body (file uploads).
            suppress_statuses: Statuses logged at debug level instead of error.

        Returns:
            dict: Response JSON data.

        Raises:
            requests.HTTPError: If request fails.
            TransportError: If no access token can be acquired.
        """
        url = f"{self.GRAPH_BASE_URL}{endpoint}"
        headers = self.auth.get_auth_headers()

        response = requests.request(
            method=method,
            url=url,
            headers=headers,
            params=params,
            json=json_data,
            data=content,
            timeout=30,
        )

        if not response.ok:
            suppress = suppress_statuses and response.status_code in suppress_statuses
            if suppress:
                logger.debug(
                    "Graph API expected non-2xx: %s - %s",
                    response.status_code,
                    response.text,
                )
            else:
                logger.error(f"Graph API error: {response.status_code} - {response.text}")
            response.raise_for_status()

        if response.status_code == 204 or not response.content:
            return {}

        return response.json()

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def get_configuration(self) -> dict[str, Any]:
        """
        Describe the integration state for the status endpoint.

        Returns:
            dict[str, Any]: Enabled flags, authentication state and folder.
        """
        return {
            "isEnabled": self.settings.microsoft365_enabled,
            "isAuthenticated": self.is_authenticated,
            "oneDriveEnabled": self.settings.onedrive_sync,
            "outlookEnabled": self.settings.outlook_integration,
            "autoBackupEnabled": self.settings.auto_backup,
            "backupInterval": self.settings.backup_interval_hours,
            "oneDriveFolder": self.settings.onedrive_folder,
        }

    def test_connection(self) -> dict[str, Any]:
        """
        Check that Graph is reachable and report the connected account.

        Returns:
            dict[str, Any]: ``success`` plus ``user``/``services`` on success,
            or ``error`` on failure.
        """
        try:
            user = self._make_request("GET", self.user_root)
        except (requests.RequestException, TransportError) as e:
            logger.error(f"Microsoft 365 connection test failed: {e}")
            return {"success": False, "error": str(e)}

        logger.info(
            f"Connected to Microsoft 365 as: {user.get('displayName')} ({user.get('mail')})"
        )
        return {
            "success": True,
            "user": {
                "name": user.get("displayName"),
                "email": user.get("mail"),
                "organization": user.get("companyName"),
            },
            "services": {
                "oneDrive": self.settings.onedrive_sync,
                "outlook": self.settings.outlook_integration,
                "autoBackup": self.settings.auto_backup,
            },
        }

    # ------------------------------------------------------------------
    # OneDrive
    # ------------------------------------------------------------------

    def _drive_path(self, path: str) -> str:
        return f"{self.user_root}/drive/root:/{quote(path, safe='/')}"

    def _ensure_folder(self) -> None:
        """Create the backup root folder when it does not exist yet."""
        folder = self.settings.onedrive_folder
        try:
            self._make_request("GET", self._drive_path(folder), suppress_statuses={404})
        except requests.HTTPError as e:
            if e.response is None or e.response.status_code != 404:
                raise
            self._make_request(
                "POST",
                f"{self.user_root}/drive/root/children",
                json_data={
                    "name": folder,
                    "folder": {},
                    "@microsoft.graph.conflictBehavior": "rename",
                },
            )
            logger.info(f"Created OneDrive folder: {folder}")

    def _upload(self, path: str, content: bytes) -> None:
        self._make_request("PUT", f"{self._drive_path(path)}:/content", content=content)

    def backup_to_onedrive(self, data_dir: Union[str, Path]) -> Optional[BackupSummary]:
        """
        Upload every JSON file of ``data_dir`` to a new timestamped folder.

        A ``backup-summary.json`` describing the upload is written next to
        the data files.

        Args:
            data_dir: Directory holding the JSON collections.

        Returns:
            Optional[BackupSummary]: Summary, or None when skipped or failed.
        """
        if not self.onedrive_ready:
            logger.info("OneDrive backup skipped - not enabled or not authenticated")
            return None

        files = sorted(p for p in Path(data_dir).glob("*.json") if p.is_file())
        now = datetime.now(timezone.utc)
        backup_folder = f"backup-{now.strftime('%Y-%m-%dT%H-%M-%S')}"
        backup_path = f"{self.settings.onedrive_folder}/{backup_folder}"

        try:
            logger.info("Starting OneDrive backup...")
            self._ensure_folder()
            self._make_request(
                "POST",
                f"{self._drive_path(self.settings.onedrive_folder)}:/children",
                json_data={
                    "name": backup_folder,
                    "folder": {},
                    "@microsoft.graph.conflictBehavior": "rename",
                },
            )

            for file in files:
                self._upload(f"{backup_path}/{file.name}", file.read_bytes())
                logger.debug(f"Uploaded {file.name} to OneDrive")

            summary = BackupSummary(
                timestamp=now,
                files=[file.name for file in files],
                total_files=len(files),
                backup_path=backup_path,
            )
            self._upload(
                f"{backup_path}/backup-summary.json",
                json.dumps(summary.model_dump(mode="json", by_alias=True), indent=2).encode(
                    "utf-8"
                ),
            )
        except (requests.RequestException, TransportError) as e:
            logger.error(f"OneDrive backup failed: {e}")
            return None

        logger.info(f"Successfully backed up {summary.total_files} files to OneDrive")
        return summary

    def list_onedrive_backups(self) -> list[OneDriveBackup]:
        """
        List backup folders, newest first.

        Returns:
            list[OneDriveBackup]: Backups, or an empty list on error.
        """
        if not self.is_authenticated:
            return []

        try:
            response = self._make_request(
                "GET", f"{self._drive_path(self.settings.onedrive_folder)}:/children"
            )
        except (requests.RequestException, TransportError) as e:
            logger.error(f"Error listing OneDrive backups: {e}")
            return []

        backups = []
        for item in response.get("value", []):
            if "folder" not in item or not str(item.get("name", "")).startswith("backup-"):
                continue
            try:
                backups.append(
                    OneDriveBackup(
                        name=item["name"],
                        created=item.get("createdDateTime"),
                        modified=item.get("lastModifiedDateTime"),
                        web_url=item.get("webUrl"),
                    )
                )
            except ValueError as e:
                logger.warning(f"Failed to parse backup entry: {e}")

        epoch = datetime.min.replace(tzinfo=timezone.utc)
        backups.sort(key=lambda b: b.created or epoch, reverse=True)
        return backups

    # ------------------------------------------------------------------
    # Outlook
    # ------------------------------------------------------------------

    def send_email(self, request: SendEmailRequest) -> bool:
        """
        Send an email through Outlook.

        The plain-text content is rendered to HTML. Importance is ``high``
        for Critical/High priority, otherwise ``normal``.

        Args:
            request: Subject, content, recipients and options.

        Returns:
            bool: True when Graph accepted the message, False when Outlook is
            disabled/unauthenticated or Graph rejected the message.

        Raises:
            TransportError: If Graph could not be reached.
        """
        if not self.outlook_ready:
            logger.info("Outlook integration not enabled or not authenticated")
            return False

        message: dict[str, Any] = {
            "subject": request.subject,
            "body": {"contentType": "HTML", "content": render_outlook_html(request.content)},
            "toRecipients": [
                {
                    "emailAddress": {
                        "address": address,
                        "name": request.recipient_names.get(address, address),
                    }
                }
                for address in request.recipients
            ],
            "importance": (
                "high" if request.priority.lower() in HIGH_IMPORTANCE_PRIORITIES else "normal"
            ),
        }
        if request.attachments:
            message["attachments"] = [
                {
                    "@odata.type": "#microsoft.graph.fileAttachment",
                    "name": attachment.get("name"),
                    "contentBytes": attachment.get("content"),
                    "contentType": attachment.get("contentType") or "application/octet-stream",
                }
                for attachment in request.attachments
            ]

        try:
            self._make_request(
                "POST",
                f"{self.user_root}/sendMail",
                json_data={"message": message, "saveToSentItems": True},
            )
        except requests.HTTPError as e:
            logger.error(f"Failed to send email via Outlook: {e}")
            return False
        except requests.RequestException as e:
            raise TransportError(f"Microsoft Graph unreachable: {e}") from e

        logger.info(f"Email sent via Outlook to {len(request.recipients)} recipients")
        return True

    def create_calendar_event(self, request: CalendarEventRequest) -> Optional[dict]:
        """
        Create an Outlook calendar event.

        Args:
            request: Event details (times are interpreted as UTC).

        Returns:
            Optional[dict]: Created event, or None when skipped or failed.
        """
        if not self.outlook_ready:
            logger.info("Outlook integration not enabled or not authenticated")
            return None

        event = {
            "subject": request.subject,
            "body": {"contentType": "HTML", "content": request.description},
            "start": {"dateTime": request.start_time, "timeZone": "UTC"},
            "end": {"dateTime": request.end_time, "timeZone": "UTC"},
            "location": {"displayName": request.location},
            "attendees": [
                {"emailAddress": {"address": address, "name": address}}
                for address in request.attendees
            ],
            "reminderMinutesBeforeStart": request.reminder_minutes or 15,
        }

        try:
            created = self._make_request("POST", f"{self.user_root}/events", json_data=event)
        except (requests.RequestException, TransportError) as e:
            logger.error(f"Failed to create calendar event: {e}")
            return None

        logger.info(f"Calendar event created: {request.subject}")
        return created
