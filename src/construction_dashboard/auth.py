"""Microsoft Graph authentication.

Objective:
    Acquire OAuth2 access tokens for the Microsoft Graph calls made by
    :mod:`construction_dashboard.microsoft365` (OneDrive backups, Outlook
    mail, calendar events).

Responsibilities:
    - Manage the MSAL ``ConfidentialClientApplication`` lifecycle.
    - Perform client credentials authentication (application permissions);
      the dashboard runs unattended from the scheduler, so no interactive
      flow is offered.
    - Provide ready-to-use HTTP headers for Graph API calls.
    - Track whether authentication has succeeded, for status reporting.

High-level call tree:
    - :class:`GraphAuthenticator`
        - :meth:`GraphAuthenticator.authenticate`
        - :meth:`GraphAuthenticator.get_auth_headers`
            - :meth:`GraphAuthenticator.get_access_token`
                - :meth:`GraphAuthenticator._get_app`

Operational notes:
    - Requires MICROSOFT_CLIENT_ID, MICROSOFT_CLIENT_SECRET and
      MICROSOFT_TENANT_ID with Files.ReadWrite.All, Mail.Send and
      Calendars.ReadWrite application permissions.
    - MSAL keeps the token in its in-memory cache and reuses it until it
      expires; nothing is persisted to disk.
"""

import logging
from typing import Optional

import msal

from .config import Settings
from .errors import TransportError

logger = logging.getLogger(__name__)


class GraphAuthenticator:
    """
    Handles Microsoft Graph API authentication using MSAL.

    Attributes:
        settings: Application settings containing Azure AD credentials.
        is_authenticated: Whether the last token acquisition succeeded.
        _app: MSAL confidential client application instance.
    """

    # Application scopes for client credentials flow
    GRAPH_APP_SCOPES = [
        "https://graph.microsoft.com/.default",
    ]

    def __init__(self, settings: Settings) -> None:
        """
        Initialize the authenticator with settings.

        Args:
            settings: Application settings with Azure AD credentials.
        """
        self.settings = settings
        self.is_authenticated = False
        self._app: Optional[msal.ConfidentialClientApplication] = None

    def _get_app(self) -> msal.ConfidentialClientApplication:
        """
        Get or create the MSAL client application.

        Returns:
            msal.ConfidentialClientApplication: MSAL app instance.

        Raises:
            TransportError: If the Azure AD credentials are incomplete.
        """
        if self._app is None:
            if not self.settings.has_graph_credentials:
                raise TransportError(
                    "Microsoft 365 requires MICROSOFT_CLIENT_ID, MICROSOFT_CLIENT_SECRET "
                    "and MICROSOFT_TENANT_ID to be set"
                )
            authority = f"https://login.microsoftonline.com/{self.settings.microsoft_tenant_id}"
            self._app = msal.ConfidentialClientApplication(
                client_id=self.settings.microsoft_client_id,
                client_credential=self.settings.microsoft_client_secret,
                authority=authority,
            )
            logger.debug("Created MSAL confidential client application (client credentials flow)")
        return self._app

    def get_access_token(self) -> str:
        """
        Acquire an access token using the client credentials flow.

        Returns:
            str: Valid access token for Graph API.

        Raises:
            TransportError: If token acquisition fails.
        """
        app = self._get_app()
        logger.debug("Acquiring token using client credentials flow...")

        result = app.acquire_token_for_client(scopes=self.GRAPH_APP_SCOPES)

        if "access_token" in result:
            self.is_authenticated = True
            return result["access_token"]

        self.is_authenticated = False
        error_description = result.get("error_description", "Unknown error")
        error = result.get("error", "unknown")
        logger.error(f"Failed to acquire token: {error} - {error_description}")
        raise TransportError(f"Failed to acquire access token: {error_description}")

    def authenticate(self) -> bool:
        """
        Try to authenticate without raising.

        Returns:
            bool: True when a token could be acquired.
        """
        try:
            self.get_access_token()
        except TransportError as e:
            logger.warning(f"Microsoft 365 authentication failed: {e}")
            return False
        logger.info("Microsoft 365 authentication successful")
        return True

    def get_auth_headers(self) -> dict[str, str]:
        """
        Get HTTP headers with authorization for Graph API requests.

        Returns:
            dict[str, str]: Headers dictionary with Bearer token.
        """
        token = self.get_access_token()
        return {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }
