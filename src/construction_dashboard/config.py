"""Application configuration and settings.

Objective:
    Provide a single source of truth for runtime configuration used across the
    application (data directory, Microsoft 365 integration flags, email
    categorization windows and scheduler behavior).

Responsibilities:
    - Load environment-driven settings via :class:`Settings` (Pydantic
      BaseSettings).
    - Hold the constants shared by the email engine (default signature,
      categorization windows).
    - Provide small convenience helpers for derived settings (whether any
      Microsoft 365 feature is on, whether Graph credentials are present).

High-level call tree:
    - :func:`get_settings` -> returns :class:`Settings`
    - :class:`Settings`
        - :attr:`Settings.microsoft365_enabled`
        - :attr:`Settings.has_graph_credentials`

Operational notes:
    - ``Settings`` loads from ``.env`` by default via ``pydantic-settings``.
    - Most modules accept a ``Settings`` object explicitly to enable testing;
      the web app and CLI fall back to :func:`get_settings` when not provided.
"""

from pathlib import Path
from typing import Optional
import logging

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

# Used when the dashboard settings carry no signature
DEFAULT_EMAIL_SIGNATURE = "Best regards,\nProject Engineering Department"

DEFAULT_SEND_TIME = "17:00"

# Categorization windows (days)
DUE_SOON_WINDOW_DAYS = 7
ACTION_ITEM_WINDOW_DAYS = 2
ACTION_ITEM_DUE_SOON_LIMIT = 3
ALERT_DUE_SOON_DAYS = 3
DEADLINE_HORIZON_DAYS = 14
PROPOSAL_DUE_SOON_DAYS = 5


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    The settings model is intentionally flat and human-editable via `.env`.
    Field names map directly to environment variables (case-insensitive),
    e.g. ``ONEDRIVE_SYNC=true`` -> :attr:`onedrive_sync`.

    Attributes:
        data_dir: Directory holding the JSON collections.
        microsoft_client_id: Azure AD application client ID.
        microsoft_client_secret: Azure AD application client secret.
        microsoft_tenant_id: Azure AD tenant ID.
        microsoft_sender_upn: Mailbox used for Graph calls with application permissions.
        onedrive_sync: Enable OneDrive backups.
        outlook_integration: Enable sending through Outlook.
        auto_backup: Schedule periodic OneDrive backups.
        backup_interval_hours: Hours between automatic backups.
        onedrive_folder: OneDrive folder receiving backups.
        due_soon_window_days: Window for the "due soon" bucket.
        seed_sample_data: Seed an empty store with sample records.
        enable_scheduler: Start the background scheduler with the web server.
        log_level: Logging level.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Storage
    data_dir: Path = Field(default=Path("data"), description="JSON data directory")

    # Azure AD Configuration
    microsoft_client_id: Optional[str] = Field(
        default=None, description="Azure AD application client ID"
    )
    microsoft_client_secret: Optional[str] = Field(
        default=None, description="Azure AD application client secret (client credentials flow)"
    )
    microsoft_tenant_id: Optional[str] = Field(
        default=None, description="Azure AD tenant ID (organizational tenant)"
    )
    microsoft_sender_upn: Optional[str] = Field(
        default=None,
        description=(
            "User principal name of the mailbox/drive to act on. Client credentials "
            "tokens have no signed-in user, so Graph calls target /users/{upn} when set."
        ),
    )

    # Microsoft 365 feature flags
    onedrive_sync: bool = Field(default=False, description="Enable OneDrive backups")
    outlook_integration: bool = Field(default=False, description="Send email through Outlook")
    auto_backup: bool = Field(default=False, description="Schedule OneDrive backups")
    backup_interval_hours: int = Field(
        default=24, ge=1, description="Hours between automatic OneDrive backups"
    )
    onedrive_folder: str = Field(
        default="Construction Dashboard", description="OneDrive backup folder name"
    )

    # Email generation
    due_soon_window_days: int = Field(
        default=DUE_SOON_WINDOW_DAYS, ge=0, le=60, description="Due soon window in days"
    )

    # Runtime
    seed_sample_data: bool = Field(default=True, description="Seed an empty data directory")
    enable_scheduler: bool = Field(default=True, description="Run the background scheduler")
    log_level: str = Field(default="INFO", description="Logging level")

    @property
    def microsoft365_enabled(self) -> bool:
        """Whether any Microsoft 365 feature is switched on.

        Returns:
            bool: True when OneDrive sync or Outlook integration is enabled.
        """
        return self.onedrive_sync or self.outlook_integration

    @property
    def has_graph_credentials(self) -> bool:
        """Whether the client credentials flow can be attempted.

        Returns:
            bool: True when client id, secret and tenant are all configured.
        """
        return bool(
            self.microsoft_client_id
            and self.microsoft_client_secret
            and self.microsoft_tenant_id
        )


def get_settings() -> Settings:
    """
    Load and return application settings.

    This helper is a convenience for production code. For tests, you typically
    construct a :class:`Settings` instance directly or pass a mocked settings
    object.

    Returns:
        Settings: Application settings instance.
    """
    return Settings()
