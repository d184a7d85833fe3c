from unittest.mock import MagicMock

import pytest

from construction_dashboard import auth as auth_module
from construction_dashboard.auth import GraphAuthenticator
from construction_dashboard.errors import TransportError


def _settings(**overrides) -> MagicMock:
    settings = MagicMock()
    settings.has_graph_credentials = True
    settings.microsoft_client_id = "client-id"
    settings.microsoft_client_secret = "secret"
    settings.microsoft_tenant_id = "tenant-id"
    for key, value in overrides.items():
        setattr(settings, key, value)
    return settings


def test_get_access_token_uses_client_credentials(monkeypatch) -> None:
    """Tokens come from the confidential client for the tenant authority."""

    app = MagicMock()
    app.acquire_token_for_client.return_value = {"access_token": "tok"}
    factory = MagicMock(return_value=app)
    monkeypatch.setattr(auth_module.msal, "ConfidentialClientApplication", factory)

    authenticator = GraphAuthenticator(_settings())

    assert authenticator.get_auth_headers() == {
        "Authorization": "Bearer tok",
        "Content-Type": "application/json",
    }
    assert authenticator.is_authenticated is True
    assert factory.call_args.kwargs["authority"] == "https://login.microsoftonline.com/tenant-id"
    app.acquire_token_for_client.assert_called_once_with(
        scopes=["https://graph.microsoft.com/.default"]
    )


def test_failed_token_acquisition(monkeypatch) -> None:
    """A token error raises TransportError and clears the authenticated flag."""

    app = MagicMock()
    app.acquire_token_for_client.return_value = {
        "error": "invalid_client",
        "error_description": "bad secret",
    }
    monkeypatch.setattr(
        auth_module.msal, "ConfidentialClientApplication", MagicMock(return_value=app)
    )

    authenticator = GraphAuthenticator(_settings())

    with pytest.raises(TransportError, match="bad secret"):
        authenticator.get_access_token()
    assert authenticator.is_authenticated is False
    assert authenticator.authenticate() is False


def test_missing_credentials_raise() -> None:
    """Incomplete credentials never reach MSAL."""

    authenticator = GraphAuthenticator(_settings(has_graph_credentials=False))

    with pytest.raises(TransportError, match="MICROSOFT_CLIENT_ID"):
        authenticator.get_access_token()
