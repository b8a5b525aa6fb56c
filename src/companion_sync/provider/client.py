"""HTTP client for the character provider's REST API.

The provider wraps every response in an envelope:

- success: ``{"code": 200, "status": "OK", "data": {...}}``
- failure: ``{"code": 400, "status": "BadRequest", "error": "AccountNotFound",
  "errorCode": 1001, "errorMessage": "User not found"}``

This module translates transport failures and failure envelopes into the
subsystem's exception hierarchy so callers never see ``requests``
exceptions. Every call carries the configured timeout.
"""

from __future__ import annotations

from typing import Any

import requests

from companion_sync.core.config import ProviderSettings, get_settings
from companion_sync.core.exceptions import (
    ProviderError,
    SessionExpiredError,
    UpstreamUnavailableError,
)
from companion_sync.core.logging import get_logger
from companion_sync.models.provider import ExternalAuth

logger = get_logger(__name__)


ACCOUNT_NOT_FOUND = "AccountNotFound"
ACCOUNT_NOT_FOUND_CODE = 1001

# Provider error names that mean the session ticket is no longer valid.
SESSION_ERRORS = frozenset(
    {
        "NotAuthenticated",
        "NotAuthorized",
        "InvalidSessionTicket",
        "ExpiredAuthToken",
        "InvalidEntityToken",
    }
)


def is_account_not_found(error: ProviderError) -> bool:
    """Check whether a provider error means "no account with that name"."""
    return (
        error.error_code == ACCOUNT_NOT_FOUND
        or error.details.get("error_number") == ACCOUNT_NOT_FOUND_CODE
    )


class ProviderClient:
    """Thin wrapper over the provider's client API.

    Attributes:
        settings: Provider connection settings.
    """

    def __init__(
        self,
        settings: ProviderSettings | None = None,
        session: requests.Session | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            settings: Provider settings; defaults to the global settings.
            session: Optional requests session, mainly for tests.
        """
        self.settings = settings or get_settings().provider
        self._session = session or requests.Session()
        self._owns_session = session is None

    def __enter__(self) -> ProviderClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_session:
            self._session.close()

    # =========================================================================
    # Login
    # =========================================================================

    def login_with_username(self, username: str, password: str) -> ExternalAuth:
        """Log in with a provider username."""
        data = self._post(
            "/Client/LoginWithPlayFab",
            {
                "TitleId": self.settings.title_id,
                "Username": username,
                "Password": password,
                "InfoRequestParameters": {"GetUserAccountInfo": True},
            },
        )
        return self._auth_from(data)

    def login_with_email(self, email: str, password: str) -> ExternalAuth:
        """Log in with the e-mail address registered at the provider."""
        data = self._post(
            "/Client/LoginWithEmailAddress",
            {
                "TitleId": self.settings.title_id,
                "Email": email,
                "Password": password,
                "InfoRequestParameters": {"GetUserAccountInfo": True},
            },
        )
        return self._auth_from(data)

    def login_anonymous(self, custom_id: str) -> ExternalAuth:
        """Open a credential-less session bound to a throwaway custom id."""
        data = self._post(
            "/Client/LoginWithCustomID",
            {
                "TitleId": self.settings.title_id,
                "CustomId": custom_id,
                "CreateAccount": True,
            },
        )
        return self._auth_from(data)

    # =========================================================================
    # Data
    # =========================================================================

    def get_user_data(
        self,
        session_token: str,
        *,
        keys: list[str] | None = None,
        account_id: str | None = None,
    ) -> dict[str, Any]:
        """Fetch a data bag.

        Args:
            session_token: Session ticket from a login.
            keys: Restrict the response to these keys.
            account_id: Read another account's public data instead of the
                caller's own.

        Returns:
            Mapping of key to ``{"Value": str, "LastUpdated": str, ...}``.
        """
        payload: dict[str, Any] = {}
        if keys:
            payload["Keys"] = keys
        if account_id:
            payload["PlayFabId"] = account_id
        data = self._post("/Client/GetUserData", payload, session_token=session_token)
        bag = data.get("Data") or {}
        if not isinstance(bag, dict):
            raise UpstreamUnavailableError("Provider returned a malformed data bag")
        return bag

    # =========================================================================
    # Transport
    # =========================================================================

    def _post(
        self,
        path: str,
        payload: dict[str, Any],
        *,
        session_token: str | None = None,
    ) -> dict[str, Any]:
        headers = {"Content-Type": "application/json"}
        if session_token:
            headers["X-Authorization"] = session_token
        url = f"{self.settings.api_base_url}{path}"

        try:
            response = self._session.post(
                url,
                json=payload,
                headers=headers,
                timeout=self.settings.request_timeout_seconds,
            )
        except requests.Timeout as exc:
            logger.warning("Provider request timed out", path=path)
            raise UpstreamUnavailableError(
                f"Provider request to {path} timed out",
                details={"timeout_seconds": self.settings.request_timeout_seconds},
            ) from exc
        except requests.RequestException as exc:
            logger.warning("Provider request failed", path=path, error=type(exc).__name__)
            raise UpstreamUnavailableError(f"Provider request to {path} failed") from exc

        if response.status_code >= 500:
            raise UpstreamUnavailableError(
                f"Provider returned HTTP {response.status_code}",
                details={"path": path},
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise UpstreamUnavailableError(
                f"Provider returned a non-JSON response for {path}",
                details={"status": response.status_code},
            ) from exc
        if not isinstance(body, dict):
            raise UpstreamUnavailableError(f"Provider returned an unexpected body for {path}")

        if response.status_code >= 400 or body.get("error"):
            raise self._error_from(path, response.status_code, body)

        data = body.get("data")
        return data if isinstance(data, dict) else {}

    @staticmethod
    def _error_from(path: str, status: int, body: dict[str, Any]) -> ProviderError:
        error_name = body.get("error") or body.get("status") or "UnknownError"
        error_message = body.get("errorMessage") or str(error_name)
        details: dict[str, Any] = {"path": path, "status": status}
        if body.get("errorCode") is not None:
            details["error_number"] = body.get("errorCode")

        if status == 401 or error_name in SESSION_ERRORS:
            return SessionExpiredError(error_message, error_code=error_name, details=details)
        return ProviderError(error_message, error_code=error_name, details=details)

    @staticmethod
    def _auth_from(data: dict[str, Any]) -> ExternalAuth:
        account_id = data.get("PlayFabId")
        ticket = data.get("SessionTicket")
        if not account_id or not ticket:
            raise UpstreamUnavailableError("Provider login returned no session")
        entity = data.get("EntityToken") or {}
        entity_token = entity.get("EntityToken", "") if isinstance(entity, dict) else ""
        return ExternalAuth(
            external_account_id=str(account_id),
            session_token=str(ticket),
            entity_token=str(entity_token or ""),
        )
