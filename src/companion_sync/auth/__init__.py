"""Provider authentication: stored-credential vault and session manager."""

from __future__ import annotations

from companion_sync.auth.session import CredentialStore, SessionManager, SingleFlight
from companion_sync.auth.vault import EncryptedSecret, decrypt, encrypt


__all__ = [
    "CredentialStore",
    "EncryptedSecret",
    "SessionManager",
    "SingleFlight",
    "decrypt",
    "encrypt",
]
