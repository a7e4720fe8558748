from __future__ import annotations

from .compat import normalize_creds_dict
from .store import AuthState, CredentialStore, SessionFileSet

__all__ = [
    "AuthState",
    "CredentialStore",
    "SessionFileSet",
    "normalize_creds_dict",
]
