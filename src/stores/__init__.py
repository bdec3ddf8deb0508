"""
AUTOLOC Access Core - Stores

Store distant des comptes staff et cache local de la session staff.
"""

from .interfaces import (
    ICredentialStore,
    IPersistedSessionStore,
    StaffAccount,
    PersistedSessionRecord,
    KEY_ACTIVE,
    KEY_ROLE,
    KEY_STAFF_ID,
)
from .credential_store import InMemoryCredentialStore, PostgresCredentialStore
from .session_store import InMemorySessionStore, FileSessionStore

__all__ = [
    "ICredentialStore",
    "IPersistedSessionStore",
    "StaffAccount",
    "PersistedSessionRecord",
    "KEY_ACTIVE",
    "KEY_ROLE",
    "KEY_STAFF_ID",
    "InMemoryCredentialStore",
    "PostgresCredentialStore",
    "InMemorySessionStore",
    "FileSessionStore",
]
