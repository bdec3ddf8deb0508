"""
AUTOLOC Access Core - Pytest Configuration
Fixtures partagées pour tous les tests.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, List, Optional

import jwt
import pytest
import yaml

from src.core.config_loader import ConfigLoader
from src.core.interfaces import AccessConfig, HashingConfig, SessionConfig
from src.core.password_hasher import PasswordHasher
from src.identity import (
    FederatedIdentityAdapter,
    IIdentityProviderClient,
    ProviderError,
    ProviderSession,
    ProviderTokenVerifier,
)
from src.logging import LogConfig, LogLevel, StructuredLogger
from src.stores import InMemoryCredentialStore, InMemorySessionStore
from src.auth import SessionManager


PROVIDER_SECRET = "autoloc-test-provider-secret-0123456789abcdef"


def make_provider_token(
    user_id: str,
    email: str,
    expires_in: timedelta = timedelta(hours=1),
    secret: str = PROVIDER_SECRET,
    audience: str = "authenticated",
) -> str:
    """Jeton de session tel que signé par le fournisseur d'identité."""
    return jwt.encode(
        {
            "sub": user_id,
            "email": email,
            "aud": audience,
            "exp": datetime.now(timezone.utc) + expires_in,
        },
        secret,
        algorithm="HS256",
    )


class FakeProviderClient(IIdentityProviderClient):
    """
    Fournisseur d'identité client en mémoire.

    Notifie les abonnés à chaque changement de session, depuis l'appel
    qui provoque le changement (comme le SDK réel).
    """

    def __init__(self):
        self.users: Dict[str, str] = {}
        self.session: Optional[ProviderSession] = None
        self.unreachable = False
        self.get_session_delay = 0.0
        self.get_session_calls = 0
        self.sign_out_calls = 0
        self._listeners: List = []

    def register(self, email: str, password: str) -> None:
        self.users[email] = password

    def start_session(self, email: str, token: Optional[str] = None) -> ProviderSession:
        self.session = ProviderSession(access_token=token or make_provider_token(f"user-{email}", email))
        return self.session

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    async def get_session(self) -> Optional[ProviderSession]:
        self._check_transport()
        self.get_session_calls += 1
        if self.get_session_delay:
            await asyncio.sleep(self.get_session_delay)
        return self.session

    async def sign_in_with_password(self, email: str, password: str) -> ProviderSession:
        self._check_transport()
        if self.users.get(email) != password:
            raise ProviderError("Invalid login credentials", status=400)
        session = self.start_session(email)
        await self._notify("SIGNED_IN", session)
        return session

    async def sign_up(self, email: str, password: str) -> ProviderSession:
        self._check_transport()
        if email in self.users:
            raise ProviderError("User already registered", status=422)
        if len(password) < 6:
            raise ProviderError("Password should be at least 6 characters", status=422)
        self.register(email, password)
        session = self.start_session(email)
        await self._notify("SIGNED_IN", session)
        return session

    async def sign_out(self) -> None:
        self._check_transport()
        self.sign_out_calls += 1
        self.session = None
        await self._notify("SIGNED_OUT", None)

    def on_auth_state_change(self, callback):
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    async def emit(self, event: str, session: Optional[ProviderSession]) -> None:
        """Simule un changement de session venu du fournisseur (autre onglet, expiration)."""
        self.session = session
        await self._notify(event, session)

    async def _notify(self, event: str, session: Optional[ProviderSession]) -> None:
        for listener in list(self._listeners):
            await listener(event, session)

    def _check_transport(self) -> None:
        if self.unreachable:
            raise ConnectionError("provider unreachable")


@pytest.fixture
def fixtures_path() -> Path:
    """Chemin vers le dossier fixtures."""
    return Path(__file__).parent.parent / "fixtures"


@pytest.fixture
def default_config(fixtures_path: Path) -> AccessConfig:
    """Configuration par défaut, validée."""
    with open(fixtures_path / "configs" / "access_default.yaml") as f:
        raw = yaml.safe_load(f)
    return ConfigLoader(str(fixtures_path / "configs")).parse(raw)


@pytest.fixture
def log_lines() -> List[str]:
    """Lignes JSON émises par le logger de test."""
    return []


@pytest.fixture
def logger(log_lines: List[str]) -> StructuredLogger:
    """Logger capturant toutes les entrées (DEBUG inclus)."""
    return StructuredLogger(
        "autoloc.test",
        config=LogConfig(min_level=LogLevel.DEBUG),
        output_handler=log_lines.append,
    )


@pytest.fixture
def hasher() -> PasswordHasher:
    """Hasher PBKDF2 au coût minimal pour des tests rapides."""
    return PasswordHasher(HashingConfig(iterations=1000))


@pytest.fixture
def provider_client() -> FakeProviderClient:
    return FakeProviderClient()


@pytest.fixture
def verifier() -> ProviderTokenVerifier:
    return ProviderTokenVerifier(PROVIDER_SECRET)


@pytest.fixture
def identity(provider_client, verifier, logger) -> FederatedIdentityAdapter:
    return FederatedIdentityAdapter(provider_client, verifier, logger.child("identity"))


@pytest.fixture
def credential_store() -> InMemoryCredentialStore:
    return InMemoryCredentialStore()


@pytest.fixture
def session_store() -> InMemorySessionStore:
    return InMemorySessionStore()


@pytest.fixture
def session_config() -> SessionConfig:
    return SessionConfig(bootstrap_username="aymen")


@pytest.fixture
def manager(identity, credential_store, session_store, hasher, session_config, logger) -> SessionManager:
    """Session Manager sur stores en mémoire et fournisseur simulé."""
    return SessionManager(
        identity,
        credential_store,
        session_store,
        hasher,
        config=session_config,
        logger=logger.child("session"),
    )


@pytest.fixture
def make_token():
    """Fabrique de jetons de session du fournisseur."""
    return make_provider_token


@pytest.fixture
def provider_secret() -> str:
    return PROVIDER_SECRET
