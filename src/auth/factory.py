"""
AUTOLOC Access Core - Factory

Assemble le coeur d'accès (stores, fournisseur d'identité, Session Manager,
Route Guard) à partir d'une configuration chargée.
"""

from dataclasses import dataclass
from typing import Callable, Optional

from ..core.interfaces import AccessConfig
from ..core.password_hasher import PasswordHasher
from ..identity import FederatedIdentityAdapter, IIdentityProviderClient, ProviderTokenVerifier
from ..logging import StructuredLogger, create_logger
from ..stores import (
    FileSessionStore,
    ICredentialStore,
    InMemoryCredentialStore,
    IPersistedSessionStore,
    PostgresCredentialStore,
)
from .route_guard import RouteGuard
from .route_table import RouteTable
from .session_manager import SessionManager


@dataclass
class AccessCore:
    """Composants assemblés du coeur d'accès."""

    session_manager: SessionManager
    route_guard: RouteGuard
    route_table: RouteTable
    logger: StructuredLogger


def build_access_core(
    config: AccessConfig,
    provider_client: IIdentityProviderClient,
    credential_store: Optional[ICredentialStore] = None,
    session_store: Optional[IPersistedSessionStore] = None,
    output_handler: Optional[Callable[[str], None]] = None,
) -> AccessCore:
    """
    Construit un coeur d'accès prêt à initialiser.

    Sans store fourni, le store des comptes est PostgreSQL si un DSN est
    configuré, en mémoire sinon; le cache de session est le fichier configuré.

    Raises:
        ValueError: Secret de vérification des jetons client absent
    """
    logger = create_logger("autoloc.access", config.logging.min_level, output_handler)

    provider = config.identity_provider
    if not provider.jwt_secret:
        raise ValueError("identity_provider.jwt_secret is required")
    verifier = ProviderTokenVerifier(
        provider.jwt_secret,
        audience=provider.audience,
        algorithms=provider.algorithms,
        leeway_seconds=provider.leeway_seconds,
    )
    identity = FederatedIdentityAdapter(provider_client, verifier, logger.child("identity"))

    if credential_store is None:
        store_config = config.credential_store
        if store_config.dsn:
            credential_store = PostgresCredentialStore(
                store_config.dsn,
                table=store_config.table,
                connect_timeout_seconds=store_config.connect_timeout_seconds,
                logger=logger.child("credential_store"),
            )
        else:
            credential_store = InMemoryCredentialStore()

    if session_store is None:
        session_store = FileSessionStore(config.persistence.session_file, logger.child("session_store"))

    session_manager = SessionManager(
        identity,
        credential_store,
        session_store,
        PasswordHasher(config.hashing),
        config=config.session,
        logger=logger.child("session"),
    )
    route_table = RouteTable.from_config(config)
    route_guard = RouteGuard(session_manager, route_table, logger.child("guard"))

    return AccessCore(
        session_manager=session_manager,
        route_guard=route_guard,
        route_table=route_table,
        logger=logger,
    )
