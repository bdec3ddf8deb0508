"""
AUTOLOC Access Core - Federated Identity Adapter

Passe-plat vers le fournisseur d'identité client. Traduit ses sessions
en Identity vérifiées et ses erreurs dans la taxonomie du coeur d'accès.
"""

import asyncio
from typing import Awaitable, Callable, Optional, TypeVar

from ..core.errors import (
    AccessValidationError,
    InvalidCredentialsError,
    UpstreamUnavailableError,
)
from ..logging import StructuredLogger
from .interfaces import (
    IFederatedIdentity,
    IIdentityProviderClient,
    Identity,
    IdentityChangeCallback,
    ProviderError,
    ProviderSession,
    Unsubscribe,
)
from .token_verifier import ProviderTokenVerifier, TokenValidationError


T = TypeVar("T")

_TRANSPORT_ERRORS = (ConnectionError, OSError, asyncio.TimeoutError)


class FederatedIdentityAdapter(IFederatedIdentity):
    """
    Adaptateur du fournisseur d'identité client.

    Example:
        adapter = FederatedIdentityAdapter(client, ProviderTokenVerifier(secret))
        identity = await adapter.sign_in("client@mail.ma", "motdepasse")
    """

    def __init__(
        self,
        client: IIdentityProviderClient,
        verifier: ProviderTokenVerifier,
        logger: Optional[StructuredLogger] = None,
    ):
        self._client = client
        self._verifier = verifier
        self._logger = logger

    async def get_current_user(self) -> Optional[Identity]:
        session = await self._transport(self._client.get_session, "get_session")
        if session is None:
            return None
        return self._identity_or_none(session)

    async def sign_in(self, email: str, password: str) -> Identity:
        try:
            session = await self._transport(
                lambda: self._client.sign_in_with_password(email, password), "sign_in"
            )
        except ProviderError as e:
            if e.status >= 500:
                raise UpstreamUnavailableError(e.message, cause=e)
            raise InvalidCredentialsError(e.message, cause=e)
        return self._require_identity(session)

    async def sign_up(self, email: str, password: str) -> Identity:
        try:
            session = await self._transport(lambda: self._client.sign_up(email, password), "sign_up")
        except ProviderError as e:
            if e.status >= 500:
                raise UpstreamUnavailableError(e.message, cause=e)
            raise AccessValidationError(e.message, cause=e)
        return self._require_identity(session)

    async def sign_out(self) -> None:
        try:
            await self._transport(self._client.sign_out, "sign_out")
        except ProviderError as e:
            raise UpstreamUnavailableError(e.message, cause=e)

    def on_change(self, callback: IdentityChangeCallback) -> Unsubscribe:
        async def relay(event: str, session: Optional[ProviderSession]) -> None:
            identity = self._identity_or_none(session) if session else None
            if self._logger:
                self._logger.debug("Identity provider state changed", event=event, signed_in=identity is not None)
            await callback(identity)

        return self._client.on_auth_state_change(relay)

    async def _transport(self, call: Callable[[], Awaitable[T]], operation: str) -> T:
        try:
            return await call()
        except _TRANSPORT_ERRORS as e:
            if self._logger:
                self._logger.error("Identity provider unreachable", operation=operation, error=str(e))
            raise UpstreamUnavailableError("Identity provider unreachable", cause=e)

    def _identity_or_none(self, session: ProviderSession) -> Optional[Identity]:
        try:
            return self._verifier.verify(session.access_token)
        except TokenValidationError as e:
            if self._logger:
                self._logger.warn("Identity provider session rejected", reason=str(e))
            return None

    def _require_identity(self, session: ProviderSession) -> Identity:
        identity = self._identity_or_none(session)
        if identity is None:
            raise UpstreamUnavailableError("Identity provider returned an unusable session")
        return identity
