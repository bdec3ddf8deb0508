"""
AUTOLOC Access Core - Identity Interfaces

Contrats du fournisseur d'identité client (service externe opaque)
et de l'adaptateur exposé au Session Manager.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, Optional


@dataclass(frozen=True)
class Identity:
    """
    Identité client vérifiée, issue du jeton de session du fournisseur.

    Attributes:
        user_id: Identifiant fournisseur (claim sub)
        email: Email du client
        expires_at: Expiration du jeton de session
    """

    user_id: str
    email: Optional[str]
    expires_at: datetime


@dataclass(frozen=True)
class ProviderSession:
    """Session brute renvoyée par le fournisseur."""

    access_token: str
    refresh_token: Optional[str] = None


class ProviderError(Exception):
    """Erreur métier renvoyée par le fournisseur (message conservé tel quel)."""

    def __init__(self, message: str, status: int = 400):
        self.message = message
        self.status = status
        super().__init__(message)


ProviderStateCallback = Callable[[str, Optional[ProviderSession]], Awaitable[None]]
IdentityChangeCallback = Callable[[Optional[Identity]], Awaitable[None]]
Unsubscribe = Callable[[], None]


class IIdentityProviderClient(ABC):
    """
    Client du fournisseur d'identité client.

    Lève ProviderError pour les refus métier, ConnectionError/OSError
    pour les problèmes de transport.
    """

    @abstractmethod
    async def get_session(self) -> Optional[ProviderSession]:
        pass

    @abstractmethod
    async def sign_in_with_password(self, email: str, password: str) -> ProviderSession:
        pass

    @abstractmethod
    async def sign_up(self, email: str, password: str) -> ProviderSession:
        pass

    @abstractmethod
    async def sign_out(self) -> None:
        pass

    @abstractmethod
    def on_auth_state_change(self, callback: ProviderStateCallback) -> Unsubscribe:
        """Abonne callback(event, session) aux changements de session du fournisseur."""
        pass


class IFederatedIdentity(ABC):
    """Adaptateur du fournisseur d'identité vu par le Session Manager."""

    @abstractmethod
    async def get_current_user(self) -> Optional[Identity]:
        """Identité courante, ou None si aucune session valide."""
        pass

    @abstractmethod
    async def sign_in(self, email: str, password: str) -> Identity:
        """
        Raises:
            InvalidCredentialsError: Refus du fournisseur (message verbatim)
            UpstreamUnavailableError: Fournisseur injoignable
        """
        pass

    @abstractmethod
    async def sign_up(self, email: str, password: str) -> Identity:
        """
        Raises:
            AccessValidationError: Données refusées (message verbatim)
            UpstreamUnavailableError: Fournisseur injoignable
        """
        pass

    @abstractmethod
    async def sign_out(self) -> None:
        pass

    @abstractmethod
    def on_change(self, callback: IdentityChangeCallback) -> Unsubscribe:
        """Appelle callback(identity) à chaque changement de session du fournisseur."""
        pass
