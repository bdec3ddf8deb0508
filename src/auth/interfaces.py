"""
AUTOLOC Access Core - Auth Interfaces

Etat de session (union étiquetée), exigences de route, décisions
de navigation et contrats du Session Manager et du Route Guard.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from ..core.interfaces import NavigationTarget, Role, RouteConfig
from ..identity.interfaces import Identity


# ══════════════════════════════════════════════════════════════════════════════
# ETAT DE SESSION
# ══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class Anonymous:
    """Aucune identité authentifiée."""

    pass


@dataclass(frozen=True)
class CustomerSession:
    """Client authentifié par le fournisseur d'identité."""

    identity: Identity


@dataclass(frozen=True)
class StaffSession:
    """Membre du staff authentifié sur le store des comptes."""

    staff_id: int
    role: Role


# Un seul suivi actif à la fois: le staff et le client ne coexistent jamais
SessionState = Union[Anonymous, CustomerSession, StaffSession]

ANONYMOUS = Anonymous()


class Phase(Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"


@dataclass(frozen=True)
class SessionSnapshot:
    """
    Vue figée de la session, évaluée par le Route Guard.

    Attributes:
        state: Anonymous | CustomerSession | StaffSession
        phase: Cycle de vie de l'initialisation
        bootstrapped: Au moins un compte staff existe (None si non vérifié)
        identity_resolved: False si l'initialisation a expiré avant résolution
    """

    state: SessionState
    phase: Phase = Phase.READY
    bootstrapped: Optional[bool] = None
    identity_resolved: bool = True

    @property
    def initializing(self) -> bool:
        return self.phase != Phase.READY

    @property
    def staff_session(self) -> Optional[StaffSession]:
        return self.state if isinstance(self.state, StaffSession) else None

    @property
    def customer_identity(self) -> Optional[Identity]:
        return self.state.identity if isinstance(self.state, CustomerSession) else None


# ══════════════════════════════════════════════════════════════════════════════
# ROUTES ET DECISIONS
# ══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class RouteRequirement:
    """
    Exigences d'accès d'une cible de navigation.

    requires_super_admin désigne le rôle Admin (par opposition à Assistant)
    et implique requires_admin.
    """

    requires_auth: bool = False
    requires_admin: bool = False
    requires_super_admin: bool = False

    @classmethod
    def from_route(cls, route: RouteConfig) -> "RouteRequirement":
        return cls(
            requires_auth=route.requires_auth,
            requires_admin=route.requires_admin,
            requires_super_admin=route.requires_super_admin,
        )


@dataclass(frozen=True)
class Allow:
    pass


@dataclass(frozen=True)
class RedirectTo:
    target: NavigationTarget


Decision = Union[Allow, RedirectTo]

ALLOW = Allow()


# ══════════════════════════════════════════════════════════════════════════════
# INTERFACES
# ══════════════════════════════════════════════════════════════════════════════


class ISessionManager(ABC):
    """Cycle de vie de la session et faits d'autorisation dérivés."""

    @abstractmethod
    async def initialize(self) -> SessionSnapshot:
        """Résout identité client et session staff persistée (une seule résolution en vol)."""
        pass

    @abstractmethod
    async def check_setup_complete(self) -> bool:
        """Vérifie qu'au moins un compte staff existe."""
        pass

    @abstractmethod
    async def bootstrap_first_admin(self, plaintext: str) -> NavigationTarget:
        """Crée le premier compte Admin puis connecte ce compte."""
        pass

    @abstractmethod
    async def login_as_customer(self, email: str, password: str) -> NavigationTarget:
        pass

    @abstractmethod
    async def login_as_staff(self, username: str, plaintext: str) -> NavigationTarget:
        pass

    @abstractmethod
    async def change_staff_password(self, current_plaintext: str, new_plaintext: str) -> None:
        pass

    @abstractmethod
    async def register_customer(self, email: str, password: str) -> NavigationTarget:
        pass

    @abstractmethod
    async def sign_out(self) -> NavigationTarget:
        pass

    @abstractmethod
    def snapshot(self) -> SessionSnapshot:
        pass


class IRouteGuard(ABC):
    """Décide Allow ou RedirectTo pour chaque tentative de navigation."""

    @abstractmethod
    async def authorize(self, requirement: RouteRequirement) -> Decision:
        """Attend la fin de l'initialisation puis décide."""
        pass
