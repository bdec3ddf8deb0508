"""
AUTOLOC Access Core - Stores Interfaces

Contrats du store des comptes staff (distant) et du cache de session
staff persisté (local, survit aux redémarrages).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional

from ..core.interfaces import Role


# Clés du cache de session persisté
KEY_ACTIVE = "staff_session_active"
KEY_ROLE = "staff_session_role"
KEY_STAFF_ID = "staff_session_id"


@dataclass(frozen=True)
class StaffAccount:
    """
    Compte staff tel que lu dans le store.

    Attributes:
        id: Clé primaire
        username: Identifiant unique
        password_hash: Empreinte du mot de passe
        role: Admin ou Assistant
        updated_at: Dernière rotation du mot de passe
    """

    id: int
    username: str
    password_hash: str
    role: Role
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class PersistedSessionRecord:
    """
    Cache local "un membre du staff est connecté, avec tel rôle/id".

    Pas de protection d'intégrité: ce n'est pas une frontière de sécurité.
    """

    active: bool = False
    role: str = ""
    staff_id: str = ""

    def to_mapping(self) -> Dict[str, str]:
        return {
            KEY_ACTIVE: "true" if self.active else "false",
            KEY_ROLE: self.role,
            KEY_STAFF_ID: self.staff_id,
        }

    @classmethod
    def from_mapping(cls, data: Dict[str, str]) -> "PersistedSessionRecord":
        return cls(
            active=str(data.get(KEY_ACTIVE, "")).lower() == "true",
            role=str(data.get(KEY_ROLE) or ""),
            staff_id=str(data.get(KEY_STAFF_ID) or ""),
        )

    @classmethod
    def for_staff(cls, staff_id: int, role: Role) -> "PersistedSessionRecord":
        return cls(active=True, role=role.value, staff_id=str(staff_id))


class ICredentialStore(ABC):
    """
    Store distant des comptes staff.

    Aucune mise en cache locale; les erreurs du store sont remontées
    (UpstreamUnavailableError), jamais avalées.
    """

    @abstractmethod
    async def find_by_username(self, username: str) -> StaffAccount:
        """
        Raises:
            NotFoundError: Aucun compte pour ce username
        """
        pass

    @abstractmethod
    async def find_by_id(self, staff_id: int) -> StaffAccount:
        """
        Raises:
            NotFoundError: Aucun compte pour cet id
        """
        pass

    @abstractmethod
    async def count_accounts(self) -> int:
        """Nombre de comptes staff existants."""
        pass

    @abstractmethod
    async def insert_first_account(self, username: str, password_hash: str, role: Role) -> int:
        """
        Crée le tout premier compte staff (usage unique).

        La vérification "aucun compte" et l'insertion sont atomiques dans le store.

        Returns:
            id du compte créé

        Raises:
            ConflictError: Un compte staff existe déjà
        """
        pass

    @abstractmethod
    async def update_password_hash(self, staff_id: int, password_hash: str, updated_at: datetime) -> None:
        """
        Raises:
            NotFoundError: Aucun compte pour cet id
        """
        pass


class IPersistedSessionStore(ABC):
    """Stockage clé/valeur durable du cache de session staff."""

    @abstractmethod
    async def read(self) -> PersistedSessionRecord:
        """Retourne le cache (inactif si absent)."""
        pass

    @abstractmethod
    async def write(self, record: PersistedSessionRecord) -> None:
        pass

    @abstractmethod
    async def clear(self) -> None:
        """Supprime les trois clés."""
        pass
