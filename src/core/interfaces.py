"""
AUTOLOC Access Core - Core Interfaces

Vocabulaire partagé (rôles, cibles de navigation), modèles de configuration
et contrats du hachage et du chargement de configuration.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


# ══════════════════════════════════════════════════════════════════════════════
# TYPES
# ══════════════════════════════════════════════════════════════════════════════


class Role(str, Enum):
    """Rôles staff. Aucune autre valeur n'est persistée ni acceptée."""

    ADMIN = "Admin"
    ASSISTANT = "Assistant"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["Role"]:
        """Retourne le rôle correspondant ou None si valeur inconnue."""
        for role in cls:
            if role.value == value:
                return role
        return None


class NavigationTarget(str, Enum):
    """Cibles nommées émises par le coeur d'accès vers la navigation."""

    STAFF_LOGIN = "staff-login"
    STAFF_SETUP = "staff-setup"
    CUSTOMER_LOGIN = "customer-login"
    HOME = "home"
    STAFF_METRICS_LANDING = "staff-metrics-landing"
    STAFF_RESERVATIONS_LANDING = "staff-reservations-landing"
    RESERVATIONS_INDEX = "reservations-index"


class HashingScheme(str, Enum):
    PBKDF2_SHA256 = "pbkdf2_sha256"
    SHA256_LEGACY = "sha256"


class ValidationSeverity(Enum):
    BLOCKING = "blocking"
    WARNING = "warning"


class ValidationIssue(BaseModel):
    """Problème détecté dans une configuration."""

    rule: str
    message: str
    location: str
    severity: ValidationSeverity = ValidationSeverity.BLOCKING


class ValidationResult(BaseModel):
    """Résultat de validation d'une configuration."""

    valid: bool
    errors: List[ValidationIssue] = []
    warnings: List[ValidationIssue] = []
    checked_at: datetime


# ══════════════════════════════════════════════════════════════════════════════
# CONFIGURATION
# ══════════════════════════════════════════════════════════════════════════════


class HashingConfig(BaseModel):
    """Paramètres du hachage des mots de passe staff."""

    scheme: HashingScheme = HashingScheme.PBKDF2_SHA256
    iterations: int = Field(default=390000, ge=1000)
    salt_bytes: int = Field(default=16, ge=8, le=64)


class SessionConfig(BaseModel):
    """Paramètres du Session Manager."""

    bootstrap_username: str = Field(default="aymen", min_length=1)
    init_timeout_seconds: Optional[float] = Field(default=None, gt=0)


class PersistenceConfig(BaseModel):
    """Emplacement du cache de session staff."""

    session_file: str = ".autoloc/staff_session.json"


class LoggingSettings(BaseModel):
    min_level: str = "INFO"


class IdentityProviderConfig(BaseModel):
    """Vérification des jetons de session du fournisseur d'identité client."""

    jwt_secret: Optional[str] = None
    audience: str = "authenticated"
    algorithms: List[str] = ["HS256"]
    leeway_seconds: int = Field(default=0, ge=0)


class CredentialStoreConfig(BaseModel):
    """Connexion au store des comptes staff (None = store en mémoire)."""

    dsn: Optional[str] = None
    table: str = "staff_accounts"
    connect_timeout_seconds: float = Field(default=10.0, gt=0)


class RouteConfig(BaseModel):
    """Route nommée et ses exigences d'accès."""

    name: str = Field(min_length=1)
    path: str = Field(min_length=1)
    requires_auth: bool = False
    requires_admin: bool = False
    requires_super_admin: bool = False


class AccessConfig(BaseModel):
    """Configuration complète du coeur d'accès."""

    version: str
    session: SessionConfig = Field(default_factory=SessionConfig)
    hashing: HashingConfig = Field(default_factory=HashingConfig)
    persistence: PersistenceConfig = Field(default_factory=PersistenceConfig)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    identity_provider: IdentityProviderConfig = Field(default_factory=IdentityProviderConfig)
    credential_store: CredentialStoreConfig = Field(default_factory=CredentialStoreConfig)
    routes: List[RouteConfig] = []
    targets: Dict[NavigationTarget, str] = {}


# ══════════════════════════════════════════════════════════════════════════════
# INTERFACES
# ══════════════════════════════════════════════════════════════════════════════


class IPasswordHasher(ABC):
    """Représentation non réversible des mots de passe staff."""

    @abstractmethod
    def hash(self, plaintext: str) -> str:
        """
        Calcule l'empreinte d'un mot de passe.

        Returns:
            Empreinte (composants hexadécimaux minuscules)
        """
        pass

    @abstractmethod
    def verify(self, plaintext: str, stored: str) -> bool:
        """Compare en temps constant un mot de passe à une empreinte stockée."""
        pass

    def needs_rehash(self, stored: str) -> bool:
        """Indique si l'empreinte doit être recalculée à la prochaine connexion."""
        return False


class IConfigLoader(ABC):
    """Charge la configuration du coeur d'accès."""

    @abstractmethod
    async def load(self, profile: str) -> AccessConfig:
        """
        Charge la configuration d'un profil.

        Raises:
            ConfigIntegrityError: Fichier absent, YAML invalide ou structure invalide
        """
        pass


class IConfigValidator(ABC):
    """Valide la cohérence d'une configuration chargée."""

    @abstractmethod
    def validate(self, config: AccessConfig) -> ValidationResult:
        """Retourne TOUTES les erreurs (pas fail-fast)."""
        pass
