"""
AUTOLOC Access Core - Logging Interfaces

Contrats du logging structuré utilisé par le coeur d'accès.

Chaque entrée porte: timestamp ISO 8601 UTC, niveau, correlation_id,
composant émetteur et message. Les mots de passe, empreintes et jetons
ne sont jamais écrits en clair.
"""

import json
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class LogLevel(Enum):
    """Niveaux de log, du moins au plus sévère."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"

    @classmethod
    def get_priority(cls, level: "LogLevel") -> int:
        return list(cls).index(level)

    @classmethod
    def from_name(cls, name: str) -> "LogLevel":
        """Résout un niveau depuis son nom (insensible à la casse, WARNING accepté)."""
        normalized = (name or "").strip().upper()
        return cls("WARN" if normalized == "WARNING" else normalized)


@dataclass
class LogEntry:
    """Événement journalisé, sérialisé en une ligne JSON."""

    timestamp: str
    level: LogLevel
    correlation_id: str
    component: str
    message: str
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["level"] = self.level.value
        if not self.extra:
            del payload["extra"]
        return payload

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, default=str)


@dataclass
class LogConfig:
    """
    Réglages du logger.

    Attributes:
        min_level: Niveau minimum émis
        include_extra: Conserver les champs contextuels
        mask_sensitive: Passer les champs contextuels au masker
        max_buffered_entries: Taille du tampon des dernières entrées
        default_correlation_id: Corrélation appliquée faute de mieux
    """

    min_level: LogLevel = LogLevel.INFO
    include_extra: bool = True
    mask_sensitive: bool = True
    max_buffered_entries: int = 1000
    default_correlation_id: Optional[str] = None


class IStructuredLogger(ABC):
    """Logger JSON; les raccourcis par niveau délèguent à log()."""

    @abstractmethod
    def log(
        self,
        level: LogLevel,
        message: str,
        correlation_id: Optional[str] = None,
        **extra: Any,
    ) -> Optional[LogEntry]:
        """
        Émet une entrée.

        Returns:
            L'entrée émise, ou None si sous le niveau minimum
        """
        pass

    @abstractmethod
    def get_entries(self) -> List[LogEntry]:
        pass

    def debug(self, message: str, **extra: Any) -> Optional[LogEntry]:
        return self.log(LogLevel.DEBUG, message, **extra)

    def info(self, message: str, **extra: Any) -> Optional[LogEntry]:
        return self.log(LogLevel.INFO, message, **extra)

    def warn(self, message: str, **extra: Any) -> Optional[LogEntry]:
        return self.log(LogLevel.WARN, message, **extra)

    def error(self, message: str, **extra: Any) -> Optional[LogEntry]:
        return self.log(LogLevel.ERROR, message, **extra)


class ISensitiveMasker(ABC):
    """Masquage des données d'identification avant écriture."""

    # Sous-chaînes de clé dont la valeur n'est jamais écrite
    SENSITIVE_PATTERNS: Tuple[str, ...] = (
        "password",
        "passwd",
        "pwd",
        "plaintext",
        "hash",
        "digest",
        "salt",
        "token",
        "secret",
        "jwt",
        "credential",
        "authorization",
        "bearer",
        "cookie",
        "dsn",
    )

    # Masquage partiel: on garde le domaine pour le diagnostic
    PARTIAL_PATTERNS: Tuple[str, ...] = ("email",)

    MASK_VALUE: str = "***MASKED***"

    @abstractmethod
    def mask(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Retourne une copie de data dont les valeurs sensibles sont masquées."""
        pass

    @abstractmethod
    def is_sensitive_key(self, key: str) -> bool:
        pass

    @abstractmethod
    def add_pattern(self, pattern: str) -> None:
        pass
