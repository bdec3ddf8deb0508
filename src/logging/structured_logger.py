"""
AUTOLOC Access Core - Structured Logger

Une ligne JSON par événement: timestamp UTC, niveau, correlation_id,
composant émetteur, message et champs contextuels masqués.
"""

import sys
import uuid
from collections import deque
from datetime import datetime, timezone
from typing import Any, Callable, Deque, List, Optional

from .interfaces import ISensitiveMasker, IStructuredLogger, LogConfig, LogEntry, LogLevel
from .sensitive_masker import SensitiveMasker


OutputHandler = Callable[[str], None]


class MissingRequiredFieldError(Exception):
    """Entrée de log sans champ obligatoire."""

    def __init__(self, field_name: str) -> None:
        self.field_name = field_name
        super().__init__(f"Required log field missing: {field_name}")


def _to_stderr(line: str) -> None:
    print(line, file=sys.stderr, flush=True)


def _utc_timestamp() -> str:
    # 2025-03-01T09:15:02.481Z
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class StructuredLogger(IStructuredLogger):
    """
    Logger JSON structuré.

    Les dernières entrées restent consultables en mémoire
    (get_entries), dans la limite de max_buffered_entries.

    Example:
        logger = StructuredLogger("autoloc.session")
        logger.info("Staff login succeeded", staff_id=1, role="Admin")
    """

    def __init__(
        self,
        component: str,
        config: Optional[LogConfig] = None,
        masker: Optional[ISensitiveMasker] = None,
        output_handler: Optional[OutputHandler] = None,
    ) -> None:
        """
        Raises:
            ValueError: component vide
        """
        component = (component or "").strip()
        if not component:
            raise ValueError("Logger component cannot be empty")

        self._component = component
        self._config = config or LogConfig()
        self._masker = masker or SensitiveMasker()
        self._write = output_handler or _to_stderr
        self._buffer: Deque[LogEntry] = deque(maxlen=self._config.max_buffered_entries)
        self._correlation_id = self._config.default_correlation_id

    @property
    def component(self) -> str:
        return self._component

    def set_default_correlation(self, correlation_id: Optional[str]) -> None:
        """Corrélation commune des entrées suivantes (None: une par entrée)."""
        self._correlation_id = correlation_id

    def child(self, component: str) -> "StructuredLogger":
        """Logger d'un sous-composant: même config, même masker, même sortie."""
        child = StructuredLogger(
            f"{self._component}.{component}",
            config=self._config,
            masker=self._masker,
            output_handler=self._write,
        )
        child.set_default_correlation(self._correlation_id)
        return child

    def log(
        self,
        level: LogLevel,
        message: str,
        correlation_id: Optional[str] = None,
        **extra: Any,
    ) -> Optional[LogEntry]:
        """
        Raises:
            MissingRequiredFieldError: message vide
        """
        if LogLevel.get_priority(level) < LogLevel.get_priority(self._config.min_level):
            return None
        if not message:
            raise MissingRequiredFieldError("message")

        entry = LogEntry(
            timestamp=_utc_timestamp(),
            level=level,
            correlation_id=correlation_id or self._correlation_id or str(uuid.uuid4()),
            component=self._component,
            message=message,
            extra=self._context(extra),
        )
        self._buffer.append(entry)
        self._write(entry.to_json())
        return entry

    def _context(self, extra: dict) -> dict:
        if not extra or not self._config.include_extra:
            return {}
        if self._config.mask_sensitive:
            return self._masker.mask(extra)
        return dict(extra)

    def get_entries(self) -> List[LogEntry]:
        return list(self._buffer)

    def get_entries_by_level(self, level: LogLevel) -> List[LogEntry]:
        return [entry for entry in self._buffer if entry.level is level]

    def clear_entries(self) -> None:
        self._buffer.clear()


def create_logger(
    component: str,
    min_level: str = "INFO",
    output_handler: Optional[OutputHandler] = None,
) -> StructuredLogger:
    """
    Fabrique un StructuredLogger depuis un niveau exprimé en texte (config YAML).

    Args:
        component: Composant racine
        min_level: Niveau minimum ("DEBUG", "INFO", "WARN"...)
        output_handler: Destination des lignes JSON
    """
    config = LogConfig(min_level=LogLevel.from_name(min_level))
    return StructuredLogger(component, config=config, output_handler=output_handler)
