"""
AUTOLOC Access Core - Logging

Logging JSON structuré avec masquage des données d'identification.
"""

from .interfaces import (
    LogLevel,
    LogEntry,
    LogConfig,
    IStructuredLogger,
    ISensitiveMasker,
)
from .sensitive_masker import SensitiveMasker
from .structured_logger import (
    StructuredLogger,
    MissingRequiredFieldError,
    create_logger,
)

__all__ = [
    "LogLevel",
    "LogEntry",
    "LogConfig",
    "IStructuredLogger",
    "ISensitiveMasker",
    "SensitiveMasker",
    "StructuredLogger",
    "MissingRequiredFieldError",
    "create_logger",
]
