"""
AUTOLOC Access Core - Sensitive Masker

Masquage des mots de passe, empreintes, jetons et adresses email
avant écriture dans les logs.
"""

from typing import Any, Dict, Iterable, List

from .interfaces import ISensitiveMasker


class SensitiveMasker(ISensitiveMasker):
    """
    Masquage récursif (dictionnaires et listes imbriqués).

    Example:
        masker = SensitiveMasker()
        masker.mask({"password": "secret123", "email": "aymen@loc.ma"})
        # {"password": "***MASKED***", "email": "***@loc.ma"}
    """

    def __init__(self, additional_patterns: Iterable[str] = ()) -> None:
        self._patterns: List[str] = []
        for pattern in (*self.SENSITIVE_PATTERNS, *additional_patterns):
            normalized = (pattern or "").strip().lower()
            if normalized and normalized not in self._patterns:
                self._patterns.append(normalized)

    @property
    def patterns(self) -> List[str]:
        return list(self._patterns)

    def mask(self, data: Dict[str, Any]) -> Dict[str, Any]:
        if not isinstance(data, dict):
            return data
        return {key: self._mask_field(key, value) for key, value in data.items()}

    def _mask_field(self, key: str, value: Any) -> Any:
        if self.is_sensitive_key(key):
            return self.MASK_VALUE
        if isinstance(value, str) and self._matches(key, self.PARTIAL_PATTERNS):
            return self.mask_email(value)
        return self._walk(value)

    def _walk(self, value: Any) -> Any:
        if isinstance(value, dict):
            return self.mask(value)
        if isinstance(value, (list, tuple)):
            return [self._walk(item) for item in value]
        return value

    def mask_email(self, value: str) -> str:
        """Garde le domaine: client@autoloc.ma devient ***@autoloc.ma."""
        _, at, domain = value.rpartition("@")
        if not at:
            return self.MASK_VALUE
        return f"***@{domain}"

    def is_sensitive_key(self, key: str) -> bool:
        return bool(key) and self._matches(key, self._patterns)

    @staticmethod
    def _matches(key: str, patterns: Iterable[str]) -> bool:
        lowered = (key or "").lower()
        return any(p in lowered for p in patterns)

    def add_pattern(self, pattern: str) -> None:
        """
        Raises:
            ValueError: Pattern vide
        """
        normalized = (pattern or "").strip().lower()
        if not normalized:
            raise ValueError("Pattern cannot be empty")
        if normalized not in self._patterns:
            self._patterns.append(normalized)
