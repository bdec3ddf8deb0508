"""
AUTOLOC Access Core - Persisted Session Store

Cache local de la session staff (actif, rôle, id staff).

Pas de chiffrement ni d'expiration: ce cache évite seulement de
redemander la connexion au rechargement; la session est revérifiée
auprès du store des comptes à l'initialisation.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Dict, Optional

from ..logging import StructuredLogger
from .interfaces import IPersistedSessionStore, PersistedSessionRecord


class InMemorySessionStore(IPersistedSessionStore):
    """Cache de session en mémoire (tests, process éphémères)."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    @property
    def raw(self) -> Dict[str, str]:
        """Copie des clés stockées."""
        return dict(self._data)

    async def read(self) -> PersistedSessionRecord:
        return PersistedSessionRecord.from_mapping(self._data)

    async def write(self, record: PersistedSessionRecord) -> None:
        self._data = record.to_mapping()

    async def clear(self) -> None:
        self._data = {}


class FileSessionStore(IPersistedSessionStore):
    """
    Cache de session dans un fichier JSON.

    Écriture atomique (fichier temporaire puis remplacement) pour qu'un
    arrêt brutal ne laisse jamais un fichier à moitié écrit.

    Example:
        store = FileSessionStore(".autoloc/staff_session.json")
        await store.write(PersistedSessionRecord.for_staff(1, Role.ADMIN))
    """

    def __init__(self, path: str, logger: Optional[StructuredLogger] = None):
        if not path:
            raise ValueError("path cannot be empty")
        self._path = Path(path)
        self._logger = logger

    @property
    def path(self) -> Path:
        return self._path

    async def read(self) -> PersistedSessionRecord:
        """
        Lit le cache.

        Un fichier absent donne un cache inactif; un fichier illisible
        est supprimé et donne aussi un cache inactif.
        """
        if not self._path.exists():
            return PersistedSessionRecord()

        try:
            with open(self._path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            if self._logger:
                self._logger.warn("Unreadable session cache discarded", path=str(self._path), error=str(e))
            await self.clear()
            return PersistedSessionRecord()

        if not isinstance(data, dict):
            await self.clear()
            return PersistedSessionRecord()

        return PersistedSessionRecord.from_mapping(data)

    async def write(self, record: PersistedSessionRecord) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self._path.parent, prefix=".session-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(record.to_mapping(), f)
            os.replace(tmp_path, self._path)
        except OSError:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    async def clear(self) -> None:
        try:
            self._path.unlink()
        except FileNotFoundError:
            pass
