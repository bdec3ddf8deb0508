"""
AUTOLOC Access Core - Config Loader

Charge la configuration depuis un fichier YAML, la valide (structure via
pydantic, cohérence via ConfigValidator) et retourne un AccessConfig.
"""

from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import ValidationError as PydanticValidationError

from .config_validator import ConfigValidator
from .interfaces import AccessConfig, IConfigLoader, IConfigValidator


class ConfigIntegrityError(Exception):
    """Configuration absente, illisible ou incohérente."""

    pass


class ConfigLoader(IConfigLoader):
    """Chargement des configurations depuis fichiers YAML."""

    def __init__(
        self,
        configs_path: str = "fixtures/configs",
        validator: Optional[IConfigValidator] = None,
    ):
        self.configs_path = Path(configs_path)
        self._validator = validator or ConfigValidator()

    async def load(self, profile: str) -> AccessConfig:
        """
        Charge la config d'un profil (<configs_path>/<profile>.yaml).

        Args:
            profile: Nom du profil

        Returns:
            Configuration validée

        Raises:
            ConfigIntegrityError: Fichier inexistant, YAML invalide ou config incohérente
        """
        config_file = self.configs_path / f"{profile}.yaml"

        if not config_file.exists():
            raise ConfigIntegrityError(f"Configuration not found for profile: {profile}")

        try:
            with open(config_file, "r", encoding="utf-8") as f:
                raw = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigIntegrityError(f"YAML parsing error: {e}")
        except OSError as e:
            raise ConfigIntegrityError(f"Cannot read configuration file: {e}")

        return self.parse(raw)

    def parse(self, raw: Any) -> AccessConfig:
        """
        Valide une configuration déjà décodée.

        Raises:
            ConfigIntegrityError: Structure invalide ou règle de cohérence bloquante
        """
        if not isinstance(raw, dict):
            raise ConfigIntegrityError("Configuration must be a YAML mapping")

        if "version" not in raw:
            raise ConfigIntegrityError("Missing required field: version")

        try:
            config = AccessConfig.model_validate(self._normalize(raw))
        except PydanticValidationError as e:
            raise ConfigIntegrityError(f"Invalid configuration structure: {e}")

        result = self._validator.validate(config)
        if not result.valid:
            details = "; ".join(f"{err.rule} at {err.location}: {err.message}" for err in result.errors)
            raise ConfigIntegrityError(f"Inconsistent configuration: {details}")

        return config

    @staticmethod
    def _normalize(raw: Dict[str, Any]) -> Dict[str, Any]:
        # YAML peut décoder la version "1.0" en float
        normalized = dict(raw)
        if not isinstance(normalized["version"], str):
            normalized["version"] = str(normalized["version"])
        return normalized
