"""
Swarm Sentinel - Config Loader Implementation
Charge la configuration YAML du contrôleur et applique les surcharges d'environnement.
"""

import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from pydantic import ValidationError

from .exceptions import ConfigurationError
from .interfaces import ControllerConfig, IConfigLoader


class ConfigLoader(IConfigLoader):
    """Chargement de la configuration depuis un fichier YAML et l'environnement."""

    ENV_PREFIX = "SENTINEL_"

    def __init__(self, config_path: Optional[str] = None, environ: Optional[Mapping[str, str]] = None):
        self.config_path = Path(config_path) if config_path else None
        self._environ = environ if environ is not None else os.environ

    def load(self) -> ControllerConfig:
        """
        Charge la configuration.

        Ordre de priorité: valeurs par défaut < fichier YAML < variables SENTINEL_*.

        Returns:
            Configuration validée

        Raises:
            ConfigurationError: Si fichier inexistant, YAML invalide ou valeurs hors bornes
        """
        raw: Dict[str, Any] = {}
        if self.config_path is not None:
            raw = self._read_file(self.config_path)

        raw.update(self._env_overrides())

        try:
            return ControllerConfig.model_validate(raw)
        except ValidationError as e:
            raise ConfigurationError(f"Configuration invalide: {e}")

    def _read_file(self, path: Path) -> Dict[str, Any]:
        if not path.exists():
            raise ConfigurationError(f"Configuration non trouvée: {path}")

        try:
            with open(path, "r", encoding="utf-8") as f:
                config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Erreur de parsing YAML: {e}")
        except OSError as e:
            raise ConfigurationError(f"Erreur de lecture fichier: {e}")

        if config is None:
            return {}
        if not isinstance(config, dict):
            raise ConfigurationError("Configuration doit être un objet YAML")
        return config

    def _env_overrides(self) -> Dict[str, Any]:
        """Surcharges SENTINEL_<CHAMP> pour les champs de premier niveau."""
        overrides: Dict[str, Any] = {}
        fields = ControllerConfig.model_fields

        for name, value in self._environ.items():
            if not name.startswith(self.ENV_PREFIX):
                continue
            field_name = name[len(self.ENV_PREFIX):].lower()
            if field_name not in fields:
                continue

            annotation = fields[field_name].annotation
            if getattr(annotation, "__origin__", None) is list:
                overrides[field_name] = [item.strip() for item in value.split(",") if item.strip()]
            else:
                overrides[field_name] = value

        return overrides
