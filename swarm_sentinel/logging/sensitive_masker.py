"""
Swarm Sentinel - Sensitive Masker

Masquage des secrets avant écriture dans les logs: valeurs des clés
sensibles et jetons de join swarm (SWMTKN-...) dans les chaînes libres.
"""

import re
from typing import Any, Dict, List, Optional

from .interfaces import ISensitiveMasker


class SensitiveMasker(ISensitiveMasker):
    """
    Masquage récursif des données sensibles.

    Example:
        masker = SensitiveMasker()
        masker.mask({"manager_token": "SWMTKN-1-abc"})
        # {"manager_token": "***MASKED***"}
        masker.mask({"cmd": "docker swarm join --token SWMTKN-1-abc 10.0.0.2:2377"})
        # {"cmd": "docker swarm join --token ***MASKED*** 10.0.0.2:2377"}
    """

    JOIN_TOKEN_RE = re.compile(r"SWMTKN-[A-Za-z0-9-]+")

    def __init__(self, additional_patterns: Optional[List[str]] = None) -> None:
        """
        Args:
            additional_patterns: Patterns de clés supplémentaires à masquer
        """
        self._patterns: List[str] = [p.lower() for p in self.SENSITIVE_PATTERNS]
        for pattern in additional_patterns or []:
            if pattern and pattern.lower() not in self._patterns:
                self._patterns.append(pattern.lower())

    @property
    def patterns(self) -> List[str]:
        """Retourne les patterns sensibles configurés."""
        return list(self._patterns)

    def mask(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Masque récursivement toutes les données sensibles.

        Comportement:
            - Clés contenant un pattern sensible → valeur masquée
            - Chaînes → jetons SWMTKN remplacés
            - dict / list → récursion

        Args:
            data: Dictionnaire à masquer

        Returns:
            Copie avec données sensibles masquées
        """
        if not isinstance(data, dict):
            return data

        result: Dict[str, Any] = {}
        for key, value in data.items():
            if self.is_sensitive_key(str(key)):
                result[key] = self.MASK_VALUE
            else:
                result[key] = self._mask_value(value)
        return result

    def _mask_value(self, value: Any) -> Any:
        if isinstance(value, dict):
            return self.mask(value)
        if isinstance(value, (list, tuple)):
            return [self._mask_value(item) for item in value]
        if isinstance(value, str):
            return self.mask_string(value)
        return value

    def mask_string(self, value: str) -> str:
        """
        Remplace chaque jeton de join swarm par MASK_VALUE.

        Args:
            value: Chaîne libre (message, commande, sortie CLI)

        Returns:
            Chaîne nettoyée
        """
        return self.JOIN_TOKEN_RE.sub(self.MASK_VALUE, value)

    def is_sensitive_key(self, key: str) -> bool:
        """
        Vérifie si clé contient un pattern sensible (insensible à la casse).

        Args:
            key: Nom de la clé à vérifier

        Returns:
            True si clé contient pattern sensible
        """
        if not key:
            return False

        key_lower = key.lower()
        return any(pattern in key_lower for pattern in self._patterns)
