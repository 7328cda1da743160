"""
Swarm Sentinel - Timeout Manager

Timeout borné pour chaque appel externe: un appel bloqué ne doit jamais
retenir une boucle de surveillance au-delà de son cycle.
"""

import asyncio
from typing import Awaitable, Dict, Optional, TypeVar

from swarm_sentinel.core.exceptions import TransientUnavailable
from swarm_sentinel.core.interfaces import CallTimeouts

from .interfaces import CallType, ITimeoutManager

T = TypeVar("T")


class CallTimeoutError(TransientUnavailable):
    """Appel externe interrompu par son timeout."""

    def __init__(self, call_type: CallType, timeout_value: float, operation: str = "") -> None:
        self.call_type = call_type
        self.timeout_value = timeout_value
        self.operation = operation
        label = operation or call_type.value
        super().__init__(call_type.value, f"{label} timed out after {timeout_value}s")


class InvalidTimeoutError(Exception):
    """Configuration timeout invalide."""

    pass


class TimeoutManager(ITimeoutManager):
    """Gestion centralisée des timeouts par type d'appel."""

    MAX_CALL_TIMEOUT: float = 300.0

    DEFAULT_TIMEOUTS: Dict[CallType, float] = {
        CallType.SUBSTRATE: 15.0,
        CallType.INVENTORY: 30.0,
        CallType.STORAGE: 10.0,
        CallType.SEARCH: 10.0,
        CallType.METADATA: 5.0,
    }

    def __init__(self, timeouts: Optional[Dict[CallType, float]] = None) -> None:
        """
        Args:
            timeouts: Timeouts par type d'appel (défauts pour les types absents)

        Raises:
            InvalidTimeoutError: Si une valeur est hors bornes
        """
        self._timeouts: Dict[CallType, float] = dict(self.DEFAULT_TIMEOUTS)
        for call_type, value in (timeouts or {}).items():
            self.set_timeout(call_type, value)

    @classmethod
    def from_config(cls, config: CallTimeouts) -> "TimeoutManager":
        """Construit le gestionnaire depuis la section timeouts de la configuration."""
        return cls({call_type: getattr(config, call_type.value) for call_type in CallType})

    def get_timeout(self, call_type: CallType) -> float:
        """Retourne le timeout configuré en secondes."""
        return self._timeouts[call_type]

    def set_timeout(self, call_type: CallType, value: float) -> None:
        """
        Configure le timeout d'un type d'appel.

        Raises:
            InvalidTimeoutError: Si valeur <= 0 ou > MAX_CALL_TIMEOUT
        """
        if not self.validate_timeout(value):
            raise InvalidTimeoutError(
                f"{call_type.value} timeout ({value}s) must be in ]0, {self.MAX_CALL_TIMEOUT}]"
            )
        self._timeouts[call_type] = value

    def validate_timeout(self, value: float) -> bool:
        """True si 0 < value <= MAX_CALL_TIMEOUT."""
        return 0 < value <= self.MAX_CALL_TIMEOUT

    async def call(self, call_type: CallType, awaitable: Awaitable[T], operation: str = "") -> T:
        """
        Exécute un appel externe sous timeout.

        Args:
            call_type: Type d'appel (choisit le timeout)
            awaitable: Coroutine de l'appel
            operation: Libellé pour les messages d'erreur

        Returns:
            Résultat de l'appel

        Raises:
            CallTimeoutError: Si le timeout est dépassé
        """
        timeout = self._timeouts[call_type]
        try:
            return await asyncio.wait_for(awaitable, timeout=timeout)
        except asyncio.TimeoutError:
            raise CallTimeoutError(call_type, timeout, operation)
