"""
Swarm Sentinel - Network Interfaces

Interfaces pour les appels externes du contrôleur:
- Timeout borné par type d'appel (substrat, inventaire, stockage, moteur de recherche)
- Retry borné avec délai fixe ou exponentiel
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, TypeVar

from swarm_sentinel.core.exceptions import TransientUnavailable

T = TypeVar("T")


class CallType(Enum):
    """Familles d'appels externes, chacune avec son propre timeout."""

    SUBSTRATE = "substrate"
    INVENTORY = "inventory"
    STORAGE = "storage"
    SEARCH = "search"
    METADATA = "metadata"


@dataclass
class RetryConfig:
    """
    Configuration des retries.

    exponential_base=1.0 donne un intervalle fixe (attente du jeton de join).
    """

    max_attempts: int = 3
    initial_delay: float = 1.0
    max_delay: float = 10.0
    exponential_base: float = 2.0
    retryable_exceptions: tuple = field(
        default_factory=lambda: (ConnectionError, TimeoutError, TransientUnavailable)
    )

    @classmethod
    def fixed(cls, attempts: int, interval: float, retryable: Optional[tuple] = None) -> "RetryConfig":
        """Budget à intervalle fixe: attempts tentatives espacées de interval secondes."""
        config = cls(
            max_attempts=attempts,
            initial_delay=interval,
            max_delay=interval,
            exponential_base=1.0,
        )
        if retryable is not None:
            config.retryable_exceptions = retryable
        return config


@dataclass
class RetryResult:
    """Résultat d'une opération avec retry."""

    success: bool
    result: Optional[Any]
    attempts: int
    total_delay: float
    last_error: Optional[Exception]


class ITimeoutManager(ABC):
    """Interface gestion timeouts."""

    @abstractmethod
    def get_timeout(self, call_type: CallType) -> float:
        """
        Retourne le timeout configuré pour un type d'appel.

        Args:
            call_type: Type d'appel externe

        Returns:
            Valeur du timeout en secondes
        """
        pass

    @abstractmethod
    def set_timeout(self, call_type: CallType, value: float) -> None:
        """
        Configure le timeout d'un type d'appel.

        Raises:
            InvalidTimeoutError: Si valeur hors bornes
        """
        pass

    @abstractmethod
    async def call(self, call_type: CallType, awaitable: Awaitable[T], operation: str = "") -> T:
        """
        Exécute un appel externe sous timeout.

        Raises:
            CallTimeoutError: Si le timeout est dépassé
        """
        pass


class IRetryHandler(ABC):
    """Interface gestion retries."""

    @abstractmethod
    async def execute_with_retry(
        self,
        func: Callable[..., Any],
        *args: Any,
        config: Optional[RetryConfig] = None,
        **kwargs: Any,
    ) -> RetryResult:
        """
        Exécute avec retry.

        Args:
            func: Fonction à exécuter (sync ou async)
            *args: Arguments positionnels
            config: Configuration retry optionnelle
            **kwargs: Arguments nommés

        Returns:
            RetryResult avec succès/échec et détails
        """
        pass

    @abstractmethod
    def calculate_delay(self, attempt: int, config: RetryConfig) -> float:
        """
        Calcule le délai avant la tentative suivante.

        Args:
            attempt: Numéro de tentative (0-indexed)
            config: Configuration retry

        Returns:
            Délai en secondes
        """
        pass

    @abstractmethod
    def is_retryable(self, error: Exception, config: RetryConfig) -> bool:
        """
        Vérifie si erreur est retryable.

        Args:
            error: Exception à vérifier
            config: Configuration retry

        Returns:
            True si retryable
        """
        pass
