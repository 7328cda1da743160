"""
Swarm Sentinel - Retry Handler

Retries bornés: backoff exponentiel pour les appels ponctuels, intervalle
fixe pour les attentes longues (jeton de join, adresse du primaire).
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional

from swarm_sentinel.core.exceptions import RecoverableTimeout

from .interfaces import IRetryHandler, RetryConfig, RetryResult

Sleeper = Callable[[float], Awaitable[None]]


class RetryHandler(IRetryHandler):
    """
    Gestion des retries avec budget borné.

    Example:
        handler = RetryHandler()
        token = await handler.run_with_budget(
            "join token wait",
            storage.read_join_token,
            config=RetryConfig.fixed(attempts=60, interval=10.0),
        )
    """

    def __init__(self, default_config: Optional[RetryConfig] = None, sleep: Optional[Sleeper] = None) -> None:
        """
        Args:
            default_config: Configuration par défaut (optionnel)
            sleep: Fonction d'attente injectable (tests)
        """
        self._default_config = default_config or RetryConfig()
        self._sleep = sleep or asyncio.sleep
        self._retry_stats: Dict[str, int] = {
            "total_retries": 0,
            "successful_retries": 0,
            "failed_retries": 0,
        }

    async def execute_with_retry(
        self,
        func: Callable[..., Any],
        *args: Any,
        config: Optional[RetryConfig] = None,
        **kwargs: Any,
    ) -> RetryResult:
        """
        Exécute func jusqu'à max_attempts fois.

        Une erreur non retryable arrête immédiatement les tentatives.

        Returns:
            RetryResult avec succès/échec et détails
        """
        retry_config = config or self._default_config
        last_error: Optional[Exception] = None
        total_delay: float = 0.0

        for attempt in range(retry_config.max_attempts):
            try:
                if asyncio.iscoroutinefunction(func):
                    result = await func(*args, **kwargs)
                else:
                    result = func(*args, **kwargs)

                if attempt > 0:
                    self._retry_stats["successful_retries"] += 1

                return RetryResult(
                    success=True,
                    result=result,
                    attempts=attempt + 1,
                    total_delay=total_delay,
                    last_error=None,
                )

            except Exception as e:
                last_error = e
                self._retry_stats["total_retries"] += 1

                if not self.is_retryable(e, retry_config):
                    return RetryResult(
                        success=False,
                        result=None,
                        attempts=attempt + 1,
                        total_delay=total_delay,
                        last_error=e,
                    )

                if attempt < retry_config.max_attempts - 1:
                    delay = self.calculate_delay(attempt, retry_config)
                    total_delay += delay
                    await self._sleep(delay)

        self._retry_stats["failed_retries"] += 1

        return RetryResult(
            success=False,
            result=None,
            attempts=retry_config.max_attempts,
            total_delay=total_delay,
            last_error=last_error,
        )

    async def run_with_budget(
        self,
        operation: str,
        func: Callable[..., Any],
        *args: Any,
        config: Optional[RetryConfig] = None,
        **kwargs: Any,
    ) -> Any:
        """
        Comme execute_with_retry, mais lève au lieu de retourner un échec.

        Raises:
            RecoverableTimeout: Si le budget de tentatives est épuisé
            Exception: L'erreur d'origine si elle n'est pas retryable
        """
        retry_config = config or self._default_config
        result = await self.execute_with_retry(func, *args, config=retry_config, **kwargs)
        if result.success:
            return result.result

        if result.last_error is not None and not self.is_retryable(result.last_error, retry_config):
            raise result.last_error
        raise RecoverableTimeout(operation, result.attempts, result.last_error)

    def calculate_delay(self, attempt: int, config: RetryConfig) -> float:
        """
        Calcule le délai avant la tentative suivante.

        Formula: min(initial * (base ^ attempt), max_delay)

        Args:
            attempt: Numéro de tentative (0-indexed)
            config: Configuration retry

        Returns:
            Délai en secondes
        """
        delay = config.initial_delay * (config.exponential_base**attempt)
        return min(delay, config.max_delay)

    def is_retryable(self, error: Exception, config: RetryConfig) -> bool:
        """True si l'erreur fait partie de retryable_exceptions."""
        return isinstance(error, config.retryable_exceptions)

    def get_retry_stats(self) -> Dict[str, int]:
        """Retourne les statistiques de retry."""
        return dict(self._retry_stats)

    def reset_stats(self) -> None:
        """Remet les statistiques à zéro."""
        self._retry_stats = {
            "total_retries": 0,
            "successful_retries": 0,
            "failed_retries": 0,
        }
