"""
Swarm Sentinel - Network

Appels externes bornés:
- Timeout par type d'appel (substrat, inventaire, stockage, recherche, metadata)
- Retry avec budget fixe ou backoff exponentiel
"""

from .interfaces import (
    # Enums
    CallType,
    # Data classes
    RetryConfig,
    RetryResult,
    # Interfaces
    ITimeoutManager,
    IRetryHandler,
)
from .timeout_manager import (
    TimeoutManager,
    CallTimeoutError,
    InvalidTimeoutError,
)
from .retry_handler import RetryHandler

__all__ = [
    # Enums
    "CallType",
    # Data classes
    "RetryConfig",
    "RetryResult",
    # Interfaces
    "ITimeoutManager",
    "IRetryHandler",
    # Implementations
    "TimeoutManager",
    "RetryHandler",
    # Exceptions
    "CallTimeoutError",
    "InvalidTimeoutError",
]
