"""
Swarm Sentinel - Core

Configuration du contrôleur et taxonomie des erreurs.
"""

from .config_loader import ConfigLoader
from .exceptions import (
    CapacityMismatch,
    ConfigurationError,
    ConfigurationMissing,
    QuorumLost,
    RecoverableTimeout,
    SentinelError,
    TransientUnavailable,
)
from .interfaces import (
    BreakerTier,
    CallTimeouts,
    CapacityTables,
    ControllerConfig,
    HeapTier,
    IConfigLoader,
    SearchThresholds,
    StorageSettings,
    ThreadPoolTable,
)

__all__ = [
    # Configuration
    "ControllerConfig",
    "CapacityTables",
    "HeapTier",
    "BreakerTier",
    "ThreadPoolTable",
    "CallTimeouts",
    "StorageSettings",
    "SearchThresholds",
    "IConfigLoader",
    "ConfigLoader",
    # Exceptions
    "SentinelError",
    "RecoverableTimeout",
    "TransientUnavailable",
    "QuorumLost",
    "ConfigurationMissing",
    "CapacityMismatch",
    "ConfigurationError",
]
