"""
Swarm Sentinel - Bootstrap

Démarrage d'un noeud: rôle, dépendances, création ou jonction du cluster,
déploiement de la stack.
"""

from .interfaces import (
    # Enums
    BootstrapState,
    StepOutcome,
    # Data classes
    NodeAssignment,
    BootstrapResult,
    # Interfaces
    INodeBootstrapper,
)
from .node_bootstrapper import JOIN_TOKEN_PREFIX, BootstrapError, NodeBootstrapper

__all__ = [
    # Enums
    "BootstrapState",
    "StepOutcome",
    # Data classes
    "NodeAssignment",
    "BootstrapResult",
    # Interfaces
    "INodeBootstrapper",
    # Implementations
    "NodeBootstrapper",
    # Constants
    "JOIN_TOKEN_PREFIX",
    # Exceptions
    "BootstrapError",
]
