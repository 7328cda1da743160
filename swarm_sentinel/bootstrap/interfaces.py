"""
Swarm Sentinel - Bootstrap Interfaces

Machine à états du démarrage d'un noeud:
    DETECT_ROLE → PROVISION_DEPENDENCIES → {PRIMARY_INIT | SECONDARY_JOIN}
    → DEPLOY_WORKLOADS → READY

FAILED est terminal et atteignable depuis chaque étape.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

from swarm_sentinel.capacity import CapacityPlan
from swarm_sentinel.cluster.interfaces import NodeRole


class BootstrapState(Enum):
    """État du bootstrapper."""

    DETECT_ROLE = "detect_role"
    PROVISION_DEPENDENCIES = "provision_dependencies"
    PRIMARY_INIT = "primary_init"
    SECONDARY_JOIN = "secondary_join"
    DEPLOY_WORKLOADS = "deploy_workloads"
    READY = "ready"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (BootstrapState.READY, BootstrapState.FAILED)


class StepOutcome(Enum):
    """Issue d'une étape, consommée par la table de transitions."""

    OK = "ok"
    PRIMARY = "primary"
    SECONDARY = "secondary"
    SKIP_DEPLOY = "skip_deploy"
    FAILED = "failed"


@dataclass(frozen=True)
class NodeAssignment:
    """Rôle assigné au noeud par ses métadonnées (immuable)."""

    role: NodeRole
    deployment_name: str
    total_nodes: int
    instance_name: str
    address: str


@dataclass
class BootstrapResult:
    """Bilan d'un bootstrap."""

    state: BootstrapState
    assignment: Optional[NodeAssignment] = None
    history: List[Tuple[BootstrapState, StepOutcome]] = field(default_factory=list)
    error: Optional[str] = None
    plan: Optional[CapacityPlan] = None

    @property
    def success(self) -> bool:
        return self.state is BootstrapState.READY


class INodeBootstrapper(ABC):
    """Démarrage d'un noeud jusqu'à READY ou FAILED."""

    @abstractmethod
    async def run(self) -> BootstrapResult:
        """
        Exécute la machine à états jusqu'à un état terminal.

        Returns:
            BootstrapResult, READY ou FAILED (jamais relancé automatiquement)
        """
        pass
