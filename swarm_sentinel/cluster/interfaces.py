"""
Swarm Sentinel - Cluster Interfaces

Deux sources distinctes sur l'état du cluster:
- Le substrat d'orchestration (membres, managers, workloads)
- L'inventaire de provisioning (instances réellement démarrées)

Le substrat peut mentir quand il a perdu son quorum, l'inventaire sert
alors de contre-vérification.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional


class NodeRole(Enum):
    """Rôle d'un noeud, immuable une fois assigné."""

    PRIMARY_MANAGER = "primary-manager"
    SECONDARY_MANAGER = "secondary-manager"
    WORKER = "worker"

    @property
    def is_manager(self) -> bool:
        return self is not NodeRole.WORKER


class MembershipStatus(Enum):
    """Statut d'un membre vu par le substrat."""

    READY = "ready"
    DOWN = "down"
    UNREACHABLE = "unreachable"


class LocalMembership(Enum):
    """Appartenance du noeud local au substrat."""

    INACTIVE = "inactive"
    WORKER = "worker"
    MANAGER = "manager"


class WorkloadNotFoundError(Exception):
    """Workload absent du substrat."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Workload not found: {name}")


def required_quorum(manager_count: int) -> int:
    """Quorum Raft: floor(managers / 2) + 1."""
    return max(manager_count, 0) // 2 + 1


@dataclass(frozen=True)
class ClusterNode:
    """Membre du cluster."""

    node_id: str
    hostname: str
    address: Optional[str]
    is_manager: bool
    status: MembershipStatus
    availability: str = "active"
    is_leader: bool = False

    @property
    def available(self) -> bool:
        return self.status is MembershipStatus.READY and self.availability == "active"


@dataclass(frozen=True)
class ClusterView:
    """Instantané des membres du cluster et quantités dérivées."""

    nodes: List[ClusterNode] = field(default_factory=list)

    @property
    def total_nodes(self) -> int:
        return len(self.nodes)

    @property
    def manager_count(self) -> int:
        return sum(1 for n in self.nodes if n.is_manager)

    @property
    def ready_manager_count(self) -> int:
        return sum(1 for n in self.nodes if n.is_manager and n.status is MembershipStatus.READY)

    @property
    def available_node_count(self) -> int:
        return sum(1 for n in self.nodes if n.available)

    @property
    def required_quorum(self) -> int:
        return required_quorum(self.manager_count)

    @property
    def has_quorum(self) -> bool:
        return self.manager_count >= 1 and self.ready_manager_count >= self.required_quorum


@dataclass(frozen=True)
class WorkloadStatus:
    """Réplicas désirés et observés d'un workload."""

    name: str
    desired: int
    running: int


@dataclass(frozen=True)
class JoinTokens:
    """Jetons de join du cluster."""

    manager: str
    worker: str

    def for_role(self, role: NodeRole) -> str:
        return self.manager if role.is_manager else self.worker


class ISubstrate(ABC):
    """Contrôle du substrat d'orchestration (swarm)."""

    @abstractmethod
    async def ping(self) -> bool:
        """True si le démon répond."""
        pass

    @abstractmethod
    async def local_membership(self) -> LocalMembership:
        """Appartenance du noeud local au cluster."""
        pass

    @abstractmethod
    async def membership(self) -> ClusterView:
        """
        Membres du cluster vus par le leader.

        Raises:
            TransientUnavailable: Si le substrat refuse la requête (pas de leader)
        """
        pass

    @abstractmethod
    async def init_cluster(self, advertise_address: str, force_new_cluster: bool = False) -> None:
        """
        Initialise un cluster dont ce noeud est le seul manager.

        force_new_cluster repart de l'état local et abandonne les autres managers.
        """
        pass

    @abstractmethod
    async def join(self, manager_address: str, token: str) -> None:
        """Rejoint le cluster via un manager."""
        pass

    @abstractmethod
    async def join_tokens(self) -> JoinTokens:
        """Jetons de join courants."""
        pass

    @abstractmethod
    async def rotate_join_tokens(self) -> JoinTokens:
        """Régénère les deux jetons de join et les retourne."""
        pass

    @abstractmethod
    async def list_workloads(self) -> Dict[str, WorkloadStatus]:
        """Workloads connus du substrat, par nom."""
        pass

    @abstractmethod
    async def scale_workload(self, name: str, replicas: int) -> None:
        pass

    @abstractmethod
    async def restart_workload(self, name: str) -> None:
        """Redémarrage forcé (nouvelles tâches, même spécification)."""
        pass

    @abstractmethod
    async def deploy_stack(self, compose_file: str, stack_name: str, env: Dict[str, str]) -> None:
        """Déploie ou met à jour la stack sur place."""
        pass


class IInventory(ABC):
    """Inventaire du provisioning (indépendant du substrat)."""

    @abstractmethod
    async def running_instances(self, name_pattern: str) -> List[str]:
        """
        Noms des instances démarrées dont le nom correspond à name_pattern.

        Args:
            name_pattern: Expression régulière sur le nom d'instance
        """
        pass

    @abstractmethod
    async def instance_address(self, name: str) -> Optional[str]:
        """Adresse interne de l'instance, ou None si inconnue."""
        pass


class INodeMetadata(ABC):
    """Métadonnées du noeud local (attributs posés au provisioning)."""

    @abstractmethod
    async def get_attribute(self, key: str) -> Optional[str]:
        """Valeur de l'attribut, ou None s'il n'existe pas."""
        pass

    @abstractmethod
    async def hostname(self) -> str:
        pass

    @abstractmethod
    async def own_address(self) -> str:
        """Adresse interne du noeud local."""
        pass
