"""
Swarm Sentinel - Interfaces Haute Disponibilité

Contrats des trois boucles de surveillance:
- Moniteur de quorum et de split-brain
- Réconciliateur de santé des workloads
- Sonde de santé du moteur de recherche
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from swarm_sentinel.cluster.interfaces import WorkloadStatus


class Severity(Enum):
    """Gravité d'un constat."""

    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"

    @classmethod
    def worst(cls, severities: List["Severity"]) -> "Severity":
        order = [cls.INFO, cls.WARNING, cls.CRITICAL]
        return max(severities, key=order.index, default=cls.INFO)


class SearchStatus(Enum):
    """Statut du cluster de recherche."""

    GREEN = "green"
    YELLOW = "yellow"
    RED = "red"
    UNREACHABLE = "unreachable"

    @classmethod
    def parse(cls, value: str) -> "SearchStatus":
        try:
            return cls(value.lower())
        except ValueError:
            # Statut inconnu traité comme rouge
            return cls.RED


class WorkloadHealth(Enum):
    """Classification d'un workload."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    FAILED = "failed"


class QuorumOutcome(Enum):
    """Issue d'un cycle du moniteur de quorum."""

    HEALTHY = "healthy"
    RECOVERED = "recovered"
    AMBIGUOUS = "ambiguous"
    STALE_INVENTORY = "stale_inventory"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class Workload:
    """Workload suivi: réplicas désirés et observés."""

    name: str
    desired: int
    observed: int

    @classmethod
    def from_status(cls, status: WorkloadStatus) -> "Workload":
        return cls(name=status.name, desired=status.desired, observed=status.running)

    @property
    def health(self) -> WorkloadHealth:
        if self.observed == self.desired:
            return WorkloadHealth.HEALTHY
        if self.observed == 0 and self.desired > 0:
            return WorkloadHealth.FAILED
        return WorkloadHealth.DEGRADED


@dataclass(frozen=True)
class HealthFinding:
    """Constat unitaire de la sonde."""

    check: str
    severity: Severity
    message: str
    value: Optional[float] = None


@dataclass(frozen=True)
class HealthSample:
    """
    Instantané de la sonde moteur de recherche.

    Ajouté à l'historique borné, jamais modifié.
    """

    timestamp: datetime
    status: SearchStatus
    latency_seconds: Optional[float]
    queues: Dict[str, int] = field(default_factory=dict)
    rejections: Dict[str, int] = field(default_factory=dict)
    heap_used_percent: Optional[float] = None
    top_indices: Tuple[str, ...] = ()
    findings: Tuple[HealthFinding, ...] = ()

    @property
    def severity(self) -> Severity:
        return Severity.worst([f.severity for f in self.findings])

    def to_dict(self) -> Dict[str, Any]:
        """Convertit en dict pour sérialisation JSON."""
        return {
            "timestamp": self.timestamp.isoformat(),
            "status": self.status.value,
            "latency_seconds": self.latency_seconds,
            "queues": dict(self.queues),
            "rejections": dict(self.rejections),
            "heap_used_percent": self.heap_used_percent,
            "top_indices": list(self.top_indices),
            "severity": self.severity.value,
            "findings": [
                {"check": f.check, "severity": f.severity.value, "message": f.message}
                for f in self.findings
            ],
        }


@dataclass
class QuorumCheckResult:
    """Résultat d'un cycle du moniteur de quorum."""

    outcome: QuorumOutcome
    manager_count: int = 0
    ready_managers: int = 0
    required: int = 1
    running_instances: Optional[int] = None
    restarted: List[str] = field(default_factory=list)
    epoch: Optional[int] = None


@dataclass
class ReconcileReport:
    """Résultat d'un cycle du réconciliateur."""

    workloads: List[Workload] = field(default_factory=list)
    scaled_down: List[str] = field(default_factory=list)
    restarted: List[str] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)
    purged_documents: int = 0
    # Nombre de noeuds pour lequel la stack a été redéployée dans ce cycle
    redeployed_for: Optional[int] = None
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def actions(self) -> int:
        redeploys = 0 if self.redeployed_for is None else 1
        return len(self.scaled_down) + len(self.restarted) + redeploys


class IQuorumMonitor(ABC):
    """Moniteur de quorum managers."""

    @abstractmethod
    async def check_once(self) -> QuorumCheckResult:
        """
        Exécute un cycle: évaluation du quorum, récupération forcée si ce
        noeud est le seul manager survivant.
        """
        pass


class IServiceReconciler(ABC):
    """Réconciliateur réplicas désirés / observés."""

    @abstractmethod
    async def reconcile_once(self) -> ReconcileReport:
        """Exécute un cycle de réconciliation."""
        pass


class ISearchHealthMonitor(ABC):
    """Sonde en lecture seule du moteur de recherche."""

    @abstractmethod
    async def probe_once(self) -> HealthSample:
        """Exécute une sonde complète et journalise les constats."""
        pass

    @abstractmethod
    def get_history(self, limit: int = 100) -> List[HealthSample]:
        """Derniers échantillons, du plus ancien au plus récent."""
        pass
