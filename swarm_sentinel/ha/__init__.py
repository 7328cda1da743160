"""
Swarm Sentinel - Haute Disponibilité

Boucles d'auto-réparation du cluster:
- Quorum managers et récupération forcée (30s)
- Réconciliation des réplicas des workloads (60s)
- Sonde de santé du moteur de recherche (15s)
"""

from .interfaces import (
    # Enums
    Severity,
    SearchStatus,
    WorkloadHealth,
    QuorumOutcome,
    # Data classes
    Workload,
    HealthFinding,
    HealthSample,
    QuorumCheckResult,
    ReconcileReport,
    # Interfaces
    IQuorumMonitor,
    IServiceReconciler,
    ISearchHealthMonitor,
)
from .periodic import MutationGuard, PeriodicTask
from .quorum_monitor import QuorumMonitor
from .service_reconciler import ServiceReconciler, disk_usage_percent
from .search_health_monitor import SearchHealthMonitor
from .supervisor import Supervisor

__all__ = [
    # Enums
    "Severity",
    "SearchStatus",
    "WorkloadHealth",
    "QuorumOutcome",
    # Data classes
    "Workload",
    "HealthFinding",
    "HealthSample",
    "QuorumCheckResult",
    "ReconcileReport",
    # Interfaces
    "IQuorumMonitor",
    "IServiceReconciler",
    "ISearchHealthMonitor",
    # Implementations
    "MutationGuard",
    "PeriodicTask",
    "QuorumMonitor",
    "ServiceReconciler",
    "SearchHealthMonitor",
    "Supervisor",
    # Functions
    "disk_usage_percent",
]
