"""
Swarm Sentinel - Core Interfaces
Modèle de configuration du contrôleur et contrat de chargement.
"""

import os
from abc import ABC, abstractmethod
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator


# ══════════════════════════════════════════════════════════════════════════════
# TABLES DE DIMENSIONNEMENT
# ══════════════════════════════════════════════════════════════════════════════


class HeapTier(BaseModel):
    """Palier de heap: s'applique à partir de min_nodes noeuds."""

    min_nodes: int = Field(ge=1)
    heap_size: str


class BreakerTier(BaseModel):
    """Palier de circuit breakers (pourcentages du heap), jusqu'à max_nodes inclus."""

    max_nodes: Optional[int] = None
    total: int = Field(ge=1, le=100)
    request: int = Field(ge=1, le=100)
    fielddata: int = Field(ge=1, le=100)
    network: int = Field(ge=1, le=100)


class ThreadPoolTable(BaseModel):
    """Taille des pools par noeud, plafonds et multiplicateurs de file."""

    per_node: dict[str, int] = Field(default_factory=lambda: {"search": 4, "write": 2, "get": 2})
    caps: dict[str, int] = Field(default_factory=lambda: {"search": 12, "write": 8, "get": 6})
    queue_multipliers: dict[str, int] = Field(
        default_factory=lambda: {"search": 1000, "write": 500, "get": 1000}
    )

    @model_validator(mode="after")
    def _same_pools(self) -> "ThreadPoolTable":
        if set(self.per_node) != set(self.caps) or set(self.per_node) != set(self.queue_multipliers):
            raise ValueError("per_node, caps and queue_multipliers must name the same pools")
        return self


def _default_heap_tiers() -> list[HeapTier]:
    return [
        HeapTier(min_nodes=1, heap_size="2g"),
        HeapTier(min_nodes=2, heap_size="3g"),
        HeapTier(min_nodes=3, heap_size="4g"),
    ]


def _default_breaker_tiers() -> list[BreakerTier]:
    return [
        BreakerTier(max_nodes=1, total=60, request=40, fielddata=30, network=40),
        BreakerTier(max_nodes=3, total=75, request=50, fielddata=40, network=50),
        BreakerTier(max_nodes=None, total=85, request=60, fielddata=50, network=60),
    ]


class CapacityTables(BaseModel):
    """Tables consommées par le planificateur de capacité."""

    heap_tiers: list[HeapTier] = Field(default_factory=_default_heap_tiers)
    thread_pools: ThreadPoolTable = Field(default_factory=ThreadPoolTable)
    breaker_tiers: list[BreakerTier] = Field(default_factory=_default_breaker_tiers)
    gc_flags: str = "-XX:+UseG1GC -XX:MaxGCPauseMillis=200 -XX:G1HeapRegionSize=16m"
    max_search_replicas: int = Field(default=3, ge=1)

    @field_validator("heap_tiers")
    @classmethod
    def _heap_tiers_cover_single_node(cls, tiers: list[HeapTier]) -> list[HeapTier]:
        if not tiers or min(t.min_nodes for t in tiers) != 1:
            raise ValueError("heap_tiers must start at min_nodes=1")
        return sorted(tiers, key=lambda t: t.min_nodes)

    @field_validator("breaker_tiers")
    @classmethod
    def _breaker_tiers_unbounded(cls, tiers: list[BreakerTier]) -> list[BreakerTier]:
        if not any(t.max_nodes is None for t in tiers):
            raise ValueError("breaker_tiers needs a final tier without max_nodes")
        return sorted(tiers, key=lambda t: t.max_nodes if t.max_nodes is not None else 1 << 30)


# ══════════════════════════════════════════════════════════════════════════════
# CONFIGURATION CONTRÔLEUR
# ══════════════════════════════════════════════════════════════════════════════


class CallTimeouts(BaseModel):
    """Timeout par appel externe, en secondes."""

    substrate: float = Field(default=15.0, gt=0)
    inventory: float = Field(default=30.0, gt=0)
    storage: float = Field(default=10.0, gt=0)
    search: float = Field(default=10.0, gt=0)
    metadata: float = Field(default=5.0, gt=0)


class StorageSettings(BaseModel):
    """Emplacements du partage NFS de contrôle."""

    export_path: str = "/srv/nfs/nginx-config"
    mount_point: str = "/srv/nfs/nginx-config"
    cache_dir: str = "/opt/shuffle/sentinel-cache"
    nfs_options: str = "nfsvers=3,proto=tcp,port=2049,mountport=51771,soft,intr,retrans=2"
    peer_volume: str = "nginx-config"
    export_network: str = "10.224.0.0/16"


class SearchThresholds(BaseModel):
    """Seuils de classification de la sonde moteur de recherche."""

    heap_critical_percent: float = Field(default=85.0, gt=0, le=100)
    latency_warning_seconds: float = Field(default=5.0, gt=0)
    search_queue_warning: int = Field(default=5000, ge=0)
    write_queue_warning: int = Field(default=500, ge=0)
    top_indices: int = Field(default=5, ge=1)


class ControllerConfig(BaseModel):
    """Configuration complète du contrôleur de cluster."""

    deployment_name: str = "shuffle"
    stack_name: str = "shuffle"
    compose_file: str = "swarm-nfs.yaml"
    workdir: str = "/opt/shuffle"

    quorum_check_interval: float = Field(default=30.0, gt=0)
    monitor_interval: float = Field(default=60.0, gt=0)
    search_check_interval: float = Field(default=15.0, gt=0)
    cycle_deadline: float = Field(default=120.0, gt=0)
    timeouts: CallTimeouts = Field(default_factory=CallTimeouts)

    join_wait_attempts: int = Field(default=60, ge=1)
    join_wait_interval: float = Field(default=10.0, ge=0)
    stabilization_delay: float = Field(default=10.0, ge=0)

    disk_cleanup_threshold: int = Field(default=90, ge=1, le=100)
    retention_days: int = Field(default=30, ge=1)

    critical_workloads: list[str] = Field(
        default_factory=lambda: [
            "shuffle_backend",
            "shuffle_frontend",
            "shuffle_opensearch",
            "opensearch-circuit-breaker",
        ]
    )
    multi_node_workloads: list[str] = Field(
        default_factory=lambda: ["shuffle_backend", "shuffle_frontend", "shuffle_opensearch"]
    )
    tracked_workloads: list[str] = Field(
        default_factory=lambda: [
            "shuffle_backend",
            "shuffle_frontend",
            "shuffle_opensearch",
            "shuffle_orborus",
            "shuffle_memcached",
            "shuffle_load-balancer",
        ]
    )
    search_workload: str = "shuffle_opensearch"
    load_balancer_workload: str = "shuffle_load-balancer"

    search_url: str = "http://opensearch-circuit-breaker:9200"
    search_data_path: str = "/opt/shuffle/shuffle-database"
    retention_index_pattern: str = "workflowexecution-*"
    retention_field: str = "started_at"
    search_thresholds: SearchThresholds = Field(default_factory=SearchThresholds)

    data_dir: str = "/opt/shuffle/shuffle-database"
    data_uid: int = 1000
    data_gid: int = 1000

    metadata_url: str = "http://metadata.google.internal/computeMetadata/v1/instance"
    storage: StorageSettings = Field(default_factory=StorageSettings)
    capacity: CapacityTables = Field(default_factory=CapacityTables)
    log_level: str = "INFO"

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.upper()
        if level not in ("DEBUG", "INFO", "WARN", "ERROR", "CRITICAL"):
            raise ValueError(f"unknown log level: {value}")
        return level

    @property
    def compose_path(self) -> str:
        """Chemin du fichier compose de la stack (relatif à workdir)."""
        if os.path.isabs(self.compose_file):
            return self.compose_file
        return os.path.join(self.workdir, self.compose_file)

    @property
    def primary_instance_name(self) -> str:
        """Nom d'instance du manager primaire (<deployment>-manager-1)."""
        return f"{self.deployment_name}-manager-1"

    @property
    def manager_instance_pattern(self) -> str:
        """Filtre d'inventaire désignant les instances manager du déploiement."""
        return f"{self.deployment_name}-manager-.*"


# ══════════════════════════════════════════════════════════════════════════════
# INTERFACES
# ══════════════════════════════════════════════════════════════════════════════


class IConfigLoader(ABC):
    """Charge la configuration du contrôleur."""

    @abstractmethod
    def load(self) -> ControllerConfig:
        """
        Charge et valide la configuration.

        Raises:
            ConfigurationError: Si le fichier est illisible ou invalide
        """
        pass
