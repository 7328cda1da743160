"""
Swarm Sentinel - Capacity Planner

Dimensionnement du moteur de recherche en fonction de la taille du cluster.
Fonction pure: même nombre de noeuds, même plan.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Tuple

from swarm_sentinel.core.interfaces import CapacityTables

SINGLE_NODE_DISCOVERY = "single-node"
MULTI_NODE_DISCOVERY = "zen"


@dataclass(frozen=True)
class BreakerLimits:
    """Limites des circuit breakers, en pourcentage du heap."""

    total: int
    request: int
    fielddata: int
    network: int


@dataclass(frozen=True)
class CapacityPlan:
    """Plan de capacité figé pour un nombre de noeuds donné."""

    node_count: int
    search_replicas: int
    search_index_replicas: int
    initial_masters: Tuple[str, ...]
    discovery_type: str
    heap_size: str
    gc_flags: str
    thread_pool_sizes: Mapping[str, int] = field(default_factory=lambda: MappingProxyType({}))
    thread_pool_queues: Mapping[str, int] = field(default_factory=lambda: MappingProxyType({}))
    breakers: BreakerLimits = field(default_factory=lambda: BreakerLimits(60, 40, 30, 40))

    @property
    def java_opts(self) -> str:
        """Options JVM: heap min = heap max, puis les flags GC."""
        opts = f"-Xms{self.heap_size} -Xmx{self.heap_size}"
        if self.gc_flags:
            opts = f"{opts} {self.gc_flags}"
        return opts

    def to_env(self, nfs_master_ip: Optional[str] = None) -> Dict[str, str]:
        """
        Rend le plan sous forme de variables d'environnement du déploiement.

        Args:
            nfs_master_ip: Adresse du serveur NFS (omise si None)

        Returns:
            Variables consommées par le fichier compose de la stack
        """
        env = {
            "OPENSEARCH_REPLICAS": str(self.search_replicas),
            "OPENSEARCH_INDEX_REPLICAS": str(self.search_index_replicas),
            "OPENSEARCH_INITIAL_MASTERS": ",".join(self.initial_masters),
            "OPENSEARCH_DISCOVERY_TYPE": self.discovery_type,
            "OPENSEARCH_JAVA_OPTS": self.java_opts,
            "SWARM_NODE_COUNT": str(self.node_count),
            "OPENSEARCH_BREAKER_TOTAL_LIMIT": f"{self.breakers.total}%",
            "OPENSEARCH_BREAKER_REQUEST_LIMIT": f"{self.breakers.request}%",
            "OPENSEARCH_BREAKER_FIELDDATA_LIMIT": f"{self.breakers.fielddata}%",
            "OPENSEARCH_BREAKER_NETWORK_LIMIT": f"{self.breakers.network}%",
        }
        for pool, size in sorted(self.thread_pool_sizes.items()):
            env[f"OPENSEARCH_THREAD_POOL_{pool.upper()}_SIZE"] = str(size)
        for pool, queue in sorted(self.thread_pool_queues.items()):
            env[f"OPENSEARCH_THREAD_POOL_{pool.upper()}_QUEUE_SIZE"] = str(queue)
        if nfs_master_ip:
            env["NFS_MASTER_IP"] = nfs_master_ip
        return env


def plan(node_count: int, tables: Optional[CapacityTables] = None, stack_name: str = "shuffle") -> CapacityPlan:
    """
    Calcule le plan de capacité pour node_count noeuds.

    Args:
        node_count: Nombre de noeuds du cluster (>= 1)
        tables: Tables de dimensionnement (défauts si None)
        stack_name: Préfixe des noms de noeuds du moteur de recherche

    Returns:
        CapacityPlan immuable

    Raises:
        ValueError: Si node_count < 1
    """
    if node_count < 1:
        raise ValueError(f"node_count must be >= 1, got {node_count}")

    tables = tables or CapacityTables()

    replicas = min(node_count, tables.max_search_replicas)
    masters = tuple(f"{stack_name}-opensearch-{i}" for i in range(1, replicas + 1))

    pools = tables.thread_pools
    sizes = {name: min(per_node * node_count, pools.caps[name]) for name, per_node in pools.per_node.items()}
    queues = {name: size * pools.queue_multipliers[name] for name, size in sizes.items()}

    return CapacityPlan(
        node_count=node_count,
        search_replicas=replicas,
        search_index_replicas=replicas - 1,
        initial_masters=masters,
        discovery_type=SINGLE_NODE_DISCOVERY if node_count == 1 else MULTI_NODE_DISCOVERY,
        heap_size=_heap_for(node_count, tables),
        gc_flags=tables.gc_flags,
        thread_pool_sizes=MappingProxyType(sizes),
        thread_pool_queues=MappingProxyType(queues),
        breakers=_breakers_for(node_count, tables),
    )


def _heap_for(node_count: int, tables: CapacityTables) -> str:
    # Tiers triés par min_nodes croissant: le dernier atteint gagne.
    heap = tables.heap_tiers[0].heap_size
    for tier in tables.heap_tiers:
        if node_count >= tier.min_nodes:
            heap = tier.heap_size
    return heap


def _breakers_for(node_count: int, tables: CapacityTables) -> BreakerLimits:
    for tier in tables.breaker_tiers:
        if tier.max_nodes is None or node_count <= tier.max_nodes:
            return BreakerLimits(
                total=tier.total,
                request=tier.request,
                fielddata=tier.fielddata,
                network=tier.network,
            )
    # Le validateur de CapacityTables garantit un palier sans borne.
    raise ValueError("no breaker tier matches")
