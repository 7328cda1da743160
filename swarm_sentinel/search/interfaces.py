"""
Swarm Sentinel - Search Engine Interfaces

Vue en lecture du moteur de recherche (santé, pools, JVM, index) et
purge de rétention.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional


@dataclass(frozen=True)
class ClusterHealth:
    """Réponse de /_cluster/health."""

    status: str
    active_shards: int = 0
    pending_tasks: int = 0


@dataclass(frozen=True)
class ThreadPoolStats:
    """Files et rejets par pool, agrégés sur les noeuds (max des files, somme des rejets)."""

    queues: Dict[str, int] = field(default_factory=dict)
    rejections: Dict[str, int] = field(default_factory=dict)

    def queue(self, pool: str) -> int:
        return self.queues.get(pool, 0)

    @property
    def total_rejections(self) -> int:
        return sum(self.rejections.values())


@dataclass(frozen=True)
class JvmStats:
    """Mémoire JVM, pire noeud retenu."""

    heap_used_percent: float
    gc_young_millis: int = 0


@dataclass(frozen=True)
class IndexSize:
    """Ligne de /_cat/indices."""

    index: str
    health: str
    docs_count: Optional[int]
    store_size: str


class ISearchEngine(ABC):
    """Endpoint HTTP du moteur de recherche."""

    @abstractmethod
    async def cluster_health(self) -> ClusterHealth:
        """
        Raises:
            TransientUnavailable: Si l'endpoint ne répond pas
        """
        pass

    @abstractmethod
    async def thread_pool_stats(self) -> ThreadPoolStats:
        pass

    @abstractmethod
    async def jvm_stats(self) -> JvmStats:
        pass

    @abstractmethod
    async def top_indices(self, limit: int) -> List[IndexSize]:
        """Les limit plus gros index par taille de stockage."""
        pass

    @abstractmethod
    async def delete_older_than(self, index_pattern: str, field_name: str, days: int) -> int:
        """
        Supprime les documents dont field_name est antérieur à now - days.

        Returns:
            Nombre de documents supprimés
        """
        pass
