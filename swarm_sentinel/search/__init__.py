"""
Swarm Sentinel - Search Engine

Accès REST au moteur de recherche OpenSearch.
"""

from .interfaces import (
    # Data classes
    ClusterHealth,
    ThreadPoolStats,
    JvmStats,
    IndexSize,
    # Interfaces
    ISearchEngine,
)
from .client import OpenSearchClient

__all__ = [
    # Data classes
    "ClusterHealth",
    "ThreadPoolStats",
    "JvmStats",
    "IndexSize",
    # Interfaces
    "ISearchEngine",
    # Implementations
    "OpenSearchClient",
]
