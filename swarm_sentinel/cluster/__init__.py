"""
Swarm Sentinel - Cluster

Substrat d'orchestration (swarm), inventaire de provisioning et
métadonnées du noeud.
"""

from .interfaces import (
    # Enums
    NodeRole,
    MembershipStatus,
    LocalMembership,
    # Data classes
    ClusterNode,
    ClusterView,
    WorkloadStatus,
    JoinTokens,
    # Interfaces
    ISubstrate,
    IInventory,
    INodeMetadata,
    # Functions
    required_quorum,
    # Exceptions
    WorkloadNotFoundError,
)
from .docker_substrate import DockerSwarmSubstrate
from .gcloud_inventory import GcloudInventory
from .gce_metadata import GceNodeMetadata

__all__ = [
    # Enums
    "NodeRole",
    "MembershipStatus",
    "LocalMembership",
    # Data classes
    "ClusterNode",
    "ClusterView",
    "WorkloadStatus",
    "JoinTokens",
    # Interfaces
    "ISubstrate",
    "IInventory",
    "INodeMetadata",
    # Functions
    "required_quorum",
    # Implementations
    "DockerSwarmSubstrate",
    "GcloudInventory",
    "GceNodeMetadata",
    # Exceptions
    "WorkloadNotFoundError",
]
