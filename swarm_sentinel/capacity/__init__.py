"""
Swarm Sentinel - Capacity

Plan de capacité du moteur de recherche: réplicas, heap, thread pools,
circuit breakers.
"""

from .planner import (
    MULTI_NODE_DISCOVERY,
    SINGLE_NODE_DISCOVERY,
    BreakerLimits,
    CapacityPlan,
    plan,
)

__all__ = [
    # Constants
    "SINGLE_NODE_DISCOVERY",
    "MULTI_NODE_DISCOVERY",
    # Data classes
    "BreakerLimits",
    "CapacityPlan",
    # Functions
    "plan",
]
