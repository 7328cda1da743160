"""
Swarm Sentinel

Bootstrap et auto-réparation d'un cluster Docker swarm sur GCE
(partage NFS de contrôle, moteur de recherche OpenSearch).
"""

__version__ = "1.0.0"
