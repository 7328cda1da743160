"""
Swarm Sentinel - Shared Storage Interfaces

Partage réseau de contrôle entre noeuds: jetons de join, adresse du
primaire, configuration du load balancer, epoch du cluster.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class StorageState(Enum):
    """État du partage vu par ce noeud."""

    MOUNTED = "mounted"
    DEGRADED = "degraded"
    UNAVAILABLE = "unavailable"


class SharedFile(Enum):
    """Fichiers nommés du partage (valeur = nom de fichier)."""

    MANAGER_JOIN_TOKEN = "manager-join-token"
    WORKER_JOIN_TOKEN = "worker-join-token"
    PRIMARY_ADDRESS = "primary-address"
    LB_CONFIG = "nginx-main.conf"
    CLUSTER_EPOCH = "cluster-epoch"

    @property
    def is_secret(self) -> bool:
        return self in (SharedFile.MANAGER_JOIN_TOKEN, SharedFile.WORKER_JOIN_TOKEN)


class ReadSource(Enum):
    """Étape de la chaîne de repli qui a servi une lecture."""

    SHARE = "share"
    PEER = "peer"
    CACHE = "cache"
    DEFAULT = "default"


@dataclass(frozen=True)
class SharedStorageHandle:
    """Vue en lecture seule du partage."""

    mount_point: str
    source: Optional[str]
    state: StorageState


@dataclass(frozen=True)
class StorageRead:
    """Contenu lu et étape qui l'a fourni."""

    file: SharedFile
    content: str
    source: ReadSource

    @property
    def degraded(self) -> bool:
        return self.source is not ReadSource.SHARE


class IStorageBackend(ABC):
    """Accès bas niveau au partage (export, montage, fichiers)."""

    @abstractmethod
    async def export(self) -> None:
        """
        Exporte le partage depuis ce noeud (primaire).

        Raises:
            TransientUnavailable: Si l'export échoue
        """
        pass

    @abstractmethod
    async def mount(self, primary_address: str, force: bool = False) -> None:
        """
        Monte le partage exporté par primary_address.

        Args:
            primary_address: Adresse du serveur NFS
            force: Démonte d'abord un montage existant (montage figé)

        Raises:
            TransientUnavailable: Si le montage échoue
        """
        pass

    @abstractmethod
    async def is_mounted(self) -> bool:
        """True si le partage est utilisable depuis ce noeud."""
        pass

    @abstractmethod
    async def read(self, name: str) -> Optional[str]:
        """
        Lit un fichier du partage.

        Returns:
            Contenu, ou None si le fichier n'existe pas

        Raises:
            TransientUnavailable: Si le partage est inaccessible
        """
        pass

    @abstractmethod
    async def write(self, name: str, content: str) -> bool:
        """
        Écrit un fichier du partage de façon atomique.

        Returns:
            True si le contenu a changé
        """
        pass


class IPeerFileSource(ABC):
    """Copie d'un fichier détenue par un autre noeud (volume de workload)."""

    @abstractmethod
    async def fetch(self, name: str) -> Optional[str]:
        """
        Récupère le fichier chez un pair joignable.

        Returns:
            Contenu, ou None si aucun pair ne l'a
        """
        pass
