"""
Swarm Sentinel - Shared Storage Coordinator

Propriétaire du partage de contrôle: export côté primaire, montage côté
secondaires, lectures avec chaîne de repli et écritures idempotentes
répliquées dans le cache local.

Chaîne de repli (première réussite gagne):
    1. Remontage depuis l'adresse connue du primaire puis relecture
    2. Copie détenue par un pair (volume de workload)
    3. Copie du cache local
    4. Contenu par défaut (configuration du load balancer uniquement)

Un nouveau processus (moniteur) reprend l'adresse du primaire et l'état
du partage via restore() avant ses premières lectures.
"""

import asyncio
from typing import Any, Awaitable, Optional, Tuple, TypeVar

from swarm_sentinel.core.exceptions import ConfigurationMissing, TransientUnavailable
from swarm_sentinel.logging import StructuredLogger
from swarm_sentinel.network import CallType, TimeoutManager

from .defaults import default_for
from .file_store import LocalFileStore
from .interfaces import (
    IPeerFileSource,
    IStorageBackend,
    ReadSource,
    SharedFile,
    SharedStorageHandle,
    StorageRead,
    StorageState,
)

T = TypeVar("T")


class SharedStorageError(TransientUnavailable):
    """Partage de contrôle inutilisable (montage ou écriture)."""

    def __init__(self, reason: str) -> None:
        super().__init__("shared-storage", reason)


class SharedStorageCoordinator:
    """
    Coordinateur du partage de contrôle.

    Les autres composants consultent handle mais ne le modifient jamais.
    """

    def __init__(
        self,
        backend: IStorageBackend,
        peer_source: Optional[IPeerFileSource],
        cache: LocalFileStore,
        logger: StructuredLogger,
        mount_point: str,
        timeouts: Optional[TimeoutManager] = None,
    ) -> None:
        self._backend = backend
        self._peers = peer_source
        self._cache = cache
        self._logger = logger
        self._mount_point = mount_point
        self._timeouts = timeouts or TimeoutManager()
        self._primary_address: Optional[str] = None
        self._state = StorageState.UNAVAILABLE

    @property
    def handle(self) -> SharedStorageHandle:
        return SharedStorageHandle(
            mount_point=self._mount_point,
            source=self._primary_address,
            state=self._state,
        )

    @property
    def state(self) -> StorageState:
        return self._state

    def _storage_call(self, awaitable: Awaitable[T], operation: str) -> Awaitable[T]:
        return self._timeouts.call(CallType.STORAGE, awaitable, operation)

    # ══════════════════════════════════════════════════════════════════════════
    # EXPORT / MONTAGE
    # ══════════════════════════════════════════════════════════════════════════

    async def export(self, own_address: Optional[str] = None) -> SharedStorageHandle:
        """
        Exporte le partage depuis ce noeud, qui en devient l'autorité.

        Raises:
            SharedStorageError: Si l'export échoue
        """
        try:
            await self._storage_call(self._backend.export(), "export")
        except TransientUnavailable as e:
            self._state = StorageState.UNAVAILABLE
            raise SharedStorageError(f"export failed: {e}")

        self._primary_address = own_address
        self._state = StorageState.MOUNTED
        if own_address:
            await self._refresh_cache(SharedFile.PRIMARY_ADDRESS, own_address)
        self._logger.info("Shared storage exported", event="storage_exported", source=own_address)
        return self.handle

    async def mount(self, primary_address: str) -> SharedStorageHandle:
        """
        Monte le partage exporté par le primaire.

        Raises:
            SharedStorageError: Si le montage échoue
        """
        self._primary_address = primary_address
        try:
            await self._storage_call(self._backend.mount(primary_address), "mount")
        except TransientUnavailable as e:
            self._state = StorageState.UNAVAILABLE
            raise SharedStorageError(f"mount from {primary_address} failed: {e}")

        self._state = StorageState.MOUNTED
        await self._refresh_cache(SharedFile.PRIMARY_ADDRESS, primary_address)
        self._logger.info("Shared storage mounted", event="storage_mounted", source=primary_address)
        return self.handle

    async def restore(self) -> SharedStorageHandle:
        """
        Reprend l'état du partage dans un nouveau processus (moniteur).

        L'adresse du primaire est relue depuis le cache local, à défaut
        depuis le partage. Un montage ou un export laissé par le bootstrap
        rend le partage directement utilisable.
        """
        if self._primary_address is None:
            self._primary_address = _address_from(await self._read_cache(SharedFile.PRIMARY_ADDRESS))

        if await self._share_writable():
            self._state = StorageState.MOUNTED
            if self._primary_address is None:
                content, _ = await self._read_share(SharedFile.PRIMARY_ADDRESS)
                self._primary_address = _address_from(content)

        self._logger.info(
            "Shared storage state restored",
            event="storage_resumed",
            source=self._primary_address,
            state=self._state.value,
        )
        return self.handle

    # ══════════════════════════════════════════════════════════════════════════
    # LECTURE / ÉCRITURE
    # ══════════════════════════════════════════════════════════════════════════

    async def read(self, file: SharedFile) -> StorageRead:
        """
        Lit un fichier du partage en suivant la chaîne de repli.

        Args:
            file: Fichier nommé à lire

        Returns:
            StorageRead avec le contenu et l'étape qui l'a servi

        Raises:
            ConfigurationMissing: Si aucune étape n'a pu fournir le fichier
        """
        content, share_reachable = await self._read_share(file)

        if content is None and not share_reachable and self._primary_address:
            content = await self._remount_and_read(file)

        if content is not None:
            self._state = StorageState.MOUNTED
            await self._refresh_cache(file, content)
            return StorageRead(file=file, content=content, source=ReadSource.SHARE)

        for source, candidate in (
            (ReadSource.PEER, self._read_peer),
            (ReadSource.CACHE, self._read_cache),
            (ReadSource.DEFAULT, self._read_default),
        ):
            content = await candidate(file)
            if content is not None:
                return await self._serve_degraded(file, content, source)

        if share_reachable:
            # Partage sain, fichier pas encore publié
            self._logger.warn("Shared file not published yet", event="storage_file_missing", file=file.value)
        else:
            self._state = StorageState.UNAVAILABLE
            self._logger.error(
                "Shared file unavailable from every source",
                event="storage_unavailable",
                file=file.value,
            )
        raise ConfigurationMissing(file.value, "not found on share, peers, cache or defaults")

    async def write(self, file: SharedFile, content: str) -> bool:
        """
        Écrit un fichier du partage (sans effet si contenu identique).

        Returns:
            True si le fichier du partage a changé

        Raises:
            SharedStorageError: Si le partage refuse l'écriture
        """
        try:
            changed = await self._storage_call(self._backend.write(file.value, content), f"write {file.value}")
        except TransientUnavailable as e:
            raise SharedStorageError(f"write {file.value} failed: {e}")

        await self._refresh_cache(file, content)
        if changed:
            self._logger.debug("Shared file updated", event="storage_write", file=file.value)
        return changed

    async def ensure_file(self, file: SharedFile) -> StorageRead:
        """
        Garantit la présence du fichier sur le partage.

        Un contenu servi par un repli est réécrit sur le partage quand
        celui-ci redevient accessible.
        """
        result = await self.read(file)
        if result.degraded and await self._share_writable():
            try:
                await self.write(file, result.content)
                self._state = StorageState.MOUNTED
                self._logger.info(
                    "Shared file restored from fallback",
                    event="storage_restored",
                    file=file.value,
                    source=result.source.value,
                )
            except SharedStorageError as e:
                self._logger.warn("Shared file restore failed", event="storage_restore_failed", file=file.value, error=str(e))
        return result

    async def read_epoch(self) -> int:
        """Epoch courant du cluster (0 si jamais publié)."""
        try:
            result = await self.read(SharedFile.CLUSTER_EPOCH)
        except ConfigurationMissing:
            return 0
        try:
            return int(result.content.strip())
        except ValueError:
            self._logger.warn("Invalid cluster epoch content", event="storage_epoch_invalid", content=result.content[:32])
            return 0

    async def bump_epoch(self) -> int:
        """Incrémente et publie l'epoch du cluster."""
        epoch = await self.read_epoch() + 1
        await self.write(SharedFile.CLUSTER_EPOCH, f"{epoch}\n")
        return epoch

    # ══════════════════════════════════════════════════════════════════════════
    # ÉTAPES DE REPLI
    # ══════════════════════════════════════════════════════════════════════════

    async def _read_share(self, file: SharedFile) -> Tuple[Optional[str], bool]:
        """Retourne (contenu, partage_joignable)."""
        try:
            content = await self._storage_call(self._backend.read(file.value), f"read {file.value}")
            return content, True
        except TransientUnavailable as e:
            self._logger.warn("Shared storage read failed", event="storage_read_failed", file=file.value, error=str(e))
            return None, False

    async def _remount_and_read(self, file: SharedFile) -> Optional[str]:
        if not self._primary_address:
            return None
        try:
            await self._storage_call(self._backend.mount(self._primary_address, force=True), "remount")
        except TransientUnavailable as e:
            self._logger.warn(
                "Shared storage remount failed",
                event="storage_remount_failed",
                source=self._primary_address,
                error=str(e),
            )
            return None
        content, _ = await self._read_share(file)
        return content

    async def _read_peer(self, file: SharedFile) -> Optional[str]:
        if self._peers is None:
            return None
        try:
            return await self._storage_call(self._peers.fetch(file.value), f"peer fetch {file.value}")
        except TransientUnavailable as e:
            self._logger.debug("Peer fetch failed", file=file.value, error=str(e))
            return None

    async def _read_cache(self, file: SharedFile) -> Optional[str]:
        try:
            return await asyncio.to_thread(self._cache.read, file.value)
        except OSError as e:
            self._logger.warn("Local cache read failed", event="storage_cache_failed", file=file.value, error=str(e))
            return None

    async def _read_default(self, file: SharedFile) -> Optional[str]:
        return default_for(file)

    async def _serve_degraded(self, file: SharedFile, content: str, source: ReadSource) -> StorageRead:
        self._state = StorageState.DEGRADED
        self._logger.warn(
            "Shared file served in degraded mode",
            event="storage_degraded",
            file=file.value,
            source=source.value,
        )
        if source is not ReadSource.CACHE:
            await self._refresh_cache(file, content)
        return StorageRead(file=file, content=content, source=source)

    async def _refresh_cache(self, file: SharedFile, content: str) -> None:
        try:
            await asyncio.to_thread(self._cache.write, file.value, content)
        except OSError as e:
            self._logger.warn("Local cache write failed", event="storage_cache_failed", file=file.value, error=str(e))

    async def _share_writable(self) -> bool:
        try:
            return await self._storage_call(self._backend.is_mounted(), "is_mounted")
        except TransientUnavailable:
            return False

    def describe(self) -> dict[str, Any]:
        """Résumé pour les logs et la commande probe."""
        return {
            "mount_point": self._mount_point,
            "source": self._primary_address,
            "state": self._state.value,
        }


def _address_from(content: Optional[str]) -> Optional[str]:
    address = content.strip() if content else ""
    return address or None
