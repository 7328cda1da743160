"""
Swarm Sentinel - NFS Storage Backend

Export NFSv3 depuis le primaire (exportfs), montage sur les secondaires
(mount -t nfs), fichiers lus et écrits dans le répertoire partagé.
"""

import asyncio
import os
from pathlib import Path
from typing import FrozenSet, Optional

from swarm_sentinel.core.command_runner import CommandError, CommandRunner
from swarm_sentinel.core.exceptions import TransientUnavailable
from swarm_sentinel.core.interfaces import StorageSettings

from .file_store import LocalFileStore
from .interfaces import IPeerFileSource, IStorageBackend, SharedFile

STORAGE_DEPENDENCY = "shared-storage"


class NfsStorageBackend(IStorageBackend):
    """Partage NFS de contrôle."""

    EXPORTS_FILE: str = "/etc/exports"
    EXPORT_OPTIONS: str = "ro,sync,all_squash,anonuid={uid},anongid={gid},no_subtree_check,insecure"

    def __init__(
        self,
        settings: StorageSettings,
        runner: Optional[CommandRunner] = None,
        anon_uid: int = 1000,
        anon_gid: int = 1000,
        exports_file: Optional[str] = None,
    ) -> None:
        self._settings = settings
        self._runner = runner or CommandRunner()
        self._anon_uid = anon_uid
        self._anon_gid = anon_gid
        self._exports_file = exports_file or self.EXPORTS_FILE
        self._exported = False
        self._export_attempted = False
        self._files = LocalFileStore(settings.mount_point)

    @property
    def export_line(self) -> str:
        options = self.EXPORT_OPTIONS.format(uid=self._anon_uid, gid=self._anon_gid)
        return f"{self._settings.export_path} {self._settings.export_network}({options})"

    async def export(self) -> None:
        self._export_attempted = True
        await asyncio.to_thread(self._write_export_entry)
        try:
            await self._runner.run("exportfs", "-ra", check=True)
        except CommandError as e:
            raise TransientUnavailable(STORAGE_DEPENDENCY, f"exportfs failed: {e}")
        self._mark_exported()

    def _mark_exported(self) -> None:
        self._exported = True
        if self._settings.export_path != self._settings.mount_point:
            self._files = LocalFileStore(self._settings.export_path)

    def _write_export_entry(self) -> None:
        Path(self._settings.export_path).mkdir(parents=True, exist_ok=True)
        exports = Path(self._exports_file)
        current = exports.read_text(encoding="utf-8") if exports.exists() else ""
        # Une seule ligne par chemin exporté
        kept = [
            line
            for line in current.splitlines()
            if not line.strip().startswith(self._settings.export_path + " ")
        ]
        kept.append(self.export_line)
        content = "\n".join(kept) + "\n"
        if content != current:
            exports.write_text(content, encoding="utf-8")

    def _export_listed(self) -> bool:
        """True si le fichier d'exports contient déjà notre entrée (primaire redémarré)."""
        try:
            current = Path(self._exports_file).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError):
            return False
        if self.export_line not in (line.strip() for line in current.splitlines()):
            return False
        return os.path.isdir(self._settings.export_path)

    async def mount(self, primary_address: str, force: bool = False) -> None:
        mount_point = self._settings.mount_point
        await asyncio.to_thread(os.makedirs, mount_point, exist_ok=True)
        if await self.is_mounted():
            # Le primaire sert son export directement, rien à remonter
            if self._exported or not force:
                return
            await self._unmount()
        source = f"{primary_address}:{self._settings.export_path}"
        try:
            await self._runner.run(
                "mount", "-t", "nfs", "-o", self._settings.nfs_options, source, mount_point, check=True
            )
        except CommandError as e:
            raise TransientUnavailable(STORAGE_DEPENDENCY, f"mount {source} failed: {e}")

    async def _unmount(self) -> None:
        # umount -l détache aussi un montage figé (ESTALE)
        mount_point = self._settings.mount_point
        try:
            await self._runner.run("umount", "-l", mount_point, check=True)
        except CommandError as e:
            raise TransientUnavailable(STORAGE_DEPENDENCY, f"umount {mount_point} failed: {e}")

    async def is_mounted(self) -> bool:
        # Export laissé par un processus précédent (bootstrap) sur ce noeud
        if not self._exported and not self._export_attempted and await asyncio.to_thread(self._export_listed):
            self._mark_exported()
        if self._exported:
            return True
        return await asyncio.to_thread(os.path.ismount, self._settings.mount_point)

    async def read(self, name: str) -> Optional[str]:
        if not await self.is_mounted():
            raise TransientUnavailable(STORAGE_DEPENDENCY, "share not mounted")
        try:
            return await asyncio.to_thread(self._files.read, name)
        except OSError as e:
            raise TransientUnavailable(STORAGE_DEPENDENCY, str(e))

    async def write(self, name: str, content: str) -> bool:
        if not await self.is_mounted():
            raise TransientUnavailable(STORAGE_DEPENDENCY, "share not mounted")
        try:
            return await asyncio.to_thread(self._files.write, name, content)
        except OSError as e:
            raise TransientUnavailable(STORAGE_DEPENDENCY, str(e))


class DockerVolumePeerSource(IPeerFileSource):
    """Lit un fichier dans le volume de workload répliqué par la stack."""

    HELPER_IMAGE: str = "alpine"

    # Le volume des workloads ne porte que la configuration du load balancer
    CARRIED_FILES: FrozenSet[str] = frozenset({SharedFile.LB_CONFIG.value})

    def __init__(self, volume: str, runner: Optional[CommandRunner] = None, timeout: float = 30.0) -> None:
        self._volume = volume
        self._runner = runner or CommandRunner()
        self._timeout = timeout

    async def fetch(self, name: str) -> Optional[str]:
        if name not in self.CARRIED_FILES:
            return None
        result = await self._runner.run(
            "docker",
            "run",
            "--rm",
            "-v",
            f"{self._volume}:/peer:ro",
            self.HELPER_IMAGE,
            "cat",
            f"/peer/{name}",
            timeout=self._timeout,
        )
        if not result.ok or not result.stdout.strip():
            return None
        return result.stdout
