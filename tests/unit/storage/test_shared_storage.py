"""
Tests unitaires SharedStorageCoordinator

Chaîne de repli: partage → remontage → pair → cache → défaut.
"""

from unittest.mock import Mock

import pytest

from swarm_sentinel.core.command_runner import CommandRunner
from swarm_sentinel.core.exceptions import ConfigurationMissing
from swarm_sentinel.core.interfaces import StorageSettings
from swarm_sentinel.logging import LogLevel
from swarm_sentinel.storage import (
    DEFAULT_LB_CONFIG,
    NfsStorageBackend,
    ReadSource,
    SharedFile,
    SharedStorageCoordinator,
    SharedStorageError,
    StorageState,
)


# ══════════════════════════════════════════════════════════════════════════════
# TESTS EXPORT / MONTAGE
# ══════════════════════════════════════════════════════════════════════════════


class TestExportAndMount:
    """Établissement du partage."""

    @pytest.mark.asyncio
    async def test_export_makes_node_authority(self, storage, backend):
        handle = await storage.export("10.224.0.1")
        assert backend.exported
        assert handle.state is StorageState.MOUNTED
        assert handle.source == "10.224.0.1"

    @pytest.mark.asyncio
    async def test_mount_records_source(self, storage, backend):
        handle = await storage.mount("10.224.0.1")
        assert backend.mount_calls == ["10.224.0.1"]
        assert handle.state is StorageState.MOUNTED

    @pytest.mark.asyncio
    async def test_mount_caches_primary_address(self, storage, cache):
        await storage.mount("10.224.0.1")
        assert cache.read("primary-address") == "10.224.0.1"

    @pytest.mark.asyncio
    async def test_mount_failure_raises(self, storage, backend):
        backend.mount_fails = True
        with pytest.raises(SharedStorageError):
            await storage.mount("10.224.0.1")
        assert storage.state is StorageState.UNAVAILABLE

    def test_initial_state_unavailable(self, storage):
        assert storage.handle.state is StorageState.UNAVAILABLE
        assert storage.describe()["state"] == "unavailable"


# ══════════════════════════════════════════════════════════════════════════════
# TESTS LECTURE AVEC REPLI
# ══════════════════════════════════════════════════════════════════════════════


class TestReadFallback:
    """Lecture avec chaîne de repli."""

    @pytest.mark.asyncio
    async def test_read_from_share(self, storage, backend, cache):
        await storage.mount("10.224.0.1")
        backend.files["primary-address"] = "10.224.0.1"

        result = await storage.read(SharedFile.PRIMARY_ADDRESS)

        assert result.source is ReadSource.SHARE
        assert not result.degraded
        assert cache.read("primary-address") == "10.224.0.1"

    @pytest.mark.asyncio
    async def test_remount_then_read(self, storage, backend):
        await storage.mount("10.224.0.1")
        backend.files["primary-address"] = "10.224.0.1"
        backend.mounted = False

        result = await storage.read(SharedFile.PRIMARY_ADDRESS)

        assert result.source is ReadSource.SHARE
        assert backend.mount_calls == ["10.224.0.1", "10.224.0.1"]
        assert backend.forced_mounts == 1

    @pytest.mark.asyncio
    async def test_cache_serves_degraded_when_mount_and_peer_fail(self, storage, backend, peer_source, cache, logger):
        """Montage et pair en échec, fichier en cache: état degraded."""
        cache.write("nginx-main.conf", "cached config")
        backend.mount_fails = True
        peer_source.fails = True
        with pytest.raises(SharedStorageError):
            await storage.mount("10.224.0.1")

        result = await storage.read(SharedFile.LB_CONFIG)

        assert result.source is ReadSource.CACHE
        assert result.content == "cached config"
        assert storage.state is StorageState.DEGRADED
        assert len(logger.get_entries_by_event("storage_degraded")) == 1

    @pytest.mark.asyncio
    async def test_peer_before_cache(self, storage, backend, peer_source, cache):
        cache.write("nginx-main.conf", "cached config")
        peer_source.files["nginx-main.conf"] = "peer config"

        result = await storage.read(SharedFile.LB_CONFIG)

        assert result.source is ReadSource.PEER
        assert result.content == "peer config"
        # Le cache est rafraîchi avec la copie du pair
        assert cache.read("nginx-main.conf") == "peer config"

    @pytest.mark.asyncio
    async def test_default_lb_config(self, storage):
        result = await storage.read(SharedFile.LB_CONFIG)
        assert result.source is ReadSource.DEFAULT
        assert result.content == DEFAULT_LB_CONFIG

    @pytest.mark.asyncio
    async def test_secret_has_no_default(self, storage, logger):
        """Un jeton de join n'est jamais régénéré: ConfigurationMissing."""
        with pytest.raises(ConfigurationMissing):
            await storage.read(SharedFile.MANAGER_JOIN_TOKEN)
        assert storage.state is StorageState.UNAVAILABLE
        assert logger.get_entries_by_event("storage_unavailable")[0].level is LogLevel.ERROR

    @pytest.mark.asyncio
    async def test_missing_file_on_healthy_share(self, storage, backend, logger):
        """Partage joignable, fichier pas encore publié: avertissement seulement."""
        await storage.mount("10.224.0.1")

        with pytest.raises(ConfigurationMissing):
            await storage.read(SharedFile.WORKER_JOIN_TOKEN)

        assert storage.state is StorageState.MOUNTED
        assert backend.mount_calls == ["10.224.0.1"]
        assert logger.get_entries_by_event("storage_file_missing")[0].level is LogLevel.WARN

    @pytest.mark.asyncio
    async def test_invalid_utf8_cache_skipped(self, storage, cache, logger):
        """Copie en cache corrompue: ignorée puis remplacée par le défaut."""
        cache.root.mkdir(parents=True, exist_ok=True)
        (cache.root / "nginx-main.conf").write_bytes(b"\xff\xfe bad")

        result = await storage.read(SharedFile.LB_CONFIG)

        assert result.source is ReadSource.DEFAULT
        assert logger.get_entries_by_event("storage_cache_failed")
        assert cache.read("nginx-main.conf") == DEFAULT_LB_CONFIG


# ══════════════════════════════════════════════════════════════════════════════
# TESTS ÉCRITURE
# ══════════════════════════════════════════════════════════════════════════════


class TestWrite:
    """Écritures idempotentes."""

    @pytest.mark.asyncio
    async def test_write_is_idempotent(self, storage, backend):
        await storage.export("10.224.0.1")
        assert await storage.write(SharedFile.PRIMARY_ADDRESS, "10.224.0.1") is True
        assert await storage.write(SharedFile.PRIMARY_ADDRESS, "10.224.0.1") is False
        assert backend.writes == ["primary-address"]

    @pytest.mark.asyncio
    async def test_write_unmounted_raises(self, storage):
        with pytest.raises(SharedStorageError):
            await storage.write(SharedFile.PRIMARY_ADDRESS, "10.224.0.1")

    @pytest.mark.asyncio
    async def test_ensure_file_restores_default(self, storage, backend, logger):
        await storage.export("10.224.0.1")

        result = await storage.ensure_file(SharedFile.LB_CONFIG)

        assert result.source is ReadSource.DEFAULT
        assert backend.files["nginx-main.conf"] == DEFAULT_LB_CONFIG
        assert storage.state is StorageState.MOUNTED
        assert logger.get_entries_by_event("storage_restored")

    @pytest.mark.asyncio
    async def test_epoch_starts_at_zero_and_bumps(self, storage):
        await storage.export("10.224.0.1")
        assert await storage.read_epoch() == 0
        assert await storage.bump_epoch() == 1
        assert await storage.bump_epoch() == 2
        assert await storage.read_epoch() == 2


# ══════════════════════════════════════════════════════════════════════════════
# TESTS REPRISE AU DÉMARRAGE
# ══════════════════════════════════════════════════════════════════════════════


class TestRestore:
    """Reprise de l'état du partage par un nouveau processus."""

    @pytest.mark.asyncio
    async def test_primary_address_from_cache(self, storage, backend, cache):
        """Adresse connue via le cache: le remontage redevient possible."""
        cache.write("primary-address", "10.224.0.1\n")
        backend.files["nginx-main.conf"] = "real-config"

        handle = await storage.restore()
        result = await storage.read(SharedFile.LB_CONFIG)

        assert handle.source == "10.224.0.1"
        assert handle.state is StorageState.UNAVAILABLE
        assert result.source is ReadSource.SHARE
        assert result.content == "real-config"
        assert backend.mount_calls == ["10.224.0.1"]

    @pytest.mark.asyncio
    async def test_existing_mount_restored(self, storage, backend, logger):
        backend.mounted = True
        backend.files["primary-address"] = "10.224.0.7"

        handle = await storage.restore()

        assert handle.state is StorageState.MOUNTED
        assert handle.source == "10.224.0.7"
        assert backend.mount_calls == []
        assert logger.get_entries_by_event("storage_resumed")

    @pytest.mark.asyncio
    async def test_nothing_known(self, storage):
        handle = await storage.restore()
        assert handle.source is None
        assert handle.state is StorageState.UNAVAILABLE

    @pytest.mark.asyncio
    async def test_exporting_node_reads_its_own_share(self, tmp_path, cache, logger):
        """Primaire: export_path == mount_point, répertoire exporté et non monté."""
        share = tmp_path / "share"
        share.mkdir()
        (share / "nginx-main.conf").write_text("real-config")
        settings = StorageSettings(export_path=str(share), mount_point=str(share), cache_dir=str(tmp_path / "cache"))
        nfs = NfsStorageBackend(settings, runner=Mock(spec=CommandRunner), exports_file=str(tmp_path / "exports"))
        (tmp_path / "exports").write_text(nfs.export_line + "\n")
        coordinator = SharedStorageCoordinator(
            backend=nfs,
            peer_source=None,
            cache=cache,
            logger=logger,
            mount_point=str(share),
        )

        await coordinator.restore()
        result = await coordinator.read(SharedFile.LB_CONFIG)

        assert result.source is ReadSource.SHARE
        assert result.content == "real-config"
        assert coordinator.state is StorageState.MOUNTED
