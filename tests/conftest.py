"""
Swarm Sentinel - Pytest Configuration
Fixtures partagées: configuration, logger, substrat/inventaire/partage simulés.
"""

from typing import Dict, List, Optional, Tuple
from unittest.mock import AsyncMock

import pytest

from swarm_sentinel.cluster.interfaces import (
    ClusterNode,
    ClusterView,
    IInventory,
    INodeMetadata,
    ISubstrate,
    JoinTokens,
    LocalMembership,
    MembershipStatus,
    WorkloadNotFoundError,
    WorkloadStatus,
)
from swarm_sentinel.core.exceptions import TransientUnavailable
from swarm_sentinel.core.interfaces import ControllerConfig
from swarm_sentinel.logging import LogConfig, LogLevel, StructuredLogger
from swarm_sentinel.storage import (
    IPeerFileSource,
    IStorageBackend,
    LocalFileStore,
    SharedStorageCoordinator,
)


# ══════════════════════════════════════════════════════════════════════════════
# DOUBLES DE TEST
# ══════════════════════════════════════════════════════════════════════════════


def make_node(
    index: int,
    deployment: str = "shuffle",
    is_manager: bool = True,
    status: MembershipStatus = MembershipStatus.READY,
) -> ClusterNode:
    kind = "manager" if is_manager else "worker"
    return ClusterNode(
        node_id=f"node-{kind}-{index}",
        hostname=f"{deployment}-{kind}-{index}",
        address=f"10.224.0.{index + (0 if is_manager else 100)}",
        is_manager=is_manager,
        status=status,
        is_leader=is_manager and index == 1,
    )


class FakeSubstrate(ISubstrate):
    """Swarm simulé: enregistre chaque appel, scale met à jour les réplicas."""

    MUTATIONS = ("init_cluster", "join", "rotate_join_tokens", "scale_workload", "restart_workload", "deploy_stack")

    def __init__(
        self,
        nodes: Optional[List[ClusterNode]] = None,
        workloads: Optional[Dict[str, Tuple[int, int]]] = None,
        local: LocalMembership = LocalMembership.MANAGER,
        self_node: Optional[ClusterNode] = None,
    ) -> None:
        self.nodes: List[ClusterNode] = list(nodes if nodes is not None else [make_node(1)])
        self.workloads: Dict[str, WorkloadStatus] = {
            name: WorkloadStatus(name, desired, running)
            for name, (desired, running) in (workloads or {}).items()
        }
        self.local = local
        self.self_node = self_node or make_node(1)
        self.membership_refused = False
        self.ping_result = True
        self.join_failures = 0
        self.tokens = JoinTokens(manager="SWMTKN-1-manager-aaaa", worker="SWMTKN-1-worker-aaaa")
        self.calls: List[tuple] = []

    def mutation_calls(self) -> List[tuple]:
        return [c for c in self.calls if c[0] in self.MUTATIONS]

    def calls_named(self, name: str) -> List[tuple]:
        return [c for c in self.calls if c[0] == name]

    async def ping(self) -> bool:
        self.calls.append(("ping",))
        return self.ping_result

    async def local_membership(self) -> LocalMembership:
        return self.local

    async def membership(self) -> ClusterView:
        self.calls.append(("membership",))
        if self.membership_refused:
            raise TransientUnavailable("docker", "rpc error: The swarm does not have a leader")
        return ClusterView(nodes=list(self.nodes))

    async def init_cluster(self, advertise_address: str, force_new_cluster: bool = False) -> None:
        self.calls.append(("init_cluster", advertise_address, force_new_cluster))
        self.local = LocalMembership.MANAGER
        self.membership_refused = False
        self.nodes = [self.self_node]

    async def join(self, manager_address: str, token: str) -> None:
        self.calls.append(("join", manager_address, token))
        if self.join_failures > 0:
            self.join_failures -= 1
            raise TransientUnavailable("docker", "join refused")
        self.local = LocalMembership.MANAGER if "manager" in token else LocalMembership.WORKER

    async def join_tokens(self) -> JoinTokens:
        return self.tokens

    async def rotate_join_tokens(self) -> JoinTokens:
        self.calls.append(("rotate_join_tokens",))
        self.tokens = JoinTokens(manager="SWMTKN-1-manager-bbbb", worker="SWMTKN-1-worker-bbbb")
        return self.tokens

    async def list_workloads(self) -> Dict[str, WorkloadStatus]:
        self.calls.append(("list_workloads",))
        return dict(self.workloads)

    async def scale_workload(self, name: str, replicas: int) -> None:
        self.calls.append(("scale_workload", name, replicas))
        current = self.workloads.get(name)
        if current is None:
            raise WorkloadNotFoundError(name)
        self.workloads[name] = WorkloadStatus(name, replicas, min(current.running, replicas))

    async def restart_workload(self, name: str) -> None:
        self.calls.append(("restart_workload", name))

    async def deploy_stack(self, compose_file: str, stack_name: str, env: Dict[str, str]) -> None:
        self.calls.append(("deploy_stack", compose_file, stack_name, dict(env)))


class FakeInventory(IInventory):
    """Inventaire de provisioning simulé."""

    def __init__(self, running: Optional[List[str]] = None, addresses: Optional[Dict[str, str]] = None) -> None:
        self.running = list(running or [])
        self.addresses = dict(addresses or {})
        self.lookups = 0

    async def running_instances(self, name_pattern: str) -> List[str]:
        return list(self.running)

    async def instance_address(self, name: str) -> Optional[str]:
        self.lookups += 1
        return self.addresses.get(name)


class FakeMetadata(INodeMetadata):
    """Serveur de métadonnées simulé."""

    def __init__(
        self,
        attributes: Optional[Dict[str, str]] = None,
        hostname: str = "shuffle-manager-1",
        address: str = "10.224.0.1",
    ) -> None:
        self.attributes = dict(attributes or {})
        self._hostname = hostname
        self._address = address

    async def get_attribute(self, key: str) -> Optional[str]:
        return self.attributes.get(key)

    async def hostname(self) -> str:
        return self._hostname

    async def own_address(self) -> str:
        return self._address


class InMemoryStorageBackend(IStorageBackend):
    """Partage de contrôle en mémoire."""

    def __init__(self) -> None:
        self.files: Dict[str, str] = {}
        self.mounted = False
        self.exported = False
        self.mount_fails = False
        self.mount_calls: List[str] = []
        self.forced_mounts = 0
        self.writes: List[str] = []

    async def export(self) -> None:
        self.exported = True
        self.mounted = True

    async def mount(self, primary_address: str, force: bool = False) -> None:
        self.mount_calls.append(primary_address)
        if force:
            self.forced_mounts += 1
        if self.mount_fails:
            raise TransientUnavailable("shared-storage", "mount timed out")
        self.mounted = True

    async def is_mounted(self) -> bool:
        return self.mounted

    async def read(self, name: str) -> Optional[str]:
        if not self.mounted:
            raise TransientUnavailable("shared-storage", "share not mounted")
        return self.files.get(name)

    async def write(self, name: str, content: str) -> bool:
        if not self.mounted:
            raise TransientUnavailable("shared-storage", "share not mounted")
        if self.files.get(name) == content:
            return False
        self.files[name] = content
        self.writes.append(name)
        return True


class FakePeerSource(IPeerFileSource):
    """Copie détenue par un pair."""

    def __init__(self, files: Optional[Dict[str, str]] = None, fails: bool = False) -> None:
        self.files = dict(files or {})
        self.fails = fails

    async def fetch(self, name: str) -> Optional[str]:
        if self.fails:
            raise TransientUnavailable("peer", "no running task")
        return self.files.get(name)


# ══════════════════════════════════════════════════════════════════════════════
# FIXTURES
# ══════════════════════════════════════════════════════════════════════════════


@pytest.fixture
def config() -> ControllerConfig:
    """Configuration avec attentes courtes."""
    return ControllerConfig(
        join_wait_attempts=3,
        join_wait_interval=0.0,
        stabilization_delay=0.0,
        compose_file="swarm-nfs.yaml",
    )


@pytest.fixture
def logger() -> StructuredLogger:
    """Logger capturant toutes les entrées (DEBUG inclus)."""
    return StructuredLogger(
        "test",
        config=LogConfig(min_level=LogLevel.DEBUG, default_node_id="shuffle-manager-1"),
    )


@pytest.fixture
def no_sleep() -> AsyncMock:
    """Attente instantanée (retries, stabilisation)."""
    return AsyncMock()


@pytest.fixture
def backend() -> InMemoryStorageBackend:
    return InMemoryStorageBackend()


@pytest.fixture
def peer_source() -> FakePeerSource:
    return FakePeerSource()


@pytest.fixture
def cache(tmp_path) -> LocalFileStore:
    return LocalFileStore(str(tmp_path / "cache"))


@pytest.fixture
def storage(backend, peer_source, cache, logger) -> SharedStorageCoordinator:
    """Coordinateur branché sur le partage en mémoire."""
    return SharedStorageCoordinator(
        backend=backend,
        peer_source=peer_source,
        cache=cache,
        logger=logger,
        mount_point="/srv/nfs/nginx-config",
    )


@pytest.fixture
def node_factory():
    """Fabrique de ClusterNode."""
    return make_node


@pytest.fixture
def substrate_factory():
    """Fabrique de FakeSubstrate."""
    return FakeSubstrate


@pytest.fixture
def substrate() -> FakeSubstrate:
    """Un manager, aucun workload."""
    return FakeSubstrate()


@pytest.fixture
def inventory() -> FakeInventory:
    return FakeInventory(running=["shuffle-manager-1"], addresses={"shuffle-manager-1": "10.224.0.1"})


@pytest.fixture
def metadata() -> FakeMetadata:
    return FakeMetadata(
        attributes={
            "node-role": "manager",
            "is-primary": "true",
            "deployment-name": "shuffle",
            "total-nodes": "3",
        }
    )


@pytest.fixture
def metadata_factory():
    """Fabrique de FakeMetadata."""
    return FakeMetadata


@pytest.fixture
def inventory_factory():
    """Fabrique de FakeInventory."""
    return FakeInventory
