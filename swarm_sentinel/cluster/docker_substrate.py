"""
Swarm Sentinel - Docker Swarm Substrate

Substrat d'orchestration via le SDK docker (appels synchrones exécutés
dans un thread) et `docker stack deploy` pour les stacks.
"""

import asyncio
from typing import Any, Dict, List, Optional

import docker
from docker.errors import DockerException

from swarm_sentinel.core.command_runner import CommandError, CommandRunner
from swarm_sentinel.core.exceptions import TransientUnavailable

from .interfaces import (
    ClusterNode,
    ClusterView,
    ISubstrate,
    JoinTokens,
    LocalMembership,
    MembershipStatus,
    WorkloadNotFoundError,
    WorkloadStatus,
)

SUBSTRATE_DEPENDENCY = "docker"
SWARM_PORT = 2377


class DockerSwarmSubstrate(ISubstrate):
    """Swarm Docker local (socket du démon)."""

    STACK_DEPLOY_TIMEOUT: float = 300.0

    def __init__(
        self,
        client: Optional[docker.DockerClient] = None,
        runner: Optional[CommandRunner] = None,
        workdir: Optional[str] = None,
    ) -> None:
        self._client = client
        self._runner = runner or CommandRunner()
        self._workdir = workdir

    @property
    def client(self) -> docker.DockerClient:
        if self._client is None:
            self._client = docker.from_env()
        return self._client

    async def _call(self, func: Any, *args: Any, **kwargs: Any) -> Any:
        try:
            return await asyncio.to_thread(func, *args, **kwargs)
        except DockerException as e:
            raise TransientUnavailable(SUBSTRATE_DEPENDENCY, str(e))

    async def ping(self) -> bool:
        try:
            return bool(await self._call(lambda: self.client.ping()))
        except TransientUnavailable:
            return False

    async def local_membership(self) -> LocalMembership:
        info = await self._call(lambda: self.client.info())
        swarm = info.get("Swarm") or {}
        if swarm.get("LocalNodeState") != "active":
            return LocalMembership.INACTIVE
        if swarm.get("ControlAvailable"):
            return LocalMembership.MANAGER
        return LocalMembership.WORKER

    async def membership(self) -> ClusterView:
        nodes = await self._call(lambda: self.client.nodes.list())
        return ClusterView(nodes=[self._to_cluster_node(n.attrs) for n in nodes])

    @staticmethod
    def _to_cluster_node(attrs: Dict[str, Any]) -> ClusterNode:
        spec = attrs.get("Spec", {})
        status = attrs.get("Status", {})
        manager_status = attrs.get("ManagerStatus") or {}
        is_manager = spec.get("Role") == "manager"

        state = status.get("State", "unknown")
        if is_manager and manager_status.get("Reachability") == "unreachable":
            membership = MembershipStatus.UNREACHABLE
        elif state == "ready":
            membership = MembershipStatus.READY
        elif state in ("down", "disconnected"):
            membership = MembershipStatus.DOWN
        else:
            membership = MembershipStatus.UNREACHABLE

        return ClusterNode(
            node_id=attrs.get("ID", ""),
            hostname=attrs.get("Description", {}).get("Hostname", ""),
            address=status.get("Addr"),
            is_manager=is_manager,
            status=membership,
            availability=spec.get("Availability", "active"),
            is_leader=bool(manager_status.get("Leader")),
        )

    async def init_cluster(self, advertise_address: str, force_new_cluster: bool = False) -> None:
        await self._call(
            lambda: self.client.swarm.init(
                advertise_addr=advertise_address,
                listen_addr=f"0.0.0.0:{SWARM_PORT}",
                force_new_cluster=force_new_cluster,
            )
        )

    async def join(self, manager_address: str, token: str) -> None:
        await self._call(
            lambda: self.client.swarm.join(
                remote_addrs=[f"{manager_address}:{SWARM_PORT}"],
                join_token=token,
            )
        )

    async def join_tokens(self) -> JoinTokens:
        def _read() -> Dict[str, str]:
            self.client.swarm.reload()
            return self.client.swarm.attrs["JoinTokens"]

        tokens = await self._call(_read)
        return JoinTokens(manager=tokens["Manager"], worker=tokens["Worker"])

    async def rotate_join_tokens(self) -> JoinTokens:
        def _rotate() -> None:
            self.client.swarm.reload()
            self.client.swarm.update(rotate_worker_token=True, rotate_manager_token=True)

        await self._call(_rotate)
        return await self.join_tokens()

    async def list_workloads(self) -> Dict[str, WorkloadStatus]:
        def _collect() -> List[WorkloadStatus]:
            result = []
            for service in self.client.services.list():
                tasks = service.tasks(filters={"desired-state": "running"})
                running = sum(1 for t in tasks if t.get("Status", {}).get("State") == "running")
                replicated = service.attrs.get("Spec", {}).get("Mode", {}).get("Replicated")
                desired = replicated.get("Replicas", 0) if replicated is not None else len(tasks)
                result.append(WorkloadStatus(name=service.name, desired=desired, running=running))
            return result

        statuses = await self._call(_collect)
        return {s.name: s for s in statuses}

    def _service(self, name: str) -> Any:
        # Le filtre "name" du démon est un préfixe: on garde le nom exact.
        for service in self.client.services.list(filters={"name": name}):
            if service.name == name:
                return service
        raise WorkloadNotFoundError(name)

    async def scale_workload(self, name: str, replicas: int) -> None:
        await self._call(lambda: self._service(name).scale(replicas))

    async def restart_workload(self, name: str) -> None:
        await self._call(lambda: self._service(name).force_update())

    async def deploy_stack(self, compose_file: str, stack_name: str, env: Dict[str, str]) -> None:
        try:
            await self._runner.run(
                "docker",
                "stack",
                "deploy",
                "--with-registry-auth",
                "--compose-file",
                compose_file,
                stack_name,
                env=env,
                cwd=self._workdir,
                timeout=self.STACK_DEPLOY_TIMEOUT,
                check=True,
            )
        except CommandError as e:
            raise TransientUnavailable(SUBSTRATE_DEPENDENCY, f"stack deploy failed: {e}")
