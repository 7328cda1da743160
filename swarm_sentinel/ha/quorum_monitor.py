"""
Swarm Sentinel - Quorum & Split-Brain Monitor

Évalue le quorum des managers à chaque cycle. Quand il est perdu, compte
les instances manager démarrées dans l'inventaire de provisioning:
- Une seule, et c'est ce noeud: nouveau cluster forcé (nouvel epoch),
  jetons régénérés et republiés, workloads critiques redémarrés
- Plusieurs: aucune action, événement QuorumLost pour l'opérateur

La récupération forcée est irréversible.
"""

import asyncio
from typing import Awaitable, Callable, List, Optional, TypeVar

from swarm_sentinel.cluster.interfaces import (
    ClusterView,
    IInventory,
    INodeMetadata,
    ISubstrate,
    LocalMembership,
    WorkloadNotFoundError,
)
from swarm_sentinel.core.exceptions import QuorumLost, TransientUnavailable
from swarm_sentinel.core.interfaces import ControllerConfig
from swarm_sentinel.logging import ContextualLogger, StructuredLogger
from swarm_sentinel.network import CallType, TimeoutManager
from swarm_sentinel.storage import SharedFile, SharedStorageCoordinator

from .interfaces import IQuorumMonitor, QuorumCheckResult, QuorumOutcome
from .periodic import MutationGuard

T = TypeVar("T")


class QuorumMonitor(IQuorumMonitor):
    """
    Moniteur de quorum managers.

    Le substrat dit si le quorum tient, l'inventaire dit combien de
    managers tournent encore réellement.
    """

    def __init__(
        self,
        config: ControllerConfig,
        substrate: ISubstrate,
        inventory: IInventory,
        metadata: INodeMetadata,
        storage: SharedStorageCoordinator,
        logger: StructuredLogger,
        timeouts: Optional[TimeoutManager] = None,
        guard: Optional[MutationGuard] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ) -> None:
        self._config = config
        self._substrate = substrate
        self._inventory = inventory
        self._metadata = metadata
        self._storage = storage
        self._logger = logger
        self._timeouts = timeouts or TimeoutManager.from_config(config.timeouts)
        self._guard = guard or MutationGuard(logger)
        self._sleep = sleep or asyncio.sleep
        self._instance_name: Optional[str] = None
        self._recoveries = 0

    @property
    def guard(self) -> MutationGuard:
        return self._guard

    @property
    def recoveries(self) -> int:
        """Nombre de récupérations forcées effectuées par ce processus."""
        return self._recoveries

    def _substrate_call(self, awaitable: Awaitable[T], operation: str) -> Awaitable[T]:
        return self._timeouts.call(CallType.SUBSTRATE, awaitable, operation)

    async def _own_instance(self) -> str:
        if self._instance_name is None:
            self._instance_name = await self._timeouts.call(
                CallType.METADATA, self._metadata.hostname(), "hostname"
            )
        return self._instance_name

    async def check_once(self) -> QuorumCheckResult:
        log = self._logger.with_context()

        local = await self._substrate_call(self._substrate.local_membership(), "local membership")
        if local is not LocalMembership.MANAGER:
            log.debug("Not a manager, quorum check skipped", local_membership=local.value)
            return QuorumCheckResult(outcome=QuorumOutcome.SKIPPED)

        view: Optional[ClusterView] = None
        try:
            view = await self._substrate_call(self._substrate.membership(), "membership")
        except TransientUnavailable as e:
            # Pas de leader: le substrat refuse la liste des membres
            log.warn("Membership query refused", event="membership_unavailable", error=str(e))

        managers = view.manager_count if view else 0
        ready = view.ready_manager_count if view else 0
        required = view.required_quorum if view else 1

        if view is not None and view.has_quorum:
            log.debug("Quorum holds", managers=managers, ready_managers=ready, required=required)
            return QuorumCheckResult(
                outcome=QuorumOutcome.HEALTHY,
                manager_count=managers,
                ready_managers=ready,
                required=required,
            )

        log.warn(
            "Manager quorum lost",
            event="quorum_lost",
            managers=managers,
            ready_managers=ready,
            required=required,
        )

        running = await self._timeouts.call(
            CallType.INVENTORY,
            self._inventory.running_instances(self._config.manager_instance_pattern),
            "running manager instances",
        )
        result = QuorumCheckResult(
            outcome=QuorumOutcome.AMBIGUOUS,
            manager_count=managers,
            ready_managers=ready,
            required=required,
            running_instances=len(running),
        )

        if len(running) > 1:
            error = QuorumLost(ready, required, len(running))
            log.critical(
                str(error),
                event="quorum_lost_ambiguous",
                running_instances=sorted(running),
            )
            return result

        own_instance = await self._own_instance()
        if running != [own_instance]:
            result.outcome = QuorumOutcome.STALE_INVENTORY
            log.warn(
                "Inventory does not list this node as the sole running manager, no action",
                event="quorum_inventory_stale",
                running_instances=running,
                instance=own_instance,
            )
            return result

        await self._guard.run(self._force_recovery(log, result))
        return result

    async def _force_recovery(self, log: ContextualLogger, result: QuorumCheckResult) -> None:
        """Nouveau cluster à un manager depuis l'état local de ce noeud."""
        address = await self._timeouts.call(CallType.METADATA, self._metadata.own_address(), "own address")
        log.warn("Forcing new single-manager cluster", event="forced_recovery_started", address=address)

        await self._substrate_call(
            self._substrate.init_cluster(address, force_new_cluster=True),
            "force new cluster",
        )
        self._recoveries += 1
        await self._sleep(self._config.stabilization_delay)

        result.epoch = await self._republish(log, address)
        result.restarted = await self._restart_critical(log)
        result.outcome = QuorumOutcome.RECOVERED

        log.warn(
            "Forced recovery completed",
            event="forced_recovery_completed",
            epoch=result.epoch,
            restarted=result.restarted,
        )

    async def _republish(self, log: ContextualLogger, address: str) -> Optional[int]:
        """Ce noeud devient l'autorité du partage et publie des jetons neufs."""
        try:
            tokens = await self._substrate_call(self._substrate.rotate_join_tokens(), "rotate join tokens")
            await self._storage.export(address)
            await self._storage.write(SharedFile.MANAGER_JOIN_TOKEN, tokens.manager)
            await self._storage.write(SharedFile.WORKER_JOIN_TOKEN, tokens.worker)
            await self._storage.write(SharedFile.PRIMARY_ADDRESS, address)
            return await self._storage.bump_epoch()
        except TransientUnavailable as e:
            log.error(
                "Join tokens not republished",
                event="join_tokens_unpublished",
                error=str(e),
            )
            return None

    async def _restart_critical(self, log: ContextualLogger) -> List[str]:
        restarted = []
        for name in self._config.critical_workloads:
            try:
                await self._substrate_call(self._substrate.restart_workload(name), f"restart {name}")
                restarted.append(name)
                log.info("Critical workload restarted", event="workload_restarted", workload=name)
            except (TransientUnavailable, WorkloadNotFoundError) as e:
                log.error(
                    "Critical workload restart failed",
                    event="workload_restart_failed",
                    workload=name,
                    error=str(e),
                )
        return restarted
