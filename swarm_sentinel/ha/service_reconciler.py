"""
Swarm Sentinel - Service Health Reconciler

Compare réplicas désirés et observés des workloads suivis et applique la
remédiation propre à chaque workload:
- Un seul noeud disponible: les workloads multi-noeuds passent à 1 réplica
- Moteur de recherche: purge de rétention si le disque est plein, puis
  redémarrage une fois sous le seuil
- Load balancer: configuration garantie via le partage, puis redémarrage
- Autres: redémarrage forcé

Quand le nombre de noeuds disponibles change, le plan de capacité est
recalculé et la stack redéployée avec ses nouvelles variables.

Un workload sain sur un cluster de taille stable ne déclenche aucun appel
de mutation.
"""

import asyncio
import os
from typing import Awaitable, Callable, List, Optional, TypeVar

import psutil

from swarm_sentinel.capacity import plan
from swarm_sentinel.cluster.interfaces import (
    ClusterView,
    ISubstrate,
    WorkloadNotFoundError,
)
from swarm_sentinel.core.exceptions import CapacityMismatch, ConfigurationMissing, TransientUnavailable
from swarm_sentinel.core.interfaces import ControllerConfig
from swarm_sentinel.logging import ContextualLogger, StructuredLogger
from swarm_sentinel.network import CallType, TimeoutManager
from swarm_sentinel.search import ISearchEngine
from swarm_sentinel.storage import SharedFile, SharedStorageCoordinator

from .interfaces import IServiceReconciler, ReconcileReport, Workload, WorkloadHealth
from .periodic import MutationGuard

T = TypeVar("T")

DiskUsage = Callable[[str], float]


def disk_usage_percent(path: str) -> float:
    """Pourcentage d'occupation du système de fichiers de path."""
    return psutil.disk_usage(path).percent


class ServiceReconciler(IServiceReconciler):
    """Réconciliateur de santé des workloads."""

    def __init__(
        self,
        config: ControllerConfig,
        substrate: ISubstrate,
        storage: SharedStorageCoordinator,
        search: ISearchEngine,
        logger: StructuredLogger,
        timeouts: Optional[TimeoutManager] = None,
        guard: Optional[MutationGuard] = None,
        disk_usage: Optional[DiskUsage] = None,
    ) -> None:
        self._config = config
        self._substrate = substrate
        self._storage = storage
        self._search = search
        self._logger = logger
        self._timeouts = timeouts or TimeoutManager.from_config(config.timeouts)
        self._guard = guard or MutationGuard(logger)
        self._disk_usage = disk_usage or disk_usage_percent
        self._planned_node_count: Optional[int] = None

    @property
    def guard(self) -> MutationGuard:
        return self._guard

    def _substrate_call(self, awaitable: Awaitable[T], operation: str) -> Awaitable[T]:
        return self._timeouts.call(CallType.SUBSTRATE, awaitable, operation)

    async def reconcile_once(self) -> ReconcileReport:
        log = self._logger.with_context()
        report = ReconcileReport()

        observed = await self._substrate_call(self._substrate.list_workloads(), "list workloads")
        view = await self._cluster_view(log)

        for name in self._config.tracked_workloads:
            status = observed.get(name)
            if status is None:
                report.missing.append(name)
                log.error("Tracked workload missing from substrate", event="workload_missing", workload=name)
                continue
            report.workloads.append(Workload.from_status(status))

        single_node = view is not None and view.available_node_count == 1
        to_scale = self._scale_down_candidates(report.workloads) if single_node else []
        to_fix = [
            w for w in report.workloads
            if w.health is not WorkloadHealth.HEALTHY and w.name not in to_scale
        ]

        replan = self._replan_target(view, report.workloads)

        if to_scale or to_fix or replan is not None:
            await self._guard.run(self._remediate(log, report, to_scale, to_fix, replan))
        else:
            log.debug("All tracked workloads healthy", workloads=len(report.workloads))

        return report

    @property
    def planned_node_count(self) -> Optional[int]:
        """Nombre de noeuds du dernier plan de capacité appliqué (None avant le premier cycle)."""
        return self._planned_node_count

    def _replan_target(self, view: Optional[ClusterView], workloads: List[Workload]) -> Optional[int]:
        """
        Nombre de noeuds pour lequel redéployer la stack, ou None.

        Au premier cycle, le plan en place est déduit des réplicas désirés
        du moteur de recherche: s'ils correspondent au plan pour la taille
        observée, aucun redéploiement.
        """
        if view is None or view.available_node_count < 1:
            return None
        count = view.available_node_count
        if self._planned_node_count is None:
            search = next((w for w in workloads if w.name == self._config.search_workload), None)
            expected = plan(count, self._config.capacity, self._config.stack_name).search_replicas
            if search is None or search.desired == expected:
                self._planned_node_count = count
                return None
            return count
        return None if count == self._planned_node_count else count

    async def _cluster_view(self, log: ContextualLogger) -> Optional[ClusterView]:
        try:
            return await self._substrate_call(self._substrate.membership(), "membership")
        except TransientUnavailable as e:
            # Sans vue du cluster, pas de réduction proactive
            log.warn("Membership unavailable, scale-down policy skipped", event="membership_unavailable", error=str(e))
            return None

    def _scale_down_candidates(self, workloads: List[Workload]) -> List[str]:
        multi_node = set(self._config.multi_node_workloads)
        return [w.name for w in workloads if w.name in multi_node and w.desired > 1]

    async def _remediate(
        self,
        log: ContextualLogger,
        report: ReconcileReport,
        to_scale: List[str],
        to_fix: List[Workload],
        replan: Optional[int] = None,
    ) -> None:
        # Redéploiement d'abord: il réécrit les réplicas déclarés par la stack
        if replan is not None:
            try:
                await self._redeploy(log, replan)
                report.redeployed_for = replan
            except (TransientUnavailable, ConfigurationMissing, OSError) as e:
                report.errors[self._config.stack_name] = str(e)
                log.error(
                    "Stack redeploy for new node count failed",
                    event="capacity_replan_failed",
                    node_count=replan,
                    error=str(e),
                )

        if to_scale:
            log.warn("Single available node, scaling multi-node workloads down", event="single_node_scale_down", workloads=to_scale)
        for name in to_scale:
            try:
                await self._substrate_call(self._substrate.scale_workload(name, 1), f"scale {name}")
                report.scaled_down.append(name)
                log.info("Workload scaled down", event="workload_scaled_down", workload=name, replicas=1)
            except (TransientUnavailable, WorkloadNotFoundError) as e:
                report.errors[name] = str(e)
                log.error("Workload scale-down failed", event="workload_scale_failed", workload=name, error=str(e))

        for workload in to_fix:
            mismatch = CapacityMismatch(workload.name, workload.desired, workload.observed)
            log.warn(
                str(mismatch),
                event="capacity_mismatch",
                workload=workload.name,
                desired=workload.desired,
                running=workload.observed,
                health=workload.health.value,
            )
            try:
                if workload.name == self._config.search_workload:
                    restarted = await self._remediate_search(log, report)
                elif workload.name == self._config.load_balancer_workload:
                    restarted = await self._remediate_load_balancer(log)
                else:
                    restarted = await self._restart(workload.name)
            except (TransientUnavailable, WorkloadNotFoundError, ConfigurationMissing, OSError) as e:
                report.errors[workload.name] = str(e)
                log.error("Remediation failed", event="remediation_failed", workload=workload.name, error=str(e))
                continue

            if restarted:
                report.restarted.append(workload.name)
                log.info("Workload restarted", event="workload_restarted", workload=workload.name)

    async def _redeploy(self, log: ContextualLogger, node_count: int) -> None:
        """
        Applique le plan de capacité de node_count noeuds par redéploiement.

        Raises:
            ConfigurationMissing: Fichier compose ou adresse du primaire absents
        """
        capacity = plan(node_count, self._config.capacity, self._config.stack_name)
        compose_file = self._config.compose_path
        if not await asyncio.to_thread(os.path.exists, compose_file):
            raise ConfigurationMissing(compose_file, "compose file absent, stack not redeployed")

        # NFS_MASTER_IP est requis par les volumes de la stack
        address = self._storage.handle.source
        if not address:
            address = (await self._storage.read(SharedFile.PRIMARY_ADDRESS)).content.strip()
        if not address:
            raise ConfigurationMissing(SharedFile.PRIMARY_ADDRESS.value, "empty primary address")

        await self._substrate_call(
            self._substrate.deploy_stack(compose_file, self._config.stack_name, capacity.to_env(address)),
            "deploy stack",
        )
        previous = self._planned_node_count
        self._planned_node_count = node_count
        log.warn(
            "Node count changed, capacity plan re-applied",
            event="capacity_replanned",
            previous_node_count=previous,
            node_count=node_count,
            search_replicas=capacity.search_replicas,
            heap_size=capacity.heap_size,
        )

    async def _restart(self, name: str) -> bool:
        await self._substrate_call(self._substrate.restart_workload(name), f"restart {name}")
        return True

    async def _remediate_search(self, log: ContextualLogger, report: ReconcileReport) -> bool:
        path = self._config.search_data_path
        threshold = self._config.disk_cleanup_threshold
        usage = self._disk_usage(path)

        if usage > threshold:
            log.warn(
                "Search data disk above cleanup threshold",
                event="search_disk_pressure",
                usage_percent=usage,
                threshold=threshold,
            )
            deleted = await self._timeouts.call(
                CallType.SEARCH,
                self._search.delete_older_than(
                    self._config.retention_index_pattern,
                    self._config.retention_field,
                    self._config.retention_days,
                ),
                "retention purge",
            )
            report.purged_documents += deleted
            usage = self._disk_usage(path)
            log.info(
                "Retention purge finished",
                event="search_retention_purge",
                deleted=deleted,
                usage_percent=usage,
            )
            if usage > threshold:
                log.warn(
                    "Disk still above threshold, search restart deferred",
                    event="search_restart_deferred",
                    usage_percent=usage,
                )
                return False

        return await self._restart(self._config.search_workload)

    async def _remediate_load_balancer(self, log: ContextualLogger) -> bool:
        result = await self._storage.ensure_file(SharedFile.LB_CONFIG)
        if result.degraded:
            log.warn(
                "Load balancer configuration served from fallback",
                event="lb_config_fallback",
                source=result.source.value,
            )
        return await self._restart(self._config.load_balancer_workload)

