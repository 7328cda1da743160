"""
Tests unitaires ServiceReconciler

Un workload sain ne déclenche aucune mutation; les workloads dégradés
reçoivent la remédiation qui leur est propre.
"""

from unittest.mock import AsyncMock, Mock

import pytest

from swarm_sentinel.ha import IServiceReconciler, ServiceReconciler, Workload, WorkloadHealth, disk_usage_percent
from swarm_sentinel.search import ISearchEngine
from swarm_sentinel.storage import SharedFile


HEALTHY = {
    "shuffle_backend": (3, 3),
    "shuffle_frontend": (3, 3),
    "shuffle_opensearch": (3, 3),
    "shuffle_orborus": (1, 1),
    "shuffle_memcached": (1, 1),
    "shuffle_load-balancer": (1, 1),
}


# ══════════════════════════════════════════════════════════════════════════════
# FIXTURES
# ══════════════════════════════════════════════════════════════════════════════


@pytest.fixture
def search():
    engine = Mock(spec=ISearchEngine)
    engine.delete_older_than = AsyncMock(return_value=120)
    return engine


@pytest.fixture
def three_nodes(node_factory):
    return [node_factory(1), node_factory(2), node_factory(3)]


@pytest.fixture
def make_reconciler(config, storage, search, logger):
    def _make(substrate, disk_usage=None):
        return ServiceReconciler(
            config,
            substrate,
            storage,
            search,
            logger,
            disk_usage=disk_usage or (lambda path: 50.0),
        )

    return _make


# ══════════════════════════════════════════════════════════════════════════════
# TESTS CLASSIFICATION
# ══════════════════════════════════════════════════════════════════════════════


class TestWorkloadHealth:
    """healthy / degraded / failed."""

    @pytest.mark.parametrize(
        "desired,observed,health",
        [
            (3, 3, WorkloadHealth.HEALTHY),
            (3, 1, WorkloadHealth.DEGRADED),
            (1, 0, WorkloadHealth.FAILED),
            (0, 0, WorkloadHealth.HEALTHY),
        ],
    )
    def test_classification(self, desired, observed, health):
        assert Workload("w", desired, observed).health is health


# ══════════════════════════════════════════════════════════════════════════════
# TESTS IDEMPOTENCE
# ══════════════════════════════════════════════════════════════════════════════


class TestIdempotence:
    """Aucune mutation sur un cluster sain."""

    def test_implements_interface(self, make_reconciler, substrate):
        assert isinstance(make_reconciler(substrate), IServiceReconciler)

    @pytest.mark.asyncio
    async def test_twice_on_healthy_workloads(self, make_reconciler, substrate_factory, three_nodes):
        substrate = substrate_factory(nodes=three_nodes, workloads=HEALTHY)
        reconciler = make_reconciler(substrate)

        first = await reconciler.reconcile_once()
        second = await reconciler.reconcile_once()

        assert first.actions == 0
        assert second.actions == 0
        assert substrate.mutation_calls() == []

    @pytest.mark.asyncio
    async def test_scale_down_converges(self, make_reconciler, substrate_factory, node_factory):
        workloads = dict(HEALTHY, shuffle_backend=(3, 1), shuffle_frontend=(3, 1), shuffle_opensearch=(3, 1))
        substrate = substrate_factory(nodes=[node_factory(1)], workloads=workloads)
        reconciler = make_reconciler(substrate)

        first = await reconciler.reconcile_once()
        calls_after_first = len(substrate.mutation_calls())
        second = await reconciler.reconcile_once()

        assert sorted(first.scaled_down) == ["shuffle_backend", "shuffle_frontend", "shuffle_opensearch"]
        assert first.restarted == []
        assert second.actions == 0
        assert len(substrate.mutation_calls()) == calls_after_first


# ══════════════════════════════════════════════════════════════════════════════
# TESTS REMÉDIATION
# ══════════════════════════════════════════════════════════════════════════════


class TestRemediation:
    """Remédiation par workload."""

    @pytest.mark.asyncio
    async def test_generic_restart(self, make_reconciler, substrate_factory, three_nodes, logger):
        substrate = substrate_factory(nodes=three_nodes, workloads=dict(HEALTHY, shuffle_orborus=(1, 0)))

        report = await make_reconciler(substrate).reconcile_once()

        assert report.restarted == ["shuffle_orborus"]
        assert substrate.calls_named("restart_workload") == [("restart_workload", "shuffle_orborus")]
        assert logger.get_entries_by_event("capacity_mismatch")

    @pytest.mark.asyncio
    async def test_no_scale_down_with_several_nodes(self, make_reconciler, substrate_factory, three_nodes):
        substrate = substrate_factory(nodes=three_nodes, workloads=dict(HEALTHY, shuffle_backend=(3, 2)))

        report = await make_reconciler(substrate).reconcile_once()

        assert report.scaled_down == []
        assert report.restarted == ["shuffle_backend"]

    @pytest.mark.asyncio
    async def test_search_purge_then_restart(self, make_reconciler, substrate_factory, three_nodes, search):
        usage = iter([95.0, 70.0])
        substrate = substrate_factory(nodes=three_nodes, workloads=dict(HEALTHY, shuffle_opensearch=(3, 0)))

        report = await make_reconciler(substrate, disk_usage=lambda path: next(usage)).reconcile_once()

        search.delete_older_than.assert_awaited_once_with("workflowexecution-*", "started_at", 30)
        assert report.purged_documents == 120
        assert report.restarted == ["shuffle_opensearch"]

    @pytest.mark.asyncio
    async def test_search_restart_deferred_when_disk_full(
        self, make_reconciler, substrate_factory, three_nodes, logger
    ):
        substrate = substrate_factory(nodes=three_nodes, workloads=dict(HEALTHY, shuffle_opensearch=(3, 0)))

        report = await make_reconciler(substrate, disk_usage=lambda path: 97.0).reconcile_once()

        assert report.restarted == []
        assert substrate.calls_named("restart_workload") == []
        assert logger.get_entries_by_event("search_restart_deferred")

    @pytest.mark.asyncio
    async def test_load_balancer_config_restored(self, make_reconciler, substrate_factory, three_nodes, storage, backend):
        await storage.export("10.224.0.1")
        substrate = substrate_factory(nodes=three_nodes, workloads=dict(HEALTHY, **{"shuffle_load-balancer": (1, 0)}))

        report = await make_reconciler(substrate).reconcile_once()

        assert report.restarted == ["shuffle_load-balancer"]
        assert SharedFile.LB_CONFIG.value in backend.files

    @pytest.mark.asyncio
    async def test_missing_workload_reported(self, make_reconciler, substrate_factory, three_nodes, logger):
        workloads = {k: v for k, v in HEALTHY.items() if k != "shuffle_memcached"}
        substrate = substrate_factory(nodes=three_nodes, workloads=workloads)

        report = await make_reconciler(substrate).reconcile_once()

        assert report.missing == ["shuffle_memcached"]
        assert logger.get_entries_by_event("workload_missing")

    @pytest.mark.asyncio
    async def test_membership_refused_skips_scale_down(self, make_reconciler, substrate_factory, node_factory):
        substrate = substrate_factory(nodes=[node_factory(1)], workloads=dict(HEALTHY, shuffle_backend=(3, 1)))
        substrate.membership_refused = True

        report = await make_reconciler(substrate).reconcile_once()

        assert report.scaled_down == []
        assert report.restarted == ["shuffle_backend"]


# ══════════════════════════════════════════════════════════════════════════════
# TESTS REPLANIFICATION
# ══════════════════════════════════════════════════════════════════════════════


@pytest.fixture
def stack_config(config, tmp_path):
    """Configuration dont le fichier compose existe."""
    (tmp_path / "swarm-nfs.yaml").write_text("version: '3.8'\n")
    return config.model_copy(update={"workdir": str(tmp_path)})


@pytest.fixture
def make_stack_reconciler(stack_config, storage, search, logger):
    def _make(substrate):
        return ServiceReconciler(stack_config, substrate, storage, search, logger, disk_usage=lambda path: 50.0)

    return _make


def _deployed_env(substrate):
    return [call[3] for call in substrate.calls_named("deploy_stack")]


class TestCapacityReplan:
    """Plan de capacité réappliqué quand le nombre de noeuds change."""

    @pytest.mark.asyncio
    async def test_three_to_one_then_back(
        self, make_stack_reconciler, substrate_factory, three_nodes, node_factory, storage, stack_config, logger
    ):
        await storage.export("10.224.0.1")
        substrate = substrate_factory(nodes=three_nodes, workloads=HEALTHY)
        reconciler = make_stack_reconciler(substrate)

        # Taille stable: plan en place, aucun redéploiement
        assert (await reconciler.reconcile_once()).redeployed_for is None
        assert reconciler.planned_node_count == 3
        assert substrate.calls_named("deploy_stack") == []

        substrate.nodes = [node_factory(1)]
        shrunk = await reconciler.reconcile_once()

        assert shrunk.redeployed_for == 1
        deploy = substrate.calls_named("deploy_stack")[0]
        assert deploy[1] == stack_config.compose_path
        assert deploy[2] == "shuffle"
        env = deploy[3]
        assert env["SWARM_NODE_COUNT"] == "1"
        assert env["OPENSEARCH_REPLICAS"] == "1"
        assert env["OPENSEARCH_INDEX_REPLICAS"] == "0"
        assert env["OPENSEARCH_DISCOVERY_TYPE"] == "single-node"
        assert env["OPENSEARCH_INITIAL_MASTERS"] == "shuffle-opensearch-1"
        assert env["NFS_MASTER_IP"] == "10.224.0.1"
        assert logger.get_entries_by_event("capacity_replanned")

        # Même taille: idempotent
        assert (await reconciler.reconcile_once()).redeployed_for is None
        assert len(substrate.calls_named("deploy_stack")) == 1

        substrate.nodes = three_nodes
        grown = await reconciler.reconcile_once()

        assert grown.redeployed_for == 3
        env = _deployed_env(substrate)[-1]
        assert env["SWARM_NODE_COUNT"] == "3"
        assert env["OPENSEARCH_REPLICAS"] == "3"
        assert env["OPENSEARCH_DISCOVERY_TYPE"] == "zen"
        assert reconciler.planned_node_count == 3
        assert grown.scaled_down == []

    @pytest.mark.asyncio
    async def test_redeploy_precedes_scale_down(
        self, make_stack_reconciler, substrate_factory, three_nodes, node_factory, storage
    ):
        await storage.export("10.224.0.1")
        substrate = substrate_factory(nodes=three_nodes, workloads=HEALTHY)
        reconciler = make_stack_reconciler(substrate)
        await reconciler.reconcile_once()

        substrate.nodes = [node_factory(1)]
        report = await reconciler.reconcile_once()

        mutations = [c[0] for c in substrate.mutation_calls()]
        assert mutations[0] == "deploy_stack"
        assert sorted(report.scaled_down) == ["shuffle_backend", "shuffle_frontend", "shuffle_opensearch"]

    @pytest.mark.asyncio
    async def test_first_cycle_detects_stale_plan(self, make_stack_reconciler, substrate_factory, node_factory, storage):
        """Moniteur démarré après la perte: réplicas de recherche prévus pour 3 noeuds."""
        await storage.mount("10.224.0.1")
        substrate = substrate_factory(nodes=[node_factory(1)], workloads=HEALTHY)

        report = await make_stack_reconciler(substrate).reconcile_once()

        assert report.redeployed_for == 1
        assert _deployed_env(substrate)[0]["SWARM_NODE_COUNT"] == "1"

    @pytest.mark.asyncio
    async def test_primary_address_read_from_share(
        self, make_stack_reconciler, substrate_factory, node_factory, storage, backend
    ):
        backend.mounted = True
        backend.files["primary-address"] = "10.224.0.9\n"
        substrate = substrate_factory(nodes=[node_factory(1)], workloads=HEALTHY)

        await make_stack_reconciler(substrate).reconcile_once()

        assert _deployed_env(substrate)[0]["NFS_MASTER_IP"] == "10.224.0.9"

    @pytest.mark.asyncio
    async def test_missing_compose_file_retried(
        self, make_reconciler, substrate_factory, three_nodes, node_factory, storage, logger
    ):
        """Échec du redéploiement: consigné, le reste du cycle continue, nouvel essai au cycle suivant."""
        await storage.export("10.224.0.1")
        substrate = substrate_factory(nodes=three_nodes, workloads=HEALTHY)
        reconciler = make_reconciler(substrate)
        await reconciler.reconcile_once()

        substrate.nodes = [node_factory(1)]
        report = await reconciler.reconcile_once()

        assert report.redeployed_for is None
        assert "shuffle" in report.errors
        assert len(report.scaled_down) == 3
        assert substrate.calls_named("deploy_stack") == []
        assert reconciler.planned_node_count == 3
        assert logger.get_entries_by_event("capacity_replan_failed")

    @pytest.mark.asyncio
    async def test_no_address_known(self, make_stack_reconciler, substrate_factory, node_factory):
        substrate = substrate_factory(nodes=[node_factory(1)], workloads=HEALTHY)

        report = await make_stack_reconciler(substrate).reconcile_once()

        assert report.redeployed_for is None
        assert "shuffle" in report.errors
        assert substrate.calls_named("deploy_stack") == []


class TestDiskUsage:
    """Mesure réelle du disque via psutil."""

    def test_percentage_of_real_filesystem(self, tmp_path):
        usage = disk_usage_percent(str(tmp_path))
        assert 0.0 <= usage <= 100.0
