"""
Swarm Sentinel - Command line

Usage:
    # Démarrage du noeud (une seule fois, au boot de l'instance)
    swarm-sentinel --config /etc/swarm-sentinel.yaml bootstrap

    # Boucles d'auto-réparation (service permanent sur les managers)
    swarm-sentinel monitor

    # Plan de capacité pour N noeuds
    swarm-sentinel plan --nodes 3

    # Sonde unique du moteur de recherche
    swarm-sentinel probe
"""

import argparse
import asyncio
import json
import socket
import sys
from dataclasses import dataclass
from typing import List, Optional

from swarm_sentinel.bootstrap import NodeBootstrapper
from swarm_sentinel.capacity import plan
from swarm_sentinel.cluster import DockerSwarmSubstrate, GceNodeMetadata, GcloudInventory
from swarm_sentinel.core.command_runner import CommandRunner
from swarm_sentinel.core.config_loader import ConfigLoader
from swarm_sentinel.core.exceptions import ConfigurationError
from swarm_sentinel.core.interfaces import ControllerConfig
from swarm_sentinel.ha import (
    PeriodicTask,
    QuorumMonitor,
    SearchHealthMonitor,
    ServiceReconciler,
    Severity,
    Supervisor,
)
from swarm_sentinel.logging import LogConfig, StructuredLogger
from swarm_sentinel.network import TimeoutManager
from swarm_sentinel.search import OpenSearchClient
from swarm_sentinel.storage import (
    DockerVolumePeerSource,
    LocalFileStore,
    NfsStorageBackend,
    SharedStorageCoordinator,
)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CRITICAL = 2


def _stderr(line: str) -> None:
    print(line, file=sys.stderr, flush=True)


@dataclass
class Components:
    """Adaptateurs et composants partagés par les sous-commandes."""

    config: ControllerConfig
    logger: StructuredLogger
    timeouts: TimeoutManager
    substrate: DockerSwarmSubstrate
    inventory: GcloudInventory
    metadata: GceNodeMetadata
    storage: SharedStorageCoordinator
    search: OpenSearchClient


def build_logger(config: ControllerConfig, name: str = "swarm-sentinel") -> StructuredLogger:
    logger = StructuredLogger(
        name,
        config=LogConfig(
            min_level=StructuredLogger.parse_level(config.log_level),
            default_node_id=socket.gethostname(),
        ),
        output_handler=_stderr,
    )
    return logger


def build_components(config: ControllerConfig) -> Components:
    """Câble les adaptateurs réels (socket docker, gcloud, NFS, OpenSearch)."""
    logger = build_logger(config)
    timeouts = TimeoutManager.from_config(config.timeouts)
    runner = CommandRunner()

    storage = SharedStorageCoordinator(
        backend=NfsStorageBackend(
            config.storage,
            runner=runner,
            anon_uid=config.data_uid,
            anon_gid=config.data_gid,
        ),
        peer_source=DockerVolumePeerSource(config.storage.peer_volume, runner=runner),
        cache=LocalFileStore(config.storage.cache_dir),
        logger=logger.child("shared-storage"),
        mount_point=config.storage.mount_point,
        timeouts=timeouts,
    )

    return Components(
        config=config,
        logger=logger,
        timeouts=timeouts,
        substrate=DockerSwarmSubstrate(runner=runner, workdir=config.workdir),
        inventory=GcloudInventory(runner=runner, timeout=config.timeouts.inventory),
        metadata=GceNodeMetadata(config.metadata_url, timeout=config.timeouts.metadata),
        storage=storage,
        search=OpenSearchClient(config.search_url, timeout=config.timeouts.search),
    )


def build_tasks(components: Components) -> List[PeriodicTask]:
    """Les trois boucles, chacune avec la section protégée de son composant."""
    config = components.config
    logger = components.logger

    quorum = QuorumMonitor(
        config,
        components.substrate,
        components.inventory,
        components.metadata,
        components.storage,
        logger.child("quorum-monitor"),
        timeouts=components.timeouts,
    )
    reconciler = ServiceReconciler(
        config,
        components.substrate,
        components.storage,
        components.search,
        logger.child("service-reconciler"),
        timeouts=components.timeouts,
    )
    search_monitor = SearchHealthMonitor(
        components.search,
        config.search_thresholds,
        logger.child("search-health"),
        timeouts=components.timeouts,
    )

    return [
        PeriodicTask(
            "quorum",
            config.quorum_check_interval,
            quorum.check_once,
            logger,
            deadline=config.cycle_deadline,
            guard=quorum.guard,
        ),
        PeriodicTask(
            "reconciler",
            config.monitor_interval,
            reconciler.reconcile_once,
            logger,
            deadline=config.cycle_deadline,
            guard=reconciler.guard,
        ),
        PeriodicTask(
            "search-health",
            config.search_check_interval,
            search_monitor.probe_once,
            logger,
            deadline=min(config.cycle_deadline, config.search_check_interval),
        ),
    ]


# ══════════════════════════════════════════════════════════════════════════════
# SOUS-COMMANDES
# ══════════════════════════════════════════════════════════════════════════════


def cmd_bootstrap(args: argparse.Namespace, config: ControllerConfig) -> int:
    """Amène le noeud jusqu'à READY."""
    components = build_components(config)
    bootstrapper = NodeBootstrapper(
        config,
        components.metadata,
        components.substrate,
        components.inventory,
        components.storage,
        components.logger.child("bootstrap"),
        timeouts=components.timeouts,
    )
    result = asyncio.run(bootstrapper.run())
    return EXIT_OK if result.success else EXIT_FAILED


async def run_monitor(components: Components) -> None:
    """Reprend l'état du partage laissé par le bootstrap, puis lance les boucles."""
    await components.storage.restore()
    supervisor = Supervisor(build_tasks(components), components.logger.child("supervisor"))
    await supervisor.run()


def cmd_monitor(args: argparse.Namespace, config: ControllerConfig) -> int:
    """Boucles d'auto-réparation jusqu'à SIGTERM/SIGINT."""
    asyncio.run(run_monitor(build_components(config)))
    return EXIT_OK


def cmd_plan(args: argparse.Namespace, config: ControllerConfig) -> int:
    """Affiche les variables d'environnement du plan de capacité."""
    try:
        capacity = plan(args.nodes, config.capacity, config.stack_name)
    except ValueError as e:
        _stderr(f"error: {e}")
        return EXIT_FAILED
    print(json.dumps(capacity.to_env(args.nfs_master_ip), indent=2, sort_keys=True))
    return EXIT_OK


def cmd_probe(args: argparse.Namespace, config: ControllerConfig) -> int:
    """Sonde unique du moteur de recherche; code 2 si constat critique."""
    logger = build_logger(config, "search-health")
    monitor = SearchHealthMonitor(
        OpenSearchClient(args.url or config.search_url, timeout=config.timeouts.search),
        config.search_thresholds,
        logger,
        timeouts=TimeoutManager.from_config(config.timeouts),
    )
    sample = asyncio.run(monitor.probe_once())
    print(json.dumps(sample.to_dict(), indent=2))
    return EXIT_CRITICAL if sample.severity is Severity.CRITICAL else EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="swarm-sentinel",
        description="Bootstrap and self-healing controller for a Docker swarm cluster",
    )
    parser.add_argument("--config", "-c", help="YAML configuration file")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("bootstrap", help="Bring this node to READY")
    subparsers.add_parser("monitor", help="Run the quorum, reconciler and search-health loops")

    plan_parser = subparsers.add_parser("plan", help="Print the capacity plan for a node count")
    plan_parser.add_argument("--nodes", "-n", type=int, required=True, help="Number of nodes")
    plan_parser.add_argument("--nfs-master-ip", default=None, help="Address rendered as NFS_MASTER_IP")

    probe_parser = subparsers.add_parser("probe", help="Run one search-engine health probe")
    probe_parser.add_argument("--url", default=None, help="Override the search-engine URL")

    return parser


COMMANDS = {
    "bootstrap": cmd_bootstrap,
    "monitor": cmd_monitor,
    "plan": cmd_plan,
    "probe": cmd_probe,
}


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        config = ConfigLoader(args.config).load()
    except ConfigurationError as e:
        _stderr(f"error: {e}")
        return EXIT_FAILED
    return COMMANDS[args.command](args, config)


if __name__ == "__main__":
    sys.exit(main())
