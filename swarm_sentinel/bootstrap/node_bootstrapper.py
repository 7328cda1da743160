"""
Swarm Sentinel - Node Bootstrapper

Amène un noeud fraîchement provisionné jusqu'à READY:
détection du rôle, dépendances locales, création ou jonction du cluster,
déploiement de la stack dimensionnée par le planificateur de capacité.

Chaque étape retourne une issue; la table TRANSITIONS donne l'état
suivant. Une paire (état, issue) absente de la table mène à FAILED.
FAILED est terminal et n'est jamais relancé automatiquement.
"""

import asyncio
import os
from typing import Awaitable, Callable, Dict, Optional, Tuple, TypeVar

from swarm_sentinel.capacity import CapacityPlan, plan
from swarm_sentinel.cluster.interfaces import (
    IInventory,
    INodeMetadata,
    ISubstrate,
    LocalMembership,
    NodeRole,
)
from swarm_sentinel.core.exceptions import ConfigurationMissing, SentinelError, TransientUnavailable
from swarm_sentinel.core.interfaces import ControllerConfig
from swarm_sentinel.logging import ContextualLogger, StructuredLogger
from swarm_sentinel.network import CallType, RetryConfig, RetryHandler, TimeoutManager
from swarm_sentinel.storage import SharedFile, SharedStorageCoordinator

from .interfaces import (
    BootstrapResult,
    BootstrapState,
    INodeBootstrapper,
    NodeAssignment,
    StepOutcome,
)

T = TypeVar("T")

JOIN_TOKEN_PREFIX = "SWMTKN"


class BootstrapError(SentinelError):
    """Étape de bootstrap impossible à poursuivre."""

    pass


class NodeBootstrapper(INodeBootstrapper):
    """
    Machine à états du démarrage d'un noeud.

    Example:
        bootstrapper = NodeBootstrapper(config, metadata, substrate, inventory, storage, logger)
        result = await bootstrapper.run()
        if not result.success:
            sys.exit(1)
    """

    TRANSITIONS: Dict[Tuple[BootstrapState, StepOutcome], BootstrapState] = {
        (BootstrapState.DETECT_ROLE, StepOutcome.OK): BootstrapState.PROVISION_DEPENDENCIES,
        (BootstrapState.PROVISION_DEPENDENCIES, StepOutcome.PRIMARY): BootstrapState.PRIMARY_INIT,
        (BootstrapState.PROVISION_DEPENDENCIES, StepOutcome.SECONDARY): BootstrapState.SECONDARY_JOIN,
        (BootstrapState.PRIMARY_INIT, StepOutcome.OK): BootstrapState.DEPLOY_WORKLOADS,
        (BootstrapState.SECONDARY_JOIN, StepOutcome.OK): BootstrapState.DEPLOY_WORKLOADS,
        (BootstrapState.SECONDARY_JOIN, StepOutcome.SKIP_DEPLOY): BootstrapState.READY,
        (BootstrapState.DEPLOY_WORKLOADS, StepOutcome.OK): BootstrapState.READY,
        (BootstrapState.DETECT_ROLE, StepOutcome.FAILED): BootstrapState.FAILED,
        (BootstrapState.PROVISION_DEPENDENCIES, StepOutcome.FAILED): BootstrapState.FAILED,
        (BootstrapState.PRIMARY_INIT, StepOutcome.FAILED): BootstrapState.FAILED,
        (BootstrapState.SECONDARY_JOIN, StepOutcome.FAILED): BootstrapState.FAILED,
        (BootstrapState.DEPLOY_WORKLOADS, StepOutcome.FAILED): BootstrapState.FAILED,
    }

    METADATA_RETRY = RetryConfig(max_attempts=3, initial_delay=1.0, max_delay=5.0)
    # Vérification du démon du substrat
    PING_RETRY = RetryConfig(max_attempts=5, initial_delay=2.0, max_delay=10.0)

    def __init__(
        self,
        config: ControllerConfig,
        metadata: INodeMetadata,
        substrate: ISubstrate,
        inventory: IInventory,
        storage: SharedStorageCoordinator,
        logger: StructuredLogger,
        retry: Optional[RetryHandler] = None,
        timeouts: Optional[TimeoutManager] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
        is_root: Optional[Callable[[], bool]] = None,
    ) -> None:
        """
        Args:
            config: Configuration du contrôleur
            metadata: Métadonnées du noeud (rôle, nom du déploiement...)
            substrate: Substrat d'orchestration
            inventory: Inventaire de provisioning
            storage: Coordinateur du partage de contrôle
            logger: Logger structuré
            retry: Gestionnaire de retries (sleep injectable en tests)
            timeouts: Timeouts par appel
            sleep: Fonction d'attente injectable
            is_root: Indique si le processus tourne en root
        """
        self._config = config
        self._metadata = metadata
        self._substrate = substrate
        self._inventory = inventory
        self._storage = storage
        self._logger = logger
        self._sleep = sleep or asyncio.sleep
        self._retry = retry or RetryHandler(sleep=self._sleep)
        self._timeouts = timeouts or TimeoutManager.from_config(config.timeouts)
        self._is_root = is_root or (lambda: os.geteuid() == 0)

        self._state = BootstrapState.DETECT_ROLE
        self._assignment: Optional[NodeAssignment] = None
        self._primary_address: Optional[str] = None
        self._plan: Optional[CapacityPlan] = None

    @property
    def state(self) -> BootstrapState:
        return self._state

    @property
    def assignment(self) -> Optional[NodeAssignment]:
        return self._assignment

    @classmethod
    def next_state(cls, state: BootstrapState, outcome: StepOutcome) -> BootstrapState:
        """État suivant; FAILED pour toute paire non définie."""
        return cls.TRANSITIONS.get((state, outcome), BootstrapState.FAILED)

    def _require_assignment(self) -> NodeAssignment:
        if self._assignment is None:
            raise BootstrapError("node role not detected yet")
        return self._assignment

    def _call(self, call_type: CallType, awaitable: Awaitable[T], operation: str) -> Awaitable[T]:
        return self._timeouts.call(call_type, awaitable, operation)

    # ══════════════════════════════════════════════════════════════════════════
    # BOUCLE PRINCIPALE
    # ══════════════════════════════════════════════════════════════════════════

    async def run(self) -> BootstrapResult:
        log = self._logger.with_context()
        steps = {
            BootstrapState.DETECT_ROLE: self._detect_role,
            BootstrapState.PROVISION_DEPENDENCIES: self._provision_dependencies,
            BootstrapState.PRIMARY_INIT: self._primary_init,
            BootstrapState.SECONDARY_JOIN: self._secondary_join,
            BootstrapState.DEPLOY_WORKLOADS: self._deploy_workloads,
        }
        result = BootstrapResult(state=self._state)

        while not self._state.is_terminal:
            step = steps[self._state]
            try:
                outcome = await step(log)
            except (SentinelError, OSError) as e:
                result.error = f"{self._state.value}: {e}"
                outcome = StepOutcome.FAILED
                log.error(
                    "Bootstrap step failed",
                    event="bootstrap_step_failed",
                    state=self._state.value,
                    error=str(e),
                    error_type=type(e).__name__,
                )

            result.history.append((self._state, outcome))
            next_state = self.next_state(self._state, outcome)
            if next_state is BootstrapState.FAILED and outcome is not StepOutcome.FAILED:
                result.error = f"no transition from {self._state.value} on {outcome.value}"

            log.info(
                "Bootstrap transition",
                event="bootstrap_transition",
                from_state=self._state.value,
                outcome=outcome.value,
                to_state=next_state.value,
            )
            self._state = next_state

        result.state = self._state
        result.assignment = self._assignment
        result.plan = self._plan

        if self._state is BootstrapState.FAILED:
            log.critical(
                "Bootstrap failed, operator action required",
                event="bootstrap_failed",
                error=result.error,
                history=[f"{s.value}:{o.value}" for s, o in result.history],
            )
        else:
            log.info(
                "Node ready",
                event="bootstrap_ready",
                role=self._assignment.role.value if self._assignment else None,
            )
        return result

    # ══════════════════════════════════════════════════════════════════════════
    # ÉTAPES
    # ══════════════════════════════════════════════════════════════════════════

    async def _detect_role(self, log: ContextualLogger) -> StepOutcome:
        """
        Lit le rôle assigné dans les métadonnées du noeud.

        Raises:
            ConfigurationMissing: Si node-role absent ou total-nodes invalide
        """
        role_attr = await self._attribute("node-role")
        if not role_attr:
            raise ConfigurationMissing("node-role", "metadata attribute not set")

        total_attr = await self._attribute("total-nodes")
        try:
            total_nodes = int(total_attr) if total_attr else 0
        except ValueError:
            total_nodes = 0
        if total_nodes < 1:
            raise ConfigurationMissing("total-nodes", f"invalid value {total_attr!r}")

        deployment = await self._attribute("deployment-name") or self._config.deployment_name
        is_primary = (await self._attribute("is-primary") or "").strip().lower() == "true"

        role_attr = role_attr.strip().lower()
        if role_attr == "manager":
            role = NodeRole.PRIMARY_MANAGER if is_primary else NodeRole.SECONDARY_MANAGER
        elif role_attr == "worker":
            role = NodeRole.WORKER
        else:
            raise ConfigurationMissing("node-role", f"unknown role {role_attr!r}")

        if total_nodes == 1 and role is not NodeRole.PRIMARY_MANAGER:
            log.warn(
                "Single-node deployment, forcing primary manager role",
                event="single_node_forced_primary",
                assigned_role=role.value,
            )
            role = NodeRole.PRIMARY_MANAGER

        instance_name = await self._call(CallType.METADATA, self._metadata.hostname(), "hostname")
        address = await self._call(CallType.METADATA, self._metadata.own_address(), "own address")

        self._assignment = NodeAssignment(
            role=role,
            deployment_name=deployment,
            total_nodes=total_nodes,
            instance_name=instance_name,
            address=address,
        )
        self._logger.set_default_node(instance_name)
        log.info(
            "Node role detected",
            event="role_detected",
            role=role.value,
            deployment=deployment,
            total_nodes=total_nodes,
            address=address,
        )
        return StepOutcome.OK

    async def _attribute(self, key: str) -> Optional[str]:
        return await self._retry.run_with_budget(
            f"metadata attribute {key}",
            self._get_attribute,
            key,
            config=self.METADATA_RETRY,
        )

    async def _get_attribute(self, key: str) -> Optional[str]:
        return await self._call(CallType.METADATA, self._metadata.get_attribute(key), f"attribute {key}")

    async def _provision_dependencies(self, log: ContextualLogger) -> StepOutcome:
        """Répertoire de données local et démon du substrat joignable."""
        data_dir = self._config.data_dir
        await asyncio.to_thread(os.makedirs, data_dir, exist_ok=True)
        if self._is_root():
            await asyncio.to_thread(os.chown, data_dir, self._config.data_uid, self._config.data_gid)
        log.info("Data directory ready", event="data_dir_ready", path=data_dir)

        await self._retry.run_with_budget("substrate ping", self._ping, config=self.PING_RETRY)
        log.info("Substrate daemon answering", event="substrate_ready")

        if self._require_assignment().role is NodeRole.PRIMARY_MANAGER:
            return StepOutcome.PRIMARY
        return StepOutcome.SECONDARY

    async def _ping(self) -> None:
        if not await self._call(CallType.SUBSTRATE, self._substrate.ping(), "ping"):
            raise TransientUnavailable("docker", "daemon did not answer ping")

    async def _primary_init(self, log: ContextualLogger) -> StepOutcome:
        """
        Export du partage, création du cluster, publication des jetons.

        Relancer l'étape sur un manager actif ne recrée pas le cluster.
        """
        address = self._require_assignment().address
        self._primary_address = address

        await self._storage.export(address)

        local = await self._call(CallType.SUBSTRATE, self._substrate.local_membership(), "local membership")
        if local is LocalMembership.MANAGER:
            log.info("Already an active manager, cluster init skipped", event="cluster_init_skipped")
        else:
            await self._call(CallType.SUBSTRATE, self._substrate.init_cluster(address), "init cluster")
            log.info("Cluster initialized", event="cluster_initialized", address=address)

        tokens = await self._call(CallType.SUBSTRATE, self._substrate.join_tokens(), "join tokens")
        await self._storage.write(SharedFile.MANAGER_JOIN_TOKEN, tokens.manager)
        await self._storage.write(SharedFile.WORKER_JOIN_TOKEN, tokens.worker)
        await self._storage.write(SharedFile.PRIMARY_ADDRESS, address)

        epoch = await self._storage.read_epoch()
        if epoch == 0:
            epoch = await self._storage.bump_epoch()
        log.info("Join credentials published", event="join_tokens_published", epoch=epoch)
        return StepOutcome.OK

    async def _secondary_join(self, log: ContextualLogger) -> StepOutcome:
        """
        Résolution du primaire, montage du partage puis jonction.

        Raises:
            RecoverableTimeout: Si une attente bornée est épuisée
        """
        assignment = self._require_assignment()
        wait = RetryConfig.fixed(
            self._config.join_wait_attempts,
            self._config.join_wait_interval,
            (TransientUnavailable, ConfigurationMissing),
        )

        primary_name = f"{assignment.deployment_name}-manager-1"
        self._primary_address = await self._retry.run_with_budget(
            f"primary address lookup ({primary_name})",
            self._resolve_primary,
            primary_name,
            config=wait,
        )
        log.info("Primary resolved", event="primary_resolved", instance=primary_name, address=self._primary_address)

        await self._retry.run_with_budget(
            "shared storage mount",
            self._storage.mount,
            self._primary_address,
            config=wait,
        )

        role = assignment.role
        local = await self._call(CallType.SUBSTRATE, self._substrate.local_membership(), "local membership")
        if local is not LocalMembership.INACTIVE:
            log.info("Already a cluster member, join skipped", event="join_skipped", membership=local.value)
        else:
            token_file = SharedFile.MANAGER_JOIN_TOKEN if role.is_manager else SharedFile.WORKER_JOIN_TOKEN
            token = await self._retry.run_with_budget(
                f"join token wait ({token_file.value})",
                self._read_token,
                token_file,
                config=wait,
            )
            await self._retry.run_with_budget(
                "cluster join",
                self._join,
                self._primary_address,
                token,
                config=RetryConfig.fixed(2, self._config.stabilization_delay),
            )
            log.info("Joined cluster", event="cluster_joined", role=role.value, manager=self._primary_address)

        if role.is_manager:
            return StepOutcome.OK
        return StepOutcome.SKIP_DEPLOY

    async def _resolve_primary(self, instance_name: str) -> str:
        address = await self._call(
            CallType.INVENTORY,
            self._inventory.instance_address(instance_name),
            f"address of {instance_name}",
        )
        if not address:
            raise ConfigurationMissing(instance_name, "instance not running yet")
        return address

    async def _read_token(self, token_file: SharedFile) -> str:
        token = (await self._storage.read(token_file)).content.strip()
        if not token.startswith(JOIN_TOKEN_PREFIX):
            raise ConfigurationMissing(token_file.value, "malformed join token")
        return token

    async def _join(self, manager_address: str, token: str) -> None:
        await self._call(CallType.SUBSTRATE, self._substrate.join(manager_address, token), "join")

    async def _deploy_workloads(self, log: ContextualLogger) -> StepOutcome:
        """Déploiement de la stack, mise à jour en place si elle existe."""
        view = await self._call(CallType.SUBSTRATE, self._substrate.membership(), "membership")
        node_count = max(view.available_node_count, 1)
        self._plan = plan(node_count, self._config.capacity, self._config.stack_name)

        compose_file = await self._ensure_compose_file(log)
        env = self._plan.to_env(self._primary_address)
        await self._substrate.deploy_stack(compose_file, self._config.stack_name, env)

        log.info(
            "Stack deployed",
            event="stack_deployed",
            stack=self._config.stack_name,
            node_count=node_count,
            search_replicas=self._plan.search_replicas,
            heap_size=self._plan.heap_size,
        )
        return StepOutcome.OK

    async def _ensure_compose_file(self, log: ContextualLogger) -> str:
        """
        Chemin du fichier compose, récupéré depuis l'attribut swarm-yaml si absent.

        Raises:
            ConfigurationMissing: Si ni le fichier ni l'attribut n'existent
        """
        path = self._config.compose_path
        if await asyncio.to_thread(os.path.exists, path):
            return path

        content = await self._attribute("swarm-yaml")
        if not content:
            raise ConfigurationMissing(path, "compose file absent and no swarm-yaml attribute")
        await asyncio.to_thread(_write_text, path, content)
        log.info("Compose file fetched from metadata", event="compose_file_fetched", path=path)
        return path


def _write_text(path: str, content: str) -> None:
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write(content)
