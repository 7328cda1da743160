"""
Swarm Sentinel - Periodic tasks

Boucle de surveillance à intervalle fixe avec deadline par cycle, et
section protégée pour les séquences de mutation.

Une séquence de mutation (récupération forcée, lot de scale/restart) n'est
jamais interrompue: ni la deadline du cycle ni l'arrêt ne l'annulent. Tant
qu'elle est en cours, la boucle ne démarre pas de nouveau cycle.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional, Set, TypeVar

from swarm_sentinel.logging import StructuredLogger

T = TypeVar("T")


class MutationGuard:
    """Section protégée: tâches à l'abri de l'annulation, suivies jusqu'à leur fin."""

    def __init__(self, logger: Optional[StructuredLogger] = None) -> None:
        self._logger = logger
        self._tasks: Set["asyncio.Task[Any]"] = set()
        self._orphans: Set["asyncio.Task[Any]"] = set()

    @property
    def busy(self) -> bool:
        return any(not t.done() for t in self._tasks)

    async def run(self, coro: Awaitable[T]) -> T:
        """
        Exécute coro dans la section protégée.

        Si l'appelant est annulé, coro continue jusqu'à sa fin.
        """
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            # Plus personne n'attend le résultat: les erreurs seront journalisées ici
            if not task.done():
                self._orphans.add(task)
            raise

    def _on_done(self, task: "asyncio.Task[Any]") -> None:
        self._tasks.discard(task)
        orphan = task in self._orphans
        self._orphans.discard(task)
        if not orphan or task.cancelled():
            return
        error = task.exception()
        if error is not None and self._logger is not None:
            self._logger.error(
                "Guarded section failed",
                event="guarded_section_failed",
                error=str(error),
                error_type=type(error).__name__,
            )

    async def drain(self) -> None:
        """Attend la fin des sections en cours."""
        pending = [t for t in self._tasks if not t.done()]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)


class PeriodicTask:
    """
    Exécute action toutes les interval secondes.

    Aucune exception d'un cycle ne sort de la boucle: elle est journalisée
    et le cycle suivant démarre normalement.
    """

    def __init__(
        self,
        name: str,
        interval: float,
        action: Callable[[], Awaitable[Any]],
        logger: StructuredLogger,
        deadline: Optional[float] = None,
        guard: Optional[MutationGuard] = None,
    ) -> None:
        """
        Args:
            name: Nom de la boucle (logs)
            interval: Secondes entre deux débuts de cycle
            action: Coroutine d'un cycle
            logger: Logger structuré
            deadline: Durée max d'un cycle (interval si None)
            guard: Section protégée partagée avec le composant
        """
        if interval <= 0:
            raise ValueError("interval must be > 0")
        self._name = name
        self._interval = interval
        self._action = action
        self._logger = logger
        self._deadline = deadline or interval
        self._guard = guard or MutationGuard(logger)
        self._stopping = asyncio.Event()
        self._task: Optional["asyncio.Task[None]"] = None
        self._stats: Dict[str, int] = {
            "cycles": 0,
            "skipped": 0,
            "deadline_exceeded": 0,
            "errors": 0,
        }

    @property
    def name(self) -> str:
        return self._name

    @property
    def guard(self) -> MutationGuard:
        return self._guard

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def get_stats(self) -> Dict[str, int]:
        return dict(self._stats)

    async def run_cycle(self) -> bool:
        """
        Exécute un cycle sous deadline.

        Returns:
            False si le cycle a été sauté (section protégée en cours)
        """
        if self._guard.busy:
            self._stats["skipped"] += 1
            self._logger.warn(
                "Cycle skipped, guarded section still in flight",
                event="cycle_skipped",
                loop=self._name,
            )
            return False

        self._stats["cycles"] += 1
        try:
            await asyncio.wait_for(self._action(), timeout=self._deadline)
        except asyncio.TimeoutError:
            self._stats["deadline_exceeded"] += 1
            self._logger.warn(
                "Cycle abandoned after deadline",
                event="cycle_deadline_exceeded",
                loop=self._name,
                deadline=self._deadline,
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._stats["errors"] += 1
            self._logger.error(
                "Cycle failed",
                event="cycle_failed",
                loop=self._name,
                error=str(e),
                error_type=type(e).__name__,
            )
        return True

    async def run(self) -> None:
        """Boucle jusqu'à stop()."""
        self._logger.info("Loop started", event="loop_started", loop=self._name, interval=self._interval)
        while not self._stopping.is_set():
            await self.run_cycle()
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                pass
        self._logger.info("Loop stopped", event="loop_stopped", loop=self._name)

    def start(self) -> "asyncio.Task[None]":
        if self.running:
            raise RuntimeError(f"Loop {self._name} already running")
        self._stopping.clear()
        self._task = asyncio.ensure_future(self.run())
        return self._task

    async def stop(self) -> None:
        """Arrête la boucle après la fin des sections protégées en cours."""
        self._stopping.set()
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        await self._guard.drain()
