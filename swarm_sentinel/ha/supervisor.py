"""
Swarm Sentinel - Supervisor

Lance les boucles de surveillance et les arrête sur SIGTERM/SIGINT.
"""

import asyncio
import signal
from typing import List, Sequence

from swarm_sentinel.logging import StructuredLogger

from .periodic import PeriodicTask


class Supervisor:
    """Propriétaire des boucles de surveillance du noeud."""

    STOP_SIGNALS = (signal.SIGTERM, signal.SIGINT)

    def __init__(self, tasks: Sequence[PeriodicTask], logger: StructuredLogger) -> None:
        if not tasks:
            raise ValueError("Supervisor needs at least one task")
        self._tasks: List[PeriodicTask] = list(tasks)
        self._logger = logger
        self._stop_requested = asyncio.Event()

    @property
    def tasks(self) -> List[PeriodicTask]:
        return list(self._tasks)

    def request_stop(self) -> None:
        if not self._stop_requested.is_set():
            self._logger.info("Stop requested", event="supervisor_stop_requested")
            self._stop_requested.set()

    async def run(self) -> None:
        """Démarre toutes les boucles et attend la demande d'arrêt."""
        loop = asyncio.get_running_loop()
        installed = []
        for sig in self.STOP_SIGNALS:
            try:
                loop.add_signal_handler(sig, self.request_stop)
                installed.append(sig)
            except (NotImplementedError, RuntimeError):
                # Boucle hors thread principal ou plateforme sans signaux
                pass

        for task in self._tasks:
            task.start()
        self._logger.info(
            "Supervisor started",
            event="supervisor_started",
            loops=[t.name for t in self._tasks],
        )

        try:
            await self._stop_requested.wait()
        finally:
            await asyncio.gather(*(t.stop() for t in self._tasks))
            for sig in installed:
                loop.remove_signal_handler(sig)
            self._logger.info("Supervisor stopped", event="supervisor_stopped")
