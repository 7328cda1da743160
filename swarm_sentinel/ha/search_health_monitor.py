"""
Swarm Sentinel - Search Engine Health Monitor

Sonde en lecture seule du moteur de recherche: santé du cluster, files des
thread pools, mémoire JVM, plus gros index. Aucune remédiation.

Classification:
    CRITICAL: statut red ou endpoint injoignable, rejet > 0, heap > seuil
    WARNING: latence > seuil, file search ou write au-dessus du seuil
"""

import time
from collections import deque
from datetime import datetime, timezone
from typing import Callable, Deque, Dict, List, Optional, Tuple

from swarm_sentinel.core.exceptions import TransientUnavailable
from swarm_sentinel.core.interfaces import SearchThresholds
from swarm_sentinel.logging import ContextualLogger, LogLevel, StructuredLogger
from swarm_sentinel.network import CallType, TimeoutManager
from swarm_sentinel.search import ISearchEngine

from .interfaces import HealthFinding, HealthSample, ISearchHealthMonitor, SearchStatus, Severity


class SearchHealthMonitor(ISearchHealthMonitor):
    """Sonde de santé du moteur de recherche."""

    # Taille maximale de l'historique
    MAX_HISTORY_SIZE: int = 1000

    SEVERITY_LEVELS: Dict[Severity, LogLevel] = {
        Severity.INFO: LogLevel.INFO,
        Severity.WARNING: LogLevel.WARN,
        Severity.CRITICAL: LogLevel.CRITICAL,
    }

    def __init__(
        self,
        search: ISearchEngine,
        thresholds: SearchThresholds,
        logger: StructuredLogger,
        timeouts: Optional[TimeoutManager] = None,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        """
        Args:
            search: Client du moteur de recherche
            thresholds: Seuils de classification
            logger: Logger structuré
            timeouts: Timeouts par appel
            clock: Horloge monotone (mesure de latence)
        """
        self._search = search
        self._thresholds = thresholds
        self._logger = logger
        self._timeouts = timeouts or TimeoutManager()
        self._clock = clock or time.monotonic
        self._history: Deque[HealthSample] = deque(maxlen=self.MAX_HISTORY_SIZE)

    async def probe_once(self) -> HealthSample:
        log = self._logger.with_context()
        findings: List[HealthFinding] = []

        start = self._clock()
        try:
            health = await self._timeouts.call(CallType.SEARCH, self._search.cluster_health(), "cluster health")
        except TransientUnavailable as e:
            findings.append(HealthFinding("unreachable", Severity.CRITICAL, f"Search engine not responding: {e}"))
            log.warn("Basic health check failed, detailed checks skipped", error=str(e))
            return self._record(log, HealthSample(
                timestamp=datetime.now(timezone.utc),
                status=SearchStatus.UNREACHABLE,
                latency_seconds=None,
                findings=tuple(findings),
            ))

        latency = self._clock() - start
        status = SearchStatus.parse(health.status)

        if latency > self._thresholds.latency_warning_seconds:
            findings.append(HealthFinding("latency", Severity.WARNING, f"Slow response time: {latency:.2f}s", latency))

        if status not in (SearchStatus.GREEN, SearchStatus.YELLOW):
            findings.append(HealthFinding("status", Severity.CRITICAL, f"Cluster status is {health.status}"))
            log.warn("Basic health check failed, detailed checks skipped", status=health.status)
            return self._record(log, HealthSample(
                timestamp=datetime.now(timezone.utc),
                status=status,
                latency_seconds=latency,
                findings=tuple(findings),
            ))

        queues, rejections = await self._check_thread_pools(log, findings)
        heap = await self._check_memory(log, findings)
        indices = await self._top_indices(log)

        return self._record(log, HealthSample(
            timestamp=datetime.now(timezone.utc),
            status=status,
            latency_seconds=latency,
            queues=queues,
            rejections=rejections,
            heap_used_percent=heap,
            top_indices=indices,
            findings=tuple(findings),
        ))

    async def _check_thread_pools(
        self, log: ContextualLogger, findings: List[HealthFinding]
    ) -> Tuple[Dict[str, int], Dict[str, int]]:
        try:
            stats = await self._timeouts.call(CallType.SEARCH, self._search.thread_pool_stats(), "thread pool stats")
        except TransientUnavailable as e:
            log.warn("Could not retrieve thread pool stats", error=str(e))
            return {}, {}

        search_queue = stats.queue("search")
        write_queue = stats.queue("write")
        if search_queue > self._thresholds.search_queue_warning:
            findings.append(HealthFinding("search_queue", Severity.WARNING, f"High search queue: {search_queue}", search_queue))
        if write_queue > self._thresholds.write_queue_warning:
            findings.append(HealthFinding("write_queue", Severity.WARNING, f"High write queue: {write_queue}", write_queue))

        if stats.total_rejections > 0:
            detail = ", ".join(f"{pool}: {count}" for pool, count in sorted(stats.rejections.items()) if count)
            findings.append(HealthFinding("rejections", Severity.CRITICAL, f"Rejections detected - {detail}", stats.total_rejections))

        return dict(stats.queues), dict(stats.rejections)

    async def _check_memory(self, log: ContextualLogger, findings: List[HealthFinding]) -> Optional[float]:
        try:
            jvm = await self._timeouts.call(CallType.SEARCH, self._search.jvm_stats(), "jvm stats")
        except TransientUnavailable as e:
            log.warn("Could not retrieve memory stats", error=str(e))
            return None

        if jvm.heap_used_percent > self._thresholds.heap_critical_percent:
            findings.append(HealthFinding(
                "heap",
                Severity.CRITICAL,
                f"High heap usage: {jvm.heap_used_percent:g}%",
                jvm.heap_used_percent,
            ))
        return jvm.heap_used_percent

    async def _top_indices(self, log: ContextualLogger) -> Tuple[str, ...]:
        try:
            indices = await self._timeouts.call(
                CallType.SEARCH,
                self._search.top_indices(self._thresholds.top_indices),
                "top indices",
            )
        except TransientUnavailable as e:
            log.warn("Could not retrieve index stats", error=str(e))
            return ()
        return tuple(f"{i.index} {i.health} {i.docs_count} {i.store_size}" for i in indices)

    def _record(self, log: ContextualLogger, sample: HealthSample) -> HealthSample:
        """Ajoute à l'historique, un événement par constat puis un résumé."""
        self._history.append(sample)

        for finding in sample.findings:
            log.log(
                self.SEVERITY_LEVELS[finding.severity],
                finding.message,
                event=f"search_{finding.check}",
                severity=finding.severity.value,
                value=finding.value,
            )

        log.info("Search engine health check", event="search_health_summary", **sample.to_dict())
        return sample

    def get_history(self, limit: int = 100) -> List[HealthSample]:
        if limit <= 0:
            return []
        return list(self._history)[-limit:]

    def get_latest(self) -> Optional[HealthSample]:
        """Dernier échantillon ou None."""
        return self._history[-1] if self._history else None
