"""
Swarm Sentinel - OpenSearch Client

Client REST minimal pour la sonde de santé et la purge de rétention.
"""

from typing import Any, Dict, List, Optional

import httpx

from swarm_sentinel.core.exceptions import TransientUnavailable

from .interfaces import ClusterHealth, IndexSize, ISearchEngine, JvmStats, ThreadPoolStats

SEARCH_DEPENDENCY = "opensearch"


class OpenSearchClient(ISearchEngine):
    """Client httpx de l'API OpenSearch."""

    THREAD_POOLS = ("search", "write", "bulk", "get")

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            async with httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                response = await client.request(method, path, **kwargs)
                response.raise_for_status()
                return response.json()
        except httpx.HTTPError as e:
            raise TransientUnavailable(SEARCH_DEPENDENCY, f"{method} {path}: {e}")
        except ValueError as e:
            raise TransientUnavailable(SEARCH_DEPENDENCY, f"{method} {path}: invalid JSON ({e})")

    async def cluster_health(self) -> ClusterHealth:
        data = await self._request("GET", "/_cluster/health")
        return ClusterHealth(
            status=str(data.get("status", "unknown")),
            active_shards=int(data.get("active_shards", 0)),
            pending_tasks=int(data.get("number_of_pending_tasks", 0)),
        )

    async def thread_pool_stats(self) -> ThreadPoolStats:
        data = await self._request("GET", "/_nodes/stats/thread_pool")
        queues: Dict[str, int] = {}
        rejections: Dict[str, int] = {}
        for node in (data.get("nodes") or {}).values():
            pools = node.get("thread_pool", {})
            for name in self.THREAD_POOLS:
                pool = pools.get(name)
                if pool is None:
                    continue
                queues[name] = max(queues.get(name, 0), int(pool.get("queue", 0)))
                rejections[name] = rejections.get(name, 0) + int(pool.get("rejected", 0))
        return ThreadPoolStats(queues=queues, rejections=rejections)

    async def jvm_stats(self) -> JvmStats:
        data = await self._request("GET", "/_nodes/stats/jvm")
        heap = 0.0
        gc_young = 0
        for node in (data.get("nodes") or {}).values():
            jvm = node.get("jvm", {})
            heap = max(heap, float(jvm.get("mem", {}).get("heap_used_percent", 0)))
            young = jvm.get("gc", {}).get("collectors", {}).get("young", {})
            gc_young = max(gc_young, int(young.get("collection_time_in_millis", 0)))
        return JvmStats(heap_used_percent=heap, gc_young_millis=gc_young)

    async def top_indices(self, limit: int) -> List[IndexSize]:
        rows = await self._request(
            "GET",
            "/_cat/indices",
            params={
                "format": "json",
                "bytes": "b",
                "s": "store.size:desc",
                "h": "index,health,docs.count,store.size",
            },
        )
        result = []
        for row in rows[:limit]:
            docs = row.get("docs.count")
            result.append(
                IndexSize(
                    index=row.get("index", ""),
                    health=row.get("health", "unknown"),
                    docs_count=int(docs) if docs not in (None, "") else None,
                    store_size=str(row.get("store.size", "")),
                )
            )
        return result

    async def delete_older_than(self, index_pattern: str, field_name: str, days: int) -> int:
        body = {"query": {"range": {field_name: {"lt": f"now-{days}d"}}}}
        data = await self._request(
            "POST",
            f"/{index_pattern}/_delete_by_query",
            params={"conflicts": "proceed"},
            json=body,
        )
        return int(data.get("deleted", 0))
