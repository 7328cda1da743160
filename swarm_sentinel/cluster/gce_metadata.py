"""
Swarm Sentinel - GCE Metadata

Attributs du noeud lus sur le serveur de métadonnées GCE.
"""

from typing import Optional

import httpx

from swarm_sentinel.core.exceptions import TransientUnavailable

from .interfaces import INodeMetadata

METADATA_DEPENDENCY = "gce-metadata"


class GceNodeMetadata(INodeMetadata):
    """Client du serveur de métadonnées (en-tête Metadata-Flavor obligatoire)."""

    HEADERS = {"Metadata-Flavor": "Google"}

    def __init__(
        self,
        base_url: str = "http://metadata.google.internal/computeMetadata/v1/instance",
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    async def _get(self, path: str) -> Optional[str]:
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout,
                headers=self.HEADERS,
                transport=self._transport,
            ) as client:
                response = await client.get(f"{self._base_url}/{path}")
        except httpx.HTTPError as e:
            raise TransientUnavailable(METADATA_DEPENDENCY, str(e))

        if response.status_code == 404:
            return None
        if response.status_code != 200:
            raise TransientUnavailable(METADATA_DEPENDENCY, f"{path} returned HTTP {response.status_code}")
        return response.text.strip()

    async def get_attribute(self, key: str) -> Optional[str]:
        return await self._get(f"attributes/{key}")

    async def hostname(self) -> str:
        fqdn = await self._get("hostname")
        if not fqdn:
            raise TransientUnavailable(METADATA_DEPENDENCY, "hostname not available")
        return fqdn.split(".", 1)[0]

    async def own_address(self) -> str:
        address = await self._get("network-interfaces/0/ip")
        if not address:
            raise TransientUnavailable(METADATA_DEPENDENCY, "network address not available")
        return address
