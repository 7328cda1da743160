"""
Swarm Sentinel - gcloud Inventory

Inventaire des instances Compute Engine via la CLI gcloud.
"""

from typing import List, Optional

from swarm_sentinel.core.command_runner import CommandRunner
from swarm_sentinel.core.exceptions import TransientUnavailable

from .interfaces import IInventory

INVENTORY_DEPENDENCY = "gcloud"


class GcloudInventory(IInventory):
    """Instances du projet courant de gcloud."""

    def __init__(self, runner: Optional[CommandRunner] = None, timeout: float = 30.0) -> None:
        self._runner = runner or CommandRunner()
        self._timeout = timeout

    async def _list(self, filter_expr: str, fmt: str) -> List[str]:
        result = await self._runner.run(
            "gcloud",
            "compute",
            "instances",
            "list",
            f"--filter={filter_expr}",
            f"--format={fmt}",
            timeout=self._timeout,
        )
        if not result.ok:
            raise TransientUnavailable(INVENTORY_DEPENDENCY, result.stderr.strip()[:200])
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    async def running_instances(self, name_pattern: str) -> List[str]:
        return await self._list(f"name~{name_pattern} AND status=RUNNING", "value(name)")

    async def instance_address(self, name: str) -> Optional[str]:
        addresses = await self._list(f"name={name} AND status=RUNNING", "value(networkInterfaces[0].networkIP)")
        return addresses[0] if addresses else None
