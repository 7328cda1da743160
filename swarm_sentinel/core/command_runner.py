"""
Swarm Sentinel - Command Runner

Exécution asynchrone des outils système (docker, gcloud, mount, exportfs).
"""

import asyncio
import os
from dataclasses import dataclass
from typing import Dict, Optional, Sequence

from swarm_sentinel.core.exceptions import TransientUnavailable


@dataclass
class CommandResult:
    """Résultat d'une commande terminée."""

    args: Sequence[str]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class CommandError(Exception):
    """Commande terminée avec un code non nul."""

    def __init__(self, result: CommandResult) -> None:
        self.result = result
        detail = result.stderr.strip()[:200] or result.stdout.strip()[:200]
        super().__init__(f"{result.args[0]} exited with {result.returncode}: {detail}")


class CommandRunner:
    """Lance une commande sans shell et capture ses sorties."""

    DEFAULT_TIMEOUT: float = 60.0

    async def run(
        self,
        *args: str,
        timeout: Optional[float] = None,
        env: Optional[Dict[str, str]] = None,
        cwd: Optional[str] = None,
        check: bool = False,
    ) -> CommandResult:
        """
        Exécute args et attend sa fin.

        Args:
            *args: Commande et arguments
            timeout: Durée max (DEFAULT_TIMEOUT si None)
            env: Variables ajoutées à l'environnement courant
            cwd: Répertoire de travail
            check: Lève CommandError si le code retour est non nul

        Returns:
            CommandResult

        Raises:
            TransientUnavailable: Si l'exécutable est absent ou le timeout dépassé
            CommandError: Si check et code retour non nul
        """
        full_env = None
        if env:
            full_env = dict(os.environ)
            full_env.update(env)

        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=full_env,
                cwd=cwd,
            )
        except FileNotFoundError:
            raise TransientUnavailable(args[0], "executable not found")

        try:
            stdout, stderr = await asyncio.wait_for(
                proc.communicate(),
                timeout=timeout or self.DEFAULT_TIMEOUT,
            )
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            raise TransientUnavailable(args[0], f"timed out after {timeout or self.DEFAULT_TIMEOUT}s")

        result = CommandResult(
            args=list(args),
            returncode=proc.returncode if proc.returncode is not None else -1,
            stdout=stdout.decode(errors="replace"),
            stderr=stderr.decode(errors="replace"),
        )
        if check and not result.ok:
            raise CommandError(result)
        return result
