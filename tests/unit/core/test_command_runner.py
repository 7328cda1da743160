"""
Tests unitaires CommandRunner

Commandes réelles du système (sh, true, false).
"""

import os

import pytest

from swarm_sentinel.core.command_runner import CommandError, CommandRunner
from swarm_sentinel.core.exceptions import TransientUnavailable


@pytest.fixture
def runner():
    return CommandRunner()


class TestCommandRunner:
    """Sorties, code retour, timeout."""

    @pytest.mark.asyncio
    async def test_captures_stdout(self, runner):
        result = await runner.run("sh", "-c", "echo manager")
        assert result.ok
        assert result.stdout.strip() == "manager"

    @pytest.mark.asyncio
    async def test_nonzero_exit(self, runner):
        result = await runner.run("sh", "-c", "echo 'no such service' >&2; exit 3")
        assert not result.ok
        assert result.returncode == 3
        assert "no such service" in result.stderr

    @pytest.mark.asyncio
    async def test_check_raises_command_error(self, runner):
        with pytest.raises(CommandError) as exc_info:
            await runner.run("false", check=True)
        assert exc_info.value.result.returncode != 0

    @pytest.mark.asyncio
    async def test_env_added(self, runner):
        result = await runner.run("sh", "-c", "echo $SWARM_NODE_COUNT", env={"SWARM_NODE_COUNT": "3"})
        assert result.stdout.strip() == "3"

    @pytest.mark.asyncio
    async def test_cwd(self, runner, tmp_path):
        result = await runner.run("pwd", cwd=str(tmp_path))
        assert os.path.realpath(result.stdout.strip()) == os.path.realpath(tmp_path)

    @pytest.mark.asyncio
    async def test_missing_executable(self, runner):
        with pytest.raises(TransientUnavailable, match="executable not found"):
            await runner.run("definitely-not-a-real-binary-sentinel")

    @pytest.mark.asyncio
    async def test_timeout_kills_process(self, runner):
        with pytest.raises(TransientUnavailable, match="timed out"):
            await runner.run("sleep", "5", timeout=0.1)
