"""Build executor.

Runs install and build subprocesses for a detected package manager, streaming
their output into the deployment log line by line.
"""

import asyncio
import os
from pathlib import Path

from deployer.config import settings
from deployer.core.events import Broadcaster
from deployer.core.exceptions import BuildCommandError, BuildOutputNotFoundError
from deployer.core.package_manager import PackageManagerInfo
from deployer.models.deployment import Deployment, LogLevel
from deployer.utils.logging import get_logger
from deployer.utils.strings import strip_ansi

# Output directories produced by common bundlers, checked in order
OUTPUT_DIR_CANDIDATES = ["dist", "build", "out"]

# (install args, build args) per package manager
MANAGER_COMMANDS: dict[str, tuple[list[str], list[str]]] = {
    "npm": (["install"], ["run", "build"]),
    "pnpm": (["install"], ["run", "build"]),
    "yarn": (["install"], ["build"]),
    "bun": (["install"], ["run", "build"]),
}

# Single lines longer than this are split by the reader
STREAM_LIMIT = 1024 * 1024


class BuildExecutor:
    """Runs install/build commands inside a deployment's working directory."""

    def __init__(
        self,
        broadcaster: Broadcaster,
        timeout: float | None = None,
    ):
        self.broadcaster = broadcaster
        self.timeout = timeout if timeout is not None else settings.build_timeout_seconds
        self.logger = get_logger("builder")

    async def _pump(
        self,
        deployment: Deployment,
        stream: asyncio.StreamReader,
        level: LogLevel,
    ) -> None:
        # readline() holds partial lines until a terminator or EOF arrives
        while True:
            try:
                raw = await stream.readline()
            except ValueError:
                raw = await stream.read(STREAM_LIMIT)
            if not raw:
                break
            line = strip_ansi(raw.decode("utf-8", errors="replace").rstrip("\r\n"))
            if line.strip():
                await self.broadcaster.append_log(deployment, line, level)

    async def run_command(
        self,
        deployment: Deployment,
        command: str,
        args: list[str],
        cwd: str | Path,
        env: dict[str, str] | None = None,
    ) -> None:
        """Run one command, streaming stdout as info and stderr as warning.

        Raises:
            BuildCommandError: If the command cannot start, times out or
                exits with a non-zero code.
        """
        display = " ".join([command, *args])
        await self.broadcaster.append_log(deployment, f"$ {display}")
        self.logger.info(
            "builder.running_command",
            deployment_id=deployment.id,
            cmd=display,
            cwd=str(cwd),
        )

        try:
            process = await asyncio.create_subprocess_exec(
                command,
                *args,
                cwd=str(cwd),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env={**os.environ, **(env or {})},
                limit=STREAM_LIMIT,
            )
        except OSError as e:
            message = f'Command "{command}" could not be started: {e}'
            await self.broadcaster.append_log(deployment, message, LogLevel.ERROR)
            raise BuildCommandError(command, None, message) from e

        try:
            await asyncio.wait_for(
                asyncio.gather(
                    self._pump(deployment, process.stdout, LogLevel.INFO),
                    self._pump(deployment, process.stderr, LogLevel.WARNING),
                    process.wait(),
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            message = f'Command "{command}" timed out after {int(self.timeout)} seconds'
            await self.broadcaster.append_log(deployment, message, LogLevel.ERROR)
            raise BuildCommandError(command, process.returncode, message)

        if process.returncode != 0:
            error = BuildCommandError(command, process.returncode)
            await self.broadcaster.append_log(deployment, error.message, LogLevel.ERROR)
            self.logger.warning(
                "builder.command_failed",
                deployment_id=deployment.id,
                cmd=display,
                exit_code=process.returncode,
            )
            raise error

    async def install_and_build(
        self,
        deployment: Deployment,
        work_dir: str | Path,
        manager: PackageManagerInfo,
    ) -> None:
        """Install dependencies and run the build script."""
        install_args, build_args = MANAGER_COMMANDS[manager.name]

        # Make sure devDependencies (bundlers) are installed even when the
        # server itself runs with NODE_ENV=production
        install_env = (
            {"npm_config_production": "false"}
            if manager.name in ("npm", "pnpm")
            else None
        )

        await self.broadcaster.append_log(
            deployment, f"Installing dependencies with {manager.name}"
        )
        await self.run_command(
            deployment, manager.name, install_args, cwd=work_dir, env=install_env
        )

        await self.broadcaster.append_log(
            deployment,
            f"Building project ({' '.join([manager.name, *build_args])})",
        )
        await self.run_command(deployment, manager.name, build_args, cwd=work_dir)

    @staticmethod
    def locate_output(work_dir: str | Path) -> Path:
        """Return the first build output directory that exists.

        Raises:
            BuildOutputNotFoundError: If none of the candidates exist.
        """
        root = Path(work_dir)
        for candidate in OUTPUT_DIR_CANDIDATES:
            path = root / candidate
            if path.is_dir():
                return path
        raise BuildOutputNotFoundError(OUTPUT_DIR_CANDIDATES)

    @staticmethod
    def is_static_source(work_dir: str | Path) -> bool:
        """A directory without package.json is deployed as-is."""
        return not (Path(work_dir) / "package.json").exists()
