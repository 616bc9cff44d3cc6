import asyncio
import os
from pathlib import Path
from typing import List, Mapping, Optional, Sequence

from .base import CommandsOutcome, JobExecutor


class ShellExecutor(JobExecutor):
    """
    Выполняет команды через системный shell в рабочем каталоге job'а.

    Образ (image) не поднимается — провижининг контейнеров вне зоны ответственности,
    ссылка на образ только попадает в лог.
    """

    def __init__(self, inherit_env: bool = True) -> None:
        self.inherit_env = inherit_env

    def _environment(self, env: Mapping[str, str]) -> dict:
        base = dict(os.environ) if self.inherit_env else {"PATH": os.environ.get("PATH", "")}
        base.update(env)
        return base

    async def _run_one(self, command: str, workspace: Path, environment: dict) -> tuple:
        proc = await asyncio.create_subprocess_shell(
            command,
            cwd=str(workspace),
            env=environment,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )
        try:
            stdout, _ = await proc.communicate()
        except asyncio.CancelledError:
            # Отмена/таймаут job'а: процесс не должен пережить job
            if proc.returncode is None:
                proc.kill()
                await proc.wait()
            raise
        output = stdout.decode("utf-8", errors="replace") if stdout else ""
        return proc.returncode, output

    async def run_commands(
        self,
        commands: Sequence[str],
        *,
        image: Optional[str],
        workspace: Path,
        env: Mapping[str, str],
    ) -> CommandsOutcome:
        logs: List[str] = []
        if image and commands:
            logs.append(f"image {image} не поднимается shell-исполнителем, команды идут на хосте")

        environment = self._environment(env)
        for command in commands:
            logs.append(f"$ {command}")
            exit_code, output = await self._run_one(command, workspace, environment)
            logs.extend(output.splitlines())
            if exit_code != 0:
                logs.append(f"Команда завершилась с кодом {exit_code}")
                return CommandsOutcome(exit_code=exit_code, logs=logs, failed_command=command)

        return CommandsOutcome(exit_code=0, logs=logs)
