from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Mapping, Optional, Sequence


@dataclass
class CommandsOutcome:
    """
    Результат выполнения последовательности команд.

    exit_code      — код последней выполненной команды (0 — всё прошло);
    logs           — вывод команд в порядке выполнения;
    failed_command — команда, на которой остановились, если что-то упало.
    """

    exit_code: int
    logs: List[str] = field(default_factory=list)
    failed_command: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class JobExecutor(ABC):
    """
    Среда выполнения job'ов. Ядро решает, что и в каком порядке запускать,
    а сам запуск команд делегирует сюда.
    """

    @abstractmethod
    async def run_commands(
        self,
        commands: Sequence[str],
        *,
        image: Optional[str],
        workspace: Path,
        env: Mapping[str, str],
    ) -> CommandsOutcome:
        """
        Выполняет команды по порядку, останавливаясь на первой упавшей.
        """

    async def execute(
        self,
        image: Optional[str],
        before_script: Sequence[str],
        script: Sequence[str],
        *,
        workspace: Path,
        env: Mapping[str, str],
    ) -> CommandsOutcome:
        """
        (image, before_script, script) -> (exit_code, logs).
        Если подготовка упала, основной script не запускается.
        """
        setup = await self.run_commands(before_script, image=image, workspace=workspace, env=env)
        if not setup.ok:
            return setup
        main = await self.run_commands(script, image=image, workspace=workspace, env=env)
        return CommandsOutcome(
            exit_code=main.exit_code,
            logs=setup.logs + main.logs,
            failed_command=main.failed_command,
        )
