import asyncio
import textwrap
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import pytest
import yaml

from ciflow.core.config import Settings
from ciflow.core.services.builders.pipeline import build_pipeline
from ciflow.core.services.executor import CommandsOutcome, JobExecutor
from ciflow.core.services.git_module import WorkspaceProvider
from ciflow.model import Pipeline


EXAMPLE_CONFIG = Path(__file__).resolve().parents[1] / "examples" / "gitlab-ci.yml"


class ScriptedExecutor(JobExecutor):
    """Executor double: exit codes and delays are looked up by command text."""

    def __init__(
        self,
        exit_codes: Optional[Dict[str, int]] = None,
        delays: Optional[Dict[str, float]] = None,
    ) -> None:
        self.exit_codes = exit_codes or {}
        self.delays = delays or {}
        self.calls: List[Tuple[str, str]] = []
        self.envs: Dict[str, Dict[str, str]] = {}
        self.workspaces: Dict[str, Path] = {}
        self.images: Dict[str, Optional[str]] = {}

    async def run_commands(
        self,
        commands: Sequence[str],
        *,
        image: Optional[str],
        workspace: Path,
        env: Mapping[str, str],
    ) -> CommandsOutcome:
        job = env.get("CI_JOB_NAME", "?")
        self.envs[job] = dict(env)
        self.workspaces[job] = workspace
        self.images[job] = image
        logs: List[str] = []
        for command in commands:
            self.calls.append((job, command))
            logs.append(f"$ {command}")
            if command in self.delays:
                await asyncio.sleep(self.delays[command])
            code = self.exit_codes.get(command, 0)
            if code:
                return CommandsOutcome(exit_code=code, logs=logs, failed_command=command)
        return CommandsOutcome(exit_code=0, logs=logs)

    def jobs_started(self) -> List[str]:
        seen: List[str] = []
        for job, _ in self.calls:
            if job not in seen:
                seen.append(job)
        return seen

    def commands_of(self, job: str) -> List[str]:
        return [command for name, command in self.calls if name == job]


def make_pipeline(text: str) -> Pipeline:
    pipeline, _, _ = build_pipeline(yaml.safe_load(textwrap.dedent(text)))
    return pipeline


@pytest.fixture
def settings(tmp_path):
    return Settings(workdir=tmp_path / "work")


@pytest.fixture
def workspaces(tmp_path):
    return WorkspaceProvider(tmp_path / "work")


@pytest.fixture
def executor():
    return ScriptedExecutor()
