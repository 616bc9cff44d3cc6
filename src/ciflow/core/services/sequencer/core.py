import asyncio
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set

import click

from ciflow.core.config import Settings
from ciflow.core.models import (
    Event,
    FailureKind,
    FailurePolicy,
    JobStatus,
    PipelineResult,
    StageResult,
)
from ciflow.core.services.builders.pipeline import validate_pipeline
from ciflow.core.services.executor import JobExecutor
from ciflow.core.services.git_module import WorkspaceError, WorkspaceProvider
from ciflow.model import Job, Pipeline, StageSpec

from .models import JobRun


class StageSequencer:
    """
    Последовательный запуск стадий пайплайна.

    - стадии идут строго в объявленном порядке, между ними барьер;
    - job'ы одной стадии выполняются параллельно, каждый в своём рабочем каталоге;
    - блокирующее падение job'а останавливает пайплайн: следующие стадии
      не запускаются;
    - соседние job'ы упавшей стадии по умолчанию доходят до конца
      (FailurePolicy.DRAIN), при FailurePolicy.CANCEL — прерываются;
    - внешняя отмена (cancel-событие) прерывает текущую стадию и не даёт
      стартовать следующим.
    """

    def __init__(
        self,
        executor: JobExecutor,
        workspaces: Optional[WorkspaceProvider] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self.executor = executor
        self.settings = settings or Settings()
        self.workspaces = workspaces or WorkspaceProvider(self.settings.workdir)

    def _log(self, logs: List[str], message: str) -> None:
        logs.append(message)
        if self.settings.echo:
            click.echo(message)

    def _resolve(self, pipeline: Pipeline, job: Job) -> Job:
        resolved = job.resolve(pipeline.default)
        if resolved.timeout is None and self.settings.job_timeout:
            resolved = resolved.model_copy(update={"timeout": self.settings.job_timeout})
        return resolved

    @staticmethod
    def _job_env(pipeline: Pipeline, job: Job, event: Optional[Event]) -> Dict[str, str]:
        env: Dict[str, str] = {}
        if event is not None:
            env.update(event.variables())
        env.update(pipeline.variables)
        env.update(job.variables)
        env["CI_JOB_NAME"] = job.name
        env["CI_JOB_STAGE"] = job.stage
        return env

    async def execute(
        self,
        pipeline: Pipeline,
        event: Optional[Event] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> PipelineResult:
        """
        Выполняет пайплайн и возвращает PipelineResult.

        Конфигурация проверяется до запуска первого job'а:
        FatalConfigurationError поднимается без частичного выполнения.
        """
        logs: List[str] = []
        validation_logs, warnings = validate_pipeline(pipeline)
        logs.extend(validation_logs)
        logs.extend(f"warning: {warning}" for warning in warnings)

        cancel = cancel or asyncio.Event()
        stage_results: List[StageResult] = []
        job_results = []
        halted_at: Optional[str] = None
        canceled = False

        for stage in pipeline.stages:
            if cancel.is_set():
                canceled = True
                self._log(logs, f"Пайплайн отменён до начала стадии {stage.name}.")
                break

            jobs = pipeline.jobs_for(stage.name)
            if not jobs:
                stage_results.append(StageResult(name=stage.name, status="skipped"))
                self._log(logs, f"Стадия {stage.name}: задач нет, пропускаем.")
                continue

            runs = [
                JobRun(job=self._resolve(pipeline, job), stage_allows_failure=stage.allow_failure)
                for job in jobs
            ]
            self._log(
                logs,
                f"Стадия {stage.name}: запускаем {', '.join(run.name for run in runs)}",
            )
            interrupted = await self._run_stage(pipeline, stage, runs, event, cancel, logs)
            for run in runs:
                if not run.terminal:
                    run.fail(self._failure_kind(run), message="Job не дошёл до финального статуса")

            job_results.extend(run.to_result() for run in runs)
            blocking = [run.name for run in runs if run.blocking_failure]
            stage_results.append(
                StageResult(
                    name=stage.name,
                    status="failed" if blocking else "passed",
                    jobs=[run.name for run in runs],
                )
            )

            if interrupted:
                canceled = True
                halted_at = stage.name
                self._log(logs, f"Стадия {stage.name} прервана отменой пайплайна.")
                break
            if blocking:
                halted_at = stage.name
                self._log(
                    logs,
                    f"Стадия {stage.name} упала ({', '.join(blocking)}), следующие стадии не запускаются.",
                )
                break
            self._log(logs, f"Стадия {stage.name} пройдена.")

        status = "failed" if (halted_at is not None or canceled) else "passed"
        self._log(logs, f"Пайплайн завершён: {status}.")
        return PipelineResult(
            status=status,
            stages=stage_results,
            jobs=job_results,
            halted_at=halted_at,
            canceled=canceled,
            logs=logs,
        )

    async def _run_stage(
        self,
        pipeline: Pipeline,
        stage: StageSpec,
        runs: List[JobRun],
        event: Optional[Event],
        cancel: asyncio.Event,
        logs: List[str],
    ) -> bool:
        """
        Запускает job'ы стадии параллельно и ждёт их завершения.
        Возвращает True, если стадию прервала внешняя отмена.
        """
        tasks = {
            asyncio.create_task(
                self._run_job(run, self._job_env(pipeline, run.job, event), logs),
                name=f"{stage.name}:{run.name}",
            ): run
            for run in runs
        }
        pending: Set[asyncio.Task] = set(tasks)
        cancel_waiter = asyncio.create_task(cancel.wait())
        try:
            while pending:
                done, _ = await asyncio.wait(
                    pending | {cancel_waiter}, return_when=asyncio.FIRST_COMPLETED
                )
                pending -= done
                if cancel_waiter in done:
                    await self._cancel(pending)
                    return True
                if (
                    pending
                    and self.settings.failure_policy == FailurePolicy.CANCEL
                    and any(tasks[task].blocking_failure for task in done if task in tasks)
                ):
                    self._log(logs, f"Стадия {stage.name}: блокирующее падение, отменяем соседние задачи.")
                    await self._cancel(pending)
                    break
        except asyncio.CancelledError:
            await self._cancel(pending)
            raise
        finally:
            await self._cancel([cancel_waiter])
        return False

    @staticmethod
    def _failure_kind(run: JobRun) -> FailureKind:
        return FailureKind.SCRIPT if run.status == JobStatus.RUNNING_MAIN else FailureKind.SETUP

    @staticmethod
    async def _cancel(tasks: Iterable[asyncio.Task]) -> None:
        tasks = list(tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _run_job(self, run: JobRun, env: Dict[str, str], logs: List[str]) -> None:
        run.start()
        try:
            await asyncio.wait_for(self._drive(run, env), timeout=run.job.timeout)
        except asyncio.TimeoutError:
            run.fail(FailureKind.TIMEOUT, message=f"Превышен лимит времени job'а: {run.job.timeout} с")
        except asyncio.CancelledError:
            run.fail(FailureKind.CANCELED, message="Job отменён")
        except Exception as e:
            run.fail(self._failure_kind(run), message=f"Исполнитель упал: {e!r}")

        outcome = run.status.value if run.failure is None else f"{run.status.value} ({run.failure.value})"
        self._log(logs, f"Job {run.name}: {outcome}")

    async def _drive(self, run: JobRun, env: Dict[str, str]) -> None:
        # Подготовка окружения тоже шаг setup, её падение валит job без запуска script
        try:
            workspace = await self.workspaces.prepare(run.name)
        except WorkspaceError as e:
            run.logs.extend(e.logs)
            run.fail(FailureKind.SETUP, message=f"Не удалось подготовить окружение: {e.description}")
            return

        run.logs.extend(workspace.logs)
        try:
            await self._run_phases(run, workspace.path, env)
        finally:
            try:
                workspace.cleanup()
            except OSError as e:
                run.logs.append(f"Не удалось удалить рабочую папку {workspace.root_dir}: {e}")

    async def _run_phases(self, run: JobRun, path: Path, env: Dict[str, str]) -> None:
        job = run.job
        try:
            if job.before_script:
                outcome = await self.executor.run_commands(
                    job.before_script, image=job.image, workspace=path, env=env
                )
                run.logs.extend(outcome.logs)
                if not outcome.ok:
                    run.fail(
                        FailureKind.SETUP,
                        exit_code=outcome.exit_code,
                        message=f"before_script упал на команде: {outcome.failed_command}",
                    )
                    return

            run.enter_main()
            outcome = await self.executor.run_commands(
                job.script, image=job.image, workspace=path, env=env
            )
            run.logs.extend(outcome.logs)
            if outcome.ok:
                run.succeed()
            else:
                run.fail(
                    FailureKind.SCRIPT,
                    exit_code=outcome.exit_code,
                    message=f"script упал на команде: {outcome.failed_command}",
                )
        except OSError as e:
            run.fail(self._failure_kind(run), message=f"Исполнитель не смог запустить команду: {e!r}")
