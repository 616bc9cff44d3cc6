import asyncio
from typing import Optional

from ciflow.exception import FatalConfigurationError
from ciflow.model import Pipeline

from .config import Settings
from .models import Event, RunResponse
from .services.builders import pipeline as builder
from .services.executor import JobExecutor, ShellExecutor
from .services.git_module import WorkspaceProvider
from .services.git_module.utils import PathLike
from .services.rules import RuleEvaluator
from .services.sequencer import StageSequencer


class CIFlowCore:
    """
    Сквозной сценарий: загрузить конфигурацию → проверить → решить, допускается
    ли событие → выполнить стадии. Логи и предупреждения копятся по ходу и
    возвращаются в RunResponse.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        executor: Optional[JobExecutor] = None,
    ):
        self.settings = settings or Settings.from_env()
        self.executor = executor or ShellExecutor()
        self.logs: list[str] = []
        self.warnings: list[str] = []

    def load(self, config_path: PathLike) -> Pipeline:
        """
        Загружает и статически проверяет пайплайн.
        :raises FatalConfigurationError: при любой ошибке конфигурации.
        """
        pipeline, load_logs, load_warnings = builder.load_pipeline_file(config_path)
        self.logs.extend(load_logs)
        self.warnings.extend(load_warnings)

        validation_logs, validation_warnings = builder.validate_pipeline(pipeline)
        self.logs.extend(validation_logs)
        self.warnings.extend(validation_warnings)
        return pipeline

    def validate(self, config_path: PathLike) -> RunResponse:
        try:
            pipeline = self.load(config_path)
        except FatalConfigurationError as e:
            return self._error(e)

        return RunResponse(
            status="passed",
            pipeline_summary=builder.summarize_pipeline(pipeline),
            warnings=self.warnings,
            logs=self.logs,
        )

    def admit(self, pipeline: Pipeline, event: Event) -> bool:
        evaluator = RuleEvaluator(pipeline.workflow_rules)
        admitted = evaluator.admit(event)
        self.logs.append(f"Событие {event.source.value} на ветке {event.branch}: {evaluator.explain(event)}")
        return admitted

    async def run_pipeline(
        self,
        config_path: PathLike,
        event: Event,
        source: Optional[PathLike] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> RunResponse:
        try:
            pipeline = self.load(config_path)
        except FatalConfigurationError as e:
            return self._error(e, event=event)

        summary = builder.summarize_pipeline(pipeline)

        if not self.admit(pipeline, event):
            # Отказ в допуске штатен, пайплайн просто не создаётся
            return RunResponse(
                status="skipped",
                event=event,
                pipeline_summary=summary,
                warnings=self.warnings,
                logs=self.logs,
            )

        sequencer = self.sequencer(source=source, ref=event.branch if source else None)
        result = await sequencer.execute(pipeline, event=event, cancel=cancel)
        self.logs.extend(result.logs)

        return RunResponse(
            status=result.status,
            event=event,
            result=result,
            pipeline_summary=summary,
            warnings=self.warnings,
            logs=self.logs,
        )

    def sequencer(self, source: Optional[PathLike] = None, ref: Optional[str] = None) -> StageSequencer:
        workspaces = WorkspaceProvider(self.settings.workdir, source=source, ref=ref)
        return StageSequencer(self.executor, workspaces=workspaces, settings=self.settings)

    def _error(self, error: FatalConfigurationError, event: Optional[Event] = None) -> RunResponse:
        self.logs.extend(error.logs)
        self.warnings.extend(error.problems)
        self.warnings.append("Пайплайн не запускался: исправьте конфигурацию.")
        return RunResponse(
            status="error",
            event=event,
            warnings=self.warnings,
            logs=self.logs,
        )
