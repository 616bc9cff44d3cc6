import time
from dataclasses import dataclass, field
from typing import List, Optional

from ciflow.core.models import FailureKind, JobResult, JobStatus
from ciflow.model import Job


@dataclass
class JobRun:
    """
    Экземпляр job'а внутри одного запуска пайплайна.

    Создаётся при старте стадии, проходит
    pending -> running_setup -> running_main -> passed | failed
    и после отчёта превращается в JobResult (сам экземпляр отбрасывается).
    """

    job: Job
    stage_allows_failure: bool = False
    status: JobStatus = JobStatus.PENDING
    failure: Optional[FailureKind] = None
    exit_code: Optional[int] = None
    logs: List[str] = field(default_factory=list)
    started_at: Optional[float] = None
    finished_at: Optional[float] = None

    @property
    def name(self) -> str:
        return self.job.name

    @property
    def terminal(self) -> bool:
        return self.status in (JobStatus.PASSED, JobStatus.FAILED)

    @property
    def non_blocking(self) -> bool:
        return self.job.allow_failure or self.stage_allows_failure

    @property
    def blocking_failure(self) -> bool:
        return self.status == JobStatus.FAILED and not self.non_blocking

    def start(self) -> None:
        self.started_at = time.monotonic()
        self.status = JobStatus.RUNNING_SETUP

    def enter_main(self) -> None:
        self.status = JobStatus.RUNNING_MAIN

    def succeed(self) -> None:
        self.status = JobStatus.PASSED
        self.exit_code = 0
        self.finished_at = time.monotonic()

    def fail(self, kind: FailureKind, exit_code: Optional[int] = None, message: Optional[str] = None) -> None:
        # Повторный fail (например, отмена после таймаута) не перетирает первую причину
        if self.terminal:
            return
        self.status = JobStatus.FAILED
        self.failure = kind
        self.exit_code = exit_code
        if message:
            self.logs.append(message)
        self.finished_at = time.monotonic()

    def to_result(self) -> JobResult:
        duration = 0.0
        if self.started_at is not None and self.finished_at is not None:
            duration = round(self.finished_at - self.started_at, 3)
        return JobResult(
            name=self.job.name,
            stage=self.job.stage,
            status=self.status,
            failure=self.failure,
            exit_code=self.exit_code,
            allow_failure=self.non_blocking,
            duration=duration,
            logs=list(self.logs),
        )
