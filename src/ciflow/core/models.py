from enum import Enum
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class EventSource(str, Enum):
    MERGE_REQUEST = "merge_request_event"
    PUSH = "push"
    SCHEDULE = "schedule"
    API = "api"
    WEB = "web"
    TRIGGER = "trigger"


# Допустимые написания источника события (CLI, вебхуки, старые конфиги)
SOURCE_ALIASES: Dict[str, EventSource] = {
    "mergerequest": EventSource.MERGE_REQUEST,
    "merge_request": EventSource.MERGE_REQUEST,
    "merge_request_event": EventSource.MERGE_REQUEST,
    "mr": EventSource.MERGE_REQUEST,
    "push": EventSource.PUSH,
    "schedule": EventSource.SCHEDULE,
    "api": EventSource.API,
    "web": EventSource.WEB,
    "trigger": EventSource.TRIGGER,
}


class Event(BaseModel):
    """
    Входящее событие системы контроля версий.
    Неизменяемо, создаётся один раз на каждый триггер.
    """

    model_config = ConfigDict(frozen=True)

    source: EventSource
    branch: str
    default_branch: str = "main"

    @field_validator("source", mode="before")
    @classmethod
    def normalize_source(cls, value):
        if isinstance(value, str):
            key = value.strip().lower().replace("-", "_")
            if key in SOURCE_ALIASES:
                return SOURCE_ALIASES[key]
        return value

    def variables(self) -> Dict[str, str]:
        """
        Предопределённые CI-переменные события, по которым считаются rules.
        Для merge request пайплайнов CI_COMMIT_BRANCH не задаётся.
        """
        variables = {
            "CI_PIPELINE_SOURCE": self.source.value,
            "CI_DEFAULT_BRANCH": self.default_branch,
            "CI_COMMIT_REF_NAME": self.branch,
        }
        if self.source == EventSource.MERGE_REQUEST:
            variables["CI_MERGE_REQUEST_SOURCE_BRANCH_NAME"] = self.branch
        else:
            variables["CI_COMMIT_BRANCH"] = self.branch
        return variables


class FailurePolicy(str, Enum):
    # drain: соседние job'ы стадии доходят до конца; cancel: прерываются
    DRAIN = "drain"
    CANCEL = "cancel"


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING_SETUP = "running_setup"
    RUNNING_MAIN = "running_main"
    PASSED = "passed"
    FAILED = "failed"


class FailureKind(str, Enum):
    SETUP = "setup"
    SCRIPT = "script"
    TIMEOUT = "timeout"
    CANCELED = "canceled"


class JobResult(BaseModel):
    name: str
    stage: str
    status: JobStatus
    failure: Optional[FailureKind] = None
    exit_code: Optional[int] = None
    allow_failure: bool = False
    duration: float = 0.0
    logs: List[str] = Field(default_factory=list)

    @property
    def blocking_failure(self) -> bool:
        return self.status == JobStatus.FAILED and not self.allow_failure


class StageResult(BaseModel):
    name: str
    status: Literal["passed", "failed", "skipped"]
    jobs: List[str] = Field(default_factory=list)


class PipelineResult(BaseModel):
    """
    Итог пайплайна. Статус бинарный: passed / failed.
    stages — реально запущенные стадии в порядке запуска.
    """

    status: Literal["passed", "failed"]
    stages: List[StageResult] = Field(default_factory=list)
    jobs: List[JobResult] = Field(default_factory=list)
    halted_at: Optional[str] = None
    canceled: bool = False
    logs: List[str] = Field(default_factory=list)

    @property
    def passed(self) -> bool:
        return self.status == "passed"

    def job(self, name: str) -> Optional[JobResult]:
        for result in self.jobs:
            if result.name == name:
                return result
        return None


class PipelineSummary(BaseModel):
    stages_count: int
    jobs_count: int
    stages: List[str]
    job_names: List[str]
    # Короткое текстовое описание для CLI
    description: str


class RunResponse(BaseModel):
    status: Literal["passed", "failed", "skipped", "error"]
    event: Optional[Event] = None
    result: Optional[PipelineResult] = None
    pipeline_summary: Optional[PipelineSummary] = None
    warnings: List[str] = []
    logs: List[str] = []
