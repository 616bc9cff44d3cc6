from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Dict, List, Optional

from ciflow.core.services.rules import DEFAULT_RULES, Rule


def _as_commands(value):
    # GitLab разрешает строку вместо списка команд
    if value is None:
        return value
    if isinstance(value, str):
        value = [value]
    if isinstance(value, (list, tuple)):
        return [str(cmd).strip() for cmd in value if str(cmd).strip()]
    return value


class Defaults(BaseModel):
    """
    Секция `default:` — наследуется каждым job'ом, если он не задал своё.
    """

    model_config = ConfigDict(frozen=True)

    image: Optional[str] = None
    before_script: List[str] = Field(default_factory=list)
    timeout: Optional[float] = Field(default=None, gt=0)

    normalize_commands = field_validator("before_script", mode="before")(_as_commands)


class StageSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    allow_failure: bool = False


class Job(BaseModel):
    """
    Задача пайплайна. Принадлежит ровно одной стадии.
    before_script = None означает «взять из default».
    """

    model_config = ConfigDict(frozen=True)

    name: str
    stage: str = "test"
    image: Optional[str] = None
    before_script: Optional[List[str]] = None
    script: List[str]
    allow_failure: bool = False
    timeout: Optional[float] = Field(default=None, gt=0)
    variables: Dict[str, str] = Field(default_factory=dict)

    normalize_commands = field_validator("before_script", "script", mode="before")(_as_commands)

    @field_validator("variables", mode="before")
    @classmethod
    def stringify_variables(cls, value):
        if isinstance(value, dict):
            return {str(k): "" if v is None else str(v) for k, v in value.items()}
        return value

    def resolve(self, defaults: Defaults) -> "Job":
        """
        Job с подставленными значениями из `default:`.
        """
        return self.model_copy(
            update={
                "image": self.image if self.image is not None else defaults.image,
                "before_script": (
                    self.before_script
                    if self.before_script is not None
                    else list(defaults.before_script)
                ),
                "timeout": self.timeout if self.timeout is not None else defaults.timeout,
            }
        )


class Pipeline(BaseModel):
    """
    Пайплайн: порядок стадий + набор задач + правила допуска.
    Собирается один раз при загрузке и дальше не меняется.
    """

    model_config = ConfigDict(frozen=True)

    stages: List[StageSpec]
    jobs: List[Job]
    default: Defaults = Field(default_factory=Defaults)
    variables: Dict[str, str] = Field(default_factory=dict)
    workflow_rules: List[Rule] = Field(default_factory=lambda: list(DEFAULT_RULES))

    @property
    def stage_names(self) -> List[str]:
        return [stage.name for stage in self.stages]

    def stage(self, name: str) -> Optional[StageSpec]:
        for stage in self.stages:
            if stage.name == name:
                return stage
        return None

    def jobs_for(self, stage: str) -> List[Job]:
        return [job for job in self.jobs if job.stage == stage]
