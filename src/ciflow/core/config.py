from pathlib import Path
import os
from tempfile import gettempdir
from typing import Optional

from pydantic import BaseModel, ConfigDict

from .models import FailurePolicy

"""
Базовая настройка ciflow через переменные окружения.

Рабочие каталоги job'ов складываются в системный /tmp/ciflow (или аналог на Windows).
Можно переопределить переменной окружения CIFLOW_WORKDIR.
"""

BASE_TEMP_DIR = Path(
    os.getenv("CIFLOW_WORKDIR", gettempdir())
) / "ciflow"

DEFAULT_BRANCH = os.getenv("CIFLOW_DEFAULT_BRANCH", "main")

LOGO = "ciflow — rules → stages → jobs"


def _env_timeout() -> Optional[float]:
    raw = os.getenv("CIFLOW_JOB_TIMEOUT", "").strip()
    if not raw:
        return None
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"CIFLOW_JOB_TIMEOUT must be a number of seconds, got {raw!r}")
    return value if value > 0 else None


class Settings(BaseModel):
    """
    Неизменяемые настройки процесса. Передаются в ядро явно при создании,
    глобальное изменяемое состояние не используется.
    """

    model_config = ConfigDict(frozen=True)

    workdir: Path = BASE_TEMP_DIR
    default_branch: str = DEFAULT_BRANCH
    job_timeout: Optional[float] = None
    failure_policy: FailurePolicy = FailurePolicy.DRAIN
    echo: bool = False

    @classmethod
    def from_env(cls, **overrides) -> "Settings":
        values = {
            "workdir": Path(os.getenv("CIFLOW_WORKDIR", gettempdir())) / "ciflow",
            "default_branch": os.getenv("CIFLOW_DEFAULT_BRANCH", "main"),
            "job_timeout": _env_timeout(),
            "failure_policy": os.getenv("CIFLOW_FAILURE_POLICY", FailurePolicy.DRAIN.value),
        }
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**values)
