from .core import StageSequencer
from .models import JobRun

__all__ = [
    "JobRun",
    "StageSequencer",
]
