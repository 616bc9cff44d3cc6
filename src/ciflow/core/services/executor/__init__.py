from .base import CommandsOutcome, JobExecutor
from .shell import ShellExecutor

__all__ = [
    "CommandsOutcome",
    "JobExecutor",
    "ShellExecutor",
]
