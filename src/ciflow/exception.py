from typing import List, Optional

import click


class CLIException(click.ClickException):
    """
    Базовое исключение ciflow.

    Хранит человекочитаемое описание и логи шагов, накопленные до ошибки.
    Внутри click-команды выводится как `Error: <description>`.
    """

    def __init__(
        self,
        *args,
        description: str = "Something happend...",
        logs: Optional[List[str]] = None,
    ) -> None:
        super().__init__(description)
        self.description = description
        self.logs: List[str] = logs or []


class FatalConfigurationError(CLIException):
    """
    Конфигурация пайплайна некорректна. Обнаруживается до запуска любых job'ов.
    """

    def __init__(
        self,
        problems: List[str],
        logs: Optional[List[str]] = None,
        *args,
    ) -> None:
        description = "Invalid pipeline configuration: " + "; ".join(problems)
        super().__init__(*args, description=description, logs=logs)
        self.problems = problems
