from typing import List, Optional

from ciflow.exception import CLIException


class WorkspaceError(CLIException):
    """
    Базовое исключение подготовки рабочих каталогов и работы с git.

    Дополнительно хранит логи (steps), накопленные во время операции.
    """

    def __init__(
        self,
        *args,
        description: str = "Something happend when preparing a workspace",
        logs: Optional[List[str]] = None,
    ) -> None:
        super().__init__(*args, description=description, logs=logs)


class WorkspaceCloneError(WorkspaceError):
    """
    Ошибка при клонировании/копировании исходников в рабочий каталог job'а.
    """

    def __init__(
        self,
        source: str,
        ref: Optional[str] = None,
        logs: Optional[List[str]] = None,
        *args,
    ) -> None:
        description = f"Error to clone {source}" + (f" at {ref}" if ref else "")
        super().__init__(*args, description=description, logs=logs)
        self.source = source
        self.ref = ref


class WorkspaceLocalPathError(WorkspaceError):
    """
    Ошибка при использовании локального пути до репозитория/проекта.
    """

    def __init__(
        self,
        path: str,
        logs: Optional[List[str]] = None,
        *args,
    ) -> None:
        description = f"Error to use local repository path {path}"
        super().__init__(*args, description=description, logs=logs)
        self.path = path


class EventDetectionError(WorkspaceError):
    """
    Не удалось определить ветку по локальному checkout'у.
    """

    def __init__(
        self,
        path: str,
        reason: str,
        logs: Optional[List[str]] = None,
        *args,
    ) -> None:
        description = f"Error to detect branch in {path}: {reason}"
        super().__init__(*args, description=description, logs=logs)
        self.path = path
