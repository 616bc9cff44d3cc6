from git import (
    Repo as GitRepo,
    GitCommandError,
    InvalidGitRepositoryError,
    NoSuchPathError,
)

from pathlib import Path
from typing import List, Optional, Union
from ciflow.core.config import BASE_TEMP_DIR
from ciflow.core.models import Event, EventSource

from .models import Workspace
from .utils import ensure_base_temp_dir, safe_name, PathLike
from .exceptions import WorkspaceCloneError, WorkspaceLocalPathError, EventDetectionError

import asyncio
import shutil
import tempfile

class WorkspaceProvider:
    """
    Выдаёт каждому job'у собственный рабочий каталог в трёх режимах:

    - source не задан               — пустая временная папка;
    - source — git-репозиторий/URL  — клон (GitPython) во временную папку;
    - source — обычная директория   — копия директории во временную папку.

    Каталоги job'ов не пересекаются, поэтому before_script одного job'а
    не влияет на другие job'ы и стадии.
    """

    def __init__(
        self,
        base_dir: PathLike = BASE_TEMP_DIR,
        source: Optional[PathLike] = None,
        ref: Optional[str] = None,
    ) -> None:
        self.base_dir = Path(base_dir)
        self.source = source
        self.ref = ref

    def _is_plain_directory(self) -> bool:
        path = Path(self.source)
        return path.is_dir() and not (path / ".git").exists()

    def _clone(self, repo_dir: Path, logs: List[str]) -> None:
        source = str(self.source)
        # --depth игнорируется git'ом для локальных путей
        options = {} if Path(source).exists() else {"depth": 1}
        if self.ref:
            options["branch"] = self.ref
        repo_obj: GitRepo | None = None
        try:
            repo_obj = GitRepo.clone_from(source, repo_dir, **options)
            logs.append(f"Репозиторий успешно клонирован в {repo_dir}")
        finally:
            # Явно закрываем repo_obj, чтобы на Windows не оставались залоченные файлы
            if repo_obj is not None:
                repo_obj.close()

    @staticmethod
    def _discard(temp_root: Optional[Path]) -> None:
        # temp_root нет, если упало само создание временной папки
        if temp_root is not None:
            shutil.rmtree(temp_root, ignore_errors=True)

    async def prepare(self, job_name: str) -> Workspace:
        """
        Создаёт изолированный рабочий каталог для job'а.

        :param job_name: имя job'а, используется в префиксе временной папки.
        :raises WorkspaceCloneError: если клонирование/копирование не удалось.
        """
        logs: List[str] = []
        temp_root: Optional[Path] = None

        try:
            base_temp = ensure_base_temp_dir(self.base_dir)
            temp_root = Path(
                tempfile.mkdtemp(prefix=f"job_{safe_name(job_name)}_", dir=base_temp)
            )
            repo_dir = temp_root / "repo"
            logs.append(f"Создаём рабочую папку job'а: {temp_root}")

            if self.source is None:
                repo_dir.mkdir(parents=True, exist_ok=True)
            elif self._is_plain_directory():
                logs.append(f"Копируем {self.source} в {repo_dir}")
                await asyncio.to_thread(shutil.copytree, self.source, repo_dir)
            else:
                logs.append(
                    f"Клонируем репозиторий {str(self.source)!r}"
                    + (f" (ветка {self.ref})" if self.ref else "")
                    + f" в {repo_dir}"
                )
                await asyncio.to_thread(self._clone, repo_dir, logs)
        except GitCommandError as e:
            logs.append("GitPython: ошибка при выполнении clone_from.")
            logs.append(str(e))
            self._discard(temp_root)
            raise WorkspaceCloneError(source=str(self.source), ref=self.ref, logs=logs)
        except OSError as e:
            logs.append(f"Ошибка при подготовке рабочей папки: {e!r}")
            self._discard(temp_root)
            raise WorkspaceCloneError(source=str(self.source), ref=self.ref, logs=logs)

        return Workspace(
            root_dir=temp_root,
            path=repo_dir,
            logs=logs,
            is_temporary=True,
        )


def _remote_default_branch(repo: GitRepo) -> Optional[str]:
    try:
        ref = repo.git.symbolic_ref("refs/remotes/origin/HEAD")
    except GitCommandError:
        return None
    return ref.rsplit("/", 1)[-1] if ref else None


def detect_event(
    path: PathLike,
    source: Union[EventSource, str] = EventSource.PUSH,
    default_branch: Optional[str] = None,
    fallback_branch: str = "main",
) -> Event:
    """
    Собирает Event по локальному checkout'у: текущая ветка берётся из HEAD,
    ветка по умолчанию — явно переданная, либо origin/HEAD, либо fallback_branch.

    :raises WorkspaceLocalPathError: путь не существует или не git-репозиторий.
    :raises EventDetectionError: HEAD отсоединён (detached), ветку не определить.
    """
    logs: List[str] = []
    repo_path = Path(path)
    logs.append(f"Определяем ветку по checkout'у: {repo_path}")

    if not repo_path.is_dir():
        logs.append("Ошибка: указанный путь не является директорией.")
        raise WorkspaceLocalPathError(path=str(repo_path), logs=logs)

    try:
        repo_obj = GitRepo(repo_path, search_parent_directories=True)
    except (InvalidGitRepositoryError, NoSuchPathError):
        logs.append("Ошибка: по указанному пути нет git-репозитория.")
        raise WorkspaceLocalPathError(path=str(repo_path), logs=logs)

    try:
        try:
            branch = repo_obj.active_branch.name
        except TypeError:
            raise EventDetectionError(path=str(repo_path), reason="HEAD is detached", logs=logs)
        if default_branch is None:
            default_branch = _remote_default_branch(repo_obj) or fallback_branch
    finally:
        repo_obj.close()

    return Event(source=source, branch=branch, default_branch=default_branch)
