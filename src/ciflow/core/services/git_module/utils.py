import os
import re
import stat
from pathlib import Path
from typing import Union


PathLike = Union[str, Path]

def on_rm_error(func, path, exc_info):
    """
    Обработчик ошибок для shutil.rmtree:
    - снимает флаг read-only (частый кейс для .git/objects/pack на Windows),
    - повторно вызывает функцию удаления.
    Если и это не помогло — ошибка уходит наверх.
    """
    os.chmod(path, stat.S_IWRITE)
    func(path)

def ensure_base_temp_dir(path: PathLike) -> Path:
    """
    Гарантирует, что базовый каталог для рабочих папок существует, и возвращает его как Path.
    """
    base = Path(path)
    base.mkdir(parents=True, exist_ok=True)
    return base

def safe_name(name: str) -> str:
    """
    Имя job'а, пригодное для префикса временной папки.
    """
    return re.sub(r"[^A-Za-z0-9_.-]+", "_", name)[:40] or "job"
