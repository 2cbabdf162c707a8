from git import (
    Repo as GitRepo,
    InvalidGitRepositoryError,
    NoSuchPathError,
)

from pathlib import Path
from typing import List, Optional

from .models import RepositoryInfo
from .utils import PathLike, parse_remote_url
from .exceptions import GitLocalPathError, GitRemoteError


class GitRepoInspector:
    """
    Читает из локальной рабочей копии то, что нужно Source-стадии:
    владельца и имя репозитория (по адресу remote) и текущую ветку.

    Ничего не клонирует и не ходит в сеть.
    """

    def __init__(self, remote_name: str = "origin") -> None:
        self.remote_name = remote_name

    def from_existing_path(self, path: PathLike) -> RepositoryInfo:
        """
        :param path: Путь до рабочей копии (или любой директории внутри неё).
        :raises GitLocalPathError: если путь не существует или это не git-репозиторий.
        :raises GitRemoteError: если remote нет или его адрес не разобрать.
        """
        logs: List[str] = []

        repo_path = Path(path)
        logs.append(f"Используем существующий путь как репозиторий: {repo_path}")

        if not repo_path.is_dir():
            logs.append("Ошибка: указанный путь не является директорией.")
            raise GitLocalPathError(path=str(repo_path), logs=logs)

        try:
            repo_obj = GitRepo(repo_path, search_parent_directories=True)
        except (InvalidGitRepositoryError, NoSuchPathError):
            logs.append("GitPython не нашёл git-репозиторий по этому пути.")
            raise GitLocalPathError(path=str(repo_path), logs=logs)

        # Явно закрываем repo_obj, чтобы на Windows не оставались залоченные файлы
        try:
            root = Path(repo_obj.working_tree_dir or repo_path)
            logs.append(f"Корень репозитория: {root}")

            branch = self._active_branch(repo_obj, logs)

            remote_names = [remote.name for remote in repo_obj.remotes]
            if self.remote_name not in remote_names:
                logs.append(
                    f"Remote {self.remote_name!r} не найден. Доступные: {remote_names}"
                )
                raise GitRemoteError(remote=self.remote_name, logs=logs)

            url = repo_obj.remote(self.remote_name).url
        finally:
            repo_obj.close()

        parsed = parse_remote_url(url)
        if parsed is None:
            logs.append(f"Не удалось разобрать адрес remote: {url!r}")
            raise GitRemoteError(remote=self.remote_name, url=url, logs=logs)

        owner, name = parsed
        logs.append(f"Репозиторий {owner}/{name}, ветка {branch or '-'}")

        return RepositoryInfo(
            repo_path=root,
            owner=owner,
            name=name,
            branch=branch,
            remote_url=url,
            logs=logs,
        )

    @staticmethod
    def _active_branch(repo_obj: GitRepo, logs: List[str]) -> Optional[str]:
        if repo_obj.head.is_detached:
            logs.append("HEAD в состоянии detached — ветку берём из настроек.")
            return None
        try:
            return repo_obj.active_branch.name
        except TypeError:
            logs.append("Не удалось определить текущую ветку.")
            return None
