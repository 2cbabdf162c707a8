from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional


@dataclass
class RepositoryInfo:
    """
    Что удалось узнать о локальном репозитории.

    repo_path  — корень рабочей копии.
    owner      — владелец репозитория на хостинге (из URL remote).
    name       — имя репозитория без .git.
    branch     — текущая ветка; None для detached HEAD.
    remote_url — адрес remote, по которому определены owner/name.
    logs       — текстовые логи шагов.
    """

    repo_path: Path
    owner: str
    name: str
    branch: Optional[str]
    remote_url: str
    logs: List[str] = field(default_factory=list)

    def as_settings(self) -> dict:
        """
        Поля для PipelineSettings. Пустые значения не возвращаются,
        чтобы не перетирать настройки по умолчанию.
        """
        data = {
            "repository_owner": self.owner,
            "repository_name": self.name,
            "branch": self.branch,
        }
        return {k: v for k, v in data.items() if v}
