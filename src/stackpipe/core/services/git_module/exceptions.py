from typing import List, Optional

from stackpipe.exception import StackPipeException


class GitExceptions(StackPipeException):
    """
    Базовое исключение для работы с локальным git-репозиторием.

    Дополнительно хранит логи (steps), накопленные во время операции.
    """

    def __init__(
        self,
        *args,
        description: str = "Something happened while working with Git",
        logs: Optional[List[str]] = None,
    ) -> None:
        super().__init__(*args, description=description, logs=logs)


class GitLocalPathError(GitExceptions):
    """
    Путь не существует или не является git-репозиторием.
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


class GitRemoteError(GitExceptions):
    """
    У репозитория нет remote или его адрес не удалось разобрать.
    """

    def __init__(
        self,
        remote: str,
        url: Optional[str] = None,
        logs: Optional[List[str]] = None,
        *args,
    ) -> None:
        description = f"Error to read owner/repository from remote {remote}"
        if url:
            description += f" ({url})"
        super().__init__(*args, description=description, logs=logs)
        self.remote = remote
        self.url = url
