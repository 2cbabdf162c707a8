from .core import GitRepoInspector

from .exceptions import (
    GitExceptions,
    GitLocalPathError,
    GitRemoteError,
)
from .models import RepositoryInfo
from .utils import parse_remote_url

__all__ = [
    "GitRepoInspector",
    "RepositoryInfo",
    "parse_remote_url",
    "GitExceptions",
    "GitLocalPathError",
    "GitRemoteError",
]
