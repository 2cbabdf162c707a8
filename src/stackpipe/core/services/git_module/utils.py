import re
from pathlib import Path
from typing import Optional, Tuple, Union


PathLike = Union[str, Path]

# https://github.com/owner/repo(.git), ssh://git@host/owner/repo, git@host:owner/repo.git
_REMOTE_RE = re.compile(
    r"^(?:[a-z+]+://)?(?:[^@/]+@)?[^/:]+(?::\d+)?[/:](?P<path>.+?)(?:\.git)?/?$"
)


def parse_remote_url(url: str) -> Optional[Tuple[str, str]]:
    """
    Достаёт (owner, repo) из URL remote.
    Для вложенных групп (gitlab) owner — всё до последнего сегмента.
    """
    match = _REMOTE_RE.match(url.strip())
    if not match:
        return None
    parts = [p for p in match.group("path").split("/") if p]
    if len(parts) < 2:
        return None
    return "/".join(parts[:-1]), parts[-1]
