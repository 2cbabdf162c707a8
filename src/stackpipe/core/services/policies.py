"""
Шаблоны грантов и проверки покрытия.

Identity "покрывает" пару (action, resource), если хотя бы один её грант
содержит подходящее действие и подходящий ресурс. В действиях и ресурсах
допускаются маски '*' и '?'.
"""
from __future__ import annotations

from fnmatch import fnmatchcase
from typing import Iterable, List, Optional

from stackpipe.core.models import Identity, PolicyGrant
from stackpipe.model import SecretReference


SECRET_READ_ACTIONS = ("secretsmanager:GetSecretValue",)

REGISTRY_ACTIONS = (
    # auth
    "ecr:GetAuthorizationToken",
    # read
    "ecr:BatchCheckLayerAvailability",
    "ecr:GetDownloadUrlForLayer",
    "ecr:GetRepositoryPolicy",
    "ecr:DescribeRepositories",
    "ecr:ListImages",
    "ecr:DescribeImages",
    "ecr:BatchGetImage",
    "ecr:GetLifecyclePolicy",
    "ecr:GetLifecyclePolicyPreview",
    "ecr:ListTagsForResource",
    # write
    "ecr:PutLifecyclePolicy",
    "ecr:SetRepositoryPolicy",
    "ecr:InitiateLayerUpload",
    "ecr:UploadLayerPart",
    "ecr:CompleteLayerUpload",
    "ecr:PutImage",
)


def secret_arn(
    name: str,
    region: Optional[str] = None,
    account: Optional[str] = None,
) -> str:
    """
    ARN секрета по имени. Неизвестные регион/аккаунт и случайный
    суффикс заменяются масками.
    """
    return (
        f"arn:aws:secretsmanager:{region or '*'}:{account or '*'}"
        f":secret:{name}-??????"
    )


def secret_read_grant(resource: str) -> PolicyGrant:
    return PolicyGrant(actions=SECRET_READ_ACTIONS, resources=(resource,))


def registry_grant(resources: Iterable[str] = ("*",)) -> PolicyGrant:
    return PolicyGrant(actions=REGISTRY_ACTIONS, resources=tuple(resources))


def _secret_name_patterns(resource: str) -> List[str]:
    """
    Маски имени секрета, которые покрывает ресурс гранта.

    Конкретный суффикс (X-abcdef) не снимается: без ARN нельзя отличить
    секрет X от секрета с именем X-abcdef.
    """
    if ":secret:" not in resource:
        return [resource]
    tail = resource.split(":secret:", 1)[1]
    if tail.endswith("-??????"):
        return [tail[:-7]]
    if tail.endswith("-*"):
        return [tail[:-2], tail]
    return [tail]


def secret_matches(resource: str, secret: SecretReference) -> bool:
    """
    Если у ссылки есть ARN, сравнивается только он (регион и аккаунт
    учитываются). Иначе сравнивается имя.
    """
    if resource == "*":
        return True
    if secret.arn:
        return fnmatchcase(secret.arn, resource)
    return any(fnmatchcase(secret.name, p) for p in _secret_name_patterns(resource))


def grant_allows(grant: PolicyGrant, action: str, resource: str) -> bool:
    if grant.effect != "Allow":
        return False
    if not any(fnmatchcase(action, pattern) for pattern in grant.actions):
        return False
    return any(fnmatchcase(resource, pattern) for pattern in grant.resources)


def covers(identity: Identity, action: str, resource: str) -> bool:
    return any(grant_allows(grant, action, resource) for grant in identity.grants)


def missing_actions(
    identity: Identity,
    actions: Iterable[str],
    resource: str,
) -> List[str]:
    return [action for action in actions if not covers(identity, action, resource)]


def covers_secret(identity: Identity, secret: SecretReference) -> bool:
    """
    True, если identity может прочитать секрет secret.
    """
    for grant in identity.grants:
        if not any(
            fnmatchcase(action, pattern)
            for action in SECRET_READ_ACTIONS
            for pattern in grant.actions
        ):
            continue
        if any(secret_matches(resource, secret) for resource in grant.resources):
            return True
    return False
