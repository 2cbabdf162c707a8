from typing import Any, Dict

import yaml

from stackpipe.core.models import BuildDefinition


def to_document(definition: BuildDefinition, include_env: bool = True) -> Dict[str, Any]:
    """
    buildspec в виде словаря.

    include_env=False — переменные окружения задаются на уровне проекта сборки
    (так их кладёт CloudFormation-рендер), в buildspec их не дублируем.
    """
    document: Dict[str, Any] = {"version": definition.version}

    variables = definition.environment.environment_variables
    if include_env and variables:
        env: Dict[str, Dict[str, str]] = {}
        plain = {k: v.value for k, v in variables.items() if v.type == "PLAINTEXT"}
        secrets = {k: v.value for k, v in variables.items() if v.type == "SECRETS_MANAGER"}
        if plain:
            env["variables"] = plain
        if secrets:
            env["secrets-manager"] = secrets
        document["env"] = env

    document["phases"] = {
        phase.name: {"commands": list(phase.commands)}
        for phase in definition.phases
    }
    document["artifacts"] = {
        "base-directory": definition.artifacts.base_directory,
        "files": list(definition.artifacts.files),
    }
    return document


def render(definition: BuildDefinition, include_env: bool = True) -> str:
    return yaml.safe_dump(
        to_document(definition, include_env=include_env),
        sort_keys=False,
        default_flow_style=False,
    )
