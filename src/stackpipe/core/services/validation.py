from typing import List, Sequence, Tuple

from stackpipe.core.exceptions import (
    DefinitionError,
    MissingGrantError,
    StageOrderError,
    UnresolvedArtifactError,
)
from stackpipe.core.models import Identity
from stackpipe.core.services.policies import (
    REGISTRY_ACTIONS,
    SECRET_READ_ACTIONS,
    covers_secret,
    missing_actions,
)
from stackpipe.model import BuildAction, DeployAction, Pipeline, SourceAction


CANONICAL_STAGES: Tuple[str, ...] = ("Source", "Build", "Deploy")


def _check_stage_order(
    pipeline: Pipeline,
    expected: Sequence[str],
    logs: List[str],
) -> None:
    if pipeline.stage_names != list(expected):
        logs.append(f"Стадии {pipeline.stage_names} не совпадают с {list(expected)}.")
        raise StageOrderError(expected, pipeline.stage_names, logs=logs)

    for stage in pipeline.stages:
        if not stage.actions:
            logs.append(f"Стадия {stage.name} пустая.")
            raise DefinitionError(
                description=f"Stage {stage.name!r} has no actions",
                logs=logs,
            )
    logs.append(f"Порядок стадий: {' -> '.join(pipeline.stage_names)}.")


def _check_artifacts(pipeline: Pipeline, logs: List[str]) -> None:
    # граф мог быть собран в обход Stage.add_action
    for stage in pipeline.stages:
        available = pipeline.artifacts_before(stage)
        for action in stage.actions:
            for artifact_name in action.input_names():
                if artifact_name not in available:
                    logs.append(
                        f"Артефакт {artifact_name} для {action.name} не найден."
                    )
                    raise UnresolvedArtifactError(
                        artifact_name=artifact_name,
                        action_name=action.name,
                        stage_name=stage.name,
                        logs=logs,
                    )
                logs.append(
                    f"{action.name} читает {artifact_name} из {available[artifact_name]}."
                )


def _check_grants(pipeline: Pipeline, logs: List[str]) -> None:
    for _, action in pipeline.iter_actions():
        if isinstance(action, SourceAction):
            identity = pipeline.executing_identity(action)
            secret = action.oauth_token
            if not covers_secret(identity, secret):
                logs.append(
                    f"Роль {identity.name} не может прочитать секрет {secret.name}."
                )
                raise MissingGrantError(
                    identity.name,
                    SECRET_READ_ACTIONS,
                    secret.arn or secret.name,
                    logs=logs,
                )
            logs.append(f"Роль {identity.name} читает секрет {secret.name}.")

        elif isinstance(action, BuildAction) and action.project.registry_access:
            role_name = action.project.role_name
            identity = pipeline.identities.get(role_name) or Identity(name=role_name)
            for resource in action.project.registry_resources:
                missing = missing_actions(identity, REGISTRY_ACTIONS, resource)
                if missing:
                    logs.append(
                        f"Роли {identity.name} не хватает доступа к registry {resource}."
                    )
                    raise MissingGrantError(identity.name, missing, resource, logs=logs)
            logs.append(f"Роль {identity.name} имеет доступ к registry.")


def _collect_warnings(pipeline: Pipeline) -> List[str]:
    warnings: List[str] = []
    for _, action in pipeline.iter_actions():
        if isinstance(action, DeployAction) and action.admin_permissions:
            warnings.append(
                f"{action.name}: admin_permissions включены. "
                "Используйте только для тестов, иначе задайте точные права."
            )
        if isinstance(action, BuildAction) and action.project.registry_access:
            if not action.project.environment.privileged:
                warnings.append(
                    f"{action.name}: сборка работает с registry, но окружение не privileged — "
                    "docker build/push упадёт на стороне исполнителя."
                )
            if "*" in action.project.registry_resources:
                warnings.append(
                    f"{action.name}: доступ к registry выдан на все ресурсы ('*'). "
                    "Укажите ARN конкретного репозитория."
                )
    return warnings


def validate_pipeline(
    pipeline: Pipeline,
    expected_stages: Sequence[str] = CANONICAL_STAGES,
) -> Tuple[List[str], List[str]]:
    """
    Проверяет, что пайплайн можно отдавать на исполнение.

    Возвращает (logs, warnings).
    :raises DefinitionError: StageOrderError, UnresolvedArtifactError,
                             MissingGrantError и т.п.
    """
    logs: List[str] = []
    _check_stage_order(pipeline, expected_stages, logs)
    _check_artifacts(pipeline, logs)
    _check_grants(pipeline, logs)
    logs.append(f"Пайплайн {pipeline.name} прошёл проверку.")
    return logs, _collect_warnings(pipeline)
