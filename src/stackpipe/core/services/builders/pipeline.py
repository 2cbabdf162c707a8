from typing import List, Tuple

from pydantic import ValidationError

from stackpipe.core.ci_scripts import REGISTRY_ENV_VAR, make_phases, registry_reference
from stackpipe.core.config import PipelineSettings
from stackpipe.core.exceptions import ConfigurationError, DefinitionError
from stackpipe.core.models import (
    ArtifactExportRule,
    BuildDefinition,
    BuildEnvironment,
    EnvironmentVariable,
    PipelineSummary,
)
from stackpipe.core.services.policies import registry_grant, secret_read_grant
from stackpipe.core.services.validation import validate_pipeline
from stackpipe.model import (
    Artifact,
    BuildAction,
    DeployAction,
    Pipeline,
    SecretReference,
    SourceAction,
)


def build_definition(settings: PipelineSettings) -> BuildDefinition:
    """
    Описание сборки API-приложения: cdk synth + docker build/push.
    """
    registry = None
    variables = dict(settings.environment_variables)
    if settings.registry_uri:
        registry = registry_reference(settings.registry_uri, settings.registry_mode)
        if settings.registry_mode == "environment":
            variables[REGISTRY_ENV_VAR] = EnvironmentVariable(value=settings.registry_uri)

    return BuildDefinition(
        name=settings.build_project_name,
        environment=BuildEnvironment(
            image=settings.build_image,
            privileged=settings.privileged,
            environment_variables=variables,
        ),
        phases=tuple(
            make_phases(
                registry=registry,
                region=settings.region,
                image_tag=settings.image_tag,
                docker_context=settings.docker_context,
            )
        ),
        artifacts=ArtifactExportRule(
            base_directory=settings.base_directory,
            files=(settings.template_file,),
        ),
        registry_access=registry is not None,
        registry_resources=tuple(settings.registry_resources),
    )


def build_pipeline(settings: PipelineSettings) -> Tuple[Pipeline, List[str], List[str]]:
    """
    Строим пайплайн Source -> Build -> Deploy по настройкам.

    Возвращает (Pipeline, logs, warnings).
    Любая ошибка определения прерывает построение: пайплайн не возвращается.
    """
    logs: List[str] = []
    warnings: List[str] = []
    logs.append(
        f"Строим пайплайн {settings.pipeline_name} для "
        f"{settings.repository_owner}/{settings.repository_name}@{settings.branch}"
    )

    try:
        pipeline = Pipeline(
            name=settings.pipeline_name,
            restart_on_update=settings.restart_on_update,
            cross_account_keys=settings.cross_account_keys,
        )

        # --- Source ---
        source_output = Artifact(name=settings.source_artifact)
        source = SourceAction(
            name="GitHubSource",
            owner=settings.repository_owner,
            repo=settings.repository_name,
            branch=settings.branch,
            oauth_token=SecretReference(
                name=settings.source_secret_name,
                arn=settings.source_secret_arn,
            ),
            output=source_output,
            trigger=settings.source_trigger,
        )
        pipeline.add_stage("Source").add_action(source)
        logs.append(f"Добавлена стадия Source: {source.name} -> {source_output.name}")

        # --- Build ---
        project = build_definition(settings)
        build_output = Artifact(name=settings.build_artifact)
        build = BuildAction(
            name="CodeBuild",
            project=project,
            input=source_output,
            outputs=[build_output],
        )
        pipeline.add_stage("Build").add_action(build)
        logs.append(
            f"Добавлена стадия Build: {source_output.name} -> {build.name} -> {build_output.name}"
        )
        if project.registry_access:
            logs.append(
                f"Сборка публикует образ в registry (режим {settings.registry_mode})."
            )
        else:
            warnings.append(
                "registry_uri не задан — docker build/push не добавлены в сборку."
            )

        # --- Deploy ---
        deploy = DeployAction(
            name="CFN_Deploy",
            stack_name=settings.stack_name,
            template_path=build_output.at_path(settings.template_file),
            admin_permissions=settings.admin_permissions,
            parameter_overrides=dict(settings.parameter_overrides),
        )
        pipeline.add_stage("Deploy").add_action(deploy)
        logs.append(
            f"Добавлена стадия Deploy: {deploy.template_path.location} -> стек {deploy.stack_name}"
        )

        # --- Permissions ---
        pipeline.attach_policy(pipeline.role, secret_read_grant(settings.secret_resource))
        logs.append(f"Роль {pipeline.role_name}: чтение секрета {settings.secret_resource}")
        if project.registry_access:
            pipeline.attach_policy(project.role_name, registry_grant(project.registry_resources))
            logs.append(f"Роль {project.role_name}: доступ к registry")

        validation_logs, validation_warnings = validate_pipeline(pipeline)
    except DefinitionError as e:
        e.logs = logs + e.logs
        raise
    except ValidationError as e:
        raise ConfigurationError(
            [f"{err['loc']}: {err['msg']}" for err in e.errors()],
            logs=logs,
        )

    logs.extend(validation_logs)
    warnings.extend(validation_warnings)
    logs.append(
        f"Пайплайн сформирован: {len(pipeline.stages)} стадий и "
        f"{sum(len(stage.actions) for stage in pipeline.stages)} действий."
    )
    return pipeline, logs, warnings


def summarize_pipeline(pipeline: Pipeline) -> PipelineSummary:
    """
    Строит краткое резюме пайплайна для CLI.
    """
    stages = list(pipeline.stage_names)
    action_names = [action.name for _, action in pipeline.iter_actions()]
    stages_count = len(stages)
    actions_count = len(action_names)

    artifacts = {name: [producer] for name, producer in pipeline.produced_artifacts().items()}
    for _, action in pipeline.iter_actions():
        for artifact_name in action.input_names():
            artifacts.setdefault(artifact_name, []).append(action.name)

    if stages_count == 0 and actions_count == 0:
        description = "Пайплайн пустой. Отредактируйте конфигурацию."
    else:
        description = (
            f"Пайплайн {pipeline.name} из {stages_count} стадий и {actions_count} действий: "
            f"стадии {', '.join(stages)}."
        )

    return PipelineSummary(
        pipeline_name=pipeline.name,
        stages_count=stages_count,
        actions_count=actions_count,
        stages=stages,
        action_names=action_names,
        artifacts=artifacts,
        description=description,
    )
