"""Tests for definition-time validation of built pipelines."""

import pytest

from stackpipe.core.exceptions import (
    DefinitionError,
    MissingGrantError,
    StageOrderError,
    UnresolvedArtifactError,
)
from stackpipe.core.models import ArtifactExportRule, BuildDefinition, BuildEnvironment
from stackpipe.core.services.policies import registry_grant, secret_arn, secret_read_grant
from stackpipe.core.services.validation import CANONICAL_STAGES, validate_pipeline
from stackpipe.model import Artifact, BuildAction, DeployAction, Pipeline, Stage
from tests.conftest import make_source


def _registry_definition(privileged: bool = True) -> BuildDefinition:
    return BuildDefinition(
        name="ImageBuild",
        environment=BuildEnvironment(privileged=privileged),
        artifacts=ArtifactExportRule(base_directory="cdk.out", files=("template.json",)),
        registry_access=True,
    )


def _pipeline(project: BuildDefinition, admin: bool = False) -> Pipeline:
    pipeline = Pipeline(name="SvcPipeline")
    pipeline.add_stage("Source").add_action(make_source(output="src"))
    pipeline.add_stage("Build").add_action(
        BuildAction(name="Build", project=project, input=Artifact(name="src"),
                    outputs=[Artifact(name="out")])
    )
    pipeline.add_stage("Deploy").add_action(
        DeployAction(
            name="Deploy",
            stack_name="SvcStack",
            template_path=Artifact(name="out").at_path("template.json"),
            admin_permissions=admin,
        )
    )
    pipeline.attach_policy(pipeline.role, secret_read_grant(secret_arn("X")))
    return pipeline


def test_canonical_stage_order() -> None:
    assert CANONICAL_STAGES == ("Source", "Build", "Deploy")


def test_reordered_stages_are_rejected(definition) -> None:
    pipeline = Pipeline(name="SvcPipeline")
    pipeline.add_stage("Source").add_action(make_source(output="src"))
    pipeline.add_stage("Deploy").add_action(
        DeployAction(name="Deploy", stack_name="SvcStack",
                     template_path=Artifact(name="src").at_path("template.json"))
    )
    pipeline.add_stage("Build").add_action(
        BuildAction(name="Build", project=definition, input=Artifact(name="src"),
                    outputs=[Artifact(name="out")])
    )
    pipeline.attach_policy(pipeline.role, secret_read_grant(secret_arn("X")))

    with pytest.raises(StageOrderError) as exc_info:
        validate_pipeline(pipeline)

    assert exc_info.value.actual == ["Source", "Deploy", "Build"]
    assert exc_info.value.logs


def test_skipped_stage_is_rejected() -> None:
    pipeline = Pipeline(name="SvcPipeline")
    pipeline.add_stage("Source").add_action(make_source(output="src"))

    with pytest.raises(StageOrderError):
        validate_pipeline(pipeline)


def test_empty_stage_is_rejected(definition) -> None:
    pipeline = _pipeline(definition)
    pipeline.get_stage("Deploy").actions.clear()

    with pytest.raises(DefinitionError, match="has no actions"):
        validate_pipeline(pipeline)


def test_graph_assembled_directly_is_rechecked() -> None:
    deploy = DeployAction(name="Deploy", stack_name="SvcStack",
                          template_path=Artifact(name="out").at_path("template.json"))
    pipeline = Pipeline(
        name="SvcPipeline",
        stages=[
            Stage(name="Source", actions=[make_source(output="src")]),
            Stage(name="Build", actions=[]),
            Stage(name="Deploy", actions=[deploy]),
        ],
    )
    pipeline.get_stage("Build").actions.append(make_source(output="other", name="Other"))

    with pytest.raises(UnresolvedArtifactError) as exc_info:
        validate_pipeline(pipeline)

    assert exc_info.value.artifact_name == "out"


def test_missing_source_grant() -> None:
    pipeline = Pipeline(name="SvcPipeline")
    pipeline.add_stage("Source").add_action(make_source(output="src"))

    with pytest.raises(MissingGrantError) as exc_info:
        validate_pipeline(pipeline, expected_stages=["Source"])

    assert exc_info.value.resource == "X"


def test_missing_registry_grant() -> None:
    pipeline = _pipeline(_registry_definition())

    with pytest.raises(MissingGrantError) as exc_info:
        validate_pipeline(pipeline)

    assert exc_info.value.identity == "ImageBuildRole"
    assert "ecr:PutImage" in exc_info.value.actions


def test_registry_grant_on_pipeline_role_is_not_enough() -> None:
    pipeline = _pipeline(_registry_definition())
    pipeline.attach_policy(pipeline.role, registry_grant())

    with pytest.raises(MissingGrantError):
        validate_pipeline(pipeline)


def test_registry_grant_on_build_role() -> None:
    pipeline = _pipeline(_registry_definition())
    pipeline.attach_policy("ImageBuildRole", registry_grant())

    _, warnings = validate_pipeline(pipeline)

    assert any("('*')" in w for w in warnings)


def test_warnings() -> None:
    pipeline = _pipeline(_registry_definition(privileged=False), admin=True)
    pipeline.attach_policy("ImageBuildRole", registry_grant())

    _, warnings = validate_pipeline(pipeline)

    assert any("admin_permissions" in w for w in warnings)
    assert any("privileged" in w for w in warnings)


def test_validation_has_no_side_effects(definition) -> None:
    pipeline = _pipeline(definition)
    before = pipeline.model_dump()

    validate_pipeline(pipeline)
    validate_pipeline(pipeline)

    assert pipeline.model_dump() == before
