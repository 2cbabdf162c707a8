"""Tests for stage ordering and artifact wiring of the pipeline graph."""

import pytest

from stackpipe.core.exceptions import (
    DefinitionError,
    DuplicateActionError,
    DuplicateArtifactError,
    DuplicateStageError,
    UnresolvedArtifactError,
)
from stackpipe.core.services.policies import secret_arn, secret_read_grant
from stackpipe.core.services.validation import validate_pipeline
from stackpipe.model import Artifact, BuildAction, DeployAction, Pipeline, Stage
from tests.conftest import make_source


def test_acme_svc_scenario(definition) -> None:
    """Source -> Build -> Deploy with src/out wiring and template.json."""
    pipeline = Pipeline(name="SvcPipeline")
    src = Artifact(name="src")
    out = Artifact(name="out")

    pipeline.add_stage("Source").add_action(make_source(output="src"))
    build = pipeline.add_stage("Build").add_action(
        BuildAction(name="Build", project=definition, input=src, outputs=[out])
    )
    deploy = pipeline.add_stage("Deploy").add_action(
        DeployAction(
            name="Deploy",
            stack_name="SvcStack",
            template_path=out.at_path("template.json"),
        )
    )
    pipeline.attach_policy(pipeline.role, secret_read_grant(secret_arn("X")))

    logs, warnings = validate_pipeline(pipeline)

    assert pipeline.stage_names == ["Source", "Build", "Deploy"]
    assert warnings == []
    assert logs[-1] == "Пайплайн SvcPipeline прошёл проверку."
    assert pipeline.resolve_input(deploy.template_path.artifact.name) is build
    assert deploy.template_path.artifact in build.outputs
    assert deploy.template_path.location == "out::template.json"


def test_deploy_before_build_fails_naming_artifact() -> None:
    pipeline = Pipeline(name="SvcPipeline")
    pipeline.add_stage("Source").add_action(make_source(output="src"))
    deploy_stage = pipeline.add_stage("Deploy")

    with pytest.raises(UnresolvedArtifactError) as exc_info:
        deploy_stage.add_action(
            DeployAction(
                name="Deploy",
                stack_name="SvcStack",
                template_path=Artifact(name="out").at_path("template.json"),
            )
        )

    assert exc_info.value.artifact_name == "out"
    assert exc_info.value.stage_name == "Deploy"
    assert "'out'" in str(exc_info.value)
    # no partial graph
    assert deploy_stage.actions == []
    assert pipeline.find_action("Deploy") is None


def test_input_from_same_stage_is_not_resolved(definition) -> None:
    pipeline = Pipeline(name="SvcPipeline")
    stage = pipeline.add_stage("Source")
    stage.add_action(make_source(output="src"))

    with pytest.raises(UnresolvedArtifactError):
        stage.add_action(
            BuildAction(
                name="Build",
                project=definition,
                input=Artifact(name="src"),
                outputs=[Artifact(name="out")],
            )
        )
    assert [a.name for a in stage.actions] == ["Source"]
    # the build identity is registered only for accepted actions
    assert definition.role_name not in pipeline.identities


def test_duplicate_stage_name() -> None:
    pipeline = Pipeline(name="SvcPipeline")
    pipeline.add_stage("Source")

    with pytest.raises(DuplicateStageError) as exc_info:
        pipeline.add_stage("Source")

    assert exc_info.value.stage_name == "Source"
    assert pipeline.stage_names == ["Source"]


def test_duplicate_action_name() -> None:
    pipeline = Pipeline(name="SvcPipeline")
    pipeline.add_stage("Source").add_action(make_source(output="src"))

    with pytest.raises(DuplicateActionError):
        pipeline.add_stage("Other").add_action(make_source(output="src2"))


def test_artifact_has_single_producer() -> None:
    pipeline = Pipeline(name="SvcPipeline")
    stage = pipeline.add_stage("Source")
    stage.add_action(make_source(output="src", name="First"))

    with pytest.raises(DuplicateArtifactError) as exc_info:
        stage.add_action(make_source(output="src", name="Second"))

    assert exc_info.value.producer == "First"


def test_build_action_registers_its_identity(definition) -> None:
    pipeline = Pipeline(name="SvcPipeline")
    pipeline.add_stage("Source").add_action(make_source(output="src"))
    pipeline.add_stage("Build").add_action(
        BuildAction(
            name="Build",
            project=definition,
            input=Artifact(name="src"),
            outputs=[Artifact(name="out")],
        )
    )

    identity = pipeline.identities["SvcBuildRole"]
    assert identity.principal == "codebuild.amazonaws.com"
    assert pipeline.role_name == "SvcPipelineRole"


def test_reused_build_definition_produces_independent_outputs(definition) -> None:
    pipeline = Pipeline(name="SvcPipeline")
    pipeline.add_stage("Source").add_action(make_source(output="src"))
    stage = pipeline.add_stage("Build")
    first = stage.add_action(
        BuildAction(name="BuildA", project=definition, input=Artifact(name="src"),
                    outputs=[Artifact(name="outA")])
    )
    second = stage.add_action(
        BuildAction(name="BuildB", project=definition, input=Artifact(name="src"),
                    outputs=[Artifact(name="outB")])
    )

    assert first.project is second.project
    assert pipeline.resolve_input("outA") is first
    assert pipeline.resolve_input("outB") is second


def test_build_identity_cannot_reuse_pipeline_role(definition) -> None:
    pipeline = Pipeline(name="SvcBuild")
    pipeline.add_stage("Source").add_action(make_source(output="src"))
    stage = pipeline.add_stage("Build")

    with pytest.raises(DefinitionError, match="SvcBuildRole"):
        stage.add_action(
            BuildAction(name="Build", project=definition, input=Artifact(name="src"),
                        outputs=[Artifact(name="out")])
        )

    assert stage.actions == []
    assert list(pipeline.identities) == ["SvcBuildRole"]
    assert pipeline.role.principal == "codepipeline.amazonaws.com"


def test_stage_outside_pipeline_rejects_actions() -> None:
    with pytest.raises(DefinitionError):
        Stage(name="Loose").add_action(make_source())


def test_attach_policy_to_unknown_identity_name() -> None:
    pipeline = Pipeline(name="SvcPipeline")

    with pytest.raises(DefinitionError):
        pipeline.attach_policy("NobodyRole", secret_read_grant("*"))


def test_construction_is_deterministic(definition) -> None:
    def build() -> Pipeline:
        pipeline = Pipeline(name="SvcPipeline")
        pipeline.add_stage("Source").add_action(make_source(output="src"))
        pipeline.add_stage("Build").add_action(
            BuildAction(name="Build", project=definition, input=Artifact(name="src"),
                        outputs=[Artifact(name="out")])
        )
        pipeline.attach_policy(pipeline.role, secret_read_grant(secret_arn("X")))
        return pipeline

    assert build().model_dump() == build().model_dump()
