"""Shared pytest fixtures for pipeline graph tests."""

from typing import Optional

import pytest
from git import Repo

from stackpipe.core.config import PipelineSettings
from stackpipe.core.models import ArtifactExportRule, BuildDefinition, BuildPhase
from stackpipe.model import Artifact, SecretReference, SourceAction

REGISTRY = "123456789012.dkr.ecr.eu-west-1.amazonaws.com/api-pipeline-images"


@pytest.fixture
def settings() -> PipelineSettings:
    return PipelineSettings(
        repository_owner="acme",
        repository_name="svc",
        region="eu-west-1",
        account="123456789012",
        registry_uri=REGISTRY,
    )


@pytest.fixture
def definition() -> BuildDefinition:
    """A minimal build definition without registry access."""
    return BuildDefinition(
        name="SvcBuild",
        phases=(
            BuildPhase(name="install", commands=("npm install",)),
            BuildPhase(name="build", commands=("npm run build", "npx cdk synth")),
        ),
        artifacts=ArtifactExportRule(base_directory="cdk.out", files=("template.json",)),
    )


def make_source(
    secret: str = "X",
    output: str = "src",
    name: str = "Source",
    arn: Optional[str] = None,
) -> SourceAction:
    return SourceAction(
        name=name,
        owner="acme",
        repo="svc",
        branch="main",
        oauth_token=SecretReference(name=secret, arn=arn),
        output=Artifact(name=output),
    )


@pytest.fixture
def git_repo(tmp_path):
    """A local repository on branch 'main' with one commit and an origin remote."""
    repo = Repo.init(tmp_path / "svc", initial_branch="main")
    repo.index.commit("initial")
    repo.create_remote("origin", "git@github.com:acme/svc.git")
    yield repo
    repo.close()
