"""Tests for the stackpipe command line."""

import json
import os

import pytest
import yaml
from click.testing import CliRunner

from stackpipe.cli import main

BASE_ARGS = ["--owner", "acme", "--repo", "svc", "--registry", "1.dkr.ecr.eu-west-1.amazonaws.com/images"]


@pytest.fixture
def runner(monkeypatch) -> CliRunner:
    for name in list(os.environ):
        if name.startswith("STACKPIPE_"):
            monkeypatch.delenv(name)
    return CliRunner()


def test_validate(runner) -> None:
    result = runner.invoke(main, ["validate", *BASE_ARGS])

    assert result.exit_code == 0, result.output
    assert "OK: Пайплайн ApiDeploymentPipeline из 3 стадий и 3 действий" in result.output


def test_validate_reports_missing_settings(runner) -> None:
    result = runner.invoke(main, ["validate", "--owner", "acme"])

    assert result.exit_code == 1
    assert "Invalid pipeline settings" in result.output
    assert "repository_name" in result.output


def test_synth_writes_files(runner, tmp_path) -> None:
    result = runner.invoke(main, ["synth", *BASE_ARGS, "--stack-name", "SvcStack", "-o", str(tmp_path)])

    assert result.exit_code == 0, result.output
    template = json.loads((tmp_path / "ApiDeploymentPipeline.template.json").read_text())
    document = yaml.safe_load((tmp_path / "buildspec.yml").read_text())

    stages = template["Resources"]["ApiDeploymentPipeline"]["Properties"]["Stages"]
    assert stages[2]["Actions"][0]["Configuration"]["StackName"] == "SvcStack"
    assert document["version"] == "0.2"


def test_synth_with_config_file(runner, tmp_path) -> None:
    config = tmp_path / "pipeline.yml"
    config.write_text(yaml.safe_dump({
        "repository_owner": "acme",
        "repository_name": "svc",
        "pipeline_name": "SvcPipeline",
    }))
    out_dir = tmp_path / "out"

    result = runner.invoke(main, ["synth", "-c", str(config), "-o", str(out_dir)])

    assert result.exit_code == 0, result.output
    assert (out_dir / "SvcPipeline.template.json").exists()


def test_buildspec(runner) -> None:
    result = runner.invoke(main, ["buildspec", *BASE_ARGS])

    assert result.exit_code == 0, result.output
    assert "docker push 1.dkr.ecr.eu-west-1.amazonaws.com/images:latest" in result.output


def test_summary_from_repository(runner, git_repo) -> None:
    result = runner.invoke(main, ["summary", "--repo-path", git_repo.working_tree_dir, "-v"])

    assert result.exit_code == 0, result.output
    assert "GitHubSourceOutput: GitHubSource -> CodeBuild" in result.output
    assert "BuildOutput: CodeBuild -> CFN_Deploy" in result.output
    assert "Репозиторий acme/svc, ветка main" in result.output


def test_repository_path_error(runner, tmp_path) -> None:
    result = runner.invoke(main, ["validate", "--repo-path", str(tmp_path / "missing")])

    assert result.exit_code == 1
    assert "Error to use local repository path" in result.output
