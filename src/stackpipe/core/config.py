from pathlib import Path
import json
import os
from typing import Any, Dict, List, Literal, Mapping, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .exceptions import ConfigurationError
from .models import EnvironmentVariable, SourceTrigger
from .services.policies import secret_arn

"""
Настройки пайплайна.

Источники по возрастанию приоритета:
  - значения по умолчанию PipelineSettings;
  - файл настроек (.json / .yml / .yaml);
  - переменные окружения STACKPIPE_<ПОЛЕ> (STACKPIPE_STACK_NAME и т.п.);
  - явные overrides (опции CLI).
"""

ENV_PREFIX = "STACKPIPE_"

# поля-словари и списки в окружении задаются JSON-строкой
_JSON_FIELDS = {
    "environment_variables",
    "parameter_overrides",
    "registry_resources",
}


class PipelineSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    # --- пайплайн ---
    pipeline_name: str = "ApiDeploymentPipeline"
    restart_on_update: bool = True
    cross_account_keys: bool = False
    region: Optional[str] = None
    account: Optional[str] = None

    # --- source ---
    repository_owner: str = Field(min_length=1)
    repository_name: str = Field(min_length=1)
    branch: str = "main"
    source_secret_name: str = "GitHubAccessToken"
    source_secret_arn: Optional[str] = None
    source_artifact: str = "GitHubSourceOutput"
    source_trigger: SourceTrigger = "webhook"

    # --- build ---
    build_project_name: str = "ApiBuildProject"
    build_image: str = "aws/codebuild/standard:7.0"
    privileged: bool = True
    environment_variables: Dict[str, EnvironmentVariable] = Field(default_factory=dict)
    registry_uri: Optional[str] = None
    # inline — адрес registry прямо в командах;
    # environment — через переменную окружения сборки REGISTRY_URI
    registry_mode: Literal["inline", "environment"] = "inline"
    registry_resources: List[str] = Field(default_factory=lambda: ["*"])
    image_tag: str = "latest"
    docker_context: str = "./src"
    base_directory: str = "cdk.out"
    template_file: str = "DeploymentApiStack.template.json"
    build_artifact: str = "BuildOutput"

    # --- deploy ---
    stack_name: str = "ApiStack"
    admin_permissions: bool = True
    parameter_overrides: Dict[str, str] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check(self) -> "PipelineSettings":
        if self.source_artifact == self.build_artifact:
            raise ValueError("source_artifact and build_artifact must differ")
        if self.pipeline_name == self.build_project_name:
            raise ValueError("pipeline_name and build_project_name must differ")
        if self.registry_mode == "environment" and not self.registry_uri:
            raise ValueError("registry_mode 'environment' requires registry_uri")
        return self

    @property
    def secret_resource(self) -> str:
        if self.source_secret_arn:
            return self.source_secret_arn
        return secret_arn(self.source_secret_name, self.region, self.account)


def _read_file(path: Union[str, Path]) -> Dict[str, Any]:
    settings_path = Path(path)
    try:
        text = settings_path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError([f"cannot read {settings_path}: {e}"])

    try:
        if settings_path.suffix.lower() in (".yml", ".yaml"):
            data = yaml.safe_load(text) or {}
        else:
            data = json.loads(text or "{}")
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ConfigurationError([f"cannot parse {settings_path}: {e}"])

    if not isinstance(data, dict):
        raise ConfigurationError([f"{settings_path} must contain a mapping"])
    return data


def _read_env(environ: Mapping[str, str]) -> Dict[str, Any]:
    data: Dict[str, Any] = {}
    for field in PipelineSettings.model_fields:
        raw = environ.get(ENV_PREFIX + field.upper())
        if raw is None:
            continue
        if field in _JSON_FIELDS:
            try:
                data[field] = json.loads(raw)
            except json.JSONDecodeError as e:
                raise ConfigurationError(
                    [f"{ENV_PREFIX + field.upper()} must be JSON: {e}"]
                )
        else:
            data[field] = raw
    return data


def load_settings(
    path: Optional[Union[str, Path]] = None,
    overrides: Optional[Mapping[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> PipelineSettings:
    """
    Собирает PipelineSettings из файла, окружения и overrides.

    :raises ConfigurationError: если настройки неполные или некорректные.
    """
    data: Dict[str, Any] = {}
    if path is not None:
        data.update(_read_file(path))
    data.update(_read_env(os.environ if environ is None else environ))
    if overrides:
        data.update({k: v for k, v in overrides.items() if v is not None})

    try:
        return PipelineSettings(**data)
    except ValidationError as e:
        problems = [
            f"{'.'.join(str(p) for p in err['loc']) or 'settings'}: {err['msg']}"
            for err in e.errors()
        ]
        raise ConfigurationError(problems)
