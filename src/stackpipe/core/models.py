from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from typing import Dict, FrozenSet, List, Literal, Optional, Tuple


PHASE_ORDER: Tuple[str, ...] = ("install", "pre_build", "build")

PhaseName = Literal["install", "pre_build", "build"]
EnvironmentVariableType = Literal["PLAINTEXT", "SECRETS_MANAGER"]
# webhook — запуск по push, poll — опрос репозитория, none — только вручную
SourceTrigger = Literal["webhook", "poll", "none"]


class EnvironmentVariable(BaseModel):
    """
    Переменная окружения сборки.
    PLAINTEXT       — value подставляется как есть;
    SECRETS_MANAGER — value это ссылка на секрет (name или name:json-key).
    """

    model_config = ConfigDict(frozen=True)

    value: str
    type: EnvironmentVariableType = "PLAINTEXT"


class BuildEnvironment(BaseModel):
    """
    Описание изолированного окружения сборки.
    privileged нужен для docker build / docker push внутри сборки,
    здесь флаг только фиксируется.
    """

    model_config = ConfigDict(frozen=True)

    image: str = "aws/codebuild/standard:7.0"
    privileged: bool = False
    compute_type: str = "BUILD_GENERAL1_SMALL"
    environment_variables: Dict[str, EnvironmentVariable] = Field(default_factory=dict)


class BuildPhase(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: PhaseName
    # команды не интерпретируются, это payload для исполнителя
    commands: Tuple[str, ...] = ()


class ArtifactExportRule(BaseModel):
    model_config = ConfigDict(frozen=True)

    base_directory: str
    files: Tuple[str, ...] = Field(min_length=1)


class BuildDefinition(BaseModel):
    """
    Декларативное описание одной эфемерной сборки.

    Модель неизменяемая: одно и то же описание можно переиспользовать
    в нескольких Build-действиях, каждое исполнение независимо.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    role_name: str = ""
    version: str = "0.2"
    environment: BuildEnvironment = Field(default_factory=BuildEnvironment)
    phases: Tuple[BuildPhase, ...] = ()
    artifacts: ArtifactExportRule
    # сборка ходит в container registry (login / pull / push)
    registry_access: bool = False
    registry_resources: Tuple[str, ...] = ("*",)

    @model_validator(mode="before")
    @classmethod
    def _default_role_name(cls, data):
        if isinstance(data, dict) and not data.get("role_name") and data.get("name"):
            data = {**data, "role_name": f"{data['name']}Role"}
        return data

    @model_validator(mode="after")
    def _check_phases(self) -> "BuildDefinition":
        names = [phase.name for phase in self.phases]
        if len(set(names)) != len(names):
            raise ValueError(f"Build phases must be unique, got {names}")
        expected = [name for name in PHASE_ORDER if name in names]
        if names != expected:
            raise ValueError(
                f"Build phases must follow {list(PHASE_ORDER)}, got {names}"
            )
        return self

    def phase(self, name: str) -> Optional[BuildPhase]:
        for phase in self.phases:
            if phase.name == name:
                return phase
        return None


class PolicyGrant(BaseModel):
    """
    Разрешающее правило: набор действий над набором ресурсов.

    actions и resources нормализуются (уникальные, отсортированные),
    поэтому одинаковые по смыслу гранты равны друг другу.
    """

    model_config = ConfigDict(frozen=True)

    effect: Literal["Allow"] = "Allow"
    actions: Tuple[str, ...] = Field(min_length=1)
    resources: Tuple[str, ...] = Field(min_length=1)

    @field_validator("actions", "resources")
    @classmethod
    def _normalize(cls, value: Tuple[str, ...]) -> Tuple[str, ...]:
        return tuple(sorted(set(value)))

    def permissions(self) -> FrozenSet[Tuple[str, str]]:
        return frozenset(
            (action, resource)
            for action in self.actions
            for resource in self.resources
        )


class Identity(BaseModel):
    """
    Исполняющая identity (роль пайплайна или роль сборки) и её гранты.
    """

    name: str
    # сервис, которому разрешено принимать эту роль
    principal: str = "codepipeline.amazonaws.com"
    grants: List[PolicyGrant] = Field(default_factory=list)

    def attach(self, grant: PolicyGrant) -> bool:
        """
        Добавляет грант. Повторное добавление того же гранта ничего не меняет.
        Возвращает True, если грант действительно добавлен.
        """
        if grant in self.grants:
            return False
        self.grants.append(grant)
        return True

    def effective_permissions(self) -> FrozenSet[Tuple[str, str]]:
        result: set = set()
        for grant in self.grants:
            result |= grant.permissions()
        return frozenset(result)


class PipelineSummary(BaseModel):
    pipeline_name: str
    stages_count: int
    actions_count: int
    stages: List[str]
    action_names: List[str]
    # artifact -> [producer, consumer, ...]
    artifacts: Dict[str, List[str]] = Field(default_factory=dict)
    # Короткое текстовое описание для CLI
    description: str
