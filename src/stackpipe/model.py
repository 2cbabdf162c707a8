from pydantic import BaseModel, ConfigDict, Field, PrivateAttr
from typing import Annotated, Any, Dict, Iterator, List, Literal, Optional, Tuple, Union

from stackpipe.core.exceptions import (
    DefinitionError,
    DuplicateActionError,
    DuplicateArtifactError,
    DuplicateStageError,
    UnresolvedArtifactError,
)
from stackpipe.core.models import BuildDefinition, Identity, PolicyGrant, SourceTrigger


class Artifact(BaseModel):
    """
    Непрозрачный именованный набор файлов между действиями.
    Идентичность артефакта — его имя.
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)

    def at_path(self, file_name: str) -> "ArtifactPath":
        return ArtifactPath(artifact=self, file_name=file_name)


class ArtifactPath(BaseModel):
    model_config = ConfigDict(frozen=True)

    artifact: Artifact
    file_name: str = Field(min_length=1)

    @property
    def location(self) -> str:
        # формат, который понимает CloudFormation-действие
        return f"{self.artifact.name}::{self.file_name}"


class SecretReference(BaseModel):
    """
    Ссылка на секрет в secrets store. Значение секрета никогда не хранится.
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    arn: Optional[str] = None
    json_key: Optional[str] = None


class BaseAction(BaseModel):
    """
    Абстрактное действие стадии.
    identity — имя роли, от которой выполняется действие;
    None означает роль пайплайна.
    """

    name: str = Field(min_length=1)
    run_order: int = Field(default=1, ge=1)
    identity: Optional[str] = None

    def input_names(self) -> List[str]:
        return []

    def output_names(self) -> List[str]:
        return []


class SourceAction(BaseAction):
    kind: Literal["source"] = "source"

    owner: str = Field(min_length=1)
    repo: str = Field(min_length=1)
    branch: str = Field(min_length=1)
    oauth_token: SecretReference
    output: Artifact
    trigger: SourceTrigger = "webhook"

    def output_names(self) -> List[str]:
        return [self.output.name]


class BuildAction(BaseAction):
    kind: Literal["build"] = "build"

    project: BuildDefinition
    input: Artifact
    outputs: List[Artifact] = Field(min_length=1)

    def input_names(self) -> List[str]:
        return [self.input.name]

    def output_names(self) -> List[str]:
        return [artifact.name for artifact in self.outputs]


class DeployAction(BaseAction):
    kind: Literal["deploy"] = "deploy"

    stack_name: str = Field(min_length=1)
    template_path: ArtifactPath
    admin_permissions: bool = False
    parameter_overrides: Dict[str, str] = Field(default_factory=dict)

    def input_names(self) -> List[str]:
        return [self.template_path.artifact.name]


Action = Annotated[
    Union[SourceAction, BuildAction, DeployAction],
    Field(discriminator="kind"),
]


class Stage(BaseModel):
    """
    Стадия пайплайна: упорядоченная группа действий.
    Создаётся только через Pipeline.add_stage().
    """

    name: str
    actions: List[Action] = Field(default_factory=list)

    _pipeline: Optional["Pipeline"] = PrivateAttr(default=None)

    def add_action(self, action: Action) -> Action:
        """
        Регистрирует действие в стадии.

        Все входные артефакты должны быть произведены действиями
        строго более ранних стадий, иначе UnresolvedArtifactError,
        и действие не добавляется.
        """
        pipeline = self._pipeline
        if pipeline is None:
            raise DefinitionError(
                description=f"Stage {self.name!r} is not attached to a pipeline"
            )

        if pipeline.find_action(action.name) is not None:
            raise DuplicateActionError(action.name)

        available = pipeline.artifacts_before(self)
        for artifact_name in action.input_names():
            if artifact_name not in available:
                raise UnresolvedArtifactError(
                    artifact_name=artifact_name,
                    action_name=action.name,
                    stage_name=self.name,
                )

        produced = pipeline.produced_artifacts()
        for artifact_name in action.output_names():
            if artifact_name in produced:
                raise DuplicateArtifactError(artifact_name, produced[artifact_name])
            produced[artifact_name] = action.name

        if isinstance(action, BuildAction):
            pipeline.register_identity(
                Identity(
                    name=action.project.role_name,
                    principal="codebuild.amazonaws.com",
                )
            )

        self.actions.append(action)
        return action


class Pipeline(BaseModel):
    """
    Пайплайн: упорядоченные стадии + исполняющие identity.

    role_name — роль пайплайна, от неё выполняются действия,
    у которых нет собственной identity.
    """

    name: str = Field(min_length=1)
    role_name: str = ""
    stages: List[Stage] = Field(default_factory=list)
    identities: Dict[str, Identity] = Field(default_factory=dict)
    restart_on_update: bool = True
    cross_account_keys: bool = False

    def model_post_init(self, __context: Any) -> None:
        if not self.role_name:
            self.role_name = f"{self.name}Role"
        self.identities.setdefault(self.role_name, Identity(name=self.role_name))
        for stage in self.stages:
            stage._pipeline = self

    @property
    def role(self) -> Identity:
        return self.identities[self.role_name]

    @property
    def stage_names(self) -> List[str]:
        return [stage.name for stage in self.stages]

    def add_stage(self, name: str) -> Stage:
        if name in self.stage_names:
            raise DuplicateStageError(name)
        stage = Stage(name=name)
        stage._pipeline = self
        self.stages.append(stage)
        return stage

    def get_stage(self, name: str) -> Optional[Stage]:
        for stage in self.stages:
            if stage.name == name:
                return stage
        return None

    def iter_actions(self) -> Iterator[Tuple[Stage, Action]]:
        for stage in self.stages:
            for action in stage.actions:
                yield stage, action

    def find_action(self, name: str) -> Optional[Action]:
        for _, action in self.iter_actions():
            if action.name == name:
                return action
        return None

    def artifacts_before(self, stage: Stage) -> Dict[str, str]:
        """
        Артефакты, произведённые стадиями строго до stage: имя -> действие.
        """
        result: Dict[str, str] = {}
        for current in self.stages:
            if current is stage:
                break
            for action in current.actions:
                for artifact_name in action.output_names():
                    result[artifact_name] = action.name
        return result

    def produced_artifacts(self) -> Dict[str, str]:
        result: Dict[str, str] = {}
        for _, action in self.iter_actions():
            for artifact_name in action.output_names():
                result[artifact_name] = action.name
        return result

    def resolve_input(self, artifact_name: str) -> Optional[Action]:
        """
        Действие, которое производит артефакт artifact_name.
        """
        for _, action in self.iter_actions():
            if artifact_name in action.output_names():
                return action
        return None

    def executing_identity(self, action: Action) -> Identity:
        name = action.identity or self.role_name
        if name not in self.identities:
            raise DefinitionError(
                description=f"Action {action.name!r} runs as unknown identity {name!r}"
            )
        return self.identities[name]

    def register_identity(self, identity: Identity) -> Identity:
        """
        Регистрирует identity. Одно имя может использоваться повторно
        только с тем же principal: иначе две роли слились бы в одну.
        """
        existing = self.identities.get(identity.name)
        if existing is None:
            self.identities[identity.name] = identity
            return identity
        if existing.principal != identity.principal:
            raise DefinitionError(
                description=(
                    f"Identity {identity.name!r} is already used by "
                    f"{existing.principal}, cannot reuse it for {identity.principal}"
                )
            )
        return existing

    def attach_policy(self, identity: Union[Identity, str], grant: PolicyGrant) -> Identity:
        """
        Прикрепляет грант к identity (объекту или имени роли).
        Повторное прикрепление того же гранта ничего не меняет.
        """
        if isinstance(identity, str):
            if identity not in self.identities:
                raise DefinitionError(
                    description=f"Identity {identity!r} is not known to pipeline {self.name!r}"
                )
            identity = self.identities[identity]
        else:
            identity = self.register_identity(identity)
        identity.attach(grant)
        return identity
