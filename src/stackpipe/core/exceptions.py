from typing import Iterable, List, Optional

from stackpipe.exception import StackPipeException


# =========================
# Ошибки времени определения
# =========================

class DefinitionError(StackPipeException):
    """
    Ошибка при построении графа пайплайна.

    Такие ошибки фатальны: пайплайн не строится вовсе,
    частично связанный граф наружу не отдаётся.
    """

    def __init__(
        self,
        *args,
        description: str = "Pipeline definition is invalid",
        logs: Optional[List[str]] = None,
    ) -> None:
        super().__init__(*args, description=description, logs=logs)


class ConfigurationError(DefinitionError):
    """
    Некорректные или неполные настройки пайплайна.
    """

    def __init__(
        self,
        problems: Iterable[str],
        logs: Optional[List[str]] = None,
        *args,
    ) -> None:
        self.problems = list(problems)
        description = "Invalid pipeline settings: " + "; ".join(self.problems)
        super().__init__(*args, description=description, logs=logs)


class DuplicateStageError(DefinitionError):
    """
    Стадия с таким именем уже есть в пайплайне.
    """

    def __init__(
        self,
        stage_name: str,
        logs: Optional[List[str]] = None,
        *args,
    ) -> None:
        description = f"Stage {stage_name!r} is already defined in this pipeline"
        super().__init__(*args, description=description, logs=logs)
        self.stage_name = stage_name


class DuplicateActionError(DefinitionError):
    """
    Действие с таким именем уже зарегистрировано в пайплайне.
    """

    def __init__(
        self,
        action_name: str,
        logs: Optional[List[str]] = None,
        *args,
    ) -> None:
        description = f"Action {action_name!r} is already defined in this pipeline"
        super().__init__(*args, description=description, logs=logs)
        self.action_name = action_name


class DuplicateArtifactError(DefinitionError):
    """
    Артефакт уже объявлен выходом другого действия.
    """

    def __init__(
        self,
        artifact_name: str,
        producer: str,
        logs: Optional[List[str]] = None,
        *args,
    ) -> None:
        description = (
            f"Artifact {artifact_name!r} is already produced by action {producer!r}"
        )
        super().__init__(*args, description=description, logs=logs)
        self.artifact_name = artifact_name
        self.producer = producer


class UnresolvedArtifactError(DefinitionError):
    """
    Действие читает артефакт, который не произвело ни одно
    действие из более ранних стадий.
    """

    def __init__(
        self,
        artifact_name: str,
        action_name: str,
        stage_name: str,
        logs: Optional[List[str]] = None,
        *args,
    ) -> None:
        description = (
            f"Artifact {artifact_name!r} consumed by action {action_name!r} "
            f"in stage {stage_name!r} is not produced by any earlier stage"
        )
        super().__init__(*args, description=description, logs=logs)
        self.artifact_name = artifact_name
        self.action_name = action_name
        self.stage_name = stage_name


class MissingGrantError(DefinitionError):
    """
    У исполняющей identity нет разрешения на требуемое действие.
    """

    def __init__(
        self,
        identity: str,
        actions: Iterable[str],
        resource: str,
        logs: Optional[List[str]] = None,
        *args,
    ) -> None:
        self.identity = identity
        self.actions = sorted(set(actions))
        self.resource = resource
        description = (
            f"Identity {identity!r} is missing {', '.join(self.actions)} "
            f"on {resource!r}"
        )
        super().__init__(*args, description=description, logs=logs)


class StageOrderError(DefinitionError):
    """
    Набор стадий не совпадает с формой Source -> Build -> Deploy.
    """

    def __init__(
        self,
        expected: Iterable[str],
        actual: Iterable[str],
        logs: Optional[List[str]] = None,
        *args,
    ) -> None:
        self.expected = list(expected)
        self.actual = list(actual)
        description = (
            f"Pipeline stages must be exactly {self.expected}, got {self.actual}"
        )
        super().__init__(*args, description=description, logs=logs)


# =========================
# Ошибки времени исполнения
# =========================
# Их поднимает внешний движок; здесь только их форма.

class ExecutionError(StackPipeException):
    """
    Ошибка, о которой сообщил внешний исполнитель пайплайна.
    """

    def __init__(
        self,
        *args,
        description: str = "Pipeline execution failed",
        logs: Optional[List[str]] = None,
    ) -> None:
        super().__init__(*args, description=description, logs=logs)


class SourceFetchError(ExecutionError):
    """
    Не удалось забрать исходники (неверный токен, нет ветки).
    """

    def __init__(
        self,
        repository: str,
        branch: str,
        reason: str = "",
        logs: Optional[List[str]] = None,
        *args,
    ) -> None:
        description = f"Error to fetch {repository} in branch {branch}"
        if reason:
            description += f": {reason}"
        super().__init__(*args, description=description, logs=logs)
        self.repository = repository
        self.branch = branch
        self.reason = reason


class PhaseFailure(ExecutionError):
    """
    Фаза сборки завершилась с ненулевым кодом.
    """

    def __init__(
        self,
        phase: str,
        exit_code: int,
        logs: Optional[List[str]] = None,
        *args,
    ) -> None:
        description = f"Build phase {phase!r} failed with exit code {exit_code}"
        super().__init__(*args, description=description, logs=logs)
        self.phase = phase
        self.exit_code = exit_code


class ArtifactExportMismatch(ExecutionError):
    """
    Правило экспорта артефакта не нашло ни одного файла.
    """

    def __init__(
        self,
        base_directory: str,
        files: Iterable[str],
        logs: Optional[List[str]] = None,
        *args,
    ) -> None:
        self.base_directory = base_directory
        self.files = list(files)
        description = (
            f"No files in {base_directory!r} match {', '.join(self.files)}"
        )
        super().__init__(*args, description=description, logs=logs)


class DeployFailure(ExecutionError):
    """
    Движок развёртывания не смог создать или обновить стек.
    """

    def __init__(
        self,
        stack_name: str,
        reason: str = "",
        logs: Optional[List[str]] = None,
        *args,
    ) -> None:
        description = f"Error to deploy stack {stack_name}"
        if reason:
            description += f": {reason}"
        super().__init__(*args, description=description, logs=logs)
        self.stack_name = stack_name
        self.reason = reason
