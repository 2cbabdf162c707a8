from .core.config import PipelineSettings, load_settings
from .core.exceptions import (
    ArtifactExportMismatch,
    ConfigurationError,
    DefinitionError,
    DeployFailure,
    DuplicateActionError,
    DuplicateArtifactError,
    DuplicateStageError,
    ExecutionError,
    MissingGrantError,
    PhaseFailure,
    SourceFetchError,
    StageOrderError,
    UnresolvedArtifactError,
)
from .core.models import (
    ArtifactExportRule,
    BuildDefinition,
    BuildEnvironment,
    BuildPhase,
    EnvironmentVariable,
    Identity,
    PolicyGrant,
)
from .core.services.builders.pipeline import build_pipeline, summarize_pipeline
from .core.services.policies import registry_grant, secret_arn, secret_read_grant
from .core.services.validation import validate_pipeline
from .exception import StackPipeException
from .model import (
    Artifact,
    ArtifactPath,
    BuildAction,
    DeployAction,
    Pipeline,
    SecretReference,
    SourceAction,
    Stage,
)

__all__ = [
    "Artifact",
    "ArtifactExportMismatch",
    "ArtifactExportRule",
    "ArtifactPath",
    "BuildAction",
    "BuildDefinition",
    "BuildEnvironment",
    "BuildPhase",
    "ConfigurationError",
    "DefinitionError",
    "DeployAction",
    "DeployFailure",
    "DuplicateActionError",
    "DuplicateArtifactError",
    "DuplicateStageError",
    "EnvironmentVariable",
    "ExecutionError",
    "Identity",
    "MissingGrantError",
    "PhaseFailure",
    "Pipeline",
    "PipelineSettings",
    "PolicyGrant",
    "SecretReference",
    "SourceAction",
    "SourceFetchError",
    "Stage",
    "StackPipeException",
    "StageOrderError",
    "UnresolvedArtifactError",
    "build_pipeline",
    "load_settings",
    "registry_grant",
    "secret_arn",
    "secret_read_grant",
    "summarize_pipeline",
    "validate_pipeline",
]
