from pathlib import Path
from typing import Any, Dict, List, Literal, Mapping, Optional, Union

from pydantic import BaseModel

from .config import load_settings
from .exceptions import DefinitionError
from .models import PipelineSummary
from .renders import buildspec as buildspec_render, cloudformation as cloudformation_render
from .services.builders import pipeline as builder
from .services.git_module import GitRepoInspector
from .services.git_module.exceptions import GitExceptions


class SynthResponse(BaseModel):
    status: Literal["ok", "error"]
    template: Optional[str] = None
    buildspec: Optional[str] = None
    warnings: List[str] = []
    logs: List[str] = []
    pipeline_summary: Optional[PipelineSummary] = None
    error: Optional[str] = None


class StackPipeCore:
    def __init__(self, remote_name: str = "origin"):
        self.git = GitRepoInspector(remote_name=remote_name)
        self.logs: list[str] = []
        self.warnings: list[str] = []

    def synth(
        self,
        config_path: Optional[Union[str, Path]] = None,
        repo_path: Optional[Union[str, Path]] = None,
        overrides: Optional[Mapping[str, Any]] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> SynthResponse:
        """
        Настройки -> пайплайн -> CloudFormation-шаблон и buildspec.

        Ошибки определения не пробрасываются: возвращается status="error"
        с описанием и накопленными логами, шаблоны не формируются.
        """
        self.logs = []
        self.warnings = []

        try:
            # 1) Что можно узнать из локального репозитория
            inferred: Dict[str, Any] = {}
            if repo_path is not None:
                info = self.git.from_existing_path(repo_path)
                self.logs.extend(info.logs)
                inferred = info.as_settings()

            # 2) Настройки: файл < окружение < репозиторий < CLI
            merged = dict(inferred)
            merged.update({k: v for k, v in (overrides or {}).items() if v is not None})
            settings = load_settings(config_path, overrides=merged, environ=environ)
            self.logs.append(f"Настройки загружены: стек {settings.stack_name}.")

            # 3) Строим и проверяем граф
            pipeline, pipeline_logs, pipeline_warnings = builder.build_pipeline(settings)
            self.logs.extend(pipeline_logs)
            self.warnings.extend(pipeline_warnings)

            pipeline_summary = builder.summarize_pipeline(pipeline)

            # 4) Рендерим
            template = cloudformation_render.render(pipeline)
            build_action = pipeline.find_action("CodeBuild")
            spec = buildspec_render.render(build_action.project)

        except (DefinitionError, GitExceptions) as e:
            self.logs.extend(e.logs)
            self.warnings.append("Пайплайн не построен: исправьте ошибку и повторите.")
            return SynthResponse(
                status="error",
                warnings=self.warnings,
                logs=self.logs,
                error=e.description,
            )

        return SynthResponse(
            status="ok",
            template=template,
            buildspec=spec,
            warnings=self.warnings,
            logs=self.logs,
            pipeline_summary=pipeline_summary,
        )
