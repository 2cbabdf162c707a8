# core/ci_scripts.py
from __future__ import annotations

from typing import List, Optional

from .models import BuildPhase, PhaseName


REGISTRY_ENV_VAR = "REGISTRY_URI"


def registry_reference(registry_uri: str, mode: str = "inline") -> str:
    """
    Как команды сборки ссылаются на registry:
      - 'inline'      -> адрес как есть;
      - 'environment' -> через переменную окружения $REGISTRY_URI.
    """
    if mode == "inline":
        return registry_uri
    if mode == "environment":
        return f"${REGISTRY_ENV_VAR}"
    raise ValueError(f"Unsupported registry mode: {mode}")


def registry_host(reference: str) -> str:
    """
    Хост registry для docker login.
    123.dkr.ecr.eu-west-1.amazonaws.com/images -> 123.dkr.ecr.eu-west-1.amazonaws.com
    """
    if reference.startswith("$"):
        # раскрытие на стороне shell
        return "${" + reference[1:] + "%%/*}"
    return reference.split("/", 1)[0]


def make_phase_script(
    phase: PhaseName,
    registry: Optional[str] = None,
    region: Optional[str] = None,
    image_tag: str = "latest",
    docker_context: str = ".",
) -> List[str]:
    """
    Генерирует команды фазы сборки API-приложения.
    phase:
      - 'install'   -> cdk и зависимости проекта
      - 'pre_build' -> логин в registry (если он задан)
      - 'build'     -> сборка, cdk synth, docker build/push
    registry — уже подготовленная ссылка (см. registry_reference).
    """
    if phase == "install":
        return [
            "npm install -g aws-cdk",
            "npm install",
        ]

    if phase == "pre_build":
        if not registry:
            return []
        # токен сразу уходит в docker login и нигде не печатается
        region_ref = region or "$AWS_DEFAULT_REGION"
        return [
            "echo Logging in to the container registry...",
            (
                f"aws ecr get-login-password --region {region_ref} "
                f"| docker login --username AWS --password-stdin {registry_host(registry)}"
            ),
        ]

    if phase == "build":
        cmds = [
            "npm run build",
            "npx cdk synth",
        ]
        if registry:
            image_ref = f"{registry}:{image_tag}"
            cmds.extend([
                f"docker build -t {image_ref} {docker_context}",
                f"docker push {image_ref}",
            ])
        return cmds

    raise ValueError(f"Unsupported build phase: {phase}")


def make_phases(
    registry: Optional[str] = None,
    region: Optional[str] = None,
    image_tag: str = "latest",
    docker_context: str = ".",
) -> List[BuildPhase]:
    """
    Все фазы в каноническом порядке; пустые фазы пропускаются.
    """
    phases: List[BuildPhase] = []
    for name in ("install", "pre_build", "build"):
        commands = make_phase_script(
            name,
            registry=registry,
            region=region,
            image_tag=image_tag,
            docker_context=docker_context,
        )
        if commands:
            phases.append(BuildPhase(name=name, commands=tuple(commands)))
    return phases
