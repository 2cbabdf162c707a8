"""
Рендер пайплайна в CloudFormation-шаблон (JSON).

Кроме грантов из модели, каждой роли добавляются базовые права,
без которых сервисы не работают: артефакты в S3, запуск сборки,
логи сборки, деплой стека и передача роли деплоя.

Шаблон детерминирован: одинаковый пайплайн даёт побайтно одинаковый текст.
"""
from __future__ import annotations

import json
import re
from typing import Any, Dict, Iterable, List, Optional

from stackpipe.core.exceptions import DefinitionError
from stackpipe.core.models import Identity
from stackpipe.core.renders import buildspec
from stackpipe.model import (
    Action,
    BuildAction,
    DeployAction,
    Pipeline,
    SecretReference,
    SourceAction,
)


ARTIFACTS_BUCKET = "ArtifactsBucket"
ARTIFACTS_KEY = "ArtifactsBucketKey"
ADMIN_POLICY_ARN = "arn:aws:iam::aws:policy/AdministratorAccess"

ARTIFACT_READ_ACTIONS = ("s3:GetBucket*", "s3:GetObject*", "s3:List*")
ARTIFACT_WRITE_ACTIONS = ARTIFACT_READ_ACTIONS + (
    "s3:Abort*",
    "s3:DeleteObject*",
    "s3:PutObject*",
)
KEY_READ_ACTIONS = ("kms:Decrypt", "kms:DescribeKey")
KEY_WRITE_ACTIONS = KEY_READ_ACTIONS + (
    "kms:Encrypt",
    "kms:GenerateDataKey*",
    "kms:ReEncrypt*",
)
BUILD_RUN_ACTIONS = (
    "codebuild:BatchGetBuilds",
    "codebuild:StartBuild",
    "codebuild:StopBuild",
)
BUILD_LOG_ACTIONS = (
    "logs:CreateLogGroup",
    "logs:CreateLogStream",
    "logs:PutLogEvents",
)
STACK_DEPLOY_ACTIONS = (
    "cloudformation:CreateStack",
    "cloudformation:DescribeStack*",
    "cloudformation:GetStackPolicy",
    "cloudformation:GetTemplate*",
    "cloudformation:SetStackPolicy",
    "cloudformation:UpdateStack",
    "cloudformation:ValidateTemplate",
)

Statement = Dict[str, Any]


def logical_id(name: str) -> str:
    """
    CloudFormation допускает в logical id только буквы и цифры.
    """
    cleaned = "".join(part[:1].upper() + part[1:] for part in re.split(r"[^A-Za-z0-9]+", name))
    if not cleaned:
        raise ValueError(f"Cannot build logical id from {name!r}")
    return cleaned


def _arn(resource_id: str) -> Dict[str, Any]:
    return {"Fn::GetAtt": [resource_id, "Arn"]}


def _sub(text: str) -> Dict[str, str]:
    return {"Fn::Sub": text}


def _bucket_resources() -> List[Any]:
    return [
        _arn(ARTIFACTS_BUCKET),
        {"Fn::Join": ["", [_arn(ARTIFACTS_BUCKET), "/*"]]},
    ]


def _statement(actions: Iterable[str], resources: Iterable[Any]) -> Statement:
    return {"Effect": "Allow", "Action": list(actions), "Resource": list(resources)}


def _add(resources: Dict[str, Any], resource_id: str, resource: Dict[str, Any]) -> None:
    if resource_id in resources:
        raise DefinitionError(
            description=f"Logical id {resource_id!r} is produced by two resources"
        )
    resources[resource_id] = resource


def _deployment_role_name(action: DeployAction) -> str:
    return f"{action.name}DeploymentRole"


def _deployment_role(action: DeployAction) -> Identity:
    return Identity(
        name=_deployment_role_name(action),
        principal="cloudformation.amazonaws.com",
    )


def _service_statements(pipeline: Pipeline) -> Dict[str, List[Statement]]:
    """
    Базовые права ролей по имени роли.
    """
    statements: Dict[str, List[Statement]] = {}
    key = [_arn(ARTIFACTS_KEY)] if pipeline.cross_account_keys else None

    def allow(role: str, actions: Iterable[str], resources: Iterable[Any]) -> None:
        statement = _statement(actions, resources)
        role_statements = statements.setdefault(role, [])
        if statement not in role_statements:
            role_statements.append(statement)

    def artifacts(role: str, write: bool) -> None:
        allow(role, ARTIFACT_WRITE_ACTIONS if write else ARTIFACT_READ_ACTIONS, _bucket_resources())
        if key:
            allow(role, KEY_WRITE_ACTIONS if write else KEY_READ_ACTIONS, key)

    artifacts(pipeline.role_name, write=True)

    for _, action in pipeline.iter_actions():
        runner = action.identity or pipeline.role_name
        if action.identity:
            allow(pipeline.role_name, ("sts:AssumeRole",), [_arn(logical_id(action.identity))])
            artifacts(action.identity, write=True)

        if isinstance(action, BuildAction):
            project = action.project
            allow(runner, BUILD_RUN_ACTIONS, [_arn(logical_id(project.name))])
            log_group = (
                "arn:${AWS::Partition}:logs:${AWS::Region}:${AWS::AccountId}"
                f":log-group:/aws/codebuild/{project.name}"
            )
            allow(project.role_name, BUILD_LOG_ACTIONS, [_sub(log_group), _sub(log_group + ":*")])
            artifacts(project.role_name, write=True)

        elif isinstance(action, DeployAction):
            deployment_role = _deployment_role_name(action)
            stack = (
                "arn:${AWS::Partition}:cloudformation:${AWS::Region}:${AWS::AccountId}"
                f":stack/{action.stack_name}/*"
            )
            allow(runner, STACK_DEPLOY_ACTIONS, [_sub(stack)])
            allow(runner, ("iam:PassRole",), [_arn(logical_id(deployment_role))])
            artifacts(deployment_role, write=False)

    return statements


def _role(identity: Identity) -> Dict[str, Any]:
    return {
        "Type": "AWS::IAM::Role",
        "Properties": {
            "RoleName": identity.name,
            "AssumeRolePolicyDocument": {
                "Version": "2012-10-17",
                "Statement": [
                    {
                        "Effect": "Allow",
                        "Action": "sts:AssumeRole",
                        "Principal": {"Service": identity.principal},
                    }
                ],
            },
        },
    }


def _policy(identity: Identity, extra: List[Statement]) -> Optional[Dict[str, Any]]:
    statements: List[Statement] = [
        {"Effect": grant.effect, "Action": list(grant.actions), "Resource": list(grant.resources)}
        for grant in identity.grants
    ]
    statements.extend(extra)
    if not statements:
        return None
    return {
        "Type": "AWS::IAM::Policy",
        "Properties": {
            "PolicyName": f"{logical_id(identity.name)}DefaultPolicy",
            "PolicyDocument": {"Version": "2012-10-17", "Statement": statements},
            "Roles": [{"Ref": logical_id(identity.name)}],
        },
    }


def _add_identity(
    resources: Dict[str, Any],
    identity: Identity,
    extra: List[Statement],
    managed_policies: Iterable[str] = (),
) -> List[str]:
    """
    Роль + её политика. Возвращает logical id, от которых зависят
    ресурсы, работающие от этой роли.
    """
    role_id = logical_id(identity.name)
    role = _role(identity)
    if managed_policies:
        role["Properties"]["ManagedPolicyArns"] = list(managed_policies)
    _add(resources, role_id, role)

    depends_on = [role_id]
    policy = _policy(identity, extra)
    if policy:
        _add(resources, f"{role_id}DefaultPolicy", policy)
        depends_on.append(f"{role_id}DefaultPolicy")
    return sorted(depends_on)


def _project(action: BuildAction) -> Dict[str, Any]:
    project = action.project
    variables = [
        {"Name": name, "Type": variable.type, "Value": variable.value}
        for name, variable in project.environment.environment_variables.items()
    ]
    environment: Dict[str, Any] = {
        "Type": "LINUX_CONTAINER",
        "ComputeType": project.environment.compute_type,
        "Image": project.environment.image,
        "PrivilegedMode": project.environment.privileged,
    }
    if variables:
        environment["EnvironmentVariables"] = variables

    spec = buildspec.to_document(project, include_env=False)
    return {
        "Type": "AWS::CodeBuild::Project",
        "Properties": {
            "Name": project.name,
            "ServiceRole": _arn(logical_id(project.role_name)),
            "Source": {
                "Type": "CODEPIPELINE",
                "BuildSpec": json.dumps(spec, indent=2, sort_keys=True),
            },
            "Artifacts": {"Type": "CODEPIPELINE"},
            "Environment": environment,
        },
    }


def _secret_token(token: SecretReference) -> str:
    secret = token.arn or token.name
    json_key = f":{token.json_key}" if token.json_key else ""
    return f"{{{{resolve:secretsmanager:{secret}:SecretString{json_key}}}}}"


def _webhook(action: SourceAction, pipeline_id: str) -> Dict[str, Any]:
    return {
        "Type": "AWS::CodePipeline::Webhook",
        "Properties": {
            "Authentication": "GITHUB_HMAC",
            "AuthenticationConfiguration": {"SecretToken": _secret_token(action.oauth_token)},
            # {Branch} CodePipeline подставляет из конфигурации действия
            "Filters": [{"JsonPath": "$.ref", "MatchEquals": "refs/heads/{Branch}"}],
            "RegisterWithThirdParty": True,
            "TargetAction": action.name,
            "TargetPipeline": {"Ref": pipeline_id},
            "TargetPipelineVersion": 1,
        },
    }


def _action(action: Action) -> Dict[str, Any]:
    rendered: Dict[str, Any] = {"Name": action.name, "RunOrder": action.run_order}

    if isinstance(action, SourceAction):
        rendered["ActionTypeId"] = {
            "Category": "Source", "Owner": "ThirdParty", "Provider": "GitHub", "Version": "1",
        }
        rendered["Configuration"] = {
            "Owner": action.owner,
            "Repo": action.repo,
            "Branch": action.branch,
            "OAuthToken": _secret_token(action.oauth_token),
            "PollForSourceChanges": action.trigger == "poll",
        }
        rendered["OutputArtifacts"] = [{"Name": action.output.name}]

    elif isinstance(action, BuildAction):
        rendered["ActionTypeId"] = {
            "Category": "Build", "Owner": "AWS", "Provider": "CodeBuild", "Version": "1",
        }
        rendered["Configuration"] = {"ProjectName": {"Ref": logical_id(action.project.name)}}
        rendered["InputArtifacts"] = [{"Name": action.input.name}]
        rendered["OutputArtifacts"] = [{"Name": a.name} for a in action.outputs]

    elif isinstance(action, DeployAction):
        rendered["ActionTypeId"] = {
            "Category": "Deploy", "Owner": "AWS", "Provider": "CloudFormation", "Version": "1",
        }
        rendered["Configuration"] = {
            "ActionMode": "CREATE_UPDATE",
            "StackName": action.stack_name,
            "TemplatePath": action.template_path.location,
            "Capabilities": "CAPABILITY_NAMED_IAM,CAPABILITY_AUTO_EXPAND",
            "ParameterOverrides": json.dumps(action.parameter_overrides, sort_keys=True),
            "RoleArn": _arn(logical_id(_deployment_role_name(action))),
        }
        rendered["InputArtifacts"] = [{"Name": action.template_path.artifact.name}]

    if action.identity:
        rendered["RoleArn"] = _arn(logical_id(action.identity))
    return rendered


def to_template(pipeline: Pipeline) -> Dict[str, Any]:
    """
    :raises DefinitionError: если два ресурса получают один logical id.
    """
    resources: Dict[str, Any] = {
        ARTIFACTS_BUCKET: {"Type": "AWS::S3::Bucket", "DeletionPolicy": "Retain"},
    }
    statements = _service_statements(pipeline)
    pipeline_id = logical_id(pipeline.name)

    depends_on: Dict[str, List[str]] = {}
    for identity in pipeline.identities.values():
        depends_on[identity.name] = _add_identity(
            resources, identity, statements.get(identity.name, [])
        )

    for _, action in pipeline.iter_actions():
        if isinstance(action, BuildAction):
            project = _project(action)
            project["DependsOn"] = depends_on.get(action.project.role_name, [])
            _add(resources, logical_id(action.project.name), project)
        elif isinstance(action, DeployAction):
            # без admin_permissions роль деплоя получает только чтение
            # артефактов, остальные права выдаются отдельно
            role = _deployment_role(action)
            _add_identity(
                resources,
                role,
                statements.get(role.name, []),
                managed_policies=[ADMIN_POLICY_ARN] if action.admin_permissions else [],
            )
        elif isinstance(action, SourceAction) and action.trigger == "webhook":
            _add(resources, f"{logical_id(action.name)}WebhookResource", _webhook(action, pipeline_id))

    artifact_store: Dict[str, Any] = {"Type": "S3", "Location": {"Ref": ARTIFACTS_BUCKET}}
    if pipeline.cross_account_keys:
        _add(resources, ARTIFACTS_KEY, {
            "Type": "AWS::KMS::Key",
            "Properties": {"EnableKeyRotation": False},
        })
        artifact_store["EncryptionKey"] = {"Id": _arn(ARTIFACTS_KEY), "Type": "KMS"}

    _add(resources, pipeline_id, {
        "Type": "AWS::CodePipeline::Pipeline",
        "DependsOn": depends_on[pipeline.role_name],
        "Properties": {
            "Name": pipeline.name,
            "RoleArn": _arn(logical_id(pipeline.role_name)),
            "RestartExecutionOnUpdate": pipeline.restart_on_update,
            "ArtifactStore": artifact_store,
            "Stages": [
                {"Name": stage.name, "Actions": [_action(a) for a in stage.actions]}
                for stage in pipeline.stages
            ],
        },
    })

    return {
        "AWSTemplateFormatVersion": "2010-09-09",
        "Description": f"Deployment pipeline {pipeline.name}",
        "Resources": resources,
    }


def render(pipeline: Pipeline) -> str:
    return json.dumps(to_template(pipeline), indent=2, sort_keys=True) + "\n"
