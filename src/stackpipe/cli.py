from pathlib import Path

import click

from stackpipe.core.core import StackPipeCore, SynthResponse


def settings_options(func):
    """
    Общие опции: откуда брать настройки пайплайна.
    """
    options = [
        click.option("-c", "--config", "config_path", type=click.Path(dir_okay=False),
                     default=None, help="Файл настроек (.json / .yml)"),
        click.option("--repo-path", type=click.Path(file_okay=False), default=None,
                     help="Локальный репозиторий: owner/repo/ветка берутся из origin"),
        click.option("--owner", "repository_owner", default=None, help="Владелец репозитория"),
        click.option("--repo", "repository_name", default=None, help="Имя репозитория"),
        click.option("--branch", default=None, help="Ветка"),
        click.option("--stack-name", default=None, help="Стек, который разворачивает пайплайн"),
        click.option("--registry", "registry_uri", default=None, help="Адрес container registry"),
        click.option("-v", "--verbose", is_flag=True, help="Печатать логи шагов"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _synth(config_path, repo_path, verbose, **overrides) -> SynthResponse:
    result = StackPipeCore().synth(
        config_path=config_path,
        repo_path=repo_path,
        overrides=overrides,
    )

    if verbose:
        for line in result.logs:
            click.echo(line, err=True)
    for line in result.warnings:
        click.echo(f"warning: {line}", err=True)

    if result.status != "ok":
        raise click.ClickException(result.error or "Pipeline definition is invalid")
    return result


@click.group()
def main():
    """stackpipe: пайплайн Source -> Build -> Deploy для API-приложения."""


@main.command()
@settings_options
@click.option("-o", "--output", default=".", type=click.Path(file_okay=False),
              help="Путь к директории, куда сохранить результат")
def synth(config_path, repo_path, verbose, output, **overrides):
    """Сгенерировать CloudFormation-шаблон и buildspec.yml."""
    result = _synth(config_path, repo_path, verbose, **overrides)
    summary = result.pipeline_summary

    out_dir = Path(output)
    template_file = out_dir / f"{summary.pipeline_name}.template.json"
    buildspec_file = out_dir / "buildspec.yml"

    try:
        out_dir.mkdir(parents=True, exist_ok=True)
        template_file.write_text(result.template, encoding="utf-8")
        buildspec_file.write_text(result.buildspec, encoding="utf-8")
    except OSError as e:
        raise click.ClickException(f"Не удалось сохранить результат в '{out_dir}': {e}")

    click.echo(summary.description)
    click.echo(f"Шаблон сохранён в файл: {template_file}", err=True)
    click.echo(f"buildspec сохранён в файл: {buildspec_file}", err=True)


@main.command()
@settings_options
def validate(config_path, repo_path, verbose, **overrides):
    """Проверить, что пайплайн можно построить и исполнить."""
    result = _synth(config_path, repo_path, verbose, **overrides)
    click.echo(f"OK: {result.pipeline_summary.description}")


@main.command()
@settings_options
def buildspec(config_path, repo_path, verbose, **overrides):
    """Напечатать buildspec.yml."""
    result = _synth(config_path, repo_path, verbose, **overrides)
    click.echo(result.buildspec, nl=False)


@main.command()
@settings_options
def summary(config_path, repo_path, verbose, **overrides):
    """Напечатать стадии и связи артефактов."""
    result = _synth(config_path, repo_path, verbose, **overrides)
    info = result.pipeline_summary
    click.echo(info.description)
    for artifact, actions in info.artifacts.items():
        click.echo(f"  {artifact}: {' -> '.join(actions)}")


if __name__ == "__main__":
    main()
