import asyncio
import click

from typing import Optional

from ciflow import __version__
from ciflow.core.config import LOGO, Settings
from ciflow.core.core import CIFlowCore
from ciflow.core.models import SOURCE_ALIASES, Event, FailurePolicy, RunResponse
from ciflow.core.services.git_module import detect_event
from ciflow.exception import CLIException
from ciflow.utils import async_click, cancel_on_interrupt


SOURCE_CHOICES = sorted(SOURCE_ALIASES)


def _load_settings(**overrides) -> Settings:
    # pydantic.ValidationError тоже ValueError
    try:
        return Settings.from_env(**overrides)
    except ValueError as e:
        raise CLIException(description=f"Некорректные настройки окружения CIFLOW_*: {e}")


def _build_event(
    source: str,
    branch: Optional[str],
    default_branch: Optional[str],
    repo: Optional[str],
    settings: Settings,
) -> Event:
    if branch is None:
        if repo is None:
            raise click.UsageError("Укажите --branch или --repo, чтобы определить ветку события.")
        return detect_event(
            repo,
            source=source,
            default_branch=default_branch,
            fallback_branch=settings.default_branch,
        )
    return Event(
        source=source,
        branch=branch,
        default_branch=default_branch or settings.default_branch,
    )


def _echo_messages(response: RunResponse, verbose: bool) -> None:
    if verbose:
        for line in response.logs:
            click.echo(line, err=True)
    for warning in response.warnings:
        click.echo(f"warning: {warning}", err=True)


def event_options(func):
    func = click.option("--repo", type=click.Path(exists=True, file_okay=False), default=None,
                        help="Локальный checkout: ветка события и исходники для job'ов")(func)
    func = click.option("--default-branch", default=None, help="Ветка по умолчанию (CIFLOW_DEFAULT_BRANCH)")(func)
    func = click.option("--branch", default=None, help="Ветка события")(func)
    func = click.option("--source", type=click.Choice(SOURCE_CHOICES, case_sensitive=False),
                        default="push", show_default=True, help="Источник события")(func)
    return func


@click.group()
@click.version_option(__version__, prog_name="ciflow")
def main():
    """Допуск событий и запуск стадий CI-пайплайна по YAML-конфигурации."""


@main.command()
@click.argument("config", type=click.Path(exists=True, dir_okay=False))
@click.option("-v", "--verbose", is_flag=True, help="Печатать логи загрузки")
def validate(config: str, verbose: bool):
    """Проверить конфигурацию без запуска."""
    response = CIFlowCore(_load_settings()).validate(config)
    _echo_messages(response, verbose)

    if response.status == "error":
        raise click.ClickException(f"Конфигурация {config} некорректна.")
    click.echo(response.pipeline_summary.description)


@main.command()
@click.argument("config", type=click.Path(exists=True, dir_okay=False))
@event_options
def admit(config: str, source: str, branch: Optional[str], default_branch: Optional[str], repo: Optional[str]):
    """Показать, создаст ли событие пайплайн."""
    core = CIFlowCore(_load_settings())
    pipeline = core.load(config)
    event = _build_event(source, branch, default_branch, repo, core.settings)

    admitted = core.admit(pipeline, event)
    click.echo("admitted" if admitted else "rejected")
    click.echo(core.logs[-1], err=True)


@main.command()
@click.argument("config", type=click.Path(exists=True, dir_okay=False))
@event_options
@click.option("--failure-policy", type=click.Choice([p.value for p in FailurePolicy]), default=None,
              help="Что делать с соседними job'ами при падении (CIFLOW_FAILURE_POLICY)")
@click.option("--timeout", type=float, default=None, help="Лимит времени job'а в секундах (CIFLOW_JOB_TIMEOUT)")
@click.option("-q", "--quiet", is_flag=True, help="Не печатать ход выполнения")
@click.option("-v", "--verbose", is_flag=True, help="Печатать логи всех job'ов")
@async_click
async def run(
    config: str,
    source: str,
    branch: Optional[str],
    default_branch: Optional[str],
    repo: Optional[str],
    failure_policy: Optional[str],
    timeout: Optional[float],
    quiet: bool,
    verbose: bool,
):
    """Допустить событие и выполнить стадии пайплайна."""
    settings = _load_settings(failure_policy=failure_policy, job_timeout=timeout, echo=not quiet)
    if not quiet:
        click.echo(LOGO + "\n", err=True)

    event = _build_event(source, branch, default_branch, repo, settings)
    core = CIFlowCore(settings)

    cancel = asyncio.Event()
    cancel_on_interrupt(cancel)
    response = await core.run_pipeline(config, event, source=repo, cancel=cancel)

    for warning in response.warnings:
        click.echo(f"warning: {warning}", err=True)

    if response.status == "error":
        raise click.ClickException(f"Конфигурация {config} некорректна.")

    if response.status == "skipped":
        click.echo(f"Пайплайн не создан: {event.source.value} на {event.branch} не прошло workflow.rules.")
        return

    result = response.result
    for job in result.jobs:
        if verbose or job.status.value == "failed":
            click.echo(f"--- {job.name} ({job.stage}) ---", err=True)
            for line in job.logs:
                click.echo(line, err=True)
        marker = "✅" if job.status.value == "passed" else ("⚠️" if job.allow_failure else "❌")
        click.echo(f"{marker} {job.stage}/{job.name}: {job.status.value}"
                   + (f" ({job.failure.value})" if job.failure else ""))

    click.echo(f"pipeline: {result.status}" + (" (canceled)" if result.canceled else ""))
    if not result.passed:
        raise click.exceptions.Exit(1)


if __name__ == "__main__":
    main()
