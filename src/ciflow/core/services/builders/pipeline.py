import click
import yaml

from pathlib import Path
from typing import Any, Dict, List, Tuple, Union

from pydantic import ValidationError

from ciflow.core.models import PipelineSummary
from ciflow.core.services.rules import DEFAULT_RULES, Rule
from ciflow.exception import FatalConfigurationError
from ciflow.model import Defaults, Job, Pipeline, StageSpec


# Ключи верхнего уровня, которые не являются job'ами
RESERVED_KEYS = {"default", "workflow", "stages", "variables", "image", "before_script"}

# Глобальные ключевые слова GitLab, которые ciflow не исполняет: принимаем и предупреждаем
IGNORED_KEYS = {"include", "after_script", "cache", "services"}

# Стадии по умолчанию, если секция stages не указана (как в GitLab)
DEFAULT_STAGES = ["build", "test", "deploy"]


def _format_validation_error(where: str, error: ValidationError) -> List[str]:
    problems: List[str] = []
    for item in error.errors():
        loc = ".".join(str(part) for part in item.get("loc", ()))
        problems.append(f"{where}{'.' + loc if loc else ''}: {item.get('msg')}")
    return problems


def _parse_stages(raw: Any, problems: List[str]) -> List[StageSpec]:
    if raw is None:
        return [StageSpec(name=name) for name in DEFAULT_STAGES]
    if not isinstance(raw, list):
        problems.append("stages: must be a list")
        return []

    stages: List[StageSpec] = []
    for entry in raw:
        try:
            if isinstance(entry, str):
                stages.append(StageSpec(name=entry))
            else:
                stages.append(StageSpec.model_validate(entry))
        except ValidationError as e:
            problems.extend(_format_validation_error("stages", e))
    return stages


def _parse_rules(raw: Any, problems: List[str]) -> List[Rule]:
    if raw is None:
        return list(DEFAULT_RULES)
    if not isinstance(raw, dict):
        problems.append("workflow: must be a mapping")
        return []
    rules_raw = raw.get("rules")
    if rules_raw is None:
        return list(DEFAULT_RULES)
    if not isinstance(rules_raw, list):
        problems.append("workflow.rules: must be a list")
        return []

    rules: List[Rule] = []
    for index, entry in enumerate(rules_raw):
        try:
            rules.append(Rule.model_validate(entry))
        except ValidationError as e:
            problems.extend(_format_validation_error(f"workflow.rules[{index}]", e))
    return rules


def _parse_defaults(raw: Dict[str, Any], problems: List[str]) -> Defaults:
    section = dict(raw.get("default") or {})
    # Устаревшие глобальные image/before_script тоже считаем дефолтами
    for legacy in ("image", "before_script"):
        if legacy in raw and legacy not in section:
            section[legacy] = raw[legacy]
    try:
        return Defaults.model_validate(section)
    except ValidationError as e:
        problems.extend(_format_validation_error("default", e))
        return Defaults()


def build_pipeline(raw: Dict[str, Any]) -> Tuple[Pipeline, List[str], List[str]]:
    """
    Строим пайплайн из декларативной конфигурации (уже разобранного YAML).

    Возвращает (Pipeline, logs, warnings).
    Все структурные ошибки собираются вместе и поднимаются одним
    FatalConfigurationError.
    """
    logs: List[str] = []
    warnings: List[str] = []
    problems: List[str] = []

    if not isinstance(raw, dict):
        raise FatalConfigurationError(["configuration root must be a mapping"], logs=logs)

    stages = _parse_stages(raw.get("stages"), problems)
    if "stages" not in raw:
        warnings.append(
            f"Секция stages не указана — используются стадии по умолчанию: {', '.join(DEFAULT_STAGES)}."
        )
    rules = _parse_rules(raw.get("workflow"), problems)
    if raw.get("workflow") is None:
        logs.append("Секция workflow не указана — используются правила по умолчанию (MR + ветка по умолчанию).")
    defaults = _parse_defaults(raw, problems)

    variables_raw = raw.get("variables") or {}
    if not isinstance(variables_raw, dict):
        problems.append("variables: must be a mapping")
        variables_raw = {}
    variables = {str(k): "" if v is None else str(v) for k, v in variables_raw.items()}

    jobs: List[Job] = []
    for name, body in raw.items():
        if name in RESERVED_KEYS:
            continue
        if name in IGNORED_KEYS:
            warnings.append(f"Глобальный ключ {name} не поддерживается и пропущен.")
            continue
        if str(name).startswith("."):
            logs.append(f"Скрытый job {name} пропущен.")
            continue
        if not isinstance(body, dict):
            problems.append(f"{name}: job definition must be a mapping")
            continue
        try:
            jobs.append(Job.model_validate({**body, "name": str(name)}))
        except ValidationError as e:
            problems.extend(_format_validation_error(str(name), e))

    if problems:
        raise FatalConfigurationError(problems, logs=logs)

    pipeline = Pipeline(
        stages=stages,
        jobs=jobs,
        default=defaults,
        variables=variables,
        workflow_rules=rules,
    )
    logs.append(
        f"Пайплайн загружен: {len(pipeline.stages)} стадий и {len(pipeline.jobs)} задач."
    )
    return pipeline, logs, warnings


def load_pipeline_file(path: Union[str, Path]) -> Tuple[Pipeline, List[str], List[str]]:
    """
    Читает YAML-файл пайплайна и строит по нему Pipeline.
    """
    config_path = Path(path)
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except OSError as e:
        raise FatalConfigurationError([f"cannot read {config_path}: {e}"])
    except yaml.YAMLError as e:
        raise FatalConfigurationError([f"invalid YAML in {config_path}: {e}"])

    if raw is None:
        raise FatalConfigurationError([f"{config_path} is empty"])

    pipeline, logs, warnings = build_pipeline(raw)
    logs.insert(0, f"Конфигурация прочитана из {config_path}")
    return pipeline, logs, warnings


def validate_pipeline(pipeline: Pipeline) -> Tuple[List[str], List[str]]:
    """
    Статическая проверка пайплайна до запуска.

    Фатально: пустой список стадий, дубли стадий или job'ов,
    job в несуществующей стадии, пустой script.
    Предупреждения: стадии без job'ов, пустые правила, недостижимые правила.

    Возвращает (logs, warnings), при фатальных проблемах — FatalConfigurationError.
    """
    logs: List[str] = []
    warnings: List[str] = []
    problems: List[str] = []

    if not pipeline.stages:
        problems.append("stage list is empty")

    seen_stages = set()
    for name in pipeline.stage_names:
        if name in seen_stages:
            problems.append(f"duplicate stage name {name!r}")
        seen_stages.add(name)

    seen_jobs = set()
    for job in pipeline.jobs:
        if job.name in seen_jobs:
            problems.append(f"duplicate job name {job.name!r}")
        seen_jobs.add(job.name)
        if job.stage not in seen_stages:
            problems.append(f"job {job.name!r} references unknown stage {job.stage!r}")
        if not job.script:
            problems.append(f"job {job.name!r} has an empty script")

    if problems:
        raise FatalConfigurationError(problems, logs=logs)

    for name in pipeline.stage_names:
        if not pipeline.jobs_for(name):
            warnings.append(f"Стадия {name} не содержит задач и будет пропущена.")

    if not pipeline.workflow_rules:
        warnings.append("Список workflow.rules пуст — ни одно событие не запустит пайплайн.")

    for index, rule in enumerate(pipeline.workflow_rules[:-1]):
        if rule.unconditional:
            shadowed = len(pipeline.workflow_rules) - index - 1
            warnings.append(
                f"Правило #{index + 1} срабатывает всегда, следующие {shadowed} правил(а) недостижимы."
            )
            break

    logs.append(
        f"Проверка пройдена: стадии {', '.join(pipeline.stage_names)}; задач {len(pipeline.jobs)}."
    )
    return logs, warnings


def summarize_pipeline(pipeline: Pipeline, echo: bool = False) -> PipelineSummary:
    """
    Строит краткое резюме пайплайна для ответа CLI.
    """
    stages = list(pipeline.stage_names)
    job_names = [job.name for job in pipeline.jobs]
    stages_count = len(stages)
    jobs_count = len(job_names)

    if stages_count == 0 and jobs_count == 0:
        description = "Пайплайн пустой. Отредактируйте конфигурацию."
    else:
        description = (
            f"Пайплайн из {stages_count} стадий и {jobs_count} задач: "
            f"стадии {', '.join(stages)}."
        )
    if echo:
        click.echo(description)

    return PipelineSummary(
        stages_count=stages_count,
        jobs_count=jobs_count,
        stages=stages,
        job_names=job_names,
        description=description,
    )
