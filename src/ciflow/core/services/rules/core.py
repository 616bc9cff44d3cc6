from typing import Iterable, Optional, Sequence, Tuple

from ciflow.core.models import Event

from .models import Rule, RuleWhen


# Пайплайны для merge request'ов и для веток по умолчанию.
# Пуши в feature-ветки не запускают пайплайн, чтобы не дублировать MR-пайплайн.
DEFAULT_RULES: Tuple[Rule, ...] = (
    Rule(if_='$CI_PIPELINE_SOURCE == "merge_request_event"'),
    Rule(if_="$CI_COMMIT_BRANCH == $CI_DEFAULT_BRANCH"),
)


def first_match(event: Event, rules: Iterable[Rule]) -> Optional[Rule]:
    """
    Первое сработавшее правило в порядке объявления, либо None.
    """
    variables = event.variables()
    for rule in rules:
        if rule.matches(variables):
            return rule
    return None


def admit(event: Event, rules: Iterable[Rule]) -> bool:
    """
    Решает, создаётся ли пайплайн для события.

    Правила проверяются по порядку, побеждает первое совпадение.
    Совпадение с `when: never` — отказ; отсутствие совпадений — тоже отказ
    (штатная ситуация, не ошибка). Пустой список правил не допускает ничего.
    """
    rule = first_match(event, rules)
    if rule is None:
        return False
    return rule.when != RuleWhen.NEVER


class RuleEvaluator:
    """
    Обёртка над неизменяемым набором правил, собранным при загрузке конфигурации.
    """

    def __init__(self, rules: Sequence[Rule] = DEFAULT_RULES) -> None:
        self.rules: Tuple[Rule, ...] = tuple(rules)

    def admit(self, event: Event) -> bool:
        return admit(event, self.rules)

    def explain(self, event: Event) -> str:
        rule = first_match(event, self.rules)
        if rule is None:
            return f"no rule matched {event.source.value} event on {event.branch!r}"
        verdict = "admitted" if rule.when != RuleWhen.NEVER else "rejected"
        return f"{verdict} by rule {rule.describe()}"
