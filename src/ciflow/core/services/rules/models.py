from enum import Enum
from typing import Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .expression import compile_expression


class RuleWhen(str, Enum):
    ALWAYS = "always"
    NEVER = "never"


class Rule(BaseModel):
    """
    Одно правило допуска: необязательное условие `if` и решение `when`.
    Правило без `if` срабатывает всегда.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    if_: Optional[str] = Field(default=None, alias="if")
    when: RuleWhen = RuleWhen.ALWAYS

    @field_validator("if_")
    @classmethod
    def compile_condition(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip()
        # Ошибка синтаксиса всплывает при загрузке, а не на первом событии
        compile_expression(value)
        return value

    @property
    def unconditional(self) -> bool:
        return self.if_ is None

    def matches(self, variables: Mapping[str, str]) -> bool:
        if self.if_ is None:
            return True
        return compile_expression(self.if_).evaluate(variables)

    def describe(self) -> str:
        condition = self.if_ if self.if_ is not None else "<always>"
        return f"if {condition} (when: {self.when.value})"
