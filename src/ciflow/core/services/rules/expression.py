"""
Компилятор выражений `rules:if` (подмножество синтаксиса GitLab).

Поддерживается:
  $VAR, ${VAR}          — переменная (неопределённая равна null)
  "str", 'str', null    — литералы
  ==, !=                — сравнение строк
  =~, !~                — сопоставление с /regex/ (флаг i — без учёта регистра)
  &&, ||, ( )           — логика, && связывает сильнее ||

Голое `$VAR` истинно, если переменная определена и не пустая.
"""
from __future__ import annotations

import functools
import re
from dataclasses import dataclass
from typing import List, Mapping, Optional, Tuple, Union

from .exceptions import RuleExpressionError

_TOKEN_RE = re.compile(
    r"""
    (?P<var>\$\{[A-Za-z_][A-Za-z0-9_]*\}|\$[A-Za-z_][A-Za-z0-9_]*)
    |(?P<str>"(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*')
    |(?P<regex>/(?:[^/\\]|\\.)*/i?)
    |(?P<op>==|!=|=~|!~|&&|\|\|)
    |(?P<paren>[()])
    |(?P<null>null\b)
    """,
    re.VERBOSE,
)

Token = Tuple[str, str]


@dataclass(frozen=True)
class Variable:
    name: str

    def resolve(self, variables: Mapping[str, str]) -> Optional[str]:
        return variables.get(self.name)


@dataclass(frozen=True)
class Literal:
    value: Optional[str]

    def resolve(self, variables: Mapping[str, str]) -> Optional[str]:
        return self.value


@dataclass(frozen=True)
class Pattern:
    regex: "re.Pattern[str]"


Operand = Union[Variable, Literal]


@dataclass(frozen=True)
class Truthy:
    operand: Operand

    def evaluate(self, variables: Mapping[str, str]) -> bool:
        return bool(self.operand.resolve(variables))


@dataclass(frozen=True)
class Compare:
    left: Operand
    op: str
    right: Union[Operand, Pattern]

    def evaluate(self, variables: Mapping[str, str]) -> bool:
        left = self.left.resolve(variables)
        if isinstance(self.right, Pattern):
            matched = left is not None and self.right.regex.search(left) is not None
            return matched if self.op == "=~" else not matched
        right = self.right.resolve(variables)
        return (left == right) if self.op == "==" else (left != right)


@dataclass(frozen=True)
class And:
    parts: Tuple["Condition", ...]

    def evaluate(self, variables: Mapping[str, str]) -> bool:
        return all(part.evaluate(variables) for part in self.parts)


@dataclass(frozen=True)
class Or:
    parts: Tuple["Condition", ...]

    def evaluate(self, variables: Mapping[str, str]) -> bool:
        return any(part.evaluate(variables) for part in self.parts)


Condition = Union[Truthy, Compare, And, Or]


def tokenize(text: str) -> List[Token]:
    tokens: List[Token] = []
    pos = 0
    while pos < len(text):
        if text[pos].isspace():
            pos += 1
            continue
        match = _TOKEN_RE.match(text, pos)
        if match is None:
            raise RuleExpressionError(text, f"unexpected character {text[pos]!r} at {pos}")
        kind = match.lastgroup
        tokens.append((kind, match.group(kind)))
        pos = match.end()
    return tokens


class _Parser:
    def __init__(self, text: str) -> None:
        self.text = text
        self.tokens = tokenize(text)
        self.pos = 0

    def _peek(self) -> Optional[Token]:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def _take(self) -> Token:
        token = self._peek()
        if token is None:
            raise RuleExpressionError(self.text, "unexpected end of expression")
        self.pos += 1
        return token

    def parse(self) -> Condition:
        if not self.tokens:
            raise RuleExpressionError(self.text, "empty expression")
        condition = self._or()
        if self._peek() is not None:
            raise RuleExpressionError(self.text, f"unexpected token {self._peek()[1]!r}")
        return condition

    def _or(self) -> Condition:
        parts = [self._and()]
        while self._peek() == ("op", "||"):
            self._take()
            parts.append(self._and())
        return parts[0] if len(parts) == 1 else Or(tuple(parts))

    def _and(self) -> Condition:
        parts = [self._primary()]
        while self._peek() == ("op", "&&"):
            self._take()
            parts.append(self._primary())
        return parts[0] if len(parts) == 1 else And(tuple(parts))

    def _primary(self) -> Condition:
        if self._peek() == ("paren", "("):
            self._take()
            condition = self._or()
            if self._take() != ("paren", ")"):
                raise RuleExpressionError(self.text, "missing closing parenthesis")
            return condition

        left = self._operand()
        token = self._peek()
        if token is None or token[0] != "op" or token[1] in ("&&", "||"):
            return Truthy(left)

        op = self._take()[1]
        if op in ("=~", "!~"):
            kind, value = self._take()
            if kind != "regex":
                raise RuleExpressionError(self.text, f"operator {op} expects a /regex/ literal")
            return Compare(left, op, _compile_pattern(self.text, value))
        return Compare(left, op, self._operand())

    def _operand(self) -> Operand:
        kind, value = self._take()
        if kind == "var":
            return Variable(value.strip("${}"))
        if kind == "str":
            return Literal(_unquote(value))
        if kind == "null":
            return Literal(None)
        raise RuleExpressionError(self.text, f"expected a variable or literal, got {value!r}")


def _unquote(raw: str) -> str:
    body = raw[1:-1]
    return re.sub(r"\\(.)", r"\1", body)


def _compile_pattern(text: str, raw: str) -> Pattern:
    flags = 0
    if raw.endswith("i"):
        flags |= re.IGNORECASE
        raw = raw[:-1]
    try:
        return Pattern(re.compile(raw[1:-1].replace("\\/", "/"), flags))
    except re.error as e:
        raise RuleExpressionError(text, f"bad regex {raw}: {e}")


@functools.lru_cache(maxsize=256)
def compile_expression(text: str) -> Condition:
    """
    Компилирует выражение в дерево условий. Результат кэшируется:
    одно и то же правило вычисляется на каждом событии.
    """
    return _Parser(text).parse()
