from .core import DEFAULT_RULES, RuleEvaluator, admit, first_match
from .exceptions import RuleExpressionError
from .expression import compile_expression
from .models import Rule, RuleWhen

__all__ = [
    "DEFAULT_RULES",
    "Rule",
    "RuleWhen",
    "RuleEvaluator",
    "RuleExpressionError",
    "admit",
    "compile_expression",
    "first_match",
]
