class RuleExpressionError(ValueError):
    """
    Синтаксическая ошибка в выражении `if` правила.
    Наследуется от ValueError, чтобы pydantic собрал её в ValidationError.
    """

    def __init__(self, expression: str, reason: str) -> None:
        super().__init__(f"invalid rule expression {expression!r}: {reason}")
        self.expression = expression
        self.reason = reason
