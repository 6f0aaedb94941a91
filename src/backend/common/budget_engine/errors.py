from __future__ import annotations


class BudgetEngineError(ValueError):
    """Base class for rule engine and roster errors surfaced to callers."""


class InvalidInput(BudgetEngineError):
    pass


class MalformedRule(BudgetEngineError):
    pass


class EvaluationError(BudgetEngineError):
    pass


class ResourceNotFound(BudgetEngineError):
    def __init__(self, resource: str, key: object):
        super().__init__(f"{resource} not found: {key}")
        self.resource = resource
        self.key = key


class PlayerLimitExceeded(BudgetEngineError):
    def __init__(self, limit_type: str, current_count: int, max_allowed: int):
        super().__init__(
            f"Maximum {limit_type} player limit reached. Current: {current_count}, Max allowed: {max_allowed}"
        )
        self.limit_type = limit_type
        self.current_count = current_count
        self.max_allowed = max_allowed
