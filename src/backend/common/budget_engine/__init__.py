"""Budget rule engine for auction next-bid ceilings.

This package intentionally contains only domain logic:
- Rule statements are parsed and evaluated against an in-memory context.
- Storage is reached through small protocols; no HTTP or database code lives here.
"""

from .config import EngineSettings, get_engine_settings
from .context import EvaluationContext, adjust_threshold, remaining_budget
from .engine import RuleEngine
from .errors import (
    BudgetEngineError,
    EvaluationError,
    InvalidInput,
    MalformedRule,
    PlayerLimitExceeded,
    ResourceNotFound,
)
from .expression import evaluate_expression
from .models import (
    BudgetRule,
    LevelAggregate,
    Operator,
    RuleComponents,
    SeasonLimits,
    TeamSeasonTotals,
)
from .notation import expand_notation, rewrite_map_paths, split_rule
from .recompute import BudgetRecomputer
