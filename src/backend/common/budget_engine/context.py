from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation, Overflow, ROUND_HALF_UP
from typing import Mapping, Optional

from .errors import EvaluationError
from .models import LevelAggregate, Operator, SeasonLimits, TeamSeasonTotals


ZERO = Decimal("0")
CENT = Decimal("0.01")

LEVELS_ROOT = "playerLevels"

# Rule-text field name -> model attribute, per root. Anything else is rejected.
TEAM_FIELDS = {
    "totalAmountSpent": "total_amount_spent",
    "totalRtmUsed": "total_rtm_used",
    "totalFreeUsed": "total_free_used",
    "totalPlayer": "total_player",
}
SEASON_FIELDS = {
    "budgetLimit": "budget_limit",
    "minPlayerAmount": "min_player_amount",
    "maxPlayersAllowed": "max_players_allowed",
    "maxRtmAllowed": "max_rtm_allowed",
    "maxFreeAllowed": "max_free_allowed",
}
LEVEL_FIELDS = {
    "totalAmountSpent": "total_amount_spent",
    "totalPlayerCount": "total_player_count",
    "nextPlayerBudget": "next_player_budget",
}


@dataclass(frozen=True)
class EvaluationContext:
    team: TeamSeasonTotals
    season: SeasonLimits
    player_levels: Mapping[str, LevelAggregate] = field(default_factory=dict)

    def get_level(self, level_code: str) -> Optional[LevelAggregate]:
        return self.player_levels.get(level_code)


def to_decimal(value: object) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def quantize_amount(value: Decimal, quantize: Optional[Decimal]) -> Decimal:
    if quantize is None:
        return value
    try:
        return value.quantize(quantize, rounding=ROUND_HALF_UP)
    except InvalidOperation as exc:
        raise EvaluationError(f"Amount {value} cannot be rounded to {quantize}") from exc


def adjust_threshold(threshold: Decimal, operator: Operator, *, step: Decimal = CENT) -> Decimal:
    """Shift strict-comparison thresholds so the next increment stays in bounds."""
    if operator == Operator.LT:
        return threshold - step
    if operator == Operator.GT:
        return threshold + step
    return threshold


def remaining_budget(
    threshold: Decimal,
    operator: Operator,
    current_total: Decimal,
    *,
    step: Decimal = CENT,
    quantize: Decimal = CENT,
) -> Decimal:
    try:
        adjusted = adjust_threshold(to_decimal(threshold), operator, step=step)
        difference = adjusted - to_decimal(current_total)
    except (InvalidOperation, Overflow) as exc:
        raise EvaluationError(f"Arithmetic failure computing remaining budget: {exc}") from exc
    remaining = quantize_amount(difference, quantize)
    return max(ZERO.quantize(quantize), remaining)
