from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


NEXT_BID_BUDGET_CONTEXT = "next_bid_budget"


class Operator(str, Enum):
    LE = "<="
    GE = ">="
    LT = "<"
    GT = ">"
    EQ = "=="


@dataclass(frozen=True)
class RuleComponents:
    left_expression: str
    operator: Operator
    threshold: Decimal


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class BudgetRule(BaseModel):
    id: Optional[int] = None
    season_id: int
    context: str
    rule_category: Optional[str] = None
    rule_name: str = ""
    rule_statement: str
    # Shorthand prefix -> expansion prefix, e.g. {"l": "playerLevels.l"}.
    notation_map: Dict[str, str] = Field(default_factory=dict)
    # Roots whose first dot segment is a dynamic map key, e.g. ["playerLevels"].
    map_names: List[str] = Field(default_factory=list)
    is_active: bool = True
    priority: int = 0
    created_at: datetime = Field(default_factory=_utc_now)


class SeasonLimits(BaseModel):
    id: int
    code: str = ""
    year: Optional[int] = None
    budget_limit: Decimal = Decimal("0")
    min_player_amount: Decimal = Decimal("0")
    max_players_allowed: int = 0
    max_rtm_allowed: int = 0
    max_free_allowed: int = 0
    is_auction_completed: bool = False


class TeamSeasonTotals(BaseModel):
    id: int
    code: str
    season_id: int
    team_name: str = ""
    total_amount_spent: Decimal = Decimal("0")
    total_rtm_used: int = 0
    total_free_used: int = 0
    total_player: int = 0


class PlayerLevel(BaseModel):
    id: int
    code: str
    name: str = ""


class Player(BaseModel):
    code: str
    name: str = ""
    level_code: str


class LevelAggregate(BaseModel):
    level_code: str
    total_amount_spent: Decimal = Field(default=Decimal("0"), ge=0)
    total_player_count: int = Field(default=0, ge=0)
    # Cached next bid ceiling; overwritten on every recomputation pass.
    next_player_budget: Optional[Decimal] = None


class RosterEntry(BaseModel):
    code: str
    player_code: str
    team_season_code: str
    sold_amount: Optional[Decimal] = Field(default=None, ge=0)
    is_free: bool = False
    is_rtm_used: bool = False


class RosterAssignmentRequest(BaseModel):
    code: Optional[str] = None
    player_code: str
    team_season_code: str
    sold_amount: Optional[Decimal] = Field(default=None, ge=0)
    is_free: bool = False
    is_rtm_used: bool = False


class TeamSeasonBudgetView(BaseModel):
    team_season_code: str
    totals: TeamSeasonTotals
    levels: List[LevelAggregate] = Field(default_factory=list)
