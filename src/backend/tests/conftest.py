import os
import sys


# Ensure `src/backend` is on sys.path so imports like `import common...` work,
# even when pytest's rootdir is the repository root (repo-level pytest.ini).
BACKEND_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if BACKEND_DIR not in sys.path:
    sys.path.insert(0, BACKEND_DIR)

from decimal import Decimal

import pytest

from common.budget_engine.config import EngineSettings
from common.budget_engine.context import EvaluationContext
from common.budget_engine.engine import RuleEngine
from common.budget_engine.models import (
    BudgetRule,
    LevelAggregate,
    Player,
    PlayerLevel,
    RosterEntry,
    SeasonLimits,
    TeamSeasonTotals,
)
from pipelines.auction_store import InMemoryAuctionStore


@pytest.fixture
def settings() -> EngineSettings:
    return EngineSettings()


@pytest.fixture
def season() -> SeasonLimits:
    return SeasonLimits(
        id=1,
        code="S2025",
        budget_limit=Decimal("100"),
        min_player_amount=Decimal("1"),
        max_players_allowed=15,
        max_rtm_allowed=2,
        max_free_allowed=1,
    )


@pytest.fixture
def team_season() -> TeamSeasonTotals:
    return TeamSeasonTotals(id=10, code="TS1", season_id=1, team_name="Strikers")


@pytest.fixture
def make_levels():
    def _make(**spent) -> dict[str, LevelAggregate]:
        return {
            code: LevelAggregate(level_code=code, total_amount_spent=Decimal(str(amount)), total_player_count=1)
            for code, amount in spent.items()
        }

    return _make


@pytest.fixture
def make_ctx(season, team_season):
    def _make(*, player_levels=None, team=None, season_limits=None) -> EvaluationContext:
        return EvaluationContext(
            team=team or team_season,
            season=season_limits or season,
            player_levels=player_levels or {},
        )

    return _make


@pytest.fixture
def make_rule():
    def _make(statement: str, **overrides) -> BudgetRule:
        values = {
            "season_id": 1,
            "context": "next_bid_budget",
            "rule_name": "level budget",
            "rule_statement": statement,
            "notation_map": {"l": "playerLevels.l"},
            "map_names": ["playerLevels"],
        }
        values.update(overrides)
        return BudgetRule(**values)

    return _make


@pytest.fixture
def store() -> InMemoryAuctionStore:
    return InMemoryAuctionStore()


@pytest.fixture
def engine(store, settings) -> RuleEngine:
    return RuleEngine(store, settings)


@pytest.fixture
def seeded_store(store, season, team_season) -> InMemoryAuctionStore:
    store.add_season(season)
    for index, code in enumerate(("l1", "l2", "l3"), start=1):
        store.add_player_level(PlayerLevel(id=index, code=code, name=f"Level {index}"))
    for code, level in (("P1", "l1"), ("P2", "l1"), ("P3", "l2"), ("P4", "l2"), ("P5", "l3"), ("P6", "l1")):
        store.add_player(Player(code=code, name=f"Player {code}", level_code=level))
    store.save_team_season(team_season)
    store.save_team_season(TeamSeasonTotals(id=11, code="TS2", season_id=1, team_name="Chargers"))
    return store


@pytest.fixture
def make_entry():
    def _make(player_code: str, team_season_code: str = "TS1", amount=None, **flags) -> RosterEntry:
        return RosterEntry(
            code=player_code + team_season_code,
            player_code=player_code,
            team_season_code=team_season_code,
            sold_amount=Decimal(str(amount)) if amount is not None else None,
            **flags,
        )

    return _make
