from __future__ import annotations

import contextlib
import copy
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Protocol

from common.budget_engine.models import (
    BudgetRule,
    LevelAggregate,
    Player,
    PlayerLevel,
    RosterEntry,
    SeasonLimits,
    TeamSeasonTotals,
)


logger = logging.getLogger(__name__)


class AuctionStore(Protocol):
    """Storage collaborator used by the rule engine, recomputer and roster service."""

    def transaction(self) -> contextlib.AbstractContextManager[None]:
        ...

    def list_rules(self) -> List[BudgetRule]:
        ...

    def find_rules_by_season_and_context(self, season_id: int, context: str) -> List[BudgetRule]:
        ...

    def save_rule(self, rule: BudgetRule) -> BudgetRule:
        ...

    def get_season(self, season_id: int) -> Optional[SeasonLimits]:
        ...

    def list_team_seasons(self) -> List[TeamSeasonTotals]:
        ...

    def get_team_season(self, code: str) -> Optional[TeamSeasonTotals]:
        ...

    def save_team_season(self, team_season: TeamSeasonTotals) -> TeamSeasonTotals:
        ...

    def get_player(self, code: str) -> Optional[Player]:
        ...

    def list_player_levels(self) -> List[PlayerLevel]:
        ...

    def list_roster_entries(self, team_season_code: str) -> List[RosterEntry]:
        ...

    def get_roster_entry(self, code: str) -> Optional[RosterEntry]:
        ...

    def save_roster_entry(self, entry: RosterEntry) -> RosterEntry:
        ...

    def delete_roster_entry(self, code: str) -> None:
        ...

    def get_level_aggregates(self, team_season_code: str) -> Dict[str, LevelAggregate]:
        ...

    def save_level_aggregates(self, team_season_code: str, aggregates: Mapping[str, LevelAggregate]) -> None:
        ...


@dataclass
class _State:
    seasons: Dict[int, SeasonLimits] = field(default_factory=dict)
    team_seasons: Dict[str, TeamSeasonTotals] = field(default_factory=dict)
    levels: Dict[str, PlayerLevel] = field(default_factory=dict)
    players: Dict[str, Player] = field(default_factory=dict)
    roster: Dict[str, RosterEntry] = field(default_factory=dict)
    aggregates: Dict[str, Dict[str, LevelAggregate]] = field(default_factory=dict)
    rules: Dict[int, BudgetRule] = field(default_factory=dict)


class InMemoryAuctionStore:
    """Dict-backed store; ``transaction()`` restores the prior state if the block raises."""

    def __init__(self) -> None:
        self._state = _State()
        self._next_rule_id = 1

    @contextlib.contextmanager
    def transaction(self) -> Iterator[None]:
        # Nested blocks take their own snapshot, so an inner failure only undoes the inner block.
        snapshot = copy.deepcopy(self._state)
        next_rule_id = self._next_rule_id
        try:
            yield
        except Exception:
            self._state = snapshot
            self._next_rule_id = next_rule_id
            logger.debug("Rolled back in-memory transaction")
            raise

    # ------------------------
    # Master data
    # ------------------------

    def add_season(self, season: SeasonLimits) -> SeasonLimits:
        self._state.seasons[season.id] = season
        return season

    def add_player_level(self, level: PlayerLevel) -> PlayerLevel:
        self._state.levels[level.code] = level
        return level

    def add_player(self, player: Player) -> Player:
        self._state.players[player.code] = player
        return player

    def get_season(self, season_id: int) -> Optional[SeasonLimits]:
        return self._state.seasons.get(season_id)

    def get_player(self, code: str) -> Optional[Player]:
        return self._state.players.get(code)

    def list_player_levels(self) -> List[PlayerLevel]:
        return sorted(self._state.levels.values(), key=lambda level: level.id)

    # ------------------------
    # Team seasons / roster
    # ------------------------

    def list_team_seasons(self) -> List[TeamSeasonTotals]:
        return sorted(self._state.team_seasons.values(), key=lambda ts: ts.id)

    def get_team_season(self, code: str) -> Optional[TeamSeasonTotals]:
        return self._state.team_seasons.get(code)

    def save_team_season(self, team_season: TeamSeasonTotals) -> TeamSeasonTotals:
        self._state.team_seasons[team_season.code] = team_season
        return team_season

    def list_roster_entries(self, team_season_code: str) -> List[RosterEntry]:
        return [e for e in self._state.roster.values() if e.team_season_code == team_season_code]

    def get_roster_entry(self, code: str) -> Optional[RosterEntry]:
        return self._state.roster.get(code)

    def save_roster_entry(self, entry: RosterEntry) -> RosterEntry:
        self._state.roster[entry.code] = entry
        return entry

    def delete_roster_entry(self, code: str) -> None:
        self._state.roster.pop(code, None)

    def get_level_aggregates(self, team_season_code: str) -> Dict[str, LevelAggregate]:
        return dict(self._state.aggregates.get(team_season_code, {}))

    def save_level_aggregates(self, team_season_code: str, aggregates: Mapping[str, LevelAggregate]) -> None:
        self._state.aggregates[team_season_code] = dict(aggregates)

    # ------------------------
    # Rules
    # ------------------------

    def list_rules(self) -> List[BudgetRule]:
        return list(self._state.rules.values())

    def find_rules_by_season_and_context(self, season_id: int, context: str) -> List[BudgetRule]:
        rules = [
            r
            for r in self._state.rules.values()
            if r.season_id == season_id and r.context == context and r.is_active
        ]
        rules.sort(key=lambda r: r.priority)
        return rules

    def save_rule(self, rule: BudgetRule) -> BudgetRule:
        if rule.id is None:
            rule = rule.model_copy(update={"id": self._next_rule_id})
        self._next_rule_id = max(self._next_rule_id, rule.id + 1)
        self._state.rules[rule.id] = rule
        return rule


def load_store_from_payload(payload: Mapping[str, Any]) -> InMemoryAuctionStore:
    """Build a store from a JSON-shaped payload (seasons, levels, players, team_seasons, rules, roster)."""
    store = InMemoryAuctionStore()
    for raw in payload.get("seasons", []):
        store.add_season(SeasonLimits.model_validate(raw))
    for raw in payload.get("player_levels", []):
        store.add_player_level(PlayerLevel.model_validate(raw))
    for raw in payload.get("players", []):
        store.add_player(Player.model_validate(raw))
    for raw in payload.get("team_seasons", []):
        store.save_team_season(TeamSeasonTotals.model_validate(raw))
    for raw in payload.get("rules", []):
        store.save_rule(BudgetRule.model_validate(raw))
    for raw in payload.get("roster", []):
        store.save_roster_entry(RosterEntry.model_validate(raw))
    return store


def load_store_from_file(path: Path) -> InMemoryAuctionStore:
    with path.open(encoding="utf-8") as handle:
        return load_store_from_payload(json.load(handle))
