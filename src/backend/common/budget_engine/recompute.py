"""Next-bid-budget recomputation run after every roster change.

Per affected team-season, inside one store transaction:

1. group roster entries by player tier into ``LevelAggregate`` rows, one per
   known tier (tiers with no players get explicit zero rows);
2. recompute team totals (amount spent, RTM uses, free picks, roster size);
3. persist both;
4. evaluate every active ``next_bid_budget`` rule of the season;
5. store ``min(budget limit, common rules, rules referencing the tier)`` as
   each tier's ``next_player_budget``.

A rule that fails to compile or evaluate is logged and left out of the
minimum; it never blocks the other tiers.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from decimal import Decimal
from typing import ContextManager, Dict, Iterable, List, Mapping, Optional, Protocol, Sequence

from .context import EvaluationContext, ZERO, quantize_amount, to_decimal
from .engine import RuleEngine
from .errors import BudgetEngineError, EvaluationError, ResourceNotFound
from .models import (
    BudgetRule,
    LevelAggregate,
    Player,
    PlayerLevel,
    RosterEntry,
    SeasonLimits,
    TeamSeasonBudgetView,
    TeamSeasonTotals,
)


logger = logging.getLogger(__name__)


class AggregateStore(Protocol):
    def transaction(self) -> ContextManager[None]:
        ...

    def get_season(self, season_id: int) -> Optional[SeasonLimits]:
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

    def save_level_aggregates(self, team_season_code: str, aggregates: Mapping[str, LevelAggregate]) -> None:
        ...


def compute_level_aggregates(
    entries: Iterable[RosterEntry],
    players: Mapping[str, Player],
    levels: Sequence[PlayerLevel],
) -> Dict[str, LevelAggregate]:
    amounts: Dict[str, Decimal] = {level.code: ZERO for level in levels}
    counts: Dict[str, int] = {level.code: 0 for level in levels}
    for entry in entries:
        player = players.get(entry.player_code)
        if player is None:
            raise ResourceNotFound("Player", entry.player_code)
        code = player.level_code
        amounts[code] = amounts.get(code, ZERO) + to_decimal(entry.sold_amount)
        counts[code] = counts.get(code, 0) + 1
    return {
        code: LevelAggregate(
            level_code=code,
            total_amount_spent=amounts[code],
            total_player_count=counts[code],
        )
        for code in amounts
    }


def compute_team_totals(team_season: TeamSeasonTotals, entries: Sequence[RosterEntry]) -> TeamSeasonTotals:
    return team_season.model_copy(
        update={
            "total_amount_spent": sum((to_decimal(e.sold_amount) for e in entries), ZERO),
            "total_rtm_used": sum(1 for e in entries if e.is_rtm_used),
            "total_free_used": sum(1 for e in entries if e.is_free),
            "total_player": len(entries),
        }
    )


def derive_next_bid_ceilings(
    engine: RuleEngine,
    context: EvaluationContext,
    rules: Iterable[BudgetRule],
) -> Dict[str, Decimal]:
    settings = engine.settings
    common: List[Decimal] = []
    per_level: Dict[str, List[Decimal]] = defaultdict(list)

    for rule in rules:
        try:
            compiled = engine.compile_rule(rule)
            remaining = compiled.remaining(context, settings)
        except BudgetEngineError as exc:
            logger.warning(
                "Excluding rule %s (%s) from next bid budget of %s: %s",
                rule.id,
                rule.rule_name,
                context.team.code,
                exc,
            )
            continue
        keys = compiled.level_keys
        if not keys:
            common.append(remaining)
        for key in keys:
            per_level[key].append(remaining)

    try:
        base = quantize_amount(to_decimal(context.season.budget_limit), settings.amount_quantize)
    except EvaluationError as exc:
        raise EvaluationError(f"Budget limit of season {context.season.code} is unusable: {exc}") from exc
    # Each remaining() is already clamped at zero, so this is clamp-then-minimize.
    return {code: min([base, *common, *per_level.get(code, [])]) for code in context.player_levels}


class BudgetRecomputer:
    def __init__(self, store: AggregateStore, engine: RuleEngine):
        self._store = store
        self._engine = engine

    def recompute(self, team_season_codes: Iterable[str]) -> List[TeamSeasonBudgetView]:
        """Recompute several team-seasons atomically (all or none are written)."""
        codes = list(dict.fromkeys(code for code in team_season_codes if code))
        with self._store.transaction():
            return [self._recompute_one(code) for code in codes]

    def recompute_team_season(self, code: str) -> TeamSeasonBudgetView:
        return self.recompute([code])[0]

    def _recompute_one(self, code: str) -> TeamSeasonBudgetView:
        team_season = self._store.get_team_season(code)
        if team_season is None:
            raise ResourceNotFound("Team season", code)
        season = self._store.get_season(team_season.season_id)
        if season is None:
            raise ResourceNotFound("Season", team_season.season_id)

        entries = self._store.list_roster_entries(code)
        aggregates = compute_level_aggregates(entries, self._players_for(entries), self._store.list_player_levels())
        team_season = self._store.save_team_season(compute_team_totals(team_season, entries))
        self._store.save_level_aggregates(code, aggregates)

        context = EvaluationContext(team=team_season, season=season, player_levels=aggregates)
        rules = self._engine.get_rules_by_season_and_context(season.id, self._engine.settings.next_bid_context)
        ceilings = derive_next_bid_ceilings(self._engine, context, rules)

        levels = {
            level_code: aggregate.model_copy(update={"next_player_budget": ceilings[level_code]})
            for level_code, aggregate in aggregates.items()
        }
        self._store.save_level_aggregates(code, levels)
        logger.info(
            "Recomputed %s: %d players, spent %s, %d rules, ceilings %s",
            code,
            team_season.total_player,
            team_season.total_amount_spent,
            len(rules),
            {k: str(v) for k, v in ceilings.items()},
        )
        return TeamSeasonBudgetView(
            team_season_code=code,
            totals=team_season,
            levels=sorted(levels.values(), key=lambda a: a.level_code),
        )

    def _players_for(self, entries: Iterable[RosterEntry]) -> Dict[str, Player]:
        players: Dict[str, Player] = {}
        for entry in entries:
            player = self._store.get_player(entry.player_code)
            if player is not None:
                players[player.code] = player
        return players
