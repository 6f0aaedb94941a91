from __future__ import annotations

import logging
from typing import List, Optional

from common.budget_engine.errors import PlayerLimitExceeded, ResourceNotFound
from common.budget_engine.models import (
    RosterAssignmentRequest,
    RosterEntry,
    SeasonLimits,
    TeamSeasonBudgetView,
)
from common.budget_engine.recompute import BudgetRecomputer

from .auction_store import AuctionStore


logger = logging.getLogger(__name__)


class RosterService:
    """Assign, move and remove players; every change triggers a budget recomputation."""

    def __init__(self, store: AuctionStore, recomputer: BudgetRecomputer):
        self._store = store
        self._recomputer = recomputer

    def save_assignment(self, request: RosterAssignmentRequest) -> RosterEntry:
        team_season = self._store.get_team_season(request.team_season_code)
        if team_season is None:
            raise ResourceNotFound("Team season", request.team_season_code)
        season = self._store.get_season(team_season.season_id)
        if season is None:
            raise ResourceNotFound("Season", team_season.season_id)
        player = self._store.get_player(request.player_code)
        if player is None:
            raise ResourceNotFound("Player", request.player_code)

        existing: Optional[RosterEntry] = None
        if request.code and request.code.strip():
            existing = self._store.get_roster_entry(request.code)
            if existing is None:
                raise ResourceNotFound("Roster entry", request.code)

        generated_code = player.code + team_season.code
        same_entry = existing if existing is not None and existing.code == generated_code else None
        self._validate_limits(season, team_season.code, request, existing)

        entry = RosterEntry(
            code=generated_code,
            player_code=player.code,
            team_season_code=team_season.code,
            sold_amount=request.sold_amount,
            is_free=request.is_free,
            is_rtm_used=request.is_rtm_used,
        )
        affected: List[str] = [team_season.code]
        with self._store.transaction():
            if existing is not None and same_entry is None:
                # Code changed (new team-season or player): drop the old assignment and recompute its team too.
                affected.append(existing.team_season_code)
                self._store.delete_roster_entry(existing.code)
            entry = self._store.save_roster_entry(entry)
            self._recomputer.recompute(affected)

        logger.info("Saved roster entry %s (affected: %s)", entry.code, ", ".join(affected))
        return entry

    def revert_assignment(self, code: str) -> TeamSeasonBudgetView:
        entry = self._store.get_roster_entry(code)
        if entry is None:
            raise ResourceNotFound("Roster entry", code)
        with self._store.transaction():
            self._store.delete_roster_entry(code)
            view = self._recomputer.recompute_team_season(entry.team_season_code)
        logger.info("Reverted roster entry %s from %s", code, entry.team_season_code)
        return view

    def _validate_limits(
        self,
        season: SeasonLimits,
        team_season_code: str,
        request: RosterAssignmentRequest,
        existing: Optional[RosterEntry],
    ) -> None:
        # Counts come from the roster itself; the stored totals are only a cache.
        others = [
            e
            for e in self._store.list_roster_entries(team_season_code)
            if existing is None or e.code != existing.code
        ]
        if request.is_rtm_used:
            used = sum(1 for e in others if e.is_rtm_used)
            if season.max_rtm_allowed <= used:
                raise PlayerLimitExceeded("RTM", used, season.max_rtm_allowed)
        if request.is_free:
            used = sum(1 for e in others if e.is_free)
            if season.max_free_allowed <= used:
                raise PlayerLimitExceeded("free", used, season.max_free_allowed)
        # max_players_allowed of 0 means the season has no roster cap configured.
        staying = existing is not None and existing.team_season_code == team_season_code
        if not staying and season.max_players_allowed > 0:
            if season.max_players_allowed <= len(others):
                raise PlayerLimitExceeded("roster", len(others), season.max_players_allowed)
