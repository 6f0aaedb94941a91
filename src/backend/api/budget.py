from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Response

from common.budget_engine.engine import RuleEngine
from common.budget_engine.errors import BudgetEngineError, ResourceNotFound
from common.budget_engine.models import (
    BudgetRule,
    RosterAssignmentRequest,
    RosterEntry,
    TeamSeasonBudgetView,
)
from common.budget_engine.recompute import BudgetRecomputer
from pipelines.auction_store import AuctionStore, InMemoryAuctionStore
from pipelines.roster_service import RosterService


router = APIRouter(tags=["budget"])

_SERVICES: dict[str, object] = {}


def configure(store: AuctionStore) -> None:
    """Bind the routes to a store (the process default is an empty in-memory store)."""
    engine = RuleEngine(store)
    recomputer = BudgetRecomputer(store, engine)
    _SERVICES.clear()
    _SERVICES.update(
        store=store,
        engine=engine,
        recomputer=recomputer,
        roster=RosterService(store, recomputer),
    )


def _service(name: str):
    if not _SERVICES:
        configure(InMemoryAuctionStore())
    return _SERVICES[name]


def _http_error(exc: BudgetEngineError) -> HTTPException:
    if isinstance(exc, ResourceNotFound):
        return HTTPException(status_code=404, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))


@router.get("/rules", response_model=list[BudgetRule])
def list_rules(
    season_id: Optional[int] = Query(None),
    context: Optional[str] = Query(None),
):
    engine: RuleEngine = _service("engine")
    try:
        if season_id is not None and context is not None:
            return engine.get_rules_by_season_and_context(season_id, context)
        return engine.get_all_rules()
    except BudgetEngineError as exc:
        raise _http_error(exc) from exc


@router.post("/rules", response_model=BudgetRule, status_code=201)
def create_rule(rule: BudgetRule):
    engine: RuleEngine = _service("engine")
    try:
        return engine.save_rule(rule)
    except BudgetEngineError as exc:
        raise _http_error(exc) from exc


@router.post("/player-teams", response_model=RosterEntry)
def save_player_team(request: RosterAssignmentRequest):
    roster: RosterService = _service("roster")
    try:
        return roster.save_assignment(request)
    except BudgetEngineError as exc:
        raise _http_error(exc) from exc


@router.delete("/player-teams/{code}", status_code=204)
def revert_player_team(code: str):
    roster: RosterService = _service("roster")
    try:
        roster.revert_assignment(code)
    except BudgetEngineError as exc:
        raise _http_error(exc) from exc
    return Response(status_code=204)


@router.get("/team-seasons/{code}/levels", response_model=TeamSeasonBudgetView)
def team_season_levels(code: str):
    store: AuctionStore = _service("store")
    team_season = store.get_team_season(code)
    if team_season is None:
        raise HTTPException(status_code=404, detail=f"Team season not found: {code}")
    levels = store.get_level_aggregates(code)
    return TeamSeasonBudgetView(
        team_season_code=code,
        totals=team_season,
        levels=sorted(levels.values(), key=lambda a: a.level_code),
    )
