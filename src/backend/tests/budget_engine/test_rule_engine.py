from decimal import Decimal

import pytest

from common.budget_engine.config import EngineSettings, get_engine_settings
from common.budget_engine.engine import RuleEngine
from common.budget_engine.errors import EvaluationError, InvalidInput, MalformedRule
from common.budget_engine.models import Operator


SUM_L1_L2 = "l1.totalAmountSpent + l2.totalAmountSpent"


@pytest.mark.parametrize(
    "levels,statement,expected",
    [
        ({"l1": 35, "l2": 21}, f"{SUM_L1_L2} <= 100", Decimal("44.00")),
        ({"l1": 35, "l2": 21}, f"{SUM_L1_L2} < 100", Decimal("43.99")),
        ({"l1": 35, "l2": 21}, f"{SUM_L1_L2} > 100", Decimal("44.01")),
        ({"l1": 30, "l2": 20}, f"{SUM_L1_L2} >= 60", Decimal("10.00")),
        ({}, "l1.totalAmountSpent <= 100", Decimal("100.00")),
    ],
)
def test_budget_scenarios(engine, make_ctx, make_levels, make_rule, levels, statement, expected):
    ctx = make_ctx(player_levels=make_levels(**levels))
    assert engine.evaluate_rule(ctx, make_rule(statement)) == expected


def test_unknown_operator_is_malformed(engine, make_ctx, make_rule):
    with pytest.raises(MalformedRule):
        engine.evaluate_rule(make_ctx(), make_rule("l1.totalAmountSpent INVALID 100"))


def test_team_and_season_fields_in_rule(engine, make_ctx, make_rule, team_season):
    team = team_season.model_copy(update={"total_player": 4})
    ctx = make_ctx(team=team)
    rule = make_rule("team.totalPlayer * 10 <= 100")
    assert engine.evaluate_rule(ctx, rule) == Decimal("60.00")


def test_rule_without_map_names_uses_default_root(engine, make_ctx, make_levels, make_rule):
    ctx = make_ctx(player_levels=make_levels(l1=25))
    rule = make_rule("l1.totalAmountSpent <= 40", map_names=[])
    assert engine.evaluate_rule(ctx, rule) == Decimal("15.00")


def test_fully_qualified_statement_without_notation_map(engine, make_ctx, make_levels, make_rule):
    ctx = make_ctx(player_levels=make_levels(l2=5))
    rule = make_rule("playerLevels.l2.totalAmountSpent * 2 <= 30", notation_map={})
    assert engine.evaluate_rule(ctx, rule) == Decimal("20.00")


def test_division_by_zero_reaches_direct_caller(engine, make_ctx, make_rule):
    with pytest.raises(EvaluationError):
        engine.evaluate_rule(make_ctx(), make_rule("100 / l1.totalPlayerCount <= 10"))


def test_oversized_threshold_reaches_direct_caller_as_evaluation_error(engine, make_ctx, make_rule):
    with pytest.raises(EvaluationError):
        engine.evaluate_rule(make_ctx(), make_rule("l1.totalAmountSpent <= 100000000000000000000000000000"))


def test_evaluate_rule_rejects_missing_inputs(engine, make_ctx, make_rule):
    with pytest.raises(InvalidInput):
        engine.evaluate_rule(None, make_rule("l1.totalAmountSpent <= 1"))
    with pytest.raises(InvalidInput):
        engine.evaluate_rule(make_ctx(), None)
    with pytest.raises(InvalidInput):
        engine.evaluate_rule(make_ctx(), make_rule("   "))


def test_inactive_rule_is_never_evaluated(engine, make_ctx, make_rule):
    with pytest.raises(InvalidInput):
        engine.evaluate_rule(make_ctx(), make_rule("l1.totalAmountSpent <= 1", is_active=False))


def test_compile_rule_exposes_components(engine, make_rule):
    compiled = engine.compile_rule(make_rule(f"{SUM_L1_L2} < 100"))
    assert compiled.components.left_expression == (
        "playerLevels[l1].totalAmountSpent + playerLevels[l2].totalAmountSpent"
    )
    assert compiled.components.operator == Operator.LT
    assert compiled.components.threshold == Decimal("100")
    assert compiled.level_keys == {"l1", "l2"}


def test_rules_by_season_and_context_are_active_and_priority_ordered(engine, store, make_rule):
    store.save_rule(make_rule("l1.totalAmountSpent <= 3", priority=5, rule_name="late"))
    store.save_rule(make_rule("l1.totalAmountSpent <= 1", priority=1, rule_name="early"))
    store.save_rule(make_rule("l1.totalAmountSpent <= 2", priority=0, is_active=False, rule_name="off"))
    store.save_rule(make_rule("l1.totalAmountSpent <= 9", season_id=2, rule_name="other season"))
    store.save_rule(make_rule("l1.totalAmountSpent <= 9", context="player_budget", rule_name="other context"))

    rules = engine.get_rules_by_season_and_context(1, "next_bid_budget")
    assert [r.rule_name for r in rules] == ["early", "late"]


@pytest.mark.parametrize("season_id,context", [(None, "next_bid_budget"), (1, None), (1, ""), (1, "  ")])
def test_rules_query_rejects_missing_keys(engine, season_id, context):
    with pytest.raises(InvalidInput):
        engine.get_rules_by_season_and_context(season_id, context)


def test_evaluate_rules_batch(engine, store, make_ctx, make_levels, make_rule):
    store.save_rule(make_rule(f"{SUM_L1_L2} <= 100", priority=2))
    store.save_rule(make_rule("l1.totalAmountSpent <= 40", priority=1))
    ctx = make_ctx(player_levels=make_levels(l1=30, l2=20))
    assert engine.evaluate_rules(1, "next_bid_budget", ctx) == [Decimal("10.00"), Decimal("50.00")]
    assert engine.evaluate_rules(1, "unknown_context", ctx) == []
    with pytest.raises(InvalidInput):
        engine.evaluate_rules(1, "next_bid_budget", None)


def test_save_rule_assigns_ids(engine, make_rule):
    first = engine.save_rule(make_rule("l1.totalAmountSpent <= 1"))
    second = engine.save_rule(make_rule("l2.totalAmountSpent <= 1"))
    assert first.id == 1 and second.id == 2
    assert [r.id for r in engine.get_all_rules()] == [1, 2]
    with pytest.raises(InvalidInput):
        engine.save_rule(None)


def test_custom_strict_step_from_settings(store, make_ctx, make_levels, make_rule):
    engine = RuleEngine(store, EngineSettings(strict_step=Decimal("1")))
    ctx = make_ctx(player_levels=make_levels(l1=30))
    assert engine.evaluate_rule(ctx, make_rule("l1.totalAmountSpent < 50")) == Decimal("19.00")


def test_settings_read_from_environment(monkeypatch):
    monkeypatch.setenv("BUDGET_NEXT_BID_CONTEXT", "bid_cap")
    monkeypatch.setenv("BUDGET_STRICT_STEP", "0.5")
    monkeypatch.delenv("BUDGET_DEFAULT_MAP_ROOT", raising=False)
    monkeypatch.delenv("BUDGET_AMOUNT_QUANTIZE", raising=False)
    settings = get_engine_settings()
    assert settings.next_bid_context == "bid_cap"
    assert settings.strict_step == Decimal("0.5")
    assert settings.default_map_root == "playerLevels"
    assert settings.amount_quantize == Decimal("0.01")


def test_settings_reject_bad_decimal(monkeypatch):
    monkeypatch.setenv("BUDGET_STRICT_STEP", "a lot")
    with pytest.raises(ValueError, match="BUDGET_STRICT_STEP"):
        get_engine_settings()
