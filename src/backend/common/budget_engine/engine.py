from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional, Protocol, Set

from .config import EngineSettings, get_engine_settings
from .context import EvaluationContext, remaining_budget
from .errors import InvalidInput
from .expression import Node, parse_expression, referenced_map_keys
from .models import BudgetRule, RuleComponents
from .notation import expand_notation, rewrite_map_paths, split_rule


logger = logging.getLogger(__name__)


class RuleStore(Protocol):
    def list_rules(self) -> List[BudgetRule]:
        """Return every stored rule, active or not."""
        ...

    def find_rules_by_season_and_context(self, season_id: int, context: str) -> List[BudgetRule]:
        """Return active rules for the season and context, ordered by ascending priority."""
        ...

    def save_rule(self, rule: BudgetRule) -> BudgetRule:
        """Persist a rule, assigning an id when it has none."""
        ...


@dataclass(frozen=True)
class CompiledRule:
    rule: BudgetRule
    components: RuleComponents
    tree: Node

    @property
    def level_keys(self) -> Set[str]:
        return referenced_map_keys(self.tree)

    def remaining(self, context: EvaluationContext, settings: EngineSettings) -> Decimal:
        current_total = self.tree.evaluate(context)
        return remaining_budget(
            self.components.threshold,
            self.components.operator,
            current_total,
            step=settings.strict_step,
            quantize=settings.amount_quantize,
        )


class RuleEngine:
    def __init__(self, store: RuleStore, settings: Optional[EngineSettings] = None):
        self._store = store
        self._settings = settings or get_engine_settings()

    @property
    def settings(self) -> EngineSettings:
        return self._settings

    def get_all_rules(self) -> List[BudgetRule]:
        return self._store.list_rules()

    def save_rule(self, rule: Optional[BudgetRule]) -> BudgetRule:
        if rule is None:
            raise InvalidInput("Rule cannot be null")
        return self._store.save_rule(rule)

    def get_rules_by_season_and_context(self, season_id: Optional[int], context: Optional[str]) -> List[BudgetRule]:
        _require_season_and_context(season_id, context)
        rules = self._store.find_rules_by_season_and_context(season_id, context)
        return sorted((r for r in rules if r.is_active), key=lambda r: r.priority)

    def compile_rule(self, rule: Optional[BudgetRule]) -> CompiledRule:
        """Expand, split, rewrite and parse a rule statement without evaluating it."""
        if rule is None:
            raise InvalidInput("Rule cannot be null")
        if not rule.rule_statement or not rule.rule_statement.strip():
            raise InvalidInput("Rule statement cannot be null or empty")
        if not rule.is_active:
            raise InvalidInput(f"Rule {rule.id} is inactive and cannot be evaluated")

        expanded = expand_notation(rule.rule_statement, rule.notation_map)
        components = split_rule(expanded)
        left = rewrite_map_paths(
            components.left_expression,
            rule.map_names,
            default_root=self._settings.default_map_root,
        )
        components = RuleComponents(
            left_expression=left,
            operator=components.operator,
            threshold=components.threshold,
        )
        return CompiledRule(rule=rule, components=components, tree=parse_expression(left))

    def evaluate_rule(self, context: Optional[EvaluationContext], rule: Optional[BudgetRule]) -> Decimal:
        if context is None:
            raise InvalidInput("Evaluation context cannot be null")
        compiled = self.compile_rule(rule)
        remaining = compiled.remaining(context, self._settings)
        logger.debug(
            "Rule %s (%s) -> %s %s %s, remaining %s",
            rule.id,
            rule.rule_name,
            compiled.components.left_expression,
            compiled.components.operator.value,
            compiled.components.threshold,
            remaining,
        )
        return remaining

    def evaluate_rules(
        self,
        season_id: Optional[int],
        context_tag: Optional[str],
        data: Optional[EvaluationContext],
    ) -> List[Decimal]:
        _require_season_and_context(season_id, context_tag)
        if data is None:
            raise InvalidInput("Evaluation context cannot be null")
        rules = self.get_rules_by_season_and_context(season_id, context_tag)
        return [self.evaluate_rule(data, rule) for rule in rules]


def _require_season_and_context(season_id: Optional[int], context: Optional[str]) -> None:
    if season_id is None:
        raise InvalidInput("Season ID cannot be null")
    if not context or not context.strip():
        raise InvalidInput("Context cannot be null or empty")
