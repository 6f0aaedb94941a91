"""Textual rewrite passes applied to a stored rule statement before evaluation.

Each pass is a plain string -> string function:

- ``expand_notation``: ``l1.totalAmountSpent`` -> ``playerLevels.l1.totalAmountSpent``
- ``split_rule``: ``<left> <op> <number>`` -> ``RuleComponents``
- ``rewrite_map_paths``: ``playerLevels.l1.totalAmountSpent`` -> ``playerLevels[l1].totalAmountSpent``

None of them parse the arithmetic; that is left to ``expression``.
"""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation
from typing import Mapping, Optional, Sequence

from .config import DEFAULT_MAP_ROOT
from .errors import InvalidInput, MalformedRule
from .models import Operator, RuleComponents


# Checked in order: two-character forms first so "<=" is never split on "<".
_OPERATOR_TOKENS: tuple[tuple[str, Operator], ...] = (
    (" <= ", Operator.LE),
    (" >= ", Operator.GE),
    (" < ", Operator.LT),
    (" > ", Operator.GT),
    (" == ", Operator.EQ),
    (" = ", Operator.EQ),
)

# A shorthand token must not continue a word or a dotted path, so "xl1." and
# the already-expanded "playerLevels.l1." are both left alone.
_TOKEN_LOOKBEHIND = r"(?<![\w.])"


def _has_text(value: Optional[str]) -> bool:
    return bool(value and value.strip())


def shorthand_pattern(prefix: str) -> re.Pattern[str]:
    return re.compile(_TOKEN_LOOKBEHIND + "(" + re.escape(prefix) + r"(\d+))\.")


def expand_notation(text: Optional[str], notation_map: Optional[Mapping[str, str]]) -> Optional[str]:
    """Rewrite shorthand tier tokens into fully-qualified context paths.

    ``{"l": "playerLevels.l"}`` turns ``l1.totalAmountSpent`` into
    ``playerLevels.l1.totalAmountSpent``. Entries with a blank pattern or
    replacement are skipped.
    """
    if text is None or not notation_map:
        return text

    result = text
    for pattern, replacement in notation_map.items():
        if not (_has_text(pattern) and _has_text(replacement)):
            continue
        result = shorthand_pattern(pattern).sub(
            lambda m, p=pattern, r=replacement: _expand_token(m, p, r) + ".",
            result,
        )
    return result


def _expand_token(match: re.Match[str], pattern: str, replacement: str) -> str:
    token, digits = match.group(1), match.group(2)
    if replacement.endswith("." + pattern):
        return replacement[: len(replacement) - len(pattern)] + token
    if pattern in replacement:
        return replacement.replace(pattern, token, 1)
    return replacement + digits


def split_rule(expanded: Optional[str]) -> RuleComponents:
    """Split ``<left> <op> <number>`` on the first supported operator token."""
    if not _has_text(expanded):
        raise InvalidInput("Rule cannot be null or empty")

    for token, operator in _OPERATOR_TOKENS:
        if token not in expanded:
            continue
        left, right = expanded.split(token, 1)
        left = left.strip()
        if not left:
            raise MalformedRule(f"Rule has no left-hand expression: {expanded}")
        return RuleComponents(
            left_expression=left,
            operator=operator,
            threshold=_parse_threshold(right.strip(), expanded),
        )

    raise MalformedRule(f"Unsupported rule format: {expanded}")


def _parse_threshold(raw: str, rule: str) -> Decimal:
    try:
        value = Decimal(raw)
    except InvalidOperation as exc:
        raise MalformedRule(f"Rule threshold is not a number: {raw!r} in {rule}") from exc
    if not value.is_finite():
        raise MalformedRule(f"Rule threshold is not a finite number: {raw!r} in {rule}")
    return value


def rewrite_map_paths(
    expression: Optional[str],
    map_names: Optional[Sequence[str]],
    *,
    default_root: str = DEFAULT_MAP_ROOT,
) -> Optional[str]:
    """Turn ``root.key.field`` into ``root[key].field`` for each map root.

    Only the first segment after the root becomes a map key. With no roots
    configured, ``default_root`` is rewritten.
    """
    if expression is None:
        return None

    roots = [name for name in (map_names or []) if _has_text(name)]
    if not roots:
        roots = [default_root]

    result = expression
    for root in roots:
        root = root.strip()
        path = re.compile(_TOKEN_LOOKBEHIND + re.escape(root) + r"\.([A-Za-z0-9]+)\.")
        result = path.sub(lambda m, r=root: f"{r}[{m.group(1)}].", result)
    return result
