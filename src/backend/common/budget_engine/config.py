from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from dotenv import load_dotenv

from .models import NEXT_BID_BUDGET_CONTEXT


load_dotenv()

DEFAULT_MAP_ROOT = "playerLevels"


@dataclass(frozen=True)
class EngineSettings:
    next_bid_context: str = NEXT_BID_BUDGET_CONTEXT
    default_map_root: str = DEFAULT_MAP_ROOT
    # Offset applied to thresholds of strict comparisons (< and >).
    strict_step: Decimal = Decimal("0.01")
    amount_quantize: Decimal = Decimal("0.01")


def get_engine_settings() -> EngineSettings:
    """
    Load engine settings from environment variables.

    Reads BUDGET_NEXT_BID_CONTEXT, BUDGET_DEFAULT_MAP_ROOT, BUDGET_STRICT_STEP
    and BUDGET_AMOUNT_QUANTIZE; unset variables keep their defaults.
    """
    return EngineSettings(
        next_bid_context=_env_str("BUDGET_NEXT_BID_CONTEXT", NEXT_BID_BUDGET_CONTEXT),
        default_map_root=_env_str("BUDGET_DEFAULT_MAP_ROOT", DEFAULT_MAP_ROOT),
        strict_step=_env_decimal("BUDGET_STRICT_STEP", Decimal("0.01")),
        amount_quantize=_env_decimal("BUDGET_AMOUNT_QUANTIZE", Decimal("0.01")),
    )


def _env_str(name: str, default: str) -> str:
    value = os.getenv(name, "").strip()
    return value or default


def _env_decimal(name: str, default: Decimal) -> Decimal:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        value = Decimal(raw)
    except InvalidOperation as exc:
        raise ValueError(f"{name} must be a decimal number (got {raw!r}).") from exc
    if not value.is_finite() or value < 0:
        raise ValueError(f"{name} must be a non-negative decimal number (got {raw!r}).")
    return value
