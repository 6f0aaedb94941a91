from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path


def _ensure_backend_on_path() -> None:
    backend_dir = Path(__file__).resolve().parents[1]
    if str(backend_dir) not in sys.path:
        sys.path.insert(0, str(backend_dir))


def run_recompute_from_file(fixture_path: Path, *, team_season_codes: list[str] | None = None):
    """Load an auction fixture and recompute next-bid ceilings for its team-seasons."""
    _ensure_backend_on_path()
    from common.budget_engine.engine import RuleEngine
    from common.budget_engine.recompute import BudgetRecomputer
    from pipelines.auction_store import load_store_from_file

    store = load_store_from_file(fixture_path)
    codes = team_season_codes or [ts.code for ts in store.list_team_seasons()]
    recomputer = BudgetRecomputer(store, RuleEngine(store))
    return recomputer.recompute(codes)


def _to_markdown(views) -> str:
    lines = ["# Next bid budgets", ""]
    for view in views:
        totals = view.totals
        lines.append(f"## {view.team_season_code}")
        lines.append(
            f"- Spent: {totals.total_amount_spent} | Players: {totals.total_player}"
            f" | RTM used: {totals.total_rtm_used} | Free used: {totals.total_free_used}"
        )
        for level in view.levels:
            lines.append(
                f"  - {level.level_code}: spent {level.total_amount_spent},"
                f" players {level.total_player_count}, next bid {level.next_player_budget}"
            )
        lines.append("")
    return "\n".join(lines)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Recompute per-tier next bid budgets from an auction fixture (JSON)."
    )
    parser.add_argument("fixture", help="Path to a JSON fixture with seasons, levels, players, rules and roster.")
    parser.add_argument(
        "--team-season",
        action="append",
        dest="team_seasons",
        default=None,
        help="Team-season code to recompute (repeatable; defaults to all).",
    )
    parser.add_argument(
        "--format",
        choices=("json", "markdown"),
        default="json",
        help="Output format (default: json).",
    )
    parser.add_argument("--log-level", default="WARNING", help="Logging level (default: WARNING).")
    args = parser.parse_args(argv)

    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    views = run_recompute_from_file(Path(args.fixture).resolve(), team_season_codes=args.team_seasons)
    if args.format == "markdown":
        print(_to_markdown(views))
    else:
        print(json.dumps([v.model_dump(mode="json") for v in views], indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
