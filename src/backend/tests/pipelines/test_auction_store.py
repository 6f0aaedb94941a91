from decimal import Decimal

import pytest
from pydantic import ValidationError

from pipelines.auction_store import load_store_from_payload


def _payload(**roster_row):
    row = {"code": "P1TS1", "player_code": "P1", "team_season_code": "TS1"}
    row.update(roster_row)
    return {
        "seasons": [{"id": 1, "code": "S2025", "year": 2025, "budget_limit": "100"}],
        "player_levels": [{"id": 1, "code": "l1", "name": "Level 1"}],
        "players": [{"code": "P1", "name": "Player P1", "level_code": "l1"}],
        "team_seasons": [{"id": 10, "code": "TS1", "season_id": 1}],
        "roster": [row],
    }


def test_payload_loads_roster_rows():
    store = load_store_from_payload(_payload(sold_amount="12.5"))
    assert store.get_roster_entry("P1TS1").sold_amount == Decimal("12.5")
    assert store.get_team_season("TS1").season_id == 1


def test_payload_rejects_negative_sold_amount():
    with pytest.raises(ValidationError):
        load_store_from_payload(_payload(sold_amount="-3"))


def test_transaction_restores_state_on_error():
    store = load_store_from_payload(_payload(sold_amount="1"))
    with pytest.raises(RuntimeError):
        with store.transaction():
            store.delete_roster_entry("P1TS1")
            raise RuntimeError("boom")
    assert store.get_roster_entry("P1TS1") is not None
