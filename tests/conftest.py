"""
Shared fixtures: catalogs, an on-disk store per test and a recording gateway.
"""
from typing import Any, List, Tuple

import pytest

from marketmania.core.events import EventCatalog
from marketmania.core.types import StockState
from marketmania.persistence.store import GameStore


class RecordingGateway:
    """Stands in for BroadcastGateway: keeps every published event"""

    def __init__(self):
        self.published: List[Tuple[str, str, Any]] = []

    def publish(self, room_id: str, event: str, data: Any = None) -> int:
        self.published.append((room_id, event, data))
        return 0

    def events_for(self, room_id: str) -> List[str]:
        return [event for rid, event, _ in self.published if rid == room_id]

    def data_for(self, room_id: str, event: str) -> List[Any]:
        return [data for rid, name, data in self.published if rid == room_id and name == event]


def make_catalog(company=None, general=None, historical=None) -> EventCatalog:
    return EventCatalog.from_records(
        company or [],
        general or [{"event": "Markets drift", "sectorImpact": {}, "movePercent": 1}],
        historical or [{"event": "Crash", "sectorImpact": {}, "movePercent": -10}]
    )


BASKET = [
    StockState(name="Alpha Corp", price=100.0, sectors=("Tech",), volatility=0.02),
    StockState(name="Beta Bank", price=50.0, sectors=("Banking",), volatility=0.02),
    StockState(name="Gamma Energy", price=20.0, sectors=("Energy",), volatility=0.02),
]


@pytest.fixture
def catalog():
    return make_catalog(
        company=[{"company": "Alpha Corp", "event": "Beats estimates", "impact": {"priceChange": 5}}]
    )


@pytest.fixture
def gateway():
    return RecordingGateway()


@pytest.fixture
async def store(tmp_path):
    """Initialized store with the test basket in the global catalog"""
    store = GameStore(str(tmp_path / "test.db"))
    await store.init()
    await store.seed_global_stocks(BASKET)
    yield store
    await store.close()
