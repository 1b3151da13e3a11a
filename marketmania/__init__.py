"""
Market Mania round simulation engine

Server-authoritative, per-room market simulation: timed rounds, layered
news events, persisted price history and room broadcasts.
"""

__version__ = "1.0.0"

from .core.types import (
    StockState, MarketEvent, CompanyEvent, SectorEvent, HistoricalEvent,
    EventKind, RoomSettings, RoomSimulationState, RoundPhase, GameStatus
)
from .core.errors import (
    MarketManiaError, ConfigurationError, RoomNotFound, CatalogError, RoomAlreadyActive
)
from .core.pricing import apply_events, apply_fluctuation, step_market
from .core.events import EventCatalog, select_round_events
from .core.registry import RoomSessionRegistry
from .core.scheduler import RoundScheduler
from .persistence.store import GameStore
from .streaming.gateway import BroadcastGateway

__all__ = [
    "StockState",
    "MarketEvent",
    "CompanyEvent",
    "SectorEvent",
    "HistoricalEvent",
    "EventKind",
    "RoomSettings",
    "RoomSimulationState",
    "RoundPhase",
    "GameStatus",
    "MarketManiaError",
    "ConfigurationError",
    "RoomNotFound",
    "CatalogError",
    "RoomAlreadyActive",
    "apply_events",
    "apply_fluctuation",
    "step_market",
    "EventCatalog",
    "select_round_events",
    "RoomSessionRegistry",
    "RoundScheduler",
    "GameStore",
    "BroadcastGateway"
]
