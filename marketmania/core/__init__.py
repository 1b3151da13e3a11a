"""
Core simulation components.
"""

from .types import StockState, CompanyEvent, SectorEvent, HistoricalEvent, RoomSettings, RoomSimulationState, RoundPhase
from .pricing import apply_events, apply_fluctuation, step_market
from .events import EventCatalog, select_round_events
from .registry import RoomSessionRegistry
from .scheduler import RoundScheduler

__all__ = [
    "StockState",
    "CompanyEvent",
    "SectorEvent",
    "HistoricalEvent",
    "RoomSettings",
    "RoomSimulationState",
    "RoundPhase",
    "apply_events",
    "apply_fluctuation",
    "step_market",
    "EventCatalog",
    "select_round_events",
    "RoomSessionRegistry",
    "RoundScheduler"
]
