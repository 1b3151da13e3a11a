"""
Domain models for the round-based market simulation.
Stocks and events are immutable; a price step always produces new values.
"""
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, ClassVar, List, Mapping, Optional, Tuple
import asyncio

DEFAULT_VOLATILITY = 0.02
PRICE_FLOOR = 0.01

# ============================================================================
# ENUMS
# ============================================================================

class EventKind(Enum):
    COMPANY = "company"
    SECTOR = "sector"
    HISTORICAL = "historical"

class RoundPhase(Enum):
    IDLE = "IDLE"
    PREVIEWING = "PREVIEWING"
    ROUND_ACTIVE = "ROUND_ACTIVE"
    ROUND_BREAK = "ROUND_BREAK"
    FINISHED = "FINISHED"

class GameStatus(Enum):
    WAITING = "waiting"
    IN_PROGRESS = "in_progress"
    FINISHED = "finished"

# ============================================================================
# STOCKS
# ============================================================================

@dataclass(frozen=True)
class StockState:
    """Immutable per-room stock snapshot"""
    name: str
    price: float
    pe_ratio: float = 0.0
    total_volume: int = 0
    volatility: float = DEFAULT_VOLATILITY
    sectors: Tuple[str, ...] = ()

    def __post_init__(self):
        if not self.name:
            raise ValueError("Stock name must not be empty")

    @property
    def effective_volatility(self) -> float:
        return self.volatility or DEFAULT_VOLATILITY

    def with_price(self, price: float) -> "StockState":
        return replace(self, price=price)

    def to_dict(self) -> dict:
        """Wire shape consumed by the browser client"""
        return {
            'name': self.name,
            'price': self.price,
            'pe': self.pe_ratio,
            'sectors': list(self.sectors),
            'totalVolume': self.total_volume,
            'volatility': self.volatility
        }

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "StockState":
        """Build from a catalog or database record (either naming style)"""
        price = float(record['price'])
        if price <= 0:
            raise ValueError(f"Stock price must be positive: {record}")
        return cls(
            name=record.get('name') or record.get('stock_name'),
            price=price,
            pe_ratio=float(record.get('pe', record.get('pe_ratio')) or 0.0),
            total_volume=int(record.get('totalVolume', record.get('total_volume')) or 0),
            volatility=float(record.get('volatility') or 0.0) or DEFAULT_VOLATILITY,
            sectors=tuple(record.get('sectors') or ())
        )

# ============================================================================
# MARKET EVENTS (tagged union)
# ============================================================================

@dataclass(frozen=True)
class MarketEvent:
    """Base market news event"""
    event: str
    kind: ClassVar[EventKind]

    def notice(self) -> str:
        raise NotImplementedError

@dataclass(frozen=True)
class CompanyEvent(MarketEvent):
    """News that moves a single company"""
    company: str = ""
    price_change: float = 0.0
    kind: ClassVar[EventKind] = EventKind.COMPANY

    def notice(self) -> str:
        return f"[{self.company}] {self.event}"

@dataclass(frozen=True)
class SectorEvent(MarketEvent):
    """News that moves whole sectors, or the market at a default percent"""
    sector_impact: Mapping[str, float] = field(default_factory=dict)
    move_percent: float = 0.0
    kind: ClassVar[EventKind] = EventKind.SECTOR

    def notice(self) -> str:
        return f"[SECTOR NEWS] {self.event}"

@dataclass(frozen=True)
class HistoricalEvent(SectorEvent):
    """Rare market-wide shock"""
    kind: ClassVar[EventKind] = EventKind.HISTORICAL

    def notice(self) -> str:
        return f"[MARKET SHOCK] {self.event}"

# ============================================================================
# ROOMS
# ============================================================================

@dataclass(frozen=True)
class RoomSettings:
    """Per-room game configuration"""
    room_id: str
    round_duration_seconds: float
    round_count: int

    def __post_init__(self):
        if self.round_duration_seconds <= 0:
            raise ValueError("Round duration must be positive")
        if self.round_count < 1:
            raise ValueError("Round count must be at least 1")

@dataclass
class RoomSimulationState:
    """Mutable simulation state for one active room. Owned by the scheduler."""
    room_id: str
    settings: RoomSettings
    stocks: List[StockState]
    company_events: List[CompanyEvent] = field(default_factory=list)
    round: int = 0
    phase: RoundPhase = RoundPhase.IDLE
    pending_events: Optional[List[MarketEvent]] = None
    pending_timer: Optional[asyncio.TimerHandle] = None

    def stock_payload(self) -> List[dict]:
        return [stock.to_dict() for stock in self.stocks]
