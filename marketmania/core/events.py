"""
Market news catalogs and per-round event selection.

Three pools feed every round:
- company events (filtered per room to the companies it trades)
- general sector news
- rare historical market shocks
"""
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, List, Mapping, Tuple
import json
import logging
import random

from .errors import CatalogError
from .types import CompanyEvent, HistoricalEvent, MarketEvent, SectorEvent, StockState

logger = logging.getLogger(__name__)

DEFAULT_CATALOG_DIR = Path(__file__).resolve().parent.parent / "data"

COMPANY_EVENTS_FILE = "company_events.json"
GENERAL_EVENTS_FILE = "general_events.json"
HISTORICAL_EVENTS_FILE = "historical_events.json"

EVENTS_PER_ROUND = 5
COMPANY_EVENT_THRESHOLD = 0.6
SECTOR_EVENT_THRESHOLD = 0.95

# ============================================================================
# PARSING
# ============================================================================

def _event_text(raw: Mapping[str, Any]) -> str:
    text = raw.get('event')
    if not isinstance(text, str) or not text:
        raise CatalogError(f"Event record missing text: {raw}")
    return text


def parse_company_event(raw: Mapping[str, Any]) -> CompanyEvent:
    company = raw.get('company')
    impact = raw.get('impact') or {}
    if not company or 'priceChange' not in impact:
        raise CatalogError(f"Malformed company event: {raw}")
    return CompanyEvent(
        event=_event_text(raw),
        company=company,
        price_change=float(impact['priceChange'])
    )


def parse_sector_event(raw: Mapping[str, Any], historical: bool = False) -> SectorEvent:
    sector_impact = raw.get('sectorImpact') or {}
    if not isinstance(sector_impact, Mapping):
        raise CatalogError(f"Malformed sectorImpact: {raw}")
    try:
        impacts = {str(sector): float(pct) for sector, pct in sector_impact.items()}
        move_percent = float(raw.get('movePercent') or 0.0)
    except (TypeError, ValueError) as e:
        raise CatalogError(f"Non-numeric impact in {raw}: {e}") from e

    cls = HistoricalEvent if historical else SectorEvent
    return cls(event=_event_text(raw), sector_impact=impacts, move_percent=move_percent)

# ============================================================================
# CATALOG
# ============================================================================

@dataclass(frozen=True)
class EventCatalog:
    """Global event pools, loaded once at process start"""
    company_events: Tuple[CompanyEvent, ...] = ()
    general_events: Tuple[SectorEvent, ...] = ()
    historical_events: Tuple[HistoricalEvent, ...] = ()

    def __post_init__(self):
        if not self.general_events:
            raise CatalogError("General event pool is empty")
        if not self.historical_events:
            raise CatalogError("Historical event pool is empty")

    @classmethod
    def from_records(
        cls,
        company: Iterable[Mapping[str, Any]],
        general: Iterable[Mapping[str, Any]],
        historical: Iterable[Mapping[str, Any]]
    ) -> "EventCatalog":
        return cls(
            company_events=tuple(parse_company_event(r) for r in company),
            general_events=tuple(parse_sector_event(r) for r in general),
            historical_events=tuple(parse_sector_event(r, historical=True) for r in historical)
        )

    @classmethod
    def load(cls, directory: Path = DEFAULT_CATALOG_DIR) -> "EventCatalog":
        """Read the three JSON pools from a directory"""
        directory = Path(directory)
        catalog = cls.from_records(
            _read_json_list(directory / COMPANY_EVENTS_FILE),
            _read_json_list(directory / GENERAL_EVENTS_FILE),
            _read_json_list(directory / HISTORICAL_EVENTS_FILE)
        )
        logger.info(
            f"Loaded event catalog from {directory}: "
            f"{len(catalog.company_events)} company, "
            f"{len(catalog.general_events)} general, "
            f"{len(catalog.historical_events)} historical"
        )
        return catalog

    def for_stocks(self, stocks: Iterable[StockState]) -> List[CompanyEvent]:
        """Company events whose target trades in the given basket"""
        names = {stock.name for stock in stocks}
        return [event for event in self.company_events if event.company in names]


def _read_json_list(path: Path) -> list:
    try:
        with open(path) as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise CatalogError(f"Cannot read catalog {path}: {e}") from e
    if not isinstance(data, list):
        raise CatalogError(f"Catalog {path} must be a JSON list")
    return data


def load_company_catalog(directory: Path = DEFAULT_CATALOG_DIR) -> List[StockState]:
    """Global stock catalog used to seed persistence"""
    records = _read_json_list(Path(directory) / "companies.json")
    try:
        return [StockState.from_record(r) for r in records]
    except (KeyError, TypeError, ValueError) as e:
        raise CatalogError(f"Malformed company record: {e}") from e

# ============================================================================
# SELECTION
# ============================================================================

def select_round_events(
    company_events: List[CompanyEvent],
    catalog: EventCatalog,
    rng=random
) -> Tuple[List[MarketEvent], List[str]]:
    """
    Draw the next batch of events and their news notices.

    Each draw rolls once: below 0.6 picks a room company event (only when the
    room has any), below 0.95 picks sector news, otherwise a market shock.
    """
    events: List[MarketEvent] = []
    notices: List[str] = []

    for _ in range(EVENTS_PER_ROUND):
        roll = rng.random()
        if roll < COMPANY_EVENT_THRESHOLD and company_events:
            event = rng.choice(company_events)
        elif roll < SECTOR_EVENT_THRESHOLD:
            event = rng.choice(catalog.general_events)
        else:
            event = rng.choice(catalog.historical_events)
        events.append(event)
        notices.append(event.notice())

    logger.debug(f"Selected round events: {notices}")
    return events, notices
