"""
Price model: pure functions that move stock prices from market events
and per-stock random fluctuation.
"""
from typing import List, Optional, Sequence
import logging
import random

from .types import (
    CompanyEvent, EventKind, MarketEvent, SectorEvent, StockState, PRICE_FLOOR
)

logger = logging.getLogger(__name__)


def clamp_price(price: float) -> float:
    return max(PRICE_FLOOR, price)


def _apply_percent(stock: StockState, percent: float) -> StockState:
    return stock.with_price(stock.price * (1 + percent / 100))


def apply_company_event(stocks: Sequence[StockState], event: CompanyEvent) -> List[StockState]:
    """Move only the stock whose name matches the event's company"""
    return [
        _apply_percent(stock, event.price_change) if stock.name == event.company else stock
        for stock in stocks
    ]


def sector_move(stock: StockState, event: SectorEvent) -> Optional[float]:
    """
    Percent move a sector-style event applies to one stock, or None.

    The first of the stock's sectors (in order) carrying a non-zero impact
    wins. Without a sector hit, a non-zero market default applies.
    """
    for sector in stock.sectors:
        impact = event.sector_impact.get(sector)
        if impact:
            return impact
    if event.move_percent:
        return event.move_percent
    return None


def apply_sector_event(stocks: Sequence[StockState], event: SectorEvent) -> List[StockState]:
    updated = []
    for stock in stocks:
        percent = sector_move(stock, event)
        updated.append(stock if percent is None else _apply_percent(stock, percent))
    return updated


def apply_events(stocks: Sequence[StockState], events: Sequence[MarketEvent]) -> List[StockState]:
    """
    Apply a batch of events in order.
    Each event sees the output of the previous one, so effects compound.
    """
    working = list(stocks)
    for event in events:
        if event.kind is EventKind.COMPANY:
            working = apply_company_event(working, event)
        else:
            working = apply_sector_event(working, event)
        logger.debug(f"Applied {event.kind.value} event: {event.event}")
    return working


def apply_fluctuation(stocks: Sequence[StockState], rng=random) -> List[StockState]:
    """Independent random walk step per stock, floored at PRICE_FLOOR"""
    updated = []
    for stock in stocks:
        fluctuation = (rng.random() - 0.5) * stock.effective_volatility
        updated.append(stock.with_price(clamp_price(stock.price * (1 + fluctuation))))
    return updated


def step_market(
    stocks: Sequence[StockState],
    events: Optional[Sequence[MarketEvent]],
    rng=random
) -> List[StockState]:
    """
    One round of price movement.

    With no pending batch (the first round) prices are left untouched:
    fluctuation only runs alongside a batch of events.
    """
    if events is None:
        return list(stocks)
    return apply_fluctuation(apply_events(stocks, events), rng)
