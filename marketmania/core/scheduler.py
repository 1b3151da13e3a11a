"""
Per-room round scheduler.

A timer-driven state machine:

    IDLE -> PREVIEWING -> ROUND_ACTIVE -> ROUND_BREAK -> (ROUND_ACTIVE | FINISHED)

Every room has at most one pending timer. When it fires, advance(room_id)
runs and picks the next transition (and its delay) from the room's phase.
"""
from dataclasses import dataclass
from typing import List, Optional, Set
import asyncio
import logging
import random

from .errors import ConfigurationError
from .events import EventCatalog, select_round_events
from .pricing import step_market
from .registry import RoomSessionRegistry
from .types import GameStatus, RoomSimulationState, RoundPhase, StockState
from ..streaming import gateway as channel

logger = logging.getLogger(__name__)

PREVIEW_SECONDS = 10
BREAK_SECONDS = 6


@dataclass
class SchedulerStats:
    """Performance metrics"""
    games_started: int = 0
    games_finished: int = 0
    starts_rejected: int = 0
    starts_failed: int = 0
    rounds_played: int = 0
    history_rows_written: int = 0
    history_write_errors: int = 0


class RoundScheduler:
    """
    Drives every active room through its rounds.

    - One RoomSimulationState per room, kept in the registry
    - Exactly one scheduled transition per room
    - Broadcasts go out synchronously inside a transition, so their order
      within a tick is fixed
    - History writes run as background tasks and never hold up the timers
    """

    def __init__(
        self,
        store: 'GameStore',
        gateway: 'BroadcastGateway',
        catalog: EventCatalog,
        registry: Optional[RoomSessionRegistry] = None,
        preview_seconds: float = PREVIEW_SECONDS,
        break_seconds: float = BREAK_SECONDS,
        speed_multiplier: float = 1.0,
        rng: Optional[random.Random] = None
    ):
        if speed_multiplier <= 0:
            raise ValueError("speed_multiplier must be positive")

        self.store = store
        self.gateway = gateway
        self.catalog = catalog
        self.registry = registry if registry is not None else RoomSessionRegistry()
        self.preview_seconds = preview_seconds
        self.break_seconds = break_seconds
        self.speed_multiplier = speed_multiplier
        self.rng = rng or random.Random()

        self._starting: Set[str] = set()
        self._transitions: Set[asyncio.Task] = set()
        self._history_writes: Set[asyncio.Task] = set()

        self.stats = SchedulerStats()

    # ========================================================================
    # START
    # ========================================================================

    async def start_game(self, room_id: str) -> bool:
        """
        Start the simulation for a room.
        Returns False when the room is already running (or starting) or when
        its configuration cannot be loaded.
        """
        if room_id in self.registry or room_id in self._starting:
            self.stats.starts_rejected += 1
            logger.warning(f"Start ignored: room {room_id} already active")
            return False

        self._starting.add(room_id)
        try:
            try:
                settings = await self.store.get_room_settings(room_id)
                stocks = await self.store.get_room_stocks(room_id)
                if not stocks:
                    raise ConfigurationError(f"Room {room_id} has no stocks")
                await self.store.set_game_status(room_id, GameStatus.IN_PROGRESS)
            except Exception as e:
                self.stats.starts_failed += 1
                logger.error(f"Error starting game {room_id}: {e}", exc_info=True)
                self.gateway.publish(room_id, channel.START_FAILED, str(e))
                return False

            state = RoomSimulationState(
                room_id=room_id,
                settings=settings,
                stocks=list(stocks),
                company_events=self.catalog.for_stocks(stocks),
                phase=RoundPhase.PREVIEWING
            )
            self.registry.create(state)
        finally:
            self._starting.discard(room_id)

        self.stats.games_started += 1
        logger.info(
            f"Game {room_id} started: {len(state.stocks)} stocks, "
            f"{settings.round_count} rounds of {settings.round_duration_seconds}s"
        )

        self.gateway.publish(room_id, channel.GAME_STARTED)
        self.gateway.publish(room_id, channel.MARKET_PREVIEW, int(self.preview_seconds))
        self._schedule(state, self.preview_seconds)
        return True

    # ========================================================================
    # STATE MACHINE
    # ========================================================================

    async def advance(self, room_id: str):
        """Run the transition due for the room's current phase"""
        state = self.registry.get(room_id)
        if state is None:
            return  # Torn down while the timer was pending
        state.pending_timer = None

        if state.phase in (RoundPhase.PREVIEWING, RoundPhase.ROUND_BREAK):
            await self._enter_round(state)
        elif state.phase == RoundPhase.ROUND_ACTIVE:
            self._end_round(state)
        else:
            logger.warning(f"Room {room_id} advanced from unexpected phase {state.phase.value}")

    async def _enter_round(self, state: RoomSimulationState):
        state.round += 1

        if state.round > state.settings.round_count:
            await self._finish(state)
            return

        state.phase = RoundPhase.ROUND_ACTIVE
        self.stats.rounds_played += 1
        logger.info(f"Starting round {state.round} for {state.room_id}")
        self.gateway.publish(state.room_id, channel.NEW_ROUND, state.round)

        state.stocks = step_market(state.stocks, state.pending_events, self.rng)
        self.gateway.publish(state.room_id, channel.PRICE_UPDATE, state.stock_payload())
        self._record_history(state.room_id, state.round, state.stocks)

        events, notices = select_round_events(state.company_events, self.catalog, self.rng)
        state.pending_events = events
        self.gateway.publish(state.room_id, channel.NEWS_UPDATE, notices)

        self._schedule(state, state.settings.round_duration_seconds)

    def _end_round(self, state: RoomSimulationState):
        logger.info(f"Round {state.round} ended for {state.room_id}")
        state.phase = RoundPhase.ROUND_BREAK
        self.gateway.publish(state.room_id, channel.ROUND_ENDED)
        self._schedule(state, self.break_seconds)

    async def _finish(self, state: RoomSimulationState):
        room_id = state.room_id
        state.phase = RoundPhase.FINISHED
        self._cancel_timer(state)
        self.registry.delete(room_id)
        self.stats.games_finished += 1

        logger.info(f"Game over for {room_id} after {state.settings.round_count} rounds")
        self.gateway.publish(room_id, channel.GAME_OVER)

        try:
            await self.store.set_game_status(room_id, GameStatus.FINISHED)
        except Exception as e:
            logger.error(f"Failed to mark {room_id} finished: {e}", exc_info=True)

    # ========================================================================
    # TIMERS
    # ========================================================================

    def _schedule(self, state: RoomSimulationState, delay_seconds: float):
        """Replace the room's pending timer with one for the next transition"""
        self._cancel_timer(state)
        delay = delay_seconds / self.speed_multiplier
        loop = asyncio.get_running_loop()
        state.pending_timer = loop.call_later(delay, self._on_timer, state.room_id)
        logger.debug(f"Room {state.room_id}: {state.phase.value} for {delay:.3f}s")

    def _on_timer(self, room_id: str):
        task = asyncio.create_task(self.advance(room_id))
        self._transitions.add(task)
        task.add_done_callback(self._on_transition_done)

    def _on_transition_done(self, task: asyncio.Task):
        self._transitions.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Round transition failed: {task.exception()}", exc_info=task.exception())

    @staticmethod
    def _cancel_timer(state: RoomSimulationState):
        if state.pending_timer is not None:
            state.pending_timer.cancel()
            state.pending_timer = None

    # ========================================================================
    # HISTORY
    # ========================================================================

    def _record_history(self, room_id: str, round_number: int, stocks: List[StockState]):
        task = asyncio.create_task(self._write_history(room_id, round_number, list(stocks)))
        self._history_writes.add(task)
        task.add_done_callback(self._history_writes.discard)

    async def _write_history(self, room_id: str, round_number: int, stocks: List[StockState]):
        for stock in stocks:
            try:
                if await self.store.append_history(room_id, round_number, stock.name, stock.price):
                    self.stats.history_rows_written += 1
            except Exception as e:
                self.stats.history_write_errors += 1
                logger.error(
                    f"History write failed for {room_id} round {round_number} {stock.name}: {e}",
                    exc_info=True
                )

    # ========================================================================
    # CONTROL
    # ========================================================================

    async def drain(self):
        """Wait for in-flight history writes"""
        while self._history_writes:
            await asyncio.gather(*list(self._history_writes), return_exceptions=True)

    async def shutdown(self):
        """Cancel every room's timer and flush history"""
        logger.info(f"Shutting down scheduler ({len(self.registry)} active rooms)...")
        for state in self.registry:
            self._cancel_timer(state)
        for task in list(self._transitions):
            task.cancel()
        await asyncio.gather(*list(self._transitions), return_exceptions=True)
        await self.drain()
        self.registry.clear()
        logger.info("Scheduler shutdown complete")

    def is_running(self, room_id: str) -> bool:
        return room_id in self.registry

    def get_stats(self) -> SchedulerStats:
        return self.stats
