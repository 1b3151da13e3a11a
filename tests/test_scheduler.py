"""
Tests for the round scheduler.

Tests:
- Full game lifecycle and event order
- History persistence per round
- Duplicate and failed starts
- History write failures
- Shutdown
"""
import asyncio

import pytest

from marketmania.core.scheduler import RoundScheduler
from marketmania.core.types import GameStatus, RoundPhase

FAST = 100.0


async def wait_until_finished(scheduler, room_id, timeout=5.0):
    async def _poll():
        while scheduler.is_running(room_id):
            await asyncio.sleep(0.005)
    await asyncio.wait_for(_poll(), timeout)
    await scheduler.drain()


@pytest.fixture
def scheduler(store, gateway, catalog):
    return RoundScheduler(store, gateway, catalog, speed_multiplier=FAST)


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_two_round_game(self, store, gateway, scheduler):
        await store.create_room("r1", round_time=1, num_rounds=2, num_stocks=3)

        assert await scheduler.start_game("r1") is True
        await wait_until_finished(scheduler, "r1")

        assert gateway.events_for("r1") == [
            "game-started", "market-preview",
            "new-round", "price-update", "news-update", "round-ended",
            "new-round", "price-update", "news-update", "round-ended",
            "game-over",
        ]
        assert gateway.data_for("r1", "market-preview") == [10]
        assert gateway.data_for("r1", "new-round") == [1, 2]

        history = await store.get_stock_history("r1")
        assert len(history) == 6
        assert [row["round_number"] for row in history] == [1, 1, 1, 2, 2, 2]
        assert await store.get_game_status("r1") is GameStatus.FINISHED
        assert "r1" not in scheduler.registry

    @pytest.mark.asyncio
    async def test_first_round_prices_unchanged(self, store, gateway, scheduler):
        basket = await store.create_room("r1", round_time=1, num_rounds=1, num_stocks=3)

        await scheduler.start_game("r1")
        await wait_until_finished(scheduler, "r1")

        first_update = gateway.data_for("r1", "price-update")[0]
        assert [s["price"] for s in first_update] == [s.price for s in basket]
        assert all(set(s) >= {"name", "price", "pe", "sectors", "totalVolume", "volatility"}
                   for s in first_update)

    @pytest.mark.asyncio
    async def test_news_batch_has_five_notices(self, store, gateway, scheduler):
        await store.create_room("r1", round_time=1, num_rounds=1, num_stocks=3)
        await scheduler.start_game("r1")
        await wait_until_finished(scheduler, "r1")

        news = gateway.data_for("r1", "news-update")
        assert len(news) == 1
        assert len(news[0]) == 5

    @pytest.mark.asyncio
    async def test_phase_after_start(self, store, scheduler):
        await store.create_room("r1", round_time=1, num_rounds=1, num_stocks=1)
        await scheduler.start_game("r1")

        state = scheduler.registry.get("r1")
        assert state.phase is RoundPhase.PREVIEWING
        assert state.round == 0
        assert state.pending_timer is not None
        assert await store.get_game_status("r1") is GameStatus.IN_PROGRESS

        await scheduler.shutdown()

    @pytest.mark.asyncio
    async def test_rooms_run_independently(self, store, gateway, scheduler):
        await store.create_room("r1", round_time=1, num_rounds=1, num_stocks=2)
        await store.create_room("r2", round_time=1, num_rounds=2, num_stocks=2)

        await scheduler.start_game("r1")
        await scheduler.start_game("r2")
        await wait_until_finished(scheduler, "r1")
        await wait_until_finished(scheduler, "r2")

        assert gateway.data_for("r1", "new-round") == [1]
        assert gateway.data_for("r2", "new-round") == [1, 2]
        assert len(await store.get_stock_history("r2")) == 4


class TestStartRejection:

    @pytest.mark.asyncio
    async def test_concurrent_duplicate_start(self, store, gateway, scheduler):
        await store.create_room("r1", round_time=1, num_rounds=1, num_stocks=2)

        results = await asyncio.gather(scheduler.start_game("r1"), scheduler.start_game("r1"))

        assert sorted(results) == [False, True]
        assert gateway.events_for("r1").count("game-started") == 1
        assert scheduler.stats.starts_rejected == 1

        await wait_until_finished(scheduler, "r1")
        assert gateway.events_for("r1").count("game-over") == 1

    @pytest.mark.asyncio
    async def test_start_while_running_rejected(self, store, gateway, scheduler):
        await store.create_room("r1", round_time=1, num_rounds=1, num_stocks=2)
        assert await scheduler.start_game("r1") is True
        assert await scheduler.start_game("r1") is False
        await scheduler.shutdown()

    @pytest.mark.asyncio
    async def test_unknown_room_fails(self, gateway, scheduler):
        assert await scheduler.start_game("ghost") is False
        assert gateway.events_for("ghost") == ["start-failed"]
        assert "ghost" in gateway.data_for("ghost", "start-failed")[0]
        assert "ghost" not in scheduler.registry
        assert scheduler.stats.starts_failed == 1

    @pytest.mark.asyncio
    async def test_empty_basket_fails(self, store, gateway, scheduler):
        await store.create_room("r1", round_time=1, num_rounds=1, num_stocks=0)
        assert await scheduler.start_game("r1") is False
        assert gateway.events_for("r1") == ["start-failed"]
        assert await store.get_game_status("r1") is GameStatus.WAITING

    @pytest.mark.asyncio
    async def test_room_can_restart_after_finishing(self, store, gateway, scheduler):
        await store.create_room("r1", round_time=1, num_rounds=1, num_stocks=1)
        await scheduler.start_game("r1")
        await wait_until_finished(scheduler, "r1")

        assert await scheduler.start_game("r1") is True
        await wait_until_finished(scheduler, "r1")
        assert gateway.events_for("r1").count("game-over") == 2


class TestHistoryFailures:

    @pytest.mark.asyncio
    async def test_write_failure_does_not_stop_game(self, store, gateway, scheduler, monkeypatch):
        await store.create_room("r1", round_time=1, num_rounds=2, num_stocks=3)
        append = store.append_history

        async def flaky_append(room_id, round_number, stock_name, price):
            if round_number == 1:
                raise RuntimeError("disk full")
            return await append(room_id, round_number, stock_name, price)

        monkeypatch.setattr(store, "append_history", flaky_append)

        await scheduler.start_game("r1")
        await wait_until_finished(scheduler, "r1")

        assert gateway.events_for("r1")[-1] == "game-over"
        assert scheduler.stats.history_write_errors == 3
        history = await store.get_stock_history("r1")
        assert [row["round_number"] for row in history] == [2, 2, 2]


class TestControl:

    def test_speed_multiplier_must_be_positive(self, gateway, catalog):
        with pytest.raises(ValueError):
            RoundScheduler(None, gateway, catalog, speed_multiplier=0)

    @pytest.mark.asyncio
    async def test_advance_unknown_room_is_noop(self, gateway, scheduler):
        await scheduler.advance("nobody")
        assert gateway.published == []

    @pytest.mark.asyncio
    async def test_shutdown_cancels_pending_rounds(self, store, gateway, catalog):
        scheduler = RoundScheduler(store, gateway, catalog, speed_multiplier=1.0)
        await store.create_room("r1", round_time=30, num_rounds=5, num_stocks=2)
        await scheduler.start_game("r1")

        await scheduler.shutdown()
        await asyncio.sleep(0.05)

        assert len(scheduler.registry) == 0
        assert "new-round" not in gateway.events_for("r1")
