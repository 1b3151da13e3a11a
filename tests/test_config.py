"""
Tests for command-line configuration and service bootstrap.
"""
import random

import pytest

from marketmania.config import SimulationConfig, parse_arguments
from marketmania.core.events import DEFAULT_CATALOG_DIR
from marketmania.core.types import GameStatus
from marketmania.main import prepare_store


class TestArguments:

    def test_defaults(self):
        config = parse_arguments([])
        assert config.port == 8765
        assert config.api_port == 8000
        assert config.preview_seconds == 10
        assert config.break_seconds == 6
        assert config.speed_multiplier == 1.0
        assert config.catalog_dir == DEFAULT_CATALOG_DIR

    def test_overrides(self):
        config = parse_arguments([
            '--port', '9000', '--speed-multiplier', '20', '--seed', '42',
            '--demo-room', 'demo', '--log-level', 'DEBUG'
        ])
        assert config.port == 9000
        assert config.speed_multiplier == 20.0
        assert config.seed == 42
        assert config.demo_room == 'demo'
        assert config.log_level == 'DEBUG'

    def test_non_positive_speed_rejected(self):
        with pytest.raises(ValueError):
            SimulationConfig(speed_multiplier=0)

    def test_negative_break_rejected(self):
        with pytest.raises(ValueError):
            SimulationConfig(break_seconds=-1)


class TestPrepareStore:

    @pytest.mark.asyncio
    async def test_seeds_catalog_and_demo_room(self, tmp_path):
        config = SimulationConfig(
            db_path=str(tmp_path / "svc.db"),
            seed_catalog=True,
            demo_room="demo",
            demo_stocks=4,
            demo_rounds=2
        )
        store = await prepare_store(config, random.Random(1))
        try:
            assert len(await store.list_global_stocks()) > 4
            assert len(await store.get_room_stocks("demo")) == 4
            assert (await store.get_room_settings("demo")).round_count == 2
            assert await store.get_game_status("demo") is GameStatus.WAITING
        finally:
            await store.close()

    @pytest.mark.asyncio
    async def test_existing_demo_room_kept(self, tmp_path):
        config = SimulationConfig(db_path=str(tmp_path / "svc.db"), seed_catalog=True, demo_room="demo")
        store = await prepare_store(config, random.Random(1))
        await store.set_game_status("demo", GameStatus.FINISHED)
        await store.close()

        store = await prepare_store(config, random.Random(2))
        try:
            assert await store.get_game_status("demo") is GameStatus.FINISHED
        finally:
            await store.close()
