"""
Market Mania simulation service.
Runs the WebSocket gateway, the round scheduler and the HTTP API on one loop.
"""
import asyncio
import logging
import random

import uvicorn

from .api.server import create_app
from .config import SimulationConfig, parse_arguments
from .core.events import EventCatalog, load_company_catalog
from .core.registry import RoomSessionRegistry
from .core.scheduler import RoundScheduler
from .persistence.store import GameStore
from .streaming.gateway import BroadcastGateway

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


async def prepare_store(config: SimulationConfig, rng: random.Random) -> GameStore:
    """Open the database and apply the startup flags"""
    store = GameStore(config.db_path)
    await store.init()

    if config.seed_catalog:
        await store.seed_global_stocks(load_company_catalog(config.catalog_dir))

    if config.demo_room and await store.get_game_status(config.demo_room) is None:
        basket = await store.create_room(
            config.demo_room,
            round_time=config.demo_round_time,
            num_rounds=config.demo_rounds,
            num_stocks=config.demo_stocks,
            room_name="Demo room",
            rng=rng
        )
        logger.info(f"Demo room {config.demo_room}: {[s.name for s in basket]}")

    return store


async def run_service(config: SimulationConfig):
    """
    Wire every component and run until cancelled.
    """
    logger.info("=" * 80)
    logger.info("MARKET MANIA - ROUND SIMULATION SERVICE")
    logger.info("=" * 80)

    rng = random.Random(config.seed)
    catalog = EventCatalog.load(config.catalog_dir)
    store = await prepare_store(config, rng)

    gateway = BroadcastGateway(host=config.host, port=config.port, store=store)
    scheduler = RoundScheduler(
        store=store,
        gateway=gateway,
        catalog=catalog,
        registry=RoomSessionRegistry(),
        preview_seconds=config.preview_seconds,
        break_seconds=config.break_seconds,
        speed_multiplier=config.speed_multiplier,
        rng=rng
    )
    gateway.scheduler = scheduler

    api = uvicorn.Server(uvicorn.Config(
        create_app(store, scheduler),
        host=config.host,
        port=config.api_port,
        log_level=config.log_level.lower()
    ))

    async def report_statistics():
        """Periodic statistics reporter"""
        while True:
            await asyncio.sleep(60)
            logger.info(f"Scheduler: {scheduler.get_stats().__dict__}")
            logger.info(f"Gateway: {gateway.get_stats()}")

    logger.info(f"WebSocket gateway: ws://{config.host}:{config.port}")
    logger.info(f"HTTP API: http://{config.host}:{config.api_port}")
    logger.info(f"Game clock: {config.speed_multiplier}x")

    reporter = asyncio.create_task(report_statistics())
    try:
        await gateway.serve()
        await api.serve()
    except asyncio.CancelledError:
        logger.info("Shutdown requested...")
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
    finally:
        logger.info("Cleaning up...")
        reporter.cancel()
        await scheduler.shutdown()
        await gateway.shutdown()
        await store.close()
        logger.info("Service shutdown complete")


def main():
    """Entry point"""
    config = parse_arguments()
    logging.getLogger().setLevel(getattr(logging, config.log_level))
    try:
        asyncio.run(run_service(config))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")


if __name__ == "__main__":
    main()
