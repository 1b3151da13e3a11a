"""
Service configuration, built from command-line arguments.
"""
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional
import argparse
import os

from .core.events import DEFAULT_CATALOG_DIR
from .core.scheduler import BREAK_SECONDS, PREVIEW_SECONDS

DEFAULT_DB_PATH = os.getenv("MARKETMANIA_DB", "marketmania.db")


@dataclass
class SimulationConfig:
    """Everything the service needs to boot"""
    host: str = 'localhost'
    port: int = 8765
    api_port: int = 8000
    db_path: str = DEFAULT_DB_PATH
    catalog_dir: Path = DEFAULT_CATALOG_DIR
    preview_seconds: float = PREVIEW_SECONDS
    break_seconds: float = BREAK_SECONDS
    speed_multiplier: float = 1.0
    seed: Optional[int] = None
    seed_catalog: bool = False
    demo_room: Optional[str] = None
    demo_rounds: int = 5
    demo_round_time: float = 30.0
    demo_stocks: int = 5
    log_level: str = 'INFO'

    def __post_init__(self):
        self.catalog_dir = Path(self.catalog_dir)
        if self.speed_multiplier <= 0:
            raise ValueError("speed_multiplier must be positive")
        if self.preview_seconds < 0 or self.break_seconds < 0:
            raise ValueError("preview and break durations cannot be negative")

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> "SimulationConfig":
        return cls(
            host=args.host,
            port=args.port,
            api_port=args.api_port,
            db_path=args.db,
            catalog_dir=Path(args.catalog_dir),
            preview_seconds=args.preview_seconds,
            break_seconds=args.break_seconds,
            speed_multiplier=args.speed_multiplier,
            seed=args.seed,
            seed_catalog=args.seed_catalog,
            demo_room=args.demo_room,
            demo_rounds=args.demo_rounds,
            demo_round_time=args.demo_round_time,
            demo_stocks=args.demo_stocks,
            log_level=args.log_level
        )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Market Mania round-based market simulation service",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )

    # Network
    parser.add_argument('--host', default='localhost', help='Bind host for both servers')
    parser.add_argument('--port', type=int, default=8765, help='WebSocket gateway port')
    parser.add_argument('--api-port', type=int, default=8000, help='HTTP API port')

    # Storage and catalogs
    parser.add_argument(
        '--db',
        default=DEFAULT_DB_PATH,
        help='SQLite database path (env: MARKETMANIA_DB)'
    )
    parser.add_argument(
        '--catalog-dir',
        default=str(DEFAULT_CATALOG_DIR),
        help='Directory holding the event and company JSON catalogs'
    )
    parser.add_argument(
        '--seed-catalog',
        action='store_true',
        help='Load companies.json into the global stock table on startup'
    )

    # Timing
    parser.add_argument(
        '--preview-seconds',
        type=float,
        default=PREVIEW_SECONDS,
        help='Market preview window before round 1'
    )
    parser.add_argument(
        '--break-seconds',
        type=float,
        default=BREAK_SECONDS,
        help='Leaderboard break between rounds'
    )
    parser.add_argument(
        '--speed-multiplier',
        type=float,
        default=1.0,
        help='Game clock speed (1.0 = real-time, 10.0 = ten times faster)'
    )
    parser.add_argument('--seed', type=int, default=None, help='Random seed for reproducible markets')

    # Demo room
    parser.add_argument('--demo-room', default=None, help='Create a room with this id on startup')
    parser.add_argument('--demo-rounds', type=int, default=5, help='Rounds in the demo room')
    parser.add_argument('--demo-round-time', type=float, default=30.0, help='Round length (s) in the demo room')
    parser.add_argument('--demo-stocks', type=int, default=5, help='Stocks in the demo room basket')

    # Logging
    parser.add_argument(
        '--log-level',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        default='INFO',
        help='Logging level'
    )
    return parser


def parse_arguments(argv: Optional[List[str]] = None) -> SimulationConfig:
    return SimulationConfig.from_args(build_parser().parse_args(argv))
