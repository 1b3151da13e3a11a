"""
WebSocket spectator for a game room.
Joins a room channel and keeps the latest prices, news and round.
"""
from collections import deque
from typing import Any, Deque, List, Optional, Tuple
import argparse
import asyncio
import json
import logging

import websockets

logger = logging.getLogger(__name__)


class RoomSpectator:
    """
    Read-only room client.

    Every frame is kept in `events` as (event, data); the most recent
    prices, news and round are tracked for convenience.
    """

    def __init__(
        self,
        room_id: str,
        websocket_url: str = 'ws://localhost:8765',
        max_events: int = 1000
    ):
        self.room_id = room_id
        self.websocket_url = websocket_url

        self.events: Deque[Tuple[str, Any]] = deque(maxlen=max_events)
        self.round: Optional[int] = None
        self.prices: dict = {}
        self.news: List[str] = []
        self.game_over = False

        self.websocket = None
        self.connected = False

    # ========================================================================
    # CONNECTION
    # ========================================================================

    async def connect(self) -> bool:
        """Connect and join the room channel"""
        try:
            logger.info(f"Connecting to {self.websocket_url} for room {self.room_id}")
            self.websocket = await websockets.connect(self.websocket_url)
            await self.send_command('join-lobby')
            self.connected = True
            return True
        except (OSError, websockets.WebSocketException) as e:
            logger.error(f"Failed to connect to WebSocket: {e}")
            return False

    async def send_command(self, command: str, **fields):
        await self.websocket.send(json.dumps({'type': command, 'room_id': self.room_id, **fields}))

    async def start_game(self):
        await self.send_command('start-game')

    async def send_chat(self, user_id: str, username: str, text: str, round_number: int = 0):
        await self.send_command(
            'send-message',
            user_id=user_id,
            username=username,
            text=text,
            round_number=round_number
        )

    async def disconnect(self):
        if self.websocket:
            await self.websocket.close()
        self.connected = False

    # ========================================================================
    # CONSUMER
    # ========================================================================

    async def consume(self, until: Optional[str] = 'game-over'):
        """Read frames until the `until` event arrives or the socket closes"""
        try:
            async for message in self.websocket:
                try:
                    frame = json.loads(message)
                except json.JSONDecodeError as e:
                    logger.error(f"Failed to parse frame: {e}")
                    continue
                event = frame.get('event')
                self._apply(event, frame.get('data'))
                if until and event == until:
                    break
        except websockets.ConnectionClosed:
            logger.info("WebSocket connection closed")
            self.connected = False

    def _apply(self, event: str, data: Any):
        self.events.append((event, data))

        if event == 'new-round':
            self.round = data
        elif event == 'sync-state':
            self.round = data.get('round')
        elif event == 'price-update':
            self.prices = {stock['name']: stock['price'] for stock in data}
        elif event == 'news-update':
            self.news = list(data)
        elif event == 'game-over':
            self.game_over = True

        logger.info(f"[{self.room_id}] {event}: {data}")

    def event_names(self) -> List[str]:
        return [event for event, _ in self.events]


async def watch_room(room_id: str, url: str, start: bool = False):
    spectator = RoomSpectator(room_id, websocket_url=url)
    if not await spectator.connect():
        logger.error("Failed to connect. Make sure the service is running: python -m marketmania.main")
        return
    try:
        if start:
            await spectator.start_game()
        await spectator.consume()
    finally:
        await spectator.disconnect()


def main():
    """Entry point"""
    parser = argparse.ArgumentParser(description="Watch a Market Mania room")
    parser.add_argument('room_id', help='Room to join')
    parser.add_argument('--url', default='ws://localhost:8765', help='Gateway URL')
    parser.add_argument('--start', action='store_true', help='Send start-game after joining')
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    asyncio.run(watch_room(args.room_id, args.url, args.start))


if __name__ == "__main__":
    main()
