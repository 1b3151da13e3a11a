"""
WebSocket broadcast gateway with per-room channels.
Pure asyncio; publishing never awaits a client.
"""
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Set
import asyncio
import json
import logging

import websockets

logger = logging.getLogger(__name__)

# Outbound event names
GAME_STARTED = "game-started"
MARKET_PREVIEW = "market-preview"
NEW_ROUND = "new-round"
PRICE_UPDATE = "price-update"
NEWS_UPDATE = "news-update"
ROUND_ENDED = "round-ended"
GAME_OVER = "game-over"
START_FAILED = "start-failed"
SYNC_STATE = "sync-state"
PLAYER_JOINED = "player-joined"
RECEIVE_MESSAGE = "receive-message"

Listener = Callable[[str, str, Any], None]


class BroadcastGateway:
    """
    WebSocket server that fans simulation events out to room channels.

    Architecture:
    - Clients send JSON commands ({"type": ..., "room_id": ...})
    - join-lobby subscribes a connection to a room channel
    - publish() serializes once and hands the frame to every subscriber
      without waiting on any of them
    - In-process listeners see every published event (logging, tests)
    """

    def __init__(
        self,
        host: str = 'localhost',
        port: int = 8765,
        scheduler: Optional['RoundScheduler'] = None,
        store: Optional['GameStore'] = None
    ):
        self.host = host
        self.port = port
        self.scheduler = scheduler
        self.store = store

        # Room channels
        self.rooms: Dict[str, Set[Any]] = {}
        self.clients: Set[Any] = set()
        self._listeners: List[Listener] = []
        self._server = None

        # Stats
        self.total_connections = 0
        self.messages_published = 0
        self.frames_sent = 0

        logger.info(f"Broadcast gateway initialized on {host}:{port}")

    # ========================================================================
    # PUBLISHING
    # ========================================================================

    def publish(self, room_id: str, event: str, data: Any = None) -> int:
        """
        Send an event to every connection in the room.
        Returns the number of connections the frame was handed to.
        """
        message = json.dumps({'event': event, 'data': data})
        connections = self.rooms.get(room_id, set())
        if connections:
            websockets.broadcast(connections, message)

        self.messages_published += 1
        self.frames_sent += len(connections)
        logger.debug(f"[{room_id}] {event} -> {len(connections)} clients")

        for listener in list(self._listeners):
            try:
                listener(room_id, event, data)
            except Exception as e:
                logger.error(f"Listener failed on {event}: {e}", exc_info=True)

        return len(connections)

    def add_listener(self, listener: Listener):
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener):
        if listener in self._listeners:
            self._listeners.remove(listener)

    def subscriber_count(self, room_id: str) -> int:
        return len(self.rooms.get(room_id, ()))

    # ========================================================================
    # CONNECTION HANDLER
    # ========================================================================

    async def handler(self, websocket):
        """Handle individual client connection"""
        client_id = f"{websocket.remote_address[0]}:{websocket.remote_address[1]}"
        logger.info(f"Client connected: {client_id}")

        self.clients.add(websocket)
        self.total_connections += 1

        try:
            async for message in websocket:
                try:
                    data = json.loads(message)
                    await self._process_client_command(websocket, data, client_id)
                except json.JSONDecodeError:
                    logger.error(f"Invalid JSON from client {client_id}")
                except Exception as e:
                    logger.error(f"Error processing message from {client_id}: {e}", exc_info=True)
        except websockets.ConnectionClosed:
            logger.info(f"Client {client_id} disconnected")
        finally:
            self.clients.discard(websocket)
            self._unsubscribe_all(websocket)
            logger.info(f"Client cleaned up: {client_id}")

    async def _process_client_command(self, websocket, data: dict, client_id: str):
        """Dispatch a client command"""
        command = data.get('type')
        room_id = data.get('room_id')
        if not room_id:
            logger.warning(f"Command {command!r} from {client_id} without room_id")
            return

        if command == 'join-lobby':
            self._subscribe(room_id, websocket)
            others = self.rooms[room_id] - {websocket}
            if others:
                websockets.broadcast(others, json.dumps({'event': PLAYER_JOINED, 'data': None}))
            # Late joiners catch up with the running round
            if self.scheduler:
                current_round = self.scheduler.registry.current_round(room_id)
                if current_round is not None:
                    await websocket.send(json.dumps({
                        'event': SYNC_STATE,
                        'data': {'round': current_round}
                    }))

        elif command == 'leave-lobby':
            self._unsubscribe(room_id, websocket)

        elif command == 'start-game':
            if not self.scheduler:
                logger.warning(f"start-game for {room_id} ignored: no scheduler attached")
                return
            await self.scheduler.start_game(room_id)

        elif command == 'send-message':
            await self._relay_chat(room_id, data)

        else:
            logger.debug(f"Ignoring unknown command {command!r} from {client_id}")

    async def _relay_chat(self, room_id: str, data: dict):
        text = data.get('text')
        if not text:
            return
        chat = {
            'room_id': room_id,
            'user_id': data.get('user_id'),
            'username': data.get('username'),
            'avatar': data.get('avatar'),
            'text': text,
            'round_number': int(data.get('round_number') or 0),
            'created_at': datetime.now(timezone.utc).isoformat()
        }
        self.publish(room_id, RECEIVE_MESSAGE, chat)

        if self.store:
            try:
                await self.store.add_chat_message(
                    room_id, chat['user_id'], chat['username'], text, chat['round_number']
                )
            except Exception as e:
                logger.error(f"Failed to store chat message for {room_id}: {e}", exc_info=True)

    # ========================================================================
    # CHANNELS
    # ========================================================================

    def _subscribe(self, room_id: str, websocket):
        self.rooms.setdefault(room_id, set()).add(websocket)
        logger.debug(f"Subscribed client to {room_id} ({len(self.rooms[room_id])} in room)")

    def _unsubscribe(self, room_id: str, websocket):
        members = self.rooms.get(room_id)
        if not members:
            return
        members.discard(websocket)
        if not members:
            del self.rooms[room_id]

    def _unsubscribe_all(self, websocket):
        for room_id in list(self.rooms):
            self._unsubscribe(room_id, websocket)

    # ========================================================================
    # SERVER CONTROL
    # ========================================================================

    async def serve(self):
        """Start listening; returns once the socket is bound"""
        self._server = await websockets.serve(self.handler, self.host, self.port)
        sockets = self._server.sockets or []
        if sockets:
            self.port = sockets[0].getsockname()[1]
        logger.info(f"WebSocket gateway listening on ws://{self.host}:{self.port}")
        return self._server

    async def start(self):
        """Start WebSocket server and run forever"""
        await self.serve()
        await asyncio.Future()

    async def shutdown(self):
        """Graceful shutdown"""
        logger.info("Shutting down broadcast gateway...")

        close_tasks = [ws.close() for ws in self.clients]
        await asyncio.gather(*close_tasks, return_exceptions=True)

        if self._server:
            self._server.close()
            await self._server.wait_closed()
            self._server = None

        self.clients.clear()
        self.rooms.clear()

        logger.info("Broadcast gateway shutdown complete")

    # ========================================================================
    # STATISTICS
    # ========================================================================

    def get_stats(self) -> dict:
        return {
            'active_clients': len(self.clients),
            'active_rooms': len(self.rooms),
            'total_connections': self.total_connections,
            'messages_published': self.messages_published,
            'frames_sent': self.frames_sent
        }
