"""
In-memory registry of active room simulations.
"""
from typing import Dict, Iterator, List, Optional
import logging

from .errors import RoomAlreadyActive
from .types import RoomSimulationState

logger = logging.getLogger(__name__)


class RoomSessionRegistry:
    """
    Maps room id -> RoomSimulationState.

    Written only by the round scheduler; read by connection handlers to find
    out whether a room's game is running and which round it is on.
    """

    def __init__(self):
        self._rooms: Dict[str, RoomSimulationState] = {}

    def get(self, room_id: str) -> Optional[RoomSimulationState]:
        return self._rooms.get(room_id)

    def create(self, state: RoomSimulationState) -> RoomSimulationState:
        if state.room_id in self._rooms:
            raise RoomAlreadyActive(state.room_id)
        self._rooms[state.room_id] = state
        logger.debug(f"Registered room {state.room_id} ({len(self._rooms)} active)")
        return state

    def delete(self, room_id: str) -> Optional[RoomSimulationState]:
        state = self._rooms.pop(room_id, None)
        if state is not None:
            logger.debug(f"Removed room {room_id} ({len(self._rooms)} active)")
        return state

    def clear(self):
        self._rooms.clear()

    def room_ids(self) -> List[str]:
        return list(self._rooms)

    def current_round(self, room_id: str) -> Optional[int]:
        state = self._rooms.get(room_id)
        return state.round if state else None

    def __contains__(self, room_id: str) -> bool:
        return room_id in self._rooms

    def __len__(self) -> int:
        return len(self._rooms)

    def __iter__(self) -> Iterator[RoomSimulationState]:
        return iter(list(self._rooms.values()))
