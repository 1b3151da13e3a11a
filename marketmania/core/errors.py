"""
Error taxonomy for the simulation service.
"""


class MarketManiaError(Exception):
    """Base class for simulation errors"""


class ConfigurationError(MarketManiaError):
    """Room configuration is missing or malformed"""


class RoomNotFound(ConfigurationError):
    """No room with the given identifier exists"""

    def __init__(self, room_id: str):
        super().__init__(f"Room not found: {room_id}")
        self.room_id = room_id


class CatalogError(MarketManiaError):
    """Event or stock catalog could not be parsed"""


class RoomAlreadyActive(MarketManiaError):
    """A simulation is already running for the room"""

    def __init__(self, room_id: str):
        super().__init__(f"Simulation already active for room: {room_id}")
        self.room_id = room_id


class StoreNotInitialized(RuntimeError):
    """Persistence used before init()"""
