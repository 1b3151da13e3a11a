"""
FastAPI server for room inspection and game start.

Provides the read side of a running simulation: stock baskets, price history
and live round state.
"""
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
from typing import List, Optional
import logging

from ..core.errors import RoomNotFound

logger = logging.getLogger(__name__)

# Pydantic models
class StockModel(BaseModel):
    name: str
    price: float
    pe: float
    sectors: List[str]
    totalVolume: int
    volatility: float

class HistoryPoint(BaseModel):
    round_number: int
    stock_name: str
    price: float

class RoomStateResponse(BaseModel):
    room_id: str
    running: bool
    status: Optional[str] = None
    round: Optional[int] = None
    round_count: Optional[int] = None
    phase: Optional[str] = None

class StartResponse(BaseModel):
    room_id: str
    started: bool


def create_app(store: 'GameStore', scheduler: 'RoundScheduler') -> FastAPI:
    """Build the HTTP app around an initialized store and scheduler"""
    app = FastAPI(title="Market Mania API")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/")
    def root():
        """API root"""
        return {
            "message": "Market Mania API",
            "docs": "/docs",
            "health": "/health"
        }

    @app.get("/health")
    def health():
        """Health check"""
        return {"status": "ok", "active_rooms": len(scheduler.registry)}

    @app.get("/api/game/{room_id}/stocks", response_model=List[StockModel])
    async def get_game_stocks(room_id: str):
        """Live prices while running, otherwise the stored basket"""
        state = scheduler.registry.get(room_id)
        if state is not None:
            return state.stock_payload()
        stocks = await store.get_room_stocks(room_id)
        if not stocks:
            raise HTTPException(status_code=404, detail=f"No stocks for room {room_id}")
        return [stock.to_dict() for stock in stocks]

    @app.get("/api/game/{room_id}/history", response_model=List[HistoryPoint])
    async def get_game_history(room_id: str):
        return await store.get_stock_history(room_id)

    @app.get("/api/game/{room_id}/state", response_model=RoomStateResponse)
    async def get_game_state(room_id: str):
        status = await store.get_game_status(room_id)
        state = scheduler.registry.get(room_id)
        if state is None:
            if status is None:
                raise HTTPException(status_code=404, detail=f"Room not found: {room_id}")
            return RoomStateResponse(room_id=room_id, running=False, status=status.value)
        return RoomStateResponse(
            room_id=room_id,
            running=True,
            status=status.value if status else None,
            round=state.round,
            round_count=state.settings.round_count,
            phase=state.phase.value
        )

    @app.post("/api/game/{room_id}/start", response_model=StartResponse, status_code=202)
    async def start_game(room_id: str):
        try:
            await store.get_room_settings(room_id)
        except RoomNotFound as e:
            raise HTTPException(status_code=404, detail=str(e))
        started = await scheduler.start_game(room_id)
        logger.info(f"HTTP start for {room_id}: started={started}")
        return StartResponse(room_id=room_id, started=started)

    return app
