"""
Room inspection API router.

Read-only views over the RoomManager for lobby screens and debugging:
the room list, a room's occupants, and per-room connection status.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel

from room import RoomManager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["rooms"])


# =============================================================================
# Response Models
# =============================================================================


class RoomSummaryResponse(BaseModel):
    """One entry in the room list."""
    code: str
    player_count: int
    spectator_count: int
    has_game: bool
    created_at: float


class RoomListResponse(BaseModel):
    rooms: list[RoomSummaryResponse]


class ParticipantResponse(BaseModel):
    """A player or spectator as seen by other clients."""
    role: str
    player_id: str
    name: str
    is_host: bool
    is_connected: bool
    last_seen: float
    player_index: Optional[int] = None


class RoomUsersResponse(BaseModel):
    room_code: str
    host: Optional[str]
    players: list[ParticipantResponse]
    spectators: list[ParticipantResponse]


class ConnectionEntryResponse(BaseModel):
    name: str
    role: str
    is_connected: bool
    last_seen: float


class ConnectionStatusResponse(BaseModel):
    """Connected/disconnected counts for one room."""
    total: int
    connected: int
    disconnected: int
    participants: list[ConnectionEntryResponse]


# =============================================================================
# Dependencies
# =============================================================================


def get_room_manager(request: Request) -> RoomManager:
    """Dependency to get the application's room manager."""
    room_manager = getattr(request.app.state, "room_manager", None)
    if room_manager is None:
        raise HTTPException(status_code=503, detail="Room manager not initialized")
    return room_manager


# =============================================================================
# Endpoints
# =============================================================================


@router.get("/rooms", response_model=RoomListResponse)
async def list_rooms(room_manager: RoomManager = Depends(get_room_manager)):
    """List every active room."""
    return {"rooms": room_manager.get_room_list()}


@router.get("/rooms/{room_code}/users", response_model=RoomUsersResponse)
async def room_users(room_code: str, room_manager: RoomManager = Depends(get_room_manager)):
    """Players and spectators in a room."""
    occupants = room_manager.get_room_occupants(room_code)
    if occupants is None:
        raise HTTPException(status_code=404, detail="Room not found")
    return occupants


@router.get("/connection-status", response_model=ConnectionStatusResponse)
async def connection_status(
    room: Optional[str] = Query(None, description="Room code"),
    room_manager: RoomManager = Depends(get_room_manager),
):
    """Connection status of everyone in a room."""
    if not room:
        raise HTTPException(status_code=400, detail="Room code required")
    status = room_manager.get_room_connection_status(room)
    if status is None:
        raise HTTPException(status_code=404, detail="Room not found")
    return status
