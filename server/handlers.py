"""WebSocket message handlers for the Lockpick card game.

Each handler corresponds to a single message type from the client.
Handlers are dispatched via the HANDLERS dict in main.py and receive the
RoomManager and ConnectionHub as keyword dependencies.

Every handler that touches an existing room runs under that room's lock,
so mutations and their broadcasts are applied one at a time per room.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from fastapi import WebSocket

from connections import ConnectionHub
from game import GameState, MoveResult, end_turn, get_game_status, play_card, sort_current_player_hand
from game import handle_cant_play as declare_cant_play
from logging_config import room_code_var
from room import ActionResult, Room, RoomManager

logger = logging.getLogger(__name__)

NOT_IN_ROOM = "You are not in a room"
ROOM_CREATE_FAILED = "Could not create a room. Please try again."


@dataclass
class ConnectionContext:
    """State tracked per WebSocket connection."""

    websocket: WebSocket
    connection_id: str
    room_code: Optional[str] = None
    player_id: Optional[str] = None


def room_payload(room: Room) -> dict:
    """Membership and game snapshot sent with room-level events."""
    return {
        "room_code": room.code,
        "host": room.host,
        "players": room.player_list(),
        "spectators": room.spectator_list(),
        "game_state": room.game_state.to_dict() if room.game_state else None,
        "status": get_game_status(room.game_state) if room.game_state else None,
    }


def game_payload(game_state: GameState) -> dict:
    return {
        "game_state": game_state.to_dict(),
        "status": get_game_status(game_state),
    }


async def send_error(ctx: ConnectionContext, message: str) -> None:
    await ctx.websocket.send_json({"type": "error", "message": message})


def _player_name(data: dict) -> str:
    name = data.get("player_name")
    return name.strip() if isinstance(name, str) else ""


def _room_code(data: dict) -> str:
    code = data.get("room_code")
    return code.strip().upper() if isinstance(code, str) else ""


# ---------------------------------------------------------------------------
# Lobby / Room handlers
# ---------------------------------------------------------------------------

async def handle_create_room(data: dict, ctx: ConnectionContext, *, room_manager: RoomManager, hub: ConnectionHub, **kw) -> None:
    player_name = _player_name(data)
    if not player_name:
        await send_error(ctx, "Player name is required")
        return

    if ctx.room_code:
        await leave_current_room(ctx, room_manager=room_manager, hub=hub)

    room = room_manager.create_room(ctx.connection_id, player_name, data.get("player_id"))
    if room is None:
        await send_error(ctx, ROOM_CREATE_FAILED)
        return

    host = room.host_player()
    ctx.room_code = room.code
    ctx.player_id = host.player_id
    room_code_var.set(room.code)

    await ctx.websocket.send_json({
        "type": "room-created",
        "player_id": host.player_id,
        "is_host": True,
        **room_payload(room),
    })


async def handle_reserve_name(data: dict, ctx: ConnectionContext, *, room_manager: RoomManager, **kw) -> None:
    result = room_manager.create_pending_player(_room_code(data), _player_name(data))
    if not result.success:
        await send_error(ctx, result.error)
        return

    await ctx.websocket.send_json({
        "type": "name-reserved",
        "room_code": _room_code(data),
        "player_id": result.player_id,
        "expires_at": result.expires_at,
    })


async def handle_validate_name(data: dict, ctx: ConnectionContext, *, room_manager: RoomManager, **kw) -> None:
    check = room_manager.validate_name(_room_code(data), _player_name(data))
    message = {"type": "name-validated", "ok": check.ok, "is_taken": check.is_taken}
    if check.error:
        message["error"] = check.error
    await ctx.websocket.send_json(message)


async def handle_join_room(data: dict, ctx: ConnectionContext, *, room_manager: RoomManager, hub: ConnectionHub, **kw) -> None:
    room = room_manager.get_room(_room_code(data))
    if not room:
        await ctx.websocket.send_json({"type": "room-joined", "success": False, "error": "Room not found"})
        return

    if ctx.room_code and ctx.room_code != room.code:
        await leave_current_room(ctx, room_manager=room_manager, hub=hub)

    async with room.lock:
        result = room_manager.join_room(room.code, ctx.connection_id, _player_name(data), data.get("player_id"))
        if not result.success:
            await ctx.websocket.send_json({"type": "room-joined", "success": False, "error": result.error})
            return

        participant = result.participant
        ctx.room_code = room.code
        ctx.player_id = participant.player_id
        room_code_var.set(room.code)

        await ctx.websocket.send_json({
            "type": "room-joined",
            "success": True,
            "player_id": participant.player_id,
            "is_host": participant.is_host,
            "is_spectator": result.is_spectator,
            "is_reconnection": result.is_reconnection,
            "room": room_payload(room),
        })

        await hub.broadcast(room, {
            "type": "player-joined",
            "player": participant.to_dict(),
            "is_spectator": result.is_spectator,
            "is_reconnection": result.is_reconnection,
            "players": room.player_list(),
            "spectators": room.spectator_list(),
        }, exclude=[ctx.connection_id])


# ---------------------------------------------------------------------------
# Game lifecycle handlers
# ---------------------------------------------------------------------------

async def _current_room(ctx: ConnectionContext, room_manager: RoomManager) -> Optional[Room]:
    room = room_manager.get_room(ctx.room_code) if ctx.room_code else None
    if not room:
        await send_error(ctx, NOT_IN_ROOM)
    return room


async def handle_start_game(data: dict, ctx: ConnectionContext, *, room_manager: RoomManager, hub: ConnectionHub, **kw) -> None:
    room = await _current_room(ctx, room_manager)
    if not room:
        return

    async with room.lock:
        result = room_manager.start_game(room.code, ctx.connection_id)
        if not result.success:
            await send_error(ctx, result.error)
            return

        await hub.broadcast(room, {
            "type": "game-started",
            "players": room.player_list(),
            **game_payload(result.game_state),
        })


# ---------------------------------------------------------------------------
# Turn action handlers
# ---------------------------------------------------------------------------

def _apply_turn(
    ctx: ConnectionContext,
    room: Room,
    room_manager: RoomManager,
    transition: Callable[[GameState], MoveResult],
) -> tuple[ActionResult, Optional[GameState]]:
    """Apply a transition for the caller; returns the result and the state before it."""
    previous = room.game_state
    return room_manager.apply_turn_action(room.code, ctx.connection_id, transition), previous


async def handle_play_card(data: dict, ctx: ConnectionContext, *, room_manager: RoomManager, hub: ConnectionHub, **kw) -> None:
    card = data.get("card")
    pile_index = data.get("pile_index")
    if not isinstance(card, int) or not isinstance(pile_index, int):
        await send_error(ctx, "Card and pile index are required")
        return

    room = await _current_room(ctx, room_manager)
    if not room:
        return

    async with room.lock:
        result, previous = _apply_turn(ctx, room, room_manager, lambda s: play_card(s, card, pile_index))
        if not result.success:
            await send_error(ctx, result.error)
            return

        message = {
            "type": "card-played",
            "player_id": result.player.player_id,
            "card": card,
            "pile_index": pile_index,
            **game_payload(result.game_state),
        }
        if result.game_state is previous:
            # Card was not in hand; nothing changed, so only the caller hears about it.
            await ctx.websocket.send_json({**message, "played": False})
            return
        await hub.broadcast(room, {**message, "played": True})


async def handle_end_turn(data: dict, ctx: ConnectionContext, *, room_manager: RoomManager, hub: ConnectionHub, **kw) -> None:
    room = await _current_room(ctx, room_manager)
    if not room:
        return

    async with room.lock:
        result, previous = _apply_turn(ctx, room, room_manager, end_turn)
        if not result.success:
            await send_error(ctx, result.error)
            return

        await hub.broadcast(room, {
            "type": "turn-ended",
            "player_id": result.player.player_id,
            "previous_player": previous.current_player,
            **game_payload(result.game_state),
        })


async def handle_cant_play(data: dict, ctx: ConnectionContext, *, room_manager: RoomManager, hub: ConnectionHub, **kw) -> None:
    room = await _current_room(ctx, room_manager)
    if not room:
        return

    async with room.lock:
        result, _ = _apply_turn(ctx, room, room_manager, declare_cant_play)
        if not result.success:
            await send_error(ctx, result.error)
            return

        logger.info(f"{result.player.name} could not play; game over")
        await hub.broadcast(room, {
            "type": "cant-play",
            "player_id": result.player.player_id,
            "player_name": result.player.name,
            **game_payload(result.game_state),
        })


async def handle_sort_hand(data: dict, ctx: ConnectionContext, *, room_manager: RoomManager, hub: ConnectionHub, **kw) -> None:
    room = await _current_room(ctx, room_manager)
    if not room:
        return

    async with room.lock:
        result, _ = _apply_turn(ctx, room, room_manager, sort_current_player_hand)
        if not result.success:
            await send_error(ctx, result.error)
            return

        await hub.broadcast(room, {
            "type": "hand-sorted",
            "player_id": result.player.player_id,
            **game_payload(result.game_state),
        })



# ---------------------------------------------------------------------------
# Leave / presence handlers
# ---------------------------------------------------------------------------

async def leave_current_room(ctx: ConnectionContext, *, room_manager: RoomManager, hub: ConnectionHub) -> None:
    """Remove the connection from its room and tell whoever is left."""
    room = room_manager.get_room(ctx.room_code) if ctx.room_code else None
    ctx.room_code = None
    if not room:
        return

    async with room.lock:
        await _leave(ctx.connection_id, room, room_manager=room_manager, hub=hub)


async def _leave(connection_id: str, room: Room, *, room_manager: RoomManager, hub: ConnectionHub) -> None:
    result = room_manager.leave_room(connection_id)
    if not result:
        return

    await hub.broadcast(room, {
        "type": "player-left",
        "player_id": result.participant.player_id,
        "player_name": result.participant.name,
        "was_spectator": result.was_spectator,
        "new_host": result.new_host.player_id if result.new_host else None,
        "players": room.player_list(),
        "spectators": room.spectator_list(),
    })


async def handle_leave_room(data: dict, ctx: ConnectionContext, *, room_manager: RoomManager, hub: ConnectionHub, **kw) -> None:
    if ctx.room_code:
        await leave_current_room(ctx, room_manager=room_manager, hub=hub)


async def handle_ping(data: dict, ctx: ConnectionContext, **kw) -> None:
    await ctx.websocket.send_json({"type": "pong", "timestamp": time.time()})


async def handle_disconnect(ctx: ConnectionContext, deliberate: bool, *, room_manager: RoomManager, hub: ConnectionHub) -> bool:
    """
    React to a closed socket.

    A deliberate close leaves the room at once. Anything else only marks the
    participant disconnected so they can reconnect with their player_id.

    Returns:
        True if the participant is still in the room (a delayed leave is due).
    """
    room = room_manager.get_room(ctx.room_code) if ctx.room_code else None
    if not room:
        return False

    async with room.lock:
        if deliberate:
            await _leave(ctx.connection_id, room, room_manager=room_manager, hub=hub)
            return False
        return room_manager.mark_player_disconnected(ctx.connection_id) is not None


async def leave_if_still_disconnected(connection_id: str, *, room_manager: RoomManager, hub: ConnectionHub) -> None:
    """
    Delayed half of a network drop.

    A participant who reconnected in the meantime has been rebound to a new
    connection_id, so the old one no longer resolves and this is a no-op.
    """
    room = room_manager.get_player_room(connection_id)
    if not room:
        return

    async with room.lock:
        participant = room.get_participant(connection_id)
        if participant and not participant.is_connected:
            await _leave(connection_id, room, room_manager=room_manager, hub=hub)


# ---------------------------------------------------------------------------
# Handler dispatch table
# ---------------------------------------------------------------------------

HANDLERS = {
    "create-room": handle_create_room,
    "reserve-name": handle_reserve_name,
    "validate-name": handle_validate_name,
    "join-room": handle_join_room,
    "start-game": handle_start_game,
    "play-card": handle_play_card,
    "end-turn": handle_end_turn,
    "cant-play": handle_cant_play,
    "sort-hand": handle_sort_hand,
    "leave-room": handle_leave_room,
    "ping": handle_ping,
}
