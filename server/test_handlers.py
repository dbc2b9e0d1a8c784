"""
Test suite for WebSocket message handlers.

Tests handler flows and validation using mock WebSockets registered in a
real ConnectionHub and a real RoomManager.

Run with: pytest test_handlers.py -v
"""

from unittest.mock import patch

import pytest

from connections import ConnectionHub
from handlers import (
    HANDLERS,
    ConnectionContext,
    handle_cant_play,
    handle_create_room,
    handle_disconnect,
    handle_end_turn,
    handle_join_room,
    handle_leave_room,
    handle_ping,
    handle_play_card,
    handle_reserve_name,
    handle_sort_hand,
    handle_start_game,
    handle_validate_name,
    leave_if_still_disconnected,
)
from room import RoomManager


# =============================================================================
# Mock helpers
# =============================================================================

class MockWebSocket:
    """Mock WebSocket that collects sent messages."""

    def __init__(self):
        self.messages: list[dict] = []
        self.closed_with = None

    async def send_json(self, data: dict):
        self.messages.append(data)

    async def close(self, code: int = 1000, reason: str = ""):
        self.closed_with = code

    def last_message(self) -> dict:
        return self.messages[-1] if self.messages else {}

    def messages_of_type(self, msg_type: str) -> list[dict]:
        return [m for m in self.messages if m.get("type") == msg_type]


class Client:
    """A connection plus the dependencies every handler needs."""

    def __init__(self, connection_id: str, room_manager: RoomManager, hub: ConnectionHub):
        self.ws = MockWebSocket()
        self.ctx = ConnectionContext(websocket=self.ws, connection_id=connection_id)
        self.deps = dict(room_manager=room_manager, hub=hub)
        hub.register(connection_id, self.ws)

    async def send(self, msg_type: str, **data):
        await HANDLERS[msg_type]({"type": msg_type, **data}, self.ctx, **self.deps)


@pytest.fixture
def room_manager():
    return RoomManager(require_reservation=True)


@pytest.fixture
def hub():
    return ConnectionHub()


async def create_host(room_manager, hub, name="Alice") -> Client:
    host = Client("conn-host", room_manager, hub)
    await host.send("create-room", player_name=name)
    return host


async def join(room_manager, hub, code, connection_id, name) -> Client:
    client = Client(connection_id, room_manager, hub)
    await client.send("reserve-name", room_code=code, player_name=name)
    player_id = client.ws.messages_of_type("name-reserved")[-1]["player_id"]
    await client.send("join-room", room_code=code, player_name=name, player_id=player_id)
    return client


async def two_player_game(room_manager, hub):
    host = await create_host(room_manager, hub)
    guest = await join(room_manager, hub, host.ctx.room_code, "conn-guest", "Bob")
    await host.send("start-game")
    return host, guest, room_manager.get_room(host.ctx.room_code)


# =============================================================================
# Lobby handlers
# =============================================================================

class TestHandleCreateRoom:

    @pytest.mark.asyncio
    async def test_creates_room(self, room_manager, hub):
        ws = MockWebSocket()
        ctx = ConnectionContext(websocket=ws, connection_id="conn-1")

        await handle_create_room({"player_name": "Alice"}, ctx, room_manager=room_manager, hub=hub)

        assert len(room_manager.rooms) == 1
        message = ws.messages_of_type("room-created")[0]
        assert message["room_code"] == ctx.room_code
        assert message["is_host"] is True
        assert message["player_id"] == ctx.player_id
        assert message["players"][0]["name"] == "Alice"

    @pytest.mark.asyncio
    async def test_requires_name(self, room_manager, hub):
        ws = MockWebSocket()
        ctx = ConnectionContext(websocket=ws, connection_id="conn-1")

        await handle_create_room({"player_name": "   "}, ctx, room_manager=room_manager, hub=hub)

        assert ctx.room_code is None
        assert not room_manager.rooms
        assert ws.last_message()["type"] == "error"

    @pytest.mark.asyncio
    async def test_create_failure_reports_error(self, room_manager, hub):
        ws = MockWebSocket()
        ctx = ConnectionContext(websocket=ws, connection_id="conn-1")

        with patch.object(room_manager, "_generate_code", return_value=None):
            await handle_create_room({"player_name": "Alice"}, ctx, room_manager=room_manager, hub=hub)

        assert ctx.room_code is None
        assert not room_manager.rooms
        assert ws.last_message() == {"type": "error", "message": "Could not create a room. Please try again."}

    @pytest.mark.asyncio
    async def test_create_leaves_previous_room(self, room_manager, hub):
        host = await create_host(room_manager, hub)
        first = host.ctx.room_code
        await host.send("create-room", player_name="Alice")

        assert host.ctx.room_code != first
        assert not room_manager.get_room(first).players


class TestNameHandlers:

    @pytest.mark.asyncio
    async def test_reserve_name(self, room_manager, hub):
        host = await create_host(room_manager, hub)
        ws = MockWebSocket()
        ctx = ConnectionContext(websocket=ws, connection_id="conn-2")

        await handle_reserve_name(
            {"room_code": host.ctx.room_code.lower(), "player_name": "Bob"},
            ctx,
            room_manager=room_manager,
        )

        message = ws.last_message()
        assert message["type"] == "name-reserved"
        assert message["player_id"]
        assert message["expires_at"] > 0

    @pytest.mark.asyncio
    async def test_reserve_unknown_room(self, room_manager, hub):
        ws = MockWebSocket()
        ctx = ConnectionContext(websocket=ws, connection_id="conn-2")
        await handle_reserve_name({"room_code": "NOPE00", "player_name": "Bob"}, ctx, room_manager=room_manager)
        assert ws.last_message() == {"type": "error", "message": "Room not found"}

    @pytest.mark.asyncio
    async def test_validate_name(self, room_manager, hub):
        host = await create_host(room_manager, hub)
        ws = MockWebSocket()
        ctx = ConnectionContext(websocket=ws, connection_id="conn-2")

        await handle_validate_name({"room_code": host.ctx.room_code, "player_name": "ALICE"}, ctx, room_manager=room_manager)
        assert ws.last_message() == {"type": "name-validated", "ok": True, "is_taken": True}

        await handle_validate_name({"room_code": host.ctx.room_code, "player_name": "Bob"}, ctx, room_manager=room_manager)
        assert ws.last_message()["is_taken"] is False

    @pytest.mark.asyncio
    async def test_validate_unknown_room(self, room_manager, hub):
        ws = MockWebSocket()
        ctx = ConnectionContext(websocket=ws, connection_id="conn-2")
        await handle_validate_name({"room_code": "NOPE00", "player_name": "Bob"}, ctx, room_manager=room_manager)
        assert ws.last_message()["ok"] is False
        assert ws.last_message()["error"] == "Room not found"


class TestHandleJoinRoom:

    @pytest.mark.asyncio
    async def test_rejoin_same_room_under_new_name_rejected(self, room_manager, hub):
        host = await create_host(room_manager, hub)
        code = host.ctx.room_code
        guest = await join(room_manager, hub, code, "conn-guest", "Bob")

        await guest.send("reserve-name", room_code=code, player_name="Carol")
        player_id = guest.ws.messages_of_type("name-reserved")[-1]["player_id"]
        await guest.send("join-room", room_code=code, player_name="Carol", player_id=player_id)

        assert guest.ws.last_message() == {
            "type": "room-joined",
            "success": False,
            "error": "You are already in this room.",
        }
        assert [p["name"] for p in room_manager.get_room(code).player_list()] == ["Alice", "Bob"]
        assert len(host.ws.messages_of_type("player-joined")) == 1

    @pytest.mark.asyncio
    async def test_join_with_reservation(self, room_manager, hub):
        host = await create_host(room_manager, hub)
        guest = await join(room_manager, hub, host.ctx.room_code, "conn-guest", "Bob")

        joined = guest.ws.messages_of_type("room-joined")[0]
        assert joined["success"] is True
        assert joined["is_spectator"] is False
        assert [p["name"] for p in joined["room"]["players"]] == ["Alice", "Bob"]
        assert guest.ctx.room_code == host.ctx.room_code

        announced = host.ws.messages_of_type("player-joined")[0]
        assert announced["player"]["name"] == "Bob"
        assert not guest.ws.messages_of_type("player-joined")

    @pytest.mark.asyncio
    async def test_join_nonexistent_room(self, room_manager, hub):
        ws = MockWebSocket()
        ctx = ConnectionContext(websocket=ws, connection_id="conn-2")

        await handle_join_room({"room_code": "ZZZZZZ", "player_name": "Bob"}, ctx, room_manager=room_manager, hub=hub)

        assert ctx.room_code is None
        assert ws.last_message() == {"type": "room-joined", "success": False, "error": "Room not found"}

    @pytest.mark.asyncio
    async def test_join_without_reservation(self, room_manager, hub):
        host = await create_host(room_manager, hub)
        guest = Client("conn-guest", room_manager, hub)

        await guest.send("join-room", room_code=host.ctx.room_code, player_name="Bob")

        message = guest.ws.last_message()
        assert message["success"] is False
        assert "reservation" in message["error"]
        assert guest.ctx.room_code is None

    @pytest.mark.asyncio
    async def test_duplicate_name(self, room_manager, hub):
        host = await create_host(room_manager, hub)
        guest = await join(room_manager, hub, host.ctx.room_code, "conn-guest", "alice")
        assert guest.ws.last_message()["error"] == "That name is already in use in this room."

    @pytest.mark.asyncio
    async def test_join_in_progress_game_spectates(self, room_manager, hub):
        host, guest, room = await two_player_game(room_manager, hub)
        late = await join(room_manager, hub, room.code, "conn-late", "Carol")

        joined = late.ws.messages_of_type("room-joined")[0]
        assert joined["is_spectator"] is True
        assert joined["room"]["game_state"] is not None
        assert host.ws.messages_of_type("player-joined")[-1]["is_spectator"] is True

    @pytest.mark.asyncio
    async def test_reconnect_on_new_socket(self, room_manager, hub):
        host, guest, room = await two_player_game(room_manager, hub)
        room_manager.mark_player_disconnected("conn-guest")

        again = Client("conn-guest-2", room_manager, hub)
        await again.send("join-room", room_code=room.code, player_name="Bob", player_id=guest.ctx.player_id)

        joined = again.ws.last_message()
        assert joined["success"] is True
        assert joined["is_reconnection"] is True
        assert joined["is_spectator"] is False
        assert host.ws.messages_of_type("player-joined")[-1]["is_reconnection"] is True


# =============================================================================
# Game lifecycle handlers
# =============================================================================

class TestHandleStartGame:

    @pytest.mark.asyncio
    async def test_host_starts(self, room_manager, hub):
        host, guest, room = await two_player_game(room_manager, hub)

        for client in (host, guest):
            started = client.ws.messages_of_type("game-started")
            assert len(started) == 1
            assert len(started[0]["game_state"]["player_hands"]) == 2
            assert started[0]["status"].startswith("Player 1's turn")

    @pytest.mark.asyncio
    async def test_non_host_rejected(self, room_manager, hub):
        host = await create_host(room_manager, hub)
        guest = await join(room_manager, hub, host.ctx.room_code, "conn-guest", "Bob")

        await handle_start_game({}, guest.ctx, **guest.deps)

        assert guest.ws.last_message() == {"type": "error", "message": "Only the host can start the game"}
        assert room_manager.get_room(host.ctx.room_code).game_state is None

    @pytest.mark.asyncio
    async def test_not_in_room(self, room_manager, hub):
        client = Client("conn-x", room_manager, hub)
        await handle_start_game({}, client.ctx, **client.deps)
        assert client.ws.last_message() == {"type": "error", "message": "You are not in a room"}


# =============================================================================
# Turn action handlers
# =============================================================================

class TestHandlePlayCard:

    @pytest.mark.asyncio
    async def test_play_broadcasts(self, room_manager, hub):
        host, guest, room = await two_player_game(room_manager, hub)
        card = min(room.game_state.current_hand)

        await handle_play_card({"card": card, "pile_index": 0}, host.ctx, **host.deps)

        for client in (host, guest):
            played = client.ws.messages_of_type("card-played")[-1]
            assert played["played"] is True
            assert played["card"] == card
            assert played["game_state"]["discard_piles"][0] == [card]
        assert card not in room.game_state.current_hand

    @pytest.mark.asyncio
    async def test_not_your_turn(self, room_manager, hub):
        host, guest, room = await two_player_game(room_manager, hub)
        card = room.game_state.player_hands[1][0]

        await handle_play_card({"card": card, "pile_index": 0}, guest.ctx, **guest.deps)

        assert guest.ws.last_message() == {"type": "error", "message": "It is not your turn"}
        assert room.game_state.discard_piles[0] == []

    @pytest.mark.asyncio
    async def test_card_not_in_hand_only_tells_caller(self, room_manager, hub):
        host, guest, room = await two_player_game(room_manager, hub)
        before = room.game_state
        missing = next(c for c in range(2, 100) if c not in before.current_hand)

        await handle_play_card({"card": missing, "pile_index": 0}, host.ctx, **host.deps)

        assert host.ws.last_message()["played"] is False
        assert not guest.ws.messages_of_type("card-played")
        assert room.game_state is before

    @pytest.mark.asyncio
    async def test_illegal_play(self, room_manager, hub):
        host, guest, room = await two_player_game(room_manager, hub)
        room.game_state.discard_piles[0] = [99]
        card = next(c for c in room.game_state.current_hand if c != 89)

        await handle_play_card({"card": card, "pile_index": 0}, host.ctx, **host.deps)

        assert host.ws.last_message() == {
            "type": "error",
            "message": f"Card {card} cannot be played on this ascending pile",
        }

    @pytest.mark.asyncio
    async def test_bad_payload(self, room_manager, hub):
        host, guest, room = await two_player_game(room_manager, hub)
        await handle_play_card({"card": "12"}, host.ctx, **host.deps)
        assert host.ws.last_message()["type"] == "error"


class TestHandleEndTurn:

    @pytest.mark.asyncio
    async def test_end_turn_too_early(self, room_manager, hub):
        host, guest, room = await two_player_game(room_manager, hub)
        await handle_end_turn({}, host.ctx, **host.deps)
        assert host.ws.last_message() == {
            "type": "error",
            "message": "You must play at least 2 cards this turn",
        }

    @pytest.mark.asyncio
    async def test_end_turn_rotates(self, room_manager, hub):
        host, guest, room = await two_player_game(room_manager, hub)
        for card in sorted(room.game_state.current_hand)[:2]:
            await host.send("play-card", card=card, pile_index=0)

        await handle_end_turn({}, host.ctx, **host.deps)

        ended = guest.ws.messages_of_type("turn-ended")[-1]
        assert ended["previous_player"] == 0
        assert ended["game_state"]["current_player"] == 1
        assert room.game_state.current_player == 1
        assert len(room.game_state.player_hands[0]) == 7


class TestOtherTurnHandlers:

    @pytest.mark.asyncio
    async def test_sort_hand(self, room_manager, hub):
        host, guest, room = await two_player_game(room_manager, hub)
        await handle_sort_hand({}, host.ctx, **host.deps)

        sorted_msg = guest.ws.messages_of_type("hand-sorted")[-1]
        hand = sorted_msg["game_state"]["player_hands"][0]
        assert hand == sorted(hand)

    @pytest.mark.asyncio
    async def test_cant_play_rejected_with_moves(self, room_manager, hub):
        host, guest, room = await two_player_game(room_manager, hub)
        await handle_cant_play({}, host.ctx, **host.deps)
        assert host.ws.last_message() == {"type": "error", "message": "You still have a card you can play"}

    @pytest.mark.asyncio
    async def test_cant_play_ends_game(self, room_manager, hub):
        host, guest, room = await two_player_game(room_manager, hub)
        room.game_state.discard_piles = [[99], [99], [2], [2]]
        room.game_state.player_hands[0] = [50]

        await handle_cant_play({}, host.ctx, **host.deps)

        message = guest.ws.messages_of_type("cant-play")[-1]
        assert message["player_name"] == "Alice"
        assert message["game_state"]["game_over"] is True
        assert message["status"].startswith("Game over")


# =============================================================================
# Leave / presence handlers
# =============================================================================

class TestLeaveAndDisconnect:

    @pytest.mark.asyncio
    async def test_host_leave_transfers_host(self, room_manager, hub):
        host = await create_host(room_manager, hub)
        guest = await join(room_manager, hub, host.ctx.room_code, "conn-guest", "Bob")

        await handle_leave_room({}, host.ctx, **host.deps)

        left = guest.ws.messages_of_type("player-left")[-1]
        assert left["player_name"] == "Alice"
        assert left["new_host"] == guest.ctx.player_id
        assert host.ctx.room_code is None

    @pytest.mark.asyncio
    async def test_ping(self, room_manager, hub):
        client = Client("conn-x", room_manager, hub)
        await handle_ping({}, client.ctx)
        assert client.ws.last_message()["type"] == "pong"

    @pytest.mark.asyncio
    async def test_network_drop_then_delayed_leave(self, room_manager, hub):
        host = await create_host(room_manager, hub)
        guest = await join(room_manager, hub, host.ctx.room_code, "conn-guest", "Bob")
        hub.unregister("conn-guest")

        pending = await handle_disconnect(guest.ctx, False, **guest.deps)
        room = room_manager.get_room(host.ctx.room_code)
        assert pending is True
        assert room.players["conn-guest"].is_connected is False
        assert not host.ws.messages_of_type("player-left")

        await leave_if_still_disconnected("conn-guest", **guest.deps)
        assert "conn-guest" not in room.players
        assert host.ws.messages_of_type("player-left")[-1]["player_name"] == "Bob"

    @pytest.mark.asyncio
    async def test_delayed_leave_skipped_after_reconnect(self, room_manager, hub):
        host = await create_host(room_manager, hub)
        guest = await join(room_manager, hub, host.ctx.room_code, "conn-guest", "Bob")
        await handle_disconnect(guest.ctx, False, **guest.deps)

        again = Client("conn-guest-2", room_manager, hub)
        await again.send("join-room", room_code=host.ctx.room_code, player_name="Bob", player_id=guest.ctx.player_id)
        await leave_if_still_disconnected("conn-guest", **guest.deps)

        room = room_manager.get_room(host.ctx.room_code)
        assert room.players["conn-guest-2"].is_connected is True
        assert not host.ws.messages_of_type("player-left")

    @pytest.mark.asyncio
    async def test_deliberate_close_leaves_at_once(self, room_manager, hub):
        host = await create_host(room_manager, hub)
        guest = await join(room_manager, hub, host.ctx.room_code, "conn-guest", "Bob")

        pending = await handle_disconnect(guest.ctx, True, **guest.deps)

        assert pending is False
        assert "conn-guest" not in room_manager.get_room(host.ctx.room_code).players
        assert host.ws.messages_of_type("player-left")

    @pytest.mark.asyncio
    async def test_disconnect_outside_room(self, room_manager, hub):
        client = Client("conn-x", room_manager, hub)
        assert await handle_disconnect(client.ctx, False, **client.deps) is False
