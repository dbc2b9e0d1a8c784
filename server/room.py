"""
Room management for multiplayer Lockpick games.

This module is the single authority for room existence, membership, seat
assignment, and reconnection. Nothing outside RoomManager mutates
participants or a room's game state.

A Room contains:
    - A unique 6-character code for joining
    - Seated players (at most max_players) and unlimited spectators
    - The host, tracked by stable player_id so it survives reconnects
    - At most one live GameState

Reconnection protocol (join_room):
    1. The room must exist.
    2. A known player_id rebinds the participant to the new connection,
       keeping seat and role.
    3. Otherwise it is a new join: the name must be unused in the room and
       backed by a live PendingReservation for that player_id.
    4. New joiners are seated while no game is running and seats remain;
       everyone else spectates.
"""

import asyncio
import random
import time
import uuid
from dataclasses import dataclass, field
from typing import Callable, ClassVar, Iterator, Optional

from config import config
from constants import MIN_PLAYERS_TO_START, ROOM_CODE_ALPHABET
from game import GameState, MoveResult, initialize_game
from logging_config import get_logger
from stores.snapshot_store import SnapshotStore

logger = get_logger(__name__)

ROOM_NOT_FOUND = "Room not found"
NAME_IN_USE = "That name is already in use in this room."
NAME_REQUIRED = "Player name is required"
ALREADY_CONNECTED = "That player is already connected to this room."
ALREADY_IN_ROOM = "You are already in this room."
RESERVATION_MISSING = "Your name reservation has expired. Please choose your name again."
RESERVATION_MISMATCH = "That name does not match your reservation."
GAME_NOT_FOUND = "Game not found or not started"
NOT_A_PLAYER = "You are not a player in this game"
NOT_YOUR_TURN = "It is not your turn"


def normalize_name(name: str) -> str:
    """Names compare case-insensitively with surrounding whitespace ignored."""
    return name.strip().lower()


def _or_default(value, default):
    return default if value is None else value


@dataclass
class Participant:
    """
    Someone connected to a room (lobby-level representation).

    Attributes:
        connection_id: Current transport connection; changes on reconnect.
        player_id: Stable identity that survives reconnects.
        name: Display name, unique per room (case-insensitive).
        is_host: Whether this participant controls the room.
        is_connected: False while the transport is down.
        last_seen: When the participant last connected or disconnected.
    """

    role: ClassVar[str] = "participant"

    connection_id: str
    player_id: str
    name: str
    is_host: bool = False
    is_connected: bool = True
    last_seen: float = field(default_factory=time.time)

    @property
    def normalized_name(self) -> str:
        return normalize_name(self.name)

    def to_dict(self) -> dict:
        return {
            "role": self.role,
            "connection_id": self.connection_id,
            "player_id": self.player_id,
            "name": self.name,
            "is_host": self.is_host,
            "is_connected": self.is_connected,
            "last_seen": self.last_seen,
        }

    @staticmethod
    def from_dict(data: dict) -> "Participant":
        """Rebuild a Player or Spectator from its dict form."""
        common = dict(
            connection_id=data["connection_id"],
            player_id=data["player_id"],
            name=data["name"],
            is_host=data.get("is_host", False),
            is_connected=data.get("is_connected", False),
            last_seen=data.get("last_seen", time.time()),
        )
        if data.get("role") == Spectator.role:
            return Spectator(**common)
        return Player(player_index=data.get("player_index", 0), **common)


@dataclass
class Player(Participant):
    """A seated participant. player_index is the turn-order seat."""

    role: ClassVar[str] = "player"

    player_index: int = 0

    def to_dict(self) -> dict:
        return {**super().to_dict(), "player_index": self.player_index}


@dataclass
class Spectator(Participant):
    """An unseated participant. Watches the game but cannot act."""

    role: ClassVar[str] = "spectator"


@dataclass
class PendingReservation:
    """Short-lived claim binding a name to a not-yet-connected player_id."""

    room_code: str
    player_id: str
    normalized_name: str
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


@dataclass
class Room:
    """
    A game room that can host one Lockpick game at a time.

    Attributes:
        code: 6-character room code for joining (e.g., "K3Z9QA").
        host: player_id of the host.
        players: Seated players keyed by connection_id.
        spectators: Spectators keyed by connection_id.
        game_state: The live game, or None before the first start.
        max_players: Seat limit.
        lock: asyncio.Lock serializing mutations from concurrent handlers.
    """

    code: str
    host: Optional[str] = None
    players: dict[str, Player] = field(default_factory=dict)
    spectators: dict[str, Spectator] = field(default_factory=dict)
    game_state: Optional[GameState] = None
    max_players: int = config.MAX_PLAYERS_PER_ROOM
    created_at: float = field(default_factory=time.time)
    last_activity: float = field(default_factory=time.time)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False, compare=False)

    def participants(self) -> Iterator[Participant]:
        yield from self.players.values()
        yield from self.spectators.values()

    def get_participant(self, connection_id: str) -> Optional[Participant]:
        return self.players.get(connection_id) or self.spectators.get(connection_id)

    def find_by_player_id(self, player_id: str) -> Optional[Participant]:
        for participant in self.participants():
            if participant.player_id == player_id:
                return participant
        return None

    def is_name_taken(self, name: str) -> bool:
        wanted = normalize_name(name)
        return any(p.normalized_name == wanted for p in self.participants())

    def seated_players(self) -> list[Player]:
        """Players in seat order."""
        return sorted(self.players.values(), key=lambda p: p.player_index)

    def next_player_index(self) -> int:
        if not self.players:
            return 0
        return max(p.player_index for p in self.players.values()) + 1

    def host_player(self) -> Optional[Player]:
        for player in self.players.values():
            if player.is_host:
                return player
        return None

    def is_game_in_progress(self) -> bool:
        return self.game_state is not None and not self.game_state.is_finished

    def player_list(self) -> list[dict]:
        return [p.to_dict() for p in self.seated_players()]

    def spectator_list(self) -> list[dict]:
        return [s.to_dict() for s in self.spectators.values()]

    def to_dict(self) -> dict:
        """
        Serialize for snapshots.

        Maps become [connection_id, participant] pairs so insertion order and
        keys survive the round trip.
        """
        return {
            "code": self.code,
            "host": self.host,
            "players": [[cid, p.to_dict()] for cid, p in self.players.items()],
            "spectators": [[cid, s.to_dict()] for cid, s in self.spectators.items()],
            "game_state": self.game_state.to_dict() if self.game_state else None,
            "max_players": self.max_players,
            "created_at": self.created_at,
            "last_activity": self.last_activity,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Room":
        game_state = data.get("game_state")
        return cls(
            code=data["code"],
            host=data.get("host"),
            players={cid: Participant.from_dict(p) for cid, p in data.get("players", [])},
            spectators={cid: Participant.from_dict(s) for cid, s in data.get("spectators", [])},
            game_state=GameState.from_dict(game_state) if game_state else None,
            max_players=data.get("max_players", config.MAX_PLAYERS_PER_ROOM),
            created_at=data.get("created_at", time.time()),
            last_activity=data.get("last_activity", time.time()),
        )


# -----------------------------------------------------------------------------
# Results
# -----------------------------------------------------------------------------

@dataclass
class JoinResult:
    """Outcome of join_room."""

    success: bool
    room: Optional[Room] = None
    participant: Optional[Participant] = None
    is_spectator: bool = False
    is_reconnection: bool = False
    error: Optional[str] = None


@dataclass
class LeaveResult:
    """Outcome of leave_room for a known connection."""

    room: Room
    participant: Participant
    was_player: bool
    was_spectator: bool
    room_deleted: bool = False
    new_host: Optional[Player] = None


@dataclass
class ReservationResult:
    """Outcome of create_pending_player."""

    success: bool
    player_id: Optional[str] = None
    expires_at: Optional[float] = None
    error: Optional[str] = None


@dataclass
class NameCheck:
    """Outcome of the read-only validate-name precheck."""

    ok: bool
    is_taken: bool = False
    error: Optional[str] = None


@dataclass
class ActionResult:
    """Outcome of a host or turn action applied to a room's game."""

    success: bool
    room: Optional[Room] = None
    player: Optional[Player] = None
    game_state: Optional[GameState] = None
    error: Optional[str] = None


# -----------------------------------------------------------------------------
# Room manager
# -----------------------------------------------------------------------------

class RoomManager:
    """
    Owns every active room plus the connection and reservation indices.

    A single RoomManager is created at start-up and injected into the
    gateway. All public operations return result objects rather than
    raising.
    """

    def __init__(
        self,
        snapshot_store: Optional[SnapshotStore] = None,
        *,
        max_players: Optional[int] = None,
        code_length: Optional[int] = None,
        reservation_ttl: Optional[float] = None,
        require_reservation: Optional[bool] = None,
        empty_room_grace: Optional[float] = None,
        disconnected_prune_after: Optional[float] = None,
        empty_room_idle: Optional[float] = None,
        room_max_age: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Initialize an empty room manager.

        Unset limits and windows fall back to the server config.

        Args:
            snapshot_store: Where room snapshots go, or None to disable.
            clock: Time source in epoch seconds (overridable in tests).
        """
        self.rooms: dict[str, Room] = {}
        self.connection_rooms: dict[str, str] = {}
        self.pending: dict[str, dict[str, PendingReservation]] = {}
        self.snapshot_store = snapshot_store

        self.max_players = _or_default(max_players, config.MAX_PLAYERS_PER_ROOM)
        self.code_length = _or_default(code_length, config.ROOM_CODE_LENGTH)
        self.reservation_ttl = _or_default(reservation_ttl, config.RESERVATION_TTL_SECONDS)
        self.require_reservation = _or_default(require_reservation, config.REQUIRE_RESERVATION)
        self.empty_room_grace = _or_default(empty_room_grace, config.EMPTY_ROOM_GRACE_SECONDS)
        self.disconnected_prune_after = _or_default(disconnected_prune_after, config.DISCONNECTED_PRUNE_SECONDS)
        self.empty_room_idle = _or_default(empty_room_idle, config.EMPTY_ROOM_IDLE_MINUTES * 60)
        self.room_max_age = _or_default(room_max_age, config.ROOM_MAX_AGE_HOURS * 3600)
        self.clock = clock

        self._deletion_timers: dict[str, asyncio.TimerHandle] = {}

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    def get_room(self, code: str) -> Optional[Room]:
        """Get a room by its code (case-insensitive)."""
        return self.rooms.get(code.strip().upper())

    def get_player_room(self, connection_id: str) -> Optional[Room]:
        """Find the room a connection belongs to."""
        code = self.connection_rooms.get(connection_id)
        return self.rooms.get(code) if code else None

    def validate_name(self, room_code: str, name: str) -> NameCheck:
        """Check whether a name is free in a room without reserving it."""
        if not room_code or not name or not name.strip():
            return NameCheck(ok=False, error="Room code and player name required")
        room = self.get_room(room_code)
        if not room:
            return NameCheck(ok=False, error=ROOM_NOT_FOUND)
        return NameCheck(ok=True, is_taken=room.is_name_taken(name))

    # -------------------------------------------------------------------------
    # Creation
    # -------------------------------------------------------------------------

    def _generate_code(self, max_attempts: int = 100) -> Optional[str]:
        """Generate a unique room code, retrying on collision. None if every attempt collided."""
        for _ in range(max_attempts):
            code = "".join(random.choices(ROOM_CODE_ALPHABET, k=self.code_length))
            if code not in self.rooms:
                return code
        return None

    def create_room(
        self,
        host_connection_id: str,
        host_name: str,
        host_player_id: Optional[str] = None,
    ) -> Optional[Room]:
        """
        Create a new room with the caller seated as host.

        Args:
            host_connection_id: The host's connection.
            host_name: The host's display name.
            host_player_id: Stable identity to reuse, or None to mint one.

        Returns:
            The newly created Room, or None if no free room code was found.
        """
        now = self.clock()
        code = self._generate_code()
        if code is None:
            logger.error("Could not generate a unique room code")
            return None

        host = Player(
            connection_id=host_connection_id,
            player_id=host_player_id or str(uuid.uuid4()),
            name=host_name.strip(),
            is_host=True,
            last_seen=now,
            player_index=0,
        )
        room = Room(
            code=code,
            host=host.player_id,
            players={host_connection_id: host},
            max_players=self.max_players,
            created_at=now,
            last_activity=now,
        )
        self.rooms[code] = room
        self.connection_rooms[host_connection_id] = code

        logger.with_context(room_code=code).info(f"Room created by {host.name}")
        self._persist(room)
        return room

    # -------------------------------------------------------------------------
    # Reservations
    # -------------------------------------------------------------------------

    def _live_reservations(self, code: str) -> dict[str, PendingReservation]:
        """Reservations for a room, with expired entries purged."""
        reservations = self.pending.get(code, {})
        now = self.clock()
        for name in [n for n, r in reservations.items() if r.is_expired(now)]:
            del reservations[name]
        return reservations

    def create_pending_player(
        self,
        room_code: str,
        name: str,
        ttl: Optional[float] = None,
    ) -> ReservationResult:
        """
        Reserve a name for a player who has not connected yet.

        A newer reservation for the same name replaces the older one.

        Args:
            room_code: Room to reserve in.
            name: Desired display name.
            ttl: Lifetime in seconds (defaults to the configured TTL).

        Returns:
            ReservationResult with the new player_id and expiry.
        """
        room = self.get_room(room_code)
        if not room:
            return ReservationResult(success=False, error=ROOM_NOT_FOUND)
        if not name or not name.strip():
            return ReservationResult(success=False, error=NAME_REQUIRED)

        reservations = self._live_reservations(room.code)
        normalized = normalize_name(name)
        if normalized in reservations:
            logger.with_context(room_code=room.code).debug(f"Superseding reservation for '{normalized}'")
            del reservations[normalized]

        reservation = PendingReservation(
            room_code=room.code,
            player_id=str(uuid.uuid4()),
            normalized_name=normalized,
            expires_at=self.clock() + (ttl if ttl is not None else self.reservation_ttl),
        )
        reservations[normalized] = reservation
        self.pending[room.code] = reservations

        return ReservationResult(
            success=True,
            player_id=reservation.player_id,
            expires_at=reservation.expires_at,
        )

    def _drop_reservations_for(self, code: str, player_id: Optional[str]) -> None:
        if not player_id:
            return
        reservations = self.pending.get(code, {})
        for name in [n for n, r in reservations.items() if r.player_id == player_id]:
            del reservations[name]

    def _check_reservation(self, code: str, name: str, player_id: Optional[str]) -> Optional[str]:
        """Return an error if player_id holds no live reservation for name."""
        reservations = self._live_reservations(code)
        reservation = reservations.get(normalize_name(name))
        if reservation and player_id and reservation.player_id == player_id:
            return None
        if player_id and any(r.player_id == player_id for r in reservations.values()):
            return RESERVATION_MISMATCH
        return RESERVATION_MISSING

    # -------------------------------------------------------------------------
    # Join / Leave
    # -------------------------------------------------------------------------

    def join_room(
        self,
        room_code: str,
        connection_id: str,
        name: str,
        player_id: Optional[str] = None,
    ) -> JoinResult:
        """
        Join a room as a new participant, or reconnect a known one.

        Args:
            room_code: Code of the room to join.
            connection_id: The caller's current connection.
            name: Display name (ignored on reconnection).
            player_id: Stable identity from a reservation or earlier session.

        Returns:
            JoinResult describing the seat or the reason for rejection.
        """
        room = self.get_room(room_code)
        if not room:
            return JoinResult(success=False, error=ROOM_NOT_FOUND)

        if player_id:
            existing = room.find_by_player_id(player_id)
            if existing:
                return self._reconnect(room, existing, connection_id)

        if room.get_participant(connection_id):
            return JoinResult(success=False, error=ALREADY_IN_ROOM)

        if not name or not name.strip():
            return JoinResult(success=False, error=NAME_REQUIRED)

        if room.is_name_taken(name):
            self._drop_reservations_for(room.code, player_id)
            return JoinResult(success=False, error=NAME_IN_USE)

        if self.require_reservation:
            error = self._check_reservation(room.code, name, player_id)
            if error:
                return JoinResult(success=False, error=error)
            del self.pending[room.code][normalize_name(name)]

        now = self.clock()
        common = dict(
            connection_id=connection_id,
            player_id=player_id or str(uuid.uuid4()),
            name=name.strip(),
            last_seen=now,
        )

        participant: Participant
        if not room.is_game_in_progress() and len(room.players) < room.max_players:
            participant = Player(player_index=room.next_player_index(), **common)
            room.players[connection_id] = participant
        else:
            participant = Spectator(**common)
            room.spectators[connection_id] = participant

        self.connection_rooms[connection_id] = room.code
        self._cancel_deletion(room.code)
        room.last_activity = now

        is_spectator = isinstance(participant, Spectator)
        logger.with_context(room_code=room.code, player_id=participant.player_id).info(
            f"{participant.name} joined as {'spectator' if is_spectator else 'player'}"
        )
        self._persist(room)
        return JoinResult(success=True, room=room, participant=participant, is_spectator=is_spectator)

    def _reconnect(self, room: Room, participant: Participant, connection_id: str) -> JoinResult:
        old_connection_id = participant.connection_id
        if (
            participant.is_connected
            and old_connection_id != connection_id
            and self.connection_rooms.get(old_connection_id) == room.code
        ):
            return JoinResult(success=False, error=ALREADY_CONNECTED)

        members = room.spectators if isinstance(participant, Spectator) else room.players
        members.pop(old_connection_id, None)
        members[connection_id] = participant
        self.connection_rooms.pop(old_connection_id, None)
        self.connection_rooms[connection_id] = room.code

        now = self.clock()
        participant.connection_id = connection_id
        participant.is_connected = True
        participant.last_seen = now
        room.last_activity = now
        self._cancel_deletion(room.code)

        logger.with_context(room_code=room.code, player_id=participant.player_id).info(
            f"{participant.name} reconnected"
        )
        self._persist(room)
        return JoinResult(
            success=True,
            room=room,
            participant=participant,
            is_spectator=isinstance(participant, Spectator),
            is_reconnection=True,
        )

    def _remove_participant(self, room: Room, connection_id: str) -> tuple[Optional[Participant], Optional[Player]]:
        """Remove a participant, handing host to the lowest remaining seat."""
        participant = room.players.pop(connection_id, None) or room.spectators.pop(connection_id, None)
        if participant is None:
            return None, None

        if self.connection_rooms.get(connection_id) == room.code:
            del self.connection_rooms[connection_id]

        new_host = None
        if participant.is_host:
            participant.is_host = False
            remaining = room.seated_players()
            if remaining:
                new_host = remaining[0]
                new_host.is_host = True
                room.host = new_host.player_id
            else:
                room.host = None
        return participant, new_host

    def leave_room(self, connection_id: str) -> Optional[LeaveResult]:
        """
        Remove a connection's participant from its room.

        The room outlives its last player for a short grace window so a
        reconnect can still land; it is deleted afterwards if still empty.

        Returns:
            LeaveResult, or None if the connection is not in a room.
        """
        room = self.get_player_room(connection_id)
        if not room:
            self.connection_rooms.pop(connection_id, None)
            return None

        participant, new_host = self._remove_participant(room, connection_id)
        if participant is None:
            return None

        room.last_activity = self.clock()
        log = logger.with_context(room_code=room.code, player_id=participant.player_id)
        log.info(f"{participant.name} left")
        if new_host:
            log.info(f"Host transferred to {new_host.name}")

        if not room.players:
            self._schedule_deletion(room.code)

        self._persist(room)
        return LeaveResult(
            room=room,
            participant=participant,
            was_player=isinstance(participant, Player),
            was_spectator=isinstance(participant, Spectator),
            new_host=new_host,
        )

    def mark_player_disconnected(self, connection_id: str) -> Optional[Participant]:
        """
        Flag a participant as disconnected without removing them.

        Used for transient network drops; the participant keeps their seat
        until a later leave or cleanup sweep.
        """
        room = self.get_player_room(connection_id)
        if not room:
            return None
        participant = room.get_participant(connection_id)
        if not participant:
            return None

        participant.is_connected = False
        participant.last_seen = self.clock()
        logger.with_context(room_code=room.code, player_id=participant.player_id).info(
            f"{participant.name} disconnected"
        )
        self._persist(room)
        return participant

    # -------------------------------------------------------------------------
    # Room deletion
    # -------------------------------------------------------------------------

    def _schedule_deletion(self, code: str) -> None:
        self._cancel_deletion(code)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop (sync callers): the inactive-room sweep handles it.
            return
        self._deletion_timers[code] = loop.call_later(
            self.empty_room_grace, self.expire_empty_room, code
        )

    def _cancel_deletion(self, code: str) -> None:
        handle = self._deletion_timers.pop(code, None)
        if handle:
            handle.cancel()

    def expire_empty_room(self, code: str) -> bool:
        """Delete a room if it still has no seated players."""
        self._deletion_timers.pop(code, None)
        room = self.rooms.get(code)
        if room and not room.players:
            self.remove_room(code)
            logger.with_context(room_code=code).info("Room deleted after grace window with no players")
            return True
        return False

    def remove_room(self, code: str) -> None:
        """Delete a room, its indices, reservations and snapshot."""
        self._cancel_deletion(code)
        room = self.rooms.pop(code, None)
        self.pending.pop(code, None)
        if room:
            for participant in list(room.participants()):
                if self.connection_rooms.get(participant.connection_id) == code:
                    del self.connection_rooms[participant.connection_id]
        if self.snapshot_store:
            self.snapshot_store.delete(code)

    # -------------------------------------------------------------------------
    # Cleanup sweeps
    # -------------------------------------------------------------------------

    def cleanup_disconnected_participants(self, max_age: Optional[float] = None) -> int:
        """
        Prune participants disconnected for longer than max_age seconds.

        Seated players are kept while their game is running so seats keep
        mapping to hands. Rooms are never deleted here.

        Returns:
            Number of participants removed.
        """
        max_age = self.disconnected_prune_after if max_age is None else max_age
        now = self.clock()
        removed = 0
        for room in list(self.rooms.values()):
            stale = [
                p for p in room.participants()
                if not p.is_connected and now - p.last_seen > max_age
                and not (isinstance(p, Player) and room.is_game_in_progress())
            ]
            for participant in stale:
                self._remove_participant(room, participant.connection_id)
                removed += 1
                logger.with_context(room_code=room.code).info(
                    f"Pruned disconnected participant {participant.name}"
                )
            if stale:
                self._persist(room)
        return removed

    def cleanup_inactive_rooms(self) -> list[str]:
        """
        Delete abandoned rooms.

        Rooms with no players idle past the empty-room window go, as does
        any room untouched past the maximum age.

        Returns:
            Codes of deleted rooms.
        """
        now = self.clock()
        deleted = []
        for code, room in list(self.rooms.items()):
            idle = now - room.last_activity
            if idle > self.room_max_age or (not room.players and idle > self.empty_room_idle):
                self.remove_room(code)
                deleted.append(code)
                logger.with_context(room_code=code).info(f"Inactive room deleted after {int(idle)}s")
        return deleted

    # -------------------------------------------------------------------------
    # Games
    # -------------------------------------------------------------------------

    def update_game_state(self, code: str, game_state: GameState) -> None:
        room = self.get_room(code)
        if room:
            room.game_state = game_state
            room.last_activity = self.clock()
            self._persist(room)

    def start_game(self, room_code: str, connection_id: str) -> ActionResult:
        """
        Deal a new game for the seated players (host only, 2+ players).

        Seats are renumbered 0..n-1 in seat order first so every seat maps
        to a hand.
        """
        room = self.get_room(room_code)
        if not room:
            return ActionResult(success=False, error=ROOM_NOT_FOUND)

        player = room.players.get(connection_id)
        if not player or not player.is_host:
            return ActionResult(success=False, room=room, error="Only the host can start the game")

        if len(room.players) < MIN_PLAYERS_TO_START:
            return ActionResult(
                success=False,
                room=room,
                error=f"At least {MIN_PLAYERS_TO_START} players are required to start the game",
            )

        if room.is_game_in_progress():
            return ActionResult(success=False, room=room, error="A game is already in progress")

        seated = room.seated_players()
        for index, seat in enumerate(seated):
            seat.player_index = index

        room.game_state = initialize_game([p.name for p in seated])
        room.last_activity = self.clock()
        logger.with_context(room_code=room.code).info(f"Game started with {len(seated)} players")
        self._persist(room)
        return ActionResult(success=True, room=room, player=player, game_state=room.game_state)

    def apply_turn_action(
        self,
        room_code: str,
        connection_id: str,
        transition: Callable[[GameState], MoveResult],
    ) -> ActionResult:
        """
        Apply a turn-engine transition on behalf of the current player.

        Args:
            room_code: Room whose game to act on.
            connection_id: The acting connection.
            transition: Pure function from GameState to MoveResult.

        Returns:
            ActionResult with the new state, or the validation error.
        """
        room = self.get_room(room_code)
        if not room or not room.game_state:
            return ActionResult(success=False, room=room, error=GAME_NOT_FOUND)

        player = room.players.get(connection_id)
        if not player:
            return ActionResult(success=False, room=room, error=NOT_A_PLAYER)

        if room.game_state.current_player != player.player_index:
            return ActionResult(success=False, room=room, player=player, error=NOT_YOUR_TURN)

        result = transition(room.game_state)
        if not result.success:
            return ActionResult(success=False, room=room, player=player, error=result.error)

        if result.game_state is not room.game_state:
            self.update_game_state(room.code, result.game_state)
        return ActionResult(success=True, room=room, player=player, game_state=room.game_state)

    # -------------------------------------------------------------------------
    # Reporting
    # -------------------------------------------------------------------------

    def get_room_list(self) -> list[dict]:
        return [
            {
                "code": code,
                "player_count": len(room.players),
                "spectator_count": len(room.spectators),
                "has_game": room.game_state is not None,
                "created_at": room.created_at,
            }
            for code, room in self.rooms.items()
        ]

    def get_room_occupants(self, code: str) -> Optional[dict]:
        room = self.get_room(code)
        if not room:
            return None
        return {
            "room_code": room.code,
            "host": room.host,
            "players": room.player_list(),
            "spectators": room.spectator_list(),
        }

    def get_room_connection_status(self, code: str) -> Optional[dict]:
        room = self.get_room(code)
        if not room:
            return None
        participants = list(room.participants())
        connected = [p for p in participants if p.is_connected]
        return {
            "total": len(participants),
            "connected": len(connected),
            "disconnected": len(participants) - len(connected),
            "participants": [
                {"name": p.name, "role": p.role, "is_connected": p.is_connected, "last_seen": p.last_seen}
                for p in participants
            ],
        }

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def _persist(self, room: Room) -> None:
        if self.snapshot_store:
            self.snapshot_store.save(room.code, room.to_dict())

    def load_snapshots(self) -> int:
        """
        Restore rooms from disk at start-up.

        Connections never survive a restart, so every participant comes
        back disconnected and must rejoin with their player_id.

        Returns:
            Number of rooms restored.
        """
        if not self.snapshot_store:
            return 0

        restored = 0
        now = self.clock()
        for data in self.snapshot_store.load_all():
            try:
                room = Room.from_dict(data)
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                code = data.get("code") if isinstance(data, dict) else None
                logger.error(f"Skipping unreadable snapshot {code}: {e}")
                continue

            for participant in room.participants():
                participant.is_connected = False
                participant.last_seen = now
            self.rooms[room.code] = room
            restored += 1

        logger.info(f"Restored {restored} rooms from snapshots")
        return restored
