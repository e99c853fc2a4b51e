"""Process-wide room bookkeeping: room codes, connection routing, eviction."""

from __future__ import annotations

import logging
import random
from collections.abc import Callable, MutableMapping
from dataclasses import dataclass
from threading import RLock

from . import service
from .models import Disconnected, Joined, Player, Rejected, RejectionKind, Room
from .service import GameSettings


logger = logging.getLogger(__name__)

ROOM_CODE_MIN = 100_000
ROOM_CODE_MAX = 999_999


class SpyRoomError(Exception):
    """Base class for unexpected server-side failures."""


class RoomCodeExhausted(SpyRoomError):
    def __init__(self, attempts: int) -> None:
        super().__init__(f"no free room code after {attempts} attempts")
        self.attempts = attempts


@dataclass(frozen=True)
class ConnectionRoute:
    player_id: str
    room_code: str


class RoomRegistry:
    """Owns the ``code -> Room`` and ``connection id -> route`` maps.

    Both maps are only touched through these methods. Storage can be injected
    for tests; the registry is created once per app and handed to the gateway.
    """

    def __init__(
        self,
        rooms: MutableMapping[str, Room] | None = None,
        connections: MutableMapping[str, ConnectionRoute] | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], int] | None = None,
        settings: GameSettings | None = None,
        max_code_attempts: int = 50,
    ) -> None:
        self._lock = RLock()
        self._rooms = rooms if rooms is not None else {}
        self._connections = connections if connections is not None else {}
        self.rng = rng or random.SystemRandom()
        self._clock = clock or service.now_ms
        self.settings = settings or GameSettings()
        self.max_code_attempts = max_code_attempts

    def now_ms(self) -> int:
        return self._clock()

    # -- rooms ---------------------------------------------------------------

    def _generate_code(self) -> str:
        for _ in range(self.max_code_attempts):
            code = str(self.rng.randint(ROOM_CODE_MIN, ROOM_CODE_MAX))
            if code not in self._rooms:
                return code
        raise RoomCodeExhausted(self.max_code_attempts)

    def create_room(self, host_nickname: str, connection_id: str) -> tuple[Room, Player]:
        with self._lock:
            code = self._generate_code()
            now = self.now_ms()
            room = Room(code=code, host_player_id="", created_at_ms=now)
            joined = service.add_or_reattach_player(room, host_nickname, connection_id, now, self.settings)
            if isinstance(joined, Rejected):
                raise SpyRoomError(f"could not seat host in new room: {joined.kind.value}")

            previous = self._connections.get(connection_id)
            if previous is not None:
                self._release(previous)
            self._rooms[code] = room
            self._bind(connection_id, joined.player.id, code)
            logger.info("room %s created by %s (%s)", code, host_nickname, joined.player.id)
            return room, joined.player

    def lookup_room(self, code: str) -> Room | None:
        with self._lock:
            return self._rooms.get(code)

    def list_rooms(self) -> list[Room]:
        with self._lock:
            return list(self._rooms.values())

    def delete_room(self, code: str) -> bool:
        with self._lock:
            room = self._rooms.pop(code, None)
            if room is None:
                return False
            for sid in [sid for sid, route in self._connections.items() if route.room_code == code]:
                del self._connections[sid]
            return True

    # -- connections ---------------------------------------------------------

    def _bind(self, connection_id: str, player_id: str, code: str) -> None:
        self._connections[connection_id] = ConnectionRoute(player_id=player_id, room_code=code)

    def resolve_connection(self, connection_id: str) -> ConnectionRoute | None:
        with self._lock:
            return self._connections.get(connection_id)

    def unbind_connection(self, connection_id: str) -> ConnectionRoute | None:
        with self._lock:
            return self._connections.pop(connection_id, None)

    def join_room(self, code: str, nickname: str, connection_id: str) -> Joined | Rejected:
        with self._lock:
            room = self._rooms.get(code)
            if room is None:
                return Rejected.of(RejectionKind.ROOM_NOT_FOUND)

            previous = self._connections.get(connection_id)
            seat = self._seat_of(previous)
            if seat is not None:
                seated_room, seated_player = seat
                if seated_room.code == code and seated_player.nickname == nickname:
                    return Joined(player=seated_player, reattached=True)
                # A seat taken in a running game stays with its socket until the game ends.
                if seated_room.phase != "lobby":
                    return Rejected.of(RejectionKind.WRONG_PHASE, "Leave your current game first")

            joined = service.add_or_reattach_player(room, nickname, connection_id, self.now_ms(), self.settings)
            if isinstance(joined, Rejected):
                return joined

            if previous is not None and previous.player_id != joined.player.id:
                # Same socket taking another seat: release the one it held before.
                self._release(previous)
            self._bind(connection_id, joined.player.id, code)

            logger.info(
                "player %s (%s) %s room %s",
                nickname,
                joined.player.id,
                "reattached to" if joined.reattached else "joined",
                code,
            )
            return joined

    def _seat_of(self, route: ConnectionRoute | None) -> tuple[Room, Player] | None:
        if route is None:
            return None
        room = self._rooms.get(route.room_code)
        if room is None:
            return None
        with room.lock:
            player = room.players.get(route.player_id)
        return (room, player) if player is not None else None

    def _release(self, route: ConnectionRoute) -> None:
        room = self._rooms.get(route.room_code)
        if room is not None:
            service.mark_disconnected(room, route.player_id, self.now_ms())

    def disconnect(self, connection_id: str) -> tuple[Room, Disconnected] | None:
        with self._lock:
            route = self._connections.pop(connection_id, None)
            if route is None:
                return None
            room = self._rooms.get(route.room_code)
            if room is None:
                return None
            outcome = service.mark_disconnected(room, route.player_id, self.now_ms())
            if isinstance(outcome, Rejected):
                return None
            logger.info("player %s disconnected from room %s", route.player_id, room.code)
            if outcome.new_host_id:
                logger.info("room %s host transferred to %s", room.code, outcome.new_host_id)
            if outcome.room_empty:
                logger.info("room %s has no connected players", room.code)
            return room, outcome

    def leave(self, connection_id: str) -> tuple[Room, Disconnected] | None:
        with self._lock:
            route = self._connections.pop(connection_id, None)
            if route is None:
                return None
            room = self._rooms.get(route.room_code)
            if room is None:
                return None
            outcome = service.remove_player(room, route.player_id, self.now_ms())
            if isinstance(outcome, Rejected):
                return None
            logger.info("player %s left room %s", route.player_id, room.code)
            if outcome.removed and not room.players:
                self.delete_room(room.code)
                logger.info("room %s abandoned and deleted", room.code)
            return room, outcome

    # -- maintenance ---------------------------------------------------------

    def sweep_empty_rooms(self, grace_ms: int) -> list[str]:
        with self._lock:
            now = self.now_ms()
            stale = []
            for code, room in self._rooms.items():
                with room.lock:
                    if room.connected_players():
                        room.empty_at_ms = None
                        continue
                    if room.empty_at_ms is not None and now - room.empty_at_ms >= grace_ms:
                        stale.append(code)
            for code in stale:
                self.delete_room(code)
                logger.info("swept empty room %s", code)
            return stale

    def stats(self) -> dict[str, int]:
        with self._lock:
            return {"rooms": len(self._rooms), "players": len(self._connections)}
