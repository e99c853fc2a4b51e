import random

import pytest

from spyroom.game import service
from spyroom.game.models import Joined, Rejected, RejectionKind
from spyroom.game.registry import ConnectionRoute, RoomCodeExhausted, RoomRegistry
from spyroom.game.words import WordBank

GRACE_MS = 600_000


class ScriptedRandom(random.Random):
    """Returns the scripted randint values first, then falls back to a real draw."""

    def __init__(self, values):
        super().__init__(7)
        self._values = list(values)

    def randint(self, a, b):
        if self._values:
            return self._values.pop(0)
        return super().randint(a, b)


def _join(registry, code, nickname):
    joined = registry.join_room(code, nickname, f"sid-{nickname}")
    assert isinstance(joined, Joined)
    return joined.player


class TestCreateRoom:
    def test_code_is_six_digits_and_host_is_routed(self, registry):
        room, host = registry.create_room("Host", "sid-host")

        assert len(room.code) == 6 and room.code.isdigit()
        assert host.is_host
        assert registry.lookup_room(room.code) is room
        assert registry.resolve_connection("sid-host") == ConnectionRoute(player_id=host.id, room_code=room.code)

    def test_collision_is_retried(self, clock):
        registry = RoomRegistry(rng=ScriptedRandom([123456, 123456, 654321]), clock=clock)
        first, _ = registry.create_room("Host", "sid-1")
        second, _ = registry.create_room("Other", "sid-2")

        assert first.code == "123456"
        assert second.code == "654321"

    def test_exhausted_code_space_raises(self, clock):
        registry = RoomRegistry(rng=ScriptedRandom([111111] * 10), clock=clock, max_code_attempts=3)
        registry.create_room("Host", "sid-1")

        with pytest.raises(RoomCodeExhausted):
            registry.create_room("Other", "sid-2")
        assert registry.stats() == {"rooms": 1, "players": 1}

    def test_injected_storage_is_used(self, clock, rng):
        rooms, connections = {}, {}
        registry = RoomRegistry(rooms=rooms, connections=connections, rng=rng, clock=clock)

        room, host = registry.create_room("Host", "sid-host")

        assert rooms == {room.code: room}
        assert connections["sid-host"].player_id == host.id


class TestJoinRoom:
    def test_unknown_room(self, registry):
        result = registry.join_room("000000", "A", "sid-A")
        assert isinstance(result, Rejected)
        assert result.kind == RejectionKind.ROOM_NOT_FOUND

    def test_join_routes_connection(self, registry):
        room, _ = registry.create_room("Host", "sid-host")
        player = _join(registry, room.code, "A")

        route = registry.resolve_connection("sid-A")
        assert route == ConnectionRoute(player_id=player.id, room_code=room.code)

    def test_live_nickname_stays_with_its_connection(self, registry):
        room, _ = registry.create_room("Host", "sid-host")
        player = _join(registry, room.code, "A")

        result = registry.join_room(room.code, "A", "sid-A-phone-2")

        assert isinstance(result, Rejected)
        assert result.kind == RejectionKind.DUPLICATE_ACTIVE_NICKNAME
        assert registry.resolve_connection("sid-A").player_id == player.id
        assert registry.resolve_connection("sid-A-phone-2") is None

    def test_reattach_after_disconnect_routes_new_connection(self, registry):
        room, _ = registry.create_room("Host", "sid-host")
        player = _join(registry, room.code, "A")
        registry.disconnect("sid-A")

        joined = registry.join_room(room.code, "A", "sid-A-phone-2")

        assert joined.reattached
        assert joined.player.id == player.id
        assert registry.resolve_connection("sid-A-phone-2").player_id == player.id

    def test_rejoining_own_seat_is_a_no_op(self, registry):
        room, _ = registry.create_room("Host", "sid-host")
        player = _join(registry, room.code, "A")

        joined = registry.join_room(room.code, "A", "sid-A")

        assert joined.reattached
        assert joined.player.id == player.id
        assert room.players[player.id].is_connected
        assert registry.resolve_connection("sid-A").player_id == player.id

    def test_seated_connection_cannot_switch_seats_mid_game(self, registry):
        room, host = registry.create_room("Host", "sid-host")
        a = _join(registry, room.code, "A")
        b = _join(registry, room.code, "B")
        service.start_game(room, host.id, "food", WordBank(), registry.rng)
        registry.disconnect("sid-B")

        result = registry.join_room(room.code, "B", "sid-A")

        assert isinstance(result, Rejected)
        assert result.kind == RejectionKind.WRONG_PHASE
        assert registry.resolve_connection("sid-A").player_id == a.id
        assert room.players[a.id].is_connected
        assert not room.players[b.id].is_connected

    def test_switching_rooms_releases_old_seat(self, registry):
        first, _ = registry.create_room("Host", "sid-host")
        second, _ = registry.create_room("Other", "sid-other")
        player = _join(registry, first.code, "A")

        registry.join_room(second.code, "A", "sid-A")

        assert not first.players[player.id].is_connected
        assert registry.resolve_connection("sid-A").room_code == second.code

    def test_full_room(self, registry):
        room, _ = registry.create_room("Host", "sid-host")
        for name in "ABCDEFGH":
            _join(registry, room.code, name)

        result = registry.join_room(room.code, "Z", "sid-Z")

        assert isinstance(result, Rejected)
        assert result.kind == RejectionKind.ROOM_FULL
        assert registry.resolve_connection("sid-Z") is None


class TestDisconnect:
    def test_disconnect_unbinds_and_keeps_player(self, registry):
        room, host = registry.create_room("Host", "sid-host")
        a = _join(registry, room.code, "A")

        result = registry.disconnect("sid-host")

        assert result is not None
        _, outcome = result
        assert outcome.new_host_id == a.id
        assert registry.resolve_connection("sid-host") is None
        assert host.id in room.players

    def test_unknown_connection(self, registry):
        assert registry.disconnect("nobody") is None

    def test_last_leave_in_lobby_deletes_room(self, registry):
        room, _ = registry.create_room("Host", "sid-host")

        registry.leave("sid-host")

        assert registry.lookup_room(room.code) is None


class TestSweep:
    def test_empty_room_survives_grace_then_goes(self, registry, clock):
        room, _ = registry.create_room("Host", "sid-host")
        registry.disconnect("sid-host")

        clock.advance(GRACE_MS - 1)
        assert registry.sweep_empty_rooms(GRACE_MS) == []
        assert registry.lookup_room(room.code) is room

        clock.advance(1)
        assert registry.sweep_empty_rooms(GRACE_MS) == [room.code]
        assert registry.lookup_room(room.code) is None

    def test_rejoined_room_is_kept(self, registry, clock):
        room, _ = registry.create_room("Host", "sid-host")
        registry.disconnect("sid-host")
        clock.advance(GRACE_MS // 2)

        registry.join_room(room.code, "Host", "sid-host-2")
        assert room.empty_at_ms is None

        clock.advance(GRACE_MS)
        assert registry.sweep_empty_rooms(GRACE_MS) == []
        assert registry.lookup_room(room.code) is room

    def test_rooms_with_connected_players_are_never_swept(self, registry, clock):
        room, _ = registry.create_room("Host", "sid-host")
        clock.advance(GRACE_MS * 10)
        assert registry.sweep_empty_rooms(GRACE_MS) == []

    def test_sweep_drops_stale_routes(self, registry, clock):
        room, _ = registry.create_room("Host", "sid-host")
        _join(registry, room.code, "A")
        registry.disconnect("sid-host")
        registry.disconnect("sid-A")
        clock.advance(GRACE_MS)

        registry.sweep_empty_rooms(GRACE_MS)

        assert registry.stats() == {"rooms": 0, "players": 0}
