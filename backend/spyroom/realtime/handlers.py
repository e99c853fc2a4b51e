from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from flask import request
from flask_socketio import SocketIO, emit, join_room, leave_room

from . import events
from .scheduler import RoomScheduler
from ..game import service
from ..game.models import PhaseChanged, Rejected, RejectionKind, Room
from ..game.registry import RoomRegistry, SpyRoomError
from ..game.words import WordBank
from ..utils.ip import get_client_ip


logger = logging.getLogger(__name__)


def _validate_name(name: str) -> bool:
    n = (name or "").strip()
    if not n:
        return False
    if len(n) > 16:
        return False
    # Avoid obvious HTML/script injection.
    if "<" in n or ">" in n:
        return False
    # No control characters.
    for ch in n:
        if ord(ch) < 32:
            return False
    return True


def _str_field(payload: Any, key: str) -> str:
    if not isinstance(payload, dict):
        return ""
    value = payload.get(key, "")
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        value = str(value)
    if not isinstance(value, str):
        return ""
    return value.strip()


def register_socketio_handlers(
    socketio: SocketIO,
    registry: RoomRegistry,
    word_bank: WordBank,
    config: Mapping[str, Any],
) -> RoomScheduler:
    settings = registry.settings

    # ------------------------------------------------------------------
    # Fan-out helpers
    # ------------------------------------------------------------------

    def _reply_error(rejected: Rejected, event: str = events.ERROR) -> dict:
        logger.debug("rejected %s for %s: %s", rejected.kind.value, request.sid, rejected.message)
        emit(event, rejected.to_payload(), to=request.sid)
        return {"ok": False, "error": rejected.kind.value}

    def _broadcast_players(room: Room) -> None:
        socketio.emit(
            events.PLAYERS_UPDATED,
            {
                "roomCode": room.code,
                "hostPlayerId": room.host_player_id,
                "players": service.roster_snapshot(room),
            },
            to=room.code,
        )

    def _broadcast_phase(room: Room, changed: PhaseChanged) -> None:
        logger.info("room %s entered phase %s", room.code, changed.phase)
        socketio.emit(
            events.PHASE_CHANGED,
            {"roomCode": room.code, "phase": changed.phase, "endsAt": changed.ends_at_ms},
            to=room.code,
        )
        if changed.phase == "voting":
            socketio.emit(
                events.VOTE_PROGRESS,
                {"roomCode": room.code, "votesIn": len(room.votes), "totalPlayers": len(room.players)},
                to=room.code,
            )

    def _send_private_state(room: Room, player_id: str, connection_id: str) -> None:
        if room.phase != "lobby":
            card = service.role_card_for(room, player_id)
            if card is not None:
                socketio.emit(events.ROLE_ASSIGNED, {"roomCode": room.code, **card.to_payload()}, to=connection_id)
        if room.phase == "results" and room.results is not None:
            socketio.emit(events.RESULTS, {"roomCode": room.code, **room.results.to_payload()}, to=connection_id)

    def _check_timer(room: Room) -> None:
        changed = service.expire_timer_if_due(room, registry.now_ms())
        if changed is not None:
            _broadcast_phase(room, changed)

    def _resolve(payload: Any) -> tuple[Room, str] | Rejected:
        """Map the calling connection to its room and player."""
        route = registry.resolve_connection(request.sid)
        room_code = _str_field(payload, "roomCode")
        if route is None:
            if room_code and registry.lookup_room(room_code) is None:
                return Rejected.of(RejectionKind.ROOM_NOT_FOUND)
            return Rejected.of(RejectionKind.PLAYER_NOT_FOUND)
        if room_code and room_code != route.room_code:
            return Rejected.of(RejectionKind.PLAYER_NOT_FOUND)

        room = registry.lookup_room(route.room_code)
        if room is None:
            registry.unbind_connection(request.sid)
            return Rejected.of(RejectionKind.ROOM_NOT_FOUND)

        _check_timer(room)
        return room, route.player_id

    def _release_previous_room(previous_code: str | None, current_code: str) -> None:
        if not previous_code or previous_code == current_code:
            return
        leave_room(previous_code)
        previous = registry.lookup_room(previous_code)
        if previous is not None:
            _broadcast_players(previous)

    scheduler = RoomScheduler(
        socketio,
        registry,
        on_phase_changed=_broadcast_phase,
        enabled=bool(config.get("BACKGROUND_TASKS", True)),
    )

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    @socketio.on("connect")
    def on_connect(auth=None):
        logger.info("connected %s from %s", request.sid, get_client_ip(request) or "-")

    @socketio.on("disconnect")
    def on_disconnect(reason=None):
        result = registry.disconnect(request.sid)
        if result is None:
            return
        room, _ = result
        _broadcast_players(room)

    # ------------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------------

    @socketio.on(events.CREATE_ROOM)
    def create_room(data):
        nickname = _str_field(data, "nickname")
        if not _validate_name(nickname):
            return _reply_error(Rejected.of(RejectionKind.INVALID_PAYLOAD, "Invalid nickname"), events.JOIN_ERROR)

        previous = registry.resolve_connection(request.sid)
        try:
            room, player = registry.create_room(nickname, request.sid)
        except SpyRoomError:
            logger.exception("failed to create room for %s", request.sid)
            return _reply_error(Rejected.of(RejectionKind.INTERNAL), events.JOIN_ERROR)

        _release_previous_room(previous.room_code if previous else None, room.code)
        join_room(room.code)
        emit(events.ROOM_CREATED, {"roomCode": room.code, "playerId": player.id, "isHost": True}, to=request.sid)
        _broadcast_players(room)
        scheduler.start_sweeper(int(config.get("SWEEP_INTERVAL_SEC", 120)), int(config.get("EMPTY_ROOM_GRACE_SEC", 600)))
        return {"ok": True, "roomCode": room.code, "playerId": player.id}

    @socketio.on(events.JOIN_ROOM)
    def join_room_event(data):
        room_code = _str_field(data, "roomCode")
        nickname = _str_field(data, "nickname")
        if not room_code or not _validate_name(nickname):
            return _reply_error(Rejected.of(RejectionKind.INVALID_PAYLOAD), events.JOIN_ERROR)

        previous = registry.resolve_connection(request.sid)
        joined = registry.join_room(room_code, nickname, request.sid)
        if isinstance(joined, Rejected):
            return _reply_error(joined, events.JOIN_ERROR)

        room = registry.lookup_room(room_code)
        if room is None:
            return _reply_error(Rejected.of(RejectionKind.ROOM_NOT_FOUND), events.JOIN_ERROR)

        _release_previous_room(previous.room_code if previous else None, room.code)
        join_room(room.code)
        player = joined.player
        emit(
            events.JOIN_SUCCESS,
            {"roomCode": room.code, "playerId": player.id, "isHost": player.is_host, "reattached": joined.reattached},
            to=request.sid,
        )
        _broadcast_players(room)

        _check_timer(room)
        if joined.reattached and room.phase != "lobby":
            emit(events.ROOM_STATE, service.room_public_state(room), to=request.sid)
            _send_private_state(room, player.id, request.sid)
        return {"ok": True, "roomCode": room.code, "playerId": player.id}

    @socketio.on(events.GET_ROOM_STATE)
    def get_room_state(data):
        resolved = _resolve(data)
        if isinstance(resolved, Rejected):
            return _reply_error(resolved)
        room, player_id = resolved

        emit(events.ROOM_STATE, service.room_public_state(room), to=request.sid)
        _send_private_state(room, player_id, request.sid)
        return {"ok": True}

    @socketio.on(events.LEAVE_ROOM)
    def leave_room_event(data):
        route = registry.resolve_connection(request.sid)
        if route is None:
            return _reply_error(Rejected.of(RejectionKind.PLAYER_NOT_FOUND))

        leave_room(route.room_code)
        result = registry.leave(request.sid)
        if result is not None:
            room, _ = result
            if registry.lookup_room(room.code) is not None:
                _broadcast_players(room)
        return {"ok": True}

    # ------------------------------------------------------------------
    # Game flow
    # ------------------------------------------------------------------

    @socketio.on(events.START_GAME)
    def start_game(data):
        resolved = _resolve(data)
        if isinstance(resolved, Rejected):
            return _reply_error(resolved)
        room, player_id = resolved

        category_id = _str_field(data, "categoryId")
        if not category_id:
            return _reply_error(Rejected.of(RejectionKind.INVALID_PAYLOAD, "Pick a category"))

        started = service.start_game(room, player_id, category_id, word_bank, registry.rng, settings)
        if isinstance(started, Rejected):
            return _reply_error(started)

        category = word_bank.get(started.category)
        logger.info(
            "room %s game #%d started: category=%s players=%d",
            room.code,
            room.games_played,
            started.category,
            len(started.turn_order),
        )
        socketio.emit(
            events.GAME_STARTED,
            {
                "roomCode": room.code,
                "phase": room.phase,
                "category": started.category,
                "categoryName": category.name if category else started.category,
                "rosterSize": len(started.turn_order),
                "turnOrder": started.turn_order,
                "currentTurnPlayerId": started.turn_order[0],
            },
            to=room.code,
        )
        # Secret payloads go to each player's own socket, never the room.
        for pid, card in started.cards.items():
            player = room.players.get(pid)
            if player is None or not player.connection_id:
                continue
            socketio.emit(events.ROLE_ASSIGNED, {"roomCode": room.code, **card.to_payload()}, to=player.connection_id)
        _broadcast_players(room)
        return {"ok": True}

    @socketio.on(events.FLIP_CARD)
    def flip_card(data):
        resolved = _resolve(data)
        if isinstance(resolved, Rejected):
            return _reply_error(resolved)
        room, player_id = resolved

        flipped = service.flip_card(room, player_id, registry.now_ms(), settings)
        if isinstance(flipped, Rejected):
            return _reply_error(flipped)

        emit(events.CARD_REVEALED, {"roomCode": room.code, **flipped.card.to_payload()}, to=request.sid)
        _broadcast_players(room)

        if flipped.all_flipped:
            _broadcast_phase(room, PhaseChanged(phase="questions", ends_at_ms=flipped.timer.ends_at_ms))
            scheduler.schedule_deadline(room.code, flipped.timer)
        else:
            socketio.emit(
                events.TURN_CHANGED,
                {
                    "roomCode": room.code,
                    "currentTurnPlayerId": flipped.next_player_id,
                    "cardsFlipped": room.cards_flipped_count,
                    "totalPlayers": len(room.turn_order),
                },
                to=room.code,
            )
        return {"ok": True}

    @socketio.on(events.SKIP_TO_VOTING)
    def skip_to_voting(data):
        resolved = _resolve(data)
        if isinstance(resolved, Rejected):
            return _reply_error(resolved)
        room, player_id = resolved

        changed = service.skip_to_voting(room, player_id)
        if isinstance(changed, Rejected):
            return _reply_error(changed)

        _broadcast_phase(room, changed)
        return {"ok": True}

    @socketio.on(events.CAST_VOTE)
    def cast_vote(data):
        resolved = _resolve(data)
        if isinstance(resolved, Rejected):
            return _reply_error(resolved)
        room, player_id = resolved

        target_id = _str_field(data, "targetPlayerId")
        if not target_id:
            return _reply_error(Rejected.of(RejectionKind.INVALID_PAYLOAD, "Pick a player to vote for"))

        recorded = service.cast_vote(room, player_id, target_id)
        if isinstance(recorded, Rejected):
            return _reply_error(recorded)

        _broadcast_players(room)
        socketio.emit(
            events.VOTE_PROGRESS,
            {"roomCode": room.code, "votesIn": recorded.votes_in, "totalPlayers": recorded.total_players},
            to=room.code,
        )
        if recorded.results is not None:
            results = recorded.results
            logger.info(
                "room %s results: spy=%s caught=%s accused=%s",
                room.code,
                results.spy_player_id,
                results.spy_caught,
                ",".join(results.accused),
            )
            _broadcast_phase(room, PhaseChanged(phase="results"))
            socketio.emit(events.RESULTS, {"roomCode": room.code, **results.to_payload()}, to=room.code)
        return {"ok": True}

    @socketio.on(events.RESET_GAME)
    def reset_game(data):
        resolved = _resolve(data)
        if isinstance(resolved, Rejected):
            return _reply_error(resolved)
        room, player_id = resolved

        changed = service.reset_to_lobby(room, player_id)
        if isinstance(changed, Rejected):
            return _reply_error(changed)

        _broadcast_phase(room, changed)
        _broadcast_players(room)
        return {"ok": True}

    return scheduler
