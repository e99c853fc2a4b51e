from __future__ import annotations

import random
import time
import uuid
from collections import Counter
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from .models import (
    Disconnected,
    Flipped,
    GameResults,
    Joined,
    PhaseChanged,
    PhaseTimer,
    Player,
    Rejected,
    RejectionKind,
    RoleCard,
    Room,
    Started,
    VoteRecorded,
)
from .words import WordBank, pick_word


def now_ms() -> int:
    return int(time.time() * 1000)


def new_player_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class GameSettings:
    min_players: int = 3
    max_players: int = 9
    questions_duration_sec: int = 300
    spy_fairness: bool = False
    spy_history_size: int = 10

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "GameSettings":
        return cls(
            min_players=int(config.get("MIN_PLAYERS", cls.min_players)),
            max_players=int(config.get("MAX_PLAYERS", cls.max_players)),
            questions_duration_sec=int(config.get("QUESTIONS_DURATION_SEC", cls.questions_duration_sec)),
            spy_fairness=bool(config.get("SPY_FAIRNESS", cls.spy_fairness)),
            spy_history_size=int(config.get("SPY_HISTORY_SIZE", cls.spy_history_size)),
        )


def _reject(kind: RejectionKind, message: str | None = None) -> Rejected:
    return Rejected.of(kind, message)


def _clear_game(room: Room) -> None:
    room.category = None
    room.word = None
    room.spy_player_id = None
    room.turn_order = []
    room.turn_cursor = 0
    room.cards_flipped_count = 0
    room.votes = {}
    room.timer = None
    room.results = None
    for p in room.players.values():
        p.has_flipped_card = False
        p.has_voted = False


def _set_host(room: Room, player_id: str) -> None:
    for p in room.players.values():
        p.is_host = p.id == player_id
    room.host_player_id = player_id


def _next_host_candidate(room: Room, exclude_id: str | None = None) -> Player | None:
    candidates = [p for p in room.connected_players() if p.id != exclude_id]
    if not candidates:
        return None
    return min(candidates, key=lambda p: p.joined_at_ms)


# ---------------------------------------------------------------------------
# Roster
# ---------------------------------------------------------------------------


def add_or_reattach_player(
    room: Room,
    nickname: str,
    connection_id: str,
    now: int,
    settings: GameSettings = GameSettings(),
) -> Joined | Rejected:
    with room.lock:
        existing = room.find_by_nickname(nickname)
        if existing is not None:
            # Only a dropped seat can be picked up again; a live one keeps its socket.
            if existing.is_connected and existing.connection_id != connection_id:
                return _reject(RejectionKind.DUPLICATE_ACTIVE_NICKNAME)
            # Reconnect by nickname: same id, role/flip/vote state untouched.
            existing.connection_id = connection_id
            existing.is_connected = True
            room.empty_at_ms = None

            host = room.players.get(room.host_player_id)
            if host is None or not host.is_connected:
                _set_host(room, existing.id)

            return Joined(player=existing, reattached=True)

        if len(room.players) >= settings.max_players:
            return _reject(RejectionKind.ROOM_FULL)

        player = Player(
            id=new_player_id(),
            nickname=nickname,
            connection_id=connection_id,
            is_connected=True,
            joined_at_ms=now,
        )
        # Keep join order stable even when two joins share a millisecond.
        if room.players:
            player.joined_at_ms = max(now, max(p.joined_at_ms for p in room.players.values()) + 1)
        room.players[player.id] = player
        room.empty_at_ms = None

        if not room.host_player_id or room.host_player_id not in room.players:
            _set_host(room, player.id)
        else:
            host = room.players[room.host_player_id]
            if not host.is_connected:
                _set_host(room, player.id)

        return Joined(player=player)


def mark_disconnected(room: Room, player_id: str, now: int) -> Disconnected | Rejected:
    with room.lock:
        player = room.players.get(player_id)
        if player is None:
            return _reject(RejectionKind.PLAYER_NOT_FOUND)

        player.is_connected = False
        player.connection_id = None

        new_host_id = None
        if room.host_player_id == player_id:
            successor = _next_host_candidate(room, exclude_id=player_id)
            if successor is not None:
                _set_host(room, successor.id)
                new_host_id = successor.id

        room_empty = not room.connected_players()
        if room_empty and room.empty_at_ms is None:
            room.empty_at_ms = now

        return Disconnected(player=player, new_host_id=new_host_id, room_empty=room_empty)


def remove_player(room: Room, player_id: str, now: int) -> Disconnected | Rejected:
    """Explicit leave. Mid-game the row is kept so the game can still finish."""
    with room.lock:
        if room.phase not in ("lobby", "results"):
            return mark_disconnected(room, player_id, now)

        player = room.players.get(player_id)
        if player is None:
            return _reject(RejectionKind.PLAYER_NOT_FOUND)

        del room.players[player_id]
        player.is_connected = False
        player.connection_id = None

        new_host_id = None
        if room.host_player_id == player_id:
            successor = _next_host_candidate(room)
            if successor is None and room.players:
                successor = min(room.players.values(), key=lambda p: p.joined_at_ms)
            if successor is not None:
                _set_host(room, successor.id)
                new_host_id = successor.id

        room_empty = not room.connected_players()
        if room_empty and room.empty_at_ms is None:
            room.empty_at_ms = now

        return Disconnected(player=player, new_host_id=new_host_id, room_empty=room_empty, removed=True)


# ---------------------------------------------------------------------------
# Game flow
# ---------------------------------------------------------------------------


def _spy_weights(candidates: list[str], history: list[str]) -> list[int]:
    # Weight grows with the number of games since the player was last the spy.
    weights = []
    for pid in candidates:
        last = max((i for i, spy in enumerate(history) if spy == pid), default=None)
        since = len(history) if last is None else len(history) - 1 - last
        weights.append(1 + since)
    return weights


def choose_spy(room: Room, rng: random.Random, settings: GameSettings) -> str:
    candidates = list(room.players.keys())
    if settings.spy_fairness and room.spy_history:
        return rng.choices(candidates, weights=_spy_weights(candidates, room.spy_history), k=1)[0]
    return rng.choice(candidates)


def start_game(
    room: Room,
    requesting_player_id: str,
    category_id: str,
    word_bank: WordBank,
    rng: random.Random,
    settings: GameSettings = GameSettings(),
) -> Started | Rejected:
    with room.lock:
        if requesting_player_id not in room.players:
            return _reject(RejectionKind.PLAYER_NOT_FOUND)
        if requesting_player_id != room.host_player_id:
            return _reject(RejectionKind.NOT_HOST)
        if len(room.players) < settings.min_players:
            return _reject(
                RejectionKind.TOO_FEW_PLAYERS,
                f"At least {settings.min_players} players are needed to start",
            )
        if room.phase != "lobby":
            return _reject(RejectionKind.ALREADY_STARTING)

        category = word_bank.get(category_id)
        if category is None:
            return _reject(RejectionKind.UNKNOWN_CATEGORY)

        _clear_game(room)
        room.phase = "card-flipping"
        room.category = category.id
        room.word = pick_word(category, rng)
        room.spy_player_id = choose_spy(room, rng, settings)

        turn_order = list(room.players.keys())
        rng.shuffle(turn_order)
        room.turn_order = turn_order
        room.turn_cursor = 0
        room.cards_flipped_count = 0

        room.spy_history.append(room.spy_player_id)
        if len(room.spy_history) > settings.spy_history_size:
            room.spy_history = room.spy_history[-settings.spy_history_size:]
        room.games_played += 1

        cards = {pid: role_card_for(room, pid) for pid in room.players}
        return Started(category=category.id, turn_order=list(turn_order), cards=cards)


def role_card_for(room: Room, player_id: str) -> RoleCard | None:
    with room.lock:
        if room.spy_player_id is None or player_id not in room.players:
            return None
        is_spy = player_id == room.spy_player_id
        return RoleCard(is_spy=is_spy, word=None if is_spy else room.word, category=room.category)


def flip_card(room: Room, player_id: str, now: int, settings: GameSettings = GameSettings()) -> Flipped | Rejected:
    with room.lock:
        player = room.players.get(player_id)
        if player is None:
            return _reject(RejectionKind.PLAYER_NOT_FOUND)
        if room.phase != "card-flipping":
            return _reject(RejectionKind.WRONG_PHASE)
        if player.has_flipped_card:
            return _reject(RejectionKind.ALREADY_FLIPPED)
        if player_id != room.current_turn_player_id:
            return _reject(RejectionKind.NOT_YOUR_TURN)

        player.has_flipped_card = True
        room.cards_flipped_count += 1
        card = role_card_for(room, player_id)

        if room.cards_flipped_count >= len(room.turn_order):
            room.phase = "questions"
            room.timer = PhaseTimer(
                ends_at_ms=now + settings.questions_duration_sec * 1000,
                token=uuid.uuid4().hex,
            )
            return Flipped(player_id=player_id, card=card, timer=room.timer)

        room.turn_cursor += 1
        return Flipped(player_id=player_id, card=card, next_player_id=room.turn_order[room.turn_cursor])


def _enter_voting(room: Room) -> PhaseChanged:
    room.phase = "voting"
    room.timer = None
    room.votes = {}
    return PhaseChanged(phase="voting")


def expire_timer_if_due(room: Room, now: int, token: str | None = None) -> PhaseChanged | None:
    """Move questions -> voting once the deadline has passed.

    ``token`` is passed by a scheduled callback; a callback whose timer has
    since been cancelled or replaced does nothing.
    """
    with room.lock:
        if room.phase != "questions" or room.timer is None:
            return None
        if token is not None and room.timer.token != token:
            return None
        if now < room.timer.ends_at_ms:
            return None
        return _enter_voting(room)


def skip_to_voting(room: Room, requesting_player_id: str) -> PhaseChanged | Rejected:
    with room.lock:
        if requesting_player_id not in room.players:
            return _reject(RejectionKind.PLAYER_NOT_FOUND)
        if requesting_player_id != room.host_player_id:
            return _reject(RejectionKind.NOT_HOST)
        if room.phase != "questions":
            return _reject(RejectionKind.WRONG_PHASE)
        return _enter_voting(room)


def cast_vote(room: Room, voter_id: str, target_id: str) -> VoteRecorded | Rejected:
    with room.lock:
        voter = room.players.get(voter_id)
        if voter is None:
            return _reject(RejectionKind.PLAYER_NOT_FOUND)
        if room.phase != "voting":
            return _reject(RejectionKind.WRONG_PHASE)
        if voter_id in room.votes:
            return _reject(RejectionKind.ALREADY_VOTED)
        if target_id not in room.players:
            return _reject(RejectionKind.UNKNOWN_TARGET)

        room.votes[voter_id] = target_id
        voter.has_voted = True

        total = len(room.players)
        if len(room.votes) < total:
            return VoteRecorded(votes_in=len(room.votes), total_players=total)

        room.results = compute_results(room)
        room.phase = "results"
        return VoteRecorded(votes_in=len(room.votes), total_players=total, results=room.results)


def compute_results(room: Room) -> GameResults:
    with room.lock:
        tally = Counter(room.votes.values())
        vote_counts = {pid: tally.get(pid, 0) for pid in room.players}
        top = max(vote_counts.values(), default=0)
        accused = [pid for pid, count in vote_counts.items() if top > 0 and count == top]
        return GameResults(
            spy_player_id=room.spy_player_id or "",
            word=room.word or "",
            vote_counts=vote_counts,
            accused=accused,
            spy_caught=room.spy_player_id in accused,
        )


def reset_to_lobby(room: Room, requesting_player_id: str) -> PhaseChanged | Rejected:
    with room.lock:
        if requesting_player_id not in room.players:
            return _reject(RejectionKind.PLAYER_NOT_FOUND)
        if requesting_player_id != room.host_player_id:
            return _reject(RejectionKind.NOT_HOST)
        room.phase = "lobby"
        _clear_game(room)
        return PhaseChanged(phase="lobby")


# ---------------------------------------------------------------------------
# Views
# ---------------------------------------------------------------------------


def roster_snapshot(room: Room) -> list[dict]:
    with room.lock:
        # Do NOT expose connection ids to other clients.
        return [
            {
                "id": p.id,
                "nickname": p.nickname,
                "isHost": p.is_host,
                "isConnected": p.is_connected,
                "hasFlippedCard": p.has_flipped_card,
                "hasVoted": p.has_voted,
            }
            for p in room.players.values()
        ]


def room_public_state(room: Room) -> dict:
    with room.lock:
        payload = {
            "roomCode": room.code,
            "hostPlayerId": room.host_player_id,
            "phase": room.phase,
            "category": room.category,
            "players": roster_snapshot(room),
            "rosterSize": len(room.players),
            "turnOrder": list(room.turn_order),
            "currentTurnPlayerId": room.current_turn_player_id,
            "cardsFlipped": room.cards_flipped_count,
            "endsAt": room.timer.ends_at_ms if room.timer else None,
            "votesIn": len(room.votes),
        }
        if room.phase == "results" and room.results is not None:
            payload["results"] = room.results.to_payload()
        return payload
