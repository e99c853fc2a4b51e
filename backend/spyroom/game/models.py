from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from threading import RLock
from typing import Literal


Phase = Literal["lobby", "card-flipping", "questions", "voting", "results"]

PHASES: tuple[Phase, ...] = ("lobby", "card-flipping", "questions", "voting", "results")


class RejectionKind(str, Enum):
    ROOM_NOT_FOUND = "RoomNotFound"
    PLAYER_NOT_FOUND = "PlayerNotFound"
    NOT_HOST = "NotHost"
    WRONG_PHASE = "WrongPhase"
    NOT_YOUR_TURN = "NotYourTurn"
    ALREADY_FLIPPED = "AlreadyFlipped"
    ALREADY_VOTED = "AlreadyVoted"
    ALREADY_STARTING = "AlreadyStarting"
    ROOM_FULL = "RoomFull"
    DUPLICATE_ACTIVE_NICKNAME = "DuplicateActiveNickname"
    TOO_FEW_PLAYERS = "TooFewPlayers"
    UNKNOWN_TARGET = "UnknownTarget"
    UNKNOWN_CATEGORY = "UnknownCategory"
    INVALID_PAYLOAD = "InvalidPayload"
    INTERNAL = "Internal"


DEFAULT_MESSAGES: dict[RejectionKind, str] = {
    RejectionKind.ROOM_NOT_FOUND: "Room not found",
    RejectionKind.PLAYER_NOT_FOUND: "You are not a member of this room",
    RejectionKind.NOT_HOST: "Only the host can do that",
    RejectionKind.WRONG_PHASE: "Not allowed in the current phase",
    RejectionKind.NOT_YOUR_TURN: "It is not your turn",
    RejectionKind.ALREADY_FLIPPED: "You already flipped your card",
    RejectionKind.ALREADY_VOTED: "You already voted",
    RejectionKind.ALREADY_STARTING: "The game has already started",
    RejectionKind.ROOM_FULL: "Room is full",
    RejectionKind.DUPLICATE_ACTIVE_NICKNAME: "That nickname is already playing in this room",
    RejectionKind.TOO_FEW_PLAYERS: "Not enough players to start",
    RejectionKind.UNKNOWN_TARGET: "That player is not in the room",
    RejectionKind.UNKNOWN_CATEGORY: "Unknown category",
    RejectionKind.INVALID_PAYLOAD: "Invalid request",
    RejectionKind.INTERNAL: "Something went wrong, please try again",
}


@dataclass(frozen=True)
class Rejected:
    kind: RejectionKind
    message: str = ""

    @classmethod
    def of(cls, kind: RejectionKind, message: str | None = None) -> "Rejected":
        return cls(kind=kind, message=message or DEFAULT_MESSAGES[kind])

    def to_payload(self) -> dict:
        return {"kind": self.kind.value, "message": self.message}


@dataclass
class Player:
    id: str
    nickname: str
    connection_id: str | None = None
    is_host: bool = False
    is_connected: bool = True
    has_flipped_card: bool = False
    has_voted: bool = False
    joined_at_ms: int = 0


@dataclass
class PhaseTimer:
    ends_at_ms: int
    token: str


@dataclass(frozen=True)
class RoleCard:
    is_spy: bool
    word: str | None
    category: str | None

    def to_payload(self) -> dict:
        return {"isSpy": self.is_spy, "word": self.word, "category": self.category}


@dataclass
class GameResults:
    spy_player_id: str
    word: str
    vote_counts: dict[str, int]
    accused: list[str]
    spy_caught: bool

    def to_payload(self) -> dict:
        return {
            "spyPlayerId": self.spy_player_id,
            "word": self.word,
            "voteCounts": dict(self.vote_counts),
            "accusedSet": list(self.accused),
            "spyCaught": self.spy_caught,
        }


@dataclass
class Room:
    code: str
    host_player_id: str
    created_at_ms: int = 0
    phase: Phase = "lobby"
    players: dict[str, Player] = field(default_factory=dict)
    category: str | None = None
    word: str | None = None
    spy_player_id: str | None = None
    turn_order: list[str] = field(default_factory=list)
    turn_cursor: int = 0
    cards_flipped_count: int = 0
    votes: dict[str, str] = field(default_factory=dict)
    timer: PhaseTimer | None = None
    empty_at_ms: int | None = None
    results: GameResults | None = None
    spy_history: list[str] = field(default_factory=list)
    games_played: int = 0
    lock: RLock = field(default_factory=RLock, repr=False, compare=False)

    @property
    def current_turn_player_id(self) -> str | None:
        if self.phase != "card-flipping" or self.turn_cursor >= len(self.turn_order):
            return None
        return self.turn_order[self.turn_cursor]

    def connected_players(self) -> list[Player]:
        return [p for p in self.players.values() if p.is_connected]

    def find_by_nickname(self, nickname: str) -> Player | None:
        for p in self.players.values():
            if p.nickname == nickname:
                return p
        return None


# Outcomes returned by room operations.


@dataclass
class Joined:
    player: Player
    reattached: bool = False


@dataclass
class Started:
    category: str
    turn_order: list[str]
    cards: dict[str, RoleCard]


@dataclass
class Flipped:
    player_id: str
    card: RoleCard
    next_player_id: str | None = None
    timer: PhaseTimer | None = None

    @property
    def all_flipped(self) -> bool:
        return self.next_player_id is None


@dataclass
class PhaseChanged:
    phase: Phase
    ends_at_ms: int | None = None


@dataclass
class VoteRecorded:
    votes_in: int
    total_players: int
    results: GameResults | None = None


@dataclass
class Disconnected:
    player: Player
    new_host_id: str | None = None
    room_empty: bool = False
    removed: bool = False
