"""Shared fixtures: a controllable clock, a seeded registry and socket test clients."""

import random

import pytest

from spyroom.game import service
from spyroom.game.models import Rejected, Room
from spyroom.game.registry import RoomRegistry
from spyroom.game.service import GameSettings
from spyroom.game.words import Category, WordBank
from spyroom.server import create_app


class FakeClock:
    def __init__(self, start: int = 1_700_000_000_000) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def rng():
    return random.Random(20240611)


@pytest.fixture
def settings():
    return GameSettings()


@pytest.fixture
def word_bank():
    return WordBank(
        [
            Category("animals", "Animals", ("giraffe", "penguin", "otter")),
            Category("fruits", "Fruits", ("mango",)),
        ]
    )


@pytest.fixture
def make_room(clock, settings):
    """Build a lobby room seated with the given nicknames (first one hosts)."""

    def _make(*nicknames: str, code: str = "424242") -> Room:
        room = Room(code=code, host_player_id="", created_at_ms=clock())
        for name in nicknames:
            joined = service.add_or_reattach_player(room, name, f"sid-{name}", clock(), settings)
            assert not isinstance(joined, Rejected)
            clock.advance(1)
        return room

    return _make


@pytest.fixture
def registry(clock, rng):
    return RoomRegistry(rng=rng, clock=clock)


@pytest.fixture
def app_and_socketio(registry, word_bank):
    return create_app(
        config={
            "TESTING": True,
            "SOCKETIO_ASYNC_MODE": "threading",
            "BACKGROUND_TASKS": False,
            "TRUST_PROXY_HEADERS": False,
        },
        registry=registry,
        word_bank=word_bank,
    )


@pytest.fixture
def http(app_and_socketio):
    app, _ = app_and_socketio
    return app.test_client()


@pytest.fixture
def connect(app_and_socketio):
    app, socketio = app_and_socketio
    clients = []

    def _connect():
        client = socketio.test_client(app)
        clients.append(client)
        return client

    yield _connect

    for client in clients:
        if client.is_connected():
            client.disconnect()
