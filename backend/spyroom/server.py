from __future__ import annotations

import os
import random
import sys
from collections.abc import Mapping
from typing import Any

from flask import Flask
from flask_cors import CORS
from flask_socketio import SocketIO
from werkzeug.middleware.proxy_fix import ProxyFix

from .config import Config
from .game.registry import RoomRegistry
from .game.service import GameSettings
from .game.words import WordBank
from .routes.categories import bp as categories_bp
from .routes.health import bp as health_bp
from .routes.rooms import bp as rooms_bp
from .realtime.handlers import register_socketio_handlers


EXTENSION_KEY = "spyroom"


def _pick_async_mode(config: Mapping[str, Any]) -> str:
    env_async_mode = str(config.get("SOCKETIO_ASYNC_MODE") or os.environ.get("SOCKETIO_ASYNC_MODE", "")).strip()
    if env_async_mode:
        return env_async_mode
    # Default choice:
    # - Windows: threading (eventlet has known compatibility issues on newer Python)
    # - Python >= 3.13: threading (safer default)
    # - Otherwise: eventlet
    if sys.platform.startswith("win") or sys.version_info >= (3, 13):
        return "threading"
    return "eventlet"


def create_app(
    config: Mapping[str, Any] | None = None,
    registry: RoomRegistry | None = None,
    word_bank: WordBank | None = None,
    rng: random.Random | None = None,
) -> tuple[Flask, SocketIO]:
    app = Flask(__name__)
    app.config.from_object(Config)
    if config:
        app.config.update(config)

    if app.config.get("TRUST_PROXY_HEADERS", False):
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1)

    cors_origins = app.config.get("CORS_ORIGINS", "*")
    CORS(app, resources={r"/api/*": {"origins": cors_origins}})

    socketio = SocketIO(
        app,
        cors_allowed_origins=cors_origins,
        async_mode=_pick_async_mode(app.config),
    )

    if word_bank is None:
        path = app.config.get("WORD_BANK_PATH", "")
        word_bank = WordBank.from_json(path) if path else WordBank()

    if registry is None:
        registry = RoomRegistry(
            rng=rng,
            settings=GameSettings.from_config(app.config),
            max_code_attempts=int(app.config.get("ROOM_CODE_ATTEMPTS", 50)),
        )

    app.extensions[EXTENSION_KEY] = {"registry": registry, "word_bank": word_bank}

    app.register_blueprint(health_bp, url_prefix="/api")
    app.register_blueprint(rooms_bp, url_prefix="/api")
    app.register_blueprint(categories_bp, url_prefix="/api")

    register_socketio_handlers(socketio, registry, word_bank, app.config)

    return app, socketio
