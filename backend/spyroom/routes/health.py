from __future__ import annotations

from datetime import datetime, timezone

from flask import Blueprint, current_app, jsonify

bp = Blueprint("health", __name__)


@bp.get("/health")
def health():
    registry = current_app.extensions["spyroom"]["registry"]
    stats = registry.stats()
    return jsonify(
        {
            "status": "OK",
            "timestamp": datetime.now(tz=timezone.utc).isoformat(),
            "rooms": stats["rooms"],
            "players": stats["players"],
        }
    )
