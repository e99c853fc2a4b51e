from __future__ import annotations

from flask import Blueprint, current_app, jsonify

bp = Blueprint("rooms", __name__)


@bp.get("/rooms/<code>")
def get_room(code: str):
    registry = current_app.extensions["spyroom"]["registry"]
    room = registry.lookup_room(code)
    if not room:
        return jsonify({"error": "room_not_found"}), 404

    # Lets the join screen check a code before opening a socket.
    with room.lock:
        return jsonify(
            {
                "roomCode": room.code,
                "playerCount": len(room.players),
                "maxPlayers": registry.settings.max_players,
                "phase": room.phase,
            }
        )
