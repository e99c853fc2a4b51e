from __future__ import annotations

from flask import Blueprint, current_app, jsonify

bp = Blueprint("categories", __name__)


@bp.get("/categories")
def list_categories():
    word_bank = current_app.extensions["spyroom"]["word_bank"]
    return jsonify(
        {
            "categories": [
                {"id": c.id, "name": c.name, "wordCount": len(c.words)}
                for c in word_bank.categories()
            ]
        }
    )
