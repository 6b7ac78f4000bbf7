"""Read-only JSON endpoints over relay state.

Every endpoint goes through the registry's locked accessors, so it is
safe to serve them from a thread other than the relay's event loop.
"""

import time
from flask import Blueprint, jsonify, current_app

from utils.validation import validate_pairing_code

api_bp = Blueprint("api", __name__)


def _get_registry():
    """Get the SessionRegistry behind the running relay."""
    return current_app.config["REGISTRY"]


def _uptime() -> float:
    server = current_app.config.get("RELAY_SERVER")
    if server is not None:
        return server.uptime
    return time.time() - current_app.config["STARTED_AT"]


def _connections() -> int:
    server = current_app.config.get("RELAY_SERVER")
    if server is None:
        return 0
    return server.get_connection_count()


def _message_stats() -> dict:
    server = current_app.config.get("RELAY_SERVER")
    if server is None:
        return {"forwarded": 0, "dropped": 0}
    return server.dispatcher.router.get_stats()


@api_bp.route("/")
def health():
    registry = _get_registry()
    stats = registry.get_stats()
    return jsonify({
        "status": "online",
        "mode": stats["mode"],
        "agents": stats["agents"],
        "controllers": stats["controllers"],
        "connections": _connections(),
        "pairingCodes": stats["pairing_codes"],
        "codeCollisions": stats["code_collisions"],
        "messages": _message_stats(),
        "uptime": round(_uptime(), 1),
    })


@api_bp.route("/lookup/<code>")
def lookup(code):
    valid, _ = validate_pairing_code(code)
    if not valid:
        return jsonify({"found": False})

    controller_id = _get_registry().lookup_code(code)
    if controller_id:
        return jsonify({"found": True, "controllerId": controller_id})
    return jsonify({"found": False})


@api_bp.route("/agents/<controller_id>")
def agents(controller_id):
    summaries = _get_registry().list_agents(controller_id)
    return jsonify([s.to_dict() for s in summaries])
