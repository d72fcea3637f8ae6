import logging

from flask import Blueprint, request, jsonify

from notifly import state

log = logging.getLogger("notifly.routes.settings")

bp = Blueprint("settings", __name__)

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def apply_log_level(level_name: str):
    level = getattr(logging, level_name.upper(), logging.INFO)
    logging.getLogger().setLevel(level)


@bp.route("/settings")
def get_settings():
    return jsonify(state.settings.to_dict())


@bp.route("/settings", methods=["POST"])
def update_settings():
    data = request.get_json(silent=True) or {}

    for fld in ("horizontal_alignment", "vertical_alignment", "broadcast_format"):
        if fld in data:
            return jsonify({"error": f"{fld} is fixed at startup"}), 400

    if "log_level" in data:
        level = str(data["log_level"]).upper()
        if level not in LOG_LEVELS:
            return jsonify({"error": "log_level must be DEBUG, INFO, WARNING, or ERROR"}), 400
        state.settings.log_level = level
        apply_log_level(level)

    log.info("Settings updated: %s", state.settings.to_dict())
    return jsonify(state.settings.to_dict())
