"""Routes for validating checkpoint step configuration."""

from flask import Blueprint, current_app, jsonify, request

from .. import config as ic_config
from ..label import check_label_template
from ..settings import ConnectionSettings

web_bp = Blueprint("web", __name__)


@web_bp.route("/label/check")
def label_check():
    """Validate a label template as the user types it.

    Query parameters:
        value: Label template to check
    """
    message = check_label_template(request.args.get("value", ""))
    return jsonify({"ok": message is None, "message": message})


@web_bp.route("/defaults")
def defaults():
    """Return default step settings; the password is never included."""
    factory = current_app.config.get("settings_factory", ConnectionSettings.from_config)
    settings = factory()
    return jsonify(
        {
            "label_template": ic_config.checkpoint_label_template(),
            "integration_point_host": settings.integration_host,
            "integration_point_port": settings.integration_port,
            "host": settings.host,
            "port": settings.port,
            "user_name": settings.user_name,
            "secure": settings.secure,
            "configuration_name": settings.configuration_name,
        }
    )
