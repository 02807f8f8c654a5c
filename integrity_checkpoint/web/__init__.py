"""Configuration-time endpoints for checkpoint step settings."""

from flask import Flask


def create_app(settings_factory=None):
    """Create and configure Flask application.

    Args:
        settings_factory: Optional callable returning ConnectionSettings
            shown as defaults (uses the configured defaults if None)

    Returns:
        Configured Flask application
    """
    app = Flask(__name__)

    if settings_factory is not None:
        app.config["settings_factory"] = settings_factory

    from . import routes

    app.register_blueprint(routes.web_bp)

    return app
