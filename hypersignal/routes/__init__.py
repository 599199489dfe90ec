"""
Route blueprints for the HyperSignal HTTP API.
Each file contains a Flask Blueprint with related /api routes.
"""
from __future__ import annotations

from flask import Flask, current_app


def get_ctx():
    """The AppContext the running app was created with."""
    return current_app.extensions["hypersignal"]


def register_all_blueprints(app: Flask) -> None:
    """Import and register every route blueprint on the Flask app."""
    from hypersignal.routes.dashboard import dashboard_bp
    from hypersignal.routes.settings import settings_bp
    from hypersignal.routes.wallets import wallets_bp

    app.register_blueprint(dashboard_bp)
    app.register_blueprint(settings_bp)
    app.register_blueprint(wallets_bp)
