"""
Portfolio site: JSON content API, rendered pages and admin panel.
"""
import os
from datetime import date
from decimal import Decimal

import click
from flask import Flask
from flask.json.provider import DefaultJSONProvider
from werkzeug.security import generate_password_hash

DEV_JWT_SECRET = "dev-jwt-secret-change-me"


class PortfolioJSONProvider(DefaultJSONProvider):
    """Serialise dates as ISO-8601 and numerics as plain numbers."""

    @staticmethod
    def default(o):
        if isinstance(o, date):
            return o.isoformat()
        if isinstance(o, Decimal):
            return float(o)
        return DefaultJSONProvider.default(o)


@click.command("hash-password")
@click.password_option()
def hash_password_command(password):
    """Print a hash suitable for ADMIN_PASSWORD_HASH."""
    click.echo(generate_password_hash(password))


def create_app(test_config=None):
    """Application factory function to create and configure the Flask app.

    Settings are read from the process environment at startup; ``test_config``
    overrides them.

    :param test_config: Configuration values applied last.
    :type test_config: dict or None
    :rtype: flask.Flask
    """
    app = Flask(__name__)
    app.json = PortfolioJSONProvider(app)

    app.config.from_mapping(
        SECRET_KEY=os.getenv("FLASK_SECRET_KEY", "dev"),
        DATABASE_URI=os.getenv("DATABASE_URL", "dbname=portfolio user=postgres"),
        JWT_SECRET=os.getenv("JWT_SECRET", DEV_JWT_SECRET),
        ADMIN_USERNAME=os.getenv("ADMIN_USERNAME", "admin"),
        ADMIN_PASSWORD_HASH=os.getenv("ADMIN_PASSWORD_HASH"),
        ADMIN_AUTH_REQUIRED=os.getenv("ADMIN_AUTH_REQUIRED", "true").lower() != "false",
        TOKEN_TTL_HOURS=24,
        TOAST_DURATION_MS=5000,
        STATS_COMMITS=150,
        STATS_HOURS_CODING=500,
        REPOSITORY_FACTORY=None,
    )
    if test_config is not None:
        app.config.update(test_config)

    if app.config["JWT_SECRET"] == DEV_JWT_SECRET and not app.testing:
        app.logger.warning("JWT_SECRET is not set; using the development secret.")

    from . import db
    db.init_app(app)
    app.cli.add_command(hash_password_command)

    from .api import api
    from .pages import pages
    app.register_blueprint(api)
    app.register_blueprint(pages)

    return app
