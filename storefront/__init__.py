import os
import logging
from datetime import datetime, timedelta, timezone

import click
from flask import Flask, jsonify

from storefront.config import config_by_name
from storefront.extensions import db, migrate, login_manager, limiter
from storefront import security


def create_app(config_name=None):
    """Application factory."""

    if config_name is None:
        config_name = os.environ.get("FLASK_ENV", "development")

    app = Flask(__name__)
    app.config.from_object(config_by_name[config_name])

    # --- Validate required env vars (skip in testing) ---
    if config_name != "testing":
        try:
            config_by_name[config_name].validate()
        except RuntimeError as e:
            app.logger.warning(f"Config validation: {e}")

    # --- Init extensions ---
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    limiter.init_app(app)
    security.init_rate_limit_storage(app.config["RATELIMIT_STORAGE_URI"])

    # --- Import models so Alembic can discover them ---
    with app.app_context():
        from storefront import models  # noqa: F401

    # --- Register blueprints ---
    from storefront.blueprints.checkout import checkout_bp
    from storefront.blueprints.purchases import purchases_bp
    from storefront.blueprints.webhooks import webhooks_bp

    app.register_blueprint(checkout_bp)
    app.register_blueprint(purchases_bp)
    app.register_blueprint(webhooks_bp)

    # --- Error handlers ---
    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({"error": "Method not allowed"}), 405

    @app.errorhandler(500)
    def server_error(e):
        return jsonify({"error": "Internal server error"}), 500

    # --- CLI commands ---
    register_cli(app)

    # --- CORS + security headers ---
    @app.after_request
    def add_response_headers(response):
        """Add CORS and security headers to every response."""
        # The storefront SPA calls these endpoints cross-origin
        response.headers["Access-Control-Allow-Origin"] = app.config["CORS_ALLOWED_ORIGIN"]
        response.headers["Access-Control-Allow-Headers"] = (
            "authorization, x-client-info, apikey, content-type"
        )
        response.headers["Access-Control-Allow-Methods"] = "GET, POST, OPTIONS"
        # Prevent MIME type sniffing
        response.headers["X-Content-Type-Options"] = "nosniff"
        # Prevent clickjacking
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        # JSON-only API: nothing may be loaded or framed
        response.headers["Content-Security-Policy"] = (
            "default-src 'none'; frame-ancestors 'none'"
        )
        # Strict Transport Security (only in production)
        if not app.debug:
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )
        return response

    # --- Logging ---
    if not app.debug:
        logging.basicConfig(level=logging.INFO)

    return app


def register_cli(app):
    """Register custom CLI commands with the Flask app."""

    @app.cli.command("purge-pending-purchases")
    @click.option(
        "--older-than-hours",
        type=int,
        default=None,
        help="Age threshold (defaults to PENDING_PURCHASE_TTL_HOURS).",
    )
    @click.option("--dry-run", is_flag=True, help="Count abandoned rows without deleting them.")
    def purge_pending_purchases(older_than_hours, dry_run):
        """Delete pending purchases from abandoned checkouts.

        A pending purchase is consumed by the webhook or by the success
        page. Anything older than the TTL was never paid (PagBank checkouts
        expire after CHECKOUT_EXPIRATION_HOURS) and can go.

        Usage:
            flask purge-pending-purchases
            flask purge-pending-purchases --older-than-hours 72 --dry-run
        """
        from storefront.services.purchase_service import purge_expired_pending_purchases

        hours = older_than_hours or app.config["PENDING_PURCHASE_TTL_HOURS"]
        cutoff = datetime.now(timezone.utc) - timedelta(hours=hours)
        count = purge_expired_pending_purchases(cutoff, dry_run=dry_run)

        verb = "Would delete" if dry_run else "Deleted"
        click.echo(f"{verb} {count} pending purchase(s) older than {hours}h.")
