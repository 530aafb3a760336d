import os
import logging
from decimal import Decimal, InvalidOperation

import click
from flask import Flask, jsonify

from slotpay.config import config_by_name
from slotpay.errors import SlotPayError
from slotpay.extensions import db, migrate, login_manager, limiter


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

    # --- Import models so Alembic can discover them ---
    with app.app_context():
        from slotpay import models  # noqa: F401

    # --- Register blueprints ---
    from slotpay.blueprints.checkout import checkout_bp
    from slotpay.blueprints.credits import credits_bp
    from slotpay.blueprints.webhooks import webhooks_bp

    app.register_blueprint(checkout_bp)
    app.register_blueprint(credits_bp)
    app.register_blueprint(webhooks_bp)

    # --- Error handlers ---
    @app.errorhandler(SlotPayError)
    def slotpay_error(e):
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"error": "NotFound", "message": "Not found"}), 404

    @app.errorhandler(429)
    def rate_limited(e):
        return jsonify({"error": "RateLimited", "message": str(e.description)}), 429

    @app.errorhandler(500)
    def server_error(e):
        return jsonify({"error": "InternalError", "message": "Something went wrong"}), 500

    # --- CLI commands ---
    register_cli(app)

    # --- Security headers ---
    @app.after_request
    def add_security_headers(response):
        """Add security headers to every response."""
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Cache-Control"] = "no-store"
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

    @app.cli.command("create-slot")
    @click.option("--listing-id", required=True, help="Listing the slot belongs to")
    @click.option("--price", required=True, help="Price in major units, e.g. 20.00")
    @click.option("--capacity", default=1, show_default=True, type=int)
    @click.option("--label", default=None, help="Optional display label")
    def create_slot(listing_id, price, capacity, label):
        """Create a bookable slot (local development only).

        Slots are normally authored by merchant tooling.

        Usage:
            flask create-slot --listing-id <id> --price 20.00 --capacity 2
        """
        from slotpay.models.slot import Slot

        try:
            amount = Decimal(price)
        except InvalidOperation:
            raise click.BadParameter(f"not a number: {price}", param_hint="--price")
        if amount <= 0:
            raise click.BadParameter("must be positive", param_hint="--price")
        if capacity < 1:
            raise click.BadParameter("must be at least 1", param_hint="--capacity")

        slot = Slot(
            listing_id=listing_id,
            label=label,
            price=amount,
            capacity=capacity,
            booked_count=0,
        )
        db.session.add(slot)
        db.session.commit()
        click.echo(f"Created slot {slot.id} (listing {listing_id}, {capacity} x {amount})")

    @app.cli.command("grant-credits")
    @click.option("--user-id", required=True)
    @click.option("--amount", required=True, type=int, help="Positive number of credits")
    def grant_credits(user_id, amount):
        """Append a manual_grant ledger entry for a user."""
        from slotpay.models.audit import AuditEvent
        from slotpay.models.ledger import LedgerSource
        from slotpay.services.ledger_service import EntrySpec, append_entries, get_balance

        if amount <= 0:
            raise click.BadParameter("must be positive", param_hint="--amount")

        append_entries(db.session, user_id, [EntrySpec(amount, LedgerSource.MANUAL_GRANT)])
        db.session.add(AuditEvent(
            user_id=user_id,
            action="credits.manual_grant",
            metadata_={"amount": amount},
        ))
        db.session.commit()
        click.echo(f"Granted {amount} credits to {user_id}. Balance: {get_balance(db.session, user_id)}")

    @app.cli.command("oversold-bookings")
    def oversold_bookings():
        """List bookings that were paid for but need reconciliation."""
        from slotpay.models.booking import Booking

        rows = (
            Booking.query
            .filter(Booking.conflict_reason.isnot(None))
            .order_by(Booking.created_at)
            .all()
        )
        if not rows:
            click.echo("No bookings need reconciliation.")
            return

        click.echo(f"{len(rows)} booking(s) need reconciliation:")
        for b in rows:
            click.echo(
                f"  {b.id}  slot={b.slot_id}  user={b.user_id}  "
                f"paid={b.amount_paid_minor_units}  reason={b.conflict_reason}  "
                f"event={b.stripe_event_id}"
            )

    @app.cli.command("verify-ledger")
    def verify_ledger():
        """Compare every running balance against the sum of its entries.

        Exits non-zero if any account has drifted.
        """
        from slotpay.services.ledger_service import find_drifted_accounts

        drifted = find_drifted_accounts(db.session)
        if not drifted:
            click.echo("All credit balances match their ledger entries.")
            return

        for user_id, balance, derived in drifted:
            click.echo(f"  DRIFT {user_id}: running={balance} entries={derived}")
        raise click.ClickException(f"{len(drifted)} account(s) drifted")
