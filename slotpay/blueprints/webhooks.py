"""Webhooks blueprint — /stripe/webhooks

Receives Stripe webhook events. Unauthenticated but signed: the raw body
is required for signature verification.
"""

import logging

import stripe
from flask import Blueprint, current_app, jsonify, request

from slotpay.errors import SlotPayError, TransientStorageError, ValidationError
from slotpay.extensions import db
from slotpay.services.stripe_service import handle_webhook_event, verify_webhook_signature

logger = logging.getLogger(__name__)

webhooks_bp = Blueprint("webhooks", __name__, url_prefix="/stripe")


@webhooks_bp.route("/webhooks", methods=["POST"])
def stripe_webhook():
    """Receive and process Stripe webhook events.

    1. Get raw body (required for signature verification)
    2. Verify signature with STRIPE_WEBHOOK_SECRET
    3. Pass to handle_webhook_event (idempotent via stripe_events table)
    4. Return 200 to acknowledge, 500 to make Stripe redeliver
    """
    payload = request.get_data(as_text=True)
    sig_header = request.headers.get("Stripe-Signature")

    if not sig_header:
        logger.warning("Webhook received without Stripe-Signature header")
        return jsonify({"error": "Missing signature"}), 400

    # --- Verify signature ---
    try:
        event = verify_webhook_signature(
            payload, sig_header, current_app.config["STRIPE_WEBHOOK_SECRET"]
        )
    except (ValueError, stripe.SignatureVerificationError) as e:
        logger.warning(f"Webhook signature verification failed: {e}")
        return jsonify({"error": "Invalid signature"}), 400

    # --- Process event (idempotent) ---
    try:
        success, message = handle_webhook_event(db.session, event, current_app.config)
    except ValidationError as e:
        logger.error(f"Rejected webhook {event.get('id')}: {e.message}")
        return jsonify(e.to_dict()), 400

    if success:
        return jsonify({"status": message}), 200

    logger.error(f"Webhook processing failed: {message}")
    if message == "transient_storage_error":
        error = TransientStorageError(message)
    else:
        error = SlotPayError(message)
    return jsonify(error.to_dict()), error.status_code
