"""Checkout blueprint — /api/checkout

Prices a slot for the logged-in caller and hands back a Stripe Checkout
URL. Nothing is reserved or debited here; that happens when Stripe calls
the webhook.

Routes:
- POST /api/checkout — body {listing_id, slot_id, redeem_amount?}
"""

import logging

from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user, login_required

from slotpay.errors import ValidationError
from slotpay.extensions import db, limiter
from slotpay.services.checkout_service import build_checkout_intent
from slotpay.services.slot_service import get_slot
from slotpay.services.stripe_service import create_checkout_session

logger = logging.getLogger(__name__)

checkout_bp = Blueprint("checkout", __name__, url_prefix="/api")


def _checkout_rate_limit():
    return current_app.config["CHECKOUT_RATE_LIMIT"]


@checkout_bp.route("/checkout", methods=["POST"])
@limiter.limit(_checkout_rate_limit)
@login_required
def create_checkout():
    """Build a checkout intent and start a Stripe Checkout Session.

    Returns the payable amount and the hosted checkout URL, or a specific
    error (SlotNotFound, SlotNotOwnedByListing, SlotFull, ValidationError).
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")

    listing_id = (str(data.get("listing_id") or "")).strip()
    slot_id = (str(data.get("slot_id") or "")).strip()

    intent = build_checkout_intent(
        db.session,
        user_id=current_user.id,
        listing_id=listing_id,
        slot_id=slot_id,
        requested_redeem=data.get("redeem_amount"),
        app_config=current_app.config,
    )

    session_id, checkout_url = create_checkout_session(
        intent, get_slot(db.session, slot_id), current_app.config
    )

    return jsonify({
        "payable_minor_units": intent.payable_minor_units,
        "price_minor_units": intent.price_minor_units,
        "redeem_amount": intent.redeem_amount,
        "currency": intent.currency,
        "checkout_session_id": session_id,
        "checkout_url": checkout_url,
    }), 200
