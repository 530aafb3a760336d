"""Credits blueprint — read-only views for the logged-in caller.

Routes:
- GET /api/credits/balance  — current credit balance
- GET /api/credits/ledger   — recent ledger entries
- GET /api/bookings         — settled bookings (incl. oversold conflicts)
"""

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from slotpay.extensions import db
from slotpay.models.booking import Booking
from slotpay.services.ledger_service import get_balance, list_entries

credits_bp = Blueprint("credits", __name__, url_prefix="/api")

MAX_PAGE_SIZE = 200


def _limit_arg(default=50):
    limit = request.args.get("limit", default, type=int)
    return max(1, min(limit, MAX_PAGE_SIZE))


@credits_bp.route("/credits/balance")
@login_required
def balance():
    return jsonify({
        "user_id": current_user.id,
        "balance": get_balance(db.session, current_user.id),
    })


@credits_bp.route("/credits/ledger")
@login_required
def ledger():
    entries = list_entries(db.session, current_user.id, limit=_limit_arg())
    return jsonify({
        "user_id": current_user.id,
        "balance": get_balance(db.session, current_user.id),
        "entries": [e.to_dict() for e in entries],
    })


@credits_bp.route("/bookings")
@login_required
def bookings():
    rows = (
        Booking.query
        .filter_by(user_id=current_user.id)
        .order_by(Booking.created_at.desc())
        .limit(_limit_arg())
        .all()
    )
    return jsonify({"bookings": [b.to_dict() for b in rows]})
