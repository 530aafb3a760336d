"""Tests for the checkout intent builder and the /api/checkout route.

Covers:
- Pricing: minor-unit conversion, redeem clamping, minimum charge floor
- Slot checks: not found, wrong listing, full (advisory)
- Read-only guarantee: building an intent never touches balances or slots
- Route: auth, validation, Stripe session creation, Stripe failures
"""

import json
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
import stripe

from slotpay.errors import SlotFull, SlotNotFound, SlotNotOwnedByListing, ValidationError
from slotpay.models.ledger import LedgerEntry
from slotpay.models.slot import Slot
from slotpay.services.checkout_service import (
    build_checkout_intent,
    compute_payable,
    compute_redeem,
    parse_requested_redeem,
    to_minor_units,
)
from slotpay.services.ledger_service import get_balance


class TestPricing:
    """Pure pricing helpers."""

    def test_to_minor_units_rounds_half_up(self):
        assert to_minor_units(Decimal("20.00")) == 2000
        assert to_minor_units(Decimal("12.345")) == 1235
        assert to_minor_units("0.5") == 50

    def test_redeem_clamped_to_balance(self):
        assert compute_redeem(900, 2000, 500) == 500

    def test_redeem_clamped_to_price(self):
        assert compute_redeem(5000, 2000, 10000) == 2000

    def test_negative_redeem_clamps_to_zero(self):
        assert compute_redeem(-20, 2000, 500) == 0

    def test_payable_has_minimum_charge(self):
        assert compute_payable(2000, 2000, 50) == 50
        assert compute_payable(2000, 1990, 50) == 50
        assert compute_payable(2000, 500, 50) == 1500

    @pytest.mark.parametrize("raw,expected", [
        (None, 0), ("", 0), (250, 250), ("300", 300), (12.9, 12), ("-4", -4),
    ])
    def test_parse_requested_redeem(self, raw, expected):
        assert parse_requested_redeem(raw) == expected

    @pytest.mark.parametrize("raw", ["lots", True, [1], "nan"])
    def test_parse_requested_redeem_rejects_garbage(self, raw):
        with pytest.raises(ValidationError):
            parse_requested_redeem(raw)


class TestBuildCheckoutIntent:
    """build_checkout_intent() against the database."""

    def test_redeem_within_balance(self, app, db_session, seed_data):
        intent = build_checkout_intent(
            db_session, seed_data["user_id"], seed_data["listing_id"],
            seed_data["slot_id"], 500, app.config,
        )
        assert intent.price_minor_units == 2000
        assert intent.redeem_amount == 500
        assert intent.payable_minor_units == 1500
        assert intent.balance_snapshot == 500
        assert intent.currency == "gbp"

    def test_redeem_above_balance_is_clamped(self, app, db_session, seed_data):
        intent = build_checkout_intent(
            db_session, seed_data["user_id"], seed_data["listing_id"],
            seed_data["slot_id"], 1800, app.config,
        )
        assert intent.redeem_amount == 500
        assert intent.payable_minor_units == 1500

    def test_user_without_account_redeems_nothing(self, app, db_session, seed_data):
        intent = build_checkout_intent(
            db_session, seed_data["other_user_id"], seed_data["listing_id"],
            seed_data["slot_id"], 300, app.config,
        )
        assert intent.redeem_amount == 0
        assert intent.payable_minor_units == 2000

    def test_full_redeem_still_charges_minimum(self, app, db_session, seed_data, slot_factory):
        cheap = slot_factory(price="3.00")
        intent = build_checkout_intent(
            db_session, seed_data["user_id"], seed_data["listing_id"],
            cheap.id, 500, app.config,
        )
        assert intent.redeem_amount == 300
        assert intent.payable_minor_units == 50

    def test_metadata_is_string_map(self, app, db_session, seed_data):
        intent = build_checkout_intent(
            db_session, seed_data["user_id"], seed_data["listing_id"],
            seed_data["slot_id"], 200, app.config,
        )
        assert intent.to_metadata() == {
            "user_id": seed_data["user_id"],
            "listing_id": seed_data["listing_id"],
            "slot_id": seed_data["slot_id"],
            "price_minor_units": "2000",
            "redeem_amount": "200",
        }

    def test_slot_not_found(self, app, db_session, seed_data):
        with pytest.raises(SlotNotFound):
            build_checkout_intent(
                db_session, seed_data["user_id"], seed_data["listing_id"],
                "no-such-slot", 0, app.config,
            )

    def test_slot_of_another_listing(self, app, db_session, seed_data):
        with pytest.raises(SlotNotOwnedByListing):
            build_checkout_intent(
                db_session, seed_data["user_id"], "another-listing",
                seed_data["slot_id"], 0, app.config,
            )

    def test_full_slot_is_rejected(self, app, db_session, seed_data, slot_factory):
        full = slot_factory(capacity=2, booked_count=2)
        with pytest.raises(SlotFull):
            build_checkout_intent(
                db_session, seed_data["user_id"], seed_data["listing_id"],
                full.id, 0, app.config,
            )

    def test_intent_does_not_mutate_anything(self, app, db_session, seed_data):
        for _ in range(3):
            build_checkout_intent(
                db_session, seed_data["user_id"], seed_data["listing_id"],
                seed_data["slot_id"], 500, app.config,
            )
        db_session.commit()

        assert get_balance(db_session, seed_data["user_id"]) == 500
        assert LedgerEntry.query.count() == 1  # the seed grant only
        assert db_session.get(Slot, seed_data["slot_id"]).booked_count == 0


class TestCheckoutRoute:
    """POST /api/checkout."""

    def _post(self, client, body, headers):
        return client.post(
            "/api/checkout",
            data=json.dumps(body),
            content_type="application/json",
            headers=headers,
        )

    def test_requires_token(self, client, seed_data):
        resp = self._post(client, {
            "listing_id": seed_data["listing_id"], "slot_id": seed_data["slot_id"],
        }, {})
        assert resp.status_code == 401

    def test_rejects_token_with_wrong_secret(self, client, seed_data, make_token):
        token = make_token(secret="some-other-secret-that-is-long-enough")
        resp = self._post(client, {
            "listing_id": seed_data["listing_id"], "slot_id": seed_data["slot_id"],
        }, {"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401

    def test_rejects_expired_token(self, client, seed_data, make_token):
        token = make_token(expires_in=-60)
        resp = self._post(client, {
            "listing_id": seed_data["listing_id"], "slot_id": seed_data["slot_id"],
        }, {"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401

    @patch("slotpay.services.stripe_service.stripe.checkout.Session.create")
    def test_creates_stripe_session(self, mock_create, client, seed_data, auth_headers,
                                    db_session):
        mock_create.return_value = MagicMock(
            id="cs_test_abc", url="https://checkout.stripe.com/c/pay/cs_test_abc"
        )

        resp = self._post(client, {
            "listing_id": seed_data["listing_id"],
            "slot_id": seed_data["slot_id"],
            "redeem_amount": 500,
        }, auth_headers)

        assert resp.status_code == 200
        data = resp.get_json()
        assert data["payable_minor_units"] == 1500
        assert data["redeem_amount"] == 500
        assert data["price_minor_units"] == 2000
        assert data["checkout_session_id"] == "cs_test_abc"
        assert data["checkout_url"].startswith("https://checkout.stripe.com/")

        kwargs = mock_create.call_args.kwargs
        assert kwargs["mode"] == "payment"
        assert kwargs["client_reference_id"] == seed_data["user_id"]
        assert kwargs["line_items"][0]["price_data"]["unit_amount"] == 1500
        assert kwargs["line_items"][0]["price_data"]["currency"] == "gbp"
        assert kwargs["metadata"]["redeem_amount"] == "500"
        assert kwargs["metadata"]["slot_id"] == seed_data["slot_id"]

        # Nothing debited or reserved yet
        balance = client.get("/api/credits/balance", headers=auth_headers)
        assert balance.get_json()["balance"] == 500
        assert db_session.get(Slot, seed_data["slot_id"]).booked_count == 0

    @patch("slotpay.services.stripe_service.stripe.checkout.Session.create")
    def test_redeem_is_optional(self, mock_create, client, seed_data, auth_headers):
        mock_create.return_value = MagicMock(id="cs_test_x", url="https://checkout.stripe.com/x")

        resp = self._post(client, {
            "listing_id": seed_data["listing_id"], "slot_id": seed_data["slot_id"],
        }, auth_headers)

        assert resp.status_code == 200
        assert resp.get_json()["payable_minor_units"] == 2000

    def test_missing_fields_400(self, client, seed_data, auth_headers):
        resp = self._post(client, {"slot_id": seed_data["slot_id"]}, auth_headers)
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "ValidationError"

    def test_non_json_body_400(self, client, seed_data, auth_headers):
        resp = client.post("/api/checkout", data="nope", headers=auth_headers)
        assert resp.status_code == 400

    def test_bad_redeem_400(self, client, seed_data, auth_headers):
        resp = self._post(client, {
            "listing_id": seed_data["listing_id"],
            "slot_id": seed_data["slot_id"],
            "redeem_amount": "all of it",
        }, auth_headers)
        assert resp.status_code == 400

    def test_unknown_slot_404(self, client, seed_data, auth_headers):
        resp = self._post(client, {
            "listing_id": seed_data["listing_id"], "slot_id": "missing",
        }, auth_headers)
        assert resp.status_code == 404
        assert resp.get_json()["error"] == "SlotNotFound"

    def test_listing_mismatch_404(self, client, seed_data, auth_headers):
        resp = self._post(client, {
            "listing_id": "other-listing", "slot_id": seed_data["slot_id"],
        }, auth_headers)
        assert resp.status_code == 404
        assert resp.get_json()["error"] == "SlotNotOwnedByListing"

    def test_full_slot_409(self, client, seed_data, auth_headers, slot_factory):
        full = slot_factory(capacity=1, booked_count=1)
        resp = self._post(client, {
            "listing_id": seed_data["listing_id"], "slot_id": full.id,
        }, auth_headers)
        assert resp.status_code == 409
        assert resp.get_json()["error"] == "SlotFull"

    @patch("slotpay.services.stripe_service.stripe.checkout.Session.create")
    def test_stripe_failure_502(self, mock_create, client, seed_data, auth_headers):
        mock_create.side_effect = stripe.StripeError("card network down")

        resp = self._post(client, {
            "listing_id": seed_data["listing_id"], "slot_id": seed_data["slot_id"],
        }, auth_headers)

        assert resp.status_code == 502
        assert resp.get_json()["error"] == "PaymentProviderError"
