"""
Tests for the post-trip tip page and tip payments.
"""
from unittest.mock import MagicMock, patch

import pytest

from taxibook.models import Transaction
from taxibook.services.stripe_service import PaymentError


@pytest.fixture
def tip_stripe():
    with patch("taxibook.services.tip_service.StripeService") as mock_cls:
        yield mock_cls.return_value


@pytest.fixture
def tippable_booking(make_booking):
    return make_booking(status="completed", payment_status="captured", tip_link_token="tok123")


class TestTips:
    @pytest.mark.asyncio
    async def test_tip_page(self, client, tippable_booking, tip_stripe):
        response = await client.get("/api/tip/tok123")

        assert response.status_code == 200
        data = response.json()
        assert data["booking_number"] == tippable_booking.booking_number
        assert data["vehicle_type"] == "Sedan"
        assert data["suggested_tips"] == [
            {"percentage": 15, "amount": 12.0},
            {"percentage": 20, "amount": 16.0},
            {"percentage": 25, "amount": 20.0},
        ]

    @pytest.mark.asyncio
    async def test_unknown_token(self, client, tip_stripe):
        response = await client.get("/api/tip/nope")
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_process_tip_once(
        self, client, db_session, tippable_booking, tip_stripe, make_template, sent_emails
    ):
        make_template("tip-thank-you", subject="Thanks for the {{transaction_amount}} tip")
        tip_stripe.charge_now.return_value = MagicMock(id="pi_tip")

        response = await client.post(
            "/api/tip/tok123/process", json={"amount": 12, "payment_method_id": "pm_card_visa"}
        )

        assert response.status_code == 200
        assert response.json()["gratuity_amount"] == 12.0
        tip = db_session.query(Transaction).one()
        assert (tip.type, tip.amount, tip.stripe_transaction_id) == ("tip", 12.0, "pi_tip")
        assert sent_emails.await_args.kwargs["subject"] == "Thanks for the $12.00 tip"

        again = await client.get("/api/tip/tok123")
        assert again.status_code == 410
        repeat = await client.post(
            "/api/tip/tok123/process", json={"amount": 5, "payment_method_id": "pm_card_visa"}
        )
        assert repeat.status_code == 410

    @pytest.mark.asyncio
    async def test_zero_tip_rejected(self, client, tippable_booking, tip_stripe):
        response = await client.post(
            "/api/tip/tok123/process", json={"amount": 0, "payment_method_id": "pm_card_visa"}
        )
        assert response.status_code == 422
        tip_stripe.charge_now.assert_not_called()

    @pytest.mark.asyncio
    async def test_declined_tip(self, client, db_session, tippable_booking, tip_stripe):
        tip_stripe.charge_now.side_effect = PaymentError("Your card was declined")

        response = await client.post(
            "/api/tip/tok123/process", json={"amount": 10, "payment_method_id": "pm_declined"}
        )

        assert response.status_code == 400
        db_session.refresh(tippable_booking)
        assert tippable_booking.gratuity_added_at is None
