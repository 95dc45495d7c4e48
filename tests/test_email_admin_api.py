"""
Tests for email template administration and the email log.
"""
from unittest.mock import patch

import pytest

from taxibook import events
from taxibook.email_service import EmailSendError
from taxibook.models import EmailLog

TEMPLATE = {
    "name": "Booking Confirmation",
    "subject": "Your ride {{booking_number}} is confirmed",
    "body": "<p>Hi {{customer_first_name}}</p><script>alert(1)</script>",
    "trigger_events": [events.BOOKING_CONFIRMED],
}


@pytest.fixture
def compiled_mjml():
    with patch(
        "taxibook.domain.email.service.compile_mjml_to_html", return_value="<html>ok</html>"
    ) as mock_compile:
        yield mock_compile


class TestTemplates:
    @pytest.mark.asyncio
    async def test_create_sanitizes_body(self, client, admin_headers):
        response = await client.post("/admin/email-templates", json=TEMPLATE, headers=admin_headers)

        assert response.status_code == 201
        data = response.json()
        assert data["slug"] == "booking-confirmation"
        assert "<script>" not in data["body"]
        assert "{{customer_first_name}}" in data["body"]

    @pytest.mark.asyncio
    async def test_unknown_trigger_rejected(self, client, admin_headers):
        payload = dict(TEMPLATE, trigger_events=["booking.exploded"])
        response = await client.post("/admin/email-templates", json=payload, headers=admin_headers)
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_duplicate_slug_conflicts(self, client, admin_headers, make_template):
        make_template("booking-confirmation")
        response = await client.post("/admin/email-templates", json=TEMPLATE, headers=admin_headers)
        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_update_keeps_fields_on_null(self, client, admin_headers, make_template):
        template = make_template("reminder-24h", cc_emails="ops@example.com")

        response = await client.patch(
            f"/admin/email-templates/{template.id}",
            json={"subject": None, "cc_emails": None, "priority": 9},
            headers=admin_headers,
        )

        data = response.json()
        assert response.status_code == 200
        assert data["subject"] == "Booking {{booking_number}}"
        assert data["cc_emails"] is None
        assert data["priority"] == 9

    @pytest.mark.asyncio
    async def test_duplicate_starts_inactive(self, client, admin_headers, make_template):
        template = make_template("booking-confirmation", [events.BOOKING_CONFIRMED])

        first = await client.post(
            f"/admin/email-templates/{template.id}/duplicate", headers=admin_headers
        )
        second = await client.post(
            f"/admin/email-templates/{template.id}/duplicate", headers=admin_headers
        )

        assert first.status_code == 201
        assert first.json()["slug"] == "booking-confirmation-copy"
        assert first.json()["is_active"] is False
        assert first.json()["trigger_events"] == [events.BOOKING_CONFIRMED]
        assert second.json()["slug"] == "booking-confirmation-copy-2"

    @pytest.mark.asyncio
    async def test_filter_by_active(self, client, admin_headers, make_template):
        make_template("on")
        make_template("off", is_active=False)

        response = await client.get("/admin/email-templates?is_active=false", headers=admin_headers)
        assert [t["slug"] for t in response.json()] == ["off"]

    @pytest.mark.asyncio
    async def test_delete(self, client, admin_headers, make_template):
        template = make_template("obsolete")
        response = await client.delete(f"/admin/email-templates/{template.id}", headers=admin_headers)
        assert response.status_code == 200
        missing = await client.get(f"/admin/email-templates/{template.id}", headers=admin_headers)
        assert missing.status_code == 404

    @pytest.mark.asyncio
    async def test_variables_catalogue(self, client, admin_headers):
        response = await client.get("/admin/email-templates/variables", headers=admin_headers)
        data = response.json()
        assert events.REMINDER_24H in data["trigger_events"]
        assert "before_pickup" in data["send_timing_types"]


class TestPreviewAndTestSend:
    @pytest.mark.asyncio
    async def test_preview_with_sample_data(
        self, client, admin_headers, make_template, compiled_mjml
    ):
        template = make_template("booking-confirmation")

        response = await client.post(
            f"/admin/email-templates/{template.id}/preview",
            json={"variables": {"customer_first_name": "Marie"}},
            headers=admin_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["body"] == "<p>Hi Marie</p>"
        assert "{{booking_number}}" not in data["subject"]
        assert data["html"] == "<html>ok</html>"

    @pytest.mark.asyncio
    async def test_preview_with_real_booking(
        self, client, admin_headers, make_template, make_booking, compiled_mjml
    ):
        template = make_template("booking-confirmation")
        booking = make_booking()

        response = await client.post(
            f"/admin/email-templates/{template.id}/preview",
            json={"booking_id": booking.id},
            headers=admin_headers,
        )

        assert response.json()["subject"] == f"Booking {booking.booking_number}"

    @pytest.mark.asyncio
    async def test_test_send_is_logged(
        self, client, db_session, admin_headers, make_template, sent_emails
    ):
        template = make_template("booking-confirmation")

        response = await client.post(
            f"/admin/email-templates/{template.id}/test",
            json={"recipient_email": "qa@example.com"},
            headers=admin_headers,
        )

        assert response.status_code == 200
        log = db_session.get(EmailLog, response.json()["log_id"])
        assert log.subject.startswith("[TEST] ")
        assert log.status == "sent"
        assert sent_emails.await_args.kwargs["to"] == "qa@example.com"

    @pytest.mark.asyncio
    async def test_failed_test_send_is_502(
        self, client, admin_headers, make_template, sent_emails
    ):
        sent_emails.side_effect = EmailSendError("Email service not configured")
        template = make_template("booking-confirmation")

        response = await client.post(
            f"/admin/email-templates/{template.id}/test",
            json={"recipient_email": "qa@example.com"},
            headers=admin_headers,
        )

        assert response.status_code == 502
        assert "not configured" in response.json()["detail"]


class TestEmailLogs:
    @pytest.fixture
    def logs(self, db_session, make_booking):
        booking = make_booking()
        entries = [
            EmailLog(
                booking_id=booking.id,
                template_slug="booking-confirmation",
                recipient_email="ada@example.com",
                subject="Confirmed",
                body="<p>Confirmed</p>",
                status="sent",
            ),
            EmailLog(
                booking_id=booking.id,
                template_slug="reminder-24h",
                recipient_email="ada@example.com",
                subject="Reminder",
                body="<p>Tomorrow</p>",
                status="failed",
                error_message="Mailbox full",
            ),
        ]
        db_session.add_all(entries)
        db_session.commit()
        return entries

    @pytest.mark.asyncio
    async def test_list_and_filter(self, client, admin_headers, logs):
        everything = await client.get("/admin/email-logs", headers=admin_headers)
        assert everything.json()["total"] == 2

        failed = await client.get("/admin/email-logs?status=failed", headers=admin_headers)
        items = failed.json()["items"]
        assert [i["template_slug"] for i in items] == ["reminder-24h"]

    @pytest.mark.asyncio
    async def test_detail(self, client, admin_headers, logs):
        response = await client.get(f"/admin/email-logs/{logs[1].id}", headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["error_message"] == "Mailbox full"

    @pytest.mark.asyncio
    async def test_resend_creates_new_log(
        self, client, db_session, admin_headers, logs, sent_emails
    ):
        response = await client.post(f"/admin/email-logs/{logs[1].id}/resend", headers=admin_headers)

        assert response.status_code == 200
        assert db_session.query(EmailLog).count() == 3
        assert db_session.query(EmailLog).filter_by(status="sent").count() == 2

    @pytest.mark.asyncio
    async def test_run_scheduled_dry_run(self, client, admin_headers, sent_emails):
        response = await client.post("/admin/emails/run-scheduled?dry_run=true", headers=admin_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["scheduled_templates"] == {"processed": 0, "skipped": 0, "failed": 0}
        assert data["scheduled_triggers"]["reminders"] == 0
        sent_emails.assert_not_awaited()
