"""
MJML Email Templates
Admin-editable template bodies are HTML fragments; they are wrapped in the
branded MJML layout below before compiling.
"""

from datetime import datetime
from typing import Optional

from .config import COMPANY_NAME, COMPANY_WEBSITE

# App theme colors - Amber/Charcoal color scheme
THEME = {
    "primary": "#f59e0b",
    "primary_dark": "#d97706",
    "primary_light": "#fef3c7",
    "background": "#f8fafc",
    "card_bg": "#ffffff",
    "text_primary": "#111827",
    "text_secondary": "#374151",
    "text_muted": "#6b7280",
    "border": "#e5e7eb",
    "success": "#10b981",
    "danger": "#ef4444",
}


def get_base_template(
    title: str,
    preview_text: str,
    content_sections: str,
    cta_url: Optional[str] = None,
    cta_label: Optional[str] = None,
) -> str:
    """Base MJML template wrapper for all emails"""

    cta_section = ""
    if cta_url and cta_label:
        cta_section = f"""
        <mj-section padding="20px 0">
          <mj-column>
            <mj-button
              href="{cta_url}"
              background-color="{THEME['primary']}"
              color="#ffffff"
              font-weight="600"
              border-radius="8px"
              padding="18px 40px"
              font-size="16px">
              {cta_label}
            </mj-button>
          </mj-column>
        </mj-section>
        """

    return f"""
    <mjml>
      <mj-head>
        <mj-title>{title}</mj-title>
        <mj-preview>{preview_text}</mj-preview>
        <mj-attributes>
          <mj-all font-family="-apple-system, BlinkMacSystemFont, 'Segoe UI', 'Helvetica Neue', Arial, sans-serif" />
          <mj-text font-size="16px" line-height="1.6" color="{THEME['text_secondary']}" />
        </mj-attributes>
      </mj-head>
      <mj-body background-color="{THEME['background']}">
        <mj-section background-color="{THEME['text_primary']}" padding="24px 20px">
          <mj-column>
            <mj-text align="center" font-size="22px" font-weight="700" color="{THEME['primary']}" padding="0">
              {COMPANY_NAME}
            </mj-text>
          </mj-column>
        </mj-section>

        <mj-section background-color="#ffffff" padding="32px 40px 48px 40px">
          <mj-column>
            {content_sections}
          </mj-column>
        </mj-section>

        {cta_section}

        <mj-section padding="32px 20px">
          <mj-column>
            <mj-text align="center" font-size="13px" color="#9ca3af" padding="0">
              © {datetime.utcnow().year} {COMPANY_NAME}. All rights reserved.
            </mj-text>
            <mj-text align="center" font-size="13px" padding="8px 0 0 0">
              <a href="{COMPANY_WEBSITE}" style="color: {THEME['text_muted']}; text-decoration: none;">{COMPANY_WEBSITE}</a>
            </mj-text>
          </mj-column>
        </mj-section>
      </mj-body>
    </mjml>
    """


def wrap_html_body(subject: str, html_body: str) -> str:
    """Place a rendered admin template body inside the branded layout"""
    content = f"""
    <mj-text>
      {html_body}
    </mj-text>
    """
    return get_base_template(title=subject, preview_text=subject, content_sections=content)


def verification_code_template(code: str) -> str:
    content = f"""
    <mj-text font-size="24px" font-weight="600" color="{THEME['text_primary']}" padding="0 0 16px 0">
      Verify your email
    </mj-text>
    <mj-text>
      Use this code to continue your booking. It expires in 10 minutes.
    </mj-text>
    <mj-text align="center" font-size="36px" font-weight="700" letter-spacing="8px" color="{THEME['text_primary']}" padding="24px 0">
      {code}
    </mj-text>
    <mj-text color="{THEME['text_muted']}" font-size="14px">
      If you didn't request this code you can ignore this email.
    </mj-text>
    """
    return get_base_template(
        title="Verify your email",
        preview_text=f"Your verification code is {code}",
        content_sections=content,
    )


# Variables every template can reference as {{name}}
TEMPLATE_VARIABLES = {
    "company": [
        "company_name",
        "company_phone",
        "company_email",
        "company_address",
        "website_url",
        "current_year",
    ],
    "booking": [
        "booking_number",
        "customer_name",
        "customer_first_name",
        "customer_email",
        "customer_phone",
        "pickup_address",
        "dropoff_address",
        "pickup_date",
        "pickup_time",
        "vehicle_type",
        "estimated_fare",
        "final_fare",
        "gratuity_amount",
        "total_amount",
        "booking_status",
        "payment_status",
        "special_instructions",
        "flight_number",
        "booking_url",
        "receipt_url",
    ],
    "event": [
        "transaction_id",
        "transaction_amount",
        "transaction_date",
        "refund_amount",
        "refund_reason",
        "cancellation_reason",
        "changes_summary",
        "tip_url",
    ],
    "summary": [
        "report_date",
        "period_start",
        "period_end",
        "total_bookings",
        "completed_trips",
        "total_revenue",
        "cancelled_bookings",
        "average_fare",
    ],
}

SAMPLE_VARIABLES = {
    "company_name": COMPANY_NAME,
    "booking_number": "TBSAMPLE1",
    "customer_name": "Jane Doe",
    "customer_first_name": "Jane",
    "customer_email": "jane@example.com",
    "customer_phone": "+1 555 0100",
    "pickup_address": "1 Airport Rd",
    "dropoff_address": "200 Main St",
    "pickup_date": "October 19, 2026",
    "pickup_time": "3:05 PM",
    "vehicle_type": "Sedan",
    "estimated_fare": "$85.00",
    "final_fare": "$85.00",
    "gratuity_amount": "$0.00",
    "total_amount": "$85.00",
    "booking_status": "Confirmed",
    "payment_status": "Captured",
    "transaction_id": "pi_sample",
    "transaction_amount": "$85.00",
    "refund_amount": "$20.00",
    "refund_reason": "Customer request",
    "changes_summary": "Pickup address: 1 Airport Rd",
    "total_bookings": "12",
    "completed_trips": "9",
    "total_revenue": "$1,020.00",
    "cancelled_bookings": "1",
    "average_fare": "$113.33",
}


def _p(text: str) -> str:
    return f"<p>{text}</p>"


DETAILS_BLOCK = (
    "<p><strong>Booking:</strong> {{booking_number}}<br>"
    "<strong>Pickup:</strong> {{pickup_address}}<br>"
    "<strong>Drop-off:</strong> {{dropoff_address}}<br>"
    "<strong>Date:</strong> {{pickup_date}} at {{pickup_time}}<br>"
    "<strong>Vehicle:</strong> {{vehicle_type}}</p>"
)

# Seed data for the email_templates table
DEFAULT_EMAIL_TEMPLATES = [
    {
        "slug": "booking-confirmation",
        "name": "Booking Confirmation",
        "category": "customer",
        "subject": "Your booking {{booking_number}} is confirmed",
        "body": _p("Hi {{customer_first_name}},")
        + _p("Thanks for booking with {{company_name}}. Your ride is confirmed.")
        + DETAILS_BLOCK
        + _p('<a href="{{booking_url}}">View your booking</a>'),
        "trigger_events": ["booking.confirmed"],
        "attach_receipt": True,
        "priority": 10,
    },
    {
        "slug": "booking-received",
        "name": "Booking Received",
        "category": "customer",
        "subject": "We received your booking {{booking_number}}",
        "body": _p("Hi {{customer_first_name}},")
        + _p("We received your booking request and will confirm it shortly.")
        + DETAILS_BLOCK,
        "trigger_events": ["booking.created"],
        "priority": 8,
    },
    {
        "slug": "admin-new-booking",
        "name": "Admin: New Booking",
        "category": "admin",
        "subject": "New booking {{booking_number}} - {{customer_name}}",
        "body": _p("A new booking was created.")
        + DETAILS_BLOCK
        + _p("Customer: {{customer_name}} ({{customer_email}}, {{customer_phone}})")
        + _p("Estimated fare: {{estimated_fare}}"),
        "trigger_events": ["booking.created"],
        "send_to_customer": False,
        "send_to_admin": True,
        "priority": 7,
    },
    {
        "slug": "booking-modified",
        "name": "Booking Modified",
        "category": "customer",
        "subject": "Your booking {{booking_number}} was updated",
        "body": _p("Hi {{customer_first_name}},")
        + _p("The following details of your booking changed:")
        + "<pre>{{changes_summary}}</pre>"
        + DETAILS_BLOCK,
        "trigger_events": ["booking.modified"],
    },
    {
        "slug": "booking-cancelled",
        "name": "Booking Cancelled",
        "category": "customer",
        "subject": "Your booking {{booking_number}} was cancelled",
        "body": _p("Hi {{customer_first_name}},")
        + _p("Your booking {{booking_number}} has been cancelled.")
        + _p("Reason: {{cancellation_reason}}"),
        "trigger_events": ["booking.cancelled"],
        "send_to_admin": True,
    },
    {
        "slug": "trip-started",
        "name": "Trip Started",
        "category": "customer",
        "subject": "Your driver is on the way",
        "body": _p("Hi {{customer_first_name}},")
        + _p("Your trip {{booking_number}} has started. Enjoy the ride!"),
        "trigger_events": ["driver.trip_started"],
    },
    {
        "slug": "trip-completed",
        "name": "Trip Completed",
        "category": "customer",
        "subject": "Thanks for riding with {{company_name}}",
        "body": _p("Hi {{customer_first_name}},")
        + _p("Your trip {{booking_number}} is complete. Total charged: {{total_amount}}."),
        "trigger_events": ["booking.completed"],
        "attach_receipt": True,
    },
    {
        "slug": "payment-authorized",
        "name": "Payment Authorized",
        "category": "customer",
        "subject": "Payment authorized for {{booking_number}}",
        "body": _p("Hi {{customer_first_name}},")
        + _p("We placed a hold of {{transaction_amount}} on your card. "
             "You will only be charged after your trip."),
        "trigger_events": ["payment.authorized"],
    },
    {
        "slug": "payment-receipt",
        "name": "Payment Receipt",
        "category": "customer",
        "subject": "Receipt for booking {{booking_number}}",
        "body": _p("Hi {{customer_first_name}},")
        + _p("We received your payment of {{transaction_amount}} on {{transaction_date}}.")
        + _p("Transaction: {{transaction_id}}"),
        "trigger_events": ["payment.captured"],
        "attach_receipt": True,
    },
    {
        "slug": "payment-refunded",
        "name": "Refund Confirmation",
        "category": "customer",
        "subject": "Refund issued for booking {{booking_number}}",
        "body": _p("Hi {{customer_first_name}},")
        + _p("We refunded {{refund_amount}} to your card. Reason: {{refund_reason}}."),
        "trigger_events": ["payment.refunded"],
    },
    {
        "slug": "payment-failed",
        "name": "Payment Failed",
        "category": "customer",
        "subject": "Payment issue with booking {{booking_number}}",
        "body": _p("Hi {{customer_first_name}},")
        + _p("We couldn't process your payment. Please update your card from your booking page.")
        + _p('<a href="{{booking_url}}">Update payment</a>'),
        "trigger_events": ["payment.failed"],
        "send_to_admin": True,
    },
    {
        "slug": "reminder-24h",
        "name": "Pickup Reminder (24 hours)",
        "category": "customer",
        "subject": "Reminder: your ride is tomorrow",
        "body": _p("Hi {{customer_first_name}},") + _p("A quick reminder about your upcoming ride.") + DETAILS_BLOCK,
        "trigger_events": ["booking.reminder.24h"],
    },
    {
        "slug": "reminder-2h",
        "name": "Pickup Reminder (2 hours)",
        "category": "customer",
        "subject": "Your ride is in 2 hours",
        "body": _p("Hi {{customer_first_name}},") + _p("Your driver will see you soon.") + DETAILS_BLOCK,
        "trigger_events": ["booking.reminder.2h"],
    },
    {
        "slug": "review-request",
        "name": "Review Request",
        "category": "customer",
        "subject": "How was your ride?",
        "body": _p("Hi {{customer_first_name}},")
        + _p("We hope you enjoyed your trip. We'd love to hear your feedback."),
        "trigger_events": ["trip.review.24h"],
    },
    {
        "slug": "tip-request",
        "name": "Tip Request",
        "category": "customer",
        "subject": "Thank your driver",
        "body": _p("Hi {{customer_first_name}},")
        + _p("If you enjoyed your ride you can leave a tip for your driver.")
        + _p('<a href="{{tip_url}}">Leave a tip</a>'),
        "trigger_events": [],
    },
    {
        "slug": "tip-thank-you",
        "name": "Tip Thank You",
        "category": "customer",
        "subject": "Thank you for your tip",
        "body": _p("Hi {{customer_first_name}},")
        + _p("Your driver received your tip of {{transaction_amount}}. Thank you!"),
        "trigger_events": [],
    },
    {
        "slug": "admin-daily-summary",
        "name": "Admin: Daily Summary",
        "category": "admin",
        "subject": "Daily summary for {{report_date}}",
        "body": _p("Bookings: {{total_bookings}}")
        + _p("Completed trips: {{completed_trips}}")
        + _p("Revenue: {{total_revenue}}")
        + _p("Cancelled: {{cancelled_bookings}}"),
        "trigger_events": ["admin.daily_summary"],
        "send_to_customer": False,
        "send_to_admin": True,
    },
    {
        "slug": "admin-weekly-summary",
        "name": "Admin: Weekly Summary",
        "category": "admin",
        "subject": "Weekly summary {{period_start}} - {{period_end}}",
        "body": _p("Bookings: {{total_bookings}}")
        + _p("Completed trips: {{completed_trips}}")
        + _p("Revenue: {{total_revenue}}")
        + _p("Average fare: {{average_fare}}")
        + _p("Cancelled: {{cancelled_bookings}}"),
        "trigger_events": ["admin.weekly_summary"],
        "send_to_customer": False,
        "send_to_admin": True,
    },
    {
        "slug": "post-trip-follow-up",
        "name": "Post-trip Follow Up",
        "category": "customer",
        "subject": "Book your next ride with {{company_name}}",
        "body": _p("Hi {{customer_first_name}},")
        + _p("Thanks again for riding with us. Book your next trip any time."),
        "trigger_events": [],
        "send_timing_type": "after_completion",
        "send_timing_value": 3,
        "send_timing_unit": "days",
        "is_active": False,
    },
]
