"""
Receipt and booking detail PDFs
Generated on demand for downloads and email attachments
"""

import io
import logging
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from ..config import COMPANY_ADDRESS, COMPANY_EMAIL, COMPANY_NAME, COMPANY_PHONE
from ..events import format_money
from ..models import Booking

logger = logging.getLogger(__name__)


class BookingPDFGenerator:
    """Render a booking as a receipt or a trip details sheet"""

    def __init__(self, booking: Booking):
        self.booking = booking

        self.page_width, self.page_height = letter
        self.margin = 0.75 * inch
        self.content_width = self.page_width - (2 * self.margin)

        self.brand_color = colors.HexColor("#f59e0b")
        self.dark_gray = colors.HexColor("#111827")
        self.light_gray = colors.HexColor("#f3f4f6")

        styles = getSampleStyleSheet()
        self.title_style = ParagraphStyle(
            "ReceiptTitle",
            parent=styles["Heading1"],
            fontSize=22,
            textColor=self.dark_gray,
            spaceAfter=6,
        )
        self.muted_style = ParagraphStyle(
            "Muted", parent=styles["Normal"], fontSize=9, textColor=colors.HexColor("#6b7280")
        )
        self.body_style = styles["Normal"]

    def _document(self, buffer: io.BytesIO, title: str) -> SimpleDocTemplate:
        return SimpleDocTemplate(
            buffer,
            pagesize=letter,
            rightMargin=self.margin,
            leftMargin=self.margin,
            topMargin=self.margin,
            bottomMargin=self.margin,
            title=title,
        )

    def _header(self, heading: str) -> list:
        contact = " | ".join(p for p in (COMPANY_PHONE, COMPANY_EMAIL, COMPANY_ADDRESS) if p)
        return [
            Paragraph(COMPANY_NAME, self.title_style),
            Paragraph(contact, self.muted_style),
            Spacer(1, 0.3 * inch),
            Paragraph(f"<b>{heading}</b> #{self.booking.booking_number}", self.body_style),
            Spacer(1, 0.2 * inch),
        ]

    def _table(self, rows: list[list[str]], highlight_last: bool = False) -> Table:
        table = Table(rows, colWidths=[self.content_width * 0.45, self.content_width * 0.55])
        style = [
            ("FONTSIZE", (0, 0), (-1, -1), 10),
            ("TEXTCOLOR", (0, 0), (0, -1), colors.HexColor("#6b7280")),
            ("LINEBELOW", (0, 0), (-1, -1), 0.25, colors.HexColor("#e5e7eb")),
            ("VALIGN", (0, 0), (-1, -1), "TOP"),
            ("TOPPADDING", (0, 0), (-1, -1), 6),
            ("BOTTOMPADDING", (0, 0), (-1, -1), 6),
        ]
        if highlight_last:
            style += [
                ("BACKGROUND", (0, -1), (-1, -1), self.light_gray),
                ("FONTNAME", (0, -1), (-1, -1), "Helvetica-Bold"),
                ("LINEABOVE", (0, -1), (-1, -1), 1, self.brand_color),
            ]
        table.setStyle(TableStyle(style))
        return table

    def _trip_rows(self) -> list[list[str]]:
        b = self.booking
        rows = [
            ["Customer", b.customer_name],
            ["Pickup", b.pickup_address],
        ]
        if b.booking_type == "hourly":
            rows.append(["Duration", f"{b.duration_hours} hours"])
        else:
            rows.append(["Drop-off", b.dropoff_address or "-"])
        rows += [
            ["Date", b.pickup_date.strftime("%B %d, %Y %I:%M %p")],
            ["Vehicle", b.vehicle_type.display_name if b.vehicle_type else "-"],
        ]
        if b.flight_number:
            rows.append(["Flight", b.flight_number])
        return rows

    def receipt(self) -> bytes:
        """Generate the payment receipt PDF"""
        logger.info(f"📄 Generating receipt PDF for booking {self.booking.booking_number}")
        b = self.booking
        buffer = io.BytesIO()
        doc = self._document(buffer, f"Receipt {b.booking_number}")

        fare = b.final_fare if b.final_fare is not None else b.estimated_fare
        rows = [["Fare", format_money(fare or 0)]]
        for extra in b.extras:
            rows.append([f"{extra.name} x{extra.quantity}", format_money(extra.total_price)])
        if b.gratuity_amount:
            rows.append(["Gratuity", format_money(b.gratuity_amount)])
        if b.total_refunded:
            rows.append(["Refunded", f"-{format_money(b.total_refunded)}"])
        rows.append(["Total", format_money(b.total_amount - (b.total_refunded or 0))])

        story = self._header("Receipt")
        story.append(self._table(self._trip_rows()))
        story.append(Spacer(1, 0.3 * inch))
        story.append(self._table(rows, highlight_last=True))
        story.append(Spacer(1, 0.3 * inch))
        story.append(
            Paragraph(f"Payment status: {b.payment_status.replace('_', ' ').title()}", self.muted_style)
        )
        doc.build(story)
        return buffer.getvalue()

    def booking_details(self) -> bytes:
        """Generate the trip details sheet"""
        b = self.booking
        buffer = io.BytesIO()
        doc = self._document(buffer, f"Booking {b.booking_number}")

        story = self._header("Booking")
        story.append(self._table(self._trip_rows()))
        if b.special_instructions:
            story.append(Spacer(1, 0.2 * inch))
            story.append(Paragraph(f"<b>Instructions:</b> {escape(b.special_instructions)}", self.body_style))
        doc.build(story)
        return buffer.getvalue()


def receipt_attachment(booking: Booking) -> dict:
    return {
        "filename": f"receipt-{booking.booking_number}.pdf",
        "content": BookingPDFGenerator(booking).receipt(),
    }


def booking_details_attachment(booking: Booking) -> dict:
    return {
        "filename": f"booking-{booking.booking_number}.pdf",
        "content": BookingPDFGenerator(booking).booking_details(),
    }
