"""PDF rendering of stored receipts."""

from __future__ import annotations

from io import BytesIO
from typing import TYPE_CHECKING, Any

from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas

if TYPE_CHECKING:
    from settlement_service.services.money import MoneyFormatter

_LEFT = 50
_RIGHT = 545
_LINE = 16


class ReceiptRenderer:
    """
    Draws a one-page A4 receipt.

    Output is byte-for-byte stable for the same receipt, since receipts are
    immutable and the document omits creation timestamps.
    """

    def __init__(self, money: MoneyFormatter, issuer_name: str) -> None:
        self._money = money
        self._issuer_name = issuer_name

    def filename(self, receipt: dict[str, Any]) -> str:
        return f"receipt-{receipt['receipt_number']}.pdf"

    def render(self, receipt: dict[str, Any]) -> bytes:
        buffer = BytesIO()
        pdf = canvas.Canvas(buffer, pagesize=A4, invariant=1)
        pdf.setTitle(f"{self._issuer_name} receipt {receipt['receipt_number']}")
        pdf.setAuthor(self._issuer_name)

        currency = receipt["currency"]

        def amount(minor_units: int) -> str:
            return f"{currency} {self._money.format(minor_units, currency)}"

        is_payment = receipt["receipt_type"] == "payment"
        y = A4[1] - 60

        pdf.setFont("Helvetica-Bold", 20)
        pdf.drawString(_LEFT, y, self._issuer_name)
        pdf.setFont("Helvetica", 12)
        pdf.drawRightString(_RIGHT, y, "Payment Receipt" if is_payment else "Earnings Receipt")
        y -= 2 * _LINE

        pdf.setFont("Helvetica", 10)
        for label, value in (
            ("Receipt number", receipt["receipt_number"]),
            ("Issued", receipt["generated_at"]),
            ("Poster", receipt["poster_id"]),
            ("Tasker", receipt["tasker_id"]),
        ):
            pdf.drawString(_LEFT, y, f"{label}: {value}")
            y -= _LINE
        y -= _LINE

        pdf.setFont("Helvetica-Bold", 13)
        pdf.drawString(_LEFT, y, "Task Details")
        y -= _LINE
        pdf.setFont("Helvetica", 10)
        pdf.drawString(_LEFT, y, f"Title: {receipt['task_title']}")
        y -= _LINE
        pdf.drawString(_LEFT, y, f"Completed: {receipt['date_completed']}")
        y -= 2 * _LINE

        pdf.setFont("Helvetica-Bold", 13)
        pdf.drawString(_LEFT, y, "Payment Breakdown")
        y -= _LINE
        pdf.setFont("Helvetica", 10)
        pdf.drawString(_LEFT, y, "Description")
        pdf.drawRightString(_RIGHT, y, "Amount")
        y -= 5
        pdf.line(_LEFT, y, _RIGHT, y)
        y -= _LINE

        rows = [("Task amount", receipt["offer_amount"])]
        if is_payment:
            rows.append(("Service fee", receipt["service_fee"]))
        for label, minor_units in rows:
            pdf.drawString(_LEFT, y, label)
            pdf.drawRightString(_RIGHT, y, amount(minor_units))
            y -= _LINE

        y += _LINE - 5
        pdf.line(_RIGHT - 150, y, _RIGHT, y)
        y -= _LINE
        pdf.setFont("Helvetica-Bold", 12)
        pdf.drawString(_LEFT, y, "Total Paid" if is_payment else "Amount Received")
        pdf.drawRightString(
            _RIGHT,
            y,
            amount(receipt["total_paid"] if is_payment else receipt["amount_received"]),
        )
        y -= 2 * _LINE

        pdf.setFont("Helvetica", 10)
        pdf.drawString(_LEFT, y, f"Transaction: {receipt['intent_id']}")
        y -= 3 * _LINE
        pdf.drawCentredString(A4[0] / 2, y, f"Thank you for using {self._issuer_name}.")
        y -= _LINE
        pdf.drawCentredString(A4[0] / 2, y, "This is a computer-generated receipt.")

        pdf.showPage()
        pdf.save()
        return buffer.getvalue()
