"""Invoice document generation: recompute totals, bind a template, export.

Each call loads fresh records through the store and rebuilds the render context,
so the document always reflects the current line items. Nothing here holds
state between calls.
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional

from backend.app.core.errors import DeliveryFailed, RenderFailed, ValidationFailed
from backend.app.core.settings import get_settings
from backend.app.services.binder import bind, format_date, resolve_template
from backend.app.services.computation import ComputedTotals, compute_totals, format_money
from backend.app.services.render import EmailPayload, to_email_payload, to_pdf

logger = logging.getLogger(__name__)


@dataclass
class RenderedInvoice:
    invoice: object
    client: object
    profile: object
    template: object
    totals: ComputedTotals
    html: str


def pdf_filename(invoice) -> str:
    number = re.sub(r'[\\/*?:"<>|\s]+', "-", invoice.number or "").strip("-")
    return f"invoice-{number or invoice.id}.pdf"


class InvoiceDocumentService:
    def __init__(self, store, mailer=None):
        self.store = store
        self.mailer = mailer

    def render_html(self, owner_id: int, invoice_id: int, template_id: Optional[int] = None) -> RenderedInvoice:
        invoice = self.store.load_invoice_with_line_items(invoice_id, owner_id)
        settings = get_settings()
        if len(invoice.items) > settings.max_line_items:
            raise RenderFailed(f"Invoices with more than {settings.max_line_items} line items cannot be rendered")

        totals = compute_totals(invoice.items, invoice.tax_rate, invoice.currency)
        template = resolve_template(self.store, owner_id, template_id)
        client = self.store.get_client(invoice.client_id, owner_id)
        profile = self.store.get_owner_profile(owner_id)
        html = bind(invoice, template, totals, client, profile)
        logger.info("Rendered invoice %s with template %s", invoice.id, template.id)
        return RenderedInvoice(
            invoice=invoice,
            client=client,
            profile=profile,
            template=template,
            totals=totals,
            html=html,
        )

    def _require_items(self, rendered: RenderedInvoice) -> None:
        if not rendered.invoice.items:
            raise ValidationFailed("Invoice has no line items")

    def export_pdf(self, owner_id: int, invoice_id: int, template_id: Optional[int] = None) -> tuple[str, bytes]:
        rendered = self.render_html(owner_id, invoice_id, template_id)
        self._require_items(rendered)
        pdf_bytes = to_pdf(rendered.html, rendered.template.css)
        logger.info("Exported invoice %s as PDF", invoice_id)
        return pdf_filename(rendered.invoice), pdf_bytes

    def build_email(
        self,
        owner_id: int,
        invoice_id: int,
        recipient: Optional[str] = None,
        subject: Optional[str] = None,
        message: Optional[str] = None,
        template_id: Optional[int] = None,
        attach_pdf: bool = True,
    ) -> EmailPayload:
        rendered = self.render_html(owner_id, invoice_id, template_id)
        self._require_items(rendered)
        invoice = rendered.invoice
        to_address = recipient or rendered.client.email
        if not to_address:
            raise ValidationFailed("Client has no email address and no recipient was given")

        attachment = to_pdf(rendered.html, rendered.template.css) if attach_pdf else None
        return to_email_payload(
            rendered.html,
            rendered.template.css,
            recipient=to_address,
            subject=subject or f"Invoice {invoice.number} from {rendered.profile.company_name}",
            body_note=message,
            attachment=attachment,
            attachment_name=pdf_filename(invoice) if attachment is not None else None,
        )

    def _dispatch(self, payload: EmailPayload) -> None:
        if self.mailer is None:
            raise DeliveryFailed("No mail transport configured")
        result = self.mailer.send(payload)
        if not result.sent:
            raise DeliveryFailed(f"Email delivery failed: {result.reason or 'unknown reason'}")

    def send_invoice(
        self,
        owner_id: int,
        invoice_id: int,
        recipient: Optional[str] = None,
        subject: Optional[str] = None,
        message: Optional[str] = None,
        template_id: Optional[int] = None,
        attach_pdf: bool = True,
    ):
        payload = self.build_email(owner_id, invoice_id, recipient, subject, message, template_id, attach_pdf)
        self._dispatch(payload)
        invoice = self.store.load_invoice_with_line_items(invoice_id, owner_id)
        invoice = self.store.mark_invoice_sent(invoice)
        logger.info("Invoice %s sent", invoice_id)
        return invoice, payload.recipient

    def send_reminder(self, owner_id: int, invoice_id: int, message: Optional[str] = None) -> str:
        rendered = self.render_html(owner_id, invoice_id)
        self._require_items(rendered)
        invoice = rendered.invoice
        if invoice.status in ("paid", "cancelled"):
            raise ValidationFailed(f"Invoice is {invoice.status}; no reminder needed")
        if not rendered.client.email:
            raise ValidationFailed("Client has no email address")

        currency = invoice.currency
        note = message or (
            f"This is a friendly reminder that invoice {invoice.number} for "
            f"{format_money(rendered.totals.total, currency)} is due on "
            f"{format_date(invoice.due_date, rendered.profile.timezone)}."
        )
        payload = to_email_payload(
            rendered.html,
            rendered.template.css,
            recipient=rendered.client.email,
            subject=f"Payment reminder: Invoice {invoice.number}",
            body_note=note,
            attachment=to_pdf(rendered.html, rendered.template.css),
            attachment_name=pdf_filename(invoice),
        )
        self._dispatch(payload)
        logger.info("Reminder sent for invoice %s", invoice_id)
        return payload.recipient
