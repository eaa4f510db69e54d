"""Invoice record helpers: numbering, item replacement and response shaping."""

from decimal import Decimal
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backend.app.core.errors import Conflict, NotFound, ValidationFailed
from backend.app.core.time import ensure_utc
from backend.app.models.client import Client
from backend.app.models.invoice import Invoice
from backend.app.models.invoice_item import InvoiceItem
from backend.app.models.user import User
from backend.app.schemas.invoice import InvoiceCreate, InvoiceItemIn, InvoiceUpdate
from backend.app.services.computation import compute_totals

# Columns that cannot be cleared; a null in an update leaves them unchanged
REQUIRED_FIELDS = {"client_id", "number", "status", "currency", "tax_rate", "issue_date", "due_date"}


def next_invoice_number(db: Session, owner_id: int) -> str:
    """Return the next free ``INV-0001`` style number for an owner."""
    count = db.query(Invoice).filter(Invoice.owner_id == owner_id).count()
    candidate = count + 1
    while _number_taken(db, owner_id, f"INV-{candidate:04d}"):
        candidate += 1
    return f"INV-{candidate:04d}"


def _number_taken(db: Session, owner_id: int, number: str, exclude_id: Optional[int] = None) -> bool:
    query = db.query(Invoice.id).filter(Invoice.owner_id == owner_id, Invoice.number == number)
    if exclude_id is not None:
        query = query.filter(Invoice.id != exclude_id)
    return query.first() is not None


def _get_owned_client(db: Session, client_id: int, owner_id: int) -> Client:
    client = db.query(Client).filter(Client.id == client_id, Client.owner_id == owner_id).first()
    if client is None:
        raise NotFound("Client not found")
    return client


def _commit(db: Session, invoice: Invoice) -> None:
    number = invoice.number
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        message = str(exc.orig)
        if "uq_invoices_owner_number" not in message and "invoices.number" not in message:
            raise
        # Another request took the same number between the check and the insert
        raise Conflict(f"Invoice number {number} is already in use; retry the request") from exc
    db.refresh(invoice)


def _build_items(items_in: List[InvoiceItemIn]) -> List[InvoiceItem]:
    return [
        InvoiceItem(
            position=position,
            description=item.description,
            quantity=item.quantity,
            unit_price=item.unit_price,
        )
        for position, item in enumerate(items_in)
    ]


def create_invoice(db: Session, owner: User, payload: InvoiceCreate) -> Invoice:
    _get_owned_client(db, payload.client_id, owner.id)
    number = payload.number or next_invoice_number(db, owner.id)
    if _number_taken(db, owner.id, number):
        raise Conflict(f"Invoice number {number} is already in use")

    invoice = Invoice(
        owner_id=owner.id,
        client_id=payload.client_id,
        number=number,
        status=payload.status,
        currency=(payload.currency or owner.currency or "USD").upper(),
        tax_rate=payload.tax_rate,
        issue_date=payload.issue_date,
        due_date=payload.due_date,
        notes=payload.notes,
        terms=payload.terms,
    )
    invoice.items = _build_items(payload.items)
    db.add(invoice)
    _commit(db, invoice)
    return invoice


def update_invoice(db: Session, invoice: Invoice, payload: InvoiceUpdate) -> Invoice:
    update_data = payload.model_dump(exclude_unset=True, exclude={"items"})
    if update_data.get("client_id") is not None:
        _get_owned_client(db, update_data["client_id"], invoice.owner_id)
    if update_data.get("number") is not None and _number_taken(db, invoice.owner_id, update_data["number"], invoice.id):
        raise Conflict(f"Invoice number {update_data['number']} is already in use")

    issue_date = update_data.get("issue_date") or invoice.issue_date
    due_date = update_data.get("due_date") or invoice.due_date
    if ensure_utc(due_date) < ensure_utc(issue_date):
        raise ValidationFailed("due_date must not be before issue_date")

    for field, value in update_data.items():
        if value is None and field in REQUIRED_FIELDS:
            continue
        if field == "currency":
            value = value.upper()
        setattr(invoice, field, value)
    if payload.items is not None:
        invoice.items = _build_items(payload.items)
    _commit(db, invoice)
    return invoice


def serialize_invoice(invoice: Invoice) -> dict:
    """Shape an invoice for responses, with totals recomputed from its items."""
    totals = compute_totals(invoice.items, invoice.tax_rate, invoice.currency)
    items = [
        {
            "id": item.id,
            "position": item.position,
            "description": item.description,
            "quantity": item.quantity,
            "unit_price": item.unit_price,
            "line_total": line_total,
        }
        for item, line_total in zip(invoice.items, totals.line_totals)
    ]
    return {
        "id": invoice.id,
        "owner_id": invoice.owner_id,
        "client_id": invoice.client_id,
        "number": invoice.number,
        "status": invoice.status,
        "currency": invoice.currency,
        "tax_rate": Decimal(str(invoice.tax_rate)),
        "issue_date": invoice.issue_date,
        "due_date": invoice.due_date,
        "notes": invoice.notes,
        "terms": invoice.terms,
        "sent_at": invoice.sent_at,
        "items": items,
        "subtotal": totals.subtotal,
        "tax_amount": totals.tax_amount,
        "total": totals.total,
        "created_at": invoice.created_at,
        "updated_at": invoice.updated_at,
    }
