"""Invoice routes: CRUD plus preview, PDF download and email delivery.

Rendering routes are plain ``def`` so FastAPI runs them in its worker threadpool
and PDF conversion never blocks the event loop.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Response, status
from fastapi.responses import HTMLResponse
from sqlalchemy.orm import Session, selectinload

from backend.app.core.errors import NotFound, ValidationFailed
from backend.app.core.security import get_current_user
from backend.app.db.session import get_db
from backend.app.dependencies.documents import get_document_service
from backend.app.models.invoice import Invoice
from backend.app.models.user import User
from backend.app.schemas.invoice import (
    InvoiceCreate,
    InvoiceRead,
    InvoiceSendRequest,
    InvoiceSendResult,
    InvoiceUpdate,
)
from backend.app.services.invoice_documents import InvoiceDocumentService
from backend.app.services.invoices import create_invoice, serialize_invoice, update_invoice
from backend.app.services.render import PDF_CONTENT_TYPE, compose_document

router = APIRouter(prefix="/invoices", tags=["invoices"])


def _get_owned_invoice(db: Session, invoice_id: int, owner_id: int) -> Invoice:
    invoice = (
        db.query(Invoice)
        .options(selectinload(Invoice.items))
        .filter(Invoice.id == invoice_id, Invoice.owner_id == owner_id)
        .first()
    )
    if not invoice:
        raise NotFound("Invoice not found")
    return invoice


@router.get("/", response_model=List[InvoiceRead])
async def list_invoices(
    status: str | None = None,
    client_id: int | None = None,
    skip: int = 0,
    limit: int = 50,
    sort_by: str = "issue_date",
    sort_order: str = "desc",
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    query = db.query(Invoice).options(selectinload(Invoice.items)).filter(Invoice.owner_id == current_user.id)
    if status:
        query = query.filter(Invoice.status == status)
    if client_id:
        query = query.filter(Invoice.client_id == client_id)

    supported_sort_fields = {
        "created_at": Invoice.created_at,
        "issue_date": Invoice.issue_date,
        "due_date": Invoice.due_date,
        "number": Invoice.number,
        "status": Invoice.status,
    }
    if sort_by not in supported_sort_fields:
        raise ValidationFailed("Invalid sort_by value")
    sort_order_normalized = (sort_order or "desc").lower()
    if sort_order_normalized not in {"asc", "desc"}:
        raise ValidationFailed("Invalid sort_order value")
    sort_column = supported_sort_fields[sort_by]
    if sort_order_normalized == "asc":
        order_by_clause = [sort_column.asc(), Invoice.id.asc()]
    else:
        order_by_clause = [sort_column.desc(), Invoice.id.desc()]

    invoices = query.order_by(*order_by_clause).offset(skip).limit(limit).all()
    return [serialize_invoice(invoice) for invoice in invoices]


@router.post("/", response_model=InvoiceRead, status_code=status.HTTP_201_CREATED)
async def create_invoice_for_client(
    payload: InvoiceCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    invoice = create_invoice(db, current_user, payload)
    return serialize_invoice(invoice)


@router.get("/{invoice_id}", response_model=InvoiceRead)
async def get_invoice(invoice_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return serialize_invoice(_get_owned_invoice(db, invoice_id, current_user.id))


@router.put("/{invoice_id}", response_model=InvoiceRead)
async def update_existing_invoice(
    invoice_id: int,
    payload: InvoiceUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    invoice = _get_owned_invoice(db, invoice_id, current_user.id)
    return serialize_invoice(update_invoice(db, invoice, payload))


@router.delete("/{invoice_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_invoice(invoice_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    invoice = _get_owned_invoice(db, invoice_id, current_user.id)
    db.delete(invoice)
    db.commit()


@router.get("/{invoice_id}/preview", response_class=HTMLResponse)
def preview_invoice(
    invoice_id: int,
    template_id: Optional[int] = None,
    documents: InvoiceDocumentService = Depends(get_document_service),
    current_user: User = Depends(get_current_user),
):
    rendered = documents.render_html(current_user.id, invoice_id, template_id)
    return HTMLResponse(compose_document(rendered.html, rendered.template.css))


@router.get("/{invoice_id}/pdf")
def download_invoice_pdf(
    invoice_id: int,
    template_id: Optional[int] = None,
    documents: InvoiceDocumentService = Depends(get_document_service),
    current_user: User = Depends(get_current_user),
):
    filename, pdf_bytes = documents.export_pdf(current_user.id, invoice_id, template_id)
    return Response(
        content=pdf_bytes,
        media_type=PDF_CONTENT_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/{invoice_id}/send", response_model=InvoiceSendResult)
def send_invoice(
    invoice_id: int,
    payload: InvoiceSendRequest,
    documents: InvoiceDocumentService = Depends(get_document_service),
    current_user: User = Depends(get_current_user),
):
    invoice, recipient = documents.send_invoice(
        current_user.id,
        invoice_id,
        recipient=payload.recipient,
        subject=payload.subject,
        message=payload.message,
        template_id=payload.template_id,
        attach_pdf=payload.attach_pdf,
    )
    return {"invoice_id": invoice.id, "recipient": recipient, "status": invoice.status, "sent_at": invoice.sent_at}
