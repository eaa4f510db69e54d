"""Transactional email endpoints: free-form messages and payment reminders."""

from fastapi import APIRouter, Depends

from backend.app.core.errors import DeliveryFailed
from backend.app.core.security import get_current_user
from backend.app.dependencies.documents import get_document_service
from backend.app.models.user import User
from backend.app.schemas.email import CustomEmailRequest, EmailSendResult, ReminderRequest
from backend.app.services.invoice_documents import InvoiceDocumentService
from backend.app.services.mailer import SmtpMailer, get_mailer
from backend.app.services.render import to_email_payload

router = APIRouter(prefix="/email", tags=["email"])


@router.post("/send", response_model=EmailSendResult)
def send_custom_email(
    payload: CustomEmailRequest,
    mailer: SmtpMailer = Depends(get_mailer),
    current_user: User = Depends(get_current_user),
):
    email_payload = to_email_payload("", None, recipient=payload.to, subject=payload.subject, body_note=payload.message)
    result = mailer.send(email_payload)
    if not result.sent:
        raise DeliveryFailed(f"Email delivery failed: {result.reason or 'unknown reason'}")
    return {"recipient": payload.to, "status": "sent"}


@router.post("/reminder", response_model=EmailSendResult)
def send_payment_reminder(
    payload: ReminderRequest,
    documents: InvoiceDocumentService = Depends(get_document_service),
    current_user: User = Depends(get_current_user),
):
    recipient = documents.send_reminder(current_user.id, payload.invoice_id, payload.message)
    return {"recipient": recipient, "status": "sent"}
