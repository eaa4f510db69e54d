"""Dependencies that assemble the invoice document pipeline per request."""

from fastapi import Depends
from sqlalchemy.orm import Session

from backend.app.db.session import get_db
from backend.app.services.document_store import SqlDocumentStore
from backend.app.services.invoice_documents import InvoiceDocumentService
from backend.app.services.mailer import SmtpMailer, get_mailer


def get_document_service(
    db: Session = Depends(get_db),
    mailer: SmtpMailer = Depends(get_mailer),
) -> InvoiceDocumentService:
    return InvoiceDocumentService(SqlDocumentStore(db), mailer=mailer)
