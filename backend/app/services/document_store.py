"""Owner-scoped record access used by the invoice document pipeline.

The pipeline never talks to the database directly; it is handed a store object
with the methods below. ``SqlDocumentStore`` is the SQLAlchemy implementation;
tests pass an in-memory one with the same methods.
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session, selectinload

from backend.app.core.errors import NotFound, TemplateNotFound
from backend.app.core.time import utc_now
from backend.app.crud.crud_template import template_crud
from backend.app.models.client import Client
from backend.app.models.invoice import Invoice
from backend.app.models.template import Template
from backend.app.models.user import User
from backend.app.services.binder import join_address


@dataclass(frozen=True)
class OwnerProfile:
    company_name: str
    address: str
    email: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    tax_id: Optional[str] = None
    logo: Optional[str] = None
    currency: str = "USD"
    timezone: str = "UTC"


def profile_from_user(user: User) -> OwnerProfile:
    full_name = " ".join(p for p in (user.first_name, user.last_name) if p)
    return OwnerProfile(
        company_name=user.company or full_name or user.email,
        address=join_address(user.address, user.city, user.state, user.zip_code, user.country),
        email=user.email,
        phone=user.phone,
        website=user.website,
        tax_id=user.tax_id,
        logo=user.logo,
        currency=user.currency or "USD",
        timezone=user.timezone or "UTC",
    )


class SqlDocumentStore:
    def __init__(self, db: Session):
        self.db = db

    def load_invoice_with_line_items(self, invoice_id: int, owner_id: int) -> Invoice:
        invoice = (
            self.db.query(Invoice)
            .options(selectinload(Invoice.items))
            .filter(Invoice.id == invoice_id, Invoice.owner_id == owner_id)
            .first()
        )
        if invoice is None:
            raise NotFound("Invoice not found")
        return invoice

    def get_client(self, client_id: int, owner_id: int) -> Client:
        client = self.db.query(Client).filter(Client.id == client_id, Client.owner_id == owner_id).first()
        if client is None:
            raise NotFound("Client not found")
        return client

    def get_template(self, template_id: int, owner_id: int) -> Template:
        template = template_crud.get(self.db, template_id=template_id, owner_id=owner_id)
        if template is None:
            raise TemplateNotFound()
        return template

    def get_default_template(self, owner_id: int) -> Optional[Template]:
        return template_crud.get_default(self.db, owner_id=owner_id)

    def get_owner_profile(self, owner_id: int) -> OwnerProfile:
        user = self.db.query(User).filter(User.id == owner_id).first()
        if user is None:
            raise NotFound("Owner not found")
        return profile_from_user(user)

    def mark_invoice_sent(self, invoice: Invoice) -> Invoice:
        # Re-sending a paid or cancelled invoice keeps its status
        if invoice.status in ("draft", "sent"):
            invoice.status = "sent"
        invoice.sent_at = utc_now()
        self.db.commit()
        self.db.refresh(invoice)
        return invoice
