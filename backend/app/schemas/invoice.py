"""Invoice schemas."""

from datetime import datetime
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

from backend.app.core.time import ensure_utc
from backend.app.services.computation import CURRENCIES

InvoiceStatus = Literal["draft", "sent", "paid", "overdue", "cancelled"]


class InvoiceItemIn(BaseModel):
    description: str = Field(min_length=1, max_length=500)
    quantity: Decimal = Field(ge=0, max_digits=12, decimal_places=3)
    unit_price: Decimal = Field(ge=0, max_digits=12, decimal_places=2)


class InvoiceItemRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    position: int
    description: str
    quantity: Decimal
    unit_price: Decimal
    line_total: Decimal


class InvoiceBase(BaseModel):
    client_id: int
    number: Optional[str] = Field(default=None, min_length=1, max_length=50)
    issue_date: datetime
    due_date: datetime
    currency: Optional[str] = None
    tax_rate: Decimal = Field(default=Decimal("0"), ge=0, max_digits=6, decimal_places=3)
    notes: Optional[str] = None
    terms: Optional[str] = None
    status: InvoiceStatus = "draft"
    items: List[InvoiceItemIn] = Field(default_factory=list)

    @field_validator("issue_date", "due_date")
    @classmethod
    def assume_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @model_validator(mode="after")
    def check_dates_and_currency(self):
        if self.due_date < self.issue_date:
            raise ValueError("due_date must not be before issue_date")
        if self.currency is not None and self.currency.upper() not in CURRENCIES:
            raise ValueError(f"currency must be one of {', '.join(CURRENCIES)}")
        return self


class InvoiceCreate(InvoiceBase):
    pass


class InvoiceUpdate(BaseModel):
    client_id: Optional[int] = None
    number: Optional[str] = Field(default=None, min_length=1, max_length=50)
    issue_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    currency: Optional[str] = None
    tax_rate: Optional[Decimal] = Field(default=None, ge=0, max_digits=6, decimal_places=3)
    notes: Optional[str] = None
    terms: Optional[str] = None
    status: Optional[InvoiceStatus] = None
    items: Optional[List[InvoiceItemIn]] = None

    @field_validator("issue_date", "due_date")
    @classmethod
    def assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value)

    @model_validator(mode="after")
    def check_currency(self):
        if self.currency is not None and self.currency.upper() not in CURRENCIES:
            raise ValueError(f"currency must be one of {', '.join(CURRENCIES)}")
        return self


class InvoiceRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    owner_id: int
    client_id: int
    number: str
    status: str
    currency: str
    tax_rate: Decimal
    issue_date: datetime
    due_date: datetime
    notes: Optional[str] = None
    terms: Optional[str] = None
    sent_at: Optional[datetime] = None
    items: List[InvoiceItemRead]

    subtotal: Decimal
    tax_amount: Decimal
    total: Decimal

    created_at: datetime
    updated_at: datetime


class InvoiceSendRequest(BaseModel):
    recipient: Optional[EmailStr] = None
    subject: Optional[str] = Field(default=None, max_length=255)
    message: Optional[str] = None
    template_id: Optional[int] = None
    attach_pdf: bool = True


class InvoiceSendResult(BaseModel):
    invoice_id: int
    recipient: EmailStr
    status: str
    sent_at: Optional[datetime] = None
