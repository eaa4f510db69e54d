"""Email request schemas."""

from typing import Optional

from pydantic import BaseModel, EmailStr, Field


class CustomEmailRequest(BaseModel):
    to: EmailStr
    subject: str = Field(min_length=1, max_length=255)
    message: str = Field(min_length=1)


class ReminderRequest(BaseModel):
    invoice_id: int
    message: Optional[str] = None


class EmailSendResult(BaseModel):
    recipient: EmailStr
    status: str
