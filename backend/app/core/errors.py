"""Typed failures raised by the invoice document pipeline and CRUD helpers.

Every error carries a stable machine-readable ``kind`` and a human-readable
``message``. The API layer turns them into ``{"error": {"kind", "message"}}``
responses with the matching HTTP status.
"""

from fastapi import status


class InvoiceAppError(Exception):
    kind = "internal_error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Internal server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message}


class NotFound(InvoiceAppError):
    """Record is missing or belongs to another owner."""

    kind = "not_found"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class ValidationFailed(InvoiceAppError):
    kind = "validation_failed"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Validation failed"


class TemplateNotFound(NotFound):
    kind = "template_not_found"
    default_message = "Template not found"


class Conflict(InvoiceAppError):
    kind = "conflict"
    status_code = status.HTTP_409_CONFLICT
    default_message = "Conflicting update"


class RenderFailed(InvoiceAppError):
    kind = "render_failed"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_message = "Document could not be rendered"


class RenderTimeout(RenderFailed):
    kind = "render_timeout"
    status_code = status.HTTP_504_GATEWAY_TIMEOUT
    default_message = "Document rendering timed out"


class DeliveryFailed(InvoiceAppError):
    kind = "delivery_failed"
    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = "Email delivery failed"
