"""Turn bound invoice HTML into distributable artifacts: PDF bytes or an email payload.

PDF conversion runs on a fixed pool of ``PDF_RENDER_WORKERS`` threads. A thread
cannot be interrupted, so a conversion that times out keeps its worker until it
finishes on its own. A slot is only handed out while a worker is actually free;
when every slot is held, new requests wait at most the render timeout for one and
then fail with ``RenderTimeout`` instead of queueing behind the stuck renders.
"""

import html
import io
import logging
import re
import threading
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from typing import List, Optional

from reportlab import rl_config
from xhtml2pdf import pisa

from backend.app.core.errors import RenderFailed, RenderTimeout
from backend.app.core.settings import get_settings

logger = logging.getLogger(__name__)

PDF_CONTENT_TYPE = "application/pdf"

# Same input, same layout: no timestamps or random document ids in the output
rl_config.invariant = 1

_workers = get_settings().pdf_render_workers
_executor = ThreadPoolExecutor(max_workers=_workers, thread_name_prefix="pdf-render")
_slots = threading.BoundedSemaphore(_workers)


@dataclass(frozen=True)
class Attachment:
    filename: str
    content_type: str
    content: bytes


@dataclass
class EmailPayload:
    recipient: str
    subject: str
    html_body: str
    text_body: str
    attachments: List[Attachment] = field(default_factory=list)


def compose_document(html_body: str, css: Optional[str]) -> str:
    """Wrap a bound template body and its stylesheet into one HTML document."""
    return (
        "<!DOCTYPE html>\n"
        "<html>\n<head>\n"
        '<meta charset="utf-8">\n'
        f"<style>\n{css or ''}\n</style>\n"
        "</head>\n<body>\n"
        f"{html_body}\n"
        "</body>\n</html>\n"
    )


def _convert(document: str) -> bytes:
    output = io.BytesIO()
    result = pisa.CreatePDF(document, dest=output, encoding="utf-8")
    if result.err:
        raise RenderFailed("Document could not be laid out as PDF")
    return output.getvalue()


def to_pdf(html_body: str, css: Optional[str], timeout: Optional[float] = None) -> bytes:
    settings = get_settings()
    document = compose_document(html_body, css)
    if len(document.encode("utf-8")) > settings.pdf_max_document_bytes:
        raise RenderFailed("Document is too large to render")

    limit = timeout if timeout is not None else settings.pdf_render_timeout_seconds
    slots = _slots
    if not slots.acquire(timeout=limit):
        logger.warning("No PDF render worker free within %.1f seconds", limit)
        raise RenderTimeout("All PDF render workers are busy")
    future = _executor.submit(_convert, document)
    # released when the conversion really ends, even after a timeout
    future.add_done_callback(lambda _: slots.release())
    try:
        pdf_bytes = future.result(timeout=limit)
    except FutureTimeoutError:
        future.cancel()
        logger.warning("PDF rendering exceeded %.1f seconds", limit)
        raise RenderTimeout()
    except RenderFailed:
        raise
    except Exception as exc:
        logger.exception("PDF rendering failed")
        raise RenderFailed() from exc

    if not pdf_bytes:
        raise RenderFailed("PDF renderer produced no output")
    return pdf_bytes


_TAG_RE = re.compile(r"<[^>]+>")
_BLOCK_END_RE = re.compile(r"</(p|div|tr|h[1-6]|li)>|<br\s*/?>", re.IGNORECASE)
_STYLE_RE = re.compile(r"<(style|script)[^>]*>.*?</\1>", re.IGNORECASE | re.DOTALL)


def html_to_text(document: str) -> str:
    """Plain-text fallback for mail clients that do not show HTML."""
    text = _STYLE_RE.sub("", document)
    text = _BLOCK_END_RE.sub("\n", text)
    text = html.unescape(_TAG_RE.sub("", text))
    lines = [" ".join(line.split()) for line in text.splitlines()]
    return "\n".join(line for line in lines if line)


def to_email_payload(
    html_body: str,
    css: Optional[str],
    recipient: str,
    subject: str,
    body_note: Optional[str] = None,
    attachment: Optional[bytes] = None,
    attachment_name: Optional[str] = None,
) -> EmailPayload:
    body = html_body
    if body_note:
        note = html.escape(body_note).replace("\n", "<br>")
        body = f'<div class="email-note"><p>{note}</p></div>\n{html_body}'
    document = compose_document(body, css)

    attachments = []
    if attachment is not None:
        attachments.append(Attachment(attachment_name or "invoice.pdf", PDF_CONTENT_TYPE, attachment))
    return EmailPayload(
        recipient=recipient,
        subject=subject,
        html_body=document,
        text_body=html_to_text(document),
        attachments=attachments,
    )
