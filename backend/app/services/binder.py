"""Merge invoice data into an HTML template.

Templates use a small closed grammar:

* ``{{identifier}}`` is replaced by the value of ``identifier``;
* ``{{#each items}} ... {{/each}}`` repeats its body once per line item, the
  body seeing that item's fields first and the invoice-level fields second.

Anything else between ``{{`` and ``}}`` renders as an empty string, as does an
identifier with no value. Substitution is a plain text pass over scanned tokens;
nothing in a template is ever evaluated. Values are HTML-escaped unless the
caller names them in ``raw_fields``.
"""

import html
import logging
import re
from collections import ChainMap
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Dict, FrozenSet, List, Mapping, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from backend.app.core.errors import TemplateNotFound, ValidationFailed
from backend.app.core.time import ensure_utc
from backend.app.services.computation import (
    ComputedTotals,
    format_money,
    format_quantity,
    format_rate,
)

logger = logging.getLogger(__name__)

DATE_FORMAT = "%B %d, %Y"

_TOKEN_RE = re.compile(r"\{\{(.*?)\}\}", re.DOTALL)
_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_BLOCK_OPEN_RE = re.compile(r"^#each\s+([A-Za-z_][A-Za-z0-9_]*)$")
_BLOCK_CLOSE = "/each"


@dataclass
class _Text:
    value: str


@dataclass
class _Var:
    name: str


@dataclass
class _Block:
    collection: str
    children: list = field(default_factory=list)


@dataclass
class RenderContext:
    """Values available to a template for a single render."""

    scalars: Dict[str, object] = field(default_factory=dict)
    items: List[Dict[str, object]] = field(default_factory=list)

    @property
    def collections(self) -> Dict[str, List[Dict[str, object]]]:
        return {"items": self.items}


def parse_template(source: str) -> list:
    nodes: list = []
    current = nodes
    block: Optional[_Block] = None
    position = 0

    for match in _TOKEN_RE.finditer(source or ""):
        if match.start() > position:
            current.append(_Text(source[position:match.start()]))
        position = match.end()
        token = match.group(1).strip()

        opening = _BLOCK_OPEN_RE.match(token)
        if opening:
            if block is not None:
                raise ValidationFailed("Nested {{#each}} blocks are not supported")
            block = _Block(opening.group(1))
            nodes.append(block)
            current = block.children
        elif token == _BLOCK_CLOSE:
            if block is None:
                raise ValidationFailed("Template has {{/each}} without a matching {{#each}}")
            block = None
            current = nodes
        elif _IDENTIFIER_RE.match(token):
            current.append(_Var(token))
        # any other token is dropped and renders as empty text

    if block is not None:
        raise ValidationFailed(f"Template block {{{{#each {block.collection}}}}} is never closed")
    if position < len(source or ""):
        current.append(_Text(source[position:]))
    return nodes


def _stringify(value) -> str:
    if value is None:
        return ""
    return str(value)


def _render_nodes(nodes: list, scope: Mapping[str, object], collections: Mapping, raw_fields: FrozenSet[str]) -> str:
    parts: List[str] = []
    for node in nodes:
        if isinstance(node, _Text):
            parts.append(node.value)
        elif isinstance(node, _Var):
            value = _stringify(scope.get(node.name))
            parts.append(value if node.name in raw_fields else html.escape(value, quote=True))
        elif isinstance(node, _Block):
            for row in collections.get(node.collection) or []:
                parts.append(_render_nodes(node.children, ChainMap(row, scope), collections, raw_fields))
    return "".join(parts)


def render_template(source: str, context: RenderContext, raw_fields: FrozenSet[str] = frozenset()) -> str:
    nodes = parse_template(source)
    return _render_nodes(nodes, context.scalars, context.collections, frozenset(raw_fields))


def format_date(value, tz_name: str | None) -> str:
    """Format a stored date in the owner's timezone; naive datetimes are UTC."""
    if value is None:
        return ""
    if isinstance(value, datetime):
        value = ensure_utc(value)
        try:
            zone = ZoneInfo(tz_name or "UTC")
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning("Unknown timezone %r, formatting dates in UTC", tz_name)
            zone = timezone.utc
        return value.astimezone(zone).strftime(DATE_FORMAT)
    if isinstance(value, date):
        return value.strftime(DATE_FORMAT)
    return _stringify(value)


def join_address(*parts: Optional[str]) -> str:
    address, city, state, zip_code, country = (list(parts) + [None] * 5)[:5]
    city_state = ", ".join(p.strip() for p in (city, state) if p and p.strip())
    if zip_code and zip_code.strip():
        city_state = f"{city_state} {zip_code.strip()}".strip()
    return ", ".join(p.strip() for p in (address, city_state, country) if p and p.strip())


def build_render_context(invoice, client, profile, totals: ComputedTotals) -> RenderContext:
    currency = invoice.currency or profile.currency
    scalars = {
        "companyName": profile.company_name,
        "companyAddress": profile.address,
        "companyEmail": profile.email,
        "companyPhone": profile.phone,
        "companyWebsite": profile.website,
        "companyTaxId": profile.tax_id,
        "companyLogo": profile.logo,
        "clientName": client.name,
        "clientCompany": client.company,
        "clientAddress": join_address(client.address, client.city, client.state, client.zip_code, client.country),
        "clientEmail": client.email,
        "clientPhone": client.phone,
        "invoiceNumber": invoice.number,
        "issueDate": format_date(invoice.issue_date, profile.timezone),
        "dueDate": format_date(invoice.due_date, profile.timezone),
        "status": invoice.status,
        "currency": currency,
        "subtotal": format_money(totals.subtotal, currency),
        "taxRate": format_rate(invoice.tax_rate),
        "taxAmount": format_money(totals.tax_amount, currency),
        "total": format_money(totals.total, currency),
        "notes": invoice.notes,
        "terms": invoice.terms,
    }
    items = []
    for index, (item, line_total) in enumerate(zip(invoice.items, totals.line_totals), start=1):
        formatted_total = format_money(line_total, currency)
        items.append(
            {
                "index": index,
                "description": item.description,
                "quantity": format_quantity(item.quantity),
                "unitPrice": format_money(item.unit_price, currency),
                "total": formatted_total,
                "lineTotal": formatted_total,
            }
        )
    return RenderContext(scalars=scalars, items=items)


def resolve_template(store, owner_id: int, template_id: Optional[int] = None):
    """Pick the explicitly requested template, else the owner's default."""
    if template_id is not None:
        return store.get_template(template_id, owner_id)
    template = store.get_default_template(owner_id)
    if template is None:
        raise TemplateNotFound("No template requested and no default template is set")
    return template


def bind(invoice, template, totals: ComputedTotals, client, profile, raw_fields: FrozenSet[str] = frozenset()) -> str:
    context = build_render_context(invoice, client, profile, totals)
    return render_template(template.html, context, raw_fields)
