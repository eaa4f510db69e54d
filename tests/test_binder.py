from datetime import datetime, timezone
from decimal import Decimal
from types import SimpleNamespace

import pytest

from backend.app.core.errors import TemplateNotFound, ValidationFailed
from backend.app.services.binder import (
    RenderContext,
    bind,
    build_render_context,
    format_date,
    render_template,
    resolve_template,
)
from backend.app.services.computation import compute_totals
from backend.app.services.document_store import OwnerProfile


def make_invoice(items=None, **overrides):
    data = dict(
        id=1,
        number="INV-0001",
        status="draft",
        currency="USD",
        tax_rate=Decimal("8.25"),
        issue_date=datetime(2030, 1, 15, 12, 0, tzinfo=timezone.utc),
        due_date=datetime(2030, 2, 14, 12, 0, tzinfo=timezone.utc),
        notes="Thanks for your business",
        terms="Net 30",
        items=items
        if items is not None
        else [
            SimpleNamespace(description="Consulting", quantity=Decimal("3"), unit_price=Decimal("100.00")),
            SimpleNamespace(description="Travel", quantity=Decimal("1"), unit_price=Decimal("49.99")),
        ],
    )
    data.update(overrides)
    return SimpleNamespace(**data)


def make_client(**overrides):
    data = dict(
        name="Acme Corp",
        company=None,
        email="billing@acme.com",
        phone=None,
        address="1 Main St",
        city="Springfield",
        state="IL",
        zip_code="62701",
        country="USA",
    )
    data.update(overrides)
    return SimpleNamespace(**data)


PROFILE = OwnerProfile(company_name="Studio LLC", address="9 Elm St", timezone="UTC")


def bind_with(html, invoice=None, client=None, profile=PROFILE, **kwargs):
    invoice = invoice or make_invoice()
    totals = compute_totals(invoice.items, invoice.tax_rate, invoice.currency)
    return bind(invoice, SimpleNamespace(html=html, css=""), totals, client or make_client(), profile, **kwargs)


def test_scalar_placeholders_are_substituted():
    html = bind_with("<h1>{{companyName}}</h1><p>{{invoiceNumber}} for {{clientName}}</p><p>{{total}}</p>")
    assert html == "<h1>Studio LLC</h1><p>INV-0001 for Acme Corp</p><p>$378.86</p>"


def test_each_block_renders_rows_in_order_with_own_fields():
    html = bind_with("{{#each items}}{{description}}: {{total}};{{/each}}")
    assert html == "Consulting: $300.00;Travel: $49.99;"


def test_each_block_rows_see_outer_scalars():
    html = bind_with("{{#each items}}[{{index}} {{invoiceNumber}} {{unitPrice}}]{{/each}} {{total}}")
    assert html == "[1 INV-0001 $100.00][2 INV-0001 $49.99] $378.86"


def test_unknown_placeholders_render_empty():
    html = bind_with("a{{doesNotExist}}b{{ spaced }}c{{> partial}}d{{foo bar}}e")
    assert html == "abcde"
    assert "{{" not in html


def test_unknown_collection_renders_nothing():
    assert bind_with("x{{#each payments}}{{amount}}{{/each}}y") == "xy"


def test_client_name_markup_is_escaped():
    html = bind_with("<p>{{clientName}}</p>", client=make_client(name="<script>alert('x')</script>"))
    assert "<script>" not in html
    assert "&lt;script&gt;alert(&#x27;x&#x27;)&lt;/script&gt;" in html


def test_line_item_description_is_escaped():
    invoice = make_invoice(items=[SimpleNamespace(description='<b>"bold"</b>', quantity=1, unit_price=1)])
    assert bind_with("{{#each items}}{{description}}{{/each}}", invoice=invoice) == "&lt;b&gt;&quot;bold&quot;&lt;/b&gt;"


def test_raw_fields_are_not_escaped():
    invoice = make_invoice(notes="<em>Paid by wire</em>")
    assert bind_with("{{notes}}", invoice=invoice, raw_fields=frozenset({"notes"})) == "<em>Paid by wire</em>"


def test_binding_is_idempotent():
    template = "{{companyName}}{{#each items}}<tr><td>{{description}}</td></tr>{{/each}}{{dueDate}}"
    assert bind_with(template) == bind_with(template)


def test_template_syntax_is_not_evaluated():
    html = bind_with("{{__class__}}{{ 7*7 }}{{ clientName.upper() }}")
    assert html == ""


@pytest.mark.parametrize(
    "source",
    [
        "{{#each items}}never closed",
        "stray {{/each}}",
        "{{#each items}}{{#each items}}{{/each}}{{/each}}",
    ],
)
def test_malformed_blocks_are_rejected(source):
    with pytest.raises(ValidationFailed):
        render_template(source, RenderContext())


def test_empty_items_render_no_rows():
    invoice = make_invoice(items=[])
    assert bind_with("<tbody>{{#each items}}<tr></tr>{{/each}}</tbody>{{subtotal}}", invoice=invoice) == "<tbody></tbody>$0.00"


def test_dates_are_formatted_in_owner_timezone():
    late_evening = datetime(2030, 1, 15, 3, 30, tzinfo=timezone.utc)
    assert format_date(late_evening, "UTC") == "January 15, 2030"
    assert format_date(late_evening, "America/Chicago") == "January 14, 2030"


def test_naive_datetimes_are_treated_as_utc_and_bad_timezone_falls_back():
    assert format_date(datetime(2030, 1, 15, 3, 30), "America/Chicago") == "January 14, 2030"
    assert format_date(datetime(2030, 1, 15, 3, 30), "Not/AZone") == "January 15, 2030"


def test_render_context_contains_formatted_totals_and_client_address():
    invoice = make_invoice()
    totals = compute_totals(invoice.items, invoice.tax_rate, invoice.currency)
    context = build_render_context(invoice, make_client(), PROFILE, totals)
    assert context.scalars["subtotal"] == "$349.99"
    assert context.scalars["taxAmount"] == "$28.87"
    assert context.scalars["taxRate"] == "8.25"
    assert context.scalars["clientAddress"] == "1 Main St, Springfield, IL 62701, USA"
    assert [row["quantity"] for row in context.items] == ["3", "1"]


class _Store:
    def __init__(self, templates, default=None):
        self.templates = templates
        self.default = default

    def get_template(self, template_id, owner_id):
        try:
            return self.templates[template_id]
        except KeyError:
            raise TemplateNotFound()

    def get_default_template(self, owner_id):
        return self.default


def test_resolve_template_prefers_explicit_id():
    explicit = SimpleNamespace(id=2)
    default = SimpleNamespace(id=1)
    store = _Store({2: explicit}, default=default)
    assert resolve_template(store, 1, 2) is explicit
    assert resolve_template(store, 1) is default


def test_resolve_template_without_default_fails():
    with pytest.raises(TemplateNotFound):
        resolve_template(_Store({}), 1)
    with pytest.raises(TemplateNotFound):
        resolve_template(_Store({}, default=SimpleNamespace(id=1)), 1, 99)
