from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from backend.app.db.base import Base
from backend.app.db.session import engine
from backend.app.main import app
from backend.app.services import invoices as invoice_service
from backend.app.services.mailer import DeliveryResult, get_mailer


@pytest.fixture(autouse=True)
def setup_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)
    app.dependency_overrides.clear()


class RecordingMailer:
    def __init__(self, result=None):
        self.result = result or DeliveryResult(sent=True)
        self.payloads = []

    def send(self, payload):
        self.payloads.append(payload)
        return self.result


def register_and_login(client: TestClient, email: str, password: str) -> str:
    client.post("/auth/register", json={"email": email, "password": password, "company": "Studio LLC"})
    resp = client.post("/auth/login", json={"email": email, "password": password})
    assert resp.status_code == 200
    return resp.json()["access_token"]


def auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def create_client(client: TestClient, token: str, name: str = "Acme Corp", email: str = "billing@acme.com") -> int:
    resp = client.post("/clients/", json={"name": name, "email": email}, headers=auth(token))
    assert resp.status_code == 201
    return resp.json()["id"]


def create_invoice(client: TestClient, token: str, client_id: int, items=None, **overrides) -> dict:
    payload = {
        "client_id": client_id,
        "issue_date": "2030-01-01T00:00:00Z",
        "due_date": "2030-01-31T00:00:00Z",
        "tax_rate": "8.25",
        "items": items
        if items is not None
        else [
            {"description": "Consulting", "quantity": "3", "unit_price": "100.00"},
            {"description": "Travel", "quantity": "1", "unit_price": "49.99"},
        ],
    }
    payload.update(overrides)
    resp = client.post("/invoices/", json=payload, headers=auth(token))
    assert resp.status_code == 201, resp.text
    return resp.json()


def test_create_invoice_computes_totals():
    client = TestClient(app)
    token = register_and_login(client, "inv1@example.com", "secret")
    client_id = create_client(client, token)

    data = create_invoice(client, token, client_id)
    assert data["number"] == "INV-0001"
    assert data["status"] == "draft"
    assert data["currency"] == "USD"
    assert Decimal(data["subtotal"]) == Decimal("349.99")
    assert Decimal(data["tax_amount"]) == Decimal("28.87")
    assert Decimal(data["total"]) == Decimal("378.86")
    assert [Decimal(item["line_total"]) for item in data["items"]] == [Decimal("300.00"), Decimal("49.99")]


def test_invoice_numbers_increment_and_must_be_unique():
    client = TestClient(app)
    token = register_and_login(client, "inv2@example.com", "secret")
    client_id = create_client(client, token)
    create_invoice(client, token, client_id)
    second = create_invoice(client, token, client_id)
    assert second["number"] == "INV-0002"

    resp = client.post(
        "/invoices/",
        json={
            "client_id": client_id,
            "number": "INV-0001",
            "issue_date": "2030-01-01T00:00:00Z",
            "due_date": "2030-01-31T00:00:00Z",
        },
        headers=auth(token),
    )
    assert resp.status_code == 409
    assert resp.json()["error"]["kind"] == "conflict"


def test_due_date_before_issue_date_is_rejected():
    client = TestClient(app)
    token = register_and_login(client, "inv3@example.com", "secret")
    client_id = create_client(client, token)
    resp = client.post(
        "/invoices/",
        json={"client_id": client_id, "issue_date": "2030-02-01T00:00:00Z", "due_date": "2030-01-01T00:00:00Z"},
        headers=auth(token),
    )
    assert resp.status_code == 422
    assert resp.json()["error"]["kind"] == "validation_failed"


def test_update_items_recomputes_totals():
    client = TestClient(app)
    token = register_and_login(client, "inv4@example.com", "secret")
    client_id = create_client(client, token)
    invoice = create_invoice(client, token, client_id)

    resp = client.put(
        f"/invoices/{invoice['id']}",
        json={"items": [{"description": "Design", "quantity": "2", "unit_price": "10.005"}]},
        headers=auth(token),
    )
    assert resp.status_code == 422

    resp = client.put(
        f"/invoices/{invoice['id']}",
        json={"tax_rate": "0", "items": [{"description": "Design", "quantity": "2", "unit_price": "10.50"}]},
        headers=auth(token),
    )
    assert resp.status_code == 200
    data = resp.json()
    assert len(data["items"]) == 1
    assert Decimal(data["total"]) == Decimal("21.00")


def test_list_invoices_filters_by_status():
    client = TestClient(app)
    token = register_and_login(client, "inv5@example.com", "secret")
    client_id = create_client(client, token)
    create_invoice(client, token, client_id)
    create_invoice(client, token, client_id, status="paid")

    resp = client.get("/invoices/?status=paid", headers=auth(token))
    assert resp.status_code == 200
    assert [inv["status"] for inv in resp.json()] == ["paid"]
    assert len(client.get("/invoices/", headers=auth(token)).json()) == 2


def test_preview_escapes_client_values():
    client = TestClient(app)
    token = register_and_login(client, "inv6@example.com", "secret")
    client_id = create_client(client, token, name="<script>alert(1)</script>")
    invoice = create_invoice(client, token, client_id)

    resp = client.get(f"/invoices/{invoice['id']}/preview", headers=auth(token))
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/html")
    assert "<script>alert(1)</script>" not in resp.text
    assert "&lt;script&gt;alert(1)&lt;/script&gt;" in resp.text
    assert "INV-0001" in resp.text
    assert "$378.86" in resp.text


def test_preview_with_explicit_template():
    client = TestClient(app)
    token = register_and_login(client, "inv7@example.com", "secret")
    client_id = create_client(client, token)
    invoice = create_invoice(client, token, client_id)
    template_id = client.post(
        "/templates/",
        json={"name": "Short", "html": "<p>{{invoiceNumber}} due {{dueDate}}</p>"},
        headers=auth(token),
    ).json()["id"]

    resp = client.get(f"/invoices/{invoice['id']}/preview?template_id={template_id}", headers=auth(token))
    assert resp.status_code == 200
    assert "<p>INV-0001 due January 31, 2030</p>" in resp.text

    resp = client.get(f"/invoices/{invoice['id']}/preview?template_id=9999", headers=auth(token))
    assert resp.status_code == 404
    assert resp.json()["error"]["kind"] == "template_not_found"


def test_download_pdf():
    client = TestClient(app)
    token = register_and_login(client, "inv8@example.com", "secret")
    client_id = create_client(client, token)
    invoice = create_invoice(client, token, client_id)

    resp = client.get(f"/invoices/{invoice['id']}/pdf", headers=auth(token))
    assert resp.status_code == 200
    assert resp.headers["content-type"] == "application/pdf"
    assert 'filename="invoice-INV-0001.pdf"' in resp.headers["content-disposition"]
    assert resp.content.startswith(b"%PDF")


def test_empty_invoice_cannot_be_exported():
    client = TestClient(app)
    token = register_and_login(client, "inv9@example.com", "secret")
    client_id = create_client(client, token)
    invoice = create_invoice(client, token, client_id, items=[])
    assert Decimal(invoice["total"]) == Decimal("0")

    resp = client.get(f"/invoices/{invoice['id']}/pdf", headers=auth(token))
    assert resp.status_code == 400
    assert resp.json()["error"]["kind"] == "validation_failed"


def test_other_owners_invoice_is_not_found():
    client = TestClient(app)
    token_a = register_and_login(client, "inv10a@example.com", "secret")
    token_b = register_and_login(client, "inv10b@example.com", "secret")
    invoice = create_invoice(client, token_a, create_client(client, token_a))

    assert client.get(f"/invoices/{invoice['id']}", headers=auth(token_b)).status_code == 404
    resp = client.get(f"/invoices/{invoice['id']}/pdf", headers=auth(token_b))
    assert resp.status_code == 404
    assert resp.json()["error"]["kind"] == "not_found"


def test_invoice_for_other_owners_client_is_rejected():
    client = TestClient(app)
    token_a = register_and_login(client, "inv11a@example.com", "secret")
    token_b = register_and_login(client, "inv11b@example.com", "secret")
    client_id = create_client(client, token_a)
    resp = client.post(
        "/invoices/",
        json={"client_id": client_id, "issue_date": "2030-01-01T00:00:00Z", "due_date": "2030-01-31T00:00:00Z"},
        headers=auth(token_b),
    )
    assert resp.status_code == 404


def test_send_invoice_marks_it_sent():
    mailer = RecordingMailer()
    app.dependency_overrides[get_mailer] = lambda: mailer
    client = TestClient(app)
    token = register_and_login(client, "inv12@example.com", "secret")
    invoice = create_invoice(client, token, create_client(client, token))

    resp = client.post(f"/invoices/{invoice['id']}/send", json={"message": "Thanks!"}, headers=auth(token))
    assert resp.status_code == 200
    data = resp.json()
    assert data["recipient"] == "billing@acme.com"
    assert data["status"] == "sent"
    assert data["sent_at"] is not None

    payload = mailer.payloads[0]
    assert payload.subject == "Invoice INV-0001 from Studio LLC"
    assert payload.attachments[0].filename == "invoice-INV-0001.pdf"
    assert payload.attachments[0].content.startswith(b"%PDF")

    stored = client.get(f"/invoices/{invoice['id']}", headers=auth(token)).json()
    assert stored["status"] == "sent"


def test_failed_delivery_keeps_invoice_draft():
    app.dependency_overrides[get_mailer] = lambda: RecordingMailer(DeliveryResult(sent=False, reason="refused"))
    client = TestClient(app)
    token = register_and_login(client, "inv13@example.com", "secret")
    invoice = create_invoice(client, token, create_client(client, token))

    resp = client.post(f"/invoices/{invoice['id']}/send", json={"attach_pdf": False}, headers=auth(token))
    assert resp.status_code == 502
    assert resp.json()["error"]["kind"] == "delivery_failed"

    stored = client.get(f"/invoices/{invoice['id']}", headers=auth(token)).json()
    assert stored["status"] == "draft"
    assert stored["sent_at"] is None


def test_client_with_invoices_cannot_be_deleted():
    client = TestClient(app)
    token = register_and_login(client, "inv14@example.com", "secret")
    client_id = create_client(client, token)
    invoice = create_invoice(client, token, client_id)

    resp = client.delete(f"/clients/{client_id}", headers=auth(token))
    assert resp.status_code == 409
    assert resp.json()["error"]["kind"] == "conflict"

    assert client.delete(f"/invoices/{invoice['id']}", headers=auth(token)).status_code == 204
    assert client.delete(f"/clients/{client_id}", headers=auth(token)).status_code == 200


def test_payment_reminder():
    mailer = RecordingMailer()
    app.dependency_overrides[get_mailer] = lambda: mailer
    client = TestClient(app)
    token = register_and_login(client, "inv15@example.com", "secret")
    invoice = create_invoice(client, token, create_client(client, token))

    resp = client.post("/email/reminder", json={"invoice_id": invoice["id"]}, headers=auth(token))
    assert resp.status_code == 200
    assert resp.json() == {"recipient": "billing@acme.com", "status": "sent"}
    assert mailer.payloads[0].subject == "Payment reminder: Invoice INV-0001"
    assert "$378.86" in mailer.payloads[0].text_body

    paid = create_invoice(client, token, invoice["client_id"], status="paid")
    resp = client.post("/email/reminder", json={"invoice_id": paid["id"]}, headers=auth(token))
    assert resp.status_code == 400


def test_custom_email():
    mailer = RecordingMailer()
    app.dependency_overrides[get_mailer] = lambda: mailer
    client = TestClient(app)
    token = register_and_login(client, "inv16@example.com", "secret")

    resp = client.post(
        "/email/send",
        json={"to": "someone@example.com", "subject": "Hello", "message": "Line one\nLine <two>"},
        headers=auth(token),
    )
    assert resp.status_code == 200
    payload = mailer.payloads[0]
    assert payload.recipient == "someone@example.com"
    assert "Line &lt;two&gt;" in payload.html_body
    assert payload.attachments == []


def test_custom_email_without_smtp_is_delivery_failure():
    client = TestClient(app)
    token = register_and_login(client, "inv17@example.com", "secret")
    app.dependency_overrides[get_mailer] = lambda: RecordingMailer(DeliveryResult(sent=False, reason="SMTP is not configured"))
    resp = client.post(
        "/email/send",
        json={"to": "someone@example.com", "subject": "Hello", "message": "Hi"},
        headers=auth(token),
    )
    assert resp.status_code == 502


def test_number_taken_between_check_and_insert_is_conflict(monkeypatch):
    client = TestClient(app)
    token = register_and_login(client, "inv18@example.com", "secret")
    client_id = create_client(client, token)
    create_invoice(client, token, client_id)

    # the pre-insert check misses a number another request has just stored
    monkeypatch.setattr(invoice_service, "_number_taken", lambda *args, **kwargs: False)
    resp = client.post(
        "/invoices/",
        json={
            "client_id": client_id,
            "number": "INV-0001",
            "issue_date": "2030-01-01T00:00:00Z",
            "due_date": "2030-01-31T00:00:00Z",
        },
        headers=auth(token),
    )
    assert resp.status_code == 409
    assert resp.json()["error"]["kind"] == "conflict"
    assert len(client.get("/invoices/", headers=auth(token)).json()) == 1


def test_update_can_clear_notes_but_not_required_fields():
    client = TestClient(app)
    token = register_and_login(client, "inv19@example.com", "secret")
    invoice = create_invoice(client, token, create_client(client, token), notes="Thanks", terms="Net 30")

    resp = client.put(
        f"/invoices/{invoice['id']}",
        json={"notes": None, "terms": None, "status": None, "currency": None},
        headers=auth(token),
    )
    assert resp.status_code == 200
    data = resp.json()
    assert data["notes"] is None
    assert data["terms"] is None
    assert data["status"] == "draft"
    assert data["currency"] == "USD"


def test_zero_quantity_and_high_tax_rate_are_accepted():
    client = TestClient(app)
    token = register_and_login(client, "inv20@example.com", "secret")
    data = create_invoice(
        client,
        token,
        create_client(client, token),
        tax_rate="150",
        items=[
            {"description": "Waived setup", "quantity": "0", "unit_price": "50.00"},
            {"description": "Consulting", "quantity": "1", "unit_price": "100.00"},
        ],
    )
    assert Decimal(data["items"][0]["line_total"]) == Decimal("0")
    assert Decimal(data["subtotal"]) == Decimal("100.00")
    assert Decimal(data["tax_amount"]) == Decimal("150.00")
    assert Decimal(data["total"]) == Decimal("250.00")

    resp = client.post(
        "/invoices/",
        json={
            "client_id": data["client_id"],
            "issue_date": "2030-01-01T00:00:00Z",
            "due_date": "2030-01-31T00:00:00Z",
            "items": [{"description": "Refund", "quantity": "-1", "unit_price": "10.00"}],
        },
        headers=auth(token),
    )
    assert resp.status_code == 422
