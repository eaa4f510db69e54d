"""Template seeded for every new account."""

from sqlalchemy.orm import Session

from backend.app.models.template import Template

DEFAULT_TEMPLATE_NAME = "Default Template"

DEFAULT_TEMPLATE_HTML = """
<div class="invoice-template">
  <div class="header">
    <div class="company-info">
      <h1>{{companyName}}</h1>
      <p>{{companyAddress}}</p>
    </div>
    <div class="invoice-info">
      <h2>INVOICE</h2>
      <p><strong>Invoice #:</strong> {{invoiceNumber}}</p>
      <p><strong>Date:</strong> {{issueDate}}</p>
      <p><strong>Due Date:</strong> {{dueDate}}</p>
    </div>
  </div>

  <div class="client-info">
    <h3>Bill To:</h3>
    <p>{{clientName}}</p>
    <p>{{clientAddress}}</p>
  </div>

  <div class="items">
    <table>
      <thead>
        <tr>
          <th>Description</th>
          <th>Qty</th>
          <th>Unit Price</th>
          <th>Total</th>
        </tr>
      </thead>
      <tbody>
        {{#each items}}
        <tr>
          <td>{{description}}</td>
          <td>{{quantity}}</td>
          <td>{{unitPrice}}</td>
          <td>{{total}}</td>
        </tr>
        {{/each}}
      </tbody>
    </table>
  </div>

  <div class="totals">
    <p><strong>Subtotal:</strong> {{subtotal}}</p>
    <p><strong>Tax ({{taxRate}}%):</strong> {{taxAmount}}</p>
    <p><strong>Total:</strong> {{total}}</p>
  </div>

  <div class="footer">
    <p>{{notes}}</p>
    <p>{{terms}}</p>
  </div>
</div>
"""

DEFAULT_TEMPLATE_CSS = """
.invoice-template {
  font-family: Helvetica, Arial, sans-serif;
  padding: 20px;
}

.header {
  margin-bottom: 30px;
  border-bottom: 2px solid #333;
  padding-bottom: 20px;
}

.company-info h1 {
  color: #333;
  margin: 0 0 10px 0;
}

.invoice-info h2 {
  color: #333;
  margin: 0 0 15px 0;
}

.client-info {
  margin-bottom: 30px;
}

.client-info h3 {
  color: #333;
  border-bottom: 1px solid #ccc;
  padding-bottom: 5px;
}

table {
  width: 100%;
  border-collapse: collapse;
  margin-bottom: 20px;
}

th, td {
  padding: 10px;
  text-align: left;
  border-bottom: 1px solid #ddd;
}

th {
  background-color: #f5f5f5;
  font-weight: bold;
}

.totals {
  text-align: right;
  margin-bottom: 30px;
}

.totals p {
  margin: 5px 0;
}

.footer {
  border-top: 1px solid #ccc;
  padding-top: 20px;
  font-size: 14px;
  color: #666;
}
"""


def seed_default_template(db: Session, owner_id: int) -> Template:
    """Add the starter template for a new owner; the caller commits."""
    template = Template(
        owner_id=owner_id,
        name=DEFAULT_TEMPLATE_NAME,
        description="Default invoice template",
        html=DEFAULT_TEMPLATE_HTML,
        css=DEFAULT_TEMPLATE_CSS,
        is_default=True,
        is_active=True,
    )
    db.add(template)
    return template
