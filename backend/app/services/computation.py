"""Invoice arithmetic: line totals, subtotal, tax and grand total.

All money math is done with Decimal and round-half-up at the currency's minor
unit. Each line total is rounded on its own and the subtotal is the sum of those
rounded values, so the printed rows always add up to the printed subtotal.
"""

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable, List, Tuple

from backend.app.core.errors import ValidationFailed

# code -> (symbol, minor units)
CURRENCIES = {
    "USD": ("$", 2),
    "EUR": ("€", 2),
    "GBP": ("£", 2),
    "CAD": ("CA$", 2),
    "AUD": ("A$", 2),
}
DEFAULT_CURRENCY = "USD"


@dataclass(frozen=True)
class ComputedTotals:
    line_totals: List[Decimal] = field(default_factory=list)
    subtotal: Decimal = Decimal("0.00")
    tax_amount: Decimal = Decimal("0.00")
    total: Decimal = Decimal("0.00")


def currency_info(currency: str | None) -> Tuple[str, int]:
    return CURRENCIES.get((currency or DEFAULT_CURRENCY).upper(), CURRENCIES[DEFAULT_CURRENCY])


def to_decimal(value, field_name: str = "value") -> Decimal:
    """Convert user or database input to Decimal without passing through binary floats."""
    if value is None:
        raise ValidationFailed(f"{field_name} is required")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except (InvalidOperation, ValueError) as exc:
            raise ValidationFailed(f"{field_name} must be a number") from exc
    if not result.is_finite():
        raise ValidationFailed(f"{field_name} must be a finite number")
    return result


def round_money(amount: Decimal, minor_units: int = 2) -> Decimal:
    quantum = Decimal(1).scaleb(-minor_units)
    return amount.quantize(quantum, rounding=ROUND_HALF_UP)


def compute_line_total(quantity, unit_price, minor_units: int = 2) -> Decimal:
    qty = to_decimal(quantity, "quantity")
    price = to_decimal(unit_price, "unit_price")
    if qty < 0:
        raise ValidationFailed("quantity must not be negative")
    if price < 0:
        raise ValidationFailed("unit_price must not be negative")
    return round_money(qty * price, minor_units)


def compute_totals(line_items: Iterable, tax_rate, currency: str | None = DEFAULT_CURRENCY) -> ComputedTotals:
    """Derive line totals, subtotal, tax amount and total.

    ``line_items`` is any iterable of objects exposing ``quantity`` and
    ``unit_price`` (ORM rows, schemas or plain namespaces). An empty sequence is a
    valid draft state and yields zeros.
    """
    _, minor_units = currency_info(currency)
    rate = to_decimal(tax_rate if tax_rate is not None else 0, "tax_rate")
    if rate < 0:
        raise ValidationFailed("tax_rate must not be negative")

    line_totals = [compute_line_total(item.quantity, item.unit_price, minor_units) for item in line_items]
    subtotal = round_money(sum(line_totals, Decimal("0")), minor_units)
    tax_amount = round_money(subtotal * rate / Decimal("100"), minor_units)
    return ComputedTotals(
        line_totals=line_totals,
        subtotal=subtotal,
        tax_amount=tax_amount,
        total=subtotal + tax_amount,
    )


def format_money(amount: Decimal, currency: str | None = DEFAULT_CURRENCY) -> str:
    symbol, minor_units = currency_info(currency)
    value = round_money(to_decimal(amount, "amount"), minor_units)
    sign = "-" if value < 0 else ""
    return f"{sign}{symbol}{abs(value):,.{minor_units}f}"


def format_quantity(quantity) -> str:
    value = to_decimal(quantity, "quantity")
    if value == value.to_integral_value():
        return f"{value.to_integral_value():f}"
    return f"{value.normalize():f}"


def format_rate(rate) -> str:
    return format_quantity(rate if rate is not None else 0)
