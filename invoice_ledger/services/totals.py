# invoice_ledger/services/totals.py
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable, List

from pydantic import BaseModel

from invoice_ledger.errors import ValidationFailed
from invoice_ledger.models.invoice import DiscountType, Invoice, InvoiceLineItem

CENT = Decimal("0.01")
ZERO = Decimal("0")
HUNDRED = Decimal("100")


def to_cents(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


class InvoiceTotals(BaseModel):
    subtotal: Decimal
    discount_amount: Decimal
    amount_after_discount: Decimal
    total_tax: Decimal
    grand_total: Decimal
    resolved_lines: List[InvoiceLineItem]


def _check_line(index: int, line: InvoiceLineItem) -> None:
    if line.quantity < 0:
        raise ValidationFailed(f"line {index}: quantity must not be negative ({line.quantity})")
    if line.unit_price < 0:
        raise ValidationFailed(f"line {index}: unit price must not be negative ({line.unit_price})")


def compute_totals(lines: Iterable[InvoiceLineItem], discount_type, discount_value) -> InvoiceTotals:
    """
    Price every line and aggregate the invoice totals.

    Line amounts are kept exact while summing; each money field is rounded
    half-up to cents once, at the point it is stored. Caller-supplied
    line_total / tax_amount / item_total_with_tax are ignored.
    """
    try:
        discount_type = DiscountType(discount_type)
    except ValueError:
        raise ValidationFailed(f"unknown discount type: {discount_type!r}") from None
    try:
        discount_value = Decimal(str(discount_value))
    except InvalidOperation:
        raise ValidationFailed(f"discount value is not a number: {discount_value!r}") from None
    if not discount_value.is_finite():
        raise ValidationFailed(f"discount value is not a number: {discount_value!r}")
    discount_value = max(discount_value, ZERO)

    resolved = []
    exact_subtotal = ZERO
    exact_tax = ZERO
    for index, line in enumerate(lines):
        _check_line(index, line)
        line_total = line.quantity * line.unit_price
        tax_amount = line_total * Decimal(int(line.tax_rate)) / HUNDRED
        exact_subtotal += line_total
        exact_tax += tax_amount
        resolved.append(line.model_copy(update={
            "line_total": to_cents(line_total),
            "tax_amount": to_cents(tax_amount),
            "item_total_with_tax": to_cents(line_total + tax_amount),
        }))

    if discount_type == DiscountType.PERCENTAGE:
        raw_discount = exact_subtotal * discount_value / HUNDRED
    else:
        raw_discount = discount_value

    subtotal = to_cents(exact_subtotal)
    discount_amount = to_cents(min(raw_discount, exact_subtotal))
    amount_after_discount = subtotal - discount_amount
    total_tax = to_cents(exact_tax)

    return InvoiceTotals(
        subtotal=subtotal,
        discount_amount=discount_amount,
        amount_after_discount=amount_after_discount,
        total_tax=total_tax,
        grand_total=amount_after_discount + total_tax,
        resolved_lines=resolved,
    )


def recalculate_invoice(invoice: Invoice) -> Invoice:
    totals = compute_totals(invoice.items, invoice.discount_type, invoice.discount_value)
    return invoice.model_copy(update={
        "items": tuple(totals.resolved_lines),
        "subtotal": totals.subtotal,
        "discount_amount_calculated": totals.discount_amount,
        "amount_after_discount": totals.amount_after_discount,
        "total_tax": totals.total_tax,
        "grand_total": totals.grand_total,
    })
