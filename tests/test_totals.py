from decimal import Decimal

import pytest

from invoice_ledger.errors import ValidationFailed
from invoice_ledger.models.invoice import Invoice, InvoiceLineItem
from invoice_ledger.services.totals import compute_totals, recalculate_invoice


def line(quantity, price, tax=0, **extra):
    return InvoiceLineItem(item_name="Item", quantity=quantity, unit_price=price, tax_rate=tax, **extra)


def test_single_line_with_tax():
    totals = compute_totals([line(2, 100, 18)], "percentage", 0)
    assert totals.subtotal == Decimal("200")
    assert totals.total_tax == Decimal("36")
    assert totals.discount_amount == Decimal("0")
    assert totals.grand_total == Decimal("236")
    resolved = totals.resolved_lines[0]
    assert resolved.line_total == Decimal("200.00")
    assert resolved.tax_amount == Decimal("36.00")
    assert resolved.item_total_with_tax == Decimal("236.00")


def test_flat_discount_clamped_to_subtotal():
    totals = compute_totals([line(1, 100)], "flat", 500)
    assert totals.discount_amount == Decimal("100")
    assert totals.amount_after_discount == Decimal("0")
    assert totals.grand_total == Decimal("0")


def test_percentage_discount():
    totals = compute_totals([line(2, 100)], "percentage", 10)
    assert totals.discount_amount == Decimal("20")
    assert totals.amount_after_discount == Decimal("180")


def test_discount_does_not_reduce_tax_base():
    totals = compute_totals([line(1, 100, 18)], "flat", 50)
    assert totals.total_tax == Decimal("18")
    assert totals.grand_total == Decimal("68")


def test_negative_discount_is_treated_as_zero():
    totals = compute_totals([line(1, 100)], "flat", -25)
    assert totals.discount_amount == Decimal("0")
    assert totals.amount_after_discount == Decimal("100")


def test_caller_supplied_derived_fields_are_ignored():
    forged = line(3, 10, 5, line_total=Decimal("999"), tax_amount=Decimal("1"), item_total_with_tax=Decimal("0"))
    resolved = compute_totals([forged], "flat", 0).resolved_lines[0]
    assert resolved.line_total == Decimal("30.00")
    assert resolved.tax_amount == Decimal("1.50")
    assert resolved.item_total_with_tax == Decimal("31.50")


def test_rounding_happens_once_at_aggregation():
    # three lines of 0.333 tax each: 0.999 rounds to 1.00, not 3 x 0.33
    lines = [line(1, Decimal("6.66"), 5) for _ in range(3)]
    totals = compute_totals(lines, "flat", 0)
    assert totals.resolved_lines[0].tax_amount == Decimal("0.33")
    assert totals.total_tax == Decimal("1.00")


def test_half_up_rounding():
    totals = compute_totals([line(1, Decimal("0.10"), 5)], "flat", 0)
    assert totals.total_tax == Decimal("0.01")


def test_additive_invariants_hold_on_rounded_values():
    lines = [line(Decimal("1.5"), Decimal("33.33"), 12), line(7, Decimal("0.07"), 28)]
    totals = compute_totals(lines, "percentage", Decimal("12.5"))
    assert totals.amount_after_discount == totals.subtotal - totals.discount_amount
    assert totals.grand_total == totals.amount_after_discount + totals.total_tax


def test_idempotent():
    lines = [line(3, Decimal("19.99"), 12), line(1, 250, 28)]
    first = compute_totals(lines, "percentage", 7)
    second = compute_totals(first.resolved_lines, "percentage", 7)
    assert first == second


def test_empty_invoice():
    totals = compute_totals([], "percentage", 10)
    assert totals.subtotal == Decimal("0")
    assert totals.grand_total == Decimal("0")
    assert totals.resolved_lines == []


def test_unknown_discount_type_rejected():
    with pytest.raises(ValidationFailed):
        compute_totals([line(1, 10)], "coupon", 5)


def test_negative_quantity_rejected():
    bad = InvoiceLineItem.model_construct(item_name="x", quantity=Decimal("-1"), unit_price=Decimal("10"), tax_rate=0)
    with pytest.raises(ValidationFailed):
        compute_totals([bad], "flat", 0)


def test_recalculate_invoice_overwrites_totals():
    invoice = Invoice(
        id="inv-1",
        invoice_number="INV-2024-001",
        bill_date="2024-06-01",
        due_date="2024-06-30",
        client_id="c-1",
        items=[line(2, 100, 18)],
        discount_type="percentage",
        discount_value=10,
        grand_total=Decimal("1"),
    )
    recalculated = recalculate_invoice(invoice)
    assert recalculated.subtotal == Decimal("200")
    assert recalculated.discount_amount_calculated == Decimal("20")
    assert recalculated.total_tax == Decimal("36")
    assert recalculated.grand_total == Decimal("216")
    assert invoice.grand_total == Decimal("1")
