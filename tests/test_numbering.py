import uuid

from invoice_ledger.services.numbering import (
    format_invoice_number,
    new_id,
    next_invoice_number,
    provisional_invoice_number,
)


def test_new_id_is_unique_uuid():
    ids = {new_id() for _ in range(100)}
    assert len(ids) == 100
    uuid.UUID(next(iter(ids)))


def test_format_pads_to_three_digits():
    assert format_invoice_number(2024, 7) == "INV-2024-007"
    assert format_invoice_number(2024, 1234) == "INV-2024-1234"


def test_next_number_consumes_one_suffix():
    number, suffix = next_invoice_number(2024, 6)
    assert number == "INV-2024-007"
    assert suffix == 7


def test_provisional_number_matches_next_without_consuming():
    assert provisional_invoice_number(2025, 41) == "INV-2025-042"
    assert provisional_invoice_number(2025, 41) == next_invoice_number(2025, 41)[0]
