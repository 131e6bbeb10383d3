# invoice_ledger/services/numbering.py
import uuid
from typing import Tuple

INVOICE_PREFIX = "INV"


def new_id() -> str:
    return str(uuid.uuid4())


def format_invoice_number(year: int, suffix: int) -> str:
    return f"{INVOICE_PREFIX}-{year}-{suffix:03d}"


def next_invoice_number(current_year: int, last_suffix: int) -> Tuple[str, int]:
    """Return the next permanent number and the suffix it consumes."""
    suffix = last_suffix + 1
    return format_invoice_number(current_year, suffix), suffix


def provisional_invoice_number(current_year: int, last_suffix: int) -> str:
    # what a draft shows; nothing is consumed until finalization
    return format_invoice_number(current_year, last_suffix + 1)
