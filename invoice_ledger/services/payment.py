# invoice_ledger/services/payment.py
from decimal import Decimal
from urllib.parse import quote

from invoice_ledger.services.totals import to_cents


def upi_payment_uri(upi_id: str, company_name: str, amount: Decimal, invoice_number: str) -> str:
    """Payload for the payment QR code shown on an invoice."""
    payee = quote(company_name, safe="")
    note = quote(f"Invoice-{invoice_number}", safe="")
    return f"upi://pay?pa={upi_id}&pn={payee}&am={to_cents(Decimal(amount))}&cu=INR&tn={note}"
