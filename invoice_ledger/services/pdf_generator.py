# invoice_ledger/services/pdf_generator.py
import re
from io import BytesIO
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import cm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from invoice_ledger.models.invoice import DiscountType, Invoice, InvoiceStatus
from invoice_ledger.services.payment import upi_payment_uri

CURRENCY = "INR"


def sanitize_filename(name: str) -> str:
    cleaned = re.sub(r"[^a-z0-9_\-\s.]", "", name, flags=re.IGNORECASE)
    return re.sub(r"\s+", "_", cleaned)[:50]


def display_number(invoice: Invoice) -> str:
    # drafts carry no number until finalized unless one was typed in
    return invoice.invoice_number or "DRAFT"


def invoice_filename(invoice: Invoice) -> str:
    client_name = invoice.client_details.name if invoice.client_details else ""
    return f"Invoice-{sanitize_filename(display_number(invoice))}-{sanitize_filename(client_name)}.pdf"


def _money(value) -> str:
    return f"{value:.2f} {CURRENCY}"


def generate_pdf(invoice: Invoice) -> bytes:
    """Render a finalized or draft invoice from its own snapshots only."""
    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        rightMargin=2*cm, leftMargin=2*cm,
        topMargin=2*cm, bottomMargin=2*cm,
        title=f"Invoice {display_number(invoice)}",
    )
    styles = getSampleStyleSheet()
    story = []
    company = invoice.company_profile_snapshot
    client = invoice.client_details

    # Header
    title = "DRAFT INVOICE" if invoice.status == InvoiceStatus.DRAFT else "TAX INVOICE"
    story.append(Paragraph(f"<b>{title} {escape(display_number(invoice))}</b>",
                           ParagraphStyle("title", fontSize=18, spaceAfter=6)))
    story.append(Paragraph(f"Bill date: {invoice.bill_date.isoformat()}", styles["Normal"]))
    story.append(Paragraph(f"Due date: {invoice.due_date.isoformat()}", styles["Normal"]))
    story.append(Paragraph(f"Status: {invoice.status.value}", styles["Normal"]))
    story.append(Spacer(1, 0.5*cm))

    # Seller / buyer
    seller = ["FROM"]
    buyer = ["BILL TO"]
    if company:
        seller += [company.company_name, company.address, f"Phone: {company.contact_number}",
                   company.email, f"Tax ID: {company.tax_id}"]
        if company.website:
            seller.append(company.website)
    if client:
        buyer += [client.name, client.billing_address, f"Phone: {client.phone_number}", client.email]
        if client.tax_id:
            buyer.append(f"Tax ID: {client.tax_id}")
        if client.shipping_address:
            buyer.append(f"Ship to: {client.shipping_address}")
    rows = max(len(seller), len(buyer))
    seller += [""] * (rows - len(seller))
    buyer += [""] * (rows - len(buyer))
    parties_table = Table([list(pair) for pair in zip(seller, buyer)], colWidths=[8.5*cm, 8.5*cm])
    parties_table.setStyle(TableStyle([
        ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#2c3e50")),
        ("TEXTCOLOR",  (0, 0), (-1, 0), colors.white),
        ("FONTNAME",   (0, 0), (-1, 0), "Helvetica-Bold"),
        ("FONTSIZE",   (0, 0), (-1, 0), 10),
        ("GRID",       (0, 0), (-1, -1), 0.5, colors.grey),
        ("VALIGN",     (0, 0), (-1, -1), "TOP"),
        ("PADDING",    (0, 0), (-1, -1), 6),
    ]))
    story.append(parties_table)
    story.append(Spacer(1, 0.8*cm))

    # Line items
    lines_data = [["#", "Item", "Qty", "Unit price", "Tax %", "Tax", "Total"]]
    for index, line in enumerate(invoice.items, start=1):
        lines_data.append([
            str(index),
            line.item_name,
            str(line.quantity),
            f"{line.unit_price:.2f}",
            f"{int(line.tax_rate)}%",
            f"{line.tax_amount:.2f}",
            f"{line.item_total_with_tax:.2f}",
        ])

    lines_table = Table(
        lines_data,
        colWidths=[0.7*cm, 6*cm, 1.5*cm, 2.3*cm, 1.5*cm, 2.2*cm, 2.8*cm]
    )
    lines_table.setStyle(TableStyle([
        ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#3498db")),
        ("TEXTCOLOR",  (0, 0), (-1, 0), colors.white),
        ("FONTNAME",   (0, 0), (-1, 0), "Helvetica-Bold"),
        ("FONTSIZE",   (0, 0), (-1, -1), 9),
        ("GRID",       (0, 0), (-1, -1), 0.5, colors.lightgrey),
        ("ALIGN",      (2, 1), (-1, -1), "RIGHT"),
        ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, colors.HexColor("#ecf0f1")]),
        ("PADDING",    (0, 0), (-1, -1), 5),
    ]))
    story.append(lines_table)
    story.append(Spacer(1, 0.5*cm))

    # Totals
    if invoice.discount_type == DiscountType.PERCENTAGE:
        discount_label = f"Discount ({invoice.discount_value}%) :"
    else:
        discount_label = "Discount :"
    totals_data = [
        ["Subtotal :", _money(invoice.subtotal)],
        [discount_label, f"- {_money(invoice.discount_amount_calculated)}"],
        ["Amount after discount :", _money(invoice.amount_after_discount)],
        ["Total tax :", _money(invoice.total_tax)],
        ["Grand total :", _money(invoice.grand_total)],
    ]
    totals_table = Table(totals_data, colWidths=[13*cm, 4*cm], hAlign="RIGHT")
    totals_table.setStyle(TableStyle([
        ("ALIGN",      (1, 0), (1, -1), "RIGHT"),
        ("FONTNAME",   (0, 4), (-1, 4), "Helvetica-Bold"),
        ("FONTSIZE",   (0, 4), (-1, 4), 11),
        ("BACKGROUND", (0, 4), (-1, 4), colors.HexColor("#2c3e50")),
        ("TEXTCOLOR",  (0, 4), (-1, 4), colors.white),
        ("LINEABOVE",  (0, 4), (-1, 4), 1, colors.black),
        ("PADDING",    (0, 0), (-1, -1), 5),
    ]))
    story.append(totals_table)

    # Footer
    story.append(Spacer(1, 1*cm))
    if invoice.terms_and_conditions:
        story.append(Paragraph(f"<b>Terms and conditions:</b> {escape(invoice.terms_and_conditions)}",
                               styles["Normal"]))
    if invoice.notes:
        story.append(Paragraph(f"<b>Notes:</b> {escape(invoice.notes)}", styles["Normal"]))
    if company and company.upi_id:
        uri = upi_payment_uri(company.upi_id, company.company_name, invoice.grand_total, display_number(invoice))
        story.append(Paragraph(f"<b>Pay by UPI:</b> {escape(company.upi_id)}", styles["Normal"]))
        story.append(Paragraph(escape(uri), styles["Code"]))

    doc.build(story)
    return buffer.getvalue()
