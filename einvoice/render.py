"""Visual A4 PDF for quotes and invoices (ReportLab).

This is the default renderer handed to the delivery and transmission flows;
any callable ``(document, company, client) -> bytes`` can replace it.
"""

from __future__ import annotations

import io
from decimal import Decimal
from typing import Callable, List, Union

from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas

from backend.apps.documents.calculations import calculate_document_totals
from backend.apps.documents.dto import Client, Company, Invoice, Quote

PDF_PRODUCER = "FactuPilot"

Document = Union[Quote, Invoice]
Renderer = Callable[[Document, Company, Client], bytes]

_LEFT = 20 * mm
_RIGHT = A4[0] - 20 * mm
_BOTTOM = 25 * mm
_LINE = 5 * mm


def _money(value: Decimal) -> str:
    return f"{value:,.2f} €".replace(",", " ")


def _party_lines(name: str, address: str | None, zip_code: str | None, city: str | None) -> List[str]:
    lines = [name]
    if address:
        lines.append(address)
    locality = " ".join(part for part in (zip_code, city) if part)
    if locality:
        lines.append(locality)
    return lines


def render_document_pdf(document: Document, company: Company, client: Client) -> bytes:
    is_invoice = isinstance(document, Invoice)
    title = "FACTURE" if is_invoice else "DEVIS"

    buffer = io.BytesIO()
    # invariant=1 keeps creation dates and ids out of the file
    c = canvas.Canvas(buffer, pagesize=A4, invariant=1)
    c.setTitle(f"{title.capitalize()} {document.number}")
    c.setAuthor(company.name)
    c.setCreator(PDF_PRODUCER)
    c.setProducer(PDF_PRODUCER)

    y = A4[1] - 25 * mm
    c.setFont("Helvetica-Bold", 16)
    c.drawString(_LEFT, y, f"{title} {document.number}")
    c.setFont("Helvetica", 10)
    y -= 2 * _LINE
    for line in _party_lines(company.name, company.address, company.zip_code, company.city):
        c.drawString(_LEFT, y, line)
        y -= _LINE
    if company.siret:
        c.drawString(_LEFT, y, f"SIRET : {company.siret}")
        y -= _LINE
    if company.vat_number:
        c.drawString(_LEFT, y, f"TVA : {company.vat_number}")
        y -= _LINE

    client_y = A4[1] - 35 * mm
    for line in _party_lines(client.name, client.address, client.zip_code, client.city):
        c.drawRightString(_RIGHT, client_y, line)
        client_y -= _LINE

    y = min(y, client_y) - _LINE
    c.drawString(_LEFT, y, f"Date : {document.issue_date.strftime('%d/%m/%Y')}")
    y -= _LINE
    if is_invoice:
        c.drawString(_LEFT, y, f"Échéance : {document.due_date.strftime('%d/%m/%Y')}")
    else:
        c.drawString(_LEFT, y, f"Valable jusqu'au : {document.valid_until.strftime('%d/%m/%Y')}")
    y -= _LINE
    if document.subject:
        c.drawString(_LEFT, y, f"Objet : {document.subject}")
        y -= _LINE

    y -= _LINE
    c.setFont("Helvetica-Bold", 9)
    headers = (("Désignation", _LEFT), ("Qté", 110 * mm), ("PU HT", 130 * mm), ("TVA", 150 * mm))
    for label, x in headers:
        c.drawString(x, y, label)
    c.drawRightString(_RIGHT, y, "Total HT")
    c.setFont("Helvetica", 9)
    y -= _LINE

    for item in document.items:
        if y < _BOTTOM + 4 * _LINE:
            c.showPage()
            c.setFont("Helvetica", 9)
            y = A4[1] - 25 * mm
        description = item.description if len(item.description) <= 55 else item.description[:52] + "..."
        if item.discount_percent:
            description = f"{description} (-{item.discount_percent.normalize():f} %)"
        c.drawString(_LEFT, y, description)
        c.drawString(110 * mm, y, f"{item.quantity.normalize():f}")
        c.drawString(130 * mm, y, _money(item.unit_price_ht))
        c.drawString(150 * mm, y, f"{item.vat_rate.normalize():f} %")
        c.drawRightString(_RIGHT, y, _money(item.total_ht))
        y -= _LINE

    totals = calculate_document_totals(document.items, document.discount_percent)
    y -= _LINE
    rows = [("Sous-total HT", totals.subtotal_ht)]
    if totals.discount_amount:
        rows.append((f"Remise {document.discount_percent.normalize():f} %", -totals.discount_amount))
    rows.extend(
        [
            ("Total HT", document.total_ht),
            ("TVA", document.total_vat),
            ("Total TTC", document.total_ttc),
        ]
    )
    for label, amount in rows:
        c.drawString(130 * mm, y, label)
        c.drawRightString(_RIGHT, y, _money(amount))
        y -= _LINE

    if company.is_franchise:
        y -= _LINE
        c.drawString(_LEFT, y, "TVA non applicable, article 293 B du CGI")
    if document.notes:
        y -= _LINE
        c.drawString(_LEFT, y, document.notes[:100])

    c.showPage()
    c.save()
    return buffer.getvalue()


__all__ = ["Document", "Renderer", "render_document_pdf"]
