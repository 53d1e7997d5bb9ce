"""Factur-X BASIC generator (EN16931 CII, lxml + pikepdf).

The XML is built element by element in the order the CII schema expects
(lines first, then agreement, delivery and settlement). Amounts come from the
persisted invoice; per-rate breakdowns are rebuilt with the monetary engine
and must reconcile with the stored totals, otherwise the build is refused.

Output is a pure function of the invoice snapshot: no timestamps or generator
versions end up in the XML, so the same invoice always yields the same bytes.
"""

from __future__ import annotations

import io
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Dict, Optional

import pikepdf
from lxml import etree

from backend.apps.documents.calculations import (
    ZERO,
    calculate_document_totals,
    calculate_line_totals,
    round2,
    split_discount_by_rate,
)
from backend.apps.documents.dto import Client, Company, Invoice, LineItem, Unit
from backend.core.config import settings

FACTURX_BASIC_GUIDELINE = "urn:cen.eu:en16931:2017#compliant#factur-x.eu:1p0:basic"
FACTURX_FILENAME = "factur-x.xml"
FACTURX_NAMESPACE = "urn:factur-x:pdfa:CrossIndustryDocument:invoice:1p0#"
GENERATOR_VERSION = "facturx-basic-1.0.0"
PDF_PRODUCER = "FactuPilot Factur-X Generator"

INVOICE_TYPE_CODE = "380"
FRANCHISE_TAX_REASON = "TVA non applicable, article 293 B du CGI"
DISCOUNT_REASON_CODE = "95"

# SIRET-based identifiers (ISO 6523 ICD)
SIRET_GLOBAL_SCHEME = "0225"
SIRET_LEGAL_SCHEME = "0002"

NSMAP = {
    "rsm": "urn:un:unece:uncefact:data:standard:CrossIndustryInvoice:100",
    "qdt": "urn:un:unece:uncefact:data:standard:QualifiedDataType:100",
    "ram": "urn:un:unece:uncefact:data:standard:ReusableAggregateBusinessInformationEntity:100",
    "udt": "urn:un:unece:uncefact:data:standard:UnqualifiedDataType:100",
}

# UN/CEFACT Recommendation 20
UNIT_CODES: Dict[Unit, str] = {
    Unit.HOUR: "HUR",
    Unit.DAY: "DAY",
    Unit.UNIT: "C62",
    Unit.FIXED: "C62",
    Unit.SQM: "MTK",
    Unit.LM: "MTR",
    Unit.KG: "KGM",
    Unit.LOT: "C62",
}

# UNTDID 4461
PAYMENT_MEANS_CODES = {
    "virement": "30",
    "carte": "48",
    "chèque": "20",
    "espèces": "10",
    "prélèvement": "59",
}


class FacturXBuildError(ValueError):
    """The invoice cannot be expressed as a consistent Factur-X document."""


@dataclass(frozen=True, slots=True)
class FacturXDocument:
    xml: str
    pdf: bytes


def version() -> str:
    return GENERATOR_VERSION


def unit_code(unit: Unit | str) -> str:
    try:
        return UNIT_CODES[Unit(unit)]
    except ValueError:
        return "C62"


def payment_means_code(method: Optional[str]) -> str:
    if not method:
        return "ZZZ"
    return PAYMENT_MEANS_CODES.get(method.strip().lower(), "ZZZ")


def _format_decimal(value: Decimal) -> str:
    return f"{round2(value):.2f}"


def _format_quantity(value: Decimal) -> str:
    return f"{value.quantize(Decimal('0.0001')).normalize():f}"


def _format_percent(value: Decimal) -> str:
    return f"{round2(value).normalize():f}"


def _format_date(value: date) -> str:
    return value.strftime("%Y%m%d")


def _q(prefix: str, tag: str) -> str:
    return f"{{{NSMAP[prefix]}}}{tag}"


def _sub(parent: etree._Element, tag: str, text: Optional[str] = None, **attrib: str) -> etree._Element:
    prefix, local = tag.split(":", 1)
    element = etree.SubElement(parent, _q(prefix, local), **attrib)
    if text is not None:
        element.text = text
    return element


def _date_element(parent: etree._Element, tag: str, value: date) -> None:
    wrapper = _sub(parent, tag)
    _sub(wrapper, "udt:DateTimeString", _format_date(value), format="102")


def _indicator(parent: etree._Element, value: bool) -> None:
    wrapper = _sub(parent, "ram:ChargeIndicator")
    _sub(wrapper, "udt:Indicator", "true" if value else "false")


@dataclass(frozen=True, slots=True)
class _TaxBreakdown:
    subtotal: Decimal
    discount_total: Decimal
    base_by_rate: Dict[Decimal, Decimal]
    vat_by_rate: Dict[Decimal, Decimal]
    discount_by_rate: Dict[Decimal, Decimal]


def _check_reconciliation(invoice: Invoice) -> _TaxBreakdown:
    if not invoice.number:
        raise FacturXBuildError("Invoice number must be set before generating Factur-X XML")
    if not invoice.items:
        raise FacturXBuildError(f"Invoice {invoice.number} has no line items")

    for item in invoice.items:
        expected = calculate_line_totals(
            item.quantity, item.unit_price_ht, item.vat_rate, item.discount_percent
        ).total_ht
        if expected != round2(item.total_ht):
            raise FacturXBuildError(
                f"Line {item.position + 1} of {invoice.number}: stored net {item.total_ht} != {expected}"
            )

    totals = calculate_document_totals(invoice.items, invoice.discount_percent)
    mismatches = [
        name
        for name, computed, stored in (
            ("total_ht", totals.total_ht, invoice.total_ht),
            ("total_vat", totals.total_vat, invoice.total_vat),
            ("total_ttc", totals.total_ttc, invoice.total_ttc),
        )
        if computed != round2(stored)
    ]
    if mismatches:
        raise FacturXBuildError(
            f"Invoice {invoice.number}: stored totals do not reconcile ({', '.join(mismatches)})"
        )

    return _TaxBreakdown(
        subtotal=totals.subtotal_ht,
        discount_total=totals.discount_amount,
        base_by_rate=totals.base_by_rate,
        vat_by_rate=totals.vat_by_rate,
        discount_by_rate=split_discount_by_rate(totals.base_by_rate, totals.discount_amount),
    )


def _render_line(parent: etree._Element, index: int, item: LineItem, franchise: bool) -> None:
    code = unit_code(item.unit)
    line = _sub(parent, "ram:IncludedSupplyChainTradeLineItem")

    doc = _sub(line, "ram:AssociatedDocumentLineDocument")
    _sub(doc, "ram:LineID", str(index))

    product = _sub(line, "ram:SpecifiedTradeProduct")
    _sub(product, "ram:Name", item.description)

    agreement = _sub(line, "ram:SpecifiedLineTradeAgreement")
    net_price = round2(item.unit_price_ht * (1 - item.discount_percent / Decimal("100")))
    if item.discount_percent > 0:
        gross = _sub(agreement, "ram:GrossPriceProductTradePrice")
        _sub(gross, "ram:ChargeAmount", _format_decimal(item.unit_price_ht))
        _sub(gross, "ram:BasisQuantity", "1", unitCode=code)
        allowance = _sub(gross, "ram:AppliedTradeAllowanceCharge")
        _indicator(allowance, False)
        _sub(
            allowance,
            "ram:ActualAmount",
            _format_decimal(item.unit_price_ht * item.discount_percent / Decimal("100")),
        )
    net = _sub(agreement, "ram:NetPriceProductTradePrice")
    _sub(net, "ram:ChargeAmount", _format_decimal(net_price))
    _sub(net, "ram:BasisQuantity", "1", unitCode=code)

    delivery = _sub(line, "ram:SpecifiedLineTradeDelivery")
    _sub(delivery, "ram:BilledQuantity", _format_quantity(item.quantity), unitCode=code)

    settlement = _sub(line, "ram:SpecifiedLineTradeSettlement")
    tax = _sub(settlement, "ram:ApplicableTradeTax")
    _sub(tax, "ram:TypeCode", "VAT")
    _sub(tax, "ram:CategoryCode", "E" if franchise else "S")
    _sub(tax, "ram:RateApplicablePercent", _format_percent(ZERO if franchise else item.vat_rate))
    summation = _sub(settlement, "ram:SpecifiedTradeSettlementLineMonetarySummation")
    _sub(summation, "ram:LineTotalAmount", _format_decimal(item.total_ht))


def _render_party(
    parent: etree._Element,
    tag: str,
    *,
    name: str,
    siret: Optional[str],
    vat_number: Optional[str],
    address: Optional[str],
    zip_code: Optional[str],
    city: Optional[str],
    always_address: bool,
) -> None:
    party = _sub(parent, tag)
    if siret:
        _sub(party, "ram:GlobalID", siret, schemeID=SIRET_GLOBAL_SCHEME)
    _sub(party, "ram:Name", name)
    if siret:
        legal = _sub(party, "ram:SpecifiedLegalOrganization")
        _sub(legal, "ram:ID", siret, schemeID=SIRET_LEGAL_SCHEME)
    if always_address or address or zip_code or city:
        postal = _sub(party, "ram:PostalTradeAddress")
        if zip_code:
            _sub(postal, "ram:PostcodeCode", zip_code)
        if address:
            _sub(postal, "ram:LineOne", address)
        if city:
            _sub(postal, "ram:CityName", city)
        _sub(postal, "ram:CountryID", settings.SELLER_COUNTRY)
    if siret:
        uri = _sub(party, "ram:URIUniversalCommunication")
        _sub(uri, "ram:URIID", siret, schemeID=SIRET_GLOBAL_SCHEME)
    if vat_number:
        registration = _sub(party, "ram:SpecifiedTaxRegistration")
        _sub(registration, "ram:ID", vat_number, schemeID="VA")
    elif siret and tag == "ram:SellerTradeParty":
        registration = _sub(party, "ram:SpecifiedTaxRegistration")
        _sub(registration, "ram:ID", siret, schemeID="FC")


def build_facturx_xml(invoice: Invoice, company: Company, client: Client) -> str:
    """Build the CII XML for ``invoice``.

    Raises :class:`FacturXBuildError` when the stored line or document totals
    cannot be reproduced from the stored items.
    """

    breakdown = _check_reconciliation(invoice)
    franchise = company.is_franchise
    currency = settings.DEFAULT_CURRENCY
    category = "E" if franchise else "S"
    discount_total = breakdown.discount_total

    root = etree.Element(_q("rsm", "CrossIndustryInvoice"), nsmap=NSMAP)

    context = _sub(root, "rsm:ExchangedDocumentContext")
    guideline = _sub(context, "ram:GuidelineSpecifiedDocumentContextParameter")
    _sub(guideline, "ram:ID", FACTURX_BASIC_GUIDELINE)

    document = _sub(root, "rsm:ExchangedDocument")
    _sub(document, "ram:ID", invoice.number)
    _sub(document, "ram:TypeCode", INVOICE_TYPE_CODE)
    _date_element(document, "ram:IssueDateTime", invoice.issue_date)
    if franchise:
        note = _sub(document, "ram:IncludedNote")
        _sub(note, "ram:Content", FRANCHISE_TAX_REASON)
    if invoice.notes:
        note = _sub(document, "ram:IncludedNote")
        _sub(note, "ram:Content", invoice.notes)

    transaction = _sub(root, "rsm:SupplyChainTradeTransaction")
    for index, item in enumerate(invoice.items, start=1):
        _render_line(transaction, index, item, franchise)

    agreement = _sub(transaction, "ram:ApplicableHeaderTradeAgreement")
    _render_party(
        agreement,
        "ram:SellerTradeParty",
        name=company.name,
        siret=company.siret,
        vat_number=company.vat_number,
        address=company.address,
        zip_code=company.zip_code,
        city=company.city,
        always_address=True,
    )
    _render_party(
        agreement,
        "ram:BuyerTradeParty",
        name=client.name,
        siret=client.siret,
        vat_number=client.vat_number,
        address=client.address,
        zip_code=client.zip_code,
        city=client.city,
        always_address=False,
    )

    # Mandatory in the schema even without delivery information
    _sub(transaction, "ram:ApplicableHeaderTradeDelivery")

    settlement = _sub(transaction, "ram:ApplicableHeaderTradeSettlement")
    _sub(settlement, "ram:InvoiceCurrencyCode", currency)
    means = _sub(settlement, "ram:SpecifiedTradeSettlementPaymentMeans")
    _sub(means, "ram:TypeCode", payment_means_code(invoice.payment_method))

    for rate, base in breakdown.base_by_rate.items():
        tax = _sub(settlement, "ram:ApplicableTradeTax")
        _sub(tax, "ram:CalculatedAmount", _format_decimal(breakdown.vat_by_rate[rate]))
        _sub(tax, "ram:TypeCode", "VAT")
        if franchise:
            _sub(tax, "ram:ExemptionReason", FRANCHISE_TAX_REASON)
        _sub(tax, "ram:BasisAmount", _format_decimal(base - breakdown.discount_by_rate[rate]))
        _sub(tax, "ram:CategoryCode", category)
        _sub(tax, "ram:RateApplicablePercent", _format_percent(rate))

    if discount_total > 0:
        for rate, base in breakdown.base_by_rate.items():
            allowance = _sub(settlement, "ram:SpecifiedTradeAllowanceCharge")
            _indicator(allowance, False)
            _sub(allowance, "ram:CalculationPercent", _format_percent(invoice.discount_percent))
            _sub(allowance, "ram:BasisAmount", _format_decimal(base))
            _sub(allowance, "ram:ActualAmount", _format_decimal(breakdown.discount_by_rate[rate]))
            _sub(allowance, "ram:ReasonCode", DISCOUNT_REASON_CODE)
            _sub(
                allowance,
                "ram:Reason",
                f"Remise globale {_format_percent(invoice.discount_percent)}%",
            )
            category_tax = _sub(allowance, "ram:CategoryTradeTax")
            _sub(category_tax, "ram:TypeCode", "VAT")
            _sub(category_tax, "ram:CategoryCode", category)
            _sub(category_tax, "ram:RateApplicablePercent", _format_percent(rate))

    terms = _sub(settlement, "ram:SpecifiedTradePaymentTerms")
    _date_element(terms, "ram:DueDateDateTime", invoice.due_date)

    summation = _sub(settlement, "ram:SpecifiedTradeSettlementHeaderMonetarySummation")
    _sub(summation, "ram:LineTotalAmount", _format_decimal(breakdown.subtotal))
    if discount_total > 0:
        _sub(summation, "ram:AllowanceTotalAmount", _format_decimal(discount_total))
    _sub(summation, "ram:TaxBasisTotalAmount", _format_decimal(invoice.total_ht))
    _sub(summation, "ram:TaxTotalAmount", _format_decimal(invoice.total_vat), currencyID=currency)
    _sub(summation, "ram:GrandTotalAmount", _format_decimal(invoice.total_ttc))
    _sub(summation, "ram:DuePayableAmount", _format_decimal(invoice.total_ttc))

    return etree.tostring(
        root, xml_declaration=True, encoding="UTF-8", pretty_print=True
    ).decode("utf-8")


def embed_xml_to_pdf(
    pdf_bytes: bytes,
    xml: str | bytes,
    invoice_no: str,
    *,
    author: Optional[str] = None,
) -> bytes:
    """Embed the XML as ``factur-x.xml`` into ``pdf_bytes`` (PDF/A-3 best effort).

    The attachment carries ``/AFRelationship /Data`` and is referenced from the
    catalog ``/AF`` array; the XMP packet declares PDF/A-3B plus the Factur-X
    extension fields. The XML bytes are stored unchanged.
    """

    xml_bytes = xml.encode("utf-8") if isinstance(xml, str) else xml

    with pikepdf.open(io.BytesIO(pdf_bytes)) as pdf:
        filespec = pikepdf.AttachedFileSpec(
            pdf,
            xml_bytes,
            filename=FACTURX_FILENAME,
            mime_type="text/xml",
            description="Factur-X invoice",
        )
        pdf.attachments[FACTURX_FILENAME] = filespec
        filespec.obj.AFRelationship = pikepdf.Name.Data
        pdf.Root.AF = pikepdf.Array([filespec.obj])

        with pdf.open_metadata(set_pikepdf_as_editor=False) as meta:
            meta["pdfaid:part"] = "3"
            meta["pdfaid:conformance"] = "B"
            meta["dc:title"] = f"Facture {invoice_no}"
            if author:
                meta["dc:creator"] = [author]
            meta["pdf:Producer"] = PDF_PRODUCER
            meta[f"{{{FACTURX_NAMESPACE}}}DocumentType"] = "INVOICE"
            meta[f"{{{FACTURX_NAMESPACE}}}DocumentFileName"] = FACTURX_FILENAME
            meta[f"{{{FACTURX_NAMESPACE}}}Version"] = "1.0"
            meta[f"{{{FACTURX_NAMESPACE}}}ConformanceLevel"] = "BASIC"

        output = io.BytesIO()
        pdf.save(output)
    return output.getvalue()


def build_facturx_document(
    invoice: Invoice,
    company: Company,
    client: Client,
    pdf_bytes: bytes,
) -> FacturXDocument:
    """Build the XML and embed it into the already rendered visual PDF."""

    xml = build_facturx_xml(invoice, company, client)
    pdf = embed_xml_to_pdf(pdf_bytes, xml, invoice.number, author=company.name)
    return FacturXDocument(xml=xml, pdf=pdf)


def extract_facturx_xml(pdf_bytes: bytes) -> bytes:
    """Return the embedded ``factur-x.xml`` bytes from a hybrid PDF."""

    with pikepdf.open(io.BytesIO(pdf_bytes)) as pdf:
        if FACTURX_FILENAME not in pdf.attachments:
            raise FacturXBuildError(f"{FACTURX_FILENAME} is not attached to this PDF")
        return pdf.attachments[FACTURX_FILENAME].get_file().read_bytes()
