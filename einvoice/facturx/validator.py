"""Offline validator (TEMP/OFFICIAL) for Factur-X BASIC documents."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from pathlib import Path
from typing import Dict, List, Optional
from xml.etree import ElementTree as ET

from lxml import etree

from backend.core.config import settings

from .generator import FACTURX_BASIC_GUIDELINE, INVOICE_TYPE_CODE


@dataclass(frozen=True)
class FacturXValidationResult:
    schema_ok: bool
    arithmetic_ok: bool
    messages: List[str]

    @property
    def ok(self) -> bool:
        return self.schema_ok and self.arithmetic_ok

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


RESOURCE_DIR = Path(__file__).resolve().parent / "resources"
OFFICIAL_DIR = RESOURCE_DIR / "official"

_SUMMATION = (
    "./{*}SupplyChainTradeTransaction/{*}ApplicableHeaderTradeSettlement/"
    "{*}SpecifiedTradeSettlementHeaderMonetarySummation"
)
_HEADER_TAXES = (
    "./{*}SupplyChainTradeTransaction/{*}ApplicableHeaderTradeSettlement/{*}ApplicableTradeTax"
)
_LINE_TOTALS = (
    "./{*}SupplyChainTradeTransaction/{*}IncludedSupplyChainTradeLineItem/"
    "{*}SpecifiedLineTradeSettlement/{*}SpecifiedTradeSettlementLineMonetarySummation/"
    "{*}LineTotalAmount"
)


def _parse_decimal(text: Optional[str]) -> Decimal:
    return Decimal((text or "0").strip()).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def _strip_ns(tag: str) -> str:
    return tag.split("}", 1)[1] if "}" in tag else tag


def _official_xsd_files() -> List[Path]:
    return sorted(OFFICIAL_DIR.glob("*.xsd")) if OFFICIAL_DIR.exists() else []


def _get_validation_mode() -> str:
    mode = settings.FACTURX_VALIDATION_MODE.lower()
    if mode == "official" and not _official_xsd_files():
        return "temp"
    return mode


def _validate_schema(xml_bytes: bytes) -> tuple[bool, List[str]]:
    xsd_file = _official_xsd_files()[0]
    try:
        xml_doc = etree.fromstring(xml_bytes)
    except etree.XMLSyntaxError as err:
        return False, [f"OFFICIAL_VALIDATOR: XML parse error: {err}"]

    schema = etree.XMLSchema(etree.parse(str(xsd_file)))
    if schema.validate(xml_doc):
        return True, [f"OFFICIAL_VALIDATOR: Schema validation OK ({xsd_file.name})"]
    return False, [f"OFFICIAL_VALIDATOR: Schema validation failed: {schema.error_log.last_error}"]


def _check_structure(root: ET.Element, messages: List[str]) -> bool:
    if _strip_ns(root.tag) != "CrossIndustryInvoice":
        messages.append("TEMP_VALIDATOR: Root element must be 'CrossIndustryInvoice'")
        return False

    ok = True
    guideline = root.findtext(
        "./{*}ExchangedDocumentContext/{*}GuidelineSpecifiedDocumentContextParameter/{*}ID"
    )
    if guideline != FACTURX_BASIC_GUIDELINE:
        messages.append("TEMP_VALIDATOR: Guideline mismatch")
        ok = False
    if not (root.findtext("./{*}ExchangedDocument/{*}ID") or "").strip():
        messages.append("TEMP_VALIDATOR: Invoice number missing")
        ok = False
    if root.findtext("./{*}ExchangedDocument/{*}TypeCode") != INVOICE_TYPE_CODE:
        messages.append("TEMP_VALIDATOR: TypeCode must be 380")
        ok = False

    transaction = root.find("./{*}SupplyChainTradeTransaction")
    if transaction is None:
        messages.append("TEMP_VALIDATOR: SupplyChainTradeTransaction missing")
        return False
    if not transaction.findall("./{*}IncludedSupplyChainTradeLineItem"):
        messages.append("TEMP_VALIDATOR: At least one line is required")
        ok = False
    for required in (
        "ApplicableHeaderTradeAgreement",
        "ApplicableHeaderTradeDelivery",
        "ApplicableHeaderTradeSettlement",
    ):
        if transaction.find(f"./{{*}}{required}") is None:
            messages.append(f"TEMP_VALIDATOR: {required} missing")
            ok = False
    return ok


def _check_arithmetic(root: ET.Element, messages: List[str]) -> bool:
    summation = root.find(_SUMMATION)
    if summation is None:
        messages.append("TEMP_VALIDATOR: Monetary summation missing")
        return False

    try:
        line_total = _parse_decimal(summation.findtext("./{*}LineTotalAmount"))
        allowance_total = _parse_decimal(summation.findtext("./{*}AllowanceTotalAmount"))
        basis_total = _parse_decimal(summation.findtext("./{*}TaxBasisTotalAmount"))
        tax_total = _parse_decimal(summation.findtext("./{*}TaxTotalAmount"))
        grand_total = _parse_decimal(summation.findtext("./{*}GrandTotalAmount"))
        due_payable = _parse_decimal(summation.findtext("./{*}DuePayableAmount"))
        breakdown_tax = sum(
            (_parse_decimal(node.findtext("./{*}CalculatedAmount")) for node in root.findall(_HEADER_TAXES)),
            Decimal("0.00"),
        )
        breakdown_basis = sum(
            (_parse_decimal(node.findtext("./{*}BasisAmount")) for node in root.findall(_HEADER_TAXES)),
            Decimal("0.00"),
        )
        lines_sum = sum(
            (_parse_decimal(node.text) for node in root.findall(_LINE_TOTALS)), Decimal("0.00")
        )
    except InvalidOperation as err:
        messages.append(f"TEMP_VALIDATOR: Invalid amount: {err!r}")
        return False

    ok = True
    if basis_total + tax_total != grand_total:
        messages.append("TEMP_VALIDATOR: Basis + Tax must equal Grand total")
        ok = False
    if due_payable != grand_total:
        messages.append("TEMP_VALIDATOR: Due payable must equal Grand total")
        ok = False
    if breakdown_tax != tax_total:
        messages.append("TEMP_VALIDATOR: Aggregated tax breakdown mismatch")
        ok = False
    if breakdown_basis != basis_total:
        messages.append("TEMP_VALIDATOR: Aggregated tax basis mismatch")
        ok = False
    if lines_sum != line_total:
        messages.append("TEMP_VALIDATOR: Line totals do not add up to LineTotalAmount")
        ok = False
    if line_total - allowance_total != basis_total:
        messages.append("TEMP_VALIDATOR: LineTotal - Allowances must equal Tax basis")
        ok = False
    if ok:
        messages.append("TEMP_VALIDATOR: Totals OK")
    return ok


def validate_facturx(xml: str | bytes) -> FacturXValidationResult:
    """Validate Factur-X XML according to the configured mode (OFFICIAL/TEMP).

    Arithmetic checks always run; OFFICIAL mode adds XSD validation when the
    schema files are present under ``resources/official``.
    """

    xml_bytes = xml.encode("utf-8") if isinstance(xml, str) else xml
    messages: List[str] = []

    try:
        root = ET.fromstring(xml_bytes)
    except ET.ParseError as err:
        messages.append(f"TEMP_VALIDATOR: XML parse error: {err}")
        return FacturXValidationResult(False, False, messages)

    schema_ok = _check_structure(root, messages)
    if _get_validation_mode() == "official":
        xsd_ok, xsd_messages = _validate_schema(xml_bytes)
        messages.extend(xsd_messages)
        schema_ok = schema_ok and xsd_ok

    arithmetic_ok = _check_arithmetic(root, messages)
    return FacturXValidationResult(schema_ok, arithmetic_ok, messages)
