"""Factur-X BASIC helpers: generator, PDF embedding and validator."""

from .generator import (
    FACTURX_BASIC_GUIDELINE,
    FACTURX_FILENAME,
    FRANCHISE_TAX_REASON,
    NSMAP,
    FacturXBuildError,
    FacturXDocument,
    build_facturx_document,
    build_facturx_xml,
    embed_xml_to_pdf,
    extract_facturx_xml,
    payment_means_code,
    unit_code,
    version,
)
from .validator import FacturXValidationResult, validate_facturx

__all__ = [
    "FACTURX_BASIC_GUIDELINE",
    "FACTURX_FILENAME",
    "FRANCHISE_TAX_REASON",
    "FacturXBuildError",
    "FacturXDocument",
    "FacturXValidationResult",
    "NSMAP",
    "build_facturx_document",
    "build_facturx_xml",
    "embed_xml_to_pdf",
    "extract_facturx_xml",
    "payment_means_code",
    "unit_code",
    "validate_facturx",
    "version",
]
