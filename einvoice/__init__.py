"""E-invoicing artifacts: visual PDF rendering and Factur-X hybrid documents."""

from .facturx import (
    FACTURX_BASIC_GUIDELINE,
    FacturXBuildError,
    FacturXDocument,
    FacturXValidationResult,
    build_facturx_document,
    build_facturx_xml,
    embed_xml_to_pdf,
    extract_facturx_xml,
    validate_facturx,
    version as facturx_version,
)
from .render import render_document_pdf

__all__ = [
    "FACTURX_BASIC_GUIDELINE",
    "FacturXBuildError",
    "FacturXDocument",
    "FacturXValidationResult",
    "build_facturx_document",
    "build_facturx_xml",
    "embed_xml_to_pdf",
    "extract_facturx_xml",
    "facturx_version",
    "render_document_pdf",
    "validate_facturx",
]
