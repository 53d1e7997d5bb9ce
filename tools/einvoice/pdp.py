"""CLI for Factur-X export and PDP transmission of stored invoices."""

from __future__ import annotations

import argparse
import json
from dataclasses import asdict
from pathlib import Path
from typing import Iterable, List

from backend.apps.documents.service import DocumentService
from backend.apps.transmission.service import TransmissionError, TransmissionService
from backend.core.database import get_engine
from backend.core.logging import init_logging
from backend.integrations.pdp_client import close_pdp_client
from einvoice import build_facturx_document, facturx_version, render_document_pdf, validate_facturx


def export_invoice(
    documents: DocumentService,
    *,
    company_id: str,
    invoice_id: str,
    dest_dir: Path,
) -> List[Path]:
    """Write the hybrid PDF, its XML and the validation report to ``dest_dir/<number>``."""
    company = documents.get_company(company_id)
    invoice = documents.get_invoice(company_id, invoice_id)
    client = documents.get_client(company_id, invoice.client_id)

    pdf = render_document_pdf(invoice, company, client)
    document = build_facturx_document(invoice, company, client, pdf)
    report = validate_facturx(document.xml).to_dict()
    report["generator_version"] = facturx_version()

    dest = dest_dir / invoice.number
    dest.mkdir(parents=True, exist_ok=True)
    files = {
        "invoice.pdf": document.pdf,
        "factur-x.xml": document.xml.encode("utf-8"),
        "validation.json": json.dumps(report, indent=2, sort_keys=True).encode("utf-8"),
    }
    written: List[Path] = []
    for name, content in files.items():
        target = dest / name
        target.write_bytes(content)
        written.append(target)
    return written


def parse_args(argv: Iterable[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Factur-X export and PDP transmission")
    parser.add_argument("--company", required=True, help="Company id")
    parser.add_argument("--invoice", required=True, help="Invoice id")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("submit", help="Submit the invoice to the PDP")
    sub.add_parser("status", help="Refresh and print the PDP transmission state")
    export = sub.add_parser("export", help="Write hybrid PDF, XML and validation report")
    export.add_argument("--output-dir", type=Path, default=Path.cwd(), help="Target directory")
    return parser.parse_args(argv)


def main(argv: Iterable[str] | None = None) -> int:
    args = parse_args(argv)
    init_logging()
    documents = DocumentService(get_engine())

    if args.command == "export":
        for path in export_invoice(
            documents, company_id=args.company, invoice_id=args.invoice, dest_dir=args.output_dir
        ):
            print(path)
        return 0

    transmission = TransmissionService(documents)
    try:
        if args.command == "submit":
            output = asdict(transmission.submit(args.company, args.invoice))
        else:
            output = asdict(transmission.transmission_state(args.company, args.invoice))
    except TransmissionError as exc:
        print(json.dumps({"error": exc.code, "detail": str(exc)}))
        return 2
    finally:
        close_pdp_client()
    print(json.dumps(output, indent=2, default=str))
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
