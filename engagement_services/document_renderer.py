"""
FileContractRenderer -- writes contract PDFs to a directory.

Produces one PDF per ContractDocument with reportlab and returns its path as
the stored file reference.  Layout beyond the essentials (parties, scope,
price, signature block) is out of scope.
"""

from __future__ import annotations

from pathlib import Path

from reportlab.lib.pagesizes import letter
from reportlab.lib.utils import simpleSplit
from reportlab.pdfgen import canvas

from engagement_kernel.domain.documents import ContractDocument, ContractRenderer
from engagement_kernel.logging_config import get_logger

logger = get_logger("documents")

MARGIN = 72
BODY_FONT = ("Helvetica", 10)
HEADING_FONT = ("Helvetica-Bold", 12)
LINE_HEIGHT = 15


class FileContractRenderer(ContractRenderer):
    """
    Renders contracts as PDF files under ``contracts_dir``.

    Page streams are written uncompressed so the stored document text stays
    greppable for audits.
    """

    def __init__(self, contracts_dir: Path | str):
        self.contracts_dir = Path(contracts_dir)

    def render(self, document: ContractDocument) -> str:
        self.contracts_dir.mkdir(parents=True, exist_ok=True)
        path = self.contracts_dir / f"contract-{document.contract_id}.pdf"

        pdf = canvas.Canvas(str(path), pagesize=letter, pageCompression=0)
        pdf.setTitle(f"Service agreement {document.contract_id}")
        _ContractLayout(pdf).draw(document)
        pdf.save()

        logger.info(
            "contract_document_written",
            extra={"contract_id": str(document.contract_id), "path": str(path)},
        )
        return str(path)

    def discard(self, file_ref: str) -> None:
        try:
            Path(file_ref).unlink(missing_ok=True)
        except OSError:
            logger.warning(
                "contract_document_discard_failed",
                extra={"path": file_ref},
                exc_info=True,
            )
            return
        logger.info("contract_document_discarded", extra={"path": file_ref})


class _ContractLayout:
    """Top-down line writer over one canvas, starting new pages as needed."""

    def __init__(self, pdf: canvas.Canvas):
        self.pdf = pdf
        self.width, self.height = letter
        self.y = self.height - MARGIN

    def _line(self, text: str, font: tuple[str, int] = BODY_FONT, indent: int = 0) -> None:
        if self.y < MARGIN:
            self.pdf.showPage()
            self.y = self.height - MARGIN
        self.pdf.setFont(*font)
        self.pdf.drawString(MARGIN + indent, self.y, text)
        self.y -= LINE_HEIGHT

    def _paragraph(self, text: str, indent: int = 18) -> None:
        max_width = self.width - 2 * MARGIN - indent
        for line in simpleSplit(text, BODY_FONT[0], BODY_FONT[1], max_width) or [""]:
            self._line(line, indent=indent)

    def _gap(self) -> None:
        self.y -= LINE_HEIGHT

    def draw(self, document: ContractDocument) -> None:
        pricing = document.pricing
        self._line("SERVICE AGREEMENT", ("Helvetica-Bold", 16))
        self._gap()
        self._line(f"Contract: {document.contract_id}")
        self._line(f"Project: {document.project_title} ({document.project_id})")
        self._line(f"Date: {document.generated_at.date().isoformat()}")
        self._gap()

        self._line("Parties", HEADING_FONT)
        client, contractor = document.client, document.contractor
        self._line(f"Client: {client.display_name} <{client.email}>", indent=18)
        self._line(f"Contractor: {contractor.display_name} <{contractor.email}>", indent=18)
        self._gap()

        self._line("Scope of work", HEADING_FONT)
        self._paragraph(document.project_description)
        self._gap()

        self._line("Price", HEADING_FONT)
        self._line(str(pricing), indent=18)
        if pricing.notes:
            self._paragraph(pricing.notes)
        self._gap()

        self._line("Signatures", HEADING_FONT)
        self._line("Client: ______________________", indent=18)
        self._gap()
        self._line("Contractor: ______________________", indent=18)
