# =============================================================================
# Synthetic Compliance PDFs (fpdf2)
# =============================================================================
#
# Used in two places:
#   - demo deployments, where a seeded document's file may be missing on
#     disk: the access gateway serves a rendered stand-in instead of a 404
#     (never in production)
#   - scripts/seed_demo_documents.py, which writes demo files to disk
#
# Core PDF fonts are Latin-1 only; text is coerced before rendering.
# =============================================================================

from __future__ import annotations

from datetime import UTC, datetime

from fpdf import FPDF


def _latin1(text: str) -> str:
    return text.encode("latin-1", "replace").decode("latin-1")


class ComplianceDocumentPDF(FPDF):
    """PDF with a Trust Center header and a synthetic-data footer."""

    def __init__(self, heading: str) -> None:
        super().__init__()
        self.heading = _latin1(heading)

    def header(self):
        self.set_font("Helvetica", "B", 10)
        self.set_text_color(100, 100, 100)
        self.cell(0, 8, f"Trust Center  - {self.heading}", 0, 1, "C")
        self.line(10, self.get_y(), 200, self.get_y())
        self.ln(4)

    def footer(self):
        self.set_y(-15)
        self.set_font("Helvetica", "I", 8)
        self.set_text_color(150, 150, 150)
        self.cell(
            0, 10, f"Page {self.page_no()}/{{nb}} | Synthetic document for demo purposes",
            0, 0, "C",
        )

    def section_title(self, title: str):
        self.set_font("Helvetica", "B", 14)
        self.set_text_color(0, 0, 0)
        self.ln(6)
        self.cell(0, 10, _latin1(title), 0, 1)
        self.line(10, self.get_y(), 200, self.get_y())
        self.ln(2)

    def body_text(self, text: str):
        self.set_font("Helvetica", "", 10)
        self.set_text_color(30, 30, 30)
        self.multi_cell(0, 5.5, _latin1(text))
        self.ln(2)


def render_document_pdf(
    title: str,
    description: str | None = None,
    category: str | None = None,
    sections: list[tuple[str, str]] | None = None,
) -> bytes:
    """Render a short synthetic compliance document."""
    pdf = ComplianceDocumentPDF(title)
    pdf.alias_nb_pages()
    pdf.set_auto_page_break(auto=True, margin=20)
    pdf.add_page()

    pdf.set_font("Helvetica", "B", 20)
    pdf.ln(16)
    pdf.multi_cell(0, 12, _latin1(title), 0, "C")
    if category:
        pdf.set_font("Helvetica", "", 13)
        pdf.cell(0, 10, _latin1(category), 0, 1, "C")
    pdf.set_font("Helvetica", "I", 10)
    pdf.set_text_color(100, 100, 100)
    pdf.cell(0, 8, f"Generated {datetime.now(UTC):%Y-%m-%d}", 0, 1, "C")

    if description:
        pdf.section_title("Overview")
        pdf.body_text(description)

    for heading, text in sections or []:
        pdf.section_title(heading)
        pdf.body_text(text)

    return bytes(pdf.output())


def render_placeholder_pdf(title: str, description: str | None = None) -> bytes:
    """Stand-in served when a demo document's file is missing."""
    return render_document_pdf(
        title,
        description,
        sections=[
            (
                "Placeholder",
                "This is a demonstration copy. The original file is not "
                "available in this environment.",
            )
        ],
    )
