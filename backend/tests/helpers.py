"""Shared fixtures for the test modules."""
import copy
from io import BytesIO

from reportlab.pdfgen import canvas

from safe_report.config import TEMPLATE_FILES
from safe_report.merger import merge_pdfs

SERIES_A = {
    "roundName": "Series A",
    "summary": {
        "ownershipPre": "40.00%",
        "ownershipPost": "33.33%",
        "postMoney": "$12,000,000",
        "totalRaised": "$2,500,000",
    },
    "rows": [
        {"name": "Founder 1", "preShares": 4000000, "postShares": 4000000, "isFounder": True},
        {"name": "Investor 1", "preShares": 0, "postShares": 3999999, "isInvestor": True, "investment": 2000000},
    ],
}


def series_a() -> dict:
    return copy.deepcopy(SERIES_A)


def make_pdf(*page_texts: str) -> bytes:
    """Real PDF with one page per text, sized like a report page."""
    buf = BytesIO()
    c = canvas.Canvas(buf, pagesize=(1920, 1080))
    for text in page_texts or ("blank",):
        c.setFont("Helvetica", 36)
        c.drawString(100, 540, text)
        c.showPage()
    c.save()
    return buf.getvalue()


class FakeRenderer:
    """Stands in for ReportRenderer: one real PDF page per template."""

    def __init__(self, error: Exception = None):
        self.error = error
        self.payloads = []
        self.closed = False

    async def render(self, payload):
        self.payloads.append(payload)
        if self.error:
            raise self.error
        pages = [make_pdf(f"{name} for {payload.round_name}") for name in TEMPLATE_FILES]
        return merge_pdfs(pages, sections=list(TEMPLATE_FILES))

    async def close(self):
        self.closed = True
