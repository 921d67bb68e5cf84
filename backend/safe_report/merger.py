# backend/safe_report/merger.py
from __future__ import annotations

import base64
import datetime as dt
from dataclasses import dataclass, field
from io import BytesIO
from typing import List, Optional, Sequence, Tuple

from pypdf import PdfReader, PdfWriter

from .errors import MergeFailure
from .log import get_logger

LOG = get_logger("merger")

ATTACHMENT_PREFIX = "SAFE_Equity_Report"


@dataclass
class GeneratedDocument:
    """Merged report PDF. Sections list (template name, page count) in page order."""

    content: bytes
    page_count: int
    sections: List[Tuple[str, int]] = field(default_factory=list)

    def to_base64(self) -> str:
        return base64.b64encode(self.content).decode()

    @classmethod
    def from_base64(cls, data: str) -> "GeneratedDocument":
        """Wrap a client-supplied PDF; the content is not re-parsed."""
        # transports may wrap base64 across lines
        content = base64.b64decode("".join(data.split()), validate=True)
        return cls(content=content, page_count=0, sections=[])

    @property
    def filename(self) -> str:
        return f"{ATTACHMENT_PREFIX}_{dt.date.today().isoformat()}.pdf"

    def __len__(self) -> int:
        return len(self.content)


def merge_pdfs(pages: Sequence[bytes], sections: Optional[Sequence[str]] = None) -> GeneratedDocument:
    """Concatenate every page of every input PDF, keeping input order."""
    if not pages:
        raise MergeFailure("No PDF pages to merge")
    names = list(sections) if sections else [f"part-{i + 1}" for i in range(len(pages))]
    if len(names) != len(pages):
        raise MergeFailure(f"Got {len(pages)} PDFs but {len(names)} section names")

    writer = PdfWriter()
    merged_sections = []
    for name, data in zip(names, pages):
        try:
            reader = PdfReader(BytesIO(data))
            count = 0
            for page in reader.pages:
                writer.add_page(page)
                count += 1
        except Exception as e:
            LOG.error(f"[Merge] Could not read {name} ({len(data or b'')} bytes): {e}")
            raise MergeFailure(f"Malformed PDF for {name}: {e}") from e
        merged_sections.append((name, count))

    buf = BytesIO()
    writer.write(buf)
    content = buf.getvalue()
    total = sum(c for _, c in merged_sections)
    LOG.info(f"[Merge] Merged {len(pages)} PDFs into {total} pages, {len(content)} bytes")
    return GeneratedDocument(content=content, page_count=total, sections=merged_sections)
