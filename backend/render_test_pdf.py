"""Manual smoke test: render the sample report with a real browser.

    python backend/render_test_pdf.py [output.pdf]
"""
import asyncio
import sys

from safe_report.models import ReportPayload
from safe_report.renderer import ReportRenderer

SAMPLE = {
    "roundName": "Series A",
    "timestamp": "Now",
    "summary": {
        "ownershipPre": "40.00%",
        "ownershipPost": "33.33%",
        "dilution": "6.67%",
        "postMoney": "$12,000,000",
        "pricePerShare": "$0.50",
        "totalShares": "7,999,999",
        "totalRaised": "$2,500,000",
    },
    "optionPool": "10%",
    "rows": [
        {"name": "Founder 1", "preShares": 4000000, "postShares": 4000000, "isFounder": True},
        {"name": "Investor 1", "preShares": 0, "postShares": 3999999, "isInvestor": True, "investment": 2000000},
    ],
}


async def main(output: str) -> None:
    renderer = ReportRenderer()
    try:
        document = await renderer.render(ReportPayload.model_validate(SAMPLE))
    finally:
        await renderer.close()
    with open(output, "wb") as f:
        f.write(document.content)
    print(f"Saved {document.page_count} pages ({len(document)} bytes) to {output}: {document.sections}")


if __name__ == '__main__':
    asyncio.run(main(sys.argv[1] if len(sys.argv) > 1 else "test_output.pdf"))
