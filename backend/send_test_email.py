"""Manual smoke test: email a small PDF through the configured provider.

    python backend/send_test_email.py you@example.com
"""
import asyncio
import sys

from safe_report.mailer import DeliveryDispatcher
from safe_report.merger import GeneratedDocument
from safe_report.models import SummaryFields

# Smallest valid one-page PDF
_PDF = (
    b"%PDF-1.4\n1 0 obj<</Type/Catalog/Pages 2 0 R>>endobj\n"
    b"2 0 obj<</Type/Pages/Kids[3 0 R]/Count 1>>endobj\n"
    b"3 0 obj<</Type/Page/Parent 2 0 R/MediaBox[0 0 612 792]>>endobj\n"
    b"trailer<</Root 1 0 R>>\n%%EOF\n"
)


async def main(to_email: str) -> None:
    summary = SummaryFields(
        firstName="Test",
        lastName="User",
        founderOwnership="40%",
        founderDilution="10%",
        postMoney="$10M",
        totalRaised="$1M",
    )
    receipt = await DeliveryDispatcher().send(to_email, GeneratedDocument(_PDF, 1), summary)
    print(f"Success! {receipt.provider} message id: {receipt.message_id}")


if __name__ == '__main__':
    if len(sys.argv) < 2:
        sys.exit("usage: send_test_email.py <to_email>")
    try:
        asyncio.run(main(sys.argv[1]))
    except Exception as e:
        print(f"Error: {e}")
        sys.exit(1)
