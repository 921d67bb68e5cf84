"""
Unit tests for the delivery dispatcher and its provider channels.
"""

import json
import smtplib
import tempfile
import threading
import unittest
from pathlib import Path
from unittest.mock import patch

from safe_report.config import Settings
from safe_report.errors import ConfigurationError, DeliveryFailure
from safe_report.leads import LeadRecorder
from safe_report.mailer import (
    DeliveryDispatcher,
    ResendChannel,
    SmtpChannel,
    build_report_email,
    recipient_list,
)
from safe_report.merger import GeneratedDocument
from safe_report.models import SummaryFields

from helpers import make_pdf

NO_CREDENTIALS = dict(
    email_provider="auto",
    smtp_user=None,
    smtp_pass=None,
    resend_api_key=None,
    email_from=None,
    email_verify_transport=False,
    smtp_host="smtp.gmail.com",
    smtp_port=465,
    smtp_security=None,
)


class TestReportEmail(unittest.TestCase):
    def test_na_fallbacks(self):
        body = build_report_email(None)
        self.assertIn("Hi User,", body)
        self.assertEqual(body.count("N/A"), 3)

    def test_summary_fields_interpolated_and_escaped(self):
        body = build_report_email(SummaryFields(
            firstName="<Ada>", founderOwnership="40%", postMoney="$10M", totalRaised="$1M"
        ))
        self.assertIn("Hi &lt;Ada&gt;,", body)
        self.assertIn("<strong>Founder Ownership:</strong> 40%", body)
        self.assertIn("<strong>Post-Money Valuation:</strong> $10M", body)
        self.assertIn("<strong>Total Raised:</strong> $1M", body)
        self.assertNotIn("N/A", body)

    def test_recipient_list(self):
        self.assertEqual(recipient_list("a@b.com, c@d.com"), ["a@b.com", "c@d.com"])
        self.assertEqual(recipient_list(["a@b.com"]), ["a@b.com"])
        self.assertEqual(recipient_list(None), [])


class DispatcherTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.leads_path = Path(self.tmp.name) / "leads.json"
        self.document = GeneratedDocument(make_pdf("report"), 1)
        self.summary = SummaryFields(firstName="Ada", companyName="Acme", founderOwnership="40%")

    def tearDown(self):
        self.tmp.cleanup()

    def dispatcher(self, **overrides):
        values = dict(NO_CREDENTIALS, leads_file=self.leads_path)
        values.update(overrides)
        settings = Settings(**values)
        return DeliveryDispatcher(settings, LeadRecorder(settings.leads_file))

    def leads(self):
        if not self.leads_path.exists():
            return []
        return json.loads(self.leads_path.read_text())


class TestDispatcherConfiguration(DispatcherTestCase):
    @patch("safe_report.mailer.smtplib.SMTP_SSL")
    async def test_missing_credentials(self, mock_smtp):
        with self.assertRaises(ConfigurationError):
            await self.dispatcher().send("a@b.com", self.document, self.summary)

        mock_smtp.assert_not_called()
        # the lead is recorded before the channel is resolved
        self.assertEqual([l["email"] for l in self.leads()], ["a@b.com"])
        self.assertEqual(self.leads()[0]["company"], "Acme")

    async def test_unknown_provider(self):
        with self.assertRaises(ConfigurationError):
            await self.dispatcher(email_provider="carrier-pigeon").send("a@b.com", self.document)

    async def test_resend_requires_sender(self):
        with self.assertRaises(ConfigurationError):
            await self.dispatcher(resend_api_key="re_key").send("a@b.com", self.document)

    async def test_no_recipient(self):
        with self.assertRaises(DeliveryFailure):
            await self.dispatcher().send([], self.document)
        self.assertEqual(self.leads(), [])

    def test_auto_prefers_resend(self):
        channel = self.dispatcher(
            resend_api_key="re_key", email_from="reports@example.com",
            smtp_user="u@gmail.com", smtp_pass="secret",
        ).resolve_channel()
        self.assertIsInstance(channel, ResendChannel)

    def test_auto_falls_back_to_smtp(self):
        channel = self.dispatcher(smtp_user="u@gmail.com", smtp_pass="secret").resolve_channel()
        self.assertIsInstance(channel, SmtpChannel)
        self.assertTrue(channel.implicit_tls)
        self.assertIn("EquityList SAFE Calculator", channel.sender)


class TestSmtpDelivery(DispatcherTestCase):
    @patch("safe_report.mailer.smtplib.SMTP_SSL")
    async def test_sends_to_every_recipient(self, mock_smtp):
        server = mock_smtp.return_value
        dispatcher = self.dispatcher(smtp_user="u@gmail.com", smtp_pass="secret")

        receipt = await dispatcher.send(["a@b.com", "c@d.com"], self.document, self.summary)

        mock_smtp.assert_called_once()
        self.assertEqual(mock_smtp.call_args.args[:2], ("smtp.gmail.com", 465))
        server.login.assert_called_once_with("u@gmail.com", "secret")
        sender, recipients, raw = server.sendmail.call_args.args
        self.assertEqual(sender, "u@gmail.com")
        self.assertEqual(recipients, ["a@b.com", "c@d.com"])
        self.assertIn("Your EquityList SAFE Calculator Results", raw)
        self.assertIn("SAFE_Equity_Report_", raw)
        server.quit.assert_called_once()

        self.assertEqual(receipt.provider, "smtp")
        self.assertEqual(receipt.recipients, ["a@b.com", "c@d.com"])
        self.assertTrue(receipt.message_id)
        # only the primary recipient becomes a lead
        self.assertEqual([l["email"] for l in self.leads()], ["a@b.com"])

    @patch("safe_report.mailer.smtplib.SMTP")
    async def test_starttls(self, mock_smtp):
        server = mock_smtp.return_value
        dispatcher = self.dispatcher(smtp_user="u@x.com", smtp_pass="pw", smtp_host="smtp.x.com", smtp_port=587)

        await dispatcher.send("a@b.com", self.document)

        server.starttls.assert_called_once()
        server.sendmail.assert_called_once()

    @patch("safe_report.mailer.smtplib.SMTP_SSL")
    async def test_provider_rejection(self, mock_smtp):
        mock_smtp.return_value.sendmail.side_effect = smtplib.SMTPRecipientsRefused({"a@b.com": (550, b"no")})
        dispatcher = self.dispatcher(smtp_user="u@gmail.com", smtp_pass="secret")

        with self.assertRaises(DeliveryFailure):
            await dispatcher.send("a@b.com", self.document)
        self.assertEqual(len(self.leads()), 1)

    @patch("safe_report.mailer.smtplib.SMTP_SSL")
    async def test_verify_before_send(self, mock_smtp):
        dispatcher = self.dispatcher(smtp_user="u@gmail.com", smtp_pass="secret", email_verify_transport=True)
        await dispatcher.send("a@b.com", self.document)
        mock_smtp.return_value.noop.assert_called_once()
        self.assertEqual(mock_smtp.call_count, 2)

    @patch("safe_report.mailer.smtplib.SMTP_SSL")
    async def test_verify_failure_skips_send(self, mock_smtp):
        mock_smtp.return_value.login.side_effect = smtplib.SMTPAuthenticationError(535, b"bad creds")
        dispatcher = self.dispatcher(smtp_user="u@gmail.com", smtp_pass="wrong", email_verify_transport=True)
        with self.assertRaises(DeliveryFailure):
            await dispatcher.send("a@b.com", self.document)
        mock_smtp.return_value.sendmail.assert_not_called()
        mock_smtp.return_value.close.assert_called_once()

    @patch("safe_report.mailer.smtplib.SMTP")
    async def test_starttls_failure_closes_socket(self, mock_smtp):
        server = mock_smtp.return_value
        server.starttls.side_effect = smtplib.SMTPNotSupportedError("STARTTLS extension not supported")
        dispatcher = self.dispatcher(smtp_user="u@x.com", smtp_pass="pw", smtp_host="smtp.x.com", smtp_port=587)

        with self.assertRaises(DeliveryFailure):
            await dispatcher.send("a@b.com", self.document)
        server.close.assert_called_once()
        server.login.assert_not_called()


class TestLeadRecordingOffLoop(DispatcherTestCase):
    async def test_lead_written_in_worker_thread(self):
        threads = []

        class TrackingRecorder(LeadRecorder):
            def record(self, email, fields=None):
                threads.append(threading.get_ident())
                return super().record(email, fields)

        settings = Settings(**dict(NO_CREDENTIALS, leads_file=self.leads_path))
        dispatcher = DeliveryDispatcher(settings, TrackingRecorder(settings.leads_file))

        with self.assertRaises(ConfigurationError):
            await dispatcher.send("a@b.com", self.document, self.summary)

        self.assertEqual(len(threads), 1)
        self.assertNotEqual(threads[0], threading.get_ident())
        self.assertEqual([l["email"] for l in self.leads()], ["a@b.com"])


class TestResendChannel(unittest.TestCase):
    def setUp(self):
        self.channel = ResendChannel("re_key", "reports@example.com")

    @patch("safe_report.mailer.resend.Emails.send")
    def test_send(self, mock_send):
        mock_send.return_value = {"id": "49a3999c-0ce1-4ea6-ab68-afcd6dc2e794"}

        message_id = self.channel.send(["a@b.com"], "Subject", "<p>hi</p>", "r.pdf", b"%PDF")

        self.assertEqual(message_id, "49a3999c-0ce1-4ea6-ab68-afcd6dc2e794")
        email_data = mock_send.call_args.args[0]
        self.assertEqual(email_data["from"], "reports@example.com")
        self.assertEqual(email_data["to"], ["a@b.com"])
        self.assertEqual(email_data["attachments"][0]["filename"], "r.pdf")
        self.assertEqual(email_data["attachments"][0]["content"], list(b"%PDF"))

    @patch("safe_report.mailer.resend.Emails.send")
    def test_missing_id(self, mock_send):
        mock_send.return_value = {}
        with self.assertRaises(DeliveryFailure):
            self.channel.send(["a@b.com"], "Subject", "<p>hi</p>", "r.pdf", b"%PDF")

    @patch("safe_report.mailer.resend.Emails.send")
    def test_transport_error(self, mock_send):
        mock_send.side_effect = RuntimeError("connection reset")
        with self.assertRaises(DeliveryFailure):
            self.channel.send(["a@b.com"], "Subject", "<p>hi</p>", "r.pdf", b"%PDF")

    @patch("safe_report.mailer.resend.Domains.list")
    def test_verify_failure(self, mock_list):
        mock_list.side_effect = RuntimeError("invalid api key")
        with self.assertRaises(DeliveryFailure):
            self.channel.verify()


if __name__ == '__main__':
    unittest.main()
