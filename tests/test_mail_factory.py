import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from service_adapters.errors import ConstructionError, UnknownClassError
from service_adapters.mail import (
    Attachment,
    BoundMailClass,
    MailFactory,
    MailTransport,
    Mailer,
    Message,
    NullTransport,
    SendmailTransport,
    SmtpTransport,
    canonicalize,
)

SMTP_CONFIG = {
    "transport": "smtp",
    "host": "mail.example.com",
    "port": "587",
    "ssl": "tls",
    "username": "user",
    "password": "secret",
    "authmode": "login",
}


class CanonicalizeTests(unittest.TestCase):
    def test_segments_are_capitalized_and_joined(self):
        self.assertEqual("SmtpTransport", canonicalize("smtp_transport"))
        self.assertEqual("MailTransport", canonicalize("mailTransport"))
        self.assertEqual("Message", canonicalize("message"))
        self.assertEqual("NullTransport", canonicalize("null__transport"))


class DispatchTests(unittest.TestCase):
    def test_attribute_access_binds_a_new_proxy(self):
        mail = MailFactory(SMTP_CONFIG)

        bound = mail.smtp_transport

        self.assertIsInstance(bound, BoundMailClass)
        self.assertEqual("SmtpTransport", bound.class_name)
        self.assertIsInstance(mail.message(), Message)

    def test_attribute_call_and_build_are_equivalent(self):
        mail = MailFactory({**SMTP_CONFIG, "from": "a@x.com", "sendmail": "/bin/sendmail -t"})

        for name in ("smtp_transport", "sendmail_transport", "mail_transport", "mailer"):
            with self.subTest(name=name):
                via_attribute = getattr(mail, name)()
                via_build = mail.build(name)
                self.assertIs(type(via_attribute), type(via_build))
                self.assertEqual(self._state(via_attribute), self._state(via_build))

        self.assertEqual(mail.message().items(), mail.build("message").items())

    def _state(self, obj):
        if isinstance(obj, Mailer):
            return type(obj.transport), vars(obj.transport)
        return vars(obj)

    def test_plain_classes_use_their_constructor(self):
        mail = MailFactory()

        self.assertIsInstance(mail.null_transport(), NullTransport)
        attachment = mail.attachment(b"data", "notes.txt")
        self.assertIsInstance(attachment, Attachment)
        self.assertEqual("text/plain", attachment.content_type)

    def test_bound_proxy_forwards_class_methods(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "report.pdf"
            path.write_bytes(b"%PDF")

            attachment = MailFactory().attachment.from_path(str(path))

        self.assertEqual("report.pdf", attachment.filename)
        self.assertEqual("application/pdf", attachment.content_type)
        self.assertEqual(b"%PDF", attachment.data)

    def test_unknown_class(self):
        mail = MailFactory()

        with self.assertRaises(UnknownClassError) as ctx:
            mail.fax_machine()

        self.assertIn("[FaxMachine]", str(ctx.exception))
        self.assertFalse(hasattr(mail, "fax_machine"))
        with self.assertRaises(UnknownClassError):
            mail.build("fax_machine")

    def test_unknown_method_on_bound_proxy(self):
        with self.assertRaises(UnknownClassError) as ctx:
            MailFactory().attachment.from_carrier_pigeon()

        self.assertIn("Attachment.from_carrier_pigeon", str(ctx.exception))

    def test_private_names_are_not_dispatched(self):
        with self.assertRaises(AttributeError) as ctx:
            MailFactory()._secret

        self.assertNotIsInstance(ctx.exception, UnknownClassError)


class SyntheticConstructorTests(unittest.TestCase):
    def test_smtp_transport_from_config(self):
        transport = MailFactory(SMTP_CONFIG).smtp_transport()

        self.assertEqual("mail.example.com", transport.host)
        self.assertEqual(587, transport.port)
        self.assertEqual("tls", transport.encryption)
        self.assertEqual("user", transport.username)
        self.assertEqual("secret", transport.password)
        self.assertEqual("login", transport.auth_mode)

    def test_smtp_arguments_override_config(self):
        transport = MailFactory(SMTP_CONFIG).smtp_transport("relay.internal", 2525)

        self.assertEqual("relay.internal", transport.host)
        self.assertEqual(2525, transport.port)
        self.assertEqual("tls", transport.encryption)

    def test_smtp_refuses_unsupported_encryption(self):
        config = {"ssl": "starttls", "username": "u", "password": "p"}

        with self.assertRaises(ValueError):
            MailFactory(config).smtp_transport()

    def test_smtp_without_config_keeps_library_defaults(self):
        transport = MailFactory().smtp_transport()

        self.assertEqual("localhost", transport.host)
        self.assertEqual(25, transport.port)
        self.assertIsNone(transport.encryption)
        self.assertIsNone(transport.username)

    def test_sendmail_transport(self):
        self.assertEqual(
            "/usr/sbin/sendmail -bs", MailFactory().sendmail_transport("/usr/sbin/sendmail -bs").command
        )
        self.assertEqual(
            "/opt/sendmail -t", MailFactory({"sendmail": "/opt/sendmail -t"}).sendmail_transport().command
        )
        self.assertEqual(SendmailTransport.DEFAULT_COMMAND, MailFactory().sendmail_transport().command)

    def test_mail_transport_is_not_a_plain_sendmail_transport(self):
        transport = MailFactory({"extra": "-f bounce@example.com"}).mail_transport()

        self.assertIsInstance(transport, MailTransport)
        self.assertEqual(["-f", "bounce@example.com"], transport.arguments()[-2:])
        self.assertIsNone(MailFactory().mail_transport().extra)
        self.assertEqual("-f other@example.com", MailFactory().mail_transport("-f other@example.com").extra)

    def test_message_headers_from_config(self):
        config = {"from": "a@x.com", "from_name": "A", "bcc": "b@x.com"}

        with patch("service_adapters.mail.factory.Message") as message_cls:
            MailFactory(config).message("Subject")

        message_cls.assert_called_once_with("Subject")
        message = message_cls.return_value
        message.set_from.assert_called_once_with("a@x.com", "A")
        message.set_bcc.assert_called_once_with("b@x.com")
        message.set_reply_to.assert_not_called()
        message.set_return_to.assert_not_called()
        message.set_sender.assert_not_called()

    def test_names_ignored_for_return_path_and_sender(self):
        config = {
            "returnto": "bounce@x.com",
            "returnto_name": "Bounce",
            "sender": "robot@x.com",
            "sender_name": "Robot",
            "replyto": "help@x.com",
            "replyto_name": "Help",
        }

        with patch("service_adapters.mail.factory.Message") as message_cls:
            MailFactory(config).message()

        message = message_cls.return_value
        message.set_return_to.assert_called_once_with("bounce@x.com")
        message.set_sender.assert_called_once_with("robot@x.com")
        message.set_reply_to.assert_called_once_with("help@x.com", "Help")

    def test_message_headers_applied(self):
        config = {"from": "a@x.com", "from_name": "A", "bcc": "b@x.com", "replyto": ""}

        message = MailFactory(config).message("Hello", "Body")

        self.assertEqual("A <a@x.com>", str(message["From"]))
        self.assertEqual("b@x.com", str(message["Bcc"]))
        self.assertIsNone(message["Reply-To"])
        self.assertEqual("Hello", str(message["Subject"]))
        self.assertEqual("Body", message.body)

    def test_mailer_uses_configured_transport(self):
        self.assertIsInstance(MailFactory(SMTP_CONFIG).mailer().transport, SmtpTransport)
        self.assertIsInstance(MailFactory({"transport": "null"}).mailer().transport, NullTransport)
        self.assertIsInstance(
            MailFactory({"transport": "sendmail"}).mailer().transport, SendmailTransport
        )
        self.assertIsInstance(MailFactory().mailer().transport, MailTransport)

    def test_mailer_passes_arguments_to_transport(self):
        mailer = MailFactory(SMTP_CONFIG).mailer("relay.internal")

        self.assertEqual("relay.internal", mailer.transport.host)

    def test_mailer_with_unknown_transport(self):
        with self.assertRaises(UnknownClassError):
            MailFactory({"transport": "pigeon"}).mailer()

    def test_mailer_fails_without_transport(self):
        with patch.object(MailFactory, "_new_smtp_transport", return_value=None):
            with self.assertRaises(ConstructionError):
                MailFactory(SMTP_CONFIG).mailer()


class SendTests(unittest.TestCase):
    def test_send_builds_mailer_and_counts_recipients(self):
        mail = MailFactory({"transport": "null", "bcc": "archive@x.com"})
        message = mail.message("Hi", "Body").add_to("c@x.com")

        self.assertEqual(2, mail.send(message))

    def test_send_passes_failed_recipients(self):
        mail = MailFactory({"transport": "null"})
        message = mail.message("Hi")
        failed = []

        with patch.object(NullTransport, "send", return_value=0) as send_mock:
            self.assertEqual(0, mail.send(message, failed))

        send_mock.assert_called_once_with(message, failed)


if __name__ == "__main__":
    unittest.main()
