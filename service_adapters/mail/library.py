"""Mail classes created by the mail factory.

Messages are :class:`email.message.EmailMessage` objects; transports hand
them to an SMTP server (through :mod:`btx_lib_mail`) or a local sendmail
binary.
"""
from __future__ import annotations

import copy
import io
import logging
import mimetypes
import shlex
import smtplib
import subprocess
from email.message import EmailMessage
from email.policy import default as default_policy
from email.utils import formataddr, getaddresses
from pathlib import Path
from typing import List, MutableSequence, Optional, Sequence

from btx_lib_mail import BtxMailError, DeliveryOptions
from btx_lib_mail.lib_mail import SmtplibTransport

from service_adapters.errors import TransportError

LOGGER = logging.getLogger(__name__)

RECIPIENT_HEADERS = ("To", "Cc", "Bcc")


def _address(address: str, name: Optional[str] = None) -> str:
    return formataddr((name, address)) if name else address


class Attachment:
    """File content to be attached to a :class:`Message`."""

    def __init__(
        self,
        data: bytes | str,
        filename: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> None:
        self.data = data.encode("utf-8") if isinstance(data, str) else data
        self.filename = filename
        self.content_type = (
            content_type
            or (mimetypes.guess_type(filename)[0] if filename else None)
            or "application/octet-stream"
        )

    @classmethod
    def from_path(
        cls,
        path: str | Path,
        filename: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> "Attachment":
        path = Path(path)
        return cls(path.read_bytes(), filename or path.name, content_type)


class Message(EmailMessage):
    """An email message with fluent header setters."""

    def __init__(
        self,
        subject: Optional[str] = None,
        body: Optional[str] = None,
        content_type: Optional[str] = None,
        charset: Optional[str] = None,
        policy=None,
    ) -> None:
        super().__init__(policy=policy or default_policy)
        self.body: Optional[str] = None
        self.body_subtype = (content_type or "text/plain").split("/", 1)[-1]
        self.body_charset = charset or "utf-8"
        if subject is not None:
            self.set_subject(subject)
        if body is not None:
            self.set_body(body)

    def _replace_header(self, header: str, value: Optional[str]) -> "Message":
        del self[header]
        if value is not None:
            self[header] = value
        return self

    def set_subject(self, subject: str) -> "Message":
        return self._replace_header("Subject", subject)

    def set_body(self, body: str, content_type: Optional[str] = None) -> "Message":
        """Set the text body, keeping any attachments already added."""

        if content_type:
            self.body_subtype = content_type.split("/", 1)[-1]
        self.body = body

        if not self.is_multipart():
            self.set_content(body, subtype=self.body_subtype, charset=self.body_charset)
            return self

        part = self.get_body(preferencelist=("plain", "html"))
        if part is None:
            part = type(self)(policy=self.policy)
            self.get_payload().insert(0, part)
        part.set_content(body, subtype=self.body_subtype, charset=self.body_charset)
        return self

    def set_return_to(self, address: str) -> "Message":
        return self._replace_header("Return-Path", address)

    def set_from(self, address: str, name: Optional[str] = None) -> "Message":
        return self._replace_header("From", _address(address, name))

    def set_sender(self, address: str) -> "Message":
        return self._replace_header("Sender", address)

    def set_reply_to(self, address: str, name: Optional[str] = None) -> "Message":
        return self._replace_header("Reply-To", _address(address, name))

    def set_to(self, address: str, name: Optional[str] = None) -> "Message":
        return self._replace_header("To", _address(address, name))

    def set_bcc(self, address: str, name: Optional[str] = None) -> "Message":
        return self._replace_header("Bcc", _address(address, name))

    def add_to(self, address: str, name: Optional[str] = None) -> "Message":
        return self._append_address("To", address, name)

    def add_cc(self, address: str, name: Optional[str] = None) -> "Message":
        return self._append_address("Cc", address, name)

    def add_bcc(self, address: str, name: Optional[str] = None) -> "Message":
        return self._append_address("Bcc", address, name)

    def _append_address(self, header: str, address: str, name: Optional[str]) -> "Message":
        current = self.get(header)
        entry = _address(address, name)
        return self._replace_header(header, f"{current}, {entry}" if current else entry)

    def attach_file(self, attachment: Attachment) -> "Message":
        maintype, _, subtype = attachment.content_type.partition("/")
        self.add_attachment(
            attachment.data,
            maintype=maintype,
            subtype=subtype or "octet-stream",
            filename=attachment.filename,
        )
        return self

    def recipients(self) -> List[str]:
        """Every address in the To, Cc and Bcc headers."""

        values = [str(value) for header in RECIPIENT_HEADERS for value in self.get_all(header, [])]
        return [address for _name, address in getaddresses(values) if address]


def envelope_sender(message: Message) -> str:
    """The SMTP envelope sender: Return-Path, else Sender, else the first From address."""

    for header in ("Return-Path", "Sender", "From"):
        value = message.get(header)
        if not value:
            continue
        addresses = [address for _name, address in getaddresses([str(value)]) if address]
        if addresses:
            return addresses[0]

    raise TransportError("Message has no sender address")


def wire_bytes(message: Message) -> bytes:
    """Serialize ``message`` for SMTP, with CRLF line ends and without Bcc."""

    clone = copy.copy(message)
    del clone["Bcc"]
    return clone.as_bytes(policy=clone.policy.clone(linesep="\r\n"))


class Transport:
    """Base class for objects that deliver :class:`Message` instances."""

    def send(
        self, message: Message, failed_recipients: Optional[MutableSequence[str]] = None
    ) -> int:
        raise NotImplementedError


class NullTransport(Transport):
    """Accepts every message and delivers nothing."""

    def send(
        self, message: Message, failed_recipients: Optional[MutableSequence[str]] = None
    ) -> int:
        return len(message.recipients())


class SmtpTransport(Transport):
    """Delivers messages to an SMTP server through :mod:`btx_lib_mail`.

    Each recipient gets its own delivery of the composed message. A recipient
    the server refuses is reported through ``failed_recipients``; any other
    failure aborts the send with :class:`TransportError`.

    Only STARTTLS (``tls``) is available as encryption. The auth mode is
    validated and kept, while the mechanism itself is negotiated with the
    server by :meth:`smtplib.SMTP.login`.
    """

    ENCRYPTIONS = ("tls",)
    AUTH_MODES = ("login", "plain", "cram-md5")
    DEFAULT_TIMEOUT = 30.0

    def __init__(
        self,
        host: str = "localhost",
        port: int = 25,
        encryption: Optional[str] = None,
    ) -> None:
        self.host = host
        self.port = int(port)
        self.encryption: Optional[str] = None
        self.username: Optional[str] = None
        self.password: Optional[str] = None
        self.auth_mode: Optional[str] = None
        self.timeout: Optional[float] = None
        self.set_encryption(encryption)

    def set_host(self, host: str) -> "SmtpTransport":
        self.host = host
        return self

    def set_port(self, port: int | str) -> "SmtpTransport":
        self.port = int(port)
        return self

    def set_encryption(self, encryption: Optional[str]) -> "SmtpTransport":
        if not encryption:
            self.encryption = None
            return self

        encryption = encryption.lower()
        if encryption not in self.ENCRYPTIONS:
            raise ValueError(f"Unsupported SMTP encryption [{encryption}].")
        self.encryption = encryption
        return self

    def set_username(self, username: str) -> "SmtpTransport":
        self.username = username
        return self

    def set_password(self, password: str) -> "SmtpTransport":
        self.password = password
        return self

    def set_auth_mode(self, auth_mode: str) -> "SmtpTransport":
        auth_mode = auth_mode.lower()
        if auth_mode not in self.AUTH_MODES:
            raise ValueError(f"Unsupported SMTP auth mode [{auth_mode}].")
        self.auth_mode = auth_mode
        return self

    def set_timeout(self, timeout: float | str) -> "SmtpTransport":
        self.timeout = float(timeout)
        return self

    def delivery_options(self) -> DeliveryOptions:
        credentials = (self.username, self.password or "") if self.username else None
        return DeliveryOptions(
            credentials=credentials,
            use_starttls=self.encryption == "tls",
            starttls_verify=True,
            timeout=self.timeout or self.DEFAULT_TIMEOUT,
        )

    def send(
        self, message: Message, failed_recipients: Optional[MutableSequence[str]] = None
    ) -> int:
        recipients = message.recipients()
        if not recipients:
            return 0

        host = f"{self.host}:{self.port}"
        sender = envelope_sender(message)
        payload = io.BytesIO(wire_bytes(message))
        delivery = self.delivery_options()
        smtp = SmtplibTransport()

        refused: List[str] = []
        for recipient in recipients:
            try:
                smtp.deliver(
                    host=host,
                    sender=sender,
                    recipient=recipient,
                    message=payload,
                    delivery=delivery,
                )
            except smtplib.SMTPRecipientsRefused:
                refused.append(recipient)
            except (smtplib.SMTPException, OSError, BtxMailError) as exc:
                LOGGER.exception("SMTP delivery to %s failed", host)
                raise TransportError(f"SMTP delivery to {host} failed") from exc

        if refused:
            LOGGER.warning("SMTP server refused recipients: %s", refused)
            if failed_recipients is not None:
                failed_recipients.extend(refused)

        return len(recipients) - len(refused)


class SendmailTransport(Transport):
    """Pipes messages into a local sendmail binary."""

    DEFAULT_COMMAND = "/usr/sbin/sendmail -t -i"

    def __init__(self, command: Optional[str | Sequence[str]] = None) -> None:
        self.command = command or self.DEFAULT_COMMAND

    def set_command(self, command: str | Sequence[str]) -> "SendmailTransport":
        self.command = command
        return self

    def arguments(self) -> List[str]:
        if isinstance(self.command, str):
            return shlex.split(self.command)
        return list(self.command)

    def send(
        self, message: Message, failed_recipients: Optional[MutableSequence[str]] = None
    ) -> int:
        arguments = self.arguments()
        try:
            subprocess.run(arguments, input=message.as_bytes(), capture_output=True, check=True)
        except (subprocess.CalledProcessError, OSError) as exc:
            LOGGER.exception("Sendmail command %s failed", arguments)
            raise TransportError(f"Sendmail command {arguments[0]} failed") from exc

        return len(message.recipients())


class MailTransport(SendmailTransport):
    """Local mail delivery with additional sendmail parameters appended."""

    def __init__(self, extra: Optional[str | Sequence[str]] = None) -> None:
        super().__init__()
        self.extra = extra

    def set_extra_params(self, extra: str | Sequence[str]) -> "MailTransport":
        self.extra = extra
        return self

    def arguments(self) -> List[str]:
        arguments = super().arguments()
        if isinstance(self.extra, str):
            arguments.extend(shlex.split(self.extra))
        elif self.extra:
            arguments.extend(self.extra)
        return arguments


class Mailer:
    """Sends messages through a transport."""

    def __init__(self, transport: Transport) -> None:
        self.transport = transport

    def send(
        self, message: Message, failed_recipients: Optional[MutableSequence[str]] = None
    ) -> int:
        LOGGER.debug(
            "Sending %r through %s", message.get("Subject"), type(self.transport).__name__
        )
        return self.transport.send(message, failed_recipients)
