"""Dynamic factory for mail classes.

Attribute access on a :class:`MailFactory` names a mail class; calling the
result creates an instance, configured from the ``[mail]`` section where a
synthetic constructor exists for that class::

    mail = ServiceFactory.create("email")

    # SmtpTransport("mail.example.com", 587, "tls") plus credentials from config
    transport = mail.smtp_transport("mail.example.com", 587, "tls")

    # Message("subject") with From/Reply-To/Bcc headers from config
    message = mail.message("subject").add_to("somebody@example.com")

    # other factory methods: Attachment.from_path("my-document.pdf")
    attachment = mail.attachment.from_path("my-document.pdf")

    # shortcut for mail.mailer().send(message)
    mail.send(message)

Recognised configuration keys::

    [mail]
    from      = "someone@example.com"
    from_name = "Someone"
    replyto   = "someoneelse@example.com"
    bcc       = "archive@example.com"

    transport = smtp          ; mail (default), sendmail, smtp, null
    host      = "mail.example.com"
    port      = 587
    ssl       = tls
    username  = "user"
    password  = "secret"
    authmode  = login
"""
from __future__ import annotations

import logging
from typing import Any, Callable, ClassVar, Dict, Iterator, Mapping, MutableSequence, Optional, Tuple

from service_adapters.errors import ConstructionError, RendererError, UnknownClassError

from .library import (
    Attachment,
    MailTransport,
    Mailer,
    Message,
    NullTransport,
    SendmailTransport,
    SmtpTransport,
)
from .rendering import Appearances, Renderer

LOGGER = logging.getLogger(__name__)

MAIL_CLASSES: Dict[str, type] = {
    "Attachment": Attachment,
    "MailTransport": MailTransport,
    "Mailer": Mailer,
    "Message": Message,
    "NullTransport": NullTransport,
    "SendmailTransport": SendmailTransport,
    "SmtpTransport": SmtpTransport,
}


def canonicalize(name: str) -> str:
    """Turn ``smtp_transport`` (or ``smtpTransport``) into ``SmtpTransport``."""

    return "".join(segment[:1].upper() + segment[1:] for segment in name.split("_") if segment)


def register_mail_class(name: str, cls: type) -> None:
    MAIL_CLASSES[canonicalize(name)] = cls


class BoundMailClass:
    """A mail class selected through attribute access on a :class:`MailFactory`."""

    def __init__(self, factory: "MailFactory", class_name: str) -> None:
        self._factory = factory
        self._class_name = class_name

    @property
    def class_name(self) -> str:
        return self._class_name

    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        return self._factory._construct(self._class_name, args, kwargs)

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)

        target = MAIL_CLASSES.get(self._class_name)
        if target is None:
            raise UnknownClassError(f"Unknown mail class [{self._class_name}].")
        try:
            return getattr(target, name)
        except AttributeError:
            raise UnknownClassError(
                f"Unknown mail class method [{self._class_name}.{name}]."
            ) from None

    def __repr__(self) -> str:
        return f"<BoundMailClass {self._class_name}>"


class MailFactory:
    """Creates mail objects, filling in defaults from the service configuration."""

    SYNTHETIC_CONSTRUCTORS: ClassVar[Dict[str, str]] = {
        "SmtpTransport": "_new_smtp_transport",
        "SendmailTransport": "_new_sendmail_transport",
        "MailTransport": "_new_mail_transport",
        "Message": "_new_message",
        "Mailer": "_new_mailer",
    }

    # config key, setter, whether a ``<key>_name`` value is passed along
    MESSAGE_HEADERS: ClassVar[Tuple[Tuple[str, str, bool], ...]] = (
        ("returnto", "set_return_to", False),
        ("from", "set_from", True),
        ("sender", "set_sender", False),
        ("replyto", "set_reply_to", True),
        ("bcc", "set_bcc", True),
    )

    def __init__(
        self, config: Optional[Mapping[str, Any]] = None, renderer: Optional[Renderer] = None
    ) -> None:
        self.config: Dict[str, Any] = dict(config or {})
        self.renderer = renderer
        self._template: Optional[str] = None
        self._parameters: Dict[str, Any] = {}

    def __getattr__(self, name: str) -> BoundMailClass:
        if name.startswith("_"):
            raise AttributeError(name)
        return BoundMailClass(self, self._resolve(name))

    def __iter__(self) -> Iterator[Tuple[str, Any]]:
        return iter(self._parameters.items())

    def build(self, name: str, *args: Any, **kwargs: Any) -> Any:
        """Create the mail object called ``name``; same as ``getattr(self, name)(*args)``."""

        return self._construct(self._resolve(name), args, kwargs)

    @property
    def template_name(self) -> Optional[str]:
        return self._template

    @property
    def template_parameters(self) -> Dict[str, Any]:
        return self._parameters

    def send(
        self, message: Message, failed_recipients: Optional[MutableSequence[str]] = None
    ) -> int:
        """Send ``message`` with a mailer configured from the service configuration."""

        return self.build("mailer").send(message, failed_recipients)

    def message_from_template(
        self,
        template: str,
        parameters: Optional[Mapping[str, Any]] = None,
        appearances: Appearances = None,
        prefix: str = "email/",
        renderer: Optional[Renderer] = None,
    ) -> Optional[Message]:
        """Create a message from a rendered template.

        The first line of the output becomes the subject and the rest the
        body. The template sees ``message`` (the message being built) and
        ``mail`` (this factory) next to the given parameters, so recipients
        and attachments can be added from inside the template.

        Returns None when the template renders nothing.
        """

        renderer = renderer or self.renderer
        if renderer is None:
            raise RendererError("No renderer available for mail templates")

        message = self.build("message")

        self._template = prefix + template
        self._parameters = dict(parameters or {})
        self._parameters["message"] = message
        self._parameters["mail"] = self

        output = renderer.render(self, appearances)
        if not output:
            LOGGER.warning("Template %s rendered no output", self._template)
            return None

        if "\n" not in output:
            output += "\n"

        subject, body = output.split("\n", 1)
        message.set_subject(subject.rstrip("\r"))
        message.set_body(body)
        return message

    def send_from_template(
        self,
        template: str,
        parameters: Optional[Mapping[str, Any]] = None,
        appearances: Appearances = None,
        prefix: str = "email/",
        renderer: Optional[Renderer] = None,
    ) -> Optional[int]:
        """Render a message with :meth:`message_from_template` and send it."""

        message = self.message_from_template(template, parameters, appearances, prefix, renderer)
        if message is None:
            return None

        return self.send(message)

    def _resolve(self, name: str) -> str:
        class_name = canonicalize(name)
        if class_name not in self.SYNTHETIC_CONSTRUCTORS and class_name not in MAIL_CLASSES:
            raise UnknownClassError(f"Unknown mail class [{class_name}].")
        return class_name

    def _construct(self, class_name: str, args: Tuple[Any, ...], kwargs: Mapping[str, Any]) -> Any:
        method = self.SYNTHETIC_CONSTRUCTORS.get(class_name)
        if method is not None:
            constructor: Callable[..., Any] = getattr(self, method)
            return constructor(*args, **kwargs)

        cls = MAIL_CLASSES.get(class_name)
        if cls is None:
            raise UnknownClassError(f"Unknown mail class [{class_name}].")
        return cls(*args, **kwargs)

    def _setting(self, key: str) -> Any:
        value = self.config.get(key)
        return None if value is None or value == "" else value

    def _new_smtp_transport(self, host=None, port=None, ssl=None) -> SmtpTransport:
        transport = SmtpTransport()

        host = host or self._setting("host")
        port = port or self._setting("port")
        ssl = ssl or self._setting("ssl")

        if host:
            transport.set_host(host)
        if port:
            transport.set_port(port)
        if ssl:
            transport.set_encryption(ssl)

        if self._setting("username"):
            transport.set_username(self._setting("username"))
        if self._setting("password"):
            transport.set_password(self._setting("password"))
        if self._setting("authmode"):
            transport.set_auth_mode(self._setting("authmode"))
        if self._setting("timeout"):
            transport.set_timeout(self._setting("timeout"))

        return transport

    def _new_sendmail_transport(self, command=None) -> SendmailTransport:
        if command:
            return SendmailTransport(command)
        if self._setting("sendmail"):
            return SendmailTransport(self._setting("sendmail"))
        return SendmailTransport()

    def _new_mail_transport(self, extra=None) -> MailTransport:
        if extra:
            return MailTransport(extra)
        if self._setting("extra"):
            return MailTransport(self._setting("extra"))
        return MailTransport()

    def _new_message(self, *args: Any, **kwargs: Any) -> Message:
        message = Message(*args, **kwargs)

        for key, setter, with_name in self.MESSAGE_HEADERS:
            address = self._setting(key)
            if not address:
                continue

            name = self._setting(f"{key}_name") if with_name else None
            if name:
                getattr(message, setter)(address, name)
            else:
                getattr(message, setter)(address)

        return message

    def _new_mailer(self, *args: Any, **kwargs: Any) -> Mailer:
        transport_name = canonicalize(self._setting("transport") or "mail") + "Transport"
        LOGGER.debug("Creating mailer with %s", transport_name)

        transport = self._construct(self._resolve(transport_name), args, kwargs)
        if not transport:
            raise ConstructionError("Failed to create the transport")

        return Mailer(transport)
