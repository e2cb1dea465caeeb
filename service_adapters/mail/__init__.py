"""Mail message construction, delivery and templating."""

from .factory import MAIL_CLASSES, BoundMailClass, MailFactory, canonicalize, register_mail_class
from .library import (
    Attachment,
    MailTransport,
    Mailer,
    Message,
    NullTransport,
    SendmailTransport,
    SmtpTransport,
    Transport,
)
from .rendering import JinjaRenderer, Renderable, Renderer

__all__ = [
    "Attachment",
    "BoundMailClass",
    "JinjaRenderer",
    "MAIL_CLASSES",
    "MailFactory",
    "MailTransport",
    "Mailer",
    "Message",
    "NullTransport",
    "Renderable",
    "Renderer",
    "SendmailTransport",
    "SmtpTransport",
    "Transport",
    "canonicalize",
    "register_mail_class",
]
