"""Service adapter implementations."""

from service_adapters.errors import (
    ConstructionError,
    RendererError,
    ServiceError,
    ServiceNotFoundError,
    TransportError,
    UnknownClassError,
)

from .base import BaseService
from .factory import ServiceFactory
from .mail_service import MailService
from .pdf_service import PdfDocument, WkhtmltopdfService
from .redis_service import RedisConnectionParams, RedisService

__all__ = [
    "BaseService",
    "ConstructionError",
    "MailService",
    "PdfDocument",
    "RedisConnectionParams",
    "RedisService",
    "RendererError",
    "ServiceError",
    "ServiceFactory",
    "ServiceNotFoundError",
    "TransportError",
    "UnknownClassError",
    "WkhtmltopdfService",
]
