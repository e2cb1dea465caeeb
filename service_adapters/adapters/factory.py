"""Factory for building service clients by name."""
from __future__ import annotations

import logging
from typing import Any, Mapping, MutableMapping, Sequence, Type

from service_adapters.config import load_prefixed_env, load_service_config, settings
from service_adapters.errors import ServiceNotFoundError

from .base import BaseService
from .mail_service import MailService
from .pdf_service import WkhtmltopdfService
from .redis_service import RedisService

LOGGER = logging.getLogger(__name__)


class ServiceFactory:
    """Factory to instantiate service clients by name.

    Every call to :meth:`create` returns a new client; keeping shared
    instances is up to the caller (see :meth:`is_shared`).
    """

    _REGISTRY: MutableMapping[str, Type[BaseService]] = {
        "mail": MailService,
        "redis": RedisService,
        "wkhtmltopdf": WkhtmltopdfService,
    }

    # alias -> candidates, the first available one wins
    _ALIASES: MutableMapping[str, Sequence[str]] = {
        "email": ("mail",),
        "pdf": ("wkhtmltopdf",),
    }

    @classmethod
    def register(cls, name: str, service_cls: Type[BaseService]) -> None:
        cls._REGISTRY[name] = service_cls

    @classmethod
    def resolve(cls, name: str) -> Type[BaseService]:
        service_cls = cls._REGISTRY.get(name)
        if service_cls is not None:
            return service_cls

        for candidate in cls._ALIASES.get(name, ()):
            service_cls = cls._REGISTRY.get(candidate)
            if service_cls is not None and service_cls.has_service():
                return service_cls

        raise ServiceNotFoundError(f"Service '{name}' is not registered")

    @classmethod
    def is_shared(cls, name: str) -> bool:
        return cls.resolve(name).shared

    @classmethod
    def create(cls, name: str, config: Mapping[str, Any] | None = None) -> Any:
        service_cls = cls.resolve(name)

        file_config = cls._load_file_config(name)
        env_config = cls._load_env_config(name)
        merged_config = service_cls.effective_config({**file_config, **env_config, **(config or {})})

        LOGGER.debug("Building service '%s' with %s", name, service_cls.__name__)
        return service_cls().build(merged_config)

    @staticmethod
    def _load_file_config(name: str) -> Mapping[str, Any]:
        """Load the service section from the configured INI file."""

        if settings.service_config_path is None:
            return {}
        return load_service_config(settings.service_config_path).get(name, {})

    @staticmethod
    def _load_env_config(name: str) -> Mapping[str, Any]:
        """Load service-specific config from the environment."""

        prefix = f"{settings.service_env_prefix}{name.upper()}_"
        return load_prefixed_env(prefix)
