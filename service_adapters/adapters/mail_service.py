"""Mail service handing out a configured :class:`MailFactory`."""
from __future__ import annotations

from typing import Any, Mapping

from service_adapters.config import settings
from service_adapters.mail import JinjaRenderer, MailFactory

from .base import BaseService


class MailService(BaseService):
    """Builds the mail factory; templates are read from ``template_dir``."""

    name = "mail"
    shared = True

    def build(self, config: Mapping[str, Any]) -> MailFactory:
        template_dir = config.get("template_dir") or settings.template_dir
        return MailFactory(config, renderer=JinjaRenderer(template_dir))
