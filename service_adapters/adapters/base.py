"""Service interface for configuration-driven client construction."""
from __future__ import annotations

import abc
import copy
import importlib.util
from typing import Any, ClassVar, Dict, Mapping, Optional

from service_adapters.config import merge_config


class BaseService(abc.ABC):
    """Defines the contract for all service adapters."""

    name: ClassVar[str] = ""
    default_config: ClassVar[Mapping[str, Any]] = {}
    shared: ClassVar[bool] = False
    required_module: ClassVar[Optional[str]] = None

    @classmethod
    def get_default_config(cls, environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
        """Return a fresh copy of the static defaults for this service."""

        return copy.deepcopy(dict(cls.default_config))

    @classmethod
    def effective_config(
        cls,
        config: Optional[Mapping[str, Any]] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> Dict[str, Any]:
        """Merge the caller's configuration over the computed defaults."""

        return merge_config(cls.get_default_config(environ), config)

    @classmethod
    def has_service(cls) -> bool:
        """Return True when the backing library can be imported."""

        if cls.required_module is None:
            return True
        return importlib.util.find_spec(cls.required_module) is not None

    @abc.abstractmethod
    def build(self, config: Mapping[str, Any]) -> Any:
        """Construct and configure the client object."""
