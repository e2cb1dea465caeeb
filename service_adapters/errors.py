"""Exceptions raised while building service clients."""


class ServiceError(Exception):
    """Base exception for service-related failures."""


class ConstructionError(ServiceError):
    """Raised when a client object could not be assembled."""


class UnknownClassError(ServiceError, AttributeError):
    """Raised when a dynamically dispatched name matches no known class."""


class ServiceNotFoundError(ServiceError, LookupError):
    """Raised when no registered service answers to the requested name."""


class TransportError(ServiceError):
    """Raised when a mail transport fails to hand a message over."""


class RendererError(ServiceError):
    """Raised when template rendering is requested without a renderer."""
