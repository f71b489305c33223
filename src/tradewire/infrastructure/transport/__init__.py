"""Per-worker transports and the pool that issues them."""

from .base import HttpRequest, HttpResponse, Transport
from .pool import TransportFactory, TransportPool
from .requests_transport import RequestsTransport, translate_requests_error

__all__ = [
    "HttpRequest",
    "HttpResponse",
    "Transport",
    "TransportFactory",
    "TransportPool",
    "RequestsTransport",
    "translate_requests_error",
]
