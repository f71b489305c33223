"""Domain exceptions for tradewire.

Error taxonomy for broker API traffic:

- Network: the request never produced an HTTP response.
- Rate limit: the provider quota was exceeded (HTTP 429).
- Service: the provider failed or is unavailable (5xx, maintenance).
- Client: the request itself was rejected (4xx). Never retried.

`CircuitBreakerError` is deliberately outside those four groups: it means
"we did not try", not "the remote service failed".
"""

import socket
import ssl
from dataclasses import dataclass
from typing import Mapping, Optional, Type


@dataclass(frozen=True)
class RateLimitInfo:
    """
    Rate limit details reported by the provider.

    Attributes:
        retry_after: Seconds the server asked us to wait
        limit: Requests allowed per window
        remaining: Requests left in the current window
        reset_at: Unix timestamp when the window resets
    """
    retry_after: float
    limit: int
    remaining: int
    reset_at: int


class TradewireError(Exception):
    """Base exception for tradewire errors."""

    retryable: bool = False

    def __init__(self, message: str = "", status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


# Network errors

class NetworkError(TradewireError):
    """Base exception for transport-level failures."""
    pass


class ConnectionRefusedByPeerError(NetworkError):
    """Raised when the remote host refuses the connection."""
    pass


class ConnectionTimeoutError(NetworkError):
    """Raised when connecting or reading times out."""
    retryable = True


class ConnectionResetByPeerError(NetworkError):
    """Raised when the connection is reset mid-request."""
    retryable = True


class DnsResolutionError(NetworkError):
    """Raised when the host name cannot be resolved."""
    pass


class TlsHandshakeError(NetworkError):
    """Raised when the TLS handshake fails."""
    pass


class ProxyConnectionError(NetworkError):
    """Raised when the configured proxy cannot be reached."""
    pass


class NetworkUnreachableError(NetworkError):
    """Raised when the network is unreachable."""
    retryable = True


class HostUnreachableError(NetworkError):
    """Raised when the host is unreachable."""
    pass


# Rate limiting

class RateLimitExceededError(TradewireError):
    """Raised when the provider reports the request quota as exhausted."""

    retryable = True

    def __init__(
        self,
        message: str = "",
        status_code: Optional[int] = 429,
        rate_limit: Optional[RateLimitInfo] = None,
    ):
        super().__init__(message, status_code=status_code)
        self.rate_limit = rate_limit

    @property
    def retry_after(self) -> Optional[float]:
        """Server-requested wait in seconds, if known."""
        return self.rate_limit.retry_after if self.rate_limit else None


# Service errors

class ServiceError(TradewireError):
    """Base exception for provider-side failures."""
    pass


class InternalServerError(ServiceError):
    """Raised for HTTP 500 and unclassified failures."""
    pass


class ServiceUnavailableError(ServiceError):
    """Raised when the provider reports itself unavailable (HTTP 502)."""
    retryable = True


class ApiMaintenanceError(ServiceError):
    """Raised while the provider API is under maintenance (HTTP 503)."""
    retryable = True


class GatewayTimeoutError(ServiceError):
    """Raised when an upstream gateway times out (HTTP 504)."""
    retryable = True


# Client errors

class ClientError(TradewireError):
    """Base exception for rejected requests. Never retried."""
    pass


class InvalidRequestError(ClientError):
    """Raised for malformed requests (HTTP 400)."""
    pass


class AuthenticationError(ClientError):
    """Raised when API credentials are rejected (HTTP 401)."""
    pass


class SubscriptionRequiredError(ClientError):
    """Raised when the data feed requires a subscription (HTTP 402)."""
    pass


class PermissionDeniedError(ClientError):
    """Raised when the account lacks permission (HTTP 403)."""
    pass


class NotFoundError(ClientError):
    """Raised when the resource does not exist (HTTP 404)."""
    pass


class ConflictError(ClientError):
    """Raised on duplicate client order ids and similar conflicts (HTTP 409)."""
    pass


class ValidationError(ClientError):
    """Raised when a field value is rejected (HTTP 422)."""
    pass


# Engine-level errors

class CircuitBreakerError(TradewireError):
    """Raised when circuit breaker is open and blocking requests."""
    pass


class OperationCancelledError(TradewireError):
    """Raised when a cancellation token fires before or between attempts."""
    pass


class TransportOwnershipError(RuntimeError):
    """
    Raised when a transport is used outside its owning worker.

    This is a programming error, not a runtime fault: it is never retried
    and never counted against the circuit breaker.
    """
    pass


_STATUS_ERRORS: Mapping[int, Type[TradewireError]] = {
    400: InvalidRequestError,
    401: AuthenticationError,
    402: SubscriptionRequiredError,
    403: PermissionDeniedError,
    404: NotFoundError,
    409: ConflictError,
    422: ValidationError,
    429: RateLimitExceededError,
    500: InternalServerError,
    502: ServiceUnavailableError,
    503: ApiMaintenanceError,
    504: GatewayTimeoutError,
}


def extract_rate_limit_info(headers: Optional[Mapping[str, str]]) -> Optional[RateLimitInfo]:
    """
    Extract rate limit information from response headers.

    Args:
        headers: Response headers (case-insensitive lookup is attempted)

    Returns:
        RateLimitInfo when all four rate limit headers parse, otherwise None
    """
    if not headers:
        return None

    lowered = {str(k).lower(): v for k, v in headers.items()}

    try:
        return RateLimitInfo(
            retry_after=float(int(lowered["retry-after"])),
            limit=int(lowered["x-ratelimit-limit"]),
            remaining=int(lowered["x-ratelimit-remaining"]),
            reset_at=int(lowered["x-ratelimit-reset"]),
        )
    except (KeyError, TypeError, ValueError):
        return None


def map_status_to_error(
    status_code: int,
    body: str = "",
    headers: Optional[Mapping[str, str]] = None,
) -> TradewireError:
    """
    Map an HTTP error status to a taxonomy exception instance.

    Unknown statuses map to InternalServerError.
    """
    error_cls = _STATUS_ERRORS.get(status_code, InternalServerError)
    message = f"HTTP {status_code}"
    if body:
        message = f"{message}: {body[:200]}"

    if error_cls is RateLimitExceededError:
        return RateLimitExceededError(
            message,
            status_code=status_code,
            rate_limit=extract_rate_limit_info(headers),
        )
    return error_cls(message, status_code=status_code)


def classify_error(error: BaseException) -> TradewireError:
    """
    Classify any exception onto the tradewire taxonomy.

    Taxonomy errors are returned unchanged. Standard library socket errors
    map onto the matching network error. Anything else is treated as an
    InternalServerError, which is not retryable.

    Args:
        error: Exception raised by an operation

    Returns:
        The taxonomy error describing it (used for retry decisions only;
        the original exception is what callers see)
    """
    if isinstance(error, TradewireError):
        return error

    message = str(error)

    if isinstance(error, socket.gaierror):
        return DnsResolutionError(message)
    if isinstance(error, ssl.SSLError):
        return TlsHandshakeError(message)
    if isinstance(error, ConnectionRefusedError):
        return ConnectionRefusedByPeerError(message)
    if isinstance(error, (ConnectionResetError, ConnectionAbortedError, BrokenPipeError)):
        return ConnectionResetByPeerError(message)
    if isinstance(error, (TimeoutError, socket.timeout)):
        return ConnectionTimeoutError(message)
    if isinstance(error, OSError) and "network is unreachable" in message.lower():
        return NetworkUnreachableError(message)
    if isinstance(error, OSError) and "no route to host" in message.lower():
        return HostUnreachableError(message)

    return InternalServerError(message)


def is_retryable(error: BaseException) -> bool:
    """Return True if the error is worth another attempt."""
    return classify_error(error).retryable
