"""Transport backed by a private requests.Session."""

from typing import Mapping, Optional

import requests

from ...domain.exceptions import (
    ConnectionRefusedByPeerError,
    ConnectionResetByPeerError,
    ConnectionTimeoutError,
    DnsResolutionError,
    HostUnreachableError,
    NetworkError,
    NetworkUnreachableError,
    ProxyConnectionError,
    TlsHandshakeError,
    map_status_to_error,
)
from ..logging import get_logger
from .base import HttpRequest, HttpResponse, Transport

logger = get_logger(__name__)

# Substrings of urllib3/socket error messages, checked in order.
_CONNECTION_ERROR_HINTS = (
    (("name or service not known", "nodename nor servname", "getaddrinfo failed",
      "temporary failure in name resolution", "failed to resolve"), DnsResolutionError),
    (("connection refused",), ConnectionRefusedByPeerError),
    (("connection reset", "connection aborted", "remotedisconnected"), ConnectionResetByPeerError),
    (("network is unreachable",), NetworkUnreachableError),
    (("no route to host", "host is unreachable"), HostUnreachableError),
)


def translate_requests_error(error: requests.RequestException) -> NetworkError:
    """
    Map a requests exception onto the network error taxonomy.

    Args:
        error: Exception raised by requests

    Returns:
        Matching NetworkError subclass instance
    """
    message = str(error)

    if isinstance(error, requests.exceptions.SSLError):
        return TlsHandshakeError(message)
    if isinstance(error, requests.exceptions.ProxyError):
        return ProxyConnectionError(message)
    if isinstance(error, requests.exceptions.Timeout):
        return ConnectionTimeoutError(message)

    lowered = message.lower()
    for hints, error_cls in _CONNECTION_ERROR_HINTS:
        if any(hint in lowered for hint in hints):
            return error_cls(message)

    if isinstance(error, requests.exceptions.ConnectionError):
        return ConnectionResetByPeerError(message)
    return NetworkError(message)


class RequestsTransport(Transport):
    """
    One worker's HTTP channel to the broker API.

    `requests.Session` shares its connection pool between every request made
    through it, so each worker gets its own session through this class.

    Example:
        >>> transport = RequestsTransport(
        ...     "worker-1",
        ...     base_url="https://paper-api.example.com",
        ...     headers={"X-API-KEY": key},
        ... )
        >>> transport.execute(HttpRequest("GET", "/v2/account")).json()
    """

    def __init__(
        self,
        identity: str,
        base_url: str,
        data_url: Optional[str] = None,
        headers: Optional[Mapping[str, str]] = None,
        timeout: float = 30.0,
        raise_for_status: bool = True,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize transport.

        Args:
            identity: Owning worker's identity (for logging)
            base_url: Trading API base URL
            data_url: Market data API base URL (defaults to base_url)
            headers: Headers sent with every request (authentication)
            timeout: Per-request timeout in seconds
            raise_for_status: Raise taxonomy errors for non-2xx responses
            session: Pre-built session (tests); a new one is created if None
        """
        super().__init__(identity)
        self.base_url = base_url.rstrip("/")
        self.data_url = (data_url or base_url).rstrip("/")
        self.timeout = timeout
        self.raise_for_status = raise_for_status

        self._session = session if session is not None else requests.Session()
        if headers:
            self._session.headers.update(headers)

        logger.info(
            f"Initializing transport {identity}",
            extra={"worker_id": identity, "base_url": self.base_url}
        )

    def _send(self, request: HttpRequest, request_id: int) -> HttpResponse:
        base = self.data_url if request.use_data_url else self.base_url
        url = f"{base}{request.path}"

        logger.debug(
            f"Request #{request_id}: {request.method} {request.path}",
            extra={"worker_id": self.identity, "request_id": request_id}
        )

        try:
            raw = self._session.request(
                request.method,
                url,
                params=request.params,
                json=request.json_body,
                headers=dict(request.headers) if request.headers else None,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise translate_requests_error(e) from e

        response = HttpResponse(
            status_code=raw.status_code,
            body=raw.content,
            headers=dict(raw.headers),
            request_id=request_id,
            worker_id=self.identity,
        )

        if self.raise_for_status and not response.is_success:
            logger.warning(
                f"Request #{request_id} failed with status {response.status_code}",
                extra={
                    "worker_id": self.identity,
                    "request_id": request_id,
                    "status_code": response.status_code
                }
            )
            raise map_status_to_error(response.status_code, response.text, response.headers)

        return response

    def _close(self) -> None:
        self._session.close()
        logger.info(
            f"Shutting down transport {self.identity} after {self.request_count} requests",
            extra={"worker_id": self.identity, "request_count": self.request_count}
        )
