"""
Transport abstraction and the single-owner rule.

HTTP client objects keep per-request connection state that is not safe to
share between in-flight requests. Locking such an object does not repair it,
so instead every transport belongs to exactly one worker thread: the thread
that created it. Any use from another thread, any overlapping request, and
any attempt to copy or pickle the transport raises TransportOwnershipError.
"""

import json
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from ...domain.exceptions import TransportOwnershipError


@dataclass(frozen=True)
class HttpRequest:
    """A single broker API request."""
    method: str
    path: str
    params: Optional[Mapping[str, Any]] = None
    json_body: Optional[Any] = None
    headers: Optional[Mapping[str, str]] = None
    use_data_url: bool = False


@dataclass
class HttpResponse:
    """Response returned by a transport."""
    status_code: int
    body: bytes
    headers: Dict[str, str] = field(default_factory=dict)
    request_id: int = 0
    worker_id: str = ""

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def json(self) -> Any:
        return json.loads(self.body) if self.body else None


class Transport(ABC):
    """
    Exclusively owned request channel.

    Subclasses implement `_send`; callers use `execute`, which enforces
    ownership before delegating.
    """

    def __init__(self, identity: str):
        self.identity = identity
        self._owner_thread = threading.get_ident()
        self._in_flight = False
        self._closed = False
        self._request_count = 0

    @property
    def request_count(self) -> int:
        return self._request_count

    @property
    def closed(self) -> bool:
        return self._closed

    def _check_owner(self) -> None:
        if self._closed:
            raise TransportOwnershipError(
                f"Transport {self.identity!r} has been released and cannot be used"
            )
        if threading.get_ident() != self._owner_thread:
            raise TransportOwnershipError(
                f"Transport {self.identity!r} used from a thread that does not own it. "
                "Each worker must acquire its own transport."
            )
        if self._in_flight:
            raise TransportOwnershipError(
                f"Transport {self.identity!r} already has a request in flight"
            )

    def execute(self, request: HttpRequest) -> HttpResponse:
        """
        Send `request` through this transport.

        Raises:
            TransportOwnershipError: Wrong thread, overlapping use, or closed
            NetworkError: The request never produced a response
            TradewireError: Error status, when the transport maps statuses
        """
        self._check_owner()
        self._in_flight = True
        try:
            self._request_count += 1
            return self._send(request, self._request_count)
        finally:
            self._in_flight = False

    @abstractmethod
    def _send(self, request: HttpRequest, request_id: int) -> HttpResponse:
        """Perform the request."""

    def close(self) -> None:
        """Release underlying connections. Refused while a request is in flight."""
        if self._closed:
            return
        if self._in_flight:
            raise TransportOwnershipError(
                f"Transport {self.identity!r} cannot be closed with a request in flight"
            )
        self._closed = True
        self._close()

    def _close(self) -> None:
        pass

    def __copy__(self):
        raise TransportOwnershipError("Transports are owned by one worker and cannot be copied")

    def __deepcopy__(self, memo):
        raise TransportOwnershipError("Transports are owned by one worker and cannot be copied")

    def __reduce_ex__(self, protocol):
        raise TransportOwnershipError("Transports are owned by one worker and cannot be pickled")

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(identity={self.identity!r}, "
            f"requests={self._request_count}, closed={self._closed})"
        )
