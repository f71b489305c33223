"""Pool that issues exclusive transports to workers and reclaims them."""

import threading
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, List, Optional

from ...domain.exceptions import TransportOwnershipError
from ..logging import TradewireLogger, logging_context
from .base import Transport

TransportFactory = Callable[[str], Transport]


class TransportPool:
    """
    Issues one exclusive transport per worker identity.

    `acquire` creates a new transport owned by the calling thread;
    `release` closes it. An identity can hold at most one transport at a
    time, and asking for a second one is an error rather than a silent
    share. The pool lock only guards its bookkeeping; transports are
    created and closed outside it.

    Example:
        >>> pool = TransportPool(lambda identity: RequestsTransport(identity, url))
        >>> with pool.lease("worker-1") as transport:
        ...     engine.execute(lambda: transport.execute(request))
    """

    def __init__(self, factory: TransportFactory, max_transports: Optional[int] = None):
        """
        Initialize transport pool.

        Args:
            factory: Builds a transport for a worker identity
            max_transports: Upper bound on simultaneously leased transports
        """
        if max_transports is not None and max_transports < 1:
            raise ValueError("max_transports must be >= 1")

        self._factory = factory
        self._max_transports = max_transports
        self._leased: Dict[str, Optional[Transport]] = {}
        self._lock = threading.Lock()
        self._closed = False

        self.logger = TradewireLogger.get_instance()

    def acquire(self, identity: str) -> Transport:
        """
        Create a transport owned exclusively by the calling thread.

        Args:
            identity: Worker identity, unique among live leases

        Raises:
            TransportOwnershipError: Identity already holds a transport,
                the pool is full, or the pool is closed
        """
        with self._lock:
            if self._closed:
                raise TransportOwnershipError("Transport pool is closed")
            if identity in self._leased:
                raise TransportOwnershipError(
                    f"Worker {identity!r} already holds a transport; "
                    "release it before acquiring another"
                )
            if self._max_transports is not None and len(self._leased) >= self._max_transports:
                raise TransportOwnershipError(
                    f"Transport pool exhausted ({self._max_transports} leased)"
                )
            # Reserve the identity while the transport is built.
            self._leased[identity] = None

        try:
            transport = self._factory(identity)
        except Exception:
            with self._lock:
                self._leased.pop(identity, None)
            raise

        with self._lock:
            self._leased[identity] = transport

        with logging_context(operation="transport_acquired", worker_id=identity):
            self.logger.info(
                f"Transport leased to {identity}",
                extra={"active_transports": len(self._leased)}
            )
        return transport

    def release(self, transport: Transport) -> None:
        """
        Take a transport back and close it.

        The lease is only dropped once the transport has closed, so a refused
        close leaves it tracked and the owner can release it later.

        Raises:
            TransportOwnershipError: The transport was not issued by this
                pool, was already released, or has a request in flight
        """
        with self._lock:
            if self._leased.get(transport.identity) is not transport:
                raise TransportOwnershipError(
                    f"Transport {transport.identity!r} is not leased from this pool"
                )

        transport.close()

        with self._lock:
            if self._leased.get(transport.identity) is not transport:
                raise TransportOwnershipError(
                    f"Transport {transport.identity!r} was already released"
                )
            del self._leased[transport.identity]

        with logging_context(operation="transport_released", worker_id=transport.identity):
            self.logger.info(
                f"Transport released by {transport.identity}",
                extra={"request_count": transport.request_count}
            )

    @contextmanager
    def lease(self, identity: str) -> Iterator[Transport]:
        """Acquire a transport for the duration of a `with` block."""
        transport = self.acquire(identity)
        try:
            yield transport
        finally:
            self.release(transport)

    def active_identities(self) -> List[str]:
        with self._lock:
            return sorted(self._leased)

    def __len__(self) -> int:
        with self._lock:
            return len(self._leased)

    def close(self) -> None:
        """
        Release every outstanding transport and refuse new leases.

        Every transport is attempted; transports that refuse to close stay
        leased and the first refusal is raised afterwards.
        """
        with self._lock:
            self._closed = True
            outstanding = [t for t in self._leased.values() if t is not None]

        first_error: Optional[TransportOwnershipError] = None
        for transport in outstanding:
            try:
                self.release(transport)
            except TransportOwnershipError as e:
                self.logger.warning(
                    f"Transport {transport.identity} not released on pool close",
                    extra={"worker_id": transport.identity, "error_message": str(e)}
                )
                if first_error is None:
                    first_error = e

        if first_error is not None:
            raise first_error
