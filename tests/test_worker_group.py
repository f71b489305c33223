"""Tests for the worker group: per-worker transports over one shared engine."""

import threading
import time

import pytest

from tradewire.application.commands import RunWorkersCommand, WorkerGroup
from tradewire.domain.exceptions import (
    AuthenticationError,
    ConnectionTimeoutError,
)
from tradewire.infrastructure.resilience import (
    CancellationToken,
    CircuitBreakerState,
    RetryConfig,
    RetryEngine,
)
from tradewire.infrastructure.transport import (
    HttpRequest,
    HttpResponse,
    Transport,
    TransportPool,
)


class ScriptedTransport(Transport):
    """Raises queued errors first, then answers 200."""

    def __init__(self, identity, errors=()):
        super().__init__(identity)
        self.errors = list(errors)
        self.thread_ids = set()

    def _send(self, request, request_id):
        self.thread_ids.add(threading.get_ident())
        if self.errors:
            raise self.errors.pop(0)
        return HttpResponse(status_code=200, body=b"{}", request_id=request_id, worker_id=self.identity)


@pytest.fixture
def engine():
    return RetryEngine(
        RetryConfig(max_attempts=3, base_delay=0.001, max_delay=0.01),
        sleep=lambda seconds: None,
        random_source=lambda: 0.5,
    )


def _group(engine, errors_for=lambda identity: ()):
    created = []
    lock = threading.Lock()

    def factory(identity):
        transport = ScriptedTransport(identity, errors_for(identity))
        with lock:
            created.append(transport)
        return transport

    pool = TransportPool(factory)
    return WorkerGroup(engine=engine, pool=pool), pool, created


REQUESTS = [HttpRequest("GET", "/v2/clock"), HttpRequest("GET", "/v2/account")]


class TestRunWorkersCommand:
    """Validation of the command object."""

    def test_requires_requests(self):
        with pytest.raises(ValueError):
            RunWorkersCommand(requests=[])

    def test_requires_a_worker(self):
        with pytest.raises(ValueError):
            RunWorkersCommand(requests=REQUESTS, num_workers=0)

    def test_negative_request_count(self):
        with pytest.raises(ValueError):
            RunWorkersCommand(requests=REQUESTS, requests_per_worker=-1)


class TestWorkerGroup:
    """Test suite for WorkerGroup.handle."""

    def test_all_workers_succeed(self, engine):
        """Test that every worker sends its share through its own transport."""
        group, pool, created = _group(engine)

        report = group.handle(RunWorkersCommand(
            requests=REQUESTS, num_workers=4, requests_per_worker=5,
        ))

        assert report.successes == 20
        assert report.failures == 0
        assert sorted(w.worker_id for w in report.workers) == [
            "worker-1", "worker-2", "worker-3", "worker-4"
        ]
        assert all(w.total == 5 for w in report.workers)

        # One transport per worker, each used from exactly one thread
        assert len(created) == 4
        assert all(t.request_count == 5 for t in created)
        assert all(len(t.thread_ids) == 1 for t in created)
        assert all(t.closed for t in created)
        assert len(pool) == 0

    def test_retryable_errors_recovered(self, engine):
        """Test that transient failures are retried inside a worker."""
        group, _, created = _group(
            engine,
            errors_for=lambda identity: [ConnectionTimeoutError("timed out")],
        )

        report = group.handle(RunWorkersCommand(
            requests=REQUESTS, num_workers=3, requests_per_worker=2,
        ))

        assert report.successes == 6
        assert report.failures == 0
        assert all(t.request_count == 3 for t in created)

    def test_failures_counted_by_type(self, engine):
        """Test that non-retryable failures are tallied per error class."""
        group, _, _ = _group(
            engine,
            errors_for=lambda identity: (
                [AuthenticationError("HTTP 401")] * 2 if identity == "worker-1" else []
            ),
        )

        report = group.handle(RunWorkersCommand(
            requests=REQUESTS, num_workers=2, requests_per_worker=3,
        ))

        stats = {w.worker_id: w for w in report.workers}
        assert stats["worker-1"].failures == 2
        assert stats["worker-1"].successes == 1
        assert stats["worker-1"].errors == {"AuthenticationError": 2}
        assert stats["worker-2"].successes == 3
        assert report.errors == {"AuthenticationError": 2}

    def test_shared_breaker_sees_all_workers(self):
        """Test that failures from different workers open one shared circuit."""
        engine = RetryEngine(
            RetryConfig(max_attempts=1, circuit_failure_threshold=4),
            sleep=lambda seconds: None,
        )
        group, _, _ = _group(
            engine,
            errors_for=lambda identity: [AuthenticationError("HTTP 401")] * 10,
        )

        report = group.handle(RunWorkersCommand(
            requests=REQUESTS, num_workers=2, requests_per_worker=5,
        ))

        assert engine.circuit_breaker.state == CircuitBreakerState.OPEN
        assert report.errors.get("CircuitBreakerError", 0) > 0
        assert report.successes == 0

    def test_cancelled_before_start(self, engine):
        """Test that a fired token stops every worker without sending."""
        group, pool, created = _group(engine)
        token = CancellationToken()
        token.cancel()

        report = group.handle(
            RunWorkersCommand(requests=REQUESTS, num_workers=3, requests_per_worker=5),
            cancel_token=token,
        )

        assert report.successes == 0
        assert all(w.cancelled for w in report.workers)
        assert all(t.request_count == 0 for t in created)
        assert len(pool) == 0

    def test_zero_requests(self, engine):
        """Test that workers with nothing to do still lease and release."""
        group, pool, created = _group(engine)

        report = group.handle(RunWorkersCommand(
            requests=REQUESTS, num_workers=2, requests_per_worker=0,
        ))

        assert report.successes == 0
        assert len(created) == 2
        assert len(pool) == 0


class Interrupted(BaseException):
    """Stands in for KeyboardInterrupt arriving in a worker."""


class TestWorkerGroupInterrupted:
    """An interrupted handle() must stop the remaining workers."""

    def _interrupting_group(self, engine):
        created = []
        lock = threading.Lock()

        class SlowTransport(ScriptedTransport):
            def _send(self, request, request_id):
                if self.identity == "worker-1":
                    raise Interrupted()
                time.sleep(0.005)
                return super()._send(request, request_id)

        def factory(identity):
            transport = SlowTransport(identity)
            with lock:
                created.append(transport)
            return transport

        pool = TransportPool(factory)
        return WorkerGroup(engine=engine, pool=pool), pool, created

    def test_interrupt_cancels_other_workers(self, engine):
        """Test that the remaining workers stop early instead of finishing every request."""
        group, pool, created = self._interrupting_group(engine)
        start = time.monotonic()

        with pytest.raises(Interrupted):
            group.handle(RunWorkersCommand(
                requests=REQUESTS, num_workers=3, requests_per_worker=2000,
            ))

        assert time.monotonic() - start < 5.0
        others = [t for t in created if t.identity != "worker-1"]
        assert len(others) == 2
        assert all(t.request_count < 2000 for t in others)
        assert len(pool) == 0

    def test_interrupt_fires_caller_token(self, engine):
        """Test that the caller's token is cancelled when handle() is interrupted."""
        group, _, _ = self._interrupting_group(engine)
        token = CancellationToken()

        with pytest.raises(Interrupted):
            group.handle(
                RunWorkersCommand(requests=REQUESTS, num_workers=2, requests_per_worker=2000),
                cancel_token=token,
            )

        assert token.cancelled
