"""
Resilience demo - runs offline against a simulated flaky broker.

Shows the engine at work from several workers at once:

1. Transient failures (timeouts, 502s) retried with exponential backoff
2. A rejected request (401) raised immediately without retries
3. The shared circuit breaker opening after sustained failures
4. Each worker leasing its own transport from the pool

Run with: python examples/resilience_demo.py
"""

import random
import time
from pathlib import Path

from tradewire.application.commands import RunWorkersCommand, WorkerGroup
from tradewire.domain.exceptions import (
    AuthenticationError,
    ConnectionTimeoutError,
    ServiceUnavailableError,
)
from tradewire.infrastructure.logging import TradewireLogger, logging_context
from tradewire.infrastructure.resilience import RetryConfig, RetryEngine
from tradewire.infrastructure.transport import (
    HttpRequest,
    HttpResponse,
    Transport,
    TransportPool,
)


class SimulatedBrokerTransport(Transport):
    """Fails a configurable share of requests with transient errors."""

    def __init__(self, identity: str, failure_rate: float, seed: str):
        super().__init__(identity)
        self.failure_rate = failure_rate
        self._random = random.Random(seed)

    def _send(self, request: HttpRequest, request_id: int) -> HttpResponse:
        if request.path == "/v2/account" and "bad-key" in (request.headers or {}).values():
            raise AuthenticationError("HTTP 401: invalid key", status_code=401)

        roll = self._random.random()
        if roll < self.failure_rate / 2:
            raise ConnectionTimeoutError("read timed out")
        if roll < self.failure_rate:
            raise ServiceUnavailableError("HTTP 502", status_code=502)

        return HttpResponse(
            status_code=200,
            body=b'{"is_open": true}',
            request_id=request_id,
            worker_id=self.identity,
        )


def run_group(title: str, failure_rate: float, requests, engine: RetryEngine, logger):
    pool = TransportPool(
        lambda identity: SimulatedBrokerTransport(identity, failure_rate, seed=identity)
    )
    group = WorkerGroup(engine=engine, pool=pool)

    with logging_context(operation=title):
        report = group.handle(RunWorkersCommand(
            requests=requests,
            num_workers=4,
            requests_per_worker=5,
        ))

    logger.info(
        f"{title}: {report.successes} succeeded, {report.failures} failed",
        extra={"errors": report.errors}
    )
    status = engine.get_circuit_breaker_status()
    logger.info(
        f"Circuit breaker is {status.state.value}",
        extra={"failure_count": status.failure_count}
    )


def main():
    logger = TradewireLogger.configure(
        level="INFO",
        log_file=Path("./demo_logs/tradewire_demo.log"),
        console=True,
    )

    engine = RetryEngine(RetryConfig(
        max_attempts=4,
        base_delay=0.01,
        max_delay=0.2,
        circuit_failure_threshold=5,
        circuit_recovery_timeout=1.0,
    ))

    clock = [HttpRequest("GET", "/v2/clock")]
    run_group("flaky_network", 0.3, clock, engine, logger)

    bad_key = [HttpRequest("GET", "/v2/account", headers={"APCA-API-KEY-ID": "bad-key"})]
    run_group("rejected_credentials", 0.0, bad_key, engine, logger)

    logger.info("Waiting out the circuit breaker recovery timeout")
    time.sleep(1.1)
    run_group("after_outage", 0.0, clock, engine, logger)


if __name__ == "__main__":
    main()
