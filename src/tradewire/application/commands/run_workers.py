"""Run concurrent workers, each with its own transport, through one engine."""

import time
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from ...domain.exceptions import OperationCancelledError, TradewireError
from ...infrastructure.logging import TradewireLogger, logging_context
from ...infrastructure.resilience import CancellationToken, RetryEngine
from ...infrastructure.transport import HttpRequest, Transport, TransportPool


@dataclass
class RunWorkersCommand:
    """
    Command to drive requests from several workers at once.

    Each worker sends `requests_per_worker` requests, cycling through
    `requests` in order.
    """
    requests: Sequence[HttpRequest]
    num_workers: int = 4
    requests_per_worker: int = 10
    delay_between_requests: float = 0.0

    def __post_init__(self):
        if not self.requests:
            raise ValueError("at least one request is required")
        if self.num_workers < 1:
            raise ValueError("num_workers must be >= 1")
        if self.requests_per_worker < 0:
            raise ValueError("requests_per_worker must be >= 0")


@dataclass
class WorkerStats:
    """Outcome counters for one worker."""
    worker_id: str
    successes: int = 0
    failures: int = 0
    cancelled: bool = False
    errors: Dict[str, int] = field(default_factory=dict)
    elapsed_seconds: float = 0.0

    @property
    def total(self) -> int:
        return self.successes + self.failures


@dataclass
class WorkerGroupReport:
    """Aggregated result of a worker group run."""
    workers: List[WorkerStats]
    elapsed_seconds: float

    @property
    def successes(self) -> int:
        return sum(w.successes for w in self.workers)

    @property
    def failures(self) -> int:
        return sum(w.failures for w in self.workers)

    @property
    def errors(self) -> Dict[str, int]:
        totals: Counter = Counter()
        for worker in self.workers:
            totals.update(worker.errors)
        return dict(totals)


class WorkerGroup:
    """
    Handler for the run workers command.

    Every worker runs on its own thread, leases its own transport from the
    pool for its whole lifetime and hands it back at the end. Only the
    engine (its rate limiter and circuit breaker) is shared.
    """

    def __init__(self, engine: RetryEngine, pool: TransportPool):
        """
        Initialize handler.

        Args:
            engine: Shared retry engine
            pool: Pool issuing one transport per worker
        """
        self.engine = engine
        self.pool = pool
        self.logger = TradewireLogger.get_instance()

    def handle(
        self,
        command: RunWorkersCommand,
        cancel_token: Optional[CancellationToken] = None,
    ) -> WorkerGroupReport:
        """
        Execute the command.

        Args:
            command: What to run
            cancel_token: Stops every worker between requests when fired

        Returns:
            WorkerGroupReport with one WorkerStats per worker
        """
        start_time = time.monotonic()
        # Workers always watch a token so an interrupted handle() can stop them.
        if cancel_token is None:
            cancel_token = CancellationToken()

        self.logger.info(
            "Starting worker group",
            extra={
                "num_workers": command.num_workers,
                "requests_per_worker": command.requests_per_worker,
            }
        )

        with ThreadPoolExecutor(
            max_workers=command.num_workers,
            thread_name_prefix="tradewire-worker",
        ) as executor:
            futures = [
                executor.submit(self._run_worker, f"worker-{n}", command, cancel_token)
                for n in range(1, command.num_workers + 1)
            ]
            try:
                stats = [future.result() for future in futures]
            except BaseException:
                # Fire before the executor joins its threads on exit.
                cancel_token.cancel("worker group interrupted")
                self.logger.warning("Worker group interrupted, cancelling workers")
                raise

        report = WorkerGroupReport(
            workers=stats,
            elapsed_seconds=time.monotonic() - start_time,
        )

        self.logger.info(
            "Worker group finished",
            extra={
                "successes": report.successes,
                "failures": report.failures,
                "duration_seconds": round(report.elapsed_seconds, 3),
            }
        )
        return report

    def _run_worker(
        self,
        worker_id: str,
        command: RunWorkersCommand,
        cancel_token: Optional[CancellationToken],
    ) -> WorkerStats:
        stats = WorkerStats(worker_id=worker_id)
        start_time = time.monotonic()

        with logging_context(worker_id=worker_id):
            with self.pool.lease(worker_id) as transport:
                for i in range(command.requests_per_worker):
                    request = command.requests[i % len(command.requests)]
                    try:
                        self._send(transport, request, cancel_token)
                    except OperationCancelledError:
                        stats.cancelled = True
                        break
                    except TradewireError as e:
                        stats.failures += 1
                        error_type = type(e).__name__
                        stats.errors[error_type] = stats.errors.get(error_type, 0) + 1
                        self.logger.warning(
                            f"Request {i} failed: {error_type}",
                            extra={"error_message": str(e)}
                        )
                    else:
                        stats.successes += 1

                    if command.delay_between_requests:
                        if cancel_token is not None:
                            try:
                                cancel_token.sleep(command.delay_between_requests)
                            except OperationCancelledError:
                                stats.cancelled = True
                                break
                        else:
                            time.sleep(command.delay_between_requests)

        stats.elapsed_seconds = time.monotonic() - start_time
        return stats

    def _send(
        self,
        transport: Transport,
        request: HttpRequest,
        cancel_token: Optional[CancellationToken],
    ):
        def send_request():
            return transport.execute(request)

        return self.engine.execute(send_request, cancel_token=cancel_token)
