"""Command handlers for worker operations."""

from .run_workers import RunWorkersCommand, WorkerGroup, WorkerGroupReport, WorkerStats

__all__ = [
    "RunWorkersCommand",
    "WorkerGroup",
    "WorkerGroupReport",
    "WorkerStats",
]
