"""Dependency injection container for tradewire."""

from dataclasses import dataclass
from typing import Optional

from ..config.config_loader import ConfigLoader
from ..config.config_models import TradewireConfig
from ..logging import TradewireLogger
from ..resilience import RetryEngine
from ..transport import RequestsTransport, Transport, TransportPool
from ...application.commands.run_workers import WorkerGroup


@dataclass
class DIContainer:
    """
    Dependency injection container for tradewire.

    Assembles all components with proper dependency injection.
    This container is created once at application startup; the engine it
    holds is shared by every worker, transports are not.
    """

    config: TradewireConfig
    logger: TradewireLogger
    engine: RetryEngine
    transport_pool: TransportPool
    worker_group: WorkerGroup

    @classmethod
    def create(cls, config_path: Optional[str] = None) -> "DIContainer":
        """
        Create and wire all dependencies.

        Args:
            config_path: Optional path to configuration file

        Returns:
            DIContainer with all dependencies wired
        """
        config = ConfigLoader.load(config_path)
        return cls.from_config(config)

    @classmethod
    def from_config(cls, config: TradewireConfig) -> "DIContainer":
        """Wire dependencies from an already loaded configuration."""
        logger = TradewireLogger.configure(
            level=config.logging.level,
            log_file=config.logging.file,
            console=config.logging.console,
            rotation=config.logging.rotation,
            retention_days=config.logging.retention_days,
        )

        engine = RetryEngine(config.to_retry_config())

        transport_config = config.transport

        def create_transport(identity: str) -> Transport:
            return RequestsTransport(
                identity,
                base_url=transport_config.base_url,
                data_url=transport_config.data_url,
                headers=transport_config.headers,
                timeout=transport_config.timeout,
            )

        transport_pool = TransportPool(
            create_transport,
            max_transports=config.workers.max_transports,
        )

        worker_group = WorkerGroup(engine=engine, pool=transport_pool)

        return cls(
            config=config,
            logger=logger,
            engine=engine,
            transport_pool=transport_pool,
            worker_group=worker_group,
        )

    def close(self) -> None:
        """Release any transports still leased."""
        self.transport_pool.close()
