"""
CloudWatch Log Poller

Main orchestration module that wires configuration, the CloudWatch Logs
client, checkpoint storage and the record sink around the poller.
"""

import sys
import signal
import logging
from typing import Any, Dict, Optional
import click

from cloudwatch_poller.utils.config_loader import ConfigLoader, buildInputConfig
from cloudwatch_poller.utils.logger import setupLogging
from cloudwatch_poller.utils.metrics import MetricsCollector
from cloudwatch_poller.ingestion.checkpoint import (
    CheckpointStore,
    FileCheckpointStore,
    MemoryCheckpointStore,
)
from cloudwatch_poller.ingestion.cloudwatch_client import CloudWatchLogsClient
from cloudwatch_poller.ingestion.errors import CheckpointError, ConfigurationError
from cloudwatch_poller.ingestion.poller import CycleReport, Poller
from cloudwatch_poller.ingestion.sinks import JsonLinesSink, RecordSink


class LogPollingPipeline:
    """
    Main pipeline orchestrator.

    Coordinates:
    1. Configuration loading and validation
    2. CloudWatch Logs client creation
    3. Checkpoint storage
    4. Polling and record emission
    """

    def __init__(
        self,
        config_path: str,
        checkpoint_path: Optional[str] = None,
        sink: Optional[RecordSink] = None,
        client: Optional[CloudWatchLogsClient] = None,
        log_level: Optional[str] = None
    ):
        """
        Initialize the pipeline.

        Args:
            config_path: Path to configuration file
            checkpoint_path: Checkpoint file overriding checkpoint.path in the config
            sink: Record sink, JSON lines on stdout by default
            client: Log client, built from the cloudwatch section by default
            log_level: Log level overriding logging.level in the config

        Raises:
            FileNotFoundError: If config file not found
            ConfigurationError: If config validation fails
        """
        # Load configuration
        self.config_loader = ConfigLoader(config_path)
        self.config = self.config_loader.load()

        # Setup logging
        setupLogging(self.config, log_level)
        self.logger = logging.getLogger(self.__class__.__name__)

        if not self.config_loader.validate():
            raise ConfigurationError("Missing required configuration section: cloudwatch")

        # Validate selectors and polling parameters before touching AWS
        self.input_config = buildInputConfig(self.config.get('cloudwatch'))
        self.plan = self.input_config.build()

        self.metrics = MetricsCollector()

        self.logger.info("Initializing pipeline components...")

        clientConfig = self.config.get('client') or {}
        self.client = client or CloudWatchLogsClient(
            region=self.plan.region,
            profile=self.plan.profile,
            connectTimeout=float(clientConfig.get('connect_timeout', 10)),
            readTimeout=float(clientConfig.get('read_timeout', 30)),
            maxAttempts=int(clientConfig.get('max_attempts', 3)),
        )

        self.store = self._buildCheckpointStore(checkpoint_path)
        self.sink = sink or JsonLinesSink(sys.stdout)

        pollerConfig = self.config.get('poller') or {}
        self.poller = Poller(
            plan=self.plan,
            client=self.client,
            store=self.store,
            sink=self.sink,
            maxConcurrency=int(pollerConfig.get('max_concurrency', 4)),
            retrievalTimeout=float(pollerConfig.get('retrieval_timeout', 30)),
            shutdownGracePeriod=float(pollerConfig.get('shutdown_grace_period', 10)),
            errorHandler=self._handleError,
            metrics=self.metrics,
        )

        self.logger.info(
            f"Pipeline initialized: groups={[g.value for g in self.plan.groups]} "
            f"streams={self.plan.streams.kind.value} start_at={self.plan.startAt.value}"
        )

    def _buildCheckpointStore(self, checkpoint_path: Optional[str]) -> CheckpointStore:
        path = checkpoint_path or self.config_loader.get('checkpoint.path')
        if path:
            self.logger.info(f"Using checkpoint file {path}")
            return FileCheckpointStore(path)

        self.logger.warning("No checkpoint path configured; checkpoints will not survive a restart")
        return MemoryCheckpointStore()

    def _handleError(self, error: Exception, context: Dict[str, Any]) -> None:
        extra = {k: context.get(k) for k in ('cycle', 'group', 'stream')}
        if context.get('fatal'):
            self.logger.critical(f"{type(error).__name__}: {error}", extra=extra)
        else:
            self.logger.warning(f"{type(error).__name__}: {error}", extra=extra)

    def run_once(self) -> CycleReport:
        """
        Run a single poll cycle.

        Returns:
            Report of the cycle
        """
        try:
            return self.poller.runOnce()
        finally:
            self.sink.flush()
            self.metrics.logMetrics()

    def run_continuous(self) -> int:
        """
        Poll until interrupted or a fatal error stops the poller.

        Returns:
            Process exit code
        """
        self.logger.info(f"Starting continuous polling (poll interval: {self.plan.pollInterval}s)")

        def handleSignal(signum, frame):
            raise KeyboardInterrupt()

        previous = signal.signal(signal.SIGTERM, handleSignal)
        self.poller.start()

        try:
            while not self.poller.wait(timeout=1.0):
                self.sink.flush()
        except KeyboardInterrupt:
            self.logger.info("Received interrupt signal, shutting down...")
        finally:
            self.poller.stop()
            signal.signal(signal.SIGTERM, previous)
            self.sink.flush()
            self.logger.info("Pipeline stopped")
            self.metrics.logMetrics()

        return 1 if self.poller.fatalError else 0

    def test_connections(self) -> bool:
        """
        Test connectivity to AWS.

        Returns:
            True if the connection succeeded
        """
        self.logger.info("Testing connections...")

        status = self.client.testConnection()
        self.logger.info(f"{self.client.__class__.__name__}: {'OK' if status else 'FAILED'}")
        return status

    def get_status(self) -> dict:
        return self.poller.getStatus()


@click.command()
@click.option(
    '--config',
    default='config/config.yaml',
    help='Path to configuration file'
)
@click.option(
    '--once',
    is_flag=True,
    help='Run a single poll cycle and exit'
)
@click.option(
    '--checkpoint-file',
    default=None,
    help='Checkpoint file (overrides checkpoint.path)'
)
@click.option(
    '--log-level',
    default=None,
    help='Log level (overrides logging.level)'
)
@click.option(
    '--test-connection',
    is_flag=True,
    help='Test the AWS connection and exit'
)
def cli(config, once, checkpoint_file, log_level, test_connection):
    """Poll CloudWatch log groups and write new events as JSON lines"""

    try:
        pipeline = LogPollingPipeline(config, checkpoint_path=checkpoint_file, log_level=log_level)
    except FileNotFoundError as e:
        click.echo(f"Error: Configuration file not found - {e}", err=True)
        sys.exit(2)
    except ConfigurationError as e:
        click.echo(f"Error: Invalid configuration - {e}", err=True)
        sys.exit(2)
    except CheckpointError as e:
        click.echo(f"Error: Invalid checkpoint file - {e}", err=True)
        sys.exit(2)

    if test_connection:
        sys.exit(0 if pipeline.test_connections() else 1)

    if once:
        try:
            report = pipeline.run_once()
        except Exception as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)
        sys.exit(1 if report.degraded else 0)

    sys.exit(pipeline.run_continuous())


if __name__ == '__main__':
    cli()
