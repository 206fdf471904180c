"""
Log Ingestion Module

This module polls AWS CloudWatch Logs incrementally:
- Log group / stream selection and configuration validation
- Time directive rendering for date-rolled group and stream names
- Per-stream checkpoints so restarts neither re-emit nor lose events
- Concurrent retrieval with failure isolation per stream

Architecture:
- Base log client interface and a boto3 implementation
- ResolvedPlan built once from validated configuration
- Poller state machine driving retrieval, emission and checkpointing
- Record sinks receiving emitted events
"""

from .errors import (
    PollerError,
    ConfigurationError,
    TransientRetrievalError,
    RetrievalTimeoutError,
    SourceNotFoundError,
    AuthorizationError,
    PartialCycleFailure,
    CheckpointError,
    SinkError,
)
from .time_layout import formatLayout, toUnixMillis, fromUnixMillis
from .config import InputConfig, SourceSelector, PollConfig, ResolvedPlan, StartAt, validate
from .schema import RawEvent, EmittedEvent
from .base import BaseLogClient
from .checkpoint import CheckpointStore, MemoryCheckpointStore, FileCheckpointStore
from .sinks import RecordSink, JsonLinesSink, CallbackSink
from .cloudwatch_client import CloudWatchLogsClient
from .poller import Poller, PollerState, CycleReport, Clock, SystemClock

__all__ = [
    'PollerError',
    'ConfigurationError',
    'TransientRetrievalError',
    'RetrievalTimeoutError',
    'SourceNotFoundError',
    'AuthorizationError',
    'PartialCycleFailure',
    'CheckpointError',
    'SinkError',
    'formatLayout',
    'toUnixMillis',
    'fromUnixMillis',
    'InputConfig',
    'SourceSelector',
    'PollConfig',
    'ResolvedPlan',
    'StartAt',
    'validate',
    'RawEvent',
    'EmittedEvent',
    'BaseLogClient',
    'CheckpointStore',
    'MemoryCheckpointStore',
    'FileCheckpointStore',
    'RecordSink',
    'JsonLinesSink',
    'CallbackSink',
    'CloudWatchLogsClient',
    'Poller',
    'PollerState',
    'CycleReport',
    'Clock',
    'SystemClock',
]
