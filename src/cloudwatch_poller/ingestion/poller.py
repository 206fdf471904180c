# CloudWatch log poller
# Incremental polling and checkpointing over a ResolvedPlan.

from abc import ABC, abstractmethod
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set, Tuple
import logging
import threading
import time

from .base import BaseLogClient
from .checkpoint import CheckpointStore
from .config import GroupKind, ResolvedPlan, StartAt
from .errors import (
    AuthorizationError,
    CheckpointError,
    PartialCycleFailure,
    PollerError,
    RetrievalTimeoutError,
    SinkError,
    SourceNotFoundError,
    TransientRetrievalError,
)
from .schema import EmittedEvent, RawEvent
from .sinks import RecordSink
from .time_layout import asUtc, toUnixMillis
from cloudwatch_poller.utils.metrics import MetricsCollector


# How often the fan-in loop re-checks for a stop request
FAN_IN_POLL_SECONDS = 0.2

ErrorHandler = Callable[[Exception, Dict[str, Any]], None]


class PollerState(Enum):
    IDLE = "idle"
    POLLING = "polling"
    EMITTING = "emitting"


class Clock(ABC):

    @abstractmethod
    def now(self) -> datetime:
        pass


class SystemClock(Clock):

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


@dataclass
class PairReport:
    group: str
    stream: str
    fromMs: int
    checkpointBefore: Optional[int] = None
    checkpointAfter: Optional[int] = None
    eventsFetched: int = 0
    eventsEmitted: int = 0
    error: Optional[str] = None


@dataclass
class CycleReport:
    cycle: int
    startedAt: datetime
    finishedAt: Optional[datetime] = None
    durationMs: int = 0
    pairs: List[PairReport] = field(default_factory=list)
    failures: List[PollerError] = field(default_factory=list)
    cancelled: bool = False

    @property
    def eventsFetched(self) -> int:
        return sum(p.eventsFetched for p in self.pairs)

    @property
    def eventsEmitted(self) -> int:
        return sum(p.eventsEmitted for p in self.pairs)

    @property
    def succeeded(self) -> int:
        return sum(1 for p in self.pairs if p.error is None)

    @property
    def degraded(self) -> bool:
        return bool(self.failures)


Pair = Tuple[str, str]


class Poller:
    """
    Polls every (log group, log stream) pair selected by a ResolvedPlan.

    Each cycle renders dynamic names, enumerates pairs, fetches new events
    concurrently, then emits per pair and advances that pair's checkpoint
    only once its whole batch reached the sink. Failures of one pair never
    abort the others; AuthorizationError stops the poller.
    """

    def __init__(
        self,
        plan: ResolvedPlan,
        client: BaseLogClient,
        store: CheckpointStore,
        sink: RecordSink,
        clock: Optional[Clock] = None,
        maxConcurrency: int = 4,
        retrievalTimeout: float = 30.0,
        shutdownGracePeriod: float = 10.0,
        errorHandler: Optional[ErrorHandler] = None,
        metrics: Optional[MetricsCollector] = None
    ):
        self.plan = plan
        self.client = client
        self.store = store
        self.sink = sink
        self.clock = clock or SystemClock()
        self.maxConcurrency = max(1, maxConcurrency)
        self.retrievalTimeout = retrievalTimeout
        self.shutdownGracePeriod = shutdownGracePeriod
        self.errorHandler = errorHandler
        self.metrics = metrics or MetricsCollector()
        self.logger = logging.getLogger(self.__class__.__name__)

        self.state = PollerState.IDLE
        self.fatalError: Optional[AuthorizationError] = None
        self.lastReport: Optional[CycleReport] = None

        self._cycle = 0
        self._stopEvent = threading.Event()
        self._graceDeadline: Optional[float] = None
        self._thread: Optional[threading.Thread] = None
        self._executor: Optional[ThreadPoolExecutor] = None
        self._inFlight: Set[Pair] = set()
        self._inFlightLock = threading.Lock()

    # Lifecycle

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            raise RuntimeError("Poller is already running")

        self._stopEvent.clear()
        self._graceDeadline = None
        self.fatalError = None
        self._thread = threading.Thread(target=self._run, name='cloudwatch-poller', daemon=True)
        self._thread.start()
        self.logger.info(f"Poller started (poll interval: {self.plan.pollInterval}s, event limit: {self.plan.eventLimit})")

    def stop(self, timeout: Optional[float] = None) -> bool:
        """
        Request shutdown and wait for the polling thread.

        An interval sleep is aborted immediately. Retrievals already running
        get shutdownGracePeriod seconds to finish; batches fetched within
        that window are still emitted and checkpointed, the rest are dropped
        without touching their checkpoints.

        Returns:
            True if the polling thread exited
        """
        self._graceDeadline = time.monotonic() + self.shutdownGracePeriod
        self._stopEvent.set()

        stopped = True
        if self._thread is not None:
            self._thread.join(timeout if timeout is not None else self.shutdownGracePeriod + 1.0)
            stopped = not self._thread.is_alive()
            if not stopped:
                self.logger.warning("Polling thread did not exit within the grace period")

        self._shutdownExecutor()
        self.logger.info("Poller stopped")
        return stopped

    def wait(self, timeout: Optional[float] = None) -> bool:
        if self._thread is None:
            return True
        self._thread.join(timeout)
        return not self._thread.is_alive()

    def isRunning(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run(self) -> None:
        while not self._stopEvent.is_set():
            try:
                self.runOnce()
            except AuthorizationError as e:
                self.fatalError = e
                self.metrics.recordError(type(e).__name__)
                self._report(e, {'cycle': self._cycle, 'group': e.group, 'stream': e.stream, 'fatal': True})
                self._stopEvent.set()
                break
            except Exception as e:
                self.metrics.recordError('cycle')
                self._report(e, {'cycle': self._cycle})

            if self._stopEvent.wait(self.plan.pollInterval):
                break

        self.state = PollerState.IDLE

    def _getExecutor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self.maxConcurrency,
                thread_name_prefix='cloudwatch-fetch'
            )
        return self._executor

    def _shutdownExecutor(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None

    def _shouldAbandon(self) -> bool:
        if not self._stopEvent.is_set():
            return False
        return self._graceDeadline is None or time.monotonic() >= self._graceDeadline

    # Cycle

    def runOnce(self) -> CycleReport:
        """
        Run a single poll cycle.

        Returns:
            Report of the cycle

        Raises:
            AuthorizationError: If any API call was denied
        """
        self._cycle += 1
        cycleStart = asUtc(self.clock.now())
        report = CycleReport(cycle=self._cycle, startedAt=cycleStart)
        startT = time.monotonic()

        self.state = PollerState.POLLING
        try:
            pairs = self._enumeratePairs(cycleStart, report)
            futures = self._fetchAll(pairs, cycleStart, report)
            self._emitAll(futures, report)
        finally:
            self.state = PollerState.IDLE
            report.finishedAt = asUtc(self.clock.now())
            report.durationMs = int((time.monotonic() - startT) * 1000)
            self.lastReport = report
            self.metrics.recordCycle(report.durationMs, report.degraded)

        self.logger.info(
            f"Cycle {report.cycle} finished: pairs={len(report.pairs)} fetched={report.eventsFetched} "
            f"emitted={report.eventsEmitted} failures={len(report.failures)} duration={report.durationMs}ms"
        )

        # Each failure was already reported; PartialCycleFailure only when something succeeded
        if report.failures and report.succeeded:
            self._report(
                PartialCycleFailure(report.failures, report.succeeded),
                {'cycle': report.cycle}
            )
        elif report.failures:
            self.logger.error(
                f"Cycle {report.cycle} degraded: {len(report.failures)} source(s) failed, none succeeded",
                extra={'cycle': report.cycle}
            )

        return report

    def _enumeratePairs(self, at: datetime, report: CycleReport) -> List[Pair]:
        streamFilter = self.plan.streamFilterAt(at)

        groups: List[str] = []
        seen = set()
        for selection in self.plan.groupsAt(at):
            if selection.kind == GroupKind.PREFIX:
                try:
                    names = self.client.listGroups(selection.value)
                except TransientRetrievalError as e:
                    self._recordFailure(e, report)
                    continue
            else:
                names = [selection.value]

            for name in names:
                if name not in seen:
                    seen.add(name)
                    groups.append(name)

        pairs: List[Pair] = []
        for group in groups:
            try:
                streams = self.client.listStreams(group, streamFilter)
            except SourceNotFoundError:
                self.logger.debug(f"Log group {group} does not exist yet, skipping")
                continue
            except TransientRetrievalError as e:
                self._recordFailure(e, report)
                continue

            pairs.extend((group, stream) for stream in streams)

        return pairs

    def _startTimeFor(self, checkpoint: Optional[int], cycleStart: datetime) -> int:
        if checkpoint is not None:
            return checkpoint + 1
        if self.plan.startAt == StartAt.BEGINNING:
            return 0
        return toUnixMillis(cycleStart)

    def _fetchAll(
        self,
        pairs: List[Pair],
        cycleStart: datetime,
        report: CycleReport
    ) -> Dict[Future, PairReport]:
        executor = self._getExecutor()
        futures: Dict[Future, PairReport] = {}
        submittedAt: Dict[Future, float] = {}
        startedAt: Dict[Pair, float] = {}

        for group, stream in pairs:
            key = (group, stream)
            with self._inFlightLock:
                if key in self._inFlight:
                    self.logger.warning(f"Previous retrieval for {group}/{stream} still running, skipping this cycle")
                    continue
                self._inFlight.add(key)

            checkpoint = self.store.get(group, stream)
            pair = PairReport(
                group=group,
                stream=stream,
                fromMs=self._startTimeFor(checkpoint, cycleStart),
                checkpointBefore=checkpoint,
                checkpointAfter=checkpoint,
            )
            report.pairs.append(pair)
            self.metrics.recordPairPolled()

            try:
                future = executor.submit(self._fetch, group, stream, pair.fromMs, startedAt)
            except RuntimeError:
                self._release(key)
                raise
            # The key stays in flight until the worker returns, even after a timeout
            future.add_done_callback(lambda _, k=key: self._release(k))
            futures[future] = pair
            submittedAt[future] = time.monotonic()

        pending = set(futures)
        while pending:
            _, pending = wait(pending, timeout=FAN_IN_POLL_SECONDS, return_when=FIRST_COMPLETED)

            for future in self._expired(pending, futures, submittedAt, startedAt):
                pending.discard(future)
                pair = futures.pop(future)
                error = RetrievalTimeoutError(
                    f"Retrieval did not finish within {self.retrievalTimeout}s", pair.group, pair.stream
                )
                pair.error = str(error)
                self._recordFailure(error, report)

            if pending and self._shouldAbandon():
                self.logger.warning(f"Abandoning {len(pending)} in-flight retrievals on shutdown")
                report.cancelled = True
                break

        for future in futures:
            if future.done() and not future.cancelled() and isinstance(future.exception(), AuthorizationError):
                raise future.exception()

        return futures

    def _expired(
        self,
        pending: Set[Future],
        futures: Dict[Future, PairReport],
        submittedAt: Dict[Future, float],
        startedAt: Dict[Pair, float]
    ) -> List[Future]:
        """
        Pending retrievals past their deadline.

        A running retrieval gets retrievalTimeout seconds from the moment its
        worker picked it up. One still queued behind busy workers gets the
        same time from submission and is then cancelled.
        """
        now = time.monotonic()
        expired = []
        for future in pending:
            pair = futures[future]
            started = startedAt.get((pair.group, pair.stream))
            deadline = (started if started is not None else submittedAt[future]) + self.retrievalTimeout
            if now < deadline:
                continue
            if started is None:
                future.cancel()
            expired.append(future)
        return expired

    def _fetch(self, group: str, stream: str, fromMs: int, startedAt: Dict[Pair, float]) -> List[RawEvent]:
        started = time.monotonic()
        startedAt[(group, stream)] = started
        deadline = started + self.retrievalTimeout
        # One extra event tells a full window apart from a truncated one
        events = self.client.getEvents(group, stream, fromMs, self.plan.eventLimit + 1, deadline=deadline)
        return sorted(events, key=lambda e: e.timestamp)

    def _release(self, key: Pair) -> None:
        with self._inFlightLock:
            self._inFlight.discard(key)

    def _emitAll(self, futures: Dict[Future, PairReport], report: CycleReport) -> None:
        items = list(futures.items())
        if not items:
            return

        # Rotate the starting pair so a busy stream cannot use up the event limit every cycle
        offset = (report.cycle - 1) % len(items)
        items = items[offset:] + items[:offset]

        remaining = self.plan.eventLimit
        self.state = PollerState.EMITTING

        for future, pair in items:
            if self._shouldAbandon():
                report.cancelled = True
                break

            if not future.done() or future.cancelled():
                pair.error = 'abandoned'
                continue

            try:
                events = future.result()
            except SourceNotFoundError:
                self.logger.debug(f"Log stream {pair.group}/{pair.stream} does not exist yet")
                events = []
            except TransientRetrievalError as e:
                pair.error = str(e)
                self._recordFailure(e, report)
                continue
            except Exception as e:
                error = TransientRetrievalError(f"Unexpected retrieval error: {e}", pair.group, pair.stream)
                pair.error = str(error)
                self._recordFailure(error, report)
                continue

            pair.eventsFetched = len(events)
            self.metrics.recordEventsFetched(len(events))

            batch = self._selectBatch(events, remaining, firstBatch=remaining == self.plan.eventLimit)
            if len(batch) < len(events):
                self.logger.debug(
                    f"Event limit reached: deferring {len(events) - len(batch)} events "
                    f"from {pair.group}/{pair.stream} to the next cycle"
                )

            try:
                if batch:
                    self._emitBatch(pair, batch)
                else:
                    self._ensureBaseline(pair)
            except (SinkError, CheckpointError) as e:
                # Whatever reached the sink still counts against the limit
                remaining -= pair.eventsEmitted
                pair.error = str(e)
                self._recordFailure(e, report)
                continue

            remaining -= len(batch)

        self.state = PollerState.POLLING

    def _selectBatch(self, events: List[RawEvent], remaining: int, firstBatch: bool) -> List[RawEvent]:
        if len(events) <= remaining:
            return events
        if remaining <= 0:
            return []

        # Never split a millisecond: the checkpoint resumes at max timestamp + 1
        boundary = events[remaining].timestamp
        batch = [e for e in events[:remaining] if e.timestamp < boundary]

        if not batch and firstBatch:
            self.logger.warning(
                f"More than {self.plan.eventLimit} events share timestamp {boundary}; "
                f"raise event_limit to make progress"
            )

        return batch

    def _emitBatch(self, pair: PairReport, batch: List[RawEvent]) -> None:
        try:
            for raw in batch:
                self.sink.emit(EmittedEvent.fromRaw(raw, pair.group, pair.stream, self.plan.region or None))
                pair.eventsEmitted += 1
        except Exception as e:
            self.metrics.recordEventsEmitted(pair.eventsEmitted)
            raise SinkError(f"Sink failed after {pair.eventsEmitted} of {len(batch)} events: {e}",
                            pair.group, pair.stream) from e

        self.metrics.recordEventsEmitted(len(batch))

        self._saveCheckpoint(pair, batch[-1].timestamp)
        self.metrics.recordCheckpointAdvanced()

    def _ensureBaseline(self, pair: PairReport) -> None:
        # start_at=end: pin a new pair to this cycle's start so later cycles read from there
        if pair.checkpointBefore is None and self.plan.startAt == StartAt.END:
            self._saveCheckpoint(pair, pair.fromMs - 1)

    def _saveCheckpoint(self, pair: PairReport, timestampMs: int) -> None:
        try:
            self.store.set(pair.group, pair.stream, timestampMs)
        except CheckpointError as e:
            raise CheckpointError(f"Checkpoint not saved: {e}", pair.group, pair.stream) from e
        pair.checkpointAfter = timestampMs

    # Reporting

    def _recordFailure(self, error: PollerError, report: CycleReport) -> None:
        report.failures.append(error)
        self.metrics.recordError(type(error).__name__)
        self._report(error, {
            'cycle': report.cycle,
            'group': getattr(error, 'group', None),
            'stream': getattr(error, 'stream', None),
        })

    def _report(self, error: Exception, context: Dict[str, Any]) -> None:
        if self.errorHandler is not None:
            try:
                self.errorHandler(error, context)
            except Exception:
                self.logger.exception("Error handler failed")
            return

        extra = {k: context.get(k) for k in ('cycle', 'group', 'stream')}
        if isinstance(error, AuthorizationError):
            self.logger.critical(f"Authorization failure, stopping poller: {error}", extra=extra)
        elif isinstance(error, (TransientRetrievalError, SinkError, PartialCycleFailure)):
            self.logger.warning(f"{type(error).__name__}: {error}", extra=extra)
        else:
            self.logger.error(f"Poll cycle error: {error}", exc_info=error, extra=extra)

    def getStatus(self) -> Dict[str, Any]:
        return {
            'state': self.state.value,
            'running': self.isRunning(),
            'cycles': self._cycle,
            'fatalError': str(self.fatalError) if self.fatalError else None,
            'lastCycle': {
                'startedAt': self.lastReport.startedAt.isoformat(),
                'pairs': len(self.lastReport.pairs),
                'eventsEmitted': self.lastReport.eventsEmitted,
                'failures': len(self.lastReport.failures),
            } if self.lastReport else None,
            'metrics': self.metrics.getMetrics(),
        }
