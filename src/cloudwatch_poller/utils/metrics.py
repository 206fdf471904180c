from typing import Dict, Any
from collections import defaultdict
from datetime import datetime, timezone
import logging


class MetricsCollector:

    def __init__(self):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.reset()

    def reset(self) -> None:
        self.startTime = datetime.now(timezone.utc)

        self.cycles = 0
        self.degradedCycles = 0
        self.pairsPolled = 0

        self.eventsFetched = 0
        self.eventsEmitted = 0
        self.checkpointsAdvanced = 0

        self.errors = defaultdict(int)

        # Running aggregates, no per-cycle history
        self.totalCycleMs = 0
        self.minCycleMs = None
        self.maxCycleMs = None

    def recordCycle(self, durationMs: int, degraded: bool = False) -> None:
        self.cycles += 1
        if degraded:
            self.degradedCycles += 1
        self.totalCycleMs += durationMs
        self.minCycleMs = durationMs if self.minCycleMs is None else min(self.minCycleMs, durationMs)
        self.maxCycleMs = durationMs if self.maxCycleMs is None else max(self.maxCycleMs, durationMs)

    def recordPairPolled(self) -> None:
        self.pairsPolled += 1

    def recordEventsFetched(self, count: int) -> None:
        self.eventsFetched += count

    def recordEventsEmitted(self, count: int) -> None:
        self.eventsEmitted += count

    def recordCheckpointAdvanced(self) -> None:
        self.checkpointsAdvanced += 1

    def recordError(self, kind: str) -> None:
        self.errors[kind] += 1

    def getMetrics(self) -> Dict[str, Any]:
        runtimeSeconds = (datetime.now(timezone.utc) - self.startTime).total_seconds()

        metrics = {
            'runtimeSeconds': runtimeSeconds,
            'cycles': {
                'total': self.cycles,
                'degraded': self.degradedCycles,
                'pairsPolled': self.pairsPolled,
            },
            'events': {
                'fetched': self.eventsFetched,
                'emitted': self.eventsEmitted,
                'eventsPerSecond': self.eventsEmitted / runtimeSeconds if runtimeSeconds > 0 else 0
            },
            'checkpointsAdvanced': self.checkpointsAdvanced,
            'errors': dict(self.errors),
            'performance': {
                'avgCycleMs': self.totalCycleMs / self.cycles if self.cycles else 0,
                'minCycleMs': self.minCycleMs or 0,
                'maxCycleMs': self.maxCycleMs or 0
            }
        }

        return metrics

    def logMetrics(self) -> None:
        metrics = self.getMetrics()

        self.logger.info("=== Poller Metrics ===")
        self.logger.info(f"Runtime: {metrics['runtimeSeconds']:.2f} seconds")
        self.logger.info(f"Cycles: {metrics['cycles']['total']} ({metrics['cycles']['degraded']} degraded)")
        self.logger.info(f"Pairs polled: {metrics['cycles']['pairsPolled']}")
        self.logger.info(f"Events fetched: {metrics['events']['fetched']}")
        self.logger.info(f"Events emitted: {metrics['events']['emitted']}")
        self.logger.info(f"Average cycle: {metrics['performance']['avgCycleMs']:.1f} ms")

        if metrics['errors']:
            self.logger.warning(f"Errors: {metrics['errors']}")
