# Record sinks the poller hands emitted events to.

from abc import ABC, abstractmethod
from typing import Callable, TextIO
import json
import logging
import sys
import threading

from .schema import EmittedEvent


class RecordSink(ABC):

    def __init__(self):
        self.logger = logging.getLogger(self.__class__.__name__)

    @abstractmethod
    def emit(self, event: EmittedEvent) -> None:
        pass

    def flush(self) -> None:
        pass


class JsonLinesSink(RecordSink):

    def __init__(self, stream: TextIO = None):
        super().__init__()
        self.stream = stream if stream is not None else sys.stdout
        self._lock = threading.Lock()

    def emit(self, event: EmittedEvent) -> None:
        line = json.dumps(event.toDict(), ensure_ascii=False)
        with self._lock:
            self.stream.write(line + '\n')

    def flush(self) -> None:
        with self._lock:
            self.stream.flush()


class CallbackSink(RecordSink):

    def __init__(self, callback: Callable[[EmittedEvent], None]):
        super().__init__()
        self.callback = callback

    def emit(self, event: EmittedEvent) -> None:
        self.callback(event)
