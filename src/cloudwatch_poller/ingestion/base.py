# Base log API client

from abc import ABC, abstractmethod
from typing import List, Optional
import logging

from .config import StreamFilter
from .schema import RawEvent


class BaseLogClient(ABC):
    """
    Log API the poller reads from.

    Implementations raise the errors in ingestion.errors: AuthorizationError
    for credential problems, SourceNotFoundError for missing groups/streams,
    TransientRetrievalError for everything retryable.
    """

    def __init__(self):
        self.logger = logging.getLogger(self.__class__.__name__)

    @abstractmethod
    def listGroups(self, prefix: str) -> List[str]:
        pass

    @abstractmethod
    def listStreams(self, group: str, streamFilter: StreamFilter) -> List[str]:
        pass

    @abstractmethod
    def getEvents(
        self,
        group: str,
        stream: str,
        startTimeMs: int,
        limit: int,
        deadline: Optional[float] = None
    ) -> List[RawEvent]:
        """
        Read up to ``limit`` events with timestamp >= startTimeMs, oldest first.

        ``deadline`` is a time.monotonic() value after which the read is
        abandoned with RetrievalTimeoutError.
        """
        pass

    @abstractmethod
    def testConnection(self) -> bool:
        pass

    def handleError(self, error: Exception, context: str) -> None:
        self.logger.error(f"Error in {context}: {str(error)}", exc_info=True)
