from dataclasses import dataclass, asdict
from typing import Dict, Any, Optional

from .time_layout import fromUnixMillis


@dataclass(frozen=True)
class RawEvent:
    timestamp: int  # ms since epoch, UTC
    message: str
    ingestionTime: Optional[int] = None

    @classmethod
    def fromApi(cls, event: Dict[str, Any]) -> 'RawEvent':
        return cls(
            timestamp=int(event['timestamp']),
            message=event.get('message', ''),
            ingestionTime=event.get('ingestionTime'),
        )


@dataclass(frozen=True)
class EmittedEvent:
    logGroup: str
    logStream: str
    timestamp: int
    ingestionTime: Optional[int]
    message: str
    region: Optional[str] = None

    @classmethod
    def fromRaw(
        cls,
        raw: RawEvent,
        logGroup: str,
        logStream: str,
        region: Optional[str] = None
    ) -> 'EmittedEvent':
        return cls(
            logGroup=logGroup,
            logStream=logStream,
            timestamp=raw.timestamp,
            ingestionTime=raw.ingestionTime,
            message=raw.message,
            region=region,
        )

    def toDict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['time'] = fromUnixMillis(self.timestamp).isoformat()
        return data
