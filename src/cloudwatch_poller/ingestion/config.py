# Source selection and polling configuration validation

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Sequence, Tuple

from .errors import ConfigurationError
from .time_layout import containsDirective, formatLayout


MAX_EVENT_LIMIT = 10000
DEFAULT_EVENT_LIMIT = 1000
DEFAULT_POLL_INTERVAL = 60.0


class StartAt(Enum):
    BEGINNING = "beginning"
    END = "end"


class GroupKind(Enum):
    NAME = "name"
    PREFIX = "prefix"


class StreamFilterKind(Enum):
    ALL = "all"
    NAMES = "names"
    PREFIX = "prefix"


@dataclass(frozen=True)
class GroupSelection:
    kind: GroupKind
    value: str


@dataclass(frozen=True)
class StreamFilter:
    kind: StreamFilterKind = StreamFilterKind.ALL
    names: Tuple[str, ...] = ()
    prefix: str = ''

    @classmethod
    def all(cls) -> 'StreamFilter':
        return cls()

    @classmethod
    def ofNames(cls, names: Sequence[str]) -> 'StreamFilter':
        return cls(kind=StreamFilterKind.NAMES, names=tuple(names))

    @classmethod
    def ofPrefix(cls, prefix: str) -> 'StreamFilter':
        return cls(kind=StreamFilterKind.PREFIX, prefix=prefix)

    def formatted(self, at: datetime) -> 'StreamFilter':
        if self.kind == StreamFilterKind.NAMES:
            if not any(containsDirective(n) for n in self.names):
                return self
            return StreamFilter.ofNames(_dedupe(_render(n, at) for n in self.names))
        if self.kind == StreamFilterKind.PREFIX and containsDirective(self.prefix):
            return StreamFilter.ofPrefix(formatLayout(self.prefix, at))
        return self

    def matches(self, stream: str) -> bool:
        if self.kind == StreamFilterKind.NAMES:
            return stream in self.names
        if self.kind == StreamFilterKind.PREFIX:
            return stream.startswith(self.prefix)
        return True


@dataclass(frozen=True)
class SourceSelector:
    logGroupName: str = ''
    logGroups: Tuple[str, ...] = ()
    logGroupPrefix: str = ''
    logStreamNames: Tuple[Optional[str], ...] = ()
    logStreamNamePrefix: str = ''

    def streamNames(self) -> List[str]:
        # Host configs may carry null entries in the stream name list
        return [name for name in self.logStreamNames if name]


@dataclass(frozen=True)
class PollConfig:
    region: str = ''
    pollInterval: float = DEFAULT_POLL_INTERVAL
    eventLimit: int = DEFAULT_EVENT_LIMIT
    startAt: Optional[str] = StartAt.END.value
    profile: Optional[str] = None


@dataclass(frozen=True)
class ResolvedPlan:
    """
    Validated, de-duplicated source selection plus effective polling parameters.

    Group names and prefixes are kept as configured; time directives in them
    are rendered once per poll cycle through groupsAt/streamFilterAt so that
    date-rolled names stay current.
    """

    groups: Tuple[GroupSelection, ...]
    streams: StreamFilter
    pollInterval: float
    eventLimit: int
    startAt: StartAt
    region: str = ''
    profile: Optional[str] = None

    def groupsAt(self, at: datetime) -> List[GroupSelection]:
        rendered = []
        seen = set()
        for selection in self.groups:
            concrete = GroupSelection(selection.kind, _render(selection.value, at))
            if concrete in seen:
                continue
            seen.add(concrete)
            rendered.append(concrete)
        return rendered

    def streamFilterAt(self, at: datetime) -> StreamFilter:
        return self.streams.formatted(at)


def _render(value: str, at: datetime) -> str:
    # Static names are used as-is
    return formatLayout(value, at) if containsDirective(value) else value


def _dedupe(values) -> List[str]:
    seen = set()
    result = []
    for value in values:
        if value in seen:
            continue
        seen.add(value)
        result.append(value)
    return result


def _resolveStartAt(value: Optional[str]) -> StartAt:
    if not value:
        return StartAt.END
    try:
        return StartAt(value)
    except ValueError:
        raise ConfigurationError(
            f"invalid start position {value!r} for start_at: expected 'beginning' or 'end'"
        ) from None


def validate(
    selector: SourceSelector,
    pollConfig: PollConfig,
    *,
    requireSingleGroupField: bool = False,
    requireStreamPrefixForBeginning: bool = False,
) -> ResolvedPlan:
    """
    Resolve selector fields and polling parameters into a ResolvedPlan.

    Args:
        selector: Raw group/stream selection fields
        pollConfig: Polling parameters
        requireSingleGroupField: Reject configs populating more than one of
            log_group_name, log_groups and log_group_prefix
        requireStreamPrefixForBeginning: Reject start_at=beginning without a
            log_stream_name_prefix

    Returns:
        The resolved plan

    Raises:
        ConfigurationError: If the configuration is invalid
    """
    streamNames = selector.streamNames()

    if streamNames and selector.logStreamNamePrefix:
        raise ConfigurationError(
            "log_stream_names and log_stream_name_prefix are mutually exclusive stream selectors"
        )

    if pollConfig.pollInterval is None or pollConfig.pollInterval <= 0:
        raise ConfigurationError(
            f"poll_interval must be positive, got {pollConfig.pollInterval}"
        )

    if pollConfig.eventLimit is None or not 0 < pollConfig.eventLimit <= MAX_EVENT_LIMIT:
        raise ConfigurationError(
            f"event_limit out of range: {pollConfig.eventLimit} (expected 1 to {MAX_EVENT_LIMIT})"
        )

    startAt = _resolveStartAt(pollConfig.startAt)

    groups: List[GroupSelection] = []
    names = _dedupe(
        ([selector.logGroupName] if selector.logGroupName else [])
        + [g for g in selector.logGroups if g]
    )
    groups.extend(GroupSelection(GroupKind.NAME, name) for name in names)
    if selector.logGroupPrefix:
        groups.append(GroupSelection(GroupKind.PREFIX, selector.logGroupPrefix))

    if not groups:
        raise ConfigurationError(
            "one of log_group_name, log_groups or log_group_prefix is required"
        )

    if requireSingleGroupField:
        populated = [
            key for key, present in (
                ('log_group_name', bool(selector.logGroupName)),
                ('log_groups', any(selector.logGroups)),
                ('log_group_prefix', bool(selector.logGroupPrefix)),
            ) if present
        ]
        if len(populated) > 1:
            raise ConfigurationError(
                f"only one group selector may be set, got {', '.join(populated)}"
            )

    if requireStreamPrefixForBeginning and startAt == StartAt.BEGINNING and not selector.logStreamNamePrefix:
        raise ConfigurationError(
            "start_at=beginning requires log_stream_name_prefix"
        )

    if streamNames:
        streams = StreamFilter.ofNames(_dedupe(streamNames))
    elif selector.logStreamNamePrefix:
        streams = StreamFilter.ofPrefix(selector.logStreamNamePrefix)
    else:
        streams = StreamFilter.all()

    return ResolvedPlan(
        groups=tuple(groups),
        streams=streams,
        pollInterval=float(pollConfig.pollInterval),
        eventLimit=int(pollConfig.eventLimit),
        startAt=startAt,
        region=pollConfig.region,
        profile=pollConfig.profile or None,
    )


@dataclass
class InputConfig:
    """
    Host-facing operator configuration.

    Field names follow the keys of the cloudwatch section in the YAML config.
    """

    region: str = ''
    profile: Optional[str] = None
    log_group_name: str = ''
    log_groups: List[str] = field(default_factory=list)
    log_group_prefix: str = ''
    log_stream_names: List[Optional[str]] = field(default_factory=list)
    log_stream_name_prefix: str = ''
    start_at: Optional[str] = StartAt.END.value
    poll_interval: float = DEFAULT_POLL_INTERVAL
    event_limit: int = DEFAULT_EVENT_LIMIT

    def selector(self) -> SourceSelector:
        return SourceSelector(
            logGroupName=self.log_group_name or '',
            logGroups=tuple(self.log_groups or ()),
            logGroupPrefix=self.log_group_prefix or '',
            logStreamNames=tuple(self.log_stream_names or ()),
            logStreamNamePrefix=self.log_stream_name_prefix or '',
        )

    def pollConfig(self) -> PollConfig:
        return PollConfig(
            region=self.region,
            pollInterval=self.poll_interval,
            eventLimit=self.event_limit,
            startAt=self.start_at,
            profile=self.profile,
        )

    def build(self, **policies) -> ResolvedPlan:
        return validate(self.selector(), self.pollConfig(), **policies)
