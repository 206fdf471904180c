# Time layout formatting for dynamic log group and stream names

from datetime import datetime, timedelta, timezone
from typing import Callable, Dict
import re


EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

MONTH_NAMES = [
    'January', 'February', 'March', 'April', 'May', 'June',
    'July', 'August', 'September', 'October', 'November', 'December',
]

# Indexed by datetime.weekday(), Monday first
WEEKDAY_NAMES = [
    'Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday', 'Sunday',
]

DIRECTIVES: Dict[str, Callable[[datetime], str]] = {
    '%Y': lambda t: f"{t.year:04d}",
    '%y': lambda t: f"{t.year % 100:02d}",
    '%m': lambda t: f"{t.month:02d}",
    '%q': lambda t: str(t.month),
    '%b': lambda t: MONTH_NAMES[t.month - 1][:3],
    '%h': lambda t: MONTH_NAMES[t.month - 1][:3],
    '%B': lambda t: MONTH_NAMES[t.month - 1],
    '%d': lambda t: f"{t.day:02d}",
    '%g': lambda t: str(t.day),
    '%a': lambda t: WEEKDAY_NAMES[t.weekday()][:3],
    '%A': lambda t: WEEKDAY_NAMES[t.weekday()],
    '%H': lambda t: f"{t.hour:02d}",
    '%M': lambda t: f"{t.minute:02d}",
    '%S': lambda t: f"{t.second:02d}",
    '%j': lambda t: f"{t.timetuple().tm_yday:03d}",
}

_DIRECTIVE_RE = re.compile('|'.join(re.escape(d) for d in DIRECTIVES))


def asUtc(at: datetime) -> datetime:
    # Naive datetimes are taken to already be UTC
    if at.tzinfo is None:
        return at.replace(tzinfo=timezone.utc)
    return at.astimezone(timezone.utc)


def formatLayout(pattern: str, at: datetime) -> str:
    """
    Render a directive pattern such as "/app/%Y-%m-%d" for the given time.

    Scanning is left to right. Each directive is substituted only on its
    first occurrence; later occurrences of the same directive stay literal,
    so "%Y-%m-%d %Y-%m-%d" renders as "2021-05-12 %Y-%m-%d". Unknown
    %-sequences and a trailing "%" pass through untouched.

    Args:
        pattern: Layout containing zero or more directives
        at: Time to render; naive values are treated as UTC

    Returns:
        The rendered string
    """
    if not pattern:
        return ''

    at = asUtc(at)
    substituted = set()
    parts = []
    i = 0

    while i < len(pattern):
        token = pattern[i:i + 2]
        render = DIRECTIVES.get(token)

        if render is None:
            parts.append(pattern[i])
            i += 1
            continue

        if token in substituted:
            parts.append(token)
        else:
            substituted.add(token)
            parts.append(render(at))
        i += 2

    return ''.join(parts)


def containsDirective(pattern: str) -> bool:
    return bool(pattern) and _DIRECTIVE_RE.search(pattern) is not None


def toUnixMillis(at: datetime) -> int:
    return (asUtc(at) - EPOCH) // timedelta(milliseconds=1)


def fromUnixMillis(millis: int) -> datetime:
    return EPOCH + timedelta(milliseconds=millis)
