from typing import Dict, Iterator, List, NamedTuple, Optional, Tuple
import re

# Durations are plain ints counting nanoseconds.
NANOS_PER_MICROSECOND = 1_000
NANOS_PER_MILLISECOND = 1_000 * NANOS_PER_MICROSECOND
NANOS_PER_SECOND = 1_000 * NANOS_PER_MILLISECOND
NANOS_PER_MINUTE = 60 * NANOS_PER_SECOND
NANOS_PER_HOUR = 60 * NANOS_PER_MINUTE
NANOS_PER_DAY = 24 * NANOS_PER_HOUR
NANOS_PER_WEEK = 7 * NANOS_PER_DAY
# Fixed conventions, not calendar lengths: these drift against a real calendar.
NANOS_PER_MONTH = 30 * NANOS_PER_DAY
NANOS_PER_YEAR = 365 * NANOS_PER_DAY

# Largest duration is i64::MAX milliseconds; covers a full i64 of nanoseconds.
MAX_DURATION = (2**63 - 1) * NANOS_PER_MILLISECOND
MIN_DURATION = -MAX_DURATION
MAX_QUANTITY = 2**63 - 1
MIN_QUANTITY = -(2**63)

_UNIT_DEFS = (
    ("year", NANOS_PER_YEAR, "y"),
    ("month", NANOS_PER_MONTH, "M"),
    ("week", NANOS_PER_WEEK, "w"),
    ("day", NANOS_PER_DAY, "d"),
    ("hour", NANOS_PER_HOUR, "h"),
    ("minute", NANOS_PER_MINUTE, "m"),
    ("second", NANOS_PER_SECOND, "s"),
    ("millisecond", NANOS_PER_MILLISECOND, "ms"),
    ("microsecond", NANOS_PER_MICROSECOND, "us"),
    ("nanosecond", 1, "ns"),
)

UNIT_ORDER = tuple(name for name, _, _ in _UNIT_DEFS)
UNIT_SUFFIXES = tuple(abbr for _, _, abbr in _UNIT_DEFS)
_SIZE_BY_NAME = {name: size for name, size, _ in _UNIT_DEFS}

# Case-sensitive: "M" is month, "m" is minute.
_PARSE_UNIT_ALIASES: Dict[str, str] = {
    "ns": "nanosecond", "nsec": "nanosecond", "nanosecond": "nanosecond", "nanoseconds": "nanosecond",
    "us": "microsecond", "usec": "microsecond", "μs": "microsecond", "µs": "microsecond",
    "microsecond": "microsecond", "microseconds": "microsecond",
    "ms": "millisecond", "msec": "millisecond", "millisecond": "millisecond", "milliseconds": "millisecond",
    "s": "second", "sec": "second", "second": "second", "seconds": "second",
    "m": "minute", "min": "minute", "minute": "minute", "minutes": "minute",
    "h": "hour", "hr": "hour", "hour": "hour", "hours": "hour",
    "d": "day", "day": "day", "days": "day",
    "w": "week", "week": "week", "weeks": "week",
    "M": "month", "month": "month", "months": "month",
    "y": "year", "year": "year", "years": "year",
}

_ALIASES_LONGEST_FIRST = tuple(sorted(_PARSE_UNIT_ALIASES, key=len, reverse=True))
_QUANTITY_RE = re.compile(r"\s*([+-]?[0-9]+)\s*")


class TimeSpanError(ValueError):
    """Base class for span parsing and duration range errors."""


class MalformedSpanError(TimeSpanError):
    """The text is not a valid time span.

    ``matched`` is the prefix that parsed (possibly empty), ``unmatched`` the
    remainder starting at ``position``. When a prefix matched, the error
    raised while re-parsing ``unmatched`` on its own is chained as
    ``__cause__``.
    """

    def __init__(self, message: str, text: str, matched: str, unmatched: str, position: int):
        super().__init__(message)
        self.text = text
        self.matched = matched
        self.unmatched = unmatched
        self.position = position


class SpanOverflowError(TimeSpanError, OverflowError):
    """A duration left the representable range."""


def checked_add(a: int, b: int) -> int:
    """Add two durations, raising SpanOverflowError outside the supported range."""
    total = a + b
    if total > MAX_DURATION or total < MIN_DURATION:
        raise SpanOverflowError(f"duration out of range: {a} + {b} nanoseconds")
    return total


def duration_from_seconds(seconds: int) -> int:
    return int(seconds) * NANOS_PER_SECOND


def duration_to_seconds(duration: int) -> int:
    """Whole seconds in a duration, truncated toward zero."""
    return _truncdiv(duration, NANOS_PER_SECOND)


def _truncdiv(value: int, size: int) -> int:
    q = abs(value) // size
    return -q if value < 0 else q


def _match_unit(text: str, pos: int) -> Optional[str]:
    for alias in _ALIASES_LONGEST_FIRST:
        if text.startswith(alias, pos):
            return alias
    return None


def _scan(text: str) -> Tuple[List[Tuple[int, str]], int, Optional[str]]:
    """Tokenize as many span elements as possible.

    Returns the elements, the end position of the last complete element and,
    if scanning stopped before the end, a reason describing what was wrong at
    that position.
    """
    elements: List[Tuple[int, str]] = []
    pos = 0
    while True:
        if pos > 0 and not text[pos:].strip():
            return elements, pos, None
        m = _QUANTITY_RE.match(text, pos)
        if not m:
            return elements, pos, "expected a quantity"
        digits = m.group(1).lstrip("+-").lstrip("0")
        # checked before int(): very long digit strings exceed the int conversion limit
        if len(digits) > 19:
            return elements, pos, f"quantity {m.group(1)[:24]}... does not fit in 64 bits"
        quantity = int(m.group(1))
        if quantity > MAX_QUANTITY or quantity < MIN_QUANTITY:
            return elements, pos, f"quantity {m.group(1).strip()} does not fit in 64 bits"
        alias = _match_unit(text, m.end())
        if alias is None:
            return elements, pos, "expected a unit after the quantity"
        elements.append((quantity, _PARSE_UNIT_ALIASES[alias]))
        pos = m.end() + len(alias)


def parse_time_span(text: str) -> int:
    """Parse a systemd-style time span into a duration in nanoseconds.

    Elements are ``<quantity><unit>`` pairs with optional whitespace between
    them. Quantities are signed integers, units are case-sensitive aliases.
    Elements add up in any order; negative quantities subtract.

    Examples:
        '1s' -> 1_000_000_000
        '5min 30s' == '30s 5min'
        '1y 6M' -> 365 days + 180 days
        '2h -30m' -> 90 minutes

    Raises MalformedSpanError for text that does not parse and
    SpanOverflowError when the total leaves the supported range.
    """
    if text is None:
        raise MalformedSpanError("time span is None", "", "", "", 0)
    elements, end, reason = _scan(text)

    if not elements:
        found = text[end:].strip()
        region = f"found {found!r}" if found else "found nothing"
        raise MalformedSpanError(
            f"invalid time span {text!r}: {reason} at position {end}, {region}",
            text, "", text[end:], end,
        )

    if reason is not None:
        matched, unmatched = text[:end], text[end:]
        error = MalformedSpanError(
            f"invalid time span {text!r}: parsed {matched!r} "
            f"but could not make sense of the rest, {unmatched!r}",
            text, matched, unmatched, end,
        )
        try:
            parse_time_span(unmatched)
        except TimeSpanError as nested:
            raise error from nested
        raise error

    total = 0
    for quantity, unit in elements:
        element = quantity * _SIZE_BY_NAME[unit]
        if element > MAX_DURATION or element < MIN_DURATION:
            raise SpanOverflowError(f"{quantity} {unit}(s) is out of range in {text!r}")
        total = checked_add(total, element)
    return total


def describe_span_error(error: TimeSpanError) -> str:
    """Render an error and its chain of re-parse diagnostics, one per line."""
    lines = [str(error)]
    cause = error.__cause__
    while isinstance(cause, TimeSpanError):
        lines.append(f"  {cause}")
        cause = cause.__cause__
    return "\n".join(lines)


class FlatTime(NamedTuple):
    """A duration broken into fixed units, year down to nanosecond.

    Every component carries the sign of the original duration and
    ``to_duration()`` rebuilds it exactly.
    """

    y: int
    M: int
    w: int
    d: int
    h: int
    m: int
    s: int
    ms: int
    us: int
    ns: int

    @classmethod
    def from_duration(cls, duration: int) -> "FlatTime":
        if not isinstance(duration, int):
            raise TypeError(f"duration must be an int of nanoseconds, got {type(duration).__name__}")
        remaining = duration
        values = []
        for _, size, _ in _UNIT_DEFS:
            qty = _truncdiv(remaining, size)
            remaining -= qty * size
            values.append(qty)
        return cls(*values)

    def to_duration(self) -> int:
        return sum(qty * size for qty, (_, size, _) in zip(self, _UNIT_DEFS))

    def parts(self) -> Iterator[Tuple[int, str]]:
        return zip(self, UNIT_SUFFIXES)

    def format(self) -> str:
        """All nonzero units, e.g. '1y 11M 3w 6d'; '0s' when empty."""
        rendered = [f"{qty}{unit}" for qty, unit in self.parts() if qty != 0]
        return " ".join(rendered) if rendered else "0s"

    def format_abbreviated(self) -> str:
        """Only the largest nonzero unit, e.g. '1y'."""
        for qty, unit in self.parts():
            if qty != 0:
                return f"{qty}{unit}"
        return "0s"


def format_duration(duration: int, abbreviated: bool = False) -> str:
    flat = FlatTime.from_duration(duration)
    return flat.format_abbreviated() if abbreviated else flat.format()


BAR_CHAR = "▬"


def bar(width: int, fraction: float) -> str:
    """Progress bar of exactly ``width`` cells, fraction clamped to [0, 1]."""
    width = max(0, int(width))
    fraction = max(0.0, min(1.0, float(fraction)))
    filled = int(fraction * width)
    return BAR_CHAR * filled + " " * (width - filled)
