"""
Pure scheduling functions: cron evaluation, ISO-8601 durations, retry backoff.

Contract:
    ``parse_cron()``, ``matches_cron()``, ``next_fire_time()``,
    ``parse_iso_duration()`` and ``BackoffPolicy.delay_for()`` are PURE --
    no I/O, no clock reads.  Callers pass every timestamp in.

Architecture: claimant_messaging/domain.  ZERO I/O.

Cron dialect:
    Six fields ``second minute hour day_of_month month day_of_week`` as used
    by the message processor schedules (``*/30 * * * * *``), or the classic
    five fields with an implicit ``0`` seconds field.  Supports ``*``, ``?``,
    lists, ranges, steps, and three-letter month / weekday names.
    Day-of-week 0 and 7 are both Sunday.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from claimant_kernel.exceptions import InvalidCronExpressionError, InvalidDurationError


# =============================================================================
# CronSpec
# =============================================================================


@dataclass(frozen=True)
class CronSpec:
    """Parsed cron expression.  Each field is a frozenset of valid integers."""

    seconds: frozenset[int] = field(default_factory=lambda: frozenset({0}))
    minutes: frozenset[int] = field(default_factory=lambda: frozenset(range(60)))
    hours: frozenset[int] = field(default_factory=lambda: frozenset(range(24)))
    days_of_month: frozenset[int] = field(default_factory=lambda: frozenset(range(1, 32)))
    months: frozenset[int] = field(default_factory=lambda: frozenset(range(1, 13)))
    days_of_week: frozenset[int] = field(default_factory=lambda: frozenset(range(7)))


_MONTH_NAMES = {
    name: index
    for index, name in enumerate(
        ("JAN", "FEB", "MAR", "APR", "MAY", "JUN",
         "JUL", "AUG", "SEP", "OCT", "NOV", "DEC"),
        start=1,
    )
}
_DAY_NAMES = {
    name: index
    for index, name in enumerate(("SUN", "MON", "TUE", "WED", "THU", "FRI", "SAT"))
}


def _to_int(token: str, names: dict[str, int]) -> int:
    upper = token.strip().upper()
    if upper in names:
        return names[upper]
    return int(upper)


def _parse_cron_field(
    field_str: str,
    min_val: int,
    max_val: int,
    names: dict[str, int] | None = None,
) -> frozenset[int]:
    """Parse a single cron field into a frozenset of valid values.

    Supports:
        * or ? -- all values
        N -- single value
        N-M -- range
        */N -- step from min
        N/S -- step from N to max
        N-M/S -- range with step

    Raises:
        ValueError: If the field is syntactically invalid or values out of range.
    """
    names = names or {}
    values: set[int] = set()

    for part in field_str.split(","):
        part = part.strip()
        if not part:
            raise ValueError("Empty list element")

        if "/" in part:
            range_part, step_str = part.split("/", 1)
            step = int(step_str)
            if step <= 0:
                raise ValueError(f"Step must be positive: {step}")

            if range_part in ("*", "?"):
                start, end = min_val, max_val
            elif "-" in range_part:
                s, e = range_part.split("-", 1)
                start, end = _to_int(s, names), _to_int(e, names)
            else:
                start = _to_int(range_part, names)
                end = max_val

            if start < min_val or start > max_val:
                raise ValueError(f"Value {start} outside range [{min_val}, {max_val}]")
            values.update(v for v in range(start, end + 1, step) if min_val <= v <= max_val)

        elif part in ("*", "?"):
            values.update(range(min_val, max_val + 1))

        elif "-" in part:
            s, e = part.split("-", 1)
            start, end = _to_int(s, names), _to_int(e, names)
            if start > end:
                raise ValueError(f"Range start > end: {start}-{end}")
            if start < min_val or end > max_val:
                raise ValueError(f"Range {start}-{end} outside [{min_val}, {max_val}]")
            values.update(range(start, end + 1))

        else:
            v = _to_int(part, names)
            if v < min_val or v > max_val:
                raise ValueError(f"Value {v} outside range [{min_val}, {max_val}]")
            values.add(v)

    return frozenset(values)


def parse_cron(expression: str) -> CronSpec:
    """Parse a six- or five-field cron expression into a CronSpec.

    Raises:
        InvalidCronExpressionError: If the expression is malformed.
    """
    parts = expression.strip().split()
    if len(parts) == 5:
        parts = ["0", *parts]
    if len(parts) != 6:
        raise InvalidCronExpressionError(
            expression, f"expected 5 or 6 fields, got {len(parts)}",
        )

    try:
        days_of_week = _parse_cron_field(parts[5], 0, 7, _DAY_NAMES)
        return CronSpec(
            seconds=_parse_cron_field(parts[0], 0, 59),
            minutes=_parse_cron_field(parts[1], 0, 59),
            hours=_parse_cron_field(parts[2], 0, 23),
            days_of_month=_parse_cron_field(parts[3], 1, 31),
            months=_parse_cron_field(parts[4], 1, 12, _MONTH_NAMES),
            # 7 is an alias for Sunday
            days_of_week=frozenset(d % 7 for d in days_of_week),
        )
    except ValueError as exc:
        raise InvalidCronExpressionError(expression, str(exc)) from None


def _minute_matches(spec: CronSpec, dt: datetime) -> bool:
    # Python weekday(): 0=Monday; cron: 0=Sunday
    cron_dow = (dt.weekday() + 1) % 7
    return (
        dt.minute in spec.minutes
        and dt.hour in spec.hours
        and dt.day in spec.days_of_month
        and dt.month in spec.months
        and cron_dow in spec.days_of_week
    )


def matches_cron(spec: CronSpec, dt: datetime) -> bool:
    """Check if a datetime (to the second) matches a cron spec."""
    return dt.second in spec.seconds and _minute_matches(spec, dt)


def next_fire_time(spec: CronSpec, after: datetime) -> datetime:
    """Find the first instant strictly after ``after`` that matches ``spec``.

    Scans minute by minute for up to 366 days; within a matching minute
    the earliest matching second wins.

    Raises:
        InvalidCronExpressionError: If nothing matches within 366 days
            (e.g. ``0 0 0 31 2 *``).
    """
    candidate = after.replace(microsecond=0) + timedelta(seconds=1)
    ordered_seconds = sorted(spec.seconds)
    max_iterations = 366 * 24 * 60

    for _ in range(max_iterations):
        if _minute_matches(spec, candidate):
            for second in ordered_seconds:
                if second >= candidate.second:
                    return candidate.replace(second=second)
        candidate = candidate.replace(second=0) + timedelta(minutes=1)

    raise InvalidCronExpressionError(
        str(spec), f"no matching time within 366 days after {after}",
    )


# =============================================================================
# ISO-8601 durations
# =============================================================================

_DURATION_RE = re.compile(
    r"^P(?:(?P<weeks>\d+)W)?(?:(?P<days>\d+)D)?"
    r"(?:T(?:(?P<hours>\d+)H)?(?:(?P<minutes>\d+)M)?(?:(?P<seconds>\d+(?:\.\d+)?)S)?)?$",
    re.IGNORECASE,
)


def parse_iso_duration(value: str) -> timedelta:
    """Parse an ISO-8601 duration such as ``PT30S``, ``PT1H30M`` or ``P1D``.

    Years and months are rejected (they have no fixed length).

    Raises:
        InvalidDurationError: If the value is not a supported duration.
    """
    text = value.strip() if isinstance(value, str) else ""
    match = _DURATION_RE.match(text)
    if not match or text.upper() in ("P", "PT") or text.upper().endswith("T"):
        raise InvalidDurationError(str(value))

    parts = {k: v for k, v in match.groupdict().items() if v is not None}
    if not parts:
        raise InvalidDurationError(str(value))

    return timedelta(
        weeks=int(parts.get("weeks", 0)),
        days=int(parts.get("days", 0)),
        hours=int(parts.get("hours", 0)),
        minutes=int(parts.get("minutes", 0)),
        seconds=float(parts.get("seconds", 0)),
    )


# =============================================================================
# Retry backoff
# =============================================================================


@dataclass(frozen=True)
class BackoffPolicy:
    """Exponential backoff between retry attempts.

    ``delay_for(n)`` is the wait after the n-th failed attempt:
    ``initial_delay * multiplier ** (n - 1)``, capped at ``maximum_delay``.
    """

    initial_delay: timedelta = timedelta(seconds=30)
    multiplier: float = 2.0
    maximum_delay: timedelta = timedelta(hours=1)

    def __post_init__(self) -> None:
        if self.initial_delay <= timedelta(0):
            raise ValueError(f"initial_delay must be positive: {self.initial_delay}")
        if self.multiplier < 1:
            raise ValueError(f"multiplier must be >= 1: {self.multiplier}")
        if self.maximum_delay < self.initial_delay:
            raise ValueError(
                f"maximum_delay {self.maximum_delay} is shorter than "
                f"initial_delay {self.initial_delay}"
            )

    def delay_for(self, attempt_count: int) -> timedelta:
        if attempt_count < 1:
            raise ValueError(f"attempt_count must be >= 1: {attempt_count}")
        try:
            seconds = self.initial_delay.total_seconds() * (
                self.multiplier ** (attempt_count - 1)
            )
        except OverflowError:
            return self.maximum_delay
        if seconds >= self.maximum_delay.total_seconds():
            return self.maximum_delay
        return timedelta(seconds=seconds)

    def next_attempt_at(self, now: datetime, attempt_count: int) -> datetime:
        return now + self.delay_for(attempt_count)
