"""Validation of scheduler daemon schedule expressions.

The scheduler daemon accepts:
    "@hourly", "@daily", ...     - predefined descriptors
    "@every 1h30m"               - fixed interval (Go duration)
    "0 2 * * *"                  - 5-field cron (minute hour dom month dow)
    "30 0 2 * * *"               - 6-field cron with leading seconds
"""

from __future__ import annotations

import re

from infrabackup.errors import ConfigError

DESCRIPTORS = frozenset({"@yearly", "@annually", "@monthly", "@weekly", "@daily", "@midnight", "@hourly"})

_DURATION_RE = re.compile(r"^(?:\d+(?:\.\d+)?(?:ns|us|µs|ms|s|m|h))+$")

_MONTHS = {name: i for i, name in enumerate(
    ["jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec"], start=1
)}
_WEEKDAYS = {name: i for i, name in enumerate(["sun", "mon", "tue", "wed", "thu", "fri", "sat"])}

# (name, min, max, names)
_SECONDS = ("second", 0, 59, None)
_FIELDS = [
    ("minute", 0, 59, None),
    ("hour", 0, 23, None),
    ("day of month", 1, 31, None),
    ("month", 1, 12, _MONTHS),
    ("day of week", 0, 7, _WEEKDAYS),
]


def _value(token: str, name: str, lo: int, hi: int, names: dict[str, int] | None) -> int:
    if names and token.lower() in names:
        return names[token.lower()]
    if not token.isdigit():
        raise ValueError(f"invalid {name} value {token!r}")
    value = int(token)
    if not lo <= value <= hi:
        raise ValueError(f"{name} must be {lo}-{hi}, got {value}")
    return value


def parse_field(field: str, name: str, lo: int, hi: int, names: dict[str, int] | None = None) -> set[int]:
    """Parse one cron field into the set of values it matches."""
    result: set[int] = set()

    for part in field.split(","):
        if not part:
            raise ValueError(f"empty list item in {name} field {field!r}")

        step = 1
        if "/" in part:
            part, step_str = part.split("/", 1)
            if not step_str.isdigit() or int(step_str) == 0:
                raise ValueError(f"invalid step in {name} field {field!r}")
            step = int(step_str)

        if part in ("*", "?"):
            start, end = lo, hi
        elif "-" in part:
            first, last = part.split("-", 1)
            start = _value(first, name, lo, hi, names)
            end = _value(last, name, lo, hi, names)
            if start > end:
                raise ValueError(f"{name} range {part!r} runs backwards")
        else:
            start = _value(part, name, lo, hi, names)
            # "5/15" means "from 5 every 15"
            end = hi if step > 1 else start

        result.update(range(start, end + 1, step))

    return result


def parse_cron(expression: str) -> list[set[int]]:
    """Parse a 5- or 6-field cron expression.

    Returns one set per field, seconds first when present.
    """
    parts = expression.split()
    if len(parts) == 5:
        specs = _FIELDS
    elif len(parts) == 6:
        specs = [_SECONDS, *_FIELDS]
    else:
        raise ValueError(f"expected 5 or 6 fields, got {len(parts)}")
    return [parse_field(part, *spec) for part, spec in zip(parts, specs)]


def validate_schedule(schedule: str) -> str:
    """Check a schedule expression and return it stripped.

    Raises ConfigError when the scheduler daemon would reject it.
    """
    expr = schedule.strip()
    if not expr:
        raise ConfigError("Schedule must not be empty")

    if expr.startswith("@"):
        if expr in DESCRIPTORS:
            return expr
        if expr.startswith("@every "):
            duration = expr[len("@every "):].strip()
            if _DURATION_RE.match(duration):
                return expr
            raise ConfigError(
                f"Invalid interval in schedule {schedule!r}",
                hint="Use a duration such as 30m, 2h or 1h30m.",
            )
        raise ConfigError(
            f"Unknown schedule descriptor {expr!r}",
            hint=f"Valid descriptors: {', '.join(sorted(DESCRIPTORS))}, @every <duration>.",
        )

    try:
        parse_cron(expr)
    except ValueError as e:
        raise ConfigError(
            f"Invalid cron schedule {schedule!r}: {e}",
            hint="Expected 'minute hour day-of-month month day-of-week', e.g. '0 2 * * *'.",
        ) from None
    return expr
