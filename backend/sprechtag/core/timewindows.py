"""Time window helpers.

Slots and requests store times as display strings, ``"HH:MM - HH:MM"``, and
dates as ``"DD.MM.YYYY"``. Everything that builds or compares those strings
goes through here so the format stays canonical.
"""
import re
from datetime import date, datetime

ALLOWED_SLOT_MINUTES = (10, 15, 20, 30)
REQUEST_WINDOW_MINUTES = 30

# daily window per teacher system: (start hour, end hour)
SYSTEM_HOURS = {
    "dual": (16, 18),
    "vollzeit": (17, 19),
}

_WINDOW_RE = re.compile(r"^(\d{2}):(\d{2})\s*-\s*(\d{2}):(\d{2})$")


def normalize_system(system: str | None) -> str:
    return "vollzeit" if system == "vollzeit" else "dual"


def normalize_slot_minutes(minutes, default: int = 15) -> int:
    if minutes in ALLOWED_SLOT_MINUTES:
        return minutes
    return default if default in ALLOWED_SLOT_MINUTES else 15


def fmt_minutes(mins: int) -> str:
    return f"{mins // 60:02d}:{mins % 60:02d}"


def fmt_window(start: int, end: int) -> str:
    return f"{fmt_minutes(start)} - {fmt_minutes(end)}"


def parse_window(value) -> tuple[int, int] | None:
    """``"16:00 - 16:30"`` -> ``(960, 990)``; ``None`` when malformed or empty."""
    if not isinstance(value, str):
        return None
    m = _WINDOW_RE.match(value.strip())
    if not m:
        return None
    h1, m1, h2, m2 = (int(g) for g in m.groups())
    if h1 > 23 or h2 > 24 or m1 > 59 or m2 > 59:
        return None
    start, end = h1 * 60 + m1, h2 * 60 + m2
    if end <= start:
        return None
    return start, end


def canonical_window(value) -> str | None:
    parsed = parse_window(value)
    return fmt_window(*parsed) if parsed else None


def build_windows(start_hour: int, end_hour: int, minutes: int) -> list[str]:
    start, end = start_hour * 60, end_hour * 60
    out = []
    m = start
    while m + minutes <= end:
        out.append(fmt_window(m, m + minutes))
        m += minutes
    return out


def requested_windows_for_system(system: str | None) -> list[str]:
    """Canonical half-hour windows a visitor may request."""
    start_hour, end_hour = SYSTEM_HOURS[normalize_system(system)]
    return build_windows(start_hour, end_hour, REQUEST_WINDOW_MINUTES)


def slot_times_for_system(system: str | None, slot_minutes: int = 15) -> list[str]:
    """Concrete slot times generated for a teacher's day."""
    start_hour, end_hour = SYSTEM_HOURS[normalize_system(system)]
    return build_windows(start_hour, end_hour, normalize_slot_minutes(slot_minutes))


def candidate_times(requested_window, slot_minutes: int = 15) -> list[str]:
    """Subdivide a requested window into concrete slot times.

    A window that is not longer than one slot is its own single candidate.
    A malformed window yields ``[]``.
    """
    parsed = parse_window(requested_window)
    if not parsed:
        return []
    start, end = parsed
    dur = normalize_slot_minutes(slot_minutes)
    if end - start <= dur:
        return [fmt_window(start, end)]

    out = []
    m = start
    while m + dur <= end:
        out.append(fmt_window(m, m + dur))
        m += dur
    return out


def format_date_de(value) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    if isinstance(value, (datetime, date)):
        return value.strftime("%d.%m.%Y")
    return None
