import calendar
import re
from datetime import date, timedelta
from typing import Iterable

from ..core.errors import InvalidWindowError

_MONTH_RE = re.compile(r"^(\d{4})-(\d{2})(?:-(\d{2}))?$")


def parse_start_month(start_month: str) -> date:
    """Return the first day of the month named by ``start_month``.

    Accepts ``YYYY-MM-01``, any ``YYYY-MM-DD`` inside the month, or ``YYYY-MM``.
    """
    match = _MONTH_RE.match(str(start_month).strip()) if start_month else None
    if not match:
        raise InvalidWindowError(f"start month must look like YYYY-MM-01, got {start_month!r}")
    year, month, day = int(match.group(1)), int(match.group(2)), match.group(3)
    try:
        date(year, month, int(day) if day else 1)
    except ValueError as exc:
        raise InvalidWindowError(f"invalid start month {start_month!r}: {exc}") from exc
    return date(year, month, 1)


def parse_day(value: str) -> date:
    return date.fromisoformat(str(value)[:10])


def add_months(first: date, n: int) -> date:
    idx = first.month - 1 + n
    return date(first.year + idx // 12, idx % 12 + 1, 1)


def end_of_month(d: date) -> date:
    return date(d.year, d.month, calendar.monthrange(d.year, d.month)[1])


def segment_boundary(start_month: str) -> date:
    return parse_start_month(start_month)


def window_range(start_month: str, months_count: int, preroll_days: int) -> tuple[date, date, date]:
    """(range_start, boundary, range_end) for a display window."""
    if isinstance(months_count, bool) or not isinstance(months_count, int) or months_count < 1:
        raise InvalidWindowError(f"months_count must be an integer >= 1, got {months_count!r}")
    if isinstance(preroll_days, bool) or not isinstance(preroll_days, int) or preroll_days < 0:
        raise InvalidWindowError(f"preroll_days must be an integer >= 0, got {preroll_days!r}")
    boundary = parse_start_month(start_month)
    range_end = end_of_month(add_months(boundary, months_count - 1))
    range_start = boundary - timedelta(days=preroll_days)
    return range_start, boundary, range_end


def window_bounds(start_month: str, months_count: int, preroll_days: int) -> tuple[str, str]:
    range_start, _, range_end = window_range(start_month, months_count, preroll_days)
    return range_start.isoformat(), range_end.isoformat()


def build_calendar(start_month: str, months_count: int, preroll_days: int) -> list[str]:
    range_start, _, range_end = window_range(start_month, months_count, preroll_days)
    n_days = (range_end - range_start).days + 1
    return [(range_start + timedelta(days=i)).isoformat() for i in range(n_days)]


def months_from_dates(dates: Iterable[str]) -> list[str]:
    """Sorted unique ``YYYY-MM`` months present in ``dates``."""
    months = set()
    for d in dates:
        if not d:
            continue
        text = str(d)
        if _MONTH_RE.match(text[:10]):
            months.add(text[:7])
    return sorted(months)


def fmt_mdy(day: str) -> str:
    d = parse_day(day)
    return f"{d.month}/{d.day}/{str(d.year)[-2:]}"
