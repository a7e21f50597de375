"""
Time and date utilities for repository freshness scoring.

Key concepts:
  - All timestamps handled by the core are timezone-aware UTC. GitHub returns
    ISO-8601 strings with a trailing ``Z``; ``parse_github_timestamp`` turns
    those into aware datetimes.
  - Ages and recencies are measured in fractional days against an explicit
    ``as_of`` so scoring stays a pure function of its inputs.
  - Trending windows map a named window to a ``pushed:>`` cut-off date.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Optional

_SECONDS_PER_DAY = 86_400.0

# Named trending window → lookback in days.
TRENDING_WINDOW_DAYS: dict[str, int] = {
    "daily":   1,
    "weekly":  7,
    "monthly": 30,
}


def utcnow() -> datetime:
    """Return the current UTC datetime with timezone info.

    Prefer this over ``datetime.utcnow()`` (which returns naive datetimes).
    """
    return datetime.now(tz=timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to a naive datetime, or convert an aware one to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_github_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse a GitHub ISO-8601 timestamp (``2024-01-05T10:00:00Z``).

    Args:
        value: Timestamp string, or ``None``/empty.

    Returns:
        Aware UTC ``datetime`` or ``None`` if ``value`` is empty.

    Raises:
        ValueError: If the string is not a valid ISO-8601 timestamp.
    """
    if not value:
        return None
    return ensure_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))


def days_between(earlier: Optional[datetime], later: datetime) -> Optional[float]:
    """Return non-negative fractional days from ``earlier`` to ``later``.

    Returns ``None`` if ``earlier`` is ``None``. Future timestamps (clock skew)
    clamp to ``0.0``.
    """
    if earlier is None:
        return None
    delta = (ensure_utc(later) - ensure_utc(earlier)).total_seconds() / _SECONDS_PER_DAY
    return max(0.0, delta)


def trending_cutoff(window: str, as_of: Optional[date] = None) -> date:
    """Return the earliest ``pushed`` date for a trending window.

    Args:
        window: One of ``"daily"``, ``"weekly"``, ``"monthly"``.
        as_of: Reference date (default: today, UTC).

    Returns:
        ``as_of`` minus the window length.

    Raises:
        ValueError: If ``window`` is not a known trending window.
    """
    days = TRENDING_WINDOW_DAYS.get(window)
    if days is None:
        raise ValueError(
            f"Unknown trending window '{window}'. "
            f"Must be one of {sorted(TRENDING_WINDOW_DAYS)}."
        )
    reference = as_of or utcnow().date()
    return reference - timedelta(days=days)
