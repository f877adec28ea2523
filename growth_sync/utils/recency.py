"""
Recency Parsing

Converts LinkedIn relative-age captions ("5 hours", "2 jours", "Viewed 3h ago")
into hours and calendar dates. Also holds the small URL helpers shared by the
normalizers and the enrichment cache.
"""

import re
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

# (unit tokens, plural label, converter to hours); English and French tokens.
# Months are matched before minutes so "2 mois" is never read as "2 m".
_UNITS: list[tuple[re.Pattern, str, Callable[[float], float]]] = [
    (re.compile(r"^(mo|mos|month|months|mois)$"), "months", lambda n: n * 24 * 30),
    (re.compile(r"^(m|mn|min|mins|minute|minutes)$"), "minutes", lambda n: n / 60),
    (re.compile(r"^(h|hr|hrs|hour|hours|heure|heures)$"), "hours", lambda n: n),
    (re.compile(r"^(d|day|days|j|jour|jours)$"), "days", lambda n: n * 24),
    (re.compile(r"^(w|wk|wks|week|weeks|sem|semaine|semaines)$"), "weeks", lambda n: n * 24 * 7),
]

_AMOUNT_UNIT = re.compile(r"(\d+(?:[.,]\d+)?)\s*([a-zà-ÿ]+)")
_PROFILE_SLUG = re.compile(r"/in/([^/?#]+)")

OPAQUE_MEMBER_PREFIX = "/in/ACo"


def _match_unit(text: str) -> Optional[tuple[float, float, str]]:
    """Return (amount, hours, unit label) for the first recognized amount+unit pair."""
    for amount_str, unit in _AMOUNT_UNIT.findall(text.lower()):
        amount = float(amount_str.replace(",", "."))
        if amount.is_integer():
            amount = int(amount)
        for pattern, label, to_hours in _UNITS:
            if pattern.match(unit):
                return amount, to_hours(amount), label
    return None


def parse_to_hours(time_text: Optional[str]) -> Optional[float]:
    """Parse a relative time string into hours.

    "5 minutes" -> 5/60, "3 hours" -> 3, "2 jours" -> 48, "1 week" -> 168,
    "2 mois" -> 1440. Unrecognized formats return None.
    """
    if not time_text:
        return None
    matched = _match_unit(time_text)
    if matched is None:
        return None
    return matched[1]


def parse_viewed_ago(caption: Optional[str]) -> Optional[tuple[float, str]]:
    """Parse a viewer caption like "Viewed 5h ago" into (hours, "5 hours")."""
    if not caption:
        return None
    matched = _match_unit(caption)
    if matched is None:
        return None
    amount, hours, label = matched
    if amount == 1:
        label = label[:-1]
    return hours, f"{amount} {label}"


def calculate_date(age_hours: Optional[float], now: Optional[datetime] = None) -> Optional[str]:
    """Subtract an age from now and truncate to an ISO day (YYYY-MM-DD, UTC)."""
    if age_hours is None:
        return None
    now = now or datetime.now(timezone.utc)
    return (now - timedelta(hours=age_hours)).astimezone(timezone.utc).date().isoformat()


def calculate_date_from_text(time_text: Optional[str], now: Optional[datetime] = None) -> Optional[str]:
    """Calculate the ISO date a relative time string points at."""
    return calculate_date(parse_to_hours(time_text), now)


def timestamp_to_iso_date(epoch_ms: Optional[float]) -> Optional[str]:
    """Convert a Unix timestamp in milliseconds to YYYY-MM-DD (UTC)."""
    if epoch_ms is None:
        return None
    return datetime.fromtimestamp(epoch_ms / 1000, tz=timezone.utc).date().isoformat()


def timestamp_to_age_hours(epoch_ms: Optional[float], now: Optional[datetime] = None) -> Optional[float]:
    """Hours elapsed between a Unix timestamp in milliseconds and now."""
    if epoch_ms is None:
        return None
    now = now or datetime.now(timezone.utc)
    return max(0.0, (now.timestamp() * 1000 - epoch_ms) / 3_600_000)


def timestamp_to_relative_time(epoch_ms: float, now: Optional[datetime] = None) -> str:
    """Render a Unix timestamp in milliseconds as "2 hours" or "30 minutes"."""
    now = now or datetime.now(timezone.utc)
    diff_ms = now.timestamp() * 1000 - epoch_ms
    hours = int(diff_ms // 3_600_000)
    if hours >= 1:
        return f"{hours} hours"
    return f"{int(diff_ms // 60_000)} minutes"


def is_opaque_member_url(url: Optional[str]) -> bool:
    """Detect LinkedIn member-URN URLs (/in/ACoAAA...) that need resolving to a slug."""
    return bool(url) and OPAQUE_MEMBER_PREFIX in url


def profile_slug(url: Optional[str]) -> Optional[str]:
    """Extract the path segment after /in/ from a LinkedIn profile URL."""
    if not url:
        return None
    match = _PROFILE_SLUG.search(url)
    return match.group(1) if match else None


def profile_url(slug: str) -> str:
    """Build the canonical profile URL for a slug or member id."""
    return f"https://www.linkedin.com/in/{slug}"
