"""Timezone-aware UTC helpers.

Usage:
    from libs.common.datetime_utils import utc_now

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
"""

from datetime import datetime, timezone


def utc_now() -> datetime:
    """Return timezone-aware UTC datetime.

    Use this instead of datetime.utcnow(), which returns naive datetimes.
    """
    return datetime.now(timezone.utc)


def utc_date_stamp() -> str:
    """Today's UTC date as ``YYYYMMDD``."""
    return utc_now().strftime("%Y%m%d")
