from datetime import datetime, time
from typing import Optional

from paperworth.domain.models import utcnow

# Tried in order; the first format that parses wins.
DATE_ONLY_FORMATS = (
    "%d/%m/%Y",
    "%m/%d/%Y",
    "%Y-%m-%d",
    "%d-%m-%Y",
    "%m-%d-%Y",
    "%Y/%m/%d",
    "%d.%m.%Y",
)

DATE_TIME_FORMATS = (
    "%d/%m/%Y %H:%M:%S",
    "%m/%d/%Y %H:%M:%S",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%dT%H:%M:%S.%fZ",
)

NOON = time(12, 0, 0)


def parse_purchase_date(value: Optional[str]) -> datetime:
    """
    Parse a client-supplied purchase date.

    Date-only values are placed at noon. Empty or unparseable input yields now.
    """
    if not value or not value.strip():
        return utcnow()
    value = value.strip()
    for fmt in DATE_ONLY_FORMATS:
        try:
            return datetime.combine(datetime.strptime(value, fmt).date(), NOON)
        except ValueError:
            continue
    for fmt in DATE_TIME_FORMATS:
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    return utcnow()


def month_key(moment: datetime) -> str:
    return moment.strftime("%Y-%m")


def current_month_key() -> str:
    return month_key(utcnow())
