import re
from datetime import date, datetime
from typing import Optional
from zoneinfo import ZoneInfo

from config import get_settings
from errors import ValidationError

MONTH_KEY_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


def current_month_key(today: Optional[date] = None) -> str:
    if today is None:
        today = datetime.now(ZoneInfo(get_settings().timezone)).date()
    return f"{today.year:04d}-{today.month:02d}"


def month_key_for(moment: datetime) -> str:
    return moment.strftime("%Y-%m")


def validate_month_key(month_key: str) -> str:
    key = (month_key or "").strip()
    if not MONTH_KEY_RE.match(key):
        raise ValidationError(f"Invalid month key: {month_key!r} (expected YYYY-MM)")
    return key
