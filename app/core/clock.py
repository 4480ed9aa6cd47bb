from datetime import datetime

import pytz

from app.core.config import BUSINESS_TIMEZONE


def local_now() -> datetime:
    """Horário de parede da unidade, sem tzinfo (mesmo formato gravado no banco)."""
    tz = pytz.timezone(BUSINESS_TIMEZONE)
    return datetime.now(tz).replace(tzinfo=None)
