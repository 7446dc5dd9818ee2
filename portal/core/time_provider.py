from __future__ import annotations

from datetime import date, datetime
from zoneinfo import ZoneInfo

from portal.config import settings


APP_TIMEZONE = settings.app_timezone or 'Asia/Seoul'
APP_ZONEINFO = ZoneInfo(APP_TIMEZONE)


class TimeProvider:
    def now(self) -> datetime:
        return datetime.now(APP_ZONEINFO)

    def today(self) -> date:
        return self.now().date()

    def utcnow_naive(self) -> datetime:
        # Columns are stored as naive UTC.
        return self.now().astimezone(ZoneInfo('UTC')).replace(tzinfo=None)


default_time_provider = TimeProvider()
