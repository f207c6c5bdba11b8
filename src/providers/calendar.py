from datetime import date, datetime
from typing import Iterable, Optional
from zoneinfo import ZoneInfo

from .base import CalendarProvider

SAO_PAULO = ZoneInfo("America/Sao_Paulo")


class B3Calendar(CalendarProvider):
    """
    Weekday calendar for B3 with an explicit holiday list.

    Holidays are supplied by the caller; exchange holiday feeds are
    outside this package.
    """

    def __init__(self, holidays: Optional[Iterable[date]] = None, now=None):
        self.holidays = set(holidays or [])
        self._now = now or (lambda: datetime.now(SAO_PAULO))

    def get_today_in_brazil(self) -> date:
        return self._now().astimezone(SAO_PAULO).date()

    def is_trading_day(self, target_date: date) -> bool:
        return target_date.weekday() < 5 and target_date not in self.holidays
