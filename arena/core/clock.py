import datetime
from typing import Protocol

from arena.utils.misc import get_utc_now


class Clock(Protocol):
    def now(self) -> datetime.datetime: ...


class SystemClock:
    def now(self) -> datetime.datetime:
        return get_utc_now()
