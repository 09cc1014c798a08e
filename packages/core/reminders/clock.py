from __future__ import annotations

import datetime as dt
from typing import Callable

Clock = Callable[[], dt.datetime]


def local_now() -> dt.datetime:
    # Reminder days follow the operator's wall calendar, not UTC.
    return dt.datetime.now().replace(microsecond=0)
