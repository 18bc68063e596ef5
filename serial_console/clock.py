from __future__ import annotations

import time
from datetime import datetime, timedelta


class SessionClock:
    """
    Wall-clock timestamps derived from time.monotonic().

    The wall time is sampled once at session start; later readings add the
    monotonic elapsed time, so timestamps never go backwards even if the
    system clock is adjusted mid-session.
    """

    def __init__(self) -> None:
        self._start_wall = datetime.now().astimezone()
        self._start_mono = time.monotonic()

    @property
    def started(self) -> datetime:
        return self._start_wall

    def now(self) -> datetime:
        return self._start_wall + timedelta(seconds=time.monotonic() - self._start_mono)
