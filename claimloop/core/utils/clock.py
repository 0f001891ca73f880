# claimloop/core/utils/clock.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, TypeAlias

Clock: TypeAlias = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
