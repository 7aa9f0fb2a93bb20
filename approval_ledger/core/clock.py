"""Clock source for timestamps.

Services receive a clock instead of calling ``datetime.now`` directly so that
expiry and vote ordering can be driven deterministically in tests.
"""

from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
