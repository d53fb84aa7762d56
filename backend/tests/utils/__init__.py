import random
import string
from datetime import UTC, datetime, timedelta


def random_lower_string() -> str:
    return "".join(random.choices(string.ascii_lowercase, k=32))


class FrozenClock:
    """Clock that only moves when told to."""

    def __init__(self, current: datetime | None = None):
        self.current = current or datetime.now(UTC)

    def now(self) -> datetime:
        return self.current

    def advance(self, delta: timedelta) -> None:
        self.current += delta
