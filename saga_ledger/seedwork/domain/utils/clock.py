import datetime
import typing

__all__ = (
    "IClock",
    "utcnow",
)


IClock = typing.Callable[[], datetime.datetime]


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)
