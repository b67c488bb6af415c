import dataclasses
import datetime
import enum
import functools
import json
import typing

from psycopg.types.json import Jsonb

__all__ = (
    "JSONEncoder",
    "dumps",
    "to_jsonb",
)


class JSONEncoder(json.JSONEncoder):

    def default(self, o: typing.Any) -> typing.Any:
        if isinstance(o, (datetime.datetime, datetime.date)):
            return o.isoformat()
        if isinstance(o, enum.Enum):
            return o.value
        if dataclasses.is_dataclass(o) and not isinstance(o, type):
            return dataclasses.asdict(o)
        if isinstance(o, (set, frozenset)):
            return list(o)
        return super().default(o)


dumps = functools.partial(json.dumps, cls=JSONEncoder)


def to_jsonb(obj: typing.Any) -> Jsonb | None:
    if obj is None:
        return None
    return Jsonb(obj, dumps=dumps)
