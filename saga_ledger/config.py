import dataclasses
import os
import typing

from dotenv import load_dotenv

from saga_ledger.seedwork.domain.exceptions import ServiceUnavailable

__all__ = ('Settings',)


def _int(environ: typing.Mapping[str, str], name: str, default: int) -> int:
    value = environ.get(name)
    if value is None or value == '':
        return default
    try:
        return int(value)
    except ValueError:
        raise ServiceUnavailable('%s must be an integer, got %r.' % (name, value))


def _float(environ: typing.Mapping[str, str], name: str, default: float) -> float:
    value = environ.get(name)
    if value is None or value == '':
        return default
    try:
        return float(value)
    except ValueError:
        raise ServiceUnavailable('%s must be a number, got %r.' % (name, value))


def _list(environ: typing.Mapping[str, str], name: str) -> tuple[str, ...]:
    value = environ.get(name, '')
    return tuple(item.strip() for item in value.split(',') if item.strip())


@dataclasses.dataclass(frozen=True, kw_only=True)
class Settings:
    postgresql_url: str = ''
    redis_url: str = ''
    register_service_lock_ttl: int = 7200
    wheel_chair_rate_limit_unit_in_seconds: int = 3600
    wheel_chair_rate_limit_quota: int = 1
    wheel_chair_num_additional_stocks: int = 6
    task_polling_interval: float = 1.0
    task_retry_interval_in_minutes: int = 10
    task_abort_interval_in_minutes: int = 10
    task_maintenance_period: float = 60
    trigger_webhook_timeout: float = 15
    inform_order_urls: tuple[str, ...] = ()

    @classmethod
    def from_env(cls, env_file: str | os.PathLike | None = None,
                 environ: typing.Mapping[str, str] | None = None) -> "Settings":
        """Reads settings from the environment after loading ``env_file``
        (``.env`` from the working directory when omitted)."""
        if environ is None:
            load_dotenv(env_file)
            environ = os.environ
        return cls(
            postgresql_url=environ.get('POSTGRESQL_URL', ''),
            redis_url=environ.get('REDIS_URL', ''),
            register_service_lock_ttl=_int(environ, 'REGISTER_SERVICE_LOCK_TTL', 7200),
            wheel_chair_rate_limit_unit_in_seconds=_int(environ, 'WHEEL_CHAIR_RATE_LIMIT_UNIT_IN_SECONDS', 3600),
            wheel_chair_rate_limit_quota=_int(environ, 'WHEEL_CHAIR_RATE_LIMIT_QUOTA', 1),
            wheel_chair_num_additional_stocks=_int(environ, 'WHEEL_CHAIR_NUM_ADDITIONAL_STOCKS', 6),
            task_polling_interval=_float(environ, 'TASK_POLLING_INTERVAL', 1.0),
            task_retry_interval_in_minutes=_int(environ, 'TASK_RETRY_INTERVAL_IN_MINUTES', 10),
            task_abort_interval_in_minutes=_int(environ, 'TASK_ABORT_INTERVAL_IN_MINUTES', 10),
            task_maintenance_period=_float(environ, 'TASK_MAINTENANCE_PERIOD', 60),
            trigger_webhook_timeout=_float(environ, 'TRIGGER_WEBHOOK_TIMEOUT', 15),
            inform_order_urls=_list(environ, 'INFORM_ORDER_URL'),
        )

    def require(self, name: str) -> typing.Any:
        value = getattr(self, name)
        if value in ('', None, ()):
            raise ServiceUnavailable('%s undefined.' % name.upper())
        return value
