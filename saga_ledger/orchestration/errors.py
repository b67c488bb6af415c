import typing

import aiohttp

from saga_ledger.seedwork.domain.exceptions import (
    AlreadyInUse, Argument, Forbidden, NotFound, RateLimitExceeded, ServiceError, ServiceUnavailable, Unauthorized,
)
from saga_ledger.seedwork.domain.utils.errors import error_to_dict

__all__ = (
    "handle_service_error",
    "raise_normalized",
    "is_benign",
    "error_to_dict",
    "BENIGN_CODES",
)


# "Already canceled" and "gone" answers while undoing.
BENIGN_CODES = frozenset((404, 409))


def _describe(error: BaseException) -> tuple[int, str, str] | None:
    if isinstance(error, ServiceError):
        return error.code, error.name, error.message
    if isinstance(error, aiohttp.ClientResponseError):
        return error.status, type(error).__name__, error.message
    return None


def handle_service_error(error: BaseException) -> BaseException:
    """Converts an external service error into the matching domain error.

    Anything that is not an external service error is returned unchanged.
    """
    described = _describe(error)
    if described is None:
        return error
    code, name, message = described
    message = "%s:%s" % (name, message)
    if code == 400:
        argument_name = getattr(error, 'argument_name', None) or 'ServiceArgument'
        return Argument(argument_name, message)
    if code == 401:
        return Unauthorized(message)
    if code == 403:
        return Forbidden(message)
    if code == 404:
        return NotFound(getattr(error, 'entity_name', None) or 'Resource', message)
    if code == 409:
        return AlreadyInUse(
            getattr(error, 'entity_name', None) or 'ServiceArgument',
            getattr(error, 'field_names', None) or (),
            message
        )
    if code == 429:
        return RateLimitExceeded(message)
    return ServiceUnavailable(message)


def raise_normalized(error: BaseException) -> typing.NoReturn:
    """Rethrows ``error``, converted when it came from an external service."""
    handled = handle_service_error(error)
    if handled is error:
        raise error
    raise handled from error


def is_benign(error: BaseException) -> bool:
    """True for answers that mean the thing being undone is already undone."""
    code = getattr(error, 'code', None)
    if not isinstance(code, int):
        code = getattr(error, 'status', None)
    return code in BENIGN_CODES
