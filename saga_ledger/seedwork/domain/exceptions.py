"""Domain error taxonomy.

Every error the ledger, the queue, the locks and the sagas surface to a caller
is one of these. Infrastructure errors (psycopg, redis, aiohttp) are not
wrapped and propagate as they are.
"""
import typing

__all__ = (
    "DomainError",
    "NotFound",
    "Forbidden",
    "Unauthorized",
    "AlreadyInUse",
    "RateLimitExceeded",
    "ServiceUnavailable",
    "Argument",
    "ArgumentNull",
    "ServiceError",
)


class DomainError(Exception):
    code: int = 500

    def __init__(self, message: str = ""):
        self.message = message
        super().__init__(message)

    @property
    def name(self) -> str:
        return type(self).__name__


class NotFound(DomainError):
    code = 404

    def __init__(self, entity_name: str, message: str | None = None):
        self.entity_name = entity_name
        if message is None:
            message = "%s not found." % entity_name
        super().__init__(message)


class Forbidden(DomainError):
    code = 403

    def __init__(self, message: str = "Forbidden."):
        super().__init__(message)


class Unauthorized(DomainError):
    code = 401

    def __init__(self, message: str = "Unauthorized."):
        super().__init__(message)


class AlreadyInUse(DomainError):
    code = 409

    def __init__(self, entity_name: str, field_names: typing.Sequence[str] = (), message: str | None = None):
        self.entity_name = entity_name
        self.field_names = tuple(field_names)
        if message is None:
            message = "%s is already in use." % entity_name
        super().__init__(message)


class RateLimitExceeded(AlreadyInUse):
    """A held rate-limit slot; a conflict like any other held key."""
    code = 429

    def __init__(self, message: str = "Rate limit exceeded."):
        super().__init__('rateLimit', (), message)


class ServiceUnavailable(DomainError):
    code = 503

    def __init__(self, message: str = "Service unavailable temporarily."):
        super().__init__(message)


class Argument(DomainError):
    code = 400

    def __init__(self, argument_name: str, message: str | None = None):
        self.argument_name = argument_name
        if message is None:
            message = "Invalid or missing argument supplied: %s." % argument_name
        super().__init__(message)


class ArgumentNull(Argument):

    def __init__(self, argument_name: str, message: str | None = None):
        if message is None:
            message = "Missing argument: %s." % argument_name
        super().__init__(argument_name, message)


class ServiceError(DomainError):
    """Error reported by an external collaborator, normalised to ``{code, message, name}``."""

    def __init__(self, code: int, message: str = "", name: str = "ServiceError"):
        super().__init__(message)
        self.code = code
        self._name = name

    @property
    def name(self) -> str:
        return self._name
