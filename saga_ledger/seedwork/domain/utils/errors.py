import traceback

__all__ = ('error_to_dict',)


def error_to_dict(error: BaseException) -> dict:
    """Flattens an exception into the ``{code, message, name, stack}`` shape
    stored on failed actions and task execution results."""
    code = getattr(error, 'code', None)
    if not isinstance(code, int):
        code = getattr(error, 'status', None)
    if not isinstance(code, int):
        code = 500
    message = getattr(error, 'message', None)
    if not isinstance(message, str):
        message = str(error)
    name = getattr(error, 'name', None)
    if not isinstance(name, str):
        name = type(error).__name__
    return {
        'code': code,
        'message': message,
        'name': name,
        'stack': ''.join(traceback.format_exception(type(error), error, error.__traceback__)),
    }
