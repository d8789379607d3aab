"""Error types raised by the scheduler core and translated to HTTP by the API.

The API layer maps each class to a status code via ``status_code`` so that
handlers never need to inspect the concrete type.
"""


class SchedulerError(Exception):
    """Base class for errors that should surface to the client as ``{"error": ...}``."""
    status_code = 500

    def __init__(self, message: str = ''):
        super().__init__(message)
        self.message = message or self.__class__.__name__


class ValidationError(SchedulerError):
    """Client supplied a malformed date, blank title, bad id or bad rule."""
    status_code = 400


class UnsupportedRuleError(ValidationError):
    """Recurrence rule does not match ``d <N>`` (1..400) or ``y``."""

    def __init__(self, rule: str, message: str | None = None):
        super().__init__(message or f'unsupported repeat rule: {rule!r}')
        self.rule = rule


class NotFoundError(SchedulerError):
    status_code = 404

    def __init__(self, task_id=None, message: str | None = None):
        if message is None:
            message = 'task not found' if task_id is None else f'task {task_id} not found'
        super().__init__(message)
        self.task_id = task_id


class DuplicateError(SchedulerError):
    """A task with the same (date, title) pair already exists."""
    status_code = 409


class StorageError(SchedulerError):
    """Unexpected persistence failure; fatal for the current request."""
    status_code = 500
