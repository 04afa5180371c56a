"""
Errors raised by the schedule services.
Storage errors are not wrapped; they reach the caller unmodified.
"""


class ScheduleError(Exception):
    """Base class for schedule errors"""


class InvalidArgument(ScheduleError, ValueError):
    """Malformed rule, bad window, or a recurring-only operation on a one-off series"""


class NotFound(ScheduleError):
    """Series, church or occurrence does not exist"""


class Conflict(ScheduleError):
    """
    A write would break a uniqueness rule, e.g. a second exception for the
    same series date. Carries the record already holding the key when known.
    """

    def __init__(self, message, existing=None):
        super().__init__(message)
        self.existing = existing


class PreconditionFailed(ScheduleError):
    """The target is not in a state that allows the operation"""
