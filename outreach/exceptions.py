"""
Exceptions raised by the outreach scheduler
"""
from config.settings import ConfigurationError


class OutreachError(Exception):
    """Base class for outreach scheduling errors"""


class InvalidOutcomeError(OutreachError, ValueError):
    """A callback attempt outcome outside the closed outcome set"""

    def __init__(self, value):
        self.value = value
        super().__init__(f"Unknown callback attempt outcome: {value!r}")


class CallbackTaskClosedError(OutreachError):
    """An attempt was logged against a task that is already terminal"""

    def __init__(self, task_id: str, status: str):
        self.task_id = task_id
        self.status = status
        super().__init__(f"Callback task {task_id} is {status}; no further attempts can be logged")


class OutboundCallError(OutreachError):
    """The outbound call provider rejected or failed a call request"""

    def __init__(self, message: str, status_code=None, details: str = ""):
        self.status_code = status_code
        self.details = details
        super().__init__(message)


__all__ = [
    "ConfigurationError",
    "OutreachError",
    "InvalidOutcomeError",
    "CallbackTaskClosedError",
    "OutboundCallError",
]
