# os_autopilot/core/errors.py
from typing import Optional


class AutopilotError(Exception):
    """Base class for every failure the autopilot reports to its caller."""


class ConfigError(AutopilotError):
    pass


class CaptureError(AutopilotError):
    """No display could be captured."""


class ModelRequestError(AutopilotError):
    """The agent model transport failed or returned something unusable."""


class ExtractionError(AutopilotError):
    """An assistant turn did not carry exactly one recognized tool call."""


class MaxStepsExceeded(AutopilotError):
    def __init__(self, message: str = "Maximum steps exceeded"):
        super().__init__(message)


# -----------------------------------------------------
# Executor failures (recovered into tool-result notes)
# -----------------------------------------------------
class ActionError(AutopilotError):
    pass


class UnknownKeyError(ActionError):
    def __init__(self, key: str):
        super().__init__(f"Tried to press unknown key: {key}")
        self.key = key


class UnsupportedActionError(ActionError):
    def __init__(self, action_type: str):
        super().__init__(f"Unsupported action: {action_type}")
        self.action_type = action_type


class ActionExecutionError(ActionError):
    def __init__(self, action_type: str, attempts: int, cause: Optional[BaseException] = None):
        super().__init__(f"Action {action_type} failed after {attempts} attempts: {cause}")
        self.action_type = action_type
        self.attempts = attempts
        self.cause = cause
