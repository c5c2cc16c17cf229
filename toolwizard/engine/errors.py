"""Exception taxonomy for the wizard engine.

Engine operations raise these internally and convert them into session state
(step error, validation errors, load error) at the public operation boundary.
"""

from typing import Optional


class ToolWizardError(Exception):
    """Base exception for all engine errors."""

    def __init__(self, message: str, suggestion: Optional[str] = None):
        self.message = message
        self.suggestion = suggestion
        super().__init__(message)

    def __str__(self) -> str:
        if self.suggestion:
            return f"{self.message}\nSuggestion: {self.suggestion}"
        return self.message


class ConfigurationError(ToolWizardError):
    """The tool declaration is missing something the engine needs."""


class BackendError(ToolWizardError):
    """A backend call failed (non-2xx response or transport failure)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ToolLoadError(ToolWizardError):
    """A tool definition could not be fetched or validated."""


class JobAlreadyActiveError(ToolWizardError):
    """A second job was started while one is still being polled."""

    def __init__(self, action_id: str):
        super().__init__(
            f"Job for action '{action_id}' is still pending",
            "Wait for the running job to finish before advancing again",
        )
