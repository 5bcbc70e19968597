"""Error taxonomy shared by the generation workflow."""

from __future__ import annotations


class WorkflowError(Exception):
    """Base class for errors that end a generation attempt.

    ``message`` is shown to the user as-is.
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ValidationError(WorkflowError):
    """Raised when user input cannot form a generation request."""


class QuotaExceededError(WorkflowError):
    """Raised when the daily generation ceiling has been reached."""


class ServiceError(WorkflowError):
    """Raised for network, configuration or empty-response failures of the image service."""


class FormatError(WorkflowError):
    """Raised when an image reference cannot be decomposed into media type and payload."""


class StorageError(Exception):
    """Raised by storage backends on read/write failures.

    The quota tracker recovers from these internally; they never reach the user.
    """
