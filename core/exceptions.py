import logging
import traceback
from typing import Any, Optional


class WikiError(Exception):
    """Base exception for all wiki errors"""


class StorageFailure(WikiError):
    """Raised when a page store operation fails (connectivity, SQL, constraint or timeout)"""

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        detail = f"{type(cause).__name__}: {cause}" if cause else "unknown error"
        super().__init__(f"Storage operation '{operation}' failed: {detail}")
        self.operation = operation
        self.cause = cause


class StartupFailure(WikiError):
    """Raised when a startup stage fails; the process must not come up"""

    def __init__(self, stage: str, cause: Optional[BaseException] = None):
        message = f"Startup failed at stage '{stage}'"
        if cause:
            message = f"{message}: {cause}"
        super().__init__(message)
        self.stage = stage
        self.cause = cause


class ValidationFailure(WikiError):
    """Raised when a request parameter is malformed"""

    def __init__(self, field: str, value: Any):
        super().__init__(f"Invalid value for '{field}': {value!r}")
        self.field = field
        self.value = value


def handle_exception(
    e: BaseException,
    message: str = "An error occurred",
    source: str = "app",
):
    """
    Log an exception with its location and traceback
    Args:
        e: The exception
        message: Custom error message
        source: Source of the error (storage/web/startup)
    """
    # Get full traceback
    error_traceback = "".join(traceback.format_tb(e.__traceback__))

    # Get original error location (for brief display)
    frames = traceback.extract_tb(e.__traceback__)
    if frames:
        tb = frames[-1]
        error_location = f'File "{tb.filename}", line {tb.lineno}, in {tb.name}'
    else:
        error_location = "unknown"

    # Combine error message
    error_message = (
        f"{message}: {str(e)}\n"
        f"Location: {error_location}\n"
        f"Full traceback:\n{error_traceback}"
    )

    # Log the error directly using error logger with source
    extra = {"source": source}
    logging.error(error_message, extra=extra)

