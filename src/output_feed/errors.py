"""Exception types raised by the output feed clients."""


class OutputFeedError(Exception):
    """Base class for all output feed errors."""


class ValidationError(OutputFeedError):
    """Raised when input is rejected client-side, before any network call."""

    def __init__(self, message: str, field: str | None = None):
        self.message = message
        self.field = field
        super().__init__(message)


class NetworkError(OutputFeedError):
    """Raised on transport failure or a non-success HTTP status."""

    def __init__(self, message: str, status_code: int | None = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class DecodeError(OutputFeedError):
    """Raised when a response body does not have the expected shape."""


class SubmissionError(OutputFeedError):
    """Raised when the backend refuses or never receives a submission."""

    def __init__(self, message: str, status_code: int | None = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)
