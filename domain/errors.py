"""Exception types raised across the chat core"""


class ChatError(Exception):
    """Base class for all chat core errors"""


class NotConnectedError(ChatError):
    """Raised when an emit is attempted without a live connection

    Carries the unsent content so the caller can restore the input field.
    """

    def __init__(self, message: str, content: str | None = None) -> None:
        super().__init__(message)
        self.content = content


class SendFailedError(ChatError):
    """Raised when the transport rejects an outbound frame"""

    def __init__(self, message: str, content: str | None = None) -> None:
        super().__init__(message)
        self.content = content


class MalformedEventError(ChatError):
    """Raised when an inbound frame or payload cannot be decoded"""


class DataAPIError(ChatError):
    """Raised when a Data API request fails or returns a non-2xx status"""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class UnknownMessageError(ChatError):
    """Raised when a temp id does not name a retryable placeholder"""
