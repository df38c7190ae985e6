"""Exceptions raised by the Haier IoT client."""


class HaierApiClientError(Exception):
    """Base exception for Haier IoT client errors."""


class HaierAuthError(HaierApiClientError):
    """Exception raised when logging in or resolving a token fails."""


class HaierApiError(HaierApiClientError):
    """Exception raised for a non-success application return code."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(f"[{code}]: {message}")
        self.code = code
        self.message = message


class HaierTransportError(HaierApiClientError):
    """Exception raised when the websocket cannot be opened or is lost."""


class HaierDecodeError(HaierApiClientError):
    """Exception raised for a push payload that cannot be decoded.

    Attributes:
        reason: Tag naming the decoding step that failed.

    """

    def __init__(self, reason: str, message: str) -> None:
        super().__init__(f"{reason}: {message}")
        self.reason = reason


class HaierValidationError(HaierApiClientError):
    """Exception raised for an outbound message or command with a bad shape."""
