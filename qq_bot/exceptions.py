"""
Custom exceptions for the OneBot client and vision image handling.
"""

from typing import Optional


class OneBotError(Exception):
    """Base exception for OneBot client errors."""

    pass


class OneBotConnectionError(OneBotError):
    """Failed to connect to or communicate with the OneBot endpoint."""

    pass


class OneBotTimeoutError(OneBotError):
    """No response carrying the request's echo token arrived in time."""

    def __init__(self, action: str, echo: str):
        super().__init__(f"timeout action={action} echo={echo}")
        self.action = action
        self.echo = echo


class OneBotActionError(OneBotError):
    """The OneBot server answered an action with status=failed."""

    def __init__(self, action: str, retcode: Optional[int], message: str = ""):
        detail = f": {message}" if message else ""
        super().__init__(f"action {action} failed (retcode={retcode}){detail}")
        self.action = action
        self.retcode = retcode


class ImageAcquisitionError(Exception):
    """Raised when an image reference cannot be turned into usable bytes."""

    pass


class ImageTooLargeError(ImageAcquisitionError):
    """Raised when declared or observed image size exceeds the limit."""

    pass


class ImageDecodeError(ImageAcquisitionError):
    """Raised when an embedded base64 payload cannot be decoded."""

    pass


class ImageFetchError(ImageAcquisitionError):
    """Raised when a remote image cannot be fetched."""

    pass
