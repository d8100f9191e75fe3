"""
Error taxonomy shared by the recorder, the remote services and the controller.

Every error carries a short human-readable message that the controller
flashes to the user as-is.
"""


class Shortcut4AIError(Exception):
    """Base exception for all Shortcut4AI errors."""
    pass


class RecorderError(Shortcut4AIError):
    """Base exception for audio capture errors."""
    pass


class LaunchFailedError(RecorderError):
    """Raised when the capture process cannot be started."""

    def __init__(self, message: str = "Failed to start recording"):
        super().__init__(message)


class AlreadyRecordingError(RecorderError):
    """Raised when starting a recording while one is active."""

    def __init__(self, message: str = "Recording already in progress"):
        super().__init__(message)


class NotRecordingError(RecorderError):
    """Raised when stopping without an active recording."""

    def __init__(self, message: str = "Not currently recording"):
        super().__init__(message)


class ServiceError(Shortcut4AIError):
    """Raised on transport failures and non-2xx responses from a remote API."""
    pass


class EmptyResultError(ServiceError):
    """Raised when the transcription service returns no text."""

    def __init__(self, message: str = "Error in transcription!"):
        super().__init__(message)


class EmptyResponseError(ServiceError):
    """Raised when the chat service returns no usable message."""

    def __init__(self, message: str = "No valid response"):
        super().__init__(message)


class NoSelectionError(Shortcut4AIError):

    def __init__(self, message: str = "No text selected"):
        super().__init__(message)


class NoClipboardContentError(Shortcut4AIError):

    def __init__(self, message: str = "Clipboard is empty"):
        super().__init__(message)


class BusyError(Shortcut4AIError):
    """Raised when a trigger arrives while another interaction is in flight."""

    def __init__(self, message: str = "Busy, try again in a moment"):
        super().__init__(message)
