# file: chatwidget/core/errors.py


class ChatWidgetError(Exception):
    pass


class WidgetConfigError(ChatWidgetError):
    pass


class PublicChatError(ChatWidgetError):
    """
    A request/response call failed: non-2xx, ``success: false`` or a
    payload that does not match the expected contract.
    """

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class PublicChatUnavailable(PublicChatError):
    """The backend could not be reached (network error or timeout)."""
