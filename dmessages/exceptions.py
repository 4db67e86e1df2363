"""
Error kinds raised by the messaging layer.

Each kind carries the HTTP status the transport layer answers with.
"""


class MessagingError(Exception):
    status_code = 500
    default_message = "Messaging error"

    def __init__(self, message=None):
        super().__init__(message or self.default_message)


class ValidationError(MessagingError):
    """Bad input: blank content, self-messaging, malformed identifiers."""
    status_code = 400
    default_message = "Invalid message request"


class AccessError(MessagingError):
    """The caller is not a participant of the requested conversation."""
    status_code = 403
    default_message = "Access denied"


class NotFoundError(MessagingError):
    status_code = 404
    default_message = "Not found"


class StoreError(MessagingError):
    """The backing store or transport failed; the request may be retried later."""
    status_code = 503
    default_message = "Message store unavailable"
