"""
Domain exceptions raised by queue backends.
"""


class QueueError(Exception):
    """Base class for errors raised by a queue backend."""


class UnsupportedOperationError(QueueError, NotImplementedError):
    """The operation is not implemented by this backend."""

    def __init__(self, operation: str, backend: str = "RabbitQueue"):
        self.operation = operation
        self.backend = backend
        super().__init__(f"{backend} does not support {operation}()")


class QueueNotConnectedError(QueueError):
    """A broker operation was attempted before connect() or after shutdown()."""


class MessageNotFoundError(QueueError, KeyError):
    """No in-flight delivery is known for the given message identifier."""

    def __init__(self, message_id: str):
        self.message_id = message_id
        super().__init__(f"No reserved message with id {message_id!r}")

    def __str__(self):
        return self.args[0]
