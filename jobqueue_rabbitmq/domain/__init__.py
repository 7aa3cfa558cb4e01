"""
Domain layer: message value object and error taxonomy.
"""

from .exceptions import (
    MessageNotFoundError,
    QueueError,
    QueueNotConnectedError,
    UnsupportedOperationError,
)
from .message import Message

__all__ = [
    "Message",
    "QueueError",
    "UnsupportedOperationError",
    "QueueNotConnectedError",
    "MessageNotFoundError",
]
