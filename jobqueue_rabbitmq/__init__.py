"""
Job-queue backend for RabbitMQ.
"""

from .adapters.rabbitmq import RabbitQueue, get_queue
from .core.config import QueueOptions
from .domain import (
    Message,
    MessageNotFoundError,
    QueueError,
    QueueNotConnectedError,
    UnsupportedOperationError,
)
from .ports import QueuePort

__version__ = "1.0.0"

__all__ = [
    "RabbitQueue",
    "get_queue",
    "QueueOptions",
    "QueuePort",
    "Message",
    "QueueError",
    "UnsupportedOperationError",
    "QueueNotConnectedError",
    "MessageNotFoundError",
]
