"""
RabbitMQ queue backend.
"""

from .factory import get_queue, reset_queues
from .queue import PREFETCH_COUNT, RabbitQueue

__all__ = ["RabbitQueue", "PREFETCH_COUNT", "get_queue", "reset_queues"]
