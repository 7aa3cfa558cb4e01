"""
Queue factory building RabbitQueue instances from environment settings.
"""

from typing import Dict, Optional

from ...core.config import QueueOptions, Settings, get_settings
from ...core.logger import logger
from .queue import RabbitQueue

_queues: Dict[str, RabbitQueue] = {}


def get_queue(name: str, settings: Optional[Settings] = None) -> RabbitQueue:
    """
    Get the RabbitQueue for ``name`` (one instance per name).

    The queue is not connected; await ``connect()`` before use. A cached
    queue that has been shut down is replaced by a fresh instance.

    Returns:
        RabbitQueue instance
    """
    try:
        queue = _queues.get(name)
        if queue is None or queue.is_closed:
            logger.debug(f"Creating new RabbitQueue instance: {name}")
            options = QueueOptions.from_settings(settings or get_settings())
            _queues[name] = RabbitQueue(name, options)

        return _queues[name]

    except Exception as e:
        logger.error(f"❌ Failed to get queue {name}: {e}")
        logger.exception("Queue initialization error:")
        raise


def reset_queues() -> None:
    """Forget all cached queues (useful for testing). Does not shut them down."""
    _queues.clear()
