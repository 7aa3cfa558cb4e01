"""
Queue Ports.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from ..domain.message import Message


class QueuePort(ABC):
    """Abstract interface every job-queue backend implements."""

    @abstractmethod
    def get_name(self) -> str:
        """Return the queue name."""
        pass

    @abstractmethod
    async def submit(self, payload: Any, options: Optional[Dict[str, Any]] = None) -> str:
        """Submit a payload and return an identifier for it."""
        pass

    @abstractmethod
    async def wait_and_take(self, timeout: Optional[float] = None) -> Optional[Message]:
        """Remove the next message from the queue, or None on timeout."""
        pass

    @abstractmethod
    async def wait_and_reserve(self, timeout: Optional[float] = None) -> Optional[Message]:
        """Reserve the next message until finish() or abort(), or None on timeout."""
        pass

    @abstractmethod
    async def release(self, message_id: str, options: Optional[Dict[str, Any]] = None) -> None:
        """Put a reserved message back into the queue."""
        pass

    @abstractmethod
    async def abort(self, message_id: str) -> None:
        """Give up on a reserved message."""
        pass

    @abstractmethod
    async def finish(self, message_id: str) -> None:
        """Mark a reserved message as done."""
        pass

    @abstractmethod
    async def peek(self, limit: int = 1) -> List[Message]:
        """Return up to ``limit`` upcoming messages without reserving them."""
        pass

    @abstractmethod
    async def count(self) -> int:
        """Return the number of ready messages."""
        pass

    @abstractmethod
    async def set_up(self) -> None:
        """Provision backend resources."""
        pass

    @abstractmethod
    async def flush(self) -> None:
        """Remove all messages from the queue."""
        pass

    @abstractmethod
    async def shutdown(self) -> None:
        """Release backend resources."""
        pass
