"""
Domain value objects for queued jobs.
"""

from dataclasses import dataclass
from typing import Any, Optional


@dataclass(frozen=True)
class Message:
    """
    A reserved or taken job.

    ``identifier`` is the broker delivery tag and is only meaningful until the
    message is finished, aborted, or the channel closes.
    """

    identifier: str
    payload: Any
    number_of_releases: int = 0
    correlation_id: Optional[str] = None

    def __str__(self):
        return self.identifier
