"""
Ports implemented by queue backends.
"""

from .queue import QueuePort

__all__ = ["QueuePort"]
