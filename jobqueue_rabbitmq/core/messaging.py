"""
RabbitMQ connection and wire-format helpers.
Builds connection URLs, opens robust connections and encodes message bodies.
"""

import json
import uuid
from typing import Any, Optional
from urllib.parse import quote

import aio_pika
from aio_pika.abc import AbstractRobustConnection

from .config import ClientOptions
from .logger import logger

JSON_CONTENT_TYPE = "application/json"


def build_amqp_url(client: ClientOptions) -> str:
    """Construct the RabbitMQ connection URL for the given client options."""
    return (
        f"amqp://{quote(client.username, safe='')}:{quote(client.password, safe='')}"
        f"@{client.host}:{client.port}/{quote(client.vhost, safe='')}"
        f"?auth={client.login_method.lower()}"
    )


def mask_amqp_url(url: str, password: str) -> str:
    """Mask the password in a connection URL for logging."""
    return url.replace(f":{quote(password, safe='')}@", ":****@")


async def open_connection(
    client: ClientOptions, timeout: Optional[int] = None
) -> AbstractRobustConnection:
    """
    Open a robust connection to RabbitMQ.

    Args:
        client: Broker connection parameters
        timeout: Connection timeout in seconds, None for the client default

    Raises:
        aio_pika.exceptions.AMQPConnectionError: If the broker is unreachable
    """
    url = build_amqp_url(client)
    logger.debug(f"Connection URL: {mask_amqp_url(url, client.password)}")

    if client.insist:
        logger.debug("'insist' has no effect on AMQP 0-9-1 connections, ignoring")

    try:
        connection = await aio_pika.connect_robust(url, timeout=timeout)
    except aio_pika.exceptions.AMQPConnectionError as e:
        logger.error(f"❌ RabbitMQ connection error: {e}")
        logger.error(f"Check if RabbitMQ is running at {client.host}:{client.port}")
        raise

    logger.info(f"Connected to RabbitMQ at {client.host}:{client.port}")
    return connection


def encode_payload(payload: Any) -> bytes:
    """Serialize a payload to UTF-8 JSON text."""
    return json.dumps(payload).encode("utf-8")


def decode_payload(body: bytes) -> Any:
    """Deserialize a UTF-8 JSON message body."""
    return json.loads(body.decode("utf-8"))


def new_correlation_id() -> str:
    """Return a fresh correlation identifier for a published message."""
    return uuid.uuid4().hex
