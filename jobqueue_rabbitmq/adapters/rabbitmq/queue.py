"""
RabbitMQ queue backend.
Maps the job-queue operations onto a single AMQP channel bound to one queue:
submit -> basic.publish, wait_and_take -> basic.get (auto-ack),
wait_and_reserve -> one-shot basic.consume, finish -> basic.ack,
abort -> basic.nack, count -> passive queue.declare, flush -> queue.purge.
"""

import asyncio
from typing import Any, Dict, List, Mapping, Optional, Union

import aio_pika
from aio_pika import DeliveryMode
from aio_pika.abc import (
    AbstractChannel,
    AbstractExchange,
    AbstractIncomingMessage,
    AbstractQueue,
    AbstractRobustConnection,
)

from ...core.config import QueueOptions
from ...core.logger import logger
from ...core.messaging import (
    JSON_CONTENT_TYPE,
    decode_payload,
    encode_payload,
    new_correlation_id,
    open_connection,
)
from ...domain.exceptions import (
    MessageNotFoundError,
    QueueNotConnectedError,
    UnsupportedOperationError,
)
from ...domain.message import Message
from ...ports.queue import QueuePort

# One unacknowledged delivery per channel at a time
PREFETCH_COUNT = 1


class RabbitQueue(QueuePort):
    """
    A queue implementation using RabbitMQ as the queue backend.

    The adapter owns one connection and one channel. Open them with
    ``await queue.connect()`` (or ``async with``) and release them with
    ``await queue.shutdown()``.

    Example:
        >>> async with RabbitQueue("jobs", {"durable": True}) as queue:
        ...     await queue.submit({"job": "resize", "id": 42})
        ...     message = await queue.wait_and_reserve(timeout=5)
        ...     await queue.finish(message.identifier)
    """

    def __init__(
        self,
        name: str,
        options: Union[QueueOptions, Mapping[str, Any], None] = None,
    ):
        if not name:
            raise ValueError("Queue name must not be empty")

        self.name = name
        if isinstance(options, QueueOptions):
            self.options = options
        else:
            self.options = QueueOptions.model_validate(dict(options or {}))

        self.connection: Optional[AbstractRobustConnection] = None
        self.channel: Optional[AbstractChannel] = None
        self.exchange: Optional[AbstractExchange] = None
        self.queue: Optional[AbstractQueue] = None

        # Reserved deliveries awaiting finish() or abort(), keyed by delivery tag
        self._in_flight: Dict[str, AbstractIncomingMessage] = {}
        self._closed = False

    @classmethod
    async def open(
        cls,
        name: str,
        options: Union[QueueOptions, Mapping[str, Any], None] = None,
    ) -> "RabbitQueue":
        """Create a queue and connect it to the broker."""
        queue = cls(name, options)
        await queue.connect()
        return queue

    async def __aenter__(self) -> "RabbitQueue":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.shutdown()

    async def connect(self) -> None:
        """
        Open the connection and channel, then declare the topology.

        Declares and binds the exchange when one is configured, then declares
        the queue. Re-declaring an existing queue with matching properties is
        a no-op; conflicting properties fail at the broker.

        Raises:
            QueueNotConnectedError: If the queue has already been shut down
            aio_pika.exceptions.AMQPError: If the broker is unreachable or
                rejects a declaration
        """
        if self._closed:
            raise QueueNotConnectedError(f"Queue {self.name} has been shut down")
        if self.connection is not None:
            return

        try:
            logger.info(f"Connecting queue {self.name} to RabbitMQ...")
            self.connection = await open_connection(
                self.options.client, timeout=self.options.default_timeout
            )

            logger.debug("Creating channel...")
            self.channel = await self.connection.channel(publisher_confirms=False)
            await self.channel.set_qos(prefetch_count=PREFETCH_COUNT)

            exchange_options = self.options.exchange
            if exchange_options is not None:
                logger.debug(f"Declaring exchange: {exchange_options.name}")
                self.exchange = await self.channel.declare_exchange(
                    name=exchange_options.name,
                    type=exchange_options.type,
                    passive=exchange_options.passive,
                    durable=exchange_options.durable,
                    auto_delete=exchange_options.auto_delete,
                )
            else:
                self.exchange = self.channel.default_exchange

            logger.debug(f"Declaring queue: {self.name}")
            self.queue = await self.channel.declare_queue(
                name=self.name,
                passive=self.options.passive,
                durable=self.options.durable,
                exclusive=self.options.exclusive,
                auto_delete=self.options.auto_delete,
                arguments=self.options.arguments,
            )

            if exchange_options is not None:
                await self.queue.bind(self.exchange, routing_key=self.name)
                logger.debug(f"Queue {self.name} bound to exchange {exchange_options.name}")

            logger.info(f"Queue ready: {self.name}")

        except Exception as e:
            logger.error(f"❌ Failed to set up queue {self.name}: {e}")
            logger.exception("Queue setup error details:")
            await self._close_transport()
            raise

    def get_name(self) -> str:
        return self.name

    async def submit(self, payload: Any, options: Optional[Dict[str, Any]] = None) -> str:
        """
        Publish a JSON-encoded payload to the queue.

        Args:
            payload: Any JSON-serializable value
            options: Optional ``priority`` (int) and ``headers`` (mapping)

        Returns:
            The correlation id attached to the published message
        """
        self._require_queue()
        options = options or {}

        correlation_id = new_correlation_id()
        message = aio_pika.Message(
            body=encode_payload(payload),
            content_type=JSON_CONTENT_TYPE,
            correlation_id=correlation_id,
            message_id=correlation_id,
            headers=dict(options.get("headers") or {}),
            priority=options.get("priority"),
            delivery_mode=(
                DeliveryMode.PERSISTENT
                if self.options.durable
                else DeliveryMode.NOT_PERSISTENT
            ),
        )

        await self.exchange.publish(message, routing_key=self.name)
        logger.debug(f"Submitted message to {self.name}: correlation_id={correlation_id}")
        return correlation_id

    async def wait_and_take(self, timeout: Optional[float] = None) -> Optional[Message]:
        """
        Take the next message, acknowledging it on receipt.

        Polls the queue until a message arrives or the timeout elapses.

        Returns:
            The decoded message, or None if the queue stayed empty
        """
        queue = self._require_queue()
        timeout = self._resolve_timeout(timeout)
        poll_interval = self.options.poll_interval

        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout

        while True:
            incoming = await queue.get(no_ack=True, fail=False)
            if incoming is not None:
                logger.debug(f"Took message {incoming.delivery_tag} from {self.name}")
                return self._to_message(incoming)

            if deadline is None:
                delay = poll_interval
            else:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    return None
                delay = min(poll_interval, remaining)
            await asyncio.sleep(delay)

    async def wait_and_reserve(self, timeout: Optional[float] = None) -> Optional[Message]:
        """
        Reserve the next message without acknowledging it.

        Registers a consumer for a single delivery and cancels it again
        whether or not a message arrived. The caller must finish() or abort()
        the returned message.

        Returns:
            The decoded message, or None if none arrived before the timeout
        """
        queue = self._require_queue()
        timeout = self._resolve_timeout(timeout)
        slot: "asyncio.Future[AbstractIncomingMessage]" = (
            asyncio.get_running_loop().create_future()
        )

        async def on_message(incoming: AbstractIncomingMessage) -> None:
            # Deliveries racing the cancellation go back to the queue
            if slot.done():
                await incoming.nack(requeue=True)
                return
            slot.set_result(incoming)

        consumer_tag = await queue.consume(on_message, no_ack=False)
        try:
            await asyncio.wait_for(asyncio.shield(slot), timeout)
        except asyncio.TimeoutError:
            pass
        except BaseException:
            if slot.done() and not slot.cancelled():
                await slot.result().nack(requeue=True)
            raise
        finally:
            await queue.cancel(consumer_tag)
            if not slot.done():
                slot.cancel()

        if slot.cancelled():
            return None

        incoming = slot.result()
        try:
            message = self._to_message(incoming)
        except ValueError:
            logger.error(
                f"❌ Rejecting undecodable message {incoming.delivery_tag} from {self.name}"
            )
            await incoming.reject(requeue=False)
            raise

        self._in_flight[message.identifier] = incoming
        logger.debug(f"Reserved message {message.identifier} from {self.name}")
        return message

    async def release(self, message_id: str, options: Optional[Dict[str, Any]] = None) -> None:
        raise UnsupportedOperationError("release")

    async def abort(self, message_id: str) -> None:
        """Reject a reserved message; the broker requeues it."""
        self._require_queue()
        incoming = self._pop_in_flight(message_id)
        await incoming.nack(requeue=True)
        logger.debug(f"Aborted message {message_id} on {self.name}")

    async def finish(self, message_id: str) -> None:
        """Acknowledge a reserved message, removing it from the broker."""
        self._require_queue()
        incoming = self._pop_in_flight(message_id)
        await incoming.ack()
        logger.debug(f"Finished message {message_id} on {self.name}")

    async def peek(self, limit: int = 1) -> List[Message]:
        raise UnsupportedOperationError("peek")

    async def count(self) -> int:
        """Return the number of ready messages reported by a passive declare."""
        self._require_queue()
        # Robust channels answer passive declares of known queues from cache
        channel = await self.channel.get_underlay_channel()
        declared = await channel.queue_declare(queue=self.name, passive=True)
        return int(declared.message_count or 0)

    async def set_up(self) -> None:
        # Topology is declared in connect()
        pass

    async def flush(self) -> None:
        """Purge every ready message from the queue."""
        queue = self._require_queue()
        logger.warning(f"⚠️ Purging queue: {self.name}")
        await queue.purge()

    async def shutdown(self) -> None:
        """Close the channel, then the connection. Only the first call has an effect."""
        if self._closed:
            return
        self._closed = True

        logger.info(f"Shutting down queue {self.name}...")
        try:
            await self._close_transport()
        except Exception as e:
            logger.error(f"❌ Error disconnecting queue {self.name} from RabbitMQ: {e}")
            logger.exception("Disconnect error details:")
            raise
        logger.info(f"Queue {self.name} disconnected")

    @property
    def is_closed(self) -> bool:
        """True once shutdown() has been called."""
        return self._closed

    def health_check(self) -> bool:
        """Return True if both the connection and the channel are open."""
        if self.connection is None or self.connection.is_closed:
            return False
        if self.channel is None or self.channel.is_closed:
            return False
        return True

    def _require_queue(self) -> AbstractQueue:
        if self.queue is None:
            raise QueueNotConnectedError(
                f"Queue {self.name} is not connected. Call connect() first."
            )
        return self.queue

    def _resolve_timeout(self, timeout: Optional[float]) -> Optional[float]:
        # None or 0 falls back to the default; no default means wait forever
        if not timeout:
            timeout = self.options.default_timeout
        return timeout or None

    def _pop_in_flight(self, message_id: str) -> AbstractIncomingMessage:
        try:
            return self._in_flight.pop(str(message_id))
        except KeyError:
            raise MessageNotFoundError(str(message_id)) from None

    @staticmethod
    def _to_message(incoming: AbstractIncomingMessage) -> Message:
        return Message(
            identifier=str(incoming.delivery_tag),
            payload=decode_payload(incoming.body),
            number_of_releases=1 if incoming.redelivered else 0,
            correlation_id=incoming.correlation_id,
        )

    async def _close_transport(self) -> None:
        channel, connection = self.channel, self.connection
        self.channel = None
        self.connection = None
        self.exchange = None
        self.queue = None
        self._in_flight.clear()

        try:
            if channel is not None and not channel.is_closed:
                logger.debug("Closing channel...")
                await channel.close()
        finally:
            if connection is not None and not connection.is_closed:
                logger.debug("Closing connection...")
                await connection.close()
