"""
Shared fixtures: an in-memory stand-in for the aio_pika objects RabbitQueue uses.
"""

import asyncio
from collections import deque
from types import SimpleNamespace
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio

from jobqueue_rabbitmq.adapters.rabbitmq import RabbitQueue, reset_queues
from jobqueue_rabbitmq.core.config import get_settings


class FakePreconditionFailed(Exception):
    """Declaration conflicts with an existing entity."""


class FakeNotFound(Exception):
    """Passive declaration of a missing entity."""


class FakeIncomingMessage:
    """Delivery as seen by a consumer."""

    def __init__(self, queue_state, body, properties, delivery_tag, channel, no_ack):
        self._queue_state = queue_state
        self._channel = channel
        self._no_ack = no_ack
        self.body = body
        self.properties = properties
        self.delivery_tag = delivery_tag
        self.redelivered = properties.get("redelivered", False)
        self.correlation_id = properties.get("correlation_id")
        self.headers = properties.get("headers") or {}
        self.acked = False
        self.nacked = False
        self.rejected = False

    def _settle(self):
        if self._no_ack:
            raise RuntimeError("Message was auto-acknowledged")
        self._channel.unacked.pop(self.delivery_tag)

    async def ack(self):
        self._settle()
        self.acked = True
        self._queue_state.dispatch()

    async def nack(self, requeue=True):
        self._settle()
        self.nacked = True
        if requeue:
            self._queue_state.requeue(self.body, self.properties)
        self._queue_state.dispatch()

    async def reject(self, requeue=False):
        self._settle()
        self.rejected = True
        if requeue:
            self._queue_state.requeue(self.body, self.properties)
        self._queue_state.dispatch()


class FakeQueueState:
    """Broker-side state of one queue."""

    def __init__(self, broker, name, declaration):
        self.broker = broker
        self.name = name
        self.declaration = declaration
        self.ready: Deque[Tuple[bytes, Dict[str, Any]]] = deque()
        self.consumers: Dict[str, Tuple[Callable, "FakeChannel"]] = {}

    def enqueue(self, body, properties):
        self.ready.append((body, dict(properties)))
        self.dispatch()

    def requeue(self, body, properties):
        properties = dict(properties, redelivered=True)
        self.ready.appendleft((body, properties))

    def pop(self, channel, no_ack) -> Optional[FakeIncomingMessage]:
        if not self.ready:
            return None
        body, properties = self.ready.popleft()
        tag = channel.next_delivery_tag()
        incoming = FakeIncomingMessage(self, body, properties, tag, channel, no_ack)
        if not no_ack:
            channel.unacked[tag] = incoming
        return incoming

    def dispatch(self):
        for callback, channel in list(self.consumers.values()):
            while self.ready and channel.can_deliver():
                incoming = self.pop(channel, no_ack=False)
                asyncio.ensure_future(callback(incoming))


class FakeBroker:
    """Minimal single-node broker holding queues and exchanges."""

    def __init__(self):
        self.queues: Dict[str, FakeQueueState] = {}
        self.exchanges: Dict[str, Dict[str, Any]] = {}
        self.bindings: List[Tuple[str, str, str]] = []
        self.published: List[Any] = []
        self.connections: List["FakeConnection"] = []

    def connect(self) -> "FakeConnection":
        connection = FakeConnection(self)
        self.connections.append(connection)
        return connection

    def route(self, exchange_name, routing_key, message):
        self.published.append(message)
        properties = {
            "correlation_id": message.correlation_id,
            "headers": dict(message.headers or {}),
        }
        if not exchange_name:
            targets = [routing_key]
        else:
            targets = [
                queue
                for exchange, queue, key in self.bindings
                if exchange == exchange_name and key == routing_key
            ]
        for target in targets:
            if target in self.queues:
                self.queues[target].enqueue(message.body, properties)

    def put_raw(self, queue_name, body, **properties):
        self.queues[queue_name].enqueue(body, properties)


class FakeExchange:
    def __init__(self, broker, name):
        self.broker = broker
        self.name = name

    async def publish(self, message, routing_key, **kwargs):
        self.broker.route(self.name, routing_key, message)


class FakeQueue:
    def __init__(self, channel, state, message_count):
        self.channel = channel
        self.state = state
        self.name = state.name
        self.declaration_result = SimpleNamespace(message_count=message_count)
        self._consumer_seq = 0

    async def bind(self, exchange, routing_key=None, **kwargs):
        self.channel.broker.bindings.append((exchange.name, self.name, routing_key))

    async def get(self, *, no_ack=False, fail=True, timeout=5):
        incoming = self.state.pop(self.channel, no_ack)
        if incoming is None and fail:
            raise LookupError("queue empty")
        return incoming

    async def consume(self, callback, no_ack=False, **kwargs):
        assert not no_ack
        self._consumer_seq += 1
        tag = f"ctag-{id(self)}-{self._consumer_seq}"
        self.state.consumers[tag] = (callback, self.channel)
        self.channel.consume_calls += 1
        self.state.dispatch()
        return tag

    async def cancel(self, consumer_tag, **kwargs):
        del self.state.consumers[consumer_tag]
        self.channel.cancel_calls += 1

    async def purge(self, **kwargs):
        self.state.ready.clear()


class FakeUnderlayChannel:
    """Low-level channel: every queue_declare reaches the broker."""

    def __init__(self, channel):
        self.channel = channel
        self.declares = 0

    async def queue_declare(self, queue="", *, passive=False, **kwargs):
        self.declares += 1
        state = self.channel.broker.queues.get(queue)
        if state is None:
            raise FakeNotFound(queue)
        return SimpleNamespace(queue=queue, message_count=len(state.ready), consumer_count=0)


class FakeChannel:
    def __init__(self, broker, publisher_confirms=True, **kwargs):
        self.broker = broker
        self.publisher_confirms = publisher_confirms
        self.is_closed = False
        self.prefetch_count = 0
        self.unacked: Dict[int, FakeIncomingMessage] = {}
        self.consume_calls = 0
        self.cancel_calls = 0
        self._delivery_tag = 0
        self._declared: Dict[str, FakeQueue] = {}

    def next_delivery_tag(self) -> int:
        self._delivery_tag += 1
        return self._delivery_tag

    def can_deliver(self) -> bool:
        return not self.prefetch_count or len(self.unacked) < self.prefetch_count

    @property
    def default_exchange(self):
        return FakeExchange(self.broker, "")

    async def set_qos(self, prefetch_count=0, **kwargs):
        self.prefetch_count = prefetch_count

    async def declare_exchange(self, name, type="direct", passive=False, durable=False, auto_delete=False, **kwargs):
        existing = self.broker.exchanges.get(name)
        if passive:
            if existing is None:
                raise FakeNotFound(name)
        elif existing is None:
            self.broker.exchanges[name] = {
                "type": type,
                "durable": durable,
                "auto_delete": auto_delete,
            }
        return FakeExchange(self.broker, name)

    async def declare_queue(
        self,
        name,
        *,
        passive=False,
        durable=False,
        exclusive=False,
        auto_delete=False,
        arguments=None,
        **kwargs,
    ):
        declaration = {
            "durable": durable,
            "exclusive": exclusive,
            "auto_delete": auto_delete,
            "arguments": arguments,
        }
        state = self.broker.queues.get(name)
        if passive:
            # Robust channels answer passive declares of known queues from cache
            if name in self._declared:
                return self._declared[name]
            if state is None:
                raise FakeNotFound(name)
        elif state is None:
            state = FakeQueueState(self.broker, name, declaration)
            self.broker.queues[name] = state
        elif state.declaration != declaration:
            raise FakePreconditionFailed(f"inequivalent arg for queue {name}")
        queue = FakeQueue(self, state, len(state.ready))
        self._declared[name] = queue
        return queue

    async def get_underlay_channel(self):
        return FakeUnderlayChannel(self)

    async def close(self):
        self.is_closed = True
        # Unacknowledged deliveries go back to their queues
        for incoming in list(self.unacked.values()):
            self.unacked.pop(incoming.delivery_tag)
            incoming._queue_state.requeue(incoming.body, incoming.properties)
        for state in self.broker.queues.values():
            for tag, (_, channel) in list(state.consumers.items()):
                if channel is self:
                    del state.consumers[tag]


class FakeConnection:
    def __init__(self, broker):
        self.broker = broker
        self.is_closed = False
        self.channels: List[FakeChannel] = []

    async def channel(self, **kwargs):
        channel = FakeChannel(self.broker, **kwargs)
        self.channels.append(channel)
        return channel

    async def close(self):
        for channel in self.channels:
            if not channel.is_closed:
                await channel.close()
        self.is_closed = True


@pytest.fixture
def broker():
    return FakeBroker()


@pytest.fixture
def connect_robust(broker):
    """Patch aio_pika.connect_robust to hand out connections to the fake broker."""
    mock = AsyncMock(side_effect=lambda *args, **kwargs: broker.connect())
    with patch("aio_pika.connect_robust", new=mock):
        yield mock


@pytest_asyncio.fixture
async def queue(broker, connect_robust):
    rabbit_queue = RabbitQueue("jobs", {"pollInterval": 0.01})
    await rabbit_queue.connect()
    yield rabbit_queue
    await rabbit_queue.shutdown()


@pytest.fixture(autouse=True)
def clean_caches():
    get_settings.cache_clear()
    reset_queues()
    yield
    get_settings.cache_clear()
    reset_queues()
