"""
Publish/subscribe transports for display notifications.

Two implementations share the ``Publisher``/``Subscriber`` interface:

- ``InProcessPubSub`` fans a payload out to callbacks in this process only.
- ``PostgresRelay`` publishes with ``pg_notify`` and keeps one dedicated
  ``LISTEN`` connection per process; every received payload is handed to a
  local ``InProcessPubSub``, which is what the hubs subscribe to.

Production wires the relay in front of the local fan-out, so an event
published by the worker process reaches streams held by the API process.
Tests use ``InProcessPubSub`` alone.
"""

import asyncio
import logging
from collections import defaultdict
from typing import Callable, Optional, Protocol

import asyncpg

from storefront.config import settings
from storefront import metrics

logger = logging.getLogger(__name__)

Callback = Callable[[str], None]


class Publisher(Protocol):
    async def publish(self, channel: str, payload: str) -> None: ...


class Subscriber(Protocol):
    def subscribe(self, channel: str, callback: Callback) -> None: ...

    def unsubscribe(self, channel: str, callback: Callback) -> None: ...


class InProcessPubSub:
    """Synchronous fan-out to callbacks registered in this process."""

    def __init__(self):
        self._callbacks: dict[str, list[Callback]] = defaultdict(list)

    def subscribe(self, channel: str, callback: Callback) -> None:
        if callback not in self._callbacks[channel]:
            self._callbacks[channel].append(callback)

    def unsubscribe(self, channel: str, callback: Callback) -> None:
        if callback in self._callbacks[channel]:
            self._callbacks[channel].remove(callback)

    def dispatch(self, channel: str, payload: str) -> None:
        for callback in list(self._callbacks.get(channel, ())):
            try:
                callback(payload)
            except Exception as e:
                logger.error(f"Subscriber callback failed on {channel}: {e}", exc_info=True)

    async def publish(self, channel: str, payload: str) -> None:
        self.dispatch(channel, payload)
        metrics.notifications_published_total.labels(channel=channel, status="local").inc()


def to_asyncpg_dsn(database_url: str) -> str:
    """Strip the SQLAlchemy driver suffix so asyncpg accepts the URL."""
    return database_url.replace("postgresql+asyncpg://", "postgresql://", 1)


class PostgresRelay:
    """
    Database-level notification channel (PostgreSQL LISTEN/NOTIFY).

    Features:
    - Parameterized ``pg_notify`` for publishing (no manual quoting)
    - One dedicated LISTEN connection per process
    - Automatic reconnect after the listener connection drops
    """

    def __init__(
        self,
        local: InProcessPubSub,
        channels: tuple[str, ...],
        database_url: Optional[str] = None,
        reconnect_seconds: Optional[float] = None,
    ):
        self.local = local
        self.channels = channels
        self.dsn = to_asyncpg_dsn(database_url or settings.database_url)
        self.reconnect_seconds = (
            reconnect_seconds if reconnect_seconds is not None else settings.listener_reconnect_seconds
        )
        self._listener: Optional[asyncpg.Connection] = None
        self._publisher: Optional[asyncpg.Connection] = None
        self._publish_lock = asyncio.Lock()
        self._reconnect_task: Optional[asyncio.Task] = None
        self._closed = False

    async def _get_publisher(self) -> asyncpg.Connection:
        """Get or create the publishing connection."""
        if self._publisher is None or self._publisher.is_closed():
            self._publisher = await asyncpg.connect(self.dsn)
        return self._publisher

    async def publish(self, channel: str, payload: str) -> None:
        """Send a NOTIFY on the channel; errors propagate to the caller."""
        try:
            async with self._publish_lock:
                conn = await self._get_publisher()
                await conn.execute("SELECT pg_notify($1, $2)", channel, payload)
        except Exception:
            metrics.notifications_published_total.labels(channel=channel, status="error").inc()
            self._publisher = None
            raise
        metrics.notifications_published_total.labels(channel=channel, status="success").inc()

    def _on_notification(self, connection, pid, channel, payload):
        logger.debug(f"Notification received on {channel} from pid {pid}")
        self.local.dispatch(channel, payload)

    def _on_termination(self, connection):
        if self._closed:
            return
        logger.error("LISTEN connection terminated; reconnecting")
        self._listener = None
        self._schedule_reconnect()

    def _schedule_reconnect(self):
        if self._reconnect_task is None or self._reconnect_task.done():
            self._reconnect_task = asyncio.get_running_loop().create_task(self._reconnect_loop())

    async def _reconnect_loop(self):
        while not self._closed and self._listener is None:
            await asyncio.sleep(self.reconnect_seconds)
            try:
                await self.start()
            except Exception as e:
                logger.error(f"Failed to re-establish LISTEN connection: {e}")

    async def start(self) -> None:
        """Open the dedicated LISTEN connection (idempotent)."""
        if self._listener is not None and not self._listener.is_closed():
            return
        conn = await asyncpg.connect(self.dsn)
        for channel in self.channels:
            await conn.add_listener(channel, self._on_notification)
        conn.add_termination_listener(self._on_termination)
        self._listener = conn
        logger.info(f"Listening on channels: {', '.join(self.channels)}")

    async def start_with_retry(self) -> None:
        """Start listening, falling back to background reconnects on failure."""
        try:
            await self.start()
        except Exception as e:
            logger.error(f"Failed to initialize LISTEN connection: {e}")
            self._schedule_reconnect()

    async def close(self) -> None:
        """Close listener and publisher connections."""
        self._closed = True
        if self._reconnect_task:
            self._reconnect_task.cancel()
        for conn in (self._listener, self._publisher):
            if conn is not None and not conn.is_closed():
                await conn.close()
        self._listener = None
        self._publisher = None
