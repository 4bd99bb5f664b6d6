"""Per-process registry of open display streams."""

import asyncio
import json
import logging
from typing import Callable, Optional, Protocol

from storefront.config import settings
from storefront import metrics

logger = logging.getLogger(__name__)

CONNECTED_EVENT = json.dumps({"type": "connected"})
KEEPALIVE_LINE = ": ping\n\n"


class ClientStream(Protocol):
    """Anything that accepts a chunk of SSE text; raises when the client is gone."""

    def send(self, chunk: str) -> None: ...


class QueueClientStream:
    """Stream handle backed by a bounded queue drained by the HTTP response."""

    def __init__(self, maxsize: int = 100):
        self.queue: asyncio.Queue[str] = asyncio.Queue(maxsize=maxsize)
        self.closed = False

    def send(self, chunk: str) -> None:
        if self.closed:
            raise ConnectionError("stream closed")
        # A full queue means the client stopped reading
        self.queue.put_nowait(chunk)

    def close(self) -> None:
        self.closed = True


def format_data(payload: str) -> str:
    return f"data: {payload}\n\n"


class ClientRegistry:
    """Open stream handles, each with a cancel function for its keepalive."""

    def __init__(self):
        self._clients: dict[ClientStream, Callable[[], None]] = {}

    def add(self, client: ClientStream, cancel: Callable[[], None]) -> None:
        self._clients[client] = cancel

    def remove(self, client: ClientStream) -> bool:
        cancel = self._clients.pop(client, None)
        if cancel is None:
            return False
        cancel()
        return True

    def __contains__(self, client) -> bool:
        return client in self._clients

    def __len__(self) -> int:
        return len(self._clients)

    def snapshot(self) -> list[ClientStream]:
        return list(self._clients)


class NotificationHub:
    """
    Fan-out of one notification channel to the streams connected to this process.

    The hub subscribes to the local pub/sub for its channel; whatever reaches
    the channel (from this process or, through the database relay, from a
    sibling process) is written to every registered stream.
    """

    def __init__(
        self,
        channel: str,
        registry: Optional[ClientRegistry] = None,
        keepalive_interval: Optional[float] = None,
    ):
        self.channel = channel
        self.registry = registry if registry is not None else ClientRegistry()
        self.keepalive_interval = (
            keepalive_interval if keepalive_interval is not None else settings.keepalive_interval_seconds
        )

    def attach(self, subscriber) -> None:
        """Relay channel messages from a subscriber to the local streams."""
        subscriber.subscribe(self.channel, self.broadcast)

    def detach(self, subscriber) -> None:
        subscriber.unsubscribe(self.channel, self.broadcast)

    @property
    def client_count(self) -> int:
        return len(self.registry)

    def add_client(self, client: ClientStream) -> None:
        """Register a stream, send the connected acknowledgement and start its keepalive."""
        client.send(format_data(CONNECTED_EVENT))
        task = asyncio.get_running_loop().create_task(self._keepalive(client))
        self.registry.add(client, task.cancel)
        metrics.connected_clients.labels(channel=self.channel).set(len(self.registry))
        logger.info(f"Client connected to {self.channel}. Total: {len(self.registry)}")

    def remove_client(self, client: ClientStream) -> None:
        """Drop a stream, stop its keepalive and close it; unknown streams are ignored."""
        if self.registry.remove(client):
            close = getattr(client, "close", None)
            if close is not None:
                close()
            metrics.connected_clients.labels(channel=self.channel).set(len(self.registry))
            logger.info(f"Client disconnected from {self.channel}. Total: {len(self.registry)}")

    async def _keepalive(self, client: ClientStream) -> None:
        while True:
            await asyncio.sleep(self.keepalive_interval)
            try:
                client.send(KEEPALIVE_LINE)
            except Exception:
                logger.debug(f"Keepalive failed on {self.channel}; dropping client")
                # Clear our own cancel first so remove() does not cancel this task mid-cleanup
                self.registry.add(client, lambda: None)
                self.remove_client(client)
                return

    def broadcast(self, payload: str) -> int:
        """Write a payload to every stream, pruning those that fail.

        Returns:
            Number of streams that accepted the write
        """
        clients = self.registry.snapshot()
        if not clients:
            return 0

        data = format_data(payload)
        dead: list[ClientStream] = []
        delivered = 0
        for client in clients:
            try:
                client.send(data)
                delivered += 1
            except Exception:
                dead.append(client)

        for client in dead:
            self.remove_client(client)

        logger.debug(f"Broadcast on {self.channel} to {delivered} client(s), pruned {len(dead)}")
        return delivered

    def close(self) -> None:
        """Drop every stream (process shutdown)."""
        for client in self.registry.snapshot():
            self.remove_client(client)
