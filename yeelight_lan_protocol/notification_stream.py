#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
NotificationStream -- a long-lived connection to a Yeelight device that delivers
the state-change notifications the device pushes.

A background reader task decodes one line at a time and publishes the resulting
Notification to a bounded queue. What happens when the queue is full is chosen with
OverflowPolicy; by default the new notification is dropped so that a slow consumer
never stalls the reader. Lines that cannot be decoded are skipped.

The stream goes CONNECTING -> STREAMING -> CLOSED. It never reconnects; when the
device closes the connection, consumers see end-of-stream once the queue is drained.

Usage:
    async with await listen("192.168.1.5:55443") as stream:
        async for notification in stream:
            print(notification.params)
"""

from __future__ import annotations

import asyncio
from enum import Enum

from .internal_types import *
from .pkg_logging import logger
from .constants import DEFAULT_TIMEOUT, DEFAULT_NOTIFICATION_QUEUE_SIZE
from .exceptions import TransportError, MalformedResponse
from .util import split_host_port
from .wire import Notification, decode_notification

class StreamState(Enum):
    CONNECTING = "connecting"
    STREAMING = "streaming"
    CLOSED = "closed"

class OverflowPolicy(Enum):
    """What the reader does with a notification when the delivery queue is full"""

    DROP_NEWEST = "drop-newest"
    """Discard the notification that just arrived (the default)."""

    DROP_OLDEST = "drop-oldest"
    """Discard the oldest undelivered notification to make room."""

    BLOCK = "block"
    """Stop reading from the device until the consumer makes room."""

class NotificationStream(
        AsyncContextManager['NotificationStream'],
        AsyncIterable[Notification]
      ):
    address: str
    queue: asyncio.Queue[Optional[Notification]]
    overflow_policy: OverflowPolicy
    connect_timeout_secs: float
    state: StreamState = StreamState.CONNECTING

    reader: Optional[asyncio.StreamReader] = None
    writer: Optional[asyncio.StreamWriter] = None
    reader_task: Optional[asyncio.Task[None]] = None

    eos: bool = False
    """True once the reader has stopped; no more notifications will be queued."""

    received_count: int = 0
    """Number of notifications decoded, including dropped ones."""

    dropped_count: int = 0
    """Number of notifications discarded because the queue was full."""

    skipped_count: int = 0
    """Number of lines that could not be decoded."""

    def __init__(
            self,
            address: str,
            queue_size: int=DEFAULT_NOTIFICATION_QUEUE_SIZE,
            overflow_policy: OverflowPolicy=OverflowPolicy.DROP_NEWEST,
            connect_timeout_secs: float=DEFAULT_TIMEOUT,
          ):
        if queue_size < 1:
            raise ValueError(f"queue_size must be at least 1: {queue_size}")
        self.address = address
        self.queue = asyncio.Queue(queue_size)
        self.overflow_policy = overflow_policy
        self.connect_timeout_secs = connect_timeout_secs

    def __str__(self) -> str:
        return f"NotificationStream({self.address}, state={self.state.value})"

    def __repr__(self) -> str:
        return str(self)

    async def start(self) -> None:
        """Connects to the device and starts the reader task.

        Raises TransportError if the connection cannot be made within connect_timeout_secs.
        """
        if self.reader_task is not None or self.state != StreamState.CONNECTING:
            raise RuntimeError(f"{self} has already been started")
        host, port = split_host_port(self.address)
        logger.debug(f"{self}: Connecting")
        try:
            self.reader, self.writer = await asyncio.wait_for(
                asyncio.open_connection(host, port), self.connect_timeout_secs)
        except asyncio.TimeoutError as e:
            self._set_end_of_stream()
            raise TransportError(f"Timed out connecting to {self.address}") from e
        except OSError as e:
            self._set_end_of_stream()
            raise TransportError(f"Cannot connect to {self.address}: {e}") from e
        self.state = StreamState.STREAMING
        logger.info(f"{self}: Connected")
        self.reader_task = asyncio.create_task(self._run_reader_task())

    async def _run_reader_task(self) -> None:
        logger.debug(f"{self}: Reader task starting")
        assert self.reader is not None
        try:
            while True:
                try:
                    line = await self.reader.readline()
                except ValueError as e:
                    # StreamReader limit exceeded; the rest of the oversized line is skipped too
                    self.skipped_count += 1
                    logger.debug(f"{self}: Skipping oversized line: {e}")
                    continue
                except OSError as e:
                    logger.info(f"{self}: Read failed, ending stream: {e}")
                    break
                if len(line) == 0:
                    logger.info(f"{self}: Connection closed by device")
                    break
                if line.strip() == b'':
                    continue
                try:
                    notification = decode_notification(line)
                except MalformedResponse as e:
                    self.skipped_count += 1
                    logger.debug(f"{self}: Skipping undecodable line: {e}")
                    continue
                self.received_count += 1
                logger.debug(f"{self}: Received {notification}")
                await self._publish(notification)
        except asyncio.CancelledError:
            logger.debug(f"{self}: Reader task cancelled; exiting")
            raise
        finally:
            await self._async_dispose()
            self._set_end_of_stream()
        logger.debug(f"{self}: Reader task exiting")

    async def _publish(self, notification: Notification) -> None:
        if self.overflow_policy == OverflowPolicy.BLOCK:
            await self.queue.put(notification)
            return
        try:
            self.queue.put_nowait(notification)
            return
        except asyncio.QueueFull:
            pass
        self.dropped_count += 1
        if self.overflow_policy == OverflowPolicy.DROP_OLDEST:
            dropped = self.queue.get_nowait()
            self.queue.put_nowait(notification)
        else:
            dropped = notification
        logger.warning(f"{self}: Queue full, dropping notification: {dropped}")

    async def _async_dispose(self) -> None:
        writer = self.writer
        self.reader = None
        self.writer = None
        if writer is not None:
            try:
                writer.close()
                await writer.wait_closed()
            except Exception as e:
                logger.debug(f"{self}: Exception while closing connection: {e}")

    def _set_end_of_stream(self) -> None:
        self.state = StreamState.CLOSED
        if not self.eos:
            self.eos = True
            try:
                # wake up any waiting consumer
                self.queue.put_nowait(None)
            except asyncio.QueueFull:
                # queue is full so waiters will wake up soon
                pass

    async def receive(self) -> Optional[Notification]:
        """Returns the next notification, or None at end of stream."""
        if self.eos and self.queue.empty():
            return None
        result = await self.queue.get()
        if result is None:
            try:
                # pass end-of-stream on to any other waiting consumer
                self.queue.put_nowait(None)
            except asyncio.QueueFull:
                pass
        return result

    async def iter_notifications(self) -> AsyncIterator[Notification]:
        while True:
            result = await self.receive()
            if result is None:
                break
            yield result

    def __aiter__(self) -> AsyncIterator[Notification]:
        return self.iter_notifications()

    async def wait_for_done(self) -> None:
        """Waits for the reader task to exit (when the device closes the connection, or after stop())."""
        if self.reader_task is not None:
            results = await asyncio.gather(self.reader_task, return_exceptions=True)
            exc = results[0]
            if isinstance(exc, BaseException) and not isinstance(exc, asyncio.CancelledError):
                logger.warning(f"{self}: Reader task exited with exception: {exc!r}")

    async def stop(self) -> None:
        """Stops the reader task and closes the connection. Undelivered notifications remain receivable."""
        if self.reader_task is not None and not self.reader_task.done():
            self.reader_task.cancel()
        await self.wait_for_done()
        await self._async_dispose()
        self._set_end_of_stream()

    async def __aenter__(self) -> NotificationStream:
        if self.reader_task is None and not self.eos:
            await self.start()
        return self

    async def __aexit__(
            self,
            exc_type: Optional[type[BaseException]],
            exc: Optional[BaseException],
            tb: Optional[TracebackType]
      ) -> bool:
        await self.stop()
        return False

async def listen(
        address: str,
        queue_size: int=DEFAULT_NOTIFICATION_QUEUE_SIZE,
        overflow_policy: OverflowPolicy=OverflowPolicy.DROP_NEWEST,
        connect_timeout_secs: float=DEFAULT_TIMEOUT,
      ) -> NotificationStream:
    """Connects to the device at address and returns a started NotificationStream.

    Raises TransportError if the connection cannot be established.
    """
    stream = NotificationStream(
        address,
        queue_size=queue_size,
        overflow_policy=overflow_policy,
        connect_timeout_secs=connect_timeout_secs,
      )
    await stream.start()
    return stream
