"""In-process stand-ins for a Yeelight device, for use by the tests."""

from __future__ import annotations

import asyncio
import json
import socket
from typing import Callable, List, Optional

Responder = Callable[[dict], Optional[bytes]]


def unused_tcp_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


class FakeCommandDevice:
    """Answers one command per connection with whatever the responder returns.

    A responder returning None never answers (the connection is held open until the
    client closes it); returning b'' closes the connection without answering.
    """

    def __init__(self, responder: Responder) -> None:
        self.responder = responder
        self.requests: List[dict] = []
        self.connections = 0
        self.server: Optional[asyncio.AbstractServer] = None

    @property
    def address(self) -> str:
        assert self.server is not None
        return f"127.0.0.1:{self.server.sockets[0].getsockname()[1]}"

    async def __aenter__(self) -> FakeCommandDevice:
        self.server = await asyncio.start_server(self._handle, "127.0.0.1", 0)
        return self

    async def __aexit__(self, *exc) -> None:
        assert self.server is not None
        self.server.close()
        await self.server.wait_closed()

    async def _handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self.connections += 1
        try:
            line = await reader.readline()
            if not line:
                return
            request = json.loads(line)
            self.requests.append(request)
            reply = self.responder(request)
            if reply is None:
                await reader.read()
                return
            if reply:
                writer.write(reply)
                await writer.drain()
        finally:
            writer.close()


class FakeNotifyingDevice:
    """Writes a fixed sequence of lines to every connection, then closes it (or holds it open)."""

    def __init__(self, lines: List[bytes], close: bool = True) -> None:
        self.lines = lines
        self.close = close
        self.server: Optional[asyncio.AbstractServer] = None
        self.disconnected = asyncio.Event()

    @property
    def address(self) -> str:
        assert self.server is not None
        return f"127.0.0.1:{self.server.sockets[0].getsockname()[1]}"

    async def __aenter__(self) -> FakeNotifyingDevice:
        self.server = await asyncio.start_server(self._handle, "127.0.0.1", 0)
        return self

    async def __aexit__(self, *exc) -> None:
        assert self.server is not None
        self.server.close()
        await self.server.wait_closed()

    async def _handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        try:
            for line in self.lines:
                writer.write(line)
            await writer.drain()
            if not self.close:
                await reader.read()
        finally:
            writer.close()
            self.disconnected.set()


class FakeDiscoveryResponder(asyncio.DatagramProtocol):
    """Answers every datagram it receives with each of its replies, in order."""

    def __init__(self, replies: List[bytes]) -> None:
        self.replies = replies
        self.requests: List[bytes] = []
        self.transport: Optional[asyncio.DatagramTransport] = None

    def connection_made(self, transport) -> None:
        self.transport = transport

    def datagram_received(self, data: bytes, addr) -> None:
        self.requests.append(data)
        assert self.transport is not None
        for reply in self.replies:
            self.transport.sendto(reply, addr)

    @classmethod
    async def create(cls, replies: List[bytes]) -> FakeDiscoveryResponder:
        loop = asyncio.get_running_loop()
        _, protocol = await loop.create_datagram_endpoint(lambda: cls(replies), local_addr=("127.0.0.1", 0))
        return protocol

    @property
    def port(self) -> int:
        assert self.transport is not None
        return self.transport.get_extra_info("sockname")[1]

    def close(self) -> None:
        if self.transport is not None:
            self.transport.close()
