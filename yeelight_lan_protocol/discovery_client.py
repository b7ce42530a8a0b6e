#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
DiscoveryClient -- A Yeelight discovery client that can:

  1. Send a search request to the Yeelight multicast address (239.255.255.250:1982)
     from every local network interface
  2. Receive and parse the unicast responses sent back by devices
  3. Yield responses as they arrive, until a configurable wait time has elapsed
"""

from __future__ import annotations

import asyncio
import socket
import sys
import time
import datetime
import ipaddress

from .internal_types import *
from .pkg_logging import logger
from .constants import (
    YEELIGHT_MULTICAST_ADDRESS,
    YEELIGHT_DISCOVERY_PORT,
    DEFAULT_RESPONSE_WAIT_TIME,
  )
from .exceptions import YeelightError, MalformedDiscoveryResponse, DiscoveryTimeout
from .descriptor import DeviceDescriptor
from .discovery_datagram import DiscoveryDatagram, parse_discovery_response
from .util import get_local_ip_addresses, format_host_port

MAX_QUEUE_SIZE = 1000

class DiscoverySocketBinding:
    """
    The binding of a DiscoveryClient to a single low-level datagram socket. There is
    one instance of this class for each local address the client sends from.
    """

    sock: Optional[socket.socket]
    unicast_addr: HostAndPort
    transport: Optional[asyncio.DatagramTransport] = None

    def __init__(self, sock: socket.socket):
        self.sock = sock
        unicast_addr = sock.getsockname()
        self.unicast_addr = (unicast_addr[0], unicast_addr[1])

    def sendto(self, datagram: DiscoveryDatagram, addr: HostAndPort) -> None:
        logger.debug(f"Sending DiscoveryDatagram via {self} to {addr}: {datagram}")
        assert self.transport is not None
        self.transport.sendto(datagram.raw_data, addr)

    def close(self) -> None:
        if self.transport is not None:
            try:
                self.transport.close()
            except Exception as e:
                logger.error(f"Error closing transport on {self}: {e}")
            self.transport = None
        if self.sock is not None:
            try:
                self.sock.close()
            except Exception as e:
                logger.error(f"Error closing socket on {self}: {e}")
            self.sock = None

    def __str__(self) -> str:
        return f"DiscoverySocketBinding({format_host_port(self.unicast_addr)})"

    def __repr__(self) -> str:
        return str(self)

class _DiscoveryProtocol(asyncio.DatagramProtocol):
    """An adapter between the asyncio transport of one socket binding and the DiscoveryClient."""

    client: DiscoveryClient
    socket_binding: DiscoverySocketBinding

    def __init__(self, client: DiscoveryClient, socket_binding: DiscoverySocketBinding):
        self.client = client
        self.socket_binding = socket_binding

    def datagram_received(self, data: bytes, addr: Tuple[str, int]):
        self.client.datagram_received(self.socket_binding, (addr[0], addr[1]), data)

    def error_received(self, exc: Exception):
        """Called when a send or receive operation raises an OSError."""
        logger.info(f"Error received from transport {self.socket_binding}: {exc}")

    def connection_lost(self, exc: Optional[Exception]) -> None:
        logger.debug(f"Connection to transport lost on {self.socket_binding}, exc={exc}")

class DiscoveryResponseInfo:
    socket_binding: DiscoverySocketBinding
    """The socket binding on which the response was received"""

    src_addr: HostAndPort
    """The source address of the response"""

    datagram: DiscoveryDatagram
    """The response datagram"""

    descriptor: DeviceDescriptor
    """The device described by the response"""

    monotonic_time: float
    """The local time (in seconds) since an arbitrary point in the past at which
       the response was received, as returned by time.monotonic()."""

    utc_time: datetime.datetime
    """The UTC time at which the response was received."""

    def __init__(
            self,
            socket_binding: DiscoverySocketBinding,
            src_addr: HostAndPort,
            datagram: DiscoveryDatagram,
            descriptor: DeviceDescriptor,
          ) -> None:
        self.socket_binding = socket_binding
        self.src_addr = src_addr
        self.datagram = datagram
        self.descriptor = descriptor
        self.monotonic_time = time.monotonic()
        self.utc_time = datetime.datetime.now(datetime.timezone.utc)

    def __str__(self) -> str:
        return f"DiscoveryResponseInfo(src={format_host_port(self.src_addr)}, descriptor={self.descriptor})"

    def __repr__(self) -> str:
        return str(self)

class DiscoverySearchRequest(
        AsyncContextManager['DiscoverySearchRequest'],
        AsyncIterable[DiscoveryResponseInfo]
      ):
    """A single search request on a DiscoveryClient and all of the received responses,
       within an AsyncContextManager/AsyncIterable interface.

       Responses that cannot be parsed, error responses, and repeated responses from a
       device that has already answered are skipped.
    """

    client: DiscoveryClient
    response_wait_time: float
    max_responses: int
    queue: asyncio.Queue[Tuple[DiscoverySocketBinding, HostAndPort, bytes]]
    end_time: float = 0.0
    seen_addresses: Set[str]

    def __init__(
            self,
            client: DiscoveryClient,
            response_wait_time: Optional[float]=None,
            max_responses: int=0,
          ):
        """Create an async context manager/iterable that sends a multicast search request and returns the responses
        as they arrive.

        Parameters:
            client:             The DiscoveryClient to use for sending the search request and receiving responses.
            response_wait_time: The amount of time (in seconds) to wait for responses to come in. Defaults to
                                   client.response_wait_time.
            max_responses:      The maximum number of responses to return. If 0 (the default), all responses received
                                   within response_wait_time will be returned.

        Usage:
            async with DiscoverySearchRequest(client, ...) as search_request:
                async for response in search_request:
                    print(response.descriptor)
        """
        self.client = client
        self.response_wait_time = client.response_wait_time if response_wait_time is None else response_wait_time
        self.max_responses = max_responses
        self.queue = asyncio.Queue(MAX_QUEUE_SIZE)
        self.seen_addresses = set()

    async def __aenter__(self) -> DiscoverySearchRequest:
        # Subscribe before sending so that no response is missed.
        self.client.add_search_request(self)
        try:
            search_datagram = DiscoveryDatagram.create_search_request(
                multicast_address=self.client.multicast_address,
                multicast_port=self.client.multicast_port,
              )
            for socket_binding in self.client.socket_bindings:
                socket_binding.sendto(search_datagram, (self.client.multicast_address, self.client.multicast_port))
            self.end_time = time.monotonic() + self.response_wait_time
        except BaseException:
            self.client.remove_search_request(self)
            raise
        return self

    async def __aexit__(
            self,
            exc_type: Optional[type[BaseException]],
            exc: Optional[BaseException],
            tb: Optional[TracebackType]
      ) -> bool:
        self.client.remove_search_request(self)
        return False

    def on_datagram(self, socket_binding: DiscoverySocketBinding, addr: HostAndPort, data: bytes) -> None:
        try:
            self.queue.put_nowait((socket_binding, addr, data))
        except asyncio.QueueFull:
            logger.warning(f"Queue full, dropping datagram from {socket_binding} {addr}: {data!r}")

    async def iter_responses(self) -> AsyncIterator[DiscoveryResponseInfo]:
        n = 0
        while True:
            if self.max_responses > 0 and n >= self.max_responses:
                break
            remaining_time = self.end_time - time.monotonic()
            if remaining_time <= 0.0:
                break
            try:
                socket_binding, addr, data = await asyncio.wait_for(self.queue.get(), remaining_time)
            except asyncio.TimeoutError:
                break
            try:
                descriptor = parse_discovery_response(data)
            except MalformedDiscoveryResponse as e:
                logger.warning(f"Ignoring unparsable discovery response from {addr}: {e}")
                continue
            datagram = DiscoveryDatagram(raw_data=data)
            status_code = datagram.status_code
            if status_code is not None and status_code != 200:
                logger.debug(f"Ignoring discovery response from {addr} with status {status_code}")
                continue
            key = descriptor.address if descriptor.address != '' else format_host_port(addr)
            if key in self.seen_addresses:
                logger.debug(f"Ignoring repeated discovery response from {key}")
                continue
            self.seen_addresses.add(key)
            info = DiscoveryResponseInfo(socket_binding, addr, datagram, descriptor)
            logger.debug(f"Received discovery response from {addr} on {socket_binding}: {descriptor}")
            n += 1
            yield info

    def __aiter__(self) -> AsyncIterator[DiscoveryResponseInfo]:
        return self.iter_responses()


class DiscoveryClient(AsyncContextManager['DiscoveryClient']):
    """
    A Yeelight discovery client that can:

      1. Send a search request to the multicast UDP address (239.255.255.250:1982)
      2. Receive and decode discovery responses from devices
      3. Collect and return responses received within a configurable timeout period
    """

    response_wait_time: float
    """The amount of time (in seconds) to wait for responses to come in."""

    multicast_address: str
    """The address to send search requests to."""

    multicast_port: int
    """The port to send search requests to."""

    bind_addresses: List[str]
    """The local IP addresses to send from."""

    include_loopback: bool
    """If True, loopback addresses will be included in the default bind addresses."""

    socket_bindings: List[DiscoverySocketBinding]
    search_requests: Set[DiscoverySearchRequest]

    def __init__(
            self,
            response_wait_time: float=DEFAULT_RESPONSE_WAIT_TIME,
            multicast_address: str=YEELIGHT_MULTICAST_ADDRESS,
            multicast_port: int=YEELIGHT_DISCOVERY_PORT,
            bind_addresses: Optional[Iterable[str]]=None,
            include_loopback: bool=False,
          ) -> None:
        self.response_wait_time = response_wait_time
        self.multicast_address = multicast_address
        self.multicast_port = multicast_port
        self.include_loopback = include_loopback
        if bind_addresses is None:
            bind_addresses = get_local_ip_addresses(include_loopback=include_loopback)
        self.bind_addresses = list(bind_addresses)
        if len(self.bind_addresses) == 0:
            self.bind_addresses = ['0.0.0.0']
        self.socket_bindings = []
        self.search_requests = set()

    def __str__(self) -> str:
        return f"DiscoveryClient({self.multicast_address}:{self.multicast_port}, bind={self.bind_addresses})"

    def __repr__(self) -> str:
        return str(self)

    def _create_socket(self, bind_address: str) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            if sys.platform not in ('win32', 'cygwin'):
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEPORT, 1)
            sock.bind((bind_address, 0))
            if ipaddress.IPv4Address(self.multicast_address).is_multicast and bind_address != '0.0.0.0':
                # send the search out of the interface that owns bind_address
                sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_IF, socket.inet_aton(bind_address))
            sock.setblocking(False)
        except BaseException:
            sock.close()
            raise
        return sock

    async def start(self) -> None:
        loop = asyncio.get_running_loop()
        logger.debug(f"Creating socket bindings to {self.bind_addresses}")
        try:
            for bind_address in self.bind_addresses:
                try:
                    sock = self._create_socket(bind_address)
                except OSError as e:
                    logger.warning(f"Cannot bind discovery socket to {bind_address}: {e}")
                    continue
                socket_binding = DiscoverySocketBinding(sock)
                transport, _ = await loop.create_datagram_endpoint(
                    lambda: _DiscoveryProtocol(self, socket_binding),
                    sock=sock
                  )
                socket_binding.transport = transport # type: ignore[assignment]
                self.socket_bindings.append(socket_binding)
                logger.debug(f"Added socket binding {socket_binding}")
            if len(self.socket_bindings) == 0:
                raise YeelightError(f"No discovery sockets could be bound for {self.bind_addresses}")
        except BaseException:
            self.stop()
            raise

    def stop(self) -> None:
        for socket_binding in self.socket_bindings:
            socket_binding.close()
        self.socket_bindings = []

    def add_search_request(self, search_request: DiscoverySearchRequest) -> None:
        self.search_requests.add(search_request)

    def remove_search_request(self, search_request: DiscoverySearchRequest) -> None:
        self.search_requests.discard(search_request)

    def datagram_received(self, socket_binding: DiscoverySocketBinding, addr: HostAndPort, data: bytes) -> None:
        logger.debug(f"Received datagram from {socket_binding} {addr}: {data!r}")
        for search_request in list(self.search_requests):
            search_request.on_datagram(socket_binding, addr, data)

    def search(
            self,
            response_wait_time: Optional[float]=None,
            max_responses: int=0,
          ) -> DiscoverySearchRequest:
        """Create an async context manager/iterable that sends a multicast search request and returns the responses
           as they arrive.

        Usage:
            async with client.search(...) as search_request:
                async for response in search_request:
                    print(response.descriptor)
                    # It is possible to break out of the loop early
        """
        return DiscoverySearchRequest(self, response_wait_time=response_wait_time, max_responses=max_responses)

    async def simple_search(
            self,
            response_wait_time: Optional[float]=None,
            max_responses: int=0,
          ) -> List[DiscoveryResponseInfo]:
        """Sends a search request, waits for responses to come in, and returns them.

           Early out/incremental results can be obtained by using the search() method.
        """
        results: List[DiscoveryResponseInfo] = []
        async with self.search(response_wait_time=response_wait_time, max_responses=max_responses) as search_request:
            async for response in search_request:
                results.append(response)
        return results

    async def discover_one(self, response_wait_time: Optional[float]=None) -> DiscoveryResponseInfo:
        """Returns the first response that names a device address.

           Raises DiscoveryTimeout if there is none within the wait time.
        """
        async with self.search(response_wait_time=response_wait_time) as search_request:
            async for response in search_request:
                if response.descriptor.address != '':
                    return response
                logger.debug(f"Ignoring discovery response without a Location from {response.src_addr}")
        raise DiscoveryTimeout(f"No devices answered within {search_request.response_wait_time} seconds")

    async def __aenter__(self) -> DiscoveryClient:
        await self.start()
        return self

    async def __aexit__(
            self,
            exc_type: Optional[type[BaseException]],
            exc: Optional[BaseException],
            tb: Optional[TracebackType]
      ) -> bool:
        self.stop()
        return False
