#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
YeelightDevice -- a handle on one Yeelight device.

The handle holds the device address and a snapshot of the device state as of discovery
(or the last refresh_state()). The snapshot is not kept in sync with notifications; callers
that listen() reconcile notifications themselves.
"""

from __future__ import annotations

from .internal_types import *
from .pkg_logging import logger
from .constants import (
    DEFAULT_RESPONSE_WAIT_TIME,
    DEFAULT_NOTIFICATION_QUEUE_SIZE,
    DEFAULT_TIMEOUT,
    YEELIGHT_MULTICAST_ADDRESS,
    YEELIGHT_DISCOVERY_PORT,
  )
from .exceptions import InvalidArgument
from .descriptor import DeviceDescriptor
from .wire import CommandResult
from .command_channel import CommandChannel
from .notification_stream import NotificationStream, OverflowPolicy, listen
from .discovery_client import DiscoveryClient
from .util import split_host_port, format_host_port

REFRESH_PROPS = ("power", "bright", "name")
"""The properties read by YeelightDevice.refresh_state()."""

class YeelightDevice:
    _state: DeviceDescriptor
    channel: CommandChannel

    def __init__(self, state: DeviceDescriptor, channel: Optional[CommandChannel]=None):
        if state.address == '':
            raise InvalidArgument("A device handle requires a non-empty address")
        # normalizes and validates the address
        self._state = state.with_updates(address=format_host_port(split_host_port(state.address)))
        self.channel = CommandChannel() if channel is None else channel

    @classmethod
    def from_address(cls, address: str, channel: Optional[CommandChannel]=None) -> YeelightDevice:
        """Creates a handle for a device with a known address ("host" or "host:port")."""
        return cls(DeviceDescriptor(address=address), channel=channel)

    @classmethod
    async def discover(
            cls,
            response_wait_time: float=DEFAULT_RESPONSE_WAIT_TIME,
            bind_addresses: Optional[Iterable[str]]=None,
            multicast_address: str=YEELIGHT_MULTICAST_ADDRESS,
            multicast_port: int=YEELIGHT_DISCOVERY_PORT,
            channel: Optional[CommandChannel]=None,
          ) -> YeelightDevice:
        """Discovers a device on the local network and returns a handle for the first one that answers.

        Raises DiscoveryTimeout if no device answers within response_wait_time.
        """
        async with DiscoveryClient(
                response_wait_time=response_wait_time,
                bind_addresses=bind_addresses,
                multicast_address=multicast_address,
                multicast_port=multicast_port,
              ) as client:
            info = await client.discover_one()
        logger.info(f"Discovered {info.descriptor.name or 'unnamed device'} at {info.descriptor.address}")
        return cls(info.descriptor, channel=channel)

    @classmethod
    async def discover_all(
            cls,
            response_wait_time: float=DEFAULT_RESPONSE_WAIT_TIME,
            bind_addresses: Optional[Iterable[str]]=None,
            multicast_address: str=YEELIGHT_MULTICAST_ADDRESS,
            multicast_port: int=YEELIGHT_DISCOVERY_PORT,
            channel: Optional[CommandChannel]=None,
          ) -> List[YeelightDevice]:
        """Returns a handle for every distinct device that answers within response_wait_time.

        An empty list is returned if none do.
        """
        async with DiscoveryClient(
                response_wait_time=response_wait_time,
                bind_addresses=bind_addresses,
                multicast_address=multicast_address,
                multicast_port=multicast_port,
              ) as client:
            responses = await client.simple_search()
        return [ cls(info.descriptor, channel=channel) for info in responses if info.descriptor.address != '' ]

    @property
    def address(self) -> str:
        return self._state.address

    @property
    def state(self) -> DeviceDescriptor:
        """The last observed state of the device."""
        return self._state

    def get_state(self) -> DeviceDescriptor:
        return self._state

    async def execute(
            self,
            method: str,
            params: Optional[Iterable[ParamValue]]=None,
            timeout_secs: Optional[float]=None,
          ) -> CommandResult:
        return await self.channel.execute(self.address, method, params, timeout_secs=timeout_secs)

    async def get_prop(self, *props: str) -> List[Any]:
        return await self.channel.get_prop(self.address, *props)

    async def set_power(self, power: str) -> None:
        await self.channel.set_power(self.address, power)

    async def set_bright(self, bright: str | int) -> None:
        await self.channel.set_bright(self.address, bright)

    async def toggle(self) -> None:
        await self.channel.toggle(self.address)

    async def refresh_state(self) -> DeviceDescriptor:
        """Reads power, brightness and name from the device and replaces the state snapshot."""
        values = await self.get_prop(*REFRESH_PROPS)
        values = list(values) + [''] * (len(REFRESH_PROPS) - len(values))
        power, bright, name = (str(v) for v in values[:len(REFRESH_PROPS)])
        self._state = self._state.with_updates(power=power, brightness=bright, name=name)
        logger.debug(f"Refreshed state of {self.address}: {self._state}")
        return self._state

    async def listen(
            self,
            queue_size: int=DEFAULT_NOTIFICATION_QUEUE_SIZE,
            overflow_policy: OverflowPolicy=OverflowPolicy.DROP_NEWEST,
            connect_timeout_secs: float=DEFAULT_TIMEOUT,
          ) -> NotificationStream:
        """Opens a notification stream to the device. See notification_stream.listen()."""
        return await listen(
            self.address,
            queue_size=queue_size,
            overflow_policy=overflow_policy,
            connect_timeout_secs=connect_timeout_secs,
          )

    def __str__(self) -> str:
        return f"YeelightDevice({self.address}, name={self._state.name!r})"

    def __repr__(self) -> str:
        return str(self)
