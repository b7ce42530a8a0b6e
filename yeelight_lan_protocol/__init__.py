# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Package yeelight_lan_protocol implements a client for the Yeelight LAN control protocol.

Yeelight smart lights with "LAN Control" enabled can be:

  - discovered with an SSDP-like multicast search on 239.255.255.250:1982 (not the SSDP
    port 1900); each device answers with an HTTP-like response whose headers describe it,
  - controlled with line-delimited JSON commands sent over TCP (port 55443 by default),
  - observed through the same TCP port, where devices push a JSON notification whenever
    their state changes.

All network operations are asyncio coroutines.
"""

from .version import __version__

from .internal_types import Jsonable, JsonableDict

from .exceptions import (
    YeelightError,
    DiscoveryTimeout,
    MalformedDiscoveryResponse,
    TransportError,
    CommandTimeout,
    MalformedResponse,
    CommandRejected,
    InvalidArgument,
  )

from .descriptor import DeviceDescriptor
from .discovery_datagram import DiscoveryDatagram, parse_discovery_response
from .discovery_client import DiscoveryClient, DiscoverySearchRequest, DiscoveryResponseInfo, DiscoverySocketBinding
from .wire import (
    Command,
    CommandResult,
    CommandError,
    Notification,
    CommandIdGenerator,
    default_id_generator,
    encode_command,
    encode_result,
    encode_notification,
    decode_result,
    decode_notification,
  )
from .command_channel import CommandChannel, CommandSession
from .notification_stream import NotificationStream, StreamState, OverflowPolicy, listen
from .device import YeelightDevice
from .util import CaseInsensitiveDict
from .constants import (
    YEELIGHT_MULTICAST_ADDRESS,
    YEELIGHT_DISCOVERY_PORT,
    YEELIGHT_DEFAULT_PORT,
    DEFAULT_TIMEOUT,
    DEFAULT_RESPONSE_WAIT_TIME,
    DEFAULT_NOTIFICATION_QUEUE_SIZE,
  )

__all__ = [
    '__version__',
    'Jsonable', 'JsonableDict',
    'YeelightError', 'DiscoveryTimeout', 'MalformedDiscoveryResponse', 'TransportError',
    'CommandTimeout', 'MalformedResponse', 'CommandRejected', 'InvalidArgument',
    'DeviceDescriptor',
    'DiscoveryDatagram', 'parse_discovery_response',
    'DiscoveryClient', 'DiscoverySearchRequest', 'DiscoveryResponseInfo', 'DiscoverySocketBinding',
    'Command', 'CommandResult', 'CommandError', 'Notification',
    'CommandIdGenerator', 'default_id_generator',
    'encode_command', 'encode_result', 'encode_notification', 'decode_result', 'decode_notification',
    'CommandChannel', 'CommandSession',
    'NotificationStream', 'StreamState', 'OverflowPolicy', 'listen',
    'YeelightDevice',
    'CaseInsensitiveDict',
    'YEELIGHT_MULTICAST_ADDRESS', 'YEELIGHT_DISCOVERY_PORT', 'YEELIGHT_DEFAULT_PORT',
    'DEFAULT_TIMEOUT', 'DEFAULT_RESPONSE_WAIT_TIME', 'DEFAULT_NOTIFICATION_QUEUE_SIZE',
]
