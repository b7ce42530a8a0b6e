#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
CommandChannel -- sends commands to a Yeelight device and returns their results.

Each command is sent on its own short-lived TCP connection: connect, write one
JSON line, read one JSON line, close. Concurrent commands are therefore
independent of each other; the only state they share is the ID generator.

The connect, write and read steps of a command share a single timeout budget.
"""

from __future__ import annotations

import re
import asyncio

from .internal_types import *
from .pkg_logging import logger
from .constants import DEFAULT_TIMEOUT
from .exceptions import (
    TransportError,
    CommandTimeout,
    MalformedResponse,
    CommandRejected,
    InvalidArgument,
  )
from .util import split_host_port
from .wire import (
    Command,
    CommandResult,
    CommandIdGenerator,
    default_id_generator,
    encode_command,
    decode_result,
  )

POWER_VALUES = ("on", "off")

TRANSITION_EFFECT = "sudden"
"""The transition effect used by the setters. With "sudden" the duration is ignored."""

TRANSITION_DURATION = 0

BRIGHTNESS_RANGE = (0, 100)

_integer_re = re.compile(r'[-+]?[0-9]+')

def parse_brightness(bright: str | int) -> int:
    """Converts a brightness given as an int or a decimal string to an int in BRIGHTNESS_RANGE.

    Floats, bools and strings that are not plain decimal integers are rejected rather than coerced.

    Raises InvalidArgument.
    """
    if isinstance(bright, bool) or not isinstance(bright, (int, str)):
        raise InvalidArgument(f"Brightness is not an integer: {bright!r}")
    if isinstance(bright, str):
        if _integer_re.fullmatch(bright) is None:
            raise InvalidArgument(f"Brightness is not an integer: {bright!r}")
        value = int(bright)
    else:
        value = bright
    low, high = BRIGHTNESS_RANGE
    if not low <= value <= high:
        raise InvalidArgument(f"Brightness must be between {low} and {high}: {value}")
    return value

class CommandSession:
    """A single connection to a device, used for exactly one command"""

    address: str
    host: str
    port: int
    deadline: float
    reader: Optional[asyncio.StreamReader] = None
    writer: Optional[asyncio.StreamWriter] = None

    def __init__(self, address: str, timeout_secs: float):
        self.address = address
        self.host, self.port = split_host_port(address)
        self.deadline = asyncio.get_running_loop().time() + timeout_secs

    @property
    def remaining_secs(self) -> float:
        return max(self.deadline - asyncio.get_running_loop().time(), 0.0)

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

    async def __aenter__(self) -> CommandSession:
        await self.connect()
        return self

    async def __aexit__(
            self,
            exc_type: Optional[type[BaseException]],
            exc_val: Optional[BaseException],
            exc_tb: Optional[TracebackType]
          ) -> bool:
        await self._async_dispose()
        return False

    async def connect(self) -> None:
        assert self.reader is None and self.writer is None
        logger.debug(f"Connecting to {self.address}")
        try:
            self.reader, self.writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port), self.remaining_secs)
        except asyncio.TimeoutError as e:
            raise TransportError(f"Timed out connecting to {self.address}") from e
        except OSError as e:
            raise TransportError(f"Cannot connect to {self.address}: {e}") from e

    async def write_line(self, data: bytes) -> None:
        assert self.writer is not None
        logger.debug(f"{self}: Writing {data!r}")
        try:
            self.writer.write(data)
            await asyncio.wait_for(self.writer.drain(), self.remaining_secs)
        except asyncio.TimeoutError as e:
            raise CommandTimeout(f"Timed out writing command to {self.address}") from e
        except OSError as e:
            raise TransportError(f"Error writing command to {self.address}: {e}") from e

    async def read_line(self) -> bytes:
        """Reads one complete line from the device, with timeout"""
        assert self.reader is not None
        try:
            line = await asyncio.wait_for(self.reader.readline(), self.remaining_secs)
        except asyncio.TimeoutError as e:
            raise CommandTimeout(f"Timed out waiting for command result from {self.address}") from e
        except ValueError as e:
            # StreamReader limit exceeded
            raise MalformedResponse(f"Command result from {self.address} is too long") from e
        except OSError as e:
            raise TransportError(f"Error reading command result from {self.address}: {e}") from e
        logger.debug(f"{self}: Read {line!r}")
        if len(line) == 0:
            raise TransportError(f"Connection closed by {self.address} before a command result was received")
        if not line.endswith(b'\n'):
            raise TransportError(f"Connection closed by {self.address} with partial command result: {line!r}")
        return line

    async def transact(self, command: Command) -> CommandResult:
        await self.write_line(encode_command(command))
        line = await self.read_line()
        return decode_result(line)

    def __str__(self) -> str:
        return f"CommandSession({self.address})"

    def __repr__(self) -> str:
        return str(self)


class CommandChannel:
    """Executes commands against devices, one connection per command."""

    timeout_secs: float
    id_generator: CommandIdGenerator

    def __init__(self, timeout_secs: float=DEFAULT_TIMEOUT, id_generator: Optional[CommandIdGenerator]=None):
        self.timeout_secs = timeout_secs
        self.id_generator = default_id_generator if id_generator is None else id_generator

    def new_command(self, method: str, params: Optional[Iterable[ParamValue]]=None) -> Command:
        return Command(self.id_generator.next_id(), method, params)

    async def execute(
            self,
            address: str,
            method: str,
            params: Optional[Iterable[ParamValue]]=None,
            timeout_secs: Optional[float]=None,
          ) -> CommandResult:
        """Sends one command to the device at address and returns its result.

        Raises:
            TransportError:    The connection could not be made, or failed.
            CommandTimeout:    The command could not be written or its result read in time.
            MalformedResponse: The result line could not be decoded or its id doesn't match.
            CommandRejected:   The device answered with an error object.
        """
        if timeout_secs is None:
            timeout_secs = self.timeout_secs
        params = [] if params is None else list(params)
        async with CommandSession(address, timeout_secs) as session:
            command = self.new_command(method, params)
            logger.debug(f"Sending {command} to {address}")
            result = await session.transact(command)
        logger.debug(f"Received {result} from {address}")
        if result.id != command.id:
            raise MalformedResponse(f"Result id {result.id} from {address} does not match command id {command.id}")
        if result.error is not None:
            raise CommandRejected(result.error.code, result.error.message, method=method)
        return result

    async def get_prop(self, address: str, *props: str) -> List[Any]:
        """Returns the values of the named properties, in order ('' for properties the device doesn't know)."""
        result = await self.execute(address, "get_prop", list(props))
        return [] if result.result is None else result.result

    async def set_power(self, address: str, power: str) -> None:
        """Switches the device "on" or "off"."""
        if power not in POWER_VALUES:
            raise InvalidArgument(f"Power must be one of {POWER_VALUES}, not {power!r}")
        await self.execute(address, "set_power", [power, TRANSITION_EFFECT, TRANSITION_DURATION])

    async def set_bright(self, address: str, bright: str | int) -> None:
        """Sets the brightness percentage. The value is validated before anything is sent."""
        value = parse_brightness(bright)
        await self.execute(address, "set_bright", [value, TRANSITION_EFFECT, TRANSITION_DURATION])

    async def toggle(self, address: str) -> None:
        await self.execute(address, "toggle")
