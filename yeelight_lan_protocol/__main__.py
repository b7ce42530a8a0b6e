#!/usr/bin/env python3

# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

from __future__ import annotations

import os
import sys
import argparse
import json
import asyncio
import logging
from signal import SIGINT, SIGTERM

from yeelight_lan_protocol.internal_types import *

from yeelight_lan_protocol import (
    __version__ as pkg_version,
    DiscoveryClient,
    YeelightDevice,
    OverflowPolicy,
    DEFAULT_TIMEOUT,
    DEFAULT_RESPONSE_WAIT_TIME,
    DEFAULT_NOTIFICATION_QUEUE_SIZE,
  )
from yeelight_lan_protocol.command_channel import CommandChannel

HOST_ENV_VAR = "YEELIGHT_HOST"
"""Environment variable consulted for the device address when --host is not given."""

class CmdExitError(RuntimeError):
    exit_code: int

    def __init__(self, exit_code: int, msg: Optional[str]=None):
        if msg is None:
            msg = f"Command exited with return code {exit_code}"
        super().__init__(msg)
        self.exit_code = exit_code

class ArgparseExitError(CmdExitError):
    pass

class NoExitArgumentParser(argparse.ArgumentParser):
    def exit(self, status=0, message=None):
        if message:
            self._print_message(message, sys.stderr)
        raise ArgparseExitError(status, message)

class CommandHandler:
    _argv: Optional[Sequence[str]]
    _parser: argparse.ArgumentParser
    _args: argparse.Namespace
    _provide_traceback: bool = True

    def __init__(self, argv: Optional[Sequence[str]]=None):
        self._argv = argv

    async def cmd_bare(self) -> int:
        print("A command is required", file=sys.stderr)
        return 1

    def _bind_addresses(self) -> Optional[List[str]]:
        bind_addresses: Optional[List[str]] = self._args.bind_addresses
        if bind_addresses is not None and len(bind_addresses) == 0:
            bind_addresses = None
        return bind_addresses

    async def get_device(self) -> YeelightDevice:
        """Returns a handle for the device named by --host or $YEELIGHT_HOST, discovering one if neither is set."""
        channel = CommandChannel(timeout_secs=self._args.timeout)
        host: Optional[str] = self._args.host
        if host is None or host == '':
            host = os.getenv(HOST_ENV_VAR)
        if host is None or host == '':
            logging.debug(f"No host given and {HOST_ENV_VAR} not set; discovering")
            return await YeelightDevice.discover(
                response_wait_time=self._args.wait_time,
                bind_addresses=self._bind_addresses(),
                channel=channel,
              )
        return YeelightDevice.from_address(host, channel=channel)

    async def cmd_discover(self) -> int:
        response_wait_time: float = self._args.wait_time
        max_responses = 0 if self._args.all else 1
        async with DiscoveryClient(response_wait_time=response_wait_time, bind_addresses=self._bind_addresses()) as client:
            async with client.search(max_responses=max_responses) as search_request:
                n = 0
                async for info in search_request.iter_responses():
                    n += 1
                    summary: JsonableDict = {
                        "src_addr": f"{info.src_addr[0]}:{info.src_addr[1]}",
                        "local_addr": f"{info.socket_binding.unicast_addr[0]}:{info.socket_binding.unicast_addr[1]}",
                        "device": info.descriptor.to_jsonable(),
                        "utc_time": info.utc_time.isoformat(),
                    }
                    print(json.dumps(summary, indent=2, sort_keys=True))
                    sys.stdout.flush()
        if n == 0:
            raise CmdExitError(1, f"No devices answered within {response_wait_time} seconds")
        return 0

    async def cmd_get_prop(self) -> int:
        device = await self.get_device()
        props: List[str] = self._args.props
        values = await device.get_prop(*props)
        print(json.dumps(dict(zip(props, values)), indent=2, sort_keys=True))
        return 0

    async def cmd_power(self) -> int:
        device = await self.get_device()
        await device.set_power(self._args.power)
        return 0

    async def cmd_bright(self) -> int:
        device = await self.get_device()
        await device.set_bright(self._args.bright)
        return 0

    async def cmd_toggle(self) -> int:
        device = await self.get_device()
        await device.toggle()
        return 0

    async def cmd_listen(self) -> int:
        device = await self.get_device()
        stream = await device.listen(
            queue_size=self._args.queue_size,
            overflow_policy=OverflowPolicy(self._args.overflow),
          )
        loop = asyncio.get_running_loop()
        stop_task: Optional[asyncio.Task[None]] = None
        def on_signal() -> None:
            nonlocal stop_task
            if stop_task is None:
                logging.debug("Detected SIGINT/SIGTERM, stopping notification stream")
                stop_task = asyncio.create_task(stream.stop())
        if not self._provide_traceback:
            for signal in (SIGINT, SIGTERM):
                loop.add_signal_handler(signal, on_signal)
        try:
            async with stream:
                async for notification in stream:
                    print(json.dumps(notification.to_jsonable(), sort_keys=True))
                    sys.stdout.flush()
        finally:
            if not self._provide_traceback:
                for signal in (SIGINT, SIGTERM):
                    loop.remove_signal_handler(signal)
            if stop_task is not None:
                await stop_task
        return 0

    async def cmd_version(self) -> int:
        print(pkg_version)
        return 0

    async def arun(self) -> int:
        """Run the yeelight command-line tool with provided arguments

        Args:
            argv (Optional[Sequence[str]], optional):
                A list of commandline arguments (NOT including the program as argv[0]!),
                or None to use sys.argv[1:]. Defaults to None.

        Returns:
            int: The exit code that would be returned if this were run as a standalone command.
        """
        parser = NoExitArgumentParser(description="Discover and control Yeelight devices on the local network.")


        # ======================= Main command

        self._parser = parser
        parser.add_argument('--traceback', "--tb", action='store_true', default=False,
                            help='Display detailed exception information')
        parser.add_argument('--log-level', dest='log_level', default='warning',
                            choices=['debug', 'info', 'warning', 'error', 'critical'],
                            help='''The logging level to use. Default: warning''')
        parser.add_argument('-H', '--host', default=None,
                            help=f'''Device address as host[:port]. Default: use env var {HOST_ENV_VAR}, or discover a device.''')
        parser.add_argument('-t', '--timeout', type=float, default=DEFAULT_TIMEOUT,
                            help=f'''Timeout for each command, in seconds. Default: {DEFAULT_TIMEOUT}''')
        parser.add_argument('--wait-time', type=float, default=DEFAULT_RESPONSE_WAIT_TIME,
                            help=f'''The amount of time to wait for discovery responses, in seconds. Default: {DEFAULT_RESPONSE_WAIT_TIME}''')
        parser.add_argument('-b', '--bind', dest="bind_addresses", action='append', default=[],
                            help='''The local unicast IP address to discover from. May be repeated. Default: all local non-loopback addresses.''')
        parser.set_defaults(func=self.cmd_bare)

        subparsers = parser.add_subparsers(
                            title='Commands',
                            description='Valid commands',
                            help='Additional help available with "<command-name> -h"')


        # ======================= discover

        parser_discover = subparsers.add_parser('discover', description="Search for Yeelight devices")
        parser_discover.add_argument('--all', action='store_true', default=False,
                            help='Report every device that answers within the wait time, not just the first.')
        parser_discover.set_defaults(func=self.cmd_discover)

        # ======================= get-prop

        parser_get_prop = subparsers.add_parser('get-prop', description="Read device properties")
        parser_get_prop.add_argument('props', nargs='+', help='Property names, e.g. power bright name')
        parser_get_prop.set_defaults(func=self.cmd_get_prop)

        # ======================= power

        parser_power = subparsers.add_parser('power', description="Switch the device on or off")
        parser_power.add_argument('power', choices=['on', 'off'])
        parser_power.set_defaults(func=self.cmd_power)

        # ======================= bright

        parser_bright = subparsers.add_parser('bright', description="Set the brightness percentage")
        parser_bright.add_argument('bright', help='Brightness percentage, an integer 0-100')
        parser_bright.set_defaults(func=self.cmd_bright)

        # ======================= toggle

        parser_toggle = subparsers.add_parser('toggle', description="Toggle the device power")
        parser_toggle.set_defaults(func=self.cmd_toggle)

        # ======================= listen

        parser_listen = subparsers.add_parser('listen', description="Print notifications pushed by the device")
        parser_listen.add_argument('--queue-size', type=int, default=DEFAULT_NOTIFICATION_QUEUE_SIZE,
                            help=f'''The number of undelivered notifications to buffer. Default: {DEFAULT_NOTIFICATION_QUEUE_SIZE}''')
        parser_listen.add_argument('--overflow', default=OverflowPolicy.DROP_NEWEST.value,
                            choices=[p.value for p in OverflowPolicy],
                            help=f'''What to do when the buffer is full. Default: {OverflowPolicy.DROP_NEWEST.value}''')
        parser_listen.set_defaults(func=self.cmd_listen)

        # ======================= version

        parser_version = subparsers.add_parser('version',
                                description='''Display version information.''')
        parser_version.set_defaults(func=self.cmd_version)

        # =========================================================

        try:
            args = parser.parse_args(self._argv)
        except ArgparseExitError as ex:
            return ex.exit_code
        traceback: bool = args.traceback
        self._provide_traceback = traceback

        try:
            logging.basicConfig(
                level=logging.getLevelName(args.log_level.upper()),
            )
            self._args = args
            func: Callable[[], Awaitable[int]] = args.func
            logging.debug(f"Running command {func.__name__}, tb = {traceback}")
            rc = await func()
            logging.debug(f"Command {func.__name__} returned {rc}")
        except Exception as ex:
            if isinstance(ex, CmdExitError):
                rc = ex.exit_code
            else:
                rc = 1
            if rc != 0:
                if traceback:
                    raise
            print(f"yeelight-lan: error: {ex}", file=sys.stderr)

        return rc

    def run(self) -> int:
        loop = asyncio.new_event_loop()
        try:
            asyncio.set_event_loop(loop)
            rc = loop.run_until_complete(self.arun())
        finally:
            loop.close()
        return rc

def run(argv: Optional[Sequence[str]]=None) -> int:
    try:
        rc = CommandHandler(argv).run()
    except CmdExitError as ex:
        rc = ex.exit_code
    return rc

async def arun(argv: Optional[Sequence[str]]=None) -> int:
    try:
        rc = await CommandHandler(argv).arun()
    except CmdExitError as ex:
        rc = ex.exit_code
    return rc

# allow running with "python3 -m", or as a standalone script
if __name__ == "__main__":
    sys.exit(run())
