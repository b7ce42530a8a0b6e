from __future__ import annotations

import asyncio
import json
from signal import SIGINT

import pytest

from fake_device import FakeCommandDevice, FakeNotifyingDevice
from yeelight_lan_protocol import __version__
from yeelight_lan_protocol.__main__ import arun, run
from yeelight_lan_protocol.wire import CommandResult, encode_result


def test_version(capsys) -> None:
    assert run(["version"]) == 0
    assert capsys.readouterr().out.strip() == __version__


def test_no_command_fails() -> None:
    assert run([]) == 1


def test_invalid_brightness_fails(capsys) -> None:
    assert run(["-H", "127.0.0.1:1", "bright", "abc"]) == 1
    assert "error" in capsys.readouterr().err


def test_unknown_command_fails() -> None:
    assert run(["dance"]) != 0


def test_bright_zero_is_sent() -> None:
    async def amain() -> None:
        def ok(request: dict) -> bytes:
            return encode_result(CommandResult(request["id"], ["ok"]))

        async with FakeCommandDevice(ok) as device:
            assert await arun(["-H", device.address, "bright", "0"]) == 0
        assert device.requests[0]["params"] == [0, "sudden", 0]

    asyncio.run(amain())


def test_listen_stops_cleanly_on_signal(monkeypatch: pytest.MonkeyPatch, capsys) -> None:
    output = []

    async def amain() -> None:
        loop = asyncio.get_running_loop()
        handlers: dict = {}
        monkeypatch.setattr(loop, "add_signal_handler", lambda sig, callback: handlers.__setitem__(sig, callback))
        monkeypatch.setattr(loop, "remove_signal_handler", lambda sig: handlers.pop(sig, None) is not None)

        line = b'{"method":"props","params":{"power":"on"}}\r\n'
        async with FakeNotifyingDevice([line], close=False) as device:
            cli_task = asyncio.create_task(arun(["-H", device.address, "listen"]))
            for _ in range(500):
                output.append(capsys.readouterr().out)
                if SIGINT in handlers and "props" in "".join(output):
                    break
                await asyncio.sleep(0.01)
            handlers[SIGINT]()
            # a repeated signal must not start a second stop
            handlers[SIGINT]()
            assert await asyncio.wait_for(cli_task, 5.0) == 0
            await asyncio.wait_for(device.disconnected.wait(), 5.0)
        assert handlers == {}

    asyncio.run(amain())
    output.append(capsys.readouterr().out)
    out_lines = "".join(output).strip().splitlines()
    assert [json.loads(l) for l in out_lines] == [{"method": "props", "params": {"power": "on"}}]
