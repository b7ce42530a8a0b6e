from __future__ import annotations

import asyncio

import pytest

from fake_device import FakeCommandDevice, FakeNotifyingDevice
from yeelight_lan_protocol.descriptor import DeviceDescriptor
from yeelight_lan_protocol.device import YeelightDevice
from yeelight_lan_protocol.exceptions import InvalidArgument
from yeelight_lan_protocol.wire import CommandResult, encode_result


def test_from_address_applies_default_port() -> None:
    assert YeelightDevice.from_address("192.168.1.5").address == "192.168.1.5:55443"
    assert YeelightDevice.from_address("192.168.1.5:1234").address == "192.168.1.5:1234"


@pytest.mark.parametrize("address", ["", "   ", "host:notaport", ":55443"])
def test_invalid_address(address: str) -> None:
    with pytest.raises(InvalidArgument):
        YeelightDevice.from_address(address)


def test_refresh_state_replaces_snapshot() -> None:
    async def amain() -> None:
        def props(request: dict) -> bytes:
            return encode_result(CommandResult(request["id"], ["off", "30", "porch"]))

        async with FakeCommandDevice(props) as fake:
            original = DeviceDescriptor(address=fake.address, power="on", brightness="100", name="old")
            device = YeelightDevice(original)
            refreshed = await device.refresh_state()
        assert refreshed is device.get_state()
        assert (refreshed.power, refreshed.brightness, refreshed.name) == ("off", "30", "porch")
        assert (original.power, original.brightness, original.name) == ("on", "100", "old")
        assert fake.requests[0]["params"] == ["power", "bright", "name"]

    asyncio.run(amain())


def test_set_bright_rejected_without_network(monkeypatch: pytest.MonkeyPatch) -> None:
    calls = []

    async def fake_open_connection(*args, **kwargs):
        calls.append(args)
        raise AssertionError("no connection expected")

    monkeypatch.setattr(asyncio, "open_connection", fake_open_connection)

    async def amain() -> None:
        device = YeelightDevice.from_address("192.168.1.5")
        with pytest.raises(InvalidArgument):
            await device.set_bright("abc")

    asyncio.run(amain())
    assert calls == []


def test_listen_through_device() -> None:
    async def amain() -> None:
        line = b'{"method":"props","params":{"power":"off"}}\r\n'
        async with FakeNotifyingDevice([line]) as fake:
            device = YeelightDevice.from_address(fake.address)
            async with await device.listen() as stream:
                received = [n async for n in stream]
        assert len(received) == 1
        assert received[0].params == {"power": "off"}

    asyncio.run(amain())
