from __future__ import annotations

import pytest

from yeelight_lan_protocol.descriptor import DeviceDescriptor
from yeelight_lan_protocol.discovery_datagram import DiscoveryDatagram, parse_discovery_response
from yeelight_lan_protocol.exceptions import MalformedDiscoveryResponse

RESPONSE = (
    b"HTTP/1.1 200 OK\r\n"
    b"LOCATION: yeelight://192.168.1.5:55443\r\n"
    b"NAME: lamp1\r\n"
    b"POWER: on\r\n"
    b"BRIGHT: 80\r\n"
)

DEVICE_RESPONSE = (
    b"HTTP/1.1 200 OK\r\n"
    b"Cache-Control: max-age=3600\r\n"
    b"Date: \r\n"
    b"Ext: \r\n"
    b"Location: yeelight://192.168.1.239:55443\r\n"
    b"Server: POSIX UPnP/1.0 YGLC/1\r\n"
    b"id: 0x000000000015243f\r\n"
    b"model: color\r\n"
    b"fw_ver: 18\r\n"
    b"support: get_prop set_default set_power toggle set_bright start_cf stop_cf\r\n"
    b"power: off\r\n"
    b"bright: 100\r\n"
    b"color_mode: 2\r\n"
    b"ct: 4000\r\n"
    b"rgb: 16711680\r\n"
    b"hue: 100\r\n"
    b"sat: 35\r\n"
    b"name: my_bulb\r\n"
    b"\r\n"
)


def test_non_ascii_name_survives_parsing() -> None:
    payload = (
        "HTTP/1.1 200 OK\r\n"
        "Location: yeelight://192.168.1.5:55443\r\n"
        "name: Lámpara 客厅\r\n"
        "power: on\r\n"
    ).encode("utf-8")
    descriptor = parse_discovery_response(payload)
    assert descriptor.name == "Lámpara 客厅"
    assert descriptor.power == "on"
    assert DiscoveryDatagram(raw_data=payload)["NAME"] == "Lámpara 客厅"


def test_parse_basic_response() -> None:
    assert parse_discovery_response(RESPONSE) == DeviceDescriptor(
        address="192.168.1.5:55443", name="lamp1", power="on", brightness="80"
    )


def test_trailing_blank_line_does_not_change_result() -> None:
    assert parse_discovery_response(RESPONSE + b"\r\n") == parse_discovery_response(RESPONSE)


def test_parse_accepts_text_and_bare_lf() -> None:
    text = RESPONSE.decode("utf-8").replace("\r\n", "\n")
    assert parse_discovery_response(text).address == "192.168.1.5:55443"


def test_missing_name_yields_empty_field() -> None:
    descriptor = parse_discovery_response(RESPONSE.replace(b"NAME: lamp1\r\n", b""))
    assert descriptor.name == ""
    assert descriptor.power == "on"


def test_missing_everything_but_statement_yields_empty_fields() -> None:
    descriptor = parse_discovery_response(b"HTTP/1.1 200 OK\r\n\r\n")
    assert descriptor == DeviceDescriptor(address="")


def test_parse_full_device_response() -> None:
    descriptor = parse_discovery_response(DEVICE_RESPONSE)
    assert descriptor.address == "192.168.1.239:55443"
    assert descriptor.host == "192.168.1.239"
    assert descriptor.port == 55443
    assert descriptor.name == "my_bulb"
    assert descriptor.power == "off"
    assert descriptor.is_on is False
    assert descriptor.brightness == "100"
    assert descriptor.id == "0x000000000015243f"
    assert descriptor.model == "color"
    assert descriptor.supports("set_bright")
    assert not descriptor.supports("set_rgb")
    assert descriptor.rgb == "16711680"


def test_advertisement_parses_like_a_response() -> None:
    advert = DEVICE_RESPONSE.replace(b"HTTP/1.1 200 OK", b"NOTIFY * HTTP/1.1")
    assert parse_discovery_response(advert).name == "my_bulb"
    assert DiscoveryDatagram(raw_data=advert).is_advertisement


@pytest.mark.parametrize(
    "payload",
    [
        b"",
        b"\r\n",
        b"M-SEARCH * HTTP/1.1\r\nST: wifi_bulb\r\n",
        b"garbage",
        b"HTTP/1.1 200 OK\r\nLOCATION: yeelight://192.168.1.5:55443\r\nNAM",
        b"HTTP/1.1 200 OK\r\nNAME lamp1\r\n",
        b"HTTP/1.1 200 OK\r\nLOCATION: \xff\xfe\r\n",
    ],
)
def test_unparsable_payloads_raise(payload: bytes) -> None:
    with pytest.raises(MalformedDiscoveryResponse):
        parse_discovery_response(payload)


def test_datagram_headers_are_case_insensitive() -> None:
    datagram = DiscoveryDatagram(raw_data=DEVICE_RESPONSE)
    assert datagram.status_code == 200
    assert datagram.is_search_response
    assert datagram["LOCATION"] == "yeelight://192.168.1.239:55443"
    assert datagram.location == "192.168.1.239:55443"
    assert datagram.headers["Date"] == ""


def test_search_request_format() -> None:
    datagram = DiscoveryDatagram.create_search_request()
    raw = datagram.raw_data
    assert raw.startswith(b"M-SEARCH * HTTP/1.1\r\n")
    assert b"HOST: 239.255.255.250:1982\r\n" in raw
    assert b'MAN: "ssdp:discover"\r\n' in raw
    assert b"ST: wifi_bulb\r\n" in raw
    assert raw.endswith(b"\r\n\r\n")
    assert DiscoveryDatagram(raw_data=raw).is_search_request
