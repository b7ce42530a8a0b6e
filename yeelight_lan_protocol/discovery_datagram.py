#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Abstraction of a datagram used in the Yeelight discovery protocol.

Discovery messages are HTTP-like: a statement line, a block of "Name: value"
headers, and a terminating blank line. A search request looks like:

    M-SEARCH * HTTP/1.1
    HOST: 239.255.255.250:1982
    MAN: "ssdp:discover"
    ST: wifi_bulb

and a device answers (or periodically advertises with "NOTIFY * HTTP/1.1") with:

    HTTP/1.1 200 OK
    Cache-Control: max-age=3600
    Location: yeelight://192.168.1.239:55443
    id: 0x000000000015243f
    model: color
    power: on
    bright: 100
    name: lamp1
    ...
"""

from __future__ import annotations

import re

from .internal_types import *
from .pkg_logging import logger
from .exceptions import MalformedDiscoveryResponse
from .constants import (
    YEELIGHT_MULTICAST_ADDRESS,
    YEELIGHT_DISCOVERY_PORT,
    YEELIGHT_SEARCH_TARGET,
    YEELIGHT_LOCATION_SCHEME,
  )
from .descriptor import DeviceDescriptor

from .util import (
    CaseInsensitiveDict,
    split_bytes_at_lf_or_crlf,
    split_headers_and_body,
    find_malformed_header_line,
    parse_http_headers,
    encode_http_header,
)

class DiscoveryDatagram(Mapping[str, str]):
    """Wrapper for a raw Yeelight discovery datagram.

    This class provides parsing and formatting of the HTTP-like packets and a read-only
    case-insensitive dict-like interface to the headers.
    """

    _response_statement_re = re.compile(r'^HTTP/(?P<version_major>[0-9]+)\.(?P<version_minor>[0-9]+) +(?P<status_code>[0-9]{3})( +(?P<status>.*[^ ]))? *$')
    _notify_statement_re = re.compile(r'^NOTIFY +\* +HTTP/(?P<version_major>[0-9]+)\.(?P<version_minor>[0-9]+) *$')
    _search_statement_re = re.compile(r'^M-SEARCH +\* +HTTP/(?P<version_major>[0-9]+)\.(?P<version_minor>[0-9]+) *$')

    _raw_data: bytes
    """The raw UDP datagram contents"""

    _statement_line: str
    """The first line of the datagram; e.g., "HTTP/1.1 200 OK", "NOTIFY * HTTP/1.1", etc."""

    _headers: CaseInsensitiveDict[str]
    """The headers, with surrounding whitespace removed from the values."""

    _body: bytes
    """The body of the datagram, if any. If there is no body, b'' is returned."""

    def __init__(
            self,
            statement: Optional[str]=None,
            headers: Optional[Iterable[Tuple[str, str]] | Mapping[str, str]]=None,
            body: Optional[bytes]=None,
            raw_data: Optional[bytes]=None,
          ):
        if raw_data is None:
            if statement is None:
                raise ValueError("Either statement or raw_data must be provided")
            self._statement_line = statement
            self._headers = CaseInsensitiveDict(headers if headers is not None else ())
            self._body = b'' if body is None else body
            self._raw_data = self._build_raw_data()
        else:
            if not (statement is None and headers is None and body is None):
                raise ValueError("If raw_data is provided, statement, headers, and body must be None")
            self._raw_data = raw_data
            statement_and_remainder = split_bytes_at_lf_or_crlf(raw_data, 1)
            self._statement_line = statement_and_remainder[0].decode('utf-8', errors='replace').strip()
            remainder = b'' if len(statement_and_remainder) < 2 else statement_and_remainder[1]
            self._headers, self._body = parse_http_headers(remainder)

    def __str__(self) -> str:
        return f"DiscoveryDatagram('{self._statement_line}', headers={dict(self._headers)}, body={self._body!r})"

    def __repr__(self) -> str:
        return str(self)

    @classmethod
    def create_search_request(
            cls,
            multicast_address: str=YEELIGHT_MULTICAST_ADDRESS,
            multicast_port: int=YEELIGHT_DISCOVERY_PORT,
            search_target: str=YEELIGHT_SEARCH_TARGET,
          ) -> DiscoveryDatagram:
        """Creates the M-SEARCH request that Yeelight devices answer."""
        return cls(
            "M-SEARCH * HTTP/1.1",
            headers=[
                ("HOST", f"{multicast_address}:{multicast_port}"),
                ("MAN", '"ssdp:discover"'),
                ("ST", search_target),
              ],
          )

    @property
    def raw_data(self) -> bytes:
        """The raw UDP datagram contents"""
        return self._raw_data

    @property
    def statement_line(self) -> str:
        return self._statement_line

    @property
    def headers(self) -> CaseInsensitiveDict[str]:
        return self._headers

    @property
    def body(self) -> bytes:
        return self._body

    @property
    def status_code(self) -> Optional[int]:
        """The status code of a response datagram (e.g., 200), or None if this is not a response."""
        m = self._response_statement_re.match(self._statement_line)
        if m is None:
            return None
        return int(m.group('status_code'))

    @property
    def is_search_response(self) -> bool:
        return self.status_code is not None

    @property
    def is_advertisement(self) -> bool:
        """True if this is an unsolicited "NOTIFY * HTTP/1.1" advertisement."""
        return self._notify_statement_re.match(self._statement_line) is not None

    @property
    def is_search_request(self) -> bool:
        return self._search_statement_re.match(self._statement_line) is not None

    @property
    def location(self) -> str:
        """The device address from the Location header with the "yeelight://" scheme removed.
           '' if there is no Location header."""
        location = self._headers.get("Location", '')
        if location.startswith(YEELIGHT_LOCATION_SCHEME):
            location = location[len(YEELIGHT_LOCATION_SCHEME):]
        return location

    def to_descriptor(self) -> DeviceDescriptor:
        """Extracts a DeviceDescriptor from the headers. Missing headers yield ''."""
        headers = self._headers
        support = tuple(x for x in headers.get("support", '').split(' ') if x != '')
        return DeviceDescriptor(
            address=self.location,
            name=headers.get("name", ''),
            power=headers.get("power", ''),
            brightness=headers.get("bright", ''),
            id=headers.get("id", ''),
            model=headers.get("model", ''),
            fw_ver=headers.get("fw_ver", ''),
            support=support,
            color_mode=headers.get("color_mode", ''),
            ct=headers.get("ct", ''),
            rgb=headers.get("rgb", ''),
            hue=headers.get("hue", ''),
            sat=headers.get("sat", ''),
          )

    def __getitem__(self, key: str) -> str:
        return self._headers[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._headers)

    def __len__(self) -> int:
        return len(self._headers)

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, DiscoveryDatagram):
            return False
        return (self._statement_line == other._statement_line and
                self._headers == other._headers and
                self._body == other._body)

    def _build_raw_data(self) -> bytes:
        raw_data = self._statement_line.encode('utf-8') + b'\r\n'
        for k, v in self._headers.items():
            raw_data += encode_http_header(k, v)
        raw_data += b'\r\n'
        raw_data += self._body
        return raw_data


def parse_discovery_response(data: bytes | str) -> DeviceDescriptor:
    """Parses a discovery response (or advertisement) payload into a DeviceDescriptor.

    The header block ends at the first blank line or at the end of the payload, so a
    payload that already ends with a line terminator parses the same as one that doesn't.
    Headers are matched case-insensitively, and missing headers yield empty fields.

    Raises MalformedDiscoveryResponse if the payload cannot be read as a header block:
    it is empty or not UTF-8, its statement line is not an HTTP-style response or
    NOTIFY line, or a header line has no ':' separator (e.g., it was truncated).
    """
    if isinstance(data, str):
        data = data.encode('utf-8')
    try:
        data.decode('utf-8')
    except UnicodeDecodeError as e:
        raise MalformedDiscoveryResponse(f"Discovery response is not valid UTF-8: {data!r}") from e
    if data.strip() == b'':
        raise MalformedDiscoveryResponse("Discovery response is empty")

    statement_and_remainder = split_bytes_at_lf_or_crlf(data, 1)
    statement_line = statement_and_remainder[0].decode('utf-8').strip()
    if (DiscoveryDatagram._response_statement_re.match(statement_line) is None and
            DiscoveryDatagram._notify_statement_re.match(statement_line) is None):
        raise MalformedDiscoveryResponse(f"Not a discovery response statement line: {statement_line!r}")
    remainder = b'' if len(statement_and_remainder) < 2 else statement_and_remainder[1]
    headers_data, _ = split_headers_and_body(remainder)
    bad_line = find_malformed_header_line(headers_data)
    if bad_line is not None:
        raise MalformedDiscoveryResponse(f"Malformed header line in discovery response: {bad_line!r}")

    datagram = DiscoveryDatagram(raw_data=data)
    descriptor = datagram.to_descriptor()
    logger.debug(f"Parsed discovery response: {descriptor}")
    return descriptor
