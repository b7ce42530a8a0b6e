#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Simple utility functions used by this package
"""

from __future__ import annotations

from typing_extensions import SupportsIndex

import netifaces
from ipaddress import IPv4Address

from .internal_types import *
from .exceptions import InvalidArgument
from .constants import YEELIGHT_DEFAULT_PORT

from email.parser import HeaderParser
from email.message import Message as EmailParserMessage
from requests.structures import CaseInsensitiveDict

def split_bytes_at_lf_or_crlf(data: bytes, maxsplit: SupportsIndex = -1) -> List[bytes]:
    """Split a byte string at LF or CRLF.

    If maxsplit is given, at most maxsplit splits are done.

    Returns a List[bytes] representing the delimited lines with the delimiters removed.
    """
    parts = data.split(b'\n', maxsplit)
    if len(parts) > 1:
        for i, part in enumerate(parts[:-1]):
            if part.endswith(b'\r'):
                parts[i] = part[:-1]
    return parts

def split_headers_and_body(data: bytes) -> Tuple[bytes, bytes]:
    """Splits a byte string with HTTP headers and an optional body into the headers and the body.

    A relaxed interpretation of '\n' as a line delimiter is accepted even though '\r\n' is required
    by the standard. A header block that begins with a blank line is empty.

    Returns a Tuple[headers: bytes, body: bytes]. If there is no body, b'' is returned for the body.
    """
    for prefix in (b'\r\n', b'\n'):
        if data.startswith(prefix):
            return (b'', data[len(prefix):])

    delims = [b'\n\r\n', b'\n\n']
    first_i = -1
    first_nb = 0

    for delim in delims:
        i = data.find(delim)
        if i != -1:
            if first_i == -1 or i < first_i:
                first_i = i
                first_nb = len(delim)
    if first_i == -1:
        headers, body = data, b''
    else:
        headers, body = data[:first_i], data[first_i + first_nb:]
        if headers.endswith(b'\r'):
            headers = headers[:-1]

    return (headers, body)

def find_malformed_header_line(headers_data: bytes) -> Optional[bytes]:
    """Returns the first line of a header block that is neither a "name: value" line nor
       a folded continuation of the previous header, or None if every line is well formed.

       A trailing line terminator does not produce an extra (empty) line.
    """
    lines = split_bytes_at_lf_or_crlf(headers_data)
    if len(lines) > 0 and lines[-1] == b'':
        lines = lines[:-1]
    have_header = False
    for line in lines:
        if line[:1] in (b' ', b'\t') and have_header:
            continue
        name, sep, _ = line.partition(b':')
        if sep == b'' or name == b'' or b' ' in name or b'\t' in name:
            return line
        have_header = True
    return None

def parse_http_headers(data: bytes) -> Tuple[CaseInsensitiveDict[str], bytes]:
    """Parse HTTP-style headers out of a byte string. Also returns the body of the message, if any.

    A relaxed interpretation of '\n' as a line delimiter is accepted even though '\r\n' is required
    by the standard.  The final line of the headers does not need to be terminated by a newline. If
    there is a body, it is separated from the headers with '\r\n\r\n', '\n\n', '\r\n\n', or '\n\r\n'.

    It is assumed that any preceding statement line (e.g., "HTTP/1.1 200 OK\r\n") has already been removed.

    The header block is decoded as UTF-8 (undecodable bytes become U+FFFD). Header values are
    stripped of surrounding whitespace; no other decoding is performed.

    Returns a tuple of (headers: CaseInsensitiveDict[str], body: bytes).
    """

    headers_data, body = split_headers_and_body(data)
    i = 0

    # Normalize the header line endings to '\r\n'
    while True:
        i = headers_data.find(b'\n', i)
        if i == -1:
            break
        if i == 0 or headers_data[i - 1] != ord('\r'):
            headers_data = headers_data[:i] + b'\r' + headers_data[i:]
            i += 2
        else:
            i += 1

    headers_text = headers_data.decode('utf-8', errors='replace')
    msg: EmailParserMessage = HeaderParser().parsestr(headers_text)
    headers: CaseInsensitiveDict[str] = CaseInsensitiveDict(
        (name.strip(), str(value).strip()) for name, value in msg.items())
    return (headers, body)

def encode_http_header(name: str, value: str) -> bytes:
    """Encodes a raw HTTP header name/value pair into a byte string terminated with '\r\n'."""
    return name.encode('utf-8') + b': ' + value.encode('utf-8') + b'\r\n'

def split_host_port(address: str, default_port: int=YEELIGHT_DEFAULT_PORT) -> HostAndPort:
    """Splits a "host:port" string into a (host, port) tuple.

    The port is optional and defaults to default_port. A bracketed IPv6 literal
    ("[::1]:55443") is accepted.

    Raises InvalidArgument if the address is empty or the port is not a valid integer.
    """
    address = address.strip()
    if address == '':
        raise InvalidArgument("Device address is empty")
    if address.startswith('['):
        host, sep, rest = address[1:].partition(']')
        if sep == '':
            raise InvalidArgument(f"Unterminated IPv6 literal in device address: {address!r}")
        port_str = rest[1:] if rest.startswith(':') else ''
    elif address.count(':') == 1:
        host, port_str = address.split(':', 1)
    else:
        host, port_str = address, ''
    if host == '':
        raise InvalidArgument(f"Device address has no host: {address!r}")
    if port_str == '':
        return (host, default_port)
    try:
        port = int(port_str)
    except ValueError as e:
        raise InvalidArgument(f"Invalid port in device address: {address!r}") from e
    if not 0 < port < 65536:
        raise InvalidArgument(f"Port out of range in device address: {address!r}")
    return (host, port)

def format_host_port(addr: HostAndPort) -> str:
    """Formats a (host, port) tuple as a "host:port" string."""
    host, port = addr[0], addr[1]
    if ':' in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"

def get_local_ip_addresses_and_interfaces(include_loopback: bool=True) -> List[Tuple[str, str]]:
    """Returns a list of Tuple[ip_address: str, interface_name: str] for the IPv4 addresses of the local host.
       The result is sorted in a way that attempts to place the "preferred"
       canonical IP address first in the list, according to the following scheme:
           1. Addresses on the default gateway interface precede all other addresses.
           2. Non-loopback addresses precede loopback addresses.
           3. IPV4 addresses that begin with 172. follow other IPV4 addresses. This is a hack to
              deprioritize local docker network addresses.
    """
    result_with_priority: List[Tuple[int, str, str]] = []
    _, default_gateway_ifname = get_default_ip_gateway()
    for ifname in netifaces.interfaces():
        ifinfo = netifaces.ifaddresses(ifname)
        if netifaces.AF_INET in ifinfo:
            for addrinfo in ifinfo[netifaces.AF_INET]:
                ip_str = addrinfo['addr']
                assert isinstance(ip_str, str)
                if ifname == default_gateway_ifname:
                    priority = 0
                elif IPv4Address(ip_str).is_loopback:
                    if not include_loopback:
                        continue
                    priority = 3
                elif ip_str.startswith('172.'):
                    priority = 2
                else:
                    priority = 1
                result_with_priority.append((priority, ip_str, ifname))
    return [ (ip, ifname) for _, ip, ifname in sorted(result_with_priority)]

def get_local_ip_addresses(include_loopback: bool=True) -> List[str]:
    """Returns a List[ip_address: str] for the IPv4 addresses of the local host, preferred address first.
       See get_local_ip_addresses_and_interfaces() for the ordering."""
    return [ ip for ip, _ in get_local_ip_addresses_and_interfaces(include_loopback=include_loopback)]

def get_default_ip_gateway() -> Tuple[Optional[str], Optional[str]]:
    """Returns the (gateway_ip_address: str, gateway_interface_name: str) for the default IPv4 gateway, if any.
       returns (None, None) if there is no default gateway."""
    gws = netifaces.gateways()
    if "default" in gws:
        default_gateway_infos = gws["default"]
        if netifaces.AF_INET in default_gateway_infos:
            gw_ip, gw_interface_name = default_gateway_infos[netifaces.AF_INET][:2]
            return (gw_ip, gw_interface_name)
    return (None, None)
