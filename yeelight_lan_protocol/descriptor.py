#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
DeviceDescriptor -- an immutable snapshot of what a Yeelight device reported about itself.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace

from .internal_types import *
from .util import split_host_port

@dataclass(frozen=True)
class DeviceDescriptor:
    """The state of a device as reported in a discovery response (or refreshed with get_prop).

    All values are kept as the strings the device sent; missing values are ''.
    """

    address: str
    """"host:port" of the device's command port. '' if the device did not say."""

    name: str = ''
    power: str = ''
    """"on", "off", or '' if unknown."""

    brightness: str = ''
    """String-encoded brightness percentage; not validated."""

    id: str = ''
    model: str = ''
    fw_ver: str = ''
    support: Tuple[str, ...] = field(default_factory=tuple)
    """The method names the device claims to support."""

    color_mode: str = ''
    ct: str = ''
    rgb: str = ''
    hue: str = ''
    sat: str = ''

    @property
    def host_and_port(self) -> HostAndPort:
        """The address as a (host, port) tuple. Raises InvalidArgument if address is empty."""
        return split_host_port(self.address)

    @property
    def host(self) -> str:
        return self.host_and_port[0]

    @property
    def port(self) -> int:
        return self.host_and_port[1]

    @property
    def is_on(self) -> Optional[bool]:
        """True if power is "on", False if "off", None if unknown."""
        if self.power == 'on':
            return True
        if self.power == 'off':
            return False
        return None

    def supports(self, method: str) -> bool:
        return method in self.support

    def with_updates(self, **changes: Any) -> DeviceDescriptor:
        """Returns a copy with some fields replaced."""
        return replace(self, **changes)

    def to_jsonable(self) -> JsonableDict:
        return {
            "address": self.address,
            "name": self.name,
            "power": self.power,
            "brightness": self.brightness,
            "id": self.id,
            "model": self.model,
            "fw_ver": self.fw_ver,
            "support": list(self.support),
            "color_mode": self.color_mode,
            "ct": self.ct,
            "rgb": self.rgb,
            "hue": self.hue,
            "sat": self.sat,
          }
