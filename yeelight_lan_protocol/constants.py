# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Constants used by this package"""

YEELIGHT_MULTICAST_ADDRESS = "239.255.255.250"
"""The multicast address that Yeelight devices listen on for discovery requests."""

YEELIGHT_DISCOVERY_PORT = 1982
"""The UDP port used for Yeelight discovery. Note this is not the SSDP port 1900."""

YEELIGHT_DEFAULT_PORT = 55443
"""The TCP port on which Yeelight devices accept commands when LAN control is enabled."""

YEELIGHT_SEARCH_TARGET = "wifi_bulb"
"""The ST header value that identifies Yeelight devices in a search request."""

YEELIGHT_LOCATION_SCHEME = "yeelight://"
"""The scheme prefix of the Location header in discovery responses."""

CRLF = b"\r\n"
"""Line terminator for both the discovery and the command protocols."""

DEFAULT_TIMEOUT = 3.0
"""Default timeout (in seconds) for connecting, writing a command and reading its result."""

DEFAULT_RESPONSE_WAIT_TIME = 3.0
"""Default amount of time (in seconds) to wait for discovery responses."""

DEFAULT_NOTIFICATION_QUEUE_SIZE = 100
"""Default number of undelivered notifications buffered by a NotificationStream."""

