#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Exceptions defined by this package"""

from __future__ import annotations

from typing import Optional

class YeelightError(Exception):
  """Base class for all error exceptions defined by this package."""
  pass

class DiscoveryTimeout(YeelightError):
  """No discovery response was received within the wait time."""
  pass

class MalformedDiscoveryResponse(YeelightError):
  """A discovery response could not be parsed as a header block."""
  pass

class TransportError(YeelightError):
  """A connection-level failure (refused, reset, unresolvable host, etc.).

  The underlying exception, if any, is available as __cause__.
  """
  pass

class CommandTimeout(YeelightError):
  """Writing a command or reading its result did not complete within the timeout."""
  pass

class MalformedResponse(YeelightError):
  """A line received from a device could not be decoded."""
  pass

class CommandRejected(YeelightError):
  """The device answered a command with an error object."""
  code: int
  message: str

  def __init__(self, code: int, message: str, method: Optional[str]=None):
    self.code = code
    self.message = message
    self.method = method
    if method is None:
      msg = f"Command rejected by device: code={code}, message={message!r}"
    else:
      msg = f"Command {method!r} rejected by device: code={code}, message={message!r}"
    super().__init__(msg)

class InvalidArgument(YeelightError, ValueError):
  """A caller-supplied parameter failed local validation; nothing was sent."""
  pass
