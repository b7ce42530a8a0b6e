#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Type hints used internally by this package"""

from __future__ import annotations

from typing import (
    Dict, List, Optional, Union, Any, Tuple, Set, Mapping, MutableMapping, Iterable, Iterator,
    Callable, Awaitable, AsyncIterator, AsyncIterable, AsyncContextManager, Sequence, Type,
    TYPE_CHECKING,
  )

from types import TracebackType

from typing_extensions import TypeAlias

HostAndPort = Tuple[str, int]
"""A (host, port) tuple as used by socket addresses"""

JsonableTypes = (str, int, float, bool, dict, list)

Jsonable: TypeAlias = Union[str, int, float, bool, None, Dict[str, Any], List[Any]]
"""A type hint for values that can be serialized to JSON"""

JsonableDict = Dict[str, Jsonable]
"""A type hint for a JSON object"""

ParamValue = Union[str, int, float]
"""A single positional parameter of a command sent to a device"""
