#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
The Yeelight command protocol wire format.

Every message is a single JSON object on one line, terminated by CRLF:

    request:       {"id": 1, "method": "set_power", "params": ["on", "sudden", 0]}
    result:        {"id": 1, "result": ["ok"]}
    error:         {"id": 1, "error": {"code": -1, "message": "unsupported method"}}
    notification:  {"method": "props", "params": {"power": "on", "bright": "50"}}

Notifications carry no id; they are pushed by the device whenever its state changes.
"""

from __future__ import annotations

import json
import itertools
import threading

from .internal_types import *
from .exceptions import MalformedResponse
from .constants import CRLF

class Command:
    """A request sent to a device"""

    id: int
    method: str
    params: List[ParamValue]

    def __init__(self, id: int, method: str, params: Optional[Iterable[ParamValue]]=None):
        self.id = id
        self.method = method
        self.params = [] if params is None else list(params)

    def to_jsonable(self) -> JsonableDict:
        return {"id": self.id, "method": self.method, "params": list(self.params)}

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, Command):
            return False
        return self.id == other.id and self.method == other.method and self.params == other.params

    def __str__(self) -> str:
        return f"Command(id={self.id}, method={self.method!r}, params={self.params!r})"

    def __repr__(self) -> str:
        return str(self)

class CommandError:
    """The error object of a rejected command"""

    code: int
    message: str

    def __init__(self, code: int, message: str):
        self.code = code
        self.message = message

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, CommandError):
            return False
        return self.code == other.code and self.message == other.message

    def __str__(self) -> str:
        return f"CommandError(code={self.code}, message={self.message!r})"

    def __repr__(self) -> str:
        return str(self)

class CommandResult:
    """A response to a Command. At most one of result and error is set by a well-behaved device."""

    id: int
    result: Optional[List[Any]]
    error: Optional[CommandError]

    def __init__(self, id: int, result: Optional[Iterable[Any]]=None, error: Optional[CommandError]=None):
        self.id = id
        self.result = None if result is None else list(result)
        self.error = error

    @property
    def is_error(self) -> bool:
        return self.error is not None

    def to_jsonable(self) -> JsonableDict:
        data: JsonableDict = {"id": self.id}
        if self.result is not None:
            data["result"] = list(self.result)
        if self.error is not None:
            data["error"] = {"code": self.error.code, "message": self.error.message}
        return data

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, CommandResult):
            return False
        return self.id == other.id and self.result == other.result and self.error == other.error

    def __str__(self) -> str:
        if self.error is None:
            return f"CommandResult(id={self.id}, result={self.result!r})"
        return f"CommandResult(id={self.id}, error={self.error})"

    def __repr__(self) -> str:
        return str(self)

class Notification:
    """An unsolicited state-change message pushed by a device"""

    method: str
    params: Dict[str, Any]

    def __init__(self, method: str='', params: Optional[Mapping[str, Any]]=None):
        self.method = method
        self.params = {} if params is None else dict(params)

    def to_jsonable(self) -> JsonableDict:
        return {"method": self.method, "params": dict(self.params)}

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, Notification):
            return False
        return self.method == other.method and self.params == other.params

    def __str__(self) -> str:
        return f"Notification(method={self.method!r}, params={self.params!r})"

    def __repr__(self) -> str:
        return str(self)

class CommandIdGenerator:
    """A thread-safe source of monotonically increasing command IDs, starting at 1."""

    _lock: threading.Lock
    _counter: Iterator[int]

    def __init__(self, start: int=1):
        self._lock = threading.Lock()
        self._counter = itertools.count(start)

    def next_id(self) -> int:
        with self._lock:
            return next(self._counter)

    def __call__(self) -> int:
        return self.next_id()

default_id_generator = CommandIdGenerator()
"""The process-wide ID generator used by channels that are not given their own."""

def _encode_line(data: JsonableDict) -> bytes:
    return json.dumps(data, separators=(',', ':')).encode('utf-8') + CRLF

def encode_command(command: Command) -> bytes:
    """Serializes a Command to a single JSON line terminated with CRLF."""
    return _encode_line(command.to_jsonable())

def encode_result(result: CommandResult) -> bytes:
    """Serializes a CommandResult the way a device would send it."""
    return _encode_line(result.to_jsonable())

def encode_notification(notification: Notification) -> bytes:
    """Serializes a Notification the way a device would send it."""
    return _encode_line(notification.to_jsonable())

def _decode_object(line: bytes | str) -> Dict[str, Any]:
    if isinstance(line, bytes):
        try:
            line = line.decode('utf-8')
        except UnicodeDecodeError as e:
            raise MalformedResponse(f"Line is not valid UTF-8: {line!r}") from e
    try:
        data = json.loads(line)
    except (ValueError, RecursionError) as e:
        # JSONDecodeError is a ValueError; oversized integers and deep nesting fail outside it
        raise MalformedResponse(f"Line is not valid JSON: {line[:200]!r}") from e
    if not isinstance(data, dict):
        raise MalformedResponse(f"Line is not a JSON object: {line!r}")
    return data

def decode_result(line: bytes | str) -> CommandResult:
    """Parses one line received in answer to a command.

    Raises MalformedResponse if the line is not a JSON object with an integer "id".
    Does not check that the id matches any request.
    """
    data = _decode_object(line)
    id = data.get("id")
    if isinstance(id, bool) or not isinstance(id, int):
        raise MalformedResponse(f"Command result has no integer id: {line!r}")
    result = data.get("result")
    if result is not None and not isinstance(result, list):
        result = [result]
    error: Optional[CommandError] = None
    raw_error = data.get("error")
    if raw_error is not None:
        if isinstance(raw_error, dict):
            code = raw_error.get("code", 0)
            message = raw_error.get("message", '')
            error = CommandError(
                code if isinstance(code, int) else 0,
                message if isinstance(message, str) else str(message),
              )
        else:
            error = CommandError(0, str(raw_error))
    return CommandResult(id, result=result, error=error)

def decode_notification(line: bytes | str) -> Notification:
    """Parses one line received on a notification connection.

    Missing or mistyped fields default to empty (method '' and params {}). Raises
    MalformedResponse only if the line is not a JSON object at all.
    """
    data = _decode_object(line)
    method = data.get("method")
    params = data.get("params")
    return Notification(
        method if isinstance(method, str) else '',
        params if isinstance(params, dict) else None,
      )
