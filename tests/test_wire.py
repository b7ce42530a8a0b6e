from __future__ import annotations

import sys
import threading

import pytest

from yeelight_lan_protocol.exceptions import MalformedResponse
from yeelight_lan_protocol.wire import (
    Command,
    CommandError,
    CommandIdGenerator,
    CommandResult,
    Notification,
    decode_notification,
    decode_result,
    encode_command,
    encode_result,
)


def test_encode_command_is_one_crlf_terminated_json_line() -> None:
    data = encode_command(Command(7, "set_power", ["on", "sudden", 0]))
    assert data == b'{"id":7,"method":"set_power","params":["on","sudden",0]}\r\n'
    assert data.count(b"\n") == 1


def test_encode_command_keeps_numeric_types() -> None:
    data = encode_command(Command(1, "set_ct_abx", [3500, 0.5, "smooth"]))
    assert b"[3500,0.5,\"smooth\"]" in data


def test_result_round_trips_id_and_payload() -> None:
    result = CommandResult(42, ["on", "80", "lamp1"])
    decoded = decode_result(encode_result(result))
    assert decoded == result
    assert decoded.error is None


def test_decode_error_result() -> None:
    decoded = decode_result(b'{"id":3,"error":{"code":-1,"message":"bad params"}}\r\n')
    assert decoded.id == 3
    assert decoded.result is None
    assert decoded.error == CommandError(-1, "bad params")


def test_decode_result_without_result_or_error() -> None:
    decoded = decode_result('{"id":5}')
    assert decoded.result is None
    assert decoded.error is None


@pytest.mark.parametrize(
    "line",
    [
        b"not json\r\n",
        b'["id", 1]\r\n',
        b'{"result":["ok"]}\r\n',
        b'{"id":"1","result":["ok"]}\r\n',
        b"\xff\xfe\r\n",
    ],
)
def test_decode_result_rejects_malformed_lines(line: bytes) -> None:
    with pytest.raises(MalformedResponse):
        decode_result(line)


DEEPLY_NESTED = b"[" * 50000 + b"\r\n"
HUGE_INTEGER = b'{"id":1,"result":[' + b"1" * 5000 + b"]}\r\n"

needs_int_digit_limit = pytest.mark.skipif(
    not hasattr(sys, "get_int_max_str_digits"), reason="interpreter has no integer string length limit"
)


def test_decode_result_rejects_deep_nesting() -> None:
    with pytest.raises(MalformedResponse):
        decode_result(DEEPLY_NESTED)


@needs_int_digit_limit
def test_decode_result_rejects_oversized_integer() -> None:
    with pytest.raises(MalformedResponse):
        decode_result(HUGE_INTEGER)


def test_decode_notification_rejects_deep_nesting() -> None:
    with pytest.raises(MalformedResponse):
        decode_notification(DEEPLY_NESTED)


@needs_int_digit_limit
def test_decode_notification_rejects_oversized_integer() -> None:
    with pytest.raises(MalformedResponse):
        decode_notification(b'{"method":"props","params":{"bright":' + b"9" * 5000 + b"}}\r\n")


def test_decode_notification() -> None:
    n = decode_notification(b'{"method":"props","params":{"power":"off","bright":"10"}}\r\n')
    assert n == Notification("props", {"power": "off", "bright": "10"})


def test_decode_notification_defaults_missing_fields() -> None:
    n = decode_notification(b'{"id":1,"result":["ok"]}')
    assert n.method == ""
    assert n.params == {}


def test_decode_notification_rejects_non_json() -> None:
    with pytest.raises(MalformedResponse):
        decode_notification(b"garbage\r\n")


def test_id_generator_is_monotonic() -> None:
    gen = CommandIdGenerator()
    assert [gen.next_id() for _ in range(3)] == [1, 2, 3]
    assert gen() == 4


def test_id_generator_hands_out_distinct_ids_across_threads() -> None:
    gen = CommandIdGenerator()
    ids: list[int] = []
    lock = threading.Lock()

    def worker() -> None:
        mine = [gen.next_id() for _ in range(500)]
        with lock:
            ids.extend(mine)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(ids) == 4000
    assert len(set(ids)) == 4000
