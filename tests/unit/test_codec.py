"""Tests for the JSON bundle codec."""

from __future__ import annotations

import pytest

from credcache.codec import JsonCodec
from credcache.errors import CodecError, DecodeError, EncodeError


class TestJsonCodec:
    def test_encode_is_compact_and_sorted(self) -> None:
        assert JsonCodec().encode({"b": "2", "a": "1"}) == b'{"a":"1","b":"2"}'

    def test_decode_object(self) -> None:
        assert JsonCodec().decode(b'{"a": "1", "n": 2}') == {"a": "1", "n": 2}

    def test_decode_non_object_is_returned_as_is(self) -> None:
        assert JsonCodec().decode(b"[1, 2]") == [1, 2]

    def test_decode_invalid_json_raises(self) -> None:
        with pytest.raises(DecodeError):
            JsonCodec().decode(b"hunter2")

    def test_decode_invalid_utf8_raises(self) -> None:
        with pytest.raises(DecodeError):
            JsonCodec().decode(b"\xff\xfe{")

    def test_encode_unserializable_raises(self) -> None:
        with pytest.raises(EncodeError):
            JsonCodec().encode({"when": object()})

    def test_errors_share_base(self) -> None:
        assert issubclass(EncodeError, CodecError)
        assert issubclass(DecodeError, CodecError)
