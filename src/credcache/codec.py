"""Serialization of structured credential bundles.

The manager only depends on the ``Codec`` protocol. ``JsonCodec`` is the
default and stores a bundle as a compact, key-sorted JSON object.
"""

from __future__ import annotations

import json
from typing import Any, Protocol

from credcache.errors import DecodeError, EncodeError


class Codec(Protocol):
    """Encode a bundle to bytes and back. Failures raise ``CodecError``."""

    def encode(self, bundle: dict[str, Any]) -> bytes: ...

    def decode(self, data: bytes) -> Any: ...


class JsonCodec:
    """UTF-8 JSON codec for credential bundles."""

    def encode(self, bundle: dict[str, Any]) -> bytes:
        try:
            text = json.dumps(bundle, sort_keys=True, separators=(",", ":"))
        except (TypeError, ValueError) as exc:
            raise EncodeError(str(exc)) from exc
        return text.encode("utf-8")

    def decode(self, data: bytes) -> Any:
        try:
            return json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as exc:
            raise DecodeError(str(exc)) from exc
