"""Decode cascade for raw data bag values.

The provider has changed how it stores character records over time, and a
single data bag can mix encodings. Each value is therefore decoded by trying
an ordered list of strategies and keeping the first that yields JSON:

1. base64 -> zlib inflate -> UTF-8 -> JSON
2. base64 -> raw DEFLATE inflate -> UTF-8 -> JSON
3. base64 -> UTF-8 -> JSON
4. the value itself as JSON text

A strategy fails by raising one of DECODE_ERRORS; only when every
strategy has failed is DecodeExhaustedError raised.
"""

from __future__ import annotations

import base64
import binascii
import json
import zlib
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from companion_sync.core.exceptions import DecodeExhaustedError
from companion_sync.core.logging import get_logger

logger = get_logger(__name__)


# ValueError covers integer literals past the interpreter's digit limit;
# RecursionError covers pathologically nested arrays and objects.
DECODE_ERRORS: tuple[type[Exception], ...] = (
    binascii.Error,
    zlib.error,
    UnicodeDecodeError,
    json.JSONDecodeError,
    ValueError,
    RecursionError,
)


@dataclass(frozen=True)
class DecodeStrategy:
    """A named decode function from raw value to JSON."""

    name: str
    decode: Callable[[str], Any]


def _b64(raw_value: str) -> bytes:
    return base64.b64decode(raw_value.strip(), validate=True)


def _json(data: bytes) -> Any:
    return json.loads(data.decode("utf-8"))


def decode_zlib(raw_value: str) -> Any:
    return _json(zlib.decompress(_b64(raw_value)))


def decode_raw_deflate(raw_value: str) -> Any:
    return _json(zlib.decompress(_b64(raw_value), -zlib.MAX_WBITS))


def decode_base64_json(raw_value: str) -> Any:
    return _json(_b64(raw_value))


def decode_literal_json(raw_value: str) -> Any:
    return json.loads(raw_value)


DEFAULT_STRATEGIES: tuple[DecodeStrategy, ...] = (
    DecodeStrategy("zlib", decode_zlib),
    DecodeStrategy("raw-deflate", decode_raw_deflate),
    DecodeStrategy("base64-json", decode_base64_json),
    DecodeStrategy("literal-json", decode_literal_json),
)


def decode(
    raw_value: str,
    *,
    record_key: str | None = None,
    strategies: tuple[DecodeStrategy, ...] = DEFAULT_STRATEGIES,
) -> Any:
    """Decode one raw record value.

    Args:
        raw_value: The value as stored in the data bag.
        record_key: Data bag key, used for logging only.
        strategies: Strategies in the order to try them.

    Returns:
        The parsed JSON document.

    Raises:
        DecodeExhaustedError: If no strategy produced JSON.
    """
    if not isinstance(raw_value, str):
        raise DecodeExhaustedError(
            f"Record value is {type(raw_value).__name__}, expected text",
            record_key=record_key,
        )

    attempted: list[str] = []
    for strategy in strategies:
        attempted.append(strategy.name)
        try:
            document = strategy.decode(raw_value)
        except DECODE_ERRORS:
            continue
        logger.debug("Decoded record", record_key=record_key, strategy=strategy.name)
        return document

    logger.warning("No decode strategy succeeded", record_key=record_key, attempted=attempted)
    raise DecodeExhaustedError(
        "Record value could not be decoded",
        record_key=record_key,
        attempted=attempted,
    )


# Encoders mirror the provider's storage formats; used by tests and fixtures.


def encode_zlib(document: Any) -> str:
    return base64.b64encode(zlib.compress(json.dumps(document).encode("utf-8"))).decode("ascii")


def encode_raw_deflate(document: Any) -> str:
    compressor = zlib.compressobj(wbits=-zlib.MAX_WBITS)
    payload = compressor.compress(json.dumps(document).encode("utf-8")) + compressor.flush()
    return base64.b64encode(payload).decode("ascii")


def encode_base64_json(document: Any) -> str:
    return base64.b64encode(json.dumps(document).encode("utf-8")).decode("ascii")
