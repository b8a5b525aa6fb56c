"""Tests for the decode cascade."""

from __future__ import annotations

import base64
import binascii
import json
import zlib
from typing import Any

import pytest

from companion_sync.core.exceptions import DecodeExhaustedError
from companion_sync.ingestion.decoder import (
    DEFAULT_STRATEGIES,
    DecodeStrategy,
    decode,
    decode_base64_json,
    decode_raw_deflate,
    decode_zlib,
    encode_base64_json,
    encode_raw_deflate,
    encode_zlib,
)
from companion_sync.ingestion.normalizer import normalize


DOCUMENT: dict[str, Any] = {"name": "Ogun", "level": 5, "feats": ["Cleave"], "notes": "ünïcödé"}


def _recording(strategies: tuple[DecodeStrategy, ...], calls: list[str]) -> tuple[DecodeStrategy, ...]:
    def wrap(strategy: DecodeStrategy) -> DecodeStrategy:
        def run(raw: str) -> Any:
            calls.append(strategy.name)
            return strategy.decode(raw)

        return DecodeStrategy(strategy.name, run)

    return tuple(wrap(strategy) for strategy in strategies)


class TestStrategies:
    """Tests for the individual decode strategies."""

    @pytest.mark.parametrize(
        ("encoder", "expected_strategy"),
        [
            (encode_zlib, "zlib"),
            (encode_raw_deflate, "raw-deflate"),
            (encode_base64_json, "base64-json"),
            (json.dumps, "literal-json"),
        ],
    )
    def test_each_encoding_decodes_with_its_strategy(self, encoder: Any, expected_strategy: str) -> None:
        """Test every storage format decodes, stopping at the matching strategy."""
        calls: list[str] = []

        result = decode(encoder(DOCUMENT), strategies=_recording(DEFAULT_STRATEGIES, calls))

        assert result == DOCUMENT
        assert calls[-1] == expected_strategy

    def test_strategy_order(self) -> None:
        """Test the cascade order."""
        assert [strategy.name for strategy in DEFAULT_STRATEGIES] == [
            "zlib",
            "raw-deflate",
            "base64-json",
            "literal-json",
        ]

    def test_zlib_rejects_raw_deflate(self) -> None:
        """Test zlib-wrapped inflate fails on headerless DEFLATE."""
        with pytest.raises(zlib.error):
            decode_zlib(encode_raw_deflate(DOCUMENT))

    def test_raw_deflate_rejects_plain_base64(self) -> None:
        """Test raw inflate fails on uncompressed JSON bytes."""
        with pytest.raises((zlib.error, UnicodeDecodeError, json.JSONDecodeError)):
            decode_raw_deflate(encode_base64_json(DOCUMENT))

    def test_base64_json_rejects_literal_json(self) -> None:
        """Test non-base64 text is not base64 decoded."""
        with pytest.raises(binascii.Error):
            decode_base64_json('{"name": "Ogun"}')


class TestDecode:
    """Tests for decode()."""

    def test_ogun_scenario(self) -> None:
        """Test a zlib record decodes and normalizes with default abilities."""
        raw = base64.b64encode(zlib.compress(json.dumps({"name": "Ogun", "level": 5}).encode())).decode()

        document = decode(raw)
        character = normalize(document)

        assert document == {"name": "Ogun", "level": 5}
        assert character.level == 5
        assert all(score == 10 for score in character.abilities.model_dump().values())

    def test_plain_json_not_treated_as_compressed(self) -> None:
        """Test literal JSON text is parsed as itself."""
        assert decode('{"name": "Ogun", "level": 5}') == {"name": "Ogun", "level": 5}

    def test_surrounding_whitespace(self) -> None:
        """Test stored values with trailing newlines still decode."""
        assert decode(encode_zlib(DOCUMENT) + "\n") == DOCUMENT

    @pytest.mark.parametrize("raw", ["", "not json at all", "%%%%", base64.b64encode(b"\x00\xff\xfe").decode()])
    def test_exhausted(self, raw: str) -> None:
        """Test DecodeExhaustedError once every strategy fails."""
        with pytest.raises(DecodeExhaustedError) as exc_info:
            decode(raw, record_key="character9")

        assert exc_info.value.record_key == "character9"
        assert exc_info.value.details["attempted"] == [strategy.name for strategy in DEFAULT_STRATEGIES]

    @pytest.mark.parametrize(
        "raw",
        ["[" * 100_000 + "]" * 100_000, '{"level": ' + "9" * 5000 + "}"],
        ids=["deep-nesting", "huge-integer"],
    )
    def test_pathological_json_exhausts(self, raw: str) -> None:
        """Test parser limits fall through the cascade instead of escaping."""
        with pytest.raises(DecodeExhaustedError):
            decode(raw, record_key="character2")

    def test_payload_not_in_error(self) -> None:
        """Test the raw payload never appears in the error."""
        with pytest.raises(DecodeExhaustedError) as exc_info:
            decode("secret-payload-text", record_key="character1")

        assert "secret-payload-text" not in str(exc_info.value)

    def test_non_text_value(self) -> None:
        """Test non-string values fail cleanly."""
        with pytest.raises(DecodeExhaustedError):
            decode(None)  # type: ignore[arg-type]

    def test_custom_strategies(self) -> None:
        """Test a caller-supplied cascade is honored."""
        strategies = (DecodeStrategy("upper", lambda raw: json.loads(raw.lower())),)

        assert decode("TRUE", strategies=strategies) is True
