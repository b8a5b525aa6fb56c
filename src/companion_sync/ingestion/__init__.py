"""Ingestion of provider records: decode cascade and field normalization.

Modules:
    decoder: Ordered decode strategies for raw data bag values.
    accessors: Typed, path-based readers for untyped documents.
    normalizer: Mapping of decoded documents onto NormalizedCharacter.
"""

from __future__ import annotations

from companion_sync.ingestion.decoder import DEFAULT_STRATEGIES, DecodeStrategy, decode
from companion_sync.ingestion.normalizer import normalize, resolve_name


__all__ = [
    "DEFAULT_STRATEGIES",
    "DecodeStrategy",
    "decode",
    "normalize",
    "resolve_name",
]
