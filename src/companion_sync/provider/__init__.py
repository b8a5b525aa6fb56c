"""Character provider access: REST client, data bag fetcher and share keys."""

from __future__ import annotations

from companion_sync.provider.client import ProviderClient, is_account_not_found
from companion_sync.provider.fetcher import DataBagFetcher
from companion_sync.provider.share import ShareKey, parse_share_key


__all__ = [
    "DataBagFetcher",
    "ProviderClient",
    "ShareKey",
    "is_account_not_found",
    "parse_share_key",
]
