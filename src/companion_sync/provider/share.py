"""Share keys for publicly exported records.

A share key names one record in another account's public data:
``<ACCOUNTID>-<recordKey>``, e.g. ``5F2A19C03B7E81D4-character2``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from companion_sync.core.exceptions import InvalidShareKeyError
from companion_sync.models.provider import RecordKind


SHARE_KEY_PATTERN = re.compile(r"^(?P<account>[0-9A-Fa-f]{8,20})-(?P<key>[a-z]+\d+)$")


@dataclass(frozen=True)
class ShareKey:
    account_id: str
    record_key: str

    def __str__(self) -> str:
        return f"{self.account_id}-{self.record_key}"


def parse_share_key(value: str) -> ShareKey:
    """Parse and normalize a share key.

    Raises:
        InvalidShareKeyError: If the key is not ``<hex account>-<record key>``
            or the record key is not a character or campaign key.
    """
    if not isinstance(value, str):
        raise InvalidShareKeyError("Share key must be text")
    match = SHARE_KEY_PATTERN.match(value.strip())
    if match is None or RecordKind.for_key(match.group("key")) is None:
        raise InvalidShareKeyError("Share key is malformed", details={"length": len(value)})
    return ShareKey(account_id=match.group("account").upper(), record_key=match.group("key"))
