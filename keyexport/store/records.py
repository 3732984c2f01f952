"""Reading order records out of the key-value store.

Records live under keys prefixed ``v2|``; each value is a JSON document
compressed with LZ-string's UTF-16 encoding. A record that fails to decode
is skipped without affecting its neighbours.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from typing import Any

from lzstring import LZString

from keyexport.exceptions import DecodeError
from keyexport.ingest.models import RECORD_PREFIX, RawOrder
from keyexport.store.kv import KeyValueStore

logger = logging.getLogger(__name__)

_lz = LZString()


def compress(value: Any) -> str:
    return _lz.compressToUTF16(json.dumps(value))


def decompress(raw: str | None, *, key: str | None = None) -> Any:
    if not raw:
        raise DecodeError(key, "empty value")
    try:
        # the codec reads UTF-16 input as integer code units
        text = _lz.decompressFromUTF16([ord(char) for char in raw])
    except (ValueError, KeyError, IndexError) as exc:
        raise DecodeError(key, f"decompression failed: {exc}") from exc
    if not text:
        raise DecodeError(key, "decompression produced no data")
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise DecodeError(key, f"invalid JSON: {exc}") from exc


def encode_record(order: dict[str, Any]) -> str:
    return compress(order)


def decode_record(raw: str | None, *, key: str | None = None) -> dict[str, Any]:
    data = decompress(raw, key=key)
    if not isinstance(data, dict):
        raise DecodeError(key, "record is not an object")
    return data


def record_keys(store: KeyValueStore) -> list[str]:
    return [key for key in store.keys() if key.startswith(RECORD_PREFIX)]


def iter_records(store: KeyValueStore) -> Iterator[tuple[str, dict[str, Any]]]:
    skipped = 0
    for key in record_keys(store):
        try:
            data = decode_record(store.get(key), key=key)
        except DecodeError as exc:
            logger.warning("Skipping unreadable record %s: %s", key, exc.reason)
            skipped += 1
            continue
        yield key, data
    if skipped:
        logger.warning("Skipped %s unreadable records", skipped)


def load_orders(store: KeyValueStore) -> list[RawOrder]:
    """Orders that carry at least one entitlement."""
    orders = [RawOrder.from_dict(data, key) for key, data in iter_records(store)]
    return [order for order in orders if order.entitlements]


def count_orders(store: KeyValueStore) -> int:
    return len(record_keys(store))
