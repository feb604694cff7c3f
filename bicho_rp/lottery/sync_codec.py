"""Manual sync codec: a copy-pasteable base64 blob of the whole ledger.

Importing a blob replaces users, bets and draws wholesale. There is no merge;
the last import wins.
"""

from __future__ import annotations

import base64
import binascii
import json
from typing import Iterable

from bicho_rp.lottery.errors import MalformedSnapshot
from bicho_rp.lottery.models import LedgerCollections, parse_collections


def export_snapshot(collections: LedgerCollections) -> str:
    payload = json.dumps(collections.to_dict(), ensure_ascii=False, separators=(",", ":"))
    return base64.b64encode(payload.encode("utf-8")).decode("ascii")


def import_snapshot(blob: str, animal_ids: Iterable[int]) -> LedgerCollections:
    """Decode a blob produced by export_snapshot.

    Raises MalformedSnapshot on anything that does not decode to a valid
    ``{users, bets, draws}`` object.
    """
    if not isinstance(blob, str) or not blob.strip():
        raise MalformedSnapshot("Empty sync data")
    try:
        raw = base64.b64decode("".join(blob.split()), validate=True)
        data = json.loads(raw.decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise MalformedSnapshot(f"Could not decode sync data: {exc}") from exc

    if not isinstance(data, dict) or not {"users", "bets", "draws"} <= set(data):
        raise MalformedSnapshot("Sync data must contain users, bets and draws")
    return parse_collections(data, animal_ids)
