"""Shareable pathway ids: unpadded base64url JSON snapshots."""

from __future__ import annotations

import base64
import binascii
import json
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from pensieve_index.domain.models import ITEM_TYPE_PLOT_BLOCK, ITEM_TYPE_TAG, PathwayItem

ITEM_TYPES = (ITEM_TYPE_TAG, ITEM_TYPE_PLOT_BLOCK)
MAX_ENCODED_LENGTH = 16_384


class PathwayDecodeError(ValueError):
    """Raised when a share id is not a well-formed pathway snapshot."""


@dataclass(frozen=True)
class PathwaySnapshot:
    items: tuple[PathwayItem, ...]
    fandom_id: str | None = None


def _optional_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def normalize_item(raw: Mapping[str, Any], index: int) -> PathwayItem:
    """Fill missing fields the way discovery requests do."""
    item_type = str(raw.get("type") or ITEM_TYPE_TAG).strip()
    if item_type not in ITEM_TYPES:
        raise PathwayDecodeError(f"Unknown pathway item type: {item_type}")
    position = raw.get("position")
    if not isinstance(position, int) or isinstance(position, bool):
        position = index
    return PathwayItem(
        item_id=str(raw.get("id") or f"item_{index}").strip(),
        item_type=item_type,
        name=str(raw.get("name") or "").strip(),
        position=position,
        category=_optional_text(raw.get("category")),
        description=_optional_text(raw.get("description")),
    )


def item_to_json(item: PathwayItem) -> dict[str, object]:
    payload: dict[str, object] = {
        "id": item.item_id,
        "type": item.item_type,
        "name": item.name,
        "position": item.position,
    }
    if item.category:
        payload["category"] = item.category
    if item.description:
        payload["description"] = item.description
    return payload


def encode_pathway(items: Sequence[PathwayItem], *, fandom_id: str | None = None) -> str:
    payload: dict[str, object] = {"pathway": [item_to_json(item) for item in items]}
    if fandom_id is not None:
        payload["fandomId"] = fandom_id
    raw = json.dumps(payload, ensure_ascii=False, separators=(",", ":"), sort_keys=True)
    return base64.urlsafe_b64encode(raw.encode("utf-8")).decode("ascii").rstrip("=")


def decode_pathway(token: str) -> PathwaySnapshot:
    token = token.strip()
    if not token or len(token) > MAX_ENCODED_LENGTH:
        raise PathwayDecodeError("Pathway id is empty or too long.")
    padded = token + "=" * (-len(token) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded.encode("ascii"))
        payload = json.loads(raw.decode("utf-8"))
    except (binascii.Error, UnicodeError, ValueError) as exc:
        raise PathwayDecodeError("Pathway id is not valid base64url JSON.") from exc

    if not isinstance(payload, dict) or not isinstance(payload.get("pathway"), list):
        raise PathwayDecodeError("Pathway snapshot must contain a pathway array.")
    items: list[PathwayItem] = []
    for index, entry in enumerate(payload["pathway"]):
        if not isinstance(entry, dict):
            raise PathwayDecodeError("Pathway items must be objects.")
        items.append(normalize_item(entry, index))
    return PathwaySnapshot(items=tuple(items), fandom_id=_optional_text(payload.get("fandomId")))
