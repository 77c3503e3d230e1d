from __future__ import annotations

import base64
import json

import pytest

from pensieve_index.core.pathway_codec import (
    PathwayDecodeError,
    decode_pathway,
    encode_pathway,
)
from pensieve_index.domain.models import PathwayItem


def _token(payload: object) -> str:
    raw = json.dumps(payload).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def test_encode_decode_preserves_items_and_fandom() -> None:
    items = [
        PathwayItem(item_id="hp-harry", name="Harry Potter", position=0, category="character"),
        PathwayItem(
            item_id="hp-time-turner",
            item_type="plot_block",
            name="Time-Turner Accident",
            position=1,
            description="Lost an afternoon at Florean Fortescue's café",
        ),
    ]
    token = encode_pathway(items, fandom_id="hp-1")
    assert "=" not in token
    assert "+" not in token and "/" not in token

    snapshot = decode_pathway(token)
    assert snapshot.fandom_id == "hp-1"
    assert list(snapshot.items) == items


def test_encoding_is_deterministic() -> None:
    items = [PathwayItem(item_id="hp-angst", name="Angst", position=0)]
    assert encode_pathway(items) == encode_pathway(list(items))
    assert decode_pathway(encode_pathway(items)).fandom_id is None


def test_decode_fills_missing_item_fields() -> None:
    snapshot = decode_pathway(
        _token({"pathway": [{"name": "Harry Potter"}, {"type": "plot_block", "position": True}]})
    )
    first, second = snapshot.items
    assert first.item_id == "item_0"
    assert first.item_type == "tag"
    assert first.position == 0
    assert second.item_id == "item_1"
    assert second.position == 1
    assert second.is_plot_block


@pytest.mark.parametrize(
    "token",
    [
        "",
        "not base64 !!",
        _token(["just", "a", "list"]),
        _token({"pathway": "Harry Potter"}),
        _token({"pathway": ["Harry Potter"]}),
        _token({"pathway": [{"type": "character"}]}),
        "A" * 20_000,
    ],
)
def test_decode_rejects_malformed_ids(token: str) -> None:
    with pytest.raises(PathwayDecodeError):
        decode_pathway(token)
